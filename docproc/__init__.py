"""docproc - write-triggered document processing.

Write an input value into a record; the processor stamps an ordering
timestamp, marks the record PROCESSING, runs the transform, and records
either the output (COMPLETED) or the rendered error (ERRORED) on the
same record.
"""

__version__ = "0.1.0"

from docproc.processor import (
    OnWriteProcessor,
    ProcessingState,
    ProcessorConfig,
    create_processor,
)
from docproc.store import SERVER_TIMESTAMP, Change, DocumentSnapshot

__all__ = [
    "__version__",
    "OnWriteProcessor",
    "ProcessorConfig",
    "ProcessingState",
    "create_processor",
    "Change",
    "DocumentSnapshot",
    "SERVER_TIMESTAMP",
]
