"""FSM-based write-triggered document processing.

Each record moves through a single status discriminant:

    (no status) -> PROCESSING -> COMPLETED
                            |
                            v
                         ERRORED

Every write the processor makes is itself delivered back as a change, so
classification is a guarded state machine: the order stamp, the PROCESSING
stamp and the terminal stamp each re-enter `classify`, and each echo lands
on an Ignore branch.
"""

from docproc.processor.machine import (
    ReservedFieldError,
    build_output,
    classify,
    completion_update,
    failure_update,
    order_stamp_update,
    processing_update,
    render_error,
    settle,
)
from docproc.processor.runner import (
    DEFAULT_ORDER_FIELD,
    DEFAULT_OUTPUT_FIELD,
    DEFAULT_STATUS_FIELD,
    OnWriteProcessor,
    ProcessorConfig,
    create_processor,
)
from docproc.processor.states import (
    TRANSITIONS,
    Action,
    BeginProcessing,
    Complete,
    Fail,
    Ignore,
    IgnoreReason,
    ProcessingState,
    StampOrder,
    StatusRecord,
    TransitionError,
    check_transition,
)
from docproc.processor.stats import ProcessingStats

__all__ = [
    # States
    "ProcessingState",
    "StatusRecord",
    "TransitionError",
    "TRANSITIONS",
    "check_transition",
    # Actions
    "Action",
    "Ignore",
    "IgnoreReason",
    "StampOrder",
    "BeginProcessing",
    "Complete",
    "Fail",
    # Machine
    "classify",
    "settle",
    "build_output",
    "render_error",
    "ReservedFieldError",
    "order_stamp_update",
    "processing_update",
    "completion_update",
    "failure_update",
    # Runner
    "OnWriteProcessor",
    "ProcessorConfig",
    "create_processor",
    "DEFAULT_ORDER_FIELD",
    "DEFAULT_STATUS_FIELD",
    "DEFAULT_OUTPUT_FIELD",
    # Stats
    "ProcessingStats",
]
