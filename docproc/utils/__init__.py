"""Utility modules for docproc."""

from docproc.utils.logging import (
    configure_logging,
    get_correlation_id,
    get_logger,
    set_correlation_id,
    set_document_context,
)
from docproc.utils.result import ConfigError, Err, ExitCode, Ok, Result, ResultError

__all__ = [
    # Logging
    "configure_logging",
    "get_logger",
    "get_correlation_id",
    "set_correlation_id",
    "set_document_context",
    # Result
    "Ok",
    "Err",
    "Result",
    "ResultError",
    "ConfigError",
    "ExitCode",
]
