"""Write-triggered processor: adapter that executes FSM decisions on a record."""

from __future__ import annotations

import inspect
import time
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Mapping, Optional

from docproc.processor.machine import (
    classify,
    completion_update,
    failure_update,
    order_stamp_update,
    processing_update,
    read_status,
    render_error,
    settle,
)
from docproc.processor.states import (
    BeginProcessing,
    Complete,
    Fail,
    Ignore,
    ProcessingState,
    StampOrder,
)
from docproc.store.base import Change, DocumentSnapshot
from docproc.utils.logging import get_logger, set_correlation_id, set_document_context

if TYPE_CHECKING:
    from docproc.config.settings import ProcessorSettings

logger = get_logger("processor.runner")

ProcessFn = Callable[[Any], Awaitable[Any]]
ErrorFn = Callable[[Exception], Any]
Hook = Callable[[DocumentSnapshot], Any]

DEFAULT_ORDER_FIELD = "createTime"
DEFAULT_STATUS_FIELD = "status"
DEFAULT_OUTPUT_FIELD = "output"


@dataclass(frozen=True)
class ProcessorConfig:
    """Field names and capabilities the processor is built from."""

    input_field: str
    process_fn: ProcessFn
    error_fn: Optional[ErrorFn] = None
    order_field: str = DEFAULT_ORDER_FIELD
    status_field: str = DEFAULT_STATUS_FIELD
    output_field: str = DEFAULT_OUTPUT_FIELD
    pre_process_hook: Optional[Hook] = None
    post_process_hook: Optional[Hook] = None

    def __post_init__(self) -> None:
        names = {
            "input_field": self.input_field,
            "order_field": self.order_field,
            "status_field": self.status_field,
            "output_field": self.output_field,
        }
        for name, value in names.items():
            if not isinstance(value, str) or not value:
                raise ValueError(f"{name} must be a non-empty string, got {value!r}")

        owned = [self.input_field, self.order_field, self.status_field]
        if len(set(owned)) != len(owned):
            raise ValueError(
                "input_field, order_field and status_field must be distinct, "
                f"got {owned!r}"
            )
        if self.output_field in owned:
            raise ValueError(f"output_field may not reuse {self.output_field!r}")

        if not callable(self.process_fn):
            raise ValueError("process_fn must be callable")
        for name in ("error_fn", "pre_process_hook", "post_process_hook"):
            value = getattr(self, name)
            if value is not None and not callable(value):
                raise ValueError(f"{name} must be callable")

    @classmethod
    def from_settings(
        cls,
        settings: ProcessorSettings,
        process_fn: ProcessFn,
        error_fn: Optional[ErrorFn] = None,
        pre_process_hook: Optional[Hook] = None,
        post_process_hook: Optional[Hook] = None,
    ) -> ProcessorConfig:
        """Build a config from declarative settings plus the capabilities."""
        return cls(
            input_field=settings.input_field,
            process_fn=process_fn,
            error_fn=error_fn,
            order_field=settings.order_field,
            status_field=settings.status_field,
            output_field=settings.output_field,
            pre_process_hook=pre_process_hook,
            post_process_hook=post_process_hook,
        )


async def _call_hook(hook: Optional[Hook], snapshot: DocumentSnapshot) -> None:
    """Invoke a sync or async hook. Failures propagate."""
    if hook is None:
        return
    result = hook(snapshot)
    if inspect.isawaitable(result):
        await result


class OnWriteProcessor:
    """
    Drives a record through PROCESSING -> COMPLETED/ERRORED on write events.

    The processor holds no state between invocations: each call to `run`
    is a function of the change and the immutable config, so one instance
    can serve any number of records concurrently.
    """

    def __init__(self, config: ProcessorConfig) -> None:
        """
        Initialize the processor.

        Args:
            config: Processor configuration
        """
        self.config = config

    async def __call__(self, change: Change) -> None:
        await self.run(change)

    async def run(self, change: Change) -> None:
        """
        Handle one observed write.

        Transform and post-process hook failures are recorded on the record
        as ERRORED. Store write failures and pre-process hook failures
        propagate to the caller.

        Args:
            change: The (before, after) pair for the written record
        """
        set_correlation_id(str(uuid.uuid4())[:8])
        set_document_context(change.path)

        action = classify(change, self.config)

        if isinstance(action, Ignore):
            logger.debug("change_ignored", reason=action.reason.value)
            return

        snapshot = change.after
        if snapshot is None:
            return

        if isinstance(action, StampOrder):
            await self._write(snapshot, order_stamp_update(action), step="order_stamp")
            logger.info("order_field_stamped", field=action.field)
            return

        if isinstance(action, BeginProcessing):
            await self._process(snapshot, action)

    async def _process(self, snapshot: DocumentSnapshot, action: BeginProcessing) -> None:
        """Run the processing protocol for a new unit of work."""
        config = self.config
        status = read_status(snapshot, config.status_field)
        state = status.state if status is not None else None

        await _call_hook(config.pre_process_hook, snapshot)
        await self._write(
            snapshot,
            processing_update(config.status_field, state),
            step="processing",
        )
        state = ProcessingState.PROCESSING
        logger.info("processing_started")

        started = time.perf_counter()
        try:
            result: Any = config.process_fn(action.input)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.warning(
                "transform_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            terminal = settle(None, config, error=e)
        else:
            terminal = settle(result, config)
        duration = round(time.perf_counter() - started, 3)

        if isinstance(terminal, Complete):
            try:
                await _call_hook(config.post_process_hook, snapshot)
            except Exception as e:
                logger.warning(
                    "post_process_hook_failed",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                terminal = Fail(error=render_error(e, config))

        if isinstance(terminal, Complete):
            await self._write(
                snapshot,
                completion_update(terminal, config.status_field, state),
                step="complete",
            )
            logger.info(
                "processing_completed",
                duration_seconds=duration,
                output_fields=sorted(terminal.output),
            )
        elif isinstance(terminal, Fail):
            await self._write(
                snapshot,
                failure_update(terminal, config.status_field, state),
                step="error",
            )
            logger.info("processing_errored", duration_seconds=duration)

    async def _write(
        self,
        snapshot: DocumentSnapshot,
        fields: Mapping[str, Any],
        step: str,
    ) -> None:
        """Apply a partial-merge write, logging and re-raising any failure."""
        try:
            await snapshot.update(fields)
        except Exception as e:
            logger.error(
                "store_write_failed",
                step=step,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise


def create_processor(
    input_field: str,
    process_fn: ProcessFn,
    **options: Any,
) -> OnWriteProcessor:
    """
    Convenience function to build a processor.

    Args:
        input_field: Field read as work input
        process_fn: Async transform applied to the input
        **options: Remaining ProcessorConfig fields

    Returns:
        Configured OnWriteProcessor
    """
    config = ProcessorConfig(input_field=input_field, process_fn=process_fn, **options)
    return OnWriteProcessor(config)
