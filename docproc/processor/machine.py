"""Pure decision functions for the write-triggered processing FSM.

Nothing in this module performs I/O. `classify` maps an observed change to
the next action, `settle` maps a transform result or raised error to a terminal action, and
the `*_update` builders produce the partial-merge payload for each write.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping, Optional

from docproc.processor.states import (
    COMPLETE_TIME,
    ERROR,
    ERROR_TIME,
    START_TIME,
    STATE,
    UPDATE_TIME,
    Action,
    BeginProcessing,
    Complete,
    Fail,
    Ignore,
    IgnoreReason,
    ProcessingState,
    StampOrder,
    StatusRecord,
    check_transition,
)
from docproc.store.base import SERVER_TIMESTAMP, Change, DocumentSnapshot, has_field
from docproc.utils.logging import get_logger

if TYPE_CHECKING:
    from docproc.processor.runner import ProcessorConfig

logger = get_logger("processor.machine")


class ReservedFieldError(ValueError):
    """Transform result tried to overwrite a field the processor owns."""

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"Transform result may not overwrite reserved field '{field}'")


def read_status(
    snapshot: Optional[DocumentSnapshot],
    status_field: str,
) -> Optional[StatusRecord]:
    """Read the status sub-object from a snapshot, if any."""
    if snapshot is None or not snapshot.exists:
        return None
    data = snapshot.get(status_field)
    if not isinstance(data, Mapping):
        return None
    return StatusRecord.from_dict(data)


def classify(change: Change, config: ProcessorConfig) -> Action:
    """
    Decide what to do about one observed write.

    Exactly one branch fires per change, so the chain of writes the
    processor makes (order stamp, PROCESSING, terminal) terminates: every
    echo of those writes lands on an Ignore branch.

    Args:
        change: The (before, after) pair delivered by the trigger runtime
        config: Processor configuration (field names)

    Returns:
        Ignore, StampOrder or BeginProcessing
    """
    after = change.after
    if after is None or not after.exists:
        return Ignore(IgnoreReason.DELETED)

    data = after.to_dict()
    if not has_field(data, config.input_field):
        return Ignore(IgnoreReason.NO_INPUT)

    if not has_field(data, config.order_field):
        return StampOrder(config.order_field)

    status = read_status(after, config.status_field)
    if status is not None:
        if status.state is ProcessingState.PROCESSING:
            previous = read_status(change.before, config.status_field)
            if previous is not None and previous.start_time == status.start_time:
                return Ignore(IgnoreReason.ECHO)
            return Ignore(IgnoreReason.IN_FLIGHT)
        if status.state is None:
            logger.warning(
                "unknown_status_state",
                path=after.path,
                state=repr(status.raw_state),
            )
            return Ignore(IgnoreReason.UNKNOWN_STATE)
        return Ignore(IgnoreReason.TERMINAL)

    return BeginProcessing(input=after.get(config.input_field))


def build_output(result: Any, config: ProcessorConfig) -> dict[str, Any]:
    """
    Turn a transform result into the fields merged on completion.

    Mapping results are merged key by key; anything else is stored under
    the configured output field. Keys are merge paths, so a dotted key
    such as "status.error" addresses the map under its first segment.

    Raises:
        ReservedFieldError: If any key would write into the input, order
            or status field
    """
    if isinstance(result, Mapping):
        output = dict(result)
    else:
        output = {config.output_field: result}

    reserved = {
        field.split(".", 1)[0]
        for field in (config.input_field, config.order_field, config.status_field)
    }
    for key in output:
        top_level = str(key).split(".", 1)[0]
        if top_level in reserved:
            raise ReservedFieldError(str(key))
    return output


def render_error(error: Exception, config: ProcessorConfig) -> Any:
    """Render a transform failure with the configured error function."""
    if config.error_fn is None:
        return str(error)
    try:
        return config.error_fn(error)
    except Exception as render_failure:
        logger.warning(
            "error_render_failed",
            error=str(render_failure),
            original_error=str(error),
        )
        return str(error)


def settle(
    result: Any,
    config: ProcessorConfig,
    error: Optional[Exception] = None,
) -> Action:
    """
    Map a transform outcome to its terminal action.

    Args:
        result: The value the transform returned; any object, including an
            exception instance, is treated as output
        config: Processor configuration
        error: The exception the transform raised, if it raised

    Returns:
        Complete or Fail
    """
    if error is not None:
        return Fail(error=render_error(error, config))
    try:
        return Complete(output=build_output(result, config))
    except ReservedFieldError as e:
        return Fail(error=render_error(e, config))


def order_stamp_update(action: StampOrder) -> dict[str, Any]:
    """Fields for the ordering timestamp write."""
    return {action.field: SERVER_TIMESTAMP}


def processing_update(
    status_field: str,
    current: Optional[ProcessingState] = None,
) -> dict[str, Any]:
    """
    Fields for entering PROCESSING. Replaces the whole status map.

    Raises:
        TransitionError: If the record is already in a state
    """
    check_transition(current, ProcessingState.PROCESSING)
    return {
        status_field: {
            STATE: ProcessingState.PROCESSING.value,
            START_TIME: SERVER_TIMESTAMP,
            UPDATE_TIME: SERVER_TIMESTAMP,
        }
    }


def completion_update(
    action: Complete,
    status_field: str,
    current: Optional[ProcessingState],
) -> dict[str, Any]:
    """
    Fields for PROCESSING -> COMPLETED. startTime is left untouched.

    Raises:
        TransitionError: If current is not PROCESSING
    """
    check_transition(current, ProcessingState.COMPLETED)
    fields = dict(action.output)
    fields.update({
        f"{status_field}.{STATE}": ProcessingState.COMPLETED.value,
        f"{status_field}.{UPDATE_TIME}": SERVER_TIMESTAMP,
        f"{status_field}.{COMPLETE_TIME}": SERVER_TIMESTAMP,
    })
    return fields


def failure_update(
    action: Fail,
    status_field: str,
    current: Optional[ProcessingState],
) -> dict[str, Any]:
    """Fields for PROCESSING -> ERRORED. No output is written."""
    check_transition(current, ProcessingState.ERRORED)
    return {
        f"{status_field}.{STATE}": ProcessingState.ERRORED.value,
        f"{status_field}.{UPDATE_TIME}": SERVER_TIMESTAMP,
        f"{status_field}.{ERROR_TIME}": SERVER_TIMESTAMP,
        f"{status_field}.{ERROR}": action.error,
    }
