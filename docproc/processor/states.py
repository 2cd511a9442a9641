"""FSM state definitions for write-triggered document processing."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Union

# Keys of the status sub-object as stored on the record
STATE = "state"
START_TIME = "startTime"
UPDATE_TIME = "updateTime"
COMPLETE_TIME = "completeTime"
ERROR_TIME = "errorTime"
ERROR = "error"


class ProcessingState(Enum):
    """Values of status.state. A record with no status has not started."""

    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    ERRORED = "ERRORED"

    def is_terminal(self) -> bool:
        """Check if this is a terminal state."""
        return self in (ProcessingState.COMPLETED, ProcessingState.ERRORED)

    @classmethod
    def parse(cls, value: Any) -> Optional[ProcessingState]:
        """Parse a stored state value, returning None if unrecognised."""
        try:
            return cls(value)
        except ValueError:
            return None


# Valid state transitions; None is "not yet started"
TRANSITIONS: dict[Optional[ProcessingState], set[ProcessingState]] = {
    None: {ProcessingState.PROCESSING},
    ProcessingState.PROCESSING: {
        ProcessingState.COMPLETED,
        ProcessingState.ERRORED,
    },
    # Terminal states have no transitions
    ProcessingState.COMPLETED: set(),
    ProcessingState.ERRORED: set(),
}


class TransitionError(Exception):
    """Invalid state transition."""

    def __init__(
        self,
        from_state: Optional[ProcessingState],
        to_state: ProcessingState,
    ) -> None:
        self.from_state = from_state
        self.to_state = to_state
        from_name = from_state.name if from_state else "NOT_STARTED"
        super().__init__(f"Invalid transition: {from_name} -> {to_state.name}")


def check_transition(
    from_state: Optional[ProcessingState],
    to_state: ProcessingState,
) -> None:
    """
    Validate a transition against TRANSITIONS.

    Raises:
        TransitionError: If the transition is not allowed
    """
    if to_state not in TRANSITIONS.get(from_state, set()):
        raise TransitionError(from_state, to_state)


@dataclass(frozen=True)
class StatusRecord:
    """Typed view of the status sub-object stored on a record."""

    state: Optional[ProcessingState]
    raw_state: Any = None
    start_time: Any = None
    update_time: Any = None
    complete_time: Any = None
    error_time: Any = None
    error: Any = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StatusRecord:
        """Create from the stored status map."""
        raw_state = data.get(STATE)
        return cls(
            state=ProcessingState.parse(raw_state),
            raw_state=raw_state,
            start_time=data.get(START_TIME),
            update_time=data.get(UPDATE_TIME),
            complete_time=data.get(COMPLETE_TIME),
            error_time=data.get(ERROR_TIME),
            error=data.get(ERROR),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert back to the stored shape, omitting unset fields."""
        data: dict[str, Any] = {STATE: self.state.value if self.state else self.raw_state}
        for key, value in (
            (START_TIME, self.start_time),
            (UPDATE_TIME, self.update_time),
            (COMPLETE_TIME, self.complete_time),
            (ERROR_TIME, self.error_time),
            (ERROR, self.error),
        ):
            if value is not None:
                data[key] = value
        return data


class IgnoreReason(Enum):
    """Why a change produced no work."""

    DELETED = "deleted"
    NO_INPUT = "no_input"
    ECHO = "echo"
    IN_FLIGHT = "in_flight"
    TERMINAL = "terminal"
    UNKNOWN_STATE = "unknown_state"


# Actions produced by the decision functions in machine.py


@dataclass(frozen=True)
class Ignore:
    """Take no action for this change."""

    reason: IgnoreReason


@dataclass(frozen=True)
class StampOrder:
    """Set the ordering field to the server timestamp and stop."""

    field: str


@dataclass(frozen=True)
class BeginProcessing:
    """Start a new unit of work with the given input."""

    input: Any


@dataclass(frozen=True)
class Complete:
    """Terminate successfully, merging these fields onto the record."""

    output: dict[str, Any]


@dataclass(frozen=True)
class Fail:
    """Terminate with the rendered error payload."""

    error: Any


Action = Union[Ignore, StampOrder, BeginProcessing, Complete, Fail]
