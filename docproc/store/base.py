"""Document store interfaces consumed by the processor.

The processor never talks to a concrete database. It only needs a snapshot
that can be read and partially updated, a server timestamp sentinel, and
the (before, after) pair the trigger runtime delivers for every write.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Mapping, Optional, Protocol, runtime_checkable


class _ServerTimestamp:
    """Sentinel replaced with the store's commit time on write."""

    _instance: Optional["_ServerTimestamp"] = None

    def __new__(cls) -> "_ServerTimestamp":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


class StoreError(Exception):
    """Base class for document store failures."""

    pass


class StoreWriteError(StoreError):
    """A write to the store could not be applied."""

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        super().__init__(f"Write to {path} failed: {message}")


class DocumentNotFoundError(StoreWriteError):
    """Update targeted a document that does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(path, "document does not exist")


def get_field(data: Mapping[str, Any], field_path: str) -> Any:
    """
    Read a possibly nested field using a dotted path.

    Args:
        data: Document field map
        field_path: Field name, or dotted path such as "status.state"

    Returns:
        The field value, or None when any segment is missing
    """
    current: Any = data
    for part in field_path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return None
        current = current[part]
    return current


def has_field(data: Mapping[str, Any], field_path: str) -> bool:
    """Check whether a possibly nested field is present."""
    current: Any = data
    for part in field_path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return False
        current = current[part]
    return True


@runtime_checkable
class DocumentSnapshot(Protocol):
    """Immutable view of one record, able to issue a partial-merge write."""

    @property
    def path(self) -> str: ...

    @property
    def exists(self) -> bool: ...

    def to_dict(self) -> dict[str, Any]: ...

    def get(self, field_path: str) -> Any: ...

    def update(self, fields: Mapping[str, Any]) -> Awaitable[None]:
        """
        Merge the given fields into the live record.

        Keys may be dotted paths addressing nested fields. Values equal to
        SERVER_TIMESTAMP are replaced with the commit time, and every
        sentinel in one call resolves to the same instant.
        """
        ...


@dataclass(frozen=True)
class Change:
    """A write observed on one record."""

    before: Optional[DocumentSnapshot] = None
    after: Optional[DocumentSnapshot] = None

    @property
    def path(self) -> str:
        """Path of the record this change belongs to."""
        for snapshot in (self.after, self.before):
            if snapshot is not None:
                return snapshot.path
        return ""

    @property
    def is_delete(self) -> bool:
        return self.after is None or not self.after.exists
