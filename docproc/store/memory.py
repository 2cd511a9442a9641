"""In-process document store with write-triggered change delivery.

Stands in for a real document database and its trigger runtime: every
committed write is published to snapshot observers and delivered to the
registered triggers as a Change, exactly as a hosted runtime would invoke
a function on each write.
"""

from __future__ import annotations

import asyncio
import copy
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Mapping, Optional

from docproc.store.base import (
    SERVER_TIMESTAMP,
    Change,
    DocumentNotFoundError,
    StoreWriteError,
    get_field,
)
from docproc.utils.logging import get_logger

logger = get_logger("store.memory")

Observer = Callable[[str, Optional[dict[str, Any]]], None]
Trigger = Callable[[Change], Awaitable[None]]


def _resolve(value: Any, now: datetime) -> Any:
    """Replace server timestamp sentinels, recursing into maps and lists."""
    if value is SERVER_TIMESTAMP:
        return now
    if isinstance(value, Mapping):
        return {k: _resolve(v, now) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve(v, now) for v in value]
    return value


def _merge_field(data: dict[str, Any], field_path: str, value: Any) -> None:
    """Set a possibly dotted field, creating intermediate maps."""
    parts = field_path.split(".")
    target = data
    for part in parts[:-1]:
        child = target.get(part)
        if not isinstance(child, dict):
            child = {}
            target[part] = child
        target = child
    target[parts[-1]] = value


class StoredSnapshot:
    """Point-in-time copy of a document held by an InMemoryStore."""

    def __init__(
        self,
        store: InMemoryStore,
        path: str,
        data: Optional[dict[str, Any]],
        read_time: Optional[datetime] = None,
    ) -> None:
        self._store = store
        self._path = path
        self._data = copy.deepcopy(data) if data is not None else None
        self.read_time = read_time

    @property
    def path(self) -> str:
        return self._path

    @property
    def id(self) -> str:
        return self._path.rsplit("/", 1)[-1]

    @property
    def exists(self) -> bool:
        return self._data is not None

    @property
    def reference(self) -> DocumentReference:
        return self._store.document(self._path)

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self._data) if self._data is not None else {}

    def get(self, field_path: str) -> Any:
        if self._data is None:
            return None
        return copy.deepcopy(get_field(self._data, field_path))

    async def update(self, fields: Mapping[str, Any]) -> None:
        await self._store.document(self._path).update(fields)

    def __repr__(self) -> str:
        return f"StoredSnapshot(path={self._path!r}, data={self._data!r})"


class DocumentReference:
    """Handle to a single document path in an InMemoryStore."""

    def __init__(self, store: InMemoryStore, path: str) -> None:
        self._store = store
        self.path = path

    @property
    def id(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    async def get(self) -> StoredSnapshot:
        return self._store.read(self.path)

    async def set(self, data: Mapping[str, Any]) -> None:
        """Create or fully overwrite the document."""

        def mutate(current: Optional[dict[str, Any]], now: datetime) -> dict[str, Any]:
            return _resolve(dict(data), now)

        await self._store.commit(self.path, mutate)

    async def update(self, fields: Mapping[str, Any]) -> None:
        """Partially merge fields into an existing document."""
        if not fields:
            raise StoreWriteError(self.path, "update requires at least one field")

        def mutate(current: Optional[dict[str, Any]], now: datetime) -> dict[str, Any]:
            if current is None:
                raise DocumentNotFoundError(self.path)
            for field_path, value in fields.items():
                _merge_field(current, field_path, _resolve(value, now))
            return current

        await self._store.commit(self.path, mutate)

    async def delete(self) -> None:
        def mutate(current: Optional[dict[str, Any]], now: datetime) -> None:
            return None

        await self._store.commit(self.path, mutate)


class InMemoryStore:
    """
    Dictionary-backed document store.

    Writes to one document are serialized; writes to different documents
    proceed independently. Each committed write notifies observers
    synchronously and schedules every trigger as its own task.
    """

    def __init__(
        self,
        clock: Optional[Callable[[], datetime]] = None,
        write_latency: float = 0.0,
    ) -> None:
        """
        Initialize the store.

        Args:
            clock: Source of server timestamps (default: UTC wall clock)
            write_latency: Seconds each write holds the document lock
        """
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._write_latency = write_latency
        self._documents: dict[str, dict[str, Any]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._observers: list[Observer] = []
        self._triggers: list[Trigger] = []
        self._pending: set[asyncio.Task] = set()
        self.trigger_errors: list[tuple[str, Exception]] = []

    def document(self, path: str) -> DocumentReference:
        return DocumentReference(self, path)

    async def add(self, collection: str, data: Mapping[str, Any]) -> DocumentReference:
        """Create a document with a generated id in a collection."""
        ref = self.document(f"{collection}/{uuid.uuid4().hex[:20]}")
        await ref.set(data)
        return ref

    def read(self, path: str) -> StoredSnapshot:
        return StoredSnapshot(self, path, self._documents.get(path))

    def on_snapshot(self, observer: Observer) -> Callable[[], None]:
        """
        Register an observer called with (path, data) after each write.

        Returns:
            Callable that unsubscribes the observer
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def on_write(self, trigger: Trigger) -> None:
        """Register a coroutine function invoked with a Change per write."""
        self._triggers.append(trigger)

    async def commit(
        self,
        path: str,
        mutate: Callable[[Optional[dict[str, Any]], datetime], Optional[dict[str, Any]]],
    ) -> None:
        """
        Apply one serialized write to a document.

        Args:
            path: Document path
            mutate: Receives a copy of the current data (None if missing)
                and the commit time; returns the new data (None deletes)

        Raises:
            StoreWriteError: If the mutation is rejected
        """
        lock = self._locks.setdefault(path, asyncio.Lock())
        self._lock_users[path] = self._lock_users.get(path, 0) + 1
        try:
            async with lock:
                if self._write_latency:
                    await asyncio.sleep(self._write_latency)

                now = self._clock()
                current = self._documents.get(path)
                before_data = copy.deepcopy(current)
                after_data = mutate(copy.deepcopy(current), now)

                if after_data is None:
                    self._documents.pop(path, None)
                else:
                    self._documents[path] = after_data

                logger.debug(
                    "document_written",
                    path=path,
                    created=before_data is None,
                    deleted=after_data is None,
                )

                change = Change(
                    before=StoredSnapshot(self, path, before_data, now) if before_data is not None else None,
                    after=StoredSnapshot(self, path, after_data, now) if after_data is not None else None,
                )
        finally:
            self._release_lock(path)

        for observer in list(self._observers):
            observer(path, copy.deepcopy(after_data))

        self.deliver(change)

    def _release_lock(self, path: str) -> None:
        # Locks of deleted documents are dropped once no writer holds or awaits them
        self._lock_users[path] -= 1
        if self._lock_users[path] == 0:
            del self._lock_users[path]
            if path not in self._documents:
                self._locks.pop(path, None)

    def deliver(self, change: Change) -> None:
        """Schedule delivery of a change to every registered trigger."""
        loop = asyncio.get_running_loop()
        for trigger in list(self._triggers):
            task = loop.create_task(self._invoke(trigger, change))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _invoke(self, trigger: Trigger, change: Change) -> None:
        try:
            await trigger(change)
        except Exception as e:
            # The runtime owns retry policy; record the failure for inspection
            logger.error(
                "trigger_failed",
                path=change.path,
                error=str(e),
                error_type=type(e).__name__,
            )
            self.trigger_errors.append((change.path, e))

    async def drain(self) -> None:
        """Wait until all scheduled trigger work, including re-entries, is done."""
        while self._pending:
            await asyncio.gather(*list(self._pending))
