"""Shared fixtures for docproc tests."""

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from docproc.store import InMemoryStore, StoredSnapshot
from docproc.utils.logging import configure_logging


class TickingClock:
    """Server clock that advances one second per reading."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 1, 1, tzinfo=timezone.utc)
        self.readings: list[datetime] = []

    def __call__(self) -> datetime:
        self.current = self.current + timedelta(seconds=1)
        self.readings.append(self.current)
        return self.current


class WriteLog:
    """Snapshot observer that records every committed document state."""

    def __init__(self) -> None:
        self.writes: list[tuple[str, Any]] = []

    def __call__(self, path: str, data: Any) -> None:
        self.writes.append((path, data))

    def for_path(self, path: str) -> list[Any]:
        return [data for p, data in self.writes if p == path]

    def __len__(self) -> int:
        return len(self.writes)


@pytest.fixture(autouse=True)
def _reset_logging():
    """Restore verbose logging in case a CLI test lowered the level."""
    configure_logging(level="debug", format_type="text")
    yield


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def store(clock: TickingClock) -> InMemoryStore:
    return InMemoryStore(clock=clock)


@pytest.fixture
def write_log(store: InMemoryStore) -> WriteLog:
    log = WriteLog()
    store.on_snapshot(log)
    return log


@pytest.fixture
def snapshot_factory(store: InMemoryStore):
    """Build detached snapshots for classification tests."""

    def make(data: dict[str, Any] | None, path: str = "records/doc-1") -> StoredSnapshot:
        return StoredSnapshot(store, path, data)

    return make
