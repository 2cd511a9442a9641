"""Caller-owned counters that plug into the processor hooks."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from docproc.store.base import DocumentSnapshot


class ProcessingStats:
    """
    Statistics for processed records.

    `pre_process` and `post_process` have the hook signature, so an
    instance can be wired straight into a ProcessorConfig.
    """

    def __init__(self) -> None:
        self.started: int = 0
        self.completed: int = 0
        self.first_started_at: Optional[datetime] = None
        self.last_completed_at: Optional[datetime] = None
        self.paths: list[str] = []

    def pre_process(self, snapshot: DocumentSnapshot) -> None:
        self.started += 1
        self.paths.append(snapshot.path)
        if self.first_started_at is None:
            self.first_started_at = datetime.now(timezone.utc)

    def post_process(self, snapshot: DocumentSnapshot) -> None:
        self.completed += 1
        self.last_completed_at = datetime.now(timezone.utc)

    @property
    def unfinished(self) -> int:
        """Started but not completed (errored or still running)."""
        return self.started - self.completed

    @property
    def completion_rate(self) -> float:
        """Completion rate as percentage."""
        if self.started == 0:
            return 0.0
        return (self.completed / self.started) * 100

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "started": self.started,
            "completed": self.completed,
            "unfinished": self.unfinished,
            "first_started_at": self.first_started_at.isoformat() if self.first_started_at else None,
            "last_completed_at": self.last_completed_at.isoformat() if self.last_completed_at else None,
        }
