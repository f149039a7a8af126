"""Session: one monitored sitting.

A Session is created when monitoring starts and is never deleted.  The
only mutations allowed after creation are setting the end time and the
recorded-artifact reference; everything else about a sitting lives in its
event log.

Thread-safety note:
    Session objects are mutated *only* while the caller holds the
    EventLog lock.  They are not themselves locked.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from integrity_monitor.foundation.clock import utc_now
from integrity_monitor.foundation.identifiers import new_session_id


class Session:
    """Identity and lifecycle timestamps of a monitored sitting."""

    __slots__ = ("session_id", "subject", "started_at", "ended_at", "artifact_path")

    def __init__(
        self,
        subject: str,
        session_id: str | None = None,
        started_at: datetime | None = None,
    ) -> None:
        self.session_id: str = session_id or new_session_id()
        self.subject: str = subject
        self.started_at: datetime = started_at or utc_now()
        self.ended_at: datetime | None = None
        self.artifact_path: str | None = None

    # ── Mutation ─────────────────────────────────────────────────────────

    def end(self, at: datetime | None = None) -> None:
        """Set the end time.  Ending twice keeps the first end time."""
        if self.ended_at is None:
            self.ended_at = at or utc_now()

    def attach_artifact(self, path: str | None) -> None:
        self.artifact_path = path

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def is_ended(self) -> bool:
        return self.ended_at is not None

    def summary(self) -> dict[str, Any]:
        """Lightweight summary suitable for API responses and logging."""
        return {
            "session_id": self.session_id,
            "subject": self.subject,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "artifact_path": self.artifact_path,
        }

    # ── Persistence ──────────────────────────────────────────────────────

    def to_record(self) -> dict[str, Any]:
        return self.summary()

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Session":
        session = cls(
            subject=record["subject"],
            session_id=record["session_id"],
            started_at=datetime.fromisoformat(record["started_at"]),
        )
        if record.get("ended_at"):
            session.ended_at = datetime.fromisoformat(record["ended_at"])
        session.artifact_path = record.get("artifact_path")
        return session

    # ── Dunder ───────────────────────────────────────────────────────────

    def __repr__(self) -> str:
        return (
            f"Session(id={self.session_id}, subject={self.subject!r}, "
            f"ended={self.is_ended})"
        )
