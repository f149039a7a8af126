"""Signal model: the immutable unit of the session event log.

A Signal is a timestamped fact about session integrity.  Producers hand the
log a ``SignalDraft`` (timestamp optional); the log assigns an id, a
per-session sequence number and, where absent, the timestamp, and returns
the frozen ``Signal``.  Once appended a Signal is never mutated or removed.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from integrity_monitor.domain.enums import SignalKind

# Payload fields each kind must carry.  Tuples inside the list are
# alternatives (legacy producers send ``dx`` instead of ``deviation``).
_REQUIRED_PAYLOAD: dict[SignalKind, list[str | tuple[str, ...]]] = {
    SignalKind.NO_FACE: ["durationMs"],
    SignalKind.MULTIPLE_FACES: ["count"],
    SignalKind.FOCUS_LOST: [("deviation", "dx")],
    SignalKind.LOOK_AWAY: [("deviation", "dx")],
    SignalKind.FOCUS_REGAINED: [("deviation", "dx")],
    SignalKind.UNAUTHORIZED_ITEM: ["label", "score"],
    SignalKind.VIDEO_UPLOADED: ["path"],
}


def _ensure_utc(v: datetime | None) -> datetime | None:
    # Auto-attach UTC if the timestamp is naive (browser clients often are)
    if v is not None and v.tzinfo is None:
        v = v.replace(tzinfo=timezone.utc)
    return v


def missing_payload_fields(kind: SignalKind, payload: dict[str, Any]) -> list[str]:
    """Names of required payload fields absent for *kind*."""
    missing: list[str] = []
    for requirement in _REQUIRED_PAYLOAD.get(kind, []):
        options = requirement if isinstance(requirement, tuple) else (requirement,)
        if not any(name in payload for name in options):
            missing.append("|".join(options))
    return missing


class SignalDraft(BaseModel):
    """What a producer submits to the event log."""

    session_id: str = Field(..., min_length=1, max_length=128)
    kind: SignalKind
    timestamp: Optional[datetime] = Field(
        default=None,
        description="When the signal was observed; defaults to append time",
    )
    payload: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @field_validator("timestamp")
    @classmethod
    def timestamp_must_be_aware(cls, v: datetime | None) -> datetime | None:
        return _ensure_utc(v)

    @model_validator(mode="after")
    def payload_matches_kind(self) -> "SignalDraft":
        missing = missing_payload_fields(self.kind, self.payload)
        if missing:
            raise ValueError(
                f"{self.kind.value} payload missing field(s): {', '.join(missing)}"
            )
        return self


class Signal(BaseModel):
    """An appended, immutable integrity signal."""

    signal_id: str
    session_id: str
    sequence: int = Field(..., ge=0, description="Per-session append index")
    kind: SignalKind
    timestamp: datetime
    payload: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @field_validator("timestamp")
    @classmethod
    def timestamp_must_be_aware(cls, v: datetime) -> datetime:
        return _ensure_utc(v)

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready representation used by observers and storage."""
        return self.model_dump(mode="json")
