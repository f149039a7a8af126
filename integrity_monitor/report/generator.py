"""ReportGenerator: deterministic reduction of a session's signal log.

Design principles:
    1. Pure function: accepts a Session and its ordered Signals, returns an
       IntegrityReport.  No I/O, no clock, no randomness.
    2. All penalty weights are explicit and configurable.
    3. The same log always yields the same counts, score and rows.

Score formula:
    score = max(0, 100 - sum(weight[kind] * count[kind]))

    Weights are non-negative, so appending a penalised signal can only keep
    or lower the score.  There is no ceiling above 100: a clean session
    scores exactly 100.
"""

from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Mapping, Optional, Sequence

from pydantic import BaseModel, Field

from integrity_monitor.domain.enums import SignalKind
from integrity_monitor.domain.session import Session
from integrity_monitor.domain.signal import Signal

MAX_SCORE = 100

DEFAULT_PENALTIES: Mapping[SignalKind, int] = MappingProxyType({
    SignalKind.FOCUS_LOST: 5,
    SignalKind.LOOK_AWAY: 5,
    SignalKind.NO_FACE: 10,
    SignalKind.MULTIPLE_FACES: 10,
    SignalKind.UNAUTHORIZED_ITEM: 15,
})


@dataclass(frozen=True)
class PenaltyWeights:
    """Per-kind score deductions.  Kinds not listed cost nothing."""

    weights: Mapping[SignalKind, int] = field(default_factory=lambda: dict(DEFAULT_PENALTIES))

    def __post_init__(self) -> None:
        for kind, weight in self.weights.items():
            if weight < 0:
                raise ValueError(f"penalty weight for {kind} must be non-negative")

    @classmethod
    def from_mapping(cls, raw: Mapping[str, int]) -> "PenaltyWeights":
        """Build from configuration keyed by kind name (e.g. ``{"NO_FACE": 10}``)."""
        return cls(weights={SignalKind(name): int(weight) for name, weight in raw.items()})

    def weight_for(self, kind: SignalKind) -> int:
        return self.weights.get(kind, 0)


class ReportRow(BaseModel):
    """One event in the tabular export."""

    timestamp: datetime
    kind: SignalKind
    details: str = Field(..., description="Canonical JSON of the signal payload")

    model_config = {"frozen": True}


class IntegrityReport(BaseModel):
    """Counts, score and chronological rows for one session."""

    session_id: str
    subject: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    event_count: int
    counts: dict[str, int] = Field(..., description="Occurrences per kind, in kind order")
    penalties: dict[str, int] = Field(..., description="Points deducted per kind")
    score: int = Field(..., ge=0)
    rows: list[ReportRow] = Field(default_factory=list)

    model_config = {"frozen": True}


def serialize_payload(payload: Mapping) -> str:
    """Stable JSON rendering: sorted keys, compact separators."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)


class ReportGenerator:
    """Stateless reducer from signals to an IntegrityReport."""

    def __init__(self, weights: PenaltyWeights | None = None) -> None:
        self._weights = weights or PenaltyWeights()

    @property
    def weights(self) -> PenaltyWeights:
        return self._weights

    # ── Public API ───────────────────────────────────────────────────────

    def generate(self, session: Session, signals: Sequence[Signal]) -> IntegrityReport:
        ordered = self.chronological(signals)
        counts = self.count_by_kind(ordered)
        penalties = {
            kind: self._weights.weight_for(SignalKind(kind)) * n
            for kind, n in counts.items()
            if self._weights.weight_for(SignalKind(kind))
        }
        return IntegrityReport(
            session_id=session.session_id,
            subject=session.subject,
            started_at=session.started_at,
            ended_at=session.ended_at,
            event_count=len(ordered),
            counts=counts,
            penalties=penalties,
            score=self.score(counts),
            rows=[
                ReportRow(
                    timestamp=sig.timestamp,
                    kind=sig.kind,
                    details=serialize_payload(sig.payload),
                )
                for sig in ordered
            ],
        )

    @staticmethod
    def chronological(signals: Sequence[Signal]) -> list[Signal]:
        """Ascending by timestamp, ties by append sequence."""
        return sorted(signals, key=lambda s: (s.timestamp, s.sequence))

    @staticmethod
    def count_by_kind(signals: Sequence[Signal]) -> dict[str, int]:
        """Occurrences per kind, keyed in SignalKind declaration order."""
        tally = Counter(sig.kind for sig in signals)
        return {kind.value: tally[kind] for kind in SignalKind if tally[kind]}

    def score(self, counts: Mapping[str, int]) -> int:
        deduction = sum(
            self._weights.weight_for(SignalKind(kind)) * n for kind, n in counts.items()
        )
        return max(0, MAX_SCORE - deduction)
