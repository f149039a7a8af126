"""Immutable thresholds consumed by the signal classifier.

Built once from application settings (or directly in tests).  The
classifier never reads global configuration itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from integrity_monitor.domain.enums import SignalKind

# Signals a tracker emits: (kind, payload).  The classifier stamps them.
Emission = tuple[SignalKind, dict[str, Any]]

DEFAULT_UNAUTHORIZED_LABELS: tuple[str, ...] = (
    "cell phone",
    "phone",
    "book",
    "notebook",
    "laptop",
    "tablet",
)


@dataclass(frozen=True)
class ClassifierConfig:
    """Debounce thresholds and detection filters.

    Loss of focus needs a longer streak than regain does, so momentary
    head motion is not punished.
    """

    no_face_threshold_ms: int = 10_000
    look_away_deviation_threshold: float = 0.06
    # Vertical deviation is ignored unless a threshold is configured.
    # ``vertical_baseline`` is the neutral nose-below-eyes offset.
    look_away_vertical_threshold: float | None = None
    vertical_baseline: float = 0.0
    look_away_duration_ms: int = 5_000
    focus_regain_duration_ms: int = 1_500
    object_detect_interval_ms: int = 1_000
    unauthorized_labels: tuple[str, ...] = field(default=DEFAULT_UNAUTHORIZED_LABELS)
    unauthorized_min_score: float = 0.6

    def __post_init__(self) -> None:
        if self.look_away_deviation_threshold <= 0:
            raise ValueError("look_away_deviation_threshold must be positive")
        # Matching is case-insensitive substring matching
        object.__setattr__(
            self,
            "unauthorized_labels",
            tuple(label.strip().lower() for label in self.unauthorized_labels if label.strip()),
        )


class Tracker(Protocol):
    """One debounced sub-state-machine of the classifier."""

    name: str

    def update(self, frame: Any, now: Any) -> list[Emission]:
        """Advance on one tick; raise DetectionFrameError if the frame is unusable."""
        ...
