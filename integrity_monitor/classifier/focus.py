"""Focus (gaze) tracker: a debounced streak state machine.

Deviation is the offset of the nose from the midpoint between the eyes,
normalised by frame width (horizontal) and height (vertical).  Only ticks
with exactly one face advance the machine; other ticks leave it untouched.

Transitions on each eligible tick:

    over threshold                         under threshold
    ──────────────                         ───────────────
    FOCUSED      → AWAY_PENDING (start)    AWAY_PENDING → FOCUSED (glance)
    AWAY_PENDING → LOST once the streak    LOST         → REGAINING (start timer)
                   exceeds the look-away   REGAINING    → FOCUSED once stable for
                   duration (FOCUS_LOST)                  the regain window
    REGAINING    → LOST (timer cancelled)                 (FOCUS_REGAINED)
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from integrity_monitor.classifier.config import ClassifierConfig, Emission
from integrity_monitor.domain.detection import (
    LEFT_EYE,
    NOSE,
    RIGHT_EYE,
    DetectionFrame,
    FaceObservation,
)
from integrity_monitor.domain.enums import GazeState, SignalKind
from integrity_monitor.domain.errors import DetectionFrameError
from integrity_monitor.foundation.clock import elapsed_ms


def gaze_deviation(
    face: FaceObservation,
    frame_width: float,
    frame_height: float,
) -> tuple[float, float]:
    """Return (dx, dy): nose offset from the eye midpoint, frame-normalised."""
    if not face.has_gaze_landmarks():
        raise DetectionFrameError("focus", "face is missing eye/nose landmarks")
    left, right, nose = face.keypoints[LEFT_EYE], face.keypoints[RIGHT_EYE], face.keypoints[NOSE]
    mid_x = (left.x + right.x) / 2
    mid_y = (left.y + right.y) / 2
    return (nose.x - mid_x) / frame_width, (nose.y - mid_y) / frame_height


class FocusTracker:
    """Emits FOCUS_LOST once per streak and FOCUS_REGAINED once per recovery."""

    name = "focus"

    def __init__(self, config: ClassifierConfig) -> None:
        self._config = config
        self.state = GazeState.FOCUSED
        self.streak_started_at: Optional[datetime] = None
        self.regain_started_at: Optional[datetime] = None

    @property
    def looking_away(self) -> bool:
        return self.state is not GazeState.FOCUSED

    def update(self, frame: DetectionFrame, now: datetime) -> list[Emission]:
        if frame.faces is None:
            raise DetectionFrameError(self.name, "face detector produced no output")
        if len(frame.faces) != 1:
            return []

        dx, dy = gaze_deviation(frame.faces[0], frame.frame_width, frame.frame_height)
        if self._is_over(dx, dy):
            return self._on_over_threshold(dx, dy, now)
        return self._on_under_threshold(dx, dy, now)

    # ── Internals ────────────────────────────────────────────────────────

    def _is_over(self, dx: float, dy: float) -> bool:
        cfg = self._config
        if abs(dx) > cfg.look_away_deviation_threshold:
            return True
        if cfg.look_away_vertical_threshold is not None:
            return abs(dy - cfg.vertical_baseline) > cfg.look_away_vertical_threshold
        return False

    def _payload(self, dx: float, dy: float) -> dict:
        payload = {"deviation": round(dx, 4)}
        if self._config.look_away_vertical_threshold is not None:
            payload["verticalDeviation"] = round(dy - self._config.vertical_baseline, 4)
        return payload

    def _on_over_threshold(self, dx: float, dy: float, now: datetime) -> list[Emission]:
        if self.state is GazeState.FOCUSED:
            self.state = GazeState.AWAY_PENDING
            self.streak_started_at = now
            return []

        if self.state is GazeState.AWAY_PENDING:
            streak_ms = elapsed_ms(now, self.streak_started_at or now)
            if streak_ms > self._config.look_away_duration_ms:
                self.state = GazeState.LOST
                payload = self._payload(dx, dy)
                payload["durationMs"] = streak_ms
                return [(SignalKind.FOCUS_LOST, payload)]
            return []

        if self.state is GazeState.REGAINING:
            # Looked away again before regain was confirmed
            self.state = GazeState.LOST
            self.regain_started_at = None
        return []

    def _on_under_threshold(self, dx: float, dy: float, now: datetime) -> list[Emission]:
        if self.state is GazeState.AWAY_PENDING:
            self._reset()
            return []

        if self.state is GazeState.LOST:
            self.state = GazeState.REGAINING
            self.regain_started_at = now
            return []

        if self.state is GazeState.REGAINING:
            regain_ms = elapsed_ms(now, self.regain_started_at or now)
            if regain_ms >= self._config.focus_regain_duration_ms:
                self._reset()
                return [(SignalKind.FOCUS_REGAINED, self._payload(dx, dy))]
        return []

    def _reset(self) -> None:
        self.state = GazeState.FOCUSED
        self.streak_started_at = None
        self.regain_started_at = None
