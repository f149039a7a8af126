"""Face presence and face multiplicity trackers."""

from __future__ import annotations

from datetime import datetime

from integrity_monitor.classifier.config import Emission
from integrity_monitor.domain.detection import DetectionFrame
from integrity_monitor.domain.enums import FacePresence, SignalKind
from integrity_monitor.domain.errors import DetectionFrameError
from integrity_monitor.foundation.clock import elapsed_ms


class FacePresenceTracker:
    """Emits NO_FACE once per threshold window of continuous absence.

    After firing, the "last seen" baseline moves to now, so a long absence
    produces one NO_FACE per elapsed window rather than one per tick.
    """

    name = "face_presence"

    def __init__(self, threshold_ms: int, started_at: datetime) -> None:
        self._threshold_ms = threshold_ms
        self.last_seen_at: datetime = started_at
        self.state = FacePresence.PRESENT

    def update(self, frame: DetectionFrame, now: datetime) -> list[Emission]:
        if frame.faces is None:
            raise DetectionFrameError(self.name, "face detector produced no output")

        if frame.face_count > 0:
            self.state = FacePresence.PRESENT
            self.last_seen_at = now
            return []

        self.state = FacePresence.ABSENT
        absent_ms = elapsed_ms(now, self.last_seen_at)
        if absent_ms > self._threshold_ms:
            self.last_seen_at = now
            return [(SignalKind.NO_FACE, {"durationMs": absent_ms})]
        return []


class MultipleFacesCheck:
    """Emits MULTIPLE_FACES on every tick with more than one face.

    Not debounced: N consecutive multi-face ticks produce N signals.
    """

    name = "multiple_faces"

    def update(self, frame: DetectionFrame, now: datetime) -> list[Emission]:
        if frame.faces is None:
            raise DetectionFrameError(self.name, "face detector produced no output")
        if frame.face_count > 1:
            return [(SignalKind.MULTIPLE_FACES, {"count": frame.face_count})]
        return []
