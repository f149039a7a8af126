"""Unauthorized-item tracker, rate-limited independently of the tick rate."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from integrity_monitor.classifier.config import ClassifierConfig, Emission
from integrity_monitor.domain.detection import DetectionFrame, ObjectObservation
from integrity_monitor.domain.enums import SignalKind
from integrity_monitor.domain.errors import DetectionFrameError
from integrity_monitor.foundation.clock import elapsed_ms


class UnauthorizedItemTracker:
    """Emits one UNAUTHORIZED_ITEM per matching object per evaluation.

    Evaluations happen at most once per ``object_detect_interval_ms``.
    There is no deduplication across evaluations: an item that stays in
    view is reported again on every eligible interval.
    """

    name = "unauthorized_item"

    def __init__(self, config: ClassifierConfig) -> None:
        self._config = config
        self.last_evaluated_at: Optional[datetime] = None

    def is_due(self, now: datetime) -> bool:
        if self.last_evaluated_at is None:
            return True
        return elapsed_ms(now, self.last_evaluated_at) >= self._config.object_detect_interval_ms

    def matches(self, obj: ObjectObservation) -> bool:
        label = obj.label.lower()
        return (
            obj.score > self._config.unauthorized_min_score
            and any(needle in label for needle in self._config.unauthorized_labels)
        )

    def update(self, frame: DetectionFrame, now: datetime) -> list[Emission]:
        if not self.is_due(now):
            return []
        if frame.objects is None:
            # An unusable frame does not consume the interval
            raise DetectionFrameError(self.name, "object detector produced no output")

        self.last_evaluated_at = now
        return [
            (
                SignalKind.UNAUTHORIZED_ITEM,
                {"label": obj.label, "score": round(obj.score, 4), "bbox": list(obj.bbox)},
            )
            for obj in frame.objects
            if self.matches(obj)
        ]
