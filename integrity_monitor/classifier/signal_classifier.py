"""SignalClassifier: turns a noisy detection stream into sparse Signals.

Design principles:
    1. One instance per monitored session; it owns all of that session's
       mutable tracker state.
    2. Not safe for concurrent use.  Callers feed ticks strictly serially.
    3. No I/O.  ``classify`` returns drafts; appending and broadcasting
       belong to the pipeline.
    4. The clock is injected.  Every tick carries its own ``now``.
    5. A frame one tracker cannot interpret is skipped for that tracker
       only; the other trackers still advance on the same tick.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime
from typing import Any

from integrity_monitor.classifier.config import ClassifierConfig, Tracker
from integrity_monitor.classifier.focus import FocusTracker
from integrity_monitor.classifier.objects import UnauthorizedItemTracker
from integrity_monitor.classifier.presence import FacePresenceTracker, MultipleFacesCheck
from integrity_monitor.domain.detection import DetectionFrame
from integrity_monitor.domain.enums import SignalKind
from integrity_monitor.domain.errors import DetectionFrameError
from integrity_monitor.domain.signal import SignalDraft

logger = logging.getLogger(__name__)


class SignalClassifier:
    """Per-session composition of the presence, multiplicity, focus and item trackers."""

    def __init__(
        self,
        session_id: str,
        started_at: datetime,
        config: ClassifierConfig | None = None,
    ) -> None:
        self.session_id = session_id
        self._config = config or ClassifierConfig()
        self.presence = FacePresenceTracker(self._config.no_face_threshold_ms, started_at)
        self.multiplicity = MultipleFacesCheck()
        self.focus = FocusTracker(self._config)
        self.items = UnauthorizedItemTracker(self._config)
        # Order matters: signals from one tick are emitted in tracker order
        self._trackers: tuple[Tracker, ...] = (
            self.presence,
            self.multiplicity,
            self.focus,
            self.items,
        )
        self.ticks_processed: int = 0
        self.skipped: Counter[str] = Counter()

    # ── Public API ───────────────────────────────────────────────────────

    def classify(self, frame: DetectionFrame, now: datetime) -> list[SignalDraft]:
        """Advance every tracker by one tick and return the signals it produced."""
        drafts: list[SignalDraft] = []
        for tracker in self._trackers:
            try:
                emissions = tracker.update(frame, now)
            except DetectionFrameError as exc:
                self._skip(tracker.name, exc.reason)
                continue
            except (ValueError, TypeError, ArithmeticError) as exc:
                self._skip(tracker.name, f"malformed detection: {exc}")
                continue

            for kind, payload in emissions:
                drafts.append(
                    SignalDraft(
                        session_id=self.session_id,
                        kind=kind,
                        timestamp=now,
                        payload=payload,
                    )
                )

        self.ticks_processed += 1
        if drafts:
            logger.debug(
                "Session %s tick %d → %s",
                self.session_id,
                self.ticks_processed,
                [d.kind.value for d in drafts],
            )
        return drafts

    def object_evaluation_due(self, now: datetime) -> bool:
        """Whether the next tick will evaluate objects (lets sources skip inference)."""
        return self.items.is_due(now)

    def finalize(self, now: datetime) -> SignalDraft:
        """Produce the terminal SESSION_END signal for this classifier."""
        return SignalDraft(
            session_id=self.session_id,
            kind=SignalKind.SESSION_END,
            timestamp=now,
            payload={
                "ticks": self.ticks_processed,
                "skippedFrames": sum(self.skipped.values()),
            },
        )

    def snapshot(self) -> dict[str, Any]:
        """Read-only view of tracker state for diagnostics."""
        return {
            "session_id": self.session_id,
            "ticks_processed": self.ticks_processed,
            "face_presence": self.presence.state.value,
            "last_face_seen_at": self.presence.last_seen_at.isoformat(),
            "gaze_state": self.focus.state.value,
            "looking_away": self.focus.looking_away,
            "last_object_evaluation_at": (
                self.items.last_evaluated_at.isoformat() if self.items.last_evaluated_at else None
            ),
            "skipped": dict(self.skipped),
        }

    # ── Internals ────────────────────────────────────────────────────────

    def _skip(self, tracker_name: str, reason: str) -> None:
        self.skipped[tracker_name] += 1
        logger.warning(
            "Session %s: %s skipped tick %d (%s)",
            self.session_id,
            tracker_name,
            self.ticks_processed + 1,
            reason,
        )
