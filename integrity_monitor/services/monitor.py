"""SessionMonitor: a single-threaded actor per monitored session.

Detection ticks are queued and consumed by one background task, so a
session's classifier is never entered concurrently and each tick's
tracker updates finish before the next tick starts.  The only suspension
points are waiting for the next tick and recording the tick's signals.

Stopping drains the queue (in-flight ticks complete, none are aborted),
then appends the classifier's terminal SESSION_END and drops the
classifier.  Sessions run fully independently of each other.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from integrity_monitor.classifier.signal_classifier import SignalClassifier
from integrity_monitor.domain.detection import DetectionFrame
from integrity_monitor.domain.enums import MonitorStatus
from integrity_monitor.domain.errors import (
    MonitorError,
    SessionClosedError,
    SignalValidationError,
    StorageError,
)
from integrity_monitor.domain.signal import Signal
from integrity_monitor.foundation.clock import utc_now
from integrity_monitor.services.pipeline import SignalPipeline

logger = logging.getLogger(__name__)

SignalCallback = Callable[[Signal], Awaitable[None]]

_STOP: Any = object()


class SessionMonitor:
    """Owns one session's classifier and its ordered tick queue."""

    def __init__(
        self,
        classifier: SignalClassifier,
        pipeline: SignalPipeline,
        queue_size: int = 64,
        on_signal: SignalCallback | None = None,
    ) -> None:
        self.session_id = classifier.session_id
        self._classifier: Optional[SignalClassifier] = classifier
        self._pipeline = pipeline
        self._on_signal = on_signal
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=queue_size)
        self._task: asyncio.Task | None = None
        self._last_tick_at: datetime | None = None
        self.status = MonitorStatus.IDLE
        self.signals_recorded = 0
        self.signals_failed = 0
        self._final_stats: dict[str, Any] = {}

    # ── Lifecycle ────────────────────────────────────────────────────────

    def start(self) -> None:
        if self.status is not MonitorStatus.IDLE:
            return
        self.status = MonitorStatus.RUNNING
        self._task = asyncio.create_task(self._run(), name=f"monitor-{self.session_id}")
        logger.info("Monitoring started for session %s", self.session_id)

    async def stop(self, reason: str | None = None) -> Signal | None:
        """Drain pending ticks, append SESSION_END, release the classifier.

        Returns the terminal signal, or None if it could not be stored or
        the monitor was already stopped.
        """
        if self.status in (MonitorStatus.STOPPING, MonitorStatus.STOPPED):
            return None
        self.status = MonitorStatus.STOPPING
        if self._task is not None:
            await self._queue.put(_STOP)
            await self._task

        classifier = self._classifier
        if classifier is None:
            raise MonitorError(f"session {self.session_id} has no classifier")
        self._final_stats = classifier.snapshot()
        final = classifier.finalize(self._next_now(None))
        if reason:
            final = final.model_copy(update={"payload": {**final.payload, "reason": reason}})

        signal: Signal | None = None
        try:
            signal = await self._pipeline.record(final, clamp_timestamp=True)
        except MonitorError as exc:
            logger.error("Session %s: could not record SESSION_END: %s", self.session_id, exc)
        finally:
            self._classifier = None
            self.status = MonitorStatus.STOPPED
        logger.info(
            "Monitoring stopped for session %s after %d tick(s)",
            self.session_id,
            self._final_stats.get("ticks_processed", 0),
        )
        return signal

    # ── Input ────────────────────────────────────────────────────────────

    async def submit(self, frame: DetectionFrame, now: datetime | None = None) -> None:
        """Queue one detection frame.  Waits if the tick queue is full."""
        if self.status is not MonitorStatus.RUNNING:
            raise SessionClosedError(self.session_id)
        await self._queue.put((frame, self._next_now(now)))

    def object_evaluation_due(self, now: datetime | None = None) -> bool:
        if self._classifier is None:
            return False
        return self._classifier.object_evaluation_due(now or utc_now())

    # ── Observability ────────────────────────────────────────────────────

    @property
    def pending_ticks(self) -> int:
        return self._queue.qsize()

    def stats(self) -> dict[str, Any]:
        classifier_state = self._classifier.snapshot() if self._classifier else self._final_stats
        return {
            "session_id": self.session_id,
            "status": self.status.value,
            "pending_ticks": self.pending_ticks,
            "signals_recorded": self.signals_recorded,
            "signals_failed": self.signals_failed,
            "classifier": classifier_state,
        }

    # ── Internals ────────────────────────────────────────────────────────

    def _next_now(self, now: datetime | None) -> datetime:
        # Tick times never run backwards, even with several submitters
        now = now or utc_now()
        if self._last_tick_at is not None and now < self._last_tick_at:
            now = self._last_tick_at
        self._last_tick_at = now
        return now

    async def _run(self) -> None:
        while True:
            item = await self._queue.get()
            if item is _STOP:
                return
            frame, now = item
            try:
                await self._process(frame, now)
            except Exception as exc:
                # A broken tick must never end the session's monitoring
                logger.error(
                    "Session %s: tick failed: %s", self.session_id, exc, exc_info=True
                )

    async def _process(self, frame: DetectionFrame, now: datetime) -> None:
        classifier = self._classifier
        if classifier is None:
            raise MonitorError(f"session {self.session_id} has no classifier")
        drafts = classifier.classify(frame, now)
        for draft in drafts:
            try:
                signal = await self._pipeline.record(draft, clamp_timestamp=True)
            except (StorageError, SignalValidationError) as exc:
                # Fatal to this event only; classifier state stays as is
                self.signals_failed += 1
                logger.error(
                    "Session %s: failed to store %s: %s",
                    self.session_id,
                    draft.kind.value,
                    exc,
                )
                continue
            self.signals_recorded += 1
            if self._on_signal is not None:
                await self._on_signal(signal)
