"""SessionService: session lifecycle and the per-session monitor arena.

Per-session classifier state lives in an explicit map from session id to
SessionMonitor: created when monitoring starts, removed (after a flush)
when the session ends.  Nothing about a session's classification is kept
in closures.

Reactions:
    Ending a session automatically on particular signal kinds (e.g. a
    second face) is a policy, not a classification.  It is configured here
    via ``terminate_on`` and applied after a signal has been recorded.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable

from integrity_monitor.classifier.config import ClassifierConfig
from integrity_monitor.classifier.signal_classifier import SignalClassifier
from integrity_monitor.domain.detection import DetectionFrame
from integrity_monitor.domain.enums import SignalKind
from integrity_monitor.domain.errors import SessionClosedError
from integrity_monitor.domain.session import Session
from integrity_monitor.domain.signal import Signal, SignalDraft
from integrity_monitor.foundation.clock import utc_now
from integrity_monitor.services.monitor import SessionMonitor
from integrity_monitor.services.pipeline import SignalPipeline
from integrity_monitor.store.event_log import EventLog

logger = logging.getLogger(__name__)


class SessionService:
    """Creates, monitors and ends sessions.

    Args:
        event_log: Durable session and signal store.
        pipeline: Append + fan-out path for every signal.
        classifier_config: Thresholds handed to each new classifier.
        terminate_on: Signal kinds that end their session automatically.
        tick_queue_size: Pending detection frames allowed per session.
    """

    def __init__(
        self,
        event_log: EventLog,
        pipeline: SignalPipeline,
        classifier_config: ClassifierConfig | None = None,
        terminate_on: Iterable[SignalKind] = (),
        tick_queue_size: int = 64,
    ) -> None:
        self._log = event_log
        self._pipeline = pipeline
        self._classifier_config = classifier_config or ClassifierConfig()
        self._terminate_on = frozenset(terminate_on)
        self._tick_queue_size = tick_queue_size
        self._monitors: dict[str, SessionMonitor] = {}
        self._lifecycle_lock = asyncio.Lock()
        self._reactions: set[asyncio.Task] = set()

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def start_session(self, subject: str) -> Session:
        """Create a session and record its SESSION_START."""
        session = await self._log.create_session(subject)
        await self._pipeline.record(
            SignalDraft(
                session_id=session.session_id,
                kind=SignalKind.SESSION_START,
                timestamp=session.started_at,
                payload={"subject": subject},
            )
        )
        return session

    async def start_monitoring(self, session_id: str) -> SessionMonitor:
        """Attach a classifier actor to a session.  Idempotent while running."""
        async with self._lifecycle_lock:
            session = await self._log.require_session(session_id)
            if session.is_ended:
                raise SessionClosedError(session_id)
            monitor = self._monitors.get(session_id)
            if monitor is None:
                classifier = SignalClassifier(
                    session_id=session_id,
                    started_at=utc_now(),
                    config=self._classifier_config,
                )
                monitor = SessionMonitor(
                    classifier,
                    self._pipeline,
                    queue_size=self._tick_queue_size,
                    on_signal=self._react,
                )
                self._monitors[session_id] = monitor
                monitor.start()
            return monitor

    async def end_session(self, session_id: str, reason: str | None = None) -> Session:
        """Flush the monitor (if any), record SESSION_END, set the end time.

        Ending an already ended session is a no-op.
        """
        async with self._lifecycle_lock:
            session = await self._log.require_session(session_id)
            if session.is_ended:
                return session

            monitor = self._monitors.pop(session_id, None)
            if monitor is not None:
                await monitor.stop(reason)
            else:
                payload: dict[str, Any] = {"reason": reason} if reason else {}
                await self._pipeline.record(
                    SignalDraft(session_id=session_id, kind=SignalKind.SESSION_END, payload=payload)
                )

            session = await self._log.end_session(session_id)
            self._pipeline.forget(session_id)
        logger.info("Session %s ended%s", session_id, f" ({reason})" if reason else "")
        return session

    async def shutdown(self) -> None:
        """End every actively monitored session (application shutdown)."""
        for session_id in list(self._monitors):
            await self.end_session(session_id, reason="shutdown")
        for task in list(self._reactions):
            await task

    # ── Input ────────────────────────────────────────────────────────────

    async def submit_frame(self, session_id: str, frame: DetectionFrame) -> SessionMonitor:
        """Queue one detection frame for the session's classifier."""
        monitor = self._monitors.get(session_id)
        if monitor is None:
            raise SessionClosedError(session_id)
        await monitor.submit(frame)
        return monitor

    async def record_event(self, draft: SignalDraft | dict[str, Any]) -> Signal:
        """Record a signal from an external producer (e.g. a browser classifier)."""
        signal = await self._pipeline.record(draft)
        await self._react(signal)
        return signal

    async def record_artifact(self, session_id: str, path: str | None) -> Signal:
        """Store the recorded-artifact reference and log the upload outcome."""
        await self._log.attach_artifact(session_id, path)
        if path:
            draft = SignalDraft(
                session_id=session_id, kind=SignalKind.VIDEO_UPLOADED, payload={"path": path}
            )
        else:
            draft = SignalDraft(session_id=session_id, kind=SignalKind.VIDEO_UPLOAD_FAILED)
        return await self._pipeline.record(draft)

    # ── Queries ──────────────────────────────────────────────────────────

    def monitor(self, session_id: str) -> SessionMonitor | None:
        return self._monitors.get(session_id)

    @property
    def active_monitors(self) -> int:
        return len(self._monitors)

    def monitor_stats(self) -> list[dict[str, Any]]:
        return [m.stats() for m in self._monitors.values()]

    # ── Reactions ────────────────────────────────────────────────────────

    async def _react(self, signal: Signal) -> None:
        if signal.kind not in self._terminate_on:
            return
        logger.warning(
            "Session %s: %s triggers automatic termination",
            signal.session_id,
            signal.kind.value,
        )
        # Runs outside the monitor task, which end_session waits on
        task = asyncio.create_task(
            self.end_session(signal.session_id, reason=f"terminated on {signal.kind.value}")
        )
        self._reactions.add(task)
        task.add_done_callback(self._reactions.discard)
