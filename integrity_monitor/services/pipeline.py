"""SignalPipeline: append to the durable log, then mirror to observers.

Per session, append and publish happen under one lock so observers see
signals in exactly the order the log assigned them.  Different sessions
never contend with each other.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from integrity_monitor.domain.signal import Signal, SignalDraft
from integrity_monitor.services.broadcaster import Broadcaster
from integrity_monitor.store.event_log import EventLog

logger = logging.getLogger(__name__)


class SignalPipeline:
    """The only path by which signals enter the system."""

    def __init__(self, event_log: EventLog, broadcaster: Broadcaster) -> None:
        self._log = event_log
        self._broadcaster = broadcaster
        self._session_locks: dict[str, asyncio.Lock] = {}

    async def record(
        self,
        draft: SignalDraft | dict[str, Any],
        *,
        clamp_timestamp: bool = False,
    ) -> Signal:
        """Append *draft* and broadcast the resulting Signal.

        Validation and storage errors propagate before anything is
        published; delivery problems never do.  ``clamp_timestamp`` is
        passed to EventLog.append.
        """
        session_id = draft.session_id if isinstance(draft, SignalDraft) else str(draft.get("session_id", ""))
        async with self._lock_for(session_id):
            signal = await self._log.append(draft, clamp_timestamp=clamp_timestamp)
            delivered = self._broadcaster.publish(signal)

        logger.debug(
            "Recorded %s for session %s (observers=%d)",
            signal.kind.value,
            signal.session_id,
            delivered,
        )
        return signal

    def forget(self, session_id: str) -> None:
        """Release the per-session lock once a session has ended."""
        lock = self._session_locks.get(session_id)
        if lock is not None and not lock.locked():
            del self._session_locks[session_id]

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._session_locks.get(session_id)
        if lock is None:
            lock = self._session_locks[session_id] = asyncio.Lock()
        return lock
