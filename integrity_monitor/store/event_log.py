"""Session-partitioned, append-only event log with async-safe access.

Design notes:
    - An asyncio.Lock guards all mutations so concurrent producers never
      corrupt a session's sequence.
    - Append is the only mutation of a session's events.  No update, no
      delete.  Duplicates are valid facts and are never rejected.
    - Ascending append order is the canonical storage order; descending
      queries are a reversed view, never a re-sort.
    - Timestamps within a session are non-decreasing in append order.  A
      caller-supplied timestamp earlier than the session's last signal is
      rejected unless the caller asks for clamping, in which case it is
      moved up to the last timestamp and kept as ``observedAt``.  An
      assigned "now" is always clamped.
    - Writes go to the storage backend first, memory second, so a
      StorageError leaves prior state untouched.  Blocking backends are
      called through a worker thread while the lock is held.
    - Session existence is checked at append time only.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable

from pydantic import ValidationError

from integrity_monitor.domain.enums import EventOrder
from integrity_monitor.domain.errors import SessionNotFoundError, SignalValidationError
from integrity_monitor.domain.session import Session
from integrity_monitor.domain.signal import Signal, SignalDraft
from integrity_monitor.foundation.clock import utc_now
from integrity_monitor.foundation.identifiers import new_signal_id
from integrity_monitor.store.storage import EventStorage, InMemoryStorage

logger = logging.getLogger(__name__)


class EventLog:
    """Durable record of every session and its ordered signals.

    Args:
        storage: Backend written through on every mutation.  Its contents
                 are loaded once at construction.
    """

    def __init__(self, storage: EventStorage | None = None) -> None:
        self._storage = storage or InMemoryStorage()
        self._lock = asyncio.Lock()
        self._sessions: dict[str, Session] = {}
        self._events: dict[str, list[Signal]] = {}

        sessions, events = self._storage.load()
        for session in sessions:
            self._sessions[session.session_id] = session
            self._events[session.session_id] = events.get(session.session_id, [])

    # ── Sessions ─────────────────────────────────────────────────────────

    async def create_session(self, subject: str, session_id: str | None = None) -> Session:
        """Register a new session.  The caller appends SESSION_START."""
        session = Session(subject=subject, session_id=session_id)
        async with self._lock:
            if session.session_id in self._sessions:
                raise SignalValidationError(f"Session {session.session_id} already exists")
            await self._write(self._storage.save_session, session)
            self._sessions[session.session_id] = session
            self._events[session.session_id] = []
        logger.info("Created session %s for %r", session.session_id, subject)
        return session

    async def get_session(self, session_id: str) -> Session | None:
        async with self._lock:
            return self._sessions.get(session_id)

    async def require_session(self, session_id: str) -> Session:
        async with self._lock:
            return self._require(session_id)

    async def list_sessions(self) -> list[Session]:
        """All sessions, most recently started first."""
        async with self._lock:
            return sorted(self._sessions.values(), key=lambda s: s.started_at, reverse=True)

    async def end_session(self, session_id: str, at: datetime | None = None) -> Session:
        async with self._lock:
            session = self._require(session_id)
            previous = session.ended_at
            session.end(at)
            await self._persist_session(session, ended_at=previous)
            return session

    async def attach_artifact(self, session_id: str, path: str | None) -> Session:
        async with self._lock:
            session = self._require(session_id)
            previous = session.artifact_path
            session.attach_artifact(path)
            await self._persist_session(session, artifact_path=previous)
            return session

    # ── Signals ──────────────────────────────────────────────────────────

    async def append(
        self,
        draft: SignalDraft | dict[str, Any],
        *,
        clamp_timestamp: bool = False,
    ) -> Signal:
        """Validate, stamp and durably append one signal.

        With ``clamp_timestamp`` an explicit timestamp earlier than the
        session's last signal is moved up to it instead of being rejected;
        the original time is kept in the payload as ``observedAt``.  The
        classifier's own signals are appended this way, since their tick
        may have been queued before another producer's append.

        Raises:
            SignalValidationError: Malformed draft or out-of-order timestamp.
            SessionNotFoundError: The session does not exist.
            StorageError: The backend failed; nothing was appended.
        """
        if not isinstance(draft, SignalDraft):
            try:
                draft = SignalDraft.model_validate(draft)
            except ValidationError as exc:
                raise SignalValidationError(str(exc)) from exc

        async with self._lock:
            self._require(draft.session_id)
            events = self._events[draft.session_id]
            timestamp = self._stamp(draft, events, clamp_timestamp)
            payload = dict(draft.payload)
            if draft.timestamp is not None and timestamp != draft.timestamp:
                payload["observedAt"] = draft.timestamp.isoformat()

            signal = Signal(
                signal_id=new_signal_id(),
                session_id=draft.session_id,
                sequence=len(events),
                kind=draft.kind,
                timestamp=timestamp,
                payload=payload,
            )
            await self._write(self._storage.append_signal, signal)
            events.append(signal)

        logger.debug(
            "Appended %s #%d to session %s",
            signal.kind.value,
            signal.sequence,
            signal.session_id,
        )
        return signal

    async def list_by_session(
        self,
        session_id: str,
        order: EventOrder = EventOrder.ASC,
    ) -> list[Signal]:
        """The session's full signal sequence; empty for unknown sessions."""
        async with self._lock:
            events = list(self._events.get(session_id, ()))
        if order is EventOrder.DESC:
            events.reverse()
        return events

    async def snapshot(self, session_id: str) -> tuple[Session, list[Signal]]:
        """Consistent (session, ascending signals) pair for report generation.

        Later appends are excluded; a snapshot is never torn.
        """
        async with self._lock:
            session = self._require(session_id)
            return Session.from_record(session.to_record()), list(self._events[session_id])

    async def event_count(self, session_id: str) -> int:
        async with self._lock:
            return len(self._events.get(session_id, ()))

    async def session_count(self) -> int:
        async with self._lock:
            return len(self._sessions)

    # ── Internals ────────────────────────────────────────────────────────

    def _require(self, session_id: str) -> Session:
        """Must be called while holding self._lock."""
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    @staticmethod
    def _stamp(draft: SignalDraft, events: list[Signal], clamp: bool) -> datetime:
        """Must be called while holding self._lock."""
        last = events[-1].timestamp if events else None
        if draft.timestamp is None:
            now = utc_now()
            return max(now, last) if last is not None else now
        if last is not None and draft.timestamp < last:
            if clamp:
                return last
            raise SignalValidationError(
                f"{draft.kind.value} timestamp {draft.timestamp.isoformat()} precedes "
                f"the session's last signal at {last.isoformat()}"
            )
        return draft.timestamp

    async def _write(self, operation: Callable[..., None], *args: Any) -> None:
        """Run one storage call.  Must be called while holding self._lock.

        Blocking backends run in a worker thread so file I/O never stalls
        the event loop; the lock still serialises them.
        """
        if getattr(self._storage, "blocking", False):
            await asyncio.to_thread(operation, *args)
        else:
            operation(*args)

    async def _persist_session(self, session: Session, **previous: Any) -> None:
        """Write *session* through; roll back the given fields on failure."""
        try:
            await self._write(self._storage.save_session, session)
        except Exception:
            for attr, value in previous.items():
                setattr(session, attr, value)
            raise
