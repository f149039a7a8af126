"""REST endpoints for the event log.

    POST /api/events                       append + broadcast one signal
    GET  /api/events/session/{id}          ordered history (?order=asc|desc)

Observers that join mid-session use the GET to backfill history; the
live WebSocket stream never replays.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from integrity_monitor.domain.enums import EventOrder
from integrity_monitor.domain.signal import SignalDraft
from integrity_monitor.services.sessions import SessionService
from integrity_monitor.store.event_log import EventLog


def create_events_router(service: SessionService, event_log: EventLog) -> APIRouter:
    """Factory that wires the event endpoints to the log and service."""

    router = APIRouter(prefix="/api/events", tags=["events"])

    @router.post("")
    async def append_event(draft: SignalDraft) -> dict[str, Any]:
        signal = await service.record_event(draft)
        return {"ok": True, "signal": signal.to_wire()}

    @router.get("/session/{session_id}")
    async def list_events(session_id: str, order: EventOrder = EventOrder.ASC) -> dict[str, Any]:
        events = await event_log.list_by_session(session_id, order)
        return {
            "session_id": session_id,
            "order": order.value,
            "events": [e.to_wire() for e in events],
        }

    return router
