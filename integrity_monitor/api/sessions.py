"""REST endpoints for the session lifecycle.

    POST /api/sessions                    create + SESSION_START
    GET  /api/sessions                    all sessions, newest first
    GET  /api/sessions/{id}               summary, event count, monitor status
    POST /api/sessions/{id}/monitor       start the classifier actor
    POST /api/sessions/{id}/end           flush monitor, SESSION_END, end time
    POST /api/sessions/{id}/artifact      VIDEO_UPLOADED / VIDEO_UPLOAD_FAILED
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from integrity_monitor.services.sessions import SessionService
from integrity_monitor.store.event_log import EventLog


class CreateSessionRequest(BaseModel):
    subject: str = Field(..., min_length=1, max_length=256)
    monitor: bool = Field(default=False, description="Start the classifier immediately")


class EndSessionRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=256)


class ArtifactRequest(BaseModel):
    path: Optional[str] = Field(
        default=None,
        description="Reference to the stored recording; null records a failed upload",
    )


def create_sessions_router(service: SessionService, event_log: EventLog) -> APIRouter:
    """Factory that wires the session endpoints to the session service."""

    router = APIRouter(prefix="/api/sessions", tags=["sessions"])

    async def _describe(session_id: str) -> dict[str, Any]:
        session = await event_log.require_session(session_id)
        monitor = service.monitor(session_id)
        return {
            **session.summary(),
            "event_count": await event_log.event_count(session_id),
            "monitor": monitor.stats() if monitor else None,
        }

    @router.post("")
    async def create_session(body: CreateSessionRequest) -> dict[str, Any]:
        session = await service.start_session(body.subject)
        if body.monitor:
            await service.start_monitoring(session.session_id)
        return {"session_id": session.session_id, "started_at": session.started_at.isoformat()}

    @router.get("")
    async def list_sessions() -> dict[str, Any]:
        sessions = [s.summary() for s in await event_log.list_sessions()]
        return {"sessions": sessions, "count": len(sessions)}

    @router.get("/{session_id}")
    async def get_session(session_id: str) -> dict[str, Any]:
        return await _describe(session_id)

    @router.post("/{session_id}/monitor")
    async def start_monitoring(session_id: str) -> dict[str, Any]:
        monitor = await service.start_monitoring(session_id)
        return monitor.stats()

    @router.post("/{session_id}/end")
    async def end_session(session_id: str, body: EndSessionRequest | None = None) -> dict[str, Any]:
        await service.end_session(session_id, reason=body.reason if body else None)
        return await _describe(session_id)

    @router.post("/{session_id}/artifact")
    async def record_artifact(session_id: str, body: ArtifactRequest) -> dict[str, Any]:
        signal = await service.record_artifact(session_id, body.path)
        return {"ok": body.path is not None, "signal": signal.to_wire()}

    return router
