"""WebSocket endpoint for detection frame ingestion.

Path: /ws/frames/{session_id}

The detection source pushes one JSON payload per sampling tick.  Payloads
already in DetectionFrame shape are validated directly; anything else goes
through the adapter registry.  Each accepted frame is queued on the
session's monitor and acknowledged.  Rejected frames are answered with an
error and the connection stays open.

The ack tells the source whether the next tick will evaluate objects, so
it can skip object inference in between.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from integrity_monitor.adapters.registry import (
    AdaptationError,
    AdapterRegistry,
    NoAdapterFoundError,
)
from integrity_monitor.domain.detection import DetectionFrame
from integrity_monitor.domain.errors import SessionClosedError, SessionNotFoundError
from integrity_monitor.services.sessions import SessionService

logger = logging.getLogger(__name__)


def create_frames_router(service: SessionService, registry: AdapterRegistry) -> APIRouter:
    """Factory that wires the frame endpoint to the session service + registry."""

    router = APIRouter()

    @router.websocket("/ws/frames/{session_id}")
    async def ingest_frames(websocket: WebSocket, session_id: str) -> None:
        await websocket.accept()
        try:
            monitor = await service.start_monitoring(session_id)
        except (SessionNotFoundError, SessionClosedError) as exc:
            await websocket.send_json({"status": "error", "reason": "session_unavailable", "detail": str(exc)})
            await websocket.close(code=1008)
            return
        logger.info("Detection source connected to session %s", session_id)

        try:
            while True:
                raw = await websocket.receive_json()

                # ── Validate at the boundary ─────────────────────────────
                try:
                    frame = DetectionFrame.model_validate(raw)
                except ValidationError:
                    try:
                        frame = registry.adapt(raw)
                    except NoAdapterFoundError as exc:
                        await websocket.send_json({
                            "status": "error",
                            "reason": "no_adapter",
                            "detail": str(exc),
                        })
                        continue
                    except AdaptationError as exc:
                        await websocket.send_json({
                            "status": "error",
                            "reason": "adaptation_failed",
                            "adapter": exc.adapter_name,
                            "detail": exc.reason,
                        })
                        continue

                # ── Queue on the session's monitor ───────────────────────
                try:
                    await service.submit_frame(session_id, frame)
                except SessionClosedError as exc:
                    await websocket.send_json({
                        "status": "error",
                        "reason": "session_closed",
                        "detail": str(exc),
                    })
                    await websocket.close(code=1000)
                    return

                # ── Acknowledge ──────────────────────────────────────────
                await websocket.send_json({
                    "status": "accepted",
                    "pending_ticks": monitor.pending_ticks,
                    "object_evaluation_due": monitor.object_evaluation_due(),
                })

        except WebSocketDisconnect:
            logger.info("Detection source disconnected from session %s", session_id)

    return router
