"""WebSocket endpoint: streams a session's live signals to observers.

Path: /ws/sessions/{session_id}/events

Observers receive every signal published after they connect, as JSON.
There is no replay: clients fetch history from
GET /api/events/session/{id} first.  Text frames "ping" get "pong".
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from integrity_monitor.services.broadcaster import Broadcaster, Subscription
from integrity_monitor.store.event_log import EventLog

logger = logging.getLogger(__name__)


async def _forward(websocket: WebSocket, subscription: Subscription) -> None:
    async for signal in subscription:
        await websocket.send_json({"type": "signal", "signal": signal.to_wire()})


def create_observer_router(broadcaster: Broadcaster, event_log: EventLog) -> APIRouter:
    """Factory that creates the observer WebSocket endpoint."""

    router = APIRouter()

    @router.websocket("/ws/sessions/{session_id}/events")
    async def observe_session(websocket: WebSocket, session_id: str) -> None:
        await websocket.accept()
        if await event_log.get_session(session_id) is None:
            await websocket.send_json({"status": "error", "reason": "unknown_session"})
            await websocket.close(code=1008)
            return

        subscription = broadcaster.subscribe(session_id)
        forwarder = asyncio.create_task(_forward(websocket, subscription))
        try:
            await websocket.send_json({"type": "subscribed", "session_id": session_id})
            while True:
                # Keep the connection alive; signals are pushed server-side
                data = await websocket.receive_text()
                if data.strip().lower() == "ping":
                    await websocket.send_text("pong")
        except WebSocketDisconnect:
            logger.info("Observer disconnected from session %s", session_id)
        finally:
            subscription.close()
            forwarder.cancel()
            try:
                await forwarder
            except asyncio.CancelledError:
                pass
            except Exception as exc:
                logger.debug("Observer forwarder for %s ended: %s", session_id, exc)

    return router
