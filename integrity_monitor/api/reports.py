"""REST endpoints for integrity reports.

    POST /api/reports/{id}                (re)generate and store artifacts
    GET  /api/reports/{id}                counts, score and narrative, no write
    GET  /api/reports/{id}/summary        reviewer summary (LLM if enabled)
    GET  /api/reports/{id}/files/{fmt}    download a stored artifact (csv|txt|pdf)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Literal

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse

from integrity_monitor.report.narrator import ReportNarrator
from integrity_monitor.report.render import render_text
from integrity_monitor.report.service import ReportService

logger = logging.getLogger(__name__)

_MEDIA_TYPES = {
    "csv": "text/csv",
    "txt": "text/plain",
    "pdf": "application/pdf",
}


def create_reports_router(
    reports: ReportService,
    narrator: ReportNarrator | None = None,
) -> APIRouter:
    """Factory that wires the report endpoints to the report service."""

    router = APIRouter(prefix="/api/reports", tags=["reports"])
    narrator = narrator or ReportNarrator()

    @router.post("/{session_id}")
    async def generate_report(session_id: str) -> dict[str, Any]:
        artifacts = await reports.generate(session_id)
        return {"ok": True, **artifacts.to_dict()}

    @router.get("/{session_id}")
    async def preview_report(session_id: str) -> dict[str, Any]:
        report = await reports.build(session_id)
        return {
            **report.model_dump(mode="json", exclude={"rows"}),
            "narrative": render_text(report),
        }

    @router.get("/{session_id}/summary")
    async def summarize_report(session_id: str) -> dict[str, Any]:
        report = await reports.build(session_id)
        # LLM calls block; keep them off the event loop
        text = await asyncio.to_thread(narrator.narrate, report)
        return {"session_id": session_id, "llm": narrator.enabled, "summary": text}

    @router.get("/{session_id}/files/{fmt}")
    async def download_artifact(session_id: str, fmt: Literal["csv", "txt", "pdf"]) -> FileResponse:
        path = reports.artifact_path(session_id, fmt)
        if not path.exists():
            raise HTTPException(
                status_code=404,
                detail=f"No {fmt} report for session {session_id}; generate it first",
            )
        return FileResponse(path, media_type=_MEDIA_TYPES[fmt], filename=path.name)

    return router
