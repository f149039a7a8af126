"""HTTP mapping for the domain error taxonomy."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from integrity_monitor.domain.errors import (
    SessionNotFoundError,
    SignalValidationError,
    StorageError,
)

logger = logging.getLogger(__name__)


def install_error_handlers(app: FastAPI) -> None:
    """NotFound → 404, other validation → 422, storage → 503."""

    @app.exception_handler(SessionNotFoundError)
    async def session_not_found(request: Request, exc: SessionNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(SignalValidationError)
    async def signal_invalid(request: Request, exc: SignalValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(StorageError)
    async def storage_failed(request: Request, exc: StorageError) -> JSONResponse:
        logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": "storage unavailable"})
