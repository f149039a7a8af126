"""integrity-monitor: Session integrity classification, event log and reports.

This is the application entry point.  It wires the EventLog, Broadcaster,
SignalPipeline, SessionService, AdapterRegistry, ReportService and the
HTTP / WebSocket endpoints together.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI

from integrity_monitor.adapters.face_mesh import FaceMeshAdapter
from integrity_monitor.adapters.mediapipe import MediaPipeAdapter
from integrity_monitor.adapters.registry import AdapterRegistry
from integrity_monitor.api.errors import install_error_handlers
from integrity_monitor.api.events import create_events_router
from integrity_monitor.api.reports import create_reports_router
from integrity_monitor.api.sessions import create_sessions_router
from integrity_monitor.api.ws_frames import create_frames_router
from integrity_monitor.api.ws_observe import create_observer_router
from integrity_monitor.classifier.config import ClassifierConfig
from integrity_monitor.config import Settings, settings
from integrity_monitor.report.generator import PenaltyWeights, ReportGenerator
from integrity_monitor.report.narrator import ReportNarrator, default_llm_factory
from integrity_monitor.report.service import ReportService
from integrity_monitor.services.broadcaster import Broadcaster
from integrity_monitor.services.pipeline import SignalPipeline
from integrity_monitor.services.sessions import SessionService
from integrity_monitor.store.event_log import EventLog
from integrity_monitor.store.storage import EventStorage, InMemoryStorage, JsonlStorage

# ── Logging ──────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)


def classifier_config_from(cfg: Settings) -> ClassifierConfig:
    return ClassifierConfig(
        no_face_threshold_ms=cfg.no_face_threshold_ms,
        look_away_deviation_threshold=cfg.look_away_deviation_threshold,
        look_away_vertical_threshold=cfg.look_away_vertical_threshold,
        vertical_baseline=cfg.look_away_vertical_baseline,
        look_away_duration_ms=cfg.look_away_duration_ms,
        focus_regain_duration_ms=cfg.focus_regain_duration_ms,
        object_detect_interval_ms=cfg.object_detect_interval_ms,
        unauthorized_labels=tuple(cfg.unauthorized_labels),
        unauthorized_min_score=cfg.unauthorized_min_score,
    )


def storage_from(cfg: Settings) -> EventStorage:
    if cfg.storage_backend == "jsonl":
        return JsonlStorage(cfg.storage_dir)
    if cfg.storage_backend != "memory":
        raise ValueError(f"unknown storage backend: {cfg.storage_backend!r}")
    return InMemoryStorage()


def build_app(cfg: Settings = settings) -> FastAPI:
    """Assemble the service from configuration."""

    # ── State ────────────────────────────────────────────────────────────
    event_log = EventLog(storage_from(cfg))
    broadcaster = Broadcaster(queue_size=cfg.subscriber_queue_size)
    pipeline = SignalPipeline(event_log, broadcaster)
    service = SessionService(
        event_log,
        pipeline,
        classifier_config=classifier_config_from(cfg),
        terminate_on=cfg.terminate_on,
        tick_queue_size=cfg.tick_queue_size,
    )

    # ── Adapter Registry ─────────────────────────────────────────────────
    registry = AdapterRegistry()
    registry.register(FaceMeshAdapter())
    registry.register(MediaPipeAdapter())

    # ── Reports ──────────────────────────────────────────────────────────
    reports = ReportService(
        event_log,
        ReportGenerator(PenaltyWeights.from_mapping(cfg.penalty_weights)),
        output_dir=cfg.report_dir,
    )
    narrator = ReportNarrator(default_llm_factory if cfg.narration_enabled else None)

    # ── App ──────────────────────────────────────────────────────────────

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # Flush every running classifier so each session gets its SESSION_END
        await service.shutdown()

    app = FastAPI(
        title=cfg.app_name,
        description="Session integrity monitoring: classification, event log, live fan-out, reports",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.event_log = event_log
    app.state.broadcaster = broadcaster
    app.state.sessions = service
    app.state.reports = reports

    install_error_handlers(app)

    # ── Routes ───────────────────────────────────────────────────────────

    app.include_router(create_sessions_router(service, event_log))
    app.include_router(create_events_router(service, event_log))
    app.include_router(create_reports_router(reports, narrator))
    app.include_router(create_frames_router(service, registry))
    app.include_router(create_observer_router(broadcaster, event_log))

    # ── Health ───────────────────────────────────────────────────────────

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "sessions": await event_log.session_count(),
            "active_monitors": service.active_monitors,
            "observers": broadcaster.total_subscribers,
            "monitors": service.monitor_stats(),
            "adapters": registry.stats,
            "total_adapted": registry.total_accepted,
            "total_rejected": registry.total_rejected,
        }

    logger.info("%s ready (storage=%s)", cfg.app_name, cfg.storage_backend)
    return app


app = build_app()
