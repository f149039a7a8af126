"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings

from integrity_monitor.domain.enums import SignalKind


class Settings(BaseSettings):
    app_name: str = "integrity-monitor"
    debug: bool = False
    log_level: str = "INFO"

    # Signal classifier thresholds
    no_face_threshold_ms: int = 10_000
    look_away_deviation_threshold: float = 0.06
    look_away_vertical_threshold: float | None = None
    look_away_vertical_baseline: float = 0.0
    look_away_duration_ms: int = 5_000
    focus_regain_duration_ms: int = 1_500
    object_detect_interval_ms: int = 1_000
    unauthorized_labels: list[str] = ["cell phone", "phone", "book", "notebook", "laptop", "tablet"]
    unauthorized_min_score: float = 0.6

    # Report scoring
    penalty_weights: dict[str, int] = {
        "FOCUS_LOST": 5,
        "LOOK_AWAY": 5,
        "NO_FACE": 10,
        "MULTIPLE_FACES": 10,
        "UNAUTHORIZED_ITEM": 15,
    }

    # Reactions: signal kinds that end their session automatically
    terminate_on: list[SignalKind] = []

    # Live delivery and per-session ticking
    subscriber_queue_size: int = 256
    tick_queue_size: int = 64

    # Storage
    storage_backend: str = "memory"  # "memory" | "jsonl"
    storage_dir: str = "data"
    report_dir: str = "reports"

    # Optional Gemini narration of report summaries
    narration_enabled: bool = False
    gemini_model: str = "gemini-2.0-flash"
    gemini_temperature: float = 0.2
    gemini_max_output_tokens: int = 512

    model_config = {"env_prefix": "INTEGRITY_"}


settings = Settings()
