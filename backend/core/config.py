from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_CORS_ORIGINS = (
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
)


def _upload_root() -> Path:
    env_root = os.getenv("UPLOAD_DIR")
    if env_root:
        return Path(env_root).expanduser().resolve()
    return Path(__file__).resolve().parents[2] / "uploads"


@dataclass(frozen=True)
class Settings:
    upload_dir: Path
    cors_origins: tuple[str, ...]
    max_upload_files: int
    tick_seconds: float
    stage_pause_seconds: float
    time_scale: float
    stage_timeout_seconds: float
    step_timeout_seconds: float
    step_retries: int
    max_jobs: int
    retention_seconds: float
    log_level: str

    @staticmethod
    def from_env() -> "Settings":
        origins_env = os.getenv("API_CORS_ORIGINS", "")
        origins = tuple(origin.strip() for origin in origins_env.split(",") if origin.strip())
        return Settings(
            upload_dir=_upload_root(),
            cors_origins=origins or DEFAULT_CORS_ORIGINS,
            max_upload_files=int(os.getenv("MAX_UPLOAD_FILES", "8")),
            tick_seconds=float(os.getenv("PIPELINE_TICK_SECONDS", "0.1")),
            stage_pause_seconds=float(os.getenv("PIPELINE_STAGE_PAUSE_SECONDS", "0.2")),
            time_scale=float(os.getenv("PIPELINE_TIME_SCALE", "1.0")),
            stage_timeout_seconds=float(os.getenv("PIPELINE_STAGE_TIMEOUT_SECONDS", "30")),
            step_timeout_seconds=float(os.getenv("PIPELINE_STEP_TIMEOUT_SECONDS", "30")),
            step_retries=int(os.getenv("PIPELINE_STEP_RETRIES", "0")),
            max_jobs=int(os.getenv("PIPELINE_MAX_JOBS", "1000")),
            retention_seconds=float(os.getenv("PIPELINE_RETENTION_SECONDS", "3600")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
