# src/upload_queue/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No cloud credentials required at import time (boto3 resolves its own).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "UPQ"

UPLOADER_LOCAL = "local"
UPLOADER_S3 = "s3"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    console_enabled: bool

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    queue_db_path: Path

    # ---- Queue tuning ----
    ttl_seconds: float
    retry_delay_seconds: float
    drain_delay_seconds: float
    ping_interval_seconds: float

    # ---- Transport ----
    uploader: str
    local_upload_dir: Path
    s3_bucket: str
    s3_region: str
    s3_prefix: str

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "upload-queue").strip() or "upload-queue"
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/upload-queue"))
        queue_db_path = _env_path(_k("QUEUE_DB_PATH"), data_dir / "uploads.sqlite3")

        ttl_seconds = _env_float(_k("TTL_SECONDS"), 600.0)
        if ttl_seconds <= 0:
            ttl_seconds = 600.0
        retry_delay_seconds = max(0.0, _env_float(_k("RETRY_DELAY_SECONDS"), 60.0))
        drain_delay_seconds = max(0.0, _env_float(_k("DRAIN_DELAY_SECONDS"), 0.001))
        ping_interval_seconds = max(0.5, _env_float(_k("PING_INTERVAL_SECONDS"), 30.0))

        s3_bucket = _env(_k("S3_BUCKET")).strip()
        s3_region = _env(_k("S3_REGION")).strip()
        s3_prefix = _env(_k("S3_PREFIX")).strip()

        # Default to S3 only when a bucket is configured.
        default_uploader = UPLOADER_S3 if s3_bucket else UPLOADER_LOCAL
        uploader = _env(_k("UPLOADER"), default_uploader).strip().lower() or default_uploader
        if uploader not in (UPLOADER_LOCAL, UPLOADER_S3):
            uploader = default_uploader

        local_upload_dir = _env_path(_k("LOCAL_UPLOAD_DIR"), data_dir / "uploaded")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            data_dir=data_dir,
            queue_db_path=queue_db_path,
            ttl_seconds=ttl_seconds,
            retry_delay_seconds=retry_delay_seconds,
            drain_delay_seconds=drain_delay_seconds,
            ping_interval_seconds=ping_interval_seconds,
            uploader=uploader,
            local_upload_dir=local_upload_dir,
            s3_bucket=s3_bucket,
            s3_region=s3_region,
            s3_prefix=s3_prefix,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    """Load settings once (reads .env on first call, never overriding real env vars)."""
    global _SETTINGS
    if _SETTINGS is None:
        load_dotenv(override=False)
        _SETTINGS = Settings.from_env()
    return _SETTINGS
