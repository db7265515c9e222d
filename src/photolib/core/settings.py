# -*- coding: utf-8 -*-

from __future__ import annotations

import logging
import math
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3232
DEFAULT_SERVICE_URL = "http://127.0.0.1:8001"


class PipelineConfig(BaseModel):
    batch_size: int = Field(default=5, ge=1)
    batch_pause_sec: float = Field(default=2.0, ge=0.0, allow_inf_nan=False)
    embed_timeout_sec: float = Field(default=30.0, gt=0.0, allow_inf_nan=False)
    search_timeout_sec: float = Field(default=30.0, gt=0.0, allow_inf_nan=False)
    health_timeout_sec: float = Field(default=5.0, gt=0.0, allow_inf_nan=False)


class AppSettings(BaseModel):
    data_dir: Path = Field(default_factory=lambda: Path.cwd() / ".photolib")
    upload_dir: Optional[Path] = None
    db_path: Optional[Path] = None
    service_url: str = DEFAULT_SERVICE_URL
    admin_token: Optional[str] = None
    embed_missing_on_startup: bool = True
    max_upload_bytes: int = 50 * 1024 * 1024
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    debug: bool = False
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)

    @property
    def resolved_upload_dir(self) -> Path:
        return self.upload_dir or self.data_dir / "uploads"

    @property
    def resolved_db_path(self) -> Path:
        return self.db_path or self.data_dir / "photolib.sqlite"

    @property
    def log_dir(self) -> Path:
        return self.data_dir / "logs"


def _env_int(
    name: str,
    default: int,
    minimum: Optional[int] = None,
    maximum: Optional[int] = None,
) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Invalid %s=%s, using default %s", name, raw, default)
        return default
    if (minimum is not None and value < minimum) or (maximum is not None and value > maximum):
        logger.warning("Out of range %s=%s, using default %s", name, raw, default)
        return default
    return value


def _env_float(name: str, default: float, *, positive: bool = False) -> float:
    """Read a finite, non-negative float; ``positive`` also rejects zero."""
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Invalid %s=%s, using default %s", name, raw, default)
        return default
    if not math.isfinite(value) or value < 0 or (positive and value == 0):
        logger.warning("Out of range %s=%s, using default %s", name, raw, default)
        return default
    return value


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_path(name: str) -> Optional[Path]:
    raw = os.getenv(name)
    return Path(raw) if raw else None


def load_settings() -> AppSettings:
    """Build settings from ``PHOTOLIB_*`` environment variables."""
    defaults = PipelineConfig()
    pipeline = PipelineConfig(
        batch_size=_env_int("PHOTOLIB_BATCH_SIZE", defaults.batch_size, minimum=1),
        batch_pause_sec=_env_float("PHOTOLIB_BATCH_PAUSE_SEC", defaults.batch_pause_sec),
        embed_timeout_sec=_env_float(
            "PHOTOLIB_EMBED_TIMEOUT_SEC", defaults.embed_timeout_sec, positive=True
        ),
        search_timeout_sec=_env_float(
            "PHOTOLIB_SEARCH_TIMEOUT_SEC", defaults.search_timeout_sec, positive=True
        ),
        health_timeout_sec=_env_float(
            "PHOTOLIB_HEALTH_TIMEOUT_SEC", defaults.health_timeout_sec, positive=True
        ),
    )
    data_dir = _env_path("PHOTOLIB_DATA_DIR") or Path.cwd() / ".photolib"
    return AppSettings(
        data_dir=data_dir,
        upload_dir=_env_path("PHOTOLIB_UPLOAD_DIR"),
        db_path=_env_path("PHOTOLIB_DB_PATH"),
        service_url=os.getenv("PHOTOLIB_EMBED_SERVICE_URL", DEFAULT_SERVICE_URL),
        admin_token=os.getenv("PHOTOLIB_ADMIN_TOKEN") or None,
        embed_missing_on_startup=_env_bool("PHOTOLIB_EMBED_MISSING_ON_STARTUP", True),
        host=os.getenv("PHOTOLIB_HOST", DEFAULT_HOST),
        port=_env_int("PHOTOLIB_PORT", DEFAULT_PORT, minimum=1, maximum=65535),
        debug=_env_bool("PHOTOLIB_DEBUG", False),
        pipeline=pipeline,
    )
