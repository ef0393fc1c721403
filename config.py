"""
config.py - Environment-driven service configuration.

All runtime knobs come from environment variables, optionally seeded from a
local `.env` file. Nothing in the delta engine itself reads configuration;
only the host layers (api.py, main.py, project_store.py) do.
"""

from __future__ import annotations

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from logging_config import get_logger, resolve_log_level

logger = get_logger(__name__)

try:
    load_dotenv()
except UnicodeDecodeError:
    # Fallback for legacy Windows-encoded .env files.
    load_dotenv(encoding="cp1252")

DEFAULT_MAX_MANIFEST_BYTES = 25 * 1024 * 1024

TRUTHY = {"1", "true", "yes", "on"}


class Settings(BaseModel):
    """Resolved service settings."""

    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)
    projects_file: Optional[str] = None
    log_level: int = 20
    log_json: bool = False
    max_manifest_bytes: int = Field(default=DEFAULT_MAX_MANIFEST_BYTES, gt=0)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    debug: bool = False

    @field_validator("projects_file", mode="before")
    @classmethod
    def _blank_projects_file(cls, value: object) -> Optional[str]:
        text = str(value or "").strip()
        return text or None

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: object) -> list[str]:
        if isinstance(value, list):
            return [str(origin).strip() for origin in value if str(origin).strip()]
        origins = [part.strip() for part in str(value or "").split(",") if part.strip()]
        return origins or ["*"]


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in TRUTHY


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(
            "config_int_warning | name=%s | value=%r | fallback=%s",
            name,
            raw,
            default,
        )
        return default


def get_settings() -> Settings:
    """Build settings from the current environment."""
    return Settings(
        host=os.getenv("HOST", "0.0.0.0").strip() or "0.0.0.0",
        port=_env_int("PORT", 8000),
        projects_file=os.getenv("PROJECTS_FILE"),
        log_level=resolve_log_level(os.getenv("LOG_LEVEL")),
        log_json=_env_flag("LOG_JSON"),
        max_manifest_bytes=_env_int("MAX_MANIFEST_BYTES", DEFAULT_MAX_MANIFEST_BYTES),
        cors_origins=os.getenv("CORS_ORIGINS", "*"),
        debug=_env_flag("DEBUG"),
    )
