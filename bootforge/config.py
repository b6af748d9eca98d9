"""Environment configuration: BOOTFORGE_* variables and an optional .env file.

These settings override values from bootforge.toml and are in turn
overridden by explicit CLI flags.

Examples
--------
Override via environment::

    export BOOTFORGE_CACHE_DIR=/var/cache/bootforge
    export BOOTFORGE_LOG_LEVEL=DEBUG
    export BOOTFORGE_PROXY=http://proxy.internal:3128

The standard ``HTTP_PROXY``/``HTTPS_PROXY``/``NO_PROXY`` variables are still
honoured by the HTTP client when ``BOOTFORGE_PROXY`` is unset.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class BootforgeSettings(BaseSettings):
    """Environment-driven overrides for a bootstrap run."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="BOOTFORGE_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    cache_dir: Path | None = None
    log_level: str = "WARNING"
    proxy: str | None = None
    http_timeout_seconds: float = 30.0

    @property
    def log_level_number(self) -> int:
        """Numeric logging level; unknown names fall back to WARNING."""
        level = logging.getLevelName(self.log_level.upper())
        return level if isinstance(level, int) else logging.WARNING
