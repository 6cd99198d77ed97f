"""
Centralized configuration with environment variable overrides.

Every value can be set through a ``TRIP_``-prefixed environment variable or a
``.env`` file, e.g. ``TRIP_STORE=sql`` or ``TRIP_LOG_LEVEL=DEBUG``.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TRIP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # =========================================================================
    # APPLICATION
    # =========================================================================
    app_name: str = Field(default="Trip Scheduler")
    log_level: str = Field(default="INFO")

    # =========================================================================
    # STORAGE
    # =========================================================================
    store: Literal["memory", "sql"] = Field(default="memory")
    database_url: str = Field(
        default="sqlite:///./trips.db",
        description="SQLAlchemy URL, only used when store is 'sql'",
    )
    database_echo: bool = Field(default=False)

    # =========================================================================
    # SCHEDULING ASSISTANCE
    # =========================================================================
    suggestion_search_days: int = Field(
        default=7, ge=1, description="Days searched on each side of a rejected window"
    )
    next_slot_horizon_days: int = Field(
        default=30, ge=1, description="How far ahead next-available-slot looks"
    )
    default_max_suggestions: int = Field(default=5, ge=1)

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {value!r}")
        return level


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.info("Configuration loaded for '%s' (store=%s)", settings.app_name, settings.store)
