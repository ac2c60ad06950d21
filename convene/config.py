"""
Configuration models for args/convene.yaml.

Every section has working defaults, so a missing or broken config file
never stops the engine; it logs a warning and falls back.

Usage:
    from convene.config import get_config

    config = get_config()
    config.events.default_duration_minutes   # 60
    config.calendar.request_timeout_seconds  # 15.0
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field

from convene import CONFIG_PATH

logger = logging.getLogger(__name__)


class StoreConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    busy_timeout_seconds: float = Field(default=30.0, gt=0)
    wal_mode: bool = Field(default=True)


class EventsConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    default_duration_minutes: int = Field(default=60, ge=1)
    max_time_slots: int = Field(default=50, ge=1)
    max_participants: int = Field(default=200, ge=1)


class ReminderConfig(BaseModel):
    method: Literal["email", "popup"] = "popup"
    minutes: int = Field(default=30, ge=0)


class CalendarConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    provider: Literal["google"] = "google"
    calendar_id: str = Field(default="primary")
    timezone: str = Field(default="UTC")
    request_timeout_seconds: float = Field(default=15.0, gt=0)
    max_results: int = Field(default=250, ge=1)
    send_updates: Literal["all", "externalOnly", "none"] = "all"
    reminders: list[ReminderConfig] = Field(
        default_factory=lambda: [
            ReminderConfig(method="email", minutes=24 * 60),
            ReminderConfig(method="popup", minutes=30),
        ]
    )


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    level: str = Field(default="INFO")


class ConveneConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    store: StoreConfig = Field(default_factory=StoreConfig)
    events: EventsConfig = Field(default_factory=EventsConfig)
    calendar: CalendarConfig = Field(default_factory=CalendarConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(path: Optional[Path] = None) -> ConveneConfig:
    yaml_path = path or CONFIG_PATH

    try:
        if yaml_path.exists():
            with open(yaml_path) as f:
                raw = yaml.safe_load(f) or {}
        else:
            raw = {}

        return ConveneConfig.model_validate(raw)
    except Exception as e:
        logger.warning(f"Config validation failed for {yaml_path}: {e}, using defaults")
        return ConveneConfig()


@lru_cache
def get_config() -> ConveneConfig:
    """Cached config instance (singleton)."""
    return load_config()


__all__ = [
    "CalendarConfig",
    "ConveneConfig",
    "EventsConfig",
    "LoggingConfig",
    "ReminderConfig",
    "StoreConfig",
    "get_config",
    "load_config",
]
