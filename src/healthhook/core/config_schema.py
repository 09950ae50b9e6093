"""Pydantic models for config validation.

Opt-in schema validation for ``Config.config_data``.  Call
``Config.validated()`` to obtain a typed, validated ``HealthhookConfig``
instance.  Existing dict-based access continues to work unchanged.
Env-var overrides arrive as strings; pydantic coerces them.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class PathsConfig(BaseModel):
    """File-system paths used by the engine."""

    data_dir: Path
    store_file: Path | None = None
    log_dir: Path | None = None

    @field_validator("data_dir", "store_file", "log_dir", mode="before")
    @classmethod
    def _expand_user(cls, v: Any) -> Any:
        if isinstance(v, str):
            return Path(v).expanduser()
        if isinstance(v, Path):
            return v.expanduser()
        return v

    @model_validator(mode="after")
    def _default_store_file(self) -> PathsConfig:
        if self.store_file is None:
            self.store_file = self.data_dir / "preferences.json"
        return self


class DeliveryConfig(BaseModel):
    """Webhook delivery tuning."""

    timeout_seconds: float = Field(default=10.0, gt=0)
    max_attempts: int = Field(default=3, ge=1)
    initial_backoff_ms: int = Field(default=1000, ge=0)
    log_capacity: int = Field(default=100, ge=1)


class SchedulerConfig(BaseModel):
    """Trigger backend settings."""

    timezone: str = ""
    alarm_policy: Literal["precise", "best_effort"] = "precise"
    misfire_grace_seconds: int = Field(default=900, ge=1)
    interval_jitter_seconds: int = Field(default=60, ge=0)


class SourceConfig(BaseModel):
    """Which health data source to load, and its options."""

    model_config = ConfigDict(extra="allow")

    name: str = "apple_health_export"
    options: dict[str, Any] = {}


class LoggingConfig(BaseModel):
    level: str = "WARNING"
    file: str = ""
    scheduler_level: str = "WARNING"

    @field_validator("level", "scheduler_level")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.upper()


class HealthhookConfig(BaseModel):
    """Root configuration model.

    Uses ``extra="allow"`` so consumers can bolt on custom sections
    without touching this schema.
    """

    model_config = ConfigDict(extra="allow")

    paths: PathsConfig = PathsConfig(data_dir=Path("~/.healthhook-data"))
    delivery: DeliveryConfig = DeliveryConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    source: SourceConfig = SourceConfig()
    logging: LoggingConfig = LoggingConfig()
