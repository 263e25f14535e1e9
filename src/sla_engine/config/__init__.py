"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="sla-engine", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/sla",
        description="Database connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Sweep ==========
    sla_config_path: Path = Field(
        default=Path("sla_config.yaml"),
        description="Path to the sweep configuration YAML file"
    )
    sla_scheduler_enabled: bool = Field(
        default=True,
        description="Start the background sweep and daily report jobs"
    )
    sla_sweep_interval_seconds: int = Field(
        default=300,
        description="Seconds between SLA sweeps",
        ge=10
    )
    sla_sweep_timeout_seconds: float = Field(
        default=240.0,
        description="Per-run deadline for one sweep; unfinished kinds are skipped",
        gt=0
    )
    sla_sweep_max_concurrency: int = Field(
        default=5,
        description="Request kinds processed concurrently within one sweep",
        ge=1
    )
    sla_daily_report_hour: int = Field(default=0, description="UTC hour of the daily report", ge=0, le=23)
    sla_daily_report_minute: int = Field(default=0, description="UTC minute of the daily report", ge=0, le=59)
    sla_report_recipients: List[str] = Field(
        default_factory=list,
        description="Daily report recipients as 'user_id:email' entries"
    )

    # ========== Slack Integration ==========
    slack_webhook_url: Optional[str] = Field(
        default=None,
        description="Slack webhook URL for notifications"
    )
    slack_channel: str = Field(
        default="#sla-alerts",
        description="Slack channel for SLA notifications"
    )
    slack_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for Slack API calls",
        ge=0.1,
        le=30
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("sla_report_recipients")
    @classmethod
    def validate_recipients(cls, v: List[str]) -> List[str]:
        """Each recipient must be written as user_id:email."""
        for entry in v:
            user_id, _, email = entry.partition(":")
            if not user_id or "@" not in email:
                raise ValueError(f"invalid report recipient '{entry}', expected 'user_id:email'")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class RequestType(str, Enum):
    """Kinds of service request tracked for SLA purposes."""
    CONSULTATION = "consultation"
    LEGAL_OPINION = "legal_opinion"
    SERVICE = "service"
    LITIGATION = "litigation"
    CALL = "call"


class Priority(str, Enum):
    """Request priority levels, lowest first."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class SLAStatus(str, Enum):
    """SLA health states, least severe first."""
    ON_TRACK = "on_track"
    AT_RISK = "at_risk"
    BREACHED = "breached"


class DeadlineDimension(str, Enum):
    """Deadline clocks that can be breached."""
    RESPONSE = "response"
    RESOLUTION = "resolution"
