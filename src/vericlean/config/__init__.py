"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from pathlib import Path
from typing import List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="vericlean-watchdog", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root logging level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/vericlean",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)
    store_backend: str = Field(
        default="sql",
        description="Document store backend: sql or memory"
    )

    # ========== SLA Configuration ==========
    sla_config_path: Path = Field(
        default=Path("sla_config.yaml"),
        description="Path to per-building SLA policy YAML file"
    )
    default_max_gap_hours: float = Field(
        default=4.0,
        description="Global maximum allowed gap between cleanings (hours)",
        gt=0
    )

    # ========== Watchdog ==========
    watchdog_enabled: bool = Field(
        default=True,
        description="Start the scheduled compliance watchdog on startup"
    )
    watchdog_interval_minutes: int = Field(
        default=15,
        description="Minutes between watchdog runs",
        ge=1
    )
    membership_test_limit: int = Field(
        default=10,
        description="Max values in a single 'in' filter of the backing store",
        ge=1
    )
    batch_write_limit: int = Field(
        default=500,
        description="Max operations in a single write batch",
        ge=1
    )
    overdue_query_page_size: int = Field(
        default=0,
        description="Page size for the overdue query (0 = single request)",
        ge=0
    )
    dedup_max_concurrency: int = Field(
        default=4,
        description="Max concurrent open-alert existence queries",
        ge=1
    )

    # ========== Analytics Mirror ==========
    analytics_enabled: bool = Field(
        default=True,
        description="Mirror ingested cleaning logs into the analytics table"
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    # ========== Grafana OTLP Metrics ==========
    grafana_host: Optional[str] = Field(
        default=None,
        description="Grafana OTLP gateway URL (e.g., https://otlp-gateway-prod-ap-south-1.grafana.net)"
    )
    grafana_api_key: Optional[str] = Field(
        default=None,
        description="Grafana API key for OTLP authentication"
    )
    grafana_instance_id: Optional[str] = Field(
        default=None,
        description="Grafana instance ID for OTLP authentication"
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

    @field_validator("store_backend")
    @classmethod
    def validate_store_backend(cls, v: str) -> str:
        allowed = {"sql", "memory"}
        if v not in allowed:
            raise ValueError(f"store_backend must be one of {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class Collections(str):
    """Backing store collection names."""
    CHECKPOINTS = "checkpoints"
    ALERTS = "alerts"


class CheckpointStatus(str):
    """Checkpoint service statuses."""
    UNKNOWN = "UNKNOWN"
    CLEAN = "CLEAN"
    OVERDUE = "OVERDUE"


class AlertType(str):
    """Alert types raised by the platform."""
    SLA_MISSING_CLEAN = "SLA_MISSING_CLEAN"


class AlertSeverity(str):
    """Alert severity levels."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class AlertStatus(str):
    """Alert lifecycle statuses. Only OPEN is written by the watchdog."""
    OPEN = "OPEN"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    CLOSED = "CLOSED"


class WatchdogStage(str):
    """Watchdog run states."""
    START = "START"
    THRESHOLD = "THRESHOLD"
    QUERY = "QUERY"
    DEDUP = "DEDUP"
    WRITE_ALERTS = "WRITE_ALERTS"
    UPDATE_STATUS = "UPDATE_STATUS"
    DONE = "DONE"
    FAILED = "FAILED"


class WatchdogOutcome(str):
    """Terminal branches of a watchdog run."""
    NO_OVERDUE = "no_overdue"
    ALL_DUPLICATE = "all_duplicate"
    ALERTS_CREATED = "alerts_created"
    STATUS_RECONCILED = "status_reconciled"
    FAILED = "failed"


# Breach alerts are raised at this level unless a policy overrides it
DEFAULT_BREACH_SEVERITY = AlertSeverity.MEDIUM


# ========== Lists for validation ==========

VALID_ALERT_SEVERITIES = [
    AlertSeverity.LOW, AlertSeverity.MEDIUM,
    AlertSeverity.HIGH, AlertSeverity.CRITICAL
]
