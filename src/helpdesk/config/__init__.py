"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from pathlib import Path
from typing import List


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="helpdesk-sla", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/helpdesk",
        description="Database connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Configuration ==========
    sla_config_path: Path = Field(
        default=Path("sla_config.yaml"),
        description="Path to SLA configuration YAML file"
    )
    sla_config_watch: bool = Field(
        default=True,
        description="Hot-reload the SLA configuration file on change"
    )
    reconciliation_interval: int = Field(
        default=300,
        description="Seconds between reconciliation sweeps (0 disables the scheduler)",
        ge=0
    )
    reconciliation_batch_size: int = Field(
        default=100,
        description="Maximum rows handled by each sweep per tick",
        ge=1
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


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class SLAStatus(str):
    """Coarse SLA status mirrored onto tickets."""
    ACTIVE = "active"
    PAUSED = "paused"
    BREACHED = "breached"
    CRITICAL = "critical"
    WARNING = "warning"
    COMPLETED = "completed"
    INACTIVE = "inactive"


# Statuses whose progress can still advance with time alone
RUNNING_SLA_STATUSES = [SLAStatus.ACTIVE, SLAStatus.WARNING, SLAStatus.CRITICAL]


class UserRole(str):
    """Roles of comment authors."""
    CUSTOMER = "customer"
    AGENT = "agent"
    ADMIN = "admin"
    SYSTEM = "system"


# Keywords used to classify free-form ticket status names
PENDING_STATUS_KEYWORDS = [
    "pending", "awaiting", "waiting", "on hold", "customer response",
    "client response", "suspended", "deferred"
]
IN_PROGRESS_STATUS_KEYWORDS = [
    "open", "in progress", "active", "assigned", "processing", "responded"
]
RESOLVED_STATUS_KEYWORDS = ["resolved", "closed"]
