"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="otto", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/otto",
        description="Database connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)
    readiness_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for the readiness database ping",
        gt=0
    )

    # ========== Webhook ==========
    webhook_secret: Optional[str] = Field(
        default=None,
        description="Shared secret used to verify X-Hub-Signature-256"
    )
    dispatch_drain_timeout_seconds: float = Field(
        default=10.0,
        description="How long shutdown waits for in-flight module handlers",
        ge=0
    )

    # ========== GitHub ==========
    github_api_url: str = Field(
        default="https://api.github.com",
        description="GitHub REST API base URL"
    )
    github_app_id: Optional[int] = Field(default=None, description="GitHub App ID")
    github_installation_id: Optional[int] = Field(
        default=None,
        description="GitHub App installation ID"
    )
    github_private_key: Optional[str] = Field(
        default=None,
        description="GitHub App private key (PEM)"
    )
    github_private_key_path: Optional[Path] = Field(
        default=None,
        description="Path to the GitHub App private key (PEM)"
    )
    github_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for GitHub API calls",
        ge=0.1,
        le=60
    )

    # ========== On-call ==========
    oncall_config_path: Path = Field(
        default=Path("oncall_config.yaml"),
        description="Path to on-call module YAML configuration"
    )
    escalation_check_interval_seconds: int = Field(
        default=300,
        description="Seconds between escalation sweeps (0 disables the sweeper)",
        ge=0
    )
    escalation_threshold_hours: float = Field(
        default=24.0,
        description="Age after which a pending escalation is escalated",
        gt=0
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="OTTO_",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production", "test"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    def load_github_private_key(self) -> Optional[str]:
        """Return the App private key, preferring the inline value over the file."""
        if self.github_private_key:
            return self.github_private_key
        if self.github_private_key_path and self.github_private_key_path.exists():
            return self.github_private_key_path.read_text()
        return None


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class EscalationStatus(str, Enum):
    """Escalation lifecycle states."""
    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    ESCALATED = "escalated"
    RESOLVED = "resolved"


class EventType(str, Enum):
    """GitHub webhook event types the gateway knows how to parse."""
    PING = "ping"
    ISSUES = "issues"
    ISSUE_COMMENT = "issue_comment"
    PULL_REQUEST = "pull_request"
    PULL_REQUEST_REVIEW_COMMENT = "pull_request_review_comment"


DEFAULT_ROTATION_SUFFIX = "Default Rotation"
SIGNATURE_HEADER = "X-Hub-Signature-256"
EVENT_HEADER = "X-GitHub-Event"
DELIVERY_HEADER = "X-GitHub-Delivery"
