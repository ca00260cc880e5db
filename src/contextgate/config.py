"""Configuration contract for the contextgate service.

This module provides Pydantic-validated configuration models for the
gatekeeper and its ambient concerns (logging level, output format).

Only two behavioral parameters are externally tunable: the default
policy and the rate-limit window/limit pair. Everything else the core
needs (audit capacity, capability timeout) is fixed and only overridable
through constructor arguments.

Direct os.environ/os.getenv usage is confined to load_config_from_env().
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .permissions.constants import DefaultPolicy

AUDIT_LOG_CAPACITY = 1000
CAPABILITY_TIMEOUT_SECONDS = 30.0


class LogLevel(str, Enum):
    """Standard log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class RateLimitConfig(BaseModel):
    """Sliding-window rate limit applied per ``(client_id, action)``.

    Environment variables:
        CONTEXTGATE_RATE_LIMIT_WINDOW_MS — window length in milliseconds
        CONTEXTGATE_RATE_LIMIT           — max requests inside one window
    """

    model_config = {"extra": "forbid"}

    window_ms: int = Field(
        default=60_000,
        gt=0,
        description="Sliding window length in milliseconds",
    )
    limit: int = Field(
        default=100,
        gt=0,
        description="Maximum requests per (client, action) inside the window",
    )

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000.0


class GatekeeperConfig(BaseModel):
    """Configuration for an :class:`~contextgate.gatekeeper.AccessGatekeeper`.

    RULE: env vars are read in load_config_from_env() only; everything
    else receives a GatekeeperConfig instance.
    """

    # Logging
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level for the service",
    )
    log_json: bool = Field(
        default=False,
        description="Use JSON log format (default: plain text)",
    )

    service_name: Optional[str] = Field(
        default=None,
        description="Service name used for the service logger",
    )

    # Access control
    default_policy: DefaultPolicy = Field(
        default=DefaultPolicy.ALLOW_LIST,
        description="Fallback policy applied when no permission is stored for a key",
    )
    rate_limit: RateLimitConfig = Field(
        default_factory=RateLimitConfig,
        description="Per-client, per-action sliding window limit",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str | LogLevel) -> LogLevel:
        """Convert string to LogLevel enum."""
        if isinstance(v, LogLevel):
            return v
        if isinstance(v, str):
            try:
                return LogLevel[v.upper()]
            except KeyError:
                raise ValueError(f"Invalid log level: {v}. Must be one of {[e.value for e in LogLevel]}")
        raise ValueError(f"Log level must be string or LogLevel enum, got {type(v)}")

    @field_validator("default_policy", mode="before")
    @classmethod
    def validate_default_policy(cls, v: str | DefaultPolicy) -> DefaultPolicy:
        """Accept ``allow-list``, ``ALLOW_LIST`` or ``AllowList``."""
        return DefaultPolicy.parse(v)

    model_config = {
        "extra": "forbid",
    }


def load_config_from_env() -> GatekeeperConfig:
    """Load gatekeeper configuration from environment variables.

    This is the ONLY place where os.getenv is allowed.

    Environment variables:
    - LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - LOG_JSON: Use JSON log format (true/false, default: false)
    - SERVICE_NAME: Service name for the service logger
    - CONTEXTGATE_DEFAULT_POLICY: share-everything | ask-permission | allow-list
    - CONTEXTGATE_RATE_LIMIT_WINDOW_MS: Rate-limit window in milliseconds
    - CONTEXTGATE_RATE_LIMIT: Requests allowed per window

    Returns:
        GatekeeperConfig instance with values from environment or defaults.
    """
    import os

    rate_limit = RateLimitConfig(
        window_ms=int(os.getenv("CONTEXTGATE_RATE_LIMIT_WINDOW_MS", "60000")),
        limit=int(os.getenv("CONTEXTGATE_RATE_LIMIT", "100")),
    )

    return GatekeeperConfig(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_json=os.getenv("LOG_JSON", "false").lower() in ("true", "1", "yes"),
        service_name=os.getenv("SERVICE_NAME"),
        default_policy=os.getenv("CONTEXTGATE_DEFAULT_POLICY", DefaultPolicy.ALLOW_LIST.value),
        rate_limit=rate_limit,
    )


__all__ = [
    "AUDIT_LOG_CAPACITY",
    "CAPABILITY_TIMEOUT_SECONDS",
    "GatekeeperConfig",
    "LogLevel",
    "RateLimitConfig",
    "load_config_from_env",
]
