"""The access gatekeeper and its request pipeline parts."""

from .core import AccessGatekeeper, Middleware
from .events import EventBus, Events
from .models import AccessAction, AccessRequest, AccessResponse, Grant, MiddlewareResult
from .plugins import (
    Plugin,
    analytics_plugin,
    identity_redaction_plugin,
    schema_validation_plugin,
)
from .ratelimit import SlidingWindowRateLimiter

__all__ = [
    "AccessAction",
    "AccessGatekeeper",
    "AccessRequest",
    "AccessResponse",
    "EventBus",
    "Events",
    "Grant",
    "Middleware",
    "MiddlewareResult",
    "Plugin",
    "SlidingWindowRateLimiter",
    "analytics_plugin",
    "identity_redaction_plugin",
    "schema_validation_plugin",
]
