"""Unified exception hierarchy for contextgate.

All errors inherit from ContextGateError. This module provides:
- Base exception hierarchy with stable error codes
- The access-denial taxonomy raised inside the gatekeeper pipeline
- ErrorRegistry for mapping codes back to classes in transport adapters

Denials never cross the gatekeeper boundary as exceptions: the pipeline
raises an AccessDeniedError subclass between steps and
``AccessGatekeeper.access_context`` converts it into an
``AccessResponse(success=False)``. Administrative operations raise the
other subclasses directly.

Usage:
    from contextgate.exceptions import (
        ContextGateError,
        InvalidPathError,
        ClientNotFoundError,
    )
"""

from __future__ import annotations

from typing import Any, Callable, TypeVar, cast

__all__ = [
    # Base hierarchy
    "ContextGateError",
    "ConfigurationError",
    "InvalidPathError",
    "ClientNotFoundError",
    "ClientStateError",
    "PluginError",
    # Denial taxonomy
    "AccessDeniedError",
    "ClientNotRegistered",
    "ClientSuspendedOrRevoked",
    "MiddlewareDenied",
    "GrantExpired",
    "GrantInsufficient",
    "DefaultPolicyDenied",
    "RateLimited",
    "InvalidRequest",
    "InvalidWritePayload",
    "UnknownCapability",
    "CapabilityExecutionFailed",
    "InternalError",
    # Registry
    "ErrorRegistry",
    "error_registry",
    "register_error",
]


# ---- Exception Hierarchy ----------------------------------------------------


class ContextGateError(Exception):
    """Base exception for contextgate.

    Attributes:
        code: Stable error code string for protocol mapping (e.g. "INVALID_PATH").
        message: Human-readable error description.
        details: Additional context as keyword arguments.
    """

    code: str = "INTERNAL_ERROR"
    message: str = "An internal error occurred"

    def __init__(self, message: str | None = None, code: str | None = None, **kwargs: Any) -> None:
        self.message = message or self.message
        self.code = code or self.code
        self.details = kwargs
        super().__init__(self.message)


class ConfigurationError(ContextGateError):
    """Invalid or missing configuration."""

    code: str = "CONFIGURATION_ERROR"


class InvalidPathError(ContextGateError):
    """Malformed dot-path passed to an administrative operation."""

    code: str = "INVALID_PATH"
    message: str = "Invalid context path"


class ClientNotFoundError(ContextGateError):
    """Administrative operation referenced an unknown client id."""

    code: str = "CLIENT_NOT_FOUND"
    message: str = "Client not found"


class ClientStateError(ContextGateError):
    """Illegal client status transition (e.g. reactivating a revoked client)."""

    code: str = "CLIENT_STATE_ERROR"


class PluginError(ContextGateError):
    """Plugin registration conflict."""

    code: str = "PLUGIN_ERROR"


# ---- Denial Taxonomy --------------------------------------------------------
# The message of each denial is the reason reported to the caller.


class AccessDeniedError(ContextGateError):
    """Base for every reason an access request can be denied."""

    code: str = "ACCESS_DENIED"
    message: str = "access denied"

    @property
    def reason(self) -> str:
        return self.message


class ClientNotRegistered(AccessDeniedError):
    code: str = "CLIENT_NOT_REGISTERED"
    message: str = "client not registered"


class ClientSuspendedOrRevoked(AccessDeniedError):
    code: str = "CLIENT_INACTIVE"


class MiddlewareDenied(AccessDeniedError):
    code: str = "MIDDLEWARE_DENIED"
    message: str = "middleware denied access"


class GrantExpired(AccessDeniedError):
    code: str = "GRANT_EXPIRED"
    message: str = "grant expired"


class GrantInsufficient(AccessDeniedError):
    code: str = "GRANT_INSUFFICIENT"
    message: str = "grant does not allow requested access"


class DefaultPolicyDenied(AccessDeniedError):
    code: str = "DEFAULT_POLICY_DENIED"
    message: str = "no grant found, default policy denies access"


class RateLimited(AccessDeniedError):
    code: str = "RATE_LIMITED"
    message: str = "rate limit exceeded"


class InvalidRequest(AccessDeniedError):
    code: str = "INVALID_REQUEST"
    message: str = "invalid request"


class InvalidWritePayload(AccessDeniedError):
    code: str = "INVALID_WRITE_PAYLOAD"
    message: str = "invalid data schema"


class UnknownCapability(AccessDeniedError):
    code: str = "UNKNOWN_CAPABILITY"


class CapabilityExecutionFailed(AccessDeniedError):
    code: str = "CAPABILITY_EXECUTION_FAILED"


class InternalError(AccessDeniedError):
    code: str = "INTERNAL_ERROR"
    message: str = "internal error"


# ---- Error Registry for Protocol Mapping ------------------------------------

_E = TypeVar("_E", bound=type[ContextGateError])


class ErrorRegistry:
    """Registry for mapping internal errors to external protocol codes."""

    def __init__(self) -> None:
        self._errors: dict[str, type[ContextGateError]] = {}

    def register(self, code: str, error_cls: type[ContextGateError]) -> None:
        self._errors[code] = error_cls

    def get(self, code: str) -> type[ContextGateError] | None:
        return self._errors.get(code)

    def all(self) -> dict[str, type[ContextGateError]]:
        return dict(self._errors)


error_registry = ErrorRegistry()


def register_error(code: str) -> Callable[[_E], _E]:
    """Decorator to register a custom error type.

    Usage:
        @register_error("MY_CUSTOM_ERROR")
        class MyCustomError(ContextGateError):
            code = "MY_CUSTOM_ERROR"
    """

    def decorator(cls: _E) -> _E:
        error_registry.register(code, cls)
        return cls

    return cast(Callable[[_E], _E], decorator)


for _cls in (
    ContextGateError,
    ConfigurationError,
    InvalidPathError,
    ClientNotFoundError,
    ClientStateError,
    PluginError,
    AccessDeniedError,
    ClientNotRegistered,
    ClientSuspendedOrRevoked,
    MiddlewareDenied,
    GrantExpired,
    GrantInsufficient,
    DefaultPolicyDenied,
    RateLimited,
    InvalidRequest,
    InvalidWritePayload,
    UnknownCapability,
    CapabilityExecutionFailed,
):
    error_registry.register(_cls.code, _cls)
# InternalError shares the base code; the base class stays the canonical mapping.
del _cls
