"""Plugin bundles for the gatekeeper.

A plugin contributes any of:

- named capability handlers, invoked by ``execute`` requests,
- a context transformer applied to read projections,
- per-section validators applied to write payloads.

Handlers receive ``(request, context_snapshot, client)`` and may be plain
functions or coroutines. Transformers receive ``(context, client)`` and
return the (possibly rewritten) context. Validators receive the payload
value for their section and return ``True`` to accept it.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Union

from ..clients import Client

if TYPE_CHECKING:
    from .core import AccessGatekeeper
    from .models import AccessRequest

logger = logging.getLogger(__name__)

CapabilityHandler = Callable[["AccessRequest", dict[str, Any], Client], Union[Any, Awaitable[Any]]]
ContextTransformer = Callable[[dict[str, Any], Client], dict[str, Any]]
SectionValidator = Callable[[Any], bool]


@dataclass
class Plugin:
    """A named bundle of capabilities, a transformer and validators."""

    id: str
    name: str = ""
    version: str = "1.0.0"
    description: str = ""
    capabilities: dict[str, CapabilityHandler] = field(default_factory=dict)
    transform_context: Optional[ContextTransformer] = None
    validators: dict[str, SectionValidator] = field(default_factory=dict)
    on_register: Optional[Callable[["AccessGatekeeper"], None]] = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Plugin id must not be empty")
        if not self.name:
            self.name = self.id


# ── Built-in plugins ────────────────────────────────────────


def analytics_plugin() -> Plugin:
    """Counts successful accesses per client and action.

    Exposes the ``get-analytics`` capability, which returns
    ``{"total": n, "by_client": {...}, "by_action": {...}}``.
    """
    by_client: Counter[str] = Counter()
    by_action: Counter[str] = Counter()

    def record(event: str, payload: dict[str, Any]) -> None:
        by_client[payload.get("client_id", "unknown")] += 1
        by_action[payload.get("action", "unknown")] += 1

    def on_register(gatekeeper: AccessGatekeeper) -> None:
        gatekeeper.events.subscribe("access", record)
        logger.debug("Analytics subscribed to access events")

    def get_analytics(request: AccessRequest, context: dict[str, Any], client: Client) -> dict[str, Any]:
        return {
            "total": sum(by_client.values()),
            "by_client": dict(by_client),
            "by_action": dict(by_action),
        }

    return Plugin(
        id="analytics",
        name="Access Analytics",
        description="Counts successful context accesses",
        capabilities={"get-analytics": get_analytics},
        on_register=on_register,
    )


def identity_redaction_plugin() -> Plugin:
    """Hides the ``identity`` section from untrusted clients."""

    def transform(context: dict[str, Any], client: Client) -> dict[str, Any]:
        if client.trusted or "identity" not in context:
            return context
        redacted = dict(context)
        redacted["identity"] = {"redacted": True}
        return redacted

    return Plugin(
        id="identity-redaction",
        name="Identity Redaction",
        description="Replaces identity with a redaction marker for untrusted clients",
        transform_context=transform,
    )


_PREFERENCE_KEYS = frozenset({"communication", "decision_making", "values", "domains"})


def _validate_preferences(value: Any) -> bool:
    if not isinstance(value, dict):
        return False
    return all(key in _PREFERENCE_KEYS for key in value)


def _validate_identity(value: Any) -> bool:
    if not isinstance(value, dict):
        return False
    for key in ("name", "role"):
        if key in value and not isinstance(value[key], str):
            return False
    return True


def schema_validation_plugin() -> Plugin:
    """Rejects writes whose ``preferences`` or ``identity`` sections are malformed."""
    return Plugin(
        id="schema-validation",
        name="Schema Validation",
        description="Validates preferences and identity payloads",
        validators={
            "preferences": _validate_preferences,
            "identity": _validate_identity,
        },
    )


__all__ = [
    "CapabilityHandler",
    "ContextTransformer",
    "Plugin",
    "SectionValidator",
    "analytics_plugin",
    "identity_redaction_plugin",
    "schema_validation_plugin",
]
