"""Agent-context heuristics.

Turns a free-text description of an agent ("read-only shopping assistant,
may update preferences.domains") into a full permission map, and
extracts intent from the same kind of text.

The generator sits behind the narrow :class:`AuthorityGenerator`
protocol; the registry never depends on the keyword rules directly, so a
rule engine can replace :class:`KeywordAuthorityGenerator` without
touching the gatekeeper.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterable, Mapping, Optional, Protocol

from .constants import Operation, PermissionValue
from .models import AgentContext, AgentIntent, Permission

logger = logging.getLogger(__name__)

_ALLOW = PermissionValue.ALLOW
_ASK = PermissionValue.ASK
_NEVER = PermissionValue.NEVER


class AuthorityGenerator(Protocol):
    """``AgentContext -> PermissionMap`` over a given key vocabulary."""

    def generate(self, agent_context: AgentContext, keys: Iterable[str]) -> dict[str, Permission]: ...


class KeywordAuthorityGenerator:
    """Keyword classifier over the agent's context text.

    Per key, starting from ``{Ask, Never}``:

    1. text mentions ``read-only``/``view``   → ``{Allow, Never}``
    2. text mentions ``update``/``edit``      → ``{Allow, Ask}``
    3. text mentions ``full access``/``admin`` → ``{Allow, Allow}``
    4. key contains ``public``/``shared``     → read ``Allow``
    5. text contains the key itself           → read ``Allow``; write ``Allow``
       too when the text says ``modify <key>`` or ``update <key>``
    6. key contains ``sensitive``/``private``/``secret`` → ``{Never, Never}``

    Rules 1-3 only ever upgrade. Rule 6 runs last and wins over all others.
    """

    READ_ONLY_TERMS = ("read-only", "view")
    EDIT_TERMS = ("update", "edit")
    FULL_ACCESS_TERMS = ("full access", "admin")
    PUBLIC_KEY_TERMS = ("public", "shared")
    SENSITIVE_KEY_TERMS = ("sensitive", "private", "secret")

    def generate(self, agent_context: AgentContext, keys: Iterable[str]) -> dict[str, Permission]:
        text = agent_context.context.lower()

        base_read, base_write = _ASK, _NEVER
        if _mentions(text, self.READ_ONLY_TERMS):
            base_read, base_write = _ALLOW, _NEVER
        if _mentions(text, self.EDIT_TERMS):
            base_read, base_write = _ALLOW, _ASK
        if _mentions(text, self.FULL_ACCESS_TERMS):
            base_read, base_write = _ALLOW, _ALLOW

        permissions: dict[str, Permission] = {}
        for key in keys:
            key_lower = key.lower()
            read, write = base_read, base_write

            if _mentions(key_lower, self.PUBLIC_KEY_TERMS):
                read = _ALLOW

            if key_lower in text:
                read = _ALLOW
                if f"modify {key_lower}" in text or f"update {key_lower}" in text:
                    write = _ALLOW

            if _mentions(key_lower, self.SENSITIVE_KEY_TERMS):
                read, write = _NEVER, _NEVER

            permissions[key] = Permission(read=read, write=write)

        logger.debug(
            "Generated %d permissions for agent %s",
            len(permissions),
            agent_context.agent_id or "<anonymous>",
        )
        return permissions


def _mentions(text: str, terms: Iterable[str]) -> bool:
    return any(term in text for term in terms)


# ── Agent context helpers ───────────────────────────────

_READ_TERMS = ("read", "view", "access")
_WRITE_TERMS = ("write", "update", "modify", "edit")
_PURPOSE_RE = re.compile(r"purpose[:\s]+([^.]+)", re.IGNORECASE)


def parse_agent_intent(text: str, keys: Iterable[str]) -> AgentIntent:
    """Extract requested keys, operations and purpose from free text.

    Operations default to ``[read]`` when the text names neither.
    """
    text_lower = text.lower()
    requested = [key for key in keys if key.lower() in text_lower]

    operations: list[Operation] = []
    if _mentions(text_lower, _READ_TERMS):
        operations.append(Operation.READ)
    if _mentions(text_lower, _WRITE_TERMS):
        operations.append(Operation.WRITE)
    if not operations:
        operations.append(Operation.READ)

    match = _PURPOSE_RE.search(text)
    purpose = match.group(1).strip() if match else None

    return AgentIntent(requested_keys=requested, operations=operations, purpose=purpose)


def generate_agent_context(
    *,
    agent_id: Optional[str] = None,
    purpose: Optional[str] = None,
    user_context: Optional[Mapping[str, Any]] = None,
) -> AgentContext:
    """Build an :class:`AgentContext` from a purpose and an optional context view."""
    parts: list[str] = []
    if user_context:
        identity = user_context.get("identity")
        if isinstance(identity, dict) and identity.get("name"):
            parts.append(f"User: {identity['name']}")
        if "preferences" in user_context:
            parts.append("Preferences available")
        if "capabilities" in user_context:
            parts.append("Capabilities defined")

    text = ", ".join(parts)
    if purpose:
        text = f"{text}. Purpose: {purpose}" if text else f"Purpose: {purpose}"
    if not text:
        text = "General agent context"

    return AgentContext(context=text, agent_id=agent_id, purpose=purpose)


def generate_context_from_keys(values: Mapping[str, Any], agent_id: Optional[str] = None) -> AgentContext:
    """Describe an agent by the key/value pairs it has been shown."""
    parts = [f"{key}: {json.dumps(value, default=str)}" for key, value in values.items()]
    if parts:
        text = f"Agent context with access to: {', '.join(parts)}"
    else:
        text = "Agent context with no specific data access"
    return AgentContext(context=text, agent_id=agent_id)


def summarize_agent_context(agent_context: AgentContext) -> str:
    parts: list[str] = []
    if agent_context.agent_id:
        parts.append(f"Agent: {agent_context.agent_id}")
    if agent_context.purpose:
        parts.append(f"Purpose: {agent_context.purpose}")
    parts.append(f"Context: {agent_context.context}")
    parts.append(f"Generated: {agent_context.timestamp.isoformat()}")
    return "\n".join(parts)


__all__ = [
    "AuthorityGenerator",
    "KeywordAuthorityGenerator",
    "generate_agent_context",
    "generate_context_from_keys",
    "parse_agent_intent",
    "summarize_agent_context",
]
