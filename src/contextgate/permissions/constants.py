"""Permission values and policy constants for contextgate.

Provides:
- ``PermissionValue`` — tri-state per-key permission (Allow / Ask / Never).
- ``DefaultPolicy`` — process-wide fallback applied when no permission is stored.
- ``Operation`` — the half of a permission pair a request needs.
"""

from __future__ import annotations

from enum import Enum


class PermissionValue(str, Enum):
    """Tri-state value held by each half of a :class:`Permission`."""

    ALLOW = "Allow"
    ASK = "Ask"
    NEVER = "Never"

    @property
    def is_allowed(self) -> bool:
        return self is PermissionValue.ALLOW

    @property
    def needs_confirmation(self) -> bool:
        return self is PermissionValue.ASK

    @property
    def is_denied(self) -> bool:
        return self is PermissionValue.NEVER


class DefaultPolicy(str, Enum):
    """Process-wide fallback policy.

    - ``share-everything`` — every key resolves to ``{Allow, Allow}``.
    - ``ask-permission``   — stored values win; absent keys resolve to ``{Ask, Ask}``.
    - ``allow-list``       — only stored values containing an ``Allow`` are honored.

    The policy is a runtime override: changing it never rewrites stored
    permissions.
    """

    SHARE_EVERYTHING = "share-everything"
    ASK_PERMISSION = "ask-permission"
    ALLOW_LIST = "allow-list"

    @classmethod
    def parse(cls, value: str | DefaultPolicy) -> DefaultPolicy:
        """Accept the value, the member name, or a CamelCase spelling.

        ``"allow-list"``, ``"ALLOW_LIST"`` and ``"AllowList"`` all resolve to
        :attr:`ALLOW_LIST`.
        """
        if isinstance(value, DefaultPolicy):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Default policy must be a string, got {type(value)}")
        normalized = "".join(ch for ch in value.lower() if ch.isalnum())
        for member in cls:
            if normalized == member.value.replace("-", ""):
                return member
        raise ValueError(f"Invalid default policy: {value}. Must be one of {[p.value for p in cls]}")


class Operation(str, Enum):
    """Which half of a permission pair is consulted."""

    READ = "read"
    WRITE = "write"


__all__ = [
    "DefaultPolicy",
    "Operation",
    "PermissionValue",
]
