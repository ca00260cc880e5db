"""PermissionRegistry — per-key tri-state permissions under a default policy.

Stored permissions and the default policy are independent: the policy is
a runtime override consulted on every lookup, never written into the
stored map.

Resolution (``get_permission``):

1. ``share-everything`` → ``{Allow, Allow}``, stored value ignored.
2. ``allow-list``       → the stored value if it holds at least one
   ``Allow``, else ``{Never, Never}``.
3. ``ask-permission``   → the stored value, else ``{Ask, Ask}``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Mapping, Optional

from ..context.node import is_under, validate_path
from .constants import DefaultPolicy, Operation, PermissionValue
from .heuristics import AuthorityGenerator, KeywordAuthorityGenerator
from .models import (
    ALLOW_ALL,
    ASK_ALL,
    NEVER_ALL,
    AgentContext,
    AuthorityMetadata,
    GrantOfAuthority,
    Permission,
)

logger = logging.getLogger(__name__)

STRUCTURAL_DEFAULTS: dict[DefaultPolicy, Permission] = {
    DefaultPolicy.SHARE_EVERYTHING: ALLOW_ALL,
    DefaultPolicy.ASK_PERMISSION: ASK_ALL,
    DefaultPolicy.ALLOW_LIST: NEVER_ALL,
}


class PermissionRegistry:
    """Holds the stored ``key -> Permission`` map and the active default policy.

    Args:
        default_policy: Initial policy (default ``allow-list``).
        generator: Classifier used by :meth:`generate_authority_for_agent`.
    """

    def __init__(
        self,
        default_policy: DefaultPolicy | str = DefaultPolicy.ALLOW_LIST,
        generator: Optional[AuthorityGenerator] = None,
    ) -> None:
        self._permissions: dict[str, Permission] = {}
        self._default_policy = DefaultPolicy.parse(default_policy)
        self._generator: AuthorityGenerator = generator or KeywordAuthorityGenerator()
        self._metadata = AuthorityMetadata()

    # ── Policy ──────────────────────────────────────────────

    @property
    def default_policy(self) -> DefaultPolicy:
        return self._default_policy

    def get_default_policy(self) -> DefaultPolicy:
        return self._default_policy

    def set_default_policy(self, policy: DefaultPolicy | str) -> None:
        self._default_policy = DefaultPolicy.parse(policy)
        self._touch()

    def structural_default(self) -> Permission:
        """The permission an absent key falls back to under the current policy."""
        return STRUCTURAL_DEFAULTS[self._default_policy]

    # ── Lookup ──────────────────────────────────────────────

    def get_permission(self, key: str) -> Permission:
        policy = self._default_policy
        if policy is DefaultPolicy.SHARE_EVERYTHING:
            return ALLOW_ALL

        stored = self._permissions.get(key)
        if policy is DefaultPolicy.ALLOW_LIST:
            if stored is not None and stored.has_allow:
                return stored
            return NEVER_ALL

        return stored if stored is not None else self.structural_default()

    def get_stored_permission(self, key: str) -> Permission | None:
        return self._permissions.get(key)

    def check_permission(self, key: str, operation: Operation | str) -> PermissionValue:
        return self.get_permission(key).for_operation(operation)

    def is_section_allowed(self, section: str, keys: Iterable[str]) -> bool:
        """Boolean view of a section: every constituent key must resolve to read ``Allow``.

        Constituent keys are the section itself and every key below it;
        when ``keys`` holds none of them the section key alone decides.
        """
        constituents = [key for key in keys if is_under(key, section)] or [section]
        return all(self.check_permission(key, Operation.READ).is_allowed for key in constituents)

    def allowed_sections(self, keys: Iterable[str]) -> list[str]:
        """Every key whose section view is allowed, in input order."""
        keys = list(keys)
        return [key for key in keys if self.is_section_allowed(key, keys)]

    def __contains__(self, key: object) -> bool:
        return key in self._permissions

    # ── Mutation ────────────────────────────────────────────

    def set_permission(self, key: str, permission: Permission | Mapping[str, str]) -> Permission:
        """Store ``permission`` for ``key``.

        Raises:
            InvalidPathError: If ``key`` is not a well-formed dot-path.
        """
        validate_path(key)
        if not isinstance(permission, Permission):
            permission = Permission.model_validate(permission)
        self._permissions[key] = permission
        self._touch()
        return permission

    def set_read_permission(self, key: str, value: PermissionValue | str) -> Permission:
        current = self._current_for_update(key)
        return self.set_permission(key, current.model_copy(update={"read": PermissionValue(value)}))

    def set_write_permission(self, key: str, value: PermissionValue | str) -> Permission:
        current = self._current_for_update(key)
        return self.set_permission(key, current.model_copy(update={"write": PermissionValue(value)}))

    def _current_for_update(self, key: str) -> Permission:
        # Stored value, not the policy-resolved one: a share-everything
        # override must not leak into the stored half left untouched.
        validate_path(key)
        return self._permissions.get(key) or self.structural_default()

    def initialize_default_permissions(self, keys: Iterable[str]) -> int:
        """Back-fill every key without a stored entry with the structural default.

        Returns:
            Number of keys filled.
        """
        default = self.structural_default()
        filled = 0
        for key in keys:
            if key not in self._permissions:
                self._permissions[key] = default
                filled += 1
        self._touch()
        logger.debug("Back-filled %d keys with %s", filled, default)
        return filled

    def clear(self) -> None:
        self._permissions.clear()
        self._metadata = AuthorityMetadata()

    # ── Authority maps ──────────────────────────────────────

    def get_authority(self) -> GrantOfAuthority:
        """Copy of the stored map; mutating it does not affect the registry."""
        return GrantOfAuthority(
            permissions=dict(self._permissions),
            metadata=self._metadata.model_copy(),
        )

    def set_authority(self, authority: GrantOfAuthority) -> None:
        """Replace the stored map wholesale (e.g. with a generated authority)."""
        for key in authority.permissions:
            validate_path(key)
        self._permissions = dict(authority.permissions)
        self._metadata = authority.metadata.model_copy(update={"updated_at": datetime.now(timezone.utc)})
        logger.debug("Stored permission map replaced (%d keys)", len(self._permissions))

    def generate_authority_for_agent(
        self,
        agent_context: AgentContext | Mapping[str, object],
        keys: Iterable[str],
    ) -> GrantOfAuthority:
        """Classify ``agent_context`` into a permission map over ``keys``.

        The result is returned, not applied; pass it to :meth:`set_authority`
        to make it effective.
        """
        if not isinstance(agent_context, AgentContext):
            agent_context = AgentContext.model_validate(agent_context)
        permissions = self._generator.generate(agent_context, keys)
        return GrantOfAuthority(
            permissions=permissions,
            metadata=AuthorityMetadata(agent_id=agent_context.agent_id, context=agent_context.context),
        )

    def _touch(self) -> None:
        self._metadata = self._metadata.model_copy(update={"updated_at": datetime.now(timezone.utc)})


__all__ = [
    "PermissionRegistry",
    "STRUCTURAL_DEFAULTS",
]
