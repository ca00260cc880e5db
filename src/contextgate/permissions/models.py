"""Pydantic models for the permission layer."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .constants import Operation, PermissionValue


class Permission(BaseModel):
    """``(read, write)`` pair stored per dot-path key."""

    model_config = ConfigDict(frozen=True)

    read: PermissionValue = PermissionValue.ASK
    write: PermissionValue = PermissionValue.ASK

    @classmethod
    def of(cls, value: PermissionValue) -> Permission:
        return cls(read=value, write=value)

    def for_operation(self, operation: Operation | str) -> PermissionValue:
        return self.read if Operation(operation) is Operation.READ else self.write

    @property
    def has_allow(self) -> bool:
        return self.read.is_allowed or self.write.is_allowed


ALLOW_ALL = Permission.of(PermissionValue.ALLOW)
ASK_ALL = Permission.of(PermissionValue.ASK)
NEVER_ALL = Permission.of(PermissionValue.NEVER)


class AuthorityMetadata(BaseModel):
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    agent_id: Optional[str] = None
    context: Optional[str] = None


class GrantOfAuthority(BaseModel):
    """A full permission map plus where it came from."""

    permissions: dict[str, Permission] = Field(default_factory=dict)
    metadata: AuthorityMetadata = Field(default_factory=AuthorityMetadata)


class AgentContext(BaseModel):
    """Free-text description of an agent and what it intends to do."""

    context: str
    agent_id: Optional[str] = None
    purpose: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class AgentIntent(BaseModel):
    """What :func:`~contextgate.permissions.heuristics.parse_agent_intent` extracts."""

    requested_keys: list[str] = Field(default_factory=list)
    operations: list[Operation] = Field(default_factory=list)
    purpose: Optional[str] = None


__all__ = [
    "ALLOW_ALL",
    "ASK_ALL",
    "AgentContext",
    "AgentIntent",
    "AuthorityMetadata",
    "GrantOfAuthority",
    "NEVER_ALL",
    "Permission",
]
