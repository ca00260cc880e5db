"""Request/response contract of the gatekeeper, grants and middleware results."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator

from ..context.node import WILDCARD, ContextNode, validate_path
from ..exceptions import InvalidPathError


class AccessAction(str, Enum):
    READ = "read"
    WRITE = "write"
    EXECUTE = "execute"


class AccessRequest(BaseModel):
    """One attempt by a client to read, write or execute against the context.

    ``sections`` are dot-paths; omitted/empty means unrestricted for a
    read. ``data`` is required for writes and ``capability`` for executes.
    ``metadata`` is opaque and echoed into the audit entry.
    """

    client_id: str
    action: AccessAction
    sections: list[str] = Field(default_factory=list)
    data: Optional[Any] = None
    capability: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    request_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("sections", mode="before")
    @classmethod
    def validate_sections(cls, v: Optional[Iterable[str]]) -> list[str]:
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        try:
            return [validate_path(section, allow_wildcard=True) for section in v]
        except InvalidPathError as e:
            raise ValueError(e.message)

    @property
    def unrestricted(self) -> bool:
        return not self.sections or WILDCARD in self.sections


class AccessResponse(BaseModel):
    """Uniform outcome of :meth:`AccessGatekeeper.access_context`.

    ``metadata`` always carries ``client_id`` and an ISO-8601 ``timestamp``.
    On failure ``error`` equals the deny reason.
    """

    success: bool
    data: Optional[ContextNode] = None
    error: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


@dataclass(frozen=True)
class Grant:
    """Explicit, possibly time-limited authorization of a client's sections.

    ``allowed_sections`` containing ``"*"`` allows every section; otherwise
    each requested path must be contained exactly (no prefix matching).
    """

    client_id: str
    allowed_sections: frozenset[str] = frozenset()
    expires_at: float | None = None
    granted_at: float = field(default_factory=time.time)

    def is_expired(self, *, now: float | None = None) -> bool:
        if self.expires_at is None:
            return False
        t = time.time() if now is None else now
        return t >= self.expires_at

    def allows(self, sections: Iterable[str]) -> bool:
        if WILDCARD in self.allowed_sections:
            return True
        return all(section in self.allowed_sections for section in sections)


@dataclass
class MiddlewareResult:
    """What a middleware step decides.

    ``modified_request`` replaces the request for all later steps.
    """

    allowed: bool = True
    reason: str = ""
    modified_request: Optional[AccessRequest] = None

    @property
    def blocked(self) -> bool:
        return not self.allowed


__all__ = [
    "AccessAction",
    "AccessRequest",
    "AccessResponse",
    "Grant",
    "MiddlewareResult",
]
