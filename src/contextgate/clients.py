"""Known callers of the gatekeeper and their usage counters.

Clients are never deleted. Revocation is a terminal status transition so
the audit trail keeps resolving to a known identity.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from .exceptions import ClientNotFoundError, ClientStateError

logger = logging.getLogger(__name__)

SYSTEM_CLIENT_ID = "system"


class ClientStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    REVOKED = "revoked"


class ClientType(str, Enum):
    SYSTEM = "system"
    AI_ASSISTANT = "ai_assistant"
    AGENT = "agent"
    SERVICE = "service"
    APPLICATION = "application"


class Capability(str, Enum):
    """Coarse abilities a client may hold."""

    READ = "read"
    WRITE = "write"
    EXECUTE = "execute"
    ADMIN = "admin"


class Client(BaseModel):
    """A registered caller identity (assistant, agent, service)."""

    id: str = Field(min_length=1)
    name: str = ""
    type: ClientType = ClientType.AGENT
    description: str = ""
    status: ClientStatus = ClientStatus.ACTIVE
    capabilities: set[Capability] = Field(default_factory=lambda: {Capability.READ})
    trusted: bool = False
    access_count: int = 0
    last_accessed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.status is ClientStatus.ACTIVE

    def can(self, capability: Capability | str) -> bool:
        return Capability(capability) in self.capabilities


def system_client() -> Client:
    """The built-in fully trusted client."""
    return Client(
        id=SYSTEM_CLIENT_ID,
        name="System",
        type=ClientType.SYSTEM,
        description="Core system client with full access",
        capabilities=set(Capability),
        trusted=True,
    )


class ClientRegistry:
    """Tracks clients by id.

    ``get`` and ``list_clients`` return copies; only the registry's own
    methods change stored state.
    """

    def __init__(self) -> None:
        self._clients: dict[str, Client] = {}

    def register(self, client: Client | dict[str, Any]) -> Client:
        """Upsert by id.

        A new client starts with ``access_count=0`` and no last access.
        Re-registering an existing id updates its descriptive fields and
        status but keeps its usage counters.
        """
        if not isinstance(client, Client):
            client = Client.model_validate(client)

        existing = self._clients.get(client.id)
        if existing is None:
            stored = client.model_copy(update={"access_count": 0, "last_accessed_at": None}, deep=True)
        else:
            stored = client.model_copy(
                update={
                    "access_count": existing.access_count,
                    "last_accessed_at": existing.last_accessed_at,
                    "created_at": existing.created_at,
                },
                deep=True,
            )
        self._clients[client.id] = stored
        logger.info("Client registered: %s (%s)", stored.id, stored.type.value)
        return stored.model_copy(deep=True)

    def get(self, client_id: str) -> Client | None:
        client = self._clients.get(client_id)
        return client.model_copy(deep=True) if client is not None else None

    def require(self, client_id: str) -> Client:
        client = self.get(client_id)
        if client is None:
            raise ClientNotFoundError(f"Client not found: {client_id}", client_id=client_id)
        return client

    def list_clients(self, status: Optional[ClientStatus] = None) -> list[Client]:
        return [
            client.model_copy(deep=True)
            for client in self._clients.values()
            if status is None or client.status is status
        ]

    def __contains__(self, client_id: object) -> bool:
        return client_id in self._clients

    # ── Status transitions ──────────────────────────────────

    def set_status(self, client_id: str, status: ClientStatus | str) -> Client:
        """Move a client to ``status``.

        ``revoked`` is terminal: any transition out of it raises
        :class:`ClientStateError`.
        """
        status = ClientStatus(status)
        client = self._clients.get(client_id)
        if client is None:
            raise ClientNotFoundError(f"Client not found: {client_id}", client_id=client_id)
        if client.status is ClientStatus.REVOKED and status is not ClientStatus.REVOKED:
            raise ClientStateError(
                f"Client {client_id} is revoked and cannot become {status.value}",
                client_id=client_id,
            )
        client.status = status
        logger.info("Client %s status -> %s", client_id, status.value)
        return client.model_copy(deep=True)

    def suspend(self, client_id: str) -> Client:
        return self.set_status(client_id, ClientStatus.SUSPENDED)

    def reactivate(self, client_id: str) -> Client:
        return self.set_status(client_id, ClientStatus.ACTIVE)

    def revoke(self, client_id: str) -> Client:
        return self.set_status(client_id, ClientStatus.REVOKED)

    def record_access(self, client_id: str, at: datetime) -> None:
        client = self._clients.get(client_id)
        if client is None:
            return
        client.access_count += 1
        client.last_accessed_at = at


__all__ = [
    "Capability",
    "Client",
    "ClientRegistry",
    "ClientStatus",
    "ClientType",
    "SYSTEM_CLIENT_ID",
    "system_client",
]
