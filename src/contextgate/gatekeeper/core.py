"""AccessGatekeeper: the single path through which the context is read or changed.

Every request runs the same pipeline under one ``asyncio.Lock``:

1. client validation
2. middleware chain
3. grant / default-policy evaluation
4. rate limiting
5. dispatch (read / write / execute)
6. audit + usage counters

The lock is released only around an ``execute`` capability handler, which
is bounded by a timeout. Every denial is raised as an
:class:`~contextgate.exceptions.AccessDeniedError` between steps and turned
into an ``AccessResponse(success=False)`` by :meth:`AccessGatekeeper._deny`,
so the audit trail records every decision.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, Union
from uuid import uuid4

from pydantic import ValidationError

from ..audit import AuditEntry, AuditLog
from ..clients import (
    SYSTEM_CLIENT_ID,
    Capability,
    Client,
    ClientRegistry,
    system_client,
)
from ..config import CAPABILITY_TIMEOUT_SECONDS, GatekeeperConfig
from ..context.node import (
    WILDCARD,
    ContextNode,
    check_keys,
    is_context_node,
    is_context_object,
    is_under,
    leaf_paths,
    object_paths,
    validate_path,
)
from ..context.store import ContextStore
from ..exceptions import (
    AccessDeniedError,
    CapabilityExecutionFailed,
    ClientNotFoundError,
    ClientNotRegistered,
    ClientSuspendedOrRevoked,
    DefaultPolicyDenied,
    GrantExpired,
    GrantInsufficient,
    InternalError,
    InvalidPathError,
    InvalidRequest,
    InvalidWritePayload,
    MiddlewareDenied,
    PluginError,
    RateLimited,
    UnknownCapability,
)
from ..logging import get_access_logger, safe_preview
from ..permissions import (
    AgentContext,
    DefaultPolicy,
    GrantOfAuthority,
    Operation,
    Permission,
    PermissionRegistry,
    PermissionValue,
)
from .events import EventBus, Events
from .models import AccessAction, AccessRequest, AccessResponse, Grant, MiddlewareResult
from .plugins import CapabilityHandler, ContextTransformer, Plugin, SectionValidator
from .ratelimit import SlidingWindowRateLimiter

logger = logging.getLogger(__name__)

Middleware = Callable[
    [AccessRequest, Client, dict[str, Any], GrantOfAuthority],
    Union[MiddlewareResult, Awaitable[MiddlewareResult]],
]

UNKNOWN = "unknown"


def _describe(request: AccessRequest) -> dict[str, Any]:
    """Audit fields of a validated request."""
    return {
        "client_id": request.client_id,
        "action": request.action.value,
        "sections": tuple(request.sections),
        "request_id": str(request.request_id),
        "metadata": dict(request.metadata),
    }


def _describe_malformed(raw: Any) -> dict[str, Any]:
    """Audit fields of a request that failed validation, taken from whatever is usable."""
    if not isinstance(raw, Mapping):
        raw = {}
    client_id = raw.get("client_id")
    action = raw.get("action")
    action = getattr(action, "value", action)
    return {
        "client_id": client_id if isinstance(client_id, str) and client_id else UNKNOWN,
        "action": action if isinstance(action, str) and action else UNKNOWN,
        "sections": (),
        "request_id": str(uuid4()),
        "metadata": {},
    }


def _validation_detail(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    return f"{location}: {first['msg']}" if location else first["msg"]


class AccessGatekeeper:
    """Owns the context store, permissions, audit log and client registry.

    Construct one per process (or per test) and hand it to every consumer.

    Args:
        config: Policy and rate-limit settings (defaults to ``GatekeeperConfig()``).
        store / permissions / audit_log / clients: Components to compose;
            fresh ones are created when omitted.
        clock: Returns Unix time; drives rate limiting, grant expiry and
            audit timestamps.
        capability_timeout: Seconds an ``execute`` handler may run.
    """

    def __init__(
        self,
        config: Optional[GatekeeperConfig] = None,
        *,
        store: Optional[ContextStore] = None,
        permissions: Optional[PermissionRegistry] = None,
        audit_log: Optional[AuditLog] = None,
        clients: Optional[ClientRegistry] = None,
        clock: Callable[[], float] = time.time,
        capability_timeout: float = CAPABILITY_TIMEOUT_SECONDS,
    ) -> None:
        self._config = config or GatekeeperConfig()
        self._clock = clock
        self._capability_timeout = capability_timeout

        self._store = store if store is not None else ContextStore()
        self._permissions = (
            permissions if permissions is not None else PermissionRegistry(self._config.default_policy)
        )
        self._audit = audit_log if audit_log is not None else AuditLog()
        self._clients = clients if clients is not None else ClientRegistry()

        self._lock = asyncio.Lock()
        self._events = EventBus()
        self._rate_limiter = SlidingWindowRateLimiter(self._config.rate_limit, clock=clock)
        self._access_log = get_access_logger(__name__)

        self._grants: dict[str, Grant] = {}
        self._middleware: list[Middleware] = []
        self._plugins: dict[str, Plugin] = {}
        self._capabilities: dict[str, CapabilityHandler] = {}
        self._transformers: list[ContextTransformer] = []
        self._validators: dict[str, list[SectionValidator]] = {}

        self._install_system_client()

    def _install_system_client(self) -> None:
        self._clients.register(system_client())
        self._grants[SYSTEM_CLIENT_ID] = Grant(
            client_id=SYSTEM_CLIENT_ID,
            allowed_sections=frozenset({WILDCARD}),
            granted_at=self._clock(),
        )

    # ── Components ──────────────────────────────────────────

    @property
    def store(self) -> ContextStore:
        return self._store

    @property
    def permissions(self) -> PermissionRegistry:
        return self._permissions

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def config(self) -> GatekeeperConfig:
        return self._config

    # ── Request pipeline ────────────────────────────────────

    async def access_context(self, request: AccessRequest | Mapping[str, Any]) -> AccessResponse:
        """Evaluate and, if allowed, perform one access request.

        Never raises for a denied or failed request; the outcome is always
        an :class:`AccessResponse` and exactly one audit entry. A mapping
        that does not validate is denied as an invalid request.
        """
        started = self._clock()
        if not isinstance(request, AccessRequest):
            try:
                request = AccessRequest.model_validate(request)
            except ValidationError as exc:
                error = InvalidRequest(f"invalid request: {_validation_detail(exc)}")
                async with self._lock:
                    return self._refuse(_describe_malformed(request), error, started)

        async with self._lock:
            try:
                client = self._validate_client(request)
                request = await self._run_middleware(request, client)
                grant = self._evaluate_access(request)
                self._check_rate_limit(request)

                if request.action is AccessAction.READ:
                    return self._dispatch_read(request, client, grant, started)
                if request.action is AccessAction.WRITE:
                    return self._dispatch_write(request, client, started)

                handler = self._resolve_capability(request, client)
                snapshot = self._store.snapshot()
            except AccessDeniedError as exc:
                return self._deny(request, exc, started)
            except Exception as exc:
                logger.exception("Unexpected error while handling request %s", request.request_id)
                return self._deny(request, InternalError(f"internal error: {exc}"), started)

        # The handler runs without the lock; only bookkeeping re-acquires it.
        try:
            result = await self._call_capability(handler, request, snapshot, client)
        except AccessDeniedError as exc:
            async with self._lock:
                return self._deny(request, exc, started)

        async with self._lock:
            return self._succeed(request, client, result, started, capability=request.capability)

    def _validate_client(self, request: AccessRequest) -> Client:
        client = self._clients.get(request.client_id)
        if client is None:
            raise ClientNotRegistered()
        if not client.is_active:
            raise ClientSuspendedOrRevoked(f"client status: {client.status.value}")
        return client

    async def _run_middleware(self, request: AccessRequest, client: Client) -> AccessRequest:
        if not self._middleware:
            return request

        context = self._store.snapshot()
        authority = self._permissions.get_authority()
        for middleware in self._middleware:
            result = middleware(request, client, context, authority)
            if inspect.isawaitable(result):
                result = await result
            if result.blocked:
                raise MiddlewareDenied(result.reason or None)
            if result.modified_request is not None:
                request = result.modified_request
        return request

    def _evaluate_access(self, request: AccessRequest) -> Grant | None:
        grant = self._grants.get(request.client_id)
        sections = self._requested_sections(request)

        if grant is None:
            self._evaluate_default_policy(request, sections)
            return None

        if grant.is_expired(now=self._clock()):
            raise GrantExpired()
        if not grant.allows(sections):
            raise GrantInsufficient()
        return grant

    def _requested_sections(self, request: AccessRequest) -> list[str]:
        """Sections a request claims; a write without sections claims its payload's top-level keys."""
        if request.sections:
            return list(request.sections)
        if request.action is AccessAction.WRITE and isinstance(request.data, dict):
            return list(request.data)
        return []

    def _evaluate_default_policy(self, request: AccessRequest, sections: list[str]) -> None:
        if request.action is AccessAction.WRITE:
            operation = Operation.WRITE
        else:
            operation = Operation.READ

        if WILDCARD in sections or (not sections and request.action is AccessAction.READ):
            keys = self._store.all_keys()
        else:
            # Keys below a section with their own stored permission decide too.
            if request.action is AccessAction.WRITE and isinstance(request.data, dict):
                below = object_paths(request.data)
            else:
                below = self._store.all_keys()
            keys = [*sections]
            keys.extend(
                key
                for key in below
                if key in self._permissions and any(is_under(key, section) for section in sections)
            )

        for key in keys:
            if not self._permissions.check_permission(key, operation).is_allowed:
                # Ask has no interactive confirmation channel here.
                raise DefaultPolicyDenied()

    def _check_rate_limit(self, request: AccessRequest) -> None:
        if not self._rate_limiter.check_and_record(request.client_id, request.action.value):
            raise RateLimited()

    # ── Dispatch ────────────────────────────────────────────

    def _dispatch_read(
        self, request: AccessRequest, client: Client, grant: Grant | None, started: float
    ) -> AccessResponse:
        if not request.unrestricted:
            sections = list(request.sections)
            data = self._store.filter(sections)
        elif grant is not None and WILDCARD not in grant.allowed_sections:
            sections = sorted(grant.allowed_sections)
            data = self._store.filter(sections)
        else:
            sections = [WILDCARD]
            data = self._store.snapshot()

        for transform in self._transformers:
            data = transform(data, client)

        return self._succeed(request, client, data, started, sections_accessed=sections)

    def _dispatch_write(self, request: AccessRequest, client: Client, started: float) -> AccessResponse:
        payload = request.data
        if payload is None:
            raise InvalidWritePayload("no data provided for write operation")
        if not is_context_object(payload):
            raise InvalidWritePayload()
        try:
            check_keys(payload)
        except InvalidPathError:
            raise InvalidWritePayload() from None

        if not request.unrestricted:
            for path in leaf_paths(payload):
                if not any(is_under(path, section) for section in request.sections):
                    raise InvalidWritePayload()

        for section, value in payload.items():
            for validator in self._validators.get(section, ()):
                if not validator(value):
                    raise InvalidWritePayload()

        self._store.merge(payload, source=client.id)
        updated = list(payload)
        self._events.publish(
            Events.CONTEXT_UPDATED,
            {"client_id": client.id, "sections": updated, "update_count": self._store.update_count},
        )
        return self._succeed(request, client, None, started, sections_updated=updated)

    def _resolve_capability(self, request: AccessRequest, client: Client) -> CapabilityHandler:
        if not request.capability:
            raise UnknownCapability("no capability specified for execute action")
        if not client.can(Capability.EXECUTE):
            raise AccessDeniedError("client does not have execute capability")
        handler = self._capabilities.get(request.capability)
        if handler is None:
            raise UnknownCapability(f"unknown capability: {request.capability}")
        return handler

    async def _call_capability(
        self,
        handler: CapabilityHandler,
        request: AccessRequest,
        snapshot: dict[str, Any],
        client: Client,
    ) -> ContextNode:
        if inspect.iscoroutinefunction(handler):
            call = handler(request, snapshot, client)
        else:
            call = asyncio.to_thread(handler, request, snapshot, client)

        try:
            result = await asyncio.wait_for(call, timeout=self._capability_timeout)
        except asyncio.TimeoutError:
            raise InternalError(
                f"internal error: capability '{request.capability}' "
                f"timed out after {self._capability_timeout:g}s"
            ) from None
        except Exception as exc:
            logger.error("Capability %s failed", request.capability, exc_info=True)
            raise CapabilityExecutionFailed(f"plugin execution failed: {exc}") from exc

        if not is_context_node(result):
            raise CapabilityExecutionFailed(
                f"plugin execution failed: capability '{request.capability}' returned "
                f"{type(result).__name__}"
            )
        return result

    # ── Outcomes ────────────────────────────────────────────

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    def _record(
        self,
        attempt: dict[str, Any],
        at: datetime,
        started: float,
        *,
        success: bool,
        reason: str | None = None,
        error_code: str | None = None,
    ) -> None:
        self._audit.append(
            AuditEntry(
                timestamp=at,
                success=success,
                reason=reason,
                error_code=error_code,
                duration_ms=max(self._clock() - started, 0.0) * 1000,
                **attempt,
            )
        )

    def _deny(self, request: AccessRequest, error: AccessDeniedError, started: float) -> AccessResponse:
        return self._refuse(_describe(request), error, started)

    def _refuse(self, attempt: dict[str, Any], error: AccessDeniedError, started: float) -> AccessResponse:
        at = self._now()
        reason = error.reason
        self._record(attempt, at, started, success=False, reason=reason, error_code=error.code)
        self._events.publish(
            Events.ACCESS_DENIED,
            {
                "client_id": attempt["client_id"],
                "action": attempt["action"],
                "sections": list(attempt["sections"]),
                "reason": reason,
            },
        )
        self._access_log.warning(
            "Access denied (%s %s): %s",
            attempt["action"],
            list(attempt["sections"]) or "*",
            reason,
            client_id=attempt["client_id"],
            request_id=attempt["request_id"],
        )
        return AccessResponse(
            success=False,
            error=reason,
            metadata={
                "client_id": attempt["client_id"],
                "timestamp": at.isoformat(),
                "request_id": attempt["request_id"],
            },
        )

    def _succeed(
        self,
        request: AccessRequest,
        client: Client,
        data: ContextNode,
        started: float,
        **details: Any,
    ) -> AccessResponse:
        at = self._now()
        self._clients.record_access(client.id, at)
        self._record(_describe(request), at, started, success=True)
        self._events.publish(
            Events.ACCESS,
            {"client_id": client.id, "action": request.action.value, "sections": list(request.sections)},
        )
        self._access_log.debug(
            "Access granted (%s): %s", request.action.value, safe_preview(data, limit=120), request=request
        )
        return AccessResponse(
            success=True,
            data=data,
            metadata={
                "client_id": client.id,
                "timestamp": at.isoformat(),
                "request_id": str(request.request_id),
                **details,
            },
        )

    # ── Extension points ────────────────────────────────────

    def use(self, middleware: Middleware) -> None:
        """Append a middleware step; steps run in registration order."""
        self._middleware.append(middleware)

    def register_capability(self, name: str, handler: CapabilityHandler) -> None:
        if not name:
            raise PluginError("Capability name must not be empty")
        if name in self._capabilities:
            raise PluginError(f"Capability already registered: {name}", capability=name)
        self._capabilities[name] = handler
        logger.info("Capability registered: %s", name)

    def register_plugin(self, plugin: Plugin) -> None:
        """Install a plugin's capabilities, transformer and validators.

        Raises:
            PluginError: On a duplicate plugin id or capability name; nothing
                from the plugin is installed in that case.
        """
        if plugin.id in self._plugins:
            raise PluginError(f"Plugin already registered: {plugin.id}", plugin_id=plugin.id)
        clashes = sorted(name for name in plugin.capabilities if name in self._capabilities)
        if clashes:
            raise PluginError(
                f"Plugin {plugin.id} redefines capabilities: {', '.join(clashes)}",
                plugin_id=plugin.id,
            )

        self._plugins[plugin.id] = plugin
        for name, handler in plugin.capabilities.items():
            self.register_capability(name, handler)
        if plugin.transform_context is not None:
            self._transformers.append(plugin.transform_context)
        for section, validator in plugin.validators.items():
            self._validators.setdefault(section, []).append(validator)
        if plugin.on_register is not None:
            plugin.on_register(self)

        logger.info("Plugin registered: %s v%s", plugin.id, plugin.version)
        self._events.publish(Events.PLUGIN_REGISTERED, {"plugin_id": plugin.id, "version": plugin.version})

    def list_plugins(self) -> list[str]:
        return list(self._plugins)

    def list_capabilities(self) -> list[str]:
        return list(self._capabilities)

    # ── Permissions (admin) ─────────────────────────────────

    async def set_permission(self, key: str, permission: Permission | Mapping[str, str]) -> Permission:
        async with self._lock:
            stored = self._permissions.set_permission(key, permission)
        self._permission_changed(key, stored)
        return stored

    async def set_read_permission(self, key: str, value: PermissionValue | str) -> Permission:
        async with self._lock:
            stored = self._permissions.set_read_permission(key, value)
        self._permission_changed(key, stored)
        return stored

    async def set_write_permission(self, key: str, value: PermissionValue | str) -> Permission:
        async with self._lock:
            stored = self._permissions.set_write_permission(key, value)
        self._permission_changed(key, stored)
        return stored

    def _permission_changed(self, key: str, permission: Permission) -> None:
        logger.info("Permission set: %s read=%s write=%s", key, permission.read.value, permission.write.value)
        self._events.publish(
            Events.PERMISSION_CHANGED,
            {"key": key, "read": permission.read.value, "write": permission.write.value},
        )

    async def set_default_policy(self, policy: DefaultPolicy | str) -> DefaultPolicy:
        async with self._lock:
            self._permissions.set_default_policy(policy)
            current = self._permissions.default_policy
        logger.info("Default policy set: %s", current.value)
        self._events.publish(Events.POLICY_CHANGED, {"policy": current.value})
        return current

    def get_default_policy(self) -> DefaultPolicy:
        return self._permissions.get_default_policy()

    async def initialize_default_permissions(self) -> int:
        """Back-fill every key in the store with the current structural default."""
        async with self._lock:
            filled = self._permissions.initialize_default_permissions(self._store.all_keys())
        logger.info("Initialized %d default permissions", filled)
        return filled

    def generate_authority_for_agent(self, agent_context: AgentContext | Mapping[str, Any]) -> GrantOfAuthority:
        """Classify an agent description over the store's keys (not applied)."""
        return self._permissions.generate_authority_for_agent(agent_context, self._store.all_keys())

    async def apply_authority(self, authority: GrantOfAuthority) -> None:
        """Replace the stored permission map with ``authority``."""
        async with self._lock:
            self._permissions.set_authority(authority)
        logger.info("Authority applied: %d keys", len(authority.permissions))
        self._events.publish(
            Events.PERMISSION_CHANGED,
            {"keys": sorted(authority.permissions), "agent_id": authority.metadata.agent_id},
        )

    # ── Clients (admin) ─────────────────────────────────────

    async def register_client(self, client: Client | Mapping[str, Any]) -> Client:
        async with self._lock:
            stored = self._clients.register(client)
        self._events.publish(Events.CLIENT_REGISTERED, {"client_id": stored.id, "type": stored.type.value})
        return stored

    async def suspend_client(self, client_id: str) -> Client:
        return await self._set_client_status(client_id, self._clients.suspend)

    async def reactivate_client(self, client_id: str) -> Client:
        return await self._set_client_status(client_id, self._clients.reactivate)

    async def revoke_client(self, client_id: str) -> Client:
        """Revoke permanently. The client's grant stays queryable for audit."""
        return await self._set_client_status(client_id, self._clients.revoke)

    async def _set_client_status(self, client_id: str, transition: Callable[[str], Client]) -> Client:
        async with self._lock:
            client = transition(client_id)
        self._events.publish(
            Events.CLIENT_STATUS_CHANGED,
            {"client_id": client.id, "status": client.status.value},
        )
        return client

    def get_client(self, client_id: str) -> Client | None:
        return self._clients.get(client_id)

    def list_clients(self) -> list[Client]:
        return self._clients.list_clients()

    # ── Grants (admin) ──────────────────────────────────────

    async def grant(
        self,
        client_id: str,
        allowed_sections: Iterable[str],
        expires_at: float | datetime | None = None,
    ) -> Grant:
        """Grant ``client_id`` access to ``allowed_sections``, replacing any earlier grant.

        Raises:
            ClientNotFoundError: If the client is not registered.
            InvalidPathError: If a section is not a well-formed dot-path.
        """
        sections = frozenset(validate_path(section, allow_wildcard=True) for section in allowed_sections)
        if isinstance(expires_at, datetime):
            expires_at = expires_at.timestamp()

        async with self._lock:
            if client_id not in self._clients:
                raise ClientNotFoundError(f"Client not found: {client_id}", client_id=client_id)
            grant = Grant(
                client_id=client_id,
                allowed_sections=sections,
                expires_at=expires_at,
                granted_at=self._clock(),
            )
            self._grants[client_id] = grant

        logger.info("Authority granted to %s: %s", client_id, sorted(sections))
        self._events.publish(
            Events.AUTHORITY_GRANTED,
            {"client_id": client_id, "sections": sorted(sections), "expires_at": expires_at},
        )
        return grant

    async def revoke_grant(self, client_id: str) -> bool:
        """Remove the client's grant; it falls back to the default policy."""
        async with self._lock:
            removed = self._grants.pop(client_id, None) is not None
        if removed:
            logger.info("Authority revoked from %s", client_id)
            self._events.publish(Events.AUTHORITY_REVOKED, {"client_id": client_id})
        return removed

    def get_grant(self, client_id: str) -> Grant | None:
        return self._grants.get(client_id)

    # ── Context & audit (admin) ─────────────────────────────

    async def set_context(self, path: str, value: ContextNode) -> None:
        """Overwrite one value directly, bypassing the request pipeline."""
        if not is_context_node(value):
            raise TypeError(f"Not a context node: {type(value).__name__}")
        async with self._lock:
            self._store.set(path, value)
        logger.info("Context set: %s = %s", path, safe_preview(value, limit=80))
        self._events.publish(Events.CONTEXT_UPDATED, {"client_id": SYSTEM_CLIENT_ID, "sections": [path]})

    def get_audit_log(
        self,
        *,
        client_id: Optional[str] = None,
        from_ts: Optional[datetime] = None,
        to_ts: Optional[datetime] = None,
        action: Optional[str] = None,
        success: Optional[bool] = None,
    ) -> list[AuditEntry]:
        return self._audit.query(
            client_id=client_id,
            from_ts=from_ts,
            to_ts=to_ts,
            action=action,
            success=success,
        )

    # ── Startup / teardown ──────────────────────────────────

    async def seed(
        self,
        *,
        context: Optional[Mapping[str, Any]] = None,
        permissions: Optional[Mapping[str, Permission | Mapping[str, str]]] = None,
        clients: Iterable[Client | Mapping[str, Any]] = (),
        grants: Iterable[Grant | Mapping[str, Any]] = (),
        default_policy: DefaultPolicy | str | None = None,
    ) -> None:
        """Load initial state in one call (typically at process start).

        Order: policy, context, permissions, clients, grants, so grants can
        reference the clients seeded alongside them.
        """
        if default_policy is not None:
            await self.set_default_policy(default_policy)
        if context:
            if not is_context_object(context):
                raise TypeError("Seed context must be an object")
            async with self._lock:
                self._store.merge(dict(context), source="seed")
        for key, permission in (permissions or {}).items():
            await self.set_permission(key, permission)
        for client in clients:
            await self.register_client(client)
        for grant in grants:
            if isinstance(grant, Grant):
                await self.grant(grant.client_id, grant.allowed_sections, grant.expires_at)
            else:
                await self.grant(
                    grant["client_id"],
                    grant.get("allowed_sections", ()),
                    grant.get("expires_at"),
                )
        logger.info("Gatekeeper seeded: %d keys", len(self._store.all_keys()))

    async def reset(self) -> None:
        """Drop all state except plugins and middleware; re-install the system client."""
        async with self._lock:
            self._store.clear()
            self._permissions.clear()
            self._permissions.set_default_policy(self._config.default_policy)
            self._audit.clear()
            self._grants.clear()
            self._rate_limiter.reset()
            self._clients = ClientRegistry()
            self._install_system_client()
        logger.info("Gatekeeper reset")


__all__ = ["AccessGatekeeper", "Middleware"]
