"""Observer channel the gatekeeper publishes state changes to.

Subscribers (UI, analytics) are outside the core's correctness: a
failing subscriber is logged and skipped, never allowed to affect the
request that triggered the event.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

EventCallback = Callable[[str, dict[str, Any]], None]


class Events:
    """Names of the events the gatekeeper publishes."""

    ACCESS = "access"
    ACCESS_DENIED = "access_denied"
    CONTEXT_UPDATED = "context_updated"
    CLIENT_REGISTERED = "client_registered"
    CLIENT_STATUS_CHANGED = "client_status_changed"
    AUTHORITY_GRANTED = "authority_granted"
    AUTHORITY_REVOKED = "authority_revoked"
    PERMISSION_CHANGED = "permission_changed"
    POLICY_CHANGED = "policy_changed"
    PLUGIN_REGISTERED = "plugin_registered"

    ALL = frozenset(
        {
            ACCESS,
            ACCESS_DENIED,
            CONTEXT_UPDATED,
            CLIENT_REGISTERED,
            CLIENT_STATUS_CHANGED,
            AUTHORITY_GRANTED,
            AUTHORITY_REVOKED,
            PERMISSION_CHANGED,
            POLICY_CHANGED,
            PLUGIN_REGISTERED,
        }
    )


class EventBus:
    """Synchronous publish/subscribe keyed by event name.

    ``subscribe("*", cb)`` receives every event.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[EventCallback]] = defaultdict(list)

    def subscribe(self, event: str, callback: EventCallback) -> Callable[[], None]:
        """Register ``callback``; returns a function that unsubscribes it."""
        if event != "*" and event not in Events.ALL:
            raise ValueError(f"Unknown event: {event}")
        self._subscribers[event].append(callback)

        def unsubscribe() -> None:
            try:
                self._subscribers[event].remove(callback)
            except ValueError:
                pass  # already removed

        return unsubscribe

    def publish(self, event: str, payload: dict[str, Any]) -> None:
        for callback in (*self._subscribers.get(event, ()), *self._subscribers.get("*", ())):
            try:
                callback(event, dict(payload))
            except Exception:
                logger.warning("Subscriber for %s failed", event, exc_info=True)


__all__ = ["EventBus", "EventCallback", "Events"]
