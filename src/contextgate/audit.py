"""Append-only, capacity-bounded audit trail of access decisions."""

from __future__ import annotations

import threading
from collections import deque
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .config import AUDIT_LOG_CAPACITY


class AuditEntry(BaseModel):
    """One access decision, successful or denied."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    client_id: str
    action: str
    sections: tuple[str, ...] = ()
    success: bool
    reason: Optional[str] = None
    error_code: Optional[str] = None
    duration_ms: float = 0.0
    request_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class AuditLog:
    """Ring buffer of :class:`AuditEntry` holding the newest ``capacity`` entries.

    Oldest entries are evicted first. ``query`` returns copies, so callers
    cannot rewrite history.
    """

    def __init__(self, capacity: int = AUDIT_LOG_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("Audit log capacity must be positive")
        self._entries: deque[AuditEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._entries.maxlen or 0

    def append(self, entry: AuditEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def query(
        self,
        *,
        client_id: Optional[str] = None,
        from_ts: Optional[datetime] = None,
        to_ts: Optional[datetime] = None,
        action: Optional[str] = None,
        success: Optional[bool] = None,
    ) -> list[AuditEntry]:
        """Entries matching every given filter, oldest first.

        ``from_ts`` and ``to_ts`` are inclusive bounds.
        """
        with self._lock:
            entries = list(self._entries)

        if client_id is not None:
            entries = [e for e in entries if e.client_id == client_id]
        if from_ts is not None:
            entries = [e for e in entries if e.timestamp >= from_ts]
        if to_ts is not None:
            entries = [e for e in entries if e.timestamp <= to_ts]
        if action is not None:
            entries = [e for e in entries if e.action == action]
        if success is not None:
            entries = [e for e in entries if e.success is success]

        return [entry.model_copy(deep=True) for entry in entries]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["AuditEntry", "AuditLog"]
