"""Centralized logging utilities for contextgate.

This module provides:
- Logging configuration from GatekeeperConfig
- Safe preview utilities for context values (never logged in full)
- Secret redaction
- Structured logging with automatic client_id / request_id propagation

Context data is personal by nature, so anything taken from the context
tree goes through :func:`safe_log_value` before it reaches a handler.
"""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING, Any, Optional
from uuid import UUID

from .config import GatekeeperConfig

if TYPE_CHECKING:
    from .gatekeeper.models import AccessRequest


SECRET_PATTERNS = [
    # key=value / key: value credentials
    r'(?:password|passwd|pwd|secret|token|key|api[_-]?key|auth[_-]?token)\s*[:=]\s*["\']?([^"\'\s]+)',
    # HTTP auth schemes
    r'(?:bearer|basic)\s+([a-zA-Z0-9+/=]+)',
    # provider-style keys
    r'(?:sk-|pk-)[a-zA-Z0-9]{32,}',
    # long hex blobs (hashes, raw keys)
    r'[a-f0-9]{32,}',
]
_SECRET_RES = [re.compile(pattern, re.IGNORECASE | re.DOTALL) for pattern in SECRET_PATTERNS]

# Attributes every LogRecord has; anything else came in through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "client_id",
    "request_id",
}


def safe_preview(value: Any, limit: int = 240) -> str:
    """Render ``value`` as one bounded line suitable for a log message.

    Objects and arrays are rendered as JSON. Whitespace runs collapse to a
    single space; output longer than ``limit`` ends in an ellipsis.
    """
    if value is None:
        return ""

    if isinstance(value, (dict, list)):
        try:
            text = json.dumps(value, default=str, ensure_ascii=False)
        except (TypeError, ValueError):
            text = repr(value)
    else:
        text = value if isinstance(value, str) else str(value)

    text = " ".join(text.split())
    return text if len(text) <= limit else text[: limit - 1] + "…"


def redact_secrets(text: str, replacement: str = "[REDACTED]") -> str:
    """Replace anything that looks like a credential with ``replacement``."""
    if not isinstance(text, str):
        return text
    for secret_re in _SECRET_RES:
        text = secret_re.sub(replacement, text)
    return text


def safe_log_value(value: Any, limit: int = 240, redact: bool = True) -> str:
    """Preview plus optional redaction; use this for any context value in a log line."""
    preview = safe_preview(value, limit=limit)
    return redact_secrets(preview) if redact else preview


class ContextGateFormatter(logging.Formatter):
    """Formatter that lifts client_id / request_id into the output.

    Emits JSON by default (one object per line) or a plain-text line.
    Extra record attributes are included as safe previews, and secrets
    are redacted from the message.
    """

    def __init__(
        self,
        include_request_context: bool = True,
        json_format: bool = True,
        redact_secrets: bool = True,
        *args: Any,
        **kwargs: Any,
    ):
        super().__init__(*args, **kwargs)
        self.include_request_context = include_request_context
        self.json_format = json_format
        self.redact_secrets = redact_secrets

    def _fields(self, record: logging.LogRecord) -> dict[str, Any]:
        message = record.getMessage()
        fields: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": redact_secrets(message) if self.redact_secrets else message,
        }

        if self.include_request_context:
            for attr in ("client_id", "request_id"):
                value = getattr(record, attr, None)
                if value:
                    fields[attr] = str(value) if isinstance(value, UUID) else value

        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)

        fields.update(
            (key, safe_log_value(value, redact=self.redact_secrets))
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS
        )
        return fields

    def format(self, record: logging.LogRecord) -> str:
        fields = self._fields(record)
        if self.json_format:
            return json.dumps(fields, default=str, ensure_ascii=False)

        head = [f"[{fields['timestamp']}]", fields["level"], fields["logger"]]
        head.extend(f"{attr}={fields[attr]}" for attr in ("client_id", "request_id") if attr in fields)
        return " ".join(head) + f" : {fields['message']}"


class AccessLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds client_id and request_id to log records.

    Usage:
        logger = get_access_logger(__name__)
        logger.warning("Access denied", request=access_request)
    """

    def __init__(
        self,
        logger: logging.Logger,
        client_id: Optional[str] = None,
        request_id: Optional[UUID | str] = None,
    ):
        super().__init__(logger, {})
        self.client_id = client_id
        self.request_id = request_id

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        request: AccessRequest | None = kwargs.pop("request", None)
        client_id = kwargs.pop("client_id", None) or self.client_id
        request_id = kwargs.pop("request_id", None) or self.request_id
        if request is not None:
            client_id = client_id or request.client_id
            request_id = request_id or request.request_id

        extra = dict(kwargs.get("extra") or {})
        if client_id:
            extra["client_id"] = client_id
        if request_id:
            extra["request_id"] = request_id
        kwargs["extra"] = extra
        return msg, kwargs


def setup_logging(
    config: Optional[GatekeeperConfig] = None,
    json_format: Optional[bool] = None,
    redact_secrets: bool = True,
) -> None:
    """Configure the root logger for a contextgate service.

    Replaces any handlers already on the root logger with a single stderr
    handler using :class:`ContextGateFormatter`.

    Args:
        config: GatekeeperConfig instance (if None, loads from environment)
        json_format: Override ``config.log_json``
        redact_secrets: Whether to redact secrets (default: True)
    """
    if config is None:
        from .config import load_config_from_env

        config = load_config_from_env()

    level = logging.getLevelName(config.log_level.value)
    formatter = ContextGateFormatter(
        include_request_context=True,
        json_format=config.log_json if json_format is None else json_format,
        redact_secrets=redact_secrets,
    )

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    if config.service_name:
        logging.getLogger(config.service_name).setLevel(level)


def get_access_logger(
    name: str,
    client_id: Optional[str] = None,
    request_id: Optional[UUID | str] = None,
) -> AccessLoggerAdapter:
    """Get a logger adapter that tags records with the calling client."""
    return AccessLoggerAdapter(logging.getLogger(name), client_id=client_id, request_id=request_id)


__all__ = [
    "AccessLoggerAdapter",
    "ContextGateFormatter",
    "SECRET_PATTERNS",
    "get_access_logger",
    "redact_secrets",
    "safe_log_value",
    "safe_preview",
    "setup_logging",
]
