from .config import GatekeeperConfig, LogLevel, RateLimitConfig, load_config_from_env
from .context import ABSENT, ContextStore
from .permissions import (
    AgentContext,
    DefaultPolicy,
    GrantOfAuthority,
    Permission,
    PermissionRegistry,
    PermissionValue,
)
from .audit import AuditEntry, AuditLog
from .clients import Capability, Client, ClientRegistry, ClientStatus, ClientType
from .gatekeeper import (
    AccessAction,
    AccessGatekeeper,
    AccessRequest,
    AccessResponse,
    Grant,
    MiddlewareResult,
    Plugin,
)
from .logging import (
    safe_preview,
    redact_secrets,
    safe_log_value,
    ContextGateFormatter,
    AccessLoggerAdapter,
    setup_logging,
    get_access_logger,
)

__version__ = "0.1.0"

__all__ = [
    'ABSENT',
    'AccessAction',
    'AccessGatekeeper',
    'AccessRequest',
    'AccessResponse',
    'AgentContext',
    'AuditEntry',
    'AuditLog',
    'Capability',
    'Client',
    'ClientRegistry',
    'ClientStatus',
    'ClientType',
    'ContextStore',
    'DefaultPolicy',
    'GatekeeperConfig',
    'Grant',
    'GrantOfAuthority',
    'LogLevel',
    'MiddlewareResult',
    'Permission',
    'PermissionRegistry',
    'PermissionValue',
    'Plugin',
    'RateLimitConfig',
    'load_config_from_env',
    'safe_preview',
    'redact_secrets',
    'safe_log_value',
    'ContextGateFormatter',
    'AccessLoggerAdapter',
    'setup_logging',
    'get_access_logger',
]
