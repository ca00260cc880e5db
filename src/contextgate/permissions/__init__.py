"""Tri-state permission model for context keys.

Defines:
- PermissionValue / DefaultPolicy / Operation: the value vocabulary
- Permission, GrantOfAuthority, AgentContext: pydantic models
- PermissionRegistry: stored permissions resolved under a default policy
- KeywordAuthorityGenerator: free-text agent context → permission map
"""

from .constants import DefaultPolicy, Operation, PermissionValue
from .heuristics import (
    AuthorityGenerator,
    KeywordAuthorityGenerator,
    generate_agent_context,
    generate_context_from_keys,
    parse_agent_intent,
    summarize_agent_context,
)
from .models import (
    ALLOW_ALL,
    ASK_ALL,
    NEVER_ALL,
    AgentContext,
    AgentIntent,
    AuthorityMetadata,
    GrantOfAuthority,
    Permission,
)
from .registry import STRUCTURAL_DEFAULTS, PermissionRegistry

__all__ = [
    "ALLOW_ALL",
    "ASK_ALL",
    "NEVER_ALL",
    "STRUCTURAL_DEFAULTS",
    "AgentContext",
    "AgentIntent",
    "AuthorityGenerator",
    "AuthorityMetadata",
    "DefaultPolicy",
    "GrantOfAuthority",
    "KeywordAuthorityGenerator",
    "Operation",
    "Permission",
    "PermissionRegistry",
    "PermissionValue",
    "generate_agent_context",
    "generate_context_from_keys",
    "parse_agent_intent",
    "summarize_agent_context",
]
