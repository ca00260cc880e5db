"""Context tree: node kinds, path helpers and the ContextStore."""

from .node import (
    ABSENT,
    WILDCARD,
    ContextNode,
    NodeKind,
    check_keys,
    is_context_node,
    is_context_object,
    leaf_paths,
    node_kind,
    object_paths,
    split_path,
    validate_path,
)
from .store import ContextStore, deep_merge

__all__ = [
    "ABSENT",
    "WILDCARD",
    "ContextNode",
    "ContextStore",
    "NodeKind",
    "check_keys",
    "deep_merge",
    "is_context_node",
    "is_context_object",
    "leaf_paths",
    "node_kind",
    "object_paths",
    "split_path",
    "validate_path",
]
