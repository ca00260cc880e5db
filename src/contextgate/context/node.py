"""ContextNode — the tagged value the context tree is built from.

A node is one of a closed set of kinds (null, bool, number, string,
array, object), represented with the JSON-native Python values. Every
traversal and merge in the store dispatches on :func:`node_kind`, so the
set of cases stays exhaustive.
"""

from __future__ import annotations

import copy
from enum import Enum
from typing import Any

from pydantic import JsonValue, TypeAdapter, ValidationError

from ..exceptions import InvalidPathError

ContextNode = JsonValue
"""Null | Bool | Number | String | list[ContextNode] | dict[str, ContextNode]."""

PATH_SEPARATOR = "."
WILDCARD = "*"

_node_adapter: TypeAdapter[JsonValue] = TypeAdapter(JsonValue)


class NodeKind(str, Enum):
    NULL = "null"
    BOOL = "bool"
    NUMBER = "number"
    STRING = "string"
    ARRAY = "array"
    OBJECT = "object"

    @property
    def is_scalar(self) -> bool:
        return self not in (NodeKind.ARRAY, NodeKind.OBJECT)


class _Absent(Enum):
    """Result of a path walk that did not resolve."""

    ABSENT = "absent"

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT = _Absent.ABSENT


def node_kind(value: Any) -> NodeKind:
    """Classify a value; raises ``TypeError`` for anything outside the node kinds."""
    if value is None:
        return NodeKind.NULL
    # bool before number: bool is an int subclass
    if isinstance(value, bool):
        return NodeKind.BOOL
    if isinstance(value, (int, float)):
        return NodeKind.NUMBER
    if isinstance(value, str):
        return NodeKind.STRING
    if isinstance(value, list):
        return NodeKind.ARRAY
    if isinstance(value, dict):
        return NodeKind.OBJECT
    raise TypeError(f"Not a context node: {type(value).__name__}")


def is_context_node(value: Any) -> bool:
    """True if ``value`` validates as a ContextNode tree."""
    try:
        _node_adapter.validate_python(value)
    except ValidationError:
        return False
    return True


def is_context_object(value: Any) -> bool:
    """True if ``value`` is an Object node whose whole subtree is valid."""
    return isinstance(value, dict) and is_context_node(value)


def clone(value: ContextNode) -> ContextNode:
    return copy.deepcopy(value)


def split_path(path: str) -> list[str]:
    """Split a dot-path into keys, raising :class:`InvalidPathError` if malformed.

    Empty paths, empty segments (``"a..b"``, ``".a"``) and whitespace-only
    segments are rejected.
    """
    if not isinstance(path, str) or not path:
        raise InvalidPathError(f"Invalid context path: {path!r}", path=path)
    parts = path.split(PATH_SEPARATOR)
    if any(not part.strip() for part in parts):
        raise InvalidPathError(f"Invalid context path: {path!r}", path=path)
    return parts


def validate_path(path: str, *, allow_wildcard: bool = False) -> str:
    if allow_wildcard and path == WILDCARD:
        return path
    split_path(path)
    return path


def join_path(prefix: str, key: str) -> str:
    return f"{prefix}{PATH_SEPARATOR}{key}" if prefix else key


def is_under(key: str, section: str) -> bool:
    """True if ``key`` equals ``section`` or lies below it."""
    return key == section or key.startswith(section + PATH_SEPARATOR)


def check_keys(tree: ContextNode, prefix: str = "") -> None:
    """Raise :class:`InvalidPathError` unless every key reachable through objects is one path segment.

    A key containing the separator, or an empty or blank key, could not be
    addressed by a dot-path afterwards.
    """
    if not isinstance(tree, dict):
        return
    for key, value in tree.items():
        path = join_path(prefix, str(key))
        if not isinstance(key, str) or PATH_SEPARATOR in key or not key.strip():
            raise InvalidPathError(f"Invalid context key: {key!r}", path=path)
        check_keys(value, path)


def object_paths(tree: ContextNode, prefix: str = "") -> list[str]:
    """Depth-first list of every path reachable through objects; arrays are not expanded."""
    if not isinstance(tree, dict):
        return []
    paths: list[str] = []
    for key, value in tree.items():
        path = join_path(prefix, str(key))
        paths.append(path)
        paths.extend(object_paths(value, path))
    return paths


def leaf_paths(tree: ContextNode, prefix: str = "") -> list[str]:
    """Paths of every non-object (or empty-object) node reachable through objects."""
    if not isinstance(tree, dict) or (not tree and prefix):
        return [prefix] if prefix else []
    paths: list[str] = []
    for key, value in tree.items():
        paths.extend(leaf_paths(value, join_path(prefix, key)))
    return paths


__all__ = [
    "ABSENT",
    "ContextNode",
    "NodeKind",
    "PATH_SEPARATOR",
    "WILDCARD",
    "check_keys",
    "clone",
    "is_context_node",
    "is_context_object",
    "is_under",
    "join_path",
    "leaf_paths",
    "node_kind",
    "object_paths",
    "split_path",
    "validate_path",
]
