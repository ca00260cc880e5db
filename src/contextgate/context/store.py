"""ContextStore — the hierarchical personal-context tree.

Provides path-addressed get/set, deep-merge updates and sub-tree
projection by section paths. The store is a pure data component: it has
no notion of clients or permissions and is mutated only by the
gatekeeper's write path or its logged administrative calls.

Merge rules (``merge``):

========================  ==============================================
target × update           result
========================  ==============================================
object × object           recurse key by key
array × array (scalars)   union, deduplicated, original order kept
array × array (objects)   concatenation (no dedup, not idempotent)
anything else             update replaces target
========================  ==============================================
"""

from __future__ import annotations

import time
from typing import Any, Iterable, Optional

from ..exceptions import InvalidPathError
from .node import (
    ABSENT,
    WILDCARD,
    ContextNode,
    NodeKind,
    check_keys,
    clone,
    node_kind,
    object_paths,
    split_path,
)


def _merge_arrays(target: list[Any], update: list[Any]) -> list[Any]:
    kinds = [node_kind(item) for item in (*target, *update)]
    if not all(kind.is_scalar for kind in kinds):
        return [*target, *clone(update)]

    merged: list[Any] = []
    seen: set[tuple[NodeKind, Any]] = set()
    for item in (*target, *update):
        marker = (node_kind(item), item)
        if marker not in seen:
            seen.add(marker)
            merged.append(item)
    return merged


def deep_merge(target: ContextNode, update: ContextNode) -> ContextNode:
    """Merge ``update`` into ``target`` and return the result.

    Object targets are updated in place; every value taken from ``update``
    is copied so the caller's payload is never aliased into the tree.
    """
    target_kind = node_kind(target)
    update_kind = node_kind(update)

    if target_kind is NodeKind.OBJECT and update_kind is NodeKind.OBJECT:
        for key, value in update.items():
            if key in target:
                target[key] = deep_merge(target[key], value)
            else:
                target[key] = clone(value)
        return target

    if target_kind is NodeKind.ARRAY and update_kind is NodeKind.ARRAY:
        return _merge_arrays(target, update)

    return clone(update)


class ContextStore:
    """Holds one Object node and the bookkeeping around its updates.

    Attributes:
        update_count: Number of merges applied since creation or ``clear()``.
        updated_at: Unix time of the last mutation (None before the first).
        sources: Ordered, de-duplicated ids of whoever merged updates.
    """

    def __init__(self, initial: Optional[dict[str, Any]] = None) -> None:
        self._root: dict[str, Any] = {}
        self.update_count = 0
        self.updated_at: float | None = None
        self.sources: list[str] = []
        if initial:
            self.merge(initial, source="seed")

    # ── Reads ───────────────────────────────────────────────

    def get(self, path: str) -> ContextNode:
        """Walk ``path`` through Object nodes.

        Returns :data:`ABSENT` for a missing key, a malformed path or a
        walk through a non-object. Never raises. An empty path returns a
        copy of the whole tree.
        """
        if path == "":
            return clone(self._root)
        try:
            keys = split_path(path)
        except InvalidPathError:
            return ABSENT

        current: Any = self._root
        for key in keys:
            if not isinstance(current, dict) or key not in current:
                return ABSENT
            current = current[key]
        return clone(current)

    def has(self, path: str) -> bool:
        return self.get(path) is not ABSENT

    def filter(self, sections: Iterable[str]) -> dict[str, Any]:
        """Project the requested sub-trees, keeping their path shape.

        ``"a.b.c"`` yields ``{"a": {"b": {"c": value}}}``; ``"*"`` returns the
        whole tree. Paths that do not resolve are left out.
        """
        sections = list(sections)
        if WILDCARD in sections:
            return clone(self._root)

        projected: dict[str, Any] = {}
        for section in sections:
            value = self.get(section)
            if value is ABSENT:
                continue
            keys = section.split(".")
            target = projected
            for key in keys[:-1]:
                existing = target.get(key)
                if not isinstance(existing, dict):
                    existing = target[key] = {}
                target = existing
            target[keys[-1]] = value
        return projected

    def all_keys(self) -> list[str]:
        """Depth-first list of every path reachable through Object nodes.

        Array contents are not expanded.
        """
        return object_paths(self._root)

    def snapshot(self) -> dict[str, Any]:
        return clone(self._root)

    # ── Writes ──────────────────────────────────────────────

    def set(self, path: str, value: ContextNode) -> None:
        """Overwrite the value at ``path``, creating intermediate objects.

        Intermediate non-object values on the way are replaced by objects.
        Raises :class:`~contextgate.exceptions.InvalidPathError` for a
        malformed path.
        """
        keys = split_path(path)
        node_kind(value)
        check_keys(value, path)

        current = self._root
        for key in keys[:-1]:
            child = current.get(key)
            if not isinstance(child, dict):
                child = current[key] = {}
            current = child
        current[keys[-1]] = clone(value)
        self._touch()

    def merge(self, update: dict[str, Any], source: str = "system") -> dict[str, Any]:
        """Deep-merge ``update`` into the root and return a copy of the result.

        Raises:
            InvalidPathError: If a key in ``update`` is not a single path segment.
        """
        if node_kind(update) is not NodeKind.OBJECT:
            raise TypeError("Context updates must be objects")
        check_keys(update)
        self._root = deep_merge(self._root, update)
        self.update_count += 1
        if source not in self.sources:
            self.sources.append(source)
        self._touch()
        return clone(self._root)

    def replace(self, tree: dict[str, Any]) -> None:
        if node_kind(tree) is not NodeKind.OBJECT:
            raise TypeError("Context root must be an object")
        check_keys(tree)
        self._root = clone(tree)
        self._touch()

    def clear(self) -> None:
        self._root = {}
        self.update_count = 0
        self.sources = []
        self._touch()

    def _touch(self) -> None:
        self.updated_at = time.time()

    def __repr__(self) -> str:
        return f"ContextStore(keys={len(self._root)}, update_count={self.update_count})"


__all__ = ["ContextStore", "deep_merge"]
