"""Tests for the context tree: node kinds, paths and ContextStore."""

from __future__ import annotations

import pytest
from contextgate.context import (
    ABSENT,
    ContextStore,
    NodeKind,
    check_keys,
    deep_merge,
    is_context_node,
    is_context_object,
    leaf_paths,
    node_kind,
    object_paths,
    split_path,
)
from contextgate.exceptions import InvalidPathError


@pytest.fixture
def store() -> ContextStore:
    return ContextStore(
        {
            "identity": {"name": "Ada", "role": "engineer"},
            "preferences": {
                "values": {"sustainability": "high"},
                "domains": ["books", "travel"],
            },
            "negotiation_priorities": {"price": 1, "speed": 2},
        }
    )


class TestNodeKinds:
    """Tests for node classification."""

    def test_scalar_kinds(self) -> None:
        """Test every scalar kind is recognised."""
        assert node_kind(None) is NodeKind.NULL
        assert node_kind(True) is NodeKind.BOOL
        assert node_kind(3) is NodeKind.NUMBER
        assert node_kind(2.5) is NodeKind.NUMBER
        assert node_kind("x") is NodeKind.STRING
        assert NodeKind.STRING.is_scalar

    def test_bool_is_not_number(self) -> None:
        """Test bools classify as BOOL even though bool subclasses int."""
        assert node_kind(False) is NodeKind.BOOL

    def test_container_kinds(self) -> None:
        """Test arrays and objects."""
        assert node_kind([1, 2]) is NodeKind.ARRAY
        assert node_kind({"a": 1}) is NodeKind.OBJECT
        assert not NodeKind.OBJECT.is_scalar

    def test_unknown_type_raises(self) -> None:
        """Test non-node values are rejected."""
        with pytest.raises(TypeError):
            node_kind({1, 2})

    def test_is_context_node_validates_subtree(self) -> None:
        """Test deep validation of nested values."""
        assert is_context_node({"a": [1, {"b": None}]})
        assert not is_context_node({"a": object()})

    def test_is_context_object(self) -> None:
        """Test only object roots qualify."""
        assert is_context_object({"a": 1})
        assert not is_context_object([{"a": 1}])
        assert not is_context_object("text")

    def test_absent_is_falsy_and_distinct_from_none(self) -> None:
        """Test the ABSENT sentinel."""
        assert not ABSENT
        assert ABSENT is not None
        assert repr(ABSENT) == "ABSENT"


class TestPaths:
    """Tests for dot-path helpers."""

    def test_split_path(self) -> None:
        """Test splitting a well-formed path."""
        assert split_path("a.b.c") == ["a", "b", "c"]

    @pytest.mark.parametrize("path", ["", "a..b", ".a", "a.", "a. .b"])
    def test_malformed_paths(self, path: str) -> None:
        """Test malformed paths raise InvalidPathError."""
        with pytest.raises(InvalidPathError) as exc_info:
            split_path(path)
        assert exc_info.value.code == "INVALID_PATH"

    def test_leaf_paths(self) -> None:
        """Test leaf path listing."""
        tree = {"a": {"b": 1, "c": {"d": [1]}}, "e": {}}
        assert leaf_paths(tree) == ["a.b", "a.c.d", "e"]

    def test_object_paths(self) -> None:
        """Test intermediate and leaf paths are listed depth-first."""
        assert object_paths({"a": {"b": 1}, "c": [{"d": 1}]}) == ["a", "a.b", "c"]

    @pytest.mark.parametrize("tree", [{"a.b": 1}, {"a": {"": 1}}, {"a": {" ": {"c": 1}}}])
    def test_check_keys_rejects_unaddressable_keys(self, tree: dict) -> None:
        """Test keys that are not a single path segment are rejected."""
        with pytest.raises(InvalidPathError):
            check_keys(tree)

    def test_check_keys_ignores_array_contents(self) -> None:
        """Test objects inside arrays are not addressable and keep their keys."""
        check_keys({"files": [{"notes.txt": 1}]})


class TestGet:
    """Tests for ContextStore.get."""

    def test_get_nested_value(self, store: ContextStore) -> None:
        """Test walking nested objects."""
        assert store.get("preferences.values.sustainability") == "high"

    def test_missing_key_is_absent(self, store: ContextStore) -> None:
        """Test a missing key resolves to ABSENT."""
        assert store.get("preferences.unknown") is ABSENT

    def test_walk_through_scalar_is_absent(self, store: ContextStore) -> None:
        """Test walking through a non-object resolves to ABSENT."""
        assert store.get("identity.name.first") is ABSENT

    def test_malformed_path_is_absent(self, store: ContextStore) -> None:
        """Test get never raises on a malformed path."""
        assert store.get("a..b") is ABSENT

    def test_null_value_is_not_absent(self) -> None:
        """Test a stored null is distinguishable from a missing key."""
        store = ContextStore({"a": None})
        assert store.get("a") is None
        assert store.has("a")

    def test_get_returns_copy(self, store: ContextStore) -> None:
        """Test mutating a returned sub-tree does not touch the store."""
        identity = store.get("identity")
        identity["name"] = "Mallory"
        assert store.get("identity.name") == "Ada"


class TestFilter:
    """Tests for ContextStore.filter."""

    def test_filter_keeps_path_shape(self, store: ContextStore) -> None:
        """Test a nested section is projected at its path."""
        assert store.filter(["preferences.values"]) == {
            "preferences": {"values": {"sustainability": "high"}}
        }

    def test_filter_merges_sibling_sections(self, store: ContextStore) -> None:
        """Test two sections under one parent share the parent object."""
        projected = store.filter(["preferences.values", "preferences.domains"])
        assert projected == {
            "preferences": {"values": {"sustainability": "high"}, "domains": ["books", "travel"]}
        }

    def test_filter_skips_missing(self, store: ContextStore) -> None:
        """Test unresolvable sections are left out."""
        assert store.filter(["identity.name", "nope"]) == {"identity": {"name": "Ada"}}

    def test_filter_wildcard(self, store: ContextStore) -> None:
        """Test the wildcard returns the whole tree."""
        assert store.filter(["*"]) == store.snapshot()


class TestKeys:
    """Tests for ContextStore.all_keys."""

    def test_all_keys_depth_first(self) -> None:
        """Test intermediate and leaf keys are listed depth-first."""
        store = ContextStore({"a": {"b": 1, "c": {"d": 2}}, "e": [1, 2]})
        assert store.all_keys() == ["a", "a.b", "a.c", "a.c.d", "e"]

    def test_metadata_not_in_keys(self, store: ContextStore) -> None:
        """Test bookkeeping never shows up as context keys."""
        assert "update_count" not in store.all_keys()
        assert store.update_count == 1
        assert store.sources == ["seed"]


class TestSet:
    """Tests for ContextStore.set."""

    def test_set_creates_intermediate_objects(self) -> None:
        """Test missing parents are created."""
        store = ContextStore()
        store.set("a.b.c", 1)
        assert store.snapshot() == {"a": {"b": {"c": 1}}}

    def test_set_replaces_scalar_parent(self) -> None:
        """Test a scalar on the path is replaced by an object."""
        store = ContextStore({"a": 1})
        store.set("a.b", 2)
        assert store.get("a") == {"b": 2}

    def test_set_rejects_malformed_path(self) -> None:
        """Test administrative set fails fast."""
        with pytest.raises(InvalidPathError):
            ContextStore().set("a..b", 1)

    def test_set_updates_timestamp(self) -> None:
        """Test updated_at moves on mutation."""
        store = ContextStore()
        assert store.updated_at is None
        store.set("a", 1)
        assert store.updated_at is not None


class TestMerge:
    """Tests for deep merge."""

    def test_merge_into_empty_store(self) -> None:
        """Test a write into an empty store."""
        store = ContextStore()
        store.merge({"preferences": {"values": {"sustainability": "high"}}}, source="assistant")
        assert store.get("preferences.values.sustainability") == "high"
        assert store.sources == ["assistant"]

    def test_objects_merge_recursively(self, store: ContextStore) -> None:
        """Test sibling keys survive a nested merge."""
        store.merge({"identity": {"role": "manager"}})
        assert store.get("identity") == {"name": "Ada", "role": "manager"}

    def test_scalar_update_replaces(self) -> None:
        """Test scalars are overwritten."""
        assert deep_merge({"a": 1}, {"a": "x"}) == {"a": "x"}

    def test_type_change_replaces(self) -> None:
        """Test an object replaced by a scalar and vice versa."""
        assert deep_merge({"a": {"b": 1}}, {"a": 5}) == {"a": 5}
        assert deep_merge({"a": 5}, {"a": {"b": 1}}) == {"a": {"b": 1}}

    def test_scalar_arrays_union(self) -> None:
        """Test scalar arrays are unioned without duplicates, order kept."""
        merged = deep_merge({"tags": ["a", "b"]}, {"tags": ["b", "c"]})
        assert merged == {"tags": ["a", "b", "c"]}

    def test_union_distinguishes_bool_from_number(self) -> None:
        """Test True and 1 are different elements."""
        assert deep_merge({"x": [1]}, {"x": [True]}) == {"x": [1, True]}

    def test_object_arrays_concatenate(self) -> None:
        """Test arrays holding objects are concatenated."""
        merged = deep_merge({"items": [{"id": 1}]}, {"items": [{"id": 1}]})
        assert merged == {"items": [{"id": 1}, {"id": 1}]}

    def test_merge_idempotent_for_scalars_and_objects(self) -> None:
        """Test merging the same update twice equals merging it once."""
        update = {"a": {"b": 1, "tags": ["x", "y"]}, "c": "z"}
        once = deep_merge({"a": {"tags": ["w"]}}, update)
        twice = deep_merge(deep_merge({"a": {"tags": ["w"]}}, update), update)
        assert once == twice

    def test_merge_does_not_alias_update(self) -> None:
        """Test later changes to the update do not leak into the store."""
        store = ContextStore()
        update = {"a": {"b": [1]}}
        store.merge(update)
        update["a"]["b"].append(2)
        assert store.get("a.b") == [1]

    def test_merge_rejects_non_object(self) -> None:
        """Test the root update must be an object."""
        with pytest.raises(TypeError):
            ContextStore().merge(["a"])  # type: ignore[arg-type]

    def test_merge_counts_updates(self) -> None:
        """Test update_count increments per merge."""
        store = ContextStore()
        store.merge({"a": 1}, source="x")
        store.merge({"b": 1}, source="x")
        assert store.update_count == 2
        assert store.sources == ["x"]


class TestAdministrative:
    """Tests for replace/clear/snapshot."""

    def test_replace(self, store: ContextStore) -> None:
        """Test replacing the whole tree."""
        store.replace({"only": True})
        assert store.all_keys() == ["only"]

    def test_clear(self, store: ContextStore) -> None:
        """Test clearing resets tree and counters."""
        store.clear()
        assert store.snapshot() == {}
        assert store.update_count == 0
        assert store.sources == []

    def test_snapshot_is_copy(self, store: ContextStore) -> None:
        """Test the snapshot is detached from the store."""
        snap = store.snapshot()
        snap["identity"]["name"] = "Eve"
        assert store.get("identity.name") == "Ada"


class TestKeyValidation:
    """Tests that stored keys stay addressable by dot-paths."""

    def test_merge_rejects_dotted_key(self, store: ContextStore) -> None:
        """Test a dotted key is not stored as one literal key."""
        with pytest.raises(InvalidPathError):
            store.merge({"preferences.values": {"evil": 1}})
        assert store.all_keys().count("preferences.values") == 1
        assert store.get("preferences.values") == {"sustainability": "high"}
        assert store.update_count == 1

    def test_merge_rejects_nested_blank_key(self) -> None:
        """Test keys are checked at every depth."""
        with pytest.raises(InvalidPathError):
            ContextStore().merge({"a": {"b": {"": 1}}})

    def test_set_rejects_dotted_key_in_value(self) -> None:
        """Test set checks the keys of the value it stores."""
        store = ContextStore()
        with pytest.raises(InvalidPathError):
            store.set("a", {"b.c": 1})
        assert store.snapshot() == {}

    def test_replace_rejects_dotted_key(self, store: ContextStore) -> None:
        """Test replace leaves the tree untouched on a bad key."""
        with pytest.raises(InvalidPathError):
            store.replace({"x.y": 1})
        assert store.get("identity.name") == "Ada"
