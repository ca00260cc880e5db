"""Tests for the tri-state permission model and PermissionRegistry."""

from __future__ import annotations

import pytest
from contextgate.exceptions import InvalidPathError
from contextgate.permissions import (
    ALLOW_ALL,
    ASK_ALL,
    NEVER_ALL,
    AgentContext,
    DefaultPolicy,
    GrantOfAuthority,
    KeywordAuthorityGenerator,
    Operation,
    Permission,
    PermissionRegistry,
    PermissionValue,
    generate_agent_context,
    generate_context_from_keys,
    parse_agent_intent,
    summarize_agent_context,
)

KEYS = ["identity", "identity.name", "preferences", "shared_notes", "private_health"]


class TestPermissionValue:
    """Tests for PermissionValue helpers."""

    def test_predicates(self) -> None:
        """Test allowed / confirmation / denied predicates."""
        assert PermissionValue.ALLOW.is_allowed
        assert PermissionValue.ASK.needs_confirmation
        assert PermissionValue.NEVER.is_denied
        assert not PermissionValue.ASK.is_allowed

    def test_permission_for_operation(self) -> None:
        """Test selecting the read or write half."""
        perm = Permission(read="Allow", write="Never")
        assert perm.for_operation(Operation.READ) is PermissionValue.ALLOW
        assert perm.for_operation("write") is PermissionValue.NEVER

    def test_permission_defaults_to_ask(self) -> None:
        """Test an empty Permission is {Ask, Ask}."""
        assert Permission() == ASK_ALL


class TestDefaultPolicyParsing:
    """Tests for DefaultPolicy.parse."""

    @pytest.mark.parametrize(
        "raw",
        ["allow-list", "ALLOW_LIST", "AllowList", DefaultPolicy.ALLOW_LIST],
    )
    def test_spellings(self, raw: str) -> None:
        """Test accepted spellings of one policy."""
        assert DefaultPolicy.parse(raw) is DefaultPolicy.ALLOW_LIST

    def test_invalid(self) -> None:
        """Test unknown policies are rejected."""
        with pytest.raises(ValueError, match="Invalid default policy"):
            DefaultPolicy.parse("allow-some")


class TestPolicyResolution:
    """Tests for get_permission under each default policy."""

    def test_share_everything_overrides_stored(self) -> None:
        """Test share-everything ignores stored values, even Never."""
        registry = PermissionRegistry(DefaultPolicy.SHARE_EVERYTHING)
        registry.set_permission("identity", NEVER_ALL)
        assert registry.get_permission("identity") == ALLOW_ALL
        assert registry.get_permission("unknown") == ALLOW_ALL

    def test_allow_list_requires_an_allow(self) -> None:
        """Test allow-list honors only stored values containing an Allow."""
        registry = PermissionRegistry(DefaultPolicy.ALLOW_LIST)
        registry.set_permission("a", {"read": "Ask", "write": "Never"})
        registry.set_permission("b", {"read": "Allow", "write": "Never"})
        assert registry.get_permission("a") == NEVER_ALL
        assert registry.get_permission("b") == Permission(read="Allow", write="Never")
        assert registry.get_permission("missing") == NEVER_ALL

    def test_ask_permission_falls_back_to_ask(self) -> None:
        """Test ask-permission uses stored values, else {Ask, Ask}."""
        registry = PermissionRegistry(DefaultPolicy.ASK_PERMISSION)
        registry.set_permission("a", NEVER_ALL)
        assert registry.get_permission("a") == NEVER_ALL
        assert registry.get_permission("missing") == ASK_ALL

    def test_policy_change_does_not_rewrite_store(self) -> None:
        """Test switching policy leaves stored permissions untouched."""
        registry = PermissionRegistry(DefaultPolicy.ASK_PERMISSION)
        registry.set_permission("a", NEVER_ALL)
        registry.set_default_policy("share-everything")
        assert registry.get_stored_permission("a") == NEVER_ALL
        registry.set_default_policy(DefaultPolicy.ASK_PERMISSION)
        assert registry.get_permission("a") == NEVER_ALL

    def test_check_permission(self) -> None:
        """Test resolving one half of the pair."""
        registry = PermissionRegistry(DefaultPolicy.ALLOW_LIST)
        registry.set_permission("a", Permission(read="Allow", write="Ask"))
        assert registry.check_permission("a", Operation.READ) is PermissionValue.ALLOW
        assert registry.check_permission("a", Operation.WRITE) is PermissionValue.ASK


class TestMutation:
    """Tests for setters and back-filling."""

    def test_set_permission_rejects_bad_path(self) -> None:
        """Test malformed keys fail fast."""
        with pytest.raises(InvalidPathError):
            PermissionRegistry().set_permission("a..b", ALLOW_ALL)

    def test_partial_setter_keeps_other_half(self) -> None:
        """Test set_read_permission preserves the stored write half."""
        registry = PermissionRegistry(DefaultPolicy.ASK_PERMISSION)
        registry.set_permission("a", Permission(read="Never", write="Allow"))
        registry.set_read_permission("a", "Allow")
        assert registry.get_stored_permission("a") == ALLOW_ALL

    def test_partial_setter_uses_structural_default(self) -> None:
        """Test the untouched half of a new key comes from the policy default."""
        registry = PermissionRegistry(DefaultPolicy.ALLOW_LIST)
        registry.set_write_permission("a", PermissionValue.ALLOW)
        assert registry.get_stored_permission("a") == Permission(read="Never", write="Allow")

    def test_partial_setter_ignores_share_everything_override(self) -> None:
        """Test share-everything does not leak Allow into the stored half."""
        registry = PermissionRegistry(DefaultPolicy.SHARE_EVERYTHING)
        registry.set_read_permission("a", "Never")
        assert registry.get_stored_permission("a") == Permission(read="Never", write="Allow")

    def test_initialize_default_permissions(self) -> None:
        """Test back-filling only keys without a stored entry."""
        registry = PermissionRegistry(DefaultPolicy.ASK_PERMISSION)
        registry.set_permission("identity", ALLOW_ALL)
        filled = registry.initialize_default_permissions(["identity", "preferences"])
        assert filled == 1
        assert registry.get_stored_permission("identity") == ALLOW_ALL
        assert registry.get_stored_permission("preferences") == ASK_ALL

    def test_authority_round_trip_is_copy(self) -> None:
        """Test get_authority returns a detached copy."""
        registry = PermissionRegistry()
        registry.set_permission("a", ALLOW_ALL)
        authority = registry.get_authority()
        authority.permissions["b"] = ALLOW_ALL
        assert "b" not in registry

        registry.set_authority(GrantOfAuthority(permissions={"c": NEVER_ALL}))
        assert "a" not in registry
        assert registry.get_stored_permission("c") == NEVER_ALL

    def test_clear(self) -> None:
        """Test clearing stored permissions keeps the policy."""
        registry = PermissionRegistry(DefaultPolicy.ASK_PERMISSION)
        registry.set_permission("a", ALLOW_ALL)
        registry.clear()
        assert "a" not in registry
        assert registry.default_policy is DefaultPolicy.ASK_PERMISSION


class TestSectionView:
    """Tests for the derived boolean section view."""

    def test_section_allowed_when_all_constituents_allow(self) -> None:
        """Test a section with every constituent key readable."""
        registry = PermissionRegistry(DefaultPolicy.ALLOW_LIST)
        registry.set_permission("identity", Permission(read="Allow", write="Never"))
        registry.set_permission("identity.name", Permission(read="Allow", write="Never"))
        assert registry.is_section_allowed("identity", KEYS)

    def test_section_denied_when_a_child_is_not_allowed(self) -> None:
        """Test one unreadable child closes the section."""
        registry = PermissionRegistry(DefaultPolicy.ALLOW_LIST)
        registry.set_permission("identity", Permission(read="Allow", write="Never"))
        assert not registry.is_section_allowed("identity", KEYS)

    def test_allowed_sections(self) -> None:
        """Test listing allowed sections in input order."""
        registry = PermissionRegistry(DefaultPolicy.ALLOW_LIST)
        registry.set_permission("preferences", Permission(read="Allow", write="Never"))
        registry.set_permission("identity.name", Permission(read="Allow", write="Never"))
        assert registry.allowed_sections(KEYS) == ["identity.name", "preferences"]


class TestKeywordHeuristics:
    """Tests for generate_authority_for_agent."""

    def _generate(self, text: str) -> dict[str, Permission]:
        registry = PermissionRegistry()
        authority = registry.generate_authority_for_agent(AgentContext(context=text, agent_id="a1"), KEYS)
        assert authority.metadata.agent_id == "a1"
        return authority.permissions

    def test_baseline(self) -> None:
        """Test a neutral description yields {Ask, Never}."""
        perms = self._generate("a shopping helper")
        assert perms["preferences"] == Permission(read="Ask", write="Never")

    def test_read_only(self) -> None:
        """Test read-only upgrades reads."""
        perms = self._generate("read-only assistant")
        assert perms["preferences"] == Permission(read="Allow", write="Never")

    def test_edit(self) -> None:
        """Test edit wording allows read and asks for write."""
        perms = self._generate("may edit things")
        assert perms["preferences"] == Permission(read="Allow", write="Ask")

    def test_full_access(self) -> None:
        """Test full access wording allows both."""
        perms = self._generate("full access agent")
        assert perms["preferences"] == ALLOW_ALL

    def test_public_keys_readable(self) -> None:
        """Test public/shared keys get read Allow."""
        perms = self._generate("a shopping helper")
        assert perms["shared_notes"].read is PermissionValue.ALLOW

    def test_key_mention(self) -> None:
        """Test mentioning a key with update wording allows writing it."""
        perms = self._generate("please update preferences")
        assert perms["preferences"] == ALLOW_ALL
        assert perms["identity"] == Permission(read="Allow", write="Ask")

    def test_sensitive_always_locked(self) -> None:
        """Test sensitive keys are {Never, Never} regardless of wording."""
        perms = self._generate("full access, update private_health")
        assert perms["private_health"] == NEVER_ALL

    def test_generation_is_not_applied(self) -> None:
        """Test the generated map is returned, not stored."""
        registry = PermissionRegistry()
        registry.generate_authority_for_agent({"context": "full access"}, KEYS)
        assert "preferences" not in registry

    def test_generator_is_swappable(self) -> None:
        """Test a custom generator behind the protocol."""

        class AllowEverything:
            def generate(self, agent_context, keys):
                return {key: ALLOW_ALL for key in keys}

        registry = PermissionRegistry(generator=AllowEverything())
        authority = registry.generate_authority_for_agent({"context": "anything"}, ["x"])
        assert authority.permissions == {"x": ALLOW_ALL}

    def test_default_generator_type(self) -> None:
        """Test the keyword generator is the default."""
        assert isinstance(KeywordAuthorityGenerator(), KeywordAuthorityGenerator)


class TestAgentContextHelpers:
    """Tests for agent-context helper functions."""

    def test_parse_agent_intent(self) -> None:
        """Test extracting keys, operations and purpose."""
        intent = parse_agent_intent("Read and update preferences. Purpose: book a trip", KEYS)
        assert intent.requested_keys == ["preferences"]
        assert intent.operations == [Operation.READ, Operation.WRITE]
        assert intent.purpose == "book a trip"

    def test_parse_agent_intent_defaults_to_read(self) -> None:
        """Test no operation wording means read."""
        intent = parse_agent_intent("hello", KEYS)
        assert intent.operations == [Operation.READ]
        assert intent.requested_keys == []

    def test_generate_agent_context(self) -> None:
        """Test describing an agent from a context view."""
        ctx = generate_agent_context(
            agent_id="shopper",
            purpose="compare prices",
            user_context={"identity": {"name": "Ada"}, "preferences": {}},
        )
        assert ctx.context == "User: Ada, Preferences available. Purpose: compare prices"
        assert ctx.agent_id == "shopper"

    def test_generate_agent_context_empty(self) -> None:
        """Test the fallback description."""
        assert generate_agent_context().context == "General agent context"

    def test_generate_context_from_keys(self) -> None:
        """Test describing an agent by the values it has seen."""
        ctx = generate_context_from_keys({"city": "Oslo"}, agent_id="a")
        assert ctx.context == 'Agent context with access to: city: "Oslo"'
        assert generate_context_from_keys({}).context == "Agent context with no specific data access"

    def test_summarize(self) -> None:
        """Test the multi-line summary."""
        summary = summarize_agent_context(AgentContext(context="c", agent_id="a", purpose="p"))
        assert summary.splitlines()[:3] == ["Agent: a", "Purpose: p", "Context: c"]
