"""Tests for capabilities/routers.py - router compilation and invocation."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from skillgate.capabilities.models import (
    Absent,
    EvaluationContext,
    Predicate,
    RouterDefinition,
    Static,
    Tool,
    ToolSummary,
    names_of,
)
from skillgate.capabilities.registry import CapabilityRegistry
from skillgate.capabilities.routers import RouterCompiler, compile_routers, suggest
from skillgate.core.result import (
    DuplicateRouterError,
    RegistrationError,
    RouterArgumentError,
    RouterNameConflictError,
    RouterNestingError,
    UnknownToolReferenceError,
)
from skillgate.server import SkillgateServer


def _admin_only(ctx: EvaluationContext) -> bool:
    return not ctx.get("isAdmin")


@pytest.fixture
def registry() -> CapabilityRegistry:
    reg = CapabilityRegistry()
    reg.register(Tool(name="a", description="Tool A"))
    reg.register(Tool(name="b", description="Tool B", visibility=Static(True)))
    reg.register(Tool(name="c", description="Tool C", visibility=Predicate(_admin_only)))
    return reg


class TestSuggest:
    def test_substring_either_direction(self) -> None:
        assert suggest("bb", ["a", "b", "c"]) == ["b"]
        assert suggest("git", ["git_status", "commit"]) == ["git_status"]

    def test_case_insensitive(self) -> None:
        assert suggest("Search", ["search_notes"]) == ["search_notes"]

    def test_no_match(self) -> None:
        assert suggest("zzz", ["a", "b"]) == []


class TestValidation:
    def test_unknown_member_message(self, registry: CapabilityRegistry) -> None:
        definition = RouterDefinition(name="r", tools=("a", "bb"))
        with pytest.raises(UnknownToolReferenceError) as exc_info:
            compile_routers([definition], registry)

        error = exc_info.value
        message = str(error)
        assert "bb" in message
        assert "['a', 'b', 'c']" in message
        assert "Did you mean: 'b'" in message
        assert error.unknown == ["bb"]
        assert error.suggestions == {"bb": ["b"]}
        assert registry.router_names() == []

    def test_unknown_member_without_suggestion(self, registry: CapabilityRegistry) -> None:
        with pytest.raises(UnknownToolReferenceError) as exc_info:
            compile_routers([RouterDefinition(name="r", tools=("zzz",))], registry)
        assert exc_info.value.suggestions == {}
        assert "Did you mean" not in str(exc_info.value)

    def test_duplicate_names_install_nothing(self, registry: CapabilityRegistry) -> None:
        definitions = [
            RouterDefinition(name="x", tools=("a",)),
            RouterDefinition(name="x", tools=("b",)),
        ]
        with pytest.raises(DuplicateRouterError) as exc_info:
            compile_routers(definitions, registry)

        assert "'x'" in str(exc_info.value)
        assert exc_info.value.registered == ["x"]
        assert registry.router_names() == []
        assert registry.tool("x") is None

    def test_validates_everything_before_installing(self, registry: CapabilityRegistry) -> None:
        definitions = [
            RouterDefinition(name="good", tools=("a",)),
            RouterDefinition(name="bad", tools=("missing",)),
        ]
        with pytest.raises(UnknownToolReferenceError):
            compile_routers(definitions, registry)
        assert registry.tool("good") is None

    def test_name_conflict_with_plain_tool(self, registry: CapabilityRegistry) -> None:
        with pytest.raises(RouterNameConflictError):
            compile_routers([RouterDefinition(name="a", tools=("b",))], registry)

    def test_router_cannot_contain_router(self, registry: CapabilityRegistry) -> None:
        definitions = [
            RouterDefinition(name="inner", tools=("a",)),
            RouterDefinition(name="outer", tools=("inner",)),
        ]
        with pytest.raises(RouterNestingError) as exc_info:
            compile_routers(definitions, registry)
        assert exc_info.value.member == "inner"

    def test_router_errors_are_registration_errors(self, registry: CapabilityRegistry) -> None:
        with pytest.raises(RegistrationError):
            compile_routers([RouterDefinition(name="r", tools=("nope",))], registry)


class TestInstallation:
    def test_router_tool_shape(self, registry: CapabilityRegistry) -> None:
        definition = RouterDefinition(name="r1", tools=("a", "b"), metadata={"team": "ops"})
        (tool,) = RouterCompiler(registry).compile([definition])

        assert tool.name == "r1"
        assert "r1" in tool.description
        assert tool.schema == {"type": "object", "properties": {}}
        assert tool.annotations == {"router": True, "members": ["a", "b"], "team": "ops"}
        assert tool.context_param == "context"
        assert tool.visibility == Absent()
        assert registry.router_members("r1") == ("a", "b")

    def test_explicit_description(self, registry: CapabilityRegistry) -> None:
        (tool,) = compile_routers(
            [RouterDefinition(name="r", tools=("a",), description="Everything about A")], registry
        )
        assert tool.description == "Everything about A"

    def test_overlapping_membership(self, registry: CapabilityRegistry) -> None:
        compile_routers(
            [
                RouterDefinition(name="r1", tools=("a", "b")),
                RouterDefinition(name="r2", tools=("b", "c")),
            ],
            registry,
        )
        assert registry.routers_for("b") == ["r1", "r2"]

    @pytest.mark.asyncio
    async def test_empty_router_lists_nothing(self, registry: CapabilityRegistry) -> None:
        (tool,) = compile_routers([RouterDefinition(name="empty")], registry)
        assert tool.handler is not None
        assert await tool.handler(context={}) == []


class TestServerRouters:
    @pytest.mark.asyncio
    async def test_routers_always_listed(
        self, scenario_factory: Callable[..., SkillgateServer]
    ) -> None:
        server = scenario_factory()
        server.add_router("r1", tools=["a", "b"])
        server.add_router("r2", tools=["b", "c"])

        listed = await server.build().list_tools({})
        assert names_of(listed) == ["a", "r1", "r2"]

    @pytest.mark.asyncio
    async def test_invocation_respects_caller_visibility(
        self, scenario_factory: Callable[..., SkillgateServer]
    ) -> None:
        server = scenario_factory()
        server.add_router("r1", tools=["a", "b"])
        server.add_router("r2", tools=["b", "c"])
        discovery = server.build()

        r1 = await discovery.invoke("r1", {}, {})
        assert all(isinstance(item, ToolSummary) for item in r1)
        assert names_of(r1) == ["a"]
        assert await discovery.invoke("r2", {}, {}) == []
        assert names_of(await discovery.invoke("r2", {}, {"isAdmin": True})) == ["c"]

    @pytest.mark.asyncio
    async def test_router_reflects_description_changes(
        self, scenario_factory: Callable[..., SkillgateServer]
    ) -> None:
        server = scenario_factory()
        server.add_router("r1", tools=["a"])
        discovery = server.build()

        server.registry.update_description("tool", "a", "Tool A, revised")
        (summary,) = await discovery.invoke("r1", {}, {})
        assert summary.description == "Tool A, revised"

    @pytest.mark.asyncio
    async def test_router_rejects_arguments(
        self, scenario_factory: Callable[..., SkillgateServer]
    ) -> None:
        server = scenario_factory()
        server.add_router("r1", tools=["a"])
        discovery = server.build()

        with pytest.raises(RouterArgumentError, match="takes no arguments") as exc_info:
            await discovery.invoke("r1", {"x": 1, "limit": 5})
        assert exc_info.value.router == "r1"
        assert exc_info.value.arguments == ["limit", "x"]

    def test_duplicate_add_keeps_first(
        self, scenario_factory: Callable[..., SkillgateServer]
    ) -> None:
        server = scenario_factory()
        server.add_router("x", tools=["a"])
        with pytest.raises(DuplicateRouterError):
            server.add_router("x", tools=["b"])

        assert server.router_names() == ["x"]
        server.build()
        assert server.registry.router_members("x") == ("a",)

    def test_unknown_member_fails_build(
        self, scenario_factory: Callable[..., SkillgateServer]
    ) -> None:
        server = scenario_factory()
        server.add_router("r", tools=["a", "bb"])
        with pytest.raises(UnknownToolReferenceError):
            server.build()
        assert not server.built

    def test_cannot_add_after_build(self, scenario_server: SkillgateServer) -> None:
        scenario_server.build()
        with pytest.raises(RegistrationError, match="after the server was built"):
            scenario_server.add_router("late", tools=["a"])
