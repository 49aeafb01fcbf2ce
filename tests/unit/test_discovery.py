"""Tests for capabilities/discovery.py - the discovery façade."""

from __future__ import annotations

import inspect
from collections.abc import Callable
from typing import Any

import pytest

from skillgate.capabilities.models import (
    SKILL_MIME_TYPE,
    EvaluationContext,
    ManualSkill,
    Prompt,
    PromptArgument,
    Resource,
    Static,
    Tool,
    names_of,
)
from skillgate.core.config import AppConfig, RouterConfig
from skillgate.core.result import NotFoundError, SkillgateError
from skillgate.server import SkillgateServer


class TestListTools:
    @pytest.mark.asyncio
    async def test_hidden_and_predicate_tools(self, scenario_server: SkillgateServer) -> None:
        discovery = scenario_server.build()
        assert names_of(await discovery.list_tools({})) == ["a"]
        assert names_of(await discovery.list_tools({"isAdmin": True})) == ["a", "c"]

    @pytest.mark.asyncio
    async def test_listing_is_a_coroutine(self, scenario_server: SkillgateServer) -> None:
        pending = scenario_server.build().list_tools({})
        assert inspect.iscoroutine(pending)
        assert names_of(await pending) == ["a"]

    @pytest.mark.asyncio
    async def test_summaries_carry_schema(self, scenario_server: SkillgateServer) -> None:
        (summary,) = await scenario_server.build().list_tools({})
        assert summary.description == "Tool A"
        assert summary.to_mcp()["inputSchema"] == {"type": "object", "properties": {}}

    @pytest.mark.asyncio
    async def test_context_provider_called_once(
        self, scenario_factory: Callable[..., SkillgateServer]
    ) -> None:
        calls = 0

        async def provider() -> dict[str, Any]:
            nonlocal calls
            calls += 1
            return {"isAdmin": True}

        discovery = scenario_factory(context_provider=provider).build()
        assert names_of(await discovery.list_tools()) == ["a", "c"]
        assert calls == 1

        # An explicit context wins over the provider.
        assert names_of(await discovery.list_tools({})) == ["a"]
        assert calls == 1

    @pytest.mark.asyncio
    async def test_flatten_disabled_hides_router_members(
        self, scenario_factory: Callable[..., SkillgateServer]
    ) -> None:
        server = scenario_factory(config=AppConfig(routers=RouterConfig(flatten=False)))
        server.add_tool(Tool(name="d", description="Tool D", handler=lambda: "d"))
        server.add_router("r1", tools=["a"])
        discovery = server.build()

        assert names_of(await discovery.list_tools({})) == ["d", "r1"]
        assert await discovery.invoke("a") == "a"


class TestInvoke:
    @pytest.mark.asyncio
    async def test_hidden_tool_is_invokable(self, scenario_server: SkillgateServer) -> None:
        discovery = scenario_server.build()
        assert await discovery.invoke("b") == "b"
        assert await discovery.invoke("c", {}, {}) == "c"

    @pytest.mark.asyncio
    async def test_unknown_tool(self, scenario_server: SkillgateServer) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            await scenario_server.build().invoke("zzz")
        assert exc_info.value.kind == "tool"
        assert "a, b, c" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_sync_and_async_handlers_with_args(self) -> None:
        server = SkillgateServer("math")

        @server.tool()
        def add(x: int, y: int) -> int:
            return x + y

        @server.tool()
        async def mul(x: int, y: int) -> int:
            return x * y

        discovery = server.build()
        assert await discovery.invoke("add", {"x": 2, "y": 3}) == 5
        assert await discovery.invoke("mul", {"x": 2, "y": 3}) == 6

    @pytest.mark.asyncio
    async def test_context_injected_into_handler(self) -> None:
        server = SkillgateServer("ctx")

        @server.tool()
        def whoami(context: EvaluationContext) -> str:
            return str(context.get("user", "anonymous"))

        discovery = server.build()
        assert await discovery.invoke("whoami", {}, {"user": "ada"}) == "ada"
        assert await discovery.invoke("whoami") == "anonymous"

    @pytest.mark.asyncio
    async def test_tool_without_handler(self) -> None:
        server = SkillgateServer("bare")
        server.add_tool(Tool(name="noop"))
        with pytest.raises(SkillgateError, match="no handler"):
            await server.build().invoke("noop")

    @pytest.mark.asyncio
    async def test_namespaced_router_member(
        self, scenario_factory: Callable[..., SkillgateServer]
    ) -> None:
        server = scenario_factory()
        server.add_router("r1", tools=["a", "b"])
        discovery = server.build()

        assert await discovery.invoke("r1__a") == "a"
        assert await discovery.invoke("r1__b") == "b"
        with pytest.raises(NotFoundError):
            await discovery.invoke("r1__c")

    @pytest.mark.asyncio
    async def test_custom_namespace_separator(
        self, scenario_factory: Callable[..., SkillgateServer]
    ) -> None:
        server = scenario_factory(config=AppConfig(routers=RouterConfig(namespace_separator=".")))
        server.add_router("r1", tools=["a"])
        assert await server.build().invoke("r1.a") == "a"


class TestResources:
    @pytest.mark.asyncio
    async def test_skills_always_listed(self, skill_server: SkillgateServer) -> None:
        skill_server.add_resource(
            Resource(uri="data://hidden", visibility=Static(True), content="secret")
        )
        skill_server.add_skill(ManualSkill(name="guide", content="# Guide"))
        discovery = skill_server.build()

        listed = await discovery.list_resources({})
        assert [r.uri for r in listed] == ["skill://S", "skill://guide"]
        assert all(r.mime_type == SKILL_MIME_TYPE for r in listed)
        assert listed[0].description == "Working with a and b"

    @pytest.mark.asyncio
    async def test_read_skill(self, skill_server: SkillgateServer) -> None:
        discovery = skill_server.build()
        contents = await discovery.read_resource("skill://S")

        assert contents.mime_type == "text/markdown"
        assert "Tool A" in contents.text
        assert "Tool B" in contents.text

    @pytest.mark.asyncio
    async def test_skill_read_after_description_change(
        self, skill_server: SkillgateServer
    ) -> None:
        discovery = skill_server.build()
        first = (await discovery.read_resource("skill://S")).text
        assert first == (await discovery.read_resource("skill://S")).text

        skill_server.registry.update_description("tool", "a", "Tool A, revised")
        updated = (await discovery.read_resource("skill://S")).text
        assert "Tool A, revised" in updated
        assert "Tool B" in updated

    @pytest.mark.asyncio
    async def test_hidden_resource_is_readable(self) -> None:
        async def load() -> str:
            return '{"rows": 3}'

        server = SkillgateServer("data")
        server.add_resource(
            Resource(
                uri="data://stats",
                mime_type="application/json",
                content=load,
                visibility=Static(True),
                skills=("data",),
            )
        )
        server.add_resource(Resource(uri="data://plain", content="hello"))
        server.add_skill(ManualSkill(name="data", content="# Data"))
        discovery = server.build()

        contents = await discovery.read_resource("data://stats")
        assert contents.text == '{"rows": 3}'
        assert contents.mime_type == "application/json"
        assert (await discovery.read_resource("data://plain")).text == "hello"
        assert [r.uri for r in await discovery.list_resources({})] == [
            "data://plain",
            "skill://data",
        ]

    @pytest.mark.asyncio
    async def test_unknown_uri(self, skill_server: SkillgateServer) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            await skill_server.build().read_resource("skill://nope")
        assert "skill://S" in str(exc_info.value)


class TestPrompts:
    @pytest.mark.asyncio
    async def test_prompt_visibility_and_rendering(self) -> None:
        server = SkillgateServer("prompts")
        server.add_prompt(
            Prompt(
                name="greet",
                description="Say hello",
                arguments=(PromptArgument("who"),),
                handler=lambda who: f"Hello, {who}!",
            )
        )
        server.add_prompt(Prompt(name="secret", description="Internal", visibility=Static(True)))
        discovery = server.build()

        listed = await discovery.list_prompts({})
        assert names_of(listed) == ["greet"]
        assert listed[0].args[0].name == "who"
        assert await discovery.get_prompt("greet", {"who": "Ada"}) == "Hello, Ada!"
        assert await discovery.get_prompt("secret") == "Internal"

    @pytest.mark.asyncio
    async def test_unknown_prompt(self) -> None:
        with pytest.raises(NotFoundError):
            await SkillgateServer("empty").build().get_prompt("missing")
