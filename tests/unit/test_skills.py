"""Tests for capabilities/skills.py - skill rendering."""

from __future__ import annotations

import logging

import pytest

from skillgate.capabilities.models import (
    AutoSkill,
    CapabilityKind,
    ManualSkill,
    Prompt,
    PromptArgument,
    Resource,
    Static,
    Tool,
)
from skillgate.capabilities.registry import CapabilityRegistry
from skillgate.capabilities.skills import (
    GENERATED_NOTE,
    SkillRenderer,
    render_skill,
    skill_components,
    title_case,
)
from skillgate.core.result import SkillRenderError

SEARCH_SCHEMA = {
    "type": "object",
    "properties": {
        "query": {"type": "string", "description": "Full-text query"},
        "limit": {"type": "integer"},
    },
    "required": ["query"],
}


@pytest.fixture
def registry() -> CapabilityRegistry:
    reg = CapabilityRegistry()
    reg.register(Tool(name="a", description="Alpha does things"))
    reg.register(
        Tool(
            name="search",
            description="Search the notes",
            schema=SEARCH_SCHEMA,
            visibility=Static(True),
        )
    )
    reg.register(
        Resource(
            uri="notes://index",
            name="Index",
            description="All notes",
            mime_type="application/json",
            visibility=Static(True),
        )
    )
    reg.register(
        Prompt(
            name="summarize",
            description="Summarize a note",
            arguments=(PromptArgument("note_id", "Note to summarize"),),
        )
    )
    return reg


class TestAutoSkill:
    @pytest.mark.asyncio
    async def test_layout(self, registry: CapabilityRegistry) -> None:
        skill = AutoSkill(
            name="note_taking",
            description="How to work with notes",
            tools=("search",),
            resources=("notes://index",),
            prompts=("summarize",),
        )
        rendered = await SkillRenderer(registry).render(skill)
        text = rendered.content

        assert text.startswith("# Note Taking Skill")
        assert "How to work with notes" in text
        assert GENERATED_NOTE in text
        assert text.index("## Available Tools") < text.index("## Available Resources")
        assert text.index("## Available Resources") < text.index("## Available Prompts")
        assert "### search" in text
        assert "| `query` | string | yes | Full-text query |" in text
        assert '"required": [' in text
        assert "### notes://index" in text
        assert "`application/json`" in text
        assert "| `note_id` | yes | Note to summarize |" in text
        assert rendered.warnings == []
        assert rendered.stats.tools_found == 1

    @pytest.mark.asyncio
    async def test_references_descriptions(self, registry: CapabilityRegistry) -> None:
        text = await render_skill(AutoSkill(name="S", tools=("a", "search")), registry)
        assert "Alpha does things" in text
        assert "Search the notes" in text

    @pytest.mark.asyncio
    async def test_rendering_is_idempotent(self, registry: CapabilityRegistry) -> None:
        skill = AutoSkill(name="S", tools=("a", "search"), prompts=("summarize",))
        renderer = SkillRenderer(registry)
        assert await renderer.render_text(skill) == await renderer.render_text(skill)

    @pytest.mark.asyncio
    async def test_reflects_description_changes(self, registry: CapabilityRegistry) -> None:
        skill = AutoSkill(name="S", tools=("a", "search"))
        renderer = SkillRenderer(registry)
        before = await renderer.render_text(skill)

        registry.update_description(CapabilityKind.TOOL, "a", "Alpha, now improved")
        after = await renderer.render_text(skill)

        assert "Alpha does things" in before
        assert "Alpha, now improved" in after
        assert "Alpha does things" not in after

    @pytest.mark.asyncio
    async def test_unknown_references_become_warnings(
        self, registry: CapabilityRegistry, caplog: pytest.LogCaptureFixture
    ) -> None:
        skill = AutoSkill(name="S", tools=("a", "ghost"), prompts=("missing",))
        with caplog.at_level(logging.WARNING, logger="skillgate"):
            rendered = await SkillRenderer(registry).render(skill)

        assert rendered.warnings == ["Tool not found: ghost", "Prompt not found: missing"]
        assert "## Warnings" in rendered.content
        assert "- Tool not found: ghost" in rendered.content
        assert "not registered with the server" in rendered.content
        assert rendered.stats.tools_missing == 1
        assert any("ghost" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_declared_members_follow_explicit_ones(self) -> None:
        reg = CapabilityRegistry()
        reg.register(Tool(name="first", skills=("ops",)))
        reg.register(Tool(name="second"))
        reg.register(Tool(name="third", skills=("ops", "other")))
        skill = AutoSkill(name="ops", tools=("second", "third"))

        assert skill_components(reg, skill)["tools"] == ["second", "third", "first"]
        text = await render_skill(skill, reg)
        assert text.index("### second") < text.index("### third") < text.index("### first")

    @pytest.mark.asyncio
    async def test_preamble_comes_first(self, registry: CapabilityRegistry) -> None:
        async def preamble() -> str:
            return "Read this before anything else."

        text = await render_skill(AutoSkill(name="S", tools=("a",), preamble=preamble), registry)
        assert text.startswith("Read this before anything else.")
        assert "# S Skill" in text


class TestManualSkill:
    @pytest.mark.asyncio
    async def test_content_returned_verbatim(self, registry: CapabilityRegistry) -> None:
        content = "# Deploying\n\nUse `deploy` with care.\n"
        assert await render_skill(ManualSkill(name="deploy", content=content), registry) == content

    @pytest.mark.asyncio
    async def test_sync_and_async_providers(self, registry: CapabilityRegistry) -> None:
        async def load() -> str:
            return "async body"

        assert await render_skill(ManualSkill(name="x", content=lambda: "sync body"), registry) == (
            "sync body"
        )
        assert await render_skill(ManualSkill(name="y", content=load), registry) == "async body"

    @pytest.mark.asyncio
    async def test_non_string_content_raises(self, registry: CapabilityRegistry) -> None:
        with pytest.raises(SkillRenderError):
            await render_skill(ManualSkill(name="bad", content=lambda: 42), registry)  # type: ignore


class TestHelpers:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [("note_taking", "Note Taking"), ("git-workflow", "Git Workflow"), ("ops", "Ops")],
    )
    def test_title_case(self, name: str, expected: str) -> None:
        assert title_case(name) == expected

    @pytest.mark.asyncio
    async def test_render_named(self, registry: CapabilityRegistry) -> None:
        registry.register(AutoSkill(name="S", tools=("a",)))
        rendered = await SkillRenderer(registry).render_named("S")
        assert rendered.name == "S"
        assert "### a" in rendered.content
