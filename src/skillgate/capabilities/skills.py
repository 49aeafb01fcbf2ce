"""Skill rendering.

A skill is an always-visible ``skill://<name>`` markdown resource that
documents capabilities, typically ones hidden from discovery. Manual skills
return their authored content verbatim. Auto-generated skills are rendered
on every read from the live registry: one section per referenced tool,
resource and prompt. References to names the registry does not know are
flagged in the document and reported as warnings; they never fail a render.

Rendering is a pure function of (skill, registry state). Nothing is cached,
so two reads without a registry change are byte-identical and a read after
a description change reflects the new text.
"""

from __future__ import annotations

import inspect
import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from skillgate.capabilities.models import (
    AutoSkill,
    CapabilityKind,
    ContentProvider,
    ManualSkill,
    Prompt,
    Resource,
    Skill,
    Tool,
)
from skillgate.capabilities.registry import CapabilityRegistry
from skillgate.core.console import get_logger
from skillgate.core.result import SkillRenderError

logger = get_logger("skills")

GENERATED_NOTE = "> **Note**: This manual is auto-generated from component definitions."
MISSING_NOTE = "**Warning**: This {kind} is not registered with the server."


@dataclass
class RenderStats:
    tools_found: int = 0
    tools_missing: int = 0
    resources_found: int = 0
    resources_missing: int = 0
    prompts_found: int = 0
    prompts_missing: int = 0


@dataclass
class RenderedSkill:
    """Markdown body of a skill plus the warnings raised while rendering it."""

    name: str
    content: str
    warnings: list[str] = field(default_factory=list)
    stats: RenderStats = field(default_factory=RenderStats)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def title_case(name: str) -> str:
    """Convert ``snake_case`` or ``kebab-case`` to ``Title Case``."""
    words = name.replace("-", "_").split("_")
    return " ".join(word[:1].upper() + word[1:] for word in words if word)


def _dedupe(names: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(names))


def _declares(entry: Tool | Resource | Prompt, skill_name: str) -> bool:
    return skill_name in entry.skills


def members_by_declaration(registry: CapabilityRegistry, skill_name: str) -> dict[str, list[str]]:
    """Return capabilities that declare membership in ``skill_name``, per kind."""
    return {
        "tools": [t.name for t in registry.tools() if _declares(t, skill_name)],
        "resources": [r.uri for r in registry.resources() if _declares(r, skill_name)],
        "prompts": [p.name for p in registry.prompts() if _declares(p, skill_name)],
    }


def skill_components(registry: CapabilityRegistry, skill: AutoSkill) -> dict[str, list[str]]:
    """Explicit references followed by declared members, de-duplicated in order."""
    declared = members_by_declaration(registry, skill.name)
    return {
        "tools": _dedupe([*skill.tools, *declared["tools"]]),
        "resources": _dedupe([*skill.resources, *declared["resources"]]),
        "prompts": _dedupe([*skill.prompts, *declared["prompts"]]),
    }


def _schema_type(prop: Mapping[str, Any]) -> str:
    if "type" in prop:
        value = prop["type"]
        return " | ".join(value) if isinstance(value, list) else str(value)
    if "anyOf" in prop:
        return " | ".join(_schema_type(option) for option in prop["anyOf"])
    if "$ref" in prop:
        return str(prop["$ref"]).rsplit("/", 1)[-1]
    return "any"


def _cell(text: object) -> str:
    return str(text).replace("|", "\\|").replace("\n", " ")


async def _resolve_content(provider: str | ContentProvider | None) -> str | None:
    if provider is None or isinstance(provider, str):
        return provider
    result = provider()
    if inspect.isawaitable(result):
        result = await result
    return result


# ---------------------------------------------------------------------------
# Section rendering
# ---------------------------------------------------------------------------


def render_tool_section(tool: Tool) -> list[str]:
    lines = [f"### {tool.name}", "", f"**Description:** {tool.description}", ""]

    schema = dict(tool.schema)
    properties: Mapping[str, Any] = schema.get("properties") or {}
    required = set(schema.get("required") or ())

    if properties:
        lines += [
            "**Parameters:**",
            "",
            "| Parameter | Type | Required | Description |",
            "|-----------|------|----------|-------------|",
        ]
        for name, prop in properties.items():
            flag = "yes" if name in required else "-"
            desc = prop.get("description") or "-"
            lines.append(f"| `{name}` | {_cell(_schema_type(prop))} | {flag} | {_cell(desc)} |")
        lines.append("")
    else:
        lines += ["**Parameters:** None", ""]

    lines += [
        "**Schema:**",
        "",
        "```json",
        json.dumps(schema, indent=2, sort_keys=True, default=str),
        "```",
        "",
        "**Example:**",
        "",
        "```json",
        json.dumps(
            {"name": tool.name, "arguments": {name: "<value>" for name in properties}},
            indent=2,
        ),
        "```",
        "",
    ]
    return lines


def render_resource_section(resource: Resource) -> list[str]:
    return [
        f"### {resource.uri}",
        "",
        f"**Name:** {resource.name or resource.uri}",
        "",
        f"**Description:** {resource.description}",
        "",
        f"**MIME Type:** `{resource.mime_type}`",
        "",
        "**Example:**",
        "",
        "```json",
        json.dumps({"method": "resources/read", "params": {"uri": resource.uri}}, indent=2),
        "```",
        "",
    ]


def render_prompt_section(prompt: Prompt) -> list[str]:
    lines = [f"### {prompt.name}", "", f"**Description:** {prompt.description}", ""]
    if prompt.arguments:
        lines += [
            "**Arguments:**",
            "",
            "| Argument | Required | Description |",
            "|----------|----------|-------------|",
        ]
        for arg in prompt.arguments:
            flag = "yes" if arg.required else "-"
            lines.append(f"| `{arg.name}` | {flag} | {_cell(arg.description or '-')} |")
        lines.append("")
    else:
        lines += ["**Arguments:** None", ""]
    return lines


def _missing_section(kind: str, name: str) -> list[str]:
    return [f"### {name}", "", MISSING_NOTE.format(kind=kind), ""]


# ---------------------------------------------------------------------------
# Renderer
# ---------------------------------------------------------------------------


class SkillRenderer:
    """Produces skill documents from the live registry."""

    def __init__(self, registry: CapabilityRegistry) -> None:
        self.registry = registry

    async def render(self, skill: Skill) -> RenderedSkill:
        match skill:
            case ManualSkill():
                return await self._render_manual(skill)
            case AutoSkill():
                return await self._render_auto(skill)
        raise SkillRenderError(f"Unsupported skill type {type(skill).__name__}")

    async def render_text(self, skill: Skill) -> str:
        return (await self.render(skill)).content

    async def render_named(self, name: str) -> RenderedSkill:
        return await self.render(self.registry.lookup(CapabilityKind.SKILL, name))

    async def _render_manual(self, skill: ManualSkill) -> RenderedSkill:
        content = await _resolve_content(skill.content)
        if not isinstance(content, str):
            raise SkillRenderError(
                f"Skill '{skill.name}' content provider must return a markdown string, "
                f"got {type(content).__name__}.",
                context={"skill": skill.name},
            )
        return RenderedSkill(name=skill.name, content=content)

    async def _render_auto(self, skill: AutoSkill) -> RenderedSkill:
        stats = RenderStats()
        warnings: list[str] = []
        components = skill_components(self.registry, skill)

        sections: list[str] = []
        preamble = await _resolve_content(skill.preamble)
        if preamble:
            sections += [preamble, ""]
        sections += [f"# {title_case(skill.name)} Skill", ""]
        if skill.description:
            sections += [skill.description, ""]
        sections += [GENERATED_NOTE, ""]

        if components["tools"]:
            sections += ["## Available Tools", ""]
            for name in components["tools"]:
                tool = self.registry.tool(name)
                if tool is None:
                    stats.tools_missing += 1
                    warnings.append(f"Tool not found: {name}")
                    sections += _missing_section("tool", name)
                    continue
                stats.tools_found += 1
                sections += render_tool_section(tool)

        if components["resources"]:
            sections += ["## Available Resources", ""]
            for uri in components["resources"]:
                resource = self.registry.get(CapabilityKind.RESOURCE, uri)
                if not isinstance(resource, Resource):
                    stats.resources_missing += 1
                    warnings.append(f"Resource not found: {uri}")
                    sections += _missing_section("resource", uri)
                    continue
                stats.resources_found += 1
                sections += render_resource_section(resource)

        if components["prompts"]:
            sections += ["## Available Prompts", ""]
            for name in components["prompts"]:
                prompt = self.registry.get(CapabilityKind.PROMPT, name)
                if not isinstance(prompt, Prompt):
                    stats.prompts_missing += 1
                    warnings.append(f"Prompt not found: {name}")
                    sections += _missing_section("prompt", name)
                    continue
                stats.prompts_found += 1
                sections += render_prompt_section(prompt)

        if warnings:
            sections += [
                "## Warnings",
                "",
                "The following components were referenced but not found:",
                "",
                *(f"- {warning}" for warning in warnings),
                "",
            ]
            for warning in warnings:
                logger.warning("Skill '%s': %s", skill.name, warning, extra={"skill": skill.name})

        return RenderedSkill(
            name=skill.name,
            content="\n".join(sections),
            warnings=warnings,
            stats=stats,
        )


async def render_skill(skill: Skill, registry: CapabilityRegistry) -> str:
    """Render ``skill`` against ``registry`` and return the markdown."""
    return await SkillRenderer(registry).render_text(skill)


__all__ = [
    "RenderStats",
    "RenderedSkill",
    "SkillRenderer",
    "members_by_declaration",
    "render_prompt_section",
    "render_resource_section",
    "render_skill",
    "render_tool_section",
    "skill_components",
    "title_case",
]
