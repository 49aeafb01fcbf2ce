"""Discovery façade.

The public surface a transport talks to. Listings are always coroutines:
fetch the registered items of one kind in registration order, drop the ones
hidden for the caller's context, and map the survivors to their summary
shapes. Skills are appended to resource listings unconditionally.

Direct access (invoke, read_resource, get_prompt) goes straight to the
registry by exact identifier; visibility plays no part and only identifiers
that were never registered raise NotFoundError.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeAlias

from skillgate.capabilities.models import (
    SKILL_MIME_TYPE,
    CapabilityKind,
    EvaluationContext,
    Prompt,
    PromptSummary,
    Resource,
    ResourceContents,
    ResourceSummary,
    Tool,
    ToolSummary,
)
from skillgate.capabilities.registry import CapabilityRegistry
from skillgate.capabilities.skills import SkillRenderer
from skillgate.capabilities.visibility import HiddenEvaluator
from skillgate.core.config import RouterConfig
from skillgate.core.console import get_logger
from skillgate.core.result import NotFoundError, SkillgateError

logger = get_logger("discovery")

ContextInput: TypeAlias = EvaluationContext | Mapping[str, Any] | None
ContextProvider: TypeAlias = Callable[[], "Mapping[str, Any] | Awaitable[Mapping[str, Any]] | None"]


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class DiscoveryFacade:
    """Context-aware listings plus exact-identifier access over one registry."""

    def __init__(
        self,
        registry: CapabilityRegistry,
        evaluator: HiddenEvaluator | None = None,
        *,
        config: RouterConfig | None = None,
        context_provider: ContextProvider | None = None,
    ) -> None:
        self.registry = registry
        self.evaluator = evaluator or HiddenEvaluator()
        self.config = config or RouterConfig()
        self.context_provider = context_provider
        self.renderer = SkillRenderer(registry)

    async def resolve_context(self, context: ContextInput = None) -> EvaluationContext:
        """Return ``context``, or ask the context provider once when none was given."""
        if context is None and self.context_provider is not None:
            context = await _maybe_await(self.context_provider())
        return EvaluationContext.coerce(context)

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def _listed_tools(self) -> list[Tool]:
        tools = self.registry.tools()
        if self.config.flatten:
            return tools
        return [
            tool
            for tool in tools
            if self.registry.is_router(tool.name) or not self.registry.routers_for(tool.name)
        ]

    async def list_tools(self, context: ContextInput = None) -> list[ToolSummary]:
        ctx = await self.resolve_context(context)
        visible = await self.evaluator.filter_visible(self._listed_tools(), self.registry.tool, ctx)
        return [ToolSummary.from_tool(tool) for tool in visible]

    async def list_resources(self, context: ContextInput = None) -> list[ResourceSummary]:
        ctx = await self.resolve_context(context)
        resources: list[Resource] = self.registry.resources()
        visible = await self.evaluator.filter_visible(
            resources,
            lambda uri: self.registry.get(CapabilityKind.RESOURCE, uri),
            ctx,
        )
        summaries = [ResourceSummary.from_resource(resource) for resource in visible]
        summaries.extend(ResourceSummary.from_skill(skill) for skill in self.registry.skills())
        return summaries

    async def list_prompts(self, context: ContextInput = None) -> list[PromptSummary]:
        ctx = await self.resolve_context(context)
        prompts: list[Prompt] = self.registry.prompts()
        visible = await self.evaluator.filter_visible(
            prompts,
            lambda name: self.registry.get(CapabilityKind.PROMPT, name),
            ctx,
        )
        return [PromptSummary.from_prompt(prompt) for prompt in visible]

    # ------------------------------------------------------------------
    # Direct access
    # ------------------------------------------------------------------

    def resolve_tool(self, name: str) -> Tool:
        """Find a tool by exact name, or by ``<router><sep><member>``."""
        tool = self.registry.tool(name)
        if tool is not None:
            return tool

        separator = self.config.namespace_separator
        router, found, member = name.partition(separator)
        if found and self.registry.is_router(router) and member in self.registry.router_members(router):
            tool = self.registry.tool(member)
            if tool is not None:
                return tool

        raise NotFoundError("tool", name, available=self.registry.all_names(CapabilityKind.TOOL))

    async def invoke(
        self,
        name: str,
        args: Mapping[str, Any] | None = None,
        context: ContextInput = None,
    ) -> Any:
        """Call a tool by exact name regardless of its visibility."""
        tool = self.resolve_tool(name)
        if tool.handler is None:
            raise SkillgateError(
                f"Tool '{tool.name}' has no handler.", context={"tool": tool.name}
            )

        kwargs = dict(args or {})
        if tool.context_param:
            kwargs[tool.context_param] = await self.resolve_context(context)

        logger.debug("Invoking tool %s", tool.name)
        return await _maybe_await(tool.handler(**kwargs))

    async def read_resource(self, uri: str) -> ResourceContents:
        """Read a resource or skill document by exact URI."""
        skill = self.registry.skill_for_uri(uri)
        if skill is not None:
            text = await self.renderer.render_text(skill)
            return ResourceContents(uri=uri, text=text, mime_type=SKILL_MIME_TYPE)

        resource = self.registry.get(CapabilityKind.RESOURCE, uri)
        if not isinstance(resource, Resource):
            available = [
                *self.registry.all_names(CapabilityKind.RESOURCE),
                *(skill.uri for skill in self.registry.skills()),
            ]
            raise NotFoundError("resource", uri, available=available)

        content = resource.content
        text = content if isinstance(content, str) else await _maybe_await(content())
        return ResourceContents(uri=uri, text=str(text), mime_type=resource.mime_type)

    async def get_prompt(self, name: str, args: Mapping[str, Any] | None = None) -> Any:
        """Render a prompt by exact name regardless of its visibility."""
        prompt: Prompt = self.registry.lookup(CapabilityKind.PROMPT, name)
        if prompt.handler is None:
            return prompt.description
        return await _maybe_await(prompt.handler(**dict(args or {})))


__all__ = ["ContextProvider", "DiscoveryFacade"]
