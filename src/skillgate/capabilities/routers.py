"""Router compilation.

A router groups existing tools under one meta-tool. Routers are compiled
once at setup, after every plain tool is registered and before traffic is
served. Compilation validates all definitions first, then installs each
router as a tool whose handler lists its members' current metadata:

    compiler = RouterCompiler(registry, evaluator)
    compiler.compile([RouterDefinition(name="git", tools=("status", "diff"))])

Failures are fatal and descriptive. Tools may belong to any number of
routers. A router invocation passes its members through the hidden
evaluator with the caller's context, so it never reveals a tool the caller
could not discover directly.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from skillgate.capabilities.models import (
    EvaluationContext,
    RouterDefinition,
    Tool,
    ToolSummary,
)
from skillgate.capabilities.registry import CapabilityRegistry
from skillgate.capabilities.visibility import HiddenEvaluator
from skillgate.core.console import get_logger
from skillgate.core.result import (
    DuplicateRouterError,
    RouterArgumentError,
    RouterNameConflictError,
    RouterNestingError,
    UnknownToolReferenceError,
)

logger = get_logger("routers")

ROUTER_CONTEXT_PARAM = "context"
EMPTY_OBJECT_SCHEMA: dict[str, Any] = {"type": "object", "properties": {}}


def suggest(name: str, available: Iterable[str]) -> list[str]:
    """Return tool names that look like a misspelling of ``name``.

    A candidate matches when either name contains the other, ignoring case.
    """
    needle = name.lower()
    return [
        candidate
        for candidate in available
        if needle in candidate.lower() or candidate.lower() in needle
    ]


def router_description(definition: RouterDefinition) -> str:
    if definition.description:
        return definition.description
    return f"List the tools grouped under the '{definition.name}' router."


class RouterCompiler:
    """Validates router definitions and installs them as meta-tools."""

    def __init__(
        self,
        registry: CapabilityRegistry,
        evaluator: HiddenEvaluator | None = None,
    ) -> None:
        self.registry = registry
        self.evaluator = evaluator or HiddenEvaluator()

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def check_name(self, name: str, registered: Sequence[str]) -> None:
        """Raise if ``name`` repeats a router or shadows a plain tool."""
        if name in registered:
            raise DuplicateRouterError(name, registered)
        if self.registry.tool(name) is not None:
            raise RouterNameConflictError(name)

    def check_members(self, definition: RouterDefinition, router_names: Iterable[str]) -> None:
        """Raise if a member is a router or not a registered tool."""
        routers = set(router_names)
        for member in definition.tools:
            if member in routers:
                raise RouterNestingError(definition.name, member)

        known = self.registry.plain_tool_names()
        known_set = set(known)
        unknown = [member for member in definition.tools if member not in known_set]
        if not unknown:
            return

        available = sorted(known)
        suggestions = {missing: suggest(missing, available) for missing in unknown}
        raise UnknownToolReferenceError(
            definition.name,
            unknown,
            available,
            {missing: matches for missing, matches in suggestions.items() if matches},
        )

    def validate(self, definitions: Iterable[RouterDefinition]) -> list[RouterDefinition]:
        """Validate every definition without touching the registry."""
        pending = list(definitions)
        seen: list[str] = self.registry.router_names()
        for definition in pending:
            self.check_name(definition.name, seen)
            seen.append(definition.name)
        for definition in pending:
            self.check_members(definition, seen)
        return pending

    # ------------------------------------------------------------------
    # Installation
    # ------------------------------------------------------------------

    def build_tool(self, definition: RouterDefinition) -> Tool:
        registry = self.registry
        evaluator = self.evaluator
        members = tuple(definition.tools)

        async def list_router_tools(
            context: EvaluationContext, **arguments: Any
        ) -> list[ToolSummary]:
            if arguments:
                raise RouterArgumentError(definition.name, sorted(arguments))
            tools = [tool for tool in (registry.tool(name) for name in members) if tool is not None]
            visible = await evaluator.filter_visible(tools, registry.tool, context)
            return [ToolSummary.from_tool(tool) for tool in visible]

        list_router_tools.__name__ = f"router_{definition.name}"

        return Tool(
            name=definition.name,
            description=router_description(definition),
            schema=dict(EMPTY_OBJECT_SCHEMA),
            handler=list_router_tools,
            annotations={"router": True, "members": list(members), **definition.metadata},
            context_param=ROUTER_CONTEXT_PARAM,
        )

    def compile(self, definitions: Iterable[RouterDefinition]) -> list[Tool]:
        """Validate all definitions, then install them in declaration order."""
        validated = self.validate(definitions)
        installed: list[Tool] = []
        for definition in validated:
            tool = self.build_tool(definition)
            self.registry.register_router(tool, definition.tools)
            installed.append(tool)
            logger.debug(
                "Compiled router %s with %d member(s)", definition.name, len(definition.tools)
            )
        return installed


def compile_routers(
    definitions: Iterable[RouterDefinition],
    registry: CapabilityRegistry,
    evaluator: HiddenEvaluator | None = None,
) -> list[Tool]:
    """Compile ``definitions`` into router tools on ``registry``."""
    return RouterCompiler(registry, evaluator).compile(definitions)


__all__ = [
    "RouterCompiler",
    "compile_routers",
    "router_description",
    "suggest",
]
