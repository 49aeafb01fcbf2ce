"""Setup-time server builder.

Collects capabilities, skills and router declarations, then builds the
discovery façade in a fixed order: routers are compiled against the tools
registered so far, skills are validated, and the registry is sealed.

    server = SkillgateServer("notes")

    @server.tool(hidden=True, skills=["notes"])
    async def search(query: str) -> str: ...

    server.add_skill(AutoSkill(name="notes", description="Working with notes"))
    server.add_router("notes_router", tools=["search"])
    discovery = server.build()

Any failure during build() is fatal and surfaces before traffic is served.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from importlib import import_module
from operator import attrgetter
from typing import Any, TypeVar

from skillgate.capabilities.declarations import (
    discover_capabilities,
    prompt_from_function,
    resource_from_function,
    tool_from_function,
)
from skillgate.capabilities.discovery import ContextProvider, DiscoveryFacade
from skillgate.capabilities.models import (
    AutoSkill,
    ManualSkill,
    Prompt,
    Resource,
    RouterDefinition,
    Skill,
    Tool,
)
from skillgate.capabilities.registry import CapabilityRegistry
from skillgate.capabilities.routers import RouterCompiler
from skillgate.capabilities.validation import ValidationIssue, report_issues, validate_skills
from skillgate.capabilities.visibility import EvaluatorOptions, HiddenEvaluator
from skillgate.core.config import AppConfig
from skillgate.core.console import get_logger
from skillgate.core.result import ConfigurationError, DuplicateRouterError, RegistrationError

logger = get_logger("server")

F = TypeVar("F", bound=Callable[..., Any])


class SkillgateServer:
    """Builder for one server's capabilities."""

    def __init__(
        self,
        name: str | None = None,
        config: AppConfig | None = None,
        *,
        context_provider: ContextProvider | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.name = name or self.config.server_name
        self.registry = CapabilityRegistry()
        self.evaluator = HiddenEvaluator(EvaluatorOptions.from_config(self.config.visibility))
        self.context_provider = context_provider
        self.issues: list[ValidationIssue] = []
        self._routers: list[RouterDefinition] = []
        self._discovery: DiscoveryFacade | None = None

    @classmethod
    def from_object(
        cls,
        target: object,
        name: str | None = None,
        config: AppConfig | None = None,
        **kwargs: Any,
    ) -> SkillgateServer:
        """Create a server from the capabilities declared on ``target``."""
        server = cls(name or type(target).__name__, config, **kwargs)
        server.include(target)
        return server

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def add_tool(self, tool: Tool | Callable[..., Any], **metadata: Any) -> Tool:
        if not isinstance(tool, Tool):
            tool = tool_from_function(tool, **metadata)
        self.registry.register(tool)
        return tool

    def tool(self, **metadata: Any) -> Callable[[F], F]:
        """Register the decorated function as a tool."""

        def decorator(fn: F) -> F:
            self.add_tool(fn, **metadata)
            return fn

        return decorator

    def add_resource(self, resource: Resource | Callable[..., Any], **metadata: Any) -> Resource:
        if not isinstance(resource, Resource):
            resource = resource_from_function(resource, **metadata)
        self.registry.register(resource)
        return resource

    def resource(self, uri: str, **metadata: Any) -> Callable[[F], F]:
        """Register the decorated zero-argument function as the content of ``uri``."""

        def decorator(fn: F) -> F:
            self.add_resource(fn, uri=uri, **metadata)
            return fn

        return decorator

    def add_prompt(self, prompt: Prompt | Callable[..., Any], **metadata: Any) -> Prompt:
        if not isinstance(prompt, Prompt):
            prompt = prompt_from_function(prompt, **metadata)
        self.registry.register(prompt)
        return prompt

    def prompt(self, **metadata: Any) -> Callable[[F], F]:
        """Register the decorated function as a prompt."""

        def decorator(fn: F) -> F:
            self.add_prompt(fn, **metadata)
            return fn

        return decorator

    def add_skill(self, skill: Skill) -> Skill:
        if not isinstance(skill, (ManualSkill, AutoSkill)):
            raise RegistrationError(
                f"Expected ManualSkill or AutoSkill, got {type(skill).__name__}."
            )
        self.registry.register(skill)
        return skill

    def add_router(
        self,
        router: RouterDefinition | str,
        *,
        tools: Iterable[str] = (),
        description: str = "",
        **metadata: Any,
    ) -> RouterDefinition:
        """Queue a router for compilation.

        A repeated name raises immediately and leaves the first declaration
        in place. Member references are checked when the server is built.
        """
        if self._discovery is not None:
            raise RegistrationError(
                f"Cannot add router '{router if isinstance(router, str) else router.name}' "
                f"after the server was built."
            )
        if isinstance(router, str):
            router = RouterDefinition(
                name=router, tools=tuple(tools), description=description, metadata=metadata
            )
        declared = self.router_names()
        if router.name in declared:
            raise DuplicateRouterError(router.name, declared)
        self._routers.append(router)
        return router

    def router_names(self) -> list[str]:
        return [definition.name for definition in self._routers]

    def include(self, target: object) -> None:
        """Register everything declared on a server object or module."""
        declared = discover_capabilities(target)
        for tool in declared.tools:
            self.add_tool(tool)
        for resource in declared.resources:
            self.add_resource(resource)
        for prompt in declared.prompts:
            self.add_prompt(prompt)
        for definition in declared.routers:
            self.add_router(definition)

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    @property
    def built(self) -> bool:
        return self._discovery is not None

    def build(self) -> DiscoveryFacade:
        """Compile routers, validate skills and seal the registry.

        Calling build() again returns the same façade.
        """
        if self._discovery is not None:
            return self._discovery

        RouterCompiler(self.registry, self.evaluator).compile(self._routers)

        self.issues = validate_skills(self.registry, self.config.skills)
        report_issues(self.issues)

        self.registry.seal()
        self._discovery = DiscoveryFacade(
            self.registry,
            self.evaluator,
            config=self.config.routers,
            context_provider=self.context_provider,
        )
        logger.info(
            "Server %s ready: %d tool(s), %d resource(s), %d prompt(s), %d skill(s), %d router(s)",
            self.name,
            len(self.registry.tools()),
            len(self.registry.resources()),
            len(self.registry.prompts()),
            len(self.registry.skills()),
            len(self._routers),
        )
        return self._discovery

    @property
    def discovery(self) -> DiscoveryFacade:
        return self.build()


def load_server(target: str, config: AppConfig | None = None) -> SkillgateServer:
    """Resolve a ``module:attribute`` path to a SkillgateServer.

    The attribute may be a SkillgateServer, a zero-argument factory returning
    one, a server class (instantiated and scanned for declarations) or any
    other object carrying declarations.
    """
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigurationError(
            f"Invalid server target '{target}'. Expected 'module:attribute'.",
            context={"target": target},
        )

    try:
        module = import_module(module_name)
    except ImportError as exc:
        raise ConfigurationError(
            f"Cannot import module '{module_name}': {exc}", context={"target": target}
        ) from exc

    try:
        obj: Any = attrgetter(attr)(module)
    except AttributeError as exc:
        raise ConfigurationError(
            f"Module '{module_name}' has no attribute '{attr}'.", context={"target": target}
        ) from exc

    if isinstance(obj, type):
        return SkillgateServer.from_object(obj(), name=obj.__name__, config=config)
    if callable(obj) and not isinstance(obj, SkillgateServer):
        obj = obj()
    if isinstance(obj, SkillgateServer):
        return obj
    return SkillgateServer.from_object(obj, config=config)


__all__ = ["SkillgateServer", "load_server"]
