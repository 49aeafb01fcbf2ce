"""Decorator-based capability declarations.

Functions and methods are marked with metadata attributes and collected
later by discover_capabilities():

    @router("notes", tools=["search", "append"])
    class NotesServer:
        @tool(description="Search notes", hidden=True, skills=["notes"])
        async def search(self, query: str, limit: int = 10) -> str: ...

        async def append(self, text: str) -> str: ...  # public: implicit tool

    declared = discover_capabilities(NotesServer())

Every public method of a server object without a prompt or resource marker
becomes a tool. Argument schemas are derived from signatures with pydantic.
"""

from __future__ import annotations

import inspect
import typing
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from types import ModuleType
from typing import Any, ParamSpec, TypeGuard, TypeVar

from pydantic import (
    ConfigDict,
    PydanticInvalidForJsonSchema,
    PydanticSchemaGenerationError,
    create_model,
)

from skillgate.capabilities.models import (
    EvaluationContext,
    Prompt,
    PromptArgument,
    Resource,
    RouterDefinition,
    Tool,
    as_visibility,
)
from skillgate.core.console import get_logger
from skillgate.core.result import RegistrationError

logger = get_logger("declarations")

P = ParamSpec("P")
R = TypeVar("R")
C = TypeVar("C", bound=type)

TOOL_METADATA_ATTR = "__skillgate_tool__"
PROMPT_METADATA_ATTR = "__skillgate_prompt__"
RESOURCE_METADATA_ATTR = "__skillgate_resource__"
ROUTERS_ATTR = "__skillgate_routers__"

_SCHEMA_ERRORS = (PydanticSchemaGenerationError, PydanticInvalidForJsonSchema)


# ---------------------------------------------------------------------------
# Decorators
# ---------------------------------------------------------------------------


def tool(**metadata: Any) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """Mark a function as a tool and attach optional registration metadata.

    Recognized keys: ``name``, ``description``, ``hidden``, ``skills``,
    ``annotations`` and ``context_param``.
    """

    def decorator(fn: Callable[P, R]) -> Callable[P, R]:
        setattr(fn, TOOL_METADATA_ATTR, metadata)
        return fn

    return decorator


def prompt(**metadata: Any) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """Mark a function as a prompt template."""

    def decorator(fn: Callable[P, R]) -> Callable[P, R]:
        setattr(fn, PROMPT_METADATA_ATTR, metadata)
        return fn

    return decorator


def resource(uri: str, **metadata: Any) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """Mark a zero-argument function as the content provider for ``uri``."""

    def decorator(fn: Callable[P, R]) -> Callable[P, R]:
        setattr(fn, RESOURCE_METADATA_ATTR, {"uri": uri, **metadata})
        return fn

    return decorator


def router(
    name: str,
    *,
    tools: Iterable[str] = (),
    description: str = "",
    **metadata: Any,
) -> Callable[[C], C]:
    """Declare a router on a server class.

    Stacked decorators keep top-to-bottom order.
    """
    definition = RouterDefinition(
        name=name, tools=tuple(tools), description=description, metadata=metadata
    )

    def decorator(cls: C) -> C:
        declared: tuple[RouterDefinition, ...] = getattr(cls, ROUTERS_ATTR, ())
        setattr(cls, ROUTERS_ATTR, (definition, *declared))
        return cls

    return decorator


def is_tool(obj: Any) -> TypeGuard[Callable[..., Any]]:
    return callable(obj) and hasattr(obj, TOOL_METADATA_ATTR)


def get_tool_metadata(obj: object) -> dict[str, Any] | None:
    """Return ``@tool`` metadata, or None for undecorated callables."""
    if not callable(obj):
        return None
    metadata = getattr(obj, TOOL_METADATA_ATTR, None)
    return metadata if isinstance(metadata, dict) else None


# ---------------------------------------------------------------------------
# Signature inspection
# ---------------------------------------------------------------------------


def _type_hints(fn: Callable[..., Any]) -> dict[str, Any]:
    target = inspect.unwrap(fn)
    try:
        return typing.get_type_hints(target)
    except (NameError, TypeError):
        logger.debug("Could not resolve annotations of %s", getattr(fn, "__qualname__", fn))
        return {}


def _is_context_annotation(annotation: Any) -> bool:
    if annotation is EvaluationContext:
        return True
    return isinstance(annotation, str) and annotation.rsplit(".", 1)[-1] == "EvaluationContext"


def _value_parameters(fn: Callable[..., Any]) -> Iterator[inspect.Parameter]:
    for param in inspect.signature(fn).parameters.values():
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        yield param


def find_context_param(fn: Callable[..., Any]) -> str | None:
    """Return the parameter annotated as EvaluationContext, if any."""
    hints = _type_hints(fn)
    for param in _value_parameters(fn):
        if _is_context_annotation(hints.get(param.name, param.annotation)):
            return param.name
    return None


def parameters_schema(fn: Callable[..., Any], *, exclude: Iterable[str] = ()) -> dict[str, Any]:
    """Build a JSON schema for ``fn``'s keyword arguments."""
    skipped = set(exclude)
    hints = _type_hints(fn)
    fields: dict[str, Any] = {}
    for param in _value_parameters(fn):
        if param.name in skipped:
            continue
        annotation = hints.get(param.name, Any)
        default = ... if param.default is inspect.Parameter.empty else param.default
        fields[param.name] = (annotation, default)

    name = getattr(fn, "__name__", "tool")
    try:
        model = create_model(
            f"{name}_arguments",
            __config__=ConfigDict(arbitrary_types_allowed=True),
            **fields,
        )
        schema = model.model_json_schema()
    except _SCHEMA_ERRORS as exc:
        raise RegistrationError(
            f"Cannot derive an argument schema for '{name}': {exc}",
            context={"function": name},
        ) from exc

    schema.pop("title", None)
    schema.setdefault("properties", {})
    return schema


def first_paragraph(fn: Callable[..., Any]) -> str:
    doc = inspect.getdoc(fn) or ""
    return doc.split("\n\n", 1)[0].strip()


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def tool_from_function(
    fn: Callable[..., Any],
    *,
    name: str | None = None,
    description: str | None = None,
    hidden: object = None,
    skills: Iterable[str] = (),
    annotations: dict[str, Any] | None = None,
    context_param: str | None = None,
    schema: dict[str, Any] | None = None,
) -> Tool:
    """Describe ``fn`` as a Tool."""
    context_param = context_param or find_context_param(fn)
    excluded = [context_param] if context_param else []
    return Tool(
        name=name or fn.__name__,
        description=description if description is not None else first_paragraph(fn),
        schema=schema if schema is not None else parameters_schema(fn, exclude=excluded),
        handler=fn,
        visibility=as_visibility(hidden),
        skills=tuple(skills),
        annotations=annotations,
        context_param=context_param,
    )


def prompt_from_function(
    fn: Callable[..., Any],
    *,
    name: str | None = None,
    description: str | None = None,
    hidden: object = None,
    skills: Iterable[str] = (),
    arguments: Iterable[PromptArgument] | None = None,
) -> Prompt:
    """Describe ``fn`` as a Prompt; arguments default to its parameters."""
    if arguments is None:
        arguments = [
            PromptArgument(name=param.name, required=param.default is inspect.Parameter.empty)
            for param in _value_parameters(fn)
        ]
    return Prompt(
        name=name or fn.__name__,
        description=description if description is not None else first_paragraph(fn),
        arguments=tuple(arguments),
        handler=fn,
        visibility=as_visibility(hidden),
        skills=tuple(skills),
    )


def resource_from_function(
    fn: Callable[..., Any],
    *,
    uri: str,
    name: str | None = None,
    description: str | None = None,
    mime_type: str = "text/plain",
    hidden: object = None,
    skills: Iterable[str] = (),
) -> Resource:
    """Describe a zero-argument ``fn`` as the content provider of a Resource."""
    return Resource(
        uri=uri,
        name=name or fn.__name__,
        description=description if description is not None else first_paragraph(fn),
        mime_type=mime_type,
        content=fn,
        visibility=as_visibility(hidden),
        skills=tuple(skills),
    )


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


@dataclass
class DeclaredCapabilities:
    """Everything declared on one server object or module, in declaration order."""

    tools: list[Tool] = field(default_factory=list)
    resources: list[Resource] = field(default_factory=list)
    prompts: list[Prompt] = field(default_factory=list)
    routers: list[RouterDefinition] = field(default_factory=list)


def _class_functions(cls: type) -> Iterator[tuple[str, Any]]:
    members: dict[str, Any] = {}
    for klass in reversed(cls.__mro__):
        if klass is object:
            continue
        members.update(vars(klass))
    for attr, value in members.items():
        if isinstance(value, (staticmethod, classmethod)):
            value = value.__func__
        if inspect.isfunction(value):
            yield attr, value


def _collect(
    declared: DeclaredCapabilities,
    attr: str,
    fn: Callable[..., Any],
    bound: Callable[..., Any],
    *,
    implicit: bool,
) -> None:
    if hasattr(fn, RESOURCE_METADATA_ATTR):
        declared.resources.append(
            resource_from_function(bound, **getattr(fn, RESOURCE_METADATA_ATTR))
        )
    elif hasattr(fn, PROMPT_METADATA_ATTR):
        declared.prompts.append(
            prompt_from_function(bound, **getattr(fn, PROMPT_METADATA_ATTR))
        )
    elif is_tool(fn):
        declared.tools.append(tool_from_function(bound, **(get_tool_metadata(fn) or {})))
    elif implicit and not attr.startswith("_"):
        declared.tools.append(tool_from_function(bound))


def discover_capabilities(target: object, *, implicit_tools: bool = True) -> DeclaredCapabilities:
    """Collect the capabilities declared on a server object or a module.

    For objects, decorated methods are registered with their metadata and
    (with ``implicit_tools``) every other public method becomes a tool.
    For modules, only decorated functions defined in that module count.
    """
    declared = DeclaredCapabilities()

    if isinstance(target, ModuleType):
        for attr, value in vars(target).items():
            if inspect.isfunction(value) and value.__module__ == target.__name__:
                _collect(declared, attr, value, value, implicit=False)
        return declared

    cls = type(target)
    for attr, fn in _class_functions(cls):
        _collect(declared, attr, fn, getattr(target, attr), implicit=implicit_tools)
    declared.routers.extend(getattr(cls, ROUTERS_ATTR, ()))

    logger.debug(
        "Discovered %d tool(s), %d resource(s), %d prompt(s), %d router(s) on %s",
        len(declared.tools),
        len(declared.resources),
        len(declared.prompts),
        len(declared.routers),
        cls.__name__,
    )
    return declared


__all__ = [
    "DeclaredCapabilities",
    "discover_capabilities",
    "find_context_param",
    "get_tool_metadata",
    "is_tool",
    "parameters_schema",
    "prompt",
    "prompt_from_function",
    "resource",
    "resource_from_function",
    "router",
    "tool",
    "tool_from_function",
]
