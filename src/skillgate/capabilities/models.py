"""Capability data model.

Key types:
- Visibility: tagged variant Absent | Static | Predicate controlling discovery
- EvaluationContext: read-only, request-scoped bag handed to predicates
- Tool / Resource / Prompt: registered capabilities
- ManualSkill / AutoSkill: documentation resources addressed as skill://<name>
- RouterDefinition: a named grouping of tool names compiled into a meta-tool
- ToolSummary / ResourceSummary / PromptSummary: public discovery shapes

Visibility only ever affects discovery listings. Invocation by exact
identifier ignores it.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any, TypeAlias

from pydantic import BaseModel, ConfigDict, Field

SKILL_URI_SCHEME = "skill://"
SKILL_MIME_TYPE = "text/markdown"

HiddenPredicate: TypeAlias = Callable[["EvaluationContext"], "bool | Awaitable[bool]"]
ContentProvider: TypeAlias = Callable[[], "str | Awaitable[str]"]


class CapabilityKind(StrEnum):
    """Registry namespaces. Skills share the resource URI space."""

    TOOL = "tool"
    RESOURCE = "resource"
    PROMPT = "prompt"
    SKILL = "skill"


# ---------------------------------------------------------------------------
# Visibility
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Absent:
    """No visibility rule: always visible."""


@dataclass(frozen=True, slots=True)
class Static:
    """Fixed visibility."""

    hidden: bool


@dataclass(frozen=True, slots=True)
class Predicate:
    """Context-dependent visibility; a truthy result means hidden."""

    fn: HiddenPredicate


Visibility: TypeAlias = Absent | Static | Predicate

ALWAYS_VISIBLE = Absent()


def as_visibility(value: object) -> Visibility:
    """Normalize a declared `hidden` value into the Visibility variant.

    Accepts None, a bool, a predicate callable or an existing variant.
    """
    if value is None:
        return ALWAYS_VISIBLE
    if isinstance(value, (Absent, Static, Predicate)):
        return value
    if isinstance(value, bool):
        return Static(value)
    if callable(value):
        return Predicate(value)
    raise TypeError(
        f"hidden must be a bool, a predicate callable or None, not {type(value).__name__}"
    )


# ---------------------------------------------------------------------------
# Evaluation context
# ---------------------------------------------------------------------------


_EMPTY: Mapping[str, Any] = MappingProxyType({})


def freeze(value: Any) -> Any:
    """Return a read-only copy of nested mappings and sequences.

    Mappings become ``MappingProxyType`` views over fresh dicts and lists
    become tuples. Other values are returned as they are.
    """
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(value)
    return value


def thaw(value: Any) -> Any:
    """Return a plain, mutable copy of a value produced by ``freeze``."""
    if isinstance(value, Mapping):
        return {key: thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [thaw(item) for item in value]
    return value


class EvaluationContext(Mapping[str, Any]):
    """Request-scoped, read-only data handed to visibility predicates.

    Built once per discovery call and shared unmodified by every predicate in
    that call. The input is copied and frozen at every level, so neither a
    predicate nor the caller can change what later predicates see. Common
    sections (``metadata``, ``server``, ``mcp``) have convenience accessors
    returning an empty mapping when absent.
    """

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, Any] | None = None, /, **values: Any) -> None:
        self._data: Mapping[str, Any] = freeze({**(data or {}), **values})

    @classmethod
    def coerce(cls, value: EvaluationContext | Mapping[str, Any] | None) -> EvaluationContext:
        if isinstance(value, EvaluationContext):
            return value
        return cls(value)

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"EvaluationContext({thaw(self._data)!r})"

    def _section(self, key: str) -> Mapping[str, Any]:
        value = self._data.get(key)
        return value if isinstance(value, Mapping) else _EMPTY

    @property
    def metadata(self) -> Mapping[str, Any]:
        return self._section("metadata")

    @property
    def server(self) -> Mapping[str, Any]:
        return self._section("server")

    @property
    def mcp(self) -> Mapping[str, Any]:
        return self._section("mcp")


# ---------------------------------------------------------------------------
# Capabilities
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PromptArgument:
    name: str
    description: str = ""
    required: bool = True


@dataclass(frozen=True)
class Tool:
    """An invokable tool.

    Attributes:
        name: Unique tool name
        description: Human-readable description
        schema: JSON schema for the arguments (opaque to this package)
        handler: Callable invoked with keyword arguments; may be async
        visibility: Discovery visibility rule
        skills: Names of skills this tool declares membership in
        annotations: Free-form MCP tool annotations
        context_param: Handler parameter receiving the caller's EvaluationContext
    """

    name: str
    description: str = ""
    schema: Mapping[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})
    handler: Callable[..., Any] | None = None
    visibility: Visibility = ALWAYS_VISIBLE
    skills: tuple[str, ...] = ()
    annotations: Mapping[str, Any] | None = None
    context_param: str | None = None

    @property
    def key(self) -> str:
        return self.name


@dataclass(frozen=True)
class Resource:
    """A readable resource addressed by URI."""

    uri: str
    name: str = ""
    description: str = ""
    mime_type: str = "text/plain"
    content: str | ContentProvider = ""
    visibility: Visibility = ALWAYS_VISIBLE
    skills: tuple[str, ...] = ()

    @property
    def key(self) -> str:
        return self.uri


@dataclass(frozen=True)
class Prompt:
    """A prompt template; the handler renders it from keyword arguments."""

    name: str
    description: str = ""
    arguments: tuple[PromptArgument, ...] = ()
    handler: Callable[..., Any] | None = None
    visibility: Visibility = ALWAYS_VISIBLE
    skills: tuple[str, ...] = ()

    @property
    def key(self) -> str:
        return self.name


Capability: TypeAlias = Tool | Resource | Prompt


# ---------------------------------------------------------------------------
# Skills
# ---------------------------------------------------------------------------


def skill_uri(name: str) -> str:
    return f"{SKILL_URI_SCHEME}{name}"


@dataclass(frozen=True)
class ManualSkill:
    """A skill whose markdown is authored directly."""

    name: str
    description: str = ""
    content: str | ContentProvider = ""

    @property
    def key(self) -> str:
        return self.name

    @property
    def uri(self) -> str:
        return skill_uri(self.name)


@dataclass(frozen=True)
class AutoSkill:
    """A skill whose markdown is generated from referenced capabilities on read.

    Capabilities that declare membership in the skill (``skills=``) are
    documented in addition to the explicit references.
    """

    name: str
    description: str = ""
    tools: tuple[str, ...] = ()
    resources: tuple[str, ...] = ()
    prompts: tuple[str, ...] = ()
    preamble: str | ContentProvider | None = None

    @property
    def key(self) -> str:
        return self.name

    @property
    def uri(self) -> str:
        return skill_uri(self.name)


Skill: TypeAlias = ManualSkill | AutoSkill


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------


class RouterDefinition(BaseModel):
    """A named grouping of tool names, compiled into a meta-tool at setup.

    Attributes:
        name: Router (and resulting tool) name; unique per server
        tools: Member tool names; may overlap with other routers
        description: Description of the router tool
        metadata: Arbitrary metadata carried on the router tool annotations
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1, description="Router name, unique per server")
    tools: tuple[str, ...] = Field(default=(), description="Member tool names")
    description: str = Field(default="", description="Description of the router tool")
    metadata: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Discovery shapes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ToolSummary:
    name: str
    description: str = ""
    schema: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_tool(cls, tool: Tool) -> ToolSummary:
        return cls(name=tool.name, description=tool.description, schema=dict(tool.schema))

    def to_mcp(self) -> dict[str, Any]:
        return {"name": self.name, "description": self.description, "inputSchema": dict(self.schema)}


@dataclass(frozen=True, slots=True)
class ResourceSummary:
    uri: str
    name: str = ""
    description: str = ""
    mime_type: str = "text/plain"

    @classmethod
    def from_resource(cls, resource: Resource) -> ResourceSummary:
        return cls(
            uri=resource.uri,
            name=resource.name or resource.uri,
            description=resource.description,
            mime_type=resource.mime_type,
        )

    @classmethod
    def from_skill(cls, skill: Skill) -> ResourceSummary:
        return cls(
            uri=skill.uri,
            name=skill.name,
            description=skill.description,
            mime_type=SKILL_MIME_TYPE,
        )

    def to_mcp(self) -> dict[str, Any]:
        return {
            "uri": self.uri,
            "name": self.name,
            "description": self.description,
            "mimeType": self.mime_type,
        }


@dataclass(frozen=True, slots=True)
class PromptSummary:
    name: str
    description: str = ""
    args: tuple[PromptArgument, ...] = ()

    @classmethod
    def from_prompt(cls, prompt: Prompt) -> PromptSummary:
        return cls(name=prompt.name, description=prompt.description, args=prompt.arguments)

    def to_mcp(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "arguments": [
                {"name": a.name, "description": a.description, "required": a.required}
                for a in self.args
            ],
        }


@dataclass(frozen=True, slots=True)
class ResourceContents:
    """Result of reading a resource or skill."""

    uri: str
    text: str
    mime_type: str


def names_of(items: Sequence[Any]) -> list[str]:
    """Return the ``name`` (or ``uri``) of each summary, for quick assertions and logs."""
    return [getattr(item, "name", None) or getattr(item, "uri", "") for item in items]


__all__ = [
    "ALWAYS_VISIBLE",
    "SKILL_MIME_TYPE",
    "SKILL_URI_SCHEME",
    "Absent",
    "AutoSkill",
    "Capability",
    "CapabilityKind",
    "ContentProvider",
    "EvaluationContext",
    "HiddenPredicate",
    "ManualSkill",
    "Predicate",
    "Prompt",
    "PromptArgument",
    "PromptSummary",
    "Resource",
    "ResourceContents",
    "ResourceSummary",
    "RouterDefinition",
    "Skill",
    "Static",
    "Tool",
    "ToolSummary",
    "Visibility",
    "as_visibility",
    "freeze",
    "names_of",
    "skill_uri",
    "thaw",
]
