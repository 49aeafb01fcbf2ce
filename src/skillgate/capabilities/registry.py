"""Capability registry.

The registry is the single source of truth for every registered tool,
resource, prompt and skill, plus the router bookkeeping produced by the
router compiler. It is built once during server setup and read many times
while serving:

    registry = CapabilityRegistry()
    registry.register(Tool(name="search", description="Search notes"))
    registry.register(AutoSkill(name="notes", tools=("search",)))
    registry.seal()

Entries keep registration order so discovery listings are stable.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable
from typing import Any

from pydantic import AnyUrl, TypeAdapter, ValidationError

from skillgate.capabilities.models import (
    AutoSkill,
    CapabilityKind,
    ManualSkill,
    Prompt,
    Resource,
    Skill,
    Tool,
    skill_uri,
)
from skillgate.core.console import get_logger
from skillgate.core.result import DuplicateNameError, NotFoundError, RegistrationError

logger = get_logger("registry")

Entry = Tool | Resource | Prompt | ManualSkill | AutoSkill

_URI_ADAPTER: TypeAdapter[AnyUrl] = TypeAdapter(AnyUrl)


def kind_of(entry: object) -> CapabilityKind:
    """Return the registry namespace an entry belongs to."""
    if isinstance(entry, Tool):
        return CapabilityKind.TOOL
    if isinstance(entry, Resource):
        return CapabilityKind.RESOURCE
    if isinstance(entry, Prompt):
        return CapabilityKind.PROMPT
    if isinstance(entry, (ManualSkill, AutoSkill)):
        return CapabilityKind.SKILL
    raise RegistrationError(
        f"Cannot register object of type {type(entry).__name__}; "
        f"expected Tool, Resource, Prompt, ManualSkill or AutoSkill."
    )


def check_uri(kind: CapabilityKind, key: str) -> str:
    """Ensure the URI a resource or skill is served at is a valid URL."""
    uri = skill_uri(key) if kind is CapabilityKind.SKILL else key
    try:
        _URI_ADAPTER.validate_python(uri)
    except ValidationError as exc:
        reason = exc.errors()[0]["msg"] if exc.errors() else str(exc)
        raise RegistrationError(
            f"{kind.capitalize()} '{key}' is served at '{uri}', which is not a valid URI: "
            f"{reason}.\n\nUse a name made of URL-safe characters.",
            context={"kind": kind.value, "name": key, "uri": uri},
        ) from exc
    return uri


class CapabilityRegistry:
    """Ordered, name-keyed storage for all capabilities of one server."""

    def __init__(self) -> None:
        self._entries: dict[CapabilityKind, dict[str, Entry]] = {
            kind: {} for kind in CapabilityKind
        }
        self._router_members: dict[str, tuple[str, ...]] = {}
        self._sealed = False

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    @property
    def sealed(self) -> bool:
        return self._sealed

    def seal(self) -> None:
        """Freeze the registry structure; later registrations raise."""
        self._sealed = True

    def _ensure_writable(self, what: str) -> None:
        if self._sealed:
            raise RegistrationError(
                f"Cannot register {what} after setup has completed.\n\n"
                f"Register every capability before the server starts serving."
            )

    def register(self, entry: Entry) -> Entry:
        """Register a capability; raises DuplicateNameError on a repeated key."""
        kind = kind_of(entry)
        self._ensure_writable(f"{kind} '{entry.key}'")

        bucket = self._entries[kind]
        if entry.key in bucket:
            raise DuplicateNameError(kind.value, entry.key)
        if kind in (CapabilityKind.RESOURCE, CapabilityKind.SKILL):
            check_uri(kind, entry.key)

        # Skills are served from the resource URI space.
        if kind is CapabilityKind.SKILL and skill_uri(entry.key) in self._entries[CapabilityKind.RESOURCE]:
            raise DuplicateNameError(CapabilityKind.RESOURCE.value, skill_uri(entry.key))
        if kind is CapabilityKind.RESOURCE and self._skill_for_uri(entry.key) is not None:
            raise DuplicateNameError(CapabilityKind.RESOURCE.value, entry.key)

        bucket[entry.key] = entry
        logger.debug("Registered %s %s", kind.value, entry.key)
        return entry

    def register_router(self, tool: Tool, members: Iterable[str]) -> Tool:
        """Register a compiled router tool together with its member list."""
        if tool.name in self._router_members:
            raise DuplicateNameError("router", tool.name)
        self.register(tool)
        self._router_members[tool.name] = tuple(members)
        return tool

    def update_description(self, kind: CapabilityKind | str, key: str, description: str) -> Entry:
        """Replace an entry's description, keeping its registration position."""
        kind = CapabilityKind(kind)
        current = self.lookup(kind, key)
        updated = dataclasses.replace(current, description=description)
        self._entries[kind][key] = updated
        return updated

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, kind: CapabilityKind | str, key: str) -> Entry | None:
        return self._entries[CapabilityKind(kind)].get(key)

    def lookup(self, kind: CapabilityKind | str, key: str) -> Any:
        """Return the entry for ``key`` or raise NotFoundError."""
        kind = CapabilityKind(kind)
        entry = self._entries[kind].get(key)
        if entry is None:
            raise NotFoundError(kind.value, key, available=self.all_names(kind))
        return entry

    def contains(self, kind: CapabilityKind | str, key: str) -> bool:
        return key in self._entries[CapabilityKind(kind)]

    def all_names(self, kind: CapabilityKind | str) -> list[str]:
        """Return keys of ``kind`` in registration order."""
        return list(self._entries[CapabilityKind(kind)])

    def items(self, kind: CapabilityKind | str) -> list[Any]:
        """Return entries of ``kind`` in registration order."""
        return list(self._entries[CapabilityKind(kind)].values())

    def tool(self, name: str) -> Tool | None:
        entry = self._entries[CapabilityKind.TOOL].get(name)
        return entry if isinstance(entry, Tool) else None

    def tools(self) -> list[Tool]:
        return self.items(CapabilityKind.TOOL)

    def resources(self) -> list[Resource]:
        return self.items(CapabilityKind.RESOURCE)

    def prompts(self) -> list[Prompt]:
        return self.items(CapabilityKind.PROMPT)

    def skills(self) -> list[Skill]:
        return self.items(CapabilityKind.SKILL)

    def _skill_for_uri(self, uri: str) -> Skill | None:
        for skill in self._entries[CapabilityKind.SKILL].values():
            if skill_uri(skill.key) == uri:
                return skill  # type: ignore[return-value]
        return None

    def skill_for_uri(self, uri: str) -> Skill | None:
        """Return the skill served at ``uri`` (``skill://<name>``), if any."""
        return self._skill_for_uri(uri)

    # ------------------------------------------------------------------
    # Routers
    # ------------------------------------------------------------------

    def is_router(self, name: str) -> bool:
        return name in self._router_members

    def router_names(self) -> list[str]:
        return list(self._router_members)

    def router_members(self, name: str) -> tuple[str, ...]:
        try:
            return self._router_members[name]
        except KeyError:
            raise NotFoundError("router", name, available=self.router_names()) from None

    def routers_for(self, tool_name: str) -> list[str]:
        """Return the routers a tool belongs to, in router registration order."""
        return [router for router, members in self._router_members.items() if tool_name in members]

    def plain_tool_names(self) -> list[str]:
        """Return tool names that are not routers, in registration order."""
        return [name for name in self._entries[CapabilityKind.TOOL] if name not in self._router_members]


__all__ = ["CapabilityRegistry", "Entry", "check_uri", "kind_of"]
