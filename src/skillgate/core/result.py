"""
Error hierarchy for skillgate.

Setup-time failures (duplicate names, router references to unknown tools,
skill validation errors) are fatal and abort server startup. Serving-time
lookups of identifiers that were never registered raise NotFoundError.
Visibility predicate failures never surface here: the evaluator absorbs them.

Usage:
    from skillgate.core.result import DuplicateNameError, SkillgateError

    try:
        registry.register(tool)
    except DuplicateNameError as exc:
        print(exc.context["name"])
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any


class SkillgateError(Exception):
    """Base exception for all skillgate errors.

    All custom exceptions inherit from this class so callers can handle
    skillgate failures uniformly.
    """

    def __init__(self, message: str, *, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        return self.message


class ConfigurationError(SkillgateError):
    """Raised for configuration issues.

    Examples:
    - Config file parse errors
    - Invalid config values
    """


class RegistrationError(SkillgateError):
    """Raised when a capability cannot be registered.

    Examples:
    - Registering after the registry was sealed
    - Registering a capability of an unsupported type
    """


class DuplicateNameError(RegistrationError):
    """Raised when a name or URI is registered twice for the same kind."""

    def __init__(self, kind: str, name: str) -> None:
        super().__init__(
            f"{kind.capitalize()} '{name}' is already registered.\n\n"
            f"Choose a different name, or remove the duplicate registration.",
            context={"kind": kind, "name": name},
        )
        self.kind = kind
        self.name = name


class NotFoundError(SkillgateError, LookupError):
    """Raised when an identifier was never registered.

    Visibility never produces this error: hidden capabilities are found by
    exact name exactly like visible ones.
    """

    def __init__(self, kind: str, name: str, *, available: Sequence[str] = ()) -> None:
        listing = ", ".join(available) if available else "none"
        super().__init__(
            f"Unknown {kind}: {name}\n\nAvailable {kind}s: {listing}",
            context={"kind": kind, "name": name},
        )
        self.kind = kind
        self.name = name


class RouterError(RegistrationError):
    """Base class for router compilation failures."""


class DuplicateRouterError(RouterError):
    """Raised when two routers share a name."""

    def __init__(self, name: str, registered: Sequence[str]) -> None:
        listing = ", ".join(f"'{r}'" for r in registered) if registered else "none"
        super().__init__(
            f"Router '{name}' is already registered.\n\n"
            f"Registered routers: {listing}\n\n"
            f"Router names must be unique within a server.",
            context={"name": name, "registered": list(registered)},
        )
        self.name = name
        self.registered = list(registered)


class RouterNameConflictError(RouterError):
    """Raised when a router name collides with a plain tool."""

    def __init__(self, name: str) -> None:
        super().__init__(
            f"Router '{name}' conflicts with an existing tool.\n\n"
            f"A tool named '{name}' is already registered; routers are installed "
            f"as tools and need a name of their own.",
            context={"name": name},
        )
        self.name = name


class RouterNestingError(RouterError):
    """Raised when a router lists another router as a member."""

    def __init__(self, router: str, member: str) -> None:
        super().__init__(
            f"Cannot assign router '{member}' to router '{router}'.\n\n"
            f"Routers can only contain regular tools, not other routers.",
            context={"router": router, "member": member},
        )
        self.router = router
        self.member = member


class UnknownToolReferenceError(RouterError):
    """Raised when a router references tool names that do not exist."""

    def __init__(
        self,
        router: str,
        unknown: Sequence[str],
        available: Sequence[str],
        suggestions: dict[str, list[str]],
    ) -> None:
        lines = [
            f"Router '{router}' configuration error:",
            "",
            "The following tools do not exist:",
        ]
        for name in unknown:
            lines.append(f"  - '{name}'")
            matches = suggestions.get(name)
            if matches:
                lines.append(f"    Did you mean: {', '.join(repr(m) for m in matches)}?")
        lines.append("")
        lines.append(f"Available tools: {list(available)}")
        if not available:
            lines.append("  (none - register tools or add public methods first)")
        lines.extend(
            [
                "",
                "To fix:",
                "  1. Check the spelling of tool names in the router configuration",
                "  2. Ensure the tools are registered before routers are compiled",
                "  3. Tool names are case-sensitive",
            ]
        )
        super().__init__(
            "\n".join(lines),
            context={
                "router": router,
                "unknown": list(unknown),
                "available": list(available),
            },
        )
        self.router = router
        self.unknown = list(unknown)
        self.available = list(available)
        self.suggestions = suggestions


class RouterArgumentError(SkillgateError):
    """Raised when a router meta-tool is invoked with arguments."""

    def __init__(self, router: str, arguments: Sequence[str]) -> None:
        super().__init__(
            f"Router '{router}' takes no arguments; got: {', '.join(arguments)}.\n\n"
            f"Call the router without arguments to list its tools.",
            context={"router": router, "arguments": list(arguments)},
        )
        self.router = router
        self.arguments = list(arguments)


class SkillValidationError(SkillgateError):
    """Raised when error-severity skill validation issues are found at setup."""


class SkillRenderError(SkillgateError):
    """Raised when a manual skill's content provider misbehaves."""


__all__ = [
    "ConfigurationError",
    "DuplicateNameError",
    "DuplicateRouterError",
    "NotFoundError",
    "RegistrationError",
    "RouterArgumentError",
    "RouterError",
    "RouterNameConflictError",
    "RouterNestingError",
    "SkillRenderError",
    "SkillValidationError",
    "SkillgateError",
    "UnknownToolReferenceError",
]
