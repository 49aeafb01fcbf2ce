"""
Centralized error formatting for CLI and MCP contexts.

Setup failures (router compilation, skill validation, duplicate names) are
shown to the operator on the terminal; serving-time failures reach MCP
clients as JSON payloads. Both go through format_error() so they share
error codes.
"""

from __future__ import annotations

import json
import traceback
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any

from rich.markup import escape

from skillgate.core.result import (
    ConfigurationError,
    DuplicateNameError,
    DuplicateRouterError,
    NotFoundError,
    RegistrationError,
    RouterArgumentError,
    RouterError,
    SkillgateError,
    SkillRenderError,
    SkillValidationError,
    UnknownToolReferenceError,
)


class ErrorSeverity(Enum):
    """How loudly an error is shown."""

    INFO = auto()
    WARNING = auto()
    ERROR = auto()
    CRITICAL = auto()


@dataclass(frozen=True, slots=True)
class FormattedError:
    """An exception reduced to code, message and structured details."""

    message: str
    severity: ErrorSeverity
    code: str
    details: dict[str, Any]
    traceback: str | None = None


# Most specific first.
_ERROR_CODES: tuple[tuple[type[BaseException], str], ...] = (
    (NotFoundError, "NOT_FOUND"),
    (DuplicateRouterError, "DUPLICATE_ROUTER"),
    (UnknownToolReferenceError, "UNKNOWN_TOOL_REFERENCE"),
    (RouterError, "ROUTER_ERROR"),
    (RouterArgumentError, "ROUTER_ARGUMENTS"),
    (DuplicateNameError, "DUPLICATE_NAME"),
    (RegistrationError, "REGISTRATION_ERROR"),
    (SkillValidationError, "SKILL_VALIDATION_ERROR"),
    (SkillRenderError, "SKILL_RENDER_ERROR"),
    (ConfigurationError, "CONFIG_ERROR"),
    (SkillgateError, "SKILLGATE_ERROR"),
    (TimeoutError, "TIMEOUT"),
)

_COLORS = {
    ErrorSeverity.INFO: "blue",
    ErrorSeverity.WARNING: "yellow",
    ErrorSeverity.ERROR: "red",
    ErrorSeverity.CRITICAL: "bold red",
}


def _error_code(exc: BaseException) -> str:
    for exc_type, code in _ERROR_CODES:
        if isinstance(exc, exc_type):
            return code
    return "UNEXPECTED_ERROR"


def _severity(exc: BaseException) -> ErrorSeverity:
    if isinstance(exc, (NotFoundError, RouterArgumentError, ConfigurationError)):
        return ErrorSeverity.WARNING
    if isinstance(exc, SkillgateError):
        return ErrorSeverity.ERROR
    return ErrorSeverity.CRITICAL


def format_error(
    exc: BaseException,
    *,
    include_traceback: bool = False,
) -> FormattedError:
    """Reduce ``exc`` to a FormattedError.

    Details come from the context of skillgate errors; other exceptions
    carry none. The traceback is only captured on request.
    """
    details: dict[str, Any] = {}
    if isinstance(exc, SkillgateError):
        details = exc.context.copy()

    tb = None
    if include_traceback:
        tb = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))

    return FormattedError(
        message=str(exc),
        severity=_severity(exc),
        code=_error_code(exc),
        details=details,
        traceback=tb,
    )


# ---------------------------------------------------------------------------
# Terminal output
# ---------------------------------------------------------------------------


def format_for_cli(error: FormattedError) -> str:
    """Format error for CLI display with Rich markup."""
    color = _COLORS.get(error.severity, "red")
    parts = [f"[{color}]{error.code}[/{color}]: {escape(error.message)}"]
    if error.traceback:
        parts.append(f"\n[dim]{error.traceback}[/dim]")
    return "\n".join(parts)


def format_for_cli_panel(error: FormattedError) -> dict[str, Any]:
    """Keyword arguments for ``rich.panel.Panel`` titled with the error code."""
    return {
        "renderable": escape(error.message),
        "title": error.code,
        "border_style": _COLORS.get(error.severity, "red"),
    }


# ---------------------------------------------------------------------------
# MCP payloads
# ---------------------------------------------------------------------------


def format_for_mcp(error: FormattedError) -> str:
    """Format error as JSON for MCP tool responses."""
    payload: dict[str, Any] = {
        "error": error.code,
        "message": error.message,
    }
    if error.details:
        payload["details"] = error.details
    return json.dumps(payload, default=str)


def format_exception_for_mcp(exc: BaseException) -> str:
    """Shortcut for ``format_for_mcp(format_error(exc))`` without a traceback."""
    return format_for_mcp(format_error(exc, include_traceback=False))


__all__ = [
    "ErrorSeverity",
    "FormattedError",
    "format_error",
    "format_exception_for_mcp",
    "format_for_cli",
    "format_for_cli_panel",
    "format_for_mcp",
]
