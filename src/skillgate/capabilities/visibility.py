"""Hidden evaluator: per-request visibility filtering.

Each capability carries a Visibility rule (absent, static, or a predicate
over the request's EvaluationContext). filter_visible() resolves every rule
for one context, running all predicates concurrently, and returns the
visible items in their original order.

A predicate that raises, times out or is cancelled from within resolves to
``error_default`` ("visible" unless configured otherwise). The failure is
logged once per predicate and never propagates to the caller: a broken
visibility rule may over-expose a capability's existence in listings, but
it cannot make discovery itself fail.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from time import monotonic
from typing import Any, Literal, TypeAlias, TypeVar

from skillgate.capabilities.models import (
    ALWAYS_VISIBLE,
    Absent,
    EvaluationContext,
    HiddenPredicate,
    Predicate,
    Static,
    Visibility,
    as_visibility,
)
from skillgate.core.config import VisibilityConfig
from skillgate.core.console import get_logger

T = TypeVar("T")

logger = get_logger("visibility")

Lookup: TypeAlias = Callable[[str], Any] | Mapping[str, Any]


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Visible:
    pass


@dataclass(frozen=True, slots=True)
class Hidden:
    pass


@dataclass(frozen=True, slots=True)
class Failed:
    error: BaseException


Outcome: TypeAlias = Visible | Hidden | Failed

VISIBLE = Visible()
HIDDEN = Hidden()


class PredicateTimeoutError(TimeoutError):
    """Raised (and absorbed) when a predicate exceeds its time budget."""


@dataclass(frozen=True)
class EvaluatorOptions:
    """Per-call evaluation settings.

    Attributes:
        timeout: Seconds an asynchronous predicate may take
        slow_threshold: Seconds after which a completed predicate is logged as slow
        error_default: Outcome used for failed predicates
        logger: Logger receiving failures and slow-predicate warnings
    """

    timeout: float = 1.0
    slow_threshold: float = 0.1
    error_default: Literal["visible", "hidden"] = "visible"
    logger: logging.Logger = field(default=logger)

    @classmethod
    def from_config(
        cls, config: VisibilityConfig, *, log: logging.Logger | None = None
    ) -> EvaluatorOptions:
        return cls(
            timeout=config.predicate_timeout,
            slow_threshold=config.slow_predicate_threshold,
            error_default=config.error_default,
            logger=log or logger,
        )


DEFAULT_OPTIONS = EvaluatorOptions()


# ---------------------------------------------------------------------------
# Resolution helpers
# ---------------------------------------------------------------------------


def _field(source: object, name: str) -> tuple[bool, object]:
    if isinstance(source, Mapping):
        if name in source:
            return True, source[name]
        return False, None
    if hasattr(source, name):
        return True, getattr(source, name)
    return False, None


def resolve_visibility(entry: object) -> Visibility:
    """Find the visibility rule stored on a registry entry.

    Checks ``visibility`` then ``hidden`` on the entry itself (attribute or
    mapping key), then the same fields on a nested ``definition``. An entry
    with none of them is always visible.
    """
    if entry is None:
        return ALWAYS_VISIBLE
    for source in (entry, _field(entry, "definition")[1]):
        if source is None:
            continue
        for name in ("visibility", "hidden"):
            found, value = _field(source, name)
            if found:
                return as_visibility(value)
    return ALWAYS_VISIBLE


def item_key(item: object) -> str:
    """Return the registry key of a listing item: its URI, else its name."""
    for name in ("uri", "name"):
        found, value = _field(item, name)
        if found and value:
            return str(value)
    raise ValueError(f"Cannot determine a name or uri for {item!r}")


def _entry_getter(lookup: Lookup | None) -> Callable[[str], Any]:
    if lookup is None:
        return lambda _key: None
    if isinstance(lookup, Mapping):
        return lookup.get

    def _get(key: str) -> Any:
        try:
            return lookup(key)
        except LookupError:
            return None

    return _get


# ---------------------------------------------------------------------------
# Predicate execution
# ---------------------------------------------------------------------------


async def run_predicate(
    fn: HiddenPredicate,
    context: EvaluationContext,
    options: EvaluatorOptions = DEFAULT_OPTIONS,
    item_id: str = "<unknown>",
) -> Outcome:
    """Invoke one predicate and classify its result.

    Synchronous predicates run inline and cannot be interrupted; awaitable
    results are bounded by ``options.timeout``.
    """
    started = monotonic()
    try:
        result = fn(context)
        if inspect.isawaitable(result):
            result = await asyncio.wait_for(result, timeout=options.timeout)
    except TimeoutError:
        return Failed(
            PredicateTimeoutError(f"predicate timed out after {options.timeout * 1000:.0f}ms")
        )
    except asyncio.CancelledError:
        task = asyncio.current_task()
        if task is not None and task.cancelling():
            raise
        return Failed(asyncio.CancelledError("predicate was cancelled"))
    except Exception as exc:
        return Failed(exc)

    duration = monotonic() - started
    if duration > options.slow_threshold:
        options.logger.warning(
            "Slow hidden predicate evaluation for %s: %.1fms",
            item_id,
            duration * 1000,
            extra={"item": item_id, "duration": duration},
        )
    return HIDDEN if result else VISIBLE


def collapse(outcome: Outcome, options: EvaluatorOptions = DEFAULT_OPTIONS) -> bool:
    """Return True when the outcome means hidden."""
    match outcome:
        case Hidden():
            return True
        case Visible():
            return False
        case Failed():
            return options.error_default == "hidden"
    raise TypeError(f"Unknown outcome {outcome!r}")


def _report_failure(failed: Failed, item_ids: Sequence[str], options: EvaluatorOptions) -> None:
    names = ", ".join(item_ids)
    options.logger.error(
        "Hidden predicate evaluation failed for %s: %s: %s (treating as %s)",
        names,
        type(failed.error).__name__,
        failed.error,
        options.error_default,
        extra={
            "item": item_ids[0] if item_ids else "<unknown>",
            "items": list(item_ids),
            "error": repr(failed.error),
        },
    )


async def evaluate_outcome(
    visibility: object,
    context: EvaluationContext | Mapping[str, Any] | None = None,
    options: EvaluatorOptions = DEFAULT_OPTIONS,
    item_id: str = "<unknown>",
) -> Outcome:
    """Evaluate one visibility value without collapsing failures."""
    match as_visibility(visibility):
        case Absent():
            return VISIBLE
        case Static(hidden=hidden):
            return HIDDEN if hidden else VISIBLE
        case Predicate(fn=fn):
            return await run_predicate(fn, EvaluationContext.coerce(context), options, item_id)
    raise TypeError(f"Unsupported visibility {visibility!r}")


async def evaluate_visibility(
    visibility: object,
    context: EvaluationContext | Mapping[str, Any] | None = None,
    options: EvaluatorOptions = DEFAULT_OPTIONS,
    item_id: str = "<unknown>",
) -> bool:
    """Return True when ``visibility`` hides its item for ``context``.

    Failures are logged and resolved to ``options.error_default``.
    """
    outcome = await evaluate_outcome(visibility, context, options, item_id)
    if isinstance(outcome, Failed):
        _report_failure(outcome, [item_id], options)
    return collapse(outcome, options)


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


async def filter_visible(
    items: Sequence[T],
    lookup: Lookup | None,
    context: EvaluationContext | Mapping[str, Any] | None = None,
    options: EvaluatorOptions | None = None,
    *,
    key: Callable[[Any], str] = item_key,
) -> list[T]:
    """Return the items visible for ``context``, preserving their order.

    Args:
        items: Listing items (summaries, registry entries or plain mappings)
        lookup: Mapping or callable from item key to registry entry; when it
            yields nothing the item itself is inspected for a visibility rule
        context: The request's evaluation context, shared by every predicate
        options: Timeout, error policy and logger
        key: Function extracting the registry key from an item

    Returns:
        The visible subset of ``items`` in original order.
    """
    opts = options or DEFAULT_OPTIONS
    ctx = EvaluationContext.coerce(context)
    get_entry = _entry_getter(lookup)

    resolved: list[Outcome | HiddenPredicate] = []
    predicates: dict[int, HiddenPredicate] = {}
    owners: dict[int, list[str]] = {}

    for item in items:
        item_id = key(item)
        entry = get_entry(item_id)
        match resolve_visibility(entry if entry is not None else item):
            case Absent():
                resolved.append(VISIBLE)
            case Static(hidden=hidden):
                resolved.append(HIDDEN if hidden else VISIBLE)
            case Predicate(fn=fn):
                # A predicate shared by several items runs once per call.
                predicates.setdefault(id(fn), fn)
                owners.setdefault(id(fn), []).append(item_id)
                resolved.append(fn)

    outcomes: dict[int, Outcome] = {}
    if predicates:
        pending = list(predicates.items())
        results = await asyncio.gather(
            *(run_predicate(fn, ctx, opts, owners[fn_id][0]) for fn_id, fn in pending)
        )
        for (fn_id, _fn), outcome in zip(pending, results, strict=True):
            if isinstance(outcome, Failed):
                _report_failure(outcome, owners[fn_id], opts)
            outcomes[fn_id] = outcome

    visible: list[T] = []
    for item, state in zip(items, resolved, strict=True):
        outcome = state if isinstance(state, (Visible, Hidden, Failed)) else outcomes[id(state)]
        if not collapse(outcome, opts):
            visible.append(item)
    return visible


class HiddenEvaluator:
    """Holds evaluation options for the components that filter listings."""

    def __init__(self, options: EvaluatorOptions | None = None) -> None:
        self.options = options or DEFAULT_OPTIONS

    async def filter_visible(
        self,
        items: Sequence[T],
        lookup: Lookup | None,
        context: EvaluationContext | Mapping[str, Any] | None = None,
        *,
        key: Callable[[Any], str] = item_key,
    ) -> list[T]:
        return await filter_visible(items, lookup, context, self.options, key=key)

    async def is_hidden(
        self,
        visibility: object,
        context: EvaluationContext | Mapping[str, Any] | None = None,
        item_id: str = "<unknown>",
    ) -> bool:
        return await evaluate_visibility(visibility, context, self.options, item_id)


__all__ = [
    "DEFAULT_OPTIONS",
    "EvaluatorOptions",
    "Failed",
    "Hidden",
    "HiddenEvaluator",
    "Outcome",
    "PredicateTimeoutError",
    "Visible",
    "collapse",
    "evaluate_outcome",
    "evaluate_visibility",
    "filter_visible",
    "item_key",
    "resolve_visibility",
    "run_predicate",
]
