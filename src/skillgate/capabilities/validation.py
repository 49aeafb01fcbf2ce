"""Setup-time skill validation.

Checks the relationship between skills and the capabilities they document:
    - invalid-reference: a skill references a name that is not registered
    - orphaned-hidden: a statically hidden capability no skill documents
    - non-hidden-component: a skill documents an always-visible capability
    - empty-skill: an auto-generated skill with nothing to document

Each rule's severity comes from SkillValidationConfig. Predicate-based
visibility cannot be judged at setup time, so those capabilities are never
reported as orphaned or non-hidden.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

from skillgate.capabilities.models import (
    Absent,
    AutoSkill,
    CapabilityKind,
    Static,
    Visibility,
)
from skillgate.capabilities.registry import CapabilityRegistry
from skillgate.capabilities.skills import skill_components
from skillgate.core.config import RuleSeverity, SkillValidationConfig
from skillgate.core.console import get_logger
from skillgate.core.result import SkillValidationError

logger = get_logger("validation")


class Severity(StrEnum):
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    rule: str
    severity: Severity
    message: str
    suggestion: str = ""
    skill: str | None = None
    component: str | None = None

    def __str__(self) -> str:
        text = f"[{self.rule}] {self.message}"
        return f"{text}\n  {self.suggestion}" if self.suggestion else text


_KINDS: dict[str, CapabilityKind] = {
    "tools": CapabilityKind.TOOL,
    "resources": CapabilityKind.RESOURCE,
    "prompts": CapabilityKind.PROMPT,
}


def _severity(level: RuleSeverity, strict: bool) -> Severity | None:
    if level == "off":
        return None
    if level == "error" or strict:
        return Severity.ERROR
    return Severity.WARNING


def _is_static_hidden(visibility: Visibility) -> bool:
    return isinstance(visibility, Static) and visibility.hidden


def _is_always_visible(visibility: Visibility) -> bool:
    return isinstance(visibility, Absent) or (
        isinstance(visibility, Static) and not visibility.hidden
    )


def _references(registry: CapabilityRegistry) -> dict[tuple[str, str], set[str]]:
    """Map (kind, component key) -> names of skills documenting it."""
    refs: dict[tuple[str, str], set[str]] = {}
    for skill in registry.skills():
        if not isinstance(skill, AutoSkill):
            continue
        for group, names in skill_components(registry, skill).items():
            for name in names:
                refs.setdefault((_KINDS[group].value, name), set()).add(skill.name)
    return refs


def validate_skills(
    registry: CapabilityRegistry,
    config: SkillValidationConfig | None = None,
) -> list[ValidationIssue]:
    """Run every enabled rule and return the issues found, in a stable order."""
    cfg = config or SkillValidationConfig()
    if not cfg.enabled:
        return []

    issues: list[ValidationIssue] = []
    refs = _references(registry)

    invalid = _severity(cfg.invalid_references, cfg.strict)
    non_hidden = _severity(cfg.non_hidden_components, cfg.strict)
    empty = _severity(cfg.empty_skills, cfg.strict)
    orphaned = _severity(cfg.orphaned_hidden, cfg.strict)

    for skill in registry.skills():
        if not isinstance(skill, AutoSkill):
            continue
        components = skill_components(registry, skill)

        if empty and not any(components.values()):
            issues.append(
                ValidationIssue(
                    rule="empty-skill",
                    severity=empty,
                    message=f"Skill '{skill.name}' does not reference any tools, resources or prompts.",
                    suggestion="Add component references, or declare membership with skills=.",
                    skill=skill.name,
                )
            )

        for group, names in components.items():
            kind = _KINDS[group]
            for name in names:
                entry = registry.get(kind, name)
                if entry is None:
                    if invalid:
                        issues.append(
                            ValidationIssue(
                                rule="invalid-reference",
                                severity=invalid,
                                message=f"Skill '{skill.name}' references unknown {kind.value} '{name}'.",
                                suggestion=f"Available {kind.value}s: "
                                + (", ".join(registry.all_names(kind)) or "none"),
                                skill=skill.name,
                                component=name,
                            )
                        )
                    continue
                if non_hidden and _is_always_visible(entry.visibility):  # type: ignore[union-attr]
                    issues.append(
                        ValidationIssue(
                            rule="non-hidden-component",
                            severity=non_hidden,
                            message=f"Skill '{skill.name}' documents {kind.value} '{name}', "
                            f"which is already visible in discovery.",
                            suggestion="Mark it hidden=True if it should only be reachable through the skill.",
                            skill=skill.name,
                            component=name,
                        )
                    )

    if orphaned:
        for kind in _KINDS.values():
            for entry in registry.items(kind):
                if registry.is_router(entry.key) or not _is_static_hidden(entry.visibility):
                    continue
                if refs.get((kind.value, entry.key)):
                    continue
                issues.append(
                    ValidationIssue(
                        rule=f"orphaned-hidden-{kind.value}",
                        severity=orphaned,
                        message=f"Hidden {kind.value} '{entry.key}' is not referenced by any skill.",
                        suggestion="Add to an existing skill, create a new skill that documents it, "
                        "or remove hidden flag.",
                        component=entry.key,
                    )
                )

    return issues


def report_issues(issues: Iterable[ValidationIssue]) -> None:
    """Log warnings; raise SkillValidationError if any issue is an error."""
    errors: list[ValidationIssue] = []
    for issue in issues:
        if issue.severity is Severity.ERROR:
            errors.append(issue)
        else:
            logger.warning("%s", issue, extra={"rule": issue.rule})
    if errors:
        raise SkillValidationError(
            "Skill validation failed:\n\n" + "\n".join(f"- {issue}" for issue in errors),
            context={"rules": sorted({issue.rule for issue in errors})},
        )


__all__ = ["Severity", "ValidationIssue", "report_issues", "validate_skills"]
