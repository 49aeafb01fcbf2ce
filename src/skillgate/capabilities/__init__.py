"""Capabilities package - registry, visibility, skills and routers.

The pieces a server is assembled from: the registry holding every
capability, the hidden evaluator filtering listings per request, the skill
renderer producing skill:// documents, the router compiler and the
discovery façade that ties them together for a transport.
"""

from __future__ import annotations

from skillgate.capabilities.declarations import (
    DeclaredCapabilities,
    discover_capabilities,
    get_tool_metadata,
    is_tool,
    prompt,
    resource,
    router,
    tool,
)
from skillgate.capabilities.discovery import DiscoveryFacade
from skillgate.capabilities.models import (
    AutoSkill,
    CapabilityKind,
    EvaluationContext,
    ManualSkill,
    Prompt,
    PromptArgument,
    PromptSummary,
    Resource,
    ResourceContents,
    ResourceSummary,
    RouterDefinition,
    Tool,
    ToolSummary,
)
from skillgate.capabilities.registry import CapabilityRegistry
from skillgate.capabilities.routers import RouterCompiler
from skillgate.capabilities.skills import SkillRenderer
from skillgate.capabilities.validation import validate_skills
from skillgate.capabilities.visibility import EvaluatorOptions, HiddenEvaluator, filter_visible

__all__ = [
    "AutoSkill",
    "CapabilityKind",
    "CapabilityRegistry",
    "DeclaredCapabilities",
    "DiscoveryFacade",
    "EvaluationContext",
    "EvaluatorOptions",
    "HiddenEvaluator",
    "ManualSkill",
    "Prompt",
    "PromptArgument",
    "PromptSummary",
    "Resource",
    "ResourceContents",
    "ResourceSummary",
    "RouterCompiler",
    "RouterDefinition",
    "SkillRenderer",
    "Tool",
    "ToolSummary",
    "discover_capabilities",
    "filter_visible",
    "get_tool_metadata",
    "is_tool",
    "prompt",
    "resource",
    "router",
    "tool",
    "validate_skills",
]
