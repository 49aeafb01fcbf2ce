"""MCP server implementation using FastMCP.

DisclosureServer serves a built SkillgateServer over MCP:
    - tools/list, resources/list and prompts/list are filtered per request
      through the discovery façade
    - tools/call, resources/read and prompts/get resolve exact identifiers,
      hidden or not, including skill:// documents and router__tool names
    - the evaluation context is derived from the request's ``_meta``
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ResourceError, ToolError
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.types import (
    GetPromptResult,
    PromptMessage,
    TextContent,
)
from mcp.types import Prompt as MCPPrompt
from mcp.types import Resource as MCPResource
from mcp.types import Tool as MCPTool
from pydantic import AnyUrl

from skillgate.capabilities.models import CapabilityKind
from skillgate.core.config import AppConfig, load_config
from skillgate.core.console import get_logger
from skillgate.core.error_middleware import format_exception_for_mcp
from skillgate.core.result import NotFoundError, SkillgateError
from skillgate.server import SkillgateServer, load_server

logger = get_logger("mcp")


def _jsonable(value: Any) -> Any:
    if hasattr(value, "to_mcp"):
        return value.to_mcp()
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


def _text_content(value: Any) -> list[TextContent]:
    if isinstance(value, str):
        text = value
    else:
        text = json.dumps(_jsonable(value), indent=2, default=str)
    return [TextContent(type="text", text=text)]


class DisclosureServer(FastMCP):
    """FastMCP server whose handlers go through a discovery façade."""

    def __init__(self, skillgate: SkillgateServer, **settings: Any) -> None:
        super().__init__(skillgate.name, **settings)
        self.skillgate = skillgate
        self.discovery = skillgate.build()

    def request_context_data(self) -> dict[str, Any] | None:
        """Build evaluation context data for the current request.

        Fields of the request's ``_meta`` are exposed at the top level and
        under ``metadata``. Returns None outside a request.
        """
        try:
            request_context = self._mcp_server.request_context
        except LookupError:
            return None

        meta: dict[str, Any] = {}
        if request_context.meta is not None:
            meta = request_context.meta.model_dump(exclude_none=True)

        return {
            **meta,
            "metadata": dict(meta),
            "server": {"name": self.name},
            "mcp": {"request_id": request_context.request_id},
        }

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    async def list_tools(self) -> list[MCPTool]:
        summaries = await self.discovery.list_tools(self.request_context_data())
        return [MCPTool.model_validate(summary.to_mcp()) for summary in summaries]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Sequence[TextContent]:
        try:
            result = await self.discovery.invoke(
                name, arguments, context=self.request_context_data()
            )
        except SkillgateError as exc:
            raise ToolError(format_exception_for_mcp(exc)) from exc

        if self.skillgate.registry.is_router(name):
            result = {"tools": _jsonable(result)}
        return _text_content(result)

    # ------------------------------------------------------------------
    # Resources and skills
    # ------------------------------------------------------------------

    async def list_resources(self) -> list[MCPResource]:
        summaries = await self.discovery.list_resources(self.request_context_data())
        return [MCPResource.model_validate(summary.to_mcp()) for summary in summaries]

    async def read_resource(self, uri: AnyUrl | str) -> Iterable[ReadResourceContents]:
        try:
            contents = await self.discovery.read_resource(str(uri))
        except NotFoundError as exc:
            raise ResourceError(str(exc)) from exc
        return [ReadResourceContents(content=contents.text, mime_type=contents.mime_type)]

    # ------------------------------------------------------------------
    # Prompts
    # ------------------------------------------------------------------

    async def list_prompts(self) -> list[MCPPrompt]:
        summaries = await self.discovery.list_prompts(self.request_context_data())
        return [MCPPrompt.model_validate(summary.to_mcp()) for summary in summaries]

    async def get_prompt(
        self, name: str, arguments: dict[str, Any] | None = None
    ) -> GetPromptResult:
        try:
            result = await self.discovery.get_prompt(name, arguments)
        except NotFoundError as exc:
            raise ValueError(str(exc)) from exc

        if isinstance(result, GetPromptResult):
            return result
        prompt = self.skillgate.registry.lookup(CapabilityKind.PROMPT, name)
        return GetPromptResult(
            description=prompt.description or None,
            messages=[
                PromptMessage(role="user", content=content) for content in _text_content(result)
            ],
        )


def create_server(
    target: str | SkillgateServer,
    *,
    config: AppConfig | None = None,
    config_path: Path | None = None,
) -> DisclosureServer:
    """Build the MCP server for ``target`` (a server or ``module:attribute``)."""
    if config is None:
        config, load_result = load_config(config_path)
        if load_result.error:
            logger.warning("Using default configuration: %s", load_result.error)

    skillgate = target if isinstance(target, SkillgateServer) else load_server(target, config)
    server = DisclosureServer(skillgate)
    logger.info("MCP server %s created", server.name)
    return server


def main(target: str) -> None:
    create_server(target).run()


__all__ = ["DisclosureServer", "create_server", "main"]
