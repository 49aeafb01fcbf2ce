from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import typer
from rich import box
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .capabilities.models import skill_uri
from .core.config import AppConfig, ConfigLoadResult, load_config
from .core.console import console, setup_logging
from .core.error_middleware import format_error, format_for_cli_panel
from .core.result import SkillgateError
from .server import SkillgateServer, load_server

app = typer.Typer(help="skillgate: inspect and serve progressively disclosed MCP capabilities.")
logger = logging.getLogger(__name__)

TARGET_HELP = "Server to load, as module:attribute."
CONTEXT_HELP = "Evaluation context entry key=value; dotted keys nest, values parse as JSON."


@dataclass
class AppState:
    config: AppConfig
    config_meta: ConfigLoadResult
    logger: logging.Logger


def parse_context(entries: Sequence[str] | None) -> dict[str, Any]:
    """Turn ``key=value`` entries into a nested evaluation context mapping."""
    context: dict[str, Any] = {}
    for entry in entries or ():
        key, sep, raw = entry.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected key=value, got '{entry}'.", param_hint="--context")
        try:
            value: Any = json.loads(raw)
        except json.JSONDecodeError:
            value = raw

        *parents, leaf = key.split(".")
        node = context
        for part in parents:
            child = node.setdefault(part, {})
            if not isinstance(child, dict):
                raise typer.BadParameter(
                    f"Context key '{part}' is both a value and a section.", param_hint="--context"
                )
            node = child
        node[leaf] = value
    return context


def _fail(exc: BaseException) -> typer.Exit:
    console.print(Panel(**format_for_cli_panel(format_error(exc))))
    return typer.Exit(code=1)


def _load(ctx: typer.Context, target: str) -> SkillgateServer:
    state: AppState = ctx.obj
    try:
        server = load_server(target, state.config)
        server.build()
    except SkillgateError as exc:
        raise _fail(exc) from exc
    return server


@app.callback()
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(
        None, "--config", "-c", help="Path to a skillgate config file (TOML or JSON)."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    loaded_config, meta = load_config(config_path=config)
    logger = setup_logging(level=loaded_config.log_level, verbose=verbose)
    ctx.obj = AppState(config=loaded_config, config_meta=meta, logger=logger)

    if meta.error:
        console.print(
            Panel(
                f"[bold red]Configuration Error - Safe Mode Active[/bold red]\n\n"
                f"Failed to load {meta.path}:\n{meta.error}\n\n"
                f"[yellow]Using default settings.[/yellow]",
                border_style="red",
            )
        )
    else:
        logger.debug(
            "Loaded configuration from %s (env overrides: %s)",
            meta.path,
            sorted(meta.env_overrides),
        )


@app.command("tools")
def list_tools(
    ctx: typer.Context,
    target: str = typer.Argument(..., help=TARGET_HELP),
    context: list[str] | None = typer.Option(None, "--context", "-x", help=CONTEXT_HELP),
) -> None:
    """List the tools visible for an evaluation context."""
    server = _load(ctx, target)
    summaries = asyncio.run(server.discovery.list_tools(parse_context(context)))

    table = Table(title=f"{server.name} tools", box=box.SIMPLE_HEAVY, expand=True)
    table.add_column("Tool", style="cyan", no_wrap=True)
    table.add_column("Router", style="magenta", no_wrap=True)
    table.add_column("Description", style="white")
    for summary in summaries:
        is_router = server.registry.is_router(summary.name)
        table.add_row(summary.name, "yes" if is_router else "", summary.description)
    console.print(table)


@app.command("resources")
def list_resources(
    ctx: typer.Context,
    target: str = typer.Argument(..., help=TARGET_HELP),
    context: list[str] | None = typer.Option(None, "--context", "-x", help=CONTEXT_HELP),
) -> None:
    """List the resources (and skills) visible for an evaluation context."""
    server = _load(ctx, target)
    summaries = asyncio.run(server.discovery.list_resources(parse_context(context)))

    table = Table(title=f"{server.name} resources", box=box.SIMPLE_HEAVY, expand=True)
    table.add_column("URI", style="cyan", no_wrap=True)
    table.add_column("MIME type", style="magenta", no_wrap=True)
    table.add_column("Description", style="white")
    for summary in summaries:
        table.add_row(summary.uri, summary.mime_type, summary.description)
    console.print(table)


@app.command("prompts")
def list_prompts(
    ctx: typer.Context,
    target: str = typer.Argument(..., help=TARGET_HELP),
    context: list[str] | None = typer.Option(None, "--context", "-x", help=CONTEXT_HELP),
) -> None:
    """List the prompts visible for an evaluation context."""
    server = _load(ctx, target)
    summaries = asyncio.run(server.discovery.list_prompts(parse_context(context)))

    table = Table(title=f"{server.name} prompts", box=box.SIMPLE_HEAVY, expand=True)
    table.add_column("Prompt", style="cyan", no_wrap=True)
    table.add_column("Arguments", style="magenta")
    table.add_column("Description", style="white")
    for summary in summaries:
        args = ", ".join(arg.name if arg.required else f"{arg.name}?" for arg in summary.args)
        table.add_row(summary.name, args, summary.description)
    console.print(table)


@app.command("skill")
def show_skill(
    ctx: typer.Context,
    target: str = typer.Argument(..., help=TARGET_HELP),
    name: str = typer.Argument(..., help="Skill name (without the skill:// prefix)."),
    raw: bool = typer.Option(False, "--raw", help="Print markdown source instead of rendering it."),
) -> None:
    """Render a skill document."""
    server = _load(ctx, target)
    try:
        contents = asyncio.run(server.discovery.read_resource(skill_uri(name)))
    except SkillgateError as exc:
        raise _fail(exc) from exc

    if raw:
        console.print(contents.text, markup=False, highlight=False)
    else:
        console.print(Markdown(contents.text))


@app.command("check")
def check(
    ctx: typer.Context,
    target: str = typer.Argument(..., help=TARGET_HELP),
) -> None:
    """Compile routers and validate skills, reporting any problems."""
    server = _load(ctx, target)

    if server.issues:
        table = Table(title="Skill validation", box=box.SIMPLE, expand=True)
        table.add_column("Rule", style="yellow", no_wrap=True)
        table.add_column("Message", style="white")
        table.add_column("Suggestion", style="dim")
        for issue in server.issues:
            table.add_row(issue.rule, issue.message, issue.suggestion)
        console.print(table)

    registry = server.registry
    console.print(
        Panel(
            f"Tools: {len(registry.plain_tool_names())}\n"
            f"Routers: {len(registry.router_names())}\n"
            f"Resources: {len(registry.resources())}\n"
            f"Prompts: {len(registry.prompts())}\n"
            f"Skills: {len(registry.skills())}\n"
            f"Warnings: {len(server.issues)}",
            title=f"[green]{server.name} OK[/green]",
            box=box.SIMPLE,
        )
    )


@app.command("serve")
def serve(
    ctx: typer.Context,
    target: str = typer.Argument(..., help=TARGET_HELP),
) -> None:
    """Serve a target over MCP stdio."""
    from .mcp.server import DisclosureServer

    server = _load(ctx, target)
    ctx.obj.logger.info("Serving %s over stdio", server.name)
    DisclosureServer(server).run()


@app.command("config")
def show_config(ctx: typer.Context) -> None:
    """Show the active configuration and where it came from."""
    state: AppState = ctx.obj
    meta = state.config_meta

    table = Table(title="Config", box=box.SIMPLE, expand=True)
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")
    for key, value in state.config.model_dump().items():
        table.add_row(key, str(value))
    console.print(table)

    meta_lines = [
        f"Path: {meta.path}",
        "File loaded: yes" if meta.file_loaded else "File loaded: no (using defaults + env)",
    ]
    if meta.env_overrides:
        meta_lines.append("Env overrides: " + ", ".join(sorted(meta.env_overrides)))
    console.print(Panel("\n".join(meta_lines), title="Config source", box=box.SIMPLE))


@app.command("version")
def show_version() -> None:
    """Print the skillgate version."""
    console.print(__version__)


def cli() -> None:
    app()


if __name__ == "__main__":
    cli()
