from __future__ import annotations

import logging
import sys
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
from rich.console import Console
from typer.testing import CliRunner

ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from skillgate.capabilities.models import (  # noqa: E402
    AutoSkill,
    EvaluationContext,
    Predicate,
    Static,
    Tool,
)
from skillgate.server import SkillgateServer  # noqa: E402


def admin_only(ctx: EvaluationContext) -> bool:
    """Hidden unless the caller is an admin."""
    return not ctx.get("isAdmin")


def make_scenario_server(name: str = "scenario", **kwargs: Any) -> SkillgateServer:
    """Tools a (visible), b (hidden) and c (visible only for admins)."""
    server = SkillgateServer(name, **kwargs)
    server.add_tool(Tool(name="a", description="Tool A", handler=lambda: "a"))
    server.add_tool(
        Tool(name="b", description="Tool B", handler=lambda: "b", visibility=Static(True))
    )
    server.add_tool(
        Tool(name="c", description="Tool C", handler=lambda: "c", visibility=Predicate(admin_only))
    )
    return server


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def scenario_factory() -> Callable[..., SkillgateServer]:
    return make_scenario_server


@pytest.fixture
def scenario_server() -> SkillgateServer:
    return make_scenario_server()


@pytest.fixture
def skill_server() -> SkillgateServer:
    """Scenario tools plus an auto-generated skill documenting a and b."""
    server = make_scenario_server()
    server.add_skill(AutoSkill(name="S", description="Working with a and b", tools=("a", "b")))
    return server


@pytest.fixture(autouse=True)
def isolate_config(tmp_path: Path, monkeypatch: Any) -> Path:
    """Point config to a temp path so tests don't read a real skillgate.toml."""
    cfg_path = tmp_path / "skillgate.toml"
    monkeypatch.setenv("SKILLGATE_CONFIG", str(cfg_path))
    return cfg_path


@pytest.fixture(autouse=True)
def capture_console(monkeypatch: Any) -> Console:
    """Use an in-memory Rich console during tests."""
    test_console = Console(record=True, width=120)
    import skillgate.core.console as core_console
    import skillgate.main as sg_main

    monkeypatch.setattr(core_console, "console", test_console)
    monkeypatch.setattr(sg_main, "console", test_console)
    return test_console


@pytest.fixture(autouse=True)
def reset_logging() -> Iterator[None]:
    """Undo handlers installed by CLI invocations."""
    yield
    package_logger = logging.getLogger("skillgate")
    package_logger.handlers.clear()
    package_logger.setLevel(logging.NOTSET)
