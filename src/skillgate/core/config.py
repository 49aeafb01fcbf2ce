"""Application configuration management.

Handles loading and validating configuration from multiple sources:
    - TOML/JSON config files
    - Environment variables (SKILLGATE_* prefix)
    - Default values

Key components:
    - AppConfig: Main configuration model
    - load_config(): Safe config loading with fallback
    - ConfigLoadResult: Metadata about config source
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from contextlib import nullcontext
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal
from unittest.mock import patch

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from skillgate.core.result import ConfigurationError

CONFIG_ENV_VAR = "SKILLGATE_CONFIG"
DEFAULT_CONFIG_NAME = "skillgate.toml"

RuleSeverity = Literal["off", "warn", "error"]


# -----------------------------------------------------------------------------
# Sub-configuration Models
# -----------------------------------------------------------------------------


class VisibilityConfig(BaseModel):
    """Hidden-predicate evaluation settings."""

    predicate_timeout: float = Field(
        default=1.0, gt=0, description="Seconds each visibility predicate may run."
    )
    slow_predicate_threshold: float = Field(
        default=0.1, ge=0, description="Seconds after which a predicate is logged as slow."
    )
    error_default: Literal["visible", "hidden"] = Field(
        default="visible",
        description="Outcome for predicates that raise or time out (fail open by default).",
    )


class RouterConfig(BaseModel):
    """Router meta-tool settings."""

    flatten: bool = Field(
        default=True,
        description="List router member tools alongside their routers in tools/list.",
    )
    namespace_separator: str = Field(
        default="__", description="Separator for namespaced router__tool invocation."
    )

    @field_validator("namespace_separator")
    @classmethod
    def separator_not_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("namespace_separator must not be empty")
        return v


class SkillValidationConfig(BaseModel):
    """Severity of each setup-time skill validation rule."""

    enabled: bool = Field(default=True, description="Run skill validation during setup.")
    invalid_references: RuleSeverity = "warn"
    orphaned_hidden: RuleSeverity = "warn"
    non_hidden_components: RuleSeverity = "warn"
    empty_skills: RuleSeverity = "warn"
    strict: bool = Field(default=False, description="Treat every warning as an error.")


@dataclass
class ConfigLoadResult:
    path: Path
    file_loaded: bool
    env_overrides: set[str]
    error: str | None = None


class AppConfig(BaseSettings):
    """Application-wide configuration with nested sub-configs."""

    model_config = SettingsConfigDict(
        env_prefix="SKILLGATE_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    server_name: str = Field(default="skillgate", description="Name reported to MCP clients.")
    log_level: str = Field(default="INFO", description="Log level for skillgate output.")
    visibility: VisibilityConfig = Field(default_factory=VisibilityConfig)
    routers: RouterConfig = Field(default_factory=RouterConfig)
    skills: SkillValidationConfig = Field(default_factory=SkillValidationConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
    ]:
        # Environment variables override config file entries.
        return (env_settings, init_settings, dotenv_settings, file_secret_settings)


def _resolve_config_path(config_path: Path | None, env_vars: Mapping[str, str]) -> Path:
    candidate = config_path or env_vars.get(CONFIG_ENV_VAR) or (Path.cwd() / DEFAULT_CONFIG_NAME)
    return Path(candidate).expanduser()


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}

    raw = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    parser = json.loads if suffix == ".json" else tomllib.loads

    try:
        data = parser(raw)
    except (json.JSONDecodeError, tomllib.TOMLDecodeError) as exc:
        raise ConfigurationError(f"Syntax error in {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config root in {path} must be a mapping.")

    return data


def _detect_env_overrides(env_vars: Mapping[str, str]) -> set[str]:
    """Detect which fields are overridden by environment variables.

    For nested models, detects vars like SKILLGATE_VISIBILITY__PREDICATE_TIMEOUT.
    """
    prefix = AppConfig.model_config.get("env_prefix", "")
    delimiter = AppConfig.model_config.get("env_nested_delimiter", "__")
    overrides: set[str] = set()

    nested_models: dict[str, type[BaseModel]] = {
        "visibility": VisibilityConfig,
        "routers": RouterConfig,
        "skills": SkillValidationConfig,
    }

    for group_name, model_cls in nested_models.items():
        for field in model_cls.model_fields:
            env_key = f"{prefix}{group_name}{delimiter}{field}".upper()
            if env_key in env_vars:
                overrides.add(f"{group_name}.{field}")

    for field in ("server_name", "log_level"):
        if f"{prefix}{field}".upper() in env_vars:
            overrides.add(field)

    return overrides


def load_config(
    config_path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> tuple[AppConfig, ConfigLoadResult]:
    """
    Load configuration with Safe Mode fallback.
    If the file is invalid, returns default config + error message.
    """
    env_vars: Mapping[str, str] = os.environ if env is None else {**os.environ, **env}
    resolved_path = _resolve_config_path(config_path, env_vars)
    env_overrides = _detect_env_overrides(env_vars)

    error: str | None = None
    file_loaded = False
    file_data: dict[str, Any] = {}

    try:
        file_data = _read_config_file(resolved_path)
        file_loaded = resolved_path.exists()
    except ConfigurationError as exc:
        error = str(exc)

    context_manager = (
        patch.dict(os.environ, env_vars, clear=False) if env is not None else nullcontext()
    )

    try:
        with context_manager:
            config = AppConfig(**file_data)
    except ValidationError as exc:
        error = str(exc)
        config = AppConfig()

    load_result = ConfigLoadResult(
        path=resolved_path,
        file_loaded=file_loaded,
        env_overrides=env_overrides,
        error=error,
    )

    return config, load_result


__all__ = [
    "CONFIG_ENV_VAR",
    "AppConfig",
    "ConfigLoadResult",
    "RouterConfig",
    "RuleSeverity",
    "SkillValidationConfig",
    "VisibilityConfig",
    "load_config",
]
