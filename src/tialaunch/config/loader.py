"""Configuration loading with pydantic-settings.

Supports loading configuration from multiple sources with precedence:
1. Direct kwargs (highest priority)
2. Environment variables (TIALAUNCH__SECTION__KEY)
3. Repo config (.tialaunch/config.yaml)
4. Global config (~/.config/tialaunch/config.yaml)
5. Built-in defaults (lowest priority)
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from tialaunch.config.models import (
    AgentSettings,
    ExecutorConfig,
    LoggingConfig,
    ReportConfig,
    ServerConfig,
    TiaLaunchConfig,
)
from tialaunch.core.errors import ConfigurationError

GLOBAL_CONFIG_PATH = Path("~/.config/tialaunch/config.yaml").expanduser()
REPO_CONFIG_NAME = Path(".tialaunch") / "config.yaml"


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open() as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError.parse_error(str(path), str(e)) from e
    if not isinstance(data, dict):
        raise ConfigurationError.parse_error(str(path), "top level must be a mapping")
    return data


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


class _YamlSource(PydanticBaseSettingsSource):
    """Settings source that reads from pre-loaded YAML config."""

    def __init__(self, settings_cls: type[BaseSettings], yaml_config: dict[str, Any]) -> None:
        super().__init__(settings_cls)
        self._yaml_config = yaml_config

    def get_field_value(
        self,
        field: Any,  # noqa: ARG002
        field_name: str,
    ) -> tuple[Any, str, bool]:
        val = self._yaml_config.get(field_name)
        return val, field_name, val is not None

    def __call__(self) -> dict[str, Any]:
        return self._yaml_config


def _collect_yaml(repo_root: Path, config_file: Path | None) -> dict[str, Any]:
    """Global YAML overlaid by the repo (or explicitly named) YAML."""
    if config_file is None:
        config_file = repo_root / REPO_CONFIG_NAME
    elif not config_file.exists():
        raise ConfigurationError.file_not_found(str(config_file))
    return _deep_merge(_load_yaml(GLOBAL_CONFIG_PATH), _load_yaml(config_file))


def _make_settings_class(yaml_config: dict[str, Any]) -> type[BaseSettings]:
    """Create a Settings class with instance-based YAML source (thread-safe)."""

    class TiaLaunchSettings(BaseSettings):
        """Root config. Env vars: TIALAUNCH__SERVER__URL, TIALAUNCH__AGENT__PORT, etc."""

        model_config = SettingsConfigDict(
            env_prefix="TIALAUNCH__",
            env_nested_delimiter="__",
            case_sensitive=False,
        )

        logging: LoggingConfig = LoggingConfig()
        server: ServerConfig = ServerConfig()
        agent: AgentSettings = AgentSettings()
        executor: ExecutorConfig = ExecutorConfig()
        report: ReportConfig = ReportConfig()

        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
            file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        ) -> tuple[PydanticBaseSettingsSource, ...]:
            # Precedence (first wins): init kwargs > env vars > yaml files
            return (init_settings, env_settings, _YamlSource(settings_cls, yaml_config))

    return TiaLaunchSettings


def load_config(
    repo_root: Path | None = None,
    *,
    config_file: Path | None = None,
    **kwargs: Any,
) -> TiaLaunchConfig:
    """Load config: defaults < global yaml < repo yaml < env vars < kwargs.

    Args:
        repo_root: Directory holding .tialaunch/config.yaml.
                   Defaults to current working directory.
        config_file: Explicit YAML file used instead of the repo config.
        **kwargs: Override values (highest precedence).

    Returns:
        Fully resolved configuration object.

    Raises:
        ConfigurationError: On a missing explicit file, invalid YAML syntax
            or validation errors.
    """
    settings_cls = _make_settings_class(_collect_yaml(repo_root or Path.cwd(), config_file))
    try:
        settings = settings_cls(**kwargs)
    except ValidationError as e:
        err = e.errors()[0]
        field = ".".join(str(loc) for loc in err["loc"])
        raise ConfigurationError.invalid_value(field, err.get("input"), err["msg"]) from e
    return TiaLaunchConfig.model_validate(settings.model_dump())
