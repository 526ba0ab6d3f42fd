"""Configuration management for drivemark."""

from __future__ import annotations

import os
import textwrap
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

import yaml

from .exceptions import ConfigError
from .models import (
    DrivemarkConfig,
    DriveSettings,
    LoggingSettings,
    QueueSettings,
    RewriteRule,
    SchedulerSettings,
    TransformSettings,
)
from .resolver import flatten_for_env, parse_env, resolve_with_precedence

DEFAULT_CONFIG_PATH = Path("~/.drivemark/config.yaml")
_CONFIG_HEADER = textwrap.dedent(
    """\
    # drivemark configuration file
    # Manage with `drivemark config edit` or `drivemark config set`.
    # Environment variables named DRIVEMARK__SECTION__KEY override these values.
    """
)


class ConfigManager:
    """Read and write the YAML config file and resolve effective settings."""

    def __init__(
        self,
        config_path: Path | None = None,
        *,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._config_path = (config_path or DEFAULT_CONFIG_PATH).expanduser()
        self._env = env if env is not None else os.environ

    @property
    def config_path(self) -> Path:
        """Return the resolved configuration path."""
        return self._config_path

    def load(
        self,
        *,
        cli_overrides: Mapping[str, Any] | None = None,
        include_env: bool = True,
        ensure_file: bool = True,
        env_overrides: Mapping[str, str] | None = None,
    ) -> DrivemarkConfig:
        """Resolve the effective configuration.

        Args:
            cli_overrides: Dotted-key overrides from the command line.
            include_env: Whether ``DRIVEMARK__`` variables participate.
            ensure_file: Create a default file first when none exists.
            env_overrides: Environment mapping used instead of ``os.environ``.

        Returns:
            DrivemarkConfig: Validated configuration.

        Raises:
            ConfigError: If the file or any override is invalid.
        """
        if ensure_file:
            self.ensure_exists()

        env_data: dict[str, Any] | None = None
        if include_env:
            env_data = parse_env(env_overrides if env_overrides is not None else self._env)

        return resolve_with_precedence(
            defaults=DrivemarkConfig(),
            file_overrides=self._read_file(),
            env_overrides=env_data or None,
            cli_overrides=cli_overrides,
        )

    def load_file_overrides(self) -> dict[str, Any]:
        """Return the raw mapping stored on disk."""
        return self._read_file()

    def save(self, config: DrivemarkConfig | Mapping[str, Any]) -> None:
        """Write configuration data to disk with the standard header."""
        if isinstance(config, DrivemarkConfig):
            data = config.model_dump(mode="python")
        else:
            data = dict(config)
        self._write_file(data)

    def ensure_exists(self) -> Path:
        """Create a default configuration file when missing."""
        if not self._config_path.exists():
            self._write_file(DrivemarkConfig().model_dump(mode="python"))
        return self._config_path

    def read_text(self) -> str:
        """Return the configuration file contents, or an empty string."""
        if not self._config_path.exists():
            return ""
        return self._config_path.read_text(encoding="utf-8")

    # Internal helpers -------------------------------------------------

    def _read_file(self) -> dict[str, Any]:
        if not self._config_path.exists():
            return {}
        try:
            raw = yaml.safe_load(self._config_path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Failed to parse configuration file: {exc}") from exc
        if not isinstance(raw, dict):
            raise ConfigError("Configuration file must contain a mapping at the top level.")
        return raw

    def _write_file(self, data: Mapping[str, Any]) -> None:
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        body = yaml.safe_dump(dict(data), sort_keys=False)
        self._config_path.write_text(
            _CONFIG_HEADER + f"# Last updated: {stamp}\n" + body, encoding="utf-8"
        )


__all__ = [
    "ConfigManager",
    "DEFAULT_CONFIG_PATH",
    "DrivemarkConfig",
    "DriveSettings",
    "LoggingSettings",
    "QueueSettings",
    "RewriteRule",
    "SchedulerSettings",
    "TransformSettings",
    "resolve_with_precedence",
    "flatten_for_env",
    "ConfigError",
]
