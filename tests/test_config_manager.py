"""Unit tests for configuration management."""

from pathlib import Path

import pytest

from drivemark.config import (
    ConfigError,
    ConfigManager,
    DrivemarkConfig,
    flatten_for_env,
    resolve_with_precedence,
)
from drivemark.config.resolver import parse_env


def test_ensure_exists_creates_default_file(drive_home: Path) -> None:
    manager = ConfigManager()

    path = manager.ensure_exists()

    assert path == drive_home / ".drivemark" / "config.yaml"
    text = path.read_text(encoding="utf-8")
    assert "drivemark configuration file" in text
    assert "Last updated:" in text

    config = manager.load(include_env=False)
    assert isinstance(config, DrivemarkConfig)
    assert config.queue.retries == 4


def test_resolve_with_precedence_respects_order(drive_home: Path) -> None:
    manager = ConfigManager()
    manager.ensure_exists()

    manager.save({"queue": {"retries": 2}, "scheduler": {"debounce_seconds": 5}})

    env = {"DRIVEMARK__QUEUE__DOWNLOAD_CONCURRENCY": "8", "DRIVEMARK__QUEUE__RETRIES": "6"}
    cli = {"queue.retries": 1}

    config = manager.load(cli_overrides=cli, env_overrides=env)

    assert config.scheduler.debounce_seconds == pytest.approx(5)
    assert config.queue.download_concurrency == 8
    # CLI overrides take precedence over environment
    assert config.queue.retries == 1


def test_invalid_yaml_raises_config_error(drive_home: Path) -> None:
    manager = ConfigManager()
    manager.ensure_exists()

    manager.config_path.write_text("- not-a-mapping", encoding="utf-8")

    with pytest.raises(ConfigError):
        manager.load()


def test_unknown_keys_are_rejected(drive_home: Path) -> None:
    manager = ConfigManager()

    with pytest.raises(ConfigError):
        manager.load(cli_overrides={"queue.unknown_option": True})


def test_flatten_for_env_round_trips_defaults() -> None:
    flat = flatten_for_env(DrivemarkConfig())

    assert flat["DRIVEMARK__QUEUE__DOWNLOAD_CONCURRENCY"] == "4"
    assert flat["DRIVEMARK__SCHEDULER__ARCHIVE_LIMIT"] == "100"
    assert flat["DRIVEMARK__LOGGING__LEVEL"] == "WARNING"


def test_parse_env_builds_nested_overrides() -> None:
    overrides = parse_env(
        {
            "DRIVEMARK__TRANSFORM__FM_WITHOUT_VERSION": "true",
            "DRIVEMARK__DRIVE__SCOPES": "[a, b]",
            "OTHER": "ignored",
        }
    )

    assert overrides == {"transform": {"fm_without_version": True}, "drive": {"scopes": ["a", "b"]}}


def test_resolve_with_precedence_invalid_value_raises() -> None:
    with pytest.raises(ConfigError):
        resolve_with_precedence(
            defaults=DrivemarkConfig(),
            file_overrides={"queue": {"retries": "not-an-int"}},
        )


def test_rewrite_rules_default_when_empty() -> None:
    config = resolve_with_precedence(
        defaults=DrivemarkConfig(),
        file_overrides={"transform": {"rewrite_rules": []}},
    )

    assert [rule.match for rule in config.transform.rewrite_rules][0] == "$alt"
    assert len(config.transform.rewrite_rules) == 2


def test_rewrite_rules_from_file_replace_defaults(drive_home: Path) -> None:
    manager = ConfigManager()
    manager.ensure_exists()
    rule = {"match": "vimeo\\.com/(\\d+)", "template": "{{< vimeo $value >}}"}
    manager.save({"transform": {"rewrite_rules": [rule]}})

    rules = manager.load(include_env=False).transform.rewrite_rules

    assert len(rules) == 1
    assert rules[0].mode == "MD"
    assert rules[0].template == "{{< vimeo $value >}}"


def test_invalid_rewrite_rule_pattern_raises() -> None:
    with pytest.raises(ConfigError):
        resolve_with_precedence(
            defaults=DrivemarkConfig(),
            file_overrides={"transform": {"rewrite_rules": [{"match": "(unclosed", "template": "$href"}]}},
        )
