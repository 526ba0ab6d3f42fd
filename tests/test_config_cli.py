"""CLI tests for configuration commands."""

import json
import re
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from drivemark.cli import cli
from drivemark.config import ConfigManager


def _config_path(home: Path) -> Path:
    return home / ".drivemark" / "config.yaml"


def test_config_view_creates_and_displays_config(drive_home: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(cli, ["config", "view"])

    assert result.exit_code == 0
    assert "queue:" in result.output
    assert _config_path(drive_home).exists()


def test_config_set_updates_value_and_writes_diff(drive_home: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(cli, ["config", "set", "queue.retries", "--value", "7"])

    assert result.exit_code == 0
    assert "Updated queue.retries." in result.output

    config = ConfigManager(config_path=_config_path(drive_home)).load(include_env=False)
    assert config.queue.retries == 7


def test_config_set_rejects_invalid_values(drive_home: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(cli, ["config", "set", "queue.retries", "--value", "many"])

    assert result.exit_code != 0
    config = ConfigManager(config_path=_config_path(drive_home)).load(include_env=False)
    assert config.queue.retries == 4


def test_config_set_reports_unchanged_values(drive_home: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(cli, ["config", "set", "queue.retries", "--value", "4"])

    assert result.exit_code == 0
    assert "No changes applied" in result.output


def test_config_edit_applies_changes(drive_home: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    runner = CliRunner()
    manager = ConfigManager(config_path=_config_path(drive_home))
    manager.ensure_exists()

    def _mock_edit(text: str, **_: Any) -> str:
        return text.replace("debounce_seconds: 1.0", "debounce_seconds: 2.5")

    monkeypatch.setattr("drivemark.cli.click.edit", _mock_edit)

    result = runner.invoke(cli, ["config", "edit"])

    assert result.exit_code == 0
    assert "updated" in result.output.lower()

    config = manager.load(include_env=False)
    assert config.scheduler.debounce_seconds == pytest.approx(2.5)


def test_config_set_rejects_unknown_keys(drive_home: Path) -> None:
    runner = CliRunner()

    unknown = runner.invoke(cli, ["config", "set", "queue.parallelism", "--value", "2"])
    too_deep = runner.invoke(cli, ["config", "set", "queue.retries.max", "--value", "2"])

    assert unknown.exit_code != 0
    assert "Unknown setting 'queue.parallelism'" in unknown.output
    assert "retries" in unknown.output
    assert too_deep.exit_code != 0
    assert "'queue.retries' is a value, not a section" in too_deep.output


def test_config_set_requires_an_existing_credentials_file(drive_home: Path) -> None:
    runner = CliRunner()
    key_file = drive_home / "keys" / "drive.json"

    missing = runner.invoke(cli, ["config", "set", "drive.credentials_path", "--value", str(key_file)])
    key_file.parent.mkdir()
    key_file.write_text("{}", encoding="utf-8")
    present = runner.invoke(cli, ["config", "set", "drive.credentials_path", "--value", str(key_file)])

    assert missing.exit_code != 0
    assert "no service-account key" in missing.output
    assert present.exit_code == 0, present.output
    config = ConfigManager(config_path=_config_path(drive_home)).load(include_env=False)
    assert config.drive.credentials_path == str(key_file)


def test_config_set_rejects_non_google_scopes(drive_home: Path) -> None:
    result = CliRunner().invoke(cli, ["config", "set", "drive.scopes", "--value", "[drive]"])

    assert result.exit_code != 0
    assert "'drive' is not a Google API scope" in result.output
    config = ConfigManager(config_path=_config_path(drive_home)).load(include_env=False)
    assert config.drive.scopes == ["https://www.googleapis.com/auth/drive.readonly"]


def test_config_view_shows_a_single_section_as_json(drive_home: Path) -> None:
    result = CliRunner().invoke(cli, ["config", "view", "--section", "drive", "--json"])

    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert list(data) == ["drive"]
    assert data["drive"]["credentials_path"] == "~/.drivemark/service-account.json"


def test_config_edit_rejects_a_workdir_that_is_a_file(
    drive_home: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = ConfigManager(config_path=_config_path(drive_home))
    manager.ensure_exists()
    blocker = drive_home / "not-a-dir"
    blocker.write_text("", encoding="utf-8")

    def _mock_edit(text: str, **_: Any) -> str:
        return re.sub(r"^workdir:.*$", f"workdir: {blocker}", text, flags=re.MULTILINE)

    monkeypatch.setattr("drivemark.cli.click.edit", _mock_edit)

    result = CliRunner().invoke(cli, ["config", "edit"])

    assert result.exit_code != 0
    assert "is a file, not a directory" in result.output
    assert manager.load(include_env=False).workdir == "~/.drivemark/drives"
