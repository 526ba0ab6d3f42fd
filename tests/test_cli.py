"""Tests for the drivemark command line interface."""

from __future__ import annotations

import json
import signal
from pathlib import Path

import pytest
from click.testing import CliRunner

from drivemark.cli import cli
from drivemark.drive import DriveFile, MimeTypes
from drivemark.storage import FileStore

DRIVES = Path(".drivemark") / "drives"


def _download_store(home: Path, drive_id: str = "root") -> FileStore:
    return FileStore(home / DRIVES / drive_id / "download")


def test_cli_help_displays_commands() -> None:
    runner = CliRunner()
    result = runner.invoke(cli, ["--help"])

    assert result.exit_code == 0
    assert "drivemark mirrors Google Drive folders" in result.output
    for command in ("sync", "transform", "tree", "jobs", "config"):
        assert command in result.output


def test_transform_and_tree_commands(drive_home: Path, downloaded_folder) -> None:
    root = DriveFile(id="root", name="Root", mimeType=MimeTypes.FOLDER)
    doc = DriveFile(
        id="doc1", name="Welcome", mimeType=MimeTypes.DOCUMENT, modifiedTime="2024-01-01T00:00:00Z"
    )
    downloaded_folder(_download_store(drive_home), root, [(doc, "# Welcome\n")])
    runner = CliRunner()

    result = runner.invoke(cli, ["transform", "root"])

    assert result.exit_code == 0, result.output
    assert "Transform summary for root" in result.output
    assert (drive_home / DRIVES / "root" / "content" / "welcome.md").exists()

    tree_result = runner.invoke(cli, ["tree", "root"])
    assert tree_result.exit_code == 0
    assert "welcome.md" in tree_result.output

    json_result = runner.invoke(cli, ["tree", "root", "--json"])
    assert json_result.exit_code == 0
    assert [item["id"] for item in json.loads(json_result.output)] == ["doc1"]


def test_tree_without_generated_content(drive_home: Path) -> None:
    result = CliRunner().invoke(cli, ["tree", "missing"])

    assert result.exit_code == 0
    assert "No generated tree for missing" in result.output


def test_sync_uses_the_drive_client(
    drive_home: Path, fake_drive, monkeypatch: pytest.MonkeyPatch
) -> None:
    fake_drive.add("doc1", "Intro", MimeTypes.DOCUMENT, parent_id="root", content=b"# Intro\n")
    monkeypatch.setattr("drivemark.cli._drive_client", lambda config: fake_drive)

    result = CliRunner().invoke(cli, ["sync", "root", "--json"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["driveId"] == "root"
    assert payload["progress"]["failed"] == 0
    assert _download_store(drive_home).read_text("doc1.md") == "# Intro\n"


def test_sync_exits_non_zero_on_failures(
    drive_home: Path, fake_drive, monkeypatch: pytest.MonkeyPatch
) -> None:
    fake_drive.add("doc1", "Intro", MimeTypes.DOCUMENT, parent_id="root")
    fake_drive.failures["doc1"] = 403
    monkeypatch.setattr("drivemark.cli._drive_client", lambda config: fake_drive)

    result = CliRunner().invoke(cli, ["sync", "root"])

    assert result.exit_code == 1
    assert "Sync summary for root" in result.output


def test_jobs_schedule_deduplicates_and_inspect_lists(drive_home: Path) -> None:
    runner = CliRunner()

    first = runner.invoke(cli, ["jobs", "schedule", "root", "git_pull", "--title", "Pull"])
    second = runner.invoke(cli, ["jobs", "schedule", "root", "git_pull"])
    listing = runner.invoke(cli, ["jobs", "inspect", "root", "--json"])
    table = runner.invoke(cli, ["jobs", "inspect", "root"])

    assert first.exit_code == 0
    assert "Scheduled git_pull job" in first.output
    assert "already queued" in second.output
    jobs = json.loads(listing.output)["jobs"]
    assert [(job["type"], job["title"], job["state"]) for job in jobs] == [("git_pull", "Pull", "waiting")]
    assert "git_pull" in table.output


def test_jobs_run_drains_the_queue(
    drive_home: Path, fake_drive, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("DRIVEMARK__SCHEDULER__DEBOUNCE_SECONDS", "0")
    monkeypatch.setenv("DRIVEMARK__SCHEDULER__POLL_INTERVAL_SECONDS", "0.01")
    monkeypatch.setattr("drivemark.cli._drive_client", lambda config: fake_drive)
    runner = CliRunner()
    runner.invoke(cli, ["jobs", "schedule", "root", "git_push"])

    result = runner.invoke(cli, ["jobs", "run", "root", "--timeout", "10"])

    assert result.exit_code == 0, result.output
    assert "Git push failed: No git repository configured" in result.output
    listing = json.loads(runner.invoke(cli, ["jobs", "inspect", "root", "--json"]).output)
    assert listing["jobs"] == []
    assert [job["state"] for job in listing["archive"]] == ["failed"]


def test_sync_quiet_hides_the_summary(
    drive_home: Path, fake_drive, monkeypatch: pytest.MonkeyPatch
) -> None:
    fake_drive.add("doc1", "Intro", MimeTypes.DOCUMENT, parent_id="root", content=b"# Intro\n")
    monkeypatch.setattr("drivemark.cli._drive_client", lambda config: fake_drive)

    result = CliRunner().invoke(cli, ["sync", "root", "--quiet"])

    assert result.exit_code == 0, result.output
    assert "Sync summary" not in result.output
    assert _download_store(drive_home).exists("doc1.md")


def test_quiet_default_applies_unless_json_is_requested(
    drive_home: Path, downloaded_folder, monkeypatch: pytest.MonkeyPatch
) -> None:
    root = DriveFile(id="root", name="Root", mimeType=MimeTypes.FOLDER)
    doc = DriveFile(id="doc1", name="Welcome", mimeType=MimeTypes.DOCUMENT)
    downloaded_folder(_download_store(drive_home), root, [(doc, "# Welcome\n")])
    monkeypatch.setenv("DRIVEMARK__CLI__QUIET_DEFAULT", "true")
    runner = CliRunner()

    quiet = runner.invoke(cli, ["transform", "root"])
    as_json = runner.invoke(cli, ["transform", "root", "--json"])

    assert quiet.exit_code == 0, quiet.output
    assert "Transform summary" not in quiet.output
    assert as_json.exit_code == 0, as_json.output
    assert json.loads(as_json.output)["driveId"] == "root"


def test_json_and_quiet_cannot_be_combined(drive_home: Path) -> None:
    result = CliRunner().invoke(cli, ["sync", "root", "--json", "--quiet"])

    assert result.exit_code != 0
    assert "--json cannot be combined with --quiet." in result.output


def test_json_errors_carry_a_code_and_the_drive(drive_home: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DRIVEMARK__QUEUE__RETRIES", "many")

    result = CliRunner().invoke(cli, ["transform", "root", "--json"])

    assert result.exit_code == 1
    error = json.loads(result.output)["error"]
    assert error["code"] == "config_invalid"
    assert error["driveId"] == "root"


def test_jobs_run_saves_job_state_when_interrupted(
    drive_home: Path, fake_drive, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("DRIVEMARK__SCHEDULER__DEBOUNCE_SECONDS", "60")
    monkeypatch.setattr("drivemark.cli._drive_client", lambda config: fake_drive)
    runner = CliRunner()
    runner.invoke(cli, ["jobs", "schedule", "root", "git_pull", "--title", "Pull"])
    installed = []

    def _interrupt_on_install(signum, handler):
        installed.append(handler)
        if callable(handler):
            handler(signum, None)
        return signal.SIG_DFL

    monkeypatch.setattr("drivemark.cli.signal.signal", _interrupt_on_install)

    result = runner.invoke(cli, ["jobs", "run", "root", "--stop-timeout", "1"])

    assert result.exit_code == 130, result.output
    assert "Interrupted; saving job state." in result.output
    assert installed[-1] == signal.SIG_DFL
    listing = json.loads(runner.invoke(cli, ["jobs", "inspect", "root", "--json"]).output)
    assert [(job["title"], job["state"]) for job in listing["jobs"]] == [("Pull", "waiting")]
