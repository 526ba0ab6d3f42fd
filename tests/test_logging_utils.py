"""Tests for drive-tagged logging helpers."""

from __future__ import annotations

import io
import logging
from pathlib import Path

from rich.console import Console

from drivemark.config import LoggingSettings
from drivemark.logging_utils import (
    LOG_FILE_NAME,
    TransformErrorCollector,
    configure_logging,
    drive_logger,
    job_log_handler,
)


def test_configure_logging_writes_rotating_file(tmp_path: Path) -> None:
    stream = io.StringIO()
    configure_logging(LoggingSettings(level="INFO"), tmp_path, console=Console(file=stream, width=200))

    logging.getLogger("drivemark.tests").info("mirror ready")

    assert "mirror ready" in (tmp_path / LOG_FILE_NAME).read_text(encoding="utf-8")
    assert "mirror ready" in stream.getvalue()


def test_job_log_only_receives_records_for_its_drive(tmp_path: Path) -> None:
    configure_logging(LoggingSettings(level="WARNING"), console=Console(file=io.StringIO()))
    mine = drive_logger("drivemark.tests", "drive-a")
    other = drive_logger("drivemark.tests", "drive-b")

    with job_log_handler(tmp_path, "drive-a", "42") as path:
        mine.warning("downloading folder")
        other.warning("not for this job")
    mine.warning("after the job")

    text = path.read_text(encoding="utf-8")
    assert path.name == "job-42.log"
    assert "downloading folder" in text
    assert "not for this job" not in text
    assert "after the job" not in text


def test_error_collector_groups_messages_by_document() -> None:
    configure_logging(LoggingSettings(level="ERROR"), console=Console(file=io.StringIO()))
    log = drive_logger("drivemark.tests", "drive-a")
    collector = TransformErrorCollector("drive-a")

    with collector.attached():
        log.warning("bad link", extra={"error_md_file": "intro.md", "error_md_msg": "Broken link: x"})
        log.warning("bad image", extra={"error_md_file": "intro.md", "error_md_msg": "Missing image"})
        log.warning("plain warning")
        drive_logger("drivemark.tests", "drive-b").warning(
            "elsewhere", extra={"error_md_file": "other.md", "error_md_msg": "ignored"}
        )
    log.warning("detached", extra={"error_md_file": "late.md", "error_md_msg": "ignored"})

    assert collector.errors == [("intro.md", "Broken link: x"), ("intro.md", "Missing image")]
    assert collector.to_markdown() == (
        "---\ntype: page\ntitle: Errors\n---\n\n* [intro.md](intro.md)\n   Broken link: x\n   Missing image\n"
    )
