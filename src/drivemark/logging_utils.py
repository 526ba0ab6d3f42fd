"""Logging setup, per-job log files and collection of document errors."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterator, Optional

from rich.console import Console
from rich.logging import RichHandler

from drivemark.config import LoggingSettings

ROOT_LOGGER = "drivemark"
LOG_FILE_NAME = "drivemark.log"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_HANDLER_MARK = "_drivemark_handler"


class DriveLoggerAdapter(logging.LoggerAdapter):
    """Tag records with a drive id while keeping per-call ``extra`` values."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**(self.extra or {}), **kwargs.get("extra", {})}
        return msg, kwargs


def drive_logger(name: str, drive_id: str) -> DriveLoggerAdapter:
    """Return an adapter that tags every record with ``drive_id``."""
    return DriveLoggerAdapter(logging.getLogger(name), {"drive_id": drive_id})


def configure_logging(
    settings: LoggingSettings,
    log_dir: Optional[Path] = None,
    *,
    console: Optional[Console] = None,
) -> None:
    """Install console and rotating file handlers on the ``drivemark`` logger.

    Calling this again replaces the handlers installed by a previous call.

    Args:
        settings: Level and rotation settings.
        log_dir: Directory for ``drivemark.log``; no file handler when ``None``.
        console: Rich console used for terminal output.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    level = logging.getLevelName(settings.level.upper())
    if not isinstance(level, int):
        level = logging.WARNING
    logger.setLevel(logging.DEBUG)

    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            logger.removeHandler(handler)
            handler.close()

    rich_handler = RichHandler(
        console=console or Console(stderr=True), show_path=False, rich_tracebacks=True
    )
    rich_handler.setLevel(level)
    setattr(rich_handler, _HANDLER_MARK, True)
    logger.addHandler(rich_handler)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_dir / LOG_FILE_NAME,
            maxBytes=max(1, settings.max_size_mb) * 1024 * 1024,
            backupCount=max(0, settings.backup_count),
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        setattr(file_handler, _HANDLER_MARK, True)
        logger.addHandler(file_handler)


class _DriveFilter(logging.Filter):
    def __init__(self, drive_id: str) -> None:
        super().__init__()
        self._drive_id = drive_id

    def filter(self, record: logging.LogRecord) -> bool:
        return getattr(record, "drive_id", None) == self._drive_id


@contextmanager
def job_log_handler(log_dir: Path, drive_id: str, job_id: str) -> Iterator[Path]:
    """Copy records tagged with ``drive_id`` into ``job-<job_id>.log`` while active."""
    log_dir.mkdir(parents=True, exist_ok=True)
    path = log_dir / f"job-{job_id}.log"
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT))
    handler.addFilter(_DriveFilter(drive_id))
    logger = logging.getLogger(ROOT_LOGGER)
    logger.addHandler(handler)
    try:
        yield path
    finally:
        logger.removeHandler(handler)
        handler.close()


class TransformErrorCollector(logging.Handler):
    """Gather content warnings that name the document they concern.

    Records are picked up when they carry ``error_md_file`` and
    ``error_md_msg`` attributes (passed through ``extra``) for this drive.
    """

    def __init__(self, drive_id: str) -> None:
        super().__init__(level=logging.WARNING)
        self._drive_id = drive_id
        self._lock_errors = threading.Lock()
        self._errors: list[tuple[str, str]] = []

    def emit(self, record: logging.LogRecord) -> None:
        if getattr(record, "drive_id", None) != self._drive_id:
            return
        file_name = getattr(record, "error_md_file", None)
        message = getattr(record, "error_md_msg", None)
        if file_name is None or message is None:
            return
        with self._lock_errors:
            self._errors.append((str(file_name), str(message)))

    @property
    def errors(self) -> list[tuple[str, str]]:
        with self._lock_errors:
            return list(self._errors)

    def to_markdown(self) -> str:
        """Render the collected messages grouped by document."""
        grouped: dict[str, list[str]] = {}
        for file_name, message in self.errors:
            grouped.setdefault(file_name, []).append(message)
        lines = ["---", "type: page", "title: Errors", "---"]
        for file_name, messages in grouped.items():
            lines.append("")
            lines.append(f"* [{file_name}]({file_name})")
            lines.extend(f"   {message}" for message in messages)
        return "\n".join(lines) + "\n"

    @contextmanager
    def attached(self) -> Iterator["TransformErrorCollector"]:
        logger = logging.getLogger(ROOT_LOGGER)
        logger.addHandler(self)
        try:
            yield self
        finally:
            logger.removeHandler(self)


__all__ = [
    "LOG_FILE_NAME",
    "ROOT_LOGGER",
    "DriveLoggerAdapter",
    "TransformErrorCollector",
    "configure_logging",
    "drive_logger",
    "job_log_handler",
]
