"""Configuration models describing drivemark settings."""

from __future__ import annotations

import re
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

ALT_MATCH = "$alt"


class DrivemarkBaseModel(BaseModel):
    """Shared configuration for drivemark settings models."""

    model_config = ConfigDict(extra="forbid")


class DriveSettings(DrivemarkBaseModel):
    """Google Drive access options.

    Attributes:
        credentials_path: Service-account JSON key used by the Drive adapter.
        scopes: OAuth scopes requested for the Drive API.
    """

    credentials_path: str = "~/.drivemark/service-account.json"
    scopes: List[str] = Field(
        default_factory=lambda: ["https://www.googleapis.com/auth/drive.readonly"]
    )


class QueueSettings(DrivemarkBaseModel):
    """Task queue tuning.

    Attributes:
        transform_concurrency: Worker count for transform queues; 0 means CPU count.
        download_concurrency: Worker count for download queues.
        task_delay_seconds: Pause a worker takes after finishing a task.
        retries: Retry budget assigned to new tasks.
    """

    transform_concurrency: int = 0
    download_concurrency: int = 4
    task_delay_seconds: float = 0.1
    retries: int = 4


class SchedulerSettings(DrivemarkBaseModel):
    """Job scheduler timings.

    Attributes:
        poll_interval_seconds: Interval between dispatch passes.
        debounce_seconds: Minimum age of the newest job before a drive is dispatched.
        retry_delay_seconds: Delay applied to follow-up syncs after racing edits.
        archive_limit: Number of finished jobs retained per drive.
    """

    poll_interval_seconds: float = 0.1
    debounce_seconds: float = 1.0
    retry_delay_seconds: int = 10
    archive_limit: int = 100


class RewriteRule(DrivemarkBaseModel):
    """Replacement applied to Markdown links and images of generated documents.

    Rules are tried in order and the first one matching a link replaces it.

    Attributes:
        match: Regular expression searched in the link target, or ``$alt`` to
            match links whose text equals their target.
        template: Replacement text. ``$href``, ``$basename``, ``$label`` and
            ``$value`` are substituted.
        replace: Regular expression whose first group becomes ``$value``.
        tag: Restrict the rule to links (``A``) or images (``IMG``).
        mode: Output mode the rule applies to.
    """

    match: str = ""
    template: str
    replace: Optional[str] = None
    tag: Optional[str] = None
    mode: Optional[str] = "MD"

    @field_validator("match", "replace")
    @classmethod
    def _check_pattern(cls, value: Optional[str]) -> Optional[str]:
        if value and value != ALT_MATCH:
            try:
                re.compile(value)
            except re.error as exc:
                raise ValueError(f"invalid regular expression {value!r}: {exc}") from exc
        return value


_YOUTUBE_URL = (
    r"(?:https?://)?(?:www\.)?"
    r"(?:youtube\.com/(?:[^/\n\s]+/\S+/|(?:v|e(?:mbed)?)/|\S*?[?&]v=)|youtu\.be/)([a-zA-Z0-9_-]{11})"
)


def default_rewrite_rules() -> List[RewriteRule]:
    """Rules used when the configuration lists none."""
    return [
        RewriteRule(mode="MD", tag="A", match=ALT_MATCH, template="$href"),
        RewriteRule(
            mode="MD",
            match=_YOUTUBE_URL,
            replace=_YOUTUBE_URL,
            template="[$label](https://youtube.be/$value)",
        ),
    ]


class TransformSettings(DrivemarkBaseModel):
    """Markdown generation options.

    Attributes:
        fm_without_version: Omit date, version and author fields from front matter.
        rewrite_rules: Link replacements applied to generated documents. An
            empty list restores the defaults.
    """

    fm_without_version: bool = False
    rewrite_rules: List[RewriteRule] = Field(default_factory=default_rewrite_rules)

    @field_validator("rewrite_rules")
    @classmethod
    def _default_when_empty(cls, value: List[RewriteRule]) -> List[RewriteRule]:
        return value or default_rewrite_rules()


class LoggingSettings(DrivemarkBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
        max_size_mb: Maximum log size before rotation.
        backup_count: Number of historical log files to retain.
    """

    level: str = "WARNING"
    max_size_mb: int = 100
    backup_count: int = 5


class CLIOptions(DrivemarkBaseModel):
    """CLI behavior defaults.

    Attributes:
        quiet_default: Whether commands suppress non-error output by default.
    """

    quiet_default: bool = False


class DrivemarkConfig(DrivemarkBaseModel):
    """Top-level configuration struct for drivemark.

    Attributes:
        workdir: Directory holding one workspace per mirrored drive.
        drive: Google Drive access settings.
        queue: Task queue tuning.
        scheduler: Job scheduler timings.
        transform: Markdown generation options.
        logging: Logging configuration.
        cli: CLI presentation defaults.
    """

    workdir: str = "~/.drivemark/drives"
    drive: DriveSettings = Field(default_factory=DriveSettings)
    queue: QueueSettings = Field(default_factory=QueueSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    transform: TransformSettings = Field(default_factory=TransformSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    cli: CLIOptions = Field(default_factory=CLIOptions)


__all__ = [
    "DrivemarkBaseModel",
    "DriveSettings",
    "QueueSettings",
    "SchedulerSettings",
    "RewriteRule",
    "TransformSettings",
    "default_rewrite_rules",
    "ALT_MATCH",
    "LoggingSettings",
    "CLIOptions",
    "DrivemarkConfig",
]
