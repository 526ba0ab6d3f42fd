"""Ports for the collaborators job handlers use, and the registry holding them."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Protocol

from pydantic import BaseModel, ConfigDict

from drivemark.drive import DriveClient, DriveFile

if TYPE_CHECKING:
    from drivemark.jobs.models import JobUser


class GitChange(BaseModel):
    """A path with uncommitted changes in the content repository."""

    model_config = ConfigDict(populate_by_name=True)

    path: str
    state: str


@dataclass(slots=True)
class ActionResult:
    exit_code: int
    output: str = ""


class GitRepository(Protocol):
    """Version control operations on a drive's generated content."""

    def changes(self) -> list[GitChange]: ...

    def commit(
        self, message: str, added: list[str], removed: list[str], committer: Optional[JobUser]
    ) -> None: ...

    def pull_branch(self, branch: Optional[str] = None) -> None: ...

    def push_branch(self, branch: Optional[str] = None) -> None: ...

    def reset_to_remote(self, branch: Optional[str] = None) -> None: ...

    def reset_to_local(self) -> None: ...

    def history(self, path: str, branch: Optional[str] = None) -> list[dict]: ...

    def diff(self, path: str) -> str: ...

    def clear_cache(self) -> None:
        """Drop cached change listings after the working tree moved."""


class ActionRunner(Protocol):
    """Runs user-defined steps (site render, scripts) in a container."""

    def run(self, drive_id: str, trigger: Optional[str], payload: Optional[str]) -> ActionResult: ...


class ChangeFeed(Protocol):
    """Recent Drive changes of a drive."""

    def changes_for(self, drive_id: str) -> list[DriveFile]: ...


@dataclass(slots=True)
class ServiceRegistry:
    """Collaborators available to job handlers; ``None`` means not configured."""

    drive: Optional[DriveClient] = None
    git: Optional[GitRepository] = None
    action_runner: Optional[ActionRunner] = None
    change_feed: Optional[ChangeFeed] = None


__all__ = [
    "ActionResult",
    "ActionRunner",
    "ChangeFeed",
    "GitChange",
    "GitRepository",
    "ServiceRegistry",
]
