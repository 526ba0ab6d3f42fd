"""Invoke tasks for developing and operating drivemark.

Every task shells out to the `uv` CLI so environment setup, tests, linting and
local mirror runs share the same interpreter and dependency set.
"""

from __future__ import annotations

import shlex
import shutil
from collections.abc import Mapping, Sequence
from pathlib import Path

from invoke import Collection, Context, task

PROJECT_ROOT = Path(__file__).parent
DIST_DIR = PROJECT_ROOT / "dist"


def _run_uv(
    ctx: Context,
    args: Sequence[str],
    *,
    echo: bool = True,
    dry_run: bool = False,
    env: Mapping[str, str] | None = None,
) -> None:
    """Execute a uv command with consistent quoting and environment handling.

    Args:
        ctx: Invoke execution context.
        args: Arguments appended after the `uv` executable.
        echo: Whether to echo the command before running it.
        dry_run: When True, print the command without executing it.
        env: Optional environment variables layered onto the invocation.
    """
    command = shlex.join(("uv", *args))
    if dry_run:
        print(f"[dry-run] {command}")
        return
    run_env = dict(ctx.config.run.env or {})
    if env:
        run_env.update(env)
    ctx.run(command, echo=echo, pty=True, env=run_env)


def _drivemark(ctx: Context, args: Sequence[str], *, dry_run: bool = False) -> None:
    _run_uv(ctx, ["run", "drivemark", *args], dry_run=dry_run)


@task
def sync(ctx: Context, dev: bool = True) -> None:
    """Synchronize the virtual environment with uv.

    Args:
        ctx: Invoke execution context.
        dev: Include the development extra when True.
    """
    args = ["sync"]
    if dev:
        args.extend(["--extra", "dev"])
    _run_uv(ctx, args)


@task(help={"clean": "Remove existing artifacts from dist/ before building."})
def build(ctx: Context, clean: bool = False) -> None:
    """Build source and wheel distributions in `dist/`."""
    if clean and DIST_DIR.exists():
        for artifact in DIST_DIR.iterdir():
            if artifact.is_file():
                artifact.unlink()
            else:
                shutil.rmtree(artifact)
    _run_uv(ctx, ["build"])


@task(
    help={
        "drive": "Google Drive folder id to mirror.",
        "file_ids": "Comma separated file ids to limit the run to.",
        "dry_run": "Print the commands without executing them.",
    }
)
def mirror(ctx: Context, drive: str, file_ids: str = "", dry_run: bool = False) -> None:
    """Download a drive and regenerate its markdown tree in one go.

    Args:
        ctx: Invoke execution context.
        drive: Drive folder id passed to `drivemark sync` and `drivemark transform`.
        file_ids: Optional comma separated file ids forwarded as `--file-id` options.
        dry_run: Print each command instead of running it.
    """
    selection: list[str] = []
    for file_id in filter(None, (part.strip() for part in file_ids.split(","))):
        selection.extend(["--file-id", file_id])
    _drivemark(ctx, ["sync", drive, *selection], dry_run=dry_run)
    _drivemark(ctx, ["transform", drive, *selection], dry_run=dry_run)


@task(help={"drive": "Drive whose queued jobs should be drained.", "timeout": "Seconds to wait."})
def drain(ctx: Context, drive: str, timeout: float = 300.0) -> None:
    """Run the job scheduler for a drive until its queue is empty."""
    _drivemark(ctx, ["jobs", "run", drive, "--timeout", str(timeout)])


@task(
    help={
        "markers": "Optional pytest marker expression.",
        "k": "pytest -k expression for test selection.",
        "path": "Path or module to test (defaults to tests/).",
        "options": "Additional CLI flags forwarded verbatim to pytest.",
    }
)
def tests(
    ctx: Context,
    markers: str = "",
    k: str = "",
    path: str = "tests",
    options: str = "",
) -> None:
    """Run the pytest suite via uv.

    Args:
        ctx: Invoke execution context.
        markers: Marker expression to filter tests.
        k: `pytest -k` expression to select tests.
        path: Target path for pytest discovery.
        options: Extra CLI arguments appended to the pytest call.
    """
    args: list[str] = ["run", "pytest"]
    if markers:
        args.extend(["-m", markers])
    if k:
        args.extend(["-k", k])
    if options:
        args.extend(shlex.split(options))
    if path:
        args.append(path)
    _run_uv(ctx, args)


@task(
    help={
        "fix": "Apply auto-fixes where possible (ruff --fix).",
        "check_format": "Run ruff format --check before linting.",
    }
)
def lint(ctx: Context, fix: bool = False, check_format: bool = False) -> None:
    """Run Ruff formatting and lint checks."""
    if check_format:
        _run_uv(ctx, ["run", "ruff", "format", "--check", "src", "tests"])
    lint_args: list[str] = ["run", "ruff", "check", "src", "tests"]
    if fix:
        lint_args.append("--fix")
    _run_uv(ctx, lint_args)


@task
def mypy(ctx: Context) -> None:
    """Type-check the drivemark package."""
    _run_uv(ctx, ["run", "mypy", "src/drivemark"])


@task
def ci(ctx: Context) -> None:
    """Replicate the CI workflow locally."""
    ctx.invoke(lint, check_format=True)
    ctx.invoke(mypy)
    ctx.invoke(tests)


namespace = Collection(sync, build, mirror, drain, tests, lint, mypy, ci)
