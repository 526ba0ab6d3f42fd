"""Command line interface for drivemark."""

from __future__ import annotations

import difflib
import signal
import threading
import time
from pathlib import Path
from typing import Any, NoReturn, Optional

import click
import yaml
from click.core import ParameterSource
from pydantic import BaseModel
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table
from rich.tree import Tree

from drivemark.config import ConfigError, ConfigManager, DrivemarkConfig, resolve_with_precedence
from drivemark.download import DownloadPipeline
from drivemark.drive import DriveClient
from drivemark.drive.google import GoogleDriveClient
from drivemark.jobs import (
    DriveJobsStore,
    EventBus,
    Job,
    JobError,
    JobHandlers,
    JobScheduler,
    JobType,
    PanicRaised,
    SchedulerError,
    ToastAdded,
)
from drivemark.logging_utils import configure_logging
from drivemark.services import ServiceRegistry
from drivemark.storage import StorageError
from drivemark.transform import MarkdownTreeProcessor, TransformPipeline
from drivemark.workspace import DriveWorkspace

console = Console()

_ERROR_CODES: tuple[tuple[type[Exception], str], ...] = (
    (ConfigError, "config_invalid"),
    (SchedulerError, "scheduler_failed"),
    (JobError, "job_failed"),
    (StorageError, "workspace_unavailable"),
)
_HANDLED_ERRORS = tuple(kind for kind, _ in _ERROR_CODES)

DRIVE_SCOPE_PREFIX = "https://www.googleapis.com/auth/"


def _fail(exc: Exception, *, drive_id: Optional[str] = None, json_output: bool = False) -> NoReturn:
    """Report a drivemark error and terminate the command.

    Args:
        exc: Configuration, job, scheduler or workspace error.
        drive_id: Drive the command was working on, if any.
        json_output: Emit ``{"error": {...}}`` instead of a click error.

    Raises:
        SystemExit: In JSON mode, after printing the error payload.
        click.ClickException: Otherwise, chained to ``exc``.
    """
    code = next((code for kind, code in _ERROR_CODES if isinstance(exc, kind)), "error")
    if json_output:
        error: dict[str, Any] = {"code": code, "message": str(exc)}
        if drive_id is not None:
            error["driveId"] = drive_id
        console.print_json(data={"error": error})
        raise SystemExit(1)
    prefix = f"[{drive_id}] " if drive_id is not None else ""
    raise click.ClickException(f"{prefix}{exc}") from exc


def _resolve_quiet(ctx: click.Context, config: DrivemarkConfig, quiet: bool, json_output: bool) -> bool:
    """Combine ``--quiet`` with ``cli.quiet_default``; JSON output is never quiet.

    Raises:
        click.ClickException: If ``--quiet`` was passed together with ``--json``.
    """
    explicit_quiet = ctx.get_parameter_source("quiet") == ParameterSource.COMMANDLINE
    if json_output:
        if explicit_quiet and quiet:
            raise click.ClickException("--json cannot be combined with --quiet.")
        return False
    return quiet if explicit_quiet else config.cli.quiet_default


def _emit(message: Any, *, quiet: bool, error: bool = False) -> None:
    """Print ``message`` unless quiet mode hides non-error output."""
    if quiet and not error:
        return
    console.print(message)


def _format_summary_line(command: str, drive_id: str, metrics: dict[str, Any]) -> str:
    parts = ", ".join(f"{key}={value}" for key, value in metrics.items())
    return f"[green]{command} summary for {drive_id}: {parts}.[/green]"


# ---- config helpers ---- #


def _config_key(key: str) -> list[str]:
    """Split a dotted KEY and check that it names a drivemark setting.

    Raises:
        click.ClickException: If KEY is empty, unknown, or descends below a value.
    """
    segments = [segment.strip() for segment in key.split(".") if segment.strip()]
    if not segments:
        raise click.ClickException("KEY must specify a dotted path such as 'queue.retries'.")

    model: type[BaseModel] = DrivemarkConfig
    for index, segment in enumerate(segments):
        path = ".".join(segments[: index + 1])
        field = model.model_fields.get(segment)
        if field is None:
            known = ", ".join(model.model_fields)
            raise click.ClickException(f"Unknown setting '{path}'. Expected one of: {known}.")
        if index == len(segments) - 1:
            break
        annotation = field.annotation
        if not (isinstance(annotation, type) and issubclass(annotation, BaseModel)):
            raise click.ClickException(f"'{path}' is a value, not a section.")
        model = annotation
    return segments


def _set_file_value(file_data: dict[str, Any], segments: list[str], value: Any) -> None:
    node = file_data
    for segment in segments[:-1]:
        if node.get(segment) is None:
            node[segment] = {}
        elif not isinstance(node[segment], dict):
            raise click.ClickException(f"Section '{segment}' of the config file is not a mapping.")
        node = node[segment]
    node[segments[-1]] = value


def _check_drive_settings(before: DrivemarkConfig, after: DrivemarkConfig) -> None:
    """Reject changed settings that cannot work against Google Drive.

    Only values that differ from ``before`` are checked.

    Raises:
        click.ClickException: Listing every problem found.
    """
    problems: list[str] = []
    if after.drive.credentials_path != before.drive.credentials_path:
        credentials = Path(after.drive.credentials_path).expanduser()
        if not credentials.is_file():
            problems.append(f"drive.credentials_path: no service-account key at {credentials}")
    if after.drive.scopes != before.drive.scopes:
        if not after.drive.scopes:
            problems.append("drive.scopes: at least one scope is required")
        for scope in after.drive.scopes:
            if not scope.startswith(DRIVE_SCOPE_PREFIX):
                problems.append(f"drive.scopes: '{scope}' is not a Google API scope")
    if after.workdir != before.workdir and Path(after.workdir).expanduser().is_file():
        problems.append(f"workdir: {after.workdir} is a file, not a directory")
    if problems:
        raise click.ClickException("Invalid drive settings:\n  " + "\n  ".join(problems))


def _write_config(manager: ConfigManager, file_data: dict[str, Any]) -> bool:
    """Validate ``file_data``, save it and print what changed on disk.

    Returns:
        bool: ``False`` when the saved file is equivalent to the previous one.

    Raises:
        click.ClickException: If the data is not a valid drivemark configuration.
    """
    try:
        after = resolve_with_precedence(defaults=DrivemarkConfig(), file_overrides=file_data)
    except ConfigError as exc:
        _fail(exc)
    try:
        before = manager.load(include_env=False)
    except ConfigError:
        before = DrivemarkConfig()
    _check_drive_settings(before, after)

    previous = manager.read_text().splitlines()
    manager.save(file_data)
    diff = list(
        difflib.unified_diff(
            previous,
            manager.read_text().splitlines(),
            fromfile="config.yaml (before)",
            tofile="config.yaml (after)",
            lineterm="",
        )
    )
    # The header timestamp changes on every save.
    skipped = ("+++", "---", "+# Last updated", "-# Last updated")
    if not any(line.startswith(("+", "-")) and not line.startswith(skipped) for line in diff):
        return False
    console.print(Syntax("\n".join(diff), "diff", word_wrap=False))
    return True


def _load_config() -> DrivemarkConfig:
    manager = ConfigManager()
    manager.ensure_exists()
    return manager.load()


def _workspace(config: DrivemarkConfig, drive_id: str) -> DriveWorkspace:
    workspace = DriveWorkspace(Path(config.workdir), drive_id)
    configure_logging(config.logging, workspace.log_dir, console=Console(stderr=True))
    return workspace


def _drive_client(config: DrivemarkConfig) -> DriveClient:
    return GoogleDriveClient(Path(config.drive.credentials_path), config.drive.scopes)


def _build_scheduler(config: DrivemarkConfig, services: ServiceRegistry) -> JobScheduler:
    settings = config.scheduler
    return JobScheduler(
        DriveJobsStore(Path(config.workdir), archive_limit=settings.archive_limit),
        EventBus(),
        JobHandlers(services, config),
        debounce_seconds=settings.debounce_seconds,
        poll_interval=settings.poll_interval_seconds,
        retry_delay_seconds=settings.retry_delay_seconds,
    )


def _format_ts(value: Optional[int]) -> str:
    if value is None:
        return "-"
    return time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(value / 1000))


def _add_tree_nodes(node: Tree, items: list[dict[str, Any]]) -> None:
    for item in items:
        label = item.get("realFileName") or item.get("fileName") or item["id"]
        if item.get("conflicting"):
            label = f"[yellow]{label}[/yellow] (conflict)"
        elif item.get("redirectTo"):
            label = f"[dim]{label}[/dim] -> {item['redirectTo']}"
        branch = node.add(label)
        _add_tree_nodes(branch, item.get("children") or [])


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="drivemark")
def cli() -> None:
    """drivemark mirrors Google Drive folders into Markdown trees."""


@cli.command()
@click.argument("drive_id")
@click.option("--folder-id", type=str, help="Mirror this folder instead of the drive root.")
@click.option("--file-id", "file_ids", multiple=True, help="Only refresh these files.")
@click.option("--force", is_flag=True, help="Download files even when unchanged.")
@click.option("--json", "json_output", is_flag=True, help="Emit queue counters as JSON.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.pass_context
def sync(
    ctx: click.Context,
    drive_id: str,
    folder_id: Optional[str],
    file_ids: tuple[str, ...],
    force: bool,
    json_output: bool,
    quiet: bool,
) -> None:
    """Download DRIVE_ID into its workspace without transforming it.

    Args:
        ctx: Click context used to tell an explicit ``--quiet`` from the default.
        drive_id: Id of the shared drive or root folder.
        folder_id: Optional folder to mirror.
        file_ids: Files to refresh; their folders are listed automatically.
        force: Re-download unchanged files.
        json_output: Emit JSON instead of a summary line.
        quiet: Print nothing unless the sync fails.
    """
    try:
        config = _load_config()
        quiet_enabled = _resolve_quiet(ctx, config, quiet, json_output)
        workspace = _workspace(config, drive_id)
        pipeline = DownloadPipeline(
            drive_id,
            _drive_client(config),
            workspace.download_store(),
            queue_settings=config.queue,
        )
        progress = pipeline.run(
            folder_id=folder_id,
            filter_file_ids=list(file_ids),
            force_download=force or len(file_ids) == 1,
        )
    except _HANDLED_ERRORS as exc:
        _fail(exc, drive_id=drive_id, json_output=json_output)

    if json_output:
        console.print_json(data={"driveId": drive_id, "progress": progress.as_dict()})
    else:
        _emit(
            _format_summary_line("Sync", drive_id, progress.as_dict()),
            quiet=quiet_enabled,
            error=progress.failed > 0,
        )
    if progress.failed:
        raise SystemExit(1)


@cli.command()
@click.argument("drive_id")
@click.option("--file-id", "file_ids", multiple=True, help="Only regenerate these files.")
@click.option("--json", "json_output", is_flag=True, help="Emit results as JSON.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.pass_context
def transform(
    ctx: click.Context,
    drive_id: str,
    file_ids: tuple[str, ...],
    json_output: bool,
    quiet: bool,
) -> None:
    """Generate the Markdown tree of DRIVE_ID from its downloaded files.

    Args:
        ctx: Click context used to tell an explicit ``--quiet`` from the default.
        drive_id: Id of the shared drive or root folder.
        file_ids: Files to regenerate along with the files linking to them.
        json_output: Emit JSON instead of a summary.
        quiet: Only print content errors and failures.
    """
    try:
        config = _load_config()
        quiet_enabled = _resolve_quiet(ctx, config, quiet, json_output)
        workspace = _workspace(config, drive_id)
        pipeline = TransformPipeline(
            drive_id,
            workspace.download_store(),
            workspace.content_store(),
            settings=config.transform,
            queue_settings=config.queue,
        )
        result = pipeline.run(drive_id, filter_ids=list(file_ids) or None)
    except _HANDLED_ERRORS as exc:
        _fail(exc, drive_id=drive_id, json_output=json_output)

    if json_output:
        console.print_json(
            data={
                "driveId": drive_id,
                "progress": result.progress.as_dict(),
                "redirects": result.redirects,
                "errors": [{"file": name, "message": message} for name, message in result.errors],
            }
        )
    else:
        metrics = {**result.progress.as_dict(), "redirects": result.redirects}
        _emit(_format_summary_line("Transform", drive_id, metrics), quiet=quiet_enabled, error=result.failed)
        for name, message in result.errors:
            _emit(f"[yellow]{name}: {message}[/yellow]", quiet=quiet_enabled, error=True)
    if result.failed:
        raise SystemExit(1)


@cli.command()
@click.argument("drive_id")
@click.option("--json", "json_output", is_flag=True, help="Emit the tree index as JSON.")
def tree(drive_id: str, json_output: bool) -> None:
    """Print the generated tree of DRIVE_ID."""
    try:
        config = _load_config()
        processor = MarkdownTreeProcessor(DriveWorkspace(Path(config.workdir), drive_id).content_store())
        processor.load()
    except _HANDLED_ERRORS as exc:
        _fail(exc, drive_id=drive_id, json_output=json_output)

    if json_output:
        console.print_json(data=processor.get_tree())
        return
    if processor.is_empty():
        console.print(f"[yellow]No generated tree for {drive_id}. Run `drivemark transform` first.[/yellow]")
        return
    root = Tree(f"[bold]{drive_id}[/bold] (version {processor.get_tree_version() or 'unknown'})")
    _add_tree_nodes(root, processor.get_tree())
    console.print(root)


@cli.group()
def jobs() -> None:
    """Schedule, inspect and run drive jobs."""


@jobs.command("schedule")
@click.argument("drive_id")
@click.argument("job_type", type=click.Choice([job_type.value for job_type in JobType]))
@click.option("--payload", type=str, help="Type-specific payload, e.g. comma separated file ids.")
@click.option("--title", type=str, help="Label shown when listing jobs.")
def jobs_schedule(drive_id: str, job_type: str, payload: Optional[str], title: Optional[str]) -> None:
    """Add a JOB_TYPE job to the queue of DRIVE_ID."""
    try:
        config = _load_config()
        scheduler = _build_scheduler(config, ServiceRegistry())
        job = Job(type=JobType(job_type), payload=payload, title=title or job_type)
        accepted = scheduler.schedule(drive_id, job)
    except _HANDLED_ERRORS as exc:
        _fail(exc, drive_id=drive_id)

    if accepted:
        console.print(f"[green]Scheduled {job_type} job {job.id}.[/green]")
    else:
        console.print(f"[yellow]An equivalent {job_type} job is already queued.[/yellow]")


@jobs.command("inspect")
@click.argument("drive_id")
@click.option("--json", "json_output", is_flag=True, help="Emit the job list as JSON.")
def jobs_inspect(drive_id: str, json_output: bool) -> None:
    """List current and archived jobs of DRIVE_ID."""
    try:
        config = _load_config()
        store = DriveJobsStore(Path(config.workdir), archive_limit=config.scheduler.archive_limit)
        drive_jobs = store.get(drive_id)
    except _HANDLED_ERRORS as exc:
        _fail(exc, drive_id=drive_id, json_output=json_output)

    if json_output:
        console.print_json(data=drive_jobs.to_json())
        return

    table = Table(title=f"Jobs for {drive_id}")
    table.add_column("State")
    table.add_column("Type")
    table.add_column("Title")
    table.add_column("Scheduled")
    table.add_column("Finished")
    table.add_column("Progress")
    for job in [*drive_jobs.jobs, *reversed(drive_jobs.archive)]:
        progress = job.progress
        table.add_row(
            job.state.value,
            job.type.value,
            job.title,
            _format_ts(job.ts),
            _format_ts(job.finished),
            f"{progress.completed}/{progress.total}" if progress else "-",
        )
    console.print(table)


@jobs.command("run")
@click.argument("drive_id")
@click.option("--timeout", type=float, help="Give up after this many seconds.")
@click.option(
    "--stop-timeout",
    type=float,
    default=10.0,
    show_default=True,
    help="Seconds to wait for running jobs after an interrupt.",
)
@click.option("--quiet", is_flag=True, help="Only report failed jobs.")
@click.pass_context
def jobs_run(
    ctx: click.Context,
    drive_id: str,
    timeout: Optional[float],
    stop_timeout: float,
    quiet: bool,
) -> None:
    """Run the scheduler until no job of DRIVE_ID is waiting or running.

    Ctrl-C saves the job list and the logs of running transforms, then waits
    at most ``--stop-timeout`` seconds for running jobs before exiting.
    """
    try:
        config = _load_config()
        quiet_enabled = _resolve_quiet(ctx, config, quiet, False)
        _workspace(config, drive_id)
        scheduler = _build_scheduler(config, ServiceRegistry(drive=_drive_client(config)))
    except _HANDLED_ERRORS as exc:
        _fail(exc, drive_id=drive_id)

    panics: list[str] = []
    interrupted = threading.Event()

    def _on_toast(event: ToastAdded) -> None:
        toast = event.toast
        color = "red" if toast.err else "green"
        suffix = f": {toast.err}" if toast.err else ""
        _emit(f"[{color}]{toast.title}{suffix}[/{color}]", quiet=quiet_enabled, error=bool(toast.err))

    def _on_panic(event: PanicRaised) -> None:
        panics.append(event.message)

    def _on_interrupt(signum: int, frame: Any) -> None:
        interrupted.set()

    scheduler.bus.subscribe(ToastAdded, _on_toast)
    scheduler.bus.subscribe(PanicRaised, _on_panic)

    previous_handler = signal.signal(signal.SIGINT, _on_interrupt)
    deadline = None if timeout is None else time.monotonic() + timeout
    try:
        scheduler.start()
        while not panics and not interrupted.is_set():
            if all(not job.is_active for job in scheduler.inspect(drive_id).jobs):
                break
            if deadline is not None and time.monotonic() >= deadline:
                _emit("[yellow]Timed out waiting for jobs.[/yellow]", quiet=quiet_enabled)
                break
            interrupted.wait(config.scheduler.poll_interval_seconds)
    finally:
        signal.signal(signal.SIGINT, previous_handler if previous_handler is not None else signal.SIG_DFL)
        if interrupted.is_set():
            console.print("[yellow]Interrupted; saving job state.[/yellow]")
            scheduler.flush()
            scheduler.stop(timeout=stop_timeout)
        else:
            scheduler.stop()

    if interrupted.is_set():
        raise SystemExit(130)
    if panics:
        raise click.ClickException(f"Credentials rejected: {panics[0]}")


@cli.group()
def config() -> None:
    """Manage drivemark configuration files and overrides."""


@config.command("view")
@click.option("--no-env", is_flag=True, help="Ignore DRIVEMARK__ environment overrides.")
@click.option(
    "--section",
    type=click.Choice(list(DrivemarkConfig.model_fields)),
    help="Only show one section, e.g. drive or transform.",
)
@click.option("--json", "json_output", is_flag=True, help="Emit the configuration as JSON.")
def config_view(no_env: bool, section: Optional[str], json_output: bool) -> None:
    """Display the effective configuration after applying precedence rules."""
    manager = ConfigManager()
    try:
        manager.ensure_exists()
        loaded = manager.load(include_env=not no_env)
    except ConfigError as exc:
        _fail(exc, json_output=json_output)

    data = loaded.model_dump(mode="json")
    if section is not None:
        data = {section: data[section]}
    if json_output:
        console.print_json(data=data)
        return
    console.print(Syntax(yaml.safe_dump(data, sort_keys=False), "yaml", word_wrap=True))


@config.command("set")
@click.argument("key")
@click.option("--value", required=True, help="YAML value to assign to KEY.")
def config_set(key: str, value: str) -> None:
    """Persist a configuration value expressed as a dotted KEY.

    KEY must name a drivemark setting, e.g. ``queue.retries`` or
    ``drive.credentials_path``. A new credentials path must point at an
    existing service-account key, and new scopes must be Google API scopes.

    Raises:
        click.ClickException: If KEY is unknown or the value is rejected.
    """
    segments = _config_key(key)
    try:
        parsed_value = yaml.safe_load(value)
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Unable to parse value: {exc}") from exc

    manager = ConfigManager()
    try:
        manager.ensure_exists()
        file_data = manager.load_file_overrides()
    except ConfigError as exc:
        _fail(exc)

    _set_file_value(file_data, segments, parsed_value)
    if not _write_config(manager, file_data):
        console.print("[yellow]No changes applied; value already up to date.[/yellow]")
        return
    console.print(f"[green]Updated {'.'.join(segments)}.[/green]")


@config.command("edit")
def config_edit() -> None:
    """Open the configuration file in an interactive editor session.

    Raises:
        click.ClickException: If edited content is invalid or cannot be saved.
    """
    manager = ConfigManager()
    manager.ensure_exists()

    original = manager.read_text()
    edited = click.edit(original, extension=".yaml")
    if edited is None:
        console.print("[yellow]Edit cancelled; no changes applied.[/yellow]")
        return
    if edited == original:
        console.print("[yellow]No changes detected.[/yellow]")
        return

    try:
        parsed = yaml.safe_load(edited) or {}
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Invalid YAML: {exc}") from exc
    if not isinstance(parsed, dict):
        raise click.ClickException("Configuration file must contain a top-level mapping.")

    if not _write_config(manager, parsed):
        console.print("[yellow]No changes detected.[/yellow]")
        return
    console.print("[green]Configuration updated successfully.[/green]")


def main() -> None:
    """Invoke the Click CLI as the console script entry point."""
    cli()


if __name__ == "__main__":
    main()
