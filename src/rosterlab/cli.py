"""Command line interface for rosterlab."""

from __future__ import annotations

import difflib
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator

import click
import yaml
from click.core import ParameterSource
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from rosterlab.batch import BatchResult, CancelToken
from rosterlab.config import ConfigError, ConfigManager, RosterLabConfig, resolve_with_precedence
from rosterlab.curation import (
    CatalogEntry,
    Collection,
    Combinator,
    Comparator,
    FilterField,
    FilterRule,
    SlotKind,
)
from rosterlab.errors import (
    ConflictError,
    InvalidContentError,
    IOFailure,
    NotFoundError,
    OperationCancelled,
    PartialBatchFailure,
    RosterLabError,
)
from rosterlab.index import LibraryIndexRecord
from rosterlab.install import InstallRequest
from rosterlab.library import ContentKind, ContentStatus
from rosterlab.logsetup import configure_logging
from rosterlab.reconcile import (
    DuplicateGroup,
    ReconciledItem,
    ReconciliationReport,
    Severity,
    ValidationResult,
)
from rosterlab.service import LibraryManager

console = Console()

_KIND_CHOICE = click.Choice([ContentKind.CHARACTER.value, ContentKind.STAGE.value])
_STATUS_STYLES = {
    ContentStatus.ACTIVE: "green",
    ContentStatus.DISABLED: "dim",
    ContentStatus.UNREGISTERED: "cyan",
    ContentStatus.MISSING: "red",
    ContentStatus.BROKEN: "red",
    ContentStatus.DUPLICATE: "yellow",
}
_SEVERITY_STYLES = {Severity.ERROR: "red", Severity.WARNING: "yellow", Severity.INFO: "cyan"}
_ERROR_CODES: tuple[tuple[type[RosterLabError], str], ...] = (
    (PartialBatchFailure, "partial_failure"),
    (OperationCancelled, "cancelled"),
    (ConflictError, "conflict"),
    (NotFoundError, "not_found"),
    (InvalidContentError, "invalid_content"),
    (IOFailure, "io_error"),
)


def _handle_cli_error(
    message: str,
    *,
    code: str,
    json_output: bool,
    details: Any | None = None,
    original: Exception | None = None,
) -> None:
    """Emit a standardized error and terminate the command appropriately.

    Args:
        message: Human-readable error message.
        code: Machine-readable error identifier.
        json_output: Indicates whether JSON mode is active.
        details: Optional structured details to include in the payload.
        original: Original exception for chaining when not using JSON.

    Raises:
        SystemExit: When emitting JSON output to terminate the command.
        click.ClickException: For non-JSON flows to surface the error.
    """

    if json_output:
        payload: dict[str, Any] = {"error": {"code": code, "message": message}}
        if details is not None:
            payload["error"]["details"] = details
        console.print_json(data=payload)
        raise SystemExit(1)

    if isinstance(original, click.ClickException):
        raise original

    raise click.ClickException(message) from original


def _error_details(exc: RosterLabError) -> dict[str, Any] | None:
    if isinstance(exc, PartialBatchFailure):
        return {
            "succeeded": [str(item) for item in exc.succeeded],
            "failures": [{"item": item, "reason": reason} for item, reason in exc.failures],
        }
    details: dict[str, Any] = {}
    if exc.item_id is not None:
        details["item"] = exc.item_id
    if exc.path is not None:
        details["path"] = str(exc.path)
    return details or None


@contextmanager
def _command_errors(json_output: bool) -> Iterator[None]:
    """Translate library, configuration and unexpected errors into CLI failures."""
    try:
        yield
    except ConfigError as exc:
        _handle_cli_error(str(exc), code="config_error", json_output=json_output, original=exc)
    except RosterLabError as exc:
        code = next(
            (name for error_type, name in _ERROR_CODES if isinstance(exc, error_type)),
            "library_error",
        )
        _handle_cli_error(
            str(exc),
            code=code,
            json_output=json_output,
            details=_error_details(exc),
            original=exc,
        )
    except click.ClickException as exc:
        _handle_cli_error(exc.format_message(), code="cli_error", json_output=json_output, original=exc)
    except click.Abort:
        raise
    except Exception as exc:  # pragma: no cover
        _handle_cli_error(
            f"Unexpected error: {exc}", code="internal_error", json_output=json_output, original=exc
        )


def _emit_message(message: Any, *, mode: str, quiet: bool, summary_only: bool) -> None:
    """Conditionally print CLI output according to quiet/summary settings.

    Args:
        message: Renderable or string to emit.
        mode: Output mode identifier (`detail`, `summary`, `warning`, or `error`).
        quiet: Whether quiet mode is active.
        summary_only: Whether only summary lines should be emitted.
    """

    if quiet and mode != "error":
        return

    important_modes = {"summary", "warning", "error"}
    if summary_only and mode not in important_modes:
        return

    console.print(message)


def _format_summary_line(command: str, root: Path | str, metrics: dict[str, Any]) -> str:
    """Return a consistent summary line for CLI commands.

    Args:
        command: Command name to include in the summary.
        root: Engine working directory the command operated on.
        metrics: Ordered mapping of metric names to values.

    Returns:
        str: Rich-formatted summary string.
    """

    parts = ", ".join(f"{key}={value}" for key, value in metrics.items())
    return f"[green]{command} summary for {root}: {parts}.[/green]"


def _assign_nested(target: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a nested value within a dictionary for a dotted path.

    Raises:
        ConfigError: If a non-mapping value is encountered along the path.
    """

    node = target
    for segment in path[:-1]:
        existing = node.get(segment)
        if existing is None:
            existing = {}
            node[segment] = existing
        elif not isinstance(existing, dict):
            raise ConfigError(
                f"Cannot assign into '{segment}' because it is not a mapping in the config file."
            )
        node = existing
    node[path[-1]] = value


class _Output:
    """Resolved presentation flags for one command invocation."""

    def __init__(self, *, json_output: bool, quiet: bool, summary_only: bool) -> None:
        self.json_output = json_output
        self.quiet = quiet
        self.summary_only = summary_only

    def emit(self, message: Any, mode: str = "detail") -> None:
        if self.json_output:
            return
        _emit_message(message, mode=mode, quiet=self.quiet, summary_only=self.summary_only)

    def json(self, payload: Any) -> None:
        console.print_json(data=payload)


def _resolve_output(
    ctx: click.Context, config: RosterLabConfig, *, json_output: bool, quiet: bool, summary_mode: bool
) -> _Output:
    """Combine explicit flags with configured defaults.

    Raises:
        click.ClickException: If the flags conflict.
    """
    explicit_quiet = ctx.get_parameter_source("quiet") == ParameterSource.COMMANDLINE
    explicit_summary = ctx.get_parameter_source("summary_mode") == ParameterSource.COMMANDLINE

    quiet_enabled = quiet if explicit_quiet else config.cli.quiet_default
    summary_only = summary_mode if explicit_summary else config.cli.summary_default

    if json_output:
        if explicit_quiet and quiet_enabled:
            raise click.ClickException("--json cannot be combined with --quiet.")
        if explicit_summary and summary_only:
            raise click.ClickException("--json cannot be combined with --summary.")
        quiet_enabled = False
        summary_only = False

    if quiet_enabled and summary_only:
        raise click.ClickException(
            "Quiet and summary modes cannot both be enabled. Adjust CLI defaults or flags."
        )
    return _Output(json_output=json_output, quiet=quiet_enabled, summary_only=summary_only)


def _output_options(func: Callable[..., Any]) -> Callable[..., Any]:
    func = click.option("--quiet", is_flag=True, help="Suppress non-error output.")(func)
    func = click.option("--summary", "summary_mode", is_flag=True, help="Only emit summary lines.")(func)
    func = click.option("--json", "json_output", is_flag=True, help="Emit results as JSON.")(func)
    return func


def _load_config(ctx: click.Context) -> RosterLabConfig:
    manager = ConfigManager()
    manager.ensure_exists()
    overrides: dict[str, Any] = {}
    working_dir = ctx.find_root().params.get("working_dir")
    if working_dir:
        overrides["library.working_dir"] = working_dir
    return manager.load(cli_overrides=overrides or None)


def _open_manager(config: RosterLabConfig) -> LibraryManager:
    manager = LibraryManager.from_config(config)
    configure_logging(config.logging, manager.layout.working_dir)
    return manager


def _kind(value: str) -> ContentKind:
    return ContentKind(value)


def _parse_rule(text: str) -> FilterRule:
    """Parse ``field:comparator[:value]`` into a FilterRule.

    Raises:
        click.BadParameter: If the field or comparator is unknown.
    """
    parts = text.split(":", 2)
    if len(parts) < 2:
        raise click.BadParameter(f"Rule {text!r} must look like field:comparator:value.")
    field_name, comparator_name = parts[0].strip(), parts[1].strip()
    try:
        field = FilterField(field_name)
    except ValueError as exc:
        choices = ", ".join(item.value for item in FilterField)
        raise click.BadParameter(f"Unknown rule field {field_name!r}; expected one of {choices}.") from exc
    try:
        comparator = Comparator(comparator_name)
    except ValueError as exc:
        choices = ", ".join(item.value for item in Comparator)
        raise click.BadParameter(
            f"Unknown comparator {comparator_name!r}; expected one of {choices}."
        ) from exc
    return FilterRule(field=field, comparator=comparator, value=parts[2] if len(parts) > 2 else "")


def _item_payload(item: ReconciledItem) -> dict[str, Any]:
    return {
        "kind": item.kind.value,
        "id": item.item_id,
        "name": item.name,
        "author": item.author,
        "status": item.status.value,
        "script_state": item.script_state.value,
        "reference": item.reference,
        "paths": [str(path) for path in item.paths],
        "error": item.item.error if item.item is not None else None,
    }


def _report_payload(report: ReconciliationReport) -> dict[str, Any]:
    return {
        "reconciled_at": report.reconciled_at.isoformat(),
        "counts": report.counts(),
        "items": [_item_payload(item) for item in report.items],
        "screenpacks": [
            {"id": pack.id, "name": pack.name, "path": str(pack.path)} for pack in report.screenpacks
        ],
        "index": report.index_summary.as_dict() if report.index_summary else None,
    }


def _status_table(items: list[ReconciledItem]) -> Table:
    table = Table(title="Library status", show_lines=False)
    table.add_column("Kind", style="bold")
    table.add_column("Id")
    table.add_column("Name")
    table.add_column("Author")
    table.add_column("Status")
    table.add_column("Roster entry", overflow="fold")
    for item in items:
        style = _STATUS_STYLES.get(item.status, "white")
        table.add_row(
            item.kind.value,
            item.item_id,
            item.name,
            item.author or "",
            f"[{style}]{item.status.value}[/{style}]",
            item.reference or "",
        )
    return table


def _catalog_table(title: str, entries: list[CatalogEntry]) -> Table:
    table = Table(title=title)
    table.add_column("Kind", style="bold")
    table.add_column("Id")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Tags", overflow="fold")
    for entry in entries:
        table.add_row(
            entry.kind.value,
            entry.id,
            entry.name,
            entry.status.value if entry.status else "",
            ", ".join(entry.tags),
        )
    return table


def _records_table(title: str, records: list[LibraryIndexRecord]) -> Table:
    table = Table(title=title)
    table.add_column("Id", style="bold")
    table.add_column("Name")
    table.add_column("Author")
    table.add_column("Installed")
    for record in records:
        table.add_row(
            record.id,
            record.name,
            record.author,
            record.installed_at.isoformat() if record.installed_at else "",
        )
    return table


def _validation_payload(result: ValidationResult) -> dict[str, Any]:
    return {
        "kind": result.kind.value,
        "id": result.item_id,
        "issues": [
            {
                "severity": issue.severity.value,
                "file": issue.file,
                "message": issue.message,
                "suggestion": issue.suggestion,
                "fixable": issue.is_fixable,
            }
            for issue in result.issues
        ],
    }


def _duplicate_payload(group: DuplicateGroup) -> dict[str, Any]:
    return {
        "kind": group.kind.value,
        "reason": group.reason.value,
        "ids": [item.id for item in group.items],
        "paths": [str(item.path) for item in group.items],
    }


def _duplicates_table(groups: list[DuplicateGroup]) -> Table:
    table = Table(title="Duplicates")
    table.add_column("Kind", style="bold")
    table.add_column("Reason")
    table.add_column("Keep")
    table.add_column("Copies", overflow="fold")
    for group in groups:
        table.add_row(
            group.kind.value,
            group.reason.value.replace("_", " "),
            group.primary.id if group.primary else "",
            ", ".join(item.id for item in group.duplicates),
        )
    return table


def _emit_report(command: str, report: ReconciliationReport, root: Path, output: _Output) -> None:
    if output.json_output:
        output.json(_report_payload(report))
        return
    metrics: dict[str, Any] = {key: value for key, value in report.counts().items() if value}
    metrics["items"] = len(report.items)
    output.emit(_format_summary_line(command, root, metrics), mode="summary")


def _emit_batch(
    command: str, result: BatchResult[Any], root: Path, output: _Output
) -> None:
    """Print a batch outcome, then fail when any item failed."""
    if output.json_output:
        output.json(
            {
                "succeeded": [list(item) if isinstance(item, tuple) else item for item in result.succeeded],
                "failures": [{"item": item, "reason": reason} for item, reason in result.failures],
            }
        )
    else:
        for item in result.succeeded:
            text = f"{item[0]} -> {item[1]}" if isinstance(item, tuple) else str(item)
            output.emit(f"  - {text}")
        for item, reason in result.failures:
            output.emit(f"[yellow]  ! {item}: {reason}[/yellow]", mode="warning")
        output.emit(
            _format_summary_line(
                command, root, {"succeeded": len(result.succeeded), "failed": len(result.failures)}
            ),
            mode="summary",
        )
    if result.failures:
        if output.json_output:
            raise SystemExit(1)
        result.raise_for_failures()


def _collection_payload(collection: Collection) -> dict[str, Any]:
    return collection.model_dump(mode="json")


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="rosterlab")
@click.option(
    "--working-dir",
    "working_dir",
    type=click.Path(file_okay=False, path_type=str),
    default=None,
    help="Engine working directory (defaults to library.working_dir).",
)
def cli(working_dir: str | None) -> None:
    """Manage the characters, stages and roster script of a fighting-game engine."""


@cli.command()
@click.option("--kind", "kind_name", type=_KIND_CHOICE, help="Only show one content kind.")
@click.option(
    "--status",
    "status_name",
    type=click.Choice([status.value for status in ContentStatus]),
    help="Only show items with this status.",
)
@_output_options
@click.pass_context
def status(
    ctx: click.Context,
    kind_name: str | None,
    status_name: str | None,
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
) -> None:
    """Reconcile the library and show one status per item."""
    with _command_errors(json_output):
        config = _load_config(ctx)
        output = _resolve_output(
            ctx, config, json_output=json_output, quiet=quiet, summary_mode=summary_mode
        )
        with _open_manager(config) as manager:
            report = manager.refresh()
            items = report.items
            if kind_name:
                items = [item for item in items if item.kind is ContentKind(kind_name)]
            if status_name:
                items = [item for item in items if item.status is ContentStatus(status_name)]

            if output.json_output:
                payload = _report_payload(report)
                payload["items"] = [_item_payload(item) for item in items]
                output.json(payload)
                return

            if items:
                output.emit(_status_table(items))
            else:
                output.emit("[yellow]No matching items.[/yellow]", mode="warning")
            for pack in report.screenpacks:
                output.emit(f"Screenpack: {pack.name} ({pack.id})")
            _emit_report("Status", report, manager.layout.working_dir, output)


@cli.command()
@_output_options
@click.pass_context
def refresh(ctx: click.Context, json_output: bool, summary_mode: bool, quiet: bool) -> None:
    """Rescan the library and rebuild the index on a worker thread."""
    with _command_errors(json_output):
        config = _load_config(ctx)
        output = _resolve_output(
            ctx, config, json_output=json_output, quiet=quiet, summary_mode=summary_mode
        )
        with _open_manager(config) as manager:
            token = CancelToken()
            future = manager.refresh_in_background(token)
            try:
                report = future.result()
            except KeyboardInterrupt:
                token.cancel()
                future.exception()
                raise click.Abort() from None

            if not output.json_output and report.index_summary is not None:
                for key, value in report.index_summary.as_dict().items():
                    output.emit(f"  {key}: {value}")
            _emit_report("Refresh", report, manager.layout.working_dir, output)


def _entry_command(name: str, help_text: str, action: str) -> None:
    @cli.command(name=name, help=help_text)
    @click.argument("kind_name", metavar="KIND", type=_KIND_CHOICE)
    @click.argument("item_id")
    @click.option("--def", "selector", help="Only touch the entry for this definition file.")
    @_output_options
    @click.pass_context
    def _command(
        ctx: click.Context,
        kind_name: str,
        item_id: str,
        selector: str | None,
        json_output: bool,
        summary_mode: bool,
        quiet: bool,
    ) -> None:
        with _command_errors(json_output):
            config = _load_config(ctx)
            output = _resolve_output(
                ctx, config, json_output=json_output, quiet=quiet, summary_mode=summary_mode
            )
            with _open_manager(config) as manager:
                report = getattr(manager, action)(_kind(kind_name), item_id, selector)
                item = report.get(_kind(kind_name), item_id)
                if item is not None:
                    output.emit(f"{item.kind.value} {item.item_id}: {item.status.value}")
                _emit_report(name.capitalize(), report, manager.layout.working_dir, output)


_entry_command("enable", "Uncomment roster entries for an item.", "enable")
_entry_command("disable", "Comment out roster entries for an item, keeping its position.", "disable")


@cli.command()
@click.argument("kind_name", metavar="KIND", type=_KIND_CHOICE)
@click.argument("item_id")
@_output_options
@click.pass_context
def register(
    ctx: click.Context,
    kind_name: str,
    item_id: str,
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
) -> None:
    """Add an unregistered item to the roster script."""
    with _command_errors(json_output):
        config = _load_config(ctx)
        output = _resolve_output(
            ctx, config, json_output=json_output, quiet=quiet, summary_mode=summary_mode
        )
        with _open_manager(config) as manager:
            report = manager.register(_kind(kind_name), item_id)
            _emit_report("Register", report, manager.layout.working_dir, output)


@cli.command()
@click.argument("kind_name", metavar="KIND", type=_KIND_CHOICE)
@click.argument("item_id")
@click.option("--def", "selector", help="Only remove the entry for this definition file.")
@click.option("--delete-files", is_flag=True, help="Also delete the item from disk.")
@_output_options
@click.pass_context
def remove(
    ctx: click.Context,
    kind_name: str,
    item_id: str,
    selector: str | None,
    delete_files: bool,
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
) -> None:
    """Delete roster entries for an item, and optionally its files."""
    with _command_errors(json_output):
        config = _load_config(ctx)
        output = _resolve_output(
            ctx, config, json_output=json_output, quiet=quiet, summary_mode=summary_mode
        )
        with _open_manager(config) as manager:
            report = manager.remove(
                _kind(kind_name), item_id, selector, delete_files=delete_files
            )
            _emit_report("Remove", report, manager.layout.working_dir, output)


@cli.command()
@click.argument("kind_name", metavar="KIND", type=_KIND_CHOICE)
@click.argument("ids", nargs=-1, required=True)
@_output_options
@click.pass_context
def reorder(
    ctx: click.Context,
    kind_name: str,
    ids: tuple[str, ...],
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
) -> None:
    """Move the given ids to the front of the roster, in order."""
    with _command_errors(json_output):
        config = _load_config(ctx)
        output = _resolve_output(
            ctx, config, json_output=json_output, quiet=quiet, summary_mode=summary_mode
        )
        with _open_manager(config) as manager:
            report = manager.reorder(_kind(kind_name), list(ids))
            for item in report.of_kind(_kind(kind_name)):
                if item.position is not None:
                    output.emit(f"  {item.position + 1}. {item.item_id}")
            _emit_report("Reorder", report, manager.layout.working_dir, output)


@cli.command()
@click.argument("kind_name", metavar="KIND", type=_KIND_CHOICE)
@click.argument("old_id")
@click.argument("new_id")
@_output_options
@click.pass_context
def rename(
    ctx: click.Context,
    kind_name: str,
    old_id: str,
    new_id: str,
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
) -> None:
    """Rename an item on disk and in the roster script."""
    with _command_errors(json_output):
        config = _load_config(ctx)
        output = _resolve_output(
            ctx, config, json_output=json_output, quiet=quiet, summary_mode=summary_mode
        )
        with _open_manager(config) as manager:
            report = manager.rename(_kind(kind_name), old_id, new_id)
            output.emit(f"Renamed {old_id} -> {new_id}")
            _emit_report("Rename", report, manager.layout.working_dir, output)


@cli.command()
@click.argument("sources", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path))
@click.option(
    "--kind",
    "kind_name",
    type=click.Choice([kind.value for kind in ContentKind]),
    help="Content kind; detected from the files when omitted.",
)
@click.option("--overwrite", is_flag=True, help="Replace content that already exists.")
@_output_options
@click.pass_context
def install(
    ctx: click.Context,
    sources: tuple[Path, ...],
    kind_name: str | None,
    overwrite: bool,
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
) -> None:
    """Copy extracted content into the library and register it."""
    with _command_errors(json_output):
        config = _load_config(ctx)
        output = _resolve_output(
            ctx, config, json_output=json_output, quiet=quiet, summary_mode=summary_mode
        )
        kind = ContentKind(kind_name) if kind_name else None
        with _open_manager(config) as manager:
            root = manager.layout.working_dir
            if len(sources) == 1:
                item_id = manager.install(sources[0], kind=kind, overwrite=overwrite)
                if output.json_output:
                    output.json({"installed": [item_id]})
                else:
                    output.emit(_format_summary_line("Install", root, {"installed": item_id}), mode="summary")
                return
            requests = [InstallRequest(source, kind, overwrite) for source in sources]
            _emit_batch("Install", manager.install_many(requests), root, output)


@cli.command()
@click.option(
    "--kind",
    "kind_name",
    type=_KIND_CHOICE,
    default=ContentKind.CHARACTER.value,
    show_default=True,
    help="Sanitize character folders or stage sub-folders.",
)
@_output_options
@click.pass_context
def sanitize(
    ctx: click.Context, kind_name: str, json_output: bool, summary_mode: bool, quiet: bool
) -> None:
    """Rename folders to clean, title-cased names and update the roster script."""
    with _command_errors(json_output):
        config = _load_config(ctx)
        output = _resolve_output(
            ctx, config, json_output=json_output, quiet=quiet, summary_mode=summary_mode
        )
        with _open_manager(config) as manager:
            result = manager.sanitize_all(_kind(kind_name))
            _emit_batch("Sanitize", result, manager.layout.working_dir, output)


@cli.command("fix-names")
@click.option("--stages", is_flag=True, help="Fix placeholder stage names instead of character folders.")
@click.option("--dry-run", is_flag=True, help="List suggested character renames without applying them.")
@_output_options
@click.pass_context
def fix_names(
    ctx: click.Context,
    stages: bool,
    dry_run: bool,
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
) -> None:
    """Rename generic character folders after their declared names."""
    with _command_errors(json_output):
        config = _load_config(ctx)
        output = _resolve_output(
            ctx, config, json_output=json_output, quiet=quiet, summary_mode=summary_mode
        )
        if stages and dry_run:
            raise click.ClickException("--dry-run only applies to character folders.")
        with _open_manager(config) as manager:
            root = manager.layout.working_dir
            if dry_run:
                suggestions = manager.find_mismatched()
                if output.json_output:
                    output.json([{"folder": folder.name, "suggestion": name} for folder, name in suggestions])
                    return
                for folder, name in suggestions:
                    output.emit(f"  - {folder.name} -> {name}")
                output.emit(
                    _format_summary_line("Fix-names", root, {"suggestions": len(suggestions)}),
                    mode="summary",
                )
                return
            result = manager.fix_stage_names() if stages else manager.fix_mismatched()
            _emit_batch("Fix-names", result, root, output)


@cli.command()
@click.option("--fix", "apply_fix", is_flag=True, help="Rewrite references that only differ by case or quotes.")
@_output_options
@click.pass_context
def validate(
    ctx: click.Context, apply_fix: bool, json_output: bool, summary_mode: bool, quiet: bool
) -> None:
    """Check that character and stage definitions reference files that exist."""
    with _command_errors(json_output):
        config = _load_config(ctx)
        output = _resolve_output(
            ctx, config, json_output=json_output, quiet=quiet, summary_mode=summary_mode
        )
        with _open_manager(config) as manager:
            root = manager.layout.working_dir
            if apply_fix:
                _emit_batch("Validate", manager.fix_references(), root, output)
                return
            results = manager.refresh().validation_results()
            if output.json_output:
                output.json([_validation_payload(result) for result in results])
                return
            for result in results:
                output.emit(f"[bold]{result.kind.value} {result.item_id}[/bold]")
                for issue in result.issues:
                    style = _SEVERITY_STYLES[issue.severity]
                    line = f"  [{style}]{issue.severity.value}[/{style}] {issue.file}: {issue.message}"
                    if issue.suggestion:
                        line += f" ({issue.suggestion})"
                    output.emit(line)
            metrics = {
                "checked": len(results),
                "errors": sum(result.count(Severity.ERROR) for result in results),
                "fixable": sum(len(result.fixable) for result in results),
            }
            output.emit(_format_summary_line("Validate", root, metrics), mode="summary")


@cli.command()
@_output_options
@click.pass_context
def duplicates(ctx: click.Context, json_output: bool, summary_mode: bool, quiet: bool) -> None:
    """List duplicate copies and outdated versions of characters and stages."""
    with _command_errors(json_output):
        config = _load_config(ctx)
        output = _resolve_output(
            ctx, config, json_output=json_output, quiet=quiet, summary_mode=summary_mode
        )
        with _open_manager(config) as manager:
            report = manager.refresh()
            if output.json_output:
                output.json(
                    {
                        "groups": [_duplicate_payload(group) for group in report.duplicate_groups],
                        "outdated": [
                            {"kind": entry.item.kind.value, "id": entry.item.id, "newer": entry.newer.id}
                            for entry in report.outdated
                        ],
                    }
                )
                return
            if report.duplicate_groups:
                output.emit(_duplicates_table(report.duplicate_groups))
            for entry in report.outdated:
                output.emit(f"  - {entry.item.id} is older than {entry.newer.id}")
            output.emit(
                _format_summary_line(
                    "Duplicates",
                    manager.layout.working_dir,
                    {"groups": len(report.duplicate_groups), "outdated": len(report.outdated)},
                ),
                mode="summary",
            )


@cli.command()
@click.argument("kind_name", metavar="KIND", type=_KIND_CHOICE)
@click.argument("query", required=False, default="")
@_output_options
@click.pass_context
def search(
    ctx: click.Context,
    kind_name: str,
    query: str,
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
) -> None:
    """Search indexed names and authors, case-insensitively."""
    with _command_errors(json_output):
        config = _load_config(ctx)
        output = _resolve_output(
            ctx, config, json_output=json_output, quiet=quiet, summary_mode=summary_mode
        )
        with _open_manager(config) as manager:
            kind = _kind(kind_name)
            if not manager.index.counts().get(kind.value):
                manager.refresh()
            records = manager.search(kind, query)
            if output.json_output:
                output.json([record.model_dump(mode="json") for record in records])
                return
            if records:
                output.emit(_records_table(f"{kind.value.capitalize()} matches", records))
            output.emit(
                _format_summary_line("Search", manager.layout.working_dir, {"matches": len(records)}),
                mode="summary",
            )


@cli.command()
@click.option("--rule", "rules", multiple=True, help="Rule as field:comparator:value; repeatable.")
@click.option("--any", "match_any", is_flag=True, help="Match items satisfying any rule.")
@click.option("--kind", "kind_name", type=_KIND_CHOICE, help="Only consider one content kind.")
@_output_options
@click.pass_context
def smart(
    ctx: click.Context,
    rules: tuple[str, ...],
    match_any: bool,
    kind_name: str | None,
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
) -> None:
    """Evaluate ad-hoc smart-collection rules against the library."""
    with _command_errors(json_output):
        config = _load_config(ctx)
        output = _resolve_output(
            ctx, config, json_output=json_output, quiet=quiet, summary_mode=summary_mode
        )
        parsed = [_parse_rule(rule) for rule in rules]
        combinator = Combinator.ANY if match_any else Combinator.ALL
        with _open_manager(config) as manager:
            matches = manager.smart(parsed, combinator)
            if kind_name:
                matches = [entry for entry in matches if entry.kind is ContentKind(kind_name)]
            if output.json_output:
                output.json([entry.model_dump(mode="json") for entry in matches])
                return
            if matches:
                output.emit(_catalog_table("Smart matches", matches))
            output.emit(
                _format_summary_line("Smart", manager.layout.working_dir, {"matches": len(matches)}),
                mode="summary",
            )


@cli.group()
def tag() -> None:
    """Attach custom tags to indexed items."""


def _tag_command(name: str, action: str, verb: str) -> None:
    @tag.command(name=name, help=f"{verb} a custom tag.")
    @click.argument("kind_name", metavar="KIND", type=_KIND_CHOICE)
    @click.argument("item_id")
    @click.argument("label")
    @click.option("--json", "json_output", is_flag=True, help="Emit results as JSON.")
    @click.pass_context
    def _command(
        ctx: click.Context, kind_name: str, item_id: str, label: str, json_output: bool
    ) -> None:
        with _command_errors(json_output):
            config = _load_config(ctx)
            with _open_manager(config) as manager:
                kind = _kind(kind_name)
                if manager.index.get(kind, item_id) is None:
                    manager.refresh()
                getattr(manager, action)(kind, item_id, label)
                tags = manager.index.tags(kind, item_id)
                if json_output:
                    console.print_json(data={"id": item_id, "tags": tags})
                else:
                    console.print(f"{item_id}: {', '.join(tags) or '(no tags)'}")


_tag_command("add", "add_tag", "Add")
_tag_command("remove", "remove_tag", "Remove")


@cli.group()
def collections() -> None:
    """Manage collections (named game profiles)."""


def _collection_command(
    name: str, help_text: str
) -> Callable[[Callable[..., Collection]], Callable[..., None]]:
    """Register a collection sub-command whose body returns the edited collection."""

    def decorator(body: Callable[..., Collection]) -> Callable[..., None]:
        @collections.command(name=name, help=help_text)
        @click.argument("collection_name", metavar="COLLECTION")
        @click.option("--json", "json_output", is_flag=True, help="Emit results as JSON.")
        @click.pass_context
        def _command(ctx: click.Context, collection_name: str, json_output: bool, **kwargs: Any) -> None:
            with _command_errors(json_output):
                config = _load_config(ctx)
                with _open_manager(config) as manager:
                    manager.collections.ensure_default()
                    target = manager.collections.find(collection_name)
                    updated = body(manager, target, **kwargs)
                    if json_output:
                        console.print_json(data=_collection_payload(updated))
                    else:
                        console.print(f"[green]{updated.name} updated.[/green]")

        return _command

    return decorator


@collections.command("list")
@click.option("--json", "json_output", is_flag=True, help="Emit results as JSON.")
@click.pass_context
def collections_list(ctx: click.Context, json_output: bool) -> None:
    """List collections, default first."""
    with _command_errors(json_output):
        config = _load_config(ctx)
        with _open_manager(config) as manager:
            manager.collections.ensure_default()
            items = manager.collections.list()
            if json_output:
                console.print_json(data=[_collection_payload(item) for item in items])
                return
            table = Table(title="Collections")
            table.add_column("Name", style="bold")
            table.add_column("Type")
            table.add_column("Characters")
            table.add_column("Stages")
            table.add_column("Flags")
            for item in items:
                flags = [flag for flag, on in (("default", item.is_default), ("active", item.is_active)) if on]
                table.add_row(
                    item.name,
                    "smart" if item.is_smart else "curated",
                    str(len(item.characters)),
                    str(len(item.stages)),
                    ", ".join(flags),
                )
            console.print(table)


@collections.command("create")
@click.argument("name")
@click.option("--icon", default="folder", show_default=True, help="Icon identifier.")
@click.option("--json", "json_output", is_flag=True, help="Emit results as JSON.")
@click.pass_context
def collections_create(ctx: click.Context, name: str, icon: str, json_output: bool) -> None:
    """Create an empty collection."""
    with _command_errors(json_output):
        config = _load_config(ctx)
        with _open_manager(config) as manager:
            created = manager.collections.create(name, icon)
            if json_output:
                console.print_json(data=_collection_payload(created))
            else:
                console.print(f"[green]Created collection {created.name} ({created.id}).[/green]")


@collections.command("delete")
@click.argument("collection_name", metavar="COLLECTION")
@click.option("--json", "json_output", is_flag=True, help="Emit results as JSON.")
@click.pass_context
def collections_delete(ctx: click.Context, collection_name: str, json_output: bool) -> None:
    """Delete a collection; the default one cannot be deleted."""
    with _command_errors(json_output):
        config = _load_config(ctx)
        with _open_manager(config) as manager:
            target = manager.collections.find(collection_name)
            manager.collections.delete(target.id)
            if json_output:
                console.print_json(data={"deleted": target.id})
            else:
                console.print(f"[green]Deleted collection {target.name}.[/green]")


@collections.command("show")
@click.argument("collection_name", metavar="COLLECTION")
@click.option("--json", "json_output", is_flag=True, help="Emit results as JSON.")
@click.pass_context
def collections_show(ctx: click.Context, collection_name: str, json_output: bool) -> None:
    """Show the items a collection resolves to."""
    with _command_errors(json_output):
        config = _load_config(ctx)
        with _open_manager(config) as manager:
            manager.collections.ensure_default()
            target = manager.collections.find(collection_name)
            members = manager.collection_members(target)
            if json_output:
                console.print_json(
                    data={
                        "collection": _collection_payload(target),
                        "members": [entry.model_dump(mode="json") for entry in members],
                    }
                )
                return
            console.print(_catalog_table(target.name, members))
            placeholders = sum(1 for slot in target.characters if slot.kind is not SlotKind.CHARACTER)
            if placeholders:
                console.print(f"{placeholders} placeholder slot(s) not shown.")


@_collection_command("activate", "Mark a collection as the active one.")
def collections_activate(manager: LibraryManager, target: Collection) -> Collection:
    return manager.collections.set_active(target.id)


@_collection_command("add-random", "Append a random-select slot.")
def collections_add_random(manager: LibraryManager, target: Collection) -> Collection:
    return manager.collections.add_random_select(target.id)


@_collection_command("add-empty", "Append an empty spacer slot.")
def collections_add_empty(manager: LibraryManager, target: Collection) -> Collection:
    return manager.collections.add_empty_slot(target.id)


@collections.command("add-character")
@click.argument("collection_name", metavar="COLLECTION")
@click.argument("folder")
@click.option("--def", "def_file", help="Sub-definition file inside FOLDER.")
@click.option("--json", "json_output", is_flag=True, help="Emit results as JSON.")
@click.pass_context
def collections_add_character(
    ctx: click.Context, collection_name: str, folder: str, def_file: str | None, json_output: bool
) -> None:
    """Append a character slot to a collection."""
    with _command_errors(json_output):
        config = _load_config(ctx)
        with _open_manager(config) as manager:
            target = manager.collections.find(collection_name)
            updated = manager.collections.add_character(target.id, folder, def_file)
            if json_output:
                console.print_json(data=_collection_payload(updated))
            else:
                console.print(f"[green]{updated.name} now has {len(updated.characters)} slot(s).[/green]")


@collections.command("remove-slot")
@click.argument("collection_name", metavar="COLLECTION")
@click.argument("position", type=int)
@click.option("--json", "json_output", is_flag=True, help="Emit results as JSON.")
@click.pass_context
def collections_remove_slot(
    ctx: click.Context, collection_name: str, position: int, json_output: bool
) -> None:
    """Remove the roster slot at 1-based POSITION."""
    with _command_errors(json_output):
        config = _load_config(ctx)
        with _open_manager(config) as manager:
            target = manager.collections.find(collection_name)
            if not 1 <= position <= len(target.characters):
                raise click.ClickException(f"{target.name} has no slot {position}.")
            slot = target.characters[position - 1]
            updated = manager.collections.remove_character(target.id, slot.id)
            if json_output:
                console.print_json(data=_collection_payload(updated))
            else:
                console.print(f"[green]Removed slot {position} from {updated.name}.[/green]")


@collections.command("move-slot")
@click.argument("collection_name", metavar="COLLECTION")
@click.argument("source", type=int)
@click.argument("destination", type=int)
@click.option("--json", "json_output", is_flag=True, help="Emit results as JSON.")
@click.pass_context
def collections_move_slot(
    ctx: click.Context, collection_name: str, source: int, destination: int, json_output: bool
) -> None:
    """Move the slot at 1-based SOURCE to DESTINATION."""
    with _command_errors(json_output):
        config = _load_config(ctx)
        with _open_manager(config) as manager:
            target = manager.collections.find(collection_name)
            updated = manager.collections.reorder_characters(target.id, source - 1, destination - 1)
            if json_output:
                console.print_json(data=_collection_payload(updated))
            else:
                console.print(f"[green]Moved slot {source} to {destination} in {updated.name}.[/green]")


@collections.command("add-stage")
@click.argument("collection_name", metavar="COLLECTION")
@click.argument("stage_id")
@click.option("--remove", "remove_stage", is_flag=True, help="Remove the stage instead.")
@click.option("--json", "json_output", is_flag=True, help="Emit results as JSON.")
@click.pass_context
def collections_add_stage(
    ctx: click.Context, collection_name: str, stage_id: str, remove_stage: bool, json_output: bool
) -> None:
    """Add a stage to (or with --remove, drop it from) a collection."""
    with _command_errors(json_output):
        config = _load_config(ctx)
        with _open_manager(config) as manager:
            target = manager.collections.find(collection_name)
            if remove_stage:
                updated = manager.collections.remove_stage(target.id, stage_id)
            else:
                updated = manager.collections.add_stage(target.id, stage_id)
            if json_output:
                console.print_json(data=_collection_payload(updated))
            else:
                console.print(f"[green]{updated.name} now has {len(updated.stages)} stage(s).[/green]")


@collections.command("set-rules")
@click.argument("collection_name", metavar="COLLECTION")
@click.option("--rule", "rules", multiple=True, help="Rule as field:comparator:value; repeatable.")
@click.option("--any", "match_any", is_flag=True, help="Match items satisfying any rule.")
@click.option("--clear", is_flag=True, help="Turn the collection back into a curated one.")
@click.option("--characters/--no-characters", default=True, help="Consider characters.")
@click.option("--stages/--no-stages", default=True, help="Consider stages.")
@click.option("--json", "json_output", is_flag=True, help="Emit results as JSON.")
@click.pass_context
def collections_set_rules(
    ctx: click.Context,
    collection_name: str,
    rules: tuple[str, ...],
    match_any: bool,
    clear: bool,
    characters: bool,
    stages: bool,
    json_output: bool,
) -> None:
    """Store smart-collection rules on a collection."""
    with _command_errors(json_output):
        if clear and rules:
            raise click.ClickException("--clear cannot be combined with --rule.")
        config = _load_config(ctx)
        parsed = None if clear else [_parse_rule(rule) for rule in rules]
        with _open_manager(config) as manager:
            target = manager.collections.find(collection_name)
            updated = manager.collections.set_smart_rules(
                target.id,
                parsed,
                Combinator.ANY if match_any else Combinator.ALL,
                include_characters=characters,
                include_stages=stages,
            )
            if json_output:
                console.print_json(data=_collection_payload(updated))
            elif updated.is_smart:
                console.print(f"[green]{updated.name} now uses {len(parsed or [])} rule(s).[/green]")
            else:
                console.print(f"[green]{updated.name} is a curated collection again.[/green]")


@cli.group()
def config() -> None:
    """Manage rosterlab configuration files and overrides."""


@config.command("view")
@click.option("--no-env", is_flag=True, help="Ignore environment overrides when displaying output.")
def config_view(no_env: bool) -> None:
    """Display the effective configuration after applying precedence rules.

    Raises:
        click.ClickException: If configuration cannot be loaded.
    """
    manager = ConfigManager()
    try:
        manager.ensure_exists()
        loaded = manager.load(include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    yaml_text = yaml.safe_dump(loaded.model_dump(mode="python"), sort_keys=False)
    console.print(Syntax(yaml_text, "yaml", word_wrap=True))


@config.command("set")
@click.argument("key")
@click.option("--value", required=True, help="Value to assign to KEY.")
def config_set(key: str, value: str) -> None:
    """Persist a configuration value expressed as a dotted KEY.

    Raises:
        click.ClickException: If parsing, assignment, or validation fails.
    """
    manager = ConfigManager()
    manager.ensure_exists()

    before = manager.read_text().splitlines()
    segments = [segment.strip() for segment in key.split(".") if segment.strip()]
    if not segments:
        raise click.ClickException("KEY must specify a dotted path such as 'backups.keep'.")

    try:
        parsed_value = yaml.safe_load(value)
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Unable to parse value: {exc}") from exc

    file_data = manager.load_file_overrides()

    try:
        _assign_nested(file_data, segments, parsed_value)
        resolve_with_precedence(defaults=RosterLabConfig(), file_overrides=file_data)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    manager.save(file_data)
    after = manager.read_text().splitlines()

    diff = list(
        difflib.unified_diff(
            before,
            after,
            fromfile="config.yaml (before)",
            tofile="config.yaml (after)",
            lineterm="",
        )
    )
    # The header stamp always changes; only report real edits.
    if not any(
        line.startswith(("+", "-"))
        and not line.startswith(("+++", "---", "+# Last updated", "-# Last updated"))
        for line in diff
    ):
        console.print("[yellow]No changes applied; value already up to date.[/yellow]")
        return

    console.print(Syntax("\n".join(diff), "diff", word_wrap=False))
    console.print(f"[green]Updated {'.'.join(segments)}.[/green]")


def main() -> None:
    """Invoke the Click CLI as the console script entry point."""
    cli()


if __name__ == "__main__":
    main()
