from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, NoReturn, Optional

import typer
from rich.console import Console
from rich.table import Table

from tracker_engine.core.config.engine_config import ConfigError, EngineConfig, load_and_merge
from tracker_engine.core.errors import EngineError, QueryError, SnapshotLoadError
from tracker_engine.core.graph.mutations import add_dependency, apply_dependency_ops, edge_to_dict
from tracker_engine.core.io.dump_snapshot import dump_snapshot_yaml, to_jsonable
from tracker_engine.core.io.load_snapshot import load_ops, load_snapshot
from tracker_engine.core.model import Scope, Snapshot
from tracker_engine.core.report.integrity import integrity_report, is_clean
from tracker_engine.core.validate.validate_snapshot import parse_instant, summarize_snapshot, validate_snapshot
from tracker_engine.core.views.blocked import blocked_view, due_overdue
from tracker_engine.core.views.execution import calendar_view, execution_window
from tracker_engine.core.views.list_view import item_details, list_view
from tracker_engine.core.views.pipeline import require_scope

app = typer.Typer(add_completion=False, no_args_is_help=True)

FORMATS = ("text", "json")


@app.callback()
def _callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log engine decisions to stderr"),
) -> None:
    """Tracker dependency & schedule engine CLI."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")


@app.command("validate")
def validate(
    path: str = typer.Argument(..., help="Path to a snapshot file (.yaml/.yml/.json)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Validate a snapshot file's shape."""
    _check_format(format, "E_VALIDATE_UNKNOWN_FORMAT")
    snapshot = _load(path, format=format, command="validate")

    if format == "text":
        typer.echo(summarize_snapshot(snapshot))
        return
    _emit_json(
        "validate",
        {
            "item_count": len(snapshot.items),
            "dependency_count": len(snapshot.dependencies),
            "block_count": len(snapshot.scheduled_blocks),
        },
    )


@app.command("list")
def list_cmd(
    path: str = typer.Argument(..., help="Path to a snapshot file"),
    project: Optional[str] = typer.Option(None, "--project", help="Project scope id"),
    user: Optional[str] = typer.Option(None, "--user", help="User scope id (assignee)"),
    now: Optional[str] = typer.Option(None, "--now", help="Evaluate as of this instant (ISO-8601)"),
    include_archived: bool = typer.Option(False, "--include-archived"),
    include_completed: bool = typer.Option(True, "--include-completed/--open-only"),
    config_file: Optional[str] = typer.Option(None, "--config", help="Engine config overrides (YAML)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """List items with schedule, dependency and rollup annotations."""
    _check_format(format, "E_LIST_UNKNOWN_FORMAT")
    snapshot = _load(path)
    scope = _scope(project, user)
    rows = _run(
        lambda: list_view(
            snapshot,
            scope,
            now=_instant(now, "now"),
            include_archived=include_archived,
            include_completed=include_completed,
            config=_config(config_file),
        )
    )

    if format == "json":
        _emit_json("list", {"items": rows})

    table = Table(title=f"{scope.kind} {scope.id}")
    for col in ("Item", "Status", "Start", "End", "Slack", "Blocked", "Est/Act", "Deps"):
        table.add_column(col)
    for r in rows:
        deps = ", ".join(f"{e['item_id']}:{e['status']}" for e in r["blocked_by"])
        table.add_row(
            "  " * r["depth"] + f"{r['id']} {r['title']}",
            r["status"],
            _fmt_instant(r["schedule_start_at"]),
            _fmt_instant(r["schedule_end_at"]),
            "-" if r["slack_minutes"] is None else f"{r['slack_minutes']}m",
            "yes" if r["blocked"]["is_blocked"] else "no",
            f"{r['rollup_estimate_minutes']}/{r['rollup_actual_minutes']}",
            deps or "-",
        )
    Console().print(table)


@app.command("item")
def item_cmd(
    path: str = typer.Argument(..., help="Path to a snapshot file"),
    item_id: str = typer.Argument(..., help="Item id"),
    now: Optional[str] = typer.Option(None, "--now", help="Evaluate as of this instant (ISO-8601)"),
    config_file: Optional[str] = typer.Option(None, "--config"),
) -> None:
    """Show one item's details as JSON."""
    snapshot = _load(path)
    record = _run(lambda: item_details(snapshot, item_id, now=_instant(now, "now"), config=_config(config_file)))
    if record is None:
        _fail([QueryError(code="E_ITEM_NOT_FOUND", message=f"item not found: {item_id}", path="item_id")])
    _emit_json("item", {"item": record})


@app.command("window")
def window_cmd(
    path: str = typer.Argument(..., help="Path to a snapshot file"),
    start: str = typer.Option(..., "--start", help="Window start (ISO-8601)"),
    end: str = typer.Option(..., "--end", help="Window end (ISO-8601)"),
    project: Optional[str] = typer.Option(None, "--project"),
    user: Optional[str] = typer.Option(None, "--user"),
    limit: Optional[int] = typer.Option(None, "--limit", help="Max ready-but-unscheduled suggestions"),
    now: Optional[str] = typer.Option(None, "--now"),
    config_file: Optional[str] = typer.Option(None, "--config"),
) -> None:
    """Execution window: scheduled blocks plus ready, unscheduled work."""
    snapshot = _load(path)
    scope = _scope(project, user)
    result = _run(
        lambda: execution_window(
            snapshot,
            scope,
            _instant(start, "start"),
            _instant(end, "end"),
            limit=limit,
            now=_instant(now, "now"),
            config=_config(config_file),
        )
    )
    _emit_json("window", result)


@app.command("calendar")
def calendar_cmd(
    path: str = typer.Argument(..., help="Path to a snapshot file"),
    start: str = typer.Option(..., "--start"),
    end: str = typer.Option(..., "--end"),
    project: Optional[str] = typer.Option(None, "--project"),
    user: Optional[str] = typer.Option(None, "--user"),
    include_archived: bool = typer.Option(False, "--include-archived"),
) -> None:
    """Blocks and due dates inside a window."""
    snapshot = _load(path)
    scope = _scope(project, user)
    result = _run(
        lambda: calendar_view(
            snapshot,
            scope,
            _instant(start, "start"),
            _instant(end, "end"),
            include_archived=include_archived,
        )
    )
    _emit_json("calendar", result)


@app.command("blocked")
def blocked_cmd(
    path: str = typer.Argument(..., help="Path to a snapshot file"),
    project: Optional[str] = typer.Option(None, "--project"),
    user: Optional[str] = typer.Option(None, "--user"),
    now: Optional[str] = typer.Option(None, "--now"),
    config_file: Optional[str] = typer.Option(None, "--config"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Blocked items, by schedule violation, unmet predecessor, and open blockers."""
    _check_format(format, "E_BLOCKED_UNKNOWN_FORMAT")
    snapshot = _load(path)
    scope = _scope(project, user)
    result = _run(lambda: blocked_view(snapshot, scope, now=_instant(now, "now"), config=_config(config_file)))

    if format == "json":
        _emit_json("blocked", result)
    for row in result["blocked_by_dependencies"]:
        typer.echo(f"{row['item_id']}: violated {row['reason']} after {row['depends_on_id']}")
    for row in result["blocked_by_unmet_dependencies"]:
        typer.echo(f"{row['item_id']}: {row['unmet_dependency_count']} predecessor(s) not done")
    for row in result["blocked_by_blockers"]:
        typer.echo(f"{row['item_id']}: {row['reason']}")
    for row in result["scheduled_but_blocked"]:
        typer.echo(f"{row['item_id']}: block {row['block_id']} at {_fmt_instant(row['start_at'])} ({row['reason']})")
    if not any(result.values()):
        typer.echo("OK: nothing blocked")


@app.command("due")
def due_cmd(
    path: str = typer.Argument(..., help="Path to a snapshot file"),
    project: Optional[str] = typer.Option(None, "--project"),
    user: Optional[str] = typer.Option(None, "--user"),
    days: Optional[int] = typer.Option(None, "--days", help="Look-ahead for due soon"),
    now: Optional[str] = typer.Option(None, "--now"),
    config_file: Optional[str] = typer.Option(None, "--config"),
) -> None:
    """Overdue and due-soon items."""
    snapshot = _load(path)
    scope = _scope(project, user)
    result = _run(
        lambda: due_overdue(snapshot, scope, now=_instant(now, "now"), days=days, config=_config(config_file))
    )
    _emit_json("due", result)


@app.command("integrity")
def integrity(
    path: str = typer.Argument(..., help="Path to a snapshot file"),
    project: Optional[str] = typer.Option(None, "--project"),
    user: Optional[str] = typer.Option(None, "--user"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Report structural defects: orphans, bad durations, cycles, non-member assignees."""
    _check_format(format, "E_INTEGRITY_UNKNOWN_FORMAT")
    snapshot = _load(path)
    scope = _scope(project, user)
    report = integrity_report(snapshot, scope)
    clean = is_clean(report)

    if format == "json":
        _emit_json("integrity", report, ok=clean, exit_code=0 if clean else 2)

    table = Table(title=f"integrity {scope.kind} {scope.id}")
    table.add_column("Check")
    table.add_column("Count", justify="right")
    for name, count in report["counts"].items():
        table.add_row(name, str(count))
    Console().print(table)
    for cycle in report["dependency_cycles"]:
        typer.echo("dependency cycle: " + " -> ".join(cycle + cycle[:1]))
    for cycle in report["parent_cycles"]:
        typer.echo("parent cycle: " + " -> ".join(cycle + cycle[:1]))
    if not clean:
        raise typer.Exit(code=2)


@app.command("dep-add")
def dep_add(
    path: str = typer.Argument(..., help="Path to a snapshot file"),
    item_id: str = typer.Argument(..., help="Successor item id"),
    depends_on_id: str = typer.Argument(..., help="Predecessor item id"),
    type: str = typer.Option("FS", "--type", help="Dependency type: FS|SS|FF|SF"),
    lag: int = typer.Option(0, "--lag", help="Lag in minutes (may be negative)"),
    out: Optional[str] = typer.Option(None, "--out", help="Write the updated snapshot here"),
) -> None:
    """Add a dependency, rejecting self-loops and cycles."""
    snapshot = _load(path)
    updated, edge = _run(lambda: add_dependency(snapshot, item_id, depends_on_id, type=type, lag_minutes=lag))
    if out:
        dump_snapshot_yaml(updated, out)
        typer.echo(f"OK: added {edge.id} ({edge.type} {edge.lag_minutes:+d}m); wrote {out}")
        return
    typer.echo(f"OK: {edge.id} ({edge.type} {edge.lag_minutes:+d}m) can be added")


@app.command("apply-ops")
def apply_ops(
    path: str = typer.Argument(..., help="Path to a snapshot file"),
    ops_path: str = typer.Argument(..., help="YAML/JSON list of dependency ops"),
    out: Optional[str] = typer.Option(None, "--out", help="Write the resulting snapshot here"),
) -> None:
    """Apply a batch of dependency ops; each op succeeds or fails on its own."""
    snapshot = _load(path)
    try:
        ops = load_ops(ops_path)
    except SnapshotLoadError as e:
        _print_errors([e])
        raise typer.Exit(code=1)

    batch = apply_dependency_ops(snapshot, ops)
    if out:
        dump_snapshot_yaml(batch.snapshot, out)
    _emit_json(
        "apply-ops",
        {
            "results": [r.to_dict() for r in batch.results],
            "dependencies": [edge_to_dict(e) for e in batch.snapshot.dependencies],
        },
        ok=batch.ok,
        exit_code=0 if batch.ok else 2,
    )


def _load(path: str, *, format: str = "text", command: str = "") -> Snapshot:
    try:
        raw = load_snapshot(path)
    except SnapshotLoadError as e:
        if format == "json":
            _emit_json(command, None, ok=False, errors=[e], exit_code=1)
        _print_errors([e])
        raise typer.Exit(code=1)

    snapshot, errors = validate_snapshot(raw)
    if errors or snapshot is None:
        if format == "json":
            _emit_json(command, None, ok=False, errors=list(errors), exit_code=2)
        _fail(list(errors))
    return snapshot


def _scope(project: Optional[str], user: Optional[str]) -> Scope:
    if (project is None) == (user is None):
        _fail(
            [
                QueryError(
                    code="E_INVALID_SCOPE",
                    message="pass exactly one of --project or --user",
                    path="scope",
                )
            ]
        )
    if project is not None:
        return _run(lambda: require_scope("project", project))
    return _run(lambda: require_scope("user", user))


def _instant(value: Optional[str], option: str) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return parse_instant(value)
    except ValueError as e:
        _fail([QueryError(code="E_INVALID_INSTANT", message=str(e), path=option)])


def _config(config_file: Optional[str]) -> EngineConfig:
    try:
        return load_and_merge(config_file)
    except FileNotFoundError:
        _print_errors(
            [
                SnapshotLoadError(
                    code="E_CONFIG_FILE_NOT_FOUND",
                    message=f"config file not found: {config_file}",
                    path="config",
                )
            ]
        )
        raise typer.Exit(code=1)
    except ConfigError as e:
        _fail([QueryError(code="E_CONFIG_FILE_INVALID", message=str(e), path="config")])


def _run(fn: Any) -> Any:
    try:
        return fn()
    except EngineError as e:
        _fail([e])


def _check_format(format: str, code: str) -> None:
    if format not in FORMATS:
        _fail(
            [
                QueryError(
                    code=code,
                    message=f"unknown format: {format} (choose one of: {', '.join(FORMATS)})",
                    path="format",
                )
            ]
        )


def _emit_json(
    command: str,
    data: Any,
    *,
    ok: bool = True,
    errors: Optional[list[EngineError]] = None,
    exit_code: int = 0,
) -> NoReturn:
    errors = errors or []
    payload = {
        "tool": "tracker",
        "command": command,
        "ok": ok,
        "error_count": len(errors),
        "errors": [_to_item(e) for e in errors],
        "data": to_jsonable(data),
    }
    typer.echo(json.dumps(payload, indent=2, sort_keys=True))
    raise typer.Exit(code=exit_code)


def _to_item(e: EngineError) -> dict[str, Any]:
    source = "load" if isinstance(e, SnapshotLoadError) else "validate"
    return {
        "code": e.code,
        "message": e.message,
        "file": e.file,
        "path": e.path,
        "severity": "error",
        "source": source,
    }


def _fmt_instant(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value is not None else "-"


def _fail(errors: list[EngineError]) -> NoReturn:
    _print_errors(errors)
    raise typer.Exit(code=2)


def _print_errors(errors: list[EngineError]) -> None:
    errors_sorted = sorted(errors, key=lambda e: (e.file or "", e.path or "", e.code))
    for e in errors_sorted:
        typer.echo(str(e), err=True)


def main() -> None:
    app(prog_name="tracker")


cli = typer.main.get_command(app)

if __name__ == "__main__":
    main()
