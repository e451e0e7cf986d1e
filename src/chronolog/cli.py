"""CLI for inspecting chronolog snapshot files."""

import importlib
import json
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from .constants import DEFAULT_LOG_LIMIT
from .errors import ChronologError
from .models import thaw
from .snapshots import read_snapshot, read_snapshot_data
from .store import EventStore
from .time_travel import TimeTraveler
from .timeutil import format_relative_time, from_ms, resolve_ms

console = Console()


def load_reducer(ref: str):
    """Import a reducer given as ``package.module:attribute``."""
    module_name, _, attr = ref.partition(":")
    if not module_name or not attr:
        raise click.BadParameter(f"Expected module:attribute, got '{ref}'")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise click.BadParameter(f"Cannot import {module_name}: {e}") from e
    try:
        return getattr(module, attr)
    except AttributeError as e:
        raise click.BadParameter(f"{module_name} has no attribute '{attr}'") from e


def _summarize_payload(payload: dict, width: int = 60) -> str:
    text = json.dumps(thaw(payload), default=str)
    return text if len(text) <= width else text[: width - 3] + "..."


@click.group()
@click.option(
    "--snapshot", "snapshot_path",
    envvar="CHRONOLOG_SNAPSHOT",
    type=click.Path(path_type=Path),
    required=True,
    help="Path to a snapshot JSON file",
)
@click.pass_context
def cli(ctx, snapshot_path):
    """chronolog - inspect and time-travel through event store snapshots."""
    ctx.ensure_object(dict)
    ctx.obj["snapshot_path"] = snapshot_path


def _load(ctx):
    try:
        return read_snapshot(ctx.obj["snapshot_path"])
    except ChronologError as e:
        console.print(f"[red]Error:[/red] {e}")
        ctx.exit(1)


@cli.command()
@click.option("--since", help="Only events at or after this time (ISO, relative, or named)")
@click.option("--type", "event_type", help="Only events of this type")
@click.option("-n", "--limit", default=DEFAULT_LOG_LIMIT, show_default=True, help="Most recent N events")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def log(ctx, since, event_type, limit, as_json):
    """Show the event log, marking the cursor."""
    snapshot = _load(ctx)
    rows = list(enumerate(snapshot.events))

    if since:
        try:
            since_ms = resolve_ms(since)
        except ValueError as e:
            console.print(f"[red]Error:[/red] {e}")
            ctx.exit(1)
        rows = [(i, e) for i, e in rows if e.timestamp >= since_ms]
    if event_type:
        rows = [(i, e) for i, e in rows if e.type == event_type]
    if limit:
        rows = rows[-limit:]

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for _, e in rows], indent=2))
        return

    if not rows:
        console.print("No events found.")
        return

    table = Table(title=f"{len(snapshot.events)} events, cursor at {snapshot.index}")
    table.add_column("#", justify="right")
    table.add_column("Time")
    table.add_column("ID", style="dim")
    table.add_column("Type", style="cyan")
    table.add_column("Payload")

    for position, event in rows:
        marker = "[bold green]>[/bold green] " if position == snapshot.index else ""
        style = "dim" if position > snapshot.index else None
        table.add_row(
            f"{marker}{position}",
            from_ms(event.timestamp).strftime("%Y-%m-%d %H:%M:%S"),
            event.id[:10],
            event.type,
            _summarize_payload(event.payload),
            style=style,
        )
    console.print(table)


@cli.command()
@click.pass_context
def stats(ctx):
    """Show counts and time span of a snapshot."""
    snapshot = _load(ctx)
    events = snapshot.events

    console.print(f"Events: [bold]{len(events)}[/bold]")
    console.print(f"Cursor: [bold]{snapshot.index}[/bold] ({snapshot.index + 1} active, {len(events) - snapshot.index - 1} undone)")
    console.print(f"Compacted: {'yes' if snapshot.seed_state is not None else 'no'}")
    if events:
        oldest = from_ms(events[0].timestamp)
        newest = from_ms(events[-1].timestamp)
        console.print(f"Oldest event: {oldest.isoformat()} ({format_relative_time(oldest)})")
        console.print(f"Newest event: {newest.isoformat()} ({format_relative_time(newest)})")
    captured = from_ms(snapshot.timestamp)
    console.print(f"Captured: {captured.isoformat()} ({format_relative_time(captured)})")

    counts: dict[str, int] = {}
    for event in events:
        counts[event.type] = counts.get(event.type, 0) + 1
    if counts:
        table = Table(title="Events by type")
        table.add_column("Type", style="cyan")
        table.add_column("Count", justify="right")
        for name, count in sorted(counts.items(), key=lambda kv: -kv[1]):
            table.add_row(name, str(count))
        console.print(table)


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output raw JSON only")
@click.pass_context
def state(ctx, as_json):
    """Show the state captured at the snapshot's cursor."""
    snapshot = _load(ctx)
    text = json.dumps(snapshot.state, indent=2, default=str)
    if as_json:
        click.echo(text)
        return
    console.print(f"[bold]State at index {snapshot.index}[/bold]")
    console.print(text)


@cli.command("replay-at")
@click.argument("when")
@click.option("--reducer", "reducer_spec", required=True, help="Reducer as module:attribute")
@click.option("--initial", "initial_json", default="{}", show_default=True, help="Initial state as JSON")
@click.option("--no-verify", is_flag=True, help="Skip checking the snapshot's recorded state")
@click.pass_context
def replay_at(ctx, when, reducer_spec, initial_json, no_verify):
    """Replay the snapshot with a reducer and show state at WHEN."""
    reducer = load_reducer(reducer_spec)
    try:
        initial = json.loads(initial_json)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"--initial is not valid JSON: {e}") from e

    try:
        data = read_snapshot_data(ctx.obj["snapshot_path"])
        # Malformed events are reported by restore; this only sizes the store
        events = data.get("events")
        size = len(events) if isinstance(events, list) else 0
        store = EventStore(initial, reducer, max_events=max(size, 2) + 1)
        store.restore(data, verify=not no_verify)
        traveler = TimeTraveler(store)
        position = traveler.position_at(when)
        result = traveler.state_at(when)
    except (ChronologError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        ctx.exit(1)

    console.print(f"[bold]State at {when}[/bold] (position {position} of {len(store) - 1})")
    console.print(json.dumps(result, indent=2, default=str))


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
