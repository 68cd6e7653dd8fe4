"""mixdb CLI: inspect and edit a hierarchy snapshot from the command line."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click
from pydantic import ValidationError as SnapshotError

from mixdb.engine.core import ROOT_UID, HierarchyStore, Record, ValidationError
from mixdb.engine.persistence import load_store, save_store
from mixdb.models import HierarchyStats, ValidationResult

DEFAULT_FILE = "mixdb.json"

logger = logging.getLogger("mixdb.cli")


def _split_fields(value: str | None) -> tuple[str, ...] | None:
    if value is None:
        return None
    return tuple(f.strip() for f in value.split(",") if f.strip())


def _load(ctx: click.Context) -> HierarchyStore:
    path = ctx.obj["file"]
    if not Path(path).exists():
        raise click.ClickException(f"No snapshot at {path}; run 'mixdb init' first")
    try:
        store = load_store(path)
    except (SnapshotError, ValidationError, json.JSONDecodeError) as e:
        raise click.ClickException(f"Invalid snapshot {path}: {e}") from e
    if ctx.obj["disambiguate_by"] is not None:
        store.disambiguate_by = ctx.obj["disambiguate_by"]
    return store


def _save(ctx: click.Context, store: HierarchyStore) -> None:
    save_store(store, ctx.obj["file"])


def _require(store: HierarchyStore, uid: str) -> Record:
    record = store.resolve(uid)
    if record is None:
        raise click.ClickException(f"No record with uid {uid!r}")
    return record


def _parse_props(props: str | None) -> dict:
    if not props:
        return {}
    try:
        data = json.loads(props)
    except json.JSONDecodeError as e:
        raise click.ClickException(f"--props is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise click.ClickException("--props must be a JSON object")
    return data


def _describe(record: Record) -> str:
    line = f"{record.uid}  name={record.name}"
    if record.fields:
        line += f"  fields={json.dumps(record.fields, sort_keys=True, default=str)}"
    return line


@click.group()
@click.option(
    "--file",
    "file_",
    default=DEFAULT_FILE,
    envvar="MIXDB_FILE",
    show_default=True,
    help="Path to the snapshot file.",
)
@click.option(
    "--disambiguate-by",
    default=None,
    envvar="MIXDB_DISAMBIGUATE_BY",
    help="Comma-separated payload fields used to disambiguate uids.",
)
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr.")
@click.pass_context
def cli(ctx: click.Context, file_: str, disambiguate_by: str | None, verbose: bool) -> None:
    """mixdb CLI: manage a record hierarchy stored as a JSON snapshot."""
    # Logging goes to stderr; stdout carries command output
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["file"] = file_
    ctx.obj["disambiguate_by"] = _split_fields(disambiguate_by)


@cli.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Create an empty snapshot file."""
    path = ctx.obj["file"]
    if Path(path).exists():
        click.echo(f"Snapshot already exists at {path}")
        return
    fields = ctx.obj["disambiguate_by"]
    store = HierarchyStore() if fields is None else HierarchyStore(disambiguate_by=fields)
    _save(ctx, store)
    click.echo(f"Initialized empty hierarchy at {path}")


@cli.command()
@click.argument("name")
@click.option("--parent", default=None, help="uid of the parent (default: root).")
@click.option("--uid", default=None, help="Requested uid (replaced if taken).")
@click.option("--type", "record_type", default=None, help="Record type.")
@click.option("--props", default=None, help="JSON payload fields.")
@click.pass_context
def add(
    ctx: click.Context,
    name: str,
    parent: str | None,
    uid: str | None,
    record_type: str | None,
    props: str | None,
) -> None:
    """Add a record."""
    store = _load(ctx)
    if parent is not None:
        _require(store, parent)
    data: dict = _parse_props(props)
    if record_type is not None:
        data["type"] = record_type
    data["name"] = name
    if uid is not None:
        data["uid"] = uid
    try:
        record = store.add(data, parent=parent)
    except ValidationError as e:
        raise click.ClickException(str(e)) from e
    _save(ctx, store)
    click.echo(f"Record: {record.uid} (name={record.name})")


@cli.command()
@click.argument("uids", nargs=-1, required=True)
@click.option("--promote", is_flag=True, help="Re-link children under the removed record's parents.")
@click.pass_context
def remove(ctx: click.Context, uids: tuple[str, ...], promote: bool) -> None:
    """Remove records (and, without --promote, their descendants)."""
    store = _load(ctx)
    count = store.remove(list(uids), promote_orphans=promote)
    _save(ctx, store)
    click.echo(f"Removed {count} record(s)")


@cli.command()
@click.argument("child")
@click.argument("parent")
@click.option("--clear", is_flag=True, help="Drop the child's existing parents first.")
@click.pass_context
def link(ctx: click.Context, child: str, parent: str, clear: bool) -> None:
    """Link CHILD under PARENT."""
    store = _load(ctx)
    _require(store, child)
    _require(store, parent)
    store.add_parent(child, parent, clear_existing=clear)
    _save(ctx, store)
    click.echo(f"Linked {child} under {parent}")


@cli.command()
@click.argument("child")
@click.argument("parent")
@click.pass_context
def unlink(ctx: click.Context, child: str, parent: str) -> None:
    """Remove the link between CHILD and PARENT."""
    store = _load(ctx)
    store.remove_parent(child, parent)
    _save(ctx, store)
    click.echo(f"Unlinked {child} from {parent}")


@cli.command()
@click.argument("uid")
@click.pass_context
def show(ctx: click.Context, uid: str) -> None:
    """Show one record as JSON."""
    store = _load(ctx)
    record = _require(store, uid)
    click.echo(json.dumps(record.to_dict(), indent=2, default=str))


@cli.command()
@click.argument("uid")
@click.pass_context
def children(ctx: click.Context, uid: str) -> None:
    """List the children of a record."""
    store = _load(ctx)
    _require(store, uid)
    for record in store.children_of(uid):
        click.echo(_describe(record))


@cli.command()
@click.argument("uid")
@click.pass_context
def parents(ctx: click.Context, uid: str) -> None:
    """List the parents of a record."""
    store = _load(ctx)
    _require(store, uid)
    for record in store.parents_of(uid):
        click.echo(_describe(record))


@cli.command()
@click.argument("uid", default=ROOT_UID)
@click.pass_context
def tree(ctx: click.Context, uid: str) -> None:
    """Print the hierarchy below UID (default: root)."""
    store = _load(ctx)
    start = _require(store, uid)

    def _print(record: Record, depth: int, path: frozenset[str]) -> None:
        marker = "  (cycle)" if record.uid in path else ""
        click.echo(f"{'  ' * depth}{record.uid}  [{record.name}]{marker}")
        if marker:
            return
        for child in store.children_of(record):
            _print(child, depth + 1, path | {record.uid})

    _print(start, 0, frozenset())


@cli.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Show hierarchy statistics."""
    store = _load(ctx)
    s = HierarchyStats(**store.stats())
    click.echo(f"Records: {s.num_records}  Links: {s.num_links}")
    click.echo(f"Top level: {s.num_top_level}")
    click.echo(f"Multi-parent: {s.num_multi_parent}")
    click.echo(f"Parentless: {s.num_parentless}")


@cli.command()
@click.pass_context
def validate(ctx: click.Context) -> None:
    """Check relationship integrity of the hierarchy."""
    store = _load(ctx)
    result = ValidationResult(**store.validate())
    if result.valid:
        click.echo("Hierarchy is valid.")
        return
    click.echo("Validation errors:")
    for err in result.errors:
        click.echo(f"  ERROR: {err}")
    ctx.exit(1)


if __name__ == "__main__":
    cli()
