"""
CLI commands for the download cache and the audit history.
"""

from __future__ import annotations

import click

from leaf.core.errors import LeafError
from leaf.ui.cli.common import emit_json, fail, get_context


@click.group()
def cache() -> None:
    """Download cache — list, clear."""


@cache.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def cache_list(ctx: click.Context, as_json: bool) -> None:
    """List cached archives."""
    from leaf.core.services.cache import format_size

    try:
        entries = get_context(ctx).cache.entries()
    except LeafError as e:
        fail(e, as_json)

    if as_json:
        emit_json([{"file": p.name, "path": str(p), "size": p.stat().st_size} for p in entries])
        return

    if not entries:
        click.echo("Cache is empty")
        return

    total = 0
    for path in entries:
        size = path.stat().st_size
        total += size
        click.echo(f"   {path.name}  ({format_size(size)})")
    click.secho(f"{len(entries)} file(s), {format_size(total)}", fg="cyan")


@cache.command("clear")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def cache_clear(ctx: click.Context, as_json: bool) -> None:
    """Delete every cached archive."""
    try:
        removed = get_context(ctx).cache.clear()
    except LeafError as e:
        fail(e, as_json)
    except OSError as e:
        fail(LeafError(f"Cannot clear cache: {e}"), as_json)

    if as_json:
        emit_json({"ok": True, "removed": removed})
        return
    click.secho(f"🧹 Removed {removed} cached file(s)", fg="green")


@click.command()
@click.option("-n", "--limit", default=20, show_default=True, help="Number of entries to show.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def history(ctx: click.Context, limit: int, as_json: bool) -> None:
    """Show recent operations."""
    try:
        entries = get_context(ctx).audit.read_recent(limit)
    except LeafError as e:
        fail(e, as_json)

    if as_json:
        emit_json([e.model_dump(mode="json") for e in entries])
        return

    if not entries:
        click.echo("No history yet")
        return

    colors = {"ok": "green", "skipped": "white", "failed": "red"}
    for entry in entries:
        versions = ""
        if entry.from_version or entry.to_version:
            versions = f" {entry.from_version or '-'} → {entry.to_version or '-'}"
        click.echo(f"   {entry.timestamp[:19]}  {entry.operation:<11} {entry.target}{versions}  ", nl=False)
        click.secho(entry.status, fg=colors.get(entry.status, "white"))
        if entry.error:
            click.echo(f"      {entry.error}")
