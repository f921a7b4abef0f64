"""
leaf — CLI entrypoint.

Usage:
    leaf --help
    leaf update
    leaf install ripgrep
    python -m leaf list
"""

from __future__ import annotations

import os
from pathlib import Path

import click

from leaf import __version__
from leaf.core.errors import LeafError
from leaf.core.observability.logging_config import resolve_level, setup_logging
from leaf.ui.cli.common import emit_json, fail, get_context


@click.group()
@click.version_option(version=__version__, prog_name="leaf")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to config.yml (default: <install dir>/config.yml).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """leaf — a user-space binary package manager."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path).expanduser() if config_path else None

    setup_logging(
        level=resolve_level(debug=debug, verbose=verbose, quiet=quiet),
        log_file=os.environ.get("LEAF_LOG_FILE"),
        log_file_level=os.environ.get("LEAF_LOG_FILE_LEVEL"),
    )


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def update(ctx: click.Context, as_json: bool) -> None:
    """Update package definitions from the registry."""
    from leaf.core.use_cases.packages import update_registry

    try:
        result = update_registry(get_context(ctx))
    except LeafError as e:
        fail(e, as_json)

    if as_json:
        emit_json({"ok": True, **result.to_dict()})
        return
    click.secho(f"✅ Package definitions updated ({result.package_count} packages)", fg="green")


@cli.command("self-update")
@click.option("--version", "version", default=None, help="Move to this exact release tag.")
@click.option("--prerelease", is_flag=True, help="Move to the newest prerelease.")
@click.option("--force", is_flag=True, help="Reinstall even if already up to date.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def self_update_cmd(
    ctx: click.Context,
    version: str | None,
    prerelease: bool,
    force: bool,
    as_json: bool,
) -> None:
    """Update leaf itself."""
    from leaf.core.use_cases.packages import self_update

    try:
        result = self_update(get_context(ctx), version=version, allow_prerelease=prerelease, force=force)
    except LeafError as e:
        fail(e, as_json)

    if as_json:
        emit_json({"ok": True, **result.to_dict()})
        return

    if result.already_current:
        click.secho(f"✓ leaf {result.from_version} is already up to date", fg="white")
        return

    click.secho(f"✅ leaf updated {result.from_version} → {result.to_version}", fg="green", bold=True)
    if result.previous:
        click.echo(f"   Previous binary kept at {result.previous}")
    if result.warning:
        click.secho(f"⚠️  {result.warning}", fg="yellow")


@cli.command()
@click.option("--confirmed", is_flag=True, help="Really remove everything.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def nuke(ctx: click.Context, confirmed: bool, as_json: bool) -> None:
    """Remove all packages and leaf itself (DESTRUCTIVE)."""
    from leaf.core.use_cases.packages import nuke as nuke_all

    try:
        result = nuke_all(get_context(ctx), confirmed=confirmed)
    except LeafError as e:
        fail(e, as_json)

    if as_json:
        emit_json({"ok": True, **result.to_dict()})
        return

    click.secho("🍃 leaf and all packages have been removed", fg="yellow", bold=True)
    for name in result.packages_removed:
        click.echo(f"   • {name}")


from leaf.ui.cli.cache import cache, history  # noqa: E402
from leaf.ui.cli.packages import info, install, list_cmd, remove, search, upgrade  # noqa: E402

cli.add_command(install)
cli.add_command(upgrade)
cli.add_command(remove)
cli.add_command(list_cmd)
cli.add_command(search)
cli.add_command(info)
cli.add_command(cache)
cli.add_command(history)


if __name__ == "__main__":
    cli()
