"""
CLI commands for installing, upgrading, removing and querying packages.

Thin wrappers over ``leaf.core.use_cases.packages``.
"""

from __future__ import annotations

import sys

import click

from leaf.core.errors import InvalidArguments, LeafError
from leaf.ui.cli.common import emit_json, fail, get_context, path_hint

_STATUS_STYLE = {
    "installed": ("✅", "green"),
    "upgraded": ("⬆️ ", "green"),
    "reinstalled": ("🔁", "green"),
    "already_installed": ("✓", "white"),
    "up_to_date": ("✓", "white"),
    "failed": ("❌", "red"),
}


def _print_outcome(outcome) -> None:
    icon, color = _STATUS_STYLE.get(outcome.status, ("•", "white"))
    if outcome.status == "failed":
        click.secho(f"{icon} {outcome.name}: {outcome.error}", fg=color)
    elif outcome.status in ("upgraded", "reinstalled") and outcome.from_version:
        click.secho(f"{icon} {outcome.name} {outcome.from_version} → {outcome.to_version}", fg=color)
    elif outcome.changed:
        click.secho(f"{icon} {outcome.name} {outcome.to_version}", fg=color)
    else:
        click.secho(f"{icon} {outcome.name} {outcome.to_version} is already up to date", fg=color)


# ── Install / upgrade / remove ──────────────────────────────────


@click.command()
@click.argument("name")
@click.option("--version", "version", default=None, help="Install this exact release tag.")
@click.option("--prerelease", is_flag=True, help="Install the newest prerelease.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def install(ctx: click.Context, name: str, version: str | None, prerelease: bool, as_json: bool) -> None:
    """Install a package."""
    from leaf.core.use_cases.packages import install_package

    try:
        lctx = get_context(ctx)
        outcome = install_package(lctx, name, version=version, allow_prerelease=prerelease)
    except LeafError as e:
        fail(e, as_json)

    if as_json:
        emit_json({"ok": True, **outcome.to_dict()})
        return

    _print_outcome(outcome)
    for link in outcome.links:
        click.echo(f"   → {link}")
    if outcome.changed and not ctx.obj.get("quiet"):
        path_hint(lctx.config.bin_dir)


@click.command()
@click.argument("names", nargs=-1)
@click.option("--all", "upgrade_every", is_flag=True, help="Upgrade every installed package.")
@click.option("--version", "version", default=None, help="Move to this exact release tag.")
@click.option("--prerelease", is_flag=True, help="Move to the newest prerelease.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def upgrade(
    ctx: click.Context,
    names: tuple[str, ...],
    upgrade_every: bool,
    version: str | None,
    prerelease: bool,
    as_json: bool,
) -> None:
    """Upgrade installed packages."""
    from leaf.core.use_cases.packages import upgrade_all, upgrade_package

    try:
        if upgrade_every and names:
            raise InvalidArguments("Give package names or --all, not both")
        if not upgrade_every and not names:
            raise InvalidArguments("Give at least one package name, or --all")
        if version and len(names) != 1:
            raise InvalidArguments("--version applies to a single package")

        lctx = get_context(ctx)
        if upgrade_every:
            outcomes = upgrade_all(lctx)
        else:
            outcomes = [
                upgrade_package(lctx, name, version=version, allow_prerelease=prerelease)
                for name in names
            ]
    except LeafError as e:
        fail(e, as_json)

    failed = any(o.status == "failed" for o in outcomes)

    if as_json:
        emit_json({"ok": not failed, "packages": [o.to_dict() for o in outcomes]})
    else:
        if not outcomes:
            click.echo("No packages installed")
        for outcome in outcomes:
            _print_outcome(outcome)

    if failed:
        sys.exit(1)


@click.command()
@click.argument("name")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def remove(ctx: click.Context, name: str, as_json: bool) -> None:
    """Remove an installed package."""
    from leaf.core.use_cases.packages import remove_package

    try:
        outcome = remove_package(get_context(ctx), name)
    except LeafError as e:
        fail(e, as_json)

    if as_json:
        emit_json({"ok": True, **outcome.to_dict()})
        return

    click.secho(f"🗑️  Removed {outcome.name} {outcome.version}", fg="green")
    if ctx.obj.get("verbose"):
        for path in outcome.removed:
            click.echo(f"   {path}")


# ── Queries ─────────────────────────────────────────────────────


@click.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_cmd(ctx: click.Context, as_json: bool) -> None:
    """List installed packages."""
    from leaf.core.use_cases.packages import list_installed

    try:
        records = list_installed(get_context(ctx))
    except LeafError as e:
        fail(e, as_json)

    if as_json:
        emit_json([r.model_dump(mode="json") for r in records])
        return

    if not records:
        click.echo("No packages installed")
        return

    click.secho("📦 Installed packages:", fg="cyan", bold=True)
    for record in records:
        names = ", ".join(link.rsplit("/", 1)[-1] for link in record.links)
        click.echo(f"   • {record.name} {record.version}  [{names}]")


@click.command()
@click.argument("term")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def search(ctx: click.Context, term: str, as_json: bool) -> None:
    """Search available packages."""
    from leaf.core.use_cases.packages import search_packages

    try:
        hits = search_packages(get_context(ctx), term)
    except LeafError as e:
        fail(e, as_json)

    if as_json:
        emit_json([h.to_dict() for h in hits])
        return

    if not hits:
        click.echo(f"No packages found matching '{term}'")
        return

    click.secho(f"Found {len(hits)} package(s):", fg="cyan", bold=True)
    for hit in hits:
        marker = click.style(" [INSTALLED]", fg="green") if hit.installed else ""
        click.echo(f"   • {hit.name}{marker} - {hit.descriptor.description} ({hit.descriptor.version})")
        if hit.descriptor.tags:
            click.echo(f"     Tags: {', '.join(sorted(hit.descriptor.tags))}")


@click.command()
@click.argument("name")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def info(ctx: click.Context, name: str, as_json: bool) -> None:
    """Show details for one package."""
    from leaf.core.use_cases.packages import package_info

    try:
        result = package_info(get_context(ctx), name)
    except LeafError as e:
        fail(e, as_json)

    if as_json:
        emit_json(result.to_dict())
        return

    descriptor = result.descriptor
    click.secho(f"\n📦 {result.name} {descriptor.version}", fg="cyan", bold=True)
    if descriptor.description:
        click.echo(f"   {descriptor.description}")
    if descriptor.tags:
        click.echo(f"   Tags: {', '.join(sorted(descriptor.tags))}")
    if descriptor.repo:
        click.echo(f"   Releases: {descriptor.repo}")
    platforms = ", ".join(sorted(descriptor.platforms))
    click.echo(f"   Platforms: {platforms}")
    if not result.available:
        click.secho(f"   ⚠️  Not available for {result.platform_id}", fg="yellow")
    if result.record:
        click.secho(f"   Installed: {result.record.version} ({result.record.installed_at})", fg="green")
    click.echo()
