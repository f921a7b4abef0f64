"""
Shared helpers for the CLI command modules.
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Any, NoReturn

import click

from leaf.core.config.loader import load_config
from leaf.core.errors import LeafError
from leaf.core.use_cases.context import LeafContext


def get_context(ctx: click.Context) -> LeafContext:
    """The LeafContext for this invocation, built on first use.

    A context placed in ``ctx.obj["leaf"]`` beforehand is used as-is.
    """
    obj = ctx.ensure_object(dict)
    if obj.get("leaf") is None:
        config = load_config(obj.get("config_path"))
        config.ensure_dirs()
        obj["leaf"] = LeafContext(config=config)
    return obj["leaf"]


def fail(error: LeafError, as_json: bool = False) -> NoReturn:
    """Report ``error`` and exit 1."""
    if as_json:
        click.echo(json.dumps({"ok": False, "error": str(error), "kind": error.kind}, indent=2))
    else:
        click.secho(f"❌ {error}", fg="red", err=True)
    sys.exit(1)


def emit_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def path_hint(bin_dir: Path) -> None:
    """Tell the user when ``bin_dir`` is not on PATH."""
    entries = [Path(p).expanduser() for p in os.environ.get("PATH", "").split(os.pathsep) if p]
    target = bin_dir.expanduser()
    if any(_same_dir(entry, target) for entry in entries):
        return
    click.secho(f"⚠️  {bin_dir} is not on your PATH. Add it to your shell profile:", fg="yellow")
    click.echo(f'   export PATH="{bin_dir}:$PATH"')


def _same_dir(a: Path, b: Path) -> bool:
    try:
        return a.resolve() == b.resolve()
    except OSError:
        return a == b
