"""Allow ``python -m leaf``."""

from leaf.main import cli

cli()
