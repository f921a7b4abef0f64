"""Use cases — package operations the CLI calls."""
