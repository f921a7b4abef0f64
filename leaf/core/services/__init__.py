"""Core services — registry, versions, cache, installer, self-update."""
