"""
leaf — a sudo-free binary package manager.

Installs pre-built executables into a per-user directory tree and keeps
its own binary up to date.
"""

__version__ = "1.0.0"
