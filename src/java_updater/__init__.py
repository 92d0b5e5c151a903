"""java-updater package bootstrap.

Exposes the package version used by the CLI and the HTTP user agent.
"""
from __future__ import annotations

__all__ = ["__version__"]

# NOTE: The version is duplicated in ``pyproject.toml``.
__version__ = "0.1.0"
