"""Handoff package metadata.

Exports the package version resolved from the installed distribution.

Example:
    >>> from handoff import __version__
    >>> isinstance(__version__, str)
    True
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

__all__ = ["__version__"]

try:
    __version__ = version("handoff")
except PackageNotFoundError:
    __version__ = "0.0.0"
