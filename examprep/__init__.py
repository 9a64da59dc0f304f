"""
Core package for the exam practice assessment engine.

This module stays lightweight so the package can be imported without pulling
in the HTTP transport or the optional DSPy runtime.
"""

from importlib import metadata


def get_version() -> str:
    """Return the installed project version."""
    try:
        return metadata.version("examprep")
    except metadata.PackageNotFoundError:
        return "0.0.0"


__all__ = ["get_version"]
