"""Project metadata read from the installed ``claim-workflows`` distribution."""

from __future__ import annotations

import importlib.metadata

__all__ = ("__version__", "__project__")

__version__ = importlib.metadata.version("claim-workflows")
"""Installed version of the project."""
__project__ = importlib.metadata.metadata("claim-workflows")["Name"]
"""Distribution name of the project."""
