"""CLI package exports for top-level command entry points."""

from __future__ import annotations

from .main import PVEDeployModalCLI, main

__all__ = ['PVEDeployModalCLI', 'main']
