"""CLI package exports for top-level command entry points."""

from __future__ import annotations

from .main import PrlVMModalCLI, main

__all__ = ['PrlVMModalCLI', 'main']
