"""Parallels Desktop VM lifecycle, provisioning, and batch-control tools."""

__version__ = '0.1.0'
