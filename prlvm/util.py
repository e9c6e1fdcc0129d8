"""Shared helpers for path expansion and report text shaping."""

from __future__ import annotations

import os


def expand(path: str) -> str:
    return os.path.expandvars(os.path.expanduser(path))


def clip(text: str, *, max_lines: int = 60) -> str:
    lines = (text or '').strip().splitlines()
    if len(lines) <= max_lines:
        return '\n'.join(lines)
    keep: list[str] = list(lines[:max_lines])
    keep.append(f'... ({len(lines) - max_lines} more lines)')
    return '\n'.join(keep)


def bullet_list(items: list[str]) -> str:
    return ''.join(f'- {item}\n' for item in items)
