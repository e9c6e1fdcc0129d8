from __future__ import annotations

from pathlib import Path

import scriptconfig as scfg
from loguru import logger

from ..config import PrlVMConfig, default_config_path, load_or_default
from ..results import ToolResult

log = logger


class _BaseCommand(scfg.DataConfig):
    """Base options shared by all commands."""

    config = scfg.Value(
        None, help='Path to config TOML (default: per-user config dir).'
    )
    verbose = scfg.Value(
        0,
        short_alias=['v'],
        isflag='counter',
        help='Increase verbosity (-v, -vv).',
    )


def _cfg_path(p: str | None) -> Path:
    if p:
        return Path(p).expanduser().resolve()
    return default_config_path()


def _load_cfg(config_path: str | None) -> PrlVMConfig:
    path = _cfg_path(config_path)
    if config_path and not path.exists():
        raise FileNotFoundError(
            f'Config not found: {path}. Run: prlvm config init --config {path}'
        )
    cfg = load_or_default(path)
    log.debug('Loaded config from {} (exists={})', path, path.exists())
    return cfg


def _split_targets(value) -> list[str]:
    """Accept ``a,b,c`` or a list; drop blanks."""
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(',')
    else:
        items = [str(v) for v in value]
    return [item.strip() for item in items if item.strip()]


def _opt_int(value) -> int | None:
    if value is None or value == '':
        return None
    return int(value)


def _emit(result: ToolResult) -> int:
    print(result.text)
    return result.exit_code
