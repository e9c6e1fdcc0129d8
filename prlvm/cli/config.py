from __future__ import annotations

import sys

import scriptconfig as scfg

from ..config import PrlVMConfig, dump_toml, save
from ._common import _BaseCommand, _cfg_path, _load_cfg, log


class ConfigInitCLI(_BaseCommand):
    """Write a config file with default settings."""

    force = scfg.Value(
        False, isflag=True, help='Overwrite an existing config file.'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        path = _cfg_path(args.config)
        if path.exists() and not args.force:
            print(f'Config already exists: {path}', file=sys.stderr)
            print('Use --force to overwrite it.', file=sys.stderr)
            return 2
        save(path, PrlVMConfig())
        log.info('Wrote default config to {}', path)
        print(f'Wrote config: {path}')
        return 0


class ConfigShowCLI(_BaseCommand):
    """Show the resolved config (defaults when no file exists)."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        path = _cfg_path(args.config)
        cfg = _load_cfg(args.config)
        print(f'# Config: {path}{"" if path.exists() else " (not found, defaults)"}')
        print(dump_toml(cfg), end='')
        return 0


class ConfigModalCLI(scfg.ModalCLI):
    """Config management subcommands."""

    init = ConfigInitCLI
    show = ConfigShowCLI
