"""Top-level modal CLI wiring, argv normalization, and logging setup."""

from __future__ import annotations

import os
import sys

import scriptconfig as scfg
from loguru import logger

from ._common import _load_cfg, log
from .config import ConfigModalCLI
from .snapshot import SnapshotModalCLI
from .vm import (
    BatchCLI,
    CreateCLI,
    DeleteCLI,
    HostnameCLI,
    ListCLI,
    RestartCLI,
    ResumeCLI,
    SSHAuthCLI,
    StartCLI,
    StopCLI,
    SuspendCLI,
)


class PrlVMModalCLI(scfg.ModalCLI):
    """Parallels Desktop VM lifecycle manager built on prlctl."""

    list = ListCLI
    start = StartCLI
    stop = StopCLI
    suspend = SuspendCLI
    resume = ResumeCLI
    restart = RestartCLI
    delete = DeleteCLI
    create = CreateCLI
    hostname = HostnameCLI
    ssh_auth = SSHAuthCLI
    batch = BatchCLI
    snapshot = SnapshotModalCLI
    config = ConfigModalCLI


def main(argv: list[str] | None = None) -> None:
    verbosity = 1
    config_value = None
    if argv is None:
        argv = sys.argv[1:]
    argv = _normalize_argv(argv)
    if '--config' in argv:
        try:
            config_value = argv[argv.index('--config') + 1]
        except IndexError:
            pass
    try:
        verbosity = _load_cfg(config_value).verbosity
    except Exception:
        verbosity = 1

    _setup_logging(_count_verbose(argv), verbosity)

    try:
        rc = PrlVMModalCLI.main(argv=argv, _noexit=True)
    except Exception as ex:
        print(f'ERROR: {ex}', file=sys.stderr)
        log.error('Unhandled prlvm error: {}', ex)
        sys.exit(2)

    if any(flag in argv for flag in ('-h', '--help')):
        sys.exit(0)
    if isinstance(rc, int):
        sys.exit(rc)
    sys.exit(0)


def _setup_logging(args_verbose: int, cfg_verbosity: int) -> None:
    logger.remove()
    effective_verbosity = args_verbose if args_verbose > 0 else cfg_verbosity
    level = 'WARNING'
    if effective_verbosity == 1:
        level = 'INFO'
    elif effective_verbosity >= 2:
        level = 'DEBUG'
    colorize = sys.stderr.isatty() and os.getenv('NO_COLOR') is None
    logger.add(
        sys.stderr,
        level=level,
        colorize=colorize,
        format='<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>',
    )
    log.debug(
        'Logging configured at {} (effective_verbosity={}, colorize={})',
        level,
        effective_verbosity,
        colorize,
    )


def _normalize_argv(argv: list[str]) -> list[str]:
    """Normalize accepted hyphenated spellings to scriptconfig command names."""
    if len(argv) >= 1 and argv[0] == 'ls':
        return ['list', *argv[1:]]
    if len(argv) >= 1 and argv[0] in {'ssh-auth', 'set-hostname'}:
        name = 'ssh_auth' if argv[0] == 'ssh-auth' else 'hostname'
        return [name, *argv[1:]]
    if len(argv) >= 2 and argv[0] == 'snapshot' and argv[1] in {'ls', 'switch'}:
        sub = 'list' if argv[1] == 'ls' else 'restore'
        return [argv[0], sub, *argv[2:]]
    return argv


def _count_verbose(argv: list[str]) -> int:
    count = 0
    for item in argv:
        if item == '--verbose':
            count += 1
        elif item.startswith('-') and not item.startswith('--'):
            short = item[1:]
            if short and set(short) <= {'v'}:
                count += len(short)
    return count
