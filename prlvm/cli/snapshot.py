from __future__ import annotations

import scriptconfig as scfg

from .. import tools
from ._common import _BaseCommand, _emit, _load_cfg


class SnapshotTakeCLI(_BaseCommand):
    """Take a snapshot of a VM."""

    vm = scfg.Value('', position=1, help='VM name or UUID (positional).')
    name = scfg.Value('', help='Snapshot name (1-100 characters).')
    description = scfg.Value(None, help='Optional snapshot description.')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        return _emit(
            tools.take_snapshot(
                args.vm,
                args.name,
                description=args.description or None,
                execute=cfg.executor(),
            )
        )


class SnapshotListCLI(_BaseCommand):
    """List the snapshots of a VM."""

    vm = scfg.Value('', position=1, help='VM name or UUID (positional).')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        return _emit(tools.list_snapshots(args.vm, execute=cfg.executor()))


class SnapshotRestoreCLI(_BaseCommand):
    """Switch a VM back to a snapshot."""

    vm = scfg.Value('', position=1, help='VM name or UUID (positional).')
    snapshot_id = scfg.Value('', help='Snapshot UUID.')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        return _emit(
            tools.restore_snapshot(args.vm, args.snapshot_id, execute=cfg.executor())
        )


class SnapshotModalCLI(scfg.ModalCLI):
    """VM snapshot subcommands."""

    take = SnapshotTakeCLI
    list = SnapshotListCLI
    restore = SnapshotRestoreCLI
