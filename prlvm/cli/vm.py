from __future__ import annotations

import scriptconfig as scfg

from .. import tools
from ..batch import BATCH_OPERATIONS, BatchParams, batch_operation
from ..workflows import (
    CreateVMParams,
    ManageSSHAuthParams,
    SetHostnameParams,
    create_vm,
    manage_ssh_auth,
    set_hostname,
)
from ._common import _BaseCommand, _emit, _load_cfg, _opt_int, _split_targets, log


class _VMCommand(_BaseCommand):
    vm = scfg.Value('', position=1, help='VM name or UUID (positional).')


class ListCLI(_BaseCommand):
    """List all VMs with status and IP address."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        return _emit(tools.list_vms(execute=cfg.executor()))


class _PowerCLI(_VMCommand):
    _operation = ''

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        force = cls._operation == 'stop' and bool(args.force)
        return _emit(
            tools.power_vm(
                cls._operation, args.vm, force=force, execute=cfg.executor()
            )
        )


class StartCLI(_PowerCLI):
    """Start a VM."""

    _operation = 'start'


class StopCLI(_PowerCLI):
    """Stop a VM (gracefully unless --force)."""

    _operation = 'stop'
    force = scfg.Value(False, isflag=True, help='Kill instead of shutting down.')


class SuspendCLI(_PowerCLI):
    """Suspend a running VM."""

    _operation = 'suspend'


class ResumeCLI(_PowerCLI):
    """Resume a suspended VM."""

    _operation = 'resume'


class RestartCLI(_PowerCLI):
    """Restart a VM."""

    _operation = 'restart'


class DeleteCLI(_VMCommand):
    """Permanently delete a VM and its data."""

    confirm = scfg.Value(
        False, isflag=True, help='Required; without it nothing is deleted.'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        return _emit(
            tools.delete_vm(
                args.vm, confirm=bool(args.confirm), execute=cfg.executor()
            )
        )


class CreateCLI(_BaseCommand):
    """Create or clone a VM, then optionally set its hostname and SSH user."""

    name = scfg.Value('', position=1, help='Name of the new VM (positional).')
    template = scfg.Value(None, help='Clone from this VM or template.')
    os = scfg.Value(
        None, help='OS type: ubuntu, debian, windows-11, macos, other.'
    )
    distribution = scfg.Value(None, help='prlctl distribution name.')
    memory = scfg.Value(None, help='Memory in MB (512-32768).')
    cpus = scfg.Value(None, help='CPU count (1-16).')
    disk_size = scfg.Value(None, help='Disk size in GB (8-2048).')
    set_hostname = scfg.Value(
        True, isflag=True, help='Set the guest hostname to the VM name.'
    )
    create_user = scfg.Value(
        False, isflag=True, help='Create a user matching the host user.'
    )
    enable_ssh_auth = scfg.Value(
        False, isflag=True, help='Install a host SSH public key for that user.'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        params = CreateVMParams(
            name=args.name,
            from_template=args.template or None,
            os=args.os or None,
            distribution=args.distribution or None,
            memory=_opt_int(args.memory),
            cpus=_opt_int(args.cpus),
            disk_size=_opt_int(args.disk_size),
            set_hostname=bool(args.set_hostname),
            create_user=bool(args.create_user),
            enable_ssh_auth=bool(args.enable_ssh_auth),
        )
        log.debug('Create params: {}', params)
        return _emit(
            create_vm(
                params,
                execute=cfg.executor(),
                settle_delay_s=cfg.workflow.settle_delay_s,
                key_paths=cfg.ssh.key_paths,
                admin_group=cfg.workflow.admin_group,
            )
        )


class HostnameCLI(_VMCommand):
    """Set the hostname inside a running VM."""

    hostname = scfg.Value('', help='New hostname (RFC 1123).')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        params = SetHostnameParams(vm_id=args.vm, hostname=args.hostname)
        return _emit(set_hostname(params, execute=cfg.executor()))


class SSHAuthCLI(_VMCommand):
    """Create a user if needed and install an SSH public key for it."""

    username = scfg.Value('', help='Guest username.')
    public_key_path = scfg.Value(
        None, help='Public key file (default: first of the configured key paths).'
    )
    sudo = scfg.Value(
        False, isflag=True, help='Grant passwordless sudo to the user.'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        params = ManageSSHAuthParams(
            vm_id=args.vm,
            username=args.username,
            public_key_path=args.public_key_path or None,
            enable_passwordless_sudo=bool(args.sudo),
        )
        return _emit(
            manage_ssh_auth(
                params,
                execute=cfg.executor(),
                key_paths=cfg.ssh.key_paths,
                admin_group=cfg.workflow.admin_group,
            )
        )


class BatchCLI(_BaseCommand):
    """Run one power operation on several VMs at once."""

    targets = scfg.Value('', help='Comma separated VM names or UUIDs.')
    operation = scfg.Value(
        '', help=f'One of: {", ".join(BATCH_OPERATIONS)}.'
    )
    force = scfg.Value(False, isflag=True, help='Kill on stop.')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        params = BatchParams(
            targets=_split_targets(args.targets),
            operation=str(args.operation or '').strip(),
            force=bool(args.force),
        )
        return _emit(
            batch_operation(
                params,
                execute=cfg.executor(),
                max_workers=cfg.batch.max_workers or None,
            )
        )
