"""Single-shot VM and snapshot tools: one prlctl call, one formatted report."""

from __future__ import annotations

from typing import Optional

from loguru import logger

from .batch import operation_args
from .errors import GatewayError, ValidationError
from .gateway import Executor, execute_prlctl
from .listing import is_valid_uuid, parse_snapshot_list, parse_vm_list
from .results import ToolResult
from .sanitize import sanitize_identifier
from .util import clip

log = logger

_POWER_VERBS = {
    'start': 'started',
    'stop': 'stopped',
    'suspend': 'suspended',
    'resume': 'resumed',
    'restart': 'restarted',
}


def _require(value: str, field: str) -> str:
    if not (value or '').strip():
        raise ValidationError(f'{field} is required')
    ident = sanitize_identifier(value)
    if not ident:
        raise ValidationError(f'{field} {value!r} has no usable characters')
    return ident


def _output_block(stdout: str) -> str:
    return f"\n\n**Output:**\n```\n{clip(stdout)}\n```"


def list_vms(*, execute: Optional[Executor] = None) -> ToolResult:
    _execute = execute or execute_prlctl
    try:
        res = _execute(['list', '--all'])
    except GatewayError as ex:
        return ToolResult.error(f'❌ **Error listing VMs**\n\n{ex}')
    vms = parse_vm_list(res.stdout)
    text = '## Virtual Machines\n\n'
    if not vms:
        return ToolResult.ok(text + 'No virtual machines found.\n')
    text += f'Found {len(vms)} virtual machine(s):\n\n'
    for idx, vm in enumerate(vms, start=1):
        text += f'### {idx}. {vm.name}\n'
        text += f'- **UUID**: {vm.id}\n'
        text += f'- **Status**: {vm.status}\n'
        if vm.ip_address:
            text += f'- **IP Address**: {vm.ip_address}\n'
        text += '\n'
    return ToolResult.ok(text)


def power_vm(
    operation: str,
    vm_id: str,
    *,
    force: bool = False,
    execute: Optional[Executor] = None,
) -> ToolResult:
    """Start, stop, suspend, resume, or restart a single VM."""
    _execute = execute or execute_prlctl
    if operation not in _POWER_VERBS:
        return ToolResult.error(f'❌ **Unknown operation**\n\n{operation!r}')
    try:
        vm = _require(vm_id, 'vm_id')
        res = _execute(operation_args(operation, vm, force=force))
    except (ValidationError, GatewayError) as ex:
        return ToolResult.error(
            f'❌ **Error running {operation}**\n\n'
            f"Failed to {operation} VM '{vm_id}': {ex}"
        )
    verb = _POWER_VERBS[operation]
    if operation == 'stop' and force:
        verb = 'forcefully stopped'
    return ToolResult.ok(
        f"✅ **Success**\n\nVM '{vm_id}' {verb} successfully."
        + _output_block(res.stdout)
    )


def start_vm(vm_id: str, *, execute: Optional[Executor] = None) -> ToolResult:
    return power_vm('start', vm_id, execute=execute)


def stop_vm(
    vm_id: str, *, force: bool = False, execute: Optional[Executor] = None
) -> ToolResult:
    return power_vm('stop', vm_id, force=force, execute=execute)


def suspend_vm(vm_id: str, *, execute: Optional[Executor] = None) -> ToolResult:
    return power_vm('suspend', vm_id, execute=execute)


def resume_vm(vm_id: str, *, execute: Optional[Executor] = None) -> ToolResult:
    return power_vm('resume', vm_id, execute=execute)


def restart_vm(vm_id: str, *, execute: Optional[Executor] = None) -> ToolResult:
    return power_vm('restart', vm_id, execute=execute)


def delete_vm(
    vm_id: str, *, confirm: bool = False, execute: Optional[Executor] = None
) -> ToolResult:
    if not confirm:
        return ToolResult.ok(
            '⚠️ **Confirmation Required**\n\n'
            f"To delete VM '{vm_id}', set confirm to true.\n\n"
            '**Warning**: This action is irreversible and will permanently '
            'delete the VM and all its data.'
        )
    _execute = execute or execute_prlctl
    try:
        vm = _require(vm_id, 'vm_id')
        res = _execute(['delete', vm])
    except (ValidationError, GatewayError) as ex:
        return ToolResult.error(
            f"❌ **Error deleting VM**\n\nFailed to delete VM '{vm_id}': {ex}"
        )
    log.info('Deleted VM {}', vm)
    return ToolResult.ok(
        f"✅ **Success**\n\nVM '{vm_id}' has been permanently deleted."
        + _output_block(res.stdout)
    )


def take_snapshot(
    vm_id: str,
    name: str,
    *,
    description: Optional[str] = None,
    execute: Optional[Executor] = None,
) -> ToolResult:
    _execute = execute or execute_prlctl
    try:
        vm = _require(vm_id, 'vm_id')
        if not name or len(name) > 100:
            raise ValidationError(
                'Snapshot name must be between 1 and 100 characters'
            )
        # Argument vector, not a shell: name and description pass through as-is.
        args = ['snapshot', vm, '--name', name]
        if description:
            args += ['--description', description]
        res = _execute(args)
    except (ValidationError, GatewayError) as ex:
        return ToolResult.error(
            '❌ **Error creating snapshot**\n\n'
            f"Failed to create snapshot for VM '{vm_id}': {ex}"
        )
    text = f"✅ **Success**\n\nSnapshot '{name}' created successfully for VM '{vm_id}'."
    if description:
        text += f'\n\n**Description**: {description}'
    return ToolResult.ok(text + _output_block(res.stdout))


def list_snapshots(
    vm_id: str, *, execute: Optional[Executor] = None
) -> ToolResult:
    _execute = execute or execute_prlctl
    try:
        vm = _require(vm_id, 'vm_id')
        res = _execute(['snapshot-list', vm])
    except (ValidationError, GatewayError) as ex:
        return ToolResult.error(
            '❌ **Error listing snapshots**\n\n'
            f"Failed to list snapshots for VM '{vm_id}': {ex}"
        )
    snapshots = parse_snapshot_list(res.stdout)
    text = f"## Snapshots for VM '{vm_id}'\n\n"
    if not snapshots:
        return ToolResult.ok(text + 'No snapshots found for this VM.\n')
    text += f'Found {len(snapshots)} snapshot(s):\n\n'
    for idx, snap in enumerate(snapshots, start=1):
        text += f'### {idx}. {snap.name}'
        if snap.current:
            text += ' ⭐ (Current)'
        text += '\n'
        text += f'- **ID**: {snap.id}\n'
        text += f'- **Date**: {snap.date}\n\n'
    return ToolResult.ok(text)


def restore_snapshot(
    vm_id: str, snapshot_id: str, *, execute: Optional[Executor] = None
) -> ToolResult:
    _execute = execute or execute_prlctl
    try:
        vm = _require(vm_id, 'vm_id')
        if is_valid_uuid(snapshot_id):
            snap = snapshot_id
        else:
            snap = _require(snapshot_id, 'snapshot_id')
        res = _execute(['snapshot-switch', vm, '--id', snap])
    except ValidationError as ex:
        return ToolResult.error(f'❌ **Error restoring snapshot**\n\n{ex}')
    except GatewayError as ex:
        msg = str(ex).lower()
        if 'snapshot' in msg and 'not found' in msg:
            return ToolResult.error(
                '❌ **Snapshot not found**\n\n'
                f"The specified snapshot '{snapshot_id}' was not found for VM "
                f"'{vm_id}'.\n\nUse `prlvm snapshot list {vm_id}` to see "
                'available snapshots for this VM.'
            )
        return ToolResult.error(
            '❌ **Error restoring snapshot**\n\n'
            f"Failed to restore snapshot for VM '{vm_id}': {ex}"
        )
    return ToolResult.ok(
        f"✅ **Success**\n\nVM '{vm_id}' has been restored to snapshot "
        f"'{snapshot_id}'.\n\n**Note**: The VM state has been reverted to the "
        'snapshot point. Any changes made after the snapshot was taken have '
        'been discarded.' + _output_block(res.stdout)
    )
