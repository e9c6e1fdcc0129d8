"""VM state probes built on `prlctl list --all` and a trivial `prlctl exec`."""

from __future__ import annotations

from typing import Optional

from loguru import logger

from ..errors import GatewayError, StepError
from ..gateway import Executor
from ..listing import VMRecord, find_vm, parse_vm_list

log = logger


def vm_record(execute: Executor, vm: str) -> Optional[VMRecord]:
    res = execute(['list', '--all'])
    return find_vm(parse_vm_list(res.stdout), vm)


def vm_exists(execute: Executor, vm: str) -> bool:
    try:
        return vm_record(execute, vm) is not None
    except GatewayError as ex:
        log.warning('Could not list VMs while checking {}: {}', vm, ex)
        return False


def is_vm_running(execute: Executor, vm: str) -> bool:
    try:
        rec = vm_record(execute, vm)
    except GatewayError as ex:
        log.warning('Could not list VMs while checking {}: {}', vm, ex)
        return False
    return rec is not None and rec.running


def check_vm_accessible(execute: Executor, vm: str) -> VMRecord:
    """Require the VM to be running and able to run a trivial command."""
    try:
        rec = vm_record(execute, vm)
    except GatewayError as ex:
        raise StepError(f'Cannot check VM status: {ex}') from ex
    if rec is None:
        raise StepError(f"VM '{vm}' could not be found")
    if not rec.running:
        raise StepError(f"VM '{vm}' is not running (status={rec.status})")
    try:
        execute(['exec', vm, 'echo "test"'])
    except GatewayError as ex:
        raise StepError(f'VM running but commands fail: {ex}') from ex
    return rec
