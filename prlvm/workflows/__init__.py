"""Step-tracked provisioning workflows: create, hostname, and SSH access."""

from __future__ import annotations

from .hostname import (
    HostnameWorkflow,
    SetHostnameParams,
    set_hostname,
    validate_hostname,
)
from .provision import CreateVMParams, ProvisionWorkflow, create_vm
from .ssh_auth import ManageSSHAuthParams, SSHAuthWorkflow, manage_ssh_auth

__all__ = [
    'CreateVMParams',
    'HostnameWorkflow',
    'ManageSSHAuthParams',
    'ProvisionWorkflow',
    'SSHAuthWorkflow',
    'SetHostnameParams',
    'create_vm',
    'manage_ssh_auth',
    'set_hostname',
    'validate_hostname',
]
