"""SSH access setup: ensure a user exists, enable sshd, install a key, optionally grant sudo."""

from __future__ import annotations

import re
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from ..config import DEFAULT_KEY_PATHS
from ..errors import GatewayError, StepError, ValidationError
from ..gateway import Executor
from ..host import locate_public_key
from ..results import ToolResult
from ..sanitize import sanitize_identifier
from ..steps import (
    FAILED,
    PARTIAL,
    SUCCESS,
    Workflow,
    recovery_block,
    render_step_lists,
    status_heading,
)
from .probe import check_vm_accessible

_USERNAME = re.compile(r'^[A-Za-z_][A-Za-z0-9_.-]{0,31}$')
_IPV4 = re.compile(r'\b(\d{1,3}(?:\.\d{1,3}){3})\b')

IP_PLACEHOLDER = 'VM_IP_ADDRESS'
KEY_INSTALL_STEP = 'SSH Key Installation'

SSH_SERVICE_COMMAND = ' && '.join(
    [
        'sudo ssh-keygen -A 2>/dev/null || true',
        '(sudo systemctl enable ssh 2>/dev/null || sudo systemctl enable sshd 2>/dev/null || true)',
        '(sudo systemctl start ssh 2>/dev/null || sudo systemctl start sshd 2>/dev/null || true)',
    ]
)
IP_COMMAND = (
    'ip -4 addr show | grep -oP "(?<=inet )[\\d.]+(?=/)" '
    '| grep -v "127.0.0.1" | head -1'
)


@dataclass
class ManageSSHAuthParams:
    vm_id: str
    username: str
    public_key_path: Optional[str] = None
    enable_passwordless_sudo: bool = False

    def validate(self) -> None:
        if not (self.vm_id or '').strip():
            raise ValidationError('vm_id is required')
        if not self.username:
            raise ValidationError('username is required')
        if not _USERNAME.match(self.username):
            raise ValidationError(
                f'Invalid username {self.username!r}: use letters, digits, '
                "'_', '.', '-' (max 32 chars, not starting with a digit or '-')"
            )


def user_exists_command(user: str) -> str:
    return f'id -u {shlex.quote(user)}'


def create_user_command(user: str, admin_group: str = 'sudo') -> str:
    q = shlex.quote(user)
    return (
        f'sudo useradd -m -s /bin/bash {q} && '
        f'sudo usermod -aG {shlex.quote(admin_group)} {q}'
    )


def install_key_command(user: str, key: str) -> str:
    q = shlex.quote(user)
    ssh_dir = shlex.quote(f'/home/{user}/.ssh')
    auth = shlex.quote(f'/home/{user}/.ssh/authorized_keys')
    return ' && '.join(
        [
            f'sudo mkdir -p {ssh_dir}',
            f'sudo chmod 700 {ssh_dir}',
            f'echo {shlex.quote(key)} | sudo tee -a {auth} > /dev/null',
            f'sudo chown -R {q}:{q} {ssh_dir}',
            f'sudo chmod 600 {auth}',
        ]
    )


def sudoers_command(user: str) -> str:
    # sudo skips sudoers.d files whose names contain a dot.
    fragment = shlex.quote(f'/etc/sudoers.d/{user.replace(".", "_")}')
    rule = shlex.quote(f'{user} ALL=(ALL) NOPASSWD:ALL')
    return (
        f'echo {rule} | sudo tee {fragment} > /dev/null && '
        f'sudo chmod 440 {fragment}'
    )


def parse_ipv4(output: str) -> str:
    for m in _IPV4.finditer(output or ''):
        ip = m.group(1)
        if not ip.startswith('127.'):
            return ip
    return ''


class SSHAuthWorkflow(Workflow):
    title = 'SSH Authentication Setup'

    def __init__(
        self,
        params: ManageSSHAuthParams,
        *,
        execute: Optional[Executor] = None,
        key_paths: Sequence[str] = DEFAULT_KEY_PATHS,
        admin_group: str = 'sudo',
    ):
        super().__init__(sanitize_identifier(params.vm_id), execute=execute)
        self.params = params
        self.key_paths = list(key_paths)
        self.admin_group = admin_group
        self.key_path: Optional[Path] = None
        self.user_exists = False
        self.vm_ip = ''

    def validate(self) -> None:
        self.params.validate()

    def _exec(self, command: str):
        return lambda: self.prlctl('exec', self.state.target_name, command)

    def _probe_user(self) -> bool:
        try:
            self.prlctl('exec', self.state.target_name, user_exists_command(self.params.username))
        except GatewayError:
            return False
        return True

    def _discover_ip(self) -> str:
        res = self.prlctl('exec', self.state.target_name, IP_COMMAND)
        ip = parse_ipv4(res.stdout)
        if not ip:
            raise StepError('No non-loopback IPv4 address reported by the VM')
        return ip

    def _manual(self, command: str) -> list[str]:
        vm = self.state.target_name
        return [f'prlctl exec {shlex.quote(vm)} {shlex.quote(command)}']

    def perform(self) -> None:
        vm = self.state.target_name
        user = self.params.username
        self.attempt(
            'VM Accessibility Check',
            lambda: check_vm_accessible(self.execute, vm),
            critical=True,
            recovery_commands=[f'prlctl start "{vm}"'],
        )
        self.state.currently_running = True
        _, found = self.attempt(
            'SSH Public Key Discovery',
            lambda: locate_public_key(self.params.public_key_path, self.key_paths),
            critical=True,
            retryable=False,
            recovery_commands=['ssh-keygen -t ed25519'],
        )
        self.key_path, key = found

        _, exists = self.attempt(
            'User Existence Check',
            self._probe_user,
            method='id',
            command=user_exists_command(user),
        )
        self.user_exists = bool(exists)
        if not self.user_exists:
            cmd = create_user_command(user, self.admin_group)
            self.attempt(
                'User Creation',
                self._exec(cmd),
                command=cmd,
                recovery_commands=self._manual(cmd),
            )

        self.attempt(
            'SSH Service Configuration',
            self._exec(SSH_SERVICE_COMMAND),
            command=SSH_SERVICE_COMMAND,
            recovery_commands=self._manual(SSH_SERVICE_COMMAND),
        )
        cmd = install_key_command(user, key)
        self.attempt(
            KEY_INSTALL_STEP,
            self._exec(cmd),
            command=cmd,
            recovery_commands=self._manual(cmd),
        )
        if self.params.enable_passwordless_sudo:
            cmd = sudoers_command(user)
            self.attempt(
                'Passwordless Sudo Configuration',
                self._exec(cmd),
                command=cmd,
                recovery_commands=self._manual(cmd),
            )
        _, ip = self.attempt(
            'IP Address Discovery',
            self._discover_ip,
            command=IP_COMMAND,
            recovery_commands=['prlctl list -f'],
        )
        self.vm_ip = ip or ''

    def classify(self) -> str:
        step = self.state.step(KEY_INSTALL_STEP)
        if step is None or not step.completed:
            return FAILED
        if self.state.failed_steps():
            return PARTIAL
        return SUCCESS

    def render(self, status: str) -> str:
        user = self.params.username
        vm = self.params.vm_id
        text = status_heading(status)
        if status == FAILED:
            text += f"SSH key could not be installed for user '{user}' on VM '{vm}'.\n\n"
        else:
            text += f"SSH authentication configured for user '{user}' on VM '{vm}'.\n\n"
        text += f'**Public key**: {self.key_path}\n'
        text += f'**User**: {user} ({"existing" if self.user_exists else "created"})\n'
        if self.params.enable_passwordless_sudo:
            text += f'**Passwordless sudo**: requested for {user}\n'
        text += '\n'
        text += render_step_lists(self.steps)
        text += recovery_block(self.steps)
        ip = self.vm_ip or IP_PLACEHOLDER
        text += '\n**To connect:**\n'
        text += f'```bash\nssh {user}@{ip}\n```\n'
        if not self.vm_ip:
            text += (
                f"\n**Note**: The IP address shows as '{IP_PLACEHOLDER}'; run "
                '`prlctl list -f` to get the actual IP.\n'
            )
        return text


def manage_ssh_auth(
    params: ManageSSHAuthParams,
    *,
    execute: Optional[Executor] = None,
    key_paths: Sequence[str] = DEFAULT_KEY_PATHS,
    admin_group: str = 'sudo',
) -> ToolResult:
    return SSHAuthWorkflow(
        params, execute=execute, key_paths=key_paths, admin_group=admin_group
    ).run()
