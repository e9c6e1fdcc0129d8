"""Hostname configuration: four independent methods followed by a verification probe."""

from __future__ import annotations

import re
import shlex
from dataclasses import dataclass
from typing import Optional

from ..errors import ValidationError
from ..gateway import Executor
from ..results import ToolResult
from ..sanitize import sanitize_hostname, sanitize_identifier
from ..steps import FAILED, PARTIAL, SUCCESS, Workflow, WorkflowAborted, status_heading
from ..util import bullet_list
from .probe import check_vm_accessible

_HOSTNAME = re.compile(
    r'^[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?'
    r'(\.[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$'
)

# Methods whose success means the name persists across a reboot.
PERSISTENT_METHODS = ('hostnamectl', '/etc/hostname')

VERIFY_COMMAND = ' && '.join(
    [
        'echo "=== Hostname Verification ==="',
        'echo "Current hostname: $(hostname)"',
        'echo "FQDN: $(hostname -f 2>/dev/null || hostname)"',
        'echo "/etc/hostname contains: $(cat /etc/hostname 2>/dev/null || echo "file not found")"',
        'echo "Hosts file entries:"',
        'grep -E "127\\.0\\.1\\.1|127\\.0\\.0\\.1" /etc/hosts 2>/dev/null || echo "no localhost entries found"',
    ]
)


def validate_hostname(hostname: str) -> str:
    """Check RFC 1123 rules; return the hostname unchanged when valid."""
    if not hostname:
        raise ValidationError('Hostname cannot be empty')
    if len(hostname) > 253:
        raise ValidationError('Hostname cannot exceed 253 characters')
    if not _HOSTNAME.match(hostname):
        raise ValidationError(
            'Hostname must follow RFC 1123 format (letters, numbers, hyphens '
            'only; segments max 63 chars)'
        )
    for label in hostname.split('.'):
        if '--' in label:
            raise ValidationError(
                'Hostname segments cannot contain consecutive hyphens'
            )
    return hostname


def hostname_for_vm(name: str) -> str:
    """Derive a single-label RFC 1123 hostname from a VM name.

    Runs of characters outside ``[A-Za-z0-9-]`` (``_``, ``{``, ``}``, ...)
    become one hyphen. Returns an empty string when nothing usable is left.

    Example:
        >>> hostname_for_vm('web_01')
        'web-01'
        >>> hostname_for_vm('{db}__primary')
        'db-primary'
        >>> hostname_for_vm('{}')
        ''
    """
    label = re.sub(r'[^A-Za-z0-9-]+', '-', name)
    label = re.sub(r'-{2,}', '-', label).strip('-')
    return label[:63].rstrip('-')


@dataclass
class SetHostnameParams:
    vm_id: str
    hostname: str

    def validate(self) -> None:
        if not (self.vm_id or '').strip():
            raise ValidationError('vm_id is required')
        validate_hostname(self.hostname)


def parse_current_hostname(output: str) -> str:
    for line in (output or '').splitlines():
        if 'Current hostname:' in line:
            return line.split(': ', 1)[1].strip() if ': ' in line else ''
    return ''


class HostnameWorkflow(Workflow):
    title = 'Hostname Configuration'

    def __init__(self, params: SetHostnameParams, *, execute: Optional[Executor] = None):
        super().__init__(sanitize_identifier(params.vm_id), execute=execute)
        self.params = params
        self.hostname = sanitize_hostname(params.hostname)
        self.current_hostname = ''
        self.verification_output = ''

    def validate(self) -> None:
        self.params.validate()

    def _remote(self, name: str, method: str, command: str) -> None:
        vm = self.state.target_name
        self.attempt(
            name,
            lambda: self.prlctl('exec', vm, command),
            method=method,
            command=command,
            recovery_commands=[f'prlctl exec {shlex.quote(vm)} {shlex.quote(command)}'],
        )

    def perform(self) -> None:
        vm = self.state.target_name
        quoted = shlex.quote(self.hostname)
        self.attempt(
            'VM Status Check',
            lambda: check_vm_accessible(self.execute, vm),
            critical=True,
            recovery_commands=[f'prlctl start "{vm}"'],
        )
        self.state.currently_running = True
        self._remote(
            'Hostnamectl Configuration',
            'hostnamectl',
            f'hostnamectl set-hostname {quoted}',
        )
        self._remote(
            '/etc/hostname Configuration',
            '/etc/hostname',
            f'echo {quoted} | sudo tee /etc/hostname > /dev/null',
        )
        self._remote(
            'Runtime Hostname Configuration',
            'hostname command',
            f'sudo hostname {quoted}',
        )
        self._remote(
            '/etc/hosts Configuration',
            '/etc/hosts',
            "sudo sed -i '/127\\.0\\.1\\.1/d' /etc/hosts 2>/dev/null || true && "
            f'echo "127.0.1.1 "{quoted} | sudo tee -a /etc/hosts > /dev/null',
        )
        step, res = self.attempt(
            'Hostname Verification',
            lambda: self.prlctl('exec', vm, VERIFY_COMMAND),
            method='verification',
            command=VERIFY_COMMAND,
        )
        if step.completed:
            self.verification_output = res.stdout
            self.current_hostname = parse_current_hostname(res.stdout)
        else:
            self.verification_output = 'Verification failed'

    @property
    def verified(self) -> bool:
        return bool(self.current_hostname) and self.current_hostname == self.hostname

    def classify(self) -> str:
        if self.verified:
            return SUCCESS
        if any(
            s.completed and s.method in PERSISTENT_METHODS for s in self.steps
        ):
            return PARTIAL
        return FAILED

    def render(self, status: str) -> str:
        vm = self.params.vm_id
        methods = self.steps[1:]
        done = [s for s in methods if s.completed]
        failed = [s for s in methods if not s.completed]
        text = status_heading(status)
        text += f"Hostname configuration completed for VM '{vm}'.\n\n"
        text += f'**Target hostname**: {self.hostname}\n'
        text += f'**Current hostname**: {self.current_hostname or "Unable to determine"}\n\n'
        text += f'**Configuration Summary:** {len(done)}/{len(methods)} methods completed\n\n'
        if done:
            text += '**✅ Successful Methods:**\n'
            text += bullet_list([s.label() for s in done]) + '\n'
        if failed:
            text += '**❌ Failed Methods:**\n'
            text += bullet_list(
                [f'{s.name}: {s.error}' if s.error else s.name for s in failed]
            )
            text += '\n'
        if self.verification_output:
            text += '**Verification Results:**\n```\n'
            text += self.verification_output.rstrip('\n')
            text += '\n```\n\n'
        if status == PARTIAL:
            text += (
                '**Note**: Hostname configuration partially succeeded. Some '
                'methods failed but core configuration was applied. The '
                'hostname should be properly set after a reboot.\n\n'
            )
        elif status == FAILED:
            text += (
                '**Warning**: Critical hostname configuration methods failed. '
                'Manual intervention may be required.\n\n'
            )
        text += '**📝 Recommendations:**\n'
        text += '- Restart the VM to ensure all services pick up the new hostname\n'
        text += '- Verify hostname persistence after reboot\n'
        if '.' in self.hostname:
            text += '- For FQDN hostnames, ensure DNS is properly configured\n'
        if failed:
            text += '\n**🛠️ Manual Recovery:**\n'
            text += _manual_commands(vm, self.hostname)
        text += '\n**📋 VM Management:**\n'
        text += f'- Check hostname: `prlctl exec "{vm}" "hostname"`\n'
        text += f'- VM Console: `prlctl enter "{vm}"`\n'
        text += f'- Restart VM: `prlctl restart "{vm}"`\n'
        return text

    def render_aborted(self, ex: WorkflowAborted) -> str:
        vm = self.params.vm_id
        text = '❌ **Hostname Configuration Failed**\n\n'
        text += f'VM: {vm}\n'
        text += f'Target Hostname: {self.hostname}\n'
        text += f'Error: {ex}\n\n'
        if ex.step is not None:
            text += '**❌ Failed Step:**\n'
            text += f'- {ex.step.label()}: {ex.step.error}\n\n'
        text += '**🛠️ Recovery Options:**\n'
        if 'not running' in str(ex) or 'could not be found' in str(ex):
            text += '1. **Start VM and retry:**\n'
            text += f'   `prlctl start "{vm}"`\n'
            text += '   Wait for VM to fully boot, then retry hostname configuration\n\n'
        text += '2. **Manual hostname configuration:**\n'
        text += f'   `prlctl enter "{vm}"`\n'
        text += '   Then inside the VM:\n'
        text += _manual_commands(vm, self.hostname, indent='   ')
        text += '\n**🔍 Troubleshooting:**\n'
        text += f'- Check VM status: `prlctl list | grep "{vm}"`\n'
        text += f'- Test VM exec: `prlctl exec "{vm}" "whoami"`\n'
        text += '- Hostname changes may require a VM restart\n'
        return text


def _manual_commands(vm: str, hostname: str, indent: str = '') -> str:
    return (
        f'{indent}- Access VM: `prlctl enter "{vm}"`\n'
        f'{indent}- Set hostname: `sudo hostnamectl set-hostname {hostname}`\n'
        f'{indent}- Update file: `echo "{hostname}" | sudo tee /etc/hostname`\n'
        f'{indent}- Runtime set: `sudo hostname {hostname}`\n'
    )


def set_hostname(
    params: SetHostnameParams, *, execute: Optional[Executor] = None
) -> ToolResult:
    return HostnameWorkflow(params, execute=execute).run()
