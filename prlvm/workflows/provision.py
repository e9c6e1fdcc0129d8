"""VM provisioning: create or clone, tune hardware, configure in-guest, restore power state."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from loguru import logger

from ..config import DEFAULT_KEY_PATHS
from ..errors import StepError, ValidationError
from ..gateway import Executor
from ..host import current_username
from ..results import ToolResult
from ..sanitize import sanitize_identifier
from ..steps import (
    PARTIAL,
    SUCCESS,
    Workflow,
    WorkflowAborted,
    recovery_block,
    render_step_lists,
    status_heading,
)
from ..util import bullet_list
from .hostname import (
    HostnameWorkflow,
    SetHostnameParams,
    hostname_for_vm,
    validate_hostname,
)
from .probe import is_vm_running, vm_exists
from .ssh_auth import ManageSSHAuthParams, SSHAuthWorkflow

log = logger

OS_TYPES = ('ubuntu', 'debian', 'windows-11', 'macos', 'other')

CREATE_STEP = 'VM Creation'
HOSTNAME_STEP = 'Hostname Configuration'
SSH_STEP = 'User and SSH Configuration'


def _check_range(label: str, value: Optional[int], lo: int, hi: int, unit: str = '') -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f'{label} must be an integer')
    if not lo <= value <= hi:
        raise ValidationError(f'{label} must be between {lo} and {hi}{unit}')


@dataclass
class CreateVMParams:
    name: str
    from_template: Optional[str] = None
    os: Optional[str] = None
    distribution: Optional[str] = None
    memory: Optional[int] = None
    cpus: Optional[int] = None
    disk_size: Optional[int] = None
    set_hostname: bool = True
    create_user: bool = False
    enable_ssh_auth: bool = False

    def validate(self) -> None:
        if not self.name or len(self.name) > 100:
            raise ValidationError('VM name must be between 1 and 100 characters')
        if not sanitize_identifier(self.name):
            raise ValidationError(
                f'VM name {self.name!r} has no usable characters '
                '(allowed: letters, digits, "_", "-", "{", "}")'
            )
        if self.os is not None and self.os not in OS_TYPES:
            raise ValidationError(f'os must be one of: {", ".join(OS_TYPES)}')
        _check_range('memory', self.memory, 512, 32768, ' MB')
        _check_range('cpus', self.cpus, 1, 16)
        _check_range('disk_size', self.disk_size, 8, 2048, ' GB')

    @property
    def wants_configuration(self) -> bool:
        return self.set_hostname or self.create_user or self.enable_ssh_auth


class ProvisionWorkflow(Workflow):
    """Create a VM and bring it to a configured state.

    The VM is only powered on when in-guest configuration was requested and
    it was not already running; in that case it is stopped again at the end.
    Clones keep whatever power state they come up in.
    """

    title = 'VM Creation'

    def __init__(
        self,
        params: CreateVMParams,
        *,
        execute: Optional[Executor] = None,
        settle_delay_s: float = 5,
        username: Optional[str] = None,
        key_paths: Sequence[str] = DEFAULT_KEY_PATHS,
        admin_group: str = 'sudo',
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(sanitize_identifier(params.name), execute=execute)
        self.params = params
        self.settle_delay_s = settle_delay_s
        self.username = username
        self.key_paths = list(key_paths)
        self.admin_group = admin_group
        self.sleep = sleep
        self.create_output = ''
        self.description = ''
        self.hardware_notes: list[str] = []
        self.post_config_notes: list[str] = []
        self.started_for_configuration = False

    def validate(self) -> None:
        self.params.validate()

    @property
    def guest_hostname(self) -> str:
        return hostname_for_vm(self.state.target_name)

    def create_args(self) -> list[str]:
        p = self.params
        name = self.state.target_name
        if p.from_template:
            return ['clone', sanitize_identifier(p.from_template), '--name', name]
        args = ['create', name]
        if p.os:
            args += ['--ostype', p.os]
        if p.distribution:
            args += ['--distribution', sanitize_identifier(p.distribution)]
        return args

    def perform(self) -> None:
        p = self.params
        name = self.state.target_name
        if vm_exists(self.execute, name):
            raise WorkflowAborted(f"VM with name '{p.name}' already exists")

        args = self.create_args()
        if p.from_template:
            self.description = f"Cloning VM from template '{p.from_template}' as '{name}'"
        else:
            self.description = f"Creating new VM '{name}'"
            if p.os:
                self.description += f" with OS type '{p.os}'"
        try:
            _, res = self.attempt(
                CREATE_STEP,
                lambda: self.execute(args),
                critical=True,
                recovery_commands=['# Retry VM creation', 'prlctl ' + ' '.join(args)],
            )
        except WorkflowAborted:
            # A failed create can still leave a registered VM behind.
            self.state.created = vm_exists(self.execute, name)
            raise
        self.state.created = True
        self.create_output = res.stdout

        if not p.from_template:
            self._configure_hardware()
        if p.wants_configuration:
            self._configure_guest()

    def _configure_hardware(self) -> None:
        p = self.params
        name = self.state.target_name
        settings = [
            ('Memory Configuration', p.memory, ['--memsize', str(p.memory)], f'Memory: {p.memory}MB'),
            ('CPU Configuration', p.cpus, ['--cpus', str(p.cpus)], f'CPUs: {p.cpus}'),
            (
                'Disk Configuration',
                p.disk_size,
                ['--device-set', 'hdd0', '--size', f'{p.disk_size}G'],
                f'Disk: {p.disk_size}GB',
            ),
        ]
        for step_name, value, flags, note in settings:
            if value is None:
                continue
            args = ['set', name, *flags]
            step, _ = self.attempt(
                step_name,
                lambda args=args: self.execute(args),
                recovery_commands=['prlctl ' + ' '.join(args)],
            )
            if step.completed:
                self.hardware_notes.append(note)
            else:
                self.hardware_notes.append(f'⚠️ {step_name} failed: {step.error}')

    def _ensure_running(self) -> bool:
        name = self.state.target_name
        was_running = is_vm_running(self.execute, name)
        self.state.running_before_workflow = was_running
        if was_running:
            self.state.currently_running = True
            return True
        if self.params.from_template:
            self.skip(
                'Post-Creation Configuration',
                'Cloned VM is not running; configuration skipped to keep its power state',
                recovery_commands=[
                    f'prlctl start "{name}"',
                    '# Then run the hostname and ssh-auth tools against it',
                ],
            )
            self.post_config_notes.append(
                '⚠️ Cloned VM is not running. Skipping hostname and user setup.'
            )
            return False
        step, _ = self.attempt(
            'VM Start for Configuration',
            lambda: self.execute(['start', name]),
            recovery_commands=[
                '# Start VM manually for configuration',
                f'prlctl start "{name}"',
                '# Wait for VM to boot, then retry configuration',
            ],
        )
        if not step.completed:
            self.post_config_notes.append(
                '⚠️ VM could not be started for configuration. '
                'Skipping hostname and user setup.'
            )
            return False
        self.started_for_configuration = True
        self.state.currently_running = True
        if self.settle_delay_s:
            log.debug('Waiting {}s for {} to settle', self.settle_delay_s, name)
            self.sleep(self.settle_delay_s)
        return True

    def _configure_guest(self) -> None:
        if not self._ensure_running():
            return
        try:
            if self.params.set_hostname:
                self._configure_hostname()
            if self.params.create_user or self.params.enable_ssh_auth:
                self._configure_ssh()
        finally:
            if self.started_for_configuration:
                self._stop_after_configuration()

    def _configure_hostname(self) -> None:
        name = self.state.target_name
        hostname = self.guest_hostname
        try:
            validate_hostname(hostname)
        except ValidationError:
            self.skip(
                HOSTNAME_STEP,
                f"VM name '{name}' is not a valid hostname",
                recovery_commands=[
                    '# Choose an RFC 1123 hostname and set it with the hostname tool',
                    f'prlvm hostname {name} --hostname <hostname>',
                ],
            )
            self.post_config_notes.append(
                f"⚠️ VM name '{name}' is not a valid hostname. Skipping hostname setup."
            )
            return
        sub = HostnameWorkflow(
            SetHostnameParams(vm_id=name, hostname=hostname),
            execute=self.execute,
        )
        step, _ = self.attempt(
            HOSTNAME_STEP,
            lambda: _run_nested(sub, 'Hostname setting failed'),
            recovery_commands=[
                '# Set hostname manually using the hostname tool, or:',
                f'prlctl exec "{name}" "sudo hostnamectl set-hostname {hostname}"',
            ],
        )
        if step.completed:
            self.post_config_notes.append(
                f'Hostname set to: {hostname} ({sub.classify()})'
            )
        else:
            self.post_config_notes.append(f'⚠️ Hostname setting failed: {step.error}')

    def _configure_ssh(self) -> None:
        name = self.state.target_name
        user = self.username or current_username()
        sub = SSHAuthWorkflow(
            ManageSSHAuthParams(
                vm_id=name, username=user, enable_passwordless_sudo=True
            ),
            execute=self.execute,
            key_paths=self.key_paths,
            admin_group=self.admin_group,
        )
        step, _ = self.attempt(
            SSH_STEP,
            lambda: _run_nested(sub, 'SSH configuration failed'),
            recovery_commands=[
                '# Setup SSH manually using the ssh-auth tool, or create the user:',
                f'prlctl exec "{name}" "sudo useradd -m -s /bin/bash {user}"',
                f'prlctl exec "{name}" "sudo usermod -aG {self.admin_group} {user}"',
            ],
        )
        if step.completed:
            self.post_config_notes.append(
                f"User '{user}' configured with passwordless sudo and SSH access"
            )
        else:
            self.post_config_notes.append(f'⚠️ User/SSH setup failed: {step.error}')

    def _stop_after_configuration(self) -> None:
        name = self.state.target_name
        step, _ = self.attempt(
            'VM Stop after Configuration',
            lambda: self.execute(['stop', name]),
            recovery_commands=[
                '# Stop VM manually',
                f'prlctl stop "{name}"',
                '# Or force stop if needed',
                f'prlctl stop "{name}" --kill',
            ],
        )
        if step.completed:
            self.state.currently_running = False
        else:
            self.post_config_notes.append(f'⚠️ VM could not be stopped: {step.error}')

    def classify(self) -> str:
        return PARTIAL if self.state.failed_steps() else SUCCESS

    def render(self, status: str) -> str:
        name = self.state.target_name
        text = status_heading(status)
        text += f'{self.description}\n\n'
        text += '**VM Created:**\n'
        text += f'- Name: {name}\n'
        text += bullet_list(self.hardware_notes)
        if self.post_config_notes:
            text += '\n**Post-Creation Configuration:**\n'
            text += bullet_list(self.post_config_notes)
        failed = self.state.failed_steps()
        if len(self.steps) > 1:
            text += '\n' + render_step_lists(self.steps)
        if failed:
            text += '**🛠️ Manual Completion Options:**\n'
            for s in failed:
                if s.name == HOSTNAME_STEP:
                    hostname = self.guest_hostname or '<hostname>'
                    text += (
                        f'- **Set Hostname:** `prlvm hostname {name} --hostname {hostname}`\n'
                    )
                elif s.name == SSH_STEP:
                    user = self.username or current_username()
                    text += f'- **Setup SSH:** `prlvm ssh-auth {name} --username {user} --sudo`\n'
                elif s.recovery_commands:
                    text += f'- **{s.name}:** Run recovery commands\n'
            text += '\n' + recovery_block(failed)
        text += _management_block(name)
        text += f'\n**Output:**\n```\n{self.create_output.rstrip()}\n```\n'
        return text

    def render_aborted(self, ex: WorkflowAborted) -> str:
        name = self.state.target_name
        text = '❌ **VM Creation Failed**\n\n'
        text += f'VM: {name}\n'
        text += f'Error: {ex}\n\n'
        total = len(self.steps)
        done = len(self.state.completed_steps())
        text += f'**Configuration Progress:** {done}/{total} steps completed\n\n'
        text += render_step_lists(self.steps)
        text += '**VM State:**\n'
        text += f'- VM Created: {"Yes" if self.state.created else "No"}\n'
        if self.state.created:
            text += f'- VM Running: {"Yes" if self.state.currently_running else "No"}\n'
        text += '\n'
        if self.state.critical_failure and self.state.created:
            text += '**🔄 Rollback Option:**\n'
            text += 'Due to critical failure, you may want to delete the partially created VM:\n'
            text += f'```bash\nprlctl delete "{name}"\n```\n\n'
        text += recovery_block(self.steps)
        text += '\n**🔍 Troubleshooting:**\n'
        text += '- Check VM status: `prlctl list --all`\n'
        text += f'- View VM info: `prlctl list -i "{name}"`\n'
        return text


def _run_nested(workflow: Workflow, failure: str) -> ToolResult:
    result = workflow.run()
    if result.is_error:
        failed = [s for s in workflow.steps if not s.completed]
        if failed and failed[-1].error:
            reason = failed[-1].error
        else:
            lines = [ln for ln in result.text.strip().splitlines() if ln.strip()]
            reason = lines[-1].strip() if lines else ''
        raise StepError(f'{failure}: {reason}' if reason else failure)
    return result


def _management_block(name: str) -> str:
    return (
        '\n**📋 VM Management:**\n'
        f'- Start VM: `prlctl start "{name}"`\n'
        f'- Stop VM: `prlctl stop "{name}"`\n'
        f'- VM Status: `prlctl list | grep "{name}"`\n'
        f'- VM Info: `prlctl list -i "{name}"`\n'
    )


def create_vm(
    params: CreateVMParams,
    *,
    execute: Optional[Executor] = None,
    settle_delay_s: float = 5,
    username: Optional[str] = None,
    key_paths: Sequence[str] = DEFAULT_KEY_PATHS,
    admin_group: str = 'sudo',
) -> ToolResult:
    return ProvisionWorkflow(
        params,
        execute=execute,
        settle_delay_s=settle_delay_s,
        username=username,
        key_paths=key_paths,
        admin_group=admin_group,
    ).run()
