"""Step-tracked workflow execution shared by the provisioning, hostname, and SSH tools.

A workflow owns one :class:`WorkflowState`. Every action is wrapped by
:meth:`Workflow.attempt`, which records a :class:`ConfigStep` whether the
action succeeds or fails. Critical steps abort the workflow by raising
:class:`WorkflowAborted`; all other failures are recorded and the workflow
continues, so the final report can list what was done, what was not, and
the literal commands that would finish the job by hand.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

from loguru import logger

from .errors import PrlVMError, ValidationError
from .gateway import CmdResult, Executor, execute_prlctl
from .results import ToolResult

log = logger

SUCCESS = 'Success'
PARTIAL = 'Partial Success'
FAILED = 'Failed'

STATUS_ICONS = {SUCCESS: '✅', PARTIAL: '⚠️', FAILED: '❌'}


@dataclass
class ConfigStep:
    name: str
    completed: bool = False
    error: Optional[str] = None
    retryable: Optional[bool] = None
    recovery_commands: list[str] = field(default_factory=list)
    method: Optional[str] = None
    command: Optional[str] = None

    def label(self) -> str:
        return f'{self.name} ({self.method})' if self.method else self.name


@dataclass
class WorkflowState:
    target_name: str
    created: bool = False
    running_before_workflow: bool = False
    currently_running: bool = False
    steps: list[ConfigStep] = field(default_factory=list)
    critical_failure: bool = False

    def completed_steps(self) -> list[ConfigStep]:
        return [s for s in self.steps if s.completed]

    def failed_steps(self) -> list[ConfigStep]:
        return [s for s in self.steps if not s.completed]

    def step(self, name: str) -> Optional[ConfigStep]:
        for s in self.steps:
            if s.name == name:
                return s
        return None


class WorkflowAborted(PrlVMError):
    """Stops a workflow; ``step`` is the critical step that failed, if any."""

    def __init__(self, message: str, step: Optional[ConfigStep] = None):
        self.step = step
        super().__init__(message)


def status_heading(status: str) -> str:
    return f'{STATUS_ICONS.get(status, "")} **{status}**\n\n'


def render_step_lists(
    steps: Sequence[ConfigStep], *, noun: str = 'steps'
) -> str:
    completed = [s for s in steps if s.completed]
    failed = [s for s in steps if not s.completed]
    text = ''
    if steps:
        text += (
            f'**Configuration Summary:** {len(completed)}/{len(steps)} '
            f'{noun} completed\n\n'
        )
    if completed:
        text += '**✅ Completed Steps:**\n'
        text += ''.join(f'- {s.label()}\n' for s in completed)
        text += '\n'
    if failed:
        text += '**❌ Failed Steps:**\n'
        for s in failed:
            line = f'- {s.label()}'
            if s.error:
                line += f': {s.error}'
            if s.retryable:
                line += ' (retryable)'
            text += line + '\n'
            if s.command:
                text += f'  Command: `{s.command}`\n'
        text += '\n'
    return text


def recovery_lines(steps: Sequence[ConfigStep]) -> list[str]:
    lines: list[str] = []
    for s in steps:
        if s.completed or not s.recovery_commands:
            continue
        lines.append(f'# To manually complete: {s.name}')
        lines.extend(s.recovery_commands)
        lines.append('')
    return lines


def recovery_block(steps: Sequence[ConfigStep]) -> str:
    lines = recovery_lines(steps)
    if not lines:
        return ''
    body = '\n'.join(lines).rstrip()
    return f'**🔄 Recovery Commands:**\n```bash\n{body}\n```\n'


class Workflow:
    """Base for the step-tracked tools.

    Subclasses implement :meth:`perform` (the ordered actions) and
    :meth:`render`. :meth:`classify` and :meth:`is_error` carry each tool's
    own outcome rules.
    """

    title = 'Workflow'

    def __init__(self, target_name: str, *, execute: Optional[Executor] = None):
        self.execute: Executor = execute or execute_prlctl
        self.state = WorkflowState(target_name=target_name)

    @property
    def steps(self) -> list[ConfigStep]:
        return self.state.steps

    def prlctl(self, *args: str) -> CmdResult:
        return self.execute(list(args))

    def attempt(
        self,
        name: str,
        action: Callable[[], Any],
        *,
        critical: bool = False,
        retryable: bool = True,
        recovery_commands: Sequence[str] = (),
        method: Optional[str] = None,
        command: Optional[str] = None,
    ) -> tuple[ConfigStep, Any]:
        step = ConfigStep(
            name=name, retryable=retryable, method=method, command=command
        )
        try:
            value = action()
        except PrlVMError as ex:
            step.error = _first_line(str(ex))
            step.recovery_commands = list(recovery_commands)
            self.state.steps.append(step)
            if critical:
                self.state.critical_failure = True
                log.error(
                    '{}: critical step {!r} failed on {}: {}',
                    self.title,
                    name,
                    self.state.target_name,
                    step.error,
                )
                raise WorkflowAborted(step.error, step) from ex
            log.warning(
                '{}: step {!r} failed on {}: {}',
                self.title,
                name,
                self.state.target_name,
                step.error,
            )
            return step, None
        step.completed = True
        self.state.steps.append(step)
        log.info(
            '{}: step {!r} completed on {}', self.title, name, self.state.target_name
        )
        return step, value

    def skip(self, name: str, reason: str, recovery_commands: Sequence[str] = ()) -> ConfigStep:
        step = ConfigStep(
            name=name,
            error=reason,
            retryable=True,
            recovery_commands=list(recovery_commands),
        )
        self.state.steps.append(step)
        log.warning('{}: skipped {!r}: {}', self.title, name, reason)
        return step

    def validate(self) -> None:
        """Raise :class:`ValidationError` before any prlctl call."""

    def perform(self) -> None:
        raise NotImplementedError

    def classify(self) -> str:
        if not self.state.failed_steps():
            return SUCCESS
        return PARTIAL

    def is_error(self, status: str) -> bool:
        return status == FAILED

    def render(self, status: str) -> str:
        raise NotImplementedError

    def render_invalid(self, ex: ValidationError) -> str:
        return f'❌ **Invalid parameters for {self.title}**\n\n{ex}\n'

    def render_aborted(self, ex: WorkflowAborted) -> str:
        text = f'❌ **{self.title} Failed**\n\n'
        text += f'VM: {self.state.target_name}\n'
        text += f'Error: {ex}\n\n'
        text += render_step_lists(self.steps)
        text += recovery_block(self.steps)
        return text

    def run(self) -> ToolResult:
        try:
            self.validate()
        except ValidationError as ex:
            log.warning('{}: rejected parameters: {}', self.title, ex)
            return ToolResult.error(self.render_invalid(ex))
        try:
            self.perform()
        except WorkflowAborted as ex:
            return ToolResult.error(self.render_aborted(ex))
        status = self.classify()
        log.info(
            '{} finished on {}: {} ({}/{} steps)',
            self.title,
            self.state.target_name,
            status,
            len(self.state.completed_steps()),
            len(self.steps),
        )
        return ToolResult(self.render(status), is_error=self.is_error(status))


def _first_line(text: str) -> str:
    text = (text or '').strip()
    return text.splitlines()[0] if text else 'unknown error'
