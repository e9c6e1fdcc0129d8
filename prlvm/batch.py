"""Fan one power operation out over several VMs concurrently and aggregate the outcomes."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Optional, Sequence

from loguru import logger

from .errors import PrlVMError, ValidationError
from .gateway import Executor, execute_prlctl
from .results import BatchResult, TargetOutcome, ToolResult
from .sanitize import sanitize_identifier

log = logger

BATCH_OPERATIONS = ('start', 'stop', 'suspend', 'resume', 'restart')


@dataclass
class BatchParams:
    targets: list[str] = field(default_factory=list)
    operation: str = ''
    force: bool = False

    def validate(self) -> None:
        if not self.targets:
            raise ValidationError('At least one VM must be specified')
        if self.operation not in BATCH_OPERATIONS:
            raise ValidationError(
                f'operation must be one of: {", ".join(BATCH_OPERATIONS)}'
            )


def operation_args(operation: str, vm: str, *, force: bool = False) -> list[str]:
    args = [operation, vm]
    if operation == 'stop' and force:
        args.append('--kill')
    return args


def _run_one(
    execute: Executor, target: str, operation: str, force: bool
) -> TargetOutcome:
    vm = sanitize_identifier(target)
    if not vm:
        return TargetOutcome(
            target, False, 'Identifier is empty after removing disallowed characters'
        )
    try:
        execute(operation_args(operation, vm, force=force))
    except PrlVMError as ex:
        return TargetOutcome(target, False, str(ex).strip().splitlines()[0])
    return TargetOutcome(target, True, f'{operation} completed successfully')


def run_batch(
    targets: Sequence[str],
    operation: str,
    *,
    force: bool = False,
    execute: Optional[Executor] = None,
    max_workers: Optional[int] = None,
) -> BatchResult:
    """Run ``operation`` on every target at once and wait for all of them.

    Each target owns one slot of the result list (input order); a failure on
    one target never cancels or delays another. The pool holds one thread per
    target unless ``max_workers`` caps it.
    """
    BatchParams(list(targets), operation, force).validate()
    _execute = execute or execute_prlctl
    slots: list[Optional[TargetOutcome]] = [None] * len(targets)
    workers = len(targets)
    if max_workers:
        workers = max(1, min(max_workers, workers))
    log.debug('Batch {} on {} target(s) with {} worker(s)', operation, len(targets), workers)
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='prlvm-batch') as pool:
        futures = {
            pool.submit(_run_one, _execute, target, operation, force): idx
            for idx, target in enumerate(targets)
        }
        for future in as_completed(futures):
            idx = futures[future]
            try:
                outcome = future.result()
            except Exception as ex:
                log.exception('Batch {} crashed for {}: {}', operation, targets[idx], ex)
                outcome = TargetOutcome(targets[idx], False, f'Unexpected error: {ex}')
            if outcome.success:
                log.info('Batch {}: {} ok', operation, outcome.id)
            else:
                log.warning('Batch {}: {} failed: {}', operation, outcome.id, outcome.message)
            slots[idx] = outcome
    return BatchResult(per_target=[s for s in slots if s is not None])


def render_batch(result: BatchResult, operation: str, *, force: bool = False) -> str:
    text = '## Batch Operation Results\n\n'
    text += f'**Operation**: {operation}{" (forced)" if force else ""}\n'
    text += f'**Target VMs**: {len(result.per_target)}\n'
    text += f'**Successful**: {result.success_count}\n'
    text += f'**Failed**: {result.failure_count}\n\n'
    text += '### Details:\n\n'
    for r in result.per_target:
        icon = '✅' if r.success else '❌'
        text += f'{icon} **{r.id}**: {r.message}\n'
    return text


def batch_operation(
    params: BatchParams,
    *,
    execute: Optional[Executor] = None,
    max_workers: Optional[int] = None,
) -> ToolResult:
    try:
        params.validate()
    except ValidationError as ex:
        return ToolResult.error(f'❌ **Error executing batch operation**\n\n{ex}\n')
    result = run_batch(
        params.targets,
        params.operation,
        force=params.force,
        execute=execute,
        max_workers=max_workers,
    )
    return ToolResult(
        render_batch(result, params.operation, force=params.force),
        is_error=result.all_failed,
    )
