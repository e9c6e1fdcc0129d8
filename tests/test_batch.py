from __future__ import annotations

import threading

import pytest

from prlvm.batch import BatchParams, batch_operation, operation_args, run_batch
from prlvm.errors import ValidationError


def test_partial_failure_is_not_an_error(prl) -> None:
    prl.add_vm('a')
    prl.add_vm('c')
    res = batch_operation(BatchParams(['a', 'b', 'c'], 'start'), execute=prl)
    assert not res.is_error
    assert '**Successful**: 2' in res.text
    assert '**Failed**: 1' in res.text
    assert '❌ **b**' in res.text


def test_counts_and_input_order(prl) -> None:
    prl.add_vm('a')
    prl.add_vm('c')
    result = run_batch(['c', 'b', 'a'], 'start', execute=prl)
    assert [r.id for r in result.per_target] == ['c', 'b', 'a']
    assert result.success_count == 2
    assert result.failure_count == 1
    assert not result.all_failed
    assert result.as_dict()['failure_count'] == 1


def test_all_failed_is_an_error(prl) -> None:
    res = batch_operation(BatchParams(['a', 'b', 'c'], 'stop'), execute=prl)
    assert res.is_error
    assert '**Successful**: 0' in res.text


def test_empty_targets_rejected_before_dispatch(prl) -> None:
    with pytest.raises(ValidationError):
        run_batch([], 'start', execute=prl)
    res = batch_operation(BatchParams([], 'start'), execute=prl)
    assert res.is_error
    assert prl.calls == []


def test_unknown_operation_rejected(prl) -> None:
    res = batch_operation(BatchParams(['a'], 'delete'), execute=prl)
    assert res.is_error
    assert prl.calls == []


def test_targets_are_sanitized_independently(prl) -> None:
    prl.add_vm('vmrm-rf')
    result = run_batch(['vm; rm -rf /', '$()'], 'start', execute=prl)
    assert result.per_target[0].success
    assert not result.per_target[1].success
    assert prl.calls == [['start', 'vmrm-rf']]


def test_force_stop_uses_kill(prl) -> None:
    prl.add_vm('a', status='running')
    run_batch(['a'], 'stop', force=True, execute=prl)
    assert prl.calls == [['stop', 'a', '--kill']]
    assert operation_args('start', 'a', force=True) == ['start', 'a']


def test_targets_run_concurrently() -> None:
    # Every call waits until all three are in flight; a sequential run would time out.
    barrier = threading.Barrier(3, timeout=5)
    seen = []

    def execute(args):
        barrier.wait()
        seen.append(args[1])

    result = run_batch(['a', 'b', 'c'], 'restart', execute=execute)
    assert result.success_count == 3
    assert sorted(seen) == ['a', 'b', 'c']


def test_unexpected_exception_stays_local() -> None:
    def execute(args):
        if args[1] == 'b':
            raise KeyError('boom')

    result = run_batch(['a', 'b'], 'start', execute=execute)
    assert [r.success for r in result.per_target] == [True, False]
    assert 'Unexpected error' in result.per_target[1].message


def test_more_targets_than_a_typical_pool_all_run_at_once() -> None:
    targets = [f'vm{i}' for i in range(10)]
    barrier = threading.Barrier(len(targets), timeout=5)

    def execute(args):
        barrier.wait()

    result = run_batch(targets, 'start', execute=execute)
    assert result.success_count == len(targets)
    assert [r.id for r in result.per_target] == targets


def test_max_workers_is_an_opt_in_cap() -> None:
    threads = set()

    def execute(args):
        threads.add(threading.current_thread().name)

    result = run_batch(['a', 'b', 'c', 'd'], 'stop', execute=execute, max_workers=1)
    assert result.success_count == 4
    assert len(threads) == 1
