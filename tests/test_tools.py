from __future__ import annotations

from prlvm import tools

SNAP_ID = '{aaaaaaaa-0000-0000-0000-000000000001}'


def test_list_vms(prl) -> None:
    prl.add_vm('alpha', status='running', ip='10.0.0.5')
    prl.add_vm('beta vm')
    res = tools.list_vms(execute=prl)
    assert not res.is_error
    assert 'Found 2 virtual machine(s)' in res.text
    assert '**IP Address**: 10.0.0.5' in res.text
    assert '### 2. beta vm' in res.text


def test_list_vms_empty(prl) -> None:
    res = tools.list_vms(execute=prl)
    assert 'No virtual machines found.' in res.text


def test_power_vm_force_stop(prl) -> None:
    prl.add_vm('alpha', status='running')
    res = tools.power_vm('stop', 'alpha', force=True, execute=prl)
    assert not res.is_error
    assert 'forcefully stopped' in res.text
    assert prl.calls == [['stop', 'alpha', '--kill']]


def test_named_power_tools(prl) -> None:
    prl.add_vm('alpha')
    assert not tools.start_vm('alpha', execute=prl).is_error
    assert not tools.suspend_vm('alpha', execute=prl).is_error
    assert prl.vms['alpha']['status'] == 'suspended'
    assert not tools.resume_vm('alpha', execute=prl).is_error
    res = tools.restart_vm('alpha', execute=prl)
    assert "VM 'alpha' restarted successfully." in res.text
    assert not tools.stop_vm('alpha', execute=prl).is_error
    assert prl.ops() == ['start', 'suspend', 'resume', 'restart', 'stop']


def test_power_vm_failure_reports_error(prl) -> None:
    res = tools.power_vm('start', 'ghost', execute=prl)
    assert res.is_error
    assert 'could not be found' in res.text


def test_power_vm_rejects_unusable_identifier(prl) -> None:
    res = tools.power_vm('start', ';;', execute=prl)
    assert res.is_error
    assert prl.calls == []


def test_delete_requires_confirmation(prl) -> None:
    prl.add_vm('alpha')
    res = tools.delete_vm('alpha', execute=prl)
    assert not res.is_error
    assert 'Confirmation Required' in res.text
    assert prl.calls == []
    res = tools.delete_vm('alpha', confirm=True, execute=prl)
    assert not res.is_error
    assert 'alpha' not in prl.vms


def test_take_snapshot_passes_name_verbatim(prl) -> None:
    prl.add_vm('alpha')
    res = tools.take_snapshot(
        'alpha', 'before "upgrade"', description='pre; apt', execute=prl
    )
    assert not res.is_error
    assert prl.calls == [
        [
            'snapshot',
            'alpha',
            '--name',
            'before "upgrade"',
            '--description',
            'pre; apt',
        ]
    ]


def test_take_snapshot_name_length(prl) -> None:
    res = tools.take_snapshot('alpha', 'x' * 101, execute=prl)
    assert res.is_error
    assert prl.calls == []


def test_list_snapshots(prl) -> None:
    prl.add_vm('alpha')
    prl.snapshot_text = f'{SNAP_ID} * "base" 2024-01-02 10:00:00\n'
    res = tools.list_snapshots('alpha', execute=prl)
    assert 'Found 1 snapshot(s)' in res.text
    assert '(Current)' in res.text


def test_restore_snapshot_keeps_uuid(prl) -> None:
    prl.add_vm('alpha')
    res = tools.restore_snapshot('alpha', SNAP_ID, execute=prl)
    assert not res.is_error
    assert prl.calls == [['snapshot-switch', 'alpha', '--id', SNAP_ID]]


def test_restore_snapshot_not_found(prl) -> None:
    prl.add_vm('alpha')
    prl.fail_on('snapshot-switch', 'The snapshot was not found')
    res = tools.restore_snapshot('alpha', SNAP_ID, execute=prl)
    assert res.is_error
    assert 'Snapshot not found' in res.text
    assert 'prlvm snapshot list alpha' in res.text
