"""Tests for the prlvm command surface with an injected prlctl."""

from __future__ import annotations

import importlib
from pathlib import Path

import pytest

from prlvm.cli import PrlVMModalCLI, main
from prlvm.cli.config import ConfigInitCLI, ConfigShowCLI
from prlvm.cli.main import _count_verbose, _normalize_argv
from prlvm.cli.vm import BatchCLI, CreateCLI, DeleteCLI, StopCLI
from prlvm.config import PrlVMConfig, load, save


@pytest.fixture
def cfg_path(monkeypatch, tmp_path: Path, prl) -> Path:
    path = tmp_path / 'config.toml'
    cfg = PrlVMConfig()
    cfg.workflow.settle_delay_s = 0
    save(path, cfg)
    monkeypatch.setattr('prlvm.config.PrlVMConfig.executor', lambda self: prl)
    return path


def _run(argv: list[str]) -> int:
    rc = PrlVMModalCLI.main(argv=argv, _noexit=True)
    return 0 if rc is None else int(rc)


def test_list_and_positional_start(cfg_path: Path, prl, capsys) -> None:
    prl.add_vm('alpha')
    assert _run(['list', '--config', str(cfg_path)]) == 0
    assert 'alpha' in capsys.readouterr().out
    assert _run(['start', 'alpha', '--config', str(cfg_path)]) == 0
    assert prl.vms['alpha']['status'] == 'running'


def test_stop_force_and_error_exit(cfg_path: Path, prl) -> None:
    prl.add_vm('alpha', status='running')
    rc = StopCLI.main(argv=False, config=str(cfg_path), vm='alpha', force=True)
    assert rc == 0
    assert prl.calls[-1] == ['stop', 'alpha', '--kill']
    rc = StopCLI.main(argv=False, config=str(cfg_path), vm='ghost')
    assert rc == 1


def test_delete_needs_confirm(cfg_path: Path, prl) -> None:
    prl.add_vm('alpha')
    assert DeleteCLI.main(argv=False, config=str(cfg_path), vm='alpha') == 0
    assert 'alpha' in prl.vms
    rc = DeleteCLI.main(argv=False, config=str(cfg_path), vm='alpha', confirm=True)
    assert rc == 0
    assert 'alpha' not in prl.vms


def test_create_converts_numeric_options(cfg_path: Path, prl) -> None:
    rc = CreateCLI.main(
        argv=False,
        config=str(cfg_path),
        name='web01',
        memory='2048',
        set_hostname=False,
    )
    assert rc == 0
    assert ['set', 'web01', '--memsize', '2048'] in prl.calls


def test_batch_splits_targets(cfg_path: Path, prl, capsys) -> None:
    prl.add_vm('a')
    prl.add_vm('b')
    rc = BatchCLI.main(
        argv=False, config=str(cfg_path), targets='a, b,,ghost', operation='start'
    )
    assert rc == 0
    out = capsys.readouterr().out
    assert '**Target VMs**: 3' in out
    rc = BatchCLI.main(argv=False, config=str(cfg_path), targets='', operation='start')
    assert rc == 1


def test_ssh_auth_through_modal(cfg_path: Path, prl, pubkey: Path) -> None:
    prl.add_vm('box', status='running')
    argv = _normalize_argv(
        [
            'ssh-auth',
            'box',
            '--username',
            'alice',
            '--public_key_path',
            str(pubkey),
            '--config',
            str(cfg_path),
        ]
    )
    assert _run(argv) == 0
    assert 'alice' in prl.users['box']


def test_snapshot_restore_through_modal(cfg_path: Path, prl) -> None:
    prl.add_vm('alpha')
    snap = '{aaaaaaaa-0000-0000-0000-000000000001}'
    argv = ['snapshot', 'restore', 'alpha', '--snapshot_id', snap, '--config', str(cfg_path)]
    assert _run(argv) == 0
    assert prl.calls[-1] == ['snapshot-switch', 'alpha', '--id', snap]


def test_config_init_and_show(tmp_path: Path, capsys) -> None:
    path = tmp_path / 'sub' / 'config.toml'
    assert ConfigInitCLI.main(argv=False, config=str(path)) == 0
    assert load(path).batch.max_workers == 0
    assert ConfigInitCLI.main(argv=False, config=str(path)) == 2
    assert ConfigInitCLI.main(argv=False, config=str(path), force=True) == 0
    capsys.readouterr()
    assert ConfigShowCLI.main(argv=False, config=str(path)) == 0
    assert '[workflow]' in capsys.readouterr().out


def test_missing_explicit_config_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        StopCLI.main(argv=False, config=str(tmp_path / 'nope.toml'), vm='a')


def test_main_exits_with_tool_status(monkeypatch, cfg_path: Path, prl) -> None:
    # prlvm.cli re-exports main(), which shadows the submodule attribute.
    cli_main = importlib.import_module('prlvm.cli.main')
    monkeypatch.setattr(cli_main, '_setup_logging', lambda *a: None)
    with pytest.raises(SystemExit) as info:
        main(['start', 'ghost', '--config', str(cfg_path)])
    assert info.value.code == 1
    prl.add_vm('ghost')
    with pytest.raises(SystemExit) as info:
        main(['start', 'ghost', '--config', str(cfg_path)])
    assert info.value.code == 0


def test_normalize_argv() -> None:
    assert _normalize_argv(['ls']) == ['list']
    assert _normalize_argv(['ssh-auth', 'vm']) == ['ssh_auth', 'vm']
    assert _normalize_argv(['set-hostname', 'vm']) == ['hostname', 'vm']
    assert _normalize_argv(['snapshot', 'ls', 'vm']) == ['snapshot', 'list', 'vm']
    assert _normalize_argv(['start', 'vm']) == ['start', 'vm']


def test_count_verbose() -> None:
    assert _count_verbose(['-vv', 'list']) == 2
    assert _count_verbose(['--verbose', '-v']) == 2
    assert _count_verbose(['list']) == 0
