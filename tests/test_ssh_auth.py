from __future__ import annotations

import shlex
from pathlib import Path

import pytest

from prlvm.errors import ValidationError
from prlvm.steps import FAILED, PARTIAL, SUCCESS
from prlvm.workflows.ssh_auth import (
    IP_PLACEHOLDER,
    KEY_INSTALL_STEP,
    ManageSSHAuthParams,
    SSHAuthWorkflow,
    install_key_command,
    manage_ssh_auth,
    parse_ipv4,
    sudoers_command,
)


def _params(pubkey: Path, **kw) -> ManageSSHAuthParams:
    kw.setdefault('vm_id', 'box')
    kw.setdefault('username', 'alice')
    return ManageSSHAuthParams(public_key_path=str(pubkey), **kw)


def test_full_setup_creates_user_and_reports_ip(prl, pubkey) -> None:
    prl.add_vm('box', status='running')
    wf = SSHAuthWorkflow(_params(pubkey, enable_passwordless_sudo=True), execute=prl)
    res = wf.run()
    assert wf.classify() == SUCCESS
    assert not res.is_error
    names = [s.name for s in wf.steps]
    assert names == [
        'VM Accessibility Check',
        'SSH Public Key Discovery',
        'User Existence Check',
        'User Creation',
        'SSH Service Configuration',
        KEY_INSTALL_STEP,
        'Passwordless Sudo Configuration',
        'IP Address Discovery',
    ]
    assert 'alice' in prl.users['box']
    assert 'ssh alice@10.211.55.7' in res.text


def test_existing_user_skips_creation(prl, pubkey) -> None:
    prl.add_vm('box', status='running')
    prl.users['box'].add('alice')
    wf = SSHAuthWorkflow(_params(pubkey), execute=prl)
    wf.run()
    assert wf.state.step('User Creation') is None
    assert wf.state.step('Passwordless Sudo Configuration') is None
    assert not any('useradd' in c for c in prl.exec_commands())


def test_key_install_failure_is_an_error(prl, pubkey) -> None:
    prl.add_vm('box', status='running')
    prl.fail_on('authorized_keys', 'tee: Permission denied')
    wf = SSHAuthWorkflow(_params(pubkey), execute=prl)
    res = wf.run()
    assert wf.classify() == FAILED
    assert res.is_error
    assert 'Recovery Commands' in res.text
    # Later steps still ran.
    assert wf.state.step('IP Address Discovery').completed


def test_ip_discovery_failure_is_partial(prl, pubkey) -> None:
    prl.add_vm('box', status='running')
    prl.ip = '127.0.0.1'
    wf = SSHAuthWorkflow(_params(pubkey), execute=prl)
    res = wf.run()
    assert wf.classify() == PARTIAL
    assert not res.is_error
    assert f'ssh alice@{IP_PLACEHOLDER}' in res.text
    assert 'prlctl list -f' in res.text


def test_missing_key_aborts_before_guest_changes(prl, tmp_path) -> None:
    prl.add_vm('box', status='running')
    res = manage_ssh_auth(
        ManageSSHAuthParams('box', 'alice'),
        execute=prl,
        key_paths=[str(tmp_path / 'none.pub')],
    )
    assert res.is_error
    assert 'No SSH public key found' in res.text
    assert prl.exec_commands() == ['echo "test"']


def test_vm_not_found_aborts(prl, pubkey) -> None:
    res = manage_ssh_auth(_params(pubkey, vm_id='ghost'), execute=prl)
    assert res.is_error
    assert 'could not be found' in res.text


@pytest.mark.parametrize('user', ['bad user', 'x;id', '1abc', '-rf', 'a' * 33, ''])
def test_invalid_username_makes_no_calls(prl, pubkey, user) -> None:
    with pytest.raises(ValidationError):
        _params(pubkey, username=user).validate()
    res = manage_ssh_auth(_params(pubkey, username=user), execute=prl)
    assert res.is_error
    assert prl.calls == []


def test_install_key_command_quotes_key() -> None:
    key = "ssh-ed25519 AAAA it's-me"
    cmd = install_key_command('alice', key)
    assert shlex.quote(key) in cmd
    assert '/home/alice/.ssh/authorized_keys' in cmd
    assert 'chmod 600' in cmd


def test_sudoers_command_writes_fragment() -> None:
    cmd = sudoers_command('alice')
    assert '/etc/sudoers.d/alice' in cmd
    assert 'NOPASSWD:ALL' in cmd
    assert 'chmod 440' in cmd


def test_sudoers_fragment_name_has_no_dot() -> None:
    cmd = sudoers_command('john.doe')
    assert '/etc/sudoers.d/john_doe ' in cmd
    assert '/etc/sudoers.d/john.doe' not in cmd
    assert 'john.doe ALL=(ALL) NOPASSWD:ALL' in cmd


def test_parse_ipv4_skips_loopback() -> None:
    assert parse_ipv4('127.0.0.1\n10.0.0.9\n') == '10.0.0.9'
    assert parse_ipv4('') == ''
