"""Shared fixtures: an in-memory prlctl stand-in injected through ``execute``."""

from __future__ import annotations

import shlex
import threading
from pathlib import Path
from typing import Callable, Sequence

import pytest

from prlvm.errors import GatewayError
from prlvm.gateway import CmdResult

ED25519_KEY = 'ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIGZha2VrZXk user@host'


class FakePrlctl:
    """Simulates just enough prlctl state for the tools and workflows.

    Every call is recorded in ``calls``. ``fail_on`` installs rules that turn
    matching calls into :class:`GatewayError`.
    """

    def __init__(self) -> None:
        self.vms: dict[str, dict[str, str]] = {}
        self.users: dict[str, set[str]] = {}
        self.hostnames: dict[str, str] = {}
        self.calls: list[list[str]] = []
        self.snapshot_text = ''
        self.ip = '10.211.55.7'
        self._rules: list[tuple[Callable[[list[str]], bool], str]] = []
        self._lock = threading.Lock()

    def add_vm(self, name: str, status: str = 'stopped', ip: str = '-') -> str:
        uuid = '{%08x-1111-2222-3333-444455556666}' % (len(self.vms) + 1)
        self.vms[name] = {'id': uuid, 'status': status, 'ip': ip}
        self.users.setdefault(name, {'root'})
        return uuid

    def fail_on(self, match, message: str = 'simulated failure') -> None:
        if isinstance(match, str):
            text = match
            self._rules.append((lambda args: text in ' '.join(args), message))
        else:
            self._rules.append((match, message))

    def ops(self) -> list[str]:
        return [c[0] for c in self.calls]

    def exec_commands(self) -> list[str]:
        return [c[2] for c in self.calls if c[0] == 'exec']

    def _fail(self, args: list[str], message: str):
        raise GatewayError(['prlctl', *args], message, code=255, stderr=message)

    def _lookup(self, args: list[str], ident: str) -> dict[str, str]:
        for name, vm in self.vms.items():
            if ident in (name, vm['id']):
                return vm
        self._fail(args, f'The virtual machine could not be found: {ident}')

    def _name_of(self, ident: str) -> str:
        for name, vm in self.vms.items():
            if ident in (name, vm['id']):
                return name
        return ident

    def render_list(self) -> str:
        lines = ['UUID                                    STATUS       IP_ADDR         NAME']
        for name, vm in self.vms.items():
            lines.append(f'{vm["id"]}  {vm["status"]:<12} {vm["ip"]:<15} {name}')
        return '\n'.join(lines) + '\n'

    def __call__(self, args: Sequence[str]) -> CmdResult:
        args = [str(a) for a in args]
        with self._lock:
            self.calls.append(args)
        for match, message in self._rules:
            if match(args):
                self._fail(args, message)
        op = args[0]
        if op == 'list':
            return CmdResult(0, self.render_list(), '')
        if op == 'create':
            self.add_vm(args[1])
            return CmdResult(0, f'Creating the virtual machine {args[1]}...\n', '')
        if op == 'clone':
            self._lookup(args, args[1])
            name = args[args.index('--name') + 1]
            self.add_vm(name)
            return CmdResult(0, f'Clone the {args[1]} VM to {name}...\n', '')
        if op == 'snapshot-list':
            self._lookup(args, args[1])
            return CmdResult(0, self.snapshot_text, '')
        vm = self._lookup(args, args[1])
        if op in {'start', 'resume', 'restart'}:
            vm['status'] = 'running'
        elif op == 'stop':
            vm['status'] = 'stopped'
        elif op == 'suspend':
            vm['status'] = 'suspended'
        elif op == 'delete':
            del self.vms[self._name_of(args[1])]
        elif op == 'exec':
            if vm['status'] != 'running':
                self._fail(args, 'The VM is not running')
            return CmdResult(0, self._guest(self._name_of(args[1]), args, args[2]), '')
        return CmdResult(0, f'VM {args[1]} {op}: ok\n', '')

    def _guest(self, name: str, args: list[str], command: str) -> str:
        users = self.users.setdefault(name, {'root'})
        if command.startswith('id -u '):
            user = shlex.split(command)[-1]
            if user not in users:
                self._fail(args, f'id: {user}: no such user')
            return '1000\n'
        if command.startswith('sudo useradd'):
            users.add(shlex.split(command.split('&&')[0])[-1])
            return ''
        if command.startswith(('hostnamectl set-hostname', 'sudo hostname ')):
            self.hostnames[name] = shlex.split(command)[-1]
            return ''
        if 'Current hostname:' in command:
            current = self.hostnames.get(name, 'localhost')
            return (
                '=== Hostname Verification ===\n'
                f'Current hostname: {current}\n'
                f'FQDN: {current}\n'
            )
        if command.startswith('ip -4 addr'):
            return f'{self.ip}\n'
        return ''


@pytest.fixture
def prl() -> FakePrlctl:
    return FakePrlctl()


@pytest.fixture
def pubkey(tmp_path: Path) -> Path:
    path = tmp_path / 'id_ed25519.pub'
    path.write_text(ED25519_KEY + '\n', encoding='utf-8')
    return path
