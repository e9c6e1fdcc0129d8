"""Parsers for `prlctl list` and `prlctl snapshot-list` text output."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional

KNOWN_STATUSES = ('running', 'stopped', 'suspended', 'paused')

# UUID STATUS IP_ADDR NAME, where NAME may contain spaces.
_VM_ROW = re.compile(r'^(\{[^}]+\})\s+(\S+)\s+(\S+)?\s+(.+)$')
# {id} [*] "name with \"escapes\"" date text
_SNAPSHOT_ROW = re.compile(
    r'^(\{[^}]+\})\s+(\*)?\s*"((?:[^"\\]|\\.)*)"\s+(.+)$'
)
_UUID = re.compile(
    r'^\{[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}\}$',
    re.IGNORECASE,
)


@dataclass(frozen=True)
class VMRecord:
    id: str
    status: str
    name: str
    ip_address: Optional[str] = None

    @property
    def running(self) -> bool:
        return self.status == 'running'


@dataclass(frozen=True)
class SnapshotRecord:
    id: str
    name: str
    date: str
    current: bool = False


def _data_lines(text: str) -> Iterable[str]:
    lines = (text or '').strip().splitlines()
    if lines and 'UUID' in lines[0]:
        lines = lines[1:]
    for raw in lines:
        line = raw.strip()
        if line:
            yield line


def parse_vm_list(text: str) -> list[VMRecord]:
    """Parse ``prlctl list --all`` output, skipping lines that do not match."""
    vms: list[VMRecord] = []
    for line in _data_lines(text):
        m = _VM_ROW.match(line)
        if m is None:
            continue
        ip = m.group(3)
        vms.append(
            VMRecord(
                id=m.group(1),
                status=m.group(2),
                ip_address=None if ip in (None, '-') else ip,
                name=m.group(4).strip(),
            )
        )
    return vms


def parse_snapshot_list(text: str) -> list[SnapshotRecord]:
    """Parse ``prlctl snapshot-list`` output.

    Any number of rows may carry the ``*`` current marker; the input is
    taken as-is.
    """
    snapshots: list[SnapshotRecord] = []
    for line in _data_lines(text):
        m = _SNAPSHOT_ROW.match(line)
        if m is None:
            continue
        snapshots.append(
            SnapshotRecord(
                id=m.group(1),
                current=m.group(2) == '*',
                name=m.group(3),
                date=m.group(4).strip(),
            )
        )
    return snapshots


def is_valid_uuid(text: str) -> bool:
    return bool(_UUID.match(text or ''))


def find_vm(vms: Iterable[VMRecord], ident: str) -> Optional[VMRecord]:
    for vm in vms:
        if ident in (vm.name, vm.id):
            return vm
    return None
