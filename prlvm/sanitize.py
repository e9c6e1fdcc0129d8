"""Identifier filtering applied before user input reaches a prlctl argument vector."""

from __future__ import annotations

import re

_IDENTIFIER_DISALLOWED = re.compile(r'[^A-Za-z0-9_{}-]')
_HOSTNAME_DISALLOWED = re.compile(r'[^A-Za-z0-9.-]')


def sanitize_identifier(text: str) -> str:
    """Drop every character outside ``[A-Za-z0-9_{}-]``.

    Total and idempotent; used on VM names, UUIDs and snapshot ids so that
    inputs like ``vm; rm -rf /`` collapse to ``vmrm-rf``.
    """
    return _IDENTIFIER_DISALLOWED.sub('', text or '')


def sanitize_hostname(text: str) -> str:
    # Dots survive so FQDNs stay intact.
    return _HOSTNAME_DISALLOWED.sub('', text or '')
