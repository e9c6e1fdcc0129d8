"""Local host collaborators: caller identity and SSH public key discovery."""

from __future__ import annotations

import getpass
from pathlib import Path
from typing import Sequence

from loguru import logger

from .errors import KeyDiscoveryError
from .util import expand

log = logger

KEY_PREFIXES = (
    'ssh-rsa',
    'ssh-ed25519',
    'ssh-dss',
    'ecdsa-sha2-',
    'sk-ssh-ed25519@openssh.com',
    'sk-ecdsa-sha2-',
)


def current_username() -> str:
    return getpass.getuser()


def read_public_key(path: Path) -> str:
    """Return the first line of a public key file after checking its key type."""
    try:
        text = path.read_text(encoding='utf-8')
    except (OSError, UnicodeDecodeError) as ex:
        raise KeyDiscoveryError(f'Cannot read public key {path}: {ex}') from ex
    lines = text.strip().splitlines()
    key = lines[0].strip() if lines else ''
    if not key.startswith(KEY_PREFIXES):
        raise KeyDiscoveryError(
            f'{path} does not look like an SSH public key '
            f'(expected one of: {", ".join(KEY_PREFIXES)})'
        )
    return key


def locate_public_key(
    explicit: str | None, search_paths: Sequence[str]
) -> tuple[Path, str]:
    """Resolve the key file to install and return ``(path, key_line)``.

    An explicit path is used as given. Otherwise the first existing entry of
    ``search_paths`` wins.
    """
    if explicit:
        path = Path(expand(explicit))
        if not path.exists():
            raise KeyDiscoveryError(f'Public key not found: {path}')
        return path, read_public_key(path)
    for raw in search_paths:
        path = Path(expand(raw))
        if path.is_file():
            log.debug('Using SSH public key {}', path)
            return path, read_public_key(path)
    raise KeyDiscoveryError(
        'No SSH public key found. Please specify public_key_path or '
        'generate a key with ssh-keygen.'
    )
