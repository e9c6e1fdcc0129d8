"""Command execution gateway: run prlctl with an argument vector and normalize the outcome."""

from __future__ import annotations

import shlex
import subprocess
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from loguru import logger

from .errors import GatewayError, ValidationError

log = logger

PRLCTL = 'prlctl'
MAX_OUTPUT_BYTES = 10 * 1024 * 1024
_CHUNK = 64 * 1024


@dataclass(frozen=True)
class CmdResult:
    code: int
    stdout: str
    stderr: str


Executor = Callable[[Sequence[str]], CmdResult]


def shell_join(cmd: Sequence[str]) -> str:
    return ' '.join(shlex.quote(c) for c in cmd)


def _decode(data: Optional[bytes]) -> str:
    return (data or b'').decode('utf-8', errors='replace')


def _read_bounded(proc: subprocess.Popen, limit: int) -> tuple[bytes, bytes, bool]:
    """Drain stdout and stderr while holding at most ``limit`` bytes in total.

    Each pipe is read on its own thread. When the combined output passes
    ``limit`` the child is killed and the bytes read so far are returned
    with ``exceeded=True``.
    """
    buffers = {'stdout': bytearray(), 'stderr': bytearray()}
    lock = threading.Lock()
    exceeded = threading.Event()

    def drain(name: str) -> None:
        pipe = getattr(proc, name)
        buf = buffers[name]
        with pipe:
            while not exceeded.is_set():
                chunk = pipe.read1(_CHUNK)
                if not chunk:
                    break
                with lock:
                    used = len(buffers['stdout']) + len(buffers['stderr'])
                    room = max(0, limit - used)
                    buf += chunk[:room]
                    if len(chunk) > room:
                        exceeded.set()
                if exceeded.is_set():
                    proc.kill()

    threads = [
        threading.Thread(target=drain, args=(name,), daemon=True)
        for name in buffers
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    proc.wait()
    return bytes(buffers['stdout']), bytes(buffers['stderr']), exceeded.is_set()


def execute_prlctl(
    args: Sequence[str],
    *,
    binary: str = PRLCTL,
    max_output_bytes: int = MAX_OUTPUT_BYTES,
) -> CmdResult:
    """Run ``prlctl <args...>`` as exactly one child process.

    Returns the captured output on exit code 0. Any other outcome (spawn
    failure, non-zero exit, output above ``max_output_bytes``) raises
    :class:`GatewayError` with the partial stdout/stderr attached, so callers
    can match on text such as ``already running`` or ``could not be found``.
    Output past the cap is never buffered: the child is killed as soon as
    the limit is crossed. No retry and no timeout happen here.
    """
    args = list(args)
    if not args or not str(args[0]).strip():
        raise ValidationError('prlctl requires a subcommand')
    cmd = [binary, *args]
    log.opt(depth=1).debug('RUN: {}', shell_join(cmd))
    try:
        proc = subprocess.Popen(
            cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE
        )
    except OSError as ex:
        log.opt(depth=1).error('Could not spawn {}: {}', binary, ex)
        raise GatewayError(cmd, str(ex)) from ex
    out_b, err_b, exceeded = _read_bounded(proc, max_output_bytes)
    if exceeded:
        log.opt(depth=1).error(
            'Output limit of {} bytes exceeded cmd={}',
            max_output_bytes,
            shell_join(cmd),
        )
        raise GatewayError(
            cmd,
            f'output exceeded {max_output_bytes} bytes',
            code=proc.returncode,
            stdout=_decode(out_b),
            stderr=_decode(err_b),
        )
    res = CmdResult(proc.returncode, _decode(out_b), _decode(err_b))
    if res.code != 0:
        log.opt(depth=1).error(
            'Command failed code={} cmd={} stderr={} stdout={}',
            res.code,
            shell_join(cmd),
            res.stderr.strip(),
            res.stdout.strip(),
        )
        detail = res.stderr.strip() or res.stdout.strip() or 'no output'
        raise GatewayError(
            cmd,
            f'Command failed (code={res.code}): {shell_join(cmd)}: {detail}',
            code=res.code,
            stdout=res.stdout,
            stderr=res.stderr,
        )
    log.opt(depth=1).debug('Command ok code=0 cmd={}', shell_join(cmd))
    return res


def make_executor(
    binary: str = PRLCTL, max_output_bytes: int = MAX_OUTPUT_BYTES
) -> Executor:
    """Bind binary and output cap so workflows can take a one-argument executor."""

    def _execute(args: Sequence[str]) -> CmdResult:
        return execute_prlctl(
            args, binary=binary, max_output_bytes=max_output_bytes
        )

    return _execute
