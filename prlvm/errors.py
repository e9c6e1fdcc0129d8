"""Project-specific exception types."""

from __future__ import annotations

from typing import Sequence


class PrlVMError(RuntimeError):
    """Base error for domain-level prlvm failures."""


class ValidationError(PrlVMError):
    """Raised when tool parameters are rejected before any prlctl call."""


class KeyDiscoveryError(PrlVMError):
    """Raised when no usable SSH public key can be located."""


class StepError(PrlVMError):
    """Raised by a workflow action whose outcome is a failure without a command error."""


class GatewayError(PrlVMError):
    """A prlctl invocation that failed, carrying whatever output it produced."""

    def __init__(
        self,
        cmd: Sequence[str],
        message: str,
        *,
        code: int | None = None,
        stdout: str = '',
        stderr: str = '',
    ):
        self.cmd = list(cmd)
        self.code = code
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(
            f'prlctl command failed: {message}\n'
            f'stdout: {stdout}\n'
            f'stderr: {stderr}'
        )
