"""Target orchestration exceptions."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .batch.state import BatchResult


class TargetError(Exception):
    """Base exception for per-target failures."""

    pass


class TargetConfigError(TargetError):
    """Raised when a target descriptor is misconfigured."""

    pass


class PlatformMismatchError(TargetError):
    """Raised when a target's OS does not match the host OS."""

    def __init__(self, target_os: str, host_os: str):
        super().__init__(f"program on {target_os} is not supported on {host_os}")
        self.target_os = target_os
        self.host_os = host_os


class ExecutableMissingError(TargetError):
    """Raised when the expected executable file does not exist."""

    def __init__(self, path: str):
        super().__init__(f"{path} doesn't exist")
        self.path = path


class BatchCancelledError(Exception):
    """Raised when a batch is cancelled before all targets were dispatched.

    Carries the partial result; already completed work is not rolled back.
    """

    def __init__(self, message: str, result: BatchResult | None = None):
        super().__init__(message)
        self.result = result
