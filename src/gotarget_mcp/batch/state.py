"""Batch execution state and result types."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class BatchAction(str, Enum):
    """Orchestrator actions."""

    BUILD = "build"
    START = "start"
    STOP = "stop"
    DEBUG = "debug"

    @property
    def verb(self) -> str:
        """Past tense used in summaries ("Built 2 target(s).")."""
        return _VERBS[self]

    @property
    def title(self) -> str:
        """Progress title ("Building target(s)")."""
        return f"{_GERUNDS[self]} target(s)"


_VERBS = {
    BatchAction.BUILD: "Built",
    BatchAction.START: "Started",
    BatchAction.STOP: "Stopped",
    BatchAction.DEBUG: "Debugged",
}

_GERUNDS = {
    BatchAction.BUILD: "Building",
    BatchAction.START: "Starting",
    BatchAction.STOP: "Stopping",
    BatchAction.DEBUG: "Debugging",
}


@dataclass
class TargetOutcome:
    """Outcome of one target within a batch."""

    target_id: str
    success: bool
    error: str | None = None
    skipped: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {"target": self.target_id, "success": self.success}
        if self.error:
            result["error"] = self.error
        if self.skipped:
            result["skipped"] = True
        if self.details:
            result["details"] = self.details
        return result


@dataclass
class BatchResult:
    """Aggregated result of one orchestrator invocation."""

    action: BatchAction
    total: int
    outcomes: list[TargetOutcome] = field(default_factory=list)
    cancelled: bool = False

    @property
    def done(self) -> int:
        """Targets finished, including failures and cancellation skips."""
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> list[str]:
        """IDs of targets whose operation ran and failed."""
        return [o.target_id for o in self.outcomes if not o.success and not o.skipped]

    @property
    def skipped(self) -> list[str]:
        """IDs of targets never dispatched because of cancellation."""
        return [o.target_id for o in self.outcomes if o.skipped]

    @property
    def success(self) -> bool:
        return not self.cancelled and not self.failed

    def summary(self) -> str:
        """Human-readable one-line summary."""
        if self.total == 0:
            return "No target(s) was selected."
        verb = self.action.verb
        failed = self.failed
        if not failed:
            text = f"{verb} {self.succeeded} target(s)."
        else:
            text = (
                f"{verb} {self.succeeded} target(s), "
                f"failed({len(failed)}): {', '.join(failed)}."
            )
        if self.cancelled:
            text += f" {self.action.title} has been canceled."
        return text

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "action": self.action.value,
            "total": self.total,
            "done": self.done,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "cancelled": self.cancelled,
            "summary": self.summary(),
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


class CancellationToken:
    """Batch-wide cancellation signal, settable once.

    Checked cooperatively at per-target dispatch boundaries; never aborts
    work that has already been dispatched.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None
        self._listeners: list[Callable[[], None]] = []

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = "cancelled by user") -> bool:
        """Trip the token.

        Returns:
            True if this call cancelled it, False if it was already cancelled
        """
        if self._event.is_set():
            return False
        self._reason = reason
        self._event.set()
        for listener in self._listeners:
            try:
                listener()
            except Exception:
                logger.exception("Cancellation listener error")
        return True

    def on_cancel(self, listener: Callable[[], None]) -> None:
        """Register a callback invoked once when the token trips."""
        self._listeners.append(listener)

    async def wait(self) -> None:
        """Wait until the token trips."""
        await self._event.wait()
