"""Batch sequencer - runs one operation per target with progress and cancellation.

Two dispatch policies:

- pipelined: every target is scheduled at its own offset from dispatch time;
  operations may overlap (build, start, stop).
- sequential: the next target starts only after the previous operation has
  settled, plus that next target's delay (debug).

Invariants:
- every target produces exactly one outcome (success, failure or skip)
- cancellation is checked before each dispatch; running operations finish
  and still record their outcome
- an exception inside one target's operation never affects its siblings
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from ..errors import BatchCancelledError, TargetError
from ..targets.descriptor import Target
from .state import BatchAction, BatchResult, CancellationToken, TargetOutcome

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, float, str], Awaitable[None]]
TargetOperation = Callable[[Target], Awaitable[dict[str, Any] | None]]
Sleeper = Callable[[float], Awaitable[None]]

PROGRESS_TOTAL = 100.0


class BatchSequencer:
    """Runs one batch of per-target operations.

    Usage:
        sequencer = BatchSequencer(BatchAction.BUILD, targets, token, progress)
        result = await sequencer.run_pipelined(build_one)
    """

    def __init__(
        self,
        action: BatchAction,
        targets: Sequence[Target],
        token: CancellationToken | None = None,
        progress: ProgressCallback | None = None,
        sleep: Sleeper = asyncio.sleep,
        enter_fraction: float = 0.0,
    ):
        """Initialize sequencer.

        Args:
            action: Action being performed
            targets: Ordered targets
            token: Cancellation signal (a private one is created if omitted)
            progress: Progress callback receiving (progress, total, message)
            sleep: Delay implementation, replaceable for tests
            enter_fraction: Share of each target's progress quantum reported
                when its operation starts; the rest is reported on completion
        """
        self._action = action
        self._targets = list(targets)
        self._token = token or CancellationToken()
        self._progress = progress
        self._sleep = sleep
        self._enter_fraction = min(max(enter_fraction, 0.0), 1.0)
        self._result = BatchResult(action=action, total=len(self._targets))
        self._progress_value = 0.0
        self._index = 0
        self._quantum = PROGRESS_TOTAL / len(self._targets) if self._targets else 0.0

    @property
    def result(self) -> BatchResult:
        """Live batch result."""
        return self._result

    @property
    def index(self) -> int:
        """Number of targets dispatched so far."""
        return self._index

    @property
    def progress(self) -> float:
        """Last reported progress percentage."""
        return self._progress_value

    @property
    def token(self) -> CancellationToken:
        return self._token

    async def _report(self, increment: float, message: str) -> None:
        self._progress_value = min(PROGRESS_TOTAL, self._progress_value + increment)
        if self._progress is None:
            return
        try:
            await self._progress(self._progress_value, PROGRESS_TOTAL, message)
        except Exception:
            logger.exception("Progress callback error")

    async def _delay(self, seconds: float) -> None:
        """Wait for a delay, returning early if the batch is cancelled."""
        if seconds <= 0 or self._token.is_cancelled:
            return
        sleeper = asyncio.ensure_future(self._sleep(seconds))
        canceller = asyncio.ensure_future(self._token.wait())
        try:
            await asyncio.wait({sleeper, canceller}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, canceller):
                if not task.done():
                    task.cancel()

    def _message(self, target: Target) -> str:
        return f"{target.id} ({self._result.done} of {self._result.total})"

    async def _run_one(self, target: Target, operation: TargetOperation) -> None:
        label = f"{self._action.value.capitalize()}({target.id})"

        if self._token.is_cancelled:
            self._result.outcomes.append(
                TargetOutcome(target.id, success=False, error="cancelled", skipped=True)
            )
            logger.info(f"{label}: skipped, batch was canceled")
            await self._report(self._quantum, self._message(target))
            return

        self._index += 1
        if self._enter_fraction > 0:
            await self._report(
                self._quantum * self._enter_fraction,
                f"{target.id} ({self._result.done + 1} of {self._result.total})",
            )

        try:
            details = await operation(target)
        except TargetError as e:
            logger.error(f"{label}: {e}")
            outcome = TargetOutcome(target.id, success=False, error=str(e))
        except Exception as e:
            logger.exception(f"{label}: unexpected error")
            outcome = TargetOutcome(target.id, success=False, error=f"unexpected: {e}")
        else:
            outcome = TargetOutcome(target.id, success=True, details=details or {})

        self._result.outcomes.append(outcome)
        await self._report(self._quantum * (1.0 - self._enter_fraction), self._message(target))

    async def run_pipelined(
        self,
        operation: TargetOperation,
        offsets: Sequence[float] | None = None,
        max_concurrency: int | None = None,
    ) -> BatchResult:
        """Schedule every target at its offset (seconds from dispatch).

        Args:
            operation: Per-target coroutine; raising marks the target failed
            offsets: Delay before each target's dispatch, same order as targets
            max_concurrency: Bound on overlapping operations (None = unbounded)

        Raises:
            BatchCancelledError: If the batch was cancelled
        """
        if not self._targets:
            return self._empty()

        semaphore = asyncio.Semaphore(max_concurrency) if max_concurrency else None

        async def dispatch(position: int, target: Target) -> None:
            offset = offsets[position] if offsets else 0.0
            await self._delay(offset)
            if semaphore is None:
                await self._run_one(target, operation)
                return
            async with semaphore:
                await self._run_one(target, operation)

        await asyncio.gather(*(dispatch(i, t) for i, t in enumerate(self._targets)))
        return await self._finish()

    async def run_sequential(
        self,
        operation: TargetOperation,
        delays: Sequence[float] | None = None,
    ) -> BatchResult:
        """Run targets one after another.

        Each target after the first waits for its own delay once the previous
        operation has settled; the first target's delay is ignored.

        Raises:
            BatchCancelledError: If the batch was cancelled
        """
        if not self._targets:
            return self._empty()

        for position, target in enumerate(self._targets):
            if position > 0 and delays:
                await self._delay(delays[position])
            await self._run_one(target, operation)

        return await self._finish()

    def _empty(self) -> BatchResult:
        logger.warning(f"{self._action.title}: no target(s) was selected.")
        return self._result

    async def _finish(self) -> BatchResult:
        result = self._result
        summary = result.summary()

        if self._token.is_cancelled:
            result.cancelled = True
            summary = result.summary()
            logger.info(summary)
            raise BatchCancelledError(f"{self._action.title} has been canceled.", result)

        if result.failed:
            logger.error(summary)
        else:
            logger.info(summary)
        await self._report(PROGRESS_TOTAL, summary)
        return result
