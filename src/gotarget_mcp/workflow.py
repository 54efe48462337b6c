"""User-level actions composed from batch steps.

- build: Build(release)
- start: Stop, then Start
- stop: Stop
- debug: Stop, then Build(debug), then Debug

All steps of one action share a cancellation token; a cancelled step ends
the action. Progress of each step is mapped onto its own slice of 0-100.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence

from .batch import BatchResult, CancellationToken, ProgressCallback
from .build import BuildOrchestrator
from .debug import DebugOrchestrator
from .launch import LaunchOrchestrator
from .stop import StopOrchestrator
from .targets.descriptor import Target

logger = logging.getLogger(__name__)

DEFAULT_DRAIN_TIMEOUT = 10.0

Step = Callable[[ProgressCallback | None], Awaitable[BatchResult]]


def segment_progress(
    progress: ProgressCallback | None, index: int, count: int
) -> ProgressCallback | None:
    """Scale a step's 0-100 progress into slice ``index`` of ``count``."""
    if progress is None or count <= 1:
        return progress

    async def report(value: float, total: float, message: str) -> None:
        share = value / total if total else 1.0
        await progress((index + share) * total / count, total, message)

    return report


class Workflow:
    """Runs the build, start, stop and debug actions.

    Usage:
        workflow = Workflow(builder, launcher, debugger, stopper)
        results = await workflow.debug(targets, token, progress)
    """

    def __init__(
        self,
        builder: BuildOrchestrator,
        launcher: LaunchOrchestrator,
        debugger: DebugOrchestrator,
        stopper: StopOrchestrator,
        drain_timeout: float = DEFAULT_DRAIN_TIMEOUT,
    ):
        self.builder = builder
        self.launcher = launcher
        self.debugger = debugger
        self.stopper = stopper
        self.drain_timeout = drain_timeout

    async def _run(
        self, steps: Sequence[Step], progress: ProgressCallback | None
    ) -> list[BatchResult]:
        results = []
        for index, step in enumerate(steps):
            results.append(await step(segment_progress(progress, index, len(steps))))
        return results

    async def _stop_and_settle(
        self,
        targets: Sequence[Target],
        token: CancellationToken | None,
        progress: ProgressCallback | None,
    ) -> BatchResult:
        result = await self.stopper.stop(targets, token, progress)
        await self.stopper.drain(timeout=self.drain_timeout)
        return result

    async def build(
        self,
        targets: Sequence[Target],
        token: CancellationToken | None = None,
        progress: ProgressCallback | None = None,
        debug: bool = False,
    ) -> list[BatchResult]:
        """Build targets (release unless ``debug``).

        Raises:
            BatchCancelledError: If the action was cancelled
        """
        return await self._run(
            [lambda p: self.builder.build(targets, debug, token, p)],
            progress,
        )

    async def start(
        self,
        targets: Sequence[Target],
        token: CancellationToken | None = None,
        progress: ProgressCallback | None = None,
    ) -> list[BatchResult]:
        """Stop running instances, then start the release builds.

        Raises:
            BatchCancelledError: If the action was cancelled
        """
        return await self._run(
            [
                lambda p: self._stop_and_settle(targets, token, p),
                lambda p: self.launcher.start(targets, token, p),
            ],
            progress,
        )

    async def stop(
        self,
        targets: Sequence[Target],
        token: CancellationToken | None = None,
        progress: ProgressCallback | None = None,
    ) -> list[BatchResult]:
        """Stop targets.

        Raises:
            BatchCancelledError: If the action was cancelled
        """
        return await self._run(
            [lambda p: self.stopper.stop(targets, token, p)],
            progress,
        )

    async def debug(
        self,
        targets: Sequence[Target],
        token: CancellationToken | None = None,
        progress: ProgressCallback | None = None,
    ) -> list[BatchResult]:
        """Stop running instances, build debug variants and attach to them.

        Raises:
            BatchCancelledError: If the action was cancelled
        """
        return await self._run(
            [
                lambda p: self._stop_and_settle(targets, token, p),
                lambda p: self.builder.build(targets, True, token, p),
                lambda p: self.debugger.debug(targets, token, p),
            ],
            progress,
        )
