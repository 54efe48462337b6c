"""Debug orchestrator - starts Delve sessions for debug builds.

Targets are attached strictly one after another. Once a session has
attached, or failed to, the next target waits its own start delay before
it is dispatched.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Sequence
from enum import Enum
from typing import Any

from ..batch import BatchAction, BatchResult, BatchSequencer, CancellationToken, ProgressCallback, Sleeper
from ..errors import ExecutableMissingError, PlatformMismatchError, TargetError
from ..session import DelveLauncher, LaunchRequest, SessionLauncher, SessionRegistry
from ..targets import paths
from ..targets.descriptor import Target
from ..utils.platform import grant_execute, host_os, is_posix_host

logger = logging.getLogger(__name__)


class DebugPhase(str, Enum):
    """Per-target debug progression."""
    PENDING = "pending"
    UNSUPPORTED = "unsupported"  # Target OS differs from host
    EXECUTABLE_MISSING = "executable_missing"
    SESSION_STARTING = "session_starting"
    SESSION_ATTACHED = "session_attached"
    SESSION_FAILED = "session_failed"


class DebugOrchestrator:
    """Starts a debug session per target and records it in the registry.

    Usage:
        orchestrator = DebugOrchestrator("/path/to/workspace", registry)
        result = await orchestrator.debug(targets)
    """

    def __init__(
        self,
        workspace_root: str,
        registry: SessionRegistry,
        launcher: SessionLauncher | None = None,
        sleep: Sleeper = asyncio.sleep,
    ):
        self._workspace_root = os.path.abspath(workspace_root)
        self._registry = registry
        self._launcher = launcher or DelveLauncher()
        self._sleep = sleep
        self._phases: dict[str, DebugPhase] = {}

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    def get_phase(self, target_id: str) -> DebugPhase:
        return self._phases.get(target_id, DebugPhase.PENDING)

    def get_launch_request(self, target: Target) -> LaunchRequest:
        """Session parameters for a target's debug build."""
        exe_dir = paths.executable_dir(target, paths.DEBUG, self._workspace_root)
        return LaunchRequest(
            name=target.id,
            program=paths.executable_file(target, paths.DEBUG, self._workspace_root),
            cwd=exe_dir,
            args=list(target.start_args),
            dlv_flags=list(target.dlv_flags),
        )

    async def debug_target(self, target: Target) -> dict[str, Any]:
        """Start one debug session.

        Raises:
            PlatformMismatchError: If the target OS is not the host OS
            ExecutableMissingError: If the debug build does not exist
            TargetError: If the session fails to start
        """
        current = host_os()
        if target.os != current:
            self._phases[target.id] = DebugPhase.UNSUPPORTED
            raise PlatformMismatchError(str(target.os), current)

        request = self.get_launch_request(target)
        if not os.path.isfile(request.program):
            self._phases[target.id] = DebugPhase.EXECUTABLE_MISSING
            raise ExecutableMissingError(request.program)

        if is_posix_host():
            try:
                grant_execute(request.cwd)
            except OSError as e:
                logger.error(f"Debug({target.id}): failed to grant execute permission: {e}")

        self._phases[target.id] = DebugPhase.SESSION_STARTING
        logger.info(f"Debug({target.id}): starting session for {request.program}")
        try:
            session = await self._launcher.launch(request)
        except Exception as e:
            self._phases[target.id] = DebugPhase.SESSION_FAILED
            raise TargetError(f"debug session failed to start: {e}") from e

        await self._registry.register(session)
        self._phases[target.id] = DebugPhase.SESSION_ATTACHED
        logger.info(f"Debug({target.id}): session attached")
        return {"session": target.id, "program": request.program}

    async def debug(
        self,
        targets: Sequence[Target],
        token: CancellationToken | None = None,
        progress: ProgressCallback | None = None,
    ) -> BatchResult:
        """Start sessions one by one, honouring each target's start delay.

        Raises:
            BatchCancelledError: If the batch was cancelled
        """
        for target in targets:
            self._phases[target.id] = DebugPhase.PENDING
        sequencer = BatchSequencer(
            BatchAction.DEBUG,
            targets,
            token=token,
            progress=progress,
            sleep=self._sleep,
        )
        return await sequencer.run_sequential(
            self.debug_target,
            delays=[target.start_delay or 0.0 for target in targets],
        )
