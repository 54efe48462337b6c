"""Stop orchestrator - ends running targets through two channels.

Session channel: a live debug session for the target is told to stop and
is taken out of the session registry, whatever the stop outcome.

Port channel: the target's port file is read from the debug build if a
session existed, else from the release build (falling back to the debug
build), and every listed port is freed.

Both channels run as background tasks; a target fails only when neither
channel could be attempted. :meth:`StopOrchestrator.drain` waits for the
background work.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from ..batch import BatchAction, BatchResult, BatchSequencer, CancellationToken, ProgressCallback, Sleeper
from ..errors import TargetConfigError, TargetError
from ..session import DebugSession, SessionRegistry
from ..targets import paths
from ..targets.descriptor import Target
from . import ports as port_utils

logger = logging.getLogger(__name__)

PortKiller = Callable[[int], Awaitable[int]]


class StopOrchestrator:
    """Stops targets via their debug session and their listening ports.

    Usage:
        orchestrator = StopOrchestrator("/path/to/workspace", registry)
        result = await orchestrator.stop(targets)
        await orchestrator.drain(timeout=10)
    """

    def __init__(
        self,
        workspace_root: str,
        registry: SessionRegistry,
        kill_port: PortKiller = port_utils.kill_port,
        sleep: Sleeper = asyncio.sleep,
    ):
        self._workspace_root = os.path.abspath(workspace_root)
        self._registry = registry
        self._kill_port = kill_port
        self._sleep = sleep
        self._pending: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        """Number of background stop tasks still running."""
        return len(self._pending)

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def find_port_file(self, target: Target, had_session: bool) -> str:
        """Locate the port file for a target.

        Raises:
            TargetConfigError: If the target declares no port file
            TargetError: If the port file exists in neither build variant
        """
        env = paths.DEBUG if had_session else paths.RELEASE
        path = paths.port_file(target, env, self._workspace_root)
        if path is None:
            raise TargetConfigError("stopPort is not configured")
        if os.path.isfile(path):
            return path

        logger.error(f"Stop({target.id}): {path} doesn't exist")
        if env != paths.DEBUG:
            path = paths.port_file(target, paths.DEBUG, self._workspace_root)
            if path and os.path.isfile(path):
                return path
            logger.error(f"Stop({target.id}): {path} doesn't exist")
        raise TargetError("port file doesn't exist in any build")

    async def _stop_session(self, target_id: str, session: DebugSession) -> None:
        try:
            await session.stop()
            logger.info(f"Stop({target_id}): debug session stopped")
        except Exception:
            logger.exception(f"Stop({target_id}): failed to stop debug session")

    async def _free_ports(self, target_id: str, ports: list[int]) -> None:
        async def free(port: int) -> None:
            try:
                killed = await self._kill_port(port)
                logger.info(f"Stop({target_id}): port {port} freed, {killed} process(es) killed")
            except Exception:
                logger.exception(f"Stop({target_id}): failed to free port {port}")

        await asyncio.gather(*(free(port) for port in ports))

    async def stop_target(self, target: Target) -> dict[str, Any]:
        """Request stop of one target through every available channel.

        Raises:
            TargetError: If neither the session nor the port channel applies
        """
        channels: list[str] = []
        warnings: list[str] = []
        ports: list[int] = []

        session = self._registry.remove(target.id)
        if session is not None and not session.is_active:
            logger.info(f"Stop({target.id}): debug session already ended")
            session = None
        if session is not None:
            logger.info(f"Stop({target.id}): stopping debug session")
            self._spawn(self._stop_session(target.id, session))
            channels.append("session")

        error: TargetError | None = None
        try:
            port_path = self.find_port_file(target, had_session=session is not None)
            ports = port_utils.read_port_file(port_path)
        except OSError as e:
            error = TargetError(f"failed to read port file: {e}")
        except TargetError as e:
            error = e
        else:
            logger.info(f"Stop({target.id}): freeing port(s) {ports} from {port_path}")
            self._spawn(self._free_ports(target.id, ports))
            channels.append("port")

        if error is not None:
            if not channels:
                raise error
            logger.error(f"Stop({target.id}): {error}")
            warnings.append(str(error))

        return {"channels": channels, "ports": ports, "warnings": warnings}

    async def stop(
        self,
        targets: Sequence[Target],
        token: CancellationToken | None = None,
        progress: ProgressCallback | None = None,
    ) -> BatchResult:
        """Stop a batch; each target waits its own stop delay from dispatch.

        Raises:
            BatchCancelledError: If the batch was cancelled
        """
        sequencer = BatchSequencer(
            BatchAction.STOP,
            targets,
            token=token,
            progress=progress,
            sleep=self._sleep,
        )
        return await sequencer.run_pipelined(
            self.stop_target,
            offsets=[target.stop_delay or 0.0 for target in targets],
        )

    async def drain(self, timeout: float | None = None) -> bool:
        """Wait for background stop work.

        Returns:
            True if all background work finished within the timeout
        """
        if not self._pending:
            return True
        _, pending = await asyncio.wait(set(self._pending), timeout=timeout)
        if pending:
            logger.warning(f"{len(pending)} stop task(s) still running")
        return not pending
