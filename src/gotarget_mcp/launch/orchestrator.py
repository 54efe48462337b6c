"""Launch orchestrator - starts built release executables.

Start delays are cumulative across the ordered list: each target's delay
pushes back every target after it. Launching does not supervise the child;
a background watcher only logs its output and exit.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import tempfile
from collections.abc import Sequence
from typing import Any

from ..batch import BatchAction, BatchResult, BatchSequencer, CancellationToken, ProgressCallback, Sleeper
from ..errors import ExecutableMissingError, PlatformMismatchError, TargetError
from ..targets import paths
from ..targets.descriptor import Target
from ..utils.platform import grant_execute, host_os

logger = logging.getLogger(__name__)


def cumulative_offsets(targets: Sequence[Target]) -> list[float]:
    """Dispatch offset of each target: the sum of the delays before it."""
    offsets: list[float] = []
    total = 0.0
    for target in targets:
        offsets.append(total)
        total += target.start_delay or 0.0
    return offsets


class LaunchOrchestrator:
    """Starts release builds of targets on the host.

    Usage:
        orchestrator = LaunchOrchestrator("/path/to/workspace")
        result = await orchestrator.start(targets)
    """

    def __init__(
        self,
        workspace_root: str,
        sleep: Sleeper = asyncio.sleep,
        script_dir: str | None = None,
    ):
        """Initialize orchestrator.

        Args:
            workspace_root: Root directory of workspace
            sleep: Delay implementation, replaceable for tests
            script_dir: Where macOS terminal scripts are written (default: temp dir)
        """
        self._workspace_root = os.path.abspath(workspace_root)
        self._sleep = sleep
        self._script_dir = script_dir or tempfile.gettempdir()
        self._watchers: set[asyncio.Task] = set()

    def get_launch_command(
        self,
        target: Target,
        exe_dir: str,
        exe_file: str,
        platform_name: str | None = None,
    ) -> list[str]:
        """Platform-specific command that launches the executable.

        - windows: detached ``start`` through cmd
        - darwin: a new Terminal window running a generated script
        - linux: the executable itself
        """
        platform_name = platform_name or host_os()
        args = list(target.start_args)

        if platform_name == "windows":
            return ["cmd", "/c", "start", "", exe_file, *args]

        if platform_name == "darwin":
            script = os.path.join(self._script_dir, paths.executable_name(target))
            line = " ".join(shlex.quote(part) for part in [exe_file, *args])
            with open(script, "w", encoding="utf-8") as f:
                f.write(f"cd {shlex.quote(exe_dir)}\n{line}\n")
            os.chmod(script, 0o777)
            return ["open", "-a", "Terminal", script]

        return [exe_file, *args]

    async def _watch(self, target_id: str, process: asyncio.subprocess.Process) -> None:
        """Log child output until it exits."""
        label = f"Start({target_id})"

        async def pump(stream: asyncio.StreamReader | None, level: int) -> None:
            if stream is None:
                return
            while True:
                line = await stream.readline()
                if not line:
                    break
                logger.log(level, f"{label}: {line.decode('utf-8', errors='replace').rstrip()}")

        try:
            await asyncio.gather(
                pump(process.stdout, logging.INFO),
                pump(process.stderr, logging.INFO),
            )
            code = await process.wait()
            if code:
                logger.error(f"{label}: process exited with code {code}")
            else:
                logger.info(f"{label}: process exited")
        except Exception:
            logger.exception(f"{label}: watcher error")

    async def start_target(self, target: Target) -> dict[str, Any]:
        """Launch one target without waiting for it to exit.

        Raises:
            PlatformMismatchError: If the target OS is not the host OS
            ExecutableMissingError: If the release build does not exist
            TargetError: If permissions cannot be granted or spawning fails
        """
        current = host_os()
        if target.os != current:
            raise PlatformMismatchError(str(target.os), current)

        env = paths.RELEASE
        exe_dir = paths.executable_dir(target, env, self._workspace_root)
        exe_file = paths.executable_file(target, env, self._workspace_root)
        if not os.path.isfile(exe_file):
            raise ExecutableMissingError(exe_file)

        try:
            if current in ("darwin", "linux"):
                grant_execute(exe_dir)
            command = self.get_launch_command(target, exe_dir, exe_file, current)
        except OSError as e:
            raise TargetError(f"failed to prepare launch: {e}") from e

        logger.info(f"Start({target.id}): {' '.join(command)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=exe_dir,
            )
        except OSError as e:
            raise TargetError(f"failed to spawn: {e}") from e

        watcher = asyncio.create_task(self._watch(target.id, process))
        self._watchers.add(watcher)
        watcher.add_done_callback(self._watchers.discard)

        return {"pid": process.pid, "command": command, "executable": exe_file}

    async def start(
        self,
        targets: Sequence[Target],
        token: CancellationToken | None = None,
        progress: ProgressCallback | None = None,
    ) -> BatchResult:
        """Launch a batch of targets with cumulative start delays.

        Raises:
            BatchCancelledError: If the batch was cancelled
        """
        sequencer = BatchSequencer(
            BatchAction.START,
            targets,
            token=token,
            progress=progress,
            sleep=self._sleep,
        )
        return await sequencer.run_pipelined(self.start_target, offsets=cumulative_offsets(targets))

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for launched processes to exit (used at shutdown and in tests)."""
        if not self._watchers:
            return
        await asyncio.wait(set(self._watchers), timeout=timeout)
