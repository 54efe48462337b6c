"""Build orchestrator - compiles targets and stages their resources.

Individual compile failures are aggregated into the batch result; only
cancellation escapes as an exception.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections.abc import Sequence

from ..batch import BatchAction, BatchResult, BatchSequencer, CancellationToken, ProgressCallback
from ..targets import paths
from ..targets.descriptor import Target
from .policy import BuildPolicy
from .staging import stage_outputs
from .state import BuildError, BuildResult, BuildState

logger = logging.getLogger(__name__)

# Output buffer limits (security: prevent DoS)
MAX_OUTPUT_BYTES: int = 5_000_000  # 5MB total
MAX_OUTPUT_LINE: int = 10_000  # 10KB per line

# Share of a target's progress reported before the compile starts
ENTER_FRACTION: float = 0.2

DEFAULT_TIMEOUT: float = 600.0
KILL_WAIT_TIMEOUT: float = 2.0


class BuildOrchestrator:
    """Builds targets with the Go toolchain.

    Usage:
        orchestrator = BuildOrchestrator("/path/to/workspace")
        result = await orchestrator.build(targets, debug=False)
    """

    def __init__(
        self,
        workspace_root: str,
        policy: BuildPolicy | None = None,
        max_concurrency: int = 1,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """Initialize orchestrator.

        Args:
            workspace_root: Root directory of workspace
            policy: Build policy (created with defaults if not provided)
            max_concurrency: Maximum overlapping compiles
            timeout: Per-target compile timeout in seconds
        """
        self._workspace_root = os.path.abspath(workspace_root)
        self._policy = policy or BuildPolicy()
        self._max_concurrency = max(1, max_concurrency)
        self._timeout = timeout
        self._states: dict[str, BuildState] = {}
        self._last_results: dict[str, BuildResult] = {}

    @property
    def workspace_root(self) -> str:
        return self._workspace_root

    @property
    def policy(self) -> BuildPolicy:
        return self._policy

    def get_state(self, target_id: str) -> BuildState | None:
        """Build state of a target, or None if it was never built."""
        return self._states.get(target_id)

    def get_last_result(self, target_id: str) -> BuildResult | None:
        """Last build result of a target."""
        return self._last_results.get(target_id)

    def _set_state(self, target_id: str, state: BuildState) -> None:
        old_state = self._states.get(target_id)
        self._states[target_id] = state
        if old_state != state:
            logger.debug(f"Build state {target_id}: {old_state} -> {state.value}")

    async def _run_command(
        self,
        command: list[str],
        cwd: str,
        env: dict[str, str],
    ) -> tuple[int, str, str]:
        """Run command with output capture and timeout.

        Returns:
            Tuple of (exit_code, stdout, stderr)

        Raises:
            OSError: If the process cannot be spawned
            asyncio.TimeoutError: If timeout exceeded
        """
        # Never use shell=True (security)
        process = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            env=env,
        )

        async def read_stream(stream: asyncio.StreamReader | None) -> str:
            if stream is None:
                return ""
            lines: list[str] = []
            total = 0
            while True:
                line = await stream.readline()
                if not line:
                    break
                decoded = line.decode("utf-8", errors="replace")
                # Truncate long lines
                if len(decoded) > MAX_OUTPUT_LINE:
                    decoded = decoded[:MAX_OUTPUT_LINE] + "...[truncated]\n"
                lines.append(decoded)
                total += len(decoded)
                # Drop old lines if buffer too large
                while total > MAX_OUTPUT_BYTES and lines:
                    total -= len(lines.pop(0))
            return "".join(lines)

        try:
            stdout, stderr = await asyncio.wait_for(
                asyncio.gather(read_stream(process.stdout), read_stream(process.stderr)),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Build timeout after {self._timeout}s")
            process.kill()
            try:
                await asyncio.wait_for(process.wait(), timeout=KILL_WAIT_TIMEOUT)
            except asyncio.TimeoutError:
                logger.error(f"Toolchain process {process.pid} did not exit after kill")
            raise

        await process.wait()
        return process.returncode or 0, stdout, stderr

    async def build_target(self, target: Target, debug: bool) -> BuildResult:
        """Compile one target and stage its resources.

        Raises:
            BuildError: If the toolchain fails or cannot be started
            StagingError: If a copy rule fails
        """
        env = paths.env_name(debug)
        label = f"Build({target.id})"
        start_time = time.perf_counter()

        source = paths.source_dir(target, self._workspace_root)
        exe_dir = paths.executable_dir(target, env, self._workspace_root)
        exe_file = paths.executable_file(target, env, self._workspace_root)
        command = self._policy.get_go_command(target, debug, exe_file)

        self._set_state(target.id, BuildState.BUILDING)
        logger.info(f"{label}: {' '.join(command)}")

        try:
            os.makedirs(exe_dir, exist_ok=True)
            exit_code, stdout, stderr = await self._run_command(
                command, cwd=source, env=self._policy.get_environment(target)
            )
        except asyncio.TimeoutError as e:
            self._set_state(target.id, BuildState.FAILED)
            raise BuildError(f"build timeout after {self._timeout}s") from e
        except OSError as e:
            self._set_state(target.id, BuildState.FAILED)
            raise BuildError(f"failed to start toolchain: {e}") from e

        if stdout:
            logger.info(f"{label}.stdout: {stdout}")
        if stderr:
            logger.error(f"{label}.stderr: {stderr}")

        result = BuildResult(
            target_id=target.id,
            success=exit_code == 0,
            state=BuildState.READY if exit_code == 0 else BuildState.FAILED,
            command=command,
            executable=exe_file,
            env=env,
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
        )
        self._last_results[target.id] = result

        if exit_code != 0:
            result.duration_ms = (time.perf_counter() - start_time) * 1000
            self._set_state(target.id, BuildState.FAILED)
            detail = stderr.strip() or stdout.strip()
            raise BuildError(
                f"build failed with exit code {exit_code}: {detail}",
                diagnostics=result.diagnostics,
                exit_code=exit_code,
            )

        if target.build_copy:
            self._set_state(target.id, BuildState.STAGING)
            try:
                result.staged = stage_outputs(target.build_copy, self._workspace_root, exe_dir)
            except Exception:
                result.success = False
                result.state = BuildState.FAILED
                self._set_state(target.id, BuildState.FAILED)
                raise

        result.duration_ms = (time.perf_counter() - start_time) * 1000
        self._set_state(target.id, BuildState.READY)
        logger.info(f"{label}: build succeeded.")
        return result

    async def build(
        self,
        targets: Sequence[Target],
        debug: bool,
        token: CancellationToken | None = None,
        progress: ProgressCallback | None = None,
    ) -> BatchResult:
        """Build a batch of targets.

        Args:
            targets: Ordered targets
            debug: Debug build (unoptimized) instead of release (stripped)
            token: Cancellation signal
            progress: Progress callback

        Returns:
            Aggregated result

        Raises:
            BatchCancelledError: If the batch was cancelled
        """
        for target in targets:
            self._set_state(target.id, BuildState.QUEUED)

        async def build_one(target: Target) -> dict:
            result = await self.build_target(target, debug)
            return result.to_dict()

        sequencer = BatchSequencer(
            BatchAction.BUILD,
            targets,
            token=token,
            progress=progress,
            enter_fraction=ENTER_FRACTION,
        )
        return await sequencer.run_pipelined(build_one, max_concurrency=self._max_concurrency)
