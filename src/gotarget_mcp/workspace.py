"""Per-workspace services: target catalog, selections, sessions and actions."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Sequence

from .batch import BatchResult, CancellationToken, ProgressCallback, Sleeper
from .build import BuildOrchestrator, BuildPolicy
from .build.policy import find_go
from .config import ServerConfig
from .debug import DebugOrchestrator
from .launch import LaunchOrchestrator
from .session import DelveLauncher, SessionLauncher, SessionRegistry
from .stop import StopOrchestrator, kill_port
from .stop.orchestrator import PortKiller
from .targets import SelectionStore, Target, TargetCatalog, default_matches, filter_ids
from .targets.selection import ACTIONS
from .workflow import Workflow

logger = logging.getLogger(__name__)


class Workspace:
    """Everything the server needs to act on one workspace root."""

    def __init__(
        self,
        root: str,
        config: ServerConfig,
        sleep: Sleeper = asyncio.sleep,
        session_launcher: SessionLauncher | None = None,
        port_killer: PortKiller = kill_port,
    ):
        self.root = os.path.abspath(root)
        self.config = config
        self.catalog = TargetCatalog(config.config_path_for(self.root))
        self.selections = SelectionStore(config.prefs_path)
        self.registry = SessionRegistry()

        self.builder = BuildOrchestrator(
            self.root,
            policy=BuildPolicy(go_path=find_go(config.go_path)),
            max_concurrency=config.build_jobs,
        )
        self.launcher = LaunchOrchestrator(self.root, sleep=sleep)
        self.debugger = DebugOrchestrator(
            self.root,
            self.registry,
            launcher=session_launcher or DelveLauncher(config.dlv_path),
            sleep=sleep,
        )
        self.stopper = StopOrchestrator(self.root, self.registry, kill_port=port_killer, sleep=sleep)
        self.workflow = Workflow(self.builder, self.launcher, self.debugger, self.stopper)

    def candidates(self, action: str) -> list[str]:
        """Target IDs offered for an action on this host."""
        return filter_ids(self.catalog.ids, default_matches(action))

    def select(self, action: str, target_ids: Sequence[str] | None = None) -> list[Target]:
        """Targets for an action.

        An explicit list is used as given and remembered; otherwise the
        remembered selection (or every candidate) is used.

        Raises:
            ValueError: If the action is unknown
            TargetConfigError: If an explicit ID is unknown
        """
        if action not in ACTIONS:
            raise ValueError(f"Unknown action: {action}")

        if target_ids is None:
            ids = self.selections.load(self.root, action, self.candidates(action))
            return self.catalog.resolve(ids)

        targets = self.catalog.resolve(target_ids)
        try:
            self.selections.save(self.root, action, [t.id for t in targets])
        except OSError as e:
            logger.warning(f"Failed to remember selection: {e}")
        return targets

    async def run(
        self,
        action: str,
        targets: Sequence[Target],
        token: CancellationToken | None = None,
        progress: ProgressCallback | None = None,
        debug: bool = False,
    ) -> list[BatchResult]:
        """Run a workflow action.

        Raises:
            ValueError: If the action is unknown
            BatchCancelledError: If the action was cancelled
        """
        if action == "build":
            return await self.workflow.build(targets, token, progress, debug=debug)
        if action == "start":
            return await self.workflow.start(targets, token, progress)
        if action == "stop":
            return await self.workflow.stop(targets, token, progress)
        if action == "debug":
            return await self.workflow.debug(targets, token, progress)
        raise ValueError(f"Unknown action: {action}")

    async def shutdown(self) -> None:
        """Stop debug sessions and wait for pending stop work."""
        await self.registry.stop_all()
        await self.stopper.drain(timeout=self.workflow.drain_timeout)
