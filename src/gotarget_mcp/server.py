"""MCP Server for Go multi-target orchestration."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import Context, FastMCP
from pydantic import AnyUrl

from .batch import CancellationToken
from .config import ServerConfig
from .errors import BatchCancelledError, TargetError
from .targets.selection import ACTIONS
from .utils.project import WorkspaceRootConfig, get_workspace_root, get_workspace_root_sync
from .workspace import Workspace

logger = logging.getLogger(__name__)

# Server state (single process, one Workspace per root)
_config: ServerConfig = ServerConfig()
_root_config: WorkspaceRootConfig = WorkspaceRootConfig()
_workspaces: dict[str, Workspace] = {}
_active_tokens: set[CancellationToken] = set()


def get_workspace(root: str | Path) -> Workspace:
    """Get or create the services for a workspace root."""
    key = os.path.abspath(str(root))
    workspace = _workspaces.get(key)
    if workspace is None:
        logger.info(f"Opening workspace {key}")
        workspace = Workspace(key, _config)
        _workspaces[key] = workspace
    return workspace


def get_workspaces() -> list[Workspace]:
    return list(_workspaces.values())


async def resolve_workspace(ctx: Context | None = None) -> Workspace:
    """Workspace for the current request.

    Raises:
        TargetError: If no workspace root can be determined
    """
    root = await get_workspace_root(_root_config, ctx)
    if root is None:
        raise TargetError("Cannot determine workspace root")
    return get_workspace(root)


def default_workspace() -> Workspace:
    """Workspace used where no request context exists (resources).

    Raises:
        TargetError: If no workspace root can be determined
    """
    root = get_workspace_root_sync(_root_config)
    if root is None:
        raise TargetError("Cannot determine workspace root")
    return get_workspace(root)


def cancel_active_batches(reason: str = "cancelled by user") -> int:
    """Trip the token of every running action.

    Returns:
        Number of actions signalled
    """
    cancelled = 0
    for token in list(_active_tokens):
        if token.cancel(reason):
            cancelled += 1
    return cancelled


async def notify_resource_changed(ctx: Context | None, uri: str) -> None:
    """Notify client that a resource has changed."""
    try:
        if ctx is not None and ctx.session:
            await ctx.session.send_resource_updated(AnyUrl(uri))
    except Exception:
        logger.debug(f"Resource update notification failed for {uri}")


async def run_action(
    ctx: Context | None,
    action: str,
    targets: list[str] | None = None,
    debug: bool = False,
) -> dict[str, Any]:
    """Select targets and run one workflow action for a tool call."""
    try:
        workspace = await resolve_workspace(ctx)
        selected = workspace.select(action, targets)
    except (TargetError, ValueError) as e:
        return {"success": False, "error": str(e)}

    if not selected:
        logger.warning("No target(s) was selected.")
        return {"success": False, "error": "No target(s) was selected."}

    async def report_progress(progress: float, total: float, message: str) -> None:
        if ctx is not None:
            await ctx.report_progress(progress=progress, total=total, message=message)

    token = CancellationToken()
    _active_tokens.add(token)
    try:
        results = await workspace.run(action, selected, token, report_progress, debug=debug)
    except BatchCancelledError as e:
        return {
            "success": False,
            "cancelled": True,
            "error": str(e),
            "data": e.result.to_dict() if e.result else None,
        }
    except asyncio.CancelledError:
        token.cancel("request cancelled")
        raise
    except Exception as e:
        logger.exception(f"{action} failed")
        return {"success": False, "error": str(e)}
    finally:
        _active_tokens.discard(token)

    if action in ("stop", "debug"):
        await notify_resource_changed(ctx, "targets://sessions")

    return {
        "success": all(r.success for r in results),
        "data": {
            "summary": " ".join(r.summary() for r in results),
            "steps": [r.to_dict() for r in results],
        },
    }


def create_server(
    workspace: str | None = None,
    config: ServerConfig | None = None,
    use_workspace_from_cwd: bool = False,
) -> FastMCP:
    """Create and configure the MCP server.

    Args:
        workspace: Explicit workspace root (--workspace)
        config: Toolchain and persistence settings
        use_workspace_from_cwd: Search upward from CWD for Go markers
    """
    global _config, _root_config
    _config = config or ServerConfig.from_env()
    _root_config = WorkspaceRootConfig(
        startup_cwd=Path.cwd(),
        use_workspace_from_cwd=use_workspace_from_cwd,
        explicit_workspace=Path(workspace) if workspace else None,
    )
    _workspaces.clear()
    _active_tokens.clear()

    mcp = FastMCP("gotarget-mcp")

    # ============== Target Tools ==============

    @mcp.tool()
    async def list_targets(ctx: Context, action: str | None = None) -> dict:
        """
        List configured Go targets.

        Without an action, returns every target. With an action (build, start,
        stop, debug), returns the targets offered for it on this host and the
        remembered selection used when a tool is called without targets.

        Args:
            action: Optional action to filter candidates for
        """
        try:
            workspace = await resolve_workspace(ctx)
            if action is None:
                return {
                    "success": True,
                    "data": {"targets": [t.to_dict() for t in workspace.catalog.targets]},
                }
            if action not in ACTIONS:
                return {"success": False, "error": f"Unknown action: {action}"}
            candidates = workspace.candidates(action)
            return {
                "success": True,
                "data": {
                    "candidates": candidates,
                    "selected": workspace.selections.load(workspace.root, action, candidates),
                },
            }
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def reload_targets(ctx: Context) -> dict:
        """Reload the target configuration file."""
        try:
            workspace = await resolve_workspace(ctx)
            count = workspace.catalog.reload()
            await notify_resource_changed(ctx, "targets://list")
            return {
                "success": True,
                "data": {"count": count, "config": workspace.catalog.config_path},
            }
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def build_targets(
        ctx: Context, targets: list[str] | None = None, debug: bool = False
    ) -> dict:
        """
        Build Go targets with `go build`.

        Release builds strip symbols; debug builds disable optimizations and
        inlining so they can be debugged. Copy rules run after each successful
        build.

        Args:
            targets: Target IDs (default: remembered selection for build)
            debug: Build the debug variant instead of release
        """
        return await run_action(ctx, "build", targets, debug=debug)

    @mcp.tool()
    async def start_targets(ctx: Context, targets: list[str] | None = None) -> dict:
        """
        Stop running instances, then launch release builds.

        Start delays are cumulative: each target waits for the delays of
        every target before it.

        Args:
            targets: Target IDs (default: remembered selection for start)
        """
        return await run_action(ctx, "start", targets)

    @mcp.tool()
    async def stop_targets(ctx: Context, targets: list[str] | None = None) -> dict:
        """
        Stop targets through their debug session and the ports in their port file.

        Args:
            targets: Target IDs (default: remembered selection for stop)
        """
        return await run_action(ctx, "stop", targets)

    @mcp.tool()
    async def debug_targets(ctx: Context, targets: list[str] | None = None) -> dict:
        """
        Stop running instances, build debug variants and start a Delve session for each.

        Sessions start one after another; each target waits for the previous
        session to attach and then for its own start delay.

        Args:
            targets: Target IDs (default: remembered selection for debug)
        """
        return await run_action(ctx, "debug", targets)

    @mcp.tool()
    async def cancel_batch() -> dict:
        """
        Cancel running actions.

        Targets not yet dispatched are skipped; operations already running
        finish on their own.
        """
        count = cancel_active_batches()
        return {"success": True, "data": {"cancelled": count}}

    @mcp.tool()
    async def list_sessions(ctx: Context) -> dict:
        """List live debug sessions by target ID."""
        try:
            workspace = await resolve_workspace(ctx)
            return {"success": True, "data": workspace.registry.to_dict()}
        except Exception as e:
            return {"success": False, "error": str(e)}

    # ============== Resources ==============

    @mcp.resource("targets://list", mime_type="application/json")
    async def targets_resource() -> str:
        """Configured targets (JSON).

        Updates when: the configuration file changes or is reloaded.
        """
        workspace = default_workspace()
        return json.dumps([t.to_dict() for t in workspace.catalog.targets], indent=2)

    @mcp.resource("targets://sessions", mime_type="application/json")
    async def sessions_resource() -> str:
        """Live debug sessions (JSON).

        Updates when: sessions start, stop or terminate.
        """
        workspace = default_workspace()
        return json.dumps(workspace.registry.to_dict(), indent=2)

    logger.info("gotarget MCP Server initialized")
    return mcp
