"""Workspace root detection utilities.

The workspace root is determined from, in order:
1. MCP Roots from client (via Context.list_roots())
2. Environment variable GOTARGET_WORKSPACE
3. Explicit --workspace path
4. Startup CWD, searched upward for Go markers when --workspace-from-cwd is used
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import unquote, urlparse

if TYPE_CHECKING:
    from mcp.server.fastmcp import Context

logger = logging.getLogger(__name__)

# Searched in order; the first marker found anywhere up the tree wins
WORKSPACE_MARKERS = ("go.work", "go.mod", ".git")


@dataclass
class WorkspaceRootConfig:
    """Configuration for workspace root detection."""

    startup_cwd: Path | None = None
    """CWD captured at server startup."""

    use_workspace_from_cwd: bool = False
    """Whether --workspace-from-cwd flag was provided."""

    explicit_workspace: Path | None = None
    """Explicit workspace path from --workspace flag."""

    env_var_names: tuple[str, ...] = field(default_factory=lambda: ("GOTARGET_WORKSPACE",))
    """Environment variable names to check for the workspace root."""


def parse_file_uri(uri: str) -> Path | None:
    """Parse a file:// URI to a Path.

    Handles platform-specific path formats:
    - Unix: file:///home/user/project → /home/user/project
    - Windows: file:///C:/Users/project → C:\\Users\\project
    - Windows UNC: file://server/share → \\\\server\\share

    Args:
        uri: A file:// URI string

    Returns:
        Path object if parsing succeeds, None otherwise
    """
    try:
        parsed = urlparse(str(uri))

        if parsed.scheme != "file":
            logger.warning(f"Not a file URI: {uri}")
            return None

        path_str = unquote(parsed.path)

        if sys.platform == "win32":
            # file:///C:/path → parsed.path = "/C:/path"
            if path_str.startswith("/") and len(path_str) > 2 and path_str[2] == ":":
                path_str = path_str[1:]
            if parsed.netloc:
                path_str = f"\\\\{parsed.netloc}{path_str}"

        path = Path(path_str)
        if not path.is_absolute():
            logger.warning(f"Parsed path is not absolute: {path}")
            return None

        return path

    except ValueError as e:
        logger.warning(f"Failed to parse file URI '{uri}': {e}")
        return None


def find_workspace_root(start_dir: Path | None = None, boundary: Path | None = None) -> Path:
    """Find a Go workspace root by walking up from a directory.

    Searches for markers in this order:
    1. go.work (multi-module workspace)
    2. go.mod (module root)
    3. .git (repository root as fallback)

    Args:
        start_dir: Directory to start search from. Defaults to CWD.
        boundary: If provided, the search does not go above this directory.

    Returns:
        Path to workspace root (falls back to start_dir if no marker is found)
    """
    current = (start_dir or Path.cwd()).resolve()
    stop = boundary.resolve() if boundary is not None else None

    def ancestors() -> Iterator[Path]:
        """Yield current directory and ancestors up to boundary."""
        yield current
        if stop is not None and current == stop:
            return
        for parent in current.parents:
            yield parent
            if stop is not None and parent == stop:
                return

    for marker in WORKSPACE_MARKERS:
        for directory in ancestors():
            if (directory / marker).exists():  # .git can be file (worktree) or dir
                return directory

    return current


async def get_workspace_root(
    config: WorkspaceRootConfig, ctx: Context | None = None
) -> Path | None:
    """Determine the workspace root from available sources.

    Args:
        config: Detection settings captured at startup
        ctx: MCP Context for accessing client-provided roots.
             Can be None if called outside of tool context.

    Returns:
        Path to workspace root, or None if not determinable
    """
    # 1. MCP Roots from client
    if ctx is not None:
        try:
            roots = await ctx.list_roots()
            if roots:
                uri = str(roots[0].uri)
                path = parse_file_uri(uri)
                if path and path.is_dir():
                    logger.debug(f"Using workspace root from MCP client: {path}")
                    return path
                logger.warning(f"MCP root path invalid or not accessible: {uri}")
        except Exception as e:
            # Client may not support roots
            logger.debug(f"Could not get roots from client: {e}")

    return get_workspace_root_sync(config)


def get_workspace_root_sync(config: WorkspaceRootConfig) -> Path | None:
    """Workspace root without MCP roots, e.g. at startup."""
    for env_var in config.env_var_names:
        env_value = os.environ.get(env_var)
        if env_value:
            path = Path(env_value)
            if path.is_dir():
                return path
            logger.warning(f"{env_var}={env_value} - path does not exist or is not a directory")

    if config.explicit_workspace:
        if config.explicit_workspace.is_dir():
            return config.explicit_workspace
        logger.warning(f"Explicit workspace path not valid: {config.explicit_workspace}")

    if config.use_workspace_from_cwd and config.startup_cwd:
        return find_workspace_root(config.startup_cwd)

    return config.startup_cwd
