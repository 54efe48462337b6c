"""Entry point for gotarget-mcp server."""

import argparse
import asyncio
import logging
import os
import sys

from .config import ServerConfig
from .server import create_server, get_workspaces


def configure_logging() -> None:
    """Configure logging based on environment."""
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="gotarget MCP Server - build, start, stop and debug Go targets via MCP"
    )
    parser.add_argument(
        "--workspace",
        type=str,
        default=None,
        help="Workspace root containing the target configuration.",
    )
    parser.add_argument(
        "--workspace-from-cwd",
        action="store_true",
        default=False,
        help="Auto-detect workspace from current working directory. "
        "Searches upward for go.work, go.mod or .git markers. "
        "Cannot be used with --workspace.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Target configuration file (default: .vscode/settings.json, "
        "then gotarget.json in the workspace).",
    )
    return parser.parse_args(argv)


async def main() -> None:
    """Main entry point."""
    configure_logging()
    logger = logging.getLogger(__name__)

    args = parse_args()

    if args.workspace_from_cwd and args.workspace is not None:
        logger.error("--workspace-from-cwd cannot be used with --workspace")
        sys.exit(1)

    config = ServerConfig.from_env(config_path=args.config)
    logger.info(f"Starting gotarget MCP Server (workspace: {args.workspace or os.getcwd()})...")

    mcp = create_server(
        workspace=args.workspace,
        config=config,
        use_workspace_from_cwd=args.workspace_from_cwd,
    )

    try:
        await mcp.run_stdio_async()
    except Exception:
        logger.exception("Server error")
        raise
    finally:
        for workspace in get_workspaces():
            await workspace.shutdown()
        logger.info("Server stopped")


def run() -> None:
    """Run the server."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
