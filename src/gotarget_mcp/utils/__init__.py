"""Utility modules for gotarget-mcp."""

from .platform import grant_execute, host_arch, host_os, is_posix_host
from .project import WorkspaceRootConfig, find_workspace_root, get_workspace_root, parse_file_uri

__all__ = [
    "find_workspace_root",
    "get_workspace_root",
    "grant_execute",
    "host_arch",
    "host_os",
    "is_posix_host",
    "parse_file_uri",
    "WorkspaceRootConfig",
]
