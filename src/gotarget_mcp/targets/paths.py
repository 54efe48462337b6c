"""Path derivation for target build outputs.

Pure functions shared by the build, launch, debug and stop orchestrators.
Given equal inputs they always return identical strings: the builder writes
to these paths and the terminator must find them again later.
"""

from __future__ import annotations

import os
from typing import Final

from .descriptor import Target

DEBUG: Final = "debug"
RELEASE: Final = "release"
ENVIRONMENTS: Final = (DEBUG, RELEASE)

DEFAULT_BUILD_PATH: Final = "bin"


def _check_env(env: str) -> None:
    if env not in ENVIRONMENTS:
        raise ValueError(f"Unknown build environment: {env!r} (expected debug or release)")


def _rooted(path: str, workspace_root: str) -> str:
    """Resolve a possibly workspace-relative path."""
    if os.path.isabs(path):
        return os.path.normpath(path)
    return os.path.normpath(os.path.join(workspace_root, path))


def env_name(debug: bool) -> str:
    """Build environment tag for a build mode."""
    return DEBUG if debug else RELEASE


def platform_tag(target: Target) -> str:
    """``{os}_{arch}`` directory component."""
    return f"{target.os}_{target.arch}"


def executable_name(target: Target) -> str:
    """File name of the produced executable."""
    return f"{target.name}.exe" if target.os == "windows" else target.name


def executable_dir(target: Target, env: str, workspace_root: str) -> str:
    """Output directory of one build variant.

    Layout: ``<buildPath>/<os>_<arch>/<env>/<name>``. An unset ``buildPath``
    is treated as ``bin``.
    """
    _check_env(env)
    build_root = _rooted(target.build_path or DEFAULT_BUILD_PATH, workspace_root)
    return os.path.join(build_root, platform_tag(target), env, target.name)


def executable_file(target: Target, env: str, workspace_root: str) -> str:
    """Full path of the produced executable."""
    return os.path.join(executable_dir(target, env, workspace_root), executable_name(target))


def source_dir(target: Target, workspace_root: str) -> str:
    """Source root of the target; an unset ``scriptPath`` is the workspace root."""
    return _rooted(target.script_path or ".", workspace_root)


def port_file(target: Target, env: str, workspace_root: str) -> str | None:
    """Port record file written by the running target, or None if not declared."""
    if not target.stop_port:
        return None
    return os.path.join(executable_dir(target, env, workspace_root), target.stop_port)


def resolve_source(path: str, workspace_root: str) -> str:
    """Resolve a staging rule source (absolute or workspace-relative)."""
    return _rooted(path, workspace_root)


def resolve_destination(path: str | None, exe_dir: str) -> str:
    """Resolve a staging rule destination relative to the output directory."""
    if not path:
        return exe_dir
    if os.path.isabs(path):
        return os.path.normpath(path)
    return os.path.join(exe_dir, path)
