"""Host platform helpers using Go's GOOS/GOARCH naming."""

from __future__ import annotations

import logging
import os
import platform
import stat
import sys

logger = logging.getLogger(__name__)

# platform.machine() -> GOARCH
_ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "x64": "amd64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "arm",
    "armv6l": "arm",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
}

_EXEC_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


def host_os() -> str:
    """Host OS as a GOOS value (windows, darwin, linux, ...)."""
    if sys.platform == "win32":
        return "windows"
    if sys.platform.startswith("linux"):
        return "linux"
    return sys.platform


def host_arch() -> str:
    """Host architecture as a GOARCH value."""
    machine = platform.machine()
    return _ARCH_ALIASES.get(machine.lower(), machine.lower())


def is_posix_host() -> bool:
    """Whether execute permissions must be granted before running binaries."""
    return host_os() in ("darwin", "linux")


def grant_execute(path: str) -> None:
    """Add execute permission to a file, or recursively to a directory tree.

    Raises:
        OSError: If a permission change fails
    """
    def _chmod(p: str) -> None:
        mode = os.stat(p).st_mode
        os.chmod(p, mode | _EXEC_BITS | stat.S_IRUSR | stat.S_IWUSR)

    _chmod(path)
    if not os.path.isdir(path):
        return
    for dirpath, dirnames, filenames in os.walk(path):
        for name in dirnames + filenames:
            _chmod(os.path.join(dirpath, name))
    logger.debug(f"Granted execute permission under {path}")
