"""Build policy - Go toolchain command line and cross-compilation environment.

Debug builds disable optimizations and inlining so Delve can map every
statement; release builds strip the symbol table and DWARF data.
"""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass, field
from typing import Final

from ..targets.descriptor import Target

DEBUG_FLAGS: Final[tuple[str, ...]] = ("-gcflags=all=-N -l",)
RELEASE_FLAGS: Final[tuple[str, ...]] = ("-ldflags=-w -s",)


def find_go(go_path: str | None = None) -> str:
    """Locate the Go toolchain.

    Order: explicit path, ``GOTARGET_GO``, ``go`` on PATH. Falls back to the
    bare name so the spawn failure is reported per target.
    """
    if go_path:
        return go_path
    env_path = os.environ.get("GOTARGET_GO")
    if env_path:
        return env_path
    return shutil.which("go") or "go"


@dataclass
class BuildPolicy:
    """Composes toolchain invocations for targets."""

    go_path: str = field(default_factory=find_go)
    debug_flags: tuple[str, ...] = DEBUG_FLAGS
    release_flags: tuple[str, ...] = RELEASE_FLAGS

    def get_go_command(self, target: Target, debug: bool, executable_file: str) -> list[str]:
        """Build the ``go build`` command line.

        Mode flags first, then the target's own flags verbatim and in order,
        then the output path.
        """
        mode_flags = self.debug_flags if debug else self.release_flags
        return [
            self.go_path,
            "build",
            *mode_flags,
            *target.build_args,
            "-o",
            executable_file,
        ]

    def get_environment(self, target: Target) -> dict[str, str]:
        """Process environment with GOOS/GOARCH taken from the target.

        The invoking environment, not the host platform, decides what is
        produced.
        """
        env = dict(os.environ)
        if target.os:
            env["GOOS"] = target.os
        if target.arch:
            env["GOARCH"] = target.arch
        return env
