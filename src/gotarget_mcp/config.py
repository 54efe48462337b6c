"""Server configuration from command line flags and environment."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_BUILD_JOBS = 1
CONFIG_CANDIDATES = (os.path.join(".vscode", "settings.json"), "gotarget.json")


def default_prefs_path() -> str:
    """Default location of the remembered target selections."""
    return os.path.join(os.path.expanduser("~"), ".gotarget", "selected.prefs")


def default_config_path(workspace: str) -> str:
    """First existing target configuration file in a workspace.

    Returns the VS Code settings path when neither candidate exists.
    """
    for candidate in CONFIG_CANDIDATES:
        path = os.path.join(workspace, candidate)
        if os.path.isfile(path):
            return path
    return os.path.join(workspace, CONFIG_CANDIDATES[0])


def _parse_jobs(value: str | None) -> int:
    if not value:
        return DEFAULT_BUILD_JOBS
    try:
        jobs = int(value)
    except ValueError:
        logger.warning(f"Invalid GOTARGET_BUILD_JOBS={value!r}, using {DEFAULT_BUILD_JOBS}")
        return DEFAULT_BUILD_JOBS
    if jobs < 1:
        logger.warning(f"GOTARGET_BUILD_JOBS must be positive, using {DEFAULT_BUILD_JOBS}")
        return DEFAULT_BUILD_JOBS
    return jobs


@dataclass
class ServerConfig:
    """Settings shared by every workspace the server serves."""

    config_path: str | None = None
    """Explicit target configuration file (--config / GOTARGET_CONFIG)."""

    go_path: str | None = None
    """Go toolchain executable (GOTARGET_GO)."""

    dlv_path: str | None = None
    """Delve executable (GOTARGET_DLV)."""

    build_jobs: int = DEFAULT_BUILD_JOBS
    """Maximum concurrent compiles (GOTARGET_BUILD_JOBS)."""

    prefs_path: str = ""
    """Selection persistence file (GOTARGET_PREFS)."""

    def __post_init__(self) -> None:
        if not self.prefs_path:
            self.prefs_path = default_prefs_path()

    @classmethod
    def from_env(
        cls,
        config_path: str | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> ServerConfig:
        """Build configuration; explicit arguments win over environment."""
        env = os.environ if environ is None else environ
        return cls(
            config_path=config_path or env.get("GOTARGET_CONFIG") or None,
            go_path=env.get("GOTARGET_GO") or None,
            dlv_path=env.get("GOTARGET_DLV") or None,
            build_jobs=_parse_jobs(env.get("GOTARGET_BUILD_JOBS")),
            prefs_path=env.get("GOTARGET_PREFS") or "",
        )

    def config_path_for(self, workspace: str) -> str:
        """Target configuration file used for a workspace."""
        if self.config_path:
            if os.path.isabs(self.config_path):
                return self.config_path
            return os.path.join(workspace, self.config_path)
        return default_config_path(workspace)
