"""Debug session state and launch parameters."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SessionState(str, Enum):
    """Debug session states."""
    IDLE = "idle"  # Not started
    INITIALIZING = "initializing"  # dlv started, DAP initializing
    RUNNING = "running"  # Debuggee launched and configured
    STOPPING = "stopping"  # Disconnect requested
    TERMINATED = "terminated"  # Debuggee or adapter ended


@dataclass
class LaunchRequest:
    """Parameters for one Delve debug session.

    The session is keyed by ``name``, which is the target ID.
    """
    name: str
    program: str
    cwd: str
    args: list[str] = field(default_factory=list)
    dlv_flags: list[str] = field(default_factory=list)
    type: str = "go"
    request: str = "launch"
    mode: str = "exec"

    def to_dap(self) -> dict[str, Any]:
        """Convert to DAP launch arguments."""
        return {
            "name": self.name,
            "type": self.type,
            "request": self.request,
            "mode": self.mode,
            "program": self.program,
            "cwd": self.cwd,
            "args": list(self.args),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "program": self.program,
            "cwd": self.cwd,
            "args": list(self.args),
            "dlvFlags": list(self.dlv_flags),
            "mode": self.mode,
        }
