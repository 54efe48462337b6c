"""Debug session management."""

from .registry import SessionRegistry
from .session import DebugSession, DelveLauncher, SessionLauncher
from .state import LaunchRequest, SessionState

__all__ = [
    "DebugSession",
    "DelveLauncher",
    "LaunchRequest",
    "SessionLauncher",
    "SessionRegistry",
    "SessionState",
]
