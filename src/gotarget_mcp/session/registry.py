"""Table of live debug sessions keyed by target ID."""

from __future__ import annotations

import logging
from typing import Any

from .session import DebugSession

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Tracks at most one live debug session per target ID.

    Entries are added when a session starts and removed when it terminates
    or when a stop takes it out of the table.
    """

    def __init__(self):
        self._sessions: dict[str, DebugSession] = {}

    def get(self, name: str) -> DebugSession | None:
        return self._sessions.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    @property
    def names(self) -> list[str]:
        return list(self._sessions)

    async def register(self, session: DebugSession) -> None:
        """Track a started session, stopping any stale session with its name.

        A session that has already terminated, or terminates while the stale
        one is being stopped, is dropped from the table.
        """
        stale = self._sessions.pop(session.name, None)
        self._sessions[session.name] = session
        session.on_terminated(self._on_terminated)
        if self._sessions.get(session.name) is session:
            logger.info(f"Debug session {session.name} registered")

        if stale is not None and stale is not session:
            logger.warning(f"Replaced debug session {session.name}, stopping the old one")
            try:
                await stale.stop()
            except Exception:
                logger.exception(f"Failed to stop stale session {session.name}")

    def remove(self, name: str) -> DebugSession | None:
        """Take a session out of the table."""
        return self._sessions.pop(name, None)

    def _on_terminated(self, session: DebugSession) -> None:
        # The entry may already belong to a newer session
        if self._sessions.get(session.name) is session:
            del self._sessions[session.name]
            logger.info(f"Debug session {session.name} removed")

    async def stop_all(self) -> None:
        """Stop every tracked session."""
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            try:
                await session.stop()
            except Exception:
                logger.exception(f"Failed to stop session {session.name}")

    def to_dict(self) -> dict[str, Any]:
        return {name: session.to_dict() for name, session in self._sessions.items()}
