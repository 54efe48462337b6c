"""Debug session handle backed by a Delve DAP client."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Protocol

from ..dap.client import DAPClient
from ..dap.protocol import DAPEvent, Events
from .state import LaunchRequest, SessionState

logger = logging.getLogger(__name__)

INITIALIZED_TIMEOUT = 10.0


class DebugSession:
    """One live debug session for a target.

    Listeners registered with :meth:`on_terminated` are called once, when
    the debuggee terminates or exits, or the adapter connection is lost.
    """

    def __init__(self, request: LaunchRequest, client: DAPClient):
        self._request = request
        self._client = client
        self._state = SessionState.IDLE
        self._initialized_event = asyncio.Event()
        self._terminated_listeners: list[Callable[[DebugSession], None]] = []
        self._exit_code: int | None = None
        self._notified = False

    @property
    def name(self) -> str:
        return self._request.name

    @property
    def request(self) -> LaunchRequest:
        return self._request

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state not in (SessionState.IDLE, SessionState.TERMINATED)

    def on_terminated(self, listener: Callable[[DebugSession], None]) -> None:
        """Register a listener for session termination.

        A listener added after termination is called immediately.
        """
        if self._notified:
            listener(self)
            return
        self._terminated_listeners.append(listener)

    def _set_terminated(self) -> None:
        self._state = SessionState.TERMINATED
        if self._notified:
            return
        self._notified = True
        logger.info(f"Debug session {self.name} terminated")
        for listener in list(self._terminated_listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Terminated listener error")

    def _register_event_handlers(self) -> None:
        self._client.on_event(Events.INITIALIZED, self._on_initialized)
        self._client.on_event(Events.TERMINATED, self._on_terminated)
        self._client.on_event(Events.EXITED, self._on_exited)
        self._client.on_event(Events.OUTPUT, self._on_output)
        self._client.on_close(self._set_terminated)

    def _on_initialized(self, event: DAPEvent) -> None:
        self._initialized_event.set()

    def _on_terminated(self, event: DAPEvent) -> None:
        self._set_terminated()

    def _on_exited(self, event: DAPEvent) -> None:
        self._exit_code = event.body.get("exitCode", 0)
        logger.info(f"Debug({self.name}): process exited with code {self._exit_code}")
        self._set_terminated()

    def _on_output(self, event: DAPEvent) -> None:
        output = str(event.body.get("output", "")).rstrip()
        if output:
            logger.info(f"Debug({self.name}): {output}")

    async def start(self) -> None:
        """Start dlv, launch the program and resume it.

        Raises:
            RuntimeError: If the adapter rejects the launch or never initializes
        """
        self._register_event_handlers()
        self._state = SessionState.INITIALIZING
        await self._client.start()
        await self._client.initialize()

        response = await self._client.launch(self._request.to_dap())
        if not response.success:
            raise RuntimeError(f"Launch failed: {response.message}")

        try:
            await asyncio.wait_for(self._initialized_event.wait(), timeout=INITIALIZED_TIMEOUT)
        except asyncio.TimeoutError:
            raise RuntimeError("Timeout waiting for DAP initialization") from None

        await self._client.configuration_done()
        if self._state == SessionState.INITIALIZING:
            self._state = SessionState.RUNNING

    async def stop(self) -> None:
        """Disconnect, terminating the debuggee, and stop dlv."""
        if self._state == SessionState.TERMINATED and not self._client.is_running:
            return
        self._state = SessionState.STOPPING
        if self._client.is_running:
            try:
                await self._client.disconnect(terminate=True)
            except Exception as e:
                logger.warning(f"Error during disconnect: {e}")
        await self._client.stop()
        self._set_terminated()

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self._state.value,
            "program": self._request.program,
            "pid": self._client.pid,
            "exitCode": self._exit_code,
        }


class SessionLauncher(Protocol):
    """Starts debug sessions."""

    async def launch(self, request: LaunchRequest) -> DebugSession: ...


class DelveLauncher:
    """Starts each session in its own ``dlv dap`` process."""

    def __init__(self, dlv_path: str | None = None):
        self.dlv_path = dlv_path

    async def launch(self, request: LaunchRequest) -> DebugSession:
        """Start a session and wait until the debuggee is running.

        Raises:
            Exception: Whatever prevented the session from starting; the dlv
                process is stopped first
        """
        client = DAPClient(self.dlv_path, request.dlv_flags)
        session = DebugSession(request, client)
        try:
            await session.start()
        except BaseException:
            await client.stop()
            raise
        return session
