"""DAP Client - communicates with a Delve DAP server.

``dlv dap`` serves the Debug Adapter Protocol over TCP. The client starts
it on an ephemeral port, reads the listen address from its stdout and
connects to it.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import shutil
from collections.abc import Callable, Sequence
from typing import Any

from .protocol import (
    Commands,
    DAPEvent,
    DAPRequest,
    DAPResponse,
    parse_content_length,
    parse_message,
)

logger = logging.getLogger(__name__)

LISTEN_PATTERN = re.compile(r"listening at:\s*(?P<host>\S+):(?P<port>\d+)")
STARTUP_TIMEOUT = 10.0


def find_dlv(dlv_path: str | None = None) -> str:
    """Find the dlv executable.

    Raises:
        FileNotFoundError: If dlv cannot be located
    """
    if dlv_path:
        return dlv_path

    env_path = os.environ.get("GOTARGET_DLV")
    if env_path and os.path.exists(env_path):
        return env_path

    system_path = shutil.which("dlv")
    if system_path:
        return system_path

    gopath = os.environ.get("GOPATH") or os.path.join(os.path.expanduser("~"), "go")
    for name in ("dlv", "dlv.exe"):
        candidate = os.path.join(gopath, "bin", name)
        if os.path.exists(candidate):
            return candidate

    raise FileNotFoundError("dlv not found. Set GOTARGET_DLV environment variable.")


class DAPClient:
    """Async DAP client for a Delve DAP server."""

    def __init__(self, dlv_path: str | None = None, dlv_flags: Sequence[str] = ()):
        self.dlv_path = dlv_path
        self.dlv_flags = list(dlv_flags)
        self._seq = 0
        self._request_lock = asyncio.Lock()  # Protect sequence number
        self._pending: dict[int, asyncio.Future[DAPResponse]] = {}
        self._event_handlers: dict[str, list[Callable[[DAPEvent], None]]] = {}
        self._close_handlers: list[Callable[[], None]] = []
        self._process: asyncio.subprocess.Process | None = None
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._read_task: asyncio.Task | None = None
        self._log_task: asyncio.Task | None = None
        self._capabilities: dict[str, Any] = {}

    @property
    def is_running(self) -> bool:
        """Check if DAP client is connected."""
        return (
            self._process is not None
            and self._process.returncode is None
            and self._writer is not None
        )

    @property
    def pid(self) -> int | None:
        """PID of the dlv process."""
        return self._process.pid if self._process else None

    async def start(self) -> None:
        """Start dlv and connect to its DAP server."""
        if self.is_running:
            return

        dlv = find_dlv(self.dlv_path)
        command = [dlv, "dap", "--listen=127.0.0.1:0", *self.dlv_flags]
        logger.info(f"Starting dlv: {' '.join(command)}")
        self._process = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )

        try:
            host, port = await asyncio.wait_for(self._read_listen_address(), STARTUP_TIMEOUT)
            self._reader, self._writer = await asyncio.open_connection(host, port)
        except Exception:
            await self.stop()
            raise

        self._log_task = asyncio.create_task(self._log_loop())
        self._read_task = asyncio.create_task(self._read_loop())
        logger.info(f"dlv started with PID {self._process.pid} at {host}:{port}")

    async def _read_listen_address(self) -> tuple[str, int]:
        assert self._process and self._process.stdout
        while True:
            line = await self._process.stdout.readline()
            if not line:
                raise RuntimeError("dlv exited before its DAP server was ready")
            text = line.decode("utf-8", errors="replace").strip()
            logger.debug(f"dlv: {text}")
            match = LISTEN_PATTERN.search(text)
            if match:
                return match.group("host"), int(match.group("port"))

    async def _log_loop(self) -> None:
        """Forward remaining dlv console output to the log."""
        if not self._process or not self._process.stdout:
            return
        while True:
            line = await self._process.stdout.readline()
            if not line:
                break
            logger.debug(f"dlv: {line.decode('utf-8', errors='replace').rstrip()}")

    async def stop(self) -> None:
        """Disconnect and stop the dlv process."""
        for task in (self._read_task, self._log_task):
            if task and task is not asyncio.current_task():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._read_task = None
        self._log_task = None

        if self._writer:
            self._writer.close()
            try:
                await self._writer.wait_closed()
            except Exception:
                logger.debug("Error closing DAP connection")
            self._writer = None
            self._reader = None

        if self._process:
            pid = self._process.pid
            if self._process.returncode is None:
                try:
                    self._process.terminate()
                    await asyncio.wait_for(self._process.wait(), timeout=5.0)
                except ProcessLookupError:
                    pass
                except asyncio.TimeoutError:
                    logger.warning(f"Process {pid} did not terminate, killing...")
                    self._process.kill()
                    try:
                        await asyncio.wait_for(self._process.wait(), timeout=2.0)
                    except asyncio.TimeoutError:
                        logger.exception(f"Failed to kill process {pid}")
            self._process = None

        # Cancel pending requests
        for future in self._pending.values():
            if not future.done():
                future.cancel()
        self._pending.clear()

        logger.info("dlv stopped")

    def on_event(self, event_name: str, handler: Callable[[DAPEvent], None]) -> None:
        """Register event handler."""
        if event_name not in self._event_handlers:
            self._event_handlers[event_name] = []
        self._event_handlers[event_name].append(handler)

    def off_event(self, event_name: str, handler: Callable[[DAPEvent], None]) -> None:
        """Unregister event handler."""
        if event_name in self._event_handlers:
            try:
                self._event_handlers[event_name].remove(handler)
            except ValueError:
                pass  # Handler not registered

    def on_close(self, handler: Callable[[], None]) -> None:
        """Register handler called when the DAP connection is lost."""
        self._close_handlers.append(handler)

    async def send_request(
        self, command: str, arguments: dict[str, Any] | None = None, timeout: float = 30.0
    ) -> DAPResponse:
        """Send DAP request and wait for response."""
        if not self.is_running:
            raise RuntimeError("DAP client not running")

        # Atomically increment seq and register future
        async with self._request_lock:
            self._seq += 1
            seq = self._seq
            future: asyncio.Future[DAPResponse] = asyncio.get_running_loop().create_future()
            self._pending[seq] = future

        request = DAPRequest(seq=seq, command=command, arguments=arguments or {})
        await self._send(request)

        try:
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            self._pending.pop(seq, None)
            raise TimeoutError(f"Request {command} timed out after {timeout}s") from None

    async def _send(self, request: DAPRequest) -> None:
        """Send request to dlv."""
        if not self._writer:
            raise RuntimeError("DAP connection not open")

        logger.debug(f">>> {request.command}: {request.arguments}")
        self._writer.write(request.to_bytes())
        await self._writer.drain()

    async def _read_loop(self) -> None:
        """Read messages from the DAP connection."""
        assert self._reader

        try:
            while True:
                try:
                    content_length: int | None = None
                    # Read headers up to the blank separator line
                    while True:
                        header_line = await self._reader.readline()
                        if not header_line:
                            logger.warning("DAP connection closed")
                            return
                        header = header_line.decode("utf-8").strip()
                        if not header:
                            if content_length is not None:
                                break
                            continue
                        length = parse_content_length(header)
                        if length is not None:
                            content_length = length

                    content = await self._reader.readexactly(content_length)
                    data = json.loads(content.decode("utf-8"))

                    self._handle_message(data)

                except asyncio.CancelledError:
                    raise
                except asyncio.IncompleteReadError:
                    logger.warning("DAP connection closed mid-message")
                    return
                except Exception:
                    logger.exception("Error reading DAP message")
                    return
        finally:
            for future in self._pending.values():
                if not future.done():
                    future.cancel()
            for handler in self._close_handlers:
                try:
                    handler()
                except Exception:
                    logger.exception("Close handler error")

    def _handle_message(self, data: dict[str, Any]) -> None:
        """Handle incoming DAP message."""
        try:
            message = parse_message(data)

            if isinstance(message, DAPResponse):
                logger.debug(f"<<< Response {message.command}: success={message.success}")
                future = self._pending.pop(message.request_seq, None)
                if future and not future.done():
                    future.set_result(message)

            elif isinstance(message, DAPEvent):
                logger.debug(f"<<< Event {message.event}: {message.body}")
                handlers = self._event_handlers.get(message.event, [])
                for handler in list(handlers):
                    try:
                        handler(message)
                    except Exception:
                        logger.exception("Event handler error")

        except Exception:
            logger.exception(f"Error handling message, data: {data}")

    # High-level DAP commands

    async def initialize(self) -> dict[str, Any]:
        """Initialize DAP session."""
        response = await self.send_request(
            Commands.INITIALIZE,
            {
                "clientID": "gotarget-mcp",
                "clientName": "gotarget MCP Server",
                "adapterID": "go",
                "pathFormat": "path",
                "linesStartAt1": True,
                "columnsStartAt1": True,
                "supportsVariableType": True,
                "supportsRunInTerminalRequest": False,
                "supportsProgressReporting": False,
            },
        )
        if response.success:
            self._capabilities = response.body
        return self._capabilities

    async def launch(self, arguments: dict[str, Any]) -> DAPResponse:
        """Launch program for debugging."""
        return await self.send_request(Commands.LAUNCH, arguments)

    async def configuration_done(self) -> DAPResponse:
        """Signal that configuration is complete."""
        return await self.send_request(Commands.CONFIGURATION_DONE)

    async def disconnect(self, terminate: bool = True) -> DAPResponse:
        """Disconnect from debuggee."""
        return await self.send_request(
            Commands.DISCONNECT, {"terminateDebuggee": terminate}
        )
