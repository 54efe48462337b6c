"""Pytest fixtures for gotarget-mcp tests."""

import asyncio
import json
import os
import sys
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from gotarget_mcp.dap.protocol import DAPEvent, DAPResponse  # noqa: E402
from gotarget_mcp.targets.descriptor import Target  # noqa: E402
from gotarget_mcp.utils.platform import host_arch, host_os  # noqa: E402


class FakeClock:
    """Simulated clock; sleeping advances time instantly."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class ProgressRecorder:
    """Collects (progress, total, message) reports."""

    def __init__(self):
        self.reports: list[tuple[float, float, str]] = []

    async def __call__(self, progress: float, total: float, message: str) -> None:
        self.reports.append((progress, total, message))

    @property
    def values(self) -> list[float]:
        return [r[0] for r in self.reports]


@pytest.fixture
def fake_clock():
    """Simulated clock for delay assertions."""
    return FakeClock()


@pytest.fixture
def progress():
    """Recording progress callback."""
    return ProgressRecorder()


@pytest.fixture
def make_target():
    """Factory for descriptors runnable on the host by default."""

    def factory(name="app", key=None, **fields):
        fields.setdefault("os", host_os())
        fields.setdefault("arch", host_arch())
        if key is None:
            key = f"{fields['os']}_{fields['arch']}"
        return Target(name=name, key=key, **fields)

    return factory


@pytest.fixture
def sample_project_list():
    """Target table as found in .vscode/settings.json."""
    return {
        "$schema": "ignored",
        "app": {
            "release": {
                "os": "linux",
                "arch": "amd64",
                "buildPath": "bin",
                "buildArgs": ["-tags", "prod"],
                "startArgs": ["--port", "8080"],
                "stopPort": "ports.txt",
            },
            "debug": {"extends": "release", "startDelay": 2},
        },
        "worker": {
            "linux.amd64.release": {"os": "linux", "arch": "amd64", "scriptPath": "cmd/worker"},
        },
    }


@pytest.fixture
def workspace_dir(tmp_path, sample_project_list):
    """Workspace with a VS Code settings file holding the target table."""
    settings = tmp_path / ".vscode" / "settings.json"
    settings.parent.mkdir()
    settings.write_text(json.dumps({"gotarget.projectList": sample_project_list}))
    return tmp_path


def make_process(returncode=0, stdout=b"", stderr=b"", pid=4242):
    """Fake asyncio subprocess with finished output streams.

    Must be called with a running event loop.
    """
    process = MagicMock()
    process.pid = pid
    process.returncode = returncode

    out = asyncio.StreamReader()
    out.feed_data(stdout)
    out.feed_eof()
    err = asyncio.StreamReader()
    err.feed_data(stderr)
    err.feed_eof()

    process.stdout = out
    process.stderr = err
    process.wait = AsyncMock(return_value=returncode)
    process.kill = MagicMock()
    return process


@pytest.fixture
def fake_process():
    """Factory for fake subprocesses (see make_process)."""
    return make_process


@pytest.fixture
def sample_dap_response():
    """Sample DAP response data."""
    return {
        "seq": 1,
        "type": "response",
        "request_seq": 1,
        "success": True,
        "command": "initialize",
        "body": {
            "supportsConfigurationDoneRequest": True,
            "supportsFunctionBreakpoints": True,
        },
    }


@pytest.fixture
def sample_dap_event():
    """Sample DAP event data."""
    return {
        "seq": 2,
        "type": "event",
        "event": "terminated",
        "body": {},
    }


class FakeDAPClient:
    """In-memory stand-in for DAPClient that records requests."""

    def __init__(self, pid=5151, launch_success=True, send_initialized=True):
        self.pid = pid
        self.is_running = False
        self.requests: list[str] = []
        self._launch_success = launch_success
        self._send_initialized = send_initialized
        self._event_handlers: dict[str, list] = {}
        self._close_handlers: list = []

    def on_event(self, event_name, handler):
        self._event_handlers.setdefault(event_name, []).append(handler)

    def on_close(self, handler):
        self._close_handlers.append(handler)

    def emit(self, event_name, body=None):
        for handler in list(self._event_handlers.get(event_name, [])):
            handler(DAPEvent(seq=0, event=event_name, body=body or {}))

    def close(self):
        self.is_running = False
        for handler in list(self._close_handlers):
            handler()

    def _response(self, command, success=True, message=None):
        return DAPResponse(seq=0, request_seq=0, success=success, command=command, message=message)

    async def start(self):
        self.is_running = True

    async def stop(self):
        self.requests.append("stop")
        self.is_running = False

    async def initialize(self):
        self.requests.append("initialize")
        return {}

    async def launch(self, arguments):
        self.requests.append("launch")
        self.launch_arguments = arguments
        if not self._launch_success:
            return self._response("launch", success=False, message="could not launch process")
        if self._send_initialized:
            self.emit("initialized")
        return self._response("launch")

    async def configuration_done(self):
        self.requests.append("configurationDone")
        return self._response("configurationDone")

    async def disconnect(self, terminate=True):
        self.requests.append(f"disconnect(terminate={terminate})")
        return self._response("disconnect")


@pytest.fixture
def fake_dap_client():
    """Factory for in-memory DAP clients."""
    return FakeDAPClient
