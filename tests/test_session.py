"""Tests for debug sessions and the session registry."""

from unittest.mock import patch

import pytest

from gotarget_mcp.session import (
    DebugSession,
    DelveLauncher,
    LaunchRequest,
    SessionRegistry,
    SessionState,
)


@pytest.fixture
def request_for():
    def factory(name="app.linux_amd64"):
        return LaunchRequest(
            name=name,
            program=f"/ws/bin/linux_amd64/debug/{name}/{name}",
            cwd=f"/ws/bin/linux_amd64/debug/{name}",
            args=["--port", "1"],
        )

    return factory


class TestLaunchRequest:
    """Tests for LaunchRequest."""

    def test_to_dap(self, request_for):
        args = request_for("app").to_dap()

        assert args["type"] == "go"
        assert args["request"] == "launch"
        assert args["mode"] == "exec"
        assert args["program"].endswith("/debug/app/app")
        assert args["cwd"].endswith("/debug/app")
        assert args["args"] == ["--port", "1"]
        assert "dlvFlags" not in args


class TestDebugSession:
    """Tests for DebugSession."""

    @pytest.mark.asyncio
    async def test_start_sequence(self, request_for, fake_dap_client):
        client = fake_dap_client()
        session = DebugSession(request_for(), client)

        await session.start()

        assert client.requests == ["initialize", "launch", "configurationDone"]
        assert client.launch_arguments["mode"] == "exec"
        assert session.state == SessionState.RUNNING
        assert session.is_active

    @pytest.mark.asyncio
    async def test_launch_rejected(self, request_for, fake_dap_client):
        session = DebugSession(request_for(), fake_dap_client(launch_success=False))

        with pytest.raises(RuntimeError, match="Launch failed: could not launch process"):
            await session.start()

    @pytest.mark.asyncio
    async def test_initialized_timeout(self, request_for, fake_dap_client):
        session = DebugSession(request_for(), fake_dap_client(send_initialized=False))

        with patch("gotarget_mcp.session.session.INITIALIZED_TIMEOUT", 0.01):
            with pytest.raises(RuntimeError, match="Timeout waiting for DAP initialization"):
                await session.start()

    @pytest.mark.asyncio
    async def test_stop_terminates_debuggee(self, request_for, fake_dap_client):
        client = fake_dap_client()
        session = DebugSession(request_for(), client)
        terminated = []
        session.on_terminated(terminated.append)
        await session.start()

        await session.stop()
        await session.stop()

        assert client.requests[-2:] == ["disconnect(terminate=True)", "stop"]
        assert client.requests.count("stop") == 1
        assert session.state == SessionState.TERMINATED
        assert terminated == [session]

    @pytest.mark.asyncio
    async def test_exited_event_records_exit_code(self, request_for, fake_dap_client):
        client = fake_dap_client()
        session = DebugSession(request_for(), client)
        await session.start()

        client.emit("exited", {"exitCode": 3})
        client.emit("terminated")

        assert session.state == SessionState.TERMINATED
        assert session.to_dict()["exitCode"] == 3
        assert session.to_dict()["pid"] == 5151

    @pytest.mark.asyncio
    async def test_connection_loss_terminates(self, request_for, fake_dap_client):
        client = fake_dap_client()
        session = DebugSession(request_for(), client)
        calls = []
        session.on_terminated(calls.append)
        await session.start()

        client.close()

        assert session.state == SessionState.TERMINATED
        assert len(calls) == 1


class TestDelveLauncher:
    """Tests for DelveLauncher."""

    @pytest.mark.asyncio
    async def test_failed_start_stops_dlv(self, request_for, fake_dap_client):
        client = fake_dap_client(launch_success=False)

        with patch("gotarget_mcp.session.session.DAPClient", return_value=client) as factory:
            with pytest.raises(RuntimeError):
                await DelveLauncher("/usr/bin/dlv").launch(request_for())

        factory.assert_called_once_with("/usr/bin/dlv", [])
        assert client.requests[-1] == "stop"

    @pytest.mark.asyncio
    async def test_returns_running_session(self, request_for, fake_dap_client):
        client = fake_dap_client()
        request = request_for()
        request.dlv_flags = ["--check-go-version=false"]

        with patch("gotarget_mcp.session.session.DAPClient", return_value=client) as factory:
            session = await DelveLauncher().launch(request)

        factory.assert_called_once_with(None, ["--check-go-version=false"])
        assert session.state == SessionState.RUNNING


class TestSessionRegistry:
    """Tests for SessionRegistry."""

    @pytest.mark.asyncio
    async def test_register_and_terminate(self, request_for, fake_dap_client):
        registry = SessionRegistry()
        client = fake_dap_client()
        session = DebugSession(request_for("app"), client)
        await session.start()

        await registry.register(session)
        assert "app" in registry
        assert registry.get("app") is session
        assert registry.to_dict()["app"]["state"] == "running"

        client.emit("terminated")
        assert "app" not in registry
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_replacement_stops_stale_session(self, request_for, fake_dap_client):
        registry = SessionRegistry()
        old_client, new_client = fake_dap_client(), fake_dap_client()
        old = DebugSession(request_for("app"), old_client)
        new = DebugSession(request_for("app"), new_client)
        await old.start()
        await new.start()

        await registry.register(old)
        await registry.register(new)

        assert "disconnect(terminate=True)" in old_client.requests
        assert registry.get("app") is new
        # A late termination of the old session must not evict the new one
        old_client.emit("terminated")
        assert registry.get("app") is new

    @pytest.mark.asyncio
    async def test_session_exited_before_register(self, request_for, fake_dap_client):
        registry = SessionRegistry()
        client = fake_dap_client()
        session = DebugSession(request_for("app"), client)
        await session.start()
        client.emit("exited", {"exitCode": 0})

        await registry.register(session)

        assert registry.names == []

    @pytest.mark.asyncio
    async def test_new_session_ends_while_stale_one_stops(self, request_for, fake_dap_client):
        registry = SessionRegistry()
        old_client, new_client = fake_dap_client(), fake_dap_client()
        old = DebugSession(request_for("app"), old_client)
        new = DebugSession(request_for("app"), new_client)
        await old.start()
        await new.start()
        await registry.register(old)

        async def disconnect(terminate=True):
            new_client.emit("terminated")

        old_client.disconnect = disconnect
        await registry.register(new)

        assert new.state == SessionState.TERMINATED
        assert registry.names == []

    def test_listener_added_after_termination(self, request_for, fake_dap_client):
        client = fake_dap_client()
        session = DebugSession(request_for("app"), client)
        session._register_event_handlers()
        client.close()
        seen = []

        session.on_terminated(seen.append)

        assert seen == [session]

    @pytest.mark.asyncio
    async def test_remove(self, request_for, fake_dap_client):
        registry = SessionRegistry()
        session = DebugSession(request_for("app"), fake_dap_client())
        await registry.register(session)

        assert registry.remove("app") is session
        assert registry.remove("app") is None

    @pytest.mark.asyncio
    async def test_stop_all(self, request_for, fake_dap_client):
        registry = SessionRegistry()
        clients = [fake_dap_client(), fake_dap_client()]
        for name, client in zip(("a", "b"), clients):
            session = DebugSession(request_for(name), client)
            await session.start()
            await registry.register(session)

        await registry.stop_all()

        assert registry.names == []
        assert all(c.requests[-1] == "stop" for c in clients)
