"""Tests for per-workspace services."""

from unittest.mock import AsyncMock

import pytest

from gotarget_mcp.config import ServerConfig
from gotarget_mcp.errors import TargetConfigError
from gotarget_mcp.targets import paths
from gotarget_mcp.workspace import Workspace


@pytest.fixture
def config(tmp_path):
    return ServerConfig(go_path="go", prefs_path=str(tmp_path / "prefs" / "selected.prefs"))


@pytest.fixture
def killer():
    return AsyncMock(return_value=1)


@pytest.fixture
def workspace(workspace_dir, config, killer):
    return Workspace(str(workspace_dir), config, port_killer=killer)


class TestSelection:
    """Tests for choosing targets."""

    def test_candidates_for_build(self, workspace):
        assert workspace.candidates("build") == ["app.release", "worker.linux.amd64.release"]

    def test_default_selection_is_every_candidate(self, workspace):
        targets = workspace.select("build")

        assert [t.id for t in targets] == ["app.release", "worker.linux.amd64.release"]

    def test_explicit_selection_is_remembered(self, workspace, config, workspace_dir, killer):
        workspace.select("build", ["worker.linux.amd64.release"])

        reopened = Workspace(str(workspace_dir), config, port_killer=killer)
        assert [t.id for t in reopened.select("build")] == ["worker.linux.amd64.release"]
        assert [t.id for t in reopened.select("start")] == reopened.candidates("start")

    def test_explicit_selection_outside_candidates(self, workspace):
        # Explicit IDs are not narrowed by the action's default filter
        targets = workspace.select("build", ["app.debug"])

        assert targets[0].start_delay == 2.0

    def test_unknown_action(self, workspace):
        with pytest.raises(ValueError, match="Unknown action"):
            workspace.select("deploy")

    def test_unknown_target(self, workspace):
        with pytest.raises(TargetConfigError, match="Unknown target"):
            workspace.select("stop", ["nope"])


class TestRun:
    """Tests for running actions."""

    @pytest.mark.asyncio
    async def test_stop(self, workspace, workspace_dir, killer):
        target = workspace.catalog.get("app.release")
        port_file = paths.port_file(target, paths.RELEASE, str(workspace_dir))
        (workspace_dir / "bin" / "linux_amd64" / "release" / "app").mkdir(parents=True)
        with open(port_file, "w") as f:
            f.write("8080\n")

        results = await workspace.run("stop", [target])
        await workspace.shutdown()

        assert results[0].succeeded == 1
        killer.assert_awaited_once_with(8080)

    @pytest.mark.asyncio
    async def test_unknown_action(self, workspace):
        with pytest.raises(ValueError):
            await workspace.run("deploy", [])
