"""Tests for the build orchestrator."""

import asyncio
import os
from unittest.mock import AsyncMock, patch

import pytest

from gotarget_mcp.batch import CancellationToken
from gotarget_mcp.build import BuildError, BuildOrchestrator, BuildPolicy, BuildState
from gotarget_mcp.errors import BatchCancelledError
from gotarget_mcp.targets import paths


@pytest.fixture
def orchestrator(tmp_path):
    return BuildOrchestrator(str(tmp_path), policy=BuildPolicy(go_path="go"))


def go_build(fake_process, failing=()):
    """create_subprocess_exec replacement failing for the named programs."""

    async def spawn(*command, **kwargs):
        exe = command[-1]
        if os.path.basename(os.path.dirname(exe)) in failing:
            return fake_process(returncode=2, stderr=b"# example.com/app\n./main.go:3:1: undefined: x\n")
        return fake_process(returncode=0, stdout=b"")

    return AsyncMock(side_effect=spawn)


class TestBuildTarget:
    """Tests for building a single target."""

    @pytest.mark.asyncio
    async def test_invokes_go_build(self, orchestrator, make_target, fake_process, tmp_path):
        target = make_target(os="linux", arch="amd64", build_args=("-v",), script_path="cmd/app")
        spawn = go_build(fake_process)

        with patch("asyncio.create_subprocess_exec", spawn):
            result = await orchestrator.build_target(target, debug=False)

        command = list(spawn.call_args.args)
        kwargs = spawn.call_args.kwargs
        exe = paths.executable_file(target, paths.RELEASE, str(tmp_path))
        assert command == ["go", "build", "-ldflags=-w -s", "-v", "-o", exe]
        assert kwargs["cwd"] == os.path.join(str(tmp_path), "cmd", "app")
        assert kwargs["env"]["GOOS"] == "linux"
        assert kwargs["env"]["GOARCH"] == "amd64"
        assert result.success
        assert result.env == "release"
        assert os.path.isdir(os.path.dirname(exe))
        assert orchestrator.get_state(target.id) == BuildState.READY

    @pytest.mark.asyncio
    async def test_debug_build_uses_debug_dir(self, orchestrator, make_target, fake_process, tmp_path):
        target = make_target(os="linux", arch="amd64")
        spawn = go_build(fake_process)

        with patch("asyncio.create_subprocess_exec", spawn):
            result = await orchestrator.build_target(target, debug=True)

        assert "-gcflags=all=-N -l" in spawn.call_args.args
        assert result.executable == paths.executable_file(target, paths.DEBUG, str(tmp_path))

    @pytest.mark.asyncio
    async def test_nonzero_exit_raises(self, orchestrator, make_target, fake_process):
        target = make_target(name="app")
        with patch("asyncio.create_subprocess_exec", go_build(fake_process, failing={"app"})):
            with pytest.raises(BuildError) as exc_info:
                await orchestrator.build_target(target, debug=False)

        assert exc_info.value.exit_code == 2
        assert exc_info.value.diagnostics[0].message == "undefined: x"
        assert "exit code 2" in str(exc_info.value)
        assert orchestrator.get_state(target.id) == BuildState.FAILED
        assert orchestrator.get_last_result(target.id).exit_code == 2

    @pytest.mark.asyncio
    async def test_spawn_failure(self, orchestrator, make_target):
        spawn = AsyncMock(side_effect=FileNotFoundError("go"))
        with patch("asyncio.create_subprocess_exec", spawn):
            with pytest.raises(BuildError, match="failed to start toolchain"):
                await orchestrator.build_target(make_target(), debug=False)

    @pytest.mark.asyncio
    async def test_timeout_kills_and_reaps(self, make_target, fake_process, tmp_path):
        orchestrator = BuildOrchestrator(str(tmp_path), policy=BuildPolicy(go_path="go"), timeout=0.05)
        process = fake_process()
        # Output that never reaches EOF
        process.stdout = asyncio.StreamReader()

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            with pytest.raises(BuildError, match="build timeout"):
                await orchestrator.build_target(make_target(), debug=False)

        process.kill.assert_called_once()
        process.wait.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stages_resources_after_success(
        self, orchestrator, make_target, fake_process, tmp_path
    ):
        (tmp_path / "config").mkdir()
        (tmp_path / "config" / "app.yaml").write_text("port: 8080")
        target = make_target(build_copy=("config/app.yaml",))

        with patch("asyncio.create_subprocess_exec", go_build(fake_process)):
            result = await orchestrator.build_target(target, debug=False)

        staged = os.path.join(paths.executable_dir(target, paths.RELEASE, str(tmp_path)), "app.yaml")
        assert result.staged == [staged]
        with open(staged) as f:
            assert f.read() == "port: 8080"

    @pytest.mark.asyncio
    async def test_no_staging_after_failure(self, orchestrator, make_target, fake_process, tmp_path):
        (tmp_path / "app.yaml").write_text("x")
        target = make_target(name="app", build_copy=("app.yaml",))

        with patch("asyncio.create_subprocess_exec", go_build(fake_process, failing={"app"})):
            with pytest.raises(BuildError):
                await orchestrator.build_target(target, debug=False)

        exe_dir = paths.executable_dir(target, paths.RELEASE, str(tmp_path))
        assert not os.path.exists(os.path.join(exe_dir, "app.yaml"))


class TestBuildBatch:
    """Tests for batch builds."""

    @pytest.mark.asyncio
    async def test_one_fails_one_succeeds(self, orchestrator, make_target, fake_process):
        alpha = make_target(name="alpha")
        beta = make_target(name="beta")

        with patch("asyncio.create_subprocess_exec", go_build(fake_process, failing={"alpha"})):
            result = await orchestrator.build([alpha, beta], debug=False)

        assert result.done == 2
        assert result.succeeded == 1
        assert result.failed == [alpha.id]
        assert result.summary() == f"Built 1 target(s), failed(1): {alpha.id}."

    @pytest.mark.asyncio
    async def test_progress_split_on_start_and_finish(
        self, orchestrator, make_target, fake_process, progress
    ):
        targets = [make_target(name="alpha"), make_target(name="beta")]

        with patch("asyncio.create_subprocess_exec", go_build(fake_process)):
            await orchestrator.build(targets, debug=False, progress=progress)

        assert progress.values == pytest.approx([10.0, 50.0, 60.0, 100.0, 100.0])
        assert progress.reports[0][2] == f"{targets[0].id} (1 of 2)"

    @pytest.mark.asyncio
    async def test_cancelled_batch(self, orchestrator, make_target, fake_process):
        token = CancellationToken()
        token.cancel()
        spawn = go_build(fake_process)

        with patch("asyncio.create_subprocess_exec", spawn):
            with pytest.raises(BatchCancelledError) as exc_info:
                await orchestrator.build([make_target()], debug=False, token=token)

        spawn.assert_not_called()
        assert exc_info.value.result.done == 1
