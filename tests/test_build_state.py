"""Tests for build state and result types."""

from gotarget_mcp.build.state import (
    BuildDiagnostic,
    BuildError,
    BuildResult,
    BuildState,
    parse_go_output,
)
from gotarget_mcp.errors import TargetError


class TestParseGoOutput:
    """Tests for go build output parsing."""

    def test_parses_file_line_column(self):
        output = (
            "# example.com/app\n"
            "./main.go:12:5: undefined: foo\n"
            "internal/db/db.go:3:2: \"fmt\" imported and not used\n"
        )

        diags = parse_go_output(output)

        assert len(diags) == 2
        assert diags[0].file == "./main.go"
        assert diags[0].line == 12
        assert diags[0].column == 5
        assert diags[0].message == "undefined: foo"
        assert diags[1].file == "internal/db/db.go"

    def test_line_without_column(self):
        diags = parse_go_output("main.go:7: syntax error")
        assert diags[0].line == 7
        assert diags[0].column is None

    def test_ignores_other_lines(self):
        assert parse_go_output("go: downloading example.com/lib v1.0.0\n\n") == []


class TestBuildResult:
    """Tests for BuildResult."""

    def test_diagnostics_parsed_from_stderr(self):
        result = BuildResult(
            target_id="app.k",
            success=False,
            state=BuildState.FAILED,
            command=["go", "build"],
            executable="/out/app",
            env="release",
            exit_code=1,
            stderr="main.go:1:1: expected 'package'",
        )

        assert result.error_count == 1

    def test_to_dict(self):
        result = BuildResult(
            target_id="app.k",
            success=True,
            state=BuildState.READY,
            command=["go", "build"],
            executable="/out/app",
            env="release",
            exit_code=0,
        )

        d = result.to_dict()
        assert d["target"] == "app.k"
        assert d["exitCode"] == 0
        assert d["success"] is True
        assert "diagnostics" not in d


class TestBuildError:
    """Tests for BuildError."""

    def test_is_target_error(self):
        error = BuildError("build failed", diagnostics=[BuildDiagnostic(message="x")], exit_code=2)

        assert isinstance(error, TargetError)
        assert error.exit_code == 2
        assert len(error.diagnostics) == 1
