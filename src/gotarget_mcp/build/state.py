"""Build state and result types.

Per-target state machine:
QUEUED → BUILDING → STAGING → READY
              ↓          ↓
            FAILED     FAILED
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..errors import TargetError


class BuildState(str, Enum):
    """Build state of one target."""

    QUEUED = "queued"
    BUILDING = "building"
    STAGING = "staging"
    READY = "ready"
    FAILED = "failed"


@dataclass
class BuildDiagnostic:
    """Parsed Go compiler diagnostic."""

    message: str
    file: str | None = None
    line: int | None = None
    column: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {"message": self.message}
        if self.file:
            result["file"] = self.file
        if self.line is not None:
            result["line"] = self.line
        if self.column is not None:
            result["column"] = self.column
        return result


# Go compiler output
# Format: path/file.go:line:col: message  (column optional)
GO_DIAGNOSTIC_PATTERN = re.compile(
    r"^(?P<file>[^\s:][^:]*\.go):(?P<line>\d+)(?::(?P<col>\d+))?:\s*(?P<message>.+)$"
)


def parse_go_output(output: str) -> list[BuildDiagnostic]:
    """Parse ``go build`` output into structured diagnostics.

    Package headers ("# example.com/app") and other lines are skipped.
    """
    diagnostics: list[BuildDiagnostic] = []

    for line in output.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        match = GO_DIAGNOSTIC_PATTERN.match(line)
        if match:
            col = match.group("col")
            diagnostics.append(
                BuildDiagnostic(
                    message=match.group("message"),
                    file=match.group("file"),
                    line=int(match.group("line")),
                    column=int(col) if col else None,
                )
            )

    return diagnostics


class BuildError(TargetError):
    """Toolchain invocation failed for one target."""

    def __init__(
        self,
        message: str,
        diagnostics: list[BuildDiagnostic] | None = None,
        exit_code: int | None = None,
    ):
        super().__init__(message)
        self.diagnostics = diagnostics or []
        self.exit_code = exit_code

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "error": str(self),
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }
        if self.exit_code is not None:
            result["exitCode"] = self.exit_code
        return result


class StagingError(TargetError):
    """Post-build resource staging failed."""

    pass


@dataclass
class BuildResult:
    """Result of building one target."""

    target_id: str
    success: bool
    state: BuildState
    command: list[str]
    executable: str
    env: str
    exit_code: int | None = None
    stdout: str = ""
    stderr: str = ""
    diagnostics: list[BuildDiagnostic] = field(default_factory=list)
    staged: list[str] = field(default_factory=list)
    duration_ms: float = 0.0

    def __post_init__(self) -> None:
        """Parse diagnostics from output if not provided."""
        if not self.diagnostics and (self.stdout or self.stderr):
            self.diagnostics = parse_go_output(self.stdout + "\n" + self.stderr)

    @property
    def error_count(self) -> int:
        return len(self.diagnostics)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "target": self.target_id,
            "success": self.success,
            "state": self.state.value,
            "env": self.env,
            "command": " ".join(self.command),
            "executable": self.executable,
            "durationMs": round(self.duration_ms, 2),
        }
        if self.exit_code is not None:
            result["exitCode"] = self.exit_code
        if self.diagnostics:
            result["diagnostics"] = [d.to_dict() for d in self.diagnostics]
        if self.staged:
            result["staged"] = self.staged
        return result

    def to_summary(self) -> str:
        """Generate human-readable summary."""
        status = "[OK] Build succeeded" if self.success else "[FAILED] Build failed"
        parts = [
            f"{status}: {self.target_id}",
            f"  Executable: {self.executable}",
            f"  Duration: {self.duration_ms:.0f}ms",
        ]

        for diag in self.diagnostics[:5]:
            location = ""
            if diag.file:
                location = f"{diag.file}:{diag.line}"
                if diag.column:
                    location += f":{diag.column}"
                location += ": "
            parts.append(f"    {location}{diag.message}")

        if self.error_count > 5:
            parts.append(f"    ... and {self.error_count - 5} more")

        return "\n".join(parts)
