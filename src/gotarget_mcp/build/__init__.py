"""Build orchestration for Go targets.

Provides:
- ``go build`` invocation with debug/release flags and GOOS/GOARCH
- Post-build resource staging from copy rules
- Batch building with progress and cancellation
"""

from .orchestrator import BuildOrchestrator
from .policy import BuildPolicy
from .staging import apply_copy_rule, parse_copy_rule, stage_outputs
from .state import BuildError, BuildResult, BuildState, StagingError

__all__ = [
    "BuildOrchestrator",
    "BuildPolicy",
    "BuildError",
    "BuildResult",
    "BuildState",
    "StagingError",
    "apply_copy_rule",
    "parse_copy_rule",
    "stage_outputs",
]
