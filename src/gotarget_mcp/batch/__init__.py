"""Batch sequencing engine shared by all orchestrators."""

from .sequencer import BatchSequencer, ProgressCallback, Sleeper
from .state import BatchAction, BatchResult, CancellationToken, TargetOutcome

__all__ = [
    "BatchAction",
    "BatchResult",
    "BatchSequencer",
    "CancellationToken",
    "ProgressCallback",
    "Sleeper",
    "TargetOutcome",
]
