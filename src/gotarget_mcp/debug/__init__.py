"""Debug session orchestration."""

from .orchestrator import DebugOrchestrator, DebugPhase

__all__ = ["DebugOrchestrator", "DebugPhase"]
