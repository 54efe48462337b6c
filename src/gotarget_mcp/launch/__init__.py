"""Launching of built targets."""

from .orchestrator import LaunchOrchestrator, cumulative_offsets

__all__ = ["LaunchOrchestrator", "cumulative_offsets"]
