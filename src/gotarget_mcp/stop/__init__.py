"""Stopping of running and debugged targets."""

from .orchestrator import StopOrchestrator
from .ports import kill_port, parse_ports, read_port_file

__all__ = ["StopOrchestrator", "kill_port", "parse_ports", "read_port_file"]
