"""DAP (Debug Adapter Protocol) client implementation."""

from .client import DAPClient
from .protocol import DAPEvent, DAPRequest, DAPResponse

__all__ = ["DAPClient", "DAPEvent", "DAPRequest", "DAPResponse"]
