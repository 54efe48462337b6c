"""gotarget-mcp - build, start, stop and debug Go targets via MCP."""

__version__ = "0.1.0"
