"""
reliable-mcp: a process wrapper for MCP servers that guarantees the whole
process tree of the wrapped server is terminated when the wrapper stops.
"""

from reliable_mcp.settings import APP_VERSION as __version__

__all__ = ["__version__"]
