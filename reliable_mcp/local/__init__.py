"""
Local package for reliable-mcp.

This package holds the process supervisor, the process discovery helpers used
by the `list` and `cleanup` commands, the console command handlers and the
merged configuration.
"""

from .config import effective_settings

__all__ = ["effective_settings"]
