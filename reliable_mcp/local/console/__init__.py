"""
This module initializes the console package, exposing command execution for the
subcommands and the wrapper entry used when a command follows `--`.
"""

from .process import SUBCOMMANDS, execute_command
from .wrapper import run_wrapper

__all__ = ["SUBCOMMANDS", "execute_command", "run_wrapper"]
