import logging
from typing import List

from reliable_mcp.local.console.handler import handle_cleanup_command, handle_list_command, print_help, print_version

log = logging.getLogger(__name__)

SUBCOMMANDS = {"cleanup", "list", "help", "--help", "-h", "--version", "-V"}


def execute_command(command: str, args: List[str]) -> int:
    """
    Executes a single subcommand from the user.

    :param command: The subcommand string (e.g., 'list', 'cleanup').
    :param args: A list of arguments for the command.
    :return int: The exit code for the process.
    """
    log.debug(f"Executing command: {command}, args: {args}")
    command_map = {
        "list": lambda: handle_list_command(args),
        "cleanup": lambda: handle_cleanup_command(args),
        "help": print_help,
        "--help": print_help,
        "-h": print_help,
        "--version": print_version,
        "-V": print_version,
    }

    if command not in command_map:
        log.error(f"Unknown command: '{command}'. Use 'help' for a list of commands.")
        return 1
    return command_map[command]()
