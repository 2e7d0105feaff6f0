import logging
from typing import List

from reliable_mcp.local.config import effective_settings as config
from reliable_mcp.local import process_info

log = logging.getLogger(__name__)


def _truncate(text: str, width: int) -> str:
    return text if len(text) <= width else text[:width] + "..."

def _option_value(args: List[str], *names: str) -> str:
    """Returns the value following the first of `names` found in `args`, or an empty string."""
    for index, arg in enumerate(args):
        if arg in names and index + 1 < len(args):
            return args[index + 1]
    return ""


#* --- list ---
def handle_list_command(args: List[str]) -> int:
    """
    Lists MCP-related processes, or all Node.js processes with `-a`.

    :param args: Arguments following the `list` command.
    :return int: The exit code for the console.
    """
    show_all = "-a" in args or "--all" in args
    pattern = "node" if show_all else config.DEFAULT_CLEANUP_PATTERN
    print(f"Searching for {'Node.js' if show_all else 'MCP'} processes...")

    processes = process_info.find_processes(pattern)
    if not processes:
        print("No processes found")
        return 0

    print(f"Found {len(processes)} processes:\n")
    for proc in processes:
        info = process_info.get_process_info(proc.pid)
        if not info:
            continue
        print(f"PID {info.pid}:")
        print(f"  Name: {info.name}")
        if info.memory_mb is not None:
            print(f"  Memory: {info.memory_mb:.2f} MB")
        if info.cpu_seconds is not None:
            print(f"  CPU Time: {info.cpu_seconds:.2f} seconds")
        print(f"  Command: {_truncate(info.command_line, config.COMMAND_LINE_DISPLAY_WIDTH + 20)}")
        print()
    return 0


#* --- cleanup ---
def _matches_mcp(command_line: str) -> bool:
    lowered = command_line.lower()
    return any(marker in lowered for marker in config.CLEANUP_PATTERNS)

def _confirm(prompt: str) -> bool:
    try:
        return input(prompt).strip().lower() == "y"
    except EOFError:
        return False

def handle_cleanup_command(args: List[str]) -> int:
    """
    Finds orphaned MCP server processes and kills their process trees.

    :param args: Arguments following the `cleanup` command (`-f/--force`, `-p/--pattern`).
    :return int: 0 if every process was killed or nothing was found, 1 otherwise.
    """
    force = "-f" in args or "--force" in args
    pattern = _option_value(args, "-p", "--pattern") or config.DEFAULT_CLEANUP_PATTERN

    print("Searching for orphaned MCP processes...")
    candidates = [p for p in process_info.find_processes(pattern) if _matches_mcp(p.command_line)]

    if not candidates:
        print("No orphaned MCP processes found")
        return 0

    print(f"Found {len(candidates)} potential MCP processes:")
    for proc in candidates:
        print(f"  PID {proc.pid}: {proc.name} - {_truncate(proc.command_line, config.COMMAND_LINE_DISPLAY_WIDTH)}")

    if not force and not _confirm("\nKill these processes? (y/N): "):
        print("Cleanup cancelled")
        return 0

    killed = failed = 0
    for proc in candidates:
        if process_info.kill_process_tree(proc.pid, force=True):
            print(f"  Killed PID {proc.pid}")
            killed += 1
        else:
            print(f"  Failed to kill PID {proc.pid}")
            log.warning(f"Cleanup could not kill PID {proc.pid}")
            failed += 1

    print(f"\nCleanup complete: {killed} killed, {failed} failed")
    return 1 if failed else 0


#* --- help / version ---
def print_help(args: List[str] = None) -> int:
    """Displays usage for the wrapper and its subcommands."""
    print(f"Usage: {config.APP_NAME} [options] -- <command> [args...]")
    print("\nA reliable process wrapper for MCP servers that properly handles termination")
    print("\nOptions:")
    print("  -l, --label <name>     Process label for identification")
    print("  -t, --timeout <ms>     Process timeout in milliseconds")
    print("  -c, --cwd <dir>        Working directory for the process")
    print("  -v, --verbose          Enable verbose logging")
    print("  -d, --detached         Run process in a new session (Unix only)")
    print("  -s, --shell [shell]    Run command in shell")
    print("  --no-hide              Show console window on Windows")
    print("\nCommands:")
    print("  list [-a]              List all MCP-related processes (-a: all Node.js processes)")
    print("  cleanup [-f] [-p pat]  Find and kill orphaned MCP server processes")
    print("  help                   Show this help message")
    print(f"\nExample: {config.APP_NAME} --label my-server -- npx @modelcontextprotocol/server-memory")
    return 0

def print_version(args: List[str] = None) -> int:
    print(config.APP_VERSION)
    return 0
