import sys
import logging
import argparse
import platform
from typing import List, Tuple

from reliable_mcp.local.config import effective_settings as config
from reliable_mcp.local.supervisor import ProcessSupervisor, SupervisionSpec, SupervisorError
from reliable_mcp.local.supervisor.models import default_label
from reliable_mcp.local.supervisor.process_utils import resolve_command
from reliable_mcp.log.setup import setup_logging

log = logging.getLogger(__name__)

USAGE = f"{config.APP_NAME} [options] -- <command> [args...]"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=config.APP_NAME, usage=USAGE, add_help=False, exit_on_error=False)
    parser.add_argument("-l", "--label", help="Process label for identification")
    parser.add_argument("-t", "--timeout", type=int, help="Process timeout in milliseconds")
    parser.add_argument("-c", "--cwd", help="Working directory for the process")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("-d", "--detached", action="store_true", help="Run process in a new session (Unix only)")
    parser.add_argument("-s", "--shell", nargs="?", const=True, default=None, help="Run command in shell")
    parser.add_argument("--no-hide", dest="hide_window", action="store_false", help="Show console window on Windows")
    return parser

def split_command_line(argv: List[str]) -> Tuple[List[str], List[str]]:
    """Splits `argv` into wrapper options and the wrapped command at the first `--`."""
    if "--" not in argv:
        return argv, []
    index = argv.index("--")
    return argv[:index], argv[index + 1:]

def _usage_error(message: str) -> int:
    print(f"Error: {message}", file=sys.stderr)
    print(f"Usage: {USAGE}", file=sys.stderr)
    print(f"Example: {config.APP_NAME} --label my-server -- npx @modelcontextprotocol/server-memory", file=sys.stderr)
    print("\nOther commands:", file=sys.stderr)
    print(f"  {config.APP_NAME} cleanup    - Find and kill orphaned MCP processes", file=sys.stderr)
    print(f"  {config.APP_NAME} list       - List all MCP-related processes", file=sys.stderr)
    return 1


def build_spec(options: argparse.Namespace, command_args: List[str]) -> SupervisionSpec:
    command, args = command_args[0], command_args[1:]
    return SupervisionSpec(
        command=resolve_command(command),
        arguments=args,
        working_directory=options.cwd,
        label=options.label or default_label(command),
        timeout_millis=options.timeout,
        detached=options.detached,
        shell=options.shell,
        hide_window=options.hide_window,
    )


def run_wrapper(argv: List[str], supervisor_cls=ProcessSupervisor) -> int:
    """
    Runs the wrapped command under a ProcessSupervisor and returns its exit code.

    :param argv: The wrapper's arguments, e.g. `['--label', 'x', '--', 'npx', 'server']`.
    :param supervisor_cls: The supervisor class, replaceable for testing.
    :return int: The exit code the wrapper process should exit with.
    """
    option_args, command_args = split_command_line(argv)
    if not command_args:
        return _usage_error("No command specified after --")
    if not command_args[0].strip():
        return _usage_error("Command cannot be empty")

    try:
        options, unknown = build_parser().parse_known_args(option_args)
    except argparse.ArgumentError as e:
        return _usage_error(str(e))
    if options.verbose:
        setup_logging(logging.DEBUG)
    if unknown:
        log.warning(f"Ignoring unknown options: {' '.join(unknown)}")

    try:
        spec = build_spec(options, command_args)
    except ValueError as e:
        return _usage_error(str(e))

    log.info(f"Starting: {' '.join(command_args)}")
    log.info(f"Platform: {platform.system().lower()}")
    log.info(f"Process label: {spec.label}")
    if spec.timeout_millis:
        log.info(f"Timeout: {spec.timeout_millis}ms")

    supervisor = supervisor_cls(spec)
    try:
        exit_code = supervisor.start()
    except SupervisorError as e:
        log.error(f"Error: {e}")
        return 1

    log.info(f"Process exited with code {exit_code}")
    return exit_code
