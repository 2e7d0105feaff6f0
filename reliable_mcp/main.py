import sys
from typing import List, Optional

from reliable_mcp.local import console
from reliable_mcp.log.setup import setup_logging


def main(argv: Optional[List[str]] = None) -> int:
    """
    The main entry point for the command-line application.

    `reliable-mcp <subcommand> ...` runs one of the console subcommands,
    anything else is treated as `reliable-mcp [options] -- <command> [args...]`.

    :param argv: Arguments without the program name. Defaults to `sys.argv[1:]`.
    :return int: The exit code for the process.
    """
    argv = list(sys.argv[1:] if argv is None else argv)

    # Quiet by default: the wrapped server owns stdout and most of stderr.
    setup_logging()

    if argv and argv[0] in console.SUBCOMMANDS:
        return console.execute_command(argv[0], argv[1:])
    return console.run_wrapper(argv)


if __name__ == "__main__":
    sys.exit(main())
