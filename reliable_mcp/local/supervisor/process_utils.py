import os
import sys
import logging
import subprocess
import setproctitle
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from reliable_mcp.local.config import effective_settings as config

log = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"

# Launchers that exist only as .cmd/.bat shims on Windows and cannot be spawned without a shell.
WINDOWS_SHIM_COMMANDS = {"npx", "npm"}


#* --- Command Resolution ---
def _windows_node_dirs() -> List[Path]:
    """Returns the directories where npm installs its Windows command shims."""
    dirs = []
    if os.getenv("npm_config_prefix"):
        dirs.append(Path(os.environ["npm_config_prefix"]))
    if os.getenv("APPDATA"):
        dirs.append(Path(os.environ["APPDATA"]) / "npm")
    dirs.append(Path(os.getenv("ProgramFiles", "C:\\Program Files")) / "nodejs")
    return dirs

def resolve_command(command: str) -> str:
    """
    Returns the concrete executable to spawn for a logical command name.

    On Windows, `npx` and `npm` are batch shims; this maps them to the existing
    `.cmd` or `.bat` file. Everything else is returned unchanged.

    :param command: The command as given by the user.
    :return: The command to spawn.
    """
    if not IS_WINDOWS or command.lower() not in WINDOWS_SHIM_COMMANDS:
        return command

    for directory in _windows_node_dirs():
        for suffix in (".cmd", ".bat"):
            candidate = directory / f"{command}{suffix}"
            if candidate.exists():
                log.debug(f"Resolved '{command}' to '{candidate}'.")
                return str(candidate)
    return command


#* --- Process Creation ---
def merge_environment(overrides: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """Returns the wrapper's environment with `overrides` applied on top."""
    env = dict(os.environ)
    if overrides:
        env.update({str(key): str(value) for key, value in overrides.items()})
    return env

def _stdin_is_terminal() -> bool:
    try:
        return sys.stdin is not None and sys.stdin.isatty()
    except (AttributeError, ValueError):
        return False

def get_popen_group_kwargs(detached: bool = False, hide_window: bool = True) -> Dict[str, Any]:
    """
    Returns platform-specific Popen arguments controlling process group placement.

    On POSIX the child leads a new process group so the whole tree can be
    signalled at once. `detached` puts it in a new session instead. When stdin
    is an interactive terminal the child stays in the foreground group, since a
    background group cannot read from the terminal.
    On Windows no detached process is created; `hide_window` suppresses the console.

    :return dict: A dictionary of keyword arguments for Popen.
    """
    if IS_WINDOWS:
        return {"creationflags": subprocess.CREATE_NO_WINDOW} if hide_window else {}
    if detached:
        return {"start_new_session": True}
    if _stdin_is_terminal():
        return {}
    return {"process_group": 0}

def build_popen_args(command: str, arguments: List[str], shell: Union[bool, str, None]) -> Dict[str, Any]:
    """
    Builds the `args`/`shell`/`executable` Popen arguments.

    :param shell: False/None to exec directly, True for the default shell, or a path to a shell.
    """
    if not shell:
        return {"args": [command, *arguments]}

    command_line = subprocess.list2cmdline([command, *arguments]) if IS_WINDOWS else " ".join([command, *arguments])
    popen_args: Dict[str, Any] = {"args": command_line, "shell": True}
    if isinstance(shell, str):
        popen_args["executable"] = shell
    return popen_args


#* --- Process Title ---
def get_process_title() -> Optional[str]:
    try:
        return setproctitle.getproctitle()
    except Exception as e:
        log.debug(f"Could not read process title: {e}")
        return None

def set_process_title(title: Optional[str]) -> bool:
    """Sets the wrapper's displayed process title. Best-effort, failures are ignored."""
    if not title:
        return False
    try:
        setproctitle.setproctitle(title)
        return True
    except Exception as e:
        log.debug(f"Could not set process title: {e}")
        return False

def format_process_title(label: str, pid: int) -> str:
    return f"{config.PROCESS_TITLE_PREFIX}: {label} [PID:{pid}]"
