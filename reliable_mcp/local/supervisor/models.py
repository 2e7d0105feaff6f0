import os
import enum
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional, Sequence, Union


class SupervisorState(enum.Enum):
    """Lifecycle of a supervisor. Transitions only move forward."""
    NOT_STARTED = 0
    RUNNING = 1
    TERMINATING = 2
    EXITED = 3


IO_INHERIT = "inherit"


@dataclass(frozen=True)
class SupervisionSpec:
    """
    Describes the process to supervise. Immutable once constructed.

    :param command: Executable path or name.
    :param arguments: Arguments passed verbatim to the child.
    :param working_directory: Optional working directory for the child.
    :param environment: Entries merged over the inherited environment; child entries win.
    :param label: Name used in diagnostics; defaults to the basename of `command`.
    :param timeout_millis: Force-terminate the child after this many milliseconds.
    :param io_mode: Only "inherit" is supported: stdin/stdout/stderr are shared with the wrapper.
    :param detached: POSIX only. Start the child in a new session.
    :param shell: Run through the system shell. True for the default shell, or a shell path.
    :param hide_window: Windows only. Do not open a console window for the child.
    """
    command: str
    arguments: Sequence[str] = ()
    working_directory: Optional[str] = None
    environment: Optional[Mapping[str, str]] = None
    label: Optional[str] = None
    timeout_millis: Optional[int] = None
    io_mode: str = IO_INHERIT
    detached: bool = False
    shell: Union[bool, str, None] = None
    hide_window: bool = True

    def __post_init__(self) -> None:
        if not self.command or not str(self.command).strip():
            raise ValueError("command must be a non-empty string")
        if self.timeout_millis is not None and self.timeout_millis <= 0:
            raise ValueError(f"timeout_millis must be positive, got {self.timeout_millis}")
        if self.io_mode != IO_INHERIT:
            raise ValueError(f"Unsupported io_mode '{self.io_mode}'. Only '{IO_INHERIT}' is available.")

        # Frozen dataclass: normalise through object.__setattr__
        object.__setattr__(self, "arguments", tuple(str(arg) for arg in self.arguments))
        if self.environment is not None:
            object.__setattr__(self, "environment", MappingProxyType(dict(self.environment)))
        if not self.label:
            object.__setattr__(self, "label", default_label(self.command))

    @property
    def timeout_seconds(self) -> Optional[float]:
        return self.timeout_millis / 1000.0 if self.timeout_millis else None


@dataclass(frozen=True)
class ExitOutcome:
    """The resolved result of a supervised run."""
    exit_code: int
    signal: Optional[int] = None
    timed_out: bool = False
    spawn_error: Optional[str] = None


def default_label(command: str) -> str:
    """Returns the basename of a command, handling both path separators."""
    name = os.path.basename(str(command).replace("\\", "/").rstrip("/"))
    return name or str(command)
