"""Exceptions raised by the process supervisor."""

from typing import List, Optional


class SupervisorError(Exception):
    """Base class for all supervisor errors."""


class AlreadyStarted(SupervisorError):
    """Raised when `start` is called more than once on the same supervisor."""

    def __init__(self, label: str) -> None:
        super().__init__(f"Process already started: {label}")
        self.label = label


class SpawnFailure(SupervisorError):
    """The OS could not create the child process."""

    def __init__(self, command: str, exit_code: int, cause: Optional[BaseException] = None) -> None:
        reason = f": {cause}" if cause else ""
        super().__init__(f"Failed to start '{command}'{reason}")
        self.command = command
        self.exit_code = exit_code
        self.cause = cause


class TerminationFailure(SupervisorError):
    """The process tree could not be confirmed stopped. Logged, never raised by `terminate`."""

    def __init__(self, pid: int, survivors: Optional[List[int]] = None, failures: Optional[List[str]] = None) -> None:
        survivors = list(survivors or [])
        failures = list(failures or [])
        details = []
        if survivors:
            details.append(f"still alive: {survivors}")
        if failures:
            details.append(f"{len(failures)} signalling errors, last: {failures[-1]}")
        detail = f" ({'; '.join(details)})" if details else ""
        super().__init__(f"Could not confirm process tree {pid} was stopped{detail}")
        self.pid = pid
        self.survivors = survivors
        self.failures = failures


class FatalSupervisorFault(SupervisorError):
    """An unexpected error inside the supervising logic itself."""

    def __init__(self, label: str, cause: BaseException) -> None:
        super().__init__(f"Fatal supervisor fault for '{label}': {cause!r}")
        self.label = label
        self.cause = cause
