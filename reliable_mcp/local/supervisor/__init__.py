"""
The Supervisor package.
Runs a single child process and stops its whole process tree on every exit path.

This package contains the central ProcessSupervisor class and its helper modules,
which together handle spawning, signal relaying, timeouts and process tree
termination for the wrapped command.
"""
from .errors import AlreadyStarted, FatalSupervisorFault, SpawnFailure, SupervisorError, TerminationFailure
from .models import ExitOutcome, SupervisionSpec, SupervisorState
from .supervisor import ProcessSupervisor

__all__ = [
    'ProcessSupervisor', 'SupervisionSpec', 'SupervisorState', 'ExitOutcome',
    'SupervisorError', 'AlreadyStarted', 'SpawnFailure', 'TerminationFailure', 'FatalSupervisorFault',
]
