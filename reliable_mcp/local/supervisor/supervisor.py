import os
import time
import signal
import logging
import threading
import subprocess
from typing import Callable, Optional

from reliable_mcp.local.config import effective_settings as config
from reliable_mcp.local.supervisor import process_utils
from reliable_mcp.local.supervisor.errors import AlreadyStarted, FatalSupervisorFault, SpawnFailure, TerminationFailure
from reliable_mcp.local.supervisor.handlers import CleanupRegistry
from reliable_mcp.local.supervisor.models import ExitOutcome, SupervisionSpec, SupervisorState
from reliable_mcp.local.supervisor.shutdown import TreeTerminator, select_terminator

log = logging.getLogger(__name__)

# How often the supervising loop checks the child and acts on relayed signals.
WAIT_POLL_INTERVAL = 0.05


class ProcessSupervisor:
    """
    Runs one child process and guarantees its whole process tree is stopped
    when the wrapper is stopped, crashes, exits, or the timeout elapses.

    A supervisor is single-use: `start` runs the child to completion once,
    `terminate` may be called any number of times from any thread or signal
    handler and only the first call does anything.
    """

    def __init__(
        self,
        spec: SupervisionSpec,
        terminator_factory: Callable[[int, str], TreeTerminator] = select_terminator,
        force_exit: Callable[[int], None] = os._exit,
    ) -> None:
        """
        :param spec: What to run.
        :param terminator_factory: Returns the tree terminator for a PID and label.
        :param force_exit: Used by the escalation safety net to end the wrapper process.
        """
        self.spec = spec
        self.label: str = spec.label
        self.log = logging.LoggerAdapter(log, {"label": self.label})

        self._terminator_factory = terminator_factory
        self._force_exit = force_exit

        self._state = SupervisorState.NOT_STARTED
        # Reentrant: terminate may run on a thread that already holds either lock.
        self._state_lock = threading.RLock()
        self._termination_lock = threading.RLock()
        self._termination_requested = False
        self._child_reaped = False
        self._timed_out = False
        self._exited = threading.Event()

        self._child: Optional[subprocess.Popen] = None
        self._pid: Optional[int] = None
        self._timer: Optional[threading.Timer] = None
        self._registry: Optional[CleanupRegistry] = None
        self._terminator_thread: Optional[threading.Thread] = None
        self._previous_title: Optional[str] = None

        self.exit_outcome: Optional[ExitOutcome] = None
        self.termination_confirmed: Optional[bool] = None

    #* --- Queries ---
    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def pid(self) -> Optional[int]:
        """PID of the running child, None before spawn and after exit."""
        return self._pid if self._child is not None else None

    @property
    def killed(self) -> bool:
        """True once termination was requested or the child has exited."""
        return self._termination_requested or self._state is SupervisorState.EXITED

    @property
    def exited(self) -> bool:
        """True once the child has exited and cleanup has completed."""
        return self._exited.is_set()

    @property
    def timed_out(self) -> bool:
        return self._timed_out

    def _advance(self, new_state: SupervisorState) -> bool:
        """Moves the state forward. Returns False if that would go backwards."""
        with self._state_lock:
            if new_state.value <= self._state.value:
                return False
            self._state = new_state
            return True

    #* --- Lifecycle ---
    def start(self) -> int:
        """
        Spawns the child and blocks until it exits.

        :return: The child's exit code, `SIGNAL_EXIT_BASE + N` if it was killed by
                 signal N, `TIMEOUT_EXIT_CODE` if the timeout stopped it, or a
                 non-zero spawn failure code if it could not be started.
        :raises AlreadyStarted: If this supervisor was started before.
        :raises FatalSupervisorFault: If the supervising logic itself fails.
        """
        with self._state_lock:
            if self._state is not SupervisorState.NOT_STARTED:
                raise AlreadyStarted(self.label)
            # Claim the instance before spawning so a concurrent start fails fast.
            self._state = SupervisorState.RUNNING

        try:
            self._spawn()
        except SpawnFailure as e:
            self.log.error(str(e))
            return self._resolve_spawn_failure(e)

        try:
            self._arm()
            self._wait_for_child()
        except BaseException as e:
            # Never leave the child behind, whatever went wrong while waiting.
            self.terminate()
            self._wait_for_terminator()
            if isinstance(e, Exception):
                raise FatalSupervisorFault(self.label, e) from e
            raise
        finally:
            returncode = self._reap()
            if returncode is not None:
                self._record_exit(returncode)
                if self._termination_requested:
                    # Let the terminator finish off descendants before reporting.
                    self._wait_for_terminator()
                self._finish()

        return self.exit_outcome.exit_code

    def _spawn(self) -> None:
        spec = self.spec
        popen_args = process_utils.build_popen_args(spec.command, list(spec.arguments), spec.shell)
        self.log.debug(f"Starting process: {spec.command} {' '.join(spec.arguments)}")
        try:
            self._child = subprocess.Popen(
                **popen_args,
                cwd=spec.working_directory,
                env=process_utils.merge_environment(spec.environment),
                stdin=None, stdout=None, stderr=None,
                **process_utils.get_popen_group_kwargs(spec.detached, spec.hide_window),
            )
        except FileNotFoundError as e:
            raise SpawnFailure(spec.command, config.SPAWN_NOT_FOUND_EXIT_CODE, e) from e
        except PermissionError as e:
            raise SpawnFailure(spec.command, config.SPAWN_PERMISSION_EXIT_CODE, e) from e
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            raise SpawnFailure(spec.command, config.SPAWN_FAILURE_EXIT_CODE, e) from e

        self._pid = self._child.pid
        self.log.debug(f"Process started with PID: {self._pid}")

        self._previous_title = process_utils.get_process_title()
        process_utils.set_process_title(process_utils.format_process_title(self.label, self._pid))

    def _arm(self) -> None:
        """Registers stop hooks and the timeout timer for the running child."""
        self._registry = CleanupRegistry(
            self.label,
            terminate=self.terminate,
            terminate_and_wait=self._terminate_and_wait,
            is_exited=self._child_exited,
            force_exit=self._force_exit,
        )
        self._registry.register()

        timeout = self.spec.timeout_seconds
        if timeout:
            self._timer = threading.Timer(timeout, self._on_timeout)
            self._timer.daemon = True
            self._timer.name = f"timeout-{self.label}"
            self._timer.start()

    def _wait_for_child(self) -> int:
        """Polls until the child exits, acting on relayed signals in between."""
        while True:
            if self._registry is not None:
                self._registry.dispatch_pending_signal()
            returncode = self._reap()
            if returncode is not None:
                return returncode
            time.sleep(WAIT_POLL_INTERVAL)

    def _reap(self) -> Optional[int]:
        """
        Collects the exit status if the child has exited. Reaping and claiming the
        termination latch exclude each other, so no kill sequence starts for a
        child that is already reaped.
        """
        with self._termination_lock:
            if self._child is None:
                return None
            returncode = self._child.poll()
            if returncode is not None:
                self._child_reaped = True
            return returncode

    def _on_timeout(self) -> None:
        self._request_termination(signal.SIGTERM, timed_out=True)

    def _child_exited(self) -> bool:
        return self._child_reaped

    #* --- Termination ---
    def terminate(self, sig: int = signal.SIGTERM) -> None:
        """
        Requests termination of the child's process tree and returns immediately.

        Safe to call concurrently and repeatedly; only the first call starts a
        kill sequence. No-op before start and after exit. Never raises.

        :param sig: The signal used for the graceful phase.
        """
        self._request_termination(sig)

    def _request_termination(self, sig: int, timed_out: bool = False) -> bool:
        """Claims the termination latch and starts the terminator. Returns False if already claimed."""
        with self._termination_lock:
            if self._termination_requested or self._pid is None or self._child_reaped:
                return False
            self._termination_requested = True
            self._timed_out = timed_out
            pid = self._pid

        try:
            self._advance(SupervisorState.TERMINATING)
            if timed_out:
                self.log.error(f"Process timed out after {self.spec.timeout_millis}ms, terminating...")
            self.log.info(f"Terminating process tree (PID: {pid})...")
            self._terminator_thread = threading.Thread(
                target=self._run_terminator, args=(pid, sig), daemon=True, name=f"terminator-{pid}"
            )
            self._terminator_thread.start()
        except Exception as e:
            self.log.error(f"Error terminating process: {e}", exc_info=True)
        return True

    def _run_terminator(self, pid: int, sig: int) -> None:
        terminator: Optional[TreeTerminator] = None
        try:
            terminator = self._terminator_factory(pid, self.label)
            self.log.debug(f"Using {terminator.name} termination strategy.")
            confirmed = terminator.terminate_tree(pid, sig)
        except Exception as e:
            self.log.error(f"Error terminating process tree: {e}", exc_info=True)
            confirmed = False
        self.termination_confirmed = confirmed
        if not confirmed:
            survivors = terminator.survivors if terminator else []
            failures = terminator.failures if terminator else []
            self.log.error(str(TerminationFailure(pid, survivors, failures)))

    def _wait_for_terminator(self, timeout: Optional[float] = None) -> None:
        thread = self._terminator_thread
        if thread is not None and thread is not threading.current_thread():
            if timeout is None:
                timeout = config.GRACEFUL_SHUTDOWN_TIMEOUT + config.TERMINATION_CONFIRM_TIMEOUT + 1
            thread.join(timeout)

    def _terminate_and_wait(self) -> None:
        """Synchronous termination, used when the interpreter is shutting down."""
        self.terminate()
        self._wait_for_terminator()

    #* --- Exit Resolution ---
    def _record_exit(self, returncode: int) -> None:
        with self._state_lock:
            if self.exit_outcome is not None:
                return
            sig = -returncode if returncode < 0 else None
            exit_code = config.SIGNAL_EXIT_BASE + sig if sig else returncode
            if self._timed_out:
                exit_code = config.TIMEOUT_EXIT_CODE
            self.exit_outcome = ExitOutcome(exit_code=exit_code, signal=sig, timed_out=self._timed_out)

        if sig:
            self.log.debug(f"Process exited due to signal {sig}.")
        else:
            self.log.debug(f"Process exited with code {returncode}.")

    def _finish(self) -> None:
        """Tears down everything tied to the child. Runs once per supervisor."""
        if not self._advance(SupervisorState.EXITED):
            return
        self._exited.set()
        if self._timer:
            self._timer.cancel()
        if self._registry:
            self._registry.unregister()
        if self._previous_title is not None:
            process_utils.set_process_title(self._previous_title)
        self._child = None

    def _resolve_spawn_failure(self, error: SpawnFailure) -> int:
        with self._state_lock:
            self.exit_outcome = ExitOutcome(exit_code=error.exit_code, spawn_error=str(error))
        self._child = None
        self._advance(SupervisorState.EXITED)
        self._exited.set()
        return error.exit_code
