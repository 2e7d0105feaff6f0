"""
Per-supervisor registration of the hooks that must stop the child.

A `CleanupRegistry` closes over one supervisor's callbacks. It installs
signal handlers, fault hooks and an exit hook when registered and restores
whatever was there before when unregistered. Nothing is kept in module state,
so two supervisors never share handlers.
"""
import os
import sys
import atexit
import signal
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from reliable_mcp.local.config import effective_settings as config
from reliable_mcp.local.supervisor.errors import FatalSupervisorFault

log = logging.getLogger(__name__)


def relayed_signals() -> List[int]:
    """Interruption and termination signals available on this platform."""
    names = ("SIGINT", "SIGTERM", "SIGHUP", "SIGBREAK")
    return [getattr(signal, name) for name in names if hasattr(signal, name)]

def _flush_log_handlers() -> None:
    for handler in logging.getLogger().handlers:
        try:
            handler.flush()
        except (OSError, ValueError):
            pass


class CleanupRegistry:
    """
    Wires host-level stop triggers to a supervisor's termination path.

    :param label: Name used in diagnostics.
    :param terminate: Called with a signal number to request termination. Must not block.
    :param terminate_and_wait: Called from the interpreter exit hook. May block briefly.
    :param is_exited: Returns True once the child has exited.
    :param force_exit: Ends the wrapper process with a status code.
    """

    def __init__(
        self,
        label: str,
        terminate: Callable[[int], None],
        terminate_and_wait: Callable[[], None],
        is_exited: Callable[[], bool],
        force_exit: Callable[[int], Any] = os._exit,
    ) -> None:
        self.label = label
        self._terminate = terminate
        self._terminate_and_wait = terminate_and_wait
        self._is_exited = is_exited
        self._force_exit = force_exit
        self.log = logging.LoggerAdapter(log, {"label": label})

        # Reentrant: terminate and the fault hooks may run on a thread already holding it.
        self._lock = threading.RLock()
        self._registered = False
        self._pending_signal: Optional[int] = None
        self._installed_signals: Dict[int, Callable] = {}
        self._previous_signals: Dict[int, Any] = {}
        self._previous_excepthook: Optional[Callable] = None
        self._previous_threading_excepthook: Optional[Callable] = None
        self._escalation_timer: Optional[threading.Timer] = None
        self._fault_timer: Optional[threading.Timer] = None

    @property
    def registered(self) -> bool:
        return self._registered

    @property
    def installed_signals(self) -> List[int]:
        return list(self._installed_signals)

    #* --- Registration ---
    def register(self) -> None:
        """Installs all hooks. Calling it again while registered does nothing."""
        with self._lock:
            if self._registered:
                return
            self._registered = True

        self._install_signal_handlers()

        self._previous_excepthook = sys.excepthook
        sys.excepthook = self._excepthook
        self._previous_threading_excepthook = threading.excepthook
        threading.excepthook = self._threading_excepthook

        atexit.register(self._exit_hook)

    def unregister(self) -> None:
        """Restores everything `register` replaced. Only the first call has an effect."""
        with self._lock:
            if not self._registered:
                return
            self._registered = False
            timer, self._escalation_timer = self._escalation_timer, None

        if timer:
            timer.cancel()

        self._restore_signal_handlers()

        if sys.excepthook is self._excepthook:
            sys.excepthook = self._previous_excepthook
        if threading.excepthook is self._threading_excepthook:
            threading.excepthook = self._previous_threading_excepthook

        atexit.unregister(self._exit_hook)

    def _install_signal_handlers(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            self.log.debug("Not on the main thread; signal handlers are not installed.")
            return

        for signum in relayed_signals():
            handler = self._make_signal_handler(signum)
            try:
                self._previous_signals[signum] = signal.signal(signum, handler)
                self._installed_signals[signum] = handler
            except (OSError, ValueError) as e:
                self.log.debug(f"Could not install handler for {signal.Signals(signum).name}: {e}")

    def _restore_signal_handlers(self) -> None:
        if not self._installed_signals:
            return
        if threading.current_thread() is not threading.main_thread():
            self.log.warning("Cannot restore signal handlers outside the main thread.")
            return

        for signum, handler in self._installed_signals.items():
            try:
                # Leave handlers installed by someone else after us alone.
                if signal.getsignal(signum) is handler:
                    previous = self._previous_signals.get(signum)
                    signal.signal(signum, previous if previous is not None else signal.SIG_DFL)
            except (OSError, ValueError) as e:
                self.log.debug(f"Could not restore handler for {signal.Signals(signum).name}: {e}")
        self._installed_signals.clear()
        self._previous_signals.clear()

    #* --- Triggers ---
    def _make_signal_handler(self, signum: int) -> Callable:
        def handler(received, frame):
            # Runs between two bytecodes of the main thread, which may hold any lock. Record only.
            self._pending_signal = received
        return handler

    def dispatch_pending_signal(self) -> bool:
        """
        Acts on a signal recorded by the handler: requests termination and arms
        the escalation safety net. Called from the supervising wait loop.

        :return: True if a signal was pending.
        """
        received, self._pending_signal = self._pending_signal, None
        if received is None:
            return False
        self.log.info(f"Received {signal.Signals(received).name}, terminating child process...")
        self._terminate(signal.SIGTERM)
        self._arm_escalation(config.SIGNAL_EXIT_GRACE, config.SIGNAL_EXIT_BASE + received)
        return True

    def _handle_fault(self, exc: BaseException, exc_info) -> None:
        fault = FatalSupervisorFault(self.label, exc)
        self.log.critical(str(fault), exc_info=exc_info)
        self._terminate(signal.SIGTERM)
        with self._lock:
            if self._fault_timer is not None:
                return
            self._fault_timer = threading.Timer(config.FAULT_EXIT_GRACE, self._fault_exit)
            self._fault_timer.daemon = True
        self._fault_timer.start()

    def _excepthook(self, exc_type, exc_value, exc_tb) -> None:
        self._handle_fault(exc_value, (exc_type, exc_value, exc_tb))
        if self._previous_excepthook:
            self._previous_excepthook(exc_type, exc_value, exc_tb)

    def _threading_excepthook(self, args) -> None:
        if args.exc_type is SystemExit:
            return
        self._handle_fault(args.exc_value, (args.exc_type, args.exc_value, args.exc_traceback))
        if self._previous_threading_excepthook:
            self._previous_threading_excepthook(args)

    def _exit_hook(self) -> None:
        if not self._is_exited():
            self.log.debug("Interpreter shutting down with the child still running.")
            self._terminate_and_wait()

    #* --- Escalation ---
    def _arm_escalation(self, delay: float, exit_code: int) -> None:
        """Force-exits the wrapper if the child has not exited after `delay` seconds."""
        with self._lock:
            if self._escalation_timer is not None or not self._registered:
                return
            timer = threading.Timer(delay, self._escalate, args=(delay, exit_code))
            timer.daemon = True
            self._escalation_timer = timer
        timer.start()

    def _escalate(self, delay: float, exit_code: int) -> None:
        if self._is_exited():
            return
        self.log.error(f"Child did not exit within {delay:g}s of the stop request. Forcing exit with status {exit_code}.")
        _flush_log_handlers()
        self._force_exit(exit_code)

    def _fault_exit(self) -> None:
        self.log.error(f"Exiting after fatal fault with status {config.FAULT_EXIT_CODE}.")
        _flush_log_handlers()
        self._force_exit(config.FAULT_EXIT_CODE)
