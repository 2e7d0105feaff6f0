"""
Process tree termination.

Two strategies are provided, both running a graceful phase followed by a
forced phase:

- `ProcessGroupTerminator` signals the child's process group. Used on POSIX
  when the child leads its own group.
- `TreeEnumerationTerminator` walks the parent/child PID tree and stops each
  process individually. Used on Windows, and on POSIX when the child shares
  the wrapper's process group.

Terminators only ever receive a numeric PID. The root process is never waited
on through psutil, since reaping it here would steal the exit status from the
supervisor that owns the Popen handle.
"""
import os
import sys
import time
import signal
import psutil
import logging
from typing import Iterable, List, Optional, Set

from reliable_mcp.local.config import effective_settings as config
from reliable_mcp.local.process_info import get_process_from_pid, is_process_running

log = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"
POLL_INTERVAL = 0.05


#* --- Helpers ---
def snapshot_descendants(pid: int) -> List[psutil.Process]:
    """Returns all current descendants of `pid`, or an empty list if it is gone."""
    try:
        return get_process_from_pid(pid).children(recursive=True)
    except psutil.NoSuchProcess:
        return []
    except psutil.Error as e:
        log.warning(f"Could not enumerate descendants of PID {pid}: {e}")
        return []

def wait_for_exit(pids: Iterable[int], timeout: float) -> List[int]:
    """
    Polls until every PID is gone or `timeout` elapses. Zombies count as gone.

    :return: The PIDs still running when the wait ended.
    """
    remaining: Set[int] = set(pids)
    deadline = time.monotonic() + timeout
    while remaining:
        remaining = {pid for pid in remaining if is_process_running(pid)}
        if not remaining or time.monotonic() >= deadline:
            break
        time.sleep(POLL_INTERVAL)
    return sorted(remaining)

def confirm_stopped(pid: int, timeout: float) -> bool:
    """Best-effort, bounded check that the root process is no longer running."""
    return not wait_for_exit([pid], timeout)


class TreeTerminator:
    """
    Stops a process and all of its descendants.

    :param grace_period: Seconds between the graceful and the forced phase.
    :param confirm_timeout: Seconds to wait for the root to disappear after the forced phase.
    :param label: Name used in diagnostics.
    """
    name = "base"

    def __init__(self, grace_period: Optional[float] = None, confirm_timeout: Optional[float] = None, label: Optional[str] = None) -> None:
        self.grace_period = config.GRACEFUL_SHUTDOWN_TIMEOUT if grace_period is None else grace_period
        self.confirm_timeout = config.TERMINATION_CONFIRM_TIMEOUT if confirm_timeout is None else confirm_timeout
        self.log = logging.LoggerAdapter(log, {"label": label})
        self.failures: List[str] = []
        self.survivors: List[int] = []

    def _record_failure(self, message: str) -> None:
        self.failures.append(message)
        self.log.warning(message)

    def _confirm(self, pid: int, descendants: Iterable[psutil.Process]) -> bool:
        """Checks the root is gone and records every tracked process still running."""
        stopped = confirm_stopped(pid, self.confirm_timeout)
        alive = {proc.pid for proc in descendants if proc.pid != pid and is_process_running(proc.pid)}
        if not stopped:
            alive.add(pid)
        self.survivors = sorted(alive)
        return stopped

    def terminate_tree(self, pid: int, sig: int = signal.SIGTERM) -> bool:
        """
        Terminates `pid` and its descendants.

        :param pid: The root of the tree.
        :param sig: The signal used for the graceful phase.
        :return: True if the root was confirmed gone afterwards. Advisory only.
        """
        raise NotImplementedError


class ProcessGroupTerminator(TreeTerminator):
    """Signals the whole process group led by the root, then SIGKILLs it."""
    name = "process-group"

    def _signal_group(self, pid: int, sig: int) -> bool:
        try:
            os.killpg(pid, sig)
            return True
        except ProcessLookupError:
            self.log.debug(f"Process group {pid} no longer exists.")
        except PermissionError as e:
            self._record_failure(f"Not permitted to signal process group {pid}: {e}")
        return False

    def terminate_tree(self, pid: int, sig: int = signal.SIGTERM) -> bool:
        # Descendants that moved to their own group or session do not receive the group signal.
        descendants = snapshot_descendants(pid)
        self.log.debug(f"Sending {signal.Signals(sig).name} to process group {pid} ({len(descendants)} descendants).")
        self._signal_group(pid, sig)
        for proc in descendants:
            try:
                if os.getpgid(proc.pid) != pid:
                    proc.send_signal(sig)
            except (ProcessLookupError, psutil.NoSuchProcess):
                continue
            except (OSError, psutil.Error) as e:
                self._record_failure(f"Failed to signal PID {proc.pid}: {e}")

        alive = wait_for_exit([pid] + [p.pid for p in descendants], self.grace_period)
        if alive:
            self.log.warning(f"{len(alive)} processes did not terminate gracefully. Forcing shutdown...")
            self._signal_group(pid, signal.SIGKILL)
            known = {p.pid for p in descendants}
            late = [p for p in snapshot_descendants(pid) if p.pid not in known]
            _forceful_kill(self, [p for p in descendants if p.pid in alive] + late)
            descendants += late

        return self._confirm(pid, descendants)


class TreeEnumerationTerminator(TreeTerminator):
    """Enumerates the tree through parent PIDs and stops every process individually."""
    name = "tree-enumeration"

    def _graceful(self, proc: psutil.Process, sig: int) -> None:
        if IS_WINDOWS:
            proc.terminate()
        else:
            proc.send_signal(sig)

    def terminate_tree(self, pid: int, sig: int = signal.SIGTERM) -> bool:
        try:
            root = get_process_from_pid(pid)
        except psutil.NoSuchProcess:
            self.log.debug(f"Process {pid} already exited.")
            return True
        except psutil.Error as e:
            self._record_failure(f"Could not look up process {pid}: {e}")
            return self._confirm(pid, [])

        # Deepest descendants first, root last.
        procs = list(reversed(snapshot_descendants(pid))) + [root]
        self.log.debug(f"Terminating {len(procs)} processes in tree {pid}.")
        for proc in procs:
            try:
                self._graceful(proc, sig)
            except psutil.NoSuchProcess:
                continue
            except psutil.Error as e:
                self._record_failure(f"Failed to terminate PID {proc.pid}: {e}")

        alive = wait_for_exit([p.pid for p in procs], self.grace_period)
        if alive:
            self.log.warning(f"{len(alive)} processes did not terminate gracefully. Forcing shutdown...")
            known = {p.pid for p in procs}
            # Pick up anything the tree spawned during the grace period.
            late = [p for p in snapshot_descendants(pid) if p.pid not in known]
            _forceful_kill(self, late + [p for p in procs if p.pid in alive])
            procs += late

        return self._confirm(pid, procs)


def _forceful_kill(terminator: TreeTerminator, processes: List[psutil.Process]) -> None:
    """Forcefully kills processes that didn't terminate gracefully."""
    for proc in processes:
        try:
            terminator.log.warning(f"Killing stubborn process PID {proc.pid}.")
            proc.kill()
        except psutil.NoSuchProcess:
            continue
        except psutil.Error as e:
            terminator._record_failure(f"Failed to kill PID {proc.pid}: {e}")


def select_terminator(pid: int, label: Optional[str] = None) -> TreeTerminator:
    """
    Picks the termination strategy for `pid` based on what the platform offers.

    :param pid: The root process that will be terminated.
    :param label: Name used in diagnostics.
    :return: A group terminator if the root leads its own POSIX process group, otherwise a tree enumerator.
    """
    if IS_WINDOWS:
        return TreeEnumerationTerminator(label=label)
    try:
        leads_group = os.getpgid(pid) == pid
    except (ProcessLookupError, PermissionError):
        leads_group = False
    if leads_group:
        return ProcessGroupTerminator(label=label)
    return TreeEnumerationTerminator(label=label)
