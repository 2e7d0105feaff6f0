import psutil
import logging
from dataclasses import dataclass
from typing import List, Optional

log = logging.getLogger(__name__)


@dataclass
class ProcessInfo:
    """A snapshot of basic metadata for a single process."""
    pid: int
    name: str
    command_line: str
    parent_pid: Optional[int] = None
    memory_mb: Optional[float] = None
    cpu_seconds: Optional[float] = None


#* --- Liveness ---
def pid_exists(pid: int) -> bool:
    """A wrapper for psutil.pid_exists for easy testing/mocking if needed."""
    return psutil.pid_exists(pid)

def get_process_from_pid(pid: int) -> psutil.Process:
    """A wrapper for psutil.Process for easy testing/mocking if needed."""
    return psutil.Process(pid)

def is_process_running(pid: int) -> bool:
    """Returns True if the process exists and is not a zombie."""
    try:
        proc = get_process_from_pid(pid)
        return proc.is_running() and proc.status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False
    except psutil.Error as e:
        # Access denied still means the process is there.
        log.debug(f"Could not inspect PID {pid}: {e}")
        return pid_exists(pid)


#* --- Enumeration ---
def get_child_pids(parent_pid: int, recursive: bool = False) -> List[int]:
    """
    Returns the PIDs of processes whose parent is `parent_pid`.

    :param parent_pid: The PID whose children should be listed.
    :param recursive: If True, walks the whole tree below `parent_pid`.
    :return: A list of child PIDs, empty if the parent is gone or inaccessible.
    """
    try:
        children = get_process_from_pid(parent_pid).children(recursive=recursive)
    except psutil.NoSuchProcess:
        return []
    except psutil.Error as e:
        log.warning(f"Error getting child PIDs for {parent_pid}: {e}")
        return []
    return [child.pid for child in children]

def _safe_command_line(proc: psutil.Process) -> str:
    try:
        return " ".join(proc.cmdline())
    except (psutil.AccessDenied, psutil.ZombieProcess):
        return ""

def get_process_info(pid: int) -> Optional[ProcessInfo]:
    """
    Gets detailed information about a process.

    :param pid: The process identifier.
    :return: A ProcessInfo, or None if the process does not exist or cannot be read.
    """
    try:
        proc = get_process_from_pid(pid)
        with proc.oneshot():
            info = ProcessInfo(
                pid=pid,
                name=proc.name() or "unknown",
                command_line=_safe_command_line(proc),
                parent_pid=proc.ppid(),
            )
            try:
                info.memory_mb = proc.memory_info().rss / 1024 / 1024
                cpu = proc.cpu_times()
                info.cpu_seconds = cpu.user + cpu.system
            except psutil.AccessDenied:
                pass
        return info
    except psutil.Error as e:
        log.debug(f"Could not read process info for PID {pid}: {e}")
        return None

def find_processes(pattern: str) -> List[ProcessInfo]:
    """
    Finds all processes whose command line contains `pattern` (case-insensitive).
    The calling process is never included.

    :param pattern: Substring to look for in the command line.
    :return: A list of matching ProcessInfo entries.
    """
    needle = pattern.lower()
    own_pid = psutil.Process().pid
    matches: List[ProcessInfo] = []
    for proc in psutil.process_iter(["pid", "name", "cmdline", "ppid"]):
        try:
            if proc.info["pid"] == own_pid:
                continue
            command_line = " ".join(proc.info["cmdline"] or [])
            if needle not in command_line.lower():
                continue
            matches.append(ProcessInfo(
                pid=proc.info["pid"],
                name=proc.info["name"] or "unknown",
                command_line=command_line,
                parent_pid=proc.info["ppid"],
            ))
        except psutil.Error:
            continue
    return matches


#* --- Killing ---
def kill_process_tree(pid: int, force: bool = False, timeout: float = 3.0) -> bool:
    """
    Kills a process and all of its descendants.

    :param pid: The root of the tree.
    :param force: If True, kills outright instead of asking processes to terminate.
    :param timeout: Seconds to wait for the processes to go away.
    :return: True if every process in the tree is gone afterwards.
    """
    try:
        root = get_process_from_pid(pid)
        procs = root.children(recursive=True) + [root]
    except psutil.NoSuchProcess:
        return True
    except psutil.Error as e:
        log.error(f"Could not enumerate process tree {pid}: {e}")
        return False

    for proc in procs:
        try:
            if force:
                proc.kill()
            else:
                proc.terminate()
        except psutil.NoSuchProcess:
            continue
        except psutil.Error as e:
            log.warning(f"Failed to stop PID {proc.pid}: {e}")

    _, alive = psutil.wait_procs(procs, timeout=timeout)
    return not alive
