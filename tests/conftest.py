import sys
import time
import signal
import logging
import threading
import subprocess
from pathlib import Path

import pytest

from reliable_mcp.local.config import effective_settings
from reliable_mcp.local.supervisor import SupervisionSpec
from reliable_mcp.local.supervisor.handlers import relayed_signals

IS_WINDOWS = sys.platform == "win32"
posix_only = pytest.mark.skipif(IS_WINDOWS, reason="POSIX signals and process groups")


@pytest.fixture(autouse=True)
def restore_process_hooks():
    """Restore signal handlers, exception hooks and root log handlers after each test."""
    signals = {signum: signal.getsignal(signum) for signum in relayed_signals()}
    excepthook = sys.excepthook
    threading_excepthook = threading.excepthook
    root_handlers = list(logging.getLogger().handlers)
    root_level = logging.getLogger().level

    yield

    for signum, handler in signals.items():
        if handler is not None:
            signal.signal(signum, handler)
    sys.excepthook = excepthook
    threading.excepthook = threading_excepthook
    root = logging.getLogger()
    root.handlers[:] = root_handlers
    root.setLevel(root_level)


@pytest.fixture
def fast_shutdown(monkeypatch):
    """Shorten the shutdown timings so escalation paths finish quickly."""
    monkeypatch.setattr(effective_settings, "GRACEFUL_SHUTDOWN_TIMEOUT", 1.0)
    monkeypatch.setattr(effective_settings, "TERMINATION_CONFIRM_TIMEOUT", 1.0)
    monkeypatch.setattr(effective_settings, "SIGNAL_EXIT_GRACE", 0.2)
    monkeypatch.setattr(effective_settings, "FAULT_EXIT_GRACE", 0.2)
    return effective_settings


def python_spec(code: str, **kwargs) -> SupervisionSpec:
    """A spec running `code` with the current interpreter."""
    return SupervisionSpec(command=sys.executable, arguments=["-c", code], **kwargs)


def wait_for_file(path: Path, timeout: float = 10.0) -> str:
    """Waits until `path` exists with content and returns the content."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if path.exists():
            content = path.read_text().strip()
            if content:
                return content
        time.sleep(0.02)
    raise TimeoutError(f"{path} was not written in time")


@pytest.fixture
def dead_pid():
    """A PID that belonged to a process which has already exited and been reaped."""
    proc = subprocess.Popen([sys.executable, "-c", "pass"])
    proc.wait()
    return proc.pid
