import os
import subprocess

import pytest

from conftest import IS_WINDOWS
from reliable_mcp.local.supervisor import process_utils
from reliable_mcp.local.supervisor.process_utils import (
    build_popen_args,
    format_process_title,
    get_popen_group_kwargs,
    merge_environment,
    resolve_command,
    set_process_title,
)


#* --- Command Resolution ---
def test_resolve_command_unchanged_off_windows(monkeypatch):
    monkeypatch.setattr(process_utils, "IS_WINDOWS", False)
    assert resolve_command("npx") == "npx"


def test_resolve_command_finds_windows_shim(monkeypatch, tmp_path):
    monkeypatch.setattr(process_utils, "IS_WINDOWS", True)
    monkeypatch.setenv("npm_config_prefix", str(tmp_path))
    shim = tmp_path / "npx.cmd"
    shim.write_text("@echo off\n")

    assert resolve_command("npx") == str(shim)


def test_resolve_command_falls_back_to_bat(monkeypatch, tmp_path):
    monkeypatch.setattr(process_utils, "IS_WINDOWS", True)
    monkeypatch.delenv("npm_config_prefix", raising=False)
    monkeypatch.setenv("APPDATA", str(tmp_path))
    (tmp_path / "npm").mkdir()
    shim = tmp_path / "npm" / "npm.bat"
    shim.write_text("@echo off\n")

    assert resolve_command("npm") == str(shim)


def test_resolve_command_leaves_other_commands(monkeypatch, tmp_path):
    monkeypatch.setattr(process_utils, "IS_WINDOWS", True)
    monkeypatch.setenv("npm_config_prefix", str(tmp_path))
    (tmp_path / "node.cmd").write_text("")

    assert resolve_command("node") == "node"


#* --- Process Creation ---
def test_merge_environment_overrides_win(monkeypatch):
    monkeypatch.setenv("RELIABLE_MCP_TEST_VALUE", "parent")
    env = merge_environment({"RELIABLE_MCP_TEST_VALUE": "child", "EXTRA": 1})

    assert env["RELIABLE_MCP_TEST_VALUE"] == "child"
    assert env["EXTRA"] == "1"
    assert os.environ["RELIABLE_MCP_TEST_VALUE"] == "parent"


def test_merge_environment_without_overrides():
    assert merge_environment(None) == dict(os.environ)


@pytest.mark.skipif(IS_WINDOWS, reason="POSIX process groups")
class TestPosixGroupKwargs:
    def test_new_group_by_default(self, monkeypatch):
        monkeypatch.setattr(process_utils, "_stdin_is_terminal", lambda: False)
        assert get_popen_group_kwargs() == {"process_group": 0}

    def test_detached_starts_new_session(self, monkeypatch):
        monkeypatch.setattr(process_utils, "_stdin_is_terminal", lambda: False)
        assert get_popen_group_kwargs(detached=True) == {"start_new_session": True}

    def test_terminal_stdin_keeps_foreground_group(self, monkeypatch):
        monkeypatch.setattr(process_utils, "_stdin_is_terminal", lambda: True)
        assert get_popen_group_kwargs() == {}


@pytest.mark.skipif(not IS_WINDOWS, reason="Windows creation flags")
def test_windows_hides_console():
    assert get_popen_group_kwargs(hide_window=True) == {"creationflags": subprocess.CREATE_NO_WINDOW}
    assert get_popen_group_kwargs(hide_window=False) == {}


def test_build_popen_args_direct():
    assert build_popen_args("node", ["server.js"], shell=None) == {"args": ["node", "server.js"]}


def test_build_popen_args_default_shell(monkeypatch):
    monkeypatch.setattr(process_utils, "IS_WINDOWS", False)
    assert build_popen_args("echo", ["hi"], shell=True) == {"args": "echo hi", "shell": True}


def test_build_popen_args_custom_shell(monkeypatch):
    monkeypatch.setattr(process_utils, "IS_WINDOWS", False)
    popen_args = build_popen_args("echo", ["hi"], shell="/bin/bash")

    assert popen_args["shell"] is True
    assert popen_args["executable"] == "/bin/bash"


#* --- Process Title ---
def test_format_process_title():
    assert format_process_title("filesystem", 4321) == "reliable-mcp: filesystem [PID:4321]"


def test_set_process_title_ignores_empty():
    assert set_process_title(None) is False
    assert set_process_title("") is False


def test_set_process_title_failure_is_swallowed(monkeypatch):
    def broken(title):
        raise OSError("not supported")

    monkeypatch.setattr(process_utils.setproctitle, "setproctitle", broken)
    assert set_process_title("anything") is False
