"""Tests for the run_command tool."""

import sys
import time

import pytest

from zesbe.tools import ToolCall, ToolContext, execute, run_shell

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="uses /bin/sh")


def test_captures_stdout_and_stderr(tmp_path):
    result = run_shell("echo out; echo err 1>&2", tmp_path)
    assert result.success
    assert "out" in result.output
    assert "err" in result.output


def test_runs_in_context_directory(tmp_path):
    (tmp_path / "marker").write_text("")
    result = execute(ToolCall("run_command", {"command": "ls"}), ToolContext(tmp_path))
    assert result.output.split() == ["marker"]


def test_nonzero_exit(tmp_path):
    result = run_shell("echo partial; exit 3", tmp_path)
    assert not result.success
    assert result.error == "exit status 3"
    assert "partial" in result.output


def test_timeout_keeps_partial_output(tmp_path):
    t0 = time.monotonic()
    result = run_shell("echo started; sleep 30", tmp_path, timeout=0.5)
    assert time.monotonic() - t0 < 10
    assert not result.success
    assert result.error == "command timed out"
    assert "started" in result.output


def test_timeout_kills_background_children(tmp_path):
    marker = tmp_path / "survived"
    result = run_shell(f"(sleep 2; touch {marker}) & sleep 30", tmp_path, timeout=0.5)
    assert result.error == "command timed out"
    time.sleep(2.5)
    assert not marker.exists()


def test_stdin_is_closed(tmp_path):
    result = run_shell("cat", tmp_path, timeout=5)
    assert result.success
    assert result.output == ""


def test_missing_directory(tmp_path):
    result = run_shell("true", tmp_path / "missing")
    assert not result.success
    assert "failed to start command" in result.error
