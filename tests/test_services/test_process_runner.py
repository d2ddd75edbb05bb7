"""Tests for external process supervision."""

import sys
import threading
import time
from pathlib import Path
from unittest.mock import Mock, patch

import psutil
import pytest

from dvdiso.exceptions import JobCancelledError, ToolExecutionError, ToolMissingError
from dvdiso.services.process_runner import (
    ProcessResult,
    ProcessRunner,
    resolve_executable,
    tool_name,
)
from dvdiso.utils.cancellation import CancellationToken
from dvdiso.utils.logging import LogSink

PYTHON = sys.executable

SPAWN_GRANDCHILD = (
    "import subprocess, sys, time\n"
    "child = subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(30)'])\n"
    "print(child.pid, flush=True)\n"
    "time.sleep(30)\n"
)


def python_args(code: str) -> list:
    return ["-c", code]


def process_gone(pid: int) -> bool:
    try:
        return psutil.Process(pid).status() == psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return True


class TestHelpers:
    """Test cases for module helpers."""

    @pytest.mark.parametrize(
        "executable,expected",
        [
            ("/usr/bin/ffmpeg", "ffmpeg"),
            (Path("C:/tools/DVDAuthor.exe"), "dvdauthor"),
            ("xorriso", "xorriso"),
        ],
    )
    def test_tool_name(self, executable, expected):
        """Test short tool names."""
        assert tool_name(executable) == expected

    def test_resolve_missing_path(self, tmp_path):
        """Test that missing files resolve to None."""
        assert resolve_executable(tmp_path / "nope") is None

    def test_resolve_existing_path(self):
        """Test that existing files resolve to themselves."""
        assert resolve_executable(PYTHON) == Path(PYTHON)

    @patch("dvdiso.services.process_runner.shutil.which", return_value=None)
    def test_resolve_bare_name_not_on_path(self, mock_which):
        """Test PATH lookup for bare names."""
        assert resolve_executable("dvdauthor") is None
        mock_which.assert_called_once_with("dvdauthor")


class TestProcessResult:
    """Test cases for ProcessResult."""

    def test_check_success(self):
        """Test that a zero exit code passes."""
        result = ProcessResult(tool="ffmpeg", exit_code=0)
        assert result.succeeded
        assert result.check() is result

    def test_check_failure(self):
        """Test that a non-zero exit code raises with the output tail."""
        result = ProcessResult(tool="ffmpeg", exit_code=2, output_tail=["boom"])
        with pytest.raises(ToolExecutionError) as exc_info:
            result.check(stage="Transcode")
        assert exc_info.value.exit_code == 2
        assert exc_info.value.stage == "Transcode"
        assert exc_info.value.output_tail == ["boom"]


class TestProcessRunner:
    """Test cases for ProcessRunner with real child processes."""

    def setup_method(self):
        self.sink = LogSink()
        self.runner = ProcessRunner(self.sink, kill_timeout=2.0, poll_interval=0.05)

    def test_output_streamed_to_sink(self):
        """Test that stdout and stderr lines reach the log sink."""
        result = self.runner.run(
            PYTHON,
            python_args(
                "import sys; print('hello'); print('warning', file=sys.stderr)"
            ),
        )

        assert result.exit_code == 0
        lines = self.sink.lines()
        streams = {(line.stream, line.text) for line in lines}
        assert ("stdout", "hello") in streams
        assert ("stderr", "warning") in streams
        assert lines[0].stream == "cmd"
        assert lines[-1].text == "EXIT: 0"

    def test_empty_sink_is_kept(self):
        """Test that a fresh sink passed in is used and its subscribers notified."""
        sink = LogSink()
        seen = []
        sink.subscribe(seen.append)
        runner = ProcessRunner(sink, poll_interval=0.05)

        runner.run(PYTHON, python_args("print('hello-from-tool')"))

        assert runner.log_sink is sink
        assert "hello-from-tool" in [line.text for line in seen]

    def test_exit_code_and_tail(self):
        """Test that failures report the exit code and last output."""
        result = self.runner.run(
            PYTHON, python_args("import sys; print('bad input'); sys.exit(3)")
        )
        assert result.exit_code == 3
        assert not result.succeeded
        assert result.output_tail == ["bad input"]

    def test_tail_is_bounded(self):
        """Test that only the configured number of lines is kept."""
        runner = ProcessRunner(self.sink, tail_lines=5, poll_interval=0.05)
        result = runner.run(PYTHON, python_args("for i in range(50): print(i)"))
        assert result.output_tail == ["45", "46", "47", "48", "49"]

    def test_line_callback(self):
        """Test that every line is passed to the callback."""
        callback = Mock()
        self.runner.run(PYTHON, python_args("print('frame=1')"), line_callback=callback)
        callback.assert_any_call("stdout", "frame=1")

    def test_capture_stdout(self):
        """Test that captured stdout is returned instead of logged."""
        result = self.runner.run(
            PYTHON, python_args("print('{\"a\": 1}')"), capture_stdout=True
        )
        assert result.stdout == '{"a": 1}\n'
        assert all(line.stream != "stdout" for line in self.sink.lines())

    def test_working_dir(self, tmp_path):
        """Test that the process runs in the requested directory."""
        result = self.runner.run(
            PYTHON,
            python_args("import os; print(os.getcwd())"),
            working_dir=tmp_path,
            capture_stdout=True,
        )
        assert Path(result.stdout.strip()).resolve() == tmp_path.resolve()

    @patch("dvdiso.services.process_runner.subprocess.Popen")
    def test_missing_executable_not_started(self, mock_popen, tmp_path):
        """Test that a missing tool raises before anything is spawned."""
        with pytest.raises(ToolMissingError) as exc_info:
            self.runner.run(tmp_path / "dvdauthor", [])
        assert exc_info.value.tool == "dvdauthor"
        mock_popen.assert_not_called()

    @patch("dvdiso.services.process_runner.subprocess.Popen")
    def test_already_cancelled_not_started(self, mock_popen):
        """Test that a cancelled token prevents the launch."""
        token = CancellationToken()
        token.cancel()
        with pytest.raises(JobCancelledError):
            self.runner.run(PYTHON, python_args("pass"), cancel_token=token)
        mock_popen.assert_not_called()

    def test_cancellation_kills_process(self):
        """Test that cancelling stops a long running process promptly."""
        token = CancellationToken()
        timer = threading.Timer(0.3, token.cancel)
        timer.start()
        started = time.monotonic()
        try:
            with pytest.raises(JobCancelledError) as exc_info:
                self.runner.run(
                    PYTHON,
                    python_args("import time; time.sleep(30)"),
                    cancel_token=token,
                )
        finally:
            timer.cancel()

        assert time.monotonic() - started < 10
        assert exc_info.value.tool == tool_name(PYTHON)

    def test_cancellation_kills_children(self):
        """Test that grandchild processes are terminated too."""
        token = CancellationToken()
        pids = []

        def on_line(stream, line):
            if stream == "stdout" and line.isdigit():
                pids.append(int(line))
                token.cancel()

        with pytest.raises(JobCancelledError):
            self.runner.run(
                PYTHON,
                python_args(SPAWN_GRANDCHILD),
                cancel_token=token,
                line_callback=on_line,
            )

        assert pids
        assert process_gone(pids[0])

    @patch("dvdiso.services.process_runner.psutil.Process")
    def test_kill_missing_process(self, mock_process):
        """Test that killing an already exited process is a no-op."""
        mock_process.side_effect = psutil.NoSuchProcess(12345)
        self.runner.kill_process_tree(12345)
