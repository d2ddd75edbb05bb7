"""External process supervision.

Every external tool invocation goes through :class:`ProcessRunner`. It
streams tool output into the job's :class:`LogSink` as it arrives, waits for
the process while watching the job's cancellation token, and on
cancellation kills the whole process tree before returning.
"""

import shutil
import subprocess
import sys
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Callable, Deque, List, Optional, Sequence, Union

import psutil

from ..exceptions import JobCancelledError, ToolExecutionError, ToolMissingError
from ..utils.cancellation import CancellationToken
from ..utils.logging import LogSink, format_command, get_logger

logger = get_logger(__name__)

LineCallback = Callable[[str, str], None]

DEFAULT_POLL_INTERVAL = 0.2
DEFAULT_TAIL_LINES = 40
READER_JOIN_TIMEOUT = 2.0


@dataclass
class ProcessResult:
    """Outcome of a finished external process."""

    tool: str
    exit_code: int
    output_tail: List[str] = field(default_factory=list)
    stdout: str = ""
    duration: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    def check(self, stage: Optional[str] = None) -> "ProcessResult":
        """Raise :class:`ToolExecutionError` for a non-zero exit code."""
        if self.exit_code != 0:
            raise ToolExecutionError(
                self.tool, self.exit_code, self.output_tail, stage=stage
            )
        return self


def tool_name(executable: Union[str, Path]) -> str:
    """Short tool name used in logs and errors (``ffmpeg``, ``dvdauthor``)."""
    return Path(str(executable)).stem.lower()


def resolve_executable(executable: Union[str, Path]) -> Optional[Path]:
    """Return the full path of an executable, or None if it does not exist.

    Paths with a directory component must point at an existing file; bare
    names are looked up on PATH.
    """
    candidate = Path(str(executable))
    if candidate.parent != Path("."):
        return candidate if candidate.is_file() else None

    found = shutil.which(str(executable))
    return Path(found) if found else None


class ProcessRunner:
    """Launches external tools and supervises them until they exit."""

    def __init__(
        self,
        log_sink: Optional[LogSink] = None,
        kill_timeout: float = 5.0,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        tail_lines: int = DEFAULT_TAIL_LINES,
    ) -> None:
        """Initialize the runner.

        Args:
            log_sink: Destination for every line of tool output
            kill_timeout: Seconds to wait after terminating a cancelled
                process tree before killing it outright
            poll_interval: Seconds between cancellation checks
            tail_lines: Number of trailing output lines kept for errors
        """
        self.log_sink = log_sink if log_sink is not None else LogSink()
        self.kill_timeout = kill_timeout
        self.poll_interval = poll_interval
        self.tail_lines = tail_lines

    def run(
        self,
        executable: Union[str, Path],
        arguments: Sequence[Union[str, Path]],
        working_dir: Optional[Path] = None,
        cancel_token: Optional[CancellationToken] = None,
        line_callback: Optional[LineCallback] = None,
        capture_stdout: bool = False,
    ) -> ProcessResult:
        """Run an external executable to completion.

        Args:
            executable: Path or bare name of the executable
            arguments: Command line arguments
            working_dir: Working directory for the process
            cancel_token: Token checked while the process runs
            line_callback: Called with ``(stream, line)`` for every output line
            capture_stdout: Collect stdout and return it instead of logging it

        Returns:
            ProcessResult with the exit code and the tail of the output

        Raises:
            ToolMissingError: If the executable does not exist; nothing is started
            JobCancelledError: If cancellation was requested; the process tree
                has been killed when this is raised
        """
        name = tool_name(executable)
        resolved = resolve_executable(executable)
        if resolved is None:
            logger.error(f"Executable not found: {executable}")
            raise ToolMissingError(name, f"Executable not found: {executable}")

        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        args = [str(arg) for arg in arguments]
        command_line = format_command(resolved, args)
        logger.info(f"Executing command: {command_line}")
        self.log_sink.write(name, f"> {command_line}", stream="cmd")

        try:
            process = subprocess.Popen(
                [str(resolved), *args],
                cwd=str(working_dir) if working_dir else None,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                **self._session_kwargs(),
            )
        except FileNotFoundError as e:
            raise ToolMissingError(name, f"Executable not found: {executable}") from e
        except OSError as e:
            raise ToolExecutionError(
                name, -1, [str(e)], message=f"Failed to start {name}: {e}"
            ) from e

        started = time.monotonic()
        tail: Deque[str] = deque(maxlen=self.tail_lines)
        tail_lock = threading.Lock()
        stdout_lines: List[str] = []

        def consume(stream: IO[str], stream_name: str) -> None:
            for raw_line in iter(stream.readline, ""):
                line = raw_line.rstrip("\r\n")
                if not line:
                    continue
                if stream_name == "stdout" and capture_stdout:
                    stdout_lines.append(raw_line)
                else:
                    self.log_sink.write(name, line, stream=stream_name)
                    with tail_lock:
                        tail.append(line)
                if line_callback is not None:
                    line_callback(stream_name, line)
            stream.close()

        readers = [
            threading.Thread(
                target=consume,
                args=(pipe, stream_name),
                name=f"{name}-{stream_name}",
                daemon=True,
            )
            for pipe, stream_name in (
                (process.stdout, "stdout"),
                (process.stderr, "stderr"),
            )
        ]
        for reader in readers:
            reader.start()

        cancelled = False
        while True:
            try:
                exit_code = process.wait(timeout=self.poll_interval)
                break
            except subprocess.TimeoutExpired:
                if cancel_token is not None and cancel_token.is_cancelled:
                    cancelled = True
                    logger.warning(f"Cancelling {name} (pid {process.pid})")
                    self.kill_process_tree(process.pid)
                    exit_code = process.wait()
                    break

        for reader in readers:
            reader.join(timeout=READER_JOIN_TIMEOUT)

        duration = time.monotonic() - started
        self.log_sink.write(name, f"EXIT: {exit_code}", stream="exit")

        if cancelled:
            raise JobCancelledError(f"{name} was cancelled", tool=name)

        with tail_lock:
            output_tail = list(tail)

        if exit_code != 0:
            logger.warning(f"{name} exited with code {exit_code} after {duration:.1f}s")
        else:
            logger.debug(f"{name} completed in {duration:.1f}s")

        return ProcessResult(
            tool=name,
            exit_code=exit_code,
            output_tail=output_tail,
            stdout="".join(stdout_lines),
            duration=duration,
        )

    def kill_process_tree(self, pid: int) -> None:
        """Terminate a process and all of its descendants.

        Processes still alive after ``kill_timeout`` seconds are killed.
        """
        try:
            parent = psutil.Process(pid)
            children = parent.children(recursive=True)
        except psutil.NoSuchProcess:
            return

        procs = children + [parent]
        for proc in procs:
            try:
                proc.terminate()
            except psutil.NoSuchProcess:
                continue

        _, alive = psutil.wait_procs(procs, timeout=self.kill_timeout)
        for proc in alive:
            logger.debug(f"Killing unresponsive process {proc.pid}")
            try:
                proc.kill()
            except psutil.NoSuchProcess:
                continue
        psutil.wait_procs(alive, timeout=self.kill_timeout)

    @staticmethod
    def _session_kwargs() -> dict:
        """Start each tool in its own process group, detached from our signals."""
        if sys.platform == "win32":
            flags = getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0) | getattr(
                subprocess, "CREATE_NO_WINDOW", 0
            )
            return {"creationflags": flags}
        return {"start_new_session": True}
