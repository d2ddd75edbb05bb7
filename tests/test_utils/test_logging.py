"""Tests for logging utilities and the tool output sink."""

import json
import logging
import sys
import threading
from pathlib import Path
from unittest.mock import Mock

import pytest

from dvdiso.utils.logging import (
    TRACE_LEVEL,
    ContextFilter,
    JSONFormatter,
    LogLine,
    LogSink,
    format_command,
    get_correlation_id,
    operation_context,
    set_correlation_id,
    setup_logging,
)


@pytest.fixture
def restore_root_logger():
    """Restore root logger handlers after a test reconfigures logging."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def make_record(message: str = "hello") -> logging.LogRecord:
    return logging.LogRecord(
        "dvdiso.test", logging.INFO, __file__, 1, message, (), None
    )


class TestSetupLogging:
    """Test cases for setup_logging."""

    def test_creates_log_file(self, tmp_path, restore_root_logger):
        """Test that the rotating log file is created."""
        setup_logging(tmp_path / "logs", console_output=False)
        logging.getLogger("dvdiso.test").info("written")

        log_file = tmp_path / "logs" / "dvdiso.log"
        assert log_file.exists()

    def test_json_file_format(self, tmp_path, restore_root_logger):
        """Test that file entries are JSON when requested."""
        setup_logging(tmp_path, console_output=False, json_format=True)
        logging.getLogger("dvdiso.test").warning("structured")
        for handler in logging.getLogger().handlers:
            handler.flush()

        entry = json.loads((tmp_path / "dvdiso.log").read_text().splitlines()[-1])
        assert entry["message"] == "structured"
        assert entry["level"] == "WARNING"

    def test_trace_level(self, tmp_path, restore_root_logger):
        """Test that the TRACE level is accepted."""
        setup_logging(tmp_path, log_level="TRACE", console_output=False)
        handler = logging.getLogger().handlers[0]
        assert handler.level == TRACE_LEVEL


class TestContext:
    """Test cases for correlation and operation context."""

    def test_set_correlation_id_generates(self):
        """Test that a correlation ID is generated when omitted."""
        correlation_id = set_correlation_id()
        assert correlation_id
        assert get_correlation_id() == correlation_id

    def test_operation_context_attaches_fields(self):
        """Test that records inside the context carry its fields."""
        record = make_record()
        with operation_context("convert_job", component="pipeline", job_id="abc"):
            ContextFilter().filter(record)

        assert record.operation == "convert_job"
        assert record.component == "pipeline"
        assert record.job_id == "abc"

    def test_operation_context_restores_previous(self):
        """Test that nested contexts restore the outer one."""
        with operation_context("outer", correlation_id="outer-id"):
            with operation_context("inner"):
                pass
            assert get_correlation_id() == "outer-id"


class TestJSONFormatter:
    """Test cases for JSONFormatter."""

    def test_includes_context(self):
        """Test that extra record fields land under context."""
        record = make_record()
        record.job_id = "abc"
        entry = json.loads(JSONFormatter().format(record))
        assert entry["context"] == {"job_id": "abc"}

    def test_includes_exception(self):
        """Test that exceptions are serialized."""
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord(
                "x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info()
            )
        entry = json.loads(JSONFormatter().format(record))
        assert entry["exception"]["type"] == "RuntimeError"


class TestFormatCommand:
    """Test cases for format_command."""

    def test_quotes_arguments_with_spaces(self):
        """Test shell quoting of logged commands."""
        rendered = format_command(Path("/usr/bin/ffmpeg"), ["-i", "my movie.mkv"])
        assert rendered == "/usr/bin/ffmpeg -i 'my movie.mkv'"


class TestLogSink:
    """Test cases for LogSink."""

    def test_write_and_read(self):
        """Test that written lines are retained in order."""
        sink = LogSink()
        sink.write("ffmpeg", "first")
        sink.write("dvdauthor", "second\n", stream="stderr")

        lines = sink.lines()
        assert [line.text for line in lines] == ["first", "second"]
        assert lines[1].stream == "stderr"
        assert len(sink) == 2

    def test_filter_by_source(self):
        """Test per-tool views."""
        sink = LogSink()
        sink.write("ffmpeg", "a")
        sink.write("ffprobe", "b")
        assert [line.text for line in sink.lines("ffprobe")] == ["b"]

    def test_max_lines(self):
        """Test that only the newest lines are retained."""
        sink = LogSink(max_lines=3)
        for index in range(5):
            sink.write("tool", str(index))
        assert [line.text for line in sink.lines()] == ["2", "3", "4"]

    def test_subscribers_receive_lines(self):
        """Test live delivery to subscribers."""
        sink = LogSink()
        subscriber = Mock()
        sink.subscribe(subscriber)
        line = sink.write("ffmpeg", "frame=1")

        subscriber.assert_called_once_with(line)
        assert isinstance(line, LogLine)

    def test_forwards_to_logger(self):
        """Test that lines also go to the tools logger."""
        logger = Mock()
        sink = LogSink(logger=logger)
        sink.write("ffmpeg", "hello")
        logger.debug.assert_called_once_with("[ffmpeg:info] hello")

    def test_concurrent_writers(self):
        """Test that concurrent writes are all kept."""
        sink = LogSink()

        def writer(name):
            for index in range(200):
                sink.write(name, str(index))

        threads = [threading.Thread(target=writer, args=(f"t{i}",)) for i in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(sink) == 800
        assert len(sink.lines("t2")) == 200
