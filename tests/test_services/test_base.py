"""Tests for the base service."""

import logging

import pytest

from dvdiso.config.settings import Settings
from dvdiso.services.base import BaseService
from dvdiso.utils.logging import LogSink


@pytest.fixture
def settings(tmp_path):
    """Create test settings."""
    return Settings(
        tools_dir=tmp_path / "tools",
        work_dir=tmp_path / "work",
        output_dir=tmp_path / "output",
        log_dir=tmp_path / "logs",
        log_level="DEBUG",
    )


class SampleService(BaseService):
    pass


class TestBaseService:
    """Test cases for BaseService."""

    def test_initialization(self, settings):
        """Test settings injection and logger naming."""
        service = SampleService(settings)
        assert service.settings is settings
        assert isinstance(service.log_sink, LogSink)
        assert service.logger.name == __name__

    def test_shared_log_sink(self, settings):
        """Test that an injected sink is used."""
        sink = LogSink()
        assert SampleService(settings, sink).log_sink is sink

    def test_operation_logging(self, settings, caplog):
        """Test the operation log helpers."""
        service = SampleService(settings)
        with caplog.at_level(logging.INFO, logger=__name__):
            service._log_operation_start("transcode", source="a.mkv")
            service._log_operation_complete("transcode")
            service._log_operation_error("transcode", ValueError("bad"), code=1)

        messages = [record.getMessage() for record in caplog.records]
        assert "Starting transcode (context: source=a.mkv)" in messages
        assert "Completed transcode" in messages
        assert "Failed transcode: bad (context: code=1)" in messages
