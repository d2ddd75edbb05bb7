"""Tests for the cancellation token."""

import threading

import pytest

from dvdiso.exceptions import JobCancelledError
from dvdiso.utils.cancellation import CancellationToken


class TestCancellationToken:
    """Test cases for CancellationToken."""

    def test_initial_state(self):
        """Test that a new token is not cancelled."""
        token = CancellationToken()
        assert not token.is_cancelled
        token.raise_if_cancelled()

    def test_cancel(self):
        """Test cancelling a token."""
        token = CancellationToken()
        token.cancel()
        assert token.is_cancelled

    def test_raise_if_cancelled_names_stage(self):
        """Test the error raised after cancellation."""
        token = CancellationToken()
        token.cancel()

        with pytest.raises(JobCancelledError) as exc_info:
            token.raise_if_cancelled("Transcode")
        assert exc_info.value.stage == "Transcode"

    def test_cancel_from_other_thread(self):
        """Test that a cancel on another thread is seen by the job."""
        token = CancellationToken()
        thread = threading.Thread(target=token.cancel)
        thread.start()
        thread.join(timeout=5)

        with pytest.raises(JobCancelledError):
            token.raise_if_cancelled()

    def test_cancel_twice(self):
        """Test that repeated cancels are harmless."""
        token = CancellationToken()
        token.cancel()
        token.cancel()
        assert token.is_cancelled
