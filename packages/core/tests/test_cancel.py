"""Tests for cooperative cancellation tokens."""

import time

import pytest

from prdigest_core.cancel import CancelToken
from prdigest_core.errors import ItemCancelled


class _FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


class TestCancelToken:
    def test_never_is_not_cancelled(self):
        token = CancelToken.never()
        assert token.cancelled is False
        assert token.remaining() is None
        token.raise_if_cancelled()  # must not raise

    def test_cancel_sets_flag(self):
        token = CancelToken.never()
        token.cancel()
        assert token.cancelled is True

    def test_deadline_trips_cancelled(self):
        clock = _FakeClock()
        token = CancelToken(timeout=5, clock=clock)
        assert token.cancelled is False
        assert token.remaining() == 5

        clock.now += 5
        assert token.cancelled is True
        assert token.remaining() == 0.0

    def test_raise_if_cancelled(self):
        token = CancelToken.never()
        token.cancel()
        with pytest.raises(ItemCancelled):
            token.raise_if_cancelled()

    def test_wait_returns_immediately_when_cancelled(self):
        token = CancelToken.never()
        token.cancel()
        assert token.wait(10) is True

    def test_wait_returns_false_when_not_cancelled(self):
        token = CancelToken.never()
        assert token.wait(0.01) is False

    def test_wait_is_capped_by_deadline(self):
        token = CancelToken(timeout=0.05)
        started = time.monotonic()
        token.wait(30)
        assert time.monotonic() - started < 5
