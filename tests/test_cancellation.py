"""Tests for CancellationToken."""

import asyncio
import threading

import pytest

from storefx import CancellationToken


class TestCancellationToken:
    def test_starts_active(self):
        token = CancellationToken()
        assert not token.cancelled

    def test_cancel_sets_flag(self):
        token = CancellationToken()
        token.cancel()
        assert token.cancelled

    def test_callbacks_run_once_in_order(self):
        token = CancellationToken()
        log = []
        token.add_callback(lambda: log.append("a"))
        token.add_callback(lambda: log.append("b"))
        token.cancel()
        token.cancel()
        assert log == ["a", "b"]

    def test_callback_after_cancel_runs_immediately(self):
        token = CancellationToken()
        token.cancel()
        log = []
        token.add_callback(lambda: log.append(1))
        assert log == [1]

    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.raise_if_cancelled()  # no-op while active
        token.cancel()
        with pytest.raises(asyncio.CancelledError):
            token.raise_if_cancelled()

    def test_cancel_from_other_thread(self):
        token = CancellationToken()
        seen = threading.Event()
        token.add_callback(seen.set)
        t = threading.Thread(target=token.cancel)
        t.start()
        t.join()
        assert seen.is_set()
        assert token.cancelled

    def test_repr(self):
        token = CancellationToken()
        assert "active" in repr(token)
        token.cancel()
        assert "cancelled" in repr(token)
