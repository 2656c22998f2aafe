"""Tests for cancellation tokens."""

import threading

import pytest

from PrtgKit.Request import CancellationToken, RequestCancelledError


class TestCancellationToken:
    def test_initial_state(self):
        token = CancellationToken()
        assert not token.is_cancelled()
        token.raise_if_cancelled()

    def test_cancel_raises(self):
        token = CancellationToken()
        token.cancel()
        assert token.is_cancelled()
        with pytest.raises(RequestCancelledError):
            token.raise_if_cancelled()

    def test_callbacks_run_once(self):
        token = CancellationToken()
        calls = []
        token.register(lambda: calls.append("a"))
        token.cancel()
        token.cancel()
        assert calls == ["a"]

    def test_register_after_cancel_runs_immediately(self):
        token = CancellationToken()
        token.cancel()
        calls = []
        token.register(lambda: calls.append(1))
        assert calls == [1]

    def test_disposed_registration_is_not_invoked(self):
        token = CancellationToken()
        calls = []
        with token.register(lambda: calls.append(1)):
            pass
        token.cancel()
        assert calls == []

    def test_cancel_from_another_thread(self):
        token = CancellationToken()
        fired = threading.Event()
        token.register(fired.set)

        thread = threading.Thread(target=token.cancel)
        thread.start()
        thread.join()

        assert fired.is_set()
        assert token.is_cancelled()
