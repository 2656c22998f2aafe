"""Tests for the retry controller and failure translation.

Tests cover:
- Attempt counts and linear backoff
- Retry event payloads
- Descriptive errors for exhausted refusals and socket time-outs
- Rethrowing other exhausted transport failures unchanged
- Cancellation and domain errors bypassing the retry loop
"""

import asyncio
import errno
import logging

import httpx
import pytest
import tenacity

from PrtgKit.Request import (
    CancellationToken,
    CommandFunction,
    Parameters,
    PrtgRequestError,
    RequestCancelledError,
    RequestTimeoutError,
    RetryPolicy,
    ServerConnectionError,
)
from PrtgKit.Request.retry import (
    FailureKind,
    classify_failure,
    find_socket_error,
    translate_attempt_error,
    translate_exhausted_error,
)

URL = "https://prtg.example.com/api/pause.htm?id=1001&username=prtgadmin&passhash=12345678"


def pause_parameters():
    return Parameters(CommandFunction.PAUSE, id=1001, action=0)


def refused(request: httpx.Request):
    raise httpx.ConnectError("connection refused", request=request) from ConnectionRefusedError(
        errno.ECONNREFUSED, "Connection refused"
    )


class CountingHandler:
    """Mock handler failing with ``error`` for the first ``failures`` calls."""

    def __init__(self, error, failures=10**6):
        self.error = error
        self.failures = failures
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        if self.calls <= self.failures:
            return self.error(request)
        return httpx.Response(200, text="<prtg>ok</prtg>", headers={"content-type": "text/xml"})


class TestClassification:
    """Test FailureKind classification of attempt failures."""

    def test_cancellation_is_never_retryable(self):
        assert classify_failure(RequestCancelledError("x")) is FailureKind.CANCELLED
        assert classify_failure(asyncio.CancelledError()) is FailureKind.CANCELLED
        assert not FailureKind.CANCELLED.retryable

    def test_timeouts_are_retryable(self):
        assert classify_failure(RequestTimeoutError("x")) is FailureKind.TIMEOUT
        assert classify_failure(httpx.ReadTimeout("x")) is FailureKind.TIMEOUT
        assert FailureKind.TIMEOUT.retryable

    def test_connection_errors_are_retryable(self):
        assert classify_failure(httpx.ConnectError("x")) is FailureKind.CONNECTION
        assert classify_failure(httpx.RemoteProtocolError("x")) is FailureKind.CONNECTION
        assert classify_failure(ConnectionResetError()) is FailureKind.CONNECTION

    def test_domain_and_contract_errors_are_not_retryable(self):
        assert classify_failure(PrtgRequestError("x")) is FailureKind.OTHER
        assert classify_failure(ValueError("x")) is FailureKind.OTHER
        assert classify_failure(ServerConnectionError("x")) is FailureKind.OTHER


class TestAttemptTranslation:
    """Test translate_attempt_error."""

    def test_httpx_timeout_becomes_timeout_error(self):
        original = httpx.ReadTimeout("slow")
        translated = translate_attempt_error(original, None)
        assert isinstance(translated, RequestTimeoutError)
        assert translated.__cause__ is original

    def test_cancellation_wins_over_timeout(self):
        token = CancellationToken()
        token.cancel()
        translated = translate_attempt_error(httpx.ReadTimeout("slow"), token)
        assert isinstance(translated, RequestCancelledError)

    def test_task_cancellation_without_token_is_unchanged(self):
        original = asyncio.CancelledError()
        assert translate_attempt_error(original, CancellationToken()) is original

    def test_other_errors_unchanged(self):
        original = httpx.ConnectError("boom")
        assert translate_attempt_error(original, None) is original


class TestExhaustedTranslation:
    """Test translate_exhausted_error."""

    def test_refused_connection_names_scheme_and_port(self):
        try:
            raise httpx.ConnectError("refused") from ConnectionRefusedError(
                errno.ECONNREFUSED, "Connection refused"
            )
        except httpx.ConnectError as exc:
            error = translate_exhausted_error(exc, URL)

        assert isinstance(error, ServerConnectionError)
        assert "HTTPS" in str(error)
        assert "port 443" in str(error)
        assert isinstance(error.__cause__, httpx.ConnectError)

    def test_socket_timeout_becomes_descriptive_timeout(self):
        try:
            raise httpx.ConnectTimeout("timed out") from TimeoutError(
                errno.ETIMEDOUT, "timed out"
            )
        except httpx.ConnectTimeout as exc:
            error = translate_exhausted_error(exc, "http://prtg.example.com:8080/api/x")

        assert isinstance(error, RequestTimeoutError)
        assert "via HTTP on port 8080" in str(error)

    def test_errno_identifies_refusal_on_plain_oserror(self):
        error = translate_exhausted_error(OSError(errno.ECONNREFUSED, "refused"), URL)
        assert isinstance(error, ServerConnectionError)

    def test_no_socket_cause_returns_original(self):
        original = httpx.RemoteProtocolError("server hung up")
        assert translate_exhausted_error(original, URL) is original

    def test_other_socket_errors_return_original(self):
        original = httpx.ConnectError("reset")
        original.__cause__ = ConnectionResetError(errno.ECONNRESET, "reset")
        assert translate_exhausted_error(original, URL) is original

    def test_find_socket_error_returns_innermost(self):
        inner = ConnectionRefusedError(errno.ECONNREFUSED, "refused")
        middle = OSError("wrapper")
        middle.__cause__ = inner
        outer = httpx.ConnectError("outer")
        outer.__cause__ = middle
        assert find_socket_error(outer) is inner


class TestRetryPolicy:
    """Test RetryPolicy controllers directly."""

    def test_rejects_negative_configuration(self):
        with pytest.raises(ValueError):
            RetryPolicy(-1, 3)
        with pytest.raises(ValueError):
            RetryPolicy(1, -3)

    def test_backoff_is_linear(self):
        policy = RetryPolicy(3, 2)
        assert [policy.backoff_seconds(k) for k in (1, 2, 3)] == [2, 4, 6]

    def test_controller_stops_after_retry_count_plus_one(self):
        waits = []
        policy = RetryPolicy(2, 1, sleep=waits.append)
        attempts = 0
        with pytest.raises(httpx.ConnectError):
            for attempt in policy.retrying(URL):
                with attempt:
                    attempts += 1
                    raise httpx.ConnectError("down")
        assert attempts == 3
        assert waits == [1, 2]

    def test_controller_does_not_retry_other_errors(self):
        policy = RetryPolicy(5, 1, sleep=lambda _: None)
        attempts = 0
        with pytest.raises(KeyError):
            for attempt in policy.retrying(URL):
                with attempt:
                    attempts += 1
                    raise KeyError("nope")
        assert attempts == 1

    def test_async_controller_is_an_async_retrying(self):
        assert isinstance(RetryPolicy(1, 1).async_retrying(URL), tenacity.AsyncRetrying)

    def test_logs_retries_without_observer(self, caplog):
        policy = RetryPolicy(1, 0, sleep=lambda _: None)
        attempts = 0
        with caplog.at_level(logging.WARNING, logger="PrtgKit"):
            for attempt in policy.retrying(URL):
                with attempt:
                    attempts += 1
                    if attempts == 1:
                        raise httpx.ConnectError("down")
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert "passhash=***" in warnings[0].getMessage()

    def test_observer_replaces_policy_logging(self, caplog):
        events = []
        policy = RetryPolicy(1, 0, on_retry=events.append, sleep=lambda _: None)
        attempts = 0
        with caplog.at_level(logging.DEBUG, logger="PrtgKit"):
            for attempt in policy.retrying(URL):
                with attempt:
                    attempts += 1
                    if attempts == 1:
                        raise httpx.ConnectError("down")
        assert [event.retries_remaining for event in events] == [1]
        assert not [r for r in caplog.records if "Retrying" in r.getMessage()]


class TestEngineRetries:
    """Test retry behaviour observed through the engine."""

    def test_max_retries_three_gives_four_attempts(self, make_engine, sleeps):
        handler = CountingHandler(refused)
        engine = make_engine(handler, retry_count=3, retry_delay=2)

        with pytest.raises(ServerConnectionError):
            engine.execute_request(pause_parameters())

        assert handler.calls == 4
        assert sleeps == [2, 4, 6]

    def test_retry_events_report_remaining_retries(self, make_engine):
        engine = make_engine(CountingHandler(refused), retry_count=3, retry_delay=0)
        events = []
        engine.retry_request.subscribe(events.append)

        with pytest.raises(ServerConnectionError):
            engine.execute_request(pause_parameters())

        assert [event.retries_remaining for event in events] == [3, 2, 1]
        assert all(isinstance(event.exception, httpx.ConnectError) for event in events)
        assert all("api/pause.htm" in event.url for event in events)

    def test_recovers_after_transient_failure(self, make_engine, sleeps):
        handler = CountingHandler(refused, failures=1)
        engine = make_engine(handler, retry_count=1, retry_delay=3)

        response = engine.execute_request(pause_parameters())

        assert handler.calls == 2
        assert sleeps == [3]
        assert response.read_text() == "<prtg>ok</prtg>"

    def test_exhausted_timeout_raises_timeout_error(self, make_engine):
        def timeout(request):
            raise httpx.ReadTimeout("slow", request=request)

        handler = CountingHandler(timeout)
        engine = make_engine(handler, retry_count=2, retry_delay=0)

        with pytest.raises(RequestTimeoutError, match="timed out while executing request"):
            engine.execute_request(pause_parameters())
        assert handler.calls == 3

    def test_exhausted_transport_error_without_cause_is_rethrown(self, make_engine):
        def hung_up(request):
            raise httpx.RemoteProtocolError("Server disconnected", request=request)

        handler = CountingHandler(hung_up)
        engine = make_engine(handler, retry_count=1, retry_delay=0)

        with pytest.raises(httpx.RemoteProtocolError):
            engine.execute_request(pause_parameters())
        assert handler.calls == 2

    def test_zero_retries_makes_one_attempt(self, make_engine, sleeps):
        handler = CountingHandler(refused)
        engine = make_engine(handler, retry_count=0)

        with pytest.raises(ServerConnectionError):
            engine.execute_request(pause_parameters())
        assert handler.calls == 1
        assert sleeps == []

    def test_domain_errors_are_not_retried(self, make_engine, sleeps):
        calls = []

        def bad_request(request):
            calls.append(request)
            return httpx.Response(
                400,
                text="<prtg><error>Sensor not found</error></prtg>",
                headers={"content-type": "text/xml"},
            )

        engine = make_engine(bad_request, retry_count=3)

        with pytest.raises(PrtgRequestError, match="Sensor not found"):
            engine.execute_request(pause_parameters())
        assert len(calls) == 1
        assert sleeps == []

    def test_cancelled_token_raises_without_attempt(self, make_engine, sleeps):
        handler = CountingHandler(refused)
        engine = make_engine(handler, retry_count=3)
        token = CancellationToken()
        token.cancel()

        with pytest.raises(RequestCancelledError):
            engine.execute_request(pause_parameters(), token=token)
        assert handler.calls == 0
        assert sleeps == []

    def test_cancellation_during_first_attempt_is_not_retried(self, make_engine, sleeps):
        token = CancellationToken()
        calls = []

        def cancel_then_time_out(request):
            calls.append(request)
            token.cancel()
            raise httpx.ReadTimeout("slow", request=request)

        engine = make_engine(cancel_then_time_out, retry_count=3)

        with pytest.raises(RequestCancelledError):
            engine.execute_request(pause_parameters(), token=token)
        assert len(calls) == 1
        assert sleeps == []
