# === NAVMAP v1 ===
# {
#   "module": "PrtgKit.Request.retry",
#   "purpose": "Tenacity retry controller shared by the sync and async engine paths.",
#   "sections": [
#     {
#       "id": "failurekind",
#       "name": "FailureKind",
#       "anchor": "class-failurekind",
#       "kind": "class"
#     },
#     {
#       "id": "classify-failure",
#       "name": "classify_failure",
#       "anchor": "function-classify-failure",
#       "kind": "function"
#     },
#     {
#       "id": "translate-attempt-error",
#       "name": "translate_attempt_error",
#       "anchor": "function-translate-attempt-error",
#       "kind": "function"
#     },
#     {
#       "id": "translate-exhausted-error",
#       "name": "translate_exhausted_error",
#       "anchor": "function-translate-exhausted-error",
#       "kind": "function"
#     },
#     {
#       "id": "retrypolicy",
#       "name": "RetryPolicy",
#       "anchor": "class-retrypolicy",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Tenacity retry controller shared by the sync and async engine paths.

Decision logic lives in exactly one place. :class:`RetryPolicy` assembles a
single set of Tenacity arguments (retry predicate, stop, wait and
``before_sleep`` hook) and hands them to either :class:`tenacity.Retrying`
(blocking ``time.sleep``) or :class:`tenacity.AsyncRetrying` (suspending
``asyncio.sleep``). Both paths therefore classify, back off and notify
identically.

Failure classification
----------------------
- ``CANCELLED``: the caller's token fired. Never retried.
- ``TIMEOUT``: the engine's own timeout elapsed (:class:`RequestTimeoutError`).
  Retried.
- ``CONNECTION``: socket-level or transport failure (``httpx`` network errors,
  remote protocol errors, raw ``OSError``). Retried.
- ``OTHER``: anything else, including server-reported errors and HTTP status
  errors. Rethrown immediately.

Backoff is linear: the wait before retry *k* is ``retry_delay * k`` seconds.

Exhaustion
----------
When the final attempt fails with a retryable error, the exception chain is
searched for the underlying socket error. Connection refusals and socket
time-outs are replaced by descriptive :class:`ServerConnectionError` /
:class:`RequestTimeoutError` messages naming the scheme and port. When no
socket cause is present the original exception is rethrown unchanged.
"""

from __future__ import annotations

import asyncio
import errno
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
import tenacity
from tenacity import RetryCallState, retry_if_exception

from .cancellation import CancellationToken
from .errors import RequestCancelledError, RequestTimeoutError, ServerConnectionError
from .events import RetryRequestEvent
from .logging_utils import mask_url

__all__ = [
    "FailureKind",
    "RetryPolicy",
    "classify_failure",
    "find_socket_error",
    "translate_attempt_error",
    "translate_exhausted_error",
]

LOGGER = logging.getLogger(__name__)

_DEFAULT_PORTS = {"http": 80, "https": 443}


class FailureKind(Enum):
    """Tagged classification of an exception raised by one attempt."""

    CANCELLED = "cancelled"
    TIMEOUT = "timeout"
    CONNECTION = "connection"
    OTHER = "other"

    @property
    def retryable(self) -> bool:
        return self in (FailureKind.TIMEOUT, FailureKind.CONNECTION)


_CONNECTION_ERRORS = (
    httpx.NetworkError,
    httpx.RemoteProtocolError,
    httpx.ProxyError,
)


def classify_failure(exception: BaseException) -> FailureKind:
    """Classify an exception that has already passed :func:`translate_attempt_error`."""

    if isinstance(exception, (RequestCancelledError, asyncio.CancelledError)):
        return FailureKind.CANCELLED
    if isinstance(exception, (RequestTimeoutError, httpx.TimeoutException)):
        return FailureKind.TIMEOUT
    if isinstance(exception, _CONNECTION_ERRORS):
        return FailureKind.CONNECTION
    if isinstance(exception, OSError) and not isinstance(exception, ServerConnectionError):
        return FailureKind.CONNECTION
    return FailureKind.OTHER


def translate_attempt_error(
    exception: BaseException, token: Optional[CancellationToken]
) -> BaseException:
    """Map a low-level exception from one attempt onto the engine's vocabulary.

    Caller cancellation always wins: if the token has fired, whatever the
    attempt raised becomes :class:`RequestCancelledError`. An ``httpx``
    timeout becomes :class:`RequestTimeoutError`. A task cancellation that
    did not come from the token is returned unchanged.
    """

    cancelled = token is not None and token.is_cancelled()
    if isinstance(exception, RequestCancelledError):
        return exception
    if isinstance(exception, (asyncio.CancelledError, httpx.TimeoutException)) and cancelled:
        error = RequestCancelledError("The request was cancelled by the caller.")
        error.__cause__ = exception
        return error
    if isinstance(exception, httpx.TimeoutException):
        error = RequestTimeoutError("The server timed out while executing request.")
        error.__cause__ = exception
        return error
    return exception


def find_socket_error(exception: BaseException) -> Optional[OSError]:
    """Return the innermost ``OSError`` in ``exception``'s cause/context chain."""

    found: Optional[OSError] = None
    seen = set()
    current: Optional[BaseException] = exception
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, OSError) and not isinstance(
            current, (RequestTimeoutError, ServerConnectionError)
        ):
            found = current
        current = current.__cause__ or current.__context__
    return found


def _scheme_and_port(url: str) -> tuple[str, int]:
    parsed = httpx.URL(url)
    scheme = parsed.scheme or "https"
    port = parsed.port or _DEFAULT_PORTS.get(scheme, 443)
    return scheme.upper(), port


def translate_exhausted_error(exception: BaseException, url: str) -> BaseException:
    """Describe an exhausted retryable failure, or return ``exception`` unchanged."""

    socket_error = find_socket_error(exception)
    if socket_error is None:
        return exception

    protocol, port = _scheme_and_port(url)
    if isinstance(socket_error, TimeoutError) or socket_error.errno == errno.ETIMEDOUT:
        error: BaseException = RequestTimeoutError(
            f"Connection timed out while communicating with remote server via {protocol} "
            f"on port {port}. Confirm server address and port are valid and PRTG Service is running"
        )
    elif (
        isinstance(socket_error, ConnectionRefusedError)
        or socket_error.errno == errno.ECONNREFUSED
    ):
        error = ServerConnectionError(
            f"Server rejected {protocol} connection on port {port}. Please confirm expected "
            f"server protocol and port, PRTG Core Service is running and that any SSL "
            f"certificate is trusted"
        )
    else:
        return exception

    error.__cause__ = exception
    return error


class RetryPolicy:
    """Per-engine retry configuration producing per-call Tenacity controllers.

    Args:
        retry_count: Retries allowed after the initial attempt (``>= 0``).
        retry_delay: Backoff unit in seconds.
        on_retry: Observer invoked with a :class:`RetryRequestEvent` before
            each backoff. Without one the policy logs each retry itself.
        sleep: Blocking sleep used by the synchronous path.
        async_sleep: Suspending sleep used by the asynchronous path.
    """

    def __init__(
        self,
        retry_count: int,
        retry_delay: float,
        *,
        on_retry: Optional[Callable[[RetryRequestEvent], None]] = None,
        sleep: Optional[Callable[[float], None]] = None,
        async_sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ) -> None:
        if retry_count < 0:
            raise ValueError(f"retry_count must be >= 0, got {retry_count}")
        if retry_delay < 0:
            raise ValueError(f"retry_delay must be >= 0, got {retry_delay}")
        self.retry_count = retry_count
        self.retry_delay = retry_delay
        self.on_retry = on_retry
        self._sleep = sleep
        self._async_sleep = async_sleep

    def backoff_seconds(self, attempts_made: int) -> float:
        """Wait before the retry following attempt ``attempts_made`` (1-based)."""
        return self.retry_delay * attempts_made

    def retries_remaining(self, attempts_made: int) -> int:
        return max(self.retry_count - attempts_made + 1, 0)

    def _before_sleep(self, url: str, retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        exception = outcome.exception() if outcome is not None else None
        remaining = self.retries_remaining(retry_state.attempt_number)
        next_action = retry_state.next_action
        wait_s = next_action.sleep if next_action is not None else 0.0

        if self.on_retry is not None:
            # The observer decides whether and how the retry is logged.
            if exception is not None:
                self.on_retry(RetryRequestEvent(exception, url, remaining))
            return

        LOGGER.warning(
            "Retrying request %s after %s (%d retries remaining, waiting %.1fs)",
            mask_url(url),
            type(exception).__name__,
            remaining,
            wait_s,
            extra={"url": mask_url(url), "retries_remaining": remaining},
        )

    def _retry_kwargs(self, url: str) -> Dict[str, Any]:
        return {
            "retry": retry_if_exception(lambda exc: classify_failure(exc).retryable),
            "stop": tenacity.stop_after_attempt(self.retry_count + 1),
            "wait": tenacity.wait_incrementing(
                start=self.retry_delay, increment=self.retry_delay
            ),
            "before_sleep": lambda state: self._before_sleep(url, state),
            "reraise": True,
        }

    def retrying(self, url: str) -> tenacity.Retrying:
        """Controller for one synchronous logical request to ``url``."""
        return tenacity.Retrying(sleep=self._sleep or time.sleep, **self._retry_kwargs(url))

    def async_retrying(self, url: str) -> tenacity.AsyncRetrying:
        """Controller for one asynchronous logical request to ``url``."""
        return tenacity.AsyncRetrying(
            sleep=self._async_sleep or asyncio.sleep, **self._retry_kwargs(url)
        )
