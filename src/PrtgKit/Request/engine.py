# === NAVMAP v1 ===
# {
#   "module": "PrtgKit.Request.engine",
#   "purpose": "Execute PRTG request descriptors with retry, batching and validation.",
#   "sections": [
#     {
#       "id": "requestengine",
#       "name": "RequestEngine",
#       "anchor": "class-requestengine",
#       "kind": "class"
#     },
#     {
#       "id": "execute-request",
#       "name": "RequestEngine.execute_request",
#       "anchor": "method-execute-request",
#       "kind": "method"
#     },
#     {
#       "id": "execute-xml",
#       "name": "RequestEngine.execute_xml",
#       "anchor": "method-execute-xml",
#       "kind": "method"
#     }
#   ]
# }
# === /NAVMAP ===

"""Execute PRTG request descriptors with retry, batching and validation.

Control flow for one logical call::

    descriptor ──► batch splitter (multi-target only)
               ──► build_url ──► WebClient GET ──► classify (text / stream)
               ──► validate_response ──► PrtgResponse
                        ▲                     │
                        └── RetryPolicy ◄─────┘ (timeouts / socket errors)

The synchronous and asynchronous methods share every decision: URL building,
failure translation (:func:`~PrtgKit.Request.retry.translate_attempt_error`),
retry classification and backoff (:class:`~PrtgKit.Request.retry.RetryPolicy`),
response classification and validation. They differ only in whether the
transport call and the backoff block the thread or suspend the coroutine.

Session state
-------------
The only mutable state shared across calls is :attr:`RequestEngine.is_dirty`.
It flips from ``False`` to ``True`` at most once and never resets, so
concurrent writers need no lock.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import Awaitable, Callable, Optional

import httpx

from .batching import BATCH_LIMIT, execute_batched, execute_batched_async
from .cancellation import CancellationToken
from .events import EventHook, LogVerboseEvent, RetryRequestEvent
from .logging_utils import mask_url
from .parameters import MultiTargetParameters, Parameters
from .response import (
    PrtgResponse,
    ResponseType,
    contains_unsafe_characters,
    needs_string_response,
)
from .retry import (
    RetryPolicy,
    classify_failure,
    translate_attempt_error,
    translate_exhausted_error,
)
from .settings import LogLevel, RequestSettings
from .transport import HttpxWebClient, WebClient
from .url import ConnectionDetails, build_url
from .validation import validate_response

__all__ = ["RequestEngine", "ResponseParser", "AsyncResponseParser"]

LOGGER = logging.getLogger(__name__)

ResponseParser = Callable[[httpx.Response], Optional[PrtgResponse]]
AsyncResponseParser = Callable[[httpx.Response], Awaitable[Optional[PrtgResponse]]]
ResponseValidator = Callable[[PrtgResponse], None]


class RequestEngine:
    """Construct URLs from descriptors and execute them against a :class:`WebClient`.

    Args:
        connection: Server address and credentials.
        settings: Retry, timeout and logging configuration. Defaults to
            :class:`RequestSettings` resolved from the environment.
        web_client: Transport to execute requests with. Defaults to an
            :class:`HttpxWebClient` configured from ``settings``.
        sleep: Blocking sleep used between synchronous retries.
        async_sleep: Suspending sleep used between asynchronous retries.
        batch_size: Maximum object IDs per physical multi-target request.

    Example:
        >>> engine = RequestEngine(ConnectionDetails("prtg.example.com", "admin", "12345"))
        >>> engine.execute_request(Parameters(CommandFunction.PAUSE, id=1001, action=0))
    """

    def __init__(
        self,
        connection: ConnectionDetails,
        settings: Optional[RequestSettings] = None,
        web_client: Optional[WebClient] = None,
        *,
        sleep: Optional[Callable[[float], None]] = None,
        async_sleep: Optional[Callable[[float], Awaitable[object]]] = None,
        batch_size: int = BATCH_LIMIT,
    ) -> None:
        if connection is None:
            raise ValueError("connection cannot be None")

        self.connection = connection
        self.settings = settings if settings is not None else RequestSettings()
        self._owns_web_client = web_client is None
        self.web_client: WebClient = (
            web_client
            if web_client is not None
            else HttpxWebClient(
                timeout_s=self.settings.timeout_s, verify_tls=self.settings.verify_tls
            )
        )
        self.batch_size = batch_size
        self.default_cancellation_token: Optional[CancellationToken] = None

        self.retry_request: EventHook[RetryRequestEvent] = EventHook()
        self.log_verbose: EventHook[LogVerboseEvent] = EventHook()

        self._retry_policy = RetryPolicy(
            self.settings.retry_count,
            self.settings.retry_delay,
            on_retry=self._on_retry,
            sleep=sleep,
            async_sleep=async_sleep,
        )
        self._is_dirty = False

    # ------------------------------------------------------------------
    # Session state
    # ------------------------------------------------------------------

    @property
    def is_dirty(self) -> bool:
        """True once any response has contained content unsafe to stream."""
        return self._is_dirty

    def mark_dirty(self) -> None:
        """Force every later response of this engine to be buffered and sanitised."""
        if not self._is_dirty:
            self._is_dirty = True
            self._log(
                "Response contained characters unsafe for streaming; "
                "buffering all future responses",
                LogLevel.TRACE,
            )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Release the synchronous pool of a web client this engine created.

        Use :meth:`aclose` once asynchronous calls have been made. Injected
        web clients belong to the caller and are left open.
        """
        if self._owns_web_client and isinstance(self.web_client, HttpxWebClient):
            self.web_client.close()

    async def aclose(self) -> None:
        if self._owns_web_client and isinstance(self.web_client, HttpxWebClient):
            await self.web_client.aclose()
            self.web_client.close()

    def __enter__(self) -> "RequestEngine":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    async def __aenter__(self) -> "RequestEngine":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get_url(self, parameters: Parameters) -> str:
        return build_url(self.connection, parameters)

    def execute_request(
        self,
        parameters: Parameters,
        response_parser: Optional[ResponseParser] = None,
        token: Optional[CancellationToken] = None,
    ) -> PrtgResponse:
        """Execute ``parameters`` and return the validated response envelope.

        Multi-target descriptors are split into batches of at most
        ``batch_size`` IDs and return an empty envelope once every batch has
        succeeded.

        Raises:
            PrtgRequestError: the server reported an error.
            RequestTimeoutError: the request timed out on every attempt.
            ServerConnectionError: the server refused every connection attempt.
            RequestCancelledError: ``token`` was cancelled.
        """

        if parameters is None:
            raise ValueError("parameters cannot be None")

        if isinstance(parameters, MultiTargetParameters):
            execute_batched(
                parameters,
                lambda chunk: self._execute_url(self.get_url(chunk), token, response_parser),
                self.batch_size,
            )
            return PrtgResponse.empty()

        return self._execute_url(self.get_url(parameters), token, response_parser)

    async def execute_request_async(
        self,
        parameters: Parameters,
        response_parser: Optional[AsyncResponseParser] = None,
        token: Optional[CancellationToken] = None,
    ) -> PrtgResponse:
        """Asynchronous counterpart of :meth:`execute_request`."""

        if parameters is None:
            raise ValueError("parameters cannot be None")

        if isinstance(parameters, MultiTargetParameters):
            await execute_batched_async(
                parameters,
                lambda chunk: self._execute_url_async(
                    self.get_url(chunk), token, response_parser
                ),
                self.batch_size,
            )
            return PrtgResponse.empty()

        return await self._execute_url_async(self.get_url(parameters), token, response_parser)

    def execute_xml(
        self,
        parameters: Parameters,
        response_validator: Optional[ResponseValidator] = None,
        token: Optional[CancellationToken] = None,
    ) -> ET.Element:
        """Execute ``parameters`` and parse the response as XML.

        A streamed body that fails to parse marks the session dirty and the
        request is issued once more, now buffered and sanitised.
        """

        response = self.execute_request(parameters, token=token)
        if response_validator is not None:
            response_validator(response)
        try:
            return response.to_xml()
        except ET.ParseError:
            if response.type is not ResponseType.STREAM:
                raise
            LOGGER.debug("Streamed XML response could not be parsed; retrying buffered")
            self.mark_dirty()

        response = self.execute_request(parameters, token=token)
        if response_validator is not None:
            response_validator(response)
        return response.to_xml()

    async def execute_xml_async(
        self,
        parameters: Parameters,
        response_validator: Optional[ResponseValidator] = None,
        token: Optional[CancellationToken] = None,
    ) -> ET.Element:
        """Asynchronous counterpart of :meth:`execute_xml`."""

        response = await self.execute_request_async(parameters, token=token)
        if response_validator is not None:
            response_validator(response)
        try:
            return await response.ato_xml()
        except ET.ParseError:
            if response.type is not ResponseType.STREAM:
                raise
            LOGGER.debug("Streamed XML response could not be parsed; retrying buffered")
            self.mark_dirty()

        response = await self.execute_request_async(parameters, token=token)
        if response_validator is not None:
            response_validator(response)
        return await response.ato_xml()

    # ------------------------------------------------------------------
    # Retry loops
    # ------------------------------------------------------------------

    def _resolve_token(self, token: Optional[CancellationToken]) -> Optional[CancellationToken]:
        return token if token is not None else self.default_cancellation_token

    def _execute_url(
        self,
        url: str,
        token: Optional[CancellationToken],
        response_parser: Optional[ResponseParser] = None,
    ) -> PrtgResponse:
        self._log(f"Synchronously executing request {mask_url(url)}", LogLevel.REQUEST)
        token = self._resolve_token(token)

        try:
            for attempt in self._retry_policy.retrying(url):
                with attempt:
                    if token is not None:
                        token.raise_if_cancelled()
                    try:
                        return self._attempt(url, token, response_parser)
                    except Exception as ex:
                        translated = translate_attempt_error(ex, token)
                        if translated is ex:
                            raise
                        raise translated from ex
        except Exception as ex:
            if not classify_failure(ex).retryable:
                raise
            translated = translate_exhausted_error(ex, url)
            if translated is ex:
                raise
            raise translated from ex
        raise AssertionError("retry loop exited without a result")  # pragma: no cover

    async def _execute_url_async(
        self,
        url: str,
        token: Optional[CancellationToken],
        response_parser: Optional[AsyncResponseParser] = None,
    ) -> PrtgResponse:
        self._log(f"Asynchronously executing request {mask_url(url)}", LogLevel.REQUEST)
        token = self._resolve_token(token)

        try:
            async for attempt in self._retry_policy.async_retrying(url):
                with attempt:
                    if token is not None:
                        token.raise_if_cancelled()
                    try:
                        return await self._attempt_async(url, token, response_parser)
                    except BaseException as ex:
                        translated = translate_attempt_error(ex, token)
                        if translated is ex:
                            raise
                        raise translated from ex
        except Exception as ex:
            if not classify_failure(ex).retryable:
                raise
            translated = translate_exhausted_error(ex, url)
            if translated is ex:
                raise
            raise translated from ex
        raise AssertionError("retry loop exited without a result")  # pragma: no cover

    # ------------------------------------------------------------------
    # Single attempts
    # ------------------------------------------------------------------

    def _attempt(
        self,
        url: str,
        token: Optional[CancellationToken],
        response_parser: Optional[ResponseParser],
    ) -> PrtgResponse:
        """One physical exchange: send, read or wrap the body, validate."""

        message = self.web_client.get_sync(url, token)
        try:
            content = None
            if response_parser is not None:
                content = response_parser(message)
            if content is None:
                content = self._get_appropriate_response(message)
            return self._finish(message, content)
        except BaseException:
            message.close()
            raise

    async def _attempt_async(
        self,
        url: str,
        token: Optional[CancellationToken],
        response_parser: Optional[AsyncResponseParser],
    ) -> PrtgResponse:
        message = await self.web_client.get_async(url, token)
        try:
            content = None
            if response_parser is not None:
                content = await response_parser(message)
            if content is None:
                content = await self._get_appropriate_response_async(message)
            if not message.is_success:
                # Error detectors read the body synchronously; an async
                # stream must be drained here first.
                await message.aread()
            return self._finish(message, content)
        except BaseException:
            await message.aclose()
            raise

    # ------------------------------------------------------------------
    # Response handling
    # ------------------------------------------------------------------

    def _get_appropriate_response(self, message: httpx.Response) -> PrtgResponse:
        if needs_string_response(message, self.settings.log_level, self._is_dirty):
            try:
                message.read()
            finally:
                message.close()
            return self._buffered(message.text)
        return PrtgResponse.from_stream(message)

    async def _get_appropriate_response_async(self, message: httpx.Response) -> PrtgResponse:
        if needs_string_response(message, self.settings.log_level, self._is_dirty):
            try:
                await message.aread()
            finally:
                await message.aclose()
            return self._buffered(message.text)
        return PrtgResponse.from_stream(message)

    def _buffered(self, text: str) -> PrtgResponse:
        if not self._is_dirty and contains_unsafe_characters(text):
            self.mark_dirty()
        return PrtgResponse.from_text(text, self._is_dirty)

    def _finish(self, message: httpx.Response, content: PrtgResponse) -> PrtgResponse:
        # Buffered responses are logged here; streamed ones were never inspected.
        if content.type is ResponseType.STRING:
            self._log(content.string_value or "", LogLevel.RESPONSE)
        return validate_response(message, content)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _on_retry(self, event: RetryRequestEvent) -> None:
        self._log(
            f"Retrying request {mask_url(event.url)} ({event.retries_remaining} "
            f"retries remaining): {event.exception}",
            LogLevel.TRACE,
        )
        self.retry_request.emit(event)

    def _log(self, message: str, level: LogLevel) -> None:
        if level not in self.settings.log_level:
            return
        LOGGER.debug(message, extra={"log_category": level.name})
        self.log_verbose.emit(LogVerboseEvent(message, level))
