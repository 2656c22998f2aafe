# === NAVMAP v1 ===
# {
#   "module": "PrtgKit.Request.transport",
#   "purpose": "HTTPX web client performing single GET requests for the engine.",
#   "sections": [
#     {
#       "id": "webclient",
#       "name": "WebClient",
#       "anchor": "class-webclient",
#       "kind": "class"
#     },
#     {
#       "id": "httpxwebclient",
#       "name": "HttpxWebClient",
#       "anchor": "class-httpxwebclient",
#       "kind": "class"
#     },
#     {
#       "id": "create-ssl-context",
#       "name": "_create_ssl_context",
#       "anchor": "function-create-ssl-context",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""HTTPX web client performing single GET requests for the engine.

The engine depends only on the :class:`WebClient` protocol: one GET, returning
a *streamed* ``httpx.Response`` whose body has not been read yet. The default
:class:`HttpxWebClient` builds its ``httpx.Client`` / ``httpx.AsyncClient``
lazily so that synchronous-only callers never create an async client (and vice
versa), and so that tests can inject :class:`httpx.MockTransport` instances.

Key design:
- **Redirects followed**: the final URL must be visible to the error-page
  detector.
- **Timeout**: the settings timeout is applied to each phase (connect, read,
  write, pool); elapsing raises an ``httpx.TimeoutException`` which the
  engine converts and retries.
- **Cancellation**: the async path races the request task against the
  caller's token; the sync path checks the token around the exchange.
"""

from __future__ import annotations

import asyncio
import logging
import ssl
import threading
from typing import Optional, Protocol, runtime_checkable

import certifi
import httpx

from .cancellation import CancellationToken
from .errors import RequestCancelledError

__all__ = ["WebClient", "HttpxWebClient"]

LOGGER = logging.getLogger(__name__)


@runtime_checkable
class WebClient(Protocol):
    """Minimal transport the request engine executes against."""

    def get_sync(self, url: str, token: Optional[CancellationToken]) -> httpx.Response:
        ...

    async def get_async(self, url: str, token: Optional[CancellationToken]) -> httpx.Response:
        ...


def _create_ssl_context(verify: bool) -> ssl.SSLContext:
    """Create an SSL context using the certifi bundle, or an unverified one."""

    if not verify:
        ctx = ssl.create_default_context()
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
        LOGGER.warning("TLS verification DISABLED for PRTG requests")
        return ctx

    ctx = ssl.create_default_context(cafile=certifi.where())
    ctx.check_hostname = True
    ctx.verify_mode = ssl.CERT_REQUIRED
    return ctx


class HttpxWebClient:
    """HTTPX-backed :class:`WebClient`.

    Args:
        timeout_s: Per-phase timeout in seconds, applied separately to connect,
            read, write and pool acquisition (not a whole-request deadline).
        verify_tls: Verify server certificates against the certifi bundle.
        transport: Optional sync transport (e.g. ``httpx.MockTransport``).
        async_transport: Optional async transport.

    Example:
        >>> client = HttpxWebClient(timeout_s=30)
        >>> response = client.get_sync("https://prtg.example.com/api/getstatus.htm", None)
        >>> client.close()
    """

    def __init__(
        self,
        *,
        timeout_s: float = 100.0,
        verify_tls: bool = True,
        transport: Optional[httpx.BaseTransport] = None,
        async_transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.timeout_s = timeout_s
        self.verify_tls = verify_tls
        self._transport = transport
        self._async_transport = async_transport
        self._client: Optional[httpx.Client] = None
        self._async_client: Optional[httpx.AsyncClient] = None
        self._lock = threading.Lock()

    @property
    def client(self) -> httpx.Client:
        with self._lock:
            if self._client is None:
                self._client = httpx.Client(
                    transport=self._transport,
                    timeout=httpx.Timeout(self.timeout_s),
                    follow_redirects=True,
                    verify=_create_ssl_context(self.verify_tls),
                )
                LOGGER.debug("HTTPX client created", extra={"timeout_s": self.timeout_s})
            return self._client

    @property
    def async_client(self) -> httpx.AsyncClient:
        with self._lock:
            if self._async_client is None:
                self._async_client = httpx.AsyncClient(
                    transport=self._async_transport,
                    timeout=httpx.Timeout(self.timeout_s),
                    follow_redirects=True,
                    verify=_create_ssl_context(self.verify_tls),
                )
                LOGGER.debug("HTTPX async client created", extra={"timeout_s": self.timeout_s})
            return self._async_client

    def get_sync(self, url: str, token: Optional[CancellationToken]) -> httpx.Response:
        """Send one GET and return the unread, streamed response."""

        if token is not None:
            token.raise_if_cancelled()

        client = self.client
        response = client.send(client.build_request("GET", url), stream=True)

        if token is not None and token.is_cancelled():
            response.close()
            raise RequestCancelledError("The request was cancelled by the caller.")
        return response

    async def get_async(self, url: str, token: Optional[CancellationToken]) -> httpx.Response:
        """Send one GET without blocking the event loop.

        If ``token`` fires while the request is in flight the request task is
        cancelled and ``asyncio.CancelledError`` propagates; the engine turns it
        into :class:`RequestCancelledError`.
        """

        if token is not None:
            token.raise_if_cancelled()

        client = self.async_client
        request = client.build_request("GET", url)
        if token is None:
            return await client.send(request, stream=True)

        loop = asyncio.get_running_loop()
        task = asyncio.ensure_future(client.send(request, stream=True))
        with token.register(lambda: loop.call_soon_threadsafe(task.cancel)):
            return await task

    def close(self) -> None:
        with self._lock:
            if self._client is not None:
                self._client.close()
                self._client = None

    async def aclose(self) -> None:
        with self._lock:
            client, self._async_client = self._async_client, None
        if client is not None:
            await client.aclose()

    def __enter__(self) -> "HttpxWebClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    async def __aenter__(self) -> "HttpxWebClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
        self.close()
