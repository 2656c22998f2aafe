"""Exception hierarchy raised by the PRTG request engine.

Callers only ever need to catch a handful of types. Every server-reported
failure, whichever of the response shapes PRTG used to describe it, surfaces
as :class:`PrtgRequestError`. Transport failures that survive the retry loop
surface as :class:`RequestTimeoutError` or :class:`ServerConnectionError` when
the underlying socket error is recognised, and otherwise as the original
``httpx`` exception.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "PrtgError",
    "PrtgRequestError",
    "PrtgAuthenticationError",
    "RequestTimeoutError",
    "ServerConnectionError",
    "RequestCancelledError",
    "ERROR_MESSAGE_PREFIX",
]

ERROR_MESSAGE_PREFIX = (
    "PRTG was unable to complete the request. The server responded with the following error: "
)


class PrtgError(Exception):
    """Base exception for all failures raised by the request engine."""


class PrtgRequestError(PrtgError):
    """Raised when PRTG reports that it could not complete a request."""

    def __init__(
        self,
        message: str,
        *,
        server_message: Optional[str] = None,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.server_message = server_message if server_message is not None else message
        self.status_code = status_code
        self.url = url

    @classmethod
    def from_server_message(
        cls,
        server_message: str,
        *,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
    ) -> "PrtgRequestError":
        return cls(
            f"{ERROR_MESSAGE_PREFIX}{server_message}",
            server_message=server_message,
            status_code=status_code,
            url=url,
        )


class PrtgAuthenticationError(PrtgRequestError):
    """Raised when PRTG rejects the supplied username and passhash."""


class RequestTimeoutError(PrtgError, TimeoutError):
    """Raised when the engine's own request timeout elapses."""


class ServerConnectionError(PrtgError, ConnectionError):
    """Raised when the server refuses connections after all retries are spent."""


class RequestCancelledError(PrtgError):
    """Raised when the caller's cancellation token aborts a request."""
# === NAVMAP v1 ===
# {
#   "module": "PrtgKit.Request.errors",
#   "purpose": "Define the exception hierarchy surfaced by the request engine",
#   "sections": [
#     {"id": "base", "name": "Base Exceptions", "anchor": "BAS", "kind": "api"},
#     {"id": "domain", "name": "Server-Reported Errors", "anchor": "DOM", "kind": "api"},
#     {"id": "transport", "name": "Timeout, Connection & Cancellation Errors", "anchor": "TRN", "kind": "api"}
#   ]
# }
# === /NAVMAP ===
