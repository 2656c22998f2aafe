# === NAVMAP v1 ===
# {
#   "module": "PrtgKit.Request.validation",
#   "purpose": "Detect server-reported failures across PRTG's error response shapes.",
#   "sections": [
#     {
#       "id": "detectors",
#       "name": "Error Detectors",
#       "anchor": "DET",
#       "kind": "api"
#     },
#     {
#       "id": "validate-response",
#       "name": "validate_response",
#       "anchor": "function-validate-response",
#       "kind": "function"
#     },
#     {
#       "id": "rewrite-error-redirect",
#       "name": "rewrite_error_redirect",
#       "anchor": "function-rewrite-error-redirect",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Detect server-reported failures across PRTG's error response shapes.

PRTG reports failures in four unrelated ways:

1. ``400 Bad Request`` with an XML body whose ``<error>`` element holds the
   message.
2. ``401 Unauthorized`` with no useful body.
3. A successful response whose final URL was redirected to ``/error.htm``,
   with the message in the ``errormsg`` query parameter.
4. A successful HTML response whose body starts with an inline
   ``<div class="errormsg">`` fragment.

Each shape is handled by an independent detector returning the extracted
message (or ``None``). :func:`validate_response` applies them in priority
order and raises :class:`~PrtgKit.Request.errors.PrtgRequestError` (or its
authentication subclass) for the first match, so callers only ever catch one
error type.
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Type
from urllib.parse import parse_qs, urlsplit

import httpx

from .errors import PrtgAuthenticationError, PrtgRequestError
from .response import PrtgResponse, ResponseType

__all__ = [
    "ERROR_PAGE_PATH",
    "INLINE_ERROR_PREFIX",
    "ErrorDetector",
    "DETECTORS",
    "bad_request_message",
    "unauthorized_message",
    "error_page_message",
    "inline_error_message",
    "validate_response",
    "rewrite_error_redirect",
]

LOGGER = logging.getLogger(__name__)

ERROR_PAGE_PATH = "/error.htm"
INLINE_ERROR_PREFIX = '<div class="errormsg">'
INLINE_ERROR_END = "</h3>"
UNAUTHORIZED_MESSAGE = "Could not authenticate to PRTG; the specified username and password were invalid."

# Seen in place of an apostrophe when setting some channel properties.
_ESCAPED_QUOTE = "&%2339;"
_LIST_OPEN = "<br/><ul><li>"
_LIST_CLOSE = "</li></ul><br/>"
_SENTENCE_END_TAGS = re.compile(r"\.</.+?><.+?>")
_TAGS = re.compile(r"<.+?>")


# ============================================================================
# Error Detectors
# ============================================================================


def bad_request_message(response: httpx.Response, content: PrtgResponse) -> Optional[str]:
    """Return the ``<error>`` text of a ``400 Bad Request`` response."""

    if response.status_code != httpx.codes.BAD_REQUEST:
        return None

    body = content.read_text()
    try:
        root = ET.fromstring(body)
    except ET.ParseError:
        LOGGER.debug("400 response body was not XML; using raw body as error message")
        return body.strip()

    error = root if root.tag == "error" else root.find(".//error")
    if error is None:
        return body.strip()
    return "".join(error.itertext())


def unauthorized_message(response: httpx.Response, content: PrtgResponse) -> Optional[str]:
    """Return a fixed message for ``401 Unauthorized`` responses."""

    if response.status_code != httpx.codes.UNAUTHORIZED:
        return None
    return UNAUTHORIZED_MESSAGE


def error_page_message(response: httpx.Response, content: PrtgResponse) -> Optional[str]:
    """Return the ``errormsg`` of a successful response redirected to the error page."""

    if not response.is_success or response.url.path != ERROR_PAGE_PATH:
        return None

    error_url = str(response.url).replace(_ESCAPED_QUOTE, '"')
    queries = parse_qs(urlsplit(error_url).query, keep_blank_values=True)
    message = queries.get("errormsg", [""])[-1]

    message = message.replace(_LIST_OPEN, " ").replace(_LIST_CLOSE, " ")
    return message.strip()


def inline_error_message(response: httpx.Response, content: PrtgResponse) -> Optional[str]:
    """Return the plain text of an inline ``<div class="errormsg">`` fragment."""

    if not response.is_success or content.type is not ResponseType.STRING:
        return None

    text = content.string_value or ""
    if not text.startswith(INLINE_ERROR_PREFIX):
        return None

    end = text.find(INLINE_ERROR_END)
    fragment = text[:end] if end >= 0 else text

    fragment = _SENTENCE_END_TAGS.sub(". ", fragment)
    return _TAGS.sub("", fragment).strip()


@dataclass(frozen=True)
class ErrorDetector:
    """A detector paired with the error type raised when it matches."""

    name: str
    extract: Callable[[httpx.Response, PrtgResponse], Optional[str]]
    error_type: Type[PrtgRequestError] = PrtgRequestError


DETECTORS: Sequence[ErrorDetector] = (
    ErrorDetector("bad_request", bad_request_message),
    ErrorDetector("unauthorized", unauthorized_message, PrtgAuthenticationError),
    ErrorDetector("error_page", error_page_message),
    ErrorDetector("inline_error", inline_error_message),
)


def validate_response(
    response: httpx.Response,
    content: PrtgResponse,
    detectors: Sequence[ErrorDetector] = DETECTORS,
) -> PrtgResponse:
    """Raise if ``response`` describes a server-side failure; otherwise return ``content``.

    Raises:
        PrtgAuthenticationError: for ``401 Unauthorized``.
        PrtgRequestError: for every other recognised error shape.
        httpx.HTTPStatusError: for any other non-success status.
    """

    url = str(response.url)
    for detector in detectors:
        message = detector.extract(response, content)
        if message is None:
            continue
        LOGGER.debug("Response matched %s error shape", detector.name)
        if detector.error_type is PrtgAuthenticationError:
            raise PrtgAuthenticationError(
                message, server_message=message, status_code=response.status_code, url=url
            )
        raise detector.error_type.from_server_message(
            message, status_code=response.status_code, url=url
        )

    response.raise_for_status()
    return content


def rewrite_error_redirect(response: httpx.Response) -> None:
    """Point an error-page redirect back at the login page it came from.

    Some requests legitimately end on ``/error.htm?errorurl=...``. Rewriting the
    final URL to ``public/login.htm?loginurl=<errorurl>&errormsg=`` stops
    :func:`error_page_message` from treating the redirect as a failure. Intended
    for use inside a ``response_parser``.
    """

    url = str(response.url)
    search_text = "errorurl="
    start = url.find(search_text)
    if start < 0 or ERROR_PAGE_PATH.lstrip("/") not in url:
        return

    expected_url = url[start + len(search_text):]
    if expected_url.endswith("%26"):
        expected_url = expected_url[: expected_url.rfind("%26")]
    elif expected_url.endswith("&"):
        expected_url = expected_url[: expected_url.rfind("&")]

    server = url[: url.find(ERROR_PAGE_PATH.lstrip("/"))]
    response.request.url = httpx.URL(f"{server}public/login.htm?loginurl={expected_url}&errormsg=")
