# === NAVMAP v1 ===
# {
#   "module": "PrtgKit.Request.response",
#   "purpose": "Response envelope and text-vs-stream classification.",
#   "sections": [
#     {
#       "id": "responsetype",
#       "name": "ResponseType",
#       "anchor": "class-responsetype",
#       "kind": "class"
#     },
#     {
#       "id": "prtgresponse",
#       "name": "PrtgResponse",
#       "anchor": "class-prtgresponse",
#       "kind": "class"
#     },
#     {
#       "id": "is-safe-data-format",
#       "name": "is_safe_data_format",
#       "anchor": "function-is-safe-data-format",
#       "kind": "function"
#     },
#     {
#       "id": "needs-string-response",
#       "name": "needs_string_response",
#       "anchor": "function-needs-string-response",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Response envelope and text-vs-stream classification.

Every physical HTTP exchange produces exactly one :class:`PrtgResponse`. The
envelope either holds the fully buffered body as text or wraps the still-open
``httpx.Response`` so that large table responses can be parsed incrementally.

Classification
--------------
:func:`needs_string_response` buffers the body when any of the following hold:

- response logging is enabled (the body must be inspected anyway),
- the session has previously seen unsafe content (``is_dirty``),
- the declared content type is not a format that is safe to stream
  (:func:`is_safe_data_format`), e.g. HTML pages that may carry inline errors.

Dirty sessions
--------------
PRTG occasionally embeds characters that are illegal in XML 1.0 (most notably
``\\x00``) in sensor messages. A streamed parse of such a body fails, so once
this has been observed the owning engine flips its session flag and every later
response is buffered and sanitised with :func:`sanitize_xml_text`.
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from enum import Enum
from typing import Iterator, Optional

import httpx

from .settings import LogLevel

__all__ = [
    "ResponseType",
    "PrtgResponse",
    "SAFE_MEDIA_TYPES",
    "contains_unsafe_characters",
    "sanitize_xml_text",
    "is_safe_data_format",
    "needs_string_response",
]

SAFE_MEDIA_TYPES = frozenset(
    {
        "text/xml",
        "application/xml",
        "application/json",
        "text/json",
        "text/csv",
    }
)
_SAFE_CHARSETS = frozenset({"utf-8", "utf8", "us-ascii", "ascii"})

# Characters forbidden by the XML 1.0 Char production.
_INVALID_XML_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")


def contains_unsafe_characters(text: str) -> bool:
    """Return True if ``text`` contains characters an XML parser will reject."""
    return _INVALID_XML_CHARS.search(text) is not None


def sanitize_xml_text(text: str) -> str:
    """Strip characters that are illegal in XML 1.0 from ``text``."""
    return _INVALID_XML_CHARS.sub("", text)


class ResponseType(Enum):
    STRING = "string"
    STREAM = "stream"


class PrtgResponse:
    """Buffered text or lazily-read byte stream produced by one HTTP exchange."""

    def __init__(
        self,
        *,
        text: Optional[str] = None,
        stream: Optional[httpx.Response] = None,
        is_dirty: bool = False,
    ) -> None:
        if (text is None) == (stream is None):
            raise ValueError("exactly one of text or stream must be provided")
        self._text = text
        self._stream = stream
        self.is_dirty = is_dirty

    @classmethod
    def from_text(cls, text: str, is_dirty: bool = False) -> "PrtgResponse":
        return cls(text=text, is_dirty=is_dirty)

    @classmethod
    def from_stream(cls, stream: httpx.Response) -> "PrtgResponse":
        return cls(stream=stream)

    @classmethod
    def empty(cls) -> "PrtgResponse":
        return cls(text="")

    @property
    def type(self) -> ResponseType:
        return ResponseType.STRING if self._text is not None else ResponseType.STREAM

    @property
    def string_value(self) -> Optional[str]:
        """Buffered body; sanitised when the response belongs to a dirty session."""
        if self._text is None:
            return None
        if self.is_dirty:
            return sanitize_xml_text(self._text)
        return self._text

    @property
    def stream(self) -> Optional[httpx.Response]:
        return self._stream

    def iter_bytes(self) -> Iterator[bytes]:
        """Yield the body in chunks regardless of how it was captured."""
        if self._stream is None:
            yield (self.string_value or "").encode("utf-8")
            return
        try:
            yield from self._stream.iter_bytes()
        finally:
            self._stream.close()

    def read_text(self) -> str:
        """Return the body as text, consuming the stream if necessary."""
        if self._stream is None:
            return self.string_value or ""
        try:
            self._stream.read()
        finally:
            self._stream.close()
        return self._stream.text

    async def aread_text(self) -> str:
        if self._stream is None:
            return self.string_value or ""
        try:
            await self._stream.aread()
        finally:
            await self._stream.aclose()
        return self._stream.text

    def to_xml(self) -> ET.Element:
        """Parse the body as XML.

        Raises:
            xml.etree.ElementTree.ParseError: if the body is not well-formed.
                For a streamed response this usually means the session should
                be marked dirty and the request repeated.
        """
        if self._stream is None:
            return ET.fromstring(self.string_value or "")
        parser = ET.XMLParser()
        for chunk in self.iter_bytes():
            parser.feed(chunk)
        return parser.close()

    async def ato_xml(self) -> ET.Element:
        if self._stream is None:
            return ET.fromstring(self.string_value or "")
        parser = ET.XMLParser()
        try:
            async for chunk in self._stream.aiter_bytes():
                parser.feed(chunk)
        finally:
            await self._stream.aclose()
        return parser.close()

    def close(self) -> None:
        if self._stream is not None:
            self._stream.close()

    async def aclose(self) -> None:
        if self._stream is not None:
            await self._stream.aclose()

    def __str__(self) -> str:
        if self._stream is not None:
            return f"<stream {self._stream.request.url}>"
        return self.string_value or ""

    def __repr__(self) -> str:
        return f"PrtgResponse(type={self.type.name}, is_dirty={self.is_dirty})"


def is_safe_data_format(response: httpx.Response) -> bool:
    """Return True when ``response`` declares a structured, UTF-8 compatible body.

    HTML and undeclared content types are never safe: they may carry inline
    error fragments that can only be detected by inspecting the text.
    """

    content_type = response.headers.get("content-type")
    if not content_type:
        return False
    media_type, _, params = content_type.partition(";")
    if media_type.strip().lower() not in SAFE_MEDIA_TYPES:
        return False
    for param in params.split(";"):
        key, _, value = param.partition("=")
        if key.strip().lower() == "charset":
            return value.strip().strip('"').lower() in _SAFE_CHARSETS
    return True


def needs_string_response(
    response: httpx.Response, log_level: LogLevel, is_dirty: bool
) -> bool:
    """Decide whether ``response`` must be buffered as text instead of streamed."""

    return (
        LogLevel.RESPONSE in log_level
        or is_dirty
        or not is_safe_data_format(response)
    )
