"""Tests for the response envelope and classifier."""

import xml.etree.ElementTree as ET

import httpx
import pytest

from PrtgKit.Request import LogLevel, PrtgResponse, ResponseType
from PrtgKit.Request.response import (
    contains_unsafe_characters,
    is_safe_data_format,
    needs_string_response,
    sanitize_xml_text,
)

DEFAULT_LEVEL = LogLevel.TRACE | LogLevel.REQUEST


def response_with(content_type, body=b"<prtg/>"):
    headers = {} if content_type is None else {"content-type": content_type}
    return httpx.Response(
        200,
        content=body,
        headers=headers,
        request=httpx.Request("GET", "https://prtg.example.com/api/table.xml"),
    )


class TestSafeDataFormat:
    @pytest.mark.parametrize(
        "content_type",
        [
            "text/xml",
            "text/xml; charset=UTF-8",
            "application/json; charset=utf-8",
            "text/csv; charset=us-ascii",
        ],
    )
    def test_structured_utf8_types_are_safe(self, content_type):
        assert is_safe_data_format(response_with(content_type))

    @pytest.mark.parametrize(
        "content_type",
        [
            None,
            "text/html",
            "text/html; charset=UTF-8",
            "text/xml; charset=iso-8859-1",
            "application/octet-stream",
        ],
    )
    def test_other_types_are_unsafe(self, content_type):
        assert not is_safe_data_format(response_with(content_type))


class TestNeedsStringResponse:
    def test_safe_clean_response_is_streamed(self):
        assert not needs_string_response(response_with("text/xml"), DEFAULT_LEVEL, False)

    def test_response_logging_forces_buffering(self):
        level = DEFAULT_LEVEL | LogLevel.RESPONSE
        assert needs_string_response(response_with("text/xml"), level, False)

    def test_dirty_session_forces_buffering(self):
        assert needs_string_response(response_with("text/xml"), DEFAULT_LEVEL, True)

    def test_unsafe_format_forces_buffering(self):
        assert needs_string_response(response_with("text/html"), DEFAULT_LEVEL, False)


class TestSanitising:
    def test_detects_xml_illegal_control_characters(self):
        assert contains_unsafe_characters("<a>\x01</a>")
        assert contains_unsafe_characters("<a>\ufffe</a>")
        assert not contains_unsafe_characters("<a>tab\tnewline\n</a>")

    def test_sanitize_removes_only_illegal_characters(self):
        assert sanitize_xml_text("<a>x\x00y\x1fz\r\n</a>") == "<a>xyz\r\n</a>"


class TestPrtgResponse:
    """Test the envelope in both shapes."""

    def test_requires_exactly_one_shape(self):
        with pytest.raises(ValueError):
            PrtgResponse()
        with pytest.raises(ValueError):
            PrtgResponse(text="x", stream=response_with("text/xml"))

    def test_text_envelope(self):
        response = PrtgResponse.from_text("<prtg>1</prtg>")
        assert response.type is ResponseType.STRING
        assert response.string_value == "<prtg>1</prtg>"
        assert response.stream is None
        assert response.to_xml().text == "1"
        assert str(response) == "<prtg>1</prtg>"

    def test_dirty_text_is_sanitised(self):
        response = PrtgResponse.from_text("<prtg>a\x02b</prtg>", is_dirty=True)
        assert response.string_value == "<prtg>ab</prtg>"
        assert response.to_xml().text == "ab"

    def test_clean_text_with_illegal_characters_fails_to_parse(self):
        with pytest.raises(ET.ParseError):
            PrtgResponse.from_text("<prtg>a\x02b</prtg>").to_xml()

    def test_stream_envelope(self):
        stream = response_with("text/xml", b"<prtg><item>1</item></prtg>")
        response = PrtgResponse.from_stream(stream)
        assert response.type is ResponseType.STREAM
        assert response.string_value is None
        assert response.stream is stream
        assert response.to_xml().find("item").text == "1"
        assert "table.xml" in str(response)

    def test_stream_read_text(self):
        response = PrtgResponse.from_stream(response_with("text/csv", b"a,b\n1,2\n"))
        assert response.read_text() == "a,b\n1,2\n"

    def test_iter_bytes_over_text(self):
        response = PrtgResponse.from_text("abc")
        assert b"".join(response.iter_bytes()) == b"abc"

    def test_empty_marker(self):
        response = PrtgResponse.empty()
        assert response.type is ResponseType.STRING
        assert response.string_value == ""
        assert "STRING" in repr(response)

    @pytest.mark.asyncio
    async def test_async_helpers_over_text(self):
        response = PrtgResponse.from_text("<prtg>2</prtg>")
        assert await response.aread_text() == "<prtg>2</prtg>"
        assert (await response.ato_xml()).text == "2"
        await response.aclose()
