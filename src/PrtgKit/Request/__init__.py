"""Resilient request engine for the PRTG HTTP API.

Public entry points::

    from PrtgKit.Request import ConnectionDetails, Parameters, RequestEngine
    from PrtgKit.Request import CommandFunction, XmlFunction

    engine = RequestEngine(ConnectionDetails("prtg.example.com", "admin", "12345678"))
    engine.execute_request(Parameters(CommandFunction.PAUSE, id=1001, action=0))
    root = engine.execute_xml(Parameters(XmlFunction.TABLE_DATA, content="sensors"))
"""

from .batching import BATCH_LIMIT
from .cancellation import CancellationRegistration, CancellationToken
from .engine import AsyncResponseParser, RequestEngine, ResponseParser
from .errors import (
    PrtgAuthenticationError,
    PrtgError,
    PrtgRequestError,
    RequestCancelledError,
    RequestTimeoutError,
    ServerConnectionError,
)
from .events import EventHook, LogVerboseEvent, RetryRequestEvent
from .logging_utils import JSONFormatter, mask_url, setup_logging
from .parameters import (
    CommandFunction,
    CsvFunction,
    CustomParameter,
    HtmlFunction,
    JsonFunction,
    MultiTargetParameters,
    ParameterType,
    Parameters,
    XmlFunction,
)
from .response import PrtgResponse, ResponseType
from .retry import FailureKind, RetryPolicy
from .settings import LogLevel, RequestSettings
from .transport import HttpxWebClient, WebClient
from .url import ConnectionDetails, build_url
from .validation import rewrite_error_redirect, validate_response

__all__ = [
    "BATCH_LIMIT",
    "AsyncResponseParser",
    "CancellationRegistration",
    "CancellationToken",
    "CommandFunction",
    "ConnectionDetails",
    "CsvFunction",
    "CustomParameter",
    "EventHook",
    "FailureKind",
    "HtmlFunction",
    "HttpxWebClient",
    "JSONFormatter",
    "JsonFunction",
    "LogLevel",
    "LogVerboseEvent",
    "MultiTargetParameters",
    "ParameterType",
    "Parameters",
    "PrtgAuthenticationError",
    "PrtgError",
    "PrtgRequestError",
    "PrtgResponse",
    "RequestCancelledError",
    "RequestEngine",
    "RequestSettings",
    "RequestTimeoutError",
    "ResponseParser",
    "ResponseType",
    "RetryPolicy",
    "RetryRequestEvent",
    "ServerConnectionError",
    "WebClient",
    "XmlFunction",
    "build_url",
    "mask_url",
    "rewrite_error_redirect",
    "setup_logging",
    "validate_response",
]
