"""Translate request descriptors into PRTG API URLs.

``build_url`` is a pure function: the same connection details and descriptor
always produce the same URL. Credentials are appended as the final query
parameters, which is also what :func:`PrtgKit.Request.logging_utils.mask_url`
relies on when scrubbing them from log output.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, List, Tuple
from urllib.parse import urlencode

from .parameters import HtmlFunction, ParameterType, Parameters

__all__ = ["ConnectionDetails", "build_url", "format_value"]


@dataclass(frozen=True)
class ConnectionDetails:
    """Server address and credentials used to authenticate every request."""

    server: str
    username: str
    passhash: str

    def __post_init__(self) -> None:
        for name in ("server", "username", "passhash"):
            value = getattr(self, name)
            if value is None:
                raise ValueError(f"{name} cannot be None")
            if not isinstance(value, str):
                raise TypeError(f"{name} must be a string, got {type(value).__name__}")
        if not self.server.strip():
            raise ValueError("server cannot be empty")

    @property
    def base_url(self) -> str:
        """Server URL with an explicit scheme and no trailing slash."""
        server = self.server.strip().rstrip("/")
        if "://" not in server:
            server = f"https://{server}"
        return server


def format_value(value: Any) -> str:
    """Render a single parameter value the way PRTG expects it."""

    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def _expand(name: str, value: Any, parameter_type: ParameterType) -> List[Tuple[str, str]]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [format_value(item) for item in value]
        if parameter_type is ParameterType.MULTI_PARAMETER:
            return [(name, item) for item in items]
        return [(name, ",".join(items))]
    return [(name, format_value(value))]


def _query_pairs(parameters: Parameters) -> Iterable[Tuple[str, str]]:
    for name, value, parameter_type in parameters.iter_parameters():
        yield from _expand(name, value, parameter_type)


def build_url(connection: ConnectionDetails, parameters: Parameters) -> str:
    """Return the absolute URL for ``parameters`` on ``connection``'s server.

    Example:
        >>> from PrtgKit.Request.parameters import CommandFunction
        >>> conn = ConnectionDetails("prtg.example.com", "admin", "12345")
        >>> build_url(conn, Parameters(CommandFunction.SIMULATE, id=1001, action=1))
        'https://prtg.example.com/api/simulate.htm?id=1001&action=1&username=admin&passhash=12345'
    """

    if parameters is None:
        raise ValueError("parameters cannot be None")

    pairs = list(_query_pairs(parameters))
    pairs.append(("username", connection.username))
    pairs.append(("passhash", connection.passhash))

    # HTML pages live at the server root rather than under the api/ prefix.
    prefix = "" if isinstance(parameters.function, HtmlFunction) else "api/"

    return f"{connection.base_url}/{prefix}{parameters.function.value}?{urlencode(pairs)}"
