# === NAVMAP v1 ===
# {
#   "module": "PrtgKit.Request.settings",
#   "purpose": "Typed configuration for the request engine.",
#   "sections": [
#     {
#       "id": "loglevel",
#       "name": "LogLevel",
#       "anchor": "class-loglevel",
#       "kind": "class"
#     },
#     {
#       "id": "requestsettings",
#       "name": "RequestSettings",
#       "anchor": "class-requestsettings",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Typed configuration for the request engine.

Settings are resolved from (highest to lowest precedence):

1. Keyword arguments passed to :class:`RequestSettings`
2. ``PRTGKIT_*`` environment variables
3. Built-in defaults

The model is frozen: once an engine has been constructed its retry, backoff
and timeout parameters are shared read-only by every call it executes.

Example:
    >>> settings = RequestSettings(retry_count=3, retry_delay=2)
    >>> settings.retry_count
    3
"""

from __future__ import annotations

from enum import IntFlag
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = ["LogLevel", "RequestSettings"]


class LogLevel(IntFlag):
    """Categories of engine activity that are written to the log."""

    NONE = 0
    TRACE = 1
    REQUEST = 2
    RESPONSE = 4
    ALL = TRACE | REQUEST | RESPONSE


def _parse_log_level(value: Any) -> Any:
    """Accept ``"request,response"``, ``"TRACE|REQUEST"`` or an integer."""

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return LogLevel.NONE
        if text.lstrip("-").isdigit():
            return LogLevel(int(text))
        level = LogLevel.NONE
        for name in text.replace("|", ",").split(","):
            name = name.strip().upper()
            if not name:
                continue
            try:
                level |= LogLevel[name]
            except KeyError:
                raise ValueError(f"Unknown log level '{name}'") from None
        return level
    if isinstance(value, int) and not isinstance(value, (bool, LogLevel)):
        return LogLevel(value)
    if isinstance(value, (list, tuple, set)):
        level = LogLevel.NONE
        for item in value:
            level |= _parse_log_level(item)
        return level
    return value


class RequestSettings(BaseSettings):
    """Retry, timeout and logging configuration consumed by the engine."""

    model_config = SettingsConfigDict(
        env_prefix="PRTGKIT_",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    retry_count: int = Field(
        1,
        description="Retries attempted after the initial request fails transiently",
        ge=0,
    )
    retry_delay: int = Field(
        3,
        description="Backoff unit in seconds; retry N waits retry_delay * N",
        ge=0,
    )
    timeout_s: float = Field(
        100.0,
        description=(
            "Per-phase HTTP timeout in seconds (connect, read, write and pool "
            "each get this limit; not a deadline for the whole request)"
        ),
        gt=0,
    )
    log_level: LogLevel = Field(
        LogLevel.TRACE | LogLevel.REQUEST,
        description="Engine activity to log; RESPONSE forces buffered responses",
    )
    verify_tls: bool = Field(True, description="Verify server TLS certificates")

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: Any) -> Any:
        """Parse flag names from environment strings."""
        return _parse_log_level(value)

    @property
    def log_responses(self) -> bool:
        """Whether response bodies should be buffered and logged."""
        return LogLevel.RESPONSE in self.log_level
