"""Observer hooks raised by the request engine.

Handlers run synchronously on the thread (or event loop) executing the
request. A handler that raises aborts the current request; the engine does
not swallow handler failures.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, List, TypeVar

from .settings import LogLevel

__all__ = ["EventHook", "RetryRequestEvent", "LogVerboseEvent"]

T = TypeVar("T")


@dataclass(frozen=True)
class RetryRequestEvent:
    """Emitted before the engine backs off and retries a failed request."""

    exception: BaseException
    url: str
    retries_remaining: int


@dataclass(frozen=True)
class LogVerboseEvent:
    """Emitted for every message the engine logs under an enabled level."""

    message: str
    level: LogLevel


class EventHook(Generic[T]):
    """Ordered collection of handlers for a single event type."""

    def __init__(self) -> None:
        self._handlers: List[Callable[[T], None]] = []

    def subscribe(self, handler: Callable[[T], None]) -> Callable[[T], None]:
        """Add ``handler``; returns it so the method can be used as a decorator."""
        self._handlers.append(handler)
        return handler

    def unsubscribe(self, handler: Callable[[T], None]) -> None:
        try:
            self._handlers.remove(handler)
        except ValueError:
            pass

    def emit(self, event: T) -> None:
        for handler in list(self._handlers):
            handler(event)

    def __len__(self) -> int:
        return len(self._handlers)

    def __bool__(self) -> bool:
        return bool(self._handlers)
