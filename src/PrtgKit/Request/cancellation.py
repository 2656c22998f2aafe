"""Cooperative cancellation tokens for synchronous and asynchronous requests.

A :class:`CancellationToken` is handed to the engine by the caller. The
synchronous path polls it between physical requests; the asynchronous path
additionally registers a callback so that an in-flight request task is
cancelled the moment the token fires. Because the callback may run on any
thread, asynchronous consumers marshal it onto their event loop with
``loop.call_soon_threadsafe``.
"""

from __future__ import annotations

import threading
from typing import Callable, List

from .errors import RequestCancelledError

__all__ = ["CancellationToken", "CancellationRegistration"]


class CancellationRegistration:
    """Handle returned by :meth:`CancellationToken.register`."""

    def __init__(self, token: "CancellationToken", callback: Callable[[], None]) -> None:
        self._token = token
        self._callback = callback

    def dispose(self) -> None:
        """Stop delivering cancellation to the registered callback."""
        self._token._unregister(self._callback)

    def __enter__(self) -> "CancellationRegistration":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()


class CancellationToken:
    """Thread-safe cancellation token for cooperative request cancellation.

    Examples:
        >>> token = CancellationToken()
        >>> token.is_cancelled()
        False
        >>> token.cancel()
        >>> token.is_cancelled()
        True
    """

    def __init__(self) -> None:
        """Initialize a new, untriggered cancellation token."""
        self._is_cancelled = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []

    def cancel(self) -> None:
        """Signal that cancellation has been requested.

        Registered callbacks run once, on the calling thread, outside the
        token's lock.
        """
        with self._lock:
            if self._is_cancelled.is_set():
                return
            self._is_cancelled.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()
        for callback in callbacks:
            callback()

    def is_cancelled(self) -> bool:
        """Return True once cancellation has been requested."""
        return self._is_cancelled.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise :class:`RequestCancelledError` if the token has fired."""
        if self.is_cancelled():
            raise RequestCancelledError("The request was cancelled by the caller.")

    def register(self, callback: Callable[[], None]) -> CancellationRegistration:
        """Invoke ``callback`` when the token is cancelled.

        If the token has already fired, ``callback`` runs immediately.
        """
        with self._lock:
            already_cancelled = self._is_cancelled.is_set()
            if not already_cancelled:
                self._callbacks.append(callback)
        if already_cancelled:
            callback()
        return CancellationRegistration(self, callback)

    def _unregister(self, callback: Callable[[], None]) -> None:
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                # Already delivered or never registered.
                pass
