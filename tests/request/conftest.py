"""Shared fixtures for the request engine suite.

Engines are wired to :class:`httpx.MockTransport` handlers and to recording
sleep functions so that retry timing can be asserted without waiting.
"""

from __future__ import annotations

from typing import Callable, List

import httpx
import pytest

from PrtgKit.Request import (
    ConnectionDetails,
    HttpxWebClient,
    LogLevel,
    RequestEngine,
    RequestSettings,
)

SERVER = "prtg.example.com"


@pytest.fixture
def connection() -> ConnectionDetails:
    return ConnectionDetails(SERVER, "prtgadmin", "12345678")


@pytest.fixture
def sleeps() -> List[float]:
    """Backoff durations requested by the engine, in order."""
    return []


@pytest.fixture
def make_engine(connection, sleeps) -> Callable[..., RequestEngine]:
    """Factory building an engine around a mock handler.

    The same handler serves both the sync and async clients; it may be a plain
    function or a coroutine function.
    """

    created: List[HttpxWebClient] = []

    def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    async def _async_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    def _factory(
        handler,
        *,
        retry_count: int = 1,
        retry_delay: int = 3,
        log_level: LogLevel = LogLevel.TRACE | LogLevel.REQUEST,
        batch_size: int = 1500,
    ) -> RequestEngine:
        transport = httpx.MockTransport(handler)
        client = HttpxWebClient(transport=transport, async_transport=transport)
        created.append(client)
        settings = RequestSettings(
            retry_count=retry_count, retry_delay=retry_delay, log_level=log_level
        )
        return RequestEngine(
            connection,
            settings,
            client,
            sleep=_sleep,
            async_sleep=_async_sleep,
            batch_size=batch_size,
        )

    yield _factory

    for client in created:
        client.close()

