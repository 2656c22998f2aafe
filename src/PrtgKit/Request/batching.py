"""Split multi-target commands into bounded batches of object IDs.

PRTG rejects URLs beyond a certain length, so commands that act on many objects
are issued as several sequential requests of at most :data:`BATCH_LIMIT` IDs.
The descriptor's ``object_ids`` is overwritten for each chunk and restored to
the original list when iteration finishes, however it finishes.

There is no rollback: if chunk *k* fails, chunks ``1..k-1`` have already taken
effect on the server and the caller must assume partial completion.
"""

from __future__ import annotations

import logging
from contextlib import closing
from typing import Any, Awaitable, Callable, Iterator

from .parameters import MultiTargetParameters

__all__ = ["BATCH_LIMIT", "iter_batches", "execute_batched", "execute_batched_async"]

LOGGER = logging.getLogger(__name__)

BATCH_LIMIT = 1500


def iter_batches(
    parameters: MultiTargetParameters, batch_size: int = BATCH_LIMIT
) -> Iterator[MultiTargetParameters]:
    """Yield ``parameters`` once per chunk with ``object_ids`` set to that chunk.

    The original ID list is restored when the generator is closed, so consume
    it under :func:`contextlib.closing` to restore deterministically on error.
    """

    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")

    all_ids = parameters.object_ids
    try:
        for start in range(0, len(all_ids), batch_size):
            parameters.object_ids = all_ids[start : start + batch_size]
            yield parameters
    finally:
        parameters.object_ids = all_ids


def execute_batched(
    parameters: MultiTargetParameters,
    execute: Callable[[MultiTargetParameters], Any],
    batch_size: int = BATCH_LIMIT,
) -> None:
    """Run ``execute`` sequentially for each chunk of ``parameters.object_ids``."""

    total = len(parameters.object_ids)
    with closing(iter_batches(parameters, batch_size)) as batches:
        for index, chunk in enumerate(batches, start=1):
            LOGGER.debug(
                "Executing batch %d (%d of %d objects)", index, len(chunk.object_ids), total
            )
            execute(chunk)


async def execute_batched_async(
    parameters: MultiTargetParameters,
    execute: Callable[[MultiTargetParameters], Awaitable[Any]],
    batch_size: int = BATCH_LIMIT,
) -> None:
    """Asynchronous counterpart of :func:`execute_batched`; chunks never overlap."""

    total = len(parameters.object_ids)
    with closing(iter_batches(parameters, batch_size)) as batches:
        for index, chunk in enumerate(batches, start=1):
            LOGGER.debug(
                "Executing batch %d (%d of %d objects)", index, len(chunk.object_ids), total
            )
            await execute(chunk)
