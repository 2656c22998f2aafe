"""Tests for multi-target batch splitting."""

import math

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from PrtgKit.Request import BATCH_LIMIT, CommandFunction, MultiTargetParameters
from PrtgKit.Request.batching import execute_batched, execute_batched_async, iter_batches


def make_parameters(count):
    return MultiTargetParameters(CommandFunction.PAUSE, list(range(count)), action=0)


class TestIterBatches:
    def test_default_limit(self):
        assert BATCH_LIMIT == 1500

    def test_splits_3200_ids(self):
        parameters = make_parameters(3200)
        sizes = [len(chunk.object_ids) for chunk in iter_batches(parameters)]
        assert sizes == [1500, 1500, 200]

    def test_rejects_non_positive_batch_size(self):
        with pytest.raises(ValueError):
            list(iter_batches(make_parameters(3), 0))

    def test_restores_ids_when_closed_early(self):
        parameters = make_parameters(10)
        original = parameters.object_ids
        batches = iter_batches(parameters, 3)
        next(batches)
        assert len(parameters.object_ids) == 3
        batches.close()
        assert parameters.object_ids is original


class TestExecuteBatched:
    def test_failure_in_second_chunk_restores_original_ids(self):
        parameters = make_parameters(3200)
        original = list(parameters.object_ids)
        seen = []

        def execute(chunk):
            seen.append(list(chunk.object_ids))
            if len(seen) == 2:
                raise RuntimeError("chunk failed")

        with pytest.raises(RuntimeError, match="chunk failed"):
            execute_batched(parameters, execute)

        assert [len(chunk) for chunk in seen] == [1500, 1500]
        assert parameters.object_ids == original

    def test_empty_id_list_executes_nothing(self):
        calls = []
        execute_batched(make_parameters(0), calls.append)
        assert calls == []

    @settings(max_examples=50, deadline=None)
    @given(
        count=st.integers(min_value=0, max_value=5000),
        batch_size=st.integers(min_value=1, max_value=2000),
    )
    def test_chunks_cover_ids_in_order(self, count, batch_size):
        parameters = make_parameters(count)
        original = list(parameters.object_ids)
        chunks = []

        execute_batched(parameters, lambda chunk: chunks.append(list(chunk.object_ids)), batch_size)

        assert len(chunks) == math.ceil(count / batch_size)
        assert all(len(chunk) <= batch_size for chunk in chunks)
        assert [item for chunk in chunks for item in chunk] == original
        assert parameters.object_ids == original

    @pytest.mark.asyncio
    async def test_async_restores_ids_after_failure(self):
        parameters = make_parameters(3001)
        original = list(parameters.object_ids)
        seen = []

        async def execute(chunk):
            seen.append(len(chunk.object_ids))
            if len(seen) == 3:
                raise RuntimeError("last chunk failed")

        with pytest.raises(RuntimeError):
            await execute_batched_async(parameters, execute)

        assert seen == [1500, 1500, 1]
        assert parameters.object_ids == original
