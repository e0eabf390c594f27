"""Tests for the stream adapter (eager open, synthetic error streams)."""

import asyncio

import httpx
import pytest

from lmss_hosting.errors import ErrorKind, ModelNotFoundError, NoModelAvailableError
from lmss_hosting.streaming import (
    delta_content,
    error_chunk,
    error_text,
    open_stream,
)
from tests.conftest import async_iter, stream_chunks


async def collect(stream) -> list:
    return [item async for item in stream]


class TestOpenStream:

    @pytest.mark.asyncio
    async def test_passes_items_through(self):
        stream = await open_stream(async_iter(["a", "b", "c"]), error_text)
        assert not stream.synthetic
        assert await collect(stream) == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_open_pulls_first_item_eagerly(self):
        pulled = []

        async def source():
            pulled.append("first")
            yield "first"
            pulled.append("second")
            yield "second"

        stream = await open_stream(source, error_text)

        assert pulled == ["first"]
        assert await collect(stream) == ["first", "second"]

    @pytest.mark.asyncio
    async def test_start_failure_becomes_single_error_item(self):
        opener = async_iter(["never"], fail_after=0, error=httpx.ConnectError("refused"))

        stream = await open_stream(opener, error_text)

        assert stream.synthetic
        assert stream.error_kind is ErrorKind.SERVER_UNAVAILABLE
        assert await collect(stream) == [ErrorKind.SERVER_UNAVAILABLE.user_message]

    @pytest.mark.asyncio
    async def test_opener_raising_synchronously_is_masked(self):
        def opener():
            raise ModelNotFoundError("nope")

        stream = await open_stream(opener, error_text)

        assert await collect(stream) == [ErrorKind.MODEL_NOT_FOUND.user_message]

    @pytest.mark.asyncio
    async def test_mid_stream_failure_propagates(self):
        opener = async_iter(["a", "b"], fail_after=1, error=RuntimeError("dropped"))
        stream = await open_stream(opener, error_text)

        received = []
        with pytest.raises(RuntimeError, match="dropped"):
            async for item in stream:
                received.append(item)
        assert received == ["a"]

    @pytest.mark.asyncio
    async def test_empty_stream_opens_empty(self):
        stream = await open_stream(async_iter([]), error_text)
        assert not stream.synthetic
        assert await collect(stream) == []

    @pytest.mark.asyncio
    async def test_propagate_types_are_re_raised(self):
        opener = async_iter([], fail_after=0, error=NoModelAvailableError())
        with pytest.raises(NoModelAvailableError):
            await open_stream(opener, error_text, propagate=(NoModelAvailableError,))

    @pytest.mark.asyncio
    async def test_cancellation_is_not_masked(self):
        opener = async_iter([], fail_after=0, error=asyncio.CancelledError())
        with pytest.raises(asyncio.CancelledError):
            await open_stream(opener, error_text)

    @pytest.mark.asyncio
    async def test_stream_is_single_use(self):
        stream = await open_stream(async_iter(["a"]), error_text)
        await collect(stream)
        with pytest.raises(RuntimeError):
            await collect(stream)

    @pytest.mark.asyncio
    async def test_aclose_closes_underlying_iterator(self):
        closed = []

        async def source():
            try:
                yield "a"
                yield "b"
            finally:
                closed.append(True)

        stream = await open_stream(source, error_text)
        iterator = stream.__aiter__()
        assert await iterator.__anext__() == "a"

        await stream.aclose()

        assert closed == [True]


class TestErrorItems:

    def test_error_chunk_carries_message_as_delta(self):
        chunk = error_chunk(ErrorKind.NO_MODELS_LOADED)
        assert delta_content(chunk) == ErrorKind.NO_MODELS_LOADED.user_message

    def test_delta_content_of_empty_chunk(self):
        chunk = stream_chunks(None)[0]
        assert delta_content(chunk) is None

    @pytest.mark.asyncio
    async def test_chunk_stream_failure_yields_one_chunk(self):
        opener = async_iter([], fail_after=0, error=httpx.ConnectTimeout("slow"))
        stream = await open_stream(opener, error_chunk)
        chunks = await collect(stream)
        assert len(chunks) == 1
        assert delta_content(chunks[0]) == ErrorKind.SERVER_UNAVAILABLE.user_message
