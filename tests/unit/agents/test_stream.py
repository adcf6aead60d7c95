"""Tests for ResponseStream lifecycle: completion, failure and cancellation."""

from __future__ import annotations

import asyncio

import pytest

from switchyard.agents.stream import ResponseStream
from switchyard.core.exceptions import BackendInvocationError
from switchyard.models.conversation import TurnStatus
from switchyard.models.responses import ResponseChunk, ToolInvocationRequest


class Source:
    """Chunk source that records how far it was consumed and whether it was closed."""

    def __init__(self, parts, error: Exception | None = None, hang_after: int | None = None):
        self.parts = parts
        self.error = error
        self.hang_after = hang_after
        self.produced = 0
        self.closed = False

    async def chunks(self):
        try:
            for index, part in enumerate(self.parts):
                if index == self.hang_after:
                    await asyncio.sleep(10)
                self.produced += 1
                yield ResponseChunk(type="text", text=part)
            if self.error is not None:
                raise self.error
        finally:
            self.closed = True


class Recorder:
    def __init__(self):
        self.calls: list[TurnStatus | None] = []

    async def __call__(self, stream: ResponseStream) -> None:
        self.calls.append(stream.status)


class TestCompletion:
    @pytest.mark.asyncio
    async def test_collect_returns_full_text(self):
        stream = ResponseStream(Source(["Hello ", "world"]).chunks())
        assert await stream.collect() == "Hello world"
        assert stream.status is TurnStatus.COMPLETED
        assert stream.finished

    @pytest.mark.asyncio
    async def test_finish_callback_runs_once(self):
        recorder = Recorder()
        stream = ResponseStream(Source(["a"]).chunks())
        stream.add_finish_callback(recorder)
        await stream.collect()
        await stream.collect()
        await stream.aclose()
        assert recorder.calls == [TurnStatus.COMPLETED]

    @pytest.mark.asyncio
    async def test_not_restartable(self):
        stream = ResponseStream(Source(["a", "b"]).chunks())
        await stream.collect()
        assert [chunk async for chunk in stream] == []

    @pytest.mark.asyncio
    async def test_tool_call_chunks_recorded(self):
        call = ToolInvocationRequest(tool_use_id="tu-1", name="lookup")

        async def chunks():
            yield ResponseChunk(type="tool_call", tool_call=call)
            yield ResponseChunk(type="text", text="done")

        stream = ResponseStream(chunks())
        await stream.collect()
        assert stream.tool_calls == [call]
        assert stream.text == "done"


class TestFailure:
    @pytest.mark.asyncio
    async def test_source_error_marks_failed_and_propagates(self):
        error = BackendInvocationError("cut off", code="ModelStreamError")
        recorder = Recorder()
        stream = ResponseStream(Source(["partial "], error=error).chunks())
        stream.add_finish_callback(recorder)
        with pytest.raises(BackendInvocationError):
            await stream.collect()
        assert stream.status is TurnStatus.FAILED
        assert stream.error is error
        assert stream.text == "partial "
        assert recorder.calls == [TurnStatus.FAILED]

    @pytest.mark.asyncio
    async def test_idle_timeout_cancels_stream(self):
        source = Source(["a", "b"], hang_after=1)
        stream = ResponseStream(source.chunks(), idle_timeout=0.05)
        with pytest.raises(BackendInvocationError) as exc_info:
            await stream.collect()
        assert exc_info.value.code == "StreamIdleTimeout"
        assert stream.status is TurnStatus.CANCELLED
        assert source.closed


class TestCancellation:
    @pytest.mark.asyncio
    async def test_aclose_after_first_chunk(self):
        source = Source(["one ", "two ", "three"])
        recorder = Recorder()
        stream = ResponseStream(source.chunks())
        stream.add_finish_callback(recorder)
        first = await anext(stream)
        await stream.aclose()
        assert first.text == "one "
        assert source.produced == 1
        assert source.closed
        assert stream.status is TurnStatus.CANCELLED
        assert recorder.calls == [TurnStatus.CANCELLED]
        assert [chunk async for chunk in stream] == []

    @pytest.mark.asyncio
    async def test_aclose_before_start(self):
        source = Source(["one"])
        stream = ResponseStream(source.chunks())
        await stream.aclose()
        assert stream.status is TurnStatus.CANCELLED
        assert source.produced == 0

    @pytest.mark.asyncio
    async def test_aclose_after_completion_is_noop(self):
        stream = ResponseStream(Source(["a"]).chunks())
        await stream.collect()
        await stream.aclose()
        assert stream.status is TurnStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_async_with_closes_on_exit(self):
        source = Source(["a", "b"])
        async with ResponseStream(source.chunks()) as stream:
            await anext(stream)
        assert stream.status is TurnStatus.CANCELLED
        assert source.closed

    @pytest.mark.asyncio
    async def test_task_cancellation_marks_cancelled(self):
        source = Source(["a", "b"], hang_after=1)
        stream = ResponseStream(source.chunks())
        await anext(stream)
        task = asyncio.create_task(anext(stream))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert stream.status is TurnStatus.CANCELLED
        assert source.closed

    @pytest.mark.asyncio
    async def test_read_after_tool_call_allows_tool_timeout(self):
        call = ToolInvocationRequest(tool_use_id="tu-1", name="lookup")

        async def chunks():
            yield ResponseChunk(type="tool_call", tool_call=call)
            await asyncio.sleep(0.1)  # tool round trip
            yield ResponseChunk(type="text", text="done")
            await asyncio.sleep(0.1)

        stream = ResponseStream(chunks(), idle_timeout=0.05, tool_timeout=0.2)
        with pytest.raises(BackendInvocationError) as exc_info:
            await stream.collect()
        assert stream.text == "done"
        assert exc_info.value.code == "StreamIdleTimeout"


class TestStartDeadline:
    @pytest.mark.asyncio
    async def test_unstarted_stream_is_cancelled(self):
        source = Source(["a"])
        recorder = Recorder()
        stream = ResponseStream(source.chunks())
        stream.add_finish_callback(recorder)
        stream.expire_unless_started(0.05)

        await asyncio.sleep(0.2)

        assert stream.status is TurnStatus.CANCELLED
        assert isinstance(stream.error, BackendInvocationError)
        assert stream.error.code == "StreamNotConsumed"
        assert recorder.calls == [TurnStatus.CANCELLED]
        assert source.produced == 0
        assert [chunk async for chunk in stream] == []

    @pytest.mark.asyncio
    async def test_first_read_disarms_deadline(self):
        stream = ResponseStream(Source(["a", "b"]).chunks())
        stream.expire_unless_started(0.05)
        first = await anext(stream)
        await asyncio.sleep(0.15)
        assert stream.status is None
        assert first.text == "a"
        assert await stream.collect() == "ab"
        assert stream.status is TurnStatus.COMPLETED
