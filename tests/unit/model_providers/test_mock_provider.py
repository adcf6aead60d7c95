"""Tests for the scripted mock model backend."""

from __future__ import annotations

import pytest

from switchyard.agents import messages
from switchyard.core.exceptions import BackendInvocationError
from switchyard.core.protocols import IModelBackend
from switchyard.models.responses import GenerationRequest, ToolInvocationRequest
from tests.fakes import MockModelBackend


def _request(text: str) -> GenerationRequest:
    return GenerationRequest(system_prompt="sys", messages=[messages.text_message("user", text)])


class TestGenerate:
    def test_satisfies_protocol(self):
        assert isinstance(MockModelBackend(), IModelBackend)

    @pytest.mark.asyncio
    async def test_default_response(self):
        output = await MockModelBackend("fallback").generate(_request("anything"))
        assert output.text == "fallback"
        assert output.stop_reason == "end_turn"

    @pytest.mark.asyncio
    async def test_keyword_response(self):
        backend = MockModelBackend()
        backend.set_response("weather", "Sunny.")
        output = await backend.generate(_request("what's the weather like"))
        assert output.text == "Sunny."

    @pytest.mark.asyncio
    async def test_queue_consumed_in_order_before_keywords(self):
        backend = MockModelBackend()
        backend.set_response("hi", "keyword")
        backend.queue("first")
        backend.queue("second")
        texts = [(await backend.generate(_request("hi"))).text for _ in range(3)]
        assert texts == ["first", "second", "keyword"]

    @pytest.mark.asyncio
    async def test_tool_calls_reported(self):
        call = ToolInvocationRequest(tool_use_id="tu-1", name="lookup", arguments={"q": "x"})
        backend = MockModelBackend()
        backend.queue("", tool_calls=[call])
        output = await backend.generate(_request("go"))
        assert output.tool_calls == [call]
        assert output.stop_reason == "tool_use"
        assert output.message["content"][0]["toolUse"]["name"] == "lookup"

    @pytest.mark.asyncio
    async def test_failure_injection(self):
        backend = MockModelBackend()
        backend.queue("never", fail_after=0)
        with pytest.raises(BackendInvocationError):
            await backend.generate(_request("go"))


class TestGenerateStream:
    @pytest.mark.asyncio
    async def test_word_chunks_then_stop(self):
        backend = MockModelBackend()
        backend.queue("Sunny and warm")
        events = [e async for e in backend.generate_stream(_request("weather"))]
        assert [e.text for e in events if e.type == "text"] == ["Sunny ", "and ", "warm"]
        assert events[-1].type == "stop"
        assert backend.chunks_emitted == 3

    @pytest.mark.asyncio
    async def test_explicit_chunks(self):
        backend = MockModelBackend()
        backend.queue("ignored", chunks=["ab", "cd"])
        events = [e async for e in backend.generate_stream(_request("x"))]
        assert [e.text for e in events if e.type == "text"] == ["ab", "cd"]

    @pytest.mark.asyncio
    async def test_fail_after_cuts_stream(self):
        backend = MockModelBackend()
        backend.queue("one two three", fail_after=2)
        received = []
        with pytest.raises(BackendInvocationError):
            async for event in backend.generate_stream(_request("x")):
                received.append(event.text)
        assert received == ["one ", "two "]

    @pytest.mark.asyncio
    async def test_records_requests(self):
        backend = MockModelBackend()
        request = _request("hello")
        [e async for e in backend.generate_stream(request)]
        assert backend.requests == [request]
        assert backend.system_prompts == ["sys"]
