"""
Structured Generation Client Tests

The completion API is replaced with an httpx MockTransport that replays a
canned server-sent event stream.
"""
import asyncio
import json
import time
from unittest.mock import patch

import httpx
import pytest

from models.user_story import UserStoriesResponse
from services.llm_service import LLMService, GenerationError
from services.strict_output_service import GenerationPurpose, get_profile

REAL_ASYNC_CLIENT = httpx.AsyncClient


@pytest.fixture
def anyio_backend():
    return 'asyncio'


def completion_stream(chunks):
    """Body of a streamed chat completion delivering `chunks` as deltas"""
    lines = [
        "data: " + json.dumps({"choices": [{"delta": {"content": chunk}}]})
        for chunk in chunks
    ]
    lines.append("data: [DONE]")
    return ("\n\n".join(lines) + "\n\n").encode()


def mock_api(handler):
    """Patch the client used by LLMService so requests go to `handler`"""
    def factory(*args, **kwargs):
        return REAL_ASYNC_CLIENT(transport=httpx.MockTransport(handler))
    return patch("services.llm_service.httpx.AsyncClient", side_effect=factory)


STORIES_JSON = json.dumps({
    "stories": [
        {
            "title": "As a walker, I want to set availability so that owners can book me",
            "description": "Walkers publish weekly availability.",
            "acceptanceCriteria": ["Weekly grid", "Saved immediately"],
        }
    ]
})


def split_into_chunks(text, size=17):
    return [text[i:i + size] for i in range(0, len(text), size)]


@pytest.fixture
def service():
    return LLMService(api_key="sk-test", base_url="https://llm.test/v1", timeout=5)


class TestStreamObject:

    @pytest.mark.anyio
    async def test_partials_then_single_complete(self, service):
        captured = {}

        def handler(request):
            captured["body"] = json.loads(request.content)
            captured["auth"] = request.headers["Authorization"]
            return httpx.Response(200, content=completion_stream(split_into_chunks(STORIES_JSON)))

        with mock_api(handler):
            events = [
                e async for e in service.stream_object(
                    get_profile(GenerationPurpose.STORIES), "system", "user", UserStoriesResponse
                )
            ]

        assert [e.type for e in events].count("complete") == 1
        assert events[-1].is_final
        assert events[-1].data == json.loads(STORIES_JSON)
        assert all(e.type == "partial" for e in events[:-1])
        assert len(events) > 2

        assert captured["auth"] == "Bearer sk-test"
        assert captured["body"]["model"] == "gpt-4o-mini"
        assert captured["body"]["stream"] is True
        assert captured["body"]["response_format"] == {"type": "json_object"}
        assert "RESPONSE SCHEMA" in captured["body"]["messages"][0]["content"]
        assert captured["body"]["messages"][1] == {"role": "user", "content": "user"}

    @pytest.mark.anyio
    async def test_schema_mismatch_raises(self, service):
        bad = json.dumps({"stories": [{"title": "", "description": "d", "acceptanceCriteria": []}]})

        def handler(request):
            return httpx.Response(200, content=completion_stream([bad]))

        events = []
        with mock_api(handler), pytest.raises(GenerationError) as exc_info:
            async for event in service.stream_object(
                get_profile(GenerationPurpose.STORIES), "system", "user", UserStoriesResponse
            ):
                events.append(event)

        assert not any(e.is_final for e in events)
        assert any("title" in err for err in exc_info.value.errors)

    @pytest.mark.anyio
    async def test_non_json_output_raises(self, service):
        def handler(request):
            return httpx.Response(200, content=completion_stream(["I cannot help with that."]))

        with mock_api(handler), pytest.raises(GenerationError):
            async for _ in service.stream_object(
                get_profile(GenerationPurpose.STORIES), "system", "user", UserStoriesResponse
            ):
                pass

    @pytest.mark.anyio
    async def test_upstream_error_status_raises(self, service):
        def handler(request):
            return httpx.Response(500, content=b'{"error": "boom"}')

        with mock_api(handler), pytest.raises(GenerationError, match="HTTP 500"):
            async for _ in service.stream_object(
                get_profile(GenerationPurpose.STORIES), "system", "user", UserStoriesResponse
            ):
                pass

    @pytest.mark.anyio
    async def test_timeout_raises(self, service):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with mock_api(handler), pytest.raises(GenerationError, match="timed out"):
            async for _ in service.stream_object(
                get_profile(GenerationPurpose.STORIES), "system", "user", UserStoriesResponse
            ):
                pass

    @pytest.mark.anyio
    async def test_stalled_stream_bounded_by_total_deadline(self):
        async def trickle():
            yield b"data: " + json.dumps({"choices": [{"delta": {"content": "{\"stories\": ["}}]}).encode() + b"\n\n"
            await asyncio.sleep(10)
            yield b"data: [DONE]\n\n"

        def handler(request):
            return httpx.Response(200, content=trickle())

        service = LLMService(api_key="sk-test", base_url="https://llm.test/v1", timeout=0.3)
        started = time.monotonic()
        with mock_api(handler), pytest.raises(GenerationError, match="timed out"):
            async for _ in service.stream_object(
                get_profile(GenerationPurpose.STORIES), "system", "user", UserStoriesResponse
            ):
                pass
        assert time.monotonic() - started < 2

    @pytest.mark.anyio
    async def test_missing_api_key(self):
        service = LLMService(api_key="")
        with pytest.raises(GenerationError, match="API key"):
            async for _ in service.stream_object(
                get_profile(GenerationPurpose.STORIES), "system", "user", UserStoriesResponse
            ):
                pass


class TestStreamText:

    @pytest.mark.anyio
    async def test_yields_deltas_with_history(self, service):
        captured = {}

        def handler(request):
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, content=completion_stream(["Hel", "lo"]))

        history = [{"role": "user", "content": "Hi"}, {"role": "assistant", "content": "Hey"}]
        with mock_api(handler):
            chunks = [
                c async for c in service.stream_text(get_profile(GenerationPurpose.CHAT), "be helpful", history)
            ]

        assert chunks == ["Hel", "lo"]
        assert captured["body"]["messages"][0] == {"role": "system", "content": "be helpful"}
        assert captured["body"]["messages"][1:] == history
        assert captured["body"]["temperature"] == 0.7
        assert "response_format" not in captured["body"]
