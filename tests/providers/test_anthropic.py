"""Tests for the Anthropic adapter."""

import json

import httpx
import pytest

from modelrelay.errors import BackendError, DecodeError
from modelrelay.providers.anthropic import ANTHROPIC_API_VERSION, AnthropicProvider
from modelrelay.types import GenerateOptions, Locality, Message, Tool

MESSAGE_BODY = {
    "id": "msg_01",
    "type": "message",
    "role": "assistant",
    "model": "claude-3-sonnet-20240229",
    "content": [{"type": "text", "text": "Hello"}, {"type": "text", "text": " there"}],
    "stop_reason": "end_turn",
    "usage": {"input_tokens": 10, "output_tokens": 4},
}

TOOL_USE_BODY = {
    "model": "claude-3-sonnet-20240229",
    "content": [
        {"type": "text", "text": "Checking the weather."},
        {"type": "tool_use", "id": "toolu_01", "name": "get_weather", "input": {"city": "Paris"}},
    ],
    "stop_reason": "tool_use",
    "usage": {"input_tokens": 50, "output_tokens": 20},
}

WEATHER_TOOL = Tool(
    name="get_weather",
    description="Current weather for a city",
    parameters={"type": "object", "properties": {"city": {"type": "string"}}, "required": ["city"]},
)


def make_provider(mock_client, handler, **config):
    config.setdefault("api_key", "sk-ant-test")
    return AnthropicProvider("claude", config=config, client=mock_client(handler))


class TestAnthropicGenerate:
    @pytest.mark.asyncio
    async def test_generate(self, mock_client, sent_requests):
        provider = make_provider(mock_client, lambda r: httpx.Response(200, json=MESSAGE_BODY))

        response = await provider.generate("Hi", GenerateOptions(system_prompt="Be polite", top_p=0.5))

        assert response.content == "Hello there"
        assert response.usage.total_tokens == 14
        assert response.metadata == {"stop_reason": "end_turn"}
        assert response.tool_calls == ()

        request = sent_requests[0]
        assert request.url == "https://api.anthropic.com/v1/messages"
        assert request.headers["x-api-key"] == "sk-ant-test"
        assert request.headers["anthropic-version"] == ANTHROPIC_API_VERSION
        payload = json.loads(request.content)
        assert payload["model"] == "claude-3-sonnet-20240229"
        assert payload["max_tokens"] == 4096
        assert payload["system"] == "Be polite"
        assert payload["top_p"] == 0.5
        assert payload["messages"] == [{"role": "user", "content": "Hi"}]
        assert "stream" not in payload

    @pytest.mark.asyncio
    async def test_overloaded(self, mock_client):
        error_body = {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}}
        provider = make_provider(mock_client, lambda r: httpx.Response(529, json=error_body))

        with pytest.raises(BackendError) as exc_info:
            await provider.generate("Hi")
        assert exc_info.value.status_code == 529
        assert "Overloaded" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_missing_content(self, mock_client):
        provider = make_provider(mock_client, lambda r: httpx.Response(200, json={"id": "msg_01"}))
        with pytest.raises(DecodeError):
            await provider.generate("Hi")


class TestAnthropicToolCall:
    @pytest.mark.asyncio
    async def test_tool_call(self, mock_client, sent_requests):
        provider = make_provider(mock_client, lambda r: httpx.Response(200, json=TOOL_USE_BODY))
        messages = [
            Message("system", "You can call tools."),
            Message("user", "Weather in Paris?"),
        ]

        response = await provider.tool_call(messages, [WEATHER_TOOL])

        assert response.content == "Checking the weather."
        assert len(response.tool_calls) == 1
        call = response.tool_calls[0]
        assert call.id == "toolu_01"
        assert call.name == "get_weather"
        assert call.parsed_arguments() == {"city": "Paris"}

        payload = json.loads(sent_requests[0].content)
        assert payload["system"] == "You can call tools."
        assert payload["messages"] == [{"role": "user", "content": "Weather in Paris?"}]
        assert payload["tools"] == [
            {
                "name": "get_weather",
                "description": "Current weather for a city",
                "input_schema": WEATHER_TOOL.parameters,
            }
        ]

    def test_system_messages_concatenated(self):
        provider = AnthropicProvider("claude")
        system, converted = provider._convert_messages(
            [Message("system", "A"), Message("user", "q"), Message("system", "B")]
        )
        assert system == "A\n\nB"
        assert converted == [{"role": "user", "content": "q"}]


class TestAnthropicStream:
    @pytest.mark.asyncio
    async def test_stream(self, mock_client, sent_requests):
        body = (
            b"event: message_start\n"
            b'data: {"type":"message_start","message":{"id":"msg_01"}}\n\n'
            b"event: content_block_delta\n"
            b'data: {"type":"content_block_delta","index":0,"delta":{"type":"text_delta","text":"Hel"}}\n\n'
            b"event: content_block_delta\n"
            b'data: {"type":"content_block_delta","index":0,"delta":{"type":"text_delta","text":"lo"}}\n\n'
            b"event: message_delta\n"
            b'data: {"type":"message_delta","delta":{"stop_reason":"end_turn"},"usage":{"output_tokens":2}}\n\n'
            b"event: message_stop\n"
            b'data: {"type":"message_stop"}\n\n'
        )
        provider = make_provider(mock_client, lambda r: httpx.Response(200, content=body))

        fragments = [fragment async for fragment in provider.generate_stream("Hi")]

        assert fragments == ["Hel", "lo"]
        assert json.loads(sent_requests[0].content)["stream"] is True

    @pytest.mark.asyncio
    async def test_stream_joins_to_generate_content(self, mock_client):
        """Both paths against the same server produce the same text."""

        def handler(request):
            if not json.loads(request.content).get("stream"):
                return httpx.Response(200, json=MESSAGE_BODY)
            events = [("message_start", {"type": "message_start", "message": {"id": "msg_01"}})]
            for text in ["Hel", "lo", " there"]:
                delta = {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": text}}
                events.append(("content_block_delta", delta))
            events.append(("message_stop", {"type": "message_stop"}))
            body = "".join(f"event: {name}\ndata: {json.dumps(data)}\n\n" for name, data in events)
            return httpx.Response(200, content=body.encode())

        provider = make_provider(mock_client, handler)

        response = await provider.generate("Hi")
        fragments = [fragment async for fragment in provider.generate_stream("Hi")]

        assert response.content == "Hello there"
        assert "".join(fragments) == response.content


class TestAnthropicAvailability:
    @pytest.mark.asyncio
    async def test_no_key_means_unavailable(self, mock_client, sent_requests):
        provider = AnthropicProvider("claude", client=mock_client(lambda r: httpx.Response(200)))
        assert await provider.is_available() is False
        assert sent_requests == []

    @pytest.mark.asyncio
    async def test_available_when_models_endpoint_answers(self, mock_client, sent_requests):
        provider = make_provider(mock_client, lambda r: httpx.Response(200, json={"data": []}))
        assert await provider.is_available() is True
        assert sent_requests[0].url.path == "/v1/models"

    def test_describe(self):
        descriptor = AnthropicProvider("claude", "claude-3-haiku-20240307").describe()
        assert descriptor.locality == Locality.REMOTE
        assert descriptor.requires_auth is True
        assert descriptor.supports_tools is True
        assert descriptor.max_context_tokens == 200000
        assert descriptor.model == "claude-3-haiku-20240307"
