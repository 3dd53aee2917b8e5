"""Tests for the shared request/response types."""

import pytest

from modelrelay.errors import DecodeError, InvalidConfiguration
from modelrelay.types import (
    CapabilityDescriptor,
    GenerateOptions,
    Locality,
    Message,
    ModelResponse,
    ProviderInfo,
    TokenUsage,
    ToolCall,
    estimate_tokens,
)


class TestEstimateTokens:
    def test_rounds_up(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens("abc") == 1
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2

    def test_large_prompt(self):
        assert estimate_tokens("x" * 4001) == 1001


class TestGenerateOptions:
    def test_defaults(self):
        options = GenerateOptions()
        assert options.temperature == 0.7
        assert options.max_tokens is None
        assert options.stop == ()

    def test_stop_sequences_deduplicated_in_order(self):
        options = GenerateOptions(stop=["\n\n", "END", "\n\n"])
        assert options.stop == ("\n\n", "END")

    def test_single_stop_string_kept_whole(self):
        assert GenerateOptions(stop="END").stop == ("END",)

    def test_non_positive_max_tokens_rejected(self):
        with pytest.raises(InvalidConfiguration):
            GenerateOptions(max_tokens=0)

    def test_merged_returns_copy(self):
        options = GenerateOptions(temperature=0.2)
        merged = options.merged(max_tokens=50)
        assert merged.max_tokens == 50
        assert merged.temperature == 0.2
        assert options.max_tokens is None


class TestMessage:
    def test_to_dict(self):
        assert Message("user", "Hello").to_dict() == {"role": "user", "content": "Hello"}

    def test_invalid_role(self):
        with pytest.raises(InvalidConfiguration, match="Invalid message role"):
            Message("tool", "result")


class TestToolCall:
    def test_parsed_arguments(self):
        call = ToolCall(id="call_1", name="get_weather", arguments='{"city": "Paris"}')
        assert call.parsed_arguments() == {"city": "Paris"}

    def test_malformed_arguments(self):
        call = ToolCall(id="call_1", name="get_weather", arguments="{city: Paris")
        with pytest.raises(DecodeError):
            call.parsed_arguments()

    def test_non_object_arguments(self):
        with pytest.raises(DecodeError):
            ToolCall(id="call_1", name="f", arguments="[1, 2]").parsed_arguments()


class TestTokenUsage:
    def test_from_counts(self):
        usage = TokenUsage.from_counts(10, 5)
        assert usage.total_tokens == 15

    def test_addition(self):
        total = TokenUsage.from_counts(10, 5) + TokenUsage.from_counts(1, 2)
        assert total == TokenUsage(prompt_tokens=11, completion_tokens=7, total_tokens=18)


def test_model_response_total_tokens():
    assert ModelResponse(content="hi").total_tokens == 0
    assert ModelResponse(content="hi", usage=TokenUsage.from_counts(3, 4)).total_tokens == 7


def test_provider_info_to_dict():
    descriptor = CapabilityDescriptor(
        name="Ollama",
        locality=Locality.LOCAL,
        requires_auth=False,
        supports_streaming=True,
        supports_tools=False,
        max_context_tokens=4096,
        model="codellama:7b",
    )
    info = ProviderInfo(id="ollama", descriptor=descriptor, available=True)

    data = info.to_dict()
    assert data["id"] == "ollama"
    assert data["available"] is True
    assert data["locality"] == "local"
    assert data["model"] == "codellama:7b"
