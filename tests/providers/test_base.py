"""Tests for the deadline and capability behaviour shared by every provider."""

import asyncio
from contextlib import aclosing

import pytest

from modelrelay.errors import BackendUnavailable, DeadlineExceeded, UnsupportedCapability
from modelrelay.providers.base import ModelProvider
from modelrelay.testing import MockProvider
from modelrelay.types import CapabilityDescriptor, Locality, Message, ModelResponse, Tool


class PlainProvider(ModelProvider):
    """Provider implementing only the required hooks."""

    async def _generate(self, prompt, options):
        return ModelResponse(content=prompt.upper())

    async def is_available(self):
        return True

    def describe(self):
        return CapabilityDescriptor(
            name="Plain",
            locality=Locality.LOCAL,
            requires_auth=False,
            supports_streaming=False,
            supports_tools=False,
            max_context_tokens=512,
        )


class TrackingProvider(MockProvider):
    """Records whether its inner stream was finalised."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.stream_closed = False

    async def _generate_stream(self, prompt, options):
        try:
            for word in ("a", "b", "c"):
                yield word
        finally:
            self.stream_closed = True


class TestDeadlines:
    @pytest.mark.asyncio
    async def test_generate_deadline(self):
        provider = MockProvider("slow", delay=1.0)

        with pytest.raises(DeadlineExceeded) as exc_info:
            await provider.generate("hi", timeout=0.05)

        assert exc_info.value.timeout == 0.05
        assert exc_info.value.provider == "slow"
        assert isinstance(exc_info.value, BackendUnavailable)

    @pytest.mark.asyncio
    async def test_no_deadline_by_default(self):
        provider = MockProvider("slow", delay=0.05)
        assert (await provider.generate("hi")).content == "Mock response"

    @pytest.mark.asyncio
    async def test_stream_deadline(self):
        provider = MockProvider("slow", delay=1.0)
        with pytest.raises(DeadlineExceeded):
            async for _ in provider.generate_stream("hi", timeout=0.05):
                pass

    @pytest.mark.asyncio
    async def test_tool_call_deadline(self):
        provider = MockProvider("slow", delay=1.0)
        with pytest.raises(DeadlineExceeded):
            await provider.tool_call([Message("user", "hi")], [], timeout=0.05)

    @pytest.mark.asyncio
    async def test_stream_within_deadline(self):
        provider = MockProvider("fast", default_response="all good here")
        fragments = [f async for f in provider.generate_stream("hi", timeout=1.0)]
        assert "".join(fragments) == "all good here"


class TestStreamRelease:
    @pytest.mark.asyncio
    async def test_early_exit_closes_inner_stream(self):
        provider = TrackingProvider("tracking")

        async with aclosing(provider.generate_stream("hi")) as stream:
            async for fragment in stream:
                assert fragment == "a"
                break

        assert provider.stream_closed

    @pytest.mark.asyncio
    async def test_deadline_closes_inner_stream(self):
        provider = TrackingProvider("tracking")

        async with aclosing(provider.generate_stream("hi", timeout=5.0)) as stream:
            await stream.__anext__()

        assert provider.stream_closed


class TestCapabilities:
    @pytest.mark.asyncio
    async def test_stream_unsupported_by_default(self):
        provider = PlainProvider("plain")
        with pytest.raises(UnsupportedCapability) as exc_info:
            async for _ in provider.generate_stream("hi"):
                pass
        assert exc_info.value.capability == "generate_stream"

    @pytest.mark.asyncio
    async def test_tool_call_unsupported_by_default(self):
        provider = PlainProvider("plain")
        with pytest.raises(UnsupportedCapability) as exc_info:
            await provider.tool_call([Message("user", "hi")], [Tool("f", "f")])
        assert exc_info.value.capability == "tool_call"

    @pytest.mark.asyncio
    async def test_context_manager_closes(self):
        async with MockProvider("m") as provider:
            await provider.generate("hi")
        assert provider.closed

    def test_capability_shortcuts(self):
        provider = PlainProvider("plain")
        assert provider.supports_streaming() is False
        assert provider.supports_tools() is False
        assert repr(provider) == "PlainProvider(name='plain', model='None')"

    @pytest.mark.asyncio
    async def test_generate_with_defaults(self):
        assert (await PlainProvider("plain").generate("hi")).content == "HI"


def test_deadline_error_is_catchable_as_timeout_family():
    """DeadlineExceeded is the only error callers need for deadlines."""
    assert issubclass(DeadlineExceeded, BackendUnavailable)
    assert not issubclass(DeadlineExceeded, asyncio.TimeoutError)
