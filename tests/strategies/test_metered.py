"""Tests for MeteredProvider."""

import pytest

from modelrelay.errors import BackendUnavailable
from modelrelay.observability.collector import MetricsCollector
from modelrelay.strategies import FallbackProvider, MeteredProvider
from modelrelay.testing import MockProvider
from modelrelay.types import Message, ModelResponse, TokenUsage, Tool


class TestMeteredProvider:
    @pytest.mark.asyncio
    async def test_tracks_success_with_reported_usage(self):
        collector = MetricsCollector()
        scripted = ModelResponse(content="ok", usage=TokenUsage.from_counts(30, 12))
        metered = MeteredProvider(MockProvider("claude", "claude-3", responses=[scripted]), collector)

        response = await metered.generate("hi")

        assert response is scripted
        record = collector.records()[0]
        assert record.provider == "claude"
        assert record.model == "claude-3"
        assert record.tokens == 42
        assert record.success is True
        assert record.latency >= 0

    @pytest.mark.asyncio
    async def test_tracks_failure_and_reraises(self):
        collector = MetricsCollector()
        metered = MeteredProvider(
            MockProvider("ollama", responses=[BackendUnavailable("connection refused")]),
            collector,
        )

        with pytest.raises(BackendUnavailable):
            await metered.generate("hi")

        record = collector.records()[0]
        assert record.success is False
        assert record.tokens == 0
        assert record.error == "connection refused"

    @pytest.mark.asyncio
    async def test_stream_counts_estimated_tokens(self):
        collector = MetricsCollector()
        metered = MeteredProvider(MockProvider("ollama", default_response="12345678"), collector, provider_id="local")

        fragments = [f async for f in metered.generate_stream("abcd")]

        assert "".join(fragments) == "12345678"
        record = collector.records()[0]
        assert record.provider == "local"
        assert record.tokens == 3

    @pytest.mark.asyncio
    async def test_abandoned_stream_tracked(self):
        """A stream closed after its first fragment is still recorded."""
        collector = MetricsCollector()
        metered = MeteredProvider(MockProvider("ollama", responses=[["abcdefgh", "ijkl"]]), collector)

        stream = metered.generate_stream("abcd")
        assert await stream.__anext__() == "abcdefgh"
        await stream.aclose()

        record = collector.records()[0]
        assert record.success is True
        assert record.tokens == 3

    @pytest.mark.asyncio
    async def test_tool_call_tracked(self):
        collector = MetricsCollector()
        metered = MeteredProvider(MockProvider("gpt"), collector)

        await metered.tool_call([Message("user", "hi")], [Tool("f", "f")])

        assert len(collector) == 1

    @pytest.mark.asyncio
    async def test_aggregates_across_calls(self):
        collector = MetricsCollector()
        metered = MeteredProvider(
            MockProvider("ollama", "codellama:7b", responses=["a", BackendUnavailable("down"), "b"]),
            collector,
        )
        for _ in range(3):
            try:
                await metered.generate("prompt")
            except BackendUnavailable:
                pass

        metrics = collector.get_metrics()[0]
        assert metrics.total_requests == 3
        assert metrics.success_rate == pytest.approx(200 / 3)

    @pytest.mark.asyncio
    async def test_wraps_strategies(self):
        collector = MetricsCollector()
        strategy = FallbackProvider(
            [MockProvider("a", responses=[BackendUnavailable("down")]), MockProvider("b")], name="resilient"
        )
        metered = MeteredProvider(strategy, collector)

        await metered.generate("hi")

        assert collector.records()[0].provider == "resilient"

    @pytest.mark.asyncio
    async def test_delegates_describe_availability_and_close(self):
        inner = MockProvider("inner", available=False)
        metered = MeteredProvider(inner, MetricsCollector())

        assert metered.describe() == inner.describe()
        assert await metered.is_available() is False
        await metered.close()
        assert inner.closed
