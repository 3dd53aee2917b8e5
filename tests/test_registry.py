"""Tests for ProviderRegistry."""

from unittest.mock import AsyncMock

import pytest

from modelrelay.errors import NoDefaultConfigured, UnknownProvider
from modelrelay.registry import ProviderRegistry
from modelrelay.testing import MockProvider
from modelrelay.types import Locality


class TestProviderRegistry:
    """Test cases for ProviderRegistry."""

    def test_register_and_get(self):
        registry = ProviderRegistry()
        provider = MockProvider("claude")
        registry.register("claude", provider)

        assert registry.get("claude") is provider
        assert registry.get("missing") is None
        assert "claude" in registry
        assert len(registry) == 1

    def test_register_replaces(self):
        registry = ProviderRegistry()
        registry.register("claude", MockProvider("old"))
        replacement = MockProvider("new")
        registry.register("claude", replacement)

        assert registry.get("claude") is replacement
        assert registry.ids() == ["claude"]

    def test_get_required_unknown(self):
        registry = ProviderRegistry()
        registry.register("ollama", MockProvider("ollama"))

        with pytest.raises(UnknownProvider, match="Available providers: ollama"):
            registry.get_required("claude")

    def test_unregister(self):
        registry = ProviderRegistry()
        provider = MockProvider("claude")
        registry.register("claude", provider)

        assert registry.unregister("claude") is provider
        assert registry.unregister("claude") is None
        assert "claude" not in registry

    def test_set_default(self):
        registry = ProviderRegistry()
        claude = MockProvider("claude")
        registry.register("claude", claude)
        registry.set_default("claude")

        assert registry.default_id == "claude"
        assert registry.get_default() is claude

    def test_set_default_unknown_keeps_previous(self):
        registry = ProviderRegistry()
        registry.register("claude", MockProvider("claude"))
        registry.set_default("claude")

        with pytest.raises(UnknownProvider):
            registry.set_default("gpt")
        assert registry.default_id == "claude"

    def test_default_falls_back_to_baseline(self):
        registry = ProviderRegistry()
        ollama = MockProvider("ollama")
        registry.register("ollama", ollama)
        registry.register("claude", MockProvider("claude"))
        registry.set_default("claude")

        registry.unregister("claude")
        assert registry.get_default() is ollama

    def test_no_default(self):
        registry = ProviderRegistry()
        registry.register("claude", MockProvider("claude"))

        with pytest.raises(NoDefaultConfigured):
            registry.get_default()

    @pytest.mark.asyncio
    async def test_list_reports_availability_in_order(self):
        """list() checks every provider and keeps registration order."""
        registry = ProviderRegistry()
        registry.register("ollama", MockProvider("ollama"))
        registry.register("claude", MockProvider("claude", available=False, locality=Locality.REMOTE))

        infos = await registry.list()

        assert [info.id for info in infos] == ["ollama", "claude"]
        assert [info.available for info in infos] == [True, False]
        assert infos[1].descriptor.locality == Locality.REMOTE

    @pytest.mark.asyncio
    async def test_list_checks_each_provider_once(self):
        registry = ProviderRegistry()
        provider = MockProvider("ollama")
        provider.is_available = AsyncMock(return_value=True)
        registry.register("ollama", provider)

        infos = await registry.list()

        provider.is_available.assert_awaited_once()
        assert infos[0].available is True

    @pytest.mark.asyncio
    async def test_list_empty(self):
        assert await ProviderRegistry().list() == []

    @pytest.mark.asyncio
    async def test_close_closes_every_provider(self):
        registry = ProviderRegistry()
        providers = [MockProvider("a"), MockProvider("b")]
        for provider in providers:
            registry.register(provider.name, provider)

        await registry.close()
        assert all(provider.closed for provider in providers)
