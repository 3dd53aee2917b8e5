"""Provider registry for runtime lookup by id."""

from __future__ import annotations

import asyncio
from threading import RLock
from typing import Dict, List, Optional

from .errors import NoDefaultConfigured, UnknownProvider
from .observability.logging import get_logger
from .providers.base import ModelProvider
from .types import ProviderInfo

logger = get_logger(__name__)

BASELINE_PROVIDER_ID = "ollama"


class ProviderRegistry:
    """
    Registry for provider instances.

    Maps provider ids to providers and remembers which one is the default.
    The registry is an ordinary object: build one, fill it (usually with
    :func:`modelrelay.config.build_registry`) and pass it to whatever needs
    it. Lookups and mutations are serialised with a lock, so a registry may
    be shared between threads.
    """

    def __init__(self) -> None:
        self._providers: Dict[str, ModelProvider] = {}
        self._default_id: Optional[str] = None
        self._lock = RLock()

    def register(self, provider_id: str, provider: ModelProvider) -> None:
        """
        Register a provider under ``provider_id``, replacing any previous one.

        Args:
            provider_id: Lookup id (usually the config key)
            provider: The provider instance
        """
        with self._lock:
            if provider_id in self._providers:
                logger.debug(f"Replacing provider registered as '{provider_id}'")
            self._providers[provider_id] = provider

    def unregister(self, provider_id: str) -> Optional[ModelProvider]:
        """Remove and return a provider; unknown ids return None."""
        with self._lock:
            return self._providers.pop(provider_id, None)

    def get(self, provider_id: str) -> Optional[ModelProvider]:
        """
        Retrieve a provider by id.

        Returns:
            The provider instance, or None if not found
        """
        with self._lock:
            return self._providers.get(provider_id)

    def get_required(self, provider_id: str) -> ModelProvider:
        """
        Retrieve a provider by id, raising an error if not found.

        Raises:
            UnknownProvider: If the id is not registered
        """
        provider = self.get(provider_id)
        if provider is None:
            raise UnknownProvider(
                f"Provider '{provider_id}' is not registered. "
                f"Available providers: {', '.join(self.ids()) or 'none'}"
            )
        return provider

    def set_default(self, provider_id: str) -> None:
        """
        Make ``provider_id`` the default provider.

        Raises:
            UnknownProvider: If the id is not registered; the previous
                default is kept
        """
        with self._lock:
            if provider_id not in self._providers:
                raise UnknownProvider(
                    f"Cannot make '{provider_id}' the default: provider is not registered"
                )
            self._default_id = provider_id

    @property
    def default_id(self) -> Optional[str]:
        with self._lock:
            return self._default_id

    def get_default(self) -> ModelProvider:
        """
        Return the default provider.

        Falls back to the baseline ``"ollama"`` provider when the configured
        default has been unregistered or was never set.

        Raises:
            NoDefaultConfigured: If neither is registered
        """
        with self._lock:
            if self._default_id is not None and self._default_id in self._providers:
                return self._providers[self._default_id]
            if BASELINE_PROVIDER_ID in self._providers:
                return self._providers[BASELINE_PROVIDER_ID]
        raise NoDefaultConfigured(
            f"No default provider: '{self._default_id or BASELINE_PROVIDER_ID}' is not registered"
        )

    async def list(self) -> List[ProviderInfo]:
        """
        Describe every registered provider with its live availability.

        Liveness probes run concurrently; results keep registration order.
        """
        with self._lock:
            entries = list(self._providers.items())

        available = await asyncio.gather(*(provider.is_available() for _, provider in entries))
        return [
            ProviderInfo(id=provider_id, descriptor=provider.describe(), available=bool(is_up))
            for (provider_id, provider), is_up in zip(entries, available)
        ]

    def ids(self) -> List[str]:
        """Registered ids in registration order."""
        with self._lock:
            return list(self._providers)

    async def close(self) -> None:
        """Close every registered provider."""
        with self._lock:
            providers = list(self._providers.values())
        for provider in providers:
            await provider.close()

    def __len__(self) -> int:
        with self._lock:
            return len(self._providers)

    def __contains__(self, provider_id: str) -> bool:
        with self._lock:
            return provider_id in self._providers


__all__ = ["ProviderRegistry", "BASELINE_PROVIDER_ID"]
