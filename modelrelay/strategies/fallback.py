"""Ordered failover across providers."""

from __future__ import annotations

from typing import Iterator

from ..providers.base import ModelProvider
from .base import SequentialStrategy


class FallbackProvider(SequentialStrategy):
    """
    Try each member in order until one succeeds.

    The first member is the primary; the rest are tried only after it is
    unavailable or has failed. Applies to ``generate``, ``generate_stream``
    and ``tool_call``. A stream only moves on to the next member if the
    failing one had not produced any fragment yet.

    Example:
        >>> resilient = FallbackProvider([claude, local_ollama])
        >>> response = await resilient.generate("Summarise this diff")
    """

    provider_type = "fallback"

    def _candidates(self) -> Iterator[ModelProvider]:
        return iter(self.providers)


__all__ = ["FallbackProvider"]
