"""Round-robin distribution across providers."""

from __future__ import annotations

from threading import Lock
from typing import Any, Dict, Iterator, Optional, Sequence

from ..providers.base import ModelProvider
from .base import SequentialStrategy


class LoadBalancer(SequentialStrategy):
    """
    Rotate calls across members with a persistent cursor.

    Every attempt takes the member under the cursor and advances it, so a
    skipped or failed member also moves the rotation along. Each call makes
    at most one attempt per member before giving up.
    """

    provider_type = "load_balancer"

    def __init__(
        self,
        providers: Sequence[ModelProvider],
        name: Optional[str] = None,
        config: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(providers, name, config)
        self._cursor = 0
        self._cursor_lock = Lock()

    def _next_provider(self) -> ModelProvider:
        with self._cursor_lock:
            provider = self.providers[self._cursor]
            self._cursor = (self._cursor + 1) % len(self.providers)
        return provider

    def _candidates(self) -> Iterator[ModelProvider]:
        for _ in range(len(self.providers)):
            yield self._next_provider()

    @property
    def cursor(self) -> int:
        """Index of the member the next attempt will use."""
        return self._cursor

    def reset(self) -> None:
        """Point the cursor back at the first member."""
        with self._cursor_lock:
            self._cursor = 0


__all__ = ["LoadBalancer"]
