"""Shared machinery for strategies that try members one at a time."""

from __future__ import annotations

import asyncio
from abc import abstractmethod
from contextlib import aclosing
from dataclasses import replace
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from ..errors import AllProvidersFailed, BackendUnavailable, InvalidConfiguration
from ..observability.logging import get_logger, log_failover_event
from ..providers.base import ModelProvider
from ..types import CapabilityDescriptor, GenerateOptions, Message, ModelResponse, Tool

logger = get_logger(__name__)


class SequentialStrategy(ModelProvider):
    """
    Base for strategies that walk an ordered sequence of members.

    Subclasses decide the order through :meth:`_candidates`. A member whose
    ``is_available()`` reports False is skipped without being invoked. A
    failing member is logged and the next candidate is tried; once the
    candidates are exhausted :class:`AllProvidersFailed` carries every
    failure.
    """

    provider_type = "sequential"

    def __init__(
        self,
        providers: Sequence[ModelProvider],
        name: Optional[str] = None,
        config: Optional[Dict[str, Any]] = None,
    ):
        if not providers:
            raise InvalidConfiguration(f"{self.__class__.__name__} requires at least one provider")
        members = list(providers)
        super().__init__(name or self.provider_type, members[0].model, config)
        self.providers = members

    @abstractmethod
    def _candidates(self) -> Iterator[ModelProvider]:
        """Yield the members to try for one call, in order."""

    async def _skip_if_unavailable(
        self,
        provider: ModelProvider,
        attempt: int,
        errors: List[Tuple[str, BaseException]],
    ) -> bool:
        if await provider.is_available():
            return False
        error = BackendUnavailable(
            f"Provider '{provider.name}' is not available",
            provider=provider.name,
            model=provider.model,
        )
        errors.append((provider.name, error))
        self._log_failover(provider, attempt, "unavailable")
        return True

    def _log_failover(self, provider: ModelProvider, attempt: int, reason: str) -> None:
        log_failover_event(
            strategy=self.provider_type,
            provider=provider.name,
            model=provider.model,
            attempt=attempt,
            reason=reason,
            logger=logger,
            extras={"strategy_name": self.name},
        )

    def _exhausted(self, operation: str, errors: List[Tuple[str, BaseException]]) -> AllProvidersFailed:
        return AllProvidersFailed(
            f"All providers in {self.name} failed for {operation}",
            errors,
            provider=self.name,
        )

    async def _run(
        self,
        operation: str,
        call: Callable[[ModelProvider], Awaitable[ModelResponse]],
    ) -> ModelResponse:
        errors: List[Tuple[str, BaseException]] = []
        for attempt, provider in enumerate(self._candidates(), start=1):
            if await self._skip_if_unavailable(provider, attempt, errors):
                continue
            try:
                return await call(provider)
            except Exception as e:
                errors.append((provider.name, e))
                self._log_failover(provider, attempt, str(e))
        raise self._exhausted(operation, errors)

    async def _generate(self, prompt: str, options: GenerateOptions) -> ModelResponse:
        return await self._run("generate", lambda provider: provider.generate(prompt, options))

    async def _tool_call(
        self,
        messages: List[Message],
        tools: List[Tool],
        options: GenerateOptions,
    ) -> ModelResponse:
        return await self._run("tool_call", lambda provider: provider.tool_call(messages, tools, options))

    async def _generate_stream(self, prompt: str, options: GenerateOptions) -> AsyncIterator[str]:
        errors: List[Tuple[str, BaseException]] = []
        for attempt, provider in enumerate(self._candidates(), start=1):
            if await self._skip_if_unavailable(provider, attempt, errors):
                continue
            emitted = False
            try:
                async with aclosing(provider.generate_stream(prompt, options)) as stream:
                    async for fragment in stream:
                        emitted = True
                        yield fragment
                return
            except Exception as e:
                # No fallback once a fragment was delivered
                if emitted:
                    raise
                errors.append((provider.name, e))
                self._log_failover(provider, attempt, str(e))
        raise self._exhausted("generate_stream", errors)

    async def is_available(self) -> bool:
        results = await asyncio.gather(*(provider.is_available() for provider in self.providers))
        return any(results)

    def describe(self) -> CapabilityDescriptor:
        """Capabilities of the primary member, under this strategy's name."""
        return replace(self.providers[0].describe(), name=self.name)


__all__ = ["SequentialStrategy"]
