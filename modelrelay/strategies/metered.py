"""Wrapper that records every call of a provider in a MetricsCollector."""

from __future__ import annotations

import time
from contextlib import aclosing
from typing import AsyncIterator, List, Optional

from ..observability.collector import MetricsCollector
from ..providers.base import ModelProvider
from ..types import CapabilityDescriptor, GenerateOptions, Message, ModelResponse, Tool, estimate_tokens


class MeteredProvider(ModelProvider):
    """
    Delegate to ``provider`` and track the outcome of each call.

    Token counts come from the response usage when the backend reports it;
    streams are counted with the ``ceil(len / 4)`` estimate over the
    fragments received. Failures are tracked with zero tokens and the error
    text, then re-raised.
    """

    provider_type = "metered"

    def __init__(
        self,
        provider: ModelProvider,
        collector: MetricsCollector,
        provider_id: Optional[str] = None,
    ):
        super().__init__(provider_id or provider.name, provider.model, provider.config)
        self.provider = provider
        self.collector = collector

    def _track(self, start_time: float, tokens: int, error: Optional[BaseException] = None) -> None:
        self.collector.track(
            provider=self.name,
            model=self.model or "unknown",
            tokens=tokens,
            latency=(time.monotonic() - start_time) * 1000,
            success=error is None,
            error=str(error) if error is not None else None,
        )

    async def _generate(self, prompt: str, options: GenerateOptions) -> ModelResponse:
        start_time = time.monotonic()
        try:
            response = await self.provider.generate(prompt, options)
        except Exception as e:
            self._track(start_time, 0, e)
            raise
        self._track(start_time, response.total_tokens)
        return response

    async def _tool_call(
        self,
        messages: List[Message],
        tools: List[Tool],
        options: GenerateOptions,
    ) -> ModelResponse:
        start_time = time.monotonic()
        try:
            response = await self.provider.tool_call(messages, tools, options)
        except Exception as e:
            self._track(start_time, 0, e)
            raise
        self._track(start_time, response.total_tokens)
        return response

    async def _generate_stream(self, prompt: str, options: GenerateOptions) -> AsyncIterator[str]:
        start_time = time.monotonic()
        received = []
        error: Optional[BaseException] = None
        try:
            async with aclosing(self.provider.generate_stream(prompt, options)) as stream:
                async for fragment in stream:
                    received.append(fragment)
                    yield fragment
        except Exception as e:
            error = e
            raise
        finally:
            # Streams closed early are tracked with the fragments seen so far.
            if error is not None:
                self._track(start_time, 0, error)
            else:
                self._track(start_time, estimate_tokens(prompt) + estimate_tokens("".join(received)))

    async def is_available(self) -> bool:
        return await self.provider.is_available()

    def describe(self) -> CapabilityDescriptor:
        return self.provider.describe()

    async def close(self) -> None:
        await self.provider.close()


__all__ = ["MeteredProvider"]
