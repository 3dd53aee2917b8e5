"""Route prompts to a small or large model by estimated size or task complexity."""

from __future__ import annotations

import asyncio
from contextlib import aclosing
from dataclasses import replace
from typing import Any, AsyncIterator, Dict, List, Optional

from ..errors import InvalidConfiguration
from ..observability.logging import get_logger
from ..providers.base import ModelProvider
from ..types import (
    CapabilityDescriptor,
    GenerateOptions,
    Locality,
    Message,
    ModelResponse,
    Tool,
    estimate_tokens,
)

logger = get_logger(__name__)

DEFAULT_TOKEN_THRESHOLD = 1000


class ComplexityRouter(ModelProvider):
    """
    Send short prompts to ``small`` and long ones to ``large``.

    The size estimate is ``ceil(len(text) / 4)``; estimates at or below
    ``threshold`` go to ``small``. Tool calls are sized over the
    concatenation of every message's content. There is no fallback between
    the two: the selected provider's errors propagate unchanged.
    """

    provider_type = "complexity"

    def __init__(
        self,
        small: ModelProvider,
        large: ModelProvider,
        threshold: int = DEFAULT_TOKEN_THRESHOLD,
        name: Optional[str] = None,
        config: Optional[Dict[str, Any]] = None,
    ):
        if threshold < 0:
            raise InvalidConfiguration(f"threshold must not be negative, got {threshold}")
        super().__init__(name or self.provider_type, large.model, config)
        self.small = small
        self.large = large
        self.threshold = threshold

    def route(self, text: str) -> ModelProvider:
        """Return the provider that would serve ``text``."""
        tokens = estimate_tokens(text)
        provider = self.large if tokens > self.threshold else self.small
        logger.debug(f"Routing ~{tokens} tokens to '{provider.name}' (threshold {self.threshold})")
        return provider

    async def _generate(self, prompt: str, options: GenerateOptions) -> ModelResponse:
        provider = self.route(prompt)
        response = await provider.generate(prompt, options)
        return replace(response, metadata={**response.metadata, "routed_to": provider.name})

    async def _generate_stream(self, prompt: str, options: GenerateOptions) -> AsyncIterator[str]:
        async with aclosing(self.route(prompt).generate_stream(prompt, options)) as stream:
            async for fragment in stream:
                yield fragment

    async def _tool_call(
        self,
        messages: List[Message],
        tools: List[Tool],
        options: GenerateOptions,
    ) -> ModelResponse:
        provider = self.route("".join(message.content for message in messages))
        return await provider.tool_call(messages, tools, options)

    async def is_available(self) -> bool:
        small_up, large_up = await asyncio.gather(self.small.is_available(), self.large.is_available())
        return small_up or large_up

    def describe(self) -> CapabilityDescriptor:
        small = self.small.describe()
        large = self.large.describe()
        remote = Locality.REMOTE in (small.locality, large.locality)
        return CapabilityDescriptor(
            name=self.name,
            locality=Locality.REMOTE if remote else Locality.LOCAL,
            requires_auth=small.requires_auth or large.requires_auth,
            supports_streaming=small.supports_streaming and large.supports_streaming,
            supports_tools=small.supports_tools and large.supports_tools,
            max_context_tokens=large.max_context_tokens,
            model=large.model,
        )


COMPLEXITY_KEYWORDS = (
    "refactor",
    "architecture",
    "design",
    "optimize",
    "algorithm",
    "performance",
    "security",
    "scale",
)
STEP_MARKERS = ("1.", "2.", "3.", "first", "second", "then", "finally")
DEFAULT_COMPLEXITY_THRESHOLD = 0.5


def estimate_complexity(prompt: str) -> float:
    """
    Score how demanding a prompt looks, from 0.0 to 1.0.

    Scoring:
        - length over 1000 characters: +0.2, over 2000: another +0.2
        - each of :data:`COMPLEXITY_KEYWORDS` present: +0.1, at most +0.3
        - a fenced code block: +0.2
        - each of :data:`STEP_MARKERS` present: +0.05, at most +0.2

    Keyword and marker matches are case-insensitive substring checks.
    """
    lowered = prompt.lower()
    score = 0.0
    if len(prompt) > 1000:
        score += 0.2
    if len(prompt) > 2000:
        score += 0.2
    score += min(sum(keyword in lowered for keyword in COMPLEXITY_KEYWORDS) * 0.1, 0.3)
    if "```" in prompt:
        score += 0.2
    score += min(sum(marker in lowered for marker in STEP_MARKERS) * 0.05, 0.2)
    return min(round(score, 4), 1.0)


class TaskComplexityRouter(ComplexityRouter):
    """
    Send prompts that look demanding to ``large``, the rest to ``small``.

    Unlike :class:`ComplexityRouter` the decision uses
    :func:`estimate_complexity`: scores at or above ``threshold`` go to
    ``large``.
    """

    provider_type = "task_complexity"

    def __init__(
        self,
        small: ModelProvider,
        large: ModelProvider,
        threshold: float = DEFAULT_COMPLEXITY_THRESHOLD,
        name: Optional[str] = None,
        config: Optional[Dict[str, Any]] = None,
    ):
        if not 0.0 <= threshold <= 1.0:
            raise InvalidConfiguration(f"threshold must be between 0 and 1, got {threshold}")
        super().__init__(small, large, name=name, config=config)
        self.threshold = threshold

    def route(self, text: str) -> ModelProvider:
        score = estimate_complexity(text)
        provider = self.large if score >= self.threshold else self.small
        logger.debug(f"Routing complexity {score:.2f} to '{provider.name}' (threshold {self.threshold})")
        return provider


__all__ = [
    "ComplexityRouter",
    "TaskComplexityRouter",
    "estimate_complexity",
    "COMPLEXITY_KEYWORDS",
    "STEP_MARKERS",
    "DEFAULT_TOKEN_THRESHOLD",
    "DEFAULT_COMPLEXITY_THRESHOLD",
]
