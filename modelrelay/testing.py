"""
Deterministic test double for code built on modelrelay.

MockProvider implements the full provider contract without any network
access. Each call consumes the next scripted outcome (or falls back to a
pattern mapping, then to the default response), so strategies can be driven
through exact success/failure sequences.

An outcome may be:
    - a string: the response content
    - a ModelResponse: returned as-is
    - an exception instance: raised
    - a list of fragments: streamed one by one; an exception inside the list
      is raised at that point of the stream

Example usage:
    >>> from modelrelay.errors import BackendUnavailable
    >>> flaky = MockProvider("flaky", responses=[BackendUnavailable("down"), "recovered"])
    >>> await flaky.generate("hi")   # raises BackendUnavailable
    >>> (await flaky.generate("hi")).content
    'recovered'
"""

from __future__ import annotations

import asyncio
import re
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Pattern, Sequence, Union

from .providers.base import ModelProvider
from .types import (
    CapabilityDescriptor,
    GenerateOptions,
    Locality,
    Message,
    ModelResponse,
    TokenUsage,
    Tool,
    estimate_tokens,
)

Outcome = Union[str, ModelResponse, BaseException, Sequence[Union[str, BaseException]]]


@dataclass
class ResponseMapping:
    """Prompt pattern paired with the outcome it produces."""

    prompt_pattern: Pattern[str]
    response: Outcome
    priority: int = 0

    def matches(self, prompt: str) -> bool:
        return bool(self.prompt_pattern.search(prompt))


class MockProvider(ModelProvider):
    """
    Scriptable in-memory provider.

    Args:
        name: Provider name for identification
        model: Reported model name
        responses: Outcomes consumed in order, one per call
        default_response: Outcome once the script and mappings are exhausted
        available: Value returned by ``is_available()``
        delay: Seconds to sleep before answering
        locality, supports_tools, supports_streaming, max_context_tokens:
            Values reported by ``describe()``
    """

    provider_type = "mock"

    def __init__(
        self,
        name: str = "mock",
        model: str = "mock-model",
        *,
        responses: Optional[Iterable[Outcome]] = None,
        default_response: Outcome = "Mock response",
        available: bool = True,
        delay: float = 0.0,
        locality: Locality = Locality.LOCAL,
        supports_tools: bool = True,
        supports_streaming: bool = True,
        max_context_tokens: int = 4096,
    ):
        super().__init__(name, model)
        self.responses: List[Outcome] = list(responses or [])
        self.default_response = default_response
        self.available = available
        self.delay = delay
        self.locality = locality
        self.tools_supported = supports_tools
        self.streaming_supported = supports_streaming
        self.max_context_tokens = max_context_tokens
        self.response_mappings: List[ResponseMapping] = []
        self.call_history: List[Dict[str, Any]] = []
        self.availability_checks = 0
        self.closed = False

    def add_response_mapping(self, prompt_pattern: str, response: Outcome, priority: int = 0) -> None:
        """Answer prompts matching ``prompt_pattern`` with ``response``."""
        mapping = ResponseMapping(re.compile(prompt_pattern), response, priority)

        # Insert in priority order
        for i, existing in enumerate(self.response_mappings):
            if mapping.priority > existing.priority:
                self.response_mappings.insert(i, mapping)
                return
        self.response_mappings.append(mapping)

    @property
    def call_count(self) -> int:
        return len(self.call_history)

    def calls(self, call_type: str) -> List[Dict[str, Any]]:
        """Recorded calls of one type ("generate", "stream" or "tool_call")."""
        return [call for call in self.call_history if call["type"] == call_type]

    def clear_history(self) -> None:
        """Clear call history."""
        self.call_history.clear()
        self.availability_checks = 0

    def _record(self, call_type: str, prompt: str, options: GenerateOptions, **extra: Any) -> None:
        self.call_history.append(
            {
                "timestamp": time.time(),
                "type": call_type,
                "prompt": prompt,
                "options": options,
                **extra,
            }
        )

    def _next_outcome(self, prompt: str) -> Outcome:
        if self.responses:
            return self.responses.pop(0)
        for mapping in self.response_mappings:
            if mapping.matches(prompt):
                return mapping.response
        return self.default_response

    def _to_response(self, prompt: str, outcome: Outcome) -> ModelResponse:
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, ModelResponse):
            return outcome
        if isinstance(outcome, str):
            text = outcome
        else:
            parts = []
            for fragment in outcome:
                if isinstance(fragment, BaseException):
                    raise fragment
                parts.append(fragment)
            text = "".join(parts)
        return ModelResponse(
            content=text,
            usage=TokenUsage.from_counts(estimate_tokens(prompt), estimate_tokens(text)),
            model=self.model,
            provider=self.name,
        )

    async def _pause(self) -> None:
        if self.delay > 0:
            await asyncio.sleep(self.delay)

    async def _generate(self, prompt: str, options: GenerateOptions) -> ModelResponse:
        self._record("generate", prompt, options)
        await self._pause()
        return self._to_response(prompt, self._next_outcome(prompt))

    async def _generate_stream(self, prompt: str, options: GenerateOptions) -> AsyncIterator[str]:
        self._record("stream", prompt, options)
        await self._pause()
        outcome = self._next_outcome(prompt)
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, ModelResponse):
            fragments: Sequence[Union[str, BaseException]] = [outcome.content]
        elif isinstance(outcome, str):
            fragments = [word for word in re.split(r"(?<=\s)", outcome) if word]
        else:
            fragments = outcome

        for fragment in fragments:
            if isinstance(fragment, BaseException):
                raise fragment
            yield fragment
            await asyncio.sleep(0)

    async def _tool_call(
        self,
        messages: List[Message],
        tools: List[Tool],
        options: GenerateOptions,
    ) -> ModelResponse:
        prompt = "".join(message.content for message in messages)
        self._record("tool_call", prompt, options, messages=list(messages), tools=list(tools))
        await self._pause()
        return self._to_response(prompt, self._next_outcome(prompt))

    async def is_available(self) -> bool:
        self.availability_checks += 1
        return self.available

    def describe(self) -> CapabilityDescriptor:
        return CapabilityDescriptor(
            name=self.name,
            locality=self.locality,
            requires_auth=False,
            supports_streaming=self.streaming_supported,
            supports_tools=self.tools_supported,
            max_context_tokens=self.max_context_tokens,
            model=self.model,
        )

    async def close(self) -> None:
        self.closed = True


__all__ = ["MockProvider", "ResponseMapping"]
