"""Base ModelProvider interface.

This module defines the uniform contract implemented by every vendor adapter
and every routing strategy. Callers only ever see these five operations:

- ``generate``: single-shot completion returning a ModelResponse
- ``generate_stream``: the same completion as an async iterator of fragments
- ``tool_call``: conversation plus tool declarations (optional capability)
- ``is_available``: best-effort liveness probe that never raises
- ``describe``: static CapabilityDescriptor

Concrete providers implement the underscored hooks (``_generate``,
``_generate_stream``, ``_tool_call``); the public methods add the optional
per-call deadline on top.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Awaitable, Dict, Iterable, List, Optional, TypeVar

from ..errors import DeadlineExceeded, UnsupportedCapability
from ..types import CapabilityDescriptor, GenerateOptions, Message, ModelResponse, Tool

T = TypeVar("T")


class ModelProvider(ABC):
    """
    Unified interface for language-model backends and strategies.

    Providers are configured once at construction and are immutable
    afterwards; reconfiguration means building a new instance.
    """

    provider_type = "base"
    credential_required = False

    def __init__(
        self,
        name: str,
        model: Optional[str] = None,
        config: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize the provider.

        Args:
            name: Logical instance name (e.g., "claude", "local_codellama")
            model: Model identifier sent to the backend
            config: Provider-specific configuration (base_url, api_key,
                timeout, max_context_tokens, ...)
        """
        self.name = name
        self.model = model
        self.config: Dict[str, Any] = dict(config or {})

    async def generate(
        self,
        prompt: str,
        options: Optional[GenerateOptions] = None,
        *,
        timeout: Optional[float] = None,
    ) -> ModelResponse:
        """
        Single-shot generation.

        Args:
            prompt: User prompt text
            options: Sampling options; defaults apply when omitted
            timeout: Optional deadline in seconds; no deadline when None

        Raises:
            BackendUnavailable: The backend could not be reached
            BackendError: The backend answered with a non-success status
            DecodeError: The body did not have the expected shape
            DeadlineExceeded: ``timeout`` elapsed first
        """
        return await self._with_deadline(
            self._generate(prompt, options or GenerateOptions()), timeout, "generate"
        )

    async def generate_stream(
        self,
        prompt: str,
        options: Optional[GenerateOptions] = None,
        *,
        timeout: Optional[float] = None,
    ) -> AsyncIterator[str]:
        """
        Stream generation fragments as they arrive.

        The iterator is finite and single-use. Stopping iteration early (or
        calling ``aclose()``) releases the underlying connection. When
        ``timeout`` is given it bounds the whole stream, measured from the
        first pull.
        """
        stream = self._generate_stream(prompt, options or GenerateOptions())
        try:
            if timeout is None:
                async for fragment in stream:
                    yield fragment
                return

            loop = asyncio.get_running_loop()
            deadline = loop.time() + timeout
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise self._deadline_error("generate_stream", timeout)
                try:
                    fragment = await asyncio.wait_for(stream.__anext__(), remaining)
                except StopAsyncIteration:
                    return
                except asyncio.TimeoutError as e:
                    raise self._deadline_error("generate_stream", timeout) from e
                yield fragment
        finally:
            await stream.aclose()

    async def tool_call(
        self,
        messages: Iterable[Message],
        tools: Iterable[Tool],
        options: Optional[GenerateOptions] = None,
        *,
        timeout: Optional[float] = None,
    ) -> ModelResponse:
        """
        Generate with a full conversation and structured tool declarations.

        Raises:
            UnsupportedCapability: The provider cannot invoke tools
        """
        return await self._with_deadline(
            self._tool_call(list(messages), list(tools), options or GenerateOptions()),
            timeout,
            "tool_call",
        )

    @abstractmethod
    async def _generate(self, prompt: str, options: GenerateOptions) -> ModelResponse:
        """Provider-specific single-shot generation."""

    async def _generate_stream(self, prompt: str, options: GenerateOptions) -> AsyncIterator[str]:
        if False:
            yield  # Make this an async generator
        raise UnsupportedCapability(
            f"Streaming not supported by provider '{self.name}' ({self.__class__.__name__})",
            capability="generate_stream",
            provider=self.name,
            model=self.model,
        )

    async def _tool_call(
        self,
        messages: List[Message],
        tools: List[Tool],
        options: GenerateOptions,
    ) -> ModelResponse:
        raise UnsupportedCapability(
            f"Tool calling not supported by provider '{self.name}' ({self.__class__.__name__})",
            capability="tool_call",
            provider=self.name,
            model=self.model,
        )

    @abstractmethod
    async def is_available(self) -> bool:
        """Best-effort liveness probe. Must return False instead of raising."""

    @abstractmethod
    def describe(self) -> CapabilityDescriptor:
        """Describe this provider instance."""

    def supports_streaming(self) -> bool:
        return self.describe().supports_streaming

    def supports_tools(self) -> bool:
        return self.describe().supports_tools

    async def close(self) -> None:
        """Release network resources held by the provider."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _with_deadline(self, call: Awaitable[T], timeout: Optional[float], operation: str) -> T:
        if timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout)
        except asyncio.TimeoutError as e:
            raise self._deadline_error(operation, timeout) from e

    def _deadline_error(self, operation: str, timeout: float) -> DeadlineExceeded:
        return DeadlineExceeded(
            f"{operation} on provider '{self.name}' exceeded its {timeout}s deadline",
            timeout=timeout,
            provider=self.name,
            model=self.model,
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}', model='{self.model}')"


__all__ = ["ModelProvider"]
