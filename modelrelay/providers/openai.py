"""OpenAI provider implementation.

Chat Completions integration with async generation, SSE streaming and
function-style tool calls. OpenAICompatibleProvider reuses this framing for
self-hosted servers.

Configuration:
    - api_key: OpenAI API key (sent as a bearer token)
    - base_url: API base URL (default: https://api.openai.com/v1)
    - organization: Optional organization ID
    - timeout, max_context_tokens: see HTTPProvider

Example:
    >>> provider = OpenAIProvider("openai", "gpt-4o", {"api_key": "sk-..."})
    >>> response = await provider.generate("Hello!")
    >>> print(response.content)
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from ..errors import DecodeError
from ..types import (
    CapabilityDescriptor,
    GenerateOptions,
    Locality,
    Message,
    ModelResponse,
    TokenUsage,
    Tool,
    ToolCall,
)
from .factory import register_provider_class
from .http import HTTPProvider
from .streaming import SSEDecoder

DEFAULT_OPENAI_MODEL = "gpt-4o"


class OpenAIProvider(HTTPProvider):
    """
    OpenAI provider implementation.

    Supports GPT-3.5, GPT-4 and other chat models with async generation,
    streaming and tool calls.
    """

    provider_type = "openai"
    vendor_label = "OpenAI"
    display_name = "OpenAI"
    default_base_url = "https://api.openai.com/v1"
    default_max_context_tokens = 128000
    credential_required = True
    default_model = DEFAULT_OPENAI_MODEL

    def __init__(self, name: str, model: Optional[str] = None, config: Optional[Dict[str, Any]] = None, **kwargs):
        super().__init__(name, model or self.default_model, config, **kwargs)
        self.organization = self.config.get("organization")

    @property
    def requires_auth(self) -> bool:
        return True

    @property
    def locality(self) -> Locality:
        return Locality.REMOTE

    def _build_headers(self) -> Dict[str, str]:
        """Build request headers."""
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        if self.organization:
            headers["OpenAI-Organization"] = self.organization
        return headers

    def _build_request_payload(
        self,
        messages: Sequence[Message],
        options: GenerateOptions,
        stream: bool = False,
        tools: Optional[Sequence[Tool]] = None,
    ) -> Dict[str, Any]:
        """Build request payload for the Chat Completions API."""
        chat = [msg.to_dict() for msg in messages]
        if options.system_prompt:
            chat.insert(0, {"role": "system", "content": options.system_prompt})

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": chat,
            "temperature": options.temperature,
            "stream": stream,
        }
        if options.max_tokens is not None:
            payload["max_tokens"] = options.max_tokens
        if options.top_p is not None:
            payload["top_p"] = options.top_p
        if options.stop:
            payload["stop"] = list(options.stop)
        if tools:
            payload["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": tool.name,
                        "description": tool.description,
                        "parameters": tool.parameters or {"type": "object", "properties": {}},
                    },
                }
                for tool in tools
            ]
        return payload

    def _parse_response(self, data: Dict[str, Any]) -> ModelResponse:
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            raise DecodeError(
                f"{self.vendor_label} API returned no choices for provider '{self.name}'",
                provider=self.name,
                model=self.model,
            )

        choice = choices[0]
        message = choice.get("message")
        if not isinstance(message, dict):
            raise DecodeError(
                f"{self.vendor_label} choice has no message",
                provider=self.name,
                model=self.model,
            )

        tool_calls = []
        for raw_call in message.get("tool_calls") or []:
            function = raw_call.get("function") if isinstance(raw_call, dict) else None
            if not isinstance(function, dict) or "name" not in function:
                raise DecodeError(
                    f"{self.vendor_label} tool call is missing its function name",
                    provider=self.name,
                    model=self.model,
                )
            tool_calls.append(
                ToolCall(
                    id=str(raw_call.get("id", "")),
                    name=function["name"],
                    arguments=function.get("arguments") or "{}",
                )
            )

        usage = None
        raw_usage = data.get("usage")
        if isinstance(raw_usage, dict):
            usage = TokenUsage(
                prompt_tokens=int(raw_usage.get("prompt_tokens") or 0),
                completion_tokens=int(raw_usage.get("completion_tokens") or 0),
                total_tokens=int(raw_usage.get("total_tokens") or 0),
            )

        metadata = {"finish_reason": choice["finish_reason"]} if choice.get("finish_reason") else {}
        return ModelResponse(
            content=message.get("content") or "",
            tool_calls=tuple(tool_calls),
            usage=usage,
            model=data.get("model", self.model),
            provider=self.name,
            metadata=metadata,
        )

    async def _generate(self, prompt: str, options: GenerateOptions) -> ModelResponse:
        payload = self._build_request_payload([Message("user", prompt)], options)
        data = await self._request_json("POST", "/chat/completions", payload, operation="generate")
        return self._parse_response(data)

    async def _generate_stream(self, prompt: str, options: GenerateOptions) -> AsyncIterator[str]:
        payload = self._build_request_payload([Message("user", prompt)], options, stream=True)
        async for fragment in self._stream_fragments("/chat/completions", payload, SSEDecoder()):
            yield fragment

    async def _tool_call(
        self,
        messages: List[Message],
        tools: List[Tool],
        options: GenerateOptions,
    ) -> ModelResponse:
        payload = self._build_request_payload(messages, options, tools=tools)
        data = await self._request_json("POST", "/chat/completions", payload, operation="tool_call")
        return self._parse_response(data)

    async def is_available(self) -> bool:
        if self.requires_auth and not self.api_key:
            return False
        return await self._probe("/models")

    def describe(self) -> CapabilityDescriptor:
        return CapabilityDescriptor(
            name=self.display_name,
            locality=self.locality,
            requires_auth=self.requires_auth,
            supports_streaming=True,
            supports_tools=True,
            max_context_tokens=self.max_context_tokens,
            model=self.model,
        )


# Register provider
register_provider_class("openai", OpenAIProvider)


__all__ = ["OpenAIProvider"]
