"""Anthropic provider implementation.

Anthropic Messages API integration with async generation, typed-SSE streaming
and tool use.

Configuration:
    - api_key: Anthropic API key (required for any call to succeed)
    - base_url: API base URL (default: https://api.anthropic.com)
    - version: API version header (default: 2023-06-01)
    - timeout, max_context_tokens: see HTTPProvider
"""

from __future__ import annotations

import json
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

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
from .streaming import TypedSSEDecoder

ANTHROPIC_API_VERSION = "2023-06-01"
DEFAULT_ANTHROPIC_MODEL = "claude-3-sonnet-20240229"
DEFAULT_MAX_TOKENS = 4096


class AnthropicProvider(HTTPProvider):
    """
    Anthropic provider implementation.

    Supports the Claude model family through ``/v1/messages``. System-role
    messages are folded into the top-level ``system`` field, which is how
    the Messages API expects them.
    """

    provider_type = "anthropic"
    vendor_label = "Anthropic"
    default_base_url = "https://api.anthropic.com"
    default_max_context_tokens = 200000
    credential_required = True

    def __init__(self, name: str, model: Optional[str] = None, config: Optional[Dict[str, Any]] = None, **kwargs):
        super().__init__(name, model or DEFAULT_ANTHROPIC_MODEL, config, **kwargs)
        self.version = self.config.get("version", ANTHROPIC_API_VERSION)

    def _build_headers(self) -> Dict[str, str]:
        """Build request headers."""
        headers = {
            "Content-Type": "application/json",
            "anthropic-version": self.version,
        }
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers

    def _convert_messages(self, messages: Sequence[Message]) -> Tuple[Optional[str], List[Dict[str, str]]]:
        """
        Convert messages to Anthropic format.

        Returns:
            Tuple of (system_prompt, messages_array)
        """
        system_prompt = None
        converted_messages = []

        for msg in messages:
            if msg.role == "system":
                if system_prompt is None:
                    system_prompt = msg.content
                else:
                    system_prompt += "\n\n" + msg.content
            else:
                converted_messages.append(msg.to_dict())

        return system_prompt, converted_messages

    def _build_request_payload(
        self,
        messages: Sequence[Message],
        options: GenerateOptions,
        stream: bool = False,
        tools: Optional[Sequence[Tool]] = None,
    ) -> Dict[str, Any]:
        """Build request payload for the Messages API."""
        system_prompt, converted_messages = self._convert_messages(messages)
        if options.system_prompt:
            system_prompt = (
                f"{options.system_prompt}\n\n{system_prompt}" if system_prompt else options.system_prompt
            )

        payload: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": options.max_tokens or DEFAULT_MAX_TOKENS,
            "messages": converted_messages,
            "temperature": options.temperature,
        }
        if system_prompt:
            payload["system"] = system_prompt
        if options.top_p is not None:
            payload["top_p"] = options.top_p
        if options.stop:
            payload["stop_sequences"] = list(options.stop)
        if stream:
            payload["stream"] = True
        if tools:
            payload["tools"] = [
                {
                    "name": tool.name,
                    "description": tool.description,
                    "input_schema": tool.parameters or {"type": "object", "properties": {}},
                }
                for tool in tools
            ]
        return payload

    def _parse_response(self, data: Dict[str, Any]) -> ModelResponse:
        blocks = data.get("content")
        if not isinstance(blocks, list):
            raise DecodeError(
                "Anthropic response has no 'content' blocks",
                provider=self.name,
                model=self.model,
            )

        text_parts = []
        tool_calls = []
        for block in blocks:
            if not isinstance(block, dict):
                continue
            if block.get("type") == "text":
                text_parts.append(block.get("text", ""))
            elif block.get("type") == "tool_use":
                if "name" not in block:
                    raise DecodeError("Anthropic tool_use block has no name", provider=self.name, model=self.model)
                tool_calls.append(
                    ToolCall(
                        id=str(block.get("id", "")),
                        name=block["name"],
                        arguments=json.dumps(block.get("input") or {}),
                    )
                )

        usage = None
        raw_usage = data.get("usage")
        if isinstance(raw_usage, dict):
            usage = TokenUsage.from_counts(
                int(raw_usage.get("input_tokens") or 0),
                int(raw_usage.get("output_tokens") or 0),
            )

        metadata = {"stop_reason": data["stop_reason"]} if data.get("stop_reason") else {}
        return ModelResponse(
            content="".join(text_parts),
            tool_calls=tuple(tool_calls),
            usage=usage,
            model=data.get("model", self.model),
            provider=self.name,
            metadata=metadata,
        )

    async def _generate(self, prompt: str, options: GenerateOptions) -> ModelResponse:
        payload = self._build_request_payload([Message("user", prompt)], options)
        data = await self._request_json("POST", "/v1/messages", payload, operation="generate")
        return self._parse_response(data)

    async def _generate_stream(self, prompt: str, options: GenerateOptions) -> AsyncIterator[str]:
        payload = self._build_request_payload([Message("user", prompt)], options, stream=True)
        async for fragment in self._stream_fragments("/v1/messages", payload, TypedSSEDecoder()):
            yield fragment

    async def _tool_call(
        self,
        messages: List[Message],
        tools: List[Tool],
        options: GenerateOptions,
    ) -> ModelResponse:
        payload = self._build_request_payload(messages, options, tools=tools)
        data = await self._request_json("POST", "/v1/messages", payload, operation="tool_call")
        return self._parse_response(data)

    async def is_available(self) -> bool:
        if not self.api_key:
            return False
        return await self._probe("/v1/models")

    def describe(self) -> CapabilityDescriptor:
        return CapabilityDescriptor(
            name="Anthropic",
            locality=Locality.REMOTE,
            requires_auth=True,
            supports_streaming=True,
            supports_tools=True,
            max_context_tokens=self.max_context_tokens,
            model=self.model,
        )


# Register provider
register_provider_class("anthropic", AnthropicProvider)


__all__ = ["AnthropicProvider", "ANTHROPIC_API_VERSION"]
