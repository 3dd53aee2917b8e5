"""Shared request/response types for every provider and strategy."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple

from .errors import DecodeError, InvalidConfiguration

MESSAGE_ROLES = ("system", "user", "assistant")


def estimate_tokens(text: str) -> int:
    """Cheap token proxy: one token per four characters, rounded up."""
    return math.ceil(len(text) / 4)


def _ordered_unique(values: Iterable[str]) -> Tuple[str, ...]:
    seen: Dict[str, None] = {}
    for value in values:
        seen.setdefault(value, None)
    return tuple(seen)


@dataclass(frozen=True)
class GenerateOptions:
    """Sampling options for a single call."""

    temperature: float = 0.7
    """Sampling temperature."""

    max_tokens: Optional[int] = None
    """Maximum output tokens; adapters apply their own default when unset."""

    top_p: Optional[float] = None
    """Nucleus sampling parameter."""

    stop: Tuple[str, ...] = ()
    """Stop sequences, kept in first-seen order without duplicates."""

    system_prompt: Optional[str] = None
    """Optional system instructions sent alongside the prompt."""

    def __post_init__(self) -> None:
        stop = (self.stop,) if isinstance(self.stop, str) else self.stop
        object.__setattr__(self, "stop", _ordered_unique(stop or ()))
        if self.max_tokens is not None and self.max_tokens <= 0:
            raise InvalidConfiguration(
                f"max_tokens must be positive, got {self.max_tokens}"
            )

    def merged(self, **overrides: Any) -> GenerateOptions:
        """Return a copy with the given fields replaced."""
        return replace(self, **overrides)


@dataclass(frozen=True)
class Message:
    """A single message in a conversation."""

    role: str
    content: str

    def __post_init__(self) -> None:
        if self.role not in MESSAGE_ROLES:
            raise InvalidConfiguration(
                f"Invalid message role '{self.role}'; expected one of {', '.join(MESSAGE_ROLES)}"
            )

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class Tool:
    """A caller-declared tool the model may choose to invoke."""

    name: str
    description: str
    parameters: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation produced by the model."""

    id: str
    name: str
    arguments: str = "{}"

    def parsed_arguments(self) -> Dict[str, Any]:
        """Decode the JSON argument string."""
        try:
            value = json.loads(self.arguments or "{}")
        except json.JSONDecodeError as e:
            raise DecodeError(
                f"Tool call '{self.name}' has malformed arguments: {e}",
                original_error=e,
            ) from e
        if not isinstance(value, dict):
            raise DecodeError(f"Tool call '{self.name}' arguments are not an object")
        return value


@dataclass(frozen=True)
class TokenUsage:
    """Prompt/completion/total token counts."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_counts(cls, prompt_tokens: int, completion_tokens: int) -> TokenUsage:
        return cls(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        )

    def __add__(self, other: TokenUsage) -> TokenUsage:
        if not isinstance(other, TokenUsage):
            return NotImplemented
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


@dataclass(frozen=True)
class ModelResponse:
    """
    Normalized result of a non-streaming call.

    ``content`` may be empty when the model only produced tool calls.
    Strategies attach audit data (committee votes, chosen route) to
    ``metadata``.
    """

    content: str
    tool_calls: Tuple[ToolCall, ...] = ()
    usage: Optional[TokenUsage] = None
    model: Optional[str] = None
    provider: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def total_tokens(self) -> int:
        if self.usage:
            return self.usage.total_tokens
        return 0


class Locality(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


@dataclass(frozen=True)
class CapabilityDescriptor:
    """Static description of one provider instance."""

    name: str
    locality: Locality
    requires_auth: bool
    supports_streaming: bool
    supports_tools: bool
    max_context_tokens: int
    model: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "locality": self.locality.value,
            "requires_auth": self.requires_auth,
            "supports_streaming": self.supports_streaming,
            "supports_tools": self.supports_tools,
            "max_context_tokens": self.max_context_tokens,
            "model": self.model,
        }


@dataclass(frozen=True)
class ProviderInfo:
    """A registry entry annotated with live availability."""

    id: str
    descriptor: CapabilityDescriptor
    available: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "available": self.available, **self.descriptor.to_dict()}


__all__ = [
    "MESSAGE_ROLES",
    "estimate_tokens",
    "GenerateOptions",
    "Message",
    "Tool",
    "ToolCall",
    "TokenUsage",
    "ModelResponse",
    "Locality",
    "CapabilityDescriptor",
    "ProviderInfo",
]
