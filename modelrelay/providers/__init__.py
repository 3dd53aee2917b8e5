"""Provider contract, vendor adapters and the adapter factory."""

from .anthropic import AnthropicProvider
from .base import ModelProvider
from .custom import OpenAICompatibleProvider
from .factory import available_provider_types, create_provider, get_provider_class, register_provider_class
from .http import HTTPProvider
from .huggingface import HuggingFaceProvider
from .ollama import OllamaProvider
from .openai import OpenAIProvider
from .streaming import NDJSONDecoder, SSEDecoder, StreamDecoder, TypedSSEDecoder, decode_stream

__all__ = [
    "ModelProvider",
    "HTTPProvider",
    "OllamaProvider",
    "AnthropicProvider",
    "OpenAIProvider",
    "OpenAICompatibleProvider",
    "HuggingFaceProvider",
    "StreamDecoder",
    "NDJSONDecoder",
    "SSEDecoder",
    "TypedSSEDecoder",
    "decode_stream",
    "create_provider",
    "get_provider_class",
    "register_provider_class",
    "available_provider_types",
]
