"""
modelrelay: one interface over local and hosted language models.

Vendor adapters (Ollama, Anthropic, OpenAI, OpenAI-compatible servers and
in-process HuggingFace pipelines) share the ModelProvider contract, and the
routing strategies (fallback, load balancing, committee voting, complexity
routing) are providers themselves, so they compose freely.

Example:
    >>> from modelrelay import FallbackProvider, create_provider
    >>> primary = create_provider("claude", "anthropic", config={"api_key": "..."})
    >>> local = create_provider("ollama", "ollama", "codellama:7b")
    >>> provider = FallbackProvider([primary, local])
    >>> response = await provider.generate("Write a binary search in Python")
"""

__version__ = "0.1.0"

from .errors import (
    AllProvidersFailed,
    BackendError,
    BackendUnavailable,
    DeadlineExceeded,
    DecodeError,
    InvalidConfiguration,
    NoDefaultConfigured,
    ProviderError,
    UnknownProvider,
    UnsupportedCapability,
)
from .observability import CollectorListener, MetricsCollector, ModelMetrics, MetricRecord
from .providers import (
    AnthropicProvider,
    HuggingFaceProvider,
    ModelProvider,
    OllamaProvider,
    OpenAICompatibleProvider,
    OpenAIProvider,
    create_provider,
)
from .registry import ProviderRegistry
from .strategies import (
    Committee,
    CommitteeVerdict,
    ComplexityRouter,
    FallbackProvider,
    LoadBalancer,
    MeteredProvider,
    TaskComplexityRouter,
)
from .types import (
    CapabilityDescriptor,
    GenerateOptions,
    Locality,
    Message,
    ModelResponse,
    ProviderInfo,
    TokenUsage,
    Tool,
    ToolCall,
    estimate_tokens,
)

__all__ = [
    "__version__",
    # Errors
    "ProviderError",
    "BackendUnavailable",
    "DeadlineExceeded",
    "BackendError",
    "DecodeError",
    "UnsupportedCapability",
    "UnknownProvider",
    "NoDefaultConfigured",
    "InvalidConfiguration",
    "AllProvidersFailed",
    # Types
    "GenerateOptions",
    "Message",
    "Tool",
    "ToolCall",
    "TokenUsage",
    "ModelResponse",
    "Locality",
    "CapabilityDescriptor",
    "ProviderInfo",
    "estimate_tokens",
    # Providers
    "ModelProvider",
    "OllamaProvider",
    "AnthropicProvider",
    "OpenAIProvider",
    "OpenAICompatibleProvider",
    "HuggingFaceProvider",
    "create_provider",
    # Registry and strategies
    "ProviderRegistry",
    "FallbackProvider",
    "LoadBalancer",
    "Committee",
    "CommitteeVerdict",
    "ComplexityRouter",
    "TaskComplexityRouter",
    "MeteredProvider",
    # Metrics
    "MetricsCollector",
    "CollectorListener",
    "ModelMetrics",
    "MetricRecord",
]
