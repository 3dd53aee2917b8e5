"""Adapter for self-hosted servers that speak the OpenAI chat protocol.

Covers LM Studio, vLLM, llama.cpp server, LocalAI and similar. The base URL
is required; ``/v1`` is appended unless it is already there. A bearer token
is only sent when an ``api_key`` is configured.
"""

from __future__ import annotations

from typing import Any, Dict, Optional
from urllib.parse import urlparse

from ..errors import InvalidConfiguration
from ..types import Locality
from .factory import register_provider_class
from .openai import OpenAIProvider

LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})


class OpenAICompatibleProvider(OpenAIProvider):
    """OpenAI wire format against a caller-supplied endpoint."""

    provider_type = "custom"
    vendor_label = "Custom"
    display_name = "Custom"
    default_base_url = ""
    default_max_context_tokens = 4096
    credential_required = False
    default_model = "default"

    def __init__(self, name: str, model: Optional[str] = None, config: Optional[Dict[str, Any]] = None, **kwargs):
        super().__init__(name, model, config, **kwargs)
        if not self.base_url:
            raise InvalidConfiguration(
                f"Provider '{name}' needs a base_url for its OpenAI-compatible server",
                provider=name,
            )
        if not self.base_url.endswith("/v1"):
            self.base_url = f"{self.base_url}/v1"

    @property
    def requires_auth(self) -> bool:
        return bool(self.api_key)

    @property
    def locality(self) -> Locality:
        if urlparse(self.base_url).hostname in LOCAL_HOSTS:
            return Locality.LOCAL
        return Locality.REMOTE


# Register provider
register_provider_class("custom", OpenAICompatibleProvider)


__all__ = ["OpenAICompatibleProvider"]
