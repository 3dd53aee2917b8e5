"""Ollama adapter for locally served models.

Talks to an Ollama server over its native HTTP API:

- ``POST /api/generate`` for completions (NDJSON when streaming)
- ``GET /api/tags`` for liveness and the installed model list
- ``POST /api/pull`` / ``DELETE /api/delete`` for model management

Configuration:
    - base_url: Server URL (else $MODELRELAY_OLLAMA_BASE_URL, else
      http://localhost:11434)
    - keep_alive: How long the server keeps the model loaded (e.g. "5m")
    - timeout, max_context_tokens: see HTTPProvider

Example:
    >>> provider = OllamaProvider("ollama", "codellama:7b")
    >>> response = await provider.generate("Write a haiku about Python")
    >>> print(response.content)
"""

from __future__ import annotations

import json
import os
import time
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from ..errors import BackendError, DecodeError
from ..observability.logging import get_logger
from ..observability.metrics import MODEL_COUNT, PULL_DURATION, record_metric
from ..types import CapabilityDescriptor, GenerateOptions, Locality, ModelResponse, TokenUsage
from .factory import register_provider_class
from .http import HTTPProvider
from .streaming import NDJSONDecoder

logger = get_logger(__name__)

# Environment variable for base URL override
OLLAMA_BASE_URL_ENV = "MODELRELAY_OLLAMA_BASE_URL"
DEFAULT_OLLAMA_URL = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "codellama:7b"
DEFAULT_NUM_PREDICT = 2000


class OllamaProvider(HTTPProvider):
    """Adapter for an Ollama server (local, no credential, no tools)."""

    provider_type = "ollama"
    vendor_label = "Ollama"
    default_base_url = DEFAULT_OLLAMA_URL
    default_max_context_tokens = 4096

    def __init__(
        self,
        name: str,
        model: Optional[str] = None,
        config: Optional[Dict[str, Any]] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(name, model or DEFAULT_OLLAMA_MODEL, config, client=client)
        self.base_url = self._determine_base_url().rstrip("/")
        self.keep_alive = self.config.get("keep_alive")

    def _determine_base_url(self) -> str:
        """Determine base URL from config or environment.

        Priority:
        1. Explicit base_url in config
        2. MODELRELAY_OLLAMA_BASE_URL environment variable
        3. Default URL
        """
        if self.config.get("base_url"):
            return str(self.config["base_url"])

        env_url = os.getenv(OLLAMA_BASE_URL_ENV)
        if env_url:
            logger.debug(f"Using {OLLAMA_BASE_URL_ENV}: {env_url}")
            return env_url

        return DEFAULT_OLLAMA_URL

    def _build_request_payload(self, prompt: str, options: GenerateOptions, stream: bool) -> Dict[str, Any]:
        """Build request payload for /api/generate."""
        sampling: Dict[str, Any] = {
            "temperature": options.temperature,
            "num_predict": options.max_tokens or DEFAULT_NUM_PREDICT,
        }
        if options.top_p is not None:
            sampling["top_p"] = options.top_p
        if options.stop:
            sampling["stop"] = list(options.stop)

        payload: Dict[str, Any] = {
            "model": self.model,
            "prompt": prompt,
            "stream": stream,
            "options": sampling,
        }
        if options.system_prompt:
            payload["system"] = options.system_prompt
        if self.keep_alive:
            payload["keep_alive"] = self.keep_alive
        return payload

    async def _generate(self, prompt: str, options: GenerateOptions) -> ModelResponse:
        payload = self._build_request_payload(prompt, options, stream=False)
        data = await self._request_json("POST", "/api/generate", payload, operation="generate")

        text = data.get("response")
        if not isinstance(text, str):
            raise DecodeError(
                "Ollama response has no 'response' text",
                provider=self.name,
                model=self.model,
            )

        usage = None
        if "prompt_eval_count" in data or "eval_count" in data:
            usage = TokenUsage.from_counts(
                int(data.get("prompt_eval_count") or 0),
                int(data.get("eval_count") or 0),
            )

        return ModelResponse(
            content=text,
            usage=usage,
            model=data.get("model", self.model),
            provider=self.name,
            metadata={"done_reason": data.get("done_reason")} if data.get("done_reason") else {},
        )

    async def _generate_stream(self, prompt: str, options: GenerateOptions) -> AsyncIterator[str]:
        payload = self._build_request_payload(prompt, options, stream=True)
        async for fragment in self._stream_fragments("/api/generate", payload, NDJSONDecoder()):
            yield fragment

    async def is_available(self) -> bool:
        return await self._probe("/api/tags")

    def describe(self) -> CapabilityDescriptor:
        return CapabilityDescriptor(
            name="Ollama",
            locality=Locality.LOCAL,
            requires_auth=False,
            supports_streaming=True,
            supports_tools=False,
            max_context_tokens=self.max_context_tokens,
            model=self.model,
        )

    async def list_models(self) -> List[str]:
        """List the names of models installed on the server.

        Raises:
            BackendUnavailable: If the server is unreachable
            DecodeError: If the listing has an unexpected shape
        """
        data = await self._request_json("GET", "/api/tags", operation="list_models")
        models = data.get("models")
        if not isinstance(models, list):
            raise DecodeError("Ollama model listing has no 'models' array", provider=self.name)

        names = [m["name"] for m in models if isinstance(m, dict) and isinstance(m.get("name"), str)]
        record_metric(MODEL_COUNT, len(names), {"base_url": self.base_url})
        return names

    async def pull_model(self, model_name: Optional[str] = None) -> None:
        """Pull a model from the Ollama registry, following its status stream.

        Args:
            model_name: Model to pull (defaults to this provider's model)

        Raises:
            BackendError: If the server reports a pull failure
            DecodeError: If the status stream ends without reporting success
        """
        model_name = model_name or self.model
        client = self._get_http_client()
        pull_start = time.monotonic()
        last_status = None

        try:
            async with client.stream(
                "POST",
                self._url("/api/pull"),
                json={"name": model_name, "stream": True},
                headers=self._build_headers(),
            ) as response:
                if response.is_error:
                    await response.aread()
                    self._raise_for_status(response)

                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        status_data = json.loads(line)
                    except json.JSONDecodeError:
                        logger.debug(f"Skipping unreadable pull status line: {line[:120]!r}")
                        continue
                    if not isinstance(status_data, dict):
                        continue
                    if status_data.get("error"):
                        raise BackendError(
                            f"Ollama failed to pull '{model_name}': {status_data['error']}",
                            provider=self.name,
                            model=model_name,
                        )

                    last_status = status_data.get("status", last_status)
                    if last_status == "success":
                        pull_duration = time.monotonic() - pull_start
                        logger.info(f"Pulled Ollama model {model_name} in {pull_duration:.1f}s")
                        record_metric(PULL_DURATION, pull_duration, {"model": model_name})
                        return
        except httpx.TransportError as e:
            raise self._unavailable(f"Could not reach Ollama at {self.base_url}: {e}", e) from e

        raise DecodeError(
            f"Ollama pull of '{model_name}' ended without success (last status: {last_status})",
            provider=self.name,
            model=model_name,
        )

    async def delete_model(self, model_name: Optional[str] = None) -> None:
        """Delete a model from the server."""
        model_name = model_name or self.model
        await self._send("DELETE", "/api/delete", {"name": model_name}, operation="delete_model")
        logger.info(f"Deleted Ollama model: {model_name}")


# Register provider
register_provider_class("ollama", OllamaProvider)


__all__ = [
    "OllamaProvider",
    "OLLAMA_BASE_URL_ENV",
    "DEFAULT_OLLAMA_URL",
]
