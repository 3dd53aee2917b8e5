"""Shared plumbing for adapters that talk to a vendor over HTTP.

HTTPProvider owns a lazily created ``httpx.AsyncClient`` and maps transport
outcomes onto the provider error contract:

- connection failures and transport timeouts -> BackendUnavailable
- HTTP status >= 400 -> BackendError (status code and body preserved)
- bodies that are not JSON objects -> DecodeError

Every request records a ``provider.request.duration`` metric.
"""

from __future__ import annotations

import time
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from ..errors import BackendError, BackendUnavailable, DecodeError
from ..observability.logging import get_logger
from ..observability.metrics import record_request_duration
from .base import ModelProvider
from .streaming import StreamDecoder, decode_stream

logger = get_logger(__name__)

DEFAULT_CONNECT_TIMEOUT = 10.0
MAX_ERROR_BODY_CHARS = 500


class HTTPProvider(ModelProvider):
    """
    Base class for HTTP-backed adapters.

    Configuration keys understood here:
        - base_url: Vendor endpoint root (adapter default when omitted)
        - api_key: Credential sent by the adapter's ``_build_headers``
        - timeout: Read timeout in seconds (default: none)
        - max_context_tokens: Overrides the adapter's declared context size

    A pre-built ``client`` may be injected; injected clients are never
    closed by the provider.
    """

    vendor_label = "HTTP"
    default_base_url = ""
    default_max_context_tokens = 4096

    def __init__(
        self,
        name: str,
        model: Optional[str] = None,
        config: Optional[Dict[str, Any]] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(name, model, config)
        self.base_url = str(self.config.get("base_url") or self.default_base_url).rstrip("/")
        self.api_key: Optional[str] = self.config.get("api_key") or None
        timeout = self.config.get("timeout")
        self.timeout: Optional[float] = float(timeout) if timeout is not None else None
        self.max_context_tokens = int(
            self.config.get("max_context_tokens", self.default_max_context_tokens)
        )

        self._http_client = client
        self._owns_client = client is None

    def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=DEFAULT_CONNECT_TIMEOUT),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            )
            self._owns_client = True
        return self._http_client

    def _build_headers(self) -> Dict[str, str]:
        """Build request headers."""
        return {"Content-Type": "application/json"}

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def _send(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        *,
        operation: str = "request",
    ) -> httpx.Response:
        """Send one request and return the successful response."""
        client = self._get_http_client()
        url = self._url(path)
        start_time = time.monotonic()
        success = False
        try:
            response = await client.request(method, url, json=payload, headers=self._build_headers())
            self._raise_for_status(response)
            success = True
            logger.info(
                f"{self.vendor_label} {operation} for '{self.name}' completed "
                f"in {time.monotonic() - start_time:.2f}s"
            )
            return response
        except httpx.TimeoutException as e:
            raise self._unavailable(f"{self.vendor_label} request to {url} timed out", e) from e
        except httpx.TransportError as e:
            raise self._unavailable(f"Could not reach {self.vendor_label} at {self.base_url}: {e}", e) from e
        finally:
            self._record_duration(operation, start_time, success)

    async def _request_json(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        *,
        operation: str = "request",
    ) -> Dict[str, Any]:
        """Send a request and decode its JSON object body."""
        response = await self._send(method, path, payload, operation=operation)
        try:
            data = response.json()
        except ValueError as e:
            raise DecodeError(
                f"{self.vendor_label} returned a body that is not JSON",
                provider=self.name,
                model=self.model,
                status_code=response.status_code,
                original_error=e,
            ) from e
        if not isinstance(data, dict):
            raise DecodeError(
                f"{self.vendor_label} returned {type(data).__name__} where an object was expected",
                provider=self.name,
                model=self.model,
                status_code=response.status_code,
            )
        return data

    async def _stream_fragments(
        self,
        path: str,
        payload: Dict[str, Any],
        decoder: StreamDecoder,
    ) -> AsyncIterator[str]:
        """POST ``payload`` and yield the text fragments ``decoder`` extracts."""
        client = self._get_http_client()
        url = self._url(path)
        start_time = time.monotonic()
        success = False
        try:
            async with client.stream("POST", url, json=payload, headers=self._build_headers()) as response:
                if response.is_error:
                    await response.aread()
                    self._raise_for_status(response)
                async for fragment in decode_stream(decoder, response.aiter_bytes()):
                    yield fragment
            success = True
        except httpx.TimeoutException as e:
            raise self._unavailable(f"{self.vendor_label} stream from {url} timed out", e) from e
        except httpx.TransportError as e:
            raise self._unavailable(f"{self.vendor_label} stream from {self.base_url} failed: {e}", e) from e
        finally:
            self._record_duration("generate_stream", start_time, success)

    async def _probe(self, path: str) -> bool:
        """GET ``path`` and report whether it answered with a 2xx status."""
        try:
            client = self._get_http_client()
            response = await client.get(self._url(path), headers=self._build_headers())
            return response.is_success
        except Exception as e:
            logger.debug(f"{self.vendor_label} liveness probe for '{self.name}' failed: {e}")
            return False

    def _raise_for_status(self, response: httpx.Response) -> None:
        if not response.is_error:
            return
        raise BackendError(
            f"{self.vendor_label} API error (status {response.status_code})",
            body=response.text[:MAX_ERROR_BODY_CHARS],
            provider=self.name,
            model=self.model,
            status_code=response.status_code,
        )

    def _unavailable(self, message: str, error: BaseException) -> BackendUnavailable:
        return BackendUnavailable(
            message,
            provider=self.name,
            model=self.model,
            original_error=error,
        )

    def _record_duration(self, operation: str, start_time: float, success: bool) -> None:
        record_request_duration(
            self.name,
            self.provider_type,
            self.model,
            operation,
            time.monotonic() - start_time,
            success,
        )

    async def close(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None


__all__ = ["HTTPProvider"]
