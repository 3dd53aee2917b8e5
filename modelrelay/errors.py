"""
Exception hierarchy for the modelrelay provider layer.

Every failure that crosses the provider contract is one of these types:

- BackendUnavailable: connection/transport failure (DeadlineExceeded when a
  caller-supplied deadline passes)
- BackendError: the vendor answered with a non-success status
- DecodeError: the response body or stream framing could not be interpreted
- UnsupportedCapability: the provider does not implement the operation
- UnknownProvider / NoDefaultConfigured: registry misconfiguration
- InvalidConfiguration: construction-time invariant violations
- AllProvidersFailed: a routing strategy exhausted every alternative

Example:
    from modelrelay.errors import BackendError

    raise BackendError(
        "Anthropic API error (status 529)",
        provider="anthropic",
        model="claude-3-5-sonnet",
        status_code=529,
        body='{"type": "error", ...}',
    )
"""

from typing import List, Optional, Sequence, Tuple


class ProviderError(Exception):
    """Base exception for provider-related errors."""

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        status_code: Optional[int] = None,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.model = model
        self.status_code = status_code
        self.original_error = original_error


class BackendUnavailable(ProviderError):
    """The backend could not be reached or the transport failed mid-call."""


class DeadlineExceeded(BackendUnavailable):
    """A caller-supplied deadline passed before the call completed."""

    def __init__(self, message: str, *, timeout: Optional[float] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.timeout = timeout


class BackendError(ProviderError):
    """
    The vendor returned a non-success status.

    Attributes:
        status_code: HTTP status returned by the vendor (None for in-band
            error frames inside a stream)
        body: Response body text, truncated to a readable length
    """

    def __init__(self, message: str, *, body: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.body = body

    def __str__(self) -> str:
        if self.body:
            return f"{self.message}: {self.body}"
        return self.message


class DecodeError(ProviderError):
    """The response did not match the framing the adapter expects."""


class UnsupportedCapability(ProviderError):
    """The chosen provider does not implement the requested operation."""

    def __init__(self, message: str, *, capability: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.capability = capability


class UnknownProvider(ProviderError):
    """No provider (or provider type) is registered under the given id."""


class NoDefaultConfigured(ProviderError):
    """Neither the configured default nor the baseline provider is registered."""


class InvalidConfiguration(ProviderError):
    """A provider or strategy was constructed with inconsistent settings."""


class AllProvidersFailed(ProviderError):
    """
    Aggregate failure raised once a strategy has no alternative left.

    The message lists every constituent failure so callers can log a single
    exception without losing detail.

    Attributes:
        errors: Ordered ``(provider name, exception)`` pairs, one per attempt
    """

    def __init__(
        self,
        message: str,
        errors: Sequence[Tuple[str, BaseException]],
        **kwargs,
    ):
        self.errors: List[Tuple[str, BaseException]] = list(errors)
        detail = "; ".join(f"{name}: {error}" for name, error in self.errors)
        full_message = f"{message}. Errors: {detail}" if detail else message
        super().__init__(full_message, **kwargs)


__all__ = [
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
]
