"""Metric events published by providers and the listeners that consume them.

Providers publish named events through :func:`emit_metric`: the duration of
every backend request, Ollama model counts and pull durations. Any callable
can subscribe. :class:`CollectorListener` turns request durations into
:class:`~modelrelay.observability.collector.MetricsCollector` records, so
adapters report into a collector without being wrapped in a
``MeteredProvider``.

Usage:
    >>> collector = MetricsCollector()
    >>> with CollectorListener(collector):
    ...     await OllamaProvider("ollama").generate("hi")
    >>> collector.records()[0].provider
    'ollama'
"""

from __future__ import annotations

from threading import Lock
from typing import TYPE_CHECKING, Callable, Dict, FrozenSet, Iterable, Optional, Tuple

from .logging import get_logger

if TYPE_CHECKING:
    from .collector import MetricsCollector

logger = get_logger(__name__)

MetricListener = Callable[[str, Dict[str, float], Dict[str, str]], None]

REQUEST_DURATION = "provider.request.duration"
MODEL_COUNT = "ollama.models.count"
PULL_DURATION = "ollama.model.pull_duration"

GENERATION_OPERATIONS: FrozenSet[str] = frozenset({"generate", "generate_stream", "tool_call"})

_listeners: Tuple[MetricListener, ...] = ()
_listeners_lock = Lock()


def register_metric_listener(callback: MetricListener) -> None:
    """Subscribe ``callback`` to every metric event; registering twice is a no-op."""
    global _listeners
    with _listeners_lock:
        if callback not in _listeners:
            _listeners = _listeners + (callback,)


def unregister_metric_listener(callback: MetricListener) -> None:
    global _listeners
    with _listeners_lock:
        _listeners = tuple(listener for listener in _listeners if listener != callback)


def emit_metric(name: str, values: Optional[Dict[str, float]] = None, labels: Optional[Dict[str, str]] = None) -> None:
    """
    Deliver one event to the listeners registered when it is emitted.

    Label values are stringified. A listener that raises is logged at debug
    level and skipped; the remaining listeners still receive the event.
    """
    payload = dict(values or {})
    tags = {str(key): str(value) for key, value in (labels or {}).items()}
    for callback in _listeners:
        try:
            callback(name, payload, tags)
        except Exception as e:
            logger.debug(f"Metric listener {callback!r} failed on '{name}': {e}")


def record_metric(name: str, value: float, tags: Optional[Dict[str, str]] = None) -> None:
    """Emit a single-valued event under the ``value`` key."""
    emit_metric(name, values={"value": value}, labels=tags)


def record_request_duration(
    provider: str,
    provider_type: str,
    model: Optional[str],
    operation: str,
    seconds: float,
    success: bool,
) -> None:
    """Emit :data:`REQUEST_DURATION` for one backend request."""
    record_metric(
        REQUEST_DURATION,
        seconds,
        {
            "provider": provider,
            "type": provider_type,
            "model": model or "unknown",
            "operation": operation,
            "success": str(success).lower(),
        },
    )


class CollectorListener:
    """
    Track request-duration events in a :class:`MetricsCollector`.

    Only generation requests (``generate``, ``generate_stream`` and
    ``tool_call`` by default) become records; model management calls such as
    ``list_models`` are ignored. Durations carry no token counts, so records
    are tracked with zero tokens.
    """

    def __init__(self, collector: "MetricsCollector", operations: Iterable[str] = GENERATION_OPERATIONS):
        self.collector = collector
        self.operations = frozenset(operations)

    def __call__(self, name: str, values: Dict[str, float], labels: Dict[str, str]) -> None:
        if name != REQUEST_DURATION or labels.get("operation") not in self.operations:
            return
        success = labels.get("success") == "true"
        self.collector.track(
            provider=labels.get("provider", "unknown"),
            model=labels.get("model", "unknown"),
            tokens=0,
            latency=values.get("value", 0.0) * 1000,
            success=success,
            error=None if success else f"{labels.get('operation')} request failed",
        )

    def attach(self) -> CollectorListener:
        register_metric_listener(self)
        return self

    def detach(self) -> None:
        unregister_metric_listener(self)

    def __enter__(self) -> CollectorListener:
        return self.attach()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.detach()
