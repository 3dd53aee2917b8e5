"""Per-call outcome tracking aggregated by provider and model.

The collector is an append-only sink. Records accumulate for the life of the
process unless ``max_records`` is set, in which case the oldest records are
dropped first; aggregation is computed over whatever is retained.

Usage:
    >>> collector = MetricsCollector()
    >>> record = collector.track("ollama", "codellama:7b", tokens=120, latency=850.0, success=True)
    >>> [m.avg_latency for m in collector.get_metrics()]
    [850.0]
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import RLock
from typing import Any, Deque, Dict, List, Optional, Tuple

from ..errors import InvalidConfiguration


@dataclass(frozen=True)
class MetricRecord:
    """Outcome of one provider call."""

    provider: str
    model: str
    tokens: int
    latency: float
    """Wall-clock latency in milliseconds."""
    success: bool
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class ModelMetrics:
    """Aggregate view over every record for one (provider, model) pair."""

    provider: str
    model: str
    total_requests: int
    total_tokens: int
    avg_latency: float
    success_rate: float
    """Percentage of successful calls, 0-100."""
    cost: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "model": self.model,
            "total_requests": self.total_requests,
            "total_tokens": self.total_tokens,
            "avg_latency": self.avg_latency,
            "success_rate": self.success_rate,
            "cost": self.cost,
        }


class MetricsCollector:
    """Thread-safe, append-only store of :class:`MetricRecord` entries."""

    def __init__(self, max_records: Optional[int] = None):
        if max_records is not None and max_records <= 0:
            raise InvalidConfiguration(f"max_records must be positive, got {max_records}")
        self.max_records = max_records
        self._records: Deque[MetricRecord] = deque(maxlen=max_records)
        self._lock = RLock()

    def track(
        self,
        provider: str,
        model: str,
        tokens: int,
        latency: float,
        success: bool,
        error: Optional[str] = None,
    ) -> MetricRecord:
        record = MetricRecord(
            provider=provider,
            model=model,
            tokens=tokens,
            latency=latency,
            success=success,
            error=error,
        )
        with self._lock:
            self._records.append(record)
        return record

    def records(self) -> List[MetricRecord]:
        """Snapshot of the retained records, oldest first."""
        with self._lock:
            return list(self._records)

    def get_metrics(self, provider: Optional[str] = None) -> List[ModelMetrics]:
        """
        Aggregate retained records per (provider, model).

        Args:
            provider: Restrict the result to one provider id

        Returns:
            One ModelMetrics per key, in the order keys were first seen
        """
        groups: Dict[Tuple[str, str], List[MetricRecord]] = {}
        for record in self.records():
            if provider is not None and record.provider != provider:
                continue
            groups.setdefault((record.provider, record.model), []).append(record)

        metrics = []
        for (prov, model), records in groups.items():
            total = len(records)
            successes = sum(1 for r in records if r.success)
            metrics.append(
                ModelMetrics(
                    provider=prov,
                    model=model,
                    total_requests=total,
                    total_tokens=sum(r.tokens for r in records),
                    avg_latency=sum(r.latency for r in records) / total,
                    success_rate=successes / total * 100,
                )
            )
        return metrics

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


__all__ = ["MetricRecord", "ModelMetrics", "MetricsCollector"]
