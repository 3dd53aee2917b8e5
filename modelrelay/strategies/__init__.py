"""Routing strategies. Each one is itself a ModelProvider, so they nest."""

from .base import SequentialStrategy
from .committee import Committee, CommitteeVerdict, MemberResult
from .complexity import ComplexityRouter, TaskComplexityRouter, estimate_complexity
from .fallback import FallbackProvider
from .load_balancer import LoadBalancer
from .metered import MeteredProvider

__all__ = [
    "SequentialStrategy",
    "FallbackProvider",
    "LoadBalancer",
    "Committee",
    "CommitteeVerdict",
    "MemberResult",
    "ComplexityRouter",
    "TaskComplexityRouter",
    "estimate_complexity",
    "MeteredProvider",
]
