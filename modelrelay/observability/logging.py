"""Centralised logging helpers for modelrelay."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

_LOGGER_CACHE: Dict[str, logging.Logger] = {}


def get_logger(name: str = "modelrelay") -> logging.Logger:
    """Return a cached :class:`logging.Logger` instance."""

    if name not in _LOGGER_CACHE:
        _LOGGER_CACHE[name] = logging.getLogger(name)
    return _LOGGER_CACHE[name]


def log_failover_event(
    *,
    strategy: str,
    provider: str,
    model: Optional[str],
    attempt: int,
    reason: Optional[str],
    logger: Optional[logging.Logger] = None,
    extras: Optional[Dict[str, Any]] = None,
) -> None:
    """Emit a structured log entry when a strategy moves past a member."""

    payload: Dict[str, Any] = {
        "strategy": strategy,
        "provider": provider or "unknown",
        "model": model or "unknown",
        "attempt": attempt,
    }
    if reason:
        payload["reason"] = reason[:200]
    if extras:
        payload.update(extras)
    target_logger = logger or get_logger("modelrelay.strategies.failover")
    target_logger.warning(
        "Provider %s failed in %s (attempt %d)",
        payload["provider"],
        strategy,
        attempt,
        extra={"modelrelay_event": "provider_failover", "modelrelay_data": payload},
    )
