"""
Rate-limit violation bookkeeping.

`RateLimitViolationLog` keeps the most recent violations in a fixed-capacity
buffer for the admin monitoring endpoint. Observers let policies fan out
violations to logging or alerting without touching the limiter's decision.
"""

from __future__ import annotations

from collections import Counter, deque
from datetime import datetime, timedelta, timezone
from typing import Any, Deque, Dict, Iterable, List, Optional

from structlog import get_logger

from gatecache.domain.interfaces import ViolationObserver
from gatecache.domain.rate_limiting.entities import RateLimitViolation

logger = get_logger(__name__)

DEFAULT_CAPACITY = 1000


class RateLimitViolationLog(ViolationObserver):
    """
    Bounded in-memory log of recent violations.

    Appending beyond ``capacity`` evicts the oldest entry first. The log is
    process-local and not durable.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._violations: Deque[RateLimitViolation] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._violations.maxlen

    def __len__(self) -> int:
        return len(self._violations)

    def record(self, violation: RateLimitViolation) -> None:
        self._violations.append(violation)

    async def notify(self, violation: RateLimitViolation) -> None:
        self.record(violation)

    def all(self) -> List[RateLimitViolation]:
        return list(self._violations)

    def recent(self, minutes: int = 60, now: Optional[datetime] = None) -> List[RateLimitViolation]:
        """Violations from the last ``minutes`` minutes, oldest first."""
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(minutes=minutes)
        return [v for v in self._violations if v.timestamp >= cutoff]

    def by_identifier(self, identifier: str) -> List[RateLimitViolation]:
        return [v for v in self._violations if v.identifier == identifier]

    def clear(self) -> int:
        """Drop every stored violation and return how many there were."""
        count = len(self._violations)
        self._violations.clear()
        logger.info("rate_limit_violations_cleared", count=count)
        return count

    @staticmethod
    def summarize(violations: Iterable[RateLimitViolation], recent_count: int = 10) -> Dict[str, Any]:
        """Aggregate statistics over a list of violations."""
        violations = list(violations)
        return {
            "total_violations": len(violations),
            "unique_identifiers": len({v.identifier for v in violations}),
            "by_endpoint": dict(Counter(v.endpoint for v in violations)),
            "recent_violations": [v.to_dict() for v in violations[-recent_count:]],
        }


class LoggingViolationObserver(ViolationObserver):
    """Writes every violation to the structured log at warning level."""

    def __init__(self, label: str = "rate_limit"):
        self._label = label

    async def notify(self, violation: RateLimitViolation) -> None:
        logger.warning(
            "rate_limit_violation",
            policy=self._label,
            identifier=violation.identifier,
            endpoint=violation.endpoint,
            limit=violation.limit,
            window_ms=violation.window_ms,
        )


class CompositeViolationObserver(ViolationObserver):
    """Notifies several observers in order; one failing never stops the rest."""

    def __init__(self, observers: Iterable[ViolationObserver]):
        self._observers = list(observers)

    @property
    def observers(self) -> List[ViolationObserver]:
        return list(self._observers)

    async def notify(self, violation: RateLimitViolation) -> None:
        for observer in self._observers:
            try:
                await observer.notify(violation)
            except Exception as e:
                logger.error(
                    "violation_observer_failed",
                    observer=type(observer).__name__,
                    error=str(e),
                )
