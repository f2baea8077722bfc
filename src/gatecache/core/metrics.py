"""
Metrics collection module for monitoring cache and rate-limit behaviour.
"""
import asyncio
import time
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Dict

from gatecache.core.config.settings import settings
from gatecache.core.logging import logger


class MetricsCollector:
    """
    Collects and manages in-process application metrics.

    This class provides functionality for collecting:
    - Cache metrics (hit/miss per operation)
    - Rate limit metrics (allowed/denied/fail-open per namespace)
    - Store metrics (error counts per operation)
    - Warming metrics (runs per status)
    """

    def __init__(self):
        self._metrics: Dict[str, Any] = self._empty()
        self._start_time = datetime.now(timezone.utc)

    @staticmethod
    def _empty() -> Dict[str, Any]:
        return {
            "cache": {},
            "rate_limit": {},
            "store": {},
            "warming": {},
        }

    def record_cache_metric(self, operation: str, hit: bool) -> None:
        """Record cache operation metrics."""
        if "operations" not in self._metrics["cache"]:
            self._metrics["cache"]["operations"] = {}

        if operation not in self._metrics["cache"]["operations"]:
            self._metrics["cache"]["operations"][operation] = {
                "hits": 0,
                "misses": 0,
            }

        if hit:
            self._metrics["cache"]["operations"][operation]["hits"] += 1
        else:
            self._metrics["cache"]["operations"][operation]["misses"] += 1

    def record_rate_limit_metric(self, namespace: str, outcome: str) -> None:
        """Record a rate-limit decision (`allowed`, `denied` or `fail_open`)."""
        counters = self._metrics["rate_limit"].setdefault(
            namespace, {"allowed": 0, "denied": 0, "fail_open": 0}
        )
        counters[outcome] = counters.get(outcome, 0) + 1

    def record_store_error(self, operation: str) -> None:
        """Record a failed store call."""
        errors = self._metrics["store"].setdefault("errors", {})
        errors[operation] = errors.get(operation, 0) + 1

    def record_warming_run(self, status: str, keys_warmed: int, duration_ms: float) -> None:
        """Record the outcome of one cache warming run."""
        runs = self._metrics["warming"].setdefault("runs", {})
        runs[status] = runs.get(status, 0) + 1
        self._metrics["warming"]["last_keys_warmed"] = keys_warmed
        self._metrics["warming"]["last_duration_ms"] = duration_ms

    def get_metrics(self) -> Dict[str, Any]:
        """Get all collected metrics."""
        return {
            **self._metrics,
            "uptime": (datetime.now(timezone.utc) - self._start_time).total_seconds(),
        }

    def reset_metrics(self) -> None:
        """Reset all metrics to initial state."""
        self._metrics = self._empty()
        self._start_time = datetime.now(timezone.utc)


# Global metrics collector instance
metrics_collector = MetricsCollector()


def record_metric(metric_type: str):
    """
    Decorator for recording metrics for store-facing coroutines.

    A ``store`` metric counts exceptions escaping the wrapped call; a ``cache``
    metric treats a ``None`` result as a miss and anything else as a hit.

    Args:
        metric_type: Type of metric to record (``store`` or ``cache``)
    """
    def decorator(func):
        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            start_time = time.time()
            duration = 0.0
            try:
                result = await func(*args, **kwargs)
                duration = time.time() - start_time
                if metric_type == "cache":
                    metrics_collector.record_cache_metric(func.__name__, result is not None)
                return result
            except Exception:
                duration = time.time() - start_time
                if metric_type == "store":
                    metrics_collector.record_store_error(func.__name__)
                raise
            finally:
                if settings.DEBUG:
                    logger.debug(
                        f"{metric_type}_operation_completed",
                        operation=func.__name__,
                        duration=duration,
                    )

        if not asyncio.iscoroutinefunction(func):
            raise TypeError("record_metric only wraps coroutine functions")
        return async_wrapper

    return decorator
