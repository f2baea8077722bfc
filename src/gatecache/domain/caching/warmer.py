"""
Background cache warming.

A warming run builds one task per hot cache entry (the fleet listing, details
and near-term availability of the most booked cars), then executes them with
bounded concurrency so the rental database is never hit by more than
``max_concurrency`` queries at once. Tasks are isolated: a failing task adds
one message to the run's errors and never cancels its siblings.
"""

from __future__ import annotations

import asyncio
import time
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field
from structlog import get_logger

from gatecache.core.exceptions import CacheWriteError, DataSourceError
from gatecache.core.metrics import MetricsCollector, metrics_collector
from gatecache.domain.caching.services import CacheService
from gatecache.domain.caching.value_objects import CACHE_CONFIGS
from gatecache.domain.interfaces import FleetDataSource

logger = get_logger(__name__)

POPULARITY_LOOKBACK_DAYS = 30
DATA_SOURCE_NOT_CONFIGURED = "Data source not configured"


class WarmingStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"

    @classmethod
    def from_outcome(cls, keys_warmed: int, errors: Sequence[str]) -> WarmingStatus:
        if not errors:
            return cls.SUCCESS
        if keys_warmed > 0:
            return cls.PARTIAL
        return cls.FAILED


class WarmingOptions(BaseModel):
    """What a warming run should cover."""

    model_config = ConfigDict(frozen=True)

    warm_popular_cars: bool = True
    warm_upcoming_availability: bool = True
    popular_cars_limit: int = Field(default=10, ge=1, le=50)
    availability_days: int = Field(default=7, ge=1, le=30)


@dataclass
class WarmingTask:
    """One unit of warming work. Higher ``priority`` starts first."""

    name: str
    execute: Callable[[], Awaitable[Any]]
    priority: int = 0


@dataclass(frozen=True)
class WarmEntry:
    """Key to populate with the result of ``fetcher``."""

    key: str
    fetcher: Callable[[], Awaitable[Any]]
    ttl_seconds: int


@dataclass
class CacheWarmingMetrics:
    """Outcome of one warming run."""

    start_time: datetime
    end_time: datetime
    duration_ms: float = 0.0
    keys_warmed: int = 0
    errors: List[str] = field(default_factory=list)
    status: WarmingStatus = WarmingStatus.SUCCESS

    @classmethod
    def empty(cls) -> CacheWarmingMetrics:
        now = datetime.now(timezone.utc)
        return cls(start_time=now, end_time=now)

    def copy(self) -> CacheWarmingMetrics:
        return replace(self, errors=list(self.errors))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "duration_ms": round(self.duration_ms, 3),
            "keys_warmed": self.keys_warmed,
            "errors": list(self.errors),
            "status": self.status.value,
        }


def rank_popular(car_ids: Iterable[str], limit: int) -> List[str]:
    """Most frequent ids first; ties keep first-seen order."""
    return [car_id for car_id, _ in Counter(car_ids).most_common(limit)]


def _as_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def build_availability(
    car_id: str,
    start: date,
    end: date,
    records: Iterable[Dict[str, Any]],
    bookings: Iterable[Dict[str, Any]],
) -> Dict[str, Any]:
    """
    Per-day availability for ``[start, end]``.

    Days without an explicit record are available; any day covered by an
    active booking (inclusive on both ends) becomes ``booked``.
    """
    statuses = {_as_date(r["date"]): r.get("status") or "available" for r in records}

    days: List[Dict[str, Any]] = []
    current = start
    while current <= end:
        status = statuses.get(current, "available")
        days.append({"date": current, "available": status == "available", "status": status})
        current += timedelta(days=1)

    for booking in bookings:
        booked_from = _as_date(booking["start_date"])
        booked_to = _as_date(booking["end_date"])
        for day in days:
            if booked_from <= day["date"] <= booked_to:
                day["available"] = False
                day["status"] = "booked"

    available_days = sum(1 for day in days if day["available"])
    return {
        "car_id": car_id,
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
        "availability": [{**day, "date": day["date"].isoformat()} for day in days],
        "summary": {
            "total_days": len(days),
            "available_days": available_days,
            "unavailable_days": len(days) - available_days,
        },
    }


class CacheWarmer:
    """Populates the cache with predictably hot rental data.

    Args:
        cache: Cache service the warmed values are written through.
        data_source: Rental database; ``None`` disables warming.
        max_concurrency: Upper bound on in-flight tasks.
        batch_size: Default batch size of `batch_warm_keys`.
        today: Callable returning the current UTC date; injectable for tests.
    """

    def __init__(
        self,
        cache: CacheService,
        data_source: Optional[FleetDataSource],
        max_concurrency: int = 10,
        batch_size: int = 5,
        today: Optional[Callable[[], date]] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._cache = cache
        self._data_source = data_source
        self._max_concurrency = max_concurrency
        self._batch_size = batch_size
        self._today = today or (lambda: datetime.now(timezone.utc).date())
        self._metrics_collector = metrics or metrics_collector
        self._last_metrics = CacheWarmingMetrics.empty()
        self._has_run = False
        self._task_metrics: Dict[str, float] = {}
        self.startup_task: Optional[asyncio.Task] = None

    @property
    def is_configured(self) -> bool:
        return self._data_source is not None

    @property
    def has_run(self) -> bool:
        """Whether any warming run has completed in this process."""
        return self._has_run

    def get_metrics(self) -> CacheWarmingMetrics:
        """Copy of the metrics of the last completed run."""
        return self._last_metrics.copy()

    def get_task_metrics(self) -> Dict[str, float]:
        """Duration in milliseconds of every task of the last run, by name."""
        return dict(self._task_metrics)

    async def warm_cache(self, options: Optional[WarmingOptions] = None) -> CacheWarmingMetrics:
        """Run one warming pass and return its metrics."""
        options = options or WarmingOptions()

        if self._data_source is None:
            logger.warning("cache_warming_skipped", reason=DATA_SOURCE_NOT_CONFIGURED)
            metrics = CacheWarmingMetrics.empty()
            metrics.errors.append(DATA_SOURCE_NOT_CONFIGURED)
            metrics.status = WarmingStatus.FAILED
            self._last_metrics = metrics
            self._has_run = True
            return metrics.copy()

        logger.info("cache_warming_started", **options.model_dump())
        start_time = datetime.now(timezone.utc)
        started = time.perf_counter()
        errors: List[str] = []
        try:
            tasks = await self.build_tasks(options, errors)
            metrics = await self.execute_tasks(tasks)
            metrics.errors[:0] = errors
            metrics.status = WarmingStatus.from_outcome(metrics.keys_warmed, metrics.errors)
        except Exception as e:
            logger.error("cache_warming_fatal_error", error=str(e))
            metrics = CacheWarmingMetrics.empty()
            metrics.errors = errors + [f"Fatal error: {e}"]
            metrics.status = WarmingStatus.FAILED

        # Timed from before task assembly.
        metrics.start_time = start_time
        metrics.end_time = datetime.now(timezone.utc)
        metrics.duration_ms = (time.perf_counter() - started) * 1000
        self._last_metrics = metrics
        self._has_run = True
        self._metrics_collector.record_warming_run(metrics.status.value, metrics.keys_warmed, metrics.duration_ms)
        logger.info(
            "cache_warming_completed",
            status=metrics.status.value,
            keys_warmed=metrics.keys_warmed,
            errors=len(metrics.errors),
            duration_ms=round(metrics.duration_ms, 3),
        )
        return metrics.copy()

    async def _popular_car_ids(self, limit: int) -> List[str]:
        since = datetime.now(timezone.utc) - timedelta(days=POPULARITY_LOOKBACK_DAYS)
        car_ids = rank_popular(await self._data_source.recent_booking_car_ids(since), limit)
        if not car_ids:
            logger.info("no_recent_bookings_using_active_cars", limit=limit)
            car_ids = await self._data_source.active_car_ids(limit)
        return car_ids

    async def build_tasks(self, options: WarmingOptions, errors: List[str]) -> List[WarmingTask]:
        """Assemble the tasks for ``options``.

        Failure to resolve popular cars is appended to ``errors`` and leaves
        only the fleet listing task.
        """
        tasks: List[WarmingTask] = []
        if options.warm_popular_cars:
            tasks.append(WarmingTask("fleet_listing", self._warm_fleet_listing, priority=10))

        if not (options.warm_popular_cars or options.warm_upcoming_availability):
            return tasks

        try:
            car_ids = await self._popular_car_ids(options.popular_cars_limit)
        except Exception as e:
            logger.error("popular_cars_lookup_failed", error=str(e))
            errors.append(f"Popular cars: {e}")
            return tasks

        start = self._today()
        end = start + timedelta(days=options.availability_days)
        for car_id in car_ids:
            if options.warm_popular_cars:
                tasks.append(WarmingTask(
                    f"car_details:{car_id}",
                    self._car_details_task(car_id),
                    priority=5,
                ))
            if options.warm_upcoming_availability:
                tasks.append(WarmingTask(
                    f"availability:{car_id}",
                    self._availability_task(car_id, start, end),
                    priority=1,
                ))
        return tasks

    async def _write(self, key: str, value: Any, ttl_seconds: int) -> None:
        if not await self._cache.set(key, value, ttl_seconds):
            raise CacheWriteError(f"Cache rejected write for {key}")

    async def _warm_fleet_listing(self) -> None:
        config = CACHE_CONFIGS["fleet_listing"]
        cars = await self._data_source.list_fleet()
        await self._write(
            self._cache.generate_key(config.key_prefix, "all"),
            {"success": True, "cars": cars, "count": len(cars)},
            config.ttl_seconds,
        )

    def _car_details_task(self, car_id: str) -> Callable[[], Awaitable[None]]:
        async def warm() -> None:
            config = CACHE_CONFIGS["car_details"]
            car = await self._data_source.get_car(car_id)
            if car is None:
                raise DataSourceError(f"Car {car_id} not found")
            await self._write(self._cache.generate_key(config.key_prefix, car_id), car, config.ttl_seconds)
        return warm

    def _availability_task(self, car_id: str, start: date, end: date) -> Callable[[], Awaitable[None]]:
        async def warm() -> None:
            config = CACHE_CONFIGS["car_availability"]
            records, bookings = await asyncio.gather(
                self._data_source.availability_records(car_id, start, end),
                self._data_source.active_bookings(car_id, start, end),
            )
            await self._write(
                self._cache.generate_key(config.key_prefix, car_id, start.isoformat(), end.isoformat()),
                build_availability(car_id, start, end, records, bookings),
                config.ttl_seconds,
            )
        return warm

    async def execute_tasks(
        self,
        tasks: Sequence[WarmingTask],
        max_concurrency: Optional[int] = None,
        batch_size: Optional[int] = None,
    ) -> CacheWarmingMetrics:
        """Run ``tasks`` by descending priority with at most ``max_concurrency`` in flight.

        Tasks run in fixed-size batches of ``batch_size``, one batch at a
        time, so a large fan-out never exceeds the batch size either. Every
        task is timed. A success counts one warmed key; a failure adds
        ``"Task <name>: <error>"`` to the errors. Siblings are never cancelled.
        """
        limit = max_concurrency or self._max_concurrency
        size = batch_size or self._batch_size
        semaphore = asyncio.Semaphore(limit)
        ordered = sorted(tasks, key=lambda task: task.priority, reverse=True)
        self._task_metrics = {}

        async def run(task: WarmingTask) -> Optional[str]:
            async with semaphore:
                started = time.perf_counter()
                try:
                    await task.execute()
                except Exception as e:
                    logger.warning("warming_task_failed", task=task.name, error=str(e))
                    return f"Task {task.name}: {e}"
                finally:
                    self._task_metrics[task.name] = (time.perf_counter() - started) * 1000
                logger.debug("warming_task_completed", task=task.name, duration_ms=self._task_metrics[task.name])
                return None

        start_time = datetime.now(timezone.utc)
        started = time.perf_counter()
        outcomes: List[Optional[str]] = []
        for offset in range(0, len(ordered), size):
            batch = ordered[offset:offset + size]
            outcomes.extend(await asyncio.gather(*(run(task) for task in batch)))
        errors = [outcome for outcome in outcomes if outcome is not None]
        keys_warmed = len(outcomes) - len(errors)

        return CacheWarmingMetrics(
            start_time=start_time,
            end_time=datetime.now(timezone.utc),
            duration_ms=(time.perf_counter() - started) * 1000,
            keys_warmed=keys_warmed,
            errors=errors,
            status=WarmingStatus.from_outcome(keys_warmed, errors),
        )

    async def batch_warm_keys(
        self,
        entries: Sequence[WarmEntry],
        batch_size: Optional[int] = None,
    ) -> Tuple[int, int]:
        """Populate ``entries`` in fixed-size batches, one batch at a time.

        Returns:
            Tuple[int, int]: ``(succeeded, failed)``.
        """
        size = batch_size or self._batch_size
        succeeded = failed = 0

        async def warm(entry: WarmEntry) -> bool:
            try:
                value = await entry.fetcher()
            except Exception as e:
                logger.warning("warm_key_failed", key=entry.key, error=str(e))
                return False
            return await self._cache.set(entry.key, value, entry.ttl_seconds)

        for offset in range(0, len(entries), size):
            batch = entries[offset:offset + size]
            results = await asyncio.gather(*(warm(entry) for entry in batch))
            succeeded += sum(1 for ok in results if ok)
            failed += sum(1 for ok in results if not ok)
        return succeeded, failed

    def warm_on_startup(
        self,
        options: Optional[WarmingOptions] = None,
        delay_seconds: float = 0.0,
    ) -> Optional[asyncio.Task]:
        """Schedule a warming run in the background and return its task.

        Must be called from a running event loop. Errors from the deferred run
        are logged and never propagate.
        """
        if self._data_source is None:
            logger.warning("startup_cache_warming_skipped", reason=DATA_SOURCE_NOT_CONFIGURED)
            return None

        async def deferred() -> None:
            if delay_seconds > 0:
                await asyncio.sleep(delay_seconds)
            logger.info("startup_cache_warming_started")
            try:
                await self.warm_cache(options)
            except Exception as e:
                logger.error("startup_cache_warming_failed", error=str(e))

        self.startup_task = asyncio.get_running_loop().create_task(deferred(), name="startup-cache-warming")
        return self.startup_task
