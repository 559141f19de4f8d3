"""Job-kind registry and the analytics job handlers."""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from zoneinfo import ZoneInfo

from config import Settings, configure_logging
from schemas.jobs import AggregationJob, JobKind
from storage.cache import ResultCache
from storage.readings import ReadingFilter, ReadingStore

JobHandler = Callable[[AggregationJob], Any]


class JobProcessingError(Exception):
    """A job handler failed; the queue decides between retry and dead-letter."""


class JobRegistry:
    """Maps job kinds to handlers. Kinds without a handler are a no-op."""

    def __init__(self):
        self._handlers: dict[str, JobHandler] = {}

    def register(self, kind: JobKind | str, handler: JobHandler):
        self._handlers[getattr(kind, "value", kind)] = handler

    def get(self, kind: str) -> JobHandler | None:
        return self._handlers.get(kind)

    @property
    def kinds(self) -> list[str]:
        return sorted(self._handlers)


class AnalyticsJobs:
    """
    aggregateDaily: recompute today's (field_id, sensor_type) statistics from
    scratch and overwrite the day's cache entry. Re-running it over
    unchanged readings writes the same value.

    cleanOldData: drop readings older than the retention window.
    """

    def __init__(
        self,
        store: ReadingStore,
        cache: ResultCache,
        settings: Settings,
        clock: Callable[[], datetime] | None = None,
    ):
        self._store = store
        self._cache = cache
        self._tz = ZoneInfo(settings.aggregation_timezone)
        self._retention = timedelta(days=settings.retention_days)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.log = configure_logging("analytics-jobs", settings.log_level, settings.log_format)

    def day_window(self) -> tuple[datetime, datetime]:
        """Local midnight to now, in the configured aggregation timezone."""
        now = self._clock().astimezone(self._tz)
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return midnight, now

    def aggregate_daily(self, job: AggregationJob) -> dict:
        field_ids = job.payload.get("fieldIds") or []
        midnight, _ = self.day_window()
        scope = ReadingFilter(field_ids=frozenset(field_ids) if field_ids else None)
        groups = self._store.aggregate_grouped(
            scope, group_by=("field_id", "sensor_type"), window_start=midnight
        )
        stats = [
            {
                "field_id": g.key["field_id"],
                "sensor_type": g.key["sensor_type"],
                "avgValue": g.avg,
                "minValue": g.min_val,
                "maxValue": g.max_val,
                "count": g.count,
            }
            for g in groups
        ]
        cache_key = self._cache.set_daily_stats(midnight.date(), stats)
        self.log.info(
            "daily_stats_cached",
            job_id=job.id,
            cache_key=cache_key,
            groups=len(stats),
            scoped_fields=len(field_ids),
        )
        return {"cacheKey": cache_key, "groups": len(stats)}

    def clean_old_data(self, job: AggregationJob) -> dict:
        cutoff = self._clock() - self._retention
        removed = self._store.delete_older_than(cutoff)
        self.log.info("old_readings_removed", job_id=job.id, removed=removed, cutoff=cutoff.isoformat())
        return {"removed": removed}


def build_registry(
    store: ReadingStore,
    cache: ResultCache,
    settings: Settings,
    clock: Callable[[], datetime] | None = None,
) -> JobRegistry:
    jobs = AnalyticsJobs(store, cache, settings, clock=clock)
    registry = JobRegistry()
    registry.register(JobKind.AGGREGATE_DAILY, jobs.aggregate_daily)
    registry.register(JobKind.CLEAN_OLD_DATA, jobs.clean_old_data)
    return registry
