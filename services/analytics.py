"""Ad-hoc analytics computed straight from the reading store (not from the cache)."""

from datetime import datetime, timedelta, timezone
from typing import Callable

from config import Settings
from schemas.readings import SensorType
from storage.readings import ReadingFilter, ReadingStore

FIELD_SUB_AVERAGES = {
    "avgSoilMoisture": SensorType.SOIL_MOISTURE,
    "avgTemperature": SensorType.TEMPERATURE,
}


def iso(moment: datetime | None) -> str | None:
    return moment.isoformat() if moment is not None else None


class AnalyticsService:
    def __init__(
        self,
        store: ReadingStore,
        settings: Settings,
        clock: Callable[[], datetime] | None = None,
    ):
        self._store = store
        self._sample_limit = settings.analytics_sample_limit
        self._recent_count = settings.analytics_recent_count
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def sensor_summary(self, field_id: str | None, sensor_type: SensorType) -> dict | None:
        """Stats over the newest readings of one sensor type, or None if there are none."""
        readings = list(self._store.query(
            ReadingFilter(field_id=field_id, sensor_type=sensor_type),
            limit=self._sample_limit,
        ))
        if not readings:
            return None
        values = [r.reading_value for r in readings]
        return {
            "sensor_type": sensor_type.value,
            "average": round(sum(values) / len(values), 2),
            "min": min(values),
            "max": max(values),
            "unit": readings[0].unit,
            "count": len(readings),
            "recent_readings": [
                {"timestamp": iso(r.timestamp), "value": r.reading_value, "field_id": r.field_id}
                for r in readings[: self._recent_count]
            ],
        }

    def hourly_trends(self, field_id: str | None, hours: int) -> list[dict]:
        since = self._clock() - timedelta(hours=hours)
        groups = self._store.aggregate_grouped(
            ReadingFilter(field_id=field_id),
            group_by=("sensor_type", "hour", "field_id"),
            window_start=since,
        )
        trends = [
            {
                "sensor_type": g.key["sensor_type"],
                "hour": g.key["hour"],
                "field_id": g.key["field_id"],
                "average": g.avg,
                "count": g.count,
                "latest": iso(g.latest),
            }
            for g in groups
        ]
        return sorted(trends, key=lambda t: t["hour"])

    def field_stats(self, field_id: str | None) -> list[dict]:
        groups = self._store.aggregate_grouped(
            ReadingFilter(field_id=field_id),
            group_by=("field_id",),
            sub_averages=FIELD_SUB_AVERAGES,
        )
        stats = [
            {
                "field_id": g.key["field_id"],
                "totalReadings": g.count,
                "lastReading": iso(g.latest),
                "sensorTypes": g.sensor_types,
                **g.sub_averages,
            }
            for g in groups
        ]
        return sorted(stats, key=lambda s: s["totalReadings"], reverse=True)

    def build(self, field_id: str | None = None, hours: int = 24) -> dict:
        """Full analytics payload; ``hours`` bounds the hourly trends only."""
        analytics = [
            summary
            for summary in (self.sensor_summary(field_id, t) for t in SensorType)
            if summary is not None
        ]
        field_stats = self.field_stats(field_id)
        scope = ReadingFilter(field_id=field_id)
        latest = self._store.latest(scope)
        return {
            "success": True,
            "summary": {
                "totalReadings": self._store.count(scope),
                "latestReading": iso(latest.timestamp) if latest else None,
                "fieldsCount": len(field_stats),
                "hoursAnalyzed": hours,
            },
            "analytics": analytics,
            "fieldStats": field_stats,
            "hourlyTrends": self.hourly_trends(field_id, hours),
            "generatedAt": self._clock().isoformat(),
        }
