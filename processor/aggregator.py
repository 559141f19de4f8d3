"""Grouped aggregation engine — avg/min/max/count partitioned by reading attributes."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Mapping, Sequence

from schemas.readings import SensorReading

GROUP_KEYS = ("field_id", "sensor_type", "hour")


@dataclass
class GroupResult:
    key: dict
    count: int
    total: float
    avg: float
    min_val: float
    max_val: float
    latest: datetime
    sensor_types: list[str] = field(default_factory=list)
    sub_averages: dict[str, float | None] = field(default_factory=dict)


class GroupAccumulator:
    """Running statistics for one group; values are never retained."""

    __slots__ = ("count", "total", "min_val", "max_val", "latest", "sensor_types", "_sub")

    def __init__(self, sub_average_names: Iterable[str] = ()):
        self.count = 0
        self.total = 0.0
        self.min_val = float("inf")
        self.max_val = float("-inf")
        self.latest: datetime | None = None
        self.sensor_types: set[str] = set()
        # name -> [sum, count]
        self._sub: dict[str, list[float]] = {name: [0.0, 0] for name in sub_average_names}

    def add(self, reading: SensorReading, sub_name: str | None = None):
        value = reading.reading_value
        self.count += 1
        self.total += value
        self.min_val = min(self.min_val, value)
        self.max_val = max(self.max_val, value)
        if self.latest is None or reading.timestamp > self.latest:
            self.latest = reading.timestamp
        self.sensor_types.add(reading.sensor_type.value)
        if sub_name is not None:
            bucket = self._sub[sub_name]
            bucket[0] += value
            bucket[1] += 1

    def compute(self, key: dict) -> GroupResult:
        return GroupResult(
            key=key,
            count=self.count,
            total=self.total,
            avg=self.total / self.count,
            min_val=self.min_val,
            max_val=self.max_val,
            latest=self.latest,
            sensor_types=sorted(self.sensor_types),
            sub_averages={
                name: (total / n if n else None) for name, (total, n) in self._sub.items()
            },
        )


def group_value(reading: SensorReading, key: str):
    if key == "hour":
        return reading.timestamp.hour  # timestamps are normalized to UTC
    if key == "sensor_type":
        return reading.sensor_type.value
    return reading.field_id


class GroupedAggregator:
    """
    Accumulates readings into groups keyed by any subset of
    ``field_id``, ``sensor_type`` and ``hour`` (UTC hour-of-day).

    ``sub_averages`` maps an output name to a sensor type; each group then
    also reports the average over only that sensor type's readings, e.g.
    ``{"avgTemperature": "temperature"}`` on a per-field grouping.
    """

    def __init__(
        self,
        group_by: Sequence[str],
        sub_averages: Mapping[str, str] | None = None,
    ):
        if not group_by:
            raise ValueError("group_by must name at least one key")
        unknown = [key for key in group_by if key not in GROUP_KEYS]
        if unknown:
            raise ValueError(f"Unsupported group keys: {unknown}; expected a subset of {GROUP_KEYS}")
        self.group_by = tuple(group_by)
        self._sub_by_type: dict[str, str] = {}
        for name, sensor_type in (sub_averages or {}).items():
            self._sub_by_type[getattr(sensor_type, "value", sensor_type)] = name
        self._groups: dict[tuple, GroupAccumulator] = {}

    def add(self, reading: SensorReading):
        group_key = tuple(group_value(reading, key) for key in self.group_by)
        acc = self._groups.get(group_key)
        if acc is None:
            acc = self._groups[group_key] = GroupAccumulator(self._sub_by_type.values())
        acc.add(reading, self._sub_by_type.get(reading.sensor_type.value))

    def extend(self, readings: Iterable[SensorReading]) -> "GroupedAggregator":
        for reading in readings:
            self.add(reading)
        return self

    def results(self) -> list[GroupResult]:
        """Group results ordered by their key values."""
        return [
            acc.compute(dict(zip(self.group_by, group_key)))
            for group_key, acc in sorted(self._groups.items(), key=lambda item: item[0])
        ]
