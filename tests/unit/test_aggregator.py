"""Tests for the grouped aggregation engine."""

from datetime import datetime, timezone

import pytest

from processor.aggregator import GroupAccumulator, GroupedAggregator
from schemas.readings import SensorReading


def make(field_id, sensor_type, value, hour=8, minute=0):
    return SensorReading(
        timestamp=datetime(2026, 3, 10, hour, minute, tzinfo=timezone.utc),
        field_id=field_id,
        sensor_type=sensor_type,
        reading_value=value,
        unit="u",
    )


class TestGroupAccumulator:
    def test_multiple_values(self):
        acc = GroupAccumulator()
        for v in [10, 20, 30, 40, 50]:
            acc.add(make("F1", "temperature", float(v)))
        result = acc.compute({"field_id": "F1"})
        assert result.count == 5
        assert result.avg == 30.0
        assert result.min_val == 10.0
        assert result.max_val == 50.0
        assert result.total == 150.0

    def test_latest_is_max_timestamp(self):
        acc = GroupAccumulator()
        acc.add(make("F1", "temperature", 1.0, hour=9))
        acc.add(make("F1", "temperature", 2.0, hour=7))
        assert acc.compute({}).latest.hour == 9


class TestGroupedAggregator:
    def test_group_by_field_and_sensor(self):
        agg = GroupedAggregator(("field_id", "sensor_type"))
        agg.extend([
            make("F1", "temperature", 10.0),
            make("F1", "temperature", 20.0),
            make("F1", "temperature", 30.0),
            make("F1", "humidity", 55.0),
            make("F2", "temperature", 5.0),
        ])
        results = agg.results()
        assert [r.key for r in results] == [
            {"field_id": "F1", "sensor_type": "humidity"},
            {"field_id": "F1", "sensor_type": "temperature"},
            {"field_id": "F2", "sensor_type": "temperature"},
        ]
        temp = results[1]
        assert (temp.avg, temp.min_val, temp.max_val, temp.count) == (20.0, 10.0, 30.0, 3)

    def test_group_by_hour(self):
        agg = GroupedAggregator(("sensor_type", "hour"))
        agg.extend([
            make("F1", "temperature", 10.0, hour=8),
            make("F1", "temperature", 14.0, hour=8, minute=30),
            make("F2", "temperature", 20.0, hour=9),
        ])
        results = agg.results()
        assert [(r.key["hour"], r.count, r.avg) for r in results] == [(8, 2, 12.0), (9, 1, 20.0)]

    def test_field_sub_averages(self):
        agg = GroupedAggregator(
            ("field_id",),
            sub_averages={"avgSoilMoisture": "soil_moisture", "avgTemperature": "temperature"},
        )
        agg.extend([
            make("F1", "soil_moisture", 30.0),
            make("F1", "soil_moisture", 40.0),
            make("F1", "temperature", 20.0),
            make("F1", "humidity", 60.0),
        ])
        (result,) = agg.results()
        assert result.count == 4
        assert result.sub_averages == {"avgSoilMoisture": 35.0, "avgTemperature": 20.0}
        assert result.sensor_types == ["humidity", "soil_moisture", "temperature"]

    def test_sub_average_without_matching_readings_is_none(self):
        agg = GroupedAggregator(("field_id",), sub_averages={"avgTemperature": "temperature"})
        agg.add(make("F1", "ph", 6.5))
        assert agg.results()[0].sub_averages == {"avgTemperature": None}

    def test_empty_aggregator(self):
        agg = GroupedAggregator(("field_id",))
        assert agg.results() == []

    def test_unknown_group_key_rejected(self):
        with pytest.raises(ValueError):
            GroupedAggregator(("field_id", "unit"))

    def test_empty_group_by_rejected(self):
        with pytest.raises(ValueError):
            GroupedAggregator(())
