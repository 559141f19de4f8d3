"""Tests for reading and job schemas."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from schemas.jobs import AggregationJob, JobState
from schemas.readings import InvalidBatchError, SensorReading, SensorType, validate_batch


def _reading(**overrides):
    data = {
        "timestamp": "2026-03-10T08:00:00Z",
        "field_id": "F1",
        "sensor_type": "temperature",
        "reading_value": 21.5,
        "unit": "C",
    }
    data.update(overrides)
    return data


class TestSensorReading:
    def test_valid_reading(self):
        r = SensorReading.model_validate(_reading())
        assert r.field_id == "F1"
        assert r.sensor_type == SensorType.TEMPERATURE
        assert r.reading_value == 21.5
        assert r.timestamp == datetime(2026, 3, 10, 8, tzinfo=timezone.utc)

    def test_invalid_sensor_type(self):
        with pytest.raises(ValidationError):
            SensorReading.model_validate(_reading(sensor_type="pressure"))

    def test_all_sensor_types_accepted(self):
        for sensor_type in SensorType:
            r = SensorReading.model_validate(_reading(sensor_type=sensor_type.value))
            assert r.sensor_type is sensor_type

    def test_missing_timestamp_defaults_to_now(self):
        before = datetime.now(timezone.utc)
        data = _reading()
        del data["timestamp"]
        r = SensorReading.model_validate(data)
        assert r.timestamp >= before

    def test_null_timestamp_defaults_to_now(self):
        r = SensorReading.model_validate(_reading(timestamp=None))
        assert r.timestamp.tzinfo is not None

    def test_naive_timestamp_is_utc(self):
        r = SensorReading.model_validate(_reading(timestamp="2026-03-10T08:00:00"))
        assert r.timestamp.tzinfo == timezone.utc
        assert r.timestamp.hour == 8

    def test_offset_timestamp_normalized_to_utc(self):
        r = SensorReading.model_validate(_reading(timestamp="2026-03-10T10:00:00+02:00"))
        assert r.timestamp.hour == 8

    def test_integer_value_accepted(self):
        r = SensorReading.model_validate(_reading(reading_value=20))
        assert r.reading_value == 20.0

    def test_string_value_rejected(self):
        with pytest.raises(ValidationError):
            SensorReading.model_validate(_reading(reading_value="21.5"))

    def test_non_string_field_id_rejected(self):
        with pytest.raises(ValidationError):
            SensorReading.model_validate(_reading(field_id=7))

    def test_empty_unit_rejected(self):
        with pytest.raises(ValidationError):
            SensorReading.model_validate(_reading(unit=""))


class TestValidateBatch:
    def test_valid_batch(self):
        readings = validate_batch([_reading(), _reading(field_id="F2")])
        assert [r.field_id for r in readings] == ["F1", "F2"]

    def test_not_a_list(self):
        with pytest.raises(InvalidBatchError, match="Request body must be an array"):
            validate_batch({"field_id": "F1"})

    def test_empty_batch(self):
        with pytest.raises(InvalidBatchError, match="No sensor readings provided"):
            validate_batch([])

    def test_reports_every_invalid_element(self):
        bad = _reading()
        del bad["unit"]
        with pytest.raises(InvalidBatchError) as exc_info:
            validate_batch([_reading(), bad, "not-an-object", _reading(sensor_type="x")])
        indexes = {e["index"] for e in exc_info.value.errors}
        assert indexes == {1, 2, 3}
        assert exc_info.value.message == "Invalid reading data"


class TestAggregationJob:
    def test_hash_round_trip(self):
        job = AggregationJob(
            id="7",
            kind="aggregateDaily",
            payload={"fieldIds": ["F1", "F2"]},
            attempts=1,
            created_at=1700000000000.0,
        )
        restored = AggregationJob.from_hash(job.to_hash())
        assert restored == job
        assert restored.state == JobState.PENDING

    def test_none_fields_left_out_of_hash(self):
        job = AggregationJob(id="1", kind="cleanOldData", created_at=1.0)
        mapping = job.to_hash()
        assert "last_error" not in mapping
        assert mapping["payload"] == "{}"
