"""Canonical sensor reading schema — single source of truth for the reading shape."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictStr
from pydantic import ValidationError, field_validator


class SensorType(str, Enum):
    SOIL_MOISTURE = "soil_moisture"
    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"
    PH = "ph"
    SUNLIGHT = "sunlight"
    RAINFALL = "rainfall"
    WIND_SPEED = "wind_speed"
    SOIL_NITROGEN = "soil_nitrogen"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SensorReading(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=utcnow)
    field_id: StrictStr = Field(min_length=1)
    sensor_type: SensorType
    reading_value: float = Field(strict=True, allow_inf_nan=False)
    unit: StrictStr = Field(min_length=1)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _default_missing_timestamp(cls, value: Any) -> Any:
        if value is None or value == "":
            return utcnow()
        return value

    @field_validator("timestamp")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class InvalidBatchError(ValueError):
    """A batch was rejected as a whole; ``errors`` lists per-index reasons."""

    def __init__(self, message: str, errors: list[dict] | None = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []


def validate_batch(items: Any) -> list[SensorReading]:
    """Validate every candidate reading, all-or-nothing."""
    if not isinstance(items, list):
        raise InvalidBatchError("Request body must be an array")
    if not items:
        raise InvalidBatchError("No sensor readings provided")

    readings: list[SensorReading] = []
    errors: list[dict] = []
    for index, item in enumerate(items):
        if isinstance(item, SensorReading):
            readings.append(item)
            continue
        if not isinstance(item, dict):
            errors.append({"index": index, "reason": "reading must be an object"})
            continue
        try:
            readings.append(SensorReading.model_validate(item))
        except ValidationError as exc:
            for err in exc.errors():
                loc = ".".join(str(part) for part in err["loc"]) or "reading"
                errors.append({"index": index, "reason": f"{loc}: {err['msg']}"})

    if errors:
        raise InvalidBatchError("Invalid reading data", errors)
    return readings
