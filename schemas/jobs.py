"""Aggregation job schema shared by the queue, the worker and the API."""

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class JobKind(str, Enum):
    AGGREGATE_DAILY = "aggregateDaily"
    CLEAN_OLD_DATA = "cleanOldData"


class JobState(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class AggregationJob(BaseModel):
    id: str
    kind: str  # open set; see JobKind for the built-in kinds
    payload: dict[str, Any] = Field(default_factory=dict)
    state: JobState = JobState.PENDING
    attempts: int = 0
    max_attempts: int = 3
    keep_completed: int = 10
    keep_failed: int = 5
    created_at: float = Field(description="Unix epoch in milliseconds")
    processed_at: float | None = None
    finished_at: float | None = None
    last_error: str | None = None
    error_type: str | None = None
    stack_trace: str | None = None
    result: Any = None
    lease: str | None = None  # claim token of the current owner while active

    def to_hash(self) -> dict[str, str]:
        """Flatten into a Redis hash mapping (None fields omitted)."""
        data = self.model_dump(mode="json")
        mapping = {}
        for key, value in data.items():
            if value is None:
                continue
            if key in ("payload", "result"):
                mapping[key] = json.dumps(value)
            else:
                mapping[key] = str(value)
        return mapping

    @classmethod
    def from_hash(cls, raw: dict[str, str]) -> "AggregationJob":
        data: dict[str, Any] = dict(raw)
        for key in ("payload", "result"):
            if key in data:
                data[key] = json.loads(data[key])
        return cls.model_validate(data)
