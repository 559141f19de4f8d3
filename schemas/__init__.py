from .readings import InvalidBatchError, SensorReading, SensorType, validate_batch
from .jobs import AggregationJob, JobKind, JobState

__all__ = [
    "AggregationJob",
    "InvalidBatchError",
    "JobKind",
    "JobState",
    "SensorReading",
    "SensorType",
    "validate_batch",
]
