"""Ingestion — validate a batch, replace the stored readings, queue daily aggregation."""

from dataclasses import dataclass, field
from typing import Any

from config import Settings, configure_logging
from jobs.queue import JobQueue, QueueError
from schemas.jobs import JobKind
from schemas.readings import validate_batch
from storage.readings import ReadingStore


@dataclass
class IngestResult:
    count: int
    field_ids: list[str] = field(default_factory=list)
    job_id: str | None = None


class IngestionService:
    """
    Success means the readings are durably stored. The aggregation job is
    enqueued only after ``replace_all`` returns, and a queue failure is
    logged and swallowed: analytics may lag, ingestion does not fail.
    """

    def __init__(self, store: ReadingStore, queue: JobQueue, settings: Settings):
        self._store = store
        self._queue = queue
        self.log = configure_logging("ingestion", settings.log_level, settings.log_format)

    def ingest(self, payload: Any) -> IngestResult:
        readings = validate_batch(payload)
        count = self._store.replace_all(readings)

        field_ids = list(dict.fromkeys(r.field_id for r in readings))
        result = IngestResult(count=count, field_ids=field_ids)
        try:
            job = self._queue.enqueue(JobKind.AGGREGATE_DAILY, {"fieldIds": field_ids})
            result.job_id = job.id
        except QueueError as e:
            self.log.error("analytics_enqueue_failed", count=count, error=str(e))

        self.log.info(
            "readings_ingested",
            count=count,
            fields=len(field_ids),
            job_id=result.job_id,
        )
        return result
