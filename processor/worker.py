"""Aggregation worker — claims jobs, dispatches by kind, settles them on the queue."""

import json
import signal
import time
from datetime import datetime, timezone

from config import Settings, configure_logging
from jobs.queue import JobQueue, QueueError
from processor.handlers import JobProcessingError, JobRegistry
from schemas.jobs import AggregationJob


class AggregationWorker:
    """
    Polls the queue, runs the handler registered for each job's kind and
    acks or fails the job. Handler errors go through the queue's retry /
    dead-letter path and queue outages back off; neither stops the loop.

    Several workers may run side by side: the queue's atomic claim is the
    only coordination they need.
    """

    def __init__(self, queue: JobQueue, registry: JobRegistry, settings: Settings):
        self.settings = settings
        self.log = configure_logging("aggregation-worker", settings.log_level, settings.log_format)
        self._queue = queue
        self._registry = registry
        self._poll_interval = settings.worker_poll_interval_sec
        self._running = True
        self._processed = 0
        self._errors = 0

    def install_signal_handlers(self):
        signal.signal(signal.SIGTERM, self._shutdown)
        signal.signal(signal.SIGINT, self._shutdown)

    def process(self, job: AggregationJob) -> bool:
        """Run one claimed job to a settled state. True when it was acked."""
        handler = self._registry.get(job.kind)
        if handler is None:
            self.log.warning("unknown_job_kind", job_id=job.id, kind=job.kind)
            self._queue.ack(job, {"success": True, "skipped": True})
            return True

        started = time.monotonic()
        try:
            outcome = handler(job)
            # stored on the job as JSON; an unencodable outcome is a failed attempt
            json.dumps(outcome)
        except Exception as e:
            self._errors += 1
            error = e
            if not isinstance(e, JobProcessingError):
                error = JobProcessingError(f"{job.kind}: {e}")
                error.__cause__ = e
            self.log.error(
                "job_processing_error",
                job_id=job.id,
                kind=job.kind,
                attempt=job.attempts + 1,
                error=str(e),
            )
            self._queue.fail(job, error)
            return False

        self._processed += 1
        acked = self._queue.ack(
            job,
            {
                "success": True,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "outcome": outcome,
            },
        )
        self.log.info(
            "job_processed",
            job_id=job.id,
            kind=job.kind,
            duration_ms=round((time.monotonic() - started) * 1000, 2),
        )
        return acked

    def run_once(self) -> AggregationJob | None:
        """Claim and process at most one job."""
        job = self._queue.claim()
        if job is not None:
            self.process(job)
        return job

    def run(self):
        """Main loop: poll for jobs until a shutdown signal arrives."""
        self.log.info("worker_started", queue=self._queue.name, kinds=self._registry.kinds)
        try:
            while self._running:
                try:
                    job = self.run_once()
                except QueueError as e:
                    self.log.error("queue_unavailable", error=str(e))
                    time.sleep(self._poll_interval * 5)
                    continue
                except Exception as e:
                    self._errors += 1
                    self.log.error("worker_loop_error", error=str(e), exc_info=True)
                    time.sleep(self._poll_interval * 5)
                    continue
                if job is None:
                    time.sleep(self._poll_interval)
        except KeyboardInterrupt:
            pass
        finally:
            self.log.info("worker_stopped", processed=self._processed, errors=self._errors)

    def stop(self):
        self._running = False

    def _shutdown(self, signum, frame):
        self.log.info("shutdown_signal", signal=signum)
        self._running = False

    @property
    def stats(self) -> dict[str, int]:
        return {"processed": self._processed, "errors": self._errors}
