"""Redis-backed job queue: delayed delivery, atomic claim, retry with backoff, dead-lettering."""

import json
import uuid
from typing import Any

from config import Settings, configure_logging
from jobs.dead_letter import DeadLetterQueue
from jobs.errors import JobStalledError, QueueError
from jobs.keys import QueueKeys, holds_lease, now_ms, prune_ledger
from schemas.jobs import AggregationJob, JobKind, JobState
from storage.redis_client import RedisClient


class JobQueue:
    """
    Durable work queue shared by producers (the API) and consumers (workers).

    Jobs wait in a ``pending`` sorted set scored by the time they become
    claimable, so the enqueue delay and retry backoff are both just scores.
    ``claim`` moves one due job into ``active`` under WATCH/MULTI, so two
    workers can never take the same job, and hands the claimer a lease
    token that ``ack`` and ``fail`` must present. The ``active`` score is
    the visibility deadline; jobs still active past it are reclaimed as a
    failed attempt and their old lease stops working. Delivery is
    at-least-once.
    """

    def __init__(self, client: RedisClient, settings: Settings, name: str | None = None):
        self.name = name or settings.queue_name
        self.log = configure_logging("job-queue", settings.log_level, settings.log_format)
        self._client = client
        self._keys = QueueKeys(self.name)
        self._delay_ms = settings.queue_delay_ms
        self._max_attempts = settings.queue_max_attempts
        self._backoff_ms = settings.queue_backoff_ms
        self._keep_completed = settings.queue_keep_completed
        self._keep_failed = settings.queue_keep_failed
        self._visibility_ms = settings.queue_visibility_timeout_sec * 1000
        self._dlq = DeadLetterQueue(client, self._keys, self.log)

    def _execute(self, func) -> Any:
        return self._client.execute(func, f"queue '{self.name}'", QueueError)

    # ─── Producer side ──────────────────────────────────────────────

    def enqueue(
        self,
        kind: JobKind | str,
        payload: dict | None = None,
        delay_ms: int | None = None,
        max_attempts: int | None = None,
        keep_completed: int | None = None,
        keep_failed: int | None = None,
    ) -> AggregationJob:
        """Append a pending job; it becomes claimable after ``delay_ms``."""
        kind = getattr(kind, "value", kind)
        delay = self._delay_ms if delay_ms is None else delay_ms
        created = now_ms()
        keys = self._keys

        def _op(r):
            job = AggregationJob(
                id=str(r.incr(keys.id_counter)),
                kind=kind,
                payload=payload or {},
                max_attempts=max_attempts or self._max_attempts,
                keep_completed=self._keep_completed if keep_completed is None else keep_completed,
                keep_failed=self._keep_failed if keep_failed is None else keep_failed,
                created_at=created,
            )
            pipe = r.pipeline(transaction=True)
            pipe.hset(keys.job(job.id), mapping=job.to_hash())
            pipe.zadd(keys.pending, {job.id: created + delay})
            pipe.execute()
            return job

        job = self._execute(_op)
        self.log.info("job_enqueued", job_id=job.id, kind=kind, delay_ms=delay)
        return job

    def enqueue_repeatable(
        self, kind: JobKind | str, payload: dict | None = None, every_sec: int = 86_400
    ) -> AggregationJob | None:
        """Enqueue at most once per ``every_sec`` across every process sharing the queue."""
        kind = getattr(kind, "value", kind)
        acquired = self._execute(
            lambda r: r.set(self._keys.repeat(kind), now_ms(), nx=True, ex=every_sec)
        )
        if not acquired:
            return None
        return self.enqueue(kind, payload, delay_ms=0)

    # ─── Consumer side ──────────────────────────────────────────────

    def claim(self) -> AggregationJob | None:
        """Atomically move one due pending job to active and return it."""
        self.requeue_stalled()
        now = now_ms()
        lease = uuid.uuid4().hex
        keys = self._keys

        def _txn(pipe):
            due = pipe.zrangebyscore(keys.pending, "-inf", now, start=0, num=1)
            if not due:
                return None
            job_id = due[0]
            pipe.multi()
            pipe.zrem(keys.pending, job_id)
            pipe.zadd(keys.active, {job_id: now + self._visibility_ms})
            pipe.hset(
                keys.job(job_id),
                mapping={"state": JobState.ACTIVE.value, "processed_at": now, "lease": lease},
            )
            return job_id

        job_id = self._execute(
            lambda r: r.transaction(_txn, keys.pending, value_from_callable=True)
        )
        if job_id is None:
            return None
        job = self._load(job_id)
        if job is None:
            return None
        self.log.info("job_claimed", job_id=job.id, kind=job.kind, attempt=job.attempts + 1)
        return job

    def _load(self, job_id: str) -> AggregationJob | None:
        """Read an active job's hash; an unreadable one is dropped from the queue."""
        keys = self._keys
        raw = self._execute(lambda r: r.hgetall(keys.job(job_id)))
        try:
            return AggregationJob.from_hash(raw) if raw else None
        except ValueError as e:
            # pydantic's ValidationError and JSONDecodeError are both ValueErrors
            self.log.error("job_unreadable", job_id=job_id, fields=raw, error=str(e))

            def _op(r):
                pipe = r.pipeline(transaction=True)
                pipe.zrem(keys.active, job_id)
                pipe.delete(keys.job(job_id))
                pipe.execute()

            self._execute(_op)
            return None

    def ack(self, job: AggregationJob, result: Any = None) -> bool:
        """Mark an active job completed. False if its lease was already lost."""
        keys = self._keys
        job_key = keys.job(job.id)
        encoded = json.dumps(result)
        finished = now_ms()

        def _txn(pipe):
            if not holds_lease(pipe, keys, job):
                return False
            pipe.multi()
            pipe.zrem(keys.active, job.id)
            pipe.hset(
                job_key,
                mapping={
                    "state": JobState.COMPLETED.value,
                    "finished_at": finished,
                    "result": encoded,
                },
            )
            pipe.hdel(job_key, "lease")
            pipe.lpush(keys.completed, job.id)
            return True

        acked = self._execute(
            lambda r: r.transaction(_txn, keys.active, job_key, value_from_callable=True)
        )
        if not acked:
            self.log.warning("job_ack_without_lease", job_id=job.id, kind=job.kind)
            return False
        self._execute(lambda r: prune_ledger(r, keys, keys.completed, job.keep_completed))
        self.log.info("job_completed", job_id=job.id, kind=job.kind)
        return True

    def fail(
        self, job: AggregationJob, error: BaseException, now: float | None = None
    ) -> JobState | None:
        """Record a failed attempt: reschedule with backoff, or dead-letter when exhausted.

        Returns the job's new state, or None if the caller's lease was lost.
        """
        keys = self._keys
        job_key = keys.job(job.id)
        now = now if now is not None else now_ms()
        attempts = job.attempts + 1

        if attempts >= job.max_attempts:
            if not self._dlq.send(job, error, attempts, now):
                self.log.warning("job_fail_without_lease", job_id=job.id, kind=job.kind)
                return None
            return JobState.FAILED

        delay = self._backoff_ms * 2 ** (attempts - 1)

        def _txn(pipe):
            if not holds_lease(pipe, keys, job):
                return False
            pipe.multi()
            pipe.zrem(keys.active, job.id)
            pipe.zadd(keys.pending, {job.id: now + delay})
            pipe.hset(
                job_key,
                mapping={
                    "state": JobState.PENDING.value,
                    "attempts": attempts,
                    "last_error": str(error),
                },
            )
            pipe.hdel(job_key, "lease")
            return True

        moved = self._execute(
            lambda r: r.transaction(_txn, keys.active, job_key, value_from_callable=True)
        )
        if not moved:
            self.log.warning("job_fail_without_lease", job_id=job.id, kind=job.kind)
            return None
        self.log.warning(
            "job_retry_scheduled",
            job_id=job.id,
            kind=job.kind,
            attempts=attempts,
            max_attempts=job.max_attempts,
            backoff_ms=delay,
            error=str(error),
        )
        return JobState.PENDING

    def requeue_stalled(self, now: float | None = None) -> int:
        """Settle active jobs whose visibility deadline has passed as failed attempts."""
        now = now if now is not None else now_ms()
        keys = self._keys
        stalled = self._execute(lambda r: r.zrangebyscore(keys.active, "-inf", now))
        for job_id in stalled:
            job = self._load(job_id)
            if job is None:
                self._execute(lambda r, jid=job_id: r.zrem(keys.active, jid))
                continue
            self.log.warning("job_stalled", job_id=job.id, kind=job.kind)
            self.fail(job, JobStalledError(f"job {job.id} exceeded its visibility timeout"), now=now)
        return len(stalled)

    # ─── Inspection ─────────────────────────────────────────────────

    def get(self, job_id: str) -> AggregationJob | None:
        raw = self._execute(lambda r: r.hgetall(self._keys.job(job_id)))
        return AggregationJob.from_hash(raw) if raw else None

    def counts(self) -> dict[str, int]:
        keys = self._keys
        now = now_ms()

        def _op(r):
            pipe = r.pipeline(transaction=False)
            pipe.zcount(keys.pending, "-inf", now)
            pipe.zcount(keys.pending, f"({now}", "+inf")
            pipe.zcard(keys.active)
            pipe.llen(keys.completed)
            pipe.llen(keys.failed)
            return pipe.execute()

        waiting, delayed, active, completed, failed = self._execute(_op)
        return {
            "pending": waiting,
            "delayed": delayed,
            "active": active,
            "completed": completed,
            "failed": failed,
        }

    def dead_letters(self, limit: int = 5) -> list[AggregationJob]:
        return self._dlq.entries(limit)
