"""Dead letter ledger — terminal home of jobs that exhausted their attempts."""

import traceback

from jobs.errors import QueueError
from jobs.keys import QueueKeys, holds_lease, prune_ledger
from schemas.jobs import AggregationJob, JobState
from storage.redis_client import RedisClient


class DeadLetterQueue:
    def __init__(self, client: RedisClient, keys: QueueKeys, log):
        self._client = client
        self._keys = keys
        self.log = log

    def _execute(self, func):
        return self._client.execute(func, "dead letter ledger", QueueError)

    def send(
        self,
        job: AggregationJob,
        error: BaseException,
        attempts: int,
        failed_at: float,
    ) -> bool:
        """Move an active job to the failed ledger with its error context.

        Returns False when the caller no longer holds the job's lease
        (it was reclaimed or already settled).
        """
        envelope = {
            "state": JobState.FAILED.value,
            "attempts": attempts,
            "finished_at": failed_at,
            "last_error": str(error),
            "error_type": type(error).__name__,
            "stack_trace": "".join(traceback.format_exception(error)),
        }
        keys = self._keys
        job_key = keys.job(job.id)

        def _txn(pipe):
            if not holds_lease(pipe, keys, job):
                return False
            pipe.multi()
            pipe.zrem(keys.active, job.id)
            pipe.hset(job_key, mapping=envelope)
            pipe.hdel(job_key, "lease")
            pipe.lpush(keys.failed, job.id)
            return True

        moved = self._execute(
            lambda r: r.transaction(_txn, keys.active, job_key, value_from_callable=True)
        )
        if moved:
            self._execute(lambda r: prune_ledger(r, keys, keys.failed, job.keep_failed))
            self.log.warning(
                "job_dead_lettered",
                job_id=job.id,
                kind=job.kind,
                attempts=attempts,
                error_type=envelope["error_type"],
                error=envelope["last_error"],
            )
        return moved

    def entries(self, limit: int = 5) -> list[AggregationJob]:
        """Most recent dead letters, newest first."""
        keys = self._keys

        def _op(r):
            job_ids = r.lrange(keys.failed, 0, limit - 1)
            pipe = r.pipeline(transaction=False)
            for job_id in job_ids:
                pipe.hgetall(keys.job(job_id))
            return [raw for raw in pipe.execute() if raw]

        return [AggregationJob.from_hash(raw) for raw in self._execute(_op)]
