"""Redis key layout of a named job queue and ledger trimming."""

import time

import redis

from schemas.jobs import AggregationJob


def now_ms() -> float:
    return time.time() * 1000


class QueueKeys:
    """
    queue:<name>:id          INCR counter for job ids
    queue:<name>:job:<id>    hash, one per job (see AggregationJob.to_hash)
    queue:<name>:pending     zset, score = earliest claim time (ms)
    queue:<name>:active      zset, score = visibility deadline (ms)
    queue:<name>:completed   list of job ids, newest first
    queue:<name>:failed      list of job ids, newest first (dead letters)
    queue:<name>:repeat:<k>  guard for repeatable jobs
    """

    def __init__(self, name: str):
        self.prefix = f"queue:{name}"
        self.id_counter = f"{self.prefix}:id"
        self.pending = f"{self.prefix}:pending"
        self.active = f"{self.prefix}:active"
        self.completed = f"{self.prefix}:completed"
        self.failed = f"{self.prefix}:failed"

    def job(self, job_id: str) -> str:
        return f"{self.prefix}:job:{job_id}"

    def repeat(self, kind: str) -> str:
        return f"{self.prefix}:repeat:{kind}"


def prune_ledger(r: redis.Redis, keys: QueueKeys, ledger: str, keep: int) -> int:
    """Trim a completed/failed ledger to its newest ``keep`` ids, deleting the rest."""
    def _txn(pipe):
        stale = pipe.lrange(ledger, max(keep, 0), -1)
        if not stale:
            return 0
        pipe.multi()
        if keep > 0:
            pipe.ltrim(ledger, 0, keep - 1)
        else:
            pipe.delete(ledger)
        for job_id in stale:
            pipe.delete(keys.job(job_id))
        return len(stale)

    return r.transaction(_txn, ledger, value_from_callable=True)


def holds_lease(pipe, keys: QueueKeys, job: AggregationJob) -> bool:
    """True while ``job`` is active under the claim token it was handed.

    Call inside a transaction that WATCHes ``keys.active`` and the job hash.
    """
    if pipe.zscore(keys.active, job.id) is None:
        return False
    return job.lease is not None and pipe.hget(keys.job(job.id), "lease") == job.lease
