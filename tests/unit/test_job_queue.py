"""Tests for the Redis-backed job queue."""

import fakeredis
import pytest

from jobs.keys import QueueKeys, now_ms
from jobs.queue import JobQueue, JobStalledError, QueueError
from schemas.jobs import JobKind, JobState
from storage.redis_client import RedisClient


class TestEnqueue:
    def test_enqueue_creates_pending_job(self, queue):
        job = queue.enqueue(JobKind.AGGREGATE_DAILY, {"fieldIds": ["F1"]})
        stored = queue.get(job.id)
        assert stored.state == JobState.PENDING
        assert stored.kind == "aggregateDaily"
        assert stored.payload == {"fieldIds": ["F1"]}
        assert stored.attempts == 0
        assert queue.counts()["pending"] == 1

    def test_job_ids_are_unique(self, queue):
        ids = {queue.enqueue("aggregateDaily").id for _ in range(5)}
        assert len(ids) == 5

    def test_delayed_job_is_not_claimable_yet(self, queue):
        queue.enqueue(JobKind.AGGREGATE_DAILY, delay_ms=60_000)
        assert queue.claim() is None
        counts = queue.counts()
        assert counts["delayed"] == 1
        assert counts["pending"] == 0

    def test_enqueue_failure_raises_queue_error(self, settings):
        server = fakeredis.FakeServer()
        server.connected = False
        client = RedisClient(settings, client=fakeredis.FakeRedis(server=server, decode_responses=True))
        with pytest.raises(QueueError):
            JobQueue(client, settings).enqueue(JobKind.AGGREGATE_DAILY)

    def test_repeatable_enqueues_once_per_interval(self, queue):
        first = queue.enqueue_repeatable(JobKind.CLEAN_OLD_DATA, every_sec=3600)
        second = queue.enqueue_repeatable(JobKind.CLEAN_OLD_DATA, every_sec=3600)
        assert first is not None
        assert second is None
        assert queue.counts()["pending"] == 1


class TestClaim:
    def test_claim_transitions_to_active(self, queue):
        queued = queue.enqueue(JobKind.AGGREGATE_DAILY)
        job = queue.claim()
        assert job.id == queued.id
        assert job.state == JobState.ACTIVE
        assert job.processed_at is not None
        assert queue.counts()["active"] == 1

    def test_claim_empty_queue(self, queue):
        assert queue.claim() is None

    def test_job_is_claimed_only_once(self, queue, redis_client, settings):
        queue.enqueue(JobKind.AGGREGATE_DAILY)
        other_worker = JobQueue(redis_client, settings)
        assert queue.claim() is not None
        assert other_worker.claim() is None

    def test_claims_oldest_due_job_first(self, queue):
        first = queue.enqueue("aggregateDaily")
        queue.enqueue("aggregateDaily", delay_ms=10)
        assert queue.claim().id == first.id


class TestAck:
    def test_ack_completes_job(self, queue):
        queue.enqueue(JobKind.AGGREGATE_DAILY)
        job = queue.claim()
        assert queue.ack(job, {"groups": 2}) is True
        done = queue.get(job.id)
        assert done.state == JobState.COMPLETED
        assert done.result == {"groups": 2}
        counts = queue.counts()
        assert counts["active"] == 0
        assert counts["completed"] == 1

    def test_completed_jobs_are_pruned(self, queue):
        ids = []
        for _ in range(12):
            queue.enqueue(JobKind.AGGREGATE_DAILY)
            job = queue.claim()
            queue.ack(job)
            ids.append(job.id)
        assert queue.counts()["completed"] == 10
        assert queue.get(ids[0]) is None
        assert queue.get(ids[1]) is None
        assert queue.get(ids[-1]).state == JobState.COMPLETED

    def test_ack_without_lease_is_refused(self, queue):
        queue.enqueue(JobKind.AGGREGATE_DAILY)
        job = queue.claim()
        queue.ack(job)
        assert queue.ack(job) is False


class TestFail:
    def test_fail_reschedules_with_attempt_count(self, queue):
        queue.enqueue(JobKind.AGGREGATE_DAILY)
        job = queue.claim()
        assert queue.fail(job, RuntimeError("boom")) == JobState.PENDING
        retried = queue.get(job.id)
        assert retried.state == JobState.PENDING
        assert retried.attempts == 1
        assert retried.last_error == "boom"
        assert queue.claim().id == job.id

    def test_backoff_delays_retry(self, redis_client, settings):
        slow = JobQueue(redis_client, settings.model_copy(update={"queue_backoff_ms": 60_000}))
        slow.enqueue(JobKind.AGGREGATE_DAILY)
        slow.fail(slow.claim(), RuntimeError("boom"))
        assert slow.claim() is None
        assert slow.counts()["delayed"] == 1

    def test_exhausted_job_is_dead_lettered(self, queue):
        queue.enqueue(JobKind.AGGREGATE_DAILY, max_attempts=2)
        job = queue.claim()
        queue.fail(job, RuntimeError("first"))
        job = queue.claim()
        assert queue.fail(job, ValueError("second")) == JobState.FAILED
        dead = queue.get(job.id)
        assert dead.state == JobState.FAILED
        assert dead.attempts == 2
        assert dead.error_type == "ValueError"
        assert "second" in dead.stack_trace
        assert [j.id for j in queue.dead_letters()] == [job.id]
        assert queue.claim() is None

    def test_failed_jobs_are_pruned(self, queue):
        for _ in range(7):
            queue.enqueue(JobKind.AGGREGATE_DAILY, max_attempts=1)
            queue.fail(queue.claim(), RuntimeError("boom"))
        assert queue.counts()["failed"] == 5
        assert len(queue.dead_letters(limit=50)) == 5


class TestStalledJobs:
    def test_expired_lease_is_retried(self, queue):
        queue.enqueue(JobKind.AGGREGATE_DAILY)
        job = queue.claim()
        later = now_ms() + 10 * 60 * 1000
        assert queue.requeue_stalled(now=later) == 1
        stalled = queue.get(job.id)
        assert stalled.state == JobState.PENDING
        assert stalled.attempts == 1
        assert "visibility timeout" in stalled.last_error

    def test_live_lease_is_left_alone(self, queue):
        queue.enqueue(JobKind.AGGREGATE_DAILY)
        queue.claim()
        assert queue.requeue_stalled() == 0
        assert queue.counts()["active"] == 1

    def test_stalled_job_can_be_dead_lettered(self, queue):
        queue.enqueue(JobKind.AGGREGATE_DAILY, max_attempts=1)
        job = queue.claim()
        queue.requeue_stalled(now=now_ms() + 10 * 60 * 1000)
        dead = queue.get(job.id)
        assert dead.state == JobState.FAILED
        assert dead.error_type == JobStalledError.__name__

    def test_reclaimed_job_cannot_be_acked_by_old_owner(self, queue):
        queue.enqueue(JobKind.AGGREGATE_DAILY)
        job = queue.claim()
        queue.requeue_stalled(now=now_ms() + 10 * 60 * 1000)
        assert queue.ack(job) is False

    def test_old_owner_cannot_settle_after_reclaim(self, queue, redis_client, settings, fake_redis):
        queue.enqueue(JobKind.AGGREGATE_DAILY)
        first = queue.claim()
        # let the first lease lapse so the next claim reclaims the job
        fake_redis.zadd(QueueKeys(queue.name).active, {first.id: 0})
        second = JobQueue(redis_client, settings).claim()

        assert second.id == first.id
        assert second.lease != first.lease
        assert queue.ack(first) is False
        assert queue.fail(first, RuntimeError("late")) is None
        assert queue.get(first.id).state == JobState.ACTIVE
        assert queue.ack(second) is True
        assert queue.get(first.id).state == JobState.COMPLETED


class TestUnreadableJobs:
    def test_corrupt_job_is_dropped_on_claim(self, queue, fake_redis):
        queued = queue.enqueue(JobKind.AGGREGATE_DAILY)
        fake_redis.hset(QueueKeys(queue.name).job(queued.id), "attempts", "many")

        assert queue.claim() is None
        assert queue.counts()["active"] == 0
        assert queue.get(queued.id) is None

    def test_queue_keeps_serving_after_corrupt_job(self, queue, fake_redis):
        bad = queue.enqueue(JobKind.AGGREGATE_DAILY)
        good = queue.enqueue(JobKind.CLEAN_OLD_DATA)
        fake_redis.hset(QueueKeys(queue.name).job(bad.id), "payload", "{not json")

        assert queue.claim() is None
        assert queue.claim().id == good.id
