"""Shared test fixtures."""

from datetime import datetime, timezone

import fakeredis
import pytest

from config import Settings
from jobs.queue import JobQueue
from storage.cache import ResultCache
from storage.readings import ReadingStore
from storage.redis_client import RedisClient

FIXED_NOW = datetime(2026, 3, 10, 15, 0, tzinfo=timezone.utc)


@pytest.fixture
def settings():
    """Test settings: no enqueue debounce, no retry backoff."""
    return Settings(
        redis_url="redis://localhost:6379/1",
        queue_delay_ms=0,
        queue_backoff_ms=0,
        worker_poll_interval_sec=0.01,
        log_level="WARNING",
    )


@pytest.fixture
def fake_redis():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def redis_client(settings, fake_redis):
    return RedisClient(settings, client=fake_redis)


@pytest.fixture
def store(redis_client):
    # Small pages so multi-page reads are exercised.
    return ReadingStore(redis_client, page_size=3)


@pytest.fixture
def cache(redis_client):
    return ResultCache(redis_client)


@pytest.fixture
def queue(redis_client, settings):
    return JobQueue(redis_client, settings)


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def clock(now):
    return lambda: now
