"""Shared Redis handle: connection pooling, retry with backoff and a circuit breaker."""

import time
from typing import Any, Callable

import redis

from config import Settings, configure_logging


class CircuitBreaker:
    """
    closed    -> calls go through; consecutive connection failures are counted.
    open      -> reached ``failure_threshold``; calls fail fast.
    half_open -> ``recovery_timeout`` elapsed; the next call decides.
    """

    def __init__(self, failure_threshold: int = 5, recovery_timeout: float = 30.0):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.state = "closed"
        self.failures = 0
        self.opened_at = 0.0

    def allow(self) -> bool:
        if self.state != "open":
            return True
        if time.time() - self.opened_at > self.recovery_timeout:
            self.state = "half_open"
            return True
        return False

    def succeeded(self):
        self.failures = 0
        self.state = "closed"

    def failed(self):
        self.failures += 1
        if self.state == "half_open" or self.failures >= self.failure_threshold:
            self.state = "open"
            self.opened_at = time.time()


class CircuitOpenError(Exception):
    pass


class StoreError(Exception):
    """I/O failure against Redis-backed storage (readings or result cache)."""


class RedisClient:
    """Redis handle shared by the reading store, the result cache and the job queue.

    Pass ``client`` to reuse an existing connection (tests hand in a fake
    server); otherwise a pool is built from ``settings.redis_url`` and owned
    by this object.
    """

    def __init__(self, settings: Settings, client: redis.Redis | None = None):
        self.log = configure_logging("redis-client", settings.log_level, settings.log_format)
        self._client = client
        self._pool: redis.ConnectionPool | None = None
        if client is None:
            self._pool = redis.ConnectionPool.from_url(
                settings.redis_url,
                max_connections=settings.redis_pool_size,
                decode_responses=True,
            )
            self.log.info("redis_pool_created", url=settings.redis_url, pool_size=settings.redis_pool_size)
        self._retries = settings.redis_max_retries
        self._circuit = CircuitBreaker(
            failure_threshold=settings.redis_failure_threshold,
            recovery_timeout=settings.redis_recovery_timeout_sec,
        )

    def get_client(self) -> redis.Redis:
        if self._client is not None:
            return self._client
        return redis.Redis(connection_pool=self._pool)

    def execute_with_retry(self, func: Callable[[redis.Redis], Any]) -> Any:
        """Run ``func`` against Redis, retrying connection errors with backoff.

        Raises the last redis error once retries are spent, or
        ``CircuitOpenError`` without touching Redis while the breaker is open.
        """
        if not self._circuit.allow():
            raise CircuitOpenError("Redis circuit breaker is open")

        for attempt in range(self._retries):
            try:
                result = func(self.get_client())
            except (redis.ConnectionError, redis.TimeoutError) as e:
                self._circuit.failed()
                if attempt == self._retries - 1 or not self._circuit.allow():
                    raise
                backoff = 0.1 * (2 ** attempt)
                self.log.warning("redis_retry", attempt=attempt + 1, backoff=backoff, error=str(e))
                time.sleep(backoff)
            else:
                self._circuit.succeeded()
                return result

    def execute(
        self,
        func: Callable[[redis.Redis], Any],
        resource: str = "redis",
        error: type[Exception] = StoreError,
    ) -> Any:
        """``execute_with_retry`` with Redis failures raised as ``error``."""
        try:
            return self.execute_with_retry(func)
        except (redis.RedisError, CircuitOpenError) as e:
            raise error(f"{resource} unavailable: {e}") from e

    def ping(self) -> bool:
        try:
            return bool(self.execute_with_retry(lambda r: r.ping()))
        except (redis.RedisError, CircuitOpenError):
            return False

    def close(self):
        if self._pool is not None:
            self._pool.disconnect()
            self.log.info("redis_pool_closed")

    @property
    def circuit_state(self) -> str:
        return self._circuit.state
