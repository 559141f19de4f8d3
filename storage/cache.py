"""Result cache — precomputed daily aggregates in Redis, last writer wins."""

import json
from datetime import date

from storage.redis_client import RedisClient


class ResultCache:
    """
    Plain string keys holding JSON arrays, one key per calendar day:
    ``daily_stats_<ISO-date>``. Each aggregation run overwrites the
    whole value; there is no incremental merge.
    """

    DAILY_STATS_PREFIX = "daily_stats_"

    def __init__(self, client: RedisClient, ttl_sec: int = 0):
        self._client = client
        self._ttl_sec = ttl_sec

    @classmethod
    def daily_key(cls, day: date) -> str:
        return f"{cls.DAILY_STATS_PREFIX}{day.isoformat()}"

    def set_daily_stats(self, day: date, stats: list[dict]) -> str:
        key = self.daily_key(day)
        payload = json.dumps(stats)

        def _op(r):
            r.set(key, payload, ex=self._ttl_sec or None)
        self._client.execute(_op, "result cache")
        return key

    def get_daily_stats(self, day: date) -> list[dict] | None:
        raw = self._client.execute(lambda r: r.get(self.daily_key(day)), "result cache")
        return json.loads(raw) if raw is not None else None

    def list_days(self) -> list[str]:
        """ISO dates that currently have a cached aggregate."""
        def _op(r):
            return [
                key[len(self.DAILY_STATS_PREFIX):]
                for key in r.scan_iter(match=f"{self.DAILY_STATS_PREFIX}*", count=100)
            ]
        return sorted(self._client.execute(_op, "result cache"))
