"""Reading store — sensor readings held in a Redis sorted set (score = timestamp)."""

import json
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Iterator, Mapping, Sequence

from processor.aggregator import GroupedAggregator, GroupResult
from schemas.readings import SensorReading, SensorType, validate_batch
from storage.redis_client import RedisClient


def to_ms(moment: datetime) -> float:
    return moment.timestamp() * 1000


@dataclass(frozen=True)
class ReadingFilter:
    field_id: str | None = None
    field_ids: frozenset[str] | None = None
    sensor_type: SensorType | str | None = None
    start: datetime | None = None
    end: datetime | None = None

    def matches(self, reading: SensorReading) -> bool:
        if self.field_id is not None and reading.field_id != self.field_id:
            return False
        if self.field_ids and reading.field_id not in self.field_ids:
            return False
        if self.sensor_type is not None:
            wanted = getattr(self.sensor_type, "value", self.sensor_type)
            if reading.sensor_type.value != wanted:
                return False
        return True

    @property
    def is_time_only(self) -> bool:
        return self.field_id is None and not self.field_ids and self.sensor_type is None


class ReadingStore:
    """
    Every reading is one JSON member of a single sorted set scored by its
    timestamp in milliseconds, so a bulk replace is one MULTI/EXEC
    (DEL + ZADD) and range queries are score ranges.
    Attribute filters are applied while paging through the range.
    """

    def __init__(self, client: RedisClient, key: str = "readings:ts", page_size: int = 500):
        self._client = client
        self._key = key
        self._page_size = page_size

    # ─── Writes ─────────────────────────────────────────────────────

    def replace_all(self, readings: Sequence[SensorReading | dict]) -> int:
        """Discard every stored reading and insert ``readings`` atomically.

        The batch is validated before anything is touched; an invalid
        element raises ``InvalidBatchError`` and the store is unchanged.
        """
        batch = validate_batch(list(readings))
        members = {}
        for reading in batch:
            member = {"id": uuid.uuid4().hex, **reading.model_dump(mode="json")}
            members[json.dumps(member)] = to_ms(reading.timestamp)

        def _op(r):
            pipe = r.pipeline(transaction=True)
            pipe.delete(self._key)
            pipe.zadd(self._key, members)
            pipe.execute()

        self._client.execute(_op, "reading store")
        return len(batch)

    def delete_older_than(self, cutoff: datetime) -> int:
        """Remove readings strictly older than ``cutoff``; returns rows removed."""
        removed = self._client.execute(
            lambda r: r.zremrangebyscore(self._key, "-inf", f"({to_ms(cutoff)}"), "reading store"
        )
        return int(removed)

    # ─── Reads ──────────────────────────────────────────────────────

    def query(
        self, flt: ReadingFilter | None = None, limit: int | None = None
    ) -> Iterator[SensorReading]:
        """Yield matching readings newest-first, fetching one page at a time."""
        flt = flt or ReadingFilter()
        if limit is not None and limit <= 0:
            return
        high = to_ms(flt.end) if flt.end else "+inf"
        low = to_ms(flt.start) if flt.start else "-inf"
        offset = 0
        yielded = 0
        while True:
            page = self._client.execute(
                lambda r, start=offset: r.zrevrangebyscore(
                    self._key, high, low, start=start, num=self._page_size
                ),
                "reading store",
            )
            for raw in page:
                data = json.loads(raw)
                data.pop("id", None)
                reading = SensorReading.model_validate(data)
                if not flt.matches(reading):
                    continue
                yield reading
                yielded += 1
                if limit is not None and yielded >= limit:
                    return
            if len(page) < self._page_size:
                return
            offset += self._page_size

    def count(self, flt: ReadingFilter | None = None) -> int:
        flt = flt or ReadingFilter()
        if flt.is_time_only:
            low = to_ms(flt.start) if flt.start else "-inf"
            high = to_ms(flt.end) if flt.end else "+inf"
            total = self._client.execute(lambda r: r.zcount(self._key, low, high), "reading store")
            return int(total)
        return sum(1 for _ in self.query(flt))

    def latest(self, flt: ReadingFilter | None = None) -> SensorReading | None:
        return next(self.query(flt, limit=1), None)

    def aggregate_grouped(
        self,
        flt: ReadingFilter | None,
        group_by: Sequence[str],
        window_start: datetime | None = None,
        sub_averages: Mapping[str, SensorType | str] | None = None,
    ) -> list[GroupResult]:
        """Per-group count/avg/min/max/latest over the matching readings.

        ``window_start`` narrows the filter's own start bound when later.
        """
        aggregator = GroupedAggregator(group_by, sub_averages=sub_averages)
        flt = flt or ReadingFilter()
        if window_start is not None and (flt.start is None or window_start > flt.start):
            flt = replace(flt, start=window_start)
        return aggregator.extend(self.query(flt)).results()
