"""Worker process — wires Redis, the reading store, the cache and the queue to the worker loop."""

import threading

from config import Settings, configure_logging
from jobs.queue import JobQueue, QueueError
from processor.handlers import build_registry
from processor.worker import AggregationWorker
from schemas.jobs import JobKind
from storage.cache import ResultCache
from storage.readings import ReadingStore
from storage.redis_client import RedisClient


class WorkerProcess:
    """
    Runs the aggregation worker plus a scheduler thread that enqueues the
    retention cleanup job once per ``cleanup_interval_sec``. The schedule
    guard lives in Redis, so scaled-out workers do not multiply it.
    """

    def __init__(self, settings: Settings, redis_client: RedisClient | None = None):
        self.settings = settings
        self.log = configure_logging("worker-process", settings.log_level, settings.log_format)

        # a handle passed in belongs to the caller and is left open on exit
        self._owns_redis = redis_client is None
        self._redis = redis_client or RedisClient(settings)
        store = ReadingStore(
            self._redis, key=settings.readings_key, page_size=settings.store_page_size
        )
        cache = ResultCache(self._redis, ttl_sec=settings.daily_stats_ttl_sec)
        self._queue = JobQueue(self._redis, settings)
        self.worker = AggregationWorker(
            self._queue, build_registry(store, cache, settings), settings
        )

        self._schedule_stop = threading.Event()
        self._schedule_thread = threading.Thread(target=self._schedule_loop, daemon=True)

    def schedule_cleanup(self):
        job = self._queue.enqueue_repeatable(
            JobKind.CLEAN_OLD_DATA, every_sec=self.settings.cleanup_interval_sec
        )
        if job is not None:
            self.log.info("cleanup_scheduled", job_id=job.id)

    def _schedule_loop(self):
        while not self._schedule_stop.is_set():
            try:
                self.schedule_cleanup()
            except QueueError as e:
                self.log.error("schedule_error", error=str(e))
            # Re-check often; the Redis guard decides whether anything is enqueued.
            self._schedule_stop.wait(min(self.settings.cleanup_interval_sec, 60))

    def run(self):
        self.log.info("worker_process_starting")
        self.worker.install_signal_handlers()
        self._schedule_thread.start()
        try:
            self.worker.run()
        finally:
            self._schedule_stop.set()
            if self._schedule_thread.is_alive():
                self._schedule_thread.join(timeout=5)
            if self._owns_redis:
                self._redis.close()
            self.log.info("worker_process_stopped")


def main():
    WorkerProcess(Settings()).run()


if __name__ == "__main__":
    main()
