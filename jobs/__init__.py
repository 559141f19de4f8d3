from .queue import JobQueue, JobStalledError, QueueError

__all__ = ["JobQueue", "JobStalledError", "QueueError"]
