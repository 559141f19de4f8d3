from .redis_client import CircuitOpenError, RedisClient, StoreError
from .readings import ReadingFilter, ReadingStore
from .cache import ResultCache

__all__ = [
    "CircuitOpenError",
    "ReadingFilter",
    "ReadingStore",
    "RedisClient",
    "ResultCache",
    "StoreError",
]
