"""FastAPI dependency injection."""

from fastapi import Request

from config import Settings
from jobs.queue import JobQueue
from services.analytics import AnalyticsService
from services.ingestion import IngestionService
from storage.cache import ResultCache
from storage.readings import ReadingStore
from storage.redis_client import RedisClient


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_redis(request: Request) -> RedisClient:
    return request.app.state.redis


def get_store(request: Request) -> ReadingStore:
    return request.app.state.store


def get_cache(request: Request) -> ResultCache:
    return request.app.state.cache


def get_queue(request: Request) -> JobQueue:
    return request.app.state.queue


def get_ingestion(request: Request) -> IngestionService:
    return request.app.state.ingestion


def get_analytics(request: Request) -> AnalyticsService:
    return request.app.state.analytics
