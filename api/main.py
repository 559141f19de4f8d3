"""FastAPI application factory with lifespan management."""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import Settings, configure_logging
from jobs.queue import JobQueue
from services.analytics import AnalyticsService
from services.ingestion import IngestionService
from storage.cache import ResultCache
from storage.readings import ReadingStore
from storage.redis_client import RedisClient
from api.routers import analytics, health, ingest, jobs, prometheus


def create_app(settings: Settings | None = None, redis_client: RedisClient | None = None) -> FastAPI:
    """Build the API. ``redis_client`` lets callers share an existing connection."""
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = redis_client or RedisClient(settings)
        store = ReadingStore(client, key=settings.readings_key, page_size=settings.store_page_size)
        queue = JobQueue(client, settings)

        # Store in app state for dependency injection
        app.state.settings = settings
        app.state.log = configure_logging("api", settings.log_level, settings.log_format)
        app.state.redis = client
        app.state.store = store
        app.state.cache = ResultCache(client, ttl_sec=settings.daily_stats_ttl_sec)
        app.state.queue = queue
        app.state.ingestion = IngestionService(store, queue, settings)
        app.state.analytics = AnalyticsService(store, settings)
        app.state.ingest_stats = {"batches": 0, "readings": 0, "rejected": 0, "errors": 0}
        app.state.start_time = time.time()

        yield

        if redis_client is None:
            client.close()

    app = FastAPI(
        title="Field Telemetry Pipeline API",
        version="1.0.0",
        description="Farm sensor ingestion with background daily aggregation",
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(health.router)
    app.include_router(ingest.router)
    app.include_router(analytics.router)
    app.include_router(jobs.router)
    app.include_router(prometheus.router)

    return app


app = create_app()
