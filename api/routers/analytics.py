"""Analytics and reading queries, plus the cached daily aggregates."""

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from api.dependencies import get_analytics, get_cache, get_settings, get_store
from config import Settings
from schemas.readings import SensorType
from services.analytics import AnalyticsService
from storage.cache import ResultCache
from storage.readings import ReadingFilter, ReadingStore
from storage.redis_client import StoreError

router = APIRouter()


@router.get("/analytics")
async def get_analytics_summary(
    request: Request,
    field_id: str | None = Query(default=None, description="Restrict to one field"),
    hours: int | None = Query(default=None, ge=0, description="Hourly-trend window"),
    service: AnalyticsService = Depends(get_analytics),
    settings: Settings = Depends(get_settings),
):
    """Per-sensor summaries, per-field statistics and hourly trends."""
    if hours is None:
        hours = settings.analytics_default_hours
    try:
        return await run_in_threadpool(service.build, field_id or None, hours)
    except Exception as e:
        request.app.state.log.error("analytics_failed", error=str(e), exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Failed to fetch analytics"})


@router.get("/readings")
async def list_readings(
    field_id: str | None = Query(default=None),
    sensor_type: SensorType | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
    store: ReadingStore = Depends(get_store),
):
    """Stored readings, newest first."""
    flt = ReadingFilter(field_id=field_id or None, sensor_type=sensor_type)

    def _fetch():
        return [r.model_dump(mode="json") for r in store.query(flt, limit=limit)]

    try:
        data = await run_in_threadpool(_fetch)
    except StoreError:
        return JSONResponse(status_code=500, content={"error": "Failed to fetch sensor readings"})
    return {"success": True, "count": len(data), "data": data}


@router.get("/daily-stats")
async def list_daily_stats(cache: ResultCache = Depends(get_cache)):
    """Days that have a cached aggregate."""
    return {"days": await run_in_threadpool(cache.list_days)}


@router.get("/daily-stats/{day}")
async def get_daily_stats(day: date, cache: ResultCache = Depends(get_cache)):
    """Cached (field_id, sensor_type) aggregate for one ISO date."""
    stats = await run_in_threadpool(cache.get_daily_stats, day)
    if stats is None:
        raise HTTPException(status_code=404, detail=f"No daily stats cached for {day.isoformat()}")
    return {"day": day.isoformat(), "key": ResultCache.daily_key(day), "stats": stats}
