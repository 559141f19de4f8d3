"""Batch ingestion endpoint."""

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from api.dependencies import get_ingestion
from schemas.readings import InvalidBatchError
from services.ingestion import IngestionService

router = APIRouter()


@router.post("/ingest", status_code=status.HTTP_201_CREATED)
async def ingest_readings(
    request: Request,
    service: IngestionService = Depends(get_ingestion),
):
    """
    Replace the stored readings with the posted JSON array and queue the
    daily aggregation. The whole batch is rejected if any element is invalid.
    """
    log = request.app.state.log
    stats = request.app.state.ingest_stats
    try:
        payload = await request.json()
    except ValueError:
        stats["rejected"] += 1
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Request body must be valid JSON"},
        )

    try:
        result = await run_in_threadpool(service.ingest, payload)
    except InvalidBatchError as e:
        stats["rejected"] += 1
        log.warning("ingest_rejected", reason=e.message, invalid=len(e.errors))
        content = {"error": e.message}
        if e.errors:
            content["details"] = e.errors
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=content)
    except Exception as e:
        stats["errors"] += 1
        log.error("ingest_failed", error=str(e), exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to save sensor readings"},
        )

    stats["batches"] += 1
    stats["readings"] += result.count
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={"success": True, "count": result.count},
    )
