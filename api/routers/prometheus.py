"""Prometheus-compatible metrics endpoint."""

import time

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse
from starlette.concurrency import run_in_threadpool

from jobs.queue import QueueError

router = APIRouter()


@router.get("/metrics")
async def prometheus_metrics(request: Request):
    """Expose metrics in Prometheus text exposition format."""
    state = request.app.state
    stats = state.ingest_stats

    state_map = {"closed": 0, "open": 1, "half_open": 2}
    cb_value = state_map.get(state.redis.circuit_state, 0)
    uptime = time.time() - state.start_time

    lines = [
        "# HELP ingest_batches_total Batches stored successfully",
        "# TYPE ingest_batches_total counter",
        f"ingest_batches_total {stats['batches']}",
        "",
        "# HELP ingest_readings_total Readings stored successfully",
        "# TYPE ingest_readings_total counter",
        f"ingest_readings_total {stats['readings']}",
        "",
        "# HELP ingest_rejected_total Batches rejected as invalid",
        "# TYPE ingest_rejected_total counter",
        f"ingest_rejected_total {stats['rejected']}",
        "",
        "# HELP ingest_errors_total Batches that failed with a server error",
        "# TYPE ingest_errors_total counter",
        f"ingest_errors_total {stats['errors']}",
        "",
    ]

    try:
        counts = await run_in_threadpool(state.queue.counts)
    except QueueError:
        counts = None
    if counts is not None:
        lines += [
            "# HELP analytics_queue_jobs Jobs in the analytics queue by state",
            "# TYPE analytics_queue_jobs gauge",
        ]
        lines += [f'analytics_queue_jobs{{state="{name}"}} {value}' for name, value in counts.items()]
        lines.append("")

    lines += [
        "# HELP redis_circuit_breaker_state Circuit breaker state (0=closed, 1=open, 2=half_open)",
        "# TYPE redis_circuit_breaker_state gauge",
        f"redis_circuit_breaker_state {cb_value}",
        "",
        "# HELP api_uptime_seconds Seconds since API start",
        "# TYPE api_uptime_seconds gauge",
        f"api_uptime_seconds {uptime:.1f}",
    ]
    return PlainTextResponse("\n".join(lines) + "\n", media_type="text/plain; version=0.0.4")
