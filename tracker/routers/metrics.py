"""Read endpoints over the collector registry, plus a manual sync trigger."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, HTTPException, Query

from tracker.collectors.base import Granularity, MetricType
from tracker.collectors.registry import (
    CollectorNotRegisteredError,
    UnsupportedCapabilityError,
)
from tracker.dependencies import Manager, Registry
from tracker.models.metrics import (
    AvailableMetricsRead,
    ErrorDetail,
    MetricSeriesRead,
    SyncResultRead,
)

router = APIRouter(prefix="/metrics", tags=["metrics"])
logger = logging.getLogger("tracker.routers.metrics")

_ERRORS: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorDetail},
    404: {"model": ErrorDetail},
}


@router.get("", response_model=AvailableMetricsRead)
async def list_metrics(manager: Manager) -> Any:
    return {"metric_types": sorted(manager.get_available_types(), key=lambda m: m.value)}


@router.get("/{metric_type}", response_model=MetricSeriesRead, responses=_ERRORS)
async def get_metric(
    metric_type: MetricType,
    manager: Manager,
    start: datetime = Query(...),
    end: datetime = Query(...),
    granularity: Granularity = Query(default=Granularity.DAILY),
) -> Any:
    if start.tzinfo is None or end.tzinfo is None:
        raise HTTPException(status_code=400, detail="start and end must include a UTC offset")
    if start >= end:
        raise HTTPException(status_code=400, detail="start must be before end")
    try:
        points = await manager.get(metric_type, start, end, granularity)
    except CollectorNotRegisteredError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except UnsupportedCapabilityError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return {
        "metric_type": metric_type,
        "granularity": granularity,
        "start": start,
        "end": end,
        "points": [{"timestamp": p.timestamp, "count": p.count} for p in points],
    }


@router.post("/{metric_type}/sync", response_model=SyncResultRead, responses=_ERRORS)
async def trigger_sync(metric_type: MetricType, registry: Registry) -> Any:
    """Run (or join) a sync pass for one metric and report its outcome."""
    try:
        collector = registry.get_collector_or_raise(metric_type)
    except CollectorNotRegisteredError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    result = await collector.sync()
    logger.info("Manual %s sync → %s", metric_type.value, result.status)
    return {
        "metric_type": result.metric_type,
        "status": result.status,
        "mode": result.mode,
        "error_kind": result.error.kind if result.error else None,
        "error": result.error.message if result.error else None,
        "buckets_written": result.buckets_written,
        "pages_read": result.pages_read,
        "windows_fetched": result.windows_fetched,
        "buckets_pruned": result.buckets_pruned,
        "started_at": result.started_at,
        "finished_at": result.finished_at,
    }
