"""Pydantic response models for the metrics read API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from tracker.collectors.base import Granularity, MetricType, SyncErrorKind


class TrackerBase(BaseModel):
    """Base model with shared config for all API schemas."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class MetricPointRead(TrackerBase):
    timestamp: datetime
    count: int = Field(ge=0)


class MetricSeriesRead(TrackerBase):
    metric_type: MetricType
    granularity: Granularity
    start: datetime
    end: datetime
    points: list[MetricPointRead]


class AvailableMetricsRead(TrackerBase):
    metric_types: list[MetricType]


class SyncResultRead(TrackerBase):
    metric_type: MetricType
    status: str
    mode: str
    error_kind: SyncErrorKind | None = None
    error: str | None = None
    buckets_written: int
    pages_read: int
    windows_fetched: int
    buckets_pruned: int
    started_at: datetime
    finished_at: datetime | None = None


class ErrorDetail(BaseModel):
    detail: str
