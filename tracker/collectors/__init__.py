"""Metric collectors: platform sync, local bucket cache, and lookup.

Subpackages:
    cache/ — Hour-bucket stores, change-token stores, live subscriptions
    sync/  — Incremental sync engine and scheduling boundary
    steps/ — Step-count collector module

Core modules:
    base          — Collector ABCs and canonical data models
    source        — Platform data source contract
    aggregator    — Hourly / daily aggregation
    registry      — CollectorRegistry and HealthDataManager
    config_loader — Load/validate/hot-reload sync_config.yaml
"""

from tracker.collectors.base import (
    DataCollector,
    Granularity,
    GranularDataCollector,
    HourBucket,
    MetricPoint,
    MetricType,
    PermissionState,
    SyncError,
    SyncErrorKind,
    SyncResult,
)
from tracker.collectors.config_loader import SyncConfig, get_sync_config
from tracker.collectors.registry import (
    CollectorNotRegisteredError,
    CollectorRegistry,
    HealthDataManager,
    RegistryError,
    UnsupportedCapabilityError,
)

__all__ = [
    "DataCollector",
    "GranularDataCollector",
    "Granularity",
    "HourBucket",
    "MetricPoint",
    "MetricType",
    "PermissionState",
    "SyncError",
    "SyncErrorKind",
    "SyncResult",
    "SyncConfig",
    "get_sync_config",
    "CollectorRegistry",
    "HealthDataManager",
    "RegistryError",
    "CollectorNotRegisteredError",
    "UnsupportedCapabilityError",
]
