"""Collector registry — metric type → collector, with capability dispatch.

Metric modules register their collector at startup; consumers look a
collector up by metric type without depending on its concrete class.  Range
reads need the granular capability; a basic collector only syncs and streams.

The registry is an ordinary object owned by the host's composition root
(see ``tracker.bootstrap``), not a module global.
"""

from __future__ import annotations

import logging
from datetime import datetime

from tracker.collectors.base import (
    DataCollector,
    Granularity,
    GranularDataCollector,
    MetricPoint,
    MetricType,
)
from tracker.collectors.cache.bucket_cache import Subscription

logger = logging.getLogger("tracker.collectors.registry")


class RegistryError(Exception):
    """Base class for registry lookup failures."""


class CollectorNotRegisteredError(RegistryError):
    def __init__(self, metric_type: MetricType) -> None:
        self.metric_type = metric_type
        super().__init__(
            f"Collector for '{metric_type.value}' is not registered. "
            "Make sure the corresponding metric module is wired at startup."
        )


class UnsupportedCapabilityError(RegistryError):
    def __init__(self, metric_type: MetricType, operation: str) -> None:
        self.metric_type = metric_type
        self.operation = operation
        super().__init__(
            f"Collector for '{metric_type.value}' does not support {operation}() with granularity"
        )


class CollectorRegistry:
    """Registry of metric collectors, one per metric type.

    Usage::

        registry = CollectorRegistry()
        registry.register(MetricType.STEPS, steps_collector)
        points = await registry.get(MetricType.STEPS, start, end, Granularity.DAILY)
    """

    def __init__(self) -> None:
        self._collectors: dict[MetricType, DataCollector] = {}

    def register(self, metric_type: MetricType, collector: DataCollector) -> None:
        """Add or replace the collector for ``metric_type``."""
        replaced = metric_type in self._collectors
        self._collectors[metric_type] = collector
        logger.debug(
            "%s collector %s (%s)",
            "Replaced" if replaced else "Registered",
            metric_type.value,
            type(collector).__name__,
        )

    def unregister(self, metric_type: MetricType) -> None:
        if self._collectors.pop(metric_type, None) is not None:
            logger.debug("Unregistered collector %s", metric_type.value)

    def get_collector(self, metric_type: MetricType) -> DataCollector | None:
        return self._collectors.get(metric_type)

    def get_collector_or_raise(self, metric_type: MetricType) -> DataCollector:
        collector = self._collectors.get(metric_type)
        if collector is None:
            raise CollectorNotRegisteredError(metric_type)
        return collector

    def is_available(self, metric_type: MetricType) -> bool:
        return metric_type in self._collectors

    def get_available_types(self) -> set[MetricType]:
        return set(self._collectors)

    def _granular(self, metric_type: MetricType, operation: str) -> GranularDataCollector:
        collector = self.get_collector_or_raise(metric_type)
        if not isinstance(collector, GranularDataCollector):
            raise UnsupportedCapabilityError(metric_type, operation)
        return collector

    async def get(
        self,
        metric_type: MetricType,
        start: datetime,
        end: datetime,
        granularity: Granularity,
    ) -> list[MetricPoint]:
        """Read cached points through the collector for ``metric_type``.

        Raises:
            CollectorNotRegisteredError: No collector for ``metric_type``.
            UnsupportedCapabilityError:  Collector lacks range reads.
        """
        return await self._granular(metric_type, "get").get(start, end, granularity)

    async def observe(self, metric_type: MetricType, granularity: Granularity) -> Subscription:
        """Open a live view of today's points for ``metric_type``.

        Raises:
            CollectorNotRegisteredError: No collector for ``metric_type``.
            UnsupportedCapabilityError:  Collector lacks granular views.
        """
        return await self._granular(metric_type, "observe").observe(granularity)


class HealthDataManager:
    """Application-facing entry point over a registry.

    Reads default to DAILY granularity.
    """

    def __init__(self, registry: CollectorRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    async def get(
        self,
        metric_type: MetricType,
        start: datetime,
        end: datetime,
        granularity: Granularity = Granularity.DAILY,
    ) -> list[MetricPoint]:
        return await self._registry.get(metric_type, start, end, granularity)

    def is_available(self, metric_type: MetricType) -> bool:
        return self._registry.is_available(metric_type)

    def get_available_types(self) -> set[MetricType]:
        return self._registry.get_available_types()

    def register_collector(self, metric_type: MetricType, collector: DataCollector) -> None:
        """Wire a metric module's collector. Called once per module at startup."""
        self._registry.register(metric_type, collector)

    def unregister_collector(self, metric_type: MetricType) -> None:
        self._registry.unregister(metric_type)
