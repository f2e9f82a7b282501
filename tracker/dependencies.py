"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from tracker.collectors.registry import CollectorRegistry, HealthDataManager
from tracker.config import Settings, get_settings


def get_registry(request: Request) -> CollectorRegistry:
    """Return the registry the host attached in ``create_app``."""
    registry: CollectorRegistry | None = getattr(request.app.state, "registry", None)
    if registry is None:
        raise HTTPException(status_code=503, detail="Collector registry not configured")
    return registry


def get_manager(registry: Annotated[CollectorRegistry, Depends(get_registry)]) -> HealthDataManager:
    return HealthDataManager(registry)


# Annotated shortcuts for route signatures
Registry = Annotated[CollectorRegistry, Depends(get_registry)]
Manager = Annotated[HealthDataManager, Depends(get_manager)]
AppSettings = Annotated[Settings, Depends(get_settings)]
