"""Tracker — platform health metrics with a local hourly bucket cache.

Subpackages:
    collectors/ — Sync engine, bucket cache, aggregation, collector registry
    routers/    — HTTP read API for a host process
    services/   — Database pool lifecycle

Core modules:
    config    — Environment settings
    bootstrap — Composition root (stores, collectors, registry)
    api       — FastAPI application factory
"""

__version__ = "0.1.0"
