"""Sync infrastructure for metric collectors.

Modules:
    engine    — Token-based incremental sync engine (single-flight per metric)
    scheduler — Permission-gated worker and in-process periodic scheduler
"""
