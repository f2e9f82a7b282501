"""Load, validate, and hot-reload the collector sync configuration.

The config lives in ``sync_config.yaml`` alongside this module.  At startup
it is loaded once and cached.  Call ``reload_sync_config()`` to re-read from
disk — no restart required.

Usage::

    from tracker.collectors.config_loader import get_sync_config

    config = get_sync_config()
    config.sync.retention_days              # 366
    config.scheduler.interval("steps")      # 900
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger("tracker.collectors.config")

# Path to the YAML file sitting next to this module
_CONFIG_PATH = Path(__file__).parent / "sync_config.yaml"


# ---------------------------------------------------------------------------
# Typed config sections
# ---------------------------------------------------------------------------


@dataclass
class EngineConfig:
    """Sync engine windows."""

    initial_lookback_days: int = 30
    retention_days: int = 366


@dataclass
class SchedulerConfig:
    """Periodic sync settings per metric type."""

    max_concurrent: int = 2
    default_interval_seconds: int = 3600
    intervals: dict[str, int] = field(default_factory=dict)
    priorities: dict[str, int] = field(default_factory=dict)

    def interval(self, metric: str) -> int:
        """Return the sync interval in seconds for a metric slug."""
        return self.intervals.get(metric, self.default_interval_seconds)

    def priority(self, metric: str) -> int:
        """Return the queue priority for a metric slug (lower runs first)."""
        return self.priorities.get(metric, 5)


@dataclass
class SyncConfig:
    """Complete, validated sync configuration.

    Attributes:
        version:   Config schema version string.
        sync:      Engine lookback / retention windows.
        scheduler: Per-metric intervals and concurrency.
    """

    version: str
    sync: EngineConfig
    scheduler: SchedulerConfig
    _raw: dict = field(default_factory=dict, repr=False)


# ---------------------------------------------------------------------------
# Loader / validation
# ---------------------------------------------------------------------------


class ConfigValidationError(ValueError):
    """Raised when sync_config.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Sync config not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _positive_int(value: object, key: str, errors: list[str], default: int) -> int:
    if value is None:
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        errors.append(f"{key} must be an integer, got {value!r}")
        return default
    if number <= 0:
        errors.append(f"{key} = {number} must be positive")
    return number


def _validate_and_build(raw: dict) -> SyncConfig:
    """Validate the raw YAML dict and construct a SyncConfig.

    Raises:
        ConfigValidationError: If any value is invalid.
    """
    errors: list[str] = []
    version = str(raw.get("version", "1.0"))

    # ── Engine ──
    sync_raw = raw.get("sync") or {}
    engine = EngineConfig(
        initial_lookback_days=_positive_int(
            sync_raw.get("initial_lookback_days"), "sync.initial_lookback_days", errors, 30
        ),
        retention_days=_positive_int(
            sync_raw.get("retention_days"), "sync.retention_days", errors, 366
        ),
    )
    if engine.retention_days < engine.initial_lookback_days:
        errors.append(
            f"sync.retention_days ({engine.retention_days}) is shorter than "
            f"sync.initial_lookback_days ({engine.initial_lookback_days})"
        )

    # ── Scheduler ──
    sched_raw = raw.get("scheduler") or {}
    intervals: dict[str, int] = {}
    for metric, seconds in (sched_raw.get("intervals") or {}).items():
        intervals[metric] = _positive_int(seconds, f"scheduler.intervals.{metric}", errors, 3600)
    priorities: dict[str, int] = {}
    for metric, priority in (sched_raw.get("priorities") or {}).items():
        priorities[metric] = _positive_int(priority, f"scheduler.priorities.{metric}", errors, 5)
    scheduler = SchedulerConfig(
        max_concurrent=_positive_int(
            sched_raw.get("max_concurrent"), "scheduler.max_concurrent", errors, 2
        ),
        default_interval_seconds=_positive_int(
            sched_raw.get("default_interval_seconds"),
            "scheduler.default_interval_seconds",
            errors,
            3600,
        ),
        intervals=intervals,
        priorities=priorities,
    )

    if errors:
        raise ConfigValidationError(
            f"sync_config.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return SyncConfig(version=version, sync=engine, scheduler=scheduler, _raw=raw)


def load_sync_config(path: Path | None = None) -> SyncConfig:
    """Load and validate the sync config from disk.

    Args:
        path: Override path to YAML. Uses the bundled sync_config.yaml by default.
    """
    target = path or _CONFIG_PATH
    config = _validate_and_build(_load_yaml(target))
    logger.info("Loaded sync config v%s from %s", config.version, target)
    return config


# ---------------------------------------------------------------------------
# Global singleton with hot-reload support
# ---------------------------------------------------------------------------

_config: SyncConfig | None = None
_config_lock = threading.Lock()


def get_sync_config() -> SyncConfig:
    """Return the global SyncConfig, loading it on first call. Thread-safe."""
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:  # double-checked locking
                _config = load_sync_config()
    return _config


def reload_sync_config(path: Path | None = None) -> SyncConfig:
    """Reload the config from disk and replace the global instance.

    If validation fails, the old config is retained and the error is re-raised.

    Raises:
        ConfigValidationError: If the new config is invalid.
        FileNotFoundError:     If the config file is missing.
    """
    global _config
    new_config = load_sync_config(path)  # validate before acquiring lock
    with _config_lock:
        old_version = _config.version if _config else "none"
        _config = new_config
    logger.info("Reloaded sync config: %s → %s", old_version, new_config.version)
    return new_config
