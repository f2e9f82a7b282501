"""Tests for sync_config.yaml loading and validation."""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from tracker.collectors import config_loader
from tracker.collectors.config_loader import (
    ConfigValidationError,
    SyncConfig,
    _validate_and_build,
    get_sync_config,
    load_sync_config,
    reload_sync_config,
)


@pytest.fixture
def isolated_config(monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset the global singleton for the duration of a test."""
    monkeypatch.setattr(config_loader, "_config", None)


class TestConfigLoading:
    """Tests for loading the bundled sync_config.yaml."""

    def test_load_default_config(self) -> None:
        config = load_sync_config()
        assert isinstance(config, SyncConfig)
        assert config.version == "1.0"
        assert config.sync.initial_lookback_days == 30
        assert config.sync.retention_days == 366

    def test_scheduler_section(self) -> None:
        scheduler = load_sync_config().scheduler
        assert scheduler.max_concurrent == 2
        assert scheduler.interval("steps") == 900
        assert scheduler.priority("steps") == 1

    def test_unknown_metric_falls_back_to_defaults(self) -> None:
        scheduler = load_sync_config().scheduler
        assert scheduler.interval("heart_rate") == scheduler.default_interval_seconds
        assert scheduler.priority("heart_rate") == 5

    def test_get_sync_config_is_cached(self, isolated_config: None) -> None:
        assert get_sync_config() is get_sync_config()

    def test_load_nonexistent_file_raises(self) -> None:
        with pytest.raises(FileNotFoundError):
            load_sync_config(path=Path("/nonexistent/path/sync_config.yaml"))


class TestConfigValidation:
    """Tests for config validation logic."""

    def test_empty_config_uses_defaults(self) -> None:
        config = _validate_and_build({})
        assert config.sync.initial_lookback_days == 30
        assert config.scheduler.default_interval_seconds == 3600

    def test_non_positive_values_raise(self) -> None:
        raw = {"sync": {"retention_days": 0}, "scheduler": {"max_concurrent": -1}}
        with pytest.raises(ConfigValidationError) as exc:
            _validate_and_build(raw)
        assert "sync.retention_days" in str(exc.value)
        assert "scheduler.max_concurrent" in str(exc.value)

    def test_non_numeric_interval_raises(self) -> None:
        raw = {"scheduler": {"intervals": {"steps": "often"}}}
        with pytest.raises(ConfigValidationError, match="scheduler.intervals.steps"):
            _validate_and_build(raw)

    def test_retention_shorter_than_lookback_raises(self) -> None:
        raw = {"sync": {"initial_lookback_days": 90, "retention_days": 30}}
        with pytest.raises(ConfigValidationError, match="shorter than"):
            _validate_and_build(raw)

    def test_malformed_yaml_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "sync_config.yaml"
        path.write_text("sync: [unclosed")
        with pytest.raises(ConfigValidationError, match="YAML parse error"):
            load_sync_config(path)


class TestHotReload:
    def test_reload_replaces_singleton(self, tmp_path: Path, isolated_config: None) -> None:
        path = tmp_path / "sync_config.yaml"
        path.write_text(
            textwrap.dedent(
                """
                version: "2.0-test"
                sync:
                  initial_lookback_days: 7
                  retention_days: 90
                """
            )
        )
        new_config = reload_sync_config(path)
        assert new_config.version == "2.0-test"
        assert get_sync_config() is new_config
        assert get_sync_config().sync.initial_lookback_days == 7

    def test_invalid_reload_keeps_old_config(self, tmp_path: Path, isolated_config: None) -> None:
        current = get_sync_config()
        path = tmp_path / "sync_config.yaml"
        path.write_text("sync:\n  retention_days: -5\n")
        with pytest.raises(ConfigValidationError):
            reload_sync_config(path)
        assert get_sync_config() is current
