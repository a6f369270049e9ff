"""
Tests for configuration loading.
"""

import json

import pytest

from conduit.core.config import ConduitConfig, LogLevel


class TestConduitConfig:
    """Tests for defaults, environment overrides and files."""

    def test_defaults(self):
        config = ConduitConfig()
        assert config.engine.strict_ordering is False
        assert config.engine.max_rollbacks == 3
        assert config.notifications.throttle_seconds == 5.0
        assert config.notifications.max_notifications == 10
        assert config.monitoring.memory_alert_ratio == 0.8
        assert config.logging.level == LogLevel.INFO

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("CONDUIT_ENGINE__STRICT_ORDERING", "true")
        monkeypatch.setenv("CONDUIT_NOTIFICATIONS__MAX_NOTIFICATIONS", "25")

        config = ConduitConfig()

        assert config.engine.strict_ordering is True
        assert config.notifications.max_notifications == 25

    def test_file_round_trip(self, tmp_path):
        path = tmp_path / "conf" / "conduit.json"
        config = ConduitConfig()
        config.engine.max_rollbacks = 5
        config.logging.format = "text"
        config.to_file(path)

        loaded = ConduitConfig.from_file(path)

        assert loaded.engine.max_rollbacks == 5
        assert loaded.logging.format == "text"
        assert loaded.logging.level == LogLevel.INFO

    def test_saved_file_holds_only_sections(self, tmp_path):
        path = tmp_path / "conduit.json"
        ConduitConfig().to_file(path)
        assert set(json.loads(path.read_text())) == {"engine", "notifications", "monitoring", "logging"}


    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ConduitConfig.from_file(tmp_path / "missing.json")
