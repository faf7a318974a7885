"""
Tests for settings, the YAML config manager and the reconciliation scheduler.
"""

import pytest
from pydantic import ValidationError

from helpdesk.config import Settings
from helpdesk.core import ConfigurationException
from helpdesk.sla.infrastructure import ReconciliationScheduler, SLAConfigManager
from helpdesk.sla.infrastructure.external import ConfigFileHandler

VALID_YAML = """
status_thresholds:
  warning: 60
  critical: 80
reconciliation:
  interval_seconds: 120
  batch_size: 25
default_business_hours:
  name: Berlin office
  timezone: Europe/Berlin
  hours:
    monday: ["08:00", "16:00"]
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "sla_config.yaml"
    path.write_text(VALID_YAML)
    return path


class TestSettings:

    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.reconciliation_interval == 300
        assert settings.reconciliation_batch_size == 100
        assert settings.database_url.startswith("postgresql+asyncpg://")

    def test_environment_variables(self, monkeypatch):
        monkeypatch.setenv("RECONCILIATION_INTERVAL", "0")
        monkeypatch.setenv("ENVIRONMENT", "production")
        settings = Settings(_env_file=None)
        assert settings.reconciliation_interval == 0
        assert settings.environment == "production"

    def test_unknown_environment_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, environment="qa")


class TestSLAConfigManager:

    def test_load(self, config_file):
        manager = SLAConfigManager()
        config = manager.load(config_file)

        assert config.status_thresholds.warning == 60
        assert config.reconciliation.batch_size == 25
        assert manager.get_config() is config
        assert config.default_business_hours.to_profile().timezone == "Europe/Berlin"

    def test_missing_file_uses_defaults(self, tmp_path):
        config = SLAConfigManager().load(tmp_path / "absent.yaml")
        assert config.status_thresholds.warning == 75
        assert config.reconciliation.interval_seconds == 300

    def test_empty_file_uses_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert SLAConfigManager().load(path).status_thresholds.critical == 90

    @pytest.mark.parametrize("content", [
        "status_thresholds: [unclosed",
        "- just\n- a list\n",
        "status_thresholds:\n  warning: 95\n  critical: 90\n",
    ])
    def test_invalid_file_rejected(self, tmp_path, content):
        path = tmp_path / "bad.yaml"
        path.write_text(content)
        with pytest.raises(ConfigurationException):
            SLAConfigManager().load(path)

    def test_not_loaded(self):
        with pytest.raises(ConfigurationException):
            SLAConfigManager().get_config()

    def test_reload_picks_up_changes(self, config_file):
        manager = SLAConfigManager()
        manager.load(config_file)

        config_file.write_text("status_thresholds:\n  warning: 50\n  critical: 70\n")

        assert manager.reload() is True
        assert manager.config.status_thresholds.warning == 50

    def test_failed_reload_keeps_previous_config(self, config_file):
        manager = SLAConfigManager()
        previous = manager.load(config_file)

        config_file.write_text("status_thresholds: {warning: 99, critical: 10}")

        assert manager.reload() is False
        assert manager.get_config() is previous

    def test_reload_before_load(self):
        assert SLAConfigManager().reload() is False

    def test_watch_requires_load(self):
        with pytest.raises(ConfigurationException):
            SLAConfigManager().start_watching()

    def test_stop_watching_is_safe_when_idle(self):
        SLAConfigManager().stop_watching()

    def test_file_handler_reloads_on_matching_path(self, config_file):
        manager = SLAConfigManager()
        manager.load(config_file)
        handler = ConfigFileHandler(manager, config_file)
        config_file.write_text("status_thresholds:\n  warning: 40\n  critical: 60\n")

        class Event:
            is_directory = False
            src_path = str(config_file)

        handler.on_modified(Event())
        assert manager.config.status_thresholds.warning == 40


class TestReconciliationScheduler:

    async def test_start_and_stop(self):
        calls = []

        async def job():
            calls.append(1)

        scheduler = ReconciliationScheduler(interval_seconds=3600)
        await scheduler.start(job)
        assert scheduler.is_running

        await scheduler.start(job)  # second start is a no-op
        assert scheduler.is_running

        await scheduler.stop()
        assert not scheduler.is_running

    async def test_stop_when_not_running(self):
        scheduler = ReconciliationScheduler()
        await scheduler.stop()
        assert not scheduler.is_running
