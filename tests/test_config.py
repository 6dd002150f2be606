"""
Unit tests for Settings and SchedulerConfig.

Run with: python -m pytest tests/test_config.py -v
"""

import pytest
from pydantic import ValidationError

from soulscribe.config import Settings
from soulscribe.models import SchedulerConfig


class TestSchedulerConfig:

    def test_defaults(self):
        config = SchedulerConfig()
        assert (config.max_concurrency, config.quality_threshold, config.max_retries) == (3, 0.7, 2)
        assert config.accept_low_quality is True
        assert config.abandon_dependents is False

    def test_concurrency_must_be_positive(self):
        with pytest.raises(ValidationError):
            SchedulerConfig(max_concurrency=0)

    def test_concurrency_has_no_upper_bound(self):
        assert SchedulerConfig(max_concurrency=20).max_concurrency == 20

    def test_threshold_bounds(self):
        with pytest.raises(ValidationError):
            SchedulerConfig(quality_threshold=1.5)

    def test_from_settings_with_overrides(self):
        settings = Settings(_env_file=None, scheduler_max_concurrency=5, scheduler_max_retries=4)

        config = SchedulerConfig.from_settings(settings, max_retries=1, abandon_dependents=True)

        assert config.max_concurrency == 5
        assert config.max_retries == 1
        assert config.abandon_dependents is True

    def test_settings_read_environment(self, monkeypatch):
        monkeypatch.setenv("SCHEDULER_QUALITY_THRESHOLD", "0.8")
        monkeypatch.setenv("SCHEDULER_ACCEPT_LOW_QUALITY", "false")

        config = SchedulerConfig.from_settings(Settings(_env_file=None))

        assert config.quality_threshold == 0.8
        assert config.accept_low_quality is False
