"""Tests for configuration validation"""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from drivewatch_core.config import (
    AnalyzerConfig,
    DEFAULT_HISTORY_DB_PATH,
    Settings,
    get_settings,
    parse_period,
)
from drivewatch_core.models import AlertLevel


class TestParsePeriod:
    """Test period string parsing"""

    @pytest.mark.parametrize("value,expected", [
        ("1h", timedelta(hours=1)),
        ("24h", timedelta(hours=24)),
        ("1d", timedelta(days=1)),
        ("7d", timedelta(days=7)),
        ("1w", timedelta(weeks=1)),
        ("1m", timedelta(days=30)),
        ("3M", timedelta(days=90)),
    ])
    def test_valid_periods(self, value, expected):
        assert parse_period(value) == expected

    @pytest.mark.parametrize("value", ["", "x", "invalid", "7", "d7", "7y", "0d", "-1d"])
    def test_invalid_periods(self, value):
        with pytest.raises(ValueError):
            parse_period(value)


class TestAnalyzerConfig:

    def test_defaults(self):
        config = AnalyzerConfig()

        assert config.temp_warning == 60
        assert config.temp_critical == 70
        assert config.wear_warning == 80.0
        assert config.wear_critical == 90.0
        assert config.enable_predictive is True

    def test_critical_below_warning_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            AnalyzerConfig(temp_warning=70, temp_critical=60)
        assert "temp_critical" in str(exc_info.value)

    def test_wear_order(self):
        with pytest.raises(ValidationError):
            AnalyzerConfig(wear_warning=95.0, wear_critical=90.0)

    def test_wear_range(self):
        with pytest.raises(ValidationError):
            AnalyzerConfig(wear_critical=120.0)


class TestSettings:
    """Test environment-driven settings"""

    def test_defaults(self):
        settings = Settings()

        assert settings.LOG_LEVEL == "info"
        assert settings.HISTORY_DB_PATH == DEFAULT_HISTORY_DB_PATH
        assert settings.history_retention == timedelta(days=90)
        assert settings.history_period == timedelta(days=7)
        assert settings.ALERTS_ENABLED is False

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("DRIVEWATCH_TEMP_WARNING", "55")
        monkeypatch.setenv("DRIVEWATCH_ALERTS_ENABLED", "true")
        monkeypatch.setenv("DRIVEWATCH_ALERT_WEBHOOK_URL", "https://hooks.example.com/x")

        settings = Settings()

        assert settings.TEMP_WARNING == 55
        assert settings.ALERTS_ENABLED is True
        assert settings.ALERT_WEBHOOK_URL == "https://hooks.example.com/x"

    def test_log_level_normalized(self):
        assert Settings(LOG_LEVEL="DEBUG").LOG_LEVEL == "debug"

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError) as exc_info:
            Settings(LOG_LEVEL="verbose")
        assert "LOG_LEVEL must be one of" in str(exc_info.value)

    def test_invalid_period(self):
        with pytest.raises(ValidationError):
            Settings(HISTORY_RETENTION="forever")

    def test_invalid_webhook_url(self):
        with pytest.raises(ValidationError) as exc_info:
            Settings(ALERT_WEBHOOK_URL="hooks.example.com")
        assert "must start with http:// or https://" in str(exc_info.value)

    @pytest.mark.parametrize("timeout", [0, -5, 301])
    def test_invalid_webhook_timeout(self, timeout):
        with pytest.raises(ValidationError):
            Settings(ALERT_WEBHOOK_TIMEOUT=timeout)

    def test_invalid_min_level(self):
        with pytest.raises(ValidationError):
            Settings(ALERT_MIN_LEVEL="panic")

    def test_negative_cooldown(self):
        with pytest.raises(ValidationError):
            Settings(ALERT_COOLDOWN_MINUTES=-1)

    def test_temperature_order(self):
        with pytest.raises(ValidationError):
            Settings(TEMP_WARNING=80, TEMP_CRITICAL=70)

    def test_analyzer_config(self):
        config = Settings(TEMP_WARNING=50, TEMP_CRITICAL=65, ENABLE_PREDICTIVE=False).analyzer_config()

        assert config.temp_warning == 50
        assert config.temp_critical == 65
        assert config.enable_predictive is False

    def test_alert_config(self):
        config = Settings(
            ALERTS_ENABLED=True,
            ALERT_WEBHOOK_URL="http://localhost:9000/hook",
            ALERT_WEBHOOK_TIMEOUT=5,
            ALERT_MIN_LEVEL="CRITICAL",
            ALERT_COOLDOWN_MINUTES=15,
        ).alert_config()

        assert config.enabled is True
        assert config.webhook_url == "http://localhost:9000/hook"
        assert config.webhook_timeout == 5.0
        assert config.min_level == AlertLevel.CRITICAL
        assert config.cooldown == timedelta(minutes=15)

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
