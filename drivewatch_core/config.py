"""Configuration management for DriveWatch Core

Settings are read from the environment (``DRIVEWATCH_`` prefix) or a ``.env``
file. The analyzer, history store and alert manager never read settings
themselves; they receive the explicit config objects built here.
"""

import os
import re
from datetime import timedelta
from functools import lru_cache
from typing import Optional, Any

from pydantic import BaseModel, Field, field_validator, ValidationInfo
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import AlertLevel

DEFAULT_HISTORY_DB_PATH = os.path.join(
    os.path.expanduser("~"), ".config", "drivewatch", "smart.db"
)

_PERIOD_PATTERN = re.compile(r"^\s*(\d+)\s*([hdwm])\s*$", re.IGNORECASE)
_PERIOD_UNITS = {
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
    "m": timedelta(days=30),
}


def parse_period(value: str) -> timedelta:
    """Parse a period string such as ``24h``, ``7d``, ``2w`` or ``3m``.

    ``m`` means 30-day months, not minutes.

    Raises:
        ValueError: If the string is not a positive count followed by a unit
    """
    match = _PERIOD_PATTERN.match(value or "")
    if not match:
        raise ValueError(
            f"Invalid period '{value}': expected a number followed by h, d, w or m"
        )
    count = int(match.group(1))
    if count <= 0:
        raise ValueError(f"Invalid period '{value}': must be greater than zero")
    return count * _PERIOD_UNITS[match.group(2).lower()]


class AnalyzerConfig(BaseModel):
    """Thresholds used by the health analyzer"""

    temp_warning: int = Field(60, description="Warning temperature in Celsius")
    temp_critical: int = Field(70, description="Critical temperature in Celsius")
    wear_warning: float = Field(80.0, ge=0.0, le=100.0, description="SSD percent-used warning level")
    wear_critical: float = Field(90.0, ge=0.0, le=100.0, description="SSD percent-used critical level")
    enable_predictive: bool = Field(True, description="Compute failure probability")

    @field_validator("temp_critical")
    @classmethod
    def validate_temp_order(cls, v: int, info: ValidationInfo) -> int:
        warning = info.data.get("temp_warning")
        if warning is not None and v < warning:
            raise ValueError(f"temp_critical ({v}) must not be below temp_warning ({warning})")
        return v

    @field_validator("wear_critical")
    @classmethod
    def validate_wear_order(cls, v: float, info: ValidationInfo) -> float:
        warning = info.data.get("wear_warning")
        if warning is not None and v < warning:
            raise ValueError(f"wear_critical ({v}) must not be below wear_warning ({warning})")
        return v


class AlertConfig(BaseModel):
    """Alert manager configuration"""

    enabled: bool = False
    webhook_url: Optional[str] = None
    webhook_timeout: float = Field(30.0, gt=0, description="Webhook timeout in seconds")
    min_level: AlertLevel = AlertLevel.WARNING
    cooldown: timedelta = Field(timedelta(minutes=60), description="Minimum time between alerts per device")

    @field_validator("webhook_url")
    @classmethod
    def validate_webhook_url(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"webhook_url '{v}' must start with http:// or https://")
        return v

    @field_validator("min_level", mode="before")
    @classmethod
    def parse_min_level(cls, v: Any) -> Any:
        return AlertLevel(v) if isinstance(v, str) else v

    @field_validator("cooldown")
    @classmethod
    def validate_cooldown(cls, v: timedelta) -> timedelta:
        if v < timedelta(0):
            raise ValueError("cooldown must not be negative")
        return v


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(
        env_prefix="DRIVEWATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    LOG_LEVEL: str = "info"
    LOG_JSON: bool = False

    # History
    HISTORY_DB_PATH: str = DEFAULT_HISTORY_DB_PATH
    HISTORY_RETENTION: str = "90d"
    HISTORY_PERIOD: str = "7d"

    # Analyzer thresholds
    TEMP_WARNING: int = 60
    TEMP_CRITICAL: int = 70
    WEAR_WARNING: float = 80.0
    WEAR_CRITICAL: float = 90.0
    ENABLE_PREDICTIVE: bool = True

    # Alerts
    ALERTS_ENABLED: bool = False
    ALERT_WEBHOOK_URL: Optional[str] = None
    ALERT_WEBHOOK_TIMEOUT: float = 30.0
    ALERT_MIN_LEVEL: str = "warning"
    ALERT_COOLDOWN_MINUTES: int = 60

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard levels"""
        valid_levels = ("debug", "info", "warning", "error", "critical")
        v_lower = v.lower()
        if v_lower not in valid_levels:
            raise ValueError(
                f"LOG_LEVEL must be one of {valid_levels}, got '{v}'"
            )
        return v_lower

    @field_validator("HISTORY_RETENTION", "HISTORY_PERIOD")
    @classmethod
    def validate_period(cls, v: str) -> str:
        parse_period(v)
        return v

    @field_validator("TEMP_CRITICAL")
    @classmethod
    def validate_temp_critical(cls, v: int, info: ValidationInfo) -> int:
        warning = info.data.get("TEMP_WARNING")
        if warning is not None and v < warning:
            raise ValueError(f"TEMP_CRITICAL ({v}) must not be below TEMP_WARNING ({warning})")
        return v

    @field_validator("WEAR_WARNING", "WEAR_CRITICAL")
    @classmethod
    def validate_wear_range(cls, v: float) -> float:
        if not 0.0 <= v <= 100.0:
            raise ValueError(f"Wear thresholds must be between 0 and 100, got {v}")
        return v

    @field_validator("ALERT_WEBHOOK_URL")
    @classmethod
    def validate_webhook_url(cls, v: Optional[str]) -> Optional[str]:
        if v and not v.startswith(("http://", "https://")):
            raise ValueError(f"ALERT_WEBHOOK_URL '{v}' must start with http:// or https://")
        return v or None

    @field_validator("ALERT_WEBHOOK_TIMEOUT")
    @classmethod
    def validate_webhook_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"ALERT_WEBHOOK_TIMEOUT must be positive, got {v}")
        if v > 300:
            raise ValueError(f"ALERT_WEBHOOK_TIMEOUT seems excessively high: {v} seconds")
        return v

    @field_validator("ALERT_MIN_LEVEL")
    @classmethod
    def validate_min_level(cls, v: str) -> str:
        valid_levels = tuple(level.value for level in AlertLevel)
        v_lower = v.lower()
        if v_lower not in valid_levels:
            raise ValueError(f"ALERT_MIN_LEVEL must be one of {valid_levels}, got '{v}'")
        return v_lower

    @field_validator("ALERT_COOLDOWN_MINUTES")
    @classmethod
    def validate_cooldown(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"ALERT_COOLDOWN_MINUTES must not be negative, got {v}")
        return v

    @property
    def history_retention(self) -> timedelta:
        return parse_period(self.HISTORY_RETENTION)

    @property
    def history_period(self) -> timedelta:
        return parse_period(self.HISTORY_PERIOD)

    def analyzer_config(self) -> AnalyzerConfig:
        return AnalyzerConfig(
            temp_warning=self.TEMP_WARNING,
            temp_critical=self.TEMP_CRITICAL,
            wear_warning=self.WEAR_WARNING,
            wear_critical=self.WEAR_CRITICAL,
            enable_predictive=self.ENABLE_PREDICTIVE,
        )

    def alert_config(self) -> AlertConfig:
        return AlertConfig(
            enabled=self.ALERTS_ENABLED,
            webhook_url=self.ALERT_WEBHOOK_URL,
            webhook_timeout=self.ALERT_WEBHOOK_TIMEOUT,
            min_level=AlertLevel(self.ALERT_MIN_LEVEL),
            cooldown=timedelta(minutes=self.ALERT_COOLDOWN_MINUTES),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings, loaded on first use"""
    return Settings()
