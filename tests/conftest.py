"""pytest configuration for drivewatch-core tests"""

import os
import sys

import pytest

# Add the parent directory to the path so we can import drivewatch_core
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from drivewatch_core.config import get_settings
from drivewatch_core.models import (
    AttributeReading,
    AttributeSnapshot,
    AttributeType,
    HealthAssessment,
    WhenFailed,
)


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Settings are cached per process; start every test from the environment"""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def temp_db_path(tmp_path):
    """Provide a temporary database path"""
    return str(tmp_path / "smart.db")


@pytest.fixture
def store(temp_db_path):
    """Provide a history store on a fresh database"""
    from drivewatch_core.history import HistoryStore
    with HistoryStore(temp_db_path) as history:
        yield history


@pytest.fixture
def make_attribute():
    """Factory for SMART attribute readings"""
    def _make(attribute_id, raw_value=0, value=100, threshold=0, **kwargs):
        kwargs.setdefault("name", f"Attribute_{attribute_id}")
        kwargs.setdefault("worst", value)
        kwargs.setdefault("type", AttributeType.OLD_AGE)
        kwargs.setdefault("when_failed", WhenFailed.NEVER)
        return AttributeReading(
            id=attribute_id,
            value=value,
            threshold=threshold,
            raw_value=raw_value,
            **kwargs,
        )
    return _make


@pytest.fixture
def make_snapshot():
    """Factory for snapshots of a healthy spinning disk unless overridden"""
    def _make(device="/dev/sda", attributes=None, **kwargs):
        kwargs.setdefault("model", "WDC WD40EFRX")
        kwargs.setdefault("serial", "WD-1234")
        kwargs.setdefault("temperature", 35)
        kwargs.setdefault("power_on_hours", 10000)
        kwargs.setdefault("rotation_rate", 5400)
        return AttributeSnapshot(device=device, attributes=attributes or [], **kwargs)
    return _make


@pytest.fixture
def make_ssd_snapshot(make_snapshot):
    """Factory for solid-state drive snapshots"""
    def _make(device="/dev/nvme0n1", percent_used=None, **kwargs):
        kwargs.setdefault("model", "Samsung SSD 970 EVO")
        kwargs["rotation_rate"] = 0
        if percent_used is not None:
            kwargs["health_assessment"] = HealthAssessment(passed=True, percent_used=percent_used)
        return make_snapshot(device=device, **kwargs)
    return _make
