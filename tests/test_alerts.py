"""Tests for disk health alerting"""

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from drivewatch_core.alerts import AlertManager
from drivewatch_core.config import AlertConfig
from drivewatch_core.exceptions import AlertDeliveryError
from drivewatch_core.models import (
    AlertLevel,
    AnalysisResult,
    HealthStatus,
    Issue,
    Severity,
    SSDWearInfo,
)

WEBHOOK_URL = "https://hooks.example.com/disk"


class FakeClock:
    """Controllable time source"""

    def __init__(self):
        self.now = datetime(2026, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class Webhook:
    """Records posted alerts and answers with a fixed status"""

    def __init__(self, status_code=200, error=None):
        self.status_code = status_code
        self.error = error
        self.received = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if self.error is not None:
            raise self.error(f"{self.error.__name__} for test", request=request)
        self.received.append(json.loads(request.content))
        return httpx.Response(self.status_code)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def webhook():
    return Webhook()


@pytest.fixture
def make_manager(clock):
    clients = []

    def _make(webhook=None, **config):
        config.setdefault("enabled", True)
        config.setdefault("webhook_url", WEBHOOK_URL)
        client = None
        if webhook is not None:
            client = httpx.Client(transport=httpx.MockTransport(webhook))
            clients.append(client)
        return AlertManager(AlertConfig(**config), http_client=client, clock=clock)

    yield _make
    for client in clients:
        client.close()


def critical_result(device="/dev/sda"):
    return AnalysisResult(
        device=device,
        overall_health=HealthStatus.CRITICAL,
        failure_probability=30.0,
        issues=[
            Issue(severity=Severity.CRITICAL, code="PENDING_SECTORS",
                  description="Drive has 2 pending sectors (unstable)", attribute_id=197, value="2"),
            Issue(severity=Severity.WARNING, code="HIGH_TEMP_WARNING", description="warm"),
        ],
    )


def warning_result(device="/dev/sda"):
    return AnalysisResult(
        device=device,
        overall_health=HealthStatus.WARNING,
        failure_probability=10.0,
        issues=[Issue(severity=Severity.WARNING, code="HIGH_TEMP_WARNING", description="warm")],
    )


class TestAlertGeneration:
    """Which alerts a result produces"""

    def test_disabled_sends_nothing(self, make_manager, webhook):
        manager = make_manager(webhook, enabled=False)

        assert manager.check_and_alert(critical_result()) == []
        assert webhook.received == []
        assert manager.get_last_alert_time("/dev/sda") is None

    def test_critical_health(self, make_manager, webhook):
        manager = make_manager(webhook)

        alerts = manager.check_and_alert(critical_result())

        assert [alert.title for alert in alerts] == [
            "Critical Disk Health: /dev/sda",
            "Disk Issue: PENDING_SECTORS",
        ]
        assert all(alert.level == AlertLevel.CRITICAL for alert in alerts)
        assert alerts[0].data["issue_count"] == 2
        assert alerts[1].data["attribute_id"] == 197

    def test_warning_health(self, make_manager, webhook):
        manager = make_manager(webhook)

        alerts = manager.check_and_alert(warning_result())

        assert len(alerts) == 1
        assert alerts[0].level == AlertLevel.WARNING
        assert alerts[0].title == "Disk Health Warning: /dev/sda"
        assert alerts[0].description == "Disk health degraded to warning"

    def test_good_health_sends_nothing(self, make_manager, webhook):
        manager = make_manager(webhook)

        result = AnalysisResult(device="/dev/sda", overall_health=HealthStatus.GOOD)

        assert manager.check_and_alert(result) == []
        assert manager.get_last_alert_time("/dev/sda") is None

    def test_min_level_drops_warnings(self, make_manager, webhook):
        manager = make_manager(webhook, min_level=AlertLevel.CRITICAL)

        assert manager.check_and_alert(warning_result()) == []
        assert webhook.received == []
        assert manager.is_in_cooldown("/dev/sda") is False

    def test_min_level_keeps_criticals(self, make_manager, webhook):
        manager = make_manager(webhook, min_level="critical")

        assert len(manager.check_and_alert(critical_result())) == 2

    def test_predicted_failure(self, make_manager, webhook):
        manager = make_manager(webhook)
        result = AnalysisResult(
            device="/dev/sdb",
            overall_health=HealthStatus.CRITICAL,
            predicted_failure=True,
            failure_probability=62.5,
            recommendations=["Drive failure is predicted - plan for replacement"],
        )

        alerts = manager.check_and_alert(result)

        assert [alert.title for alert in alerts] == [
            "Critical Disk Health: /dev/sdb",
            "Predicted Disk Failure: /dev/sdb",
        ]
        assert alerts[1].description == "Drive is predicted to fail with 62.5% probability"

    def test_ssd_wear_critical(self, make_manager, webhook):
        manager = make_manager(webhook)
        result = AnalysisResult(
            device="/dev/nvme0n1",
            overall_health=HealthStatus.CRITICAL,
            ssd_wear=SSDWearInfo(
                percent_used=95.0,
                remaining_life=5.0,
                estimated_lifespan=timedelta(hours=100),
                wear_status=HealthStatus.CRITICAL,
            ),
        )

        alerts = manager.check_and_alert(result)

        assert alerts[-1].title == "Critical SSD Wear: /dev/nvme0n1"
        assert alerts[-1].description == "SSD has 5.0% life remaining"
        assert alerts[-1].data["percent_used"] == 95.0

    def test_ssd_wear_warning(self, make_manager, webhook):
        manager = make_manager(webhook)
        result = AnalysisResult(
            device="/dev/nvme0n1",
            overall_health=HealthStatus.WARNING,
            ssd_wear=SSDWearInfo(percent_used=85.0, remaining_life=15.0, wear_status=HealthStatus.WARNING),
        )

        alerts = manager.check_and_alert(result)

        assert [alert.level for alert in alerts] == [AlertLevel.WARNING, AlertLevel.WARNING]
        assert alerts[1].title == "SSD Wear Warning: /dev/nvme0n1"

    def test_alert_timestamp_uses_clock(self, make_manager, webhook, clock):
        manager = make_manager(webhook)

        alerts = manager.check_and_alert(warning_result())

        assert alerts[0].timestamp == clock.now


class TestCooldown:
    """Per-device alert cooldown"""

    def test_second_call_suppressed(self, make_manager, webhook, clock):
        manager = make_manager(webhook, cooldown=timedelta(minutes=5))

        assert len(manager.check_and_alert(critical_result())) == 2
        clock.advance(minutes=1)
        assert manager.check_and_alert(critical_result()) == []
        assert len(webhook.received) == 2

    def test_cooldown_expires(self, make_manager, webhook, clock):
        manager = make_manager(webhook, cooldown=timedelta(minutes=5))

        manager.check_and_alert(critical_result())
        clock.advance(minutes=5)

        assert len(manager.check_and_alert(critical_result())) == 2

    def test_cooldown_is_per_device(self, make_manager, webhook):
        manager = make_manager(webhook)

        manager.check_and_alert(critical_result("/dev/sda"))

        assert len(manager.check_and_alert(critical_result("/dev/sdb"))) == 2
        assert manager.is_in_cooldown("/dev/sda")
        assert manager.is_in_cooldown("/dev/sdc") is False

    def test_zero_cooldown(self, make_manager, webhook):
        manager = make_manager(webhook, cooldown=timedelta(0))

        manager.check_and_alert(warning_result())

        assert len(manager.check_and_alert(warning_result())) == 1

    def test_clear_cooldown(self, make_manager, webhook):
        manager = make_manager(webhook)
        manager.check_and_alert(warning_result())

        manager.clear_cooldown("/dev/sda")

        assert manager.get_last_alert_time("/dev/sda") is None
        assert len(manager.check_and_alert(warning_result())) == 1

    def test_clear_unknown_device(self, make_manager):
        make_manager().clear_cooldown("/dev/never-seen")

    def test_last_alert_time(self, make_manager, webhook, clock):
        manager = make_manager(webhook)

        manager.check_and_alert(warning_result())

        assert manager.get_last_alert_time("/dev/sda") == clock.now


class TestDelivery:
    """Webhook delivery"""

    def test_posts_json_in_order(self, make_manager, webhook):
        manager = make_manager(webhook)

        manager.check_and_alert(critical_result())

        assert [payload["title"] for payload in webhook.received] == [
            "Critical Disk Health: /dev/sda",
            "Disk Issue: PENDING_SECTORS",
        ]
        assert webhook.received[0]["level"] == "critical"
        assert webhook.received[0]["device"] == "/dev/sda"
        assert webhook.received[0]["timestamp"].startswith("2026-05-01T12:00:00")

    def test_rejected_alert_raises(self, make_manager):
        webhook = Webhook(status_code=500)
        manager = make_manager(webhook)

        with pytest.raises(AlertDeliveryError) as exc_info:
            manager.check_and_alert(critical_result())

        assert exc_info.value.status_code == 500
        assert exc_info.value.url == WEBHOOK_URL
        # Delivery stops at the first failure
        assert len(webhook.received) == 1

    def test_failed_delivery_still_starts_cooldown(self, make_manager, clock):
        manager = make_manager(Webhook(status_code=503))

        with pytest.raises(AlertDeliveryError):
            manager.check_and_alert(critical_result())

        assert manager.get_last_alert_time("/dev/sda") == clock.now
        assert manager.check_and_alert(critical_result()) == []

    def test_timeout_raises(self, make_manager):
        manager = make_manager(Webhook(error=httpx.ReadTimeout))

        with pytest.raises(AlertDeliveryError) as exc_info:
            manager.check_and_alert(warning_result())

        assert "timed out" in str(exc_info.value)
        assert exc_info.value.status_code is None

    def test_connection_error_raises(self, make_manager):
        manager = make_manager(Webhook(error=httpx.ConnectError))

        with pytest.raises(AlertDeliveryError) as exc_info:
            manager.check_and_alert(warning_result())

        assert WEBHOOK_URL in str(exc_info.value)

    def test_accepts_any_2xx(self, make_manager):
        webhook = Webhook(status_code=204)
        manager = make_manager(webhook)

        assert len(manager.check_and_alert(warning_result())) == 1
        assert len(webhook.received) == 1

    def test_no_webhook_only_logs(self, make_manager):
        manager = make_manager(webhook_url=None)

        alerts = manager.check_and_alert(critical_result())

        assert len(alerts) == 2
        assert manager.is_in_cooldown("/dev/sda")


class TestClientLifecycle:

    def test_owned_client_is_closed(self):
        manager = AlertManager(AlertConfig(enabled=True, webhook_url=WEBHOOK_URL))
        client = manager._client

        with manager:
            pass

        assert client.is_closed

    def test_injected_client_is_left_open(self, webhook):
        client = httpx.Client(transport=httpx.MockTransport(webhook))

        with AlertManager(AlertConfig(enabled=True, webhook_url=WEBHOOK_URL), http_client=client):
            pass

        assert client.is_closed is False
        client.close()

    def test_closed_manager_refuses_to_alert(self):
        manager = AlertManager(AlertConfig(enabled=True, webhook_url=WEBHOOK_URL))
        manager.close()

        with pytest.raises(AlertDeliveryError):
            manager.check_and_alert(critical_result())

        assert manager.is_in_cooldown("/dev/sda") is False

    def test_closed_manager_without_webhook_still_logs(self):
        manager = AlertManager(AlertConfig(enabled=True))
        manager.close()

        assert len(manager.check_and_alert(critical_result())) == 2

    def test_no_client_without_webhook(self):
        assert AlertManager(AlertConfig(enabled=True))._client is None


class TestAlertConfig:

    def test_defaults(self):
        config = AlertConfig()

        assert config.enabled is False
        assert config.webhook_url is None
        assert config.webhook_timeout == 30.0
        assert config.min_level == AlertLevel.WARNING
        assert config.cooldown == timedelta(minutes=60)

    def test_rejects_non_http_url(self):
        with pytest.raises(ValueError):
            AlertConfig(webhook_url="ftp://example.com/hook")

    def test_rejects_negative_cooldown(self):
        with pytest.raises(ValueError):
            AlertConfig(cooldown=timedelta(minutes=-1))
