"""Disk health alerting

Turns analysis results into alerts and delivers them to a webhook, with a
per-device cooldown so a degraded drive does not page on every run.
"""

import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

import httpx

from .config import AlertConfig
from .exceptions import AlertDeliveryError
from .metrics import track_alert, track_suppressed_alerts
from .models import Alert, AlertLevel, AnalysisResult, HealthStatus, Severity
from .structured_logger import get_logger

logger = get_logger("drivewatch.alerts")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AlertManager:
    """
    Generate and deliver disk health alerts.

    Once any alert is generated for a device, further results for that device
    are ignored until the cooldown elapses. The cooldown starts before
    delivery, so a failed webhook call still consumes the window.

    Example:
        with AlertManager(AlertConfig(enabled=True, webhook_url=url)) as alerts:
            alerts.check_and_alert(result)
    """

    def __init__(
        self,
        config: Optional[AlertConfig] = None,
        http_client: Optional[httpx.Client] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config or AlertConfig()
        self._clock = clock or _utcnow
        self._lock = threading.Lock()
        self._last_alerts: Dict[str, datetime] = {}
        self._closed = False

        self._owns_client = http_client is None
        self._client = http_client
        if self._client is None and self.config.webhook_url:
            self._client = httpx.Client(timeout=self.config.webhook_timeout)

    def __enter__(self) -> "AlertManager":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self) -> None:
        """Close the HTTP client if this manager created it. Alerting after close raises."""
        self._closed = True
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None

    # =========================================================================
    # Cooldown
    # =========================================================================

    def _in_cooldown(self, device: str, now: datetime) -> bool:
        last = self._last_alerts.get(device)
        return last is not None and now - last < self.config.cooldown

    def is_in_cooldown(self, device: str) -> bool:
        with self._lock:
            return self._in_cooldown(device, self._clock())

    def clear_cooldown(self, device: str) -> None:
        """Allow the next result for ``device`` to alert immediately"""
        with self._lock:
            self._last_alerts.pop(device, None)

    def get_last_alert_time(self, device: str) -> Optional[datetime]:
        with self._lock:
            return self._last_alerts.get(device)

    # =========================================================================
    # Alerting
    # =========================================================================

    def check_and_alert(self, result: AnalysisResult) -> List[Alert]:
        """
        Generate alerts for an analysis result and deliver them.

        Args:
            result: Analysis of one drive

        Returns:
            The alerts generated, in delivery order. Empty when alerting is
            disabled, the device is in cooldown, or nothing reaches the
            minimum level.

        Raises:
            AlertDeliveryError: On the first alert the webhook does not accept
                or when the manager was closed with a webhook configured
        """
        if not self.config.enabled:
            return []

        if self._closed and self.config.webhook_url:
            raise AlertDeliveryError(self.config.webhook_url, "alert manager is closed")

        with self._lock:
            now = self._clock()
            if self._in_cooldown(result.device, now):
                track_suppressed_alerts()
                logger.debug("Alerts suppressed by cooldown", device=result.device)
                return []

            alerts = [
                alert for alert in self._generate_alerts(result, now)
                if alert.level.rank >= self.config.min_level.rank
            ]
            if alerts:
                self._last_alerts[result.device] = now

        for alert in alerts:
            self._send_alert(alert)
        return alerts

    def _generate_alerts(self, result: AnalysisResult, now: datetime) -> List[Alert]:
        device = result.device
        alerts = []

        if result.overall_health in (HealthStatus.CRITICAL, HealthStatus.FAILING):
            alerts.append(Alert(
                level=AlertLevel.CRITICAL,
                device=device,
                title=f"Critical Disk Health: {device}",
                description=f"Disk health is {result.overall_health.value}",
                timestamp=now,
                data={
                    "health_status": result.overall_health.value,
                    "failure_probability": result.failure_probability,
                    "predicted_failure": result.predicted_failure,
                    "issue_count": len(result.issues),
                },
            ))
        elif result.overall_health == HealthStatus.WARNING:
            alerts.append(Alert(
                level=AlertLevel.WARNING,
                device=device,
                title=f"Disk Health Warning: {device}",
                description=f"Disk health degraded to {result.overall_health.value}",
                timestamp=now,
                data={
                    "health_status": result.overall_health.value,
                    "issue_count": len(result.issues),
                },
            ))

        if result.predicted_failure:
            alerts.append(Alert(
                level=AlertLevel.CRITICAL,
                device=device,
                title=f"Predicted Disk Failure: {device}",
                description=(
                    f"Drive is predicted to fail with "
                    f"{result.failure_probability:.1f}% probability"
                ),
                timestamp=now,
                data={
                    "failure_probability": result.failure_probability,
                    "recommendations": list(result.recommendations),
                },
            ))

        wear = result.ssd_wear
        if wear is not None and wear.wear_status == HealthStatus.CRITICAL:
            alerts.append(Alert(
                level=AlertLevel.CRITICAL,
                device=device,
                title=f"Critical SSD Wear: {device}",
                description=f"SSD has {wear.remaining_life:.1f}% life remaining",
                timestamp=now,
                data={
                    "remaining_life": wear.remaining_life,
                    "percent_used": wear.percent_used,
                    "estimated_lifespan": str(wear.estimated_lifespan),
                },
            ))
        elif wear is not None and wear.wear_status == HealthStatus.WARNING:
            alerts.append(Alert(
                level=AlertLevel.WARNING,
                device=device,
                title=f"SSD Wear Warning: {device}",
                description=f"SSD has {wear.remaining_life:.1f}% life remaining",
                timestamp=now,
                data={
                    "remaining_life": wear.remaining_life,
                    "percent_used": wear.percent_used,
                },
            ))

        for issue in result.issues:
            if issue.severity != Severity.CRITICAL:
                continue
            alerts.append(Alert(
                level=AlertLevel.CRITICAL,
                device=device,
                title=f"Disk Issue: {issue.code}",
                description=issue.description,
                timestamp=now,
                data={
                    "issue_code": issue.code,
                    "severity": issue.severity.value,
                    "attribute_id": issue.attribute_id,
                    "value": issue.value,
                },
            ))

        return alerts

    def _send_alert(self, alert: Alert) -> None:
        url = self.config.webhook_url
        if not url or self._client is None:
            logger.info(
                alert.title,
                device=alert.device,
                alert_level=alert.level.value,
                description=alert.description,
            )
            return

        try:
            response = self._client.post(
                url,
                json=alert.model_dump(mode="json"),
                timeout=self.config.webhook_timeout,
            )
        except httpx.TimeoutException as e:
            raise self._delivery_error(alert, url, f"timed out after {self.config.webhook_timeout}s") from e
        except httpx.HTTPError as e:
            raise self._delivery_error(alert, url, str(e) or type(e).__name__) from e

        if not response.is_success:
            track_alert(alert.level.value, delivered=False)
            logger.warning(
                "Webhook rejected alert",
                device=alert.device,
                alert_level=alert.level.value,
                status_code=response.status_code,
            )
            raise AlertDeliveryError(
                url, f"webhook returned status {response.status_code}",
                status_code=response.status_code,
            )

        track_alert(alert.level.value, delivered=True)
        logger.info(
            "Alert delivered",
            device=alert.device,
            alert_level=alert.level.value,
            title=alert.title,
        )

    def _delivery_error(self, alert: Alert, url: str, reason: str) -> AlertDeliveryError:
        track_alert(alert.level.value, delivered=False)
        logger.warning(
            "Alert delivery failed",
            device=alert.device,
            alert_level=alert.level.value,
            reason=reason,
        )
        return AlertDeliveryError(url, reason)
