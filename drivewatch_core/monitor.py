"""
Drive monitoring pipeline

Wires the analyzer, history store and alert manager together:

    snapshot -> HealthAnalyzer -> HistoryStore (optional)
                              -> AlertManager (optional)

Recording and alerting are best effort. A failure in either is logged and
the analysis result is still returned.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from .alerts import AlertManager
from .analyzer import HealthAnalyzer
from .config import Settings, get_settings
from .exceptions import AlertDeliveryError, ConfigurationError, HistoryStoreError
from .history import HistoryRecord, HistoryStore, TrendReport
from .models import AnalysisResult, AttributeSnapshot, HealthStatus
from .structured_logger import device_context, get_logger

logger = get_logger("drivewatch.monitor")

DEFAULT_RETENTION = timedelta(days=90)
DEFAULT_PERIOD = timedelta(days=7)


@dataclass
class DeviceReport:
    """Recent history and trend for one device"""
    device: str
    period: timedelta
    records: List[HistoryRecord] = field(default_factory=list)
    trend: Optional[TrendReport] = None

    @property
    def latest(self) -> Optional[HistoryRecord]:
        return self.records[0] if self.records else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "device": self.device,
            "period_seconds": self.period.total_seconds(),
            "latest": self.latest.to_dict() if self.latest else None,
            "record_count": len(self.records),
            "trend": self.trend.to_dict() if self.trend else None,
        }


class DriveMonitor:
    """Analyze snapshots, keep their history and raise alerts"""

    def __init__(
        self,
        analyzer: Optional[HealthAnalyzer] = None,
        store: Optional[HistoryStore] = None,
        alerts: Optional[AlertManager] = None,
        retention: timedelta = DEFAULT_RETENTION,
        period: timedelta = DEFAULT_PERIOD,
    ):
        if retention <= timedelta(0):
            raise ConfigurationError("retention", f"must be positive, got {retention}")
        if period <= timedelta(0):
            raise ConfigurationError("period", f"must be positive, got {period}")
        self.analyzer = analyzer or HealthAnalyzer()
        self.store = store
        self.alerts = alerts
        self.retention = retention
        self.period = period

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "DriveMonitor":
        """Build a monitor with every component configured from settings"""
        settings = settings or get_settings()
        return cls(
            analyzer=HealthAnalyzer(settings.analyzer_config()),
            store=HistoryStore(settings.HISTORY_DB_PATH),
            alerts=AlertManager(settings.alert_config()),
            retention=settings.history_retention,
            period=settings.history_period,
        )

    def __enter__(self) -> "DriveMonitor":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self) -> None:
        if self.store is not None:
            self.store.close()
        if self.alerts is not None:
            self.alerts.close()

    def process(self, snapshot: AttributeSnapshot) -> AnalysisResult:
        """Analyze one snapshot, then record and alert on the result"""
        with device_context(device=snapshot.device):
            result = self.analyzer.analyze(snapshot)

            if self.store is not None:
                try:
                    record_id = self.store.record_analysis(snapshot, result)
                    logger.debug("Recorded analysis", record_id=record_id)
                except HistoryStoreError as e:
                    logger.warning("Failed to record history", error=e.message)

            if self.alerts is not None:
                try:
                    sent = self.alerts.check_and_alert(result)
                    if sent:
                        logger.info("Alerts raised", alert_count=len(sent))
                except AlertDeliveryError as e:
                    logger.warning("Failed to send alerts", error=e.message)

            return result

    def process_all(self, snapshots: Iterable[AttributeSnapshot]) -> List[AnalysisResult]:
        return [self.process(snapshot) for snapshot in snapshots]

    def quick_check(self, snapshots: Iterable[AttributeSnapshot]) -> bool:
        """True if every drive analyzes as GOOD. Nothing is recorded or alerted."""
        healthy = True
        for snapshot in snapshots:
            result = self.analyzer.analyze(snapshot)
            if result.overall_health != HealthStatus.GOOD:
                logger.info(
                    "Drive needs attention",
                    device=snapshot.device,
                    health=result.overall_health.value,
                    issue_count=len(result.issues),
                )
                healthy = False
        return healthy

    def _require_store(self) -> HistoryStore:
        if self.store is None:
            raise HistoryStoreError("report", "no history store configured")
        return self.store

    def device_report(self, device: str, period: Optional[timedelta] = None) -> DeviceReport:
        """History and trend for ``device`` over the last ``period``

        Raises:
            HistoryStoreError: If no store is configured or a query fails
        """
        store = self._require_store()
        period = period or self.period
        since = datetime.now(timezone.utc) - period

        return DeviceReport(
            device=device,
            period=period,
            records=store.get_history(device, since=since, limit=None),
            trend=store.get_trend(device, since),
        )

    def history_report(self, period: Optional[timedelta] = None) -> List[DeviceReport]:
        """Reports for every device with recorded history"""
        store = self._require_store()
        return [self.device_report(device, period) for device in store.get_devices()]

    def cleanup(self) -> int:
        """Delete history older than the retention period"""
        deleted = self._require_store().clean_old_records(self.retention)
        if deleted:
            logger.info("Cleaned old history", deleted=deleted)
        return deleted
