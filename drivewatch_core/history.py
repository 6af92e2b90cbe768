"""
SMART History Tracking

Persists analysis results in SQLite and computes temperature, health and
SSD wear trends from the stored records.

Each recorded analysis is one header row in ``smart_history`` with its
attribute readings in ``smart_attributes`` and its issues in ``smart_issues``.
Child rows cascade when a header row is deleted.

The store opens a connection per call and assumes a single writer per
database file.
"""

import logging
import os
import sqlite3
import time
from contextlib import contextmanager
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Any, List, Optional, Sequence, Tuple

from .config import DEFAULT_HISTORY_DB_PATH
from .exceptions import HistoryStoreError
from .metrics import track_history_operation, update_drive_gauges
from .models import (
    AnalysisResult,
    AttributeSnapshot,
    HealthStatus,
    HealthTrend,
    Severity,
    TrendDirection,
)

logger = logging.getLogger("drivewatch.history")

MIN_TREND_SAMPLES = 3
TEMPERATURE_SLOPE_THRESHOLD = 0.5
HEALTH_SLOPE_THRESHOLD = 1.0
MAX_FAILURE_PROJECTION_DAYS = 3650

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS smart_history (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        device TEXT NOT NULL,
        model TEXT,
        serial TEXT,
        timestamp TEXT NOT NULL,
        temperature INTEGER,
        power_on_hours INTEGER,
        health_status TEXT NOT NULL,
        failure_probability REAL,
        remaining_life REAL,
        percent_used REAL,
        issue_count INTEGER,
        critical_issues INTEGER,
        warning_issues INTEGER
    );

    CREATE INDEX IF NOT EXISTS idx_device_timestamp ON smart_history(device, timestamp);
    CREATE INDEX IF NOT EXISTS idx_timestamp ON smart_history(timestamp);

    CREATE TABLE IF NOT EXISTS smart_attributes (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        history_id INTEGER NOT NULL,
        attribute_id INTEGER,
        attribute_name TEXT,
        value INTEGER,
        worst INTEGER,
        threshold INTEGER,
        raw_value INTEGER,
        type TEXT,
        when_failed TEXT,
        FOREIGN KEY(history_id) REFERENCES smart_history(id) ON DELETE CASCADE
    );

    CREATE INDEX IF NOT EXISTS idx_history_attr ON smart_attributes(history_id, attribute_id);

    CREATE TABLE IF NOT EXISTS smart_issues (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        history_id INTEGER NOT NULL,
        severity TEXT,
        code TEXT,
        description TEXT,
        attribute_id INTEGER,
        value TEXT,
        FOREIGN KEY(history_id) REFERENCES smart_history(id) ON DELETE CASCADE
    );

    CREATE INDEX IF NOT EXISTS idx_history_issues ON smart_issues(history_id);
"""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_db_time(value: datetime) -> str:
    """Serialize a timestamp so that string order matches time order"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_db_time(value: str) -> datetime:
    return datetime.fromisoformat(value)


@dataclass(frozen=True)
class HistoryRecord:
    """One recorded analysis"""
    id: int
    device: str
    timestamp: datetime
    temperature: Optional[int]  # None when the drive did not report one
    power_on_hours: int
    health_status: HealthStatus
    failure_probability: float
    remaining_life: float
    percent_used: float
    issue_count: int
    critical_issues: int
    warning_issues: int
    model: str = ""
    serial: str = ""

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "HistoryRecord":
        return cls(
            id=row["id"],
            device=row["device"],
            timestamp=_from_db_time(row["timestamp"]),
            temperature=row["temperature"],
            power_on_hours=row["power_on_hours"] or 0,
            health_status=HealthStatus(row["health_status"]),
            failure_probability=row["failure_probability"] or 0.0,
            remaining_life=row["remaining_life"] or 0.0,
            percent_used=row["percent_used"] or 0.0,
            issue_count=row["issue_count"] or 0,
            critical_issues=row["critical_issues"] or 0,
            warning_issues=row["warning_issues"] or 0,
            model=row["model"] or "",
            serial=row["serial"] or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        data["health_status"] = self.health_status.value
        return data


@dataclass(frozen=True)
class StoredAttribute:
    """An attribute reading stored with a history record"""
    attribute_id: int
    name: str
    value: int
    worst: int
    threshold: int
    raw_value: int
    type: str
    when_failed: str


@dataclass(frozen=True)
class StoredIssue:
    """An issue stored with a history record"""
    severity: Severity
    code: str
    description: str
    attribute_id: Optional[int]
    value: str


@dataclass(frozen=True)
class TrendReport:
    """Trend analysis for one device over a time window"""
    device: str
    start_time: Optional[datetime]
    end_time: Optional[datetime]
    avg_temperature: Optional[float]
    min_temperature: Optional[int]
    max_temperature: Optional[int]
    temp_trend: TrendDirection
    health_trend: HealthTrend
    ssd_wear_rate: float  # percent used per day
    estimated_failure_date: Optional[datetime]
    record_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "device": self.device,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "avg_temperature": self.avg_temperature,
            "min_temperature": self.min_temperature,
            "max_temperature": self.max_temperature,
            "temp_trend": self.temp_trend.value,
            "health_trend": self.health_trend.value,
            "ssd_wear_rate": self.ssd_wear_rate,
            "estimated_failure_date": (
                self.estimated_failure_date.isoformat() if self.estimated_failure_date else None
            ),
            "record_count": self.record_count,
        }


def calculate_linear_trend(values: Sequence[float]) -> float:
    """Least-squares slope of ``values`` against their index (positive = increasing)"""
    n = len(values)
    if n < 2:
        return 0.0

    x_mean = (n - 1) / 2
    y_mean = sum(values) / n

    numerator = sum((x - x_mean) * (y - y_mean) for x, y in enumerate(values))
    denominator = sum((x - x_mean) ** 2 for x in range(n))

    return numerator / denominator if denominator != 0 else 0.0


def _slope_sign(values: Sequence[float], threshold: float) -> int:
    """+1, -1 or 0 depending on whether the slope clears +/- threshold"""
    if len(values) < MIN_TREND_SAMPLES:
        return 0
    slope = calculate_linear_trend(values)
    if slope > threshold:
        return 1
    if slope < -threshold:
        return -1
    return 0


def health_score(critical_issues: int, warning_issues: int, failure_probability: float) -> float:
    """Composite badness score for one record (higher is worse)"""
    return critical_issues * 10 + warning_issues * 3 + failure_probability


class HistoryStore:
    """Store and query SMART analysis history

    The database path can be configured via the DRIVEWATCH_HISTORY_DB_PATH
    environment variable. Defaults to ~/.config/drivewatch/smart.db.
    """

    def __init__(self, db_path: Optional[str] = None):
        """Open (and create if needed) the history database.

        Raises:
            HistoryStoreError: If the directory or schema cannot be created
        """
        self.db_path = Path(
            db_path or os.getenv("DRIVEWATCH_HISTORY_DB_PATH") or DEFAULT_HISTORY_DB_PATH
        )
        self._init_db()

    def __enter__(self) -> "HistoryStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self) -> None:
        """Release resources. Connections are per call, so nothing stays open."""
        logger.debug(f"Closed history store {self.db_path}")

    @contextmanager
    def _get_connection(self):
        """Get a database connection with foreign keys enabled"""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _operation(self, operation: str, device: Optional[str] = None):
        """Time an operation and convert database errors to HistoryStoreError

        OverflowError is raised by sqlite3 for integers outside 64 bits.
        """
        start = time.perf_counter()
        try:
            yield
        except (sqlite3.Error, OverflowError) as e:
            track_history_operation(operation, (time.perf_counter() - start) * 1000, success=False)
            logger.error(f"History {operation} failed: {e}")
            raise HistoryStoreError(operation, str(e), device=device) from e
        track_history_operation(operation, (time.perf_counter() - start) * 1000)

    def _init_db(self):
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Cannot create history directory {self.db_path.parent}: {e}")
            raise HistoryStoreError("initialize", str(e)) from e

        with self._operation("initialize"):
            with self._get_connection() as conn:
                conn.executescript(_SCHEMA)

    def record_analysis(
        self,
        snapshot: AttributeSnapshot,
        result: AnalysisResult,
        recorded_at: Optional[datetime] = None,
    ) -> int:
        """Store an analysis with its attribute readings and issues.

        All rows are written in one transaction; on any failure nothing is
        stored.

        Args:
            snapshot: The snapshot that was analyzed
            result: The analysis of ``snapshot``
            recorded_at: Record timestamp, defaults to now

        Returns:
            The id of the new history record

        Raises:
            HistoryStoreError: If any insert fails
        """
        timestamp = recorded_at or _utcnow()
        wear = result.ssd_wear
        critical = result.critical_issue_count
        warning = result.warning_issue_count

        with self._operation("record_analysis", device=snapshot.device):
            with self._get_connection() as conn:
                with conn:
                    cursor = conn.execute("""
                        INSERT INTO smart_history (
                            device, model, serial, timestamp, temperature, power_on_hours,
                            health_status, failure_probability, remaining_life, percent_used,
                            issue_count, critical_issues, warning_issues
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """, (
                        snapshot.device,
                        snapshot.model,
                        snapshot.serial,
                        _to_db_time(timestamp),
                        snapshot.temperature if snapshot.temperature > 0 else None,
                        snapshot.power_on_hours,
                        result.overall_health.value,
                        result.failure_probability,
                        wear.remaining_life if wear else 0.0,
                        wear.percent_used if wear else 0.0,
                        len(result.issues),
                        critical,
                        warning,
                    ))
                    history_id = cursor.lastrowid

                    conn.executemany("""
                        INSERT INTO smart_attributes (
                            history_id, attribute_id, attribute_name, value, worst,
                            threshold, raw_value, type, when_failed
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """, [
                        (
                            history_id, attr.id, attr.name, attr.value, attr.worst,
                            attr.threshold, attr.raw_value, attr.type.value, attr.when_failed.value,
                        )
                        for attr in snapshot.attributes
                    ])

                    conn.executemany("""
                        INSERT INTO smart_issues (
                            history_id, severity, code, description, attribute_id, value
                        ) VALUES (?, ?, ?, ?, ?, ?)
                    """, [
                        (
                            history_id, issue.severity.value, issue.code,
                            issue.description, issue.attribute_id, issue.value,
                        )
                        for issue in result.issues
                    ])

        update_drive_gauges(result)
        logger.debug(
            f"Recorded analysis {history_id} for {snapshot.device} "
            f"({critical} critical, {warning} warning issues)"
        )
        return history_id

    def get_history(
        self,
        device: str,
        since: Optional[datetime] = None,
        limit: Optional[int] = 100,
    ) -> List[HistoryRecord]:
        """Records for ``device`` newer than ``since``, most recent first.

        ``limit=None`` returns every matching record.
        """
        query = "SELECT * FROM smart_history WHERE device = ?"
        params: List[Any] = [device]

        if since:
            query += " AND timestamp >= ?"
            params.append(_to_db_time(since))

        query += " ORDER BY timestamp DESC, id DESC LIMIT ?"
        params.append(-1 if limit is None else limit)

        with self._operation("get_history", device=device):
            with self._get_connection() as conn:
                rows = conn.execute(query, params).fetchall()
        return [HistoryRecord.from_row(row) for row in rows]

    def get_latest(self, device: str) -> Optional[HistoryRecord]:
        """Most recent record for ``device``, if any"""
        records = self.get_history(device, limit=1)
        return records[0] if records else None

    def get_record_attributes(self, record_id: int) -> List[StoredAttribute]:
        """Attribute readings stored with a history record"""
        with self._operation("get_record_attributes"):
            with self._get_connection() as conn:
                rows = conn.execute("""
                    SELECT attribute_id, attribute_name, value, worst, threshold,
                           raw_value, type, when_failed
                    FROM smart_attributes
                    WHERE history_id = ?
                    ORDER BY id ASC
                """, (record_id,)).fetchall()
        return [
            StoredAttribute(
                attribute_id=row["attribute_id"],
                name=row["attribute_name"] or "",
                value=row["value"],
                worst=row["worst"],
                threshold=row["threshold"],
                raw_value=row["raw_value"],
                type=row["type"],
                when_failed=row["when_failed"],
            )
            for row in rows
        ]

    def get_record_issues(self, record_id: int) -> List[StoredIssue]:
        """Issues stored with a history record"""
        with self._operation("get_record_issues"):
            with self._get_connection() as conn:
                rows = conn.execute("""
                    SELECT severity, code, description, attribute_id, value
                    FROM smart_issues
                    WHERE history_id = ?
                    ORDER BY id ASC
                """, (record_id,)).fetchall()
        return [
            StoredIssue(
                severity=Severity(row["severity"]),
                code=row["code"],
                description=row["description"],
                attribute_id=row["attribute_id"],
                value=row["value"] or "",
            )
            for row in rows
        ]

    def get_devices(self) -> List[str]:
        """All devices with recorded history, in ascending order"""
        with self._operation("get_devices"):
            with self._get_connection() as conn:
                rows = conn.execute(
                    "SELECT DISTINCT device FROM smart_history ORDER BY device ASC"
                ).fetchall()
        return [row["device"] for row in rows]

    def clean_old_records(self, retention: timedelta) -> int:
        """Delete records older than ``retention``; returns the number deleted"""
        cutoff = _utcnow() - retention

        with self._operation("clean_old_records"):
            with self._get_connection() as conn:
                with conn:
                    result = conn.execute(
                        "DELETE FROM smart_history WHERE timestamp < ?",
                        (_to_db_time(cutoff),)
                    )
                    deleted = result.rowcount

        logger.info(f"Cleaned up {deleted} history records older than {cutoff.isoformat()}")
        return deleted

    def get_trend(self, device: str, since: Optional[datetime] = None) -> TrendReport:
        """
        Analyze temperature, health and wear trends for a device.

        Trends need at least three records; with fewer, both trends are
        reported as stable. The wear rate compares the earliest and latest
        records with a non-zero percent-used.
        """
        where = "WHERE device = ?"
        params: List[Any] = [device]
        if since:
            where += " AND timestamp >= ?"
            params.append(_to_db_time(since))

        with self._operation("get_trend", device=device):
            with self._get_connection() as conn:
                summary = conn.execute(f"""
                    SELECT
                        COUNT(*) AS record_count,
                        AVG(temperature) AS avg_temp,
                        MIN(temperature) AS min_temp,
                        MAX(temperature) AS max_temp,
                        MIN(timestamp) AS start_time,
                        MAX(timestamp) AS end_time
                    FROM smart_history
                    {where}
                """, params).fetchone()

                rows = conn.execute(f"""
                    SELECT timestamp, temperature, critical_issues, warning_issues,
                           failure_probability, percent_used
                    FROM smart_history
                    {where}
                    ORDER BY timestamp ASC, id ASC
                """, params).fetchall()

        temperatures = [row["temperature"] for row in rows if row["temperature"] is not None]
        scores = [
            health_score(
                row["critical_issues"] or 0,
                row["warning_issues"] or 0,
                row["failure_probability"] or 0.0,
            )
            for row in rows
        ]
        wear_samples = [
            (_from_db_time(row["timestamp"]), row["percent_used"])
            for row in rows
            if row["percent_used"] and row["percent_used"] > 0
        ]

        temp_trend = {
            1: TrendDirection.INCREASING,
            -1: TrendDirection.DECREASING,
        }.get(_slope_sign(temperatures, TEMPERATURE_SLOPE_THRESHOLD), TrendDirection.STABLE)

        # A rising badness score means health is getting worse
        health_trend = {
            1: HealthTrend.DEGRADING,
            -1: HealthTrend.IMPROVING,
        }.get(_slope_sign(scores, HEALTH_SLOPE_THRESHOLD), HealthTrend.STABLE)

        wear_rate = self._wear_rate(wear_samples)
        failure_date = None
        if wear_rate > 0:
            failure_date = self._project_failure_date(wear_samples[-1], wear_rate)

        return TrendReport(
            device=device,
            start_time=_from_db_time(summary["start_time"]) if summary["start_time"] else None,
            end_time=_from_db_time(summary["end_time"]) if summary["end_time"] else None,
            avg_temperature=summary["avg_temp"],
            min_temperature=summary["min_temp"],
            max_temperature=summary["max_temp"],
            temp_trend=temp_trend,
            health_trend=health_trend,
            ssd_wear_rate=wear_rate,
            estimated_failure_date=failure_date,
            record_count=summary["record_count"],
        )

    @staticmethod
    def _wear_rate(samples: List[Tuple[datetime, float]]) -> float:
        """Percent used per day between the first and last sample"""
        if len(samples) < 2:
            return 0.0

        (first_time, first_used), (last_time, last_used) = samples[0], samples[-1]
        days = (last_time - first_time).total_seconds() / 86400
        if days <= 0:
            return 0.0
        return (last_used - first_used) / days

    @staticmethod
    def _project_failure_date(latest: Tuple[datetime, float], wear_rate: float) -> Optional[datetime]:
        """Date the remaining endurance runs out at ``wear_rate`` percent per day

        A drive already at 100% used fails at its latest sample time.
        """
        latest_time, latest_used = latest
        days_left = (100.0 - latest_used) / wear_rate
        if 0 <= days_left < MAX_FAILURE_PROJECTION_DAYS:
            return latest_time + timedelta(days=days_left)
        return None
