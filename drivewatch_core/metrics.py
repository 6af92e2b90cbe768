"""Prometheus metrics for DriveWatch Core"""

from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST

from .models import AnalysisResult

# History store metrics
history_operations_total = Counter(
    'drivewatch_history_operations_total',
    'Total history store operations',
    ['operation', 'status']
)

history_operation_duration_seconds = Histogram(
    'drivewatch_history_operation_duration_seconds',
    'History store operation duration in seconds',
    ['operation']
)

# Alert metrics
alerts_total = Counter(
    'drivewatch_alerts_total',
    'Total alerts by outcome',
    ['level', 'outcome']
)

alerts_suppressed_total = Counter(
    'drivewatch_alerts_suppressed_total',
    'Alert evaluations suppressed by cooldown'
)

# Drive metrics
drive_failure_probability = Gauge(
    'drivewatch_drive_failure_probability',
    'Latest predicted failure probability (0-100)',
    ['device']
)

drive_health_rank = Gauge(
    'drivewatch_drive_health_rank',
    'Latest overall health (0=good, 1=warning, 2=critical, 3=failing, 4=unknown)',
    ['device']
)


def track_history_operation(operation: str, duration_ms: float, success: bool = True):
    """Track a history store operation"""
    status = 'success' if success else 'error'
    history_operations_total.labels(operation=operation, status=status).inc()
    history_operation_duration_seconds.labels(operation=operation).observe(duration_ms / 1000)


def track_alert(level: str, delivered: bool):
    """Track an alert delivery attempt"""
    outcome = 'delivered' if delivered else 'failed'
    alerts_total.labels(level=level, outcome=outcome).inc()


def track_suppressed_alerts():
    """Track an evaluation skipped because the device is in cooldown"""
    alerts_suppressed_total.inc()


def update_drive_gauges(result: AnalysisResult):
    """Publish the latest analysis of a drive"""
    drive_failure_probability.labels(device=result.device).set(result.failure_probability)
    drive_health_rank.labels(device=result.device).set(result.overall_health.rank)


def get_metrics_text() -> bytes:
    """Render all metrics in the Prometheus exposition format"""
    return generate_latest()


METRICS_CONTENT_TYPE = CONTENT_TYPE_LATEST
