"""Pydantic models for DriveWatch Core"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Counters are stored as SQLite INTEGER, a signed 64-bit value
MAX_COUNTER = 2**63 - 1


class _CaseInsensitiveEnum(str, Enum):
    """String enum that accepts its values in any letter case"""

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            normalized = value.strip().lower()
            for member in cls:
                if member.value == normalized:
                    return member
        return None


class _RankedEnum(_CaseInsensitiveEnum):
    """String enum whose members are strictly ordered by declaration"""

    @property
    def rank(self) -> int:
        return list(type(self)).index(self)


class Severity(_RankedEnum):
    """Issue severity, info < warning < critical"""
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class HealthStatus(_RankedEnum):
    """Overall drive health, good < warning < critical < failing < unknown"""
    GOOD = "good"
    WARNING = "warning"
    CRITICAL = "critical"
    FAILING = "failing"
    UNKNOWN = "unknown"


class AlertLevel(_RankedEnum):
    """Alert level, info < warning < critical"""
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class TrendDirection(_CaseInsensitiveEnum):
    """Direction of a metric over a time window"""
    INCREASING = "increasing"
    STABLE = "stable"
    DECREASING = "decreasing"


class HealthTrend(_CaseInsensitiveEnum):
    """Direction of drive health over a time window"""
    IMPROVING = "improving"
    STABLE = "stable"
    DEGRADING = "degrading"


class AttributeType(_CaseInsensitiveEnum):
    """SMART attribute type tag"""
    PRE_FAIL = "pre-fail"
    OLD_AGE = "old_age"


class WhenFailed(_CaseInsensitiveEnum):
    """When a SMART attribute last crossed its failure threshold"""
    NEVER = "never"
    IN_THE_PAST = "in_the_past"
    FAILING_NOW = "failing_now"

    @classmethod
    def _missing_(cls, value):
        # smartctl prints "-" for attributes that never failed
        if isinstance(value, str) and value.strip() in ("", "-"):
            return cls.NEVER
        return super()._missing_(value)


# =============================================================================
# Acquisition Input
# =============================================================================

class AttributeReading(BaseModel):
    """One SMART attribute row as reported by the drive"""
    model_config = ConfigDict(frozen=True)

    id: int = Field(..., ge=0, le=255, description="SMART attribute ID")
    name: str = Field("", description="Vendor attribute name")
    value: int = Field(0, ge=0, description="Current normalized value")
    worst: int = Field(0, ge=0, description="Worst normalized value seen")
    threshold: int = Field(0, ge=0, description="Failure threshold")
    raw_value: int = Field(0, ge=0, le=MAX_COUNTER, description="Raw counter")
    type: AttributeType = Field(AttributeType.OLD_AGE, description="Pre-fail or Old_age")
    when_failed: WhenFailed = Field(WhenFailed.NEVER, description="Failure state")

    @field_validator("type", mode="before")
    @classmethod
    def parse_type(cls, v: Any) -> Any:
        """Accept smartctl spellings such as 'Pre-fail'"""
        return AttributeType(v) if isinstance(v, str) else v

    @field_validator("when_failed", mode="before")
    @classmethod
    def parse_when_failed(cls, v: Any) -> Any:
        """Accept smartctl spellings such as 'FAILING_NOW' and '-'"""
        return WhenFailed(v) if isinstance(v, str) else v


class HealthAssessment(BaseModel):
    """Drive self-assessment reported alongside the attribute table"""
    model_config = ConfigDict(frozen=True)

    passed: Optional[bool] = Field(None, description="Overall self-assessment result")
    percent_used: float = Field(0.0, ge=0.0, le=255.0, description="SSD/NVMe endurance used")
    available_spare: Optional[float] = Field(None, description="NVMe available spare (%)")


class AttributeSnapshot(BaseModel):
    """A single diagnostic snapshot of one drive"""
    model_config = ConfigDict(frozen=True)

    device: str = Field(..., min_length=1, description="Stable device identifier, e.g. /dev/sda")
    model: str = Field("", description="Device model")
    serial: str = Field("", description="Serial number")
    model_family: str = Field("", description="Model family")
    firmware_version: str = Field("", description="Firmware version")
    capacity_bytes: int = Field(0, ge=0)
    temperature: int = Field(0, description="Current temperature in Celsius, <= 0 when not reported")
    power_on_hours: int = Field(0, ge=0, le=MAX_COUNTER)
    rotation_rate: int = Field(0, ge=0, description="RPM, 0 for solid-state drives")
    attributes: List[AttributeReading] = Field(default_factory=list)
    health_assessment: Optional[HealthAssessment] = None

    @property
    def is_ssd(self) -> bool:
        return self.rotation_rate == 0

    def get_attribute(self, attribute_id: int) -> Optional[AttributeReading]:
        """Return the first reading with the given ID, if present"""
        for attr in self.attributes:
            if attr.id == attribute_id:
                return attr
        return None


# =============================================================================
# Analysis Output
# =============================================================================

class Issue(BaseModel):
    """A specific problem found while analyzing a snapshot"""
    model_config = ConfigDict(frozen=True)

    severity: Severity
    code: str = Field(..., description="Short machine-readable code")
    description: str
    attribute_id: Optional[int] = Field(None, description="Source SMART attribute")
    value: str = Field("", description="Display value")


class SSDWearInfo(BaseModel):
    """SSD endurance analysis"""
    model_config = ConfigDict(frozen=True)

    wear_leveling_count: int = 0
    program_erase_count: int = 0
    percent_used: float = Field(0.0, ge=0.0)
    remaining_life: float = 100.0
    estimated_lifespan: timedelta = timedelta(0)
    wear_status: HealthStatus = HealthStatus.GOOD


class AnalysisResult(BaseModel):
    """Scored health assessment of one snapshot"""
    model_config = ConfigDict(frozen=True)

    device: str = ""
    overall_health: HealthStatus = HealthStatus.UNKNOWN
    predicted_failure: bool = False
    failure_probability: float = Field(0.0, ge=0.0, le=100.0)
    time_to_failure: Optional[timedelta] = None
    issues: List[Issue] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    ssd_wear: Optional[SSDWearInfo] = None

    def count_issues(self, severity: Severity) -> int:
        return sum(1 for issue in self.issues if issue.severity == severity)

    @property
    def critical_issue_count(self) -> int:
        return self.count_issues(Severity.CRITICAL)

    @property
    def warning_issue_count(self) -> int:
        return self.count_issues(Severity.WARNING)


# =============================================================================
# Notifications
# =============================================================================

class Alert(BaseModel):
    """A disk health notification, serialized as the webhook body"""
    model_config = ConfigDict(frozen=True)

    level: AlertLevel
    device: str
    title: str
    description: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    data: Dict[str, Any] = Field(default_factory=dict)
