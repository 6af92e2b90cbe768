"""
SMART Health Analysis

Turns one attribute snapshot into a scored health assessment:
- Temperature checks against configured thresholds
- Attribute failure state and near-threshold detection
- Sector health (reallocated, pending, uncorrectable)
- SSD wear and remaining lifespan estimation
- Predictive failure scoring
- Overall health aggregation and recommendations

The analyzer holds only its configuration, performs no I/O and returns a new
immutable result on every call, so one instance can be shared across threads.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Dict, List, Optional

from .attributes import AttributeKind, classify, display_name, raw_count
from .config import AnalyzerConfig
from .models import (
    AnalysisResult,
    AttributeReading,
    AttributeSnapshot,
    AttributeType,
    HealthStatus,
    Issue,
    Severity,
    SSDWearInfo,
    WhenFailed,
)

logger = logging.getLogger("drivewatch.analyzer")

PREDICTED_FAILURE_THRESHOLD = 50.0
NEAR_THRESHOLD_MARGIN = 10

# (minimum percent used, score bonus), checked highest first
WEAR_SCORE_TIERS = ((95.0, 40.0), (90.0, 25.0), (80.0, 15.0))
REALLOCATED_SCORE_LIMIT = 50
REALLOCATED_SCORE_BONUS = 20.0


@dataclass(frozen=True)
class _SectorCheck:
    code: str
    description: str
    critical_above: int


_SECTOR_CHECKS: Dict[AttributeKind, _SectorCheck] = {
    AttributeKind.REALLOCATED_SECTORS: _SectorCheck(
        "REALLOCATED_SECTORS", "Drive has {count} reallocated sectors", critical_above=100
    ),
    AttributeKind.PENDING_SECTORS: _SectorCheck(
        "PENDING_SECTORS", "Drive has {count} pending sectors (unstable)", critical_above=0
    ),
    AttributeKind.UNCORRECTABLE_SECTORS: _SectorCheck(
        "UNCORRECTABLE_SECTORS", "Drive has {count} uncorrectable sectors", critical_above=0
    ),
}


@dataclass
class _WearState:
    wear_leveling_count: int = 0
    program_erase_count: int = 0
    percent_used: float = 0.0
    remaining_life: float = 100.0

    def set_used(self, percent_used: float) -> None:
        self.percent_used = min(max(percent_used, 0.0), 100.0)
        self.remaining_life = 100.0 - self.percent_used


def _wear_leveling(state: _WearState, attr: AttributeReading) -> None:
    state.wear_leveling_count = attr.raw_value


def _program_erase(state: _WearState, attr: AttributeReading) -> None:
    state.program_erase_count = attr.raw_value


def _life_remaining(state: _WearState, attr: AttributeReading) -> None:
    if attr.value > 0:
        state.set_used(100.0 - attr.value)


def _life_consumed(state: _WearState, attr: AttributeReading) -> None:
    state.set_used(100.0 - attr.value)


_WEAR_HANDLERS: Dict[AttributeKind, Callable[[_WearState, AttributeReading], None]] = {
    AttributeKind.WEAR_LEVELING_COUNT: _wear_leveling,
    AttributeKind.PROGRAM_ERASE_COUNT: _program_erase,
    AttributeKind.LIFE_REMAINING: _life_remaining,
    AttributeKind.LIFE_CONSUMED: _life_consumed,
}


class HealthAnalyzer:
    """Analyze SMART snapshots for health problems and failure risk"""

    def __init__(self, config: Optional[AnalyzerConfig] = None):
        self.config = config or AnalyzerConfig()

    def analyze(self, snapshot: Optional[AttributeSnapshot]) -> AnalysisResult:
        """Analyze one snapshot.

        Never raises. A missing snapshot yields an UNKNOWN result with no
        issues rather than an error.
        """
        if snapshot is None:
            return AnalysisResult(overall_health=HealthStatus.UNKNOWN, issues=[])

        issues: List[Issue] = []
        issues.extend(self._analyze_temperature(snapshot))
        issues.extend(self._analyze_attributes(snapshot))
        issues.extend(self._analyze_sectors(snapshot))
        issues.extend(self._analyze_self_assessment(snapshot))

        ssd_wear = self._analyze_ssd_wear(snapshot) if snapshot.is_ssd else None

        probability = 0.0
        predicted = False
        time_to_failure = None
        if self.config.enable_predictive:
            probability = self._failure_score(snapshot, issues, ssd_wear)
            predicted = probability >= PREDICTED_FAILURE_THRESHOLD
            if ssd_wear is not None and ssd_wear.estimated_lifespan > timedelta(0):
                time_to_failure = ssd_wear.estimated_lifespan

        overall = self._overall_health(issues, predicted, ssd_wear)
        recommendations = self._recommendations(overall, predicted, issues, ssd_wear)

        logger.debug(
            f"Analyzed {snapshot.device}: {overall.value} "
            f"({len(issues)} issues, failure probability {probability:.1f}%)"
        )

        return AnalysisResult(
            device=snapshot.device,
            overall_health=overall,
            predicted_failure=predicted,
            failure_probability=probability,
            time_to_failure=time_to_failure,
            issues=issues,
            recommendations=recommendations,
            ssd_wear=ssd_wear,
        )

    def _analyze_temperature(self, snapshot: AttributeSnapshot) -> List[Issue]:
        temp = snapshot.temperature
        if temp <= 0:
            return []

        if temp >= self.config.temp_critical:
            return [Issue(
                severity=Severity.CRITICAL,
                code="HIGH_TEMP_CRITICAL",
                description=(
                    f"Drive temperature is critically high: {temp}°C "
                    f"(threshold: {self.config.temp_critical}°C)"
                ),
                value=f"{temp}°C",
            )]
        if temp >= self.config.temp_warning:
            return [Issue(
                severity=Severity.WARNING,
                code="HIGH_TEMP_WARNING",
                description=(
                    f"Drive temperature is elevated: {temp}°C "
                    f"(threshold: {self.config.temp_warning}°C)"
                ),
                value=f"{temp}°C",
            )]
        return []

    def _analyze_attributes(self, snapshot: AttributeSnapshot) -> List[Issue]:
        issues = []
        for attr in snapshot.attributes:
            if attr.when_failed == WhenFailed.FAILING_NOW:
                issues.append(Issue(
                    severity=Severity.CRITICAL,
                    code="ATTRIBUTE_FAILING",
                    description=f"SMART attribute {attr.id} ({display_name(attr)}) is failing NOW",
                    attribute_id=attr.id,
                    value=f"{attr.value} (threshold: {attr.threshold})",
                ))
            elif attr.when_failed == WhenFailed.IN_THE_PAST:
                issues.append(Issue(
                    severity=Severity.WARNING,
                    code="ATTRIBUTE_FAILED_PAST",
                    description=f"SMART attribute {attr.id} ({display_name(attr)}) failed in the past",
                    attribute_id=attr.id,
                    value=f"{attr.value} (threshold: {attr.threshold})",
                ))

            if attr.type == AttributeType.PRE_FAIL and attr.threshold > 0:
                margin = attr.value - attr.threshold
                if 0 < margin <= NEAR_THRESHOLD_MARGIN:
                    issues.append(Issue(
                        severity=Severity.WARNING,
                        code="ATTRIBUTE_NEAR_THRESHOLD",
                        description=(
                            f"SMART attribute {attr.id} ({display_name(attr)}) "
                            f"is approaching failure threshold"
                        ),
                        attribute_id=attr.id,
                        value=f"{attr.value} (threshold: {attr.threshold}, margin: {margin})",
                    ))
        return issues

    def _analyze_sectors(self, snapshot: AttributeSnapshot) -> List[Issue]:
        issues = []
        for attr in snapshot.attributes:
            check = _SECTOR_CHECKS.get(classify(attr))
            if check is None or attr.raw_value <= 0:
                continue
            severity = Severity.CRITICAL if attr.raw_value > check.critical_above else Severity.WARNING
            issues.append(Issue(
                severity=severity,
                code=check.code,
                description=check.description.format(count=attr.raw_value),
                attribute_id=attr.id,
                value=str(attr.raw_value),
            ))
        return issues

    def _analyze_self_assessment(self, snapshot: AttributeSnapshot) -> List[Issue]:
        assessment = snapshot.health_assessment
        if assessment is None or assessment.passed is not False:
            return []
        return [Issue(
            severity=Severity.CRITICAL,
            code="SELF_ASSESSMENT_FAILED",
            description="Drive self-assessment reports FAILED",
            value="FAILED",
        )]

    def _analyze_ssd_wear(self, snapshot: AttributeSnapshot) -> SSDWearInfo:
        state = _WearState()
        for attr in snapshot.attributes:
            handler = _WEAR_HANDLERS.get(classify(attr))
            if handler is not None:
                handler(state, attr)

        assessment = snapshot.health_assessment
        if assessment is not None and assessment.percent_used > 0:
            state.set_used(assessment.percent_used)

        lifespan = timedelta(0)
        if state.percent_used > 0 and snapshot.power_on_hours > 0:
            hours_per_percent = snapshot.power_on_hours / state.percent_used
            lifespan = timedelta(hours=int(hours_per_percent * state.remaining_life))

        if state.percent_used >= self.config.wear_critical:
            wear_status = HealthStatus.CRITICAL
        elif state.percent_used >= self.config.wear_warning:
            wear_status = HealthStatus.WARNING
        else:
            wear_status = HealthStatus.GOOD

        return SSDWearInfo(
            wear_leveling_count=state.wear_leveling_count,
            program_erase_count=state.program_erase_count,
            percent_used=state.percent_used,
            remaining_life=state.remaining_life,
            estimated_lifespan=lifespan,
            wear_status=wear_status,
        )

    def _failure_score(
        self,
        snapshot: AttributeSnapshot,
        issues: List[Issue],
        ssd_wear: Optional[SSDWearInfo],
    ) -> float:
        critical = sum(1 for i in issues if i.severity == Severity.CRITICAL)
        warning = sum(1 for i in issues if i.severity == Severity.WARNING)
        score = critical * 30.0 + warning * 10.0

        if ssd_wear is not None:
            for min_used, bonus in WEAR_SCORE_TIERS:
                if ssd_wear.percent_used >= min_used:
                    score += bonus
                    break

        if raw_count(snapshot, AttributeKind.REALLOCATED_SECTORS) > REALLOCATED_SCORE_LIMIT:
            score += REALLOCATED_SCORE_BONUS

        return max(0.0, min(100.0, score))

    def _overall_health(
        self,
        issues: List[Issue],
        predicted: bool,
        ssd_wear: Optional[SSDWearInfo],
    ) -> HealthStatus:
        severities = {issue.severity for issue in issues}

        if Severity.CRITICAL in severities or predicted:
            health = HealthStatus.CRITICAL
        elif Severity.WARNING in severities:
            health = HealthStatus.WARNING
        else:
            health = HealthStatus.GOOD

        # Wear status only ever escalates
        if ssd_wear is not None and ssd_wear.wear_status.rank > health.rank:
            health = ssd_wear.wear_status
        return health

    def _recommendations(
        self,
        overall: HealthStatus,
        predicted: bool,
        issues: List[Issue],
        ssd_wear: Optional[SSDWearInfo],
    ) -> List[str]:
        codes = {issue.code for issue in issues}
        recommendations = []

        if overall == HealthStatus.CRITICAL:
            recommendations.append("URGENT: Back up all data immediately")
            recommendations.append("Schedule drive replacement as soon as possible")

        if predicted:
            recommendations.append("Drive failure is predicted - plan for replacement")

        if codes & {"HIGH_TEMP_CRITICAL", "HIGH_TEMP_WARNING"}:
            recommendations.append("Improve cooling/ventilation around the drive")

        if ssd_wear is not None and ssd_wear.percent_used >= self.config.wear_warning:
            recommendations.append(
                f"SSD is {ssd_wear.percent_used:.1f}% worn - consider replacement soon"
            )

        if codes & {"REALLOCATED_SECTORS", "PENDING_SECTORS"}:
            recommendations.append("Run a full surface scan and consider drive replacement")

        if not recommendations and overall == HealthStatus.GOOD:
            recommendations.append("Drive health is good - continue monitoring")

        return recommendations
