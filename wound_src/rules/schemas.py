"""Schemas for the LCD compliance rules engine.

This module defines:
- WoundClassification: Output of the wound classifier
- TimelineSummary: What the aggregator derives from the encounter history
- ComplianceResult: Output of the compliance assessor

Results are frozen and hold no references back to the input records, so a
result can be cached, serialized or compared without touching the episode.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class WoundCategory(str, Enum):
    """Wound categories with category-specific LCD requirements."""
    DFU = "dfu"       # Diabetic foot ulcer
    VLU = "vlu"       # Venous leg ulcer
    PU = "pu"         # Pressure ulcer
    OTHER = "other"   # Unclassified, wound-specific gates skipped


class ClassificationEvidence(str, Enum):
    """Where the wound category came from."""
    ICD10 = "icd10"
    WOUND_TYPE = "wound_type"
    NONE = "none"


class RequirementStatus(str, Enum):
    """Status of one LCD requirement."""
    MET = "met"
    NOT_MET = "not_met"
    PENDING = "pending"                 # Deadline not reached, data not yet present
    NOT_APPLICABLE = "not_applicable"   # Does not apply to this wound category


class GateType(str, Enum):
    HARD = "hard"
    INFORMATIONAL = "informational"


class TrafficLight(str, Enum):
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


class ComplianceStatus(str, Enum):
    """Overall status, also used for weekly-assessment coverage."""
    COMPLIANT = "compliant"
    COMPLIANT_WITH_EXCEPTION = "compliant_with_exception"
    AT_RISK = "at_risk"
    NON_COMPLIANT = "non_compliant"


class ProgressStatus(str, Enum):
    """Progress toward the 20% wound-reduction target."""
    ACHIEVED = "achieved"
    ON_TRACK = "on_track"
    AT_RISK = "at_risk"
    OFF_TRACK = "off_track"
    INSUFFICIENT_DATA = "insufficient_data"


class HealingTrend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"
    INSUFFICIENT_DATA = "insufficient_data"


class GapCategory(str, Enum):
    """Closed set of gap tags. Values match requirement ids."""
    CONSERVATIVE_CARE_DURATION = "conservative_care_duration"
    WEEKLY_ASSESSMENTS = "weekly_assessments"
    DFU_OFFLOADING = "dfu_offloading"
    VLU_COMPRESSION = "vlu_compression"
    BASELINE_DOCUMENTATION = "baseline_documentation"
    RESPONSE_DOCUMENTATION = "response_documentation"
    INFECTION_CONTROL = "infection_control"
    PATIENT_EDUCATION = "patient_education"
    GENERAL_DOCUMENTATION = "general_documentation"
    RESPONSE_THRESHOLD = "response_threshold"


class AlertSeverity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MODERATE = "moderate"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Sort rank, most severe first."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    AlertSeverity.CRITICAL: 0,
    AlertSeverity.HIGH: 1,
    AlertSeverity.MODERATE: 2,
    AlertSeverity.LOW: 3,
}


# ============================================================================
# Classifier Output
# ============================================================================

@dataclass(frozen=True)
class WoundClassification:
    """Wound category with the evidence that produced it."""
    category: WoundCategory
    evidence_source: ClassificationEvidence
    matched_terms: tuple[str, ...] = ()
    icd10_code: str | None = None
    wound_location: str | None = None
    note: str | None = None  # Set when the wound type could not be classified

    @property
    def requires_offloading(self) -> bool:
        return self.category == WoundCategory.DFU

    @property
    def requires_compression(self) -> bool:
        return self.category == WoundCategory.VLU

    def to_dict(self) -> dict:
        return {
            "category": self.category.value,
            "evidence_source": self.evidence_source.value,
            "matched_terms": list(self.matched_terms),
            "icd10_code": self.icd10_code,
            "wound_location": self.wound_location,
            "requires_offloading": self.requires_offloading,
            "requires_compression": self.requires_compression,
            "note": self.note,
        }


# ============================================================================
# Timeline Aggregator Output
# ============================================================================

@dataclass(frozen=True)
class MeasurementPoint:
    """One measurement-bearing encounter, normalized to cm."""
    encounter_id: str
    date: datetime
    day: int  # Calendar days from episode start
    area_cm2: float
    depth_cm: float | None = None

    def to_dict(self) -> dict:
        return {
            "encounter_id": self.encounter_id,
            "date": _iso(self.date),
            "day": self.day,
            "area_cm2": self.area_cm2,
            "depth_cm": self.depth_cm,
        }


@dataclass(frozen=True)
class InterventionRecord:
    """An intervention documented on an in-scope encounter."""
    encounter_id: str
    day: int
    type: str  # InterventionType value
    name: str | None = None


@dataclass(frozen=True)
class WeeklyCoverage:
    """ISO-week coverage of wound measurements."""
    expected_weeks: tuple[str, ...]
    documented_weeks: tuple[str, ...]
    missing_weeks: tuple[str, ...]
    excepted_weeks: tuple[str, ...]
    unexcused_missing_weeks: tuple[str, ...]
    coverage_pct: float
    effective_coverage_pct: float
    status: ComplianceStatus

    @property
    def met(self) -> bool:
        return not self.unexcused_missing_weeks

    @property
    def weekly_coverage(self) -> dict[str, bool]:
        """Expected week -> whether a measurement was documented."""
        documented = set(self.documented_weeks)
        return {week: week in documented for week in self.expected_weeks}

    def to_dict(self) -> dict:
        return {
            "expected_weeks": list(self.expected_weeks),
            "missing_weeks": list(self.missing_weeks),
            "excepted_weeks": list(self.excepted_weeks),
            "unexcused_missing_weeks": list(self.unexcused_missing_weeks),
            "weekly_coverage": self.weekly_coverage,
            "coverage_pct": self.coverage_pct,
            "effective_coverage_pct": self.effective_coverage_pct,
            "status": self.status.value,
            "met": self.met,
        }


@dataclass(frozen=True)
class HealingProgress:
    """Progress toward the 20% wound-reduction target and healing trend.

    Independent of the 50% LCD response threshold.
    """
    status: ProgressStatus
    target_pct: float
    current_reduction_pct: float | None = None
    prorated_target_pct: float | None = None
    weekly_healing_rate_pct: float | None = None
    trend: HealingTrend = HealingTrend.INSUFFICIENT_DATA

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "target_pct": self.target_pct,
            "current_reduction_pct": self.current_reduction_pct,
            "prorated_target_pct": self.prorated_target_pct,
            "weekly_healing_rate_pct": self.weekly_healing_rate_pct,
            "trend": self.trend.value,
        }


@dataclass(frozen=True)
class TimelineSummary:
    """Everything the assessor needs from the encounter history."""
    episode_start: datetime
    now: datetime
    elapsed_days: int
    weekly: WeeklyCoverage
    progress: HealingProgress
    measurements: tuple[MeasurementPoint, ...] = ()
    interventions: tuple[InterventionRecord, ...] = ()
    baseline: MeasurementPoint | None = None
    evaluation: MeasurementPoint | None = None
    latest_measurement: MeasurementPoint | None = None
    response_window_elapsed: bool = False
    encounter_count: int = 0
    notes: tuple[str, ...] = ()

    @property
    def insufficient_data(self) -> bool:
        return not self.measurements

    @property
    def weekly_coverage(self) -> dict[str, bool]:
        return self.weekly.weekly_coverage

    @property
    def missing_weeks(self) -> tuple[str, ...]:
        return self.weekly.missing_weeks


# ============================================================================
# Compliance Assessor Output
# ============================================================================

@dataclass(frozen=True)
class WoundReduction:
    """LCD 4-week response (50% area reduction) determination."""
    performed: bool
    threshold_pct: float
    reduction_pct: float = 0.0
    meets_threshold: bool = False
    baseline_area_cm2: float | None = None
    evaluation_area_cm2: float | None = None
    baseline_day: int | None = None
    evaluation_day: int | None = None
    insufficient_data: bool = False

    def to_dict(self) -> dict:
        return {
            "performed": self.performed,
            "threshold_pct": self.threshold_pct,
            "reduction_pct": self.reduction_pct,
            "meets_threshold": self.meets_threshold,
            "baseline_area_cm2": self.baseline_area_cm2,
            "evaluation_area_cm2": self.evaluation_area_cm2,
            "baseline_day": self.baseline_day,
            "evaluation_day": self.evaluation_day,
            "insufficient_data": self.insufficient_data,
        }


@dataclass(frozen=True)
class StandardOfCare:
    """Which standard-of-care interventions are documented.

    offloading and compression are None when they do not apply to the
    wound category.
    """
    offloading: bool | None
    compression: bool | None
    infection_control: bool
    patient_education: bool
    intervention_types: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "offloading": self.offloading,
            "compression": self.compression,
            "infection_control": self.infection_control,
            "patient_education": self.patient_education,
            "intervention_types": list(self.intervention_types),
        }


@dataclass(frozen=True)
class RequirementResult:
    """Result for a single LCD requirement."""
    requirement_id: str
    name: str
    gate: GateType
    status: RequirementStatus
    details: str
    recommendation: str | None = None

    @property
    def is_applicable(self) -> bool:
        return self.status not in (RequirementStatus.PENDING, RequirementStatus.NOT_APPLICABLE)

    def to_dict(self) -> dict:
        return {
            "requirement_id": self.requirement_id,
            "name": self.name,
            "gate": self.gate.value,
            "status": self.status.value,
            "details": self.details,
            "recommendation": self.recommendation,
        }


@dataclass(frozen=True)
class Gap:
    category: GapCategory
    message: str
    recommendation: str
    critical: bool = False  # Escalates the alert to critical regardless of category

    def to_dict(self) -> dict:
        return {
            "category": self.category.value,
            "message": self.message,
            "recommendation": self.recommendation,
            "critical": self.critical,
        }


@dataclass(frozen=True)
class Alert:
    """A gap ranked by severity, with a deadline where one is known."""
    severity: AlertSeverity
    category: GapCategory
    message: str
    recommendation: str
    due_date: datetime | None = None
    days_remaining: int | None = None

    def to_dict(self) -> dict:
        return {
            "severity": self.severity.value,
            "category": self.category.value,
            "message": self.message,
            "recommendation": self.recommendation,
            "due_date": _iso(self.due_date),
            "days_remaining": self.days_remaining,
        }


@dataclass(frozen=True)
class ComplianceResult:
    """Output of the compliance assessor.

    Consumers read metrics from here and never re-derive them from the
    encounters.
    """
    episode_id: str
    assessed_at: datetime
    classification: WoundClassification
    compliant: bool
    overall_status: ComplianceStatus
    traffic_light: TrafficLight
    score: float
    informational_score: float
    requirements: tuple[RequirementResult, ...]
    gaps: tuple[Gap, ...]
    alerts: tuple[Alert, ...]
    weekly_assessments: WeeklyCoverage
    wound_reduction: WoundReduction
    progress: HealingProgress
    standard_of_care: StandardOfCare

    # Metrics
    conservative_care_days: int = 0
    weekly_coverage_pct: float = 0.0
    area_reduction_pct: float = 0.0
    days_to_deadline: int = 0
    insufficient_data: bool = False
    notes: tuple[str, ...] = field(default_factory=tuple)

    @property
    def recommendations(self) -> tuple[str, ...]:
        """Recommendations, positionally aligned with gaps."""
        return tuple(gap.recommendation for gap in self.gaps)

    def requirement(self, requirement_id: str) -> RequirementResult | None:
        for result in self.requirements:
            if result.requirement_id == requirement_id:
                return result
        return None

    def to_dict(self) -> dict:
        return {
            "episode_id": self.episode_id,
            "assessed_at": _iso(self.assessed_at),
            "classification": self.classification.to_dict(),
            "compliant": self.compliant,
            "overall_status": self.overall_status.value,
            "traffic_light": self.traffic_light.value,
            "score": self.score,
            "informational_score": self.informational_score,
            "requirements": [r.to_dict() for r in self.requirements],
            "gaps": [g.message for g in self.gaps],
            "gap_categories": [g.category.value for g in self.gaps],
            "recommendations": list(self.recommendations),
            "alerts": [a.to_dict() for a in self.alerts],
            "weekly_assessments": self.weekly_assessments.to_dict(),
            "wound_reduction": self.wound_reduction.to_dict(),
            "progress": self.progress.to_dict(),
            "standard_of_care": self.standard_of_care.to_dict(),
            "metrics": {
                "conservative_care_days": self.conservative_care_days,
                "weekly_coverage_pct": self.weekly_coverage_pct,
                "area_reduction_pct": self.area_reduction_pct,
                "days_to_deadline": self.days_to_deadline,
                "insufficient_data": self.insufficient_data,
            },
            "notes": list(self.notes),
        }
