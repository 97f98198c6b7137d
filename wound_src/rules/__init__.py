"""LCD L33831 rules engine for wound-care compliance.

This package provides deterministic compliance logic:

    Episode + Encounters + now
        → WoundClassifier      (wound category)
        → TimelineAggregator   (coverage, baseline, evaluation)
        → ComplianceAssessor   (gates, score, gaps, alerts)

The aggregator and assessor read the input models in wound_src.models and
are exported from the top-level wound_src package.
"""

from .lcd_criteria import LCDPolicy, LCD_ID
from .schemas import (
    Alert,
    AlertSeverity,
    ClassificationEvidence,
    ComplianceResult,
    ComplianceStatus,
    Gap,
    GapCategory,
    GateType,
    HealingProgress,
    HealingTrend,
    MeasurementPoint,
    ProgressStatus,
    RequirementResult,
    RequirementStatus,
    StandardOfCare,
    TimelineSummary,
    TrafficLight,
    WeeklyCoverage,
    WoundCategory,
    WoundClassification,
    WoundReduction,
)
from .classifier import WoundClassifier
from .alerts import derive_alerts, severity_from_gap_text

__all__ = [
    "LCDPolicy",
    "LCD_ID",
    "Alert",
    "AlertSeverity",
    "ClassificationEvidence",
    "ComplianceResult",
    "ComplianceStatus",
    "Gap",
    "GapCategory",
    "GateType",
    "HealingProgress",
    "HealingTrend",
    "MeasurementPoint",
    "ProgressStatus",
    "RequirementResult",
    "RequirementStatus",
    "StandardOfCare",
    "TimelineSummary",
    "TrafficLight",
    "WeeklyCoverage",
    "WoundCategory",
    "WoundClassification",
    "WoundReduction",
    "WoundClassifier",
    "derive_alerts",
    "severity_from_gap_text",
]
