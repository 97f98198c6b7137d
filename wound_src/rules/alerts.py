"""Alert derivation for compliance gaps.

Every gap becomes one alert. Severity comes from the gap's category, or
critical when the assessor escalated the gap. The text-based classifier
below is kept only for gap strings that arrive without a category (for
example from stored assessments).
"""

import logging
from datetime import datetime, timedelta

from .lcd_criteria import LCDPolicy
from .schemas import Alert, AlertSeverity, Gap, GapCategory

logger = logging.getLogger(__name__)


CATEGORY_SEVERITY = {
    GapCategory.CONSERVATIVE_CARE_DURATION: AlertSeverity.MODERATE,
    GapCategory.WEEKLY_ASSESSMENTS: AlertSeverity.HIGH,
    GapCategory.DFU_OFFLOADING: AlertSeverity.CRITICAL,
    GapCategory.VLU_COMPRESSION: AlertSeverity.CRITICAL,
    GapCategory.BASELINE_DOCUMENTATION: AlertSeverity.HIGH,
    GapCategory.RESPONSE_DOCUMENTATION: AlertSeverity.CRITICAL,
    GapCategory.INFECTION_CONTROL: AlertSeverity.MODERATE,
    GapCategory.PATIENT_EDUCATION: AlertSeverity.MODERATE,
    GapCategory.GENERAL_DOCUMENTATION: AlertSeverity.HIGH,
    GapCategory.RESPONSE_THRESHOLD: AlertSeverity.MODERATE,
}


def gap_severity(gap: Gap) -> AlertSeverity:
    if gap.critical:
        return AlertSeverity.CRITICAL
    return CATEGORY_SEVERITY[gap.category]


def severity_from_gap_text(gap_text: str) -> AlertSeverity:
    """Legacy severity rule for uncategorized gap strings."""
    if "CRITICAL" in gap_text:
        return AlertSeverity.CRITICAL
    if "Missing" in gap_text:
        return AlertSeverity.HIGH
    return AlertSeverity.MODERATE


def gap_due_date(
    category: GapCategory,
    episode_start: datetime,
    policy: LCDPolicy,
) -> datetime | None:
    """Deadline attached to a gap, where the LCD defines one."""
    if category == GapCategory.CONSERVATIVE_CARE_DURATION:
        return episode_start + timedelta(days=policy.conservative_care_min_days)
    if category == GapCategory.BASELINE_DOCUMENTATION:
        return episode_start + timedelta(days=policy.baseline_window_days)
    if category == GapCategory.RESPONSE_DOCUMENTATION:
        return episode_start + timedelta(days=policy.response_window_end)
    return None


def derive_alerts(
    gaps: list[Gap],
    episode_start: datetime,
    now: datetime,
    policy: LCDPolicy | None = None,
) -> tuple[Alert, ...]:
    """Turn gaps into alerts sorted most severe first.

    The sort is stable, so alerts of equal severity keep gap order.
    """
    policy = policy or LCDPolicy()
    alerts = []
    for gap in gaps:
        due_date = gap_due_date(gap.category, episode_start, policy)
        days_remaining = None
        if due_date is not None:
            days_remaining = (due_date.date() - now.date()).days

        alerts.append(Alert(
            severity=gap_severity(gap),
            category=gap.category,
            message=gap.message,
            recommendation=gap.recommendation,
            due_date=due_date,
            days_remaining=days_remaining,
        ))

    alerts.sort(key=lambda alert: alert.severity.rank)
    if alerts:
        logger.debug(f"Derived {len(alerts)} alerts, top severity {alerts[0].severity.value}")
    return tuple(alerts)
