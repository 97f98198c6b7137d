"""Tabular summaries over batches of compliance results.

Used by the runner for CSV export and for the per-category rollup a
wound-care program reviews each month.
"""

import logging

import pandas as pd

from .rules.schemas import AlertSeverity, ComplianceResult, TrafficLight

logger = logging.getLogger(__name__)

RESULT_COLUMNS = [
    "episode_id",
    "assessed_at",
    "wound_category",
    "traffic_light",
    "overall_status",
    "compliant",
    "score",
    "informational_score",
    "conservative_care_days",
    "days_to_deadline",
    "weekly_coverage_pct",
    "missing_weeks",
    "area_reduction_pct",
    "reduction_determined",
    "meets_response_threshold",
    "progress_status",
    "gap_count",
    "critical_alerts",
    "insufficient_data",
]

CATEGORY_COLUMNS = [
    "wound_category",
    "episodes",
    "compliant",
    "compliance_rate",
    "red",
    "mean_score",
    "mean_area_reduction_pct",
]


def results_to_frame(results: list[ComplianceResult]) -> pd.DataFrame:
    """One row per assessed episode.

    Returns:
        DataFrame with RESULT_COLUMNS; empty (with columns) for no results
    """
    rows = []
    for result in results:
        rows.append({
            "episode_id": result.episode_id,
            "assessed_at": result.assessed_at.date().isoformat(),
            "wound_category": result.classification.category.value,
            "traffic_light": result.traffic_light.value,
            "overall_status": result.overall_status.value,
            "compliant": result.compliant,
            "score": result.score,
            "informational_score": result.informational_score,
            "conservative_care_days": result.conservative_care_days,
            "days_to_deadline": result.days_to_deadline,
            "weekly_coverage_pct": result.weekly_coverage_pct,
            "missing_weeks": len(result.weekly_assessments.missing_weeks),
            "area_reduction_pct": result.area_reduction_pct,
            "reduction_determined": not result.wound_reduction.insufficient_data,
            "meets_response_threshold": result.wound_reduction.meets_threshold,
            "progress_status": result.progress.status.value,
            "gap_count": len(result.gaps),
            "critical_alerts": sum(
                1 for alert in result.alerts if alert.severity == AlertSeverity.CRITICAL
            ),
            "insufficient_data": result.insufficient_data,
        })

    if not rows:
        return pd.DataFrame(columns=RESULT_COLUMNS)

    return pd.DataFrame(rows, columns=RESULT_COLUMNS)


def summarize_by_category(frame: pd.DataFrame) -> pd.DataFrame:
    """Roll a results frame up by wound category.

    Args:
        frame: Output of results_to_frame()

    Returns:
        DataFrame with CATEGORY_COLUMNS, sorted by wound category
    """
    if frame.empty:
        return pd.DataFrame(columns=CATEGORY_COLUMNS)

    working = frame.copy()
    working["is_red"] = working["traffic_light"] == TrafficLight.RED.value
    working["is_compliant"] = working["compliant"].astype(bool)
    # Episodes without a determined reduction stay out of the mean
    working["area_reduction_pct"] = pd.to_numeric(working["area_reduction_pct"]).where(
        working["reduction_determined"].astype(bool)
    )

    summary = (
        working.groupby("wound_category", sort=True)
        .agg(
            episodes=("episode_id", "count"),
            compliant=("is_compliant", "sum"),
            red=("is_red", "sum"),
            mean_score=("score", "mean"),
            mean_area_reduction_pct=("area_reduction_pct", "mean"),
        )
        .reset_index()
    )
    summary["compliant"] = summary["compliant"].astype(int)
    summary["red"] = summary["red"].astype(int)
    summary["compliance_rate"] = (summary["compliant"] / summary["episodes"] * 100).round(1)
    summary["mean_score"] = summary["mean_score"].round(1)
    summary["mean_area_reduction_pct"] = summary["mean_area_reduction_pct"].round(1)

    logger.debug(f"Summarized {len(frame)} results into {len(summary)} categories")
    return summary[CATEGORY_COLUMNS]
