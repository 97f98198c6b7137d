"""Timeline aggregator.

Turns an episode's encounter history into the facts the assessor gates on:
- Elapsed conservative-care days
- ISO-week measurement coverage, with documented exceptions
- Baseline measurement (within 7 days of episode start)
- 4-week evaluation measurement (day 21-35, closest to day 28)
- Progress toward the 20% reduction target and the healing trend

Only encounters dated on or before `now` are considered, so an assessment
"as of" a date is reproducible.
"""

import logging
from datetime import datetime

from ..models import Encounter, Episode, EpisodeValidationError
from .lcd_criteria import (
    PROGRESS_AT_RISK_FRACTION,
    PROGRESS_ON_TRACK_FRACTION,
    TREND_STABLE_BAND_PCT,
    LCDPolicy,
    calculate_elapsed_days,
    calculate_episode_day,
    calculate_reduction_pct,
    expected_iso_weeks,
    is_response_window_elapsed,
    iso_week_id,
    to_datetime,
)
from .schemas import (
    ComplianceStatus,
    HealingProgress,
    HealingTrend,
    InterventionRecord,
    MeasurementPoint,
    ProgressStatus,
    TimelineSummary,
    WeeklyCoverage,
)

logger = logging.getLogger(__name__)


def parse_start_date(episode: Episode | None) -> datetime:
    """Resolve the episode start date that anchors all deadlines.

    Raises:
        EpisodeValidationError: If the episode is missing or its start
            date cannot be parsed
    """
    if episode is None:
        raise EpisodeValidationError("Episode is required")
    start = to_datetime(episode.episode_start_date)
    if start is None:
        raise EpisodeValidationError(
            f"Episode {episode.id}: unparsable start date {episode.episode_start_date!r}"
        )
    return start


class TimelineAggregator:
    """Aggregate encounters into a TimelineSummary."""

    def __init__(self, policy: LCDPolicy | None = None):
        self.policy = policy or LCDPolicy()

    def aggregate(
        self,
        episode: Episode,
        encounters: list[Encounter],
        now: datetime,
        exceptions=(),
    ) -> TimelineSummary:
        """Build the timeline summary for an episode as of `now`.

        Args:
            episode: The episode being assessed
            encounters: Encounters in any order
            now: Assessment time
            exceptions: DocumentedException records for missed weeks

        Returns:
            TimelineSummary
        """
        start = parse_start_date(episode)
        as_of = to_datetime(now)
        if as_of is None:
            raise ValueError(f"Invalid assessment time: {now!r}")

        elapsed_days = calculate_elapsed_days(start, as_of)
        notes: list[str] = []

        dated: list[tuple[datetime, Encounter]] = []
        for encounter in encounters or []:
            when = to_datetime(encounter.date)
            if when is None:
                notes.append(
                    f"Encounter {encounter.id} has an unparsable date "
                    f"({encounter.date!r}) and was excluded"
                )
                continue
            if when > as_of:
                logger.debug(f"Encounter {encounter.id} is after {as_of.date()}, ignoring")
                continue
            if calculate_episode_day(start, when) < 0:
                notes.append(f"Encounter {encounter.id} is dated before the episode start")
            dated.append((when, encounter))

        # Stable, so same-day encounters keep their input order
        dated.sort(key=lambda item: item[0])

        measurements: list[MeasurementPoint] = []
        interventions: list[InterventionRecord] = []
        for when, encounter in dated:
            day = calculate_episode_day(start, when)
            area = encounter.area_cm2
            if area is not None:
                depth = encounter.measurement.depth_cm
                measurements.append(MeasurementPoint(
                    encounter_id=encounter.id,
                    date=when,
                    day=day,
                    area_cm2=round(area, 4),
                    depth_cm=round(depth, 4) if depth is not None else None,
                ))
            for intervention in encounter.interventions:
                interventions.append(InterventionRecord(
                    encounter_id=encounter.id,
                    day=day,
                    type=intervention.type,
                    name=intervention.name,
                ))

        weekly = self._assess_weekly_coverage(start, as_of, measurements, exceptions or ())
        baseline = self._find_baseline(measurements)
        window_elapsed = is_response_window_elapsed(elapsed_days, self.policy)
        evaluation = self._find_evaluation(measurements, baseline, window_elapsed, notes)
        latest = measurements[-1] if measurements else None
        progress = self._assess_progress(baseline, latest, measurements)

        if not measurements:
            notes.append("No wound measurements documented")

        logger.debug(
            f"Episode {episode.id}: day {elapsed_days}, {len(dated)} encounters, "
            f"{len(measurements)} measurements, missing weeks {list(weekly.missing_weeks)}"
        )

        return TimelineSummary(
            episode_start=start,
            now=as_of,
            elapsed_days=elapsed_days,
            weekly=weekly,
            progress=progress,
            measurements=tuple(measurements),
            interventions=tuple(interventions),
            baseline=baseline,
            evaluation=evaluation,
            latest_measurement=latest,
            response_window_elapsed=window_elapsed,
            encounter_count=len(dated),
            notes=tuple(notes),
        )

    def _assess_weekly_coverage(
        self,
        start: datetime,
        now: datetime,
        measurements: list[MeasurementPoint],
        exceptions,
    ) -> WeeklyCoverage:
        """Compare expected ISO weeks against weeks with a measurement."""
        expected = expected_iso_weeks(start, now)
        documented = sorted({iso_week_id(m.date) for m in measurements})
        documented_set = set(documented)
        missing = sorted(week for week in expected if week not in documented_set)

        excusable = {e.week for e in exceptions if e.excuses_missing_week}
        excepted = [week for week in missing if week in excusable]
        unexcused = [week for week in missing if week not in excusable]

        if expected:
            coverage_pct = round((len(expected) - len(missing)) / len(expected) * 100, 1)
            effective_pct = round((len(expected) - len(unexcused)) / len(expected) * 100, 1)
        else:
            coverage_pct = effective_pct = 100.0

        if not missing:
            status = ComplianceStatus.COMPLIANT
        elif not unexcused:
            status = ComplianceStatus.COMPLIANT_WITH_EXCEPTION
        elif effective_pct >= self.policy.weekly_at_risk_coverage_pct:
            status = ComplianceStatus.AT_RISK
        else:
            status = ComplianceStatus.NON_COMPLIANT

        return WeeklyCoverage(
            expected_weeks=tuple(expected),
            documented_weeks=tuple(documented),
            missing_weeks=tuple(missing),
            excepted_weeks=tuple(excepted),
            unexcused_missing_weeks=tuple(unexcused),
            coverage_pct=coverage_pct,
            effective_coverage_pct=effective_pct,
            status=status,
        )

    def _find_baseline(self, measurements: list[MeasurementPoint]) -> MeasurementPoint | None:
        """Earliest measurement within the baseline window of the start."""
        window = self.policy.baseline_window_days
        for point in measurements:
            if abs(point.day) <= window:
                return point
        return None

    def _find_evaluation(
        self,
        measurements: list[MeasurementPoint],
        baseline: MeasurementPoint | None,
        window_elapsed: bool,
        notes: list[str],
    ) -> MeasurementPoint | None:
        """Measurement used for the 4-week response determination.

        Closest to the evaluation day inside the response window, the
        earlier one on ties. Once the window has passed without one, the
        latest measurement other than the baseline stands in.
        """
        target = self.policy.response_evaluation_day
        in_window = [
            (abs(point.day - target), index, point)
            for index, point in enumerate(measurements)
            if self.policy.response_window_start <= point.day <= self.policy.response_window_end
        ]
        if in_window:
            return min(in_window, key=lambda item: (item[0], item[1]))[2]

        if not window_elapsed:
            return None

        for point in reversed(measurements):
            if point is not baseline:
                notes.append(
                    f"No measurement in the day {self.policy.response_window_start}-"
                    f"{self.policy.response_window_end} response window; using day "
                    f"{point.day} measurement for response evaluation"
                )
                return point
        return None

    def _assess_progress(
        self,
        baseline: MeasurementPoint | None,
        latest: MeasurementPoint | None,
        measurements: list[MeasurementPoint],
    ) -> HealingProgress:
        """Grade progress toward the 20% reduction target."""
        target = self.policy.progress_reduction_pct
        rate = calculate_weekly_healing_rate(measurements)
        trend = calculate_healing_trend(measurements)

        if baseline is None or latest is None or latest is baseline:
            return HealingProgress(
                status=ProgressStatus.INSUFFICIENT_DATA,
                target_pct=target,
                weekly_healing_rate_pct=rate,
                trend=trend,
            )

        reduction = calculate_reduction_pct(baseline.area_cm2, latest.area_cm2)
        if reduction is None:
            return HealingProgress(
                status=ProgressStatus.INSUFFICIENT_DATA,
                target_pct=target,
                weekly_healing_rate_pct=rate,
                trend=trend,
            )

        evaluation_day = self.policy.progress_evaluation_day
        days_in = min(max(latest.day, 1), evaluation_day)
        prorated = round(target * days_in / evaluation_day, 1)

        if reduction >= target:
            status = ProgressStatus.ACHIEVED
        elif latest.day >= evaluation_day:
            status = ProgressStatus.OFF_TRACK
        elif reduction >= prorated * PROGRESS_ON_TRACK_FRACTION:
            status = ProgressStatus.ON_TRACK
        elif reduction >= prorated * PROGRESS_AT_RISK_FRACTION:
            status = ProgressStatus.AT_RISK
        else:
            status = ProgressStatus.OFF_TRACK

        return HealingProgress(
            status=status,
            target_pct=target,
            current_reduction_pct=reduction,
            prorated_target_pct=prorated,
            weekly_healing_rate_pct=rate,
            trend=trend,
        )


def calculate_weekly_healing_rate(measurements: list[MeasurementPoint]) -> float | None:
    """Average percent area reduction per week, weighted by interval length.

    Intervals starting from a zero area or spanning zero days are skipped.
    """
    weighted_change = 0.0
    total_days = 0
    for previous, current in zip(measurements, measurements[1:]):
        days = current.day - previous.day
        if days <= 0 or previous.area_cm2 <= 0:
            continue
        change_pct = (previous.area_cm2 - current.area_cm2) / previous.area_cm2 * 100
        weighted_change += change_pct * 7
        total_days += days
    if total_days == 0:
        return None
    return round(weighted_change / total_days, 1)


def calculate_healing_trend(measurements: list[MeasurementPoint]) -> HealingTrend:
    """Direction of the last interval between measurements."""
    if len(measurements) < 2:
        return HealingTrend.INSUFFICIENT_DATA
    previous, last = measurements[-2], measurements[-1]
    if previous.area_cm2 == 0:
        return HealingTrend.STABLE if last.area_cm2 == 0 else HealingTrend.DECLINING

    change_pct = (previous.area_cm2 - last.area_cm2) / previous.area_cm2 * 100
    if change_pct > TREND_STABLE_BAND_PCT:
        return HealingTrend.IMPROVING
    if change_pct < -TREND_STABLE_BAND_PCT:
        return HealingTrend.DECLINING
    return HealingTrend.STABLE
