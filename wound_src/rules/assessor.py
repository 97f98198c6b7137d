"""Medicare LCD L33831 compliance assessor.

Evaluates a wound-care episode against the LCD requirements:

Hard gates (all must be met):
1. Conservative care for at least 30 days
2. A wound measurement in every ISO week since episode start
3. Offloading documented (DFU only)
4. Compression therapy documented (VLU only)
5. Baseline measurement within 7 days of episode start
6. 4-week response measurement (day 21-35)

Informational signals (at least 60% must be met):
- Infection control
- Patient education
- Encounter documentation

Gates whose deadline has not arrived yet are "pending" and are left out of
the score until the deadline passes.
"""

import logging
from datetime import datetime

from ..models import Encounter, Episode, InterventionType
from .alerts import derive_alerts
from .classifier import WoundClassifier
from .lcd_criteria import (
    HARD_GATE_SCORE_CEILING,
    INFORMATIONAL_SCORE_WEIGHT,
    RED_SCORE_THRESHOLD,
    LCDPolicy,
    calculate_reduction_pct,
)
from .schemas import (
    ComplianceResult,
    ComplianceStatus,
    Gap,
    GapCategory,
    GateType,
    RequirementResult,
    RequirementStatus,
    StandardOfCare,
    TimelineSummary,
    TrafficLight,
    WoundCategory,
    WoundClassification,
    WoundReduction,
)
from .timeline import TimelineAggregator

logger = logging.getLogger(__name__)

# A failure of any of these forces a red traffic light
CRITICAL_GATES = (
    GapCategory.CONSERVATIVE_CARE_DURATION,
    GapCategory.DFU_OFFLOADING,
    GapCategory.VLU_COMPRESSION,
)

INFECTION_CONTROL_TYPES = (InterventionType.INFECTION_MANAGEMENT, InterventionType.DEBRIDEMENT)
PATIENT_EDUCATION_TYPES = (InterventionType.EDUCATION, InterventionType.NUTRITION_COUNSELING)


class ComplianceAssessor:
    """Assess episodes for LCD compliance.

    The assessor is the single place compliance metrics are computed.
    It holds no state between calls, so one instance can be shared.
    """

    def __init__(self, policy: LCDPolicy | None = None):
        self.policy = policy or LCDPolicy()
        self.classifier = WoundClassifier()
        self.aggregator = TimelineAggregator(self.policy)

    def assess(
        self,
        episode: Episode,
        encounters: list[Encounter],
        now: datetime,
        exceptions=None,
    ) -> ComplianceResult:
        """Assess an episode as of `now`.

        Args:
            episode: The episode to assess
            encounters: Encounters belonging to the episode
            now: Assessment time
            exceptions: Optional DocumentedException records

        Returns:
            ComplianceResult

        Raises:
            EpisodeValidationError: If the episode is missing or its start
                date cannot be parsed
        """
        timeline = self.aggregator.aggregate(episode, encounters, now, exceptions or ())
        classification = self.classifier.classify(episode)

        requirements = [
            self._evaluate_duration(timeline),
            self._evaluate_weekly_assessments(timeline),
            self._evaluate_offloading(classification, timeline),
            self._evaluate_compression(classification, timeline),
            self._evaluate_baseline(timeline),
            self._evaluate_response_documentation(timeline),
            self._evaluate_infection_control(timeline),
            self._evaluate_patient_education(timeline),
            self._evaluate_general_documentation(timeline),
        ]
        reduction = self._evaluate_wound_reduction(timeline)

        hard = [r for r in requirements if r.gate == GateType.HARD and r.is_applicable]
        hard_met = [r for r in hard if r.status == RequirementStatus.MET]
        informational = [
            r for r in requirements if r.gate == GateType.INFORMATIONAL and r.is_applicable
        ]
        informational_met = [r for r in informational if r.status == RequirementStatus.MET]

        all_hard_met = len(hard_met) == len(hard)
        informational_score = (
            round(len(informational_met) / len(informational) * 100, 1) if informational else 0.0
        )
        compliant = all_hard_met and informational_score >= self.policy.informational_pass_pct

        if all_hard_met:
            score = HARD_GATE_SCORE_CEILING + INFORMATIONAL_SCORE_WEIGHT * informational_score
        elif hard:
            score = HARD_GATE_SCORE_CEILING * len(hard_met) / len(hard)
        else:
            score = 0.0
        score = round(min(100.0, max(0.0, score)), 1)

        traffic_light = self._traffic_light(compliant, score, requirements)
        overall_status = self._overall_status(traffic_light, timeline)

        gaps = self._collect_gaps(requirements, reduction)
        alerts = derive_alerts(gaps, timeline.episode_start, timeline.now, self.policy)

        notes = list(timeline.notes)
        if classification.note:
            notes.append(classification.note)

        result = ComplianceResult(
            episode_id=episode.id,
            assessed_at=timeline.now,
            classification=classification,
            compliant=compliant,
            overall_status=overall_status,
            traffic_light=traffic_light,
            score=score,
            informational_score=informational_score,
            requirements=tuple(requirements),
            gaps=tuple(gaps),
            alerts=alerts,
            weekly_assessments=timeline.weekly,
            wound_reduction=reduction,
            progress=timeline.progress,
            standard_of_care=self._standard_of_care(classification, timeline),
            conservative_care_days=timeline.elapsed_days,
            weekly_coverage_pct=timeline.weekly.coverage_pct,
            area_reduction_pct=reduction.reduction_pct,
            days_to_deadline=max(0, self.policy.conservative_care_min_days - timeline.elapsed_days),
            insufficient_data=timeline.insufficient_data or reduction.insufficient_data,
            notes=tuple(notes),
        )

        logger.info(
            f"Episode {episode.id} ({classification.category.value}) day {timeline.elapsed_days}: "
            f"{traffic_light.value}, score {score}, {len(gaps)} gaps"
        )
        return result

    # =========================================================================
    # Hard gates
    # =========================================================================

    def _evaluate_duration(self, timeline: TimelineSummary) -> RequirementResult:
        required = self.policy.conservative_care_min_days
        days = timeline.elapsed_days
        if days >= required:
            return RequirementResult(
                requirement_id=GapCategory.CONSERVATIVE_CARE_DURATION.value,
                name="Conservative care duration",
                gate=GateType.HARD,
                status=RequirementStatus.MET,
                details=f"{days} days of conservative care ({required} required)",
            )
        return RequirementResult(
            requirement_id=GapCategory.CONSERVATIVE_CARE_DURATION.value,
            name="Conservative care duration",
            gate=GateType.HARD,
            status=RequirementStatus.NOT_MET,
            details=f"Conservative care insufficient: {days} days ({required} required)",
            recommendation=f"Continue conservative care to meet Medicare {required}-day requirement",
        )

    def _evaluate_weekly_assessments(self, timeline: TimelineSummary) -> RequirementResult:
        weekly = timeline.weekly
        if weekly.met:
            details = f"Measurements documented for all {len(weekly.expected_weeks)} expected weeks"
            if weekly.excepted_weeks:
                details += f" ({len(weekly.excepted_weeks)} excused by documented exception)"
            return RequirementResult(
                requirement_id=GapCategory.WEEKLY_ASSESSMENTS.value,
                name="Weekly assessments",
                gate=GateType.HARD,
                status=RequirementStatus.MET,
                details=details,
            )
        missing = weekly.unexcused_missing_weeks
        return RequirementResult(
            requirement_id=GapCategory.WEEKLY_ASSESSMENTS.value,
            name="Weekly assessments",
            gate=GateType.HARD,
            status=RequirementStatus.NOT_MET,
            details=f"Missing {len(missing)} week(s) of wound measurements: {', '.join(missing)}",
            recommendation="Document wound assessments for all missing weeks",
        )

    def _evaluate_offloading(
        self, classification: WoundClassification, timeline: TimelineSummary
    ) -> RequirementResult:
        """DFU requires documented offloading (TCC, boot, etc.)."""
        if classification.category != WoundCategory.DFU:
            return RequirementResult(
                requirement_id=GapCategory.DFU_OFFLOADING.value,
                name="DFU offloading",
                gate=GateType.HARD,
                status=RequirementStatus.NOT_APPLICABLE,
                details="Not a diabetic foot ulcer",
            )
        if _has_offloading(timeline):
            return RequirementResult(
                requirement_id=GapCategory.DFU_OFFLOADING.value,
                name="DFU offloading",
                gate=GateType.HARD,
                status=RequirementStatus.MET,
                details="Offloading documented",
            )
        return RequirementResult(
            requirement_id=GapCategory.DFU_OFFLOADING.value,
            name="DFU offloading",
            gate=GateType.HARD,
            status=RequirementStatus.NOT_MET,
            details="CRITICAL: Offloading not documented for diabetic foot ulcer",
            recommendation="IMMEDIATE: Implement appropriate offloading strategy",
        )

    def _evaluate_compression(
        self, classification: WoundClassification, timeline: TimelineSummary
    ) -> RequirementResult:
        """VLU requires documented compression therapy."""
        if classification.category != WoundCategory.VLU:
            return RequirementResult(
                requirement_id=GapCategory.VLU_COMPRESSION.value,
                name="VLU compression",
                gate=GateType.HARD,
                status=RequirementStatus.NOT_APPLICABLE,
                details="Not a venous leg ulcer",
            )
        if _has_compression(timeline):
            return RequirementResult(
                requirement_id=GapCategory.VLU_COMPRESSION.value,
                name="VLU compression",
                gate=GateType.HARD,
                status=RequirementStatus.MET,
                details="Compression therapy documented",
            )
        return RequirementResult(
            requirement_id=GapCategory.VLU_COMPRESSION.value,
            name="VLU compression",
            gate=GateType.HARD,
            status=RequirementStatus.NOT_MET,
            details="CRITICAL: Compression therapy not documented for venous leg ulcer",
            recommendation="IMMEDIATE: Initiate compression therapy per ABI results",
        )

    def _evaluate_baseline(self, timeline: TimelineSummary) -> RequirementResult:
        """Baseline measurement within the baseline window.

        Pending until the window has elapsed. A missing baseline becomes
        critical once the conservative care period is complete.
        """
        window = self.policy.baseline_window_days
        baseline = timeline.baseline
        if baseline is not None:
            return RequirementResult(
                requirement_id=GapCategory.BASELINE_DOCUMENTATION.value,
                name="Baseline documentation",
                gate=GateType.HARD,
                status=RequirementStatus.MET,
                details=f"Baseline area {baseline.area_cm2} cm² on day {baseline.day}",
            )
        if timeline.elapsed_days < window:
            return RequirementResult(
                requirement_id=GapCategory.BASELINE_DOCUMENTATION.value,
                name="Baseline documentation",
                gate=GateType.HARD,
                status=RequirementStatus.PENDING,
                details=f"Baseline measurement due by day {window}",
                recommendation="Document baseline wound measurement",
            )

        details = f"Missing baseline wound measurement within {window} days of episode start"
        if timeline.elapsed_days >= self.policy.conservative_care_min_days:
            details = f"CRITICAL: {details}"
        return RequirementResult(
            requirement_id=GapCategory.BASELINE_DOCUMENTATION.value,
            name="Baseline documentation",
            gate=GateType.HARD,
            status=RequirementStatus.NOT_MET,
            details=details,
            recommendation="Document the earliest available wound measurement as baseline and note the delay",
        )

    def _evaluate_response_documentation(self, timeline: TimelineSummary) -> RequirementResult:
        """4-week response measurement, due by the end of the response window."""
        start = self.policy.response_window_start
        end = self.policy.response_window_end
        evaluation = timeline.evaluation
        if evaluation is not None:
            return RequirementResult(
                requirement_id=GapCategory.RESPONSE_DOCUMENTATION.value,
                name="4-week response documentation",
                gate=GateType.HARD,
                status=RequirementStatus.MET,
                details=f"Response measurement {evaluation.area_cm2} cm² on day {evaluation.day}",
            )
        if not timeline.response_window_elapsed:
            return RequirementResult(
                requirement_id=GapCategory.RESPONSE_DOCUMENTATION.value,
                name="4-week response documentation",
                gate=GateType.HARD,
                status=RequirementStatus.PENDING,
                details=f"4-week measurement due between day {start} and day {end}",
                recommendation="Schedule 4-week wound measurement",
            )
        return RequirementResult(
            requirement_id=GapCategory.RESPONSE_DOCUMENTATION.value,
            name="4-week response documentation",
            gate=GateType.HARD,
            status=RequirementStatus.NOT_MET,
            details=f"CRITICAL: Missing 4-week wound measurement (day {start}-{end} response window)",
            recommendation="IMMEDIATE: Obtain current wound measurement to document response to conservative care",
        )

    # =========================================================================
    # Informational signals
    # =========================================================================

    def _evaluate_infection_control(self, timeline: TimelineSummary) -> RequirementResult:
        if _has_any_type(timeline, INFECTION_CONTROL_TYPES):
            return RequirementResult(
                requirement_id=GapCategory.INFECTION_CONTROL.value,
                name="Infection control",
                gate=GateType.INFORMATIONAL,
                status=RequirementStatus.MET,
                details="Infection management or debridement documented",
            )
        return RequirementResult(
            requirement_id=GapCategory.INFECTION_CONTROL.value,
            name="Infection control",
            gate=GateType.INFORMATIONAL,
            status=RequirementStatus.NOT_MET,
            details="Infection control not documented",
            recommendation="Document infection assessment and management or debridement",
        )

    def _evaluate_patient_education(self, timeline: TimelineSummary) -> RequirementResult:
        if _has_any_type(timeline, PATIENT_EDUCATION_TYPES):
            return RequirementResult(
                requirement_id=GapCategory.PATIENT_EDUCATION.value,
                name="Patient education",
                gate=GateType.INFORMATIONAL,
                status=RequirementStatus.MET,
                details="Patient education or nutrition counseling documented",
            )
        return RequirementResult(
            requirement_id=GapCategory.PATIENT_EDUCATION.value,
            name="Patient education",
            gate=GateType.INFORMATIONAL,
            status=RequirementStatus.NOT_MET,
            details="Patient education not documented",
            recommendation="Provide and document patient education on wound care",
        )

    def _evaluate_general_documentation(self, timeline: TimelineSummary) -> RequirementResult:
        if timeline.encounter_count > 0:
            return RequirementResult(
                requirement_id=GapCategory.GENERAL_DOCUMENTATION.value,
                name="General documentation",
                gate=GateType.INFORMATIONAL,
                status=RequirementStatus.MET,
                details=f"{timeline.encounter_count} encounter(s) documented",
            )
        return RequirementResult(
            requirement_id=GapCategory.GENERAL_DOCUMENTATION.value,
            name="General documentation",
            gate=GateType.INFORMATIONAL,
            status=RequirementStatus.NOT_MET,
            details="Missing encounter documentation for this episode",
            recommendation="Document wound care encounters for this episode",
        )

    # =========================================================================
    # Metrics and summary
    # =========================================================================

    def _evaluate_wound_reduction(self, timeline: TimelineSummary) -> WoundReduction:
        """LCD 50% response determination between baseline and evaluation.

        Without both measurements the reduction reads 0 and is flagged as
        insufficient data.
        """
        threshold = self.policy.response_reduction_pct
        baseline = timeline.baseline
        evaluation = timeline.evaluation
        if baseline is None or evaluation is None:
            return WoundReduction(
                performed=False,
                threshold_pct=threshold,
                reduction_pct=0.0,
                insufficient_data=True,
                baseline_area_cm2=baseline.area_cm2 if baseline else None,
                baseline_day=baseline.day if baseline else None,
            )

        reduction = calculate_reduction_pct(baseline.area_cm2, evaluation.area_cm2)
        insufficient = reduction is None
        if insufficient:
            reduction = 0.0

        return WoundReduction(
            performed=True,
            threshold_pct=threshold,
            reduction_pct=reduction,
            meets_threshold=not insufficient and reduction >= threshold,
            baseline_area_cm2=baseline.area_cm2,
            evaluation_area_cm2=evaluation.area_cm2,
            baseline_day=baseline.day,
            evaluation_day=evaluation.day,
            insufficient_data=insufficient,
        )

    def _traffic_light(
        self,
        compliant: bool,
        score: float,
        requirements: list[RequirementResult],
    ) -> TrafficLight:
        if compliant:
            return TrafficLight.GREEN
        critical_ids = {category.value for category in CRITICAL_GATES}
        critical_failure = any(
            r.requirement_id in critical_ids and r.status == RequirementStatus.NOT_MET
            for r in requirements
        )
        if critical_failure or score < RED_SCORE_THRESHOLD:
            return TrafficLight.RED
        return TrafficLight.YELLOW

    def _overall_status(
        self, traffic_light: TrafficLight, timeline: TimelineSummary
    ) -> ComplianceStatus:
        if traffic_light == TrafficLight.GREEN:
            if timeline.weekly.excepted_weeks:
                return ComplianceStatus.COMPLIANT_WITH_EXCEPTION
            return ComplianceStatus.COMPLIANT
        if traffic_light == TrafficLight.YELLOW:
            return ComplianceStatus.AT_RISK
        return ComplianceStatus.NON_COMPLIANT

    def _collect_gaps(
        self,
        requirements: list[RequirementResult],
        reduction: WoundReduction,
    ) -> list[Gap]:
        """One gap per failing requirement, hard gates first, in table order."""
        gaps = []
        for gate in (GateType.HARD, GateType.INFORMATIONAL):
            for r in requirements:
                if r.gate == gate and r.status == RequirementStatus.NOT_MET:
                    gaps.append(Gap(
                        category=GapCategory(r.requirement_id),
                        message=r.details,
                        recommendation=r.recommendation or "",
                        critical=r.details.startswith("CRITICAL"),
                    ))

        if reduction.performed and not reduction.insufficient_data and not reduction.meets_threshold:
            gaps.append(Gap(
                category=GapCategory.RESPONSE_THRESHOLD,
                message=(
                    f"Wound area reduction {reduction.reduction_pct:.1f}% below "
                    f"{reduction.threshold_pct:.0f}% LCD response threshold at 4 weeks"
                ),
                recommendation="Consider advanced therapy options per Medicare LCD",
            ))
        return gaps

    def _standard_of_care(
        self, classification: WoundClassification, timeline: TimelineSummary
    ) -> StandardOfCare:
        types = sorted({InterventionType(i.type).value for i in timeline.interventions})
        return StandardOfCare(
            offloading=_has_offloading(timeline) if classification.requires_offloading else None,
            compression=_has_compression(timeline) if classification.requires_compression else None,
            infection_control=_has_any_type(timeline, INFECTION_CONTROL_TYPES),
            patient_education=_has_any_type(timeline, PATIENT_EDUCATION_TYPES),
            intervention_types=tuple(types),
        )


def _has_any_type(timeline: TimelineSummary, types: tuple[InterventionType, ...]) -> bool:
    return any(i.type in types for i in timeline.interventions)


def _has_offloading(timeline: TimelineSummary) -> bool:
    return _has_any_type(timeline, (InterventionType.OFFLOADING,))


def _has_compression(timeline: TimelineSummary) -> bool:
    return any(
        i.type == InterventionType.COMPRESSION_THERAPY
        or "compression" in (i.name or "").lower()
        for i in timeline.interventions
    )
