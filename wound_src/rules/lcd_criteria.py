"""Medicare LCD criteria reference data and constants.

This module contains the thresholds, windows and keyword tables used to
assess wound-care episodes against the Local Coverage Determination for
lower-extremity chronic wounds (L33831). These should be reviewed whenever
the MAC publishes a revised LCD or billing article.

Reference: CMS Local Coverage Determination L33831
"""

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

# =============================================================================
# LCD Version Tracking
# =============================================================================

LCD_ID = "L33831"
LAST_UPDATED = "2024-06-01"


# =============================================================================
# Conservative Care and Documentation Windows
# =============================================================================

# Conservative care must be documented for at least 30 days before
# advanced therapies are covered
CONSERVATIVE_CARE_MIN_DAYS = 30

# Baseline wound measurement must be taken within 7 days of episode start
BASELINE_WINDOW_DAYS = 7

# Response to conservative care is evaluated at 4 weeks (day 28),
# accepting a measurement within +/- 7 days of that day
RESPONSE_EVALUATION_DAY = 28
RESPONSE_WINDOW_TOLERANCE_DAYS = 7


# =============================================================================
# Wound Reduction Thresholds
#
# These are two independent policies and are never combined:
# - 50% at 4 weeks gates the LCD response-to-therapy determination
# - 20% by 28 days tracks general wound-reduction progress
# =============================================================================

LCD_RESPONSE_REDUCTION_PCT = 50.0
PROGRESS_REDUCTION_PCT = 20.0
PROGRESS_EVALUATION_DAY = 28

# Fractions of the pro-rated progress target used to grade progress
# while still inside the 28-day window
PROGRESS_ON_TRACK_FRACTION = 0.8
PROGRESS_AT_RISK_FRACTION = 0.5

# Change in area between the last two measurements inside this band
# (in either direction) is reported as a stable trend
TREND_STABLE_BAND_PCT = 5.0


# =============================================================================
# Scoring
# =============================================================================

# Informational signals must reach this percentage for overall compliance
INFORMATIONAL_PASS_PCT = 60.0

# Any failing hard gate keeps the composite score below this ceiling
HARD_GATE_SCORE_CEILING = 80.0
INFORMATIONAL_SCORE_WEIGHT = 0.2

# Below this composite score the traffic light is red
RED_SCORE_THRESHOLD = 50.0

# Weekly coverage (with documented exceptions) at or above this is "at risk"
# rather than non-compliant
WEEKLY_AT_RISK_COVERAGE_PCT = 85.0


# =============================================================================
# Measurement Units
# =============================================================================

CM_PER_UNIT = {
    "cm": 1.0,
    "mm": 0.1,
    "inches": 2.54,
}

UNIT_ALIASES = {
    "cm": "cm",
    "centimeter": "cm",
    "centimeters": "cm",
    "mm": "mm",
    "millimeter": "mm",
    "millimeters": "mm",
    "in": "inches",
    "inch": "inches",
    "inches": "inches",
}

DEFAULT_UNIT = "cm"


def normalize_unit(unit: str | None) -> str | None:
    """Map a recorded unit of measurement to cm, mm or inches.

    Returns:
        Canonical unit name, DEFAULT_UNIT when no unit was recorded,
        or None when the unit is not recognized.
    """
    if unit is None or not str(unit).strip():
        return DEFAULT_UNIT
    return UNIT_ALIASES.get(str(unit).strip().lower())


# =============================================================================
# Wound Classification
#
# ICD-10 codes are structured evidence and are checked first. Free-text
# keywords are the fallback for episodes documented with only a wound type.
# =============================================================================

ICD10_CODE_PATTERN = re.compile(r"^[A-Z][0-9]{2}(\.[0-9A-Z]{1,4})?$")

DFU_ICD10_PREFIXES = (
    "E08.621",  # Diabetes due to underlying condition with foot ulcer
    "E09.621",  # Drug or chemical induced diabetes with foot ulcer
    "E10.621",  # Type 1 diabetes with foot ulcer
    "E11.621",  # Type 2 diabetes with foot ulcer
    "E13.621",  # Other specified diabetes with foot ulcer
)

VLU_ICD10_PREFIXES = (
    "I83.0",   # Varicose veins of lower extremity with ulcer
    "I83.2",   # Varicose veins with both ulcer and inflammation
    "I87.01",  # Postthrombotic syndrome with ulcer
    "I87.03",  # Postthrombotic syndrome with ulcer and inflammation
    "I87.31",  # Chronic venous hypertension with ulcer
    "I87.33",  # Chronic venous hypertension with ulcer and inflammation
)

PU_ICD10_PREFIXES = (
    "L89",     # Pressure ulcer
)

# Non-pressure chronic ulcer of lower limb; category comes from the location
NON_PRESSURE_ULCER_ICD10_PREFIX = "L97"

# "Full-thickness ulcer" wound types are placed by location the same way
FULL_THICKNESS_TERMS = ("full-thickness", "full thickness")
FULL_THICKNESS_WOUND_TERMS = ("ulcer", "wound")

FOOT_LOCATION_TERMS = ("foot", "toe", "heel")
LEG_LOCATION_TERMS = ("leg", "ankle", "calf")

# Abbreviations must match as whole words ("pu" must not match "purulent")
DFU_ABBREVIATIONS = ("dfu",)
VLU_ABBREVIATIONS = ("vlu",)
PU_ABBREVIATIONS = ("pu",)

DFU_KEYWORDS = ("diabetic", "neuropathic")
VLU_KEYWORDS = ("venous", "stasis")
PU_KEYWORDS = ("pressure", "decubitus", "bedsore", "bed sore")


def is_icd10_code(value: str | None) -> bool:
    """Check if a diagnosis string is shaped like an ICD-10-CM code."""
    if not value:
        return False
    return bool(ICD10_CODE_PATTERN.match(value.strip().upper()))


def match_keywords(
    text: str,
    abbreviations: tuple[str, ...],
    keywords: tuple[str, ...],
) -> list[str]:
    """Find category terms in lowercased wound-type text.

    Args:
        text: Lowercased free text
        abbreviations: Short terms matched on word boundaries
        keywords: Longer terms matched as substrings

    Returns:
        Matched terms in table order
    """
    matched = []
    for abbreviation in abbreviations:
        if re.search(rf"\b{re.escape(abbreviation)}\b", text):
            matched.append(abbreviation)
    for keyword in keywords:
        if keyword in text:
            matched.append(keyword)
    return matched


# =============================================================================
# Intervention Keywords (legacy free-text records only)
# =============================================================================

OFFLOADING_NAME_KEYWORDS = ("offloading", "off-loading", "tcc", "total contact cast", "boot")
COMPRESSION_NAME_KEYWORDS = ("compression", "wrap", "bandage", "unna")
INFECTION_NAME_KEYWORDS = ("antibiotic", "antiseptic", "antimicrobial")
DEBRIDEMENT_NAME_KEYWORDS = ("debridement",)
EDUCATION_NAME_KEYWORDS = ("education", "teaching")
NUTRITION_NAME_KEYWORDS = ("nutrition",)


# =============================================================================
# Policy Bundle
# =============================================================================

@dataclass(frozen=True)
class LCDPolicy:
    """Thresholds applied by the timeline aggregator and assessor.

    Defaults are the L33831 values above. Deployments can override
    individual values through Config.build_policy().
    """
    conservative_care_min_days: int = CONSERVATIVE_CARE_MIN_DAYS
    baseline_window_days: int = BASELINE_WINDOW_DAYS
    response_evaluation_day: int = RESPONSE_EVALUATION_DAY
    response_window_tolerance_days: int = RESPONSE_WINDOW_TOLERANCE_DAYS
    response_reduction_pct: float = LCD_RESPONSE_REDUCTION_PCT
    progress_reduction_pct: float = PROGRESS_REDUCTION_PCT
    progress_evaluation_day: int = PROGRESS_EVALUATION_DAY
    informational_pass_pct: float = INFORMATIONAL_PASS_PCT
    weekly_at_risk_coverage_pct: float = WEEKLY_AT_RISK_COVERAGE_PCT

    @property
    def response_window_start(self) -> int:
        return self.response_evaluation_day - self.response_window_tolerance_days

    @property
    def response_window_end(self) -> int:
        return self.response_evaluation_day + self.response_window_tolerance_days


# =============================================================================
# Date Arithmetic
# =============================================================================

SECONDS_PER_DAY = 86400


def to_datetime(value) -> datetime | None:
    """Normalize a date, datetime or ISO-8601 string to a naive datetime.

    Timezone-aware values are converted to UTC before the tzinfo is
    dropped so that all comparisons happen on one clock.

    Returns:
        datetime, or None if the value is absent or cannot be parsed
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text[-1] in ("Z", "z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def calculate_elapsed_days(start: datetime, now: datetime) -> int:
    """Whole days between episode start and now, rounded up.

    Returns 0 when now precedes the start.
    """
    seconds = (now - start).total_seconds()
    return max(0, math.ceil(seconds / SECONDS_PER_DAY))


def calculate_episode_day(start: datetime, when: datetime) -> int:
    """Calendar day offset of an encounter from episode start.

    Day 0 is the start date. Encounters before the start are negative.
    """
    return (when.date() - start.date()).days


def iso_week_id(when: date) -> str:
    """ISO 8601 week identifier, e.g. "2025-W01" for 2024-12-30.

    Uses the ISO week-numbering year, so the week containing the year's
    first Thursday is week 1.
    """
    iso_year, iso_week, _ = when.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def expected_iso_weeks(start: datetime, now: datetime) -> list[str]:
    """ISO weeks that must carry a measurement between start and now.

    Walks from the start date in 7-day strides up to and including now.
    Each stride lands in the following ISO week, so no week is skipped.
    """
    weeks: list[str] = []
    current = start
    while current <= now:
        week = iso_week_id(current)
        if week not in weeks:
            weeks.append(week)
        current += timedelta(days=7)
    return weeks


def is_response_window_elapsed(elapsed_days: int, policy: LCDPolicy) -> bool:
    """Check if the 4-week response window (day 21-35) has fully passed."""
    return elapsed_days > policy.response_window_end


def calculate_reduction_pct(baseline_area: float, current_area: float) -> float | None:
    """Percentage area reduction from baseline.

    Returns:
        Reduction rounded to one decimal (negative when the wound grew),
        or None when the baseline area is 0 and the ratio is undefined
    """
    if baseline_area <= 0:
        return None
    return round((baseline_area - current_area) / baseline_area * 100, 1)
