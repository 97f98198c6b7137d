"""Unit tests for LCD criteria constants and date helpers.

Reference: CMS Local Coverage Determination L33831
"""

from datetime import date, datetime

import pytest

from wound_src.rules.lcd_criteria import (
    CONSERVATIVE_CARE_MIN_DAYS,
    LCD_RESPONSE_REDUCTION_PCT,
    PROGRESS_REDUCTION_PCT,
    PU_ABBREVIATIONS,
    PU_KEYWORDS,
    LCDPolicy,
    calculate_elapsed_days,
    calculate_episode_day,
    calculate_reduction_pct,
    expected_iso_weeks,
    is_icd10_code,
    is_response_window_elapsed,
    iso_week_id,
    match_keywords,
    normalize_unit,
    to_datetime,
)


class TestISOWeeks:
    """ISO 8601 week ids use the week-numbering year."""

    @pytest.mark.parametrize("day,expected", [
        (date(2024, 12, 30), "2025-W01"),
        (date(2020, 12, 28), "2020-W53"),
        (date(2021, 1, 1), "2020-W53"),
        (date(2021, 1, 4), "2021-W01"),
        (date(2024, 1, 1), "2024-W01"),
    ])
    def test_iso_week_id(self, day, expected):
        assert iso_week_id(day) == expected

    def test_expected_weeks_four_weeks(self):
        """Start Monday 2024-01-01, now 2024-01-28: four expected weeks."""
        weeks = expected_iso_weeks(datetime(2024, 1, 1), datetime(2024, 1, 28))
        assert weeks == ["2024-W01", "2024-W02", "2024-W03", "2024-W04"]

    def test_expected_weeks_includes_now(self):
        """start + 7k equal to now is still expected."""
        weeks = expected_iso_weeks(datetime(2024, 1, 1), datetime(2024, 1, 29))
        assert weeks[-1] == "2024-W05"
        assert len(weeks) == 5

    def test_expected_weeks_across_year_boundary(self):
        weeks = expected_iso_weeks(datetime(2024, 12, 23), datetime(2025, 1, 6))
        assert weeks == ["2024-W52", "2025-W01", "2025-W02"]

    def test_expected_weeks_now_before_start(self):
        assert expected_iso_weeks(datetime(2024, 1, 10), datetime(2024, 1, 1)) == []


class TestDayArithmetic:
    """Elapsed days round up, episode days are calendar offsets."""

    def test_elapsed_days_rounds_up(self):
        start = datetime(2024, 1, 1)
        assert calculate_elapsed_days(start, datetime(2024, 1, 1)) == 0
        assert calculate_elapsed_days(start, datetime(2024, 1, 1, 12, 0)) == 1
        assert calculate_elapsed_days(start, datetime(2024, 1, 31)) == 30
        assert calculate_elapsed_days(start, datetime(2024, 1, 15, 12, 0)) == 15

    def test_elapsed_days_clamped_at_zero(self):
        assert calculate_elapsed_days(datetime(2024, 1, 10), datetime(2024, 1, 1)) == 0

    def test_episode_day(self):
        start = datetime(2024, 1, 1, 16, 0)
        assert calculate_episode_day(start, datetime(2024, 1, 1, 8, 0)) == 0
        assert calculate_episode_day(start, datetime(2024, 1, 29, 9, 0)) == 28
        assert calculate_episode_day(start, datetime(2023, 12, 30)) == -2

    def test_response_window(self):
        policy = LCDPolicy()
        assert policy.response_window_start == 21
        assert policy.response_window_end == 35
        assert not is_response_window_elapsed(35, policy)
        assert is_response_window_elapsed(36, policy)


class TestToDatetime:
    """Date parsing normalizes to naive UTC datetimes."""

    def test_iso_date_string(self):
        assert to_datetime("2024-01-05") == datetime(2024, 1, 5)

    def test_zulu_suffix(self):
        assert to_datetime("2024-01-05T10:00:00Z") == datetime(2024, 1, 5, 10, 0)

    def test_offset_converted_to_utc(self):
        assert to_datetime("2024-01-05T10:00:00+02:00") == datetime(2024, 1, 5, 8, 0)

    def test_date_object(self):
        assert to_datetime(date(2024, 1, 5)) == datetime(2024, 1, 5)

    @pytest.mark.parametrize("value", [None, "", "not a date", "2024-13-45", True, 42])
    def test_unparsable(self, value):
        assert to_datetime(value) is None


class TestReduction:
    """Area reduction from baseline."""

    def test_sixty_percent(self):
        assert calculate_reduction_pct(10.0, 4.0) == 60.0

    def test_rounded_to_one_decimal(self):
        assert calculate_reduction_pct(3.0, 2.0) == 33.3

    def test_growth_is_negative(self):
        assert calculate_reduction_pct(10.0, 12.0) == -20.0

    def test_zero_baseline_is_undefined(self):
        assert calculate_reduction_pct(0.0, 5.0) is None

    def test_thresholds_are_independent(self):
        assert LCD_RESPONSE_REDUCTION_PCT == 50.0
        assert PROGRESS_REDUCTION_PCT == 20.0
        assert CONSERVATIVE_CARE_MIN_DAYS == 30


class TestUnitsAndCodes:
    """Unit normalization, ICD-10 shape and keyword matching."""

    @pytest.mark.parametrize("raw,expected", [
        (None, "cm"),
        ("", "cm"),
        ("CM", "cm"),
        ("millimeters", "mm"),
        ("Inch", "inches"),
        ("in", "inches"),
        ("furlong", None),
    ])
    def test_normalize_unit(self, raw, expected):
        assert normalize_unit(raw) == expected

    def test_icd10_shape(self):
        assert is_icd10_code("E11.621")
        assert is_icd10_code("L89")
        assert is_icd10_code("l89.154")
        assert not is_icd10_code("diabetic foot ulcer")
        assert not is_icd10_code(None)

    def test_abbreviation_needs_word_boundary(self):
        assert match_keywords("purulent drainage", PU_ABBREVIATIONS, PU_KEYWORDS) == []
        assert match_keywords("stage 2 pu, sacrum", PU_ABBREVIATIONS, PU_KEYWORDS) == ["pu"]

    def test_keywords_match_substrings(self):
        assert match_keywords("sacral decubitus ulcer", PU_ABBREVIATIONS, PU_KEYWORDS) == ["decubitus"]
