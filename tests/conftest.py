"""Shared fixtures for the wound-care compliance tests."""

from datetime import datetime, timedelta

import pytest

from wound_src.models import (
    ConservativeCare,
    Encounter,
    Episode,
    Intervention,
    InterventionType,
    WoundDetails,
    WoundMeasurement,
)

START = datetime(2024, 1, 1)  # A Monday, ISO week 2024-W01


def build_encounter(
    enc_id: str,
    day: int,
    area: float | None = None,
    interventions=(),
    start: datetime = START,
) -> Encounter:
    """Encounter on episode day `day` with an optional area and interventions."""
    details = None
    if area is not None:
        details = WoundDetails(measurement=WoundMeasurement(area=area))
    care = None
    if interventions:
        care = ConservativeCare(
            interventions=[Intervention(type=t, name=name) for t, name in interventions]
        )
    return Encounter(
        id=enc_id,
        date=start + timedelta(days=day),
        wound_details=details,
        conservative_care=care,
    )


@pytest.fixture
def make_encounter():
    return build_encounter


@pytest.fixture
def start():
    return START


@pytest.fixture
def dfu_episode():
    return Episode(
        id="ep-dfu",
        episode_start_date=START,
        wound_type="Diabetic foot ulcer",
        wound_location="left plantar heel",
    )


@pytest.fixture
def vlu_episode():
    return Episode(
        id="ep-vlu",
        episode_start_date=START,
        wound_type="Venous leg ulcer",
    )


@pytest.fixture
def full_care():
    """Offloading plus infection control and education."""
    return (
        (InterventionType.OFFLOADING, "Total contact cast"),
        (InterventionType.INFECTION_MANAGEMENT, "Topical antimicrobial"),
        (InterventionType.EDUCATION, "Offloading adherence teaching"),
    )


@pytest.fixture
def dfu_day35_encounters(full_care):
    """Weekly measurements through day 35, 10 cm² down to 4 cm² at day 28."""
    areas = {0: 10.0, 7: 9.0, 14: 8.0, 21: 6.5, 28: 4.0, 35: 3.5}
    encounters = []
    for day, area in areas.items():
        interventions = full_care if day == 0 else ()
        encounters.append(build_encounter(f"enc-d{day}", day, area, interventions))
    return encounters
