"""Wound-care Medicare LCD (L33831) compliance engine.

Assesses a wound-care episode's clinical timeline against the LCD and
returns a ComplianceResult with requirement-level status, a composite
score, traffic light, gaps, recommendations and deadline alerts.

Example:
    from wound_src import assess_episode

    result = assess_episode(episode, encounters, now=datetime(2024, 2, 5))
    print(result.traffic_light.value, result.gaps)
"""

from datetime import datetime

from .models import (
    ConservativeCare,
    DocumentedException,
    Encounter,
    Episode,
    EpisodeValidationError,
    ExceptionType,
    Intervention,
    InterventionType,
    WoundDetails,
    WoundMeasurement,
)
from .rules import ComplianceResult, LCDPolicy, WoundClassifier
from .rules.assessor import ComplianceAssessor
from .rules.timeline import TimelineAggregator

__version__ = "1.0.0"


def assess_episode(
    episode: Episode,
    encounters: list[Encounter],
    now: datetime,
    exceptions: list[DocumentedException] | None = None,
    policy: LCDPolicy | None = None,
) -> ComplianceResult:
    """Assess one episode as of `now` with the default (or given) policy."""
    return ComplianceAssessor(policy).assess(episode, encounters, now, exceptions)


__all__ = [
    "assess_episode",
    "ComplianceAssessor",
    "ComplianceResult",
    "ConservativeCare",
    "DocumentedException",
    "Encounter",
    "Episode",
    "EpisodeValidationError",
    "ExceptionType",
    "Intervention",
    "InterventionType",
    "LCDPolicy",
    "TimelineAggregator",
    "WoundClassifier",
    "WoundDetails",
    "WoundMeasurement",
]
