"""Data models for wound-care episodes and encounters.

These are the records the compliance engine reads. They are produced by the
clinical documentation workflow (forms, PDF extraction) and are never
modified by the engine.

Optional clinical values are `float | None`. None means the field was not
recorded; 0 is a real reading and is never treated as missing.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .rules.lcd_criteria import (
    CM_PER_UNIT,
    COMPRESSION_NAME_KEYWORDS,
    DEBRIDEMENT_NAME_KEYWORDS,
    DEFAULT_UNIT,
    EDUCATION_NAME_KEYWORDS,
    INFECTION_NAME_KEYWORDS,
    NUTRITION_NAME_KEYWORDS,
    OFFLOADING_NAME_KEYWORDS,
    normalize_unit,
    to_datetime,
)

logger = logging.getLogger(__name__)


class EpisodeValidationError(ValueError):
    """Episode input is structurally invalid and cannot be assessed."""


class InterventionType(str, Enum):
    """Conservative care intervention categories."""
    OFFLOADING = "offloading"
    COMPRESSION_THERAPY = "compression_therapy"
    INFECTION_MANAGEMENT = "infection_management"
    DEBRIDEMENT = "debridement"
    EDUCATION = "education"
    NUTRITION_COUNSELING = "nutrition_counseling"
    MOISTURE_MANAGEMENT = "moisture_management"
    OTHER = "other"

    @classmethod
    def from_record(cls, raw_type: str | None, name: str | None = None) -> "InterventionType":
        """Resolve the intervention type recorded at data entry.

        Structured records carry one of the enum values directly. Anything
        else goes through the legacy keyword matcher.
        """
        if raw_type:
            normalized = raw_type.strip().lower().replace(" ", "_").replace("-", "_")
            try:
                return cls(normalized)
            except ValueError:
                pass
        return match_legacy_intervention(raw_type, name)


def match_legacy_intervention(raw_type: str | None, name: str | None) -> InterventionType:
    """Compatibility shim for unstructured intervention records.

    Older encounters (and PDF-extracted ones) carry free-text types such as
    "offloading_device" or only a product name such as "Total Contact Cast".
    Only use this for records that do not carry an InterventionType value.
    """
    type_lower = (raw_type or "").lower()
    name_lower = (name or "").lower()

    for intervention_type, term in LEGACY_TYPE_TERMS:
        if term in type_lower:
            return intervention_type
    for intervention_type, keywords in LEGACY_NAME_KEYWORDS:
        if any(k in name_lower for k in keywords):
            return intervention_type
    return InterventionType.OTHER


LEGACY_TYPE_TERMS = (
    (InterventionType.OFFLOADING, "offloading"),
    (InterventionType.COMPRESSION_THERAPY, "compression"),
    (InterventionType.INFECTION_MANAGEMENT, "infection_management"),
    (InterventionType.DEBRIDEMENT, "debridement"),
    (InterventionType.EDUCATION, "education"),
    (InterventionType.NUTRITION_COUNSELING, "nutrition"),
)

# Compression names are checked before offloading so "Unna boot" is compression
LEGACY_NAME_KEYWORDS = (
    (InterventionType.COMPRESSION_THERAPY, COMPRESSION_NAME_KEYWORDS),
    (InterventionType.OFFLOADING, OFFLOADING_NAME_KEYWORDS),
    (InterventionType.INFECTION_MANAGEMENT, INFECTION_NAME_KEYWORDS),
    (InterventionType.DEBRIDEMENT, DEBRIDEMENT_NAME_KEYWORDS),
    (InterventionType.EDUCATION, EDUCATION_NAME_KEYWORDS),
    (InterventionType.NUTRITION_COUNSELING, NUTRITION_NAME_KEYWORDS),
)


class ExceptionType(str, Enum):
    """Documented clinical reasons for a missed weekly assessment."""
    HOLIDAY = "holiday"
    INPATIENT_STAY = "inpatient_stay"
    MEDICAL_EMERGENCY = "medical_emergency"
    PATIENT_UNAVAILABLE = "patient_unavailable"
    OTHER = "other"


def _get(data: dict, *keys: str, default: Any = None) -> Any:
    """Read the first present key, accepting camelCase and snake_case."""
    for key in keys:
        if key in data:
            return data[key]
    return default


def _parse_measurement_value(value: Any, field_name: str) -> float | None:
    """Parse one measurement field, keeping 0 distinct from absent."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            value = float(value)
        except ValueError:
            logger.warning(f"Ignoring non-numeric {field_name}: {value!r}")
            return None
    if not isinstance(value, (int, float)):
        logger.warning(f"Ignoring non-numeric {field_name}: {value!r}")
        return None
    number = float(value)
    if not math.isfinite(number) or number < 0:
        logger.warning(f"Ignoring invalid {field_name}: {value!r}")
        return None
    return number


TRUE_STRINGS = ("true", "yes", "y", "1")
FALSE_STRINGS = ("false", "no", "n", "0", "")


def _parse_flag(value: Any, field_name: str, default: bool) -> bool:
    """Parse a boolean that may arrive as a JSON bool, number or string."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in TRUE_STRINGS:
        return True
    if text in FALSE_STRINGS:
        return False
    logger.warning(f"Unrecognized {field_name} value {value!r}, treating as false")
    return False


@dataclass
class WoundMeasurement:
    """A single wound measurement as recorded, in its recorded unit."""
    length: float | None = None
    width: float | None = None
    depth: float | None = None
    area: float | None = None
    unit: str = DEFAULT_UNIT

    @property
    def _cm_factor(self) -> float:
        return CM_PER_UNIT.get(self.unit, 1.0)

    @property
    def area_cm2(self) -> float | None:
        """Wound area in cm².

        Explicit area wins; otherwise length x width when both exist.
        Depth never contributes to area.
        """
        factor = self._cm_factor ** 2
        if self.area is not None:
            return self.area * factor
        if self.length is not None and self.width is not None:
            return self.length * self.width * factor
        return None

    @property
    def depth_cm(self) -> float | None:
        if self.depth is None:
            return None
        return self.depth * self._cm_factor

    @property
    def has_area(self) -> bool:
        return self.area_cm2 is not None

    def to_dict(self) -> dict:
        return {
            "length": self.length,
            "width": self.width,
            "depth": self.depth,
            "area": self.area,
            "unit": self.unit,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "WoundMeasurement | None":
        if data is None:
            return None
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed wound measurement: {data!r}")
            return None

        raw_unit = _get(data, "unit", "unitOfMeasurement", "unit_of_measurement")
        unit = normalize_unit(raw_unit)
        if unit is None:
            logger.warning(f"Ignoring wound measurement with unknown unit: {raw_unit!r}")
            return None

        return cls(
            length=_parse_measurement_value(data.get("length"), "length"),
            width=_parse_measurement_value(data.get("width"), "width"),
            depth=_parse_measurement_value(data.get("depth"), "depth"),
            area=_parse_measurement_value(
                _get(data, "area", "calculatedArea", "calculated_area"), "area"
            ),
            unit=unit,
        )


@dataclass
class WoundDetails:
    """Structured wound findings from one encounter."""
    measurement: WoundMeasurement | None = None
    infection_signs: list[str] = field(default_factory=list)
    tissue_type: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> "WoundDetails | None":
        if data is None:
            return None
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed wound details: {data!r}")
            return None

        raw_measurement = _get(
            data, "currentMeasurement", "current_measurement", "measurements", "measurement"
        )
        infection_signs = _get(data, "infectionSigns", "infection_signs", default=[])
        if not isinstance(infection_signs, list):
            infection_signs = []

        return cls(
            measurement=WoundMeasurement.from_dict(raw_measurement),
            infection_signs=[str(s) for s in infection_signs],
            tissue_type=_get(data, "tissueType", "tissue_type"),
        )


@dataclass
class Intervention:
    """A conservative care intervention documented at an encounter."""
    type: InterventionType
    raw_type: str | None = None
    name: str | None = None
    effectiveness: str | None = None
    start_date: datetime | None = None

    @classmethod
    def from_dict(cls, data: Any) -> "Intervention | None":
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed intervention: {data!r}")
            return None
        raw_type = data.get("type")
        raw_type = str(raw_type) if raw_type is not None else None
        name = data.get("name")
        name = str(name) if name is not None else None
        return cls(
            type=InterventionType.from_record(raw_type, name),
            raw_type=raw_type,
            name=name,
            effectiveness=data.get("effectiveness"),
            start_date=to_datetime(_get(data, "startDate", "start_date")),
        )


@dataclass
class ConservativeCare:
    """Conservative care documentation from one encounter."""
    interventions: list[Intervention] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "ConservativeCare | None":
        if data is None:
            return None
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed conservative care: {data!r}")
            return None
        raw_interventions = data.get("interventions", [])
        if raw_interventions is None:
            raw_interventions = []
        if not isinstance(raw_interventions, list):
            logger.warning(f"Ignoring malformed interventions list: {raw_interventions!r}")
            return None

        interventions = []
        for raw in raw_interventions:
            intervention = Intervention.from_dict(raw)
            if intervention is not None:
                interventions.append(intervention)
        return cls(interventions=interventions)


@dataclass
class Episode:
    """One continuous treatment course for one wound on one patient."""
    id: str
    episode_start_date: Any
    wound_type: str | None = None
    primary_diagnosis: str | None = None
    wound_location: str | None = None
    patient_id: str | None = None
    tenant_id: str | None = None
    status: str = "active"

    @classmethod
    def from_dict(cls, data: Any) -> "Episode":
        """Build an episode from an application payload.

        Raises:
            EpisodeValidationError: If the payload is not an object or the
                start date is missing or unparsable
        """
        if not isinstance(data, dict):
            raise EpisodeValidationError(f"Episode must be an object, got {type(data).__name__}")

        raw_start = _get(data, "episodeStartDate", "episode_start_date")
        start = to_datetime(raw_start)
        if start is None:
            raise EpisodeValidationError(f"Unparsable episode start date: {raw_start!r}")

        return cls(
            id=str(data.get("id", "")),
            episode_start_date=start,
            wound_type=_get(data, "woundType", "wound_type"),
            primary_diagnosis=_get(data, "primaryDiagnosis", "primary_diagnosis"),
            wound_location=_get(data, "woundLocation", "wound_location"),
            patient_id=_get(data, "patientId", "patient_id"),
            tenant_id=_get(data, "tenantId", "tenant_id"),
            status=data.get("status") or "active",
        )


@dataclass
class Encounter:
    """One documented clinical visit."""
    id: str
    date: Any
    episode_id: str | None = None
    wound_details: WoundDetails | None = None
    conservative_care: ConservativeCare | None = None
    diabetic_status: str | None = None
    infection_status: str | None = None
    comorbidities: list[str] = field(default_factory=list)

    @property
    def measurement(self) -> WoundMeasurement | None:
        if self.wound_details is None:
            return None
        return self.wound_details.measurement

    @property
    def area_cm2(self) -> float | None:
        measurement = self.measurement
        if measurement is None:
            return None
        return measurement.area_cm2

    @property
    def interventions(self) -> list[Intervention]:
        if self.conservative_care is None:
            return []
        return self.conservative_care.interventions

    @classmethod
    def from_dict(cls, data: dict) -> "Encounter":
        """Build an encounter from an application payload.

        The date is parsed when possible; an unparsable date is kept as
        given so the aggregator can exclude the encounter with a note.
        """
        raw_date = data.get("date")
        parsed_date = to_datetime(raw_date)

        comorbidities = data.get("comorbidities") or []
        if not isinstance(comorbidities, list):
            comorbidities = [str(comorbidities)]

        return cls(
            id=str(data.get("id", "")),
            date=parsed_date if parsed_date is not None else raw_date,
            episode_id=_get(data, "episodeId", "episode_id"),
            wound_details=WoundDetails.from_dict(_get(data, "woundDetails", "wound_details")),
            conservative_care=ConservativeCare.from_dict(
                _get(data, "conservativeCare", "conservative_care")
            ),
            diabetic_status=_get(data, "diabeticStatus", "diabetic_status"),
            infection_status=_get(data, "infectionStatus", "infection_status"),
            comorbidities=[str(c) for c in comorbidities],
        )


@dataclass
class DocumentedException:
    """A documented clinical reason for a week without an assessment."""
    week: str
    type: ExceptionType
    reason: str = ""
    documented_by: str | None = None
    documented_date: datetime | None = None
    is_valid: bool = True

    @property
    def excuses_missing_week(self) -> bool:
        """Only validated, non-"other" exceptions excuse a missed week."""
        return self.is_valid and self.type != ExceptionType.OTHER

    @classmethod
    def from_dict(cls, data: dict) -> "DocumentedException":
        raw_type = str(data.get("type", "other")).strip().lower().replace("-", "_")
        try:
            exception_type = ExceptionType(raw_type)
        except ValueError:
            logger.warning(f"Unknown exception type {raw_type!r}, treating as other")
            exception_type = ExceptionType.OTHER
        return cls(
            week=str(data.get("week", "")),
            type=exception_type,
            reason=data.get("reason", ""),
            documented_by=_get(data, "documentedBy", "documented_by"),
            documented_date=to_datetime(_get(data, "documentedDate", "documented_date")),
            is_valid=_parse_flag(
                _get(data, "isValidException", "is_valid"), "isValidException", default=True
            ),
        )
