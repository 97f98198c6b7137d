"""Wound classifier.

Maps an episode's documented wound type and primary diagnosis to one of the
wound categories that carry category-specific LCD requirements.

Decision Flow:
1. Is the primary diagnosis a wound-specific ICD-10 code?
   → Category from the code prefix (evidence: icd10)
2. Is it an L97 non-pressure chronic ulcer code with a foot or leg location?
   → DFU for foot/toe/heel, VLU for leg/ankle/calf (evidence: icd10)
3. Is the wound type a "full-thickness" ulcer with a foot or leg location?
   → Same location rule (evidence: wound_type)
4. Does the wound type contain category terms?
   → DFU > VLU > PU when several match (evidence: wound_type)
5. Else OTHER, with a note so a reviewer can fix the documentation

Diagnosis text is only read for its ICD-10 code. Free-text keywords are
matched against the wound type alone.
"""

import logging

from .lcd_criteria import (
    DFU_ABBREVIATIONS,
    DFU_ICD10_PREFIXES,
    DFU_KEYWORDS,
    FOOT_LOCATION_TERMS,
    FULL_THICKNESS_TERMS,
    FULL_THICKNESS_WOUND_TERMS,
    LEG_LOCATION_TERMS,
    NON_PRESSURE_ULCER_ICD10_PREFIX,
    PU_ABBREVIATIONS,
    PU_ICD10_PREFIXES,
    PU_KEYWORDS,
    VLU_ABBREVIATIONS,
    VLU_ICD10_PREFIXES,
    VLU_KEYWORDS,
    is_icd10_code,
    match_keywords,
)
from .schemas import ClassificationEvidence, WoundCategory, WoundClassification

logger = logging.getLogger(__name__)

# Checked in order; the first category with a match wins
CATEGORY_PRECEDENCE = (
    (WoundCategory.DFU, DFU_ICD10_PREFIXES, DFU_ABBREVIATIONS, DFU_KEYWORDS),
    (WoundCategory.VLU, VLU_ICD10_PREFIXES, VLU_ABBREVIATIONS, VLU_KEYWORDS),
    (WoundCategory.PU, PU_ICD10_PREFIXES, PU_ABBREVIATIONS, PU_KEYWORDS),
)

# Foot is checked before leg
LOCATION_CATEGORIES = (
    (WoundCategory.DFU, FOOT_LOCATION_TERMS),
    (WoundCategory.VLU, LEG_LOCATION_TERMS),
)


def extract_icd10_code(diagnosis: str | None) -> str | None:
    """Pull a leading ICD-10 code out of a diagnosis string.

    Handles "E11.621" as well as "E11.621 - Type 2 diabetes with foot ulcer".
    """
    if not diagnosis:
        return None
    tokens = diagnosis.strip().split()
    if not tokens:
        return None
    candidate = tokens[0].strip(",;:-").upper()
    if is_icd10_code(candidate):
        return candidate
    return None


def category_from_location(*texts: str | None) -> tuple[WoundCategory, str] | None:
    """Place a lower-limb ulcer by anatomical location.

    Returns:
        (category, matched term), or None if no text names a foot or leg site
    """
    lowered = [t.lower() for t in texts if t]
    for category, terms in LOCATION_CATEGORIES:
        for term in terms:
            if any(term in text for text in lowered):
                return category, term
    return None


def is_full_thickness_ulcer(wound_type: str) -> bool:
    text = wound_type.lower()
    return (
        any(term in text for term in FULL_THICKNESS_TERMS)
        and any(term in text for term in FULL_THICKNESS_WOUND_TERMS)
    )


class WoundClassifier:
    """Classify wounds deterministically from episode documentation.

    The classifier never fails: anything it cannot place is OTHER, and the
    assessor then skips the offloading and compression gates.
    """

    def classify(self, episode) -> WoundClassification:
        """Classify an episode's wound.

        Args:
            episode: Episode with wound_type, primary_diagnosis and
                wound_location

        Returns:
            WoundClassification with category and evidence
        """
        wound_type = episode.wound_type or ""
        location = episode.wound_location
        code = extract_icd10_code(episode.primary_diagnosis)

        if code:
            for category, prefixes, _, _ in CATEGORY_PRECEDENCE:
                matched_prefix = next((p for p in prefixes if code.startswith(p)), None)
                if matched_prefix:
                    logger.debug(f"Episode {episode.id}: {category.value} from ICD-10 {code}")
                    return WoundClassification(
                        category=category,
                        evidence_source=ClassificationEvidence.ICD10,
                        matched_terms=(matched_prefix,),
                        icd10_code=code,
                        wound_location=location,
                    )

            if code.startswith(NON_PRESSURE_ULCER_ICD10_PREFIX):
                placed = category_from_location(location)
                if placed:
                    category, term = placed
                    logger.debug(
                        f"Episode {episode.id}: {category.value} from ICD-10 {code} at {location!r}"
                    )
                    return WoundClassification(
                        category=category,
                        evidence_source=ClassificationEvidence.ICD10,
                        matched_terms=(NON_PRESSURE_ULCER_ICD10_PREFIX, term),
                        icd10_code=code,
                        wound_location=location,
                    )
                logger.debug(f"Episode {episode.id}: {code} without a foot or leg location")

        if is_full_thickness_ulcer(wound_type):
            placed = category_from_location(location, wound_type)
            if placed:
                category, term = placed
                logger.debug(f"Episode {episode.id}: {category.value} from full-thickness ulcer at {term!r}")
                return WoundClassification(
                    category=category,
                    evidence_source=ClassificationEvidence.WOUND_TYPE,
                    matched_terms=("full-thickness", term),
                    icd10_code=code,
                    wound_location=location,
                )

        text = wound_type.lower()
        for category, _, abbreviations, keywords in CATEGORY_PRECEDENCE:
            matched = match_keywords(text, abbreviations, keywords)
            if matched:
                logger.debug(f"Episode {episode.id}: {category.value} from terms {matched}")
                return WoundClassification(
                    category=category,
                    evidence_source=ClassificationEvidence.WOUND_TYPE,
                    matched_terms=tuple(matched),
                    icd10_code=code,
                    wound_location=location,
                )

        note = (
            f"Wound type {wound_type!r} could not be classified as DFU, VLU or PU; "
            "wound-specific requirements were not evaluated"
        )
        logger.info(f"Episode {episode.id}: {note}")
        return WoundClassification(
            category=WoundCategory.OTHER,
            evidence_source=ClassificationEvidence.NONE,
            icd10_code=code,
            wound_location=location,
            note=note,
        )
