"""Unit tests for the wound classifier.

Tests cover:
- ICD-10 code evidence (wound-specific prefixes)
- Keyword evidence with DFU > VLU > PU precedence
- Whole-word matching of abbreviations
- Unclassifiable wounds fall back to OTHER with a note
"""

import logging
from datetime import datetime

import pytest

from wound_src.models import Episode
from wound_src.rules.classifier import WoundClassifier, extract_icd10_code
from wound_src.rules.schemas import ClassificationEvidence, WoundCategory


def _episode(wound_type=None, diagnosis=None, location=None):
    return Episode(
        id="ep-test",
        episode_start_date=datetime(2024, 1, 1),
        wound_type=wound_type,
        primary_diagnosis=diagnosis,
        wound_location=location,
    )


class TestKeywordClassification:
    """Free-text wound type classification."""

    @pytest.fixture
    def classifier(self):
        return WoundClassifier()

    @pytest.mark.parametrize("wound_type,expected", [
        ("Diabetic foot ulcer", WoundCategory.DFU),
        ("DFU", WoundCategory.DFU),
        ("neuropathic ulcer, plantar", WoundCategory.DFU),
        ("Venous leg ulcer", WoundCategory.VLU),
        ("venous stasis ulcer", WoundCategory.VLU),
        ("VLU left medial malleolus", WoundCategory.VLU),
        ("Stage 3 pressure injury", WoundCategory.PU),
        ("sacral decubitus", WoundCategory.PU),
        ("bed sore", WoundCategory.PU),
        ("PU stage 2", WoundCategory.PU),
    ])
    def test_categories(self, classifier, wound_type, expected):
        result = classifier.classify(_episode(wound_type))
        assert result.category == expected
        assert result.evidence_source == ClassificationEvidence.WOUND_TYPE

    def test_dfu_beats_vlu(self, classifier):
        """Documentation naming both diabetic and venous classifies as DFU."""
        result = classifier.classify(_episode("diabetic venous ulcer"))
        assert result.category == WoundCategory.DFU
        assert result.matched_terms == ("diabetic",)

    def test_vlu_beats_pu(self, classifier):
        result = classifier.classify(_episode("venous ulcer with pressure component"))
        assert result.category == WoundCategory.VLU

    def test_abbreviation_not_matched_inside_word(self, classifier):
        """'pu' in 'purulent' is not a pressure ulcer."""
        result = classifier.classify(_episode("purulent arterial wound"))
        assert result.category == WoundCategory.OTHER

    def test_diagnosis_text_does_not_override_wound_type(self, classifier):
        """A pressure ulcer in a diabetic patient stays a pressure ulcer."""
        result = classifier.classify(_episode(
            "Pressure ulcer, sacrum",
            "Diabetic patient, stage 3 sacral pressure injury",
        ))
        assert result.category == WoundCategory.PU
        assert result.matched_terms == ("pressure",)
        assert not result.requires_offloading

    def test_diagnosis_text_alone_does_not_classify(self, classifier):
        result = classifier.classify(_episode("Chronic ulcer", "chronic venous insufficiency"))
        assert result.category == WoundCategory.OTHER
        assert result.evidence_source == ClassificationEvidence.NONE

    def test_requirement_flags(self, classifier):
        dfu = classifier.classify(_episode("diabetic foot ulcer"))
        vlu = classifier.classify(_episode("venous leg ulcer"))
        pu = classifier.classify(_episode("pressure ulcer"))
        assert dfu.requires_offloading and not dfu.requires_compression
        assert vlu.requires_compression and not vlu.requires_offloading
        assert not pu.requires_offloading and not pu.requires_compression

    def test_location_reported(self, classifier):
        result = classifier.classify(_episode("DFU", location="left heel"))
        assert result.wound_location == "left heel"


class TestICD10Classification:
    """Wound-specific ICD-10 codes are checked before keywords."""

    @pytest.fixture
    def classifier(self):
        return WoundClassifier()

    @pytest.mark.parametrize("code,expected", [
        ("E11.621", WoundCategory.DFU),
        ("E10.621", WoundCategory.DFU),
        ("I83.013", WoundCategory.VLU),
        ("I87.311", WoundCategory.VLU),
        ("L89.154", WoundCategory.PU),
    ])
    def test_code_prefixes(self, classifier, code, expected):
        result = classifier.classify(_episode(None, code))
        assert result.category == expected
        assert result.evidence_source == ClassificationEvidence.ICD10
        assert result.icd10_code == code

    def test_code_beats_wound_type_text(self, classifier):
        result = classifier.classify(_episode("diabetic", "L89.154"))
        assert result.category == WoundCategory.PU
        assert result.matched_terms == ("L89",)

    def test_code_with_description(self, classifier):
        result = classifier.classify(
            _episode(None, "E11.621 - Type 2 diabetes mellitus with foot ulcer")
        )
        assert result.category == WoundCategory.DFU
        assert result.icd10_code == "E11.621"

    def test_non_wound_code_falls_back_to_keywords(self, classifier):
        result = classifier.classify(_episode("venous ulcer", "E11.9"))
        assert result.category == WoundCategory.VLU
        assert result.evidence_source == ClassificationEvidence.WOUND_TYPE
        assert result.icd10_code == "E11.9"

    def test_extract_icd10_code(self):
        assert extract_icd10_code("l89.154, sacrum") == "L89.154"
        assert extract_icd10_code("Diabetic foot ulcer") is None
        assert extract_icd10_code("") is None
        assert extract_icd10_code(None) is None


class TestLocationClassification:
    """L97 codes and full-thickness ulcers are placed by anatomical location."""

    @pytest.fixture
    def classifier(self):
        return WoundClassifier()

    @pytest.mark.parametrize("location,expected,term", [
        ("left heel", WoundCategory.DFU, "heel"),
        ("Right great toe", WoundCategory.DFU, "toe"),
        ("plantar foot", WoundCategory.DFU, "foot"),
        ("left lower leg", WoundCategory.VLU, "leg"),
        ("medial ankle", WoundCategory.VLU, "ankle"),
        ("posterior calf", WoundCategory.VLU, "calf"),
    ])
    def test_l97_by_location(self, classifier, location, expected, term):
        result = classifier.classify(_episode(None, "L97.419", location))
        assert result.category == expected
        assert result.evidence_source == ClassificationEvidence.ICD10
        assert result.matched_terms == ("L97", term)
        assert result.icd10_code == "L97.419"

    def test_l97_heel_requires_offloading(self, classifier):
        result = classifier.classify(_episode("chronic ulcer", "L97.4", "right heel"))
        assert result.category == WoundCategory.DFU
        assert result.requires_offloading

    def test_l97_without_location_falls_back_to_wound_type(self, classifier):
        result = classifier.classify(_episode("venous ulcer", "L97.909", None))
        assert result.category == WoundCategory.VLU
        assert result.evidence_source == ClassificationEvidence.WOUND_TYPE

    def test_l97_without_location_or_terms_is_other(self, classifier):
        result = classifier.classify(_episode("chronic ulcer", "L97.909", "sacrum"))
        assert result.category == WoundCategory.OTHER

    def test_full_thickness_by_location(self, classifier):
        result = classifier.classify(_episode("Full-thickness ulceration", None, "left heel"))
        assert result.category == WoundCategory.DFU
        assert result.evidence_source == ClassificationEvidence.WOUND_TYPE
        assert result.matched_terms == ("full-thickness", "heel")

    def test_full_thickness_location_in_wound_type(self, classifier):
        result = classifier.classify(_episode("full thickness wound, lower leg"))
        assert result.category == WoundCategory.VLU

    def test_full_thickness_without_location_is_other(self, classifier):
        result = classifier.classify(_episode("full thickness ulcer", None, "abdomen"))
        assert result.category == WoundCategory.OTHER

    def test_location_ignored_for_plain_wound_types(self, classifier):
        """Location only matters for L97 codes and full-thickness ulcers."""
        result = classifier.classify(_episode("surgical wound", None, "left heel"))
        assert result.category == WoundCategory.OTHER


class TestUnclassified:
    """Wounds without category evidence."""

    def test_other_with_note(self, caplog):
        with caplog.at_level(logging.INFO, logger="wound_src.rules.classifier"):
            result = WoundClassifier().classify(_episode("arterial ulcer"))

        assert result.category == WoundCategory.OTHER
        assert result.evidence_source == ClassificationEvidence.NONE
        assert result.matched_terms == ()
        assert "could not be classified" in result.note
        assert "could not be classified" in caplog.text

    def test_missing_wound_type(self):
        result = WoundClassifier().classify(_episode(None, None))
        assert result.category == WoundCategory.OTHER
