"""Tests for EvidenceEntry validation, creation and recording."""

import pytest

from brenner_loop.core.recording import record_test_outcome
from brenner_loop.domain.enums import EvidenceResult, TestType
from brenner_loop.domain.evidence import (
    EvidenceEntry,
    calculate_confidence_delta,
    create_evidence_entry,
    generate_evidence_id,
    is_evidence_entry,
    is_test_description,
    summarize_evidence_result,
    validate_evidence_entry,
)
from brenner_loop.foundation.validation import InvalidRecordError
from tests.test_hypothesis import _card


def _test(**overrides) -> dict:
    base = {
        "id": "T1",
        "description": "Compare recall after full sleep and after deprivation",
        "type": "controlled_study",
        "discriminative_power": 4,
    }
    base.update(overrides)
    return base


def _valid_entry(**overrides) -> dict:
    base = {
        "id": "EV-S1-001",
        "session_id": "S1",
        "hypothesis_version": "HC-S1-001-v1",
        "test": _test(),
        "prediction_if_true": "Recall drops by at least 20%",
        "prediction_if_false": "Recall is unchanged",
        "result": "supports",
        "observation": "Recall dropped 27% in the deprived group",
        "source": "Lab notebook p.12",
        "confidence_before": 50,
        "confidence_after": 58,
        "interpretation": "Prediction confirmed at the expected magnitude",
    }
    base.update(overrides)
    return base


def _entry(**overrides) -> EvidenceEntry:
    return create_evidence_entry(**_valid_entry(**overrides))


class TestValidateEvidenceEntry:
    def test_valid_entry(self) -> None:
        result = validate_evidence_entry(_valid_entry())
        assert result.valid
        assert result.warnings == []

    def test_missing_predictions(self) -> None:
        result = validate_evidence_entry(_valid_entry(prediction_if_true="", prediction_if_false=" "))
        fields = {e.field for e in result.errors}
        assert {"prediction_if_true", "prediction_if_false"} <= fields

    def test_bad_power_is_test_invalid(self) -> None:
        result = validate_evidence_entry(_valid_entry(test=_test(discriminative_power=6)))
        assert not result.valid
        assert result.errors[0].code == "TEST_INVALID"
        assert result.errors[0].field == "test.discriminative_power"

    def test_unknown_result_is_structural(self) -> None:
        result = validate_evidence_entry(_valid_entry(result="proves"))
        assert not result.valid
        assert result.errors[0].field == "result"

    def test_out_of_range_confidence(self) -> None:
        result = validate_evidence_entry(_valid_entry(confidence_after=101))
        assert [e.code for e in result.errors] == ["INVALID_RANGE"]

    def test_non_finite_confidence(self) -> None:
        result = validate_evidence_entry(_valid_entry(confidence_before=float("nan")))
        assert "INVALID_TYPE" in {e.code for e in result.errors}

    def test_hygiene_warnings(self) -> None:
        raw = _valid_entry(test=_test(discriminative_power=2), source=None, confidence_after=50.5)
        result = validate_evidence_entry(raw)
        assert result.valid
        codes = {w.code for w in result.warnings}
        assert codes == {"LOW_DISCRIMINATIVE_POWER", "NO_SOURCE", "SMALL_CONFIDENCE_CHANGE"}


class TestCreateEvidenceEntry:
    def test_creates_with_timestamp(self) -> None:
        entry = _entry()
        assert entry.test.type == TestType.CONTROLLED_STUDY
        assert entry.result == EvidenceResult.SUPPORTS
        assert entry.recorded_at.tzinfo is not None

    def test_invalid_raises(self) -> None:
        with pytest.raises(InvalidRecordError, match="Invalid EvidenceEntry"):
            _entry(observation="")

    def test_round_trips_through_json(self) -> None:
        entry = _entry()
        restored = EvidenceEntry.model_validate_json(entry.model_dump_json())
        assert restored == entry
        assert is_evidence_entry(entry.model_dump(mode="json"))


class TestEvidenceUtilities:
    def test_generate_id(self) -> None:
        assert generate_evidence_id("S1", 12) == "EV-S1-012"

    def test_generate_id_rejects_bad_input(self) -> None:
        with pytest.raises(ValueError, match="Invalid sequence"):
            generate_evidence_id("S1", 1000)

    def test_delta_and_summary(self) -> None:
        entry = _entry(confidence_before=60, confidence_after=70)
        assert calculate_confidence_delta(entry) == 10
        assert summarize_evidence_result(entry) == "Supports hypothesis (+10% confidence)"

    def test_negative_summary(self) -> None:
        entry = _entry(result="challenges", confidence_before=60, confidence_after=52)
        assert summarize_evidence_result(entry) == "Challenges hypothesis (-8% confidence)"

    def test_guards(self) -> None:
        assert is_test_description(_test())
        assert not is_test_description(_test(discriminative_power=0))
        assert not is_evidence_entry(_valid_entry(confidence_before=-5))
        assert not is_evidence_entry(["not", "a", "dict"])


class TestRecordTestOutcome:
    def test_builds_entry_from_engine(self) -> None:
        card = _card(confidence=60)
        entry, update = record_test_outcome(
            card,
            session_id="S1",
            sequence=3,
            test=_test(discriminative_power=5),
            result="supports",
            prediction_if_true="Recall drops",
            prediction_if_false="Recall is unchanged",
            observation="Recall dropped",
            source="notebook",
        )
        assert entry.id == "EV-S1-003"
        assert entry.hypothesis_version == card.id
        assert entry.confidence_before == 60
        assert entry.confidence_after == update.new_confidence == 70
        assert entry.interpretation == update.explanation

    def test_explicit_interpretation_kept(self) -> None:
        entry, _ = record_test_outcome(
            _card(),
            session_id="S1",
            sequence=1,
            test=_test(),
            result="challenges",
            prediction_if_true="Recall drops",
            prediction_if_false="Recall is unchanged",
            observation="No change",
            interpretation="Prediction failed",
        )
        assert entry.interpretation == "Prediction failed"
        assert entry.confidence_after < entry.confidence_before

    def test_bad_session_id_raises(self) -> None:
        with pytest.raises(ValueError, match="Invalid sessionId"):
            record_test_outcome(
                _card(),
                session_id="bad id",
                sequence=1,
                test=_test(),
                result="supports",
                prediction_if_true="a",
                prediction_if_false="b",
                observation="c",
            )
