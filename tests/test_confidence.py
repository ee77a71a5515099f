"""Tests for the confidence engine."""

import pytest

from brenner_loop.core.confidence import (
    BatchEvidenceItem,
    ConfidenceConfig,
    analyze_what_if,
    assess_prediction_boldness,
    calculate_score_delta,
    compute_batch_confidence_update,
    compute_confidence_update,
    format_confidence,
    format_delta,
    get_confidence_assessment,
    get_star_rating,
)
from brenner_loop.domain.enums import EvidenceResult, PredictionBoldness
from brenner_loop.domain.evidence import TestInput


def _power(n: int) -> TestInput:
    return TestInput(discriminative_power=n)


class TestComputeConfidenceUpdate:
    def test_decisive_support_from_sixty(self) -> None:
        update = compute_confidence_update(60, _power(5), "supports")
        assert update.new_confidence == 70.0
        assert update.delta == 10.0
        assert update.significant

    def test_decisive_challenge_from_sixty(self) -> None:
        update = compute_confidence_update(60, _power(5), EvidenceResult.CHALLENGES)
        assert update.new_confidence == 50.0
        assert update.delta == -10.0
        assert "major blow" in update.explanation

    def test_power_scales_delta(self) -> None:
        assert compute_confidence_update(50, _power(1), "supports").delta == pytest.approx(2.0)
        assert compute_confidence_update(50, _power(3), "supports").delta == pytest.approx(6.0)

    def test_boldness_scales_delta(self) -> None:
        vague = compute_confidence_update(50, _power(5), "supports", PredictionBoldness.VAGUE)
        surprising = compute_confidence_update(50, _power(5), "supports", "surprising")
        assert vague.delta == pytest.approx(5.0)
        assert surprising.delta == pytest.approx(30.0)

    def test_elimination_is_ten_times_a_challenge(self) -> None:
        assert calculate_score_delta("eliminates") == 10 * calculate_score_delta("challenges")
        assert abs(calculate_score_delta("challenges")) >= calculate_score_delta("supports")

    def test_elimination_clamps_to_zero(self) -> None:
        update = compute_confidence_update(60, _power(5), "eliminates")
        assert update.new_confidence == 0.0
        assert update.delta == -60.0
        assert "ruled out" in update.explanation

    def test_support_clamps_to_hundred(self) -> None:
        update = compute_confidence_update(95, _power(5), "supports", "surprising")
        assert update.new_confidence == 100.0
        assert update.delta == 5.0

    def test_inconclusive_leaves_confidence(self) -> None:
        update = compute_confidence_update(42, _power(5), "inconclusive")
        assert update.new_confidence == 42
        assert update.delta == 0.0
        assert not update.significant
        assert "unchanged at 42.0%" in update.explanation

    def test_significance_uses_config_threshold(self) -> None:
        strict = ConfidenceConfig(significance_threshold=20.0)
        assert not compute_confidence_update(50, _power(5), "supports", config=strict).significant

    def test_custom_bounds(self) -> None:
        cfg = ConfidenceConfig(min_confidence=5.0, max_confidence=95.0)
        assert compute_confidence_update(10, _power(5), "eliminates", config=cfg).new_confidence == 5.0

    @pytest.mark.parametrize("bad", [-1, 100.5, float("nan"), float("inf")])
    def test_rejects_bad_current_confidence(self, bad: float) -> None:
        with pytest.raises(ValueError, match="current_confidence"):
            compute_confidence_update(bad, _power(3), "supports")

    def test_rejects_bad_power(self) -> None:
        with pytest.raises(ValueError, match="discriminative_power"):
            compute_confidence_update(50, _power(0), "supports")

    def test_rejects_unknown_result(self) -> None:
        with pytest.raises(ValueError, match="Unknown result"):
            compute_confidence_update(50, _power(3), "proves")

    def test_is_deterministic(self) -> None:
        a = compute_confidence_update(33.3, _power(4), "challenges", "precise")
        b = compute_confidence_update(33.3, _power(4), "challenges", "precise")
        assert a == b


class TestBatch:
    def test_applies_in_order(self) -> None:
        batch = compute_batch_confidence_update(
            60,
            [
                BatchEvidenceItem(test=_power(5), result=EvidenceResult.SUPPORTS),
                (_power(5), "challenges"),
                (_power(5), "inconclusive", "vague"),
            ],
        )
        assert [u.new_confidence for u in batch.updates] == [70.0, 60.0, 60.0]
        assert batch.final_confidence == 60.0
        assert batch.total_delta == 0.0
        assert batch.summary.supports == 1
        assert batch.summary.challenges == 1
        assert batch.summary.inconclusive == 1
        assert batch.summary.significant_changes == 2

    def test_empty_batch(self) -> None:
        batch = compute_batch_confidence_update(40, [])
        assert batch.final_confidence == 40
        assert batch.updates == []


class TestWhatIf:
    def test_projects_every_result(self) -> None:
        analysis = analyze_what_if(60, _power(5))
        assert analysis.if_supports.new_confidence == 70.0
        assert analysis.if_challenges.new_confidence == 50.0
        assert analysis.if_eliminates.new_confidence == 0.0
        assert analysis.if_inconclusive.new_confidence == 60.0
        assert analysis.max_impact == 60.0
        assert analysis.information_value == 70.0


class TestBoldness:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("Contrary to intuition, recall improves", PredictionBoldness.SURPRISING),
            ("Recall drops by 20%", PredictionBoldness.PRECISE),
            ("Onset occurs within 3 days", PredictionBoldness.PRECISE),
            ("Recall decreases after deprivation", PredictionBoldness.SPECIFIC),
            ("Something happens to memory", PredictionBoldness.VAGUE),
        ],
    )
    def test_tiers(self, text: str, expected: PredictionBoldness) -> None:
        assert assess_prediction_boldness(text) == expected


class TestDisplay:
    def test_format_delta(self) -> None:
        assert format_delta(0) == "±0%"
        assert format_delta(10) == "↑ +10.0%"
        assert format_delta(-2.5) == "↓ -2.5%"

    def test_format_confidence(self) -> None:
        assert format_confidence(70.0) == "70%"
        assert format_confidence(33.33) == "33.3%"

    def test_assessment_bands(self) -> None:
        assert get_confidence_assessment(85).label == "High"
        assert get_confidence_assessment(45).label == "Moderate"
        assert get_confidence_assessment(5).label == "Very Low"

    def test_star_rating(self) -> None:
        assert get_star_rating(5) == "★★★★★"
        with pytest.raises(ValueError):
            get_star_rating(6)
