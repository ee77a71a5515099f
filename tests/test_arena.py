"""Tests for the hypothesis arena."""

import pytest

from brenner_loop.core.arena import (
    add_competitor,
    build_comparison_matrix,
    calculate_discriminative_power,
    create_arena,
    create_arena_test,
    eliminate_hypothesis,
    get_active_hypotheses,
    get_eliminated_hypotheses,
    get_leader,
    get_ranked_hypotheses,
    record_test_result,
    resolve_arena,
    score_predictions,
)
from brenner_loop.domain.arena import HypothesisArena, is_arena_hypothesis, is_hypothesis_arena
from brenner_loop.domain.enums import ArenaResult, ArenaStatus, CompetitorSource, PredictionBoldness
from tests.test_hypothesis import _card

A, B, C = "HC-S1-001-v1", "HC-S1-002-v1", "HC-S1-003-v1"


@pytest.fixture
def arena() -> HypothesisArena:
    arena = create_arena("Why does recall drop?", _card(id=A), session_id="S1")
    arena = add_competitor(arena, _card(id=B, statement="Stress hormones impair recall directly"))
    return add_competitor(arena, _card(id=C, statement="Circadian misalignment explains recall loss"), "agent_suggested")


class TestConstruction:
    def test_primary_is_original(self, arena: HypothesisArena) -> None:
        assert arena.id.startswith("ARENA-")
        assert arena.status == ArenaStatus.OPEN
        sources = [c.source for c in arena.competitors]
        assert sources == [CompetitorSource.ORIGINAL, CompetitorSource.USER_ADDED, CompetitorSource.AGENT_SUGGESTED]
        assert all(c.score == 0 for c in arena.competitors)

    def test_duplicate_competitor_rejected(self, arena: HypothesisArena) -> None:
        with pytest.raises(ValueError, match="already in this arena"):
            add_competitor(arena, _card(id=B))

    def test_test_targets_default_to_active(self, arena: HypothesisArena) -> None:
        arena = eliminate_hypothesis(arena, C, "Ruled out by prior work")
        test, updated = create_arena_test(arena, "Cortisol block", "Block cortisol and measure recall")
        assert test.id.startswith("AT-")
        assert test.target_hypotheses == [A, B]
        assert updated.tests == [test]
        assert arena.tests == []

    def test_test_with_unknown_target(self, arena: HypothesisArena) -> None:
        with pytest.raises(ValueError, match="not in this arena"):
            create_arena_test(arena, "x", "y", target_hypotheses=["HC-S1-999-v1"])

    def test_guards(self, arena: HypothesisArena) -> None:
        assert is_hypothesis_arena(arena.model_dump(mode="json"))
        assert is_arena_hypothesis(arena.competitors[0].model_dump(mode="json"))
        assert not is_hypothesis_arena({"question": 1})


class TestScoring:
    def test_support_and_challenge(self, arena: HypothesisArena) -> None:
        test, arena = create_arena_test(arena, "Cortisol block", "Block cortisol")
        arena = record_test_result(arena, test.id, A, "supports")
        arena = record_test_result(arena, test.id, B, "challenges", confidence=0.5)
        arena = record_test_result(arena, test.id, C, ArenaResult.NEUTRAL)
        scores = {c.hypothesis_id: c.score for c in arena.competitors}
        assert scores == {A: 10.0, B: -5.0, C: 0.0}
        assert arena.find_test(test.id).applied_at is not None
        assert arena.competitors[0].test_results[0].id.startswith("TR-")

    def test_boldness_multiplies(self, arena: HypothesisArena) -> None:
        test, arena = create_arena_test(arena, "t", "d")
        arena = record_test_result(arena, test.id, A, "supports", boldness=PredictionBoldness.SURPRISING)
        assert arena.find_competitor(A).score == 30.0

    def test_eliminates_marks_competitor(self, arena: HypothesisArena) -> None:
        test, arena = create_arena_test(arena, "Sleep rescue", "Restore sleep, recall stays low")
        arena = record_test_result(arena, test.id, A, "eliminates")
        loser = arena.find_competitor(A)
        assert loser.eliminated
        assert loser.eliminated_by == test.id
        assert loser.score == -100.0
        assert [c.hypothesis_id for c in get_eliminated_hypotheses(arena)] == [A]
        assert [c.hypothesis_id for c in get_active_hypotheses(arena)] == [B, C]

    def test_rejects_untargeted_competitor(self, arena: HypothesisArena) -> None:
        test, arena = create_arena_test(arena, "t", "d", target_hypotheses=[A])
        with pytest.raises(ValueError, match="does not target"):
            record_test_result(arena, test.id, B, "supports")

    def test_rejects_unknown_test_and_bad_confidence(self, arena: HypothesisArena) -> None:
        test, arena = create_arena_test(arena, "t", "d")
        with pytest.raises(ValueError, match="not found"):
            record_test_result(arena, "AT-missing", A, "supports")
        with pytest.raises(ValueError, match="between 0 and 1"):
            record_test_result(arena, test.id, A, "supports", confidence=1.5)

    def test_input_arena_unchanged(self, arena: HypothesisArena) -> None:
        test, with_test = create_arena_test(arena, "t", "d")
        record_test_result(with_test, test.id, A, "supports")
        assert with_test.find_competitor(A).score == 0


class TestRanking:
    def test_ranked_and_leader(self, arena: HypothesisArena) -> None:
        test, arena = create_arena_test(arena, "t", "d")
        arena = record_test_result(arena, test.id, B, "supports")
        arena = record_test_result(arena, test.id, C, "eliminates")
        ranked = [c.hypothesis_id for c in get_ranked_hypotheses(arena)]
        assert ranked == [B, A]
        assert get_leader(arena).hypothesis_id == B

    def test_ties_keep_insertion_order(self, arena: HypothesisArena) -> None:
        assert [c.hypothesis_id for c in get_ranked_hypotheses(arena)] == [A, B, C]

    def test_no_leader_when_all_eliminated(self, arena: HypothesisArena) -> None:
        for hid in (A, B, C):
            arena = eliminate_hypothesis(arena, hid, "gone")
        assert get_leader(arena) is None


class TestResolution:
    def test_resolve(self, arena: HypothesisArena) -> None:
        resolved = resolve_arena(arena, B, "Only survivor of the cortisol block")
        assert resolved.status == ArenaStatus.RESOLVED
        assert resolved.winner_id == B
        assert resolved.resolved_at is not None

    def test_eliminated_cannot_win(self, arena: HypothesisArena) -> None:
        arena = eliminate_hypothesis(arena, A, "gone")
        with pytest.raises(ValueError, match="cannot win"):
            resolve_arena(arena, A, "nope")

    def test_resolved_arena_is_closed(self, arena: HypothesisArena) -> None:
        test, arena = create_arena_test(arena, "t", "d")
        resolved = resolve_arena(arena, A, "done")
        with pytest.raises(ValueError, match="already resolved"):
            record_test_result(resolved, test.id, A, "supports")
        with pytest.raises(ValueError, match="already resolved"):
            add_competitor(resolved, _card(id="HC-S1-004-v1"))


class TestAnalysis:
    def test_discriminative_power(self, arena: HypothesisArena) -> None:
        split, arena = create_arena_test(arena, "split", "d")
        same, arena = create_arena_test(arena, "same", "d")
        arena = record_test_result(arena, split.id, A, "supports")
        arena = record_test_result(arena, split.id, B, "challenges")
        arena = record_test_result(arena, same.id, A, "supports")
        arena = record_test_result(arena, same.id, B, "supports")
        assert calculate_discriminative_power(arena) == 50.0

    def test_discriminative_power_without_results(self, arena: HypothesisArena) -> None:
        assert calculate_discriminative_power(arena) == 0.0

    def test_discriminative_power_ignores_repeat_results_from_one_competitor(
        self, arena: HypothesisArena
    ) -> None:
        test, arena = create_arena_test(arena, "t", "d")
        arena = record_test_result(arena, test.id, A, "supports")
        arena = record_test_result(arena, test.id, A, "challenges")
        assert calculate_discriminative_power(arena) == 0.0

    def test_discriminative_power_uses_latest_result(self, arena: HypothesisArena) -> None:
        test, arena = create_arena_test(arena, "t", "d")
        arena = record_test_result(arena, test.id, A, "challenges")
        arena = record_test_result(arena, test.id, A, "supports")
        arena = record_test_result(arena, test.id, B, "supports")
        assert calculate_discriminative_power(arena) == 0.0

    def test_comparison_matrix(self, arena: HypothesisArena) -> None:
        test, arena = create_arena_test(arena, "t", "d")
        arena = record_test_result(arena, test.id, A, "supports")
        matrix = build_comparison_matrix(arena)
        cells = {row.hypothesis_id: row.test_results[test.id] for row in matrix.rows}
        assert cells == {A: ArenaResult.SUPPORTS, B: None, C: None}
        assert matrix.tests[0].id == test.id

    def test_score_predictions(self, arena: HypothesisArena) -> None:
        arena = add_competitor(
            arena,
            _card(id="HC-S1-005-v1", predictions_if_true=["Recall drops by 20%", "Something changes"]),
        )
        scores = score_predictions(arena, "HC-S1-005-v1")
        assert [s.boldness for s in scores] == [PredictionBoldness.PRECISE, PredictionBoldness.VAGUE]
        assert [s.potential_score for s in scores] == [20.0, 5.0]
