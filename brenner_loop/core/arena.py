"""Arena operations — competition, scoring, elimination and resolution.

Scoring:
    score_delta = calculate_score_delta(result, boldness) * confidence

    ``confidence`` (0-1, default 1.0) is how sure the recorder is of the
    reading.  Competitors start at 0.  An ``eliminates`` result also marks
    the competitor eliminated, with the test id as ``eliminated_by``.

All functions return a new arena; the input arena is unchanged.
"""

from __future__ import annotations

import logging
from typing import Optional

from brenner_loop.core.confidence import assess_prediction_boldness, calculate_score_delta
from brenner_loop.domain.arena import (
    ArenaHypothesis,
    ArenaTest,
    ArenaTestResult,
    ComparisonMatrix,
    ComparisonRow,
    HypothesisArena,
    PredictionScore,
)
from brenner_loop.domain.enums import (
    ArenaResult,
    ArenaStatus,
    CompetitorSource,
    EvidenceResult,
    PredictionBoldness,
)
from brenner_loop.domain.hypothesis import HypothesisCard
from brenner_loop.foundation.clock import utc_now

logger = logging.getLogger(__name__)


def _require_open(arena: HypothesisArena) -> None:
    if arena.status == ArenaStatus.RESOLVED:
        raise ValueError(f"Arena {arena.id} is already resolved")


def _require_competitor(arena: HypothesisArena, hypothesis_id: str) -> ArenaHypothesis:
    competitor = arena.find_competitor(hypothesis_id)
    if competitor is None:
        raise ValueError(f"Hypothesis {hypothesis_id} is not in this arena")
    return competitor


def _replace_competitor(
    arena: HypothesisArena,
    updated: ArenaHypothesis,
    **arena_updates: object,
) -> HypothesisArena:
    competitors = [updated if c.hypothesis_id == updated.hypothesis_id else c for c in arena.competitors]
    return arena.model_copy(update={"competitors": competitors, "updated_at": utc_now(), **arena_updates})


# ── Construction ─────────────────────────────────────────────────────────────

def create_arena_hypothesis(
    hypothesis: HypothesisCard,
    source: CompetitorSource | str = CompetitorSource.ORIGINAL,
) -> ArenaHypothesis:
    return ArenaHypothesis(
        hypothesis_id=hypothesis.id,
        hypothesis=hypothesis,
        score=0.0,
        source=CompetitorSource(source),
        added_at=utc_now(),
    )


def create_arena(
    question: str,
    primary_hypothesis: HypothesisCard,
    session_id: Optional[str] = None,
) -> HypothesisArena:
    """Open an arena seeded with *primary_hypothesis* as the original competitor."""
    now = utc_now()
    arena = HypothesisArena(
        question=question,
        session_id=session_id,
        competitors=[create_arena_hypothesis(primary_hypothesis, CompetitorSource.ORIGINAL)],
        created_at=now,
        updated_at=now,
    )
    logger.debug("Created arena %s for %s", arena.id, primary_hypothesis.id)
    return arena


def add_competitor(
    arena: HypothesisArena,
    hypothesis: HypothesisCard,
    source: CompetitorSource | str = CompetitorSource.USER_ADDED,
) -> HypothesisArena:
    """Raises ``ValueError`` if the hypothesis is already competing."""
    _require_open(arena)
    if arena.find_competitor(hypothesis.id) is not None:
        raise ValueError(f"Hypothesis {hypothesis.id} is already in this arena")
    return arena.model_copy(update={
        "competitors": [*arena.competitors, create_arena_hypothesis(hypothesis, source)],
        "updated_at": utc_now(),
    })


def create_arena_test(
    arena: HypothesisArena,
    name: str,
    description: str,
    target_hypotheses: Optional[list[str]] = None,
) -> tuple[ArenaTest, HypothesisArena]:
    """Register a shared test; targets default to every active competitor."""
    _require_open(arena)
    targets = (
        list(target_hypotheses)
        if target_hypotheses is not None
        else [c.hypothesis_id for c in get_active_hypotheses(arena)]
    )
    for hypothesis_id in targets:
        _require_competitor(arena, hypothesis_id)

    test = ArenaTest(name=name, description=description, target_hypotheses=targets, created_at=utc_now())
    updated = arena.model_copy(update={"tests": [*arena.tests, test], "updated_at": utc_now()})
    return test, updated


# ── Recording & elimination ──────────────────────────────────────────────────

def record_test_result(
    arena: HypothesisArena,
    test_id: str,
    hypothesis_id: str,
    result: ArenaResult | str,
    confidence: float = 1.0,
    boldness: PredictionBoldness | str = PredictionBoldness.SPECIFIC,
    notes: Optional[str] = None,
) -> HypothesisArena:
    """Score one competitor against one shared test.

    Raises:
        ValueError: Resolved arena, unknown test, unknown competitor, a
            competitor the test does not target, or confidence outside 0-1.
    """
    _require_open(arena)
    test = arena.find_test(test_id)
    if test is None:
        raise ValueError(f"Test {test_id} not found in arena")
    competitor = _require_competitor(arena, hypothesis_id)
    if hypothesis_id not in test.target_hypotheses:
        raise ValueError(f"Test {test_id} does not target hypothesis {hypothesis_id}")
    if not 0.0 <= confidence <= 1.0:
        raise ValueError(f"Confidence must be between 0 and 1 (got {confidence})")

    result = ArenaResult(result)
    boldness = PredictionBoldness(boldness)
    now = utc_now()
    score_delta = calculate_score_delta(result, boldness) * confidence

    entry = ArenaTestResult(
        test_id=test_id,
        hypothesis_id=hypothesis_id,
        result=result,
        boldness=boldness,
        confidence=confidence,
        score_delta=score_delta,
        notes=notes,
        recorded_at=now,
    )
    updates: dict[str, object] = {
        "score": competitor.score + score_delta,
        "test_results": [*competitor.test_results, entry],
    }
    if result == ArenaResult.ELIMINATES and not competitor.eliminated:
        updates.update(
            eliminated=True,
            eliminated_at=now,
            eliminated_by=test_id,
            elimination_reason=notes or f"Eliminated by test: {test.name}",
        )

    tests = [
        t.model_copy(update={"applied_at": now}) if t.id == test_id and t.applied_at is None else t
        for t in arena.tests
    ]
    logger.debug("Arena %s: %s %s on %s (%+.1f)", arena.id, hypothesis_id, result.value, test_id, score_delta)
    return _replace_competitor(arena, competitor.model_copy(update=updates), tests=tests)


def eliminate_hypothesis(
    arena: HypothesisArena,
    hypothesis_id: str,
    reason: str,
    eliminated_by: Optional[str] = None,
) -> HypothesisArena:
    """Mark a competitor eliminated without a test result."""
    _require_open(arena)
    competitor = _require_competitor(arena, hypothesis_id)
    if competitor.eliminated:
        raise ValueError(f"Hypothesis {hypothesis_id} is already eliminated")
    updated = competitor.model_copy(update={
        "eliminated": True,
        "eliminated_at": utc_now(),
        "eliminated_by": eliminated_by,
        "elimination_reason": reason,
    })
    logger.debug("Arena %s: eliminated %s (%s)", arena.id, hypothesis_id, reason)
    return _replace_competitor(arena, updated)


def resolve_arena(arena: HypothesisArena, winner_id: str, reason: str) -> HypothesisArena:
    """Close the arena with a present, non-eliminated winner."""
    _require_open(arena)
    winner = _require_competitor(arena, winner_id)
    if winner.eliminated:
        raise ValueError(f"Hypothesis {winner_id} has been eliminated and cannot win")
    now = utc_now()
    logger.info("Arena %s resolved: winner %s", arena.id, winner_id)
    return arena.model_copy(update={
        "status": ArenaStatus.RESOLVED,
        "winner_id": winner_id,
        "resolution_reason": reason,
        "resolved_at": now,
        "updated_at": now,
    })


# ── Views ────────────────────────────────────────────────────────────────────

def get_active_hypotheses(arena: HypothesisArena) -> list[ArenaHypothesis]:
    return [c for c in arena.competitors if not c.eliminated]


def get_eliminated_hypotheses(arena: HypothesisArena) -> list[ArenaHypothesis]:
    return [c for c in arena.competitors if c.eliminated]


def get_ranked_hypotheses(arena: HypothesisArena) -> list[ArenaHypothesis]:
    """Active competitors by score, highest first; ties keep insertion order."""
    return sorted(get_active_hypotheses(arena), key=lambda c: -c.score)


def get_leader(arena: HypothesisArena) -> Optional[ArenaHypothesis]:
    ranked = get_ranked_hypotheses(arena)
    return ranked[0] if ranked else None


def calculate_discriminative_power(arena: HypothesisArena) -> float:
    """Percentage of multi-result tests that split the competitors.

    A test counts once it has results for at least two competitors; it
    discriminates when their latest results are not all the same.
    """
    latest_by_test: dict[str, dict[str, ArenaResult]] = {}
    for competitor in arena.competitors:
        for entry in competitor.test_results:
            latest_by_test.setdefault(entry.test_id, {})[competitor.hypothesis_id] = entry.result

    comparable = [by_competitor for by_competitor in latest_by_test.values() if len(by_competitor) >= 2]
    if not comparable:
        return 0.0
    discriminating = sum(1 for by_competitor in comparable if len(set(by_competitor.values())) > 1)
    return 100.0 * discriminating / len(comparable)


def build_comparison_matrix(arena: HypothesisArena) -> ComparisonMatrix:
    """One row per competitor; each maps test id to its latest result."""
    rows: list[ComparisonRow] = []
    for competitor in arena.competitors:
        cells: dict[str, Optional[ArenaResult]] = {t.id: None for t in arena.tests}
        for entry in competitor.test_results:
            cells[entry.test_id] = entry.result
        rows.append(ComparisonRow(
            hypothesis_id=competitor.hypothesis_id,
            statement=competitor.hypothesis.statement,
            score=competitor.score,
            eliminated=competitor.eliminated,
            test_results=cells,
        ))
    return ComparisonMatrix(tests=list(arena.tests), rows=rows)


def score_predictions(arena: HypothesisArena, hypothesis_id: str) -> list[PredictionScore]:
    """Boldness and best-case score of each of a competitor's predictions."""
    competitor = _require_competitor(arena, hypothesis_id)
    scores: list[PredictionScore] = []
    for prediction in competitor.hypothesis.predictions_if_true:
        boldness = assess_prediction_boldness(prediction)
        scores.append(PredictionScore(
            prediction=prediction,
            boldness=boldness,
            potential_score=calculate_score_delta(EvidenceResult.SUPPORTS, boldness),
        ))
    return scores
