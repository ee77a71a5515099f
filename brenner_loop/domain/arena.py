"""Arena domain — competing hypotheses scored against shared tests.

An arena holds several hypotheses that try to answer the same research
question.  Tests are shared: one discriminating test can be applied to
every targeted competitor and its result scored per competitor.

Rules:
    - No duplicate hypothesis id among competitors.
    - An eliminated competitor stays in the list with its elimination
      metadata, for audit.
    - Once resolved, an arena accepts no further results.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

from brenner_loop.domain.enums import ArenaResult, ArenaStatus, CompetitorSource, PredictionBoldness
from brenner_loop.domain.hypothesis import HypothesisCard
from brenner_loop.foundation.clock import UtcDatetime, utc_now
from brenner_loop.foundation.identifiers import prefixed_uuid
from brenner_loop.foundation.validation import parse_record


def generate_arena_id(prefix: str = "ARENA") -> str:
    return prefixed_uuid(prefix)


def generate_arena_test_id() -> str:
    return prefixed_uuid("AT")


def generate_test_result_id() -> str:
    return prefixed_uuid("TR")


class ArenaTestResult(BaseModel):
    id: str = Field(default_factory=generate_test_result_id)
    test_id: str
    hypothesis_id: str
    result: ArenaResult
    boldness: PredictionBoldness = PredictionBoldness.SPECIFIC
    confidence: float = Field(default=1.0, ge=0.0, le=1.0, description="Certainty in the reading, 0-1")
    score_delta: float
    notes: Optional[str] = None
    recorded_at: UtcDatetime = Field(default_factory=utc_now)

    model_config = {"frozen": True}


class ArenaHypothesis(BaseModel):
    """A competitor: one hypothesis plus its running score."""

    hypothesis_id: str
    hypothesis: HypothesisCard
    score: float = 0.0
    source: CompetitorSource = CompetitorSource.ORIGINAL
    added_at: UtcDatetime = Field(default_factory=utc_now)

    eliminated: bool = False
    eliminated_at: Optional[UtcDatetime] = None
    eliminated_by: Optional[str] = None
    elimination_reason: Optional[str] = None

    test_results: list[ArenaTestResult] = Field(default_factory=list)

    model_config = {"frozen": True}


class ArenaTest(BaseModel):
    __test__ = False  # not a pytest class

    id: str = Field(default_factory=generate_arena_test_id)
    name: str
    description: str
    target_hypotheses: list[str]
    created_at: UtcDatetime = Field(default_factory=utc_now)
    applied_at: Optional[UtcDatetime] = None

    model_config = {"frozen": True}


class HypothesisArena(BaseModel):
    id: str = Field(default_factory=generate_arena_id)
    question: str
    session_id: Optional[str] = None
    competitors: list[ArenaHypothesis] = Field(default_factory=list)
    tests: list[ArenaTest] = Field(default_factory=list)
    status: ArenaStatus = ArenaStatus.OPEN
    winner_id: Optional[str] = None
    resolution_reason: Optional[str] = None
    created_at: UtcDatetime = Field(default_factory=utc_now)
    updated_at: UtcDatetime = Field(default_factory=utc_now)
    resolved_at: Optional[UtcDatetime] = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _unique_competitors(self) -> HypothesisArena:
        ids = [c.hypothesis_id for c in self.competitors]
        if len(ids) != len(set(ids)):
            raise ValueError("Duplicate hypothesis id among arena competitors")
        return self

    def find_competitor(self, hypothesis_id: str) -> Optional[ArenaHypothesis]:
        return next((c for c in self.competitors if c.hypothesis_id == hypothesis_id), None)

    def find_test(self, test_id: str) -> Optional[ArenaTest]:
        return next((t for t in self.tests if t.id == test_id), None)


class ComparisonRow(BaseModel):
    hypothesis_id: str
    statement: str
    score: float
    eliminated: bool
    test_results: dict[str, Optional[ArenaResult]]

    model_config = {"frozen": True}


class ComparisonMatrix(BaseModel):
    """Test id x hypothesis id -> result, as consumed by comparison tables."""

    tests: list[ArenaTest]
    rows: list[ComparisonRow]

    model_config = {"frozen": True}


class PredictionScore(BaseModel):
    prediction: str
    boldness: PredictionBoldness
    potential_score: float

    model_config = {"frozen": True}


def is_hypothesis_arena(obj: Any) -> bool:
    parsed, _ = parse_record(HypothesisArena, obj)
    return parsed is not None


def is_arena_hypothesis(obj: Any) -> bool:
    parsed, _ = parse_record(ArenaHypothesis, obj)
    return parsed is not None
