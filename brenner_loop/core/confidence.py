"""Confidence engine — asymmetric, deterministic confidence updates.

Design principles:
    1. Pure functions: no side effects, no state, no I/O.
    2. The numbers are a didactic heuristic, not a calibrated posterior.
    3. All thresholds are explicit and configurable.

Update formula:
    raw_delta = BASE_SCORE_DELTAS[result]
              * BOLDNESS_MULTIPLIERS[boldness]
              * discriminative_power / 5

    new_confidence = clamp(current + raw_delta, min_confidence, max_confidence)
    delta          = new_confidence - current

    Base deltas are fixed per result:
    - supports:      +10
    - challenges:    -10
    - eliminates:   -100
    - inconclusive:    0  (neutral in the arena)

    At equal power and boldness a disconfirming result is never weaker
    than a confirming one, and an eliminating result is ten times either.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional, Union

from pydantic import BaseModel

from brenner_loop.config import settings
from brenner_loop.domain.enums import ArenaResult, EvidenceResult, PredictionBoldness
from brenner_loop.domain.evidence import TestInput, is_valid_discriminative_power

logger = logging.getLogger(__name__)

ResultLike = Union[EvidenceResult, ArenaResult, str]

# Keyed by serialized value; str-Enum members hash by name, not value.
BASE_SCORE_DELTAS: dict[str, float] = {
    "supports": 10.0,
    "challenges": -10.0,
    "eliminates": -100.0,
    "inconclusive": 0.0,
    "neutral": 0.0,
}

BOLDNESS_MULTIPLIERS: dict[str, float] = {
    "vague": 0.5,
    "specific": 1.0,
    "precise": 2.0,
    "surprising": 3.0,
}

STAR_RATINGS: dict[int, str] = {
    1: "☆☆☆☆☆",
    2: "★☆☆☆☆",
    3: "★★☆☆☆",
    4: "★★★☆☆",
    5: "★★★★★",
}

POWER_LABELS: dict[int, str] = {
    1: "weak",
    2: "moderate-low",
    3: "moderate",
    4: "high",
    5: "decisive",
}

# ── Boldness heuristics ──────────────────────────────────────────────────────

_SURPRISING_PATTERNS = (
    re.compile(r"\bcontrary to\b", re.IGNORECASE),
    re.compile(r"\bunexpected(ly)?\b", re.IGNORECASE),
    re.compile(r"\bsurprising(ly)?\b", re.IGNORECASE),
    re.compile(r"\bcounter-?intuitive(ly)?\b", re.IGNORECASE),
    re.compile(r"\bdespite\b", re.IGNORECASE),
    re.compile(r"\beven though\b", re.IGNORECASE),
)

_PRECISE_PATTERNS = (
    re.compile(r"\d+(\.\d+)?\s*%"),
    re.compile(r"\d+(\.\d+)?\s*(percent|fold|x)\b", re.IGNORECASE),
    re.compile(r"\d+(\.\d+)?\s*(mg|g|kg|ml|l|mm|cm|m|km|ms|s|sec|min|h|hours?|days?|weeks?|years?)\b", re.IGNORECASE),
)

_SPECIFIC_PATTERNS = (
    re.compile(
        r"\b(increase[sd]?|decrease[sd]?|reduce[sd]?|raise[sd]?|lower(s|ed)?|rise[sn]?|"
        r"fall(s|en)?|drop(s|ped)?|grow(s|n)?|shrink(s)?|higher|lower|more|less|fewer|"
        r"greater|smaller|faster|slower|before|after|precede[sd]?|follow(s|ed)?)\b",
        re.IGNORECASE,
    ),
)


def assess_prediction_boldness(text: str) -> PredictionBoldness:
    """Classify a free-text prediction into one of four boldness tiers.

    Checked in order, boldest first: contrastive phrasing is surprising,
    numeric quantities are precise, directional claims are specific and
    anything else is vague.
    """
    if any(p.search(text) for p in _SURPRISING_PATTERNS):
        return PredictionBoldness.SURPRISING
    if any(p.search(text) for p in _PRECISE_PATTERNS):
        return PredictionBoldness.PRECISE
    if any(p.search(text) for p in _SPECIFIC_PATTERNS):
        return PredictionBoldness.SPECIFIC
    return PredictionBoldness.VAGUE


# ── Configuration & results ──────────────────────────────────────────────────

@dataclass(frozen=True)
class ConfidenceConfig:
    """Bounds and significance threshold for confidence updates."""

    min_confidence: float = 0.0
    max_confidence: float = 100.0
    # Absolute applied change at or above which an update is "significant"
    significance_threshold: float = field(default_factory=lambda: settings.significance_threshold)


class ConfidenceUpdate(BaseModel):
    new_confidence: float
    delta: float
    explanation: str
    significant: bool

    model_config = {"frozen": True}


class BatchEvidenceItem(BaseModel):
    test: TestInput
    result: EvidenceResult
    boldness: PredictionBoldness = PredictionBoldness.SPECIFIC

    model_config = {"frozen": True}


class BatchSummary(BaseModel):
    supports: int = 0
    challenges: int = 0
    eliminates: int = 0
    inconclusive: int = 0
    significant_changes: int = 0

    model_config = {"frozen": True}


class BatchConfidenceUpdate(BaseModel):
    initial_confidence: float
    final_confidence: float
    total_delta: float
    updates: list[ConfidenceUpdate]
    summary: BatchSummary

    model_config = {"frozen": True}


class WhatIfAnalysis(BaseModel):
    """Projected outcome of a test for every possible result."""

    current_confidence: float
    if_supports: ConfidenceUpdate
    if_challenges: ConfidenceUpdate
    if_eliminates: ConfidenceUpdate
    if_inconclusive: ConfidenceUpdate
    max_impact: float
    information_value: float

    model_config = {"frozen": True}


class ConfidenceAssessment(BaseModel):
    label: str
    color: str
    description: str

    model_config = {"frozen": True}


# ── Core algorithm ───────────────────────────────────────────────────────────

def _value(member: Union[Enum, str]) -> str:
    return member.value if isinstance(member, Enum) else str(member)


def calculate_score_delta(
    result: ResultLike,
    boldness: Union[PredictionBoldness, str] = PredictionBoldness.SPECIFIC,
) -> float:
    """Fixed base delta for *result* scaled by the boldness multiplier.

    Raises:
        ValueError: For an unknown result or boldness.
    """
    key, tier = _value(result), _value(boldness)
    if key not in BASE_SCORE_DELTAS:
        raise ValueError(f"Unknown result: {key}")
    if tier not in BOLDNESS_MULTIPLIERS:
        raise ValueError(f"Unknown boldness: {tier}")
    return BASE_SCORE_DELTAS[key] * BOLDNESS_MULTIPLIERS[tier]


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def compute_confidence_update(
    current_confidence: float,
    test: TestInput,
    result: ResultLike,
    boldness: Union[PredictionBoldness, str] = PredictionBoldness.SPECIFIC,
    config: Optional[ConfidenceConfig] = None,
) -> ConfidenceUpdate:
    """Compute the new confidence after one test outcome.

    Raises:
        ValueError: If *current_confidence* is non-finite or outside 0-100,
            or the test's discriminative power is not an integer 1-5.
    """
    cfg = config or ConfidenceConfig()

    if not isinstance(current_confidence, (int, float)) or not math.isfinite(current_confidence):
        raise ValueError(f"Invalid current_confidence: must be a finite number (got {current_confidence})")
    if not 0 <= current_confidence <= 100:
        raise ValueError(f"Invalid current_confidence: must be between 0 and 100 (got {current_confidence})")
    power = test.discriminative_power
    if not is_valid_discriminative_power(power):
        raise ValueError(f"Invalid discriminative_power: must be an integer from 1-5 (got {power})")

    key = _value(result)
    stars = STAR_RATINGS[power]
    power_label = POWER_LABELS[power]
    raw_delta = calculate_score_delta(key, boldness) * power / 5
    new_confidence = _clamp(current_confidence + raw_delta, cfg.min_confidence, cfg.max_confidence)
    delta = new_confidence - current_confidence

    if raw_delta == 0:
        return ConfidenceUpdate(
            new_confidence=current_confidence,
            delta=0.0,
            explanation=(
                f"{stars} test was {key}. Confidence unchanged at {current_confidence:.1f}%."
            ),
            significant=False,
        )

    significant = abs(delta) >= cfg.significance_threshold
    explanation = (
        f"{stars} {power_label} test {key} hypothesis. "
        f"Confidence {current_confidence:.1f}% → {new_confidence:.1f}% ({format_delta(delta)})."
    )
    if key == "eliminates":
        explanation += " The hypothesis has been ruled out by this test."
    elif significant and delta < 0:
        explanation += " This is a major blow to the hypothesis."
    elif significant:
        explanation += " Hypothesis survives a meaningful test."

    logger.debug(
        "Confidence update: %s (power=%d, boldness=%s) %.1f -> %.1f",
        key, power, _value(boldness), current_confidence, new_confidence,
    )
    return ConfidenceUpdate(
        new_confidence=new_confidence,
        delta=delta,
        explanation=explanation,
        significant=significant,
    )


# ── Batch processing ─────────────────────────────────────────────────────────

def _as_batch_item(item: Union[BatchEvidenceItem, tuple]) -> BatchEvidenceItem:
    if isinstance(item, BatchEvidenceItem):
        return item
    if len(item) == 2:
        test, result = item
        return BatchEvidenceItem(test=test, result=result)
    test, result, boldness = item
    return BatchEvidenceItem(test=test, result=result, boldness=boldness)


def compute_batch_confidence_update(
    initial_confidence: float,
    items: Iterable[Union[BatchEvidenceItem, tuple]],
    config: Optional[ConfidenceConfig] = None,
) -> BatchConfidenceUpdate:
    """Apply evidence items in order, each consuming the previous output."""
    current = initial_confidence
    updates: list[ConfidenceUpdate] = []
    counts = {"supports": 0, "challenges": 0, "eliminates": 0, "inconclusive": 0}
    significant_changes = 0

    for raw in items:
        item = _as_batch_item(raw)
        update = compute_confidence_update(current, item.test, item.result, item.boldness, config)
        updates.append(update)
        current = update.new_confidence
        counts[item.result.value] += 1
        if update.significant:
            significant_changes += 1

    return BatchConfidenceUpdate(
        initial_confidence=initial_confidence,
        final_confidence=current,
        total_delta=current - initial_confidence,
        updates=updates,
        summary=BatchSummary(**counts, significant_changes=significant_changes),
    )


# ── What-if analysis ─────────────────────────────────────────────────────────

def analyze_what_if(
    current_confidence: float,
    test: TestInput,
    boldness: Union[PredictionBoldness, str] = PredictionBoldness.SPECIFIC,
    config: Optional[ConfidenceConfig] = None,
) -> WhatIfAnalysis:
    """Project the update for every possible result of *test*.

    ``information_value`` is the spread between the best and worst
    projected confidence; a wider spread means a more informative test.
    """
    projections = {
        result: compute_confidence_update(current_confidence, test, result, boldness, config)
        for result in EvidenceResult
    }
    outcomes = [p.new_confidence for p in projections.values()]
    return WhatIfAnalysis(
        current_confidence=current_confidence,
        if_supports=projections[EvidenceResult.SUPPORTS],
        if_challenges=projections[EvidenceResult.CHALLENGES],
        if_eliminates=projections[EvidenceResult.ELIMINATES],
        if_inconclusive=projections[EvidenceResult.INCONCLUSIVE],
        max_impact=max(abs(p.delta) for p in projections.values()),
        information_value=max(outcomes) - min(outcomes),
    )


# ── Display helpers ──────────────────────────────────────────────────────────

def get_confidence_assessment(confidence: float) -> ConfidenceAssessment:
    if confidence >= 80:
        return ConfidenceAssessment(
            label="High", color="green",
            description="Strong confidence - hypothesis has survived serious testing",
        )
    if confidence >= 60:
        return ConfidenceAssessment(
            label="Moderate-High", color="lime",
            description="Good confidence - hypothesis is holding up well",
        )
    if confidence >= 40:
        return ConfidenceAssessment(
            label="Moderate", color="yellow",
            description="Uncertain - more discriminative testing needed",
        )
    if confidence >= 20:
        return ConfidenceAssessment(
            label="Low", color="orange",
            description="Weak confidence - hypothesis is under pressure",
        )
    return ConfidenceAssessment(
        label="Very Low", color="red",
        description="Hypothesis is nearly falsified - consider alternatives",
    )


def format_confidence(confidence: float) -> str:
    if confidence == int(confidence):
        return f"{int(confidence)}%"
    return f"{confidence:.1f}%"


def format_delta(delta: float) -> str:
    if delta == 0:
        return "±0%"
    arrow = "↑" if delta > 0 else "↓"
    sign = "+" if delta > 0 else ""
    return f"{arrow} {sign}{delta:.1f}%"


def get_star_rating(power: int) -> str:
    if power not in STAR_RATINGS:
        raise ValueError(f"Invalid discriminative_power: must be an integer from 1-5 (got {power})")
    return STAR_RATINGS[power]
