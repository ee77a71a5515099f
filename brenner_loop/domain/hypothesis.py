"""HypothesisCard — the versioned, validated unit of the Brenner Loop.

A hypothesis is only as good as its falsifiability.  Every card carries at
least one ``impossible_if_true`` entry: an observation that would rule it
out entirely.  A card without one is not testable yet and is rejected.

Cards are immutable per version.  Changing a card means evolving it into a
new card with a new id, ``version + 1`` and ``parent_version`` pointing at
the old id.  Cards are never deleted, only archived or superseded.

Validation rules:
    - statement: required, 10-1000 chars
    - mechanism: required, 10-500 chars
    - predictions_if_true: at least 1 entry
    - impossible_if_true: at least 1 entry
    - confidence: 0-100
    - version: positive integer
    - confounds: each must be structurally valid
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from brenner_loop.config import settings
from brenner_loop.foundation.clock import UtcDatetime, utc_now
from brenner_loop.foundation.identifiers import session_scoped_id, validate_sequence
from brenner_loop.foundation.validation import (
    ValidationIssue,
    ValidationResult,
    is_blank,
    parse_record,
    raise_for_errors,
)

# ── Constants ────────────────────────────────────────────────────────────────

STATEMENT_MIN, STATEMENT_MAX = 10, 1000
MECHANISM_MIN, MECHANISM_MAX = 10, 500

HYPOTHESIS_ID_PATTERN = re.compile(r"^(HC-.*-\d{3})-v(\d+)$")

GENERIC_MECHANISM_PATTERNS = (
    re.compile(r"^causes?\s", re.IGNORECASE),
    re.compile(r"^leads?\sto\s", re.IGNORECASE),
    re.compile(r"^results?\sin\s", re.IGNORECASE),
)

# Fields an evolution may not overwrite; they are derived from the parent.
PROTECTED_EVOLUTION_FIELDS = frozenset({"id", "version", "parent_version", "created_at"})


# ── Models ───────────────────────────────────────────────────────────────────

class IdentifiedConfound(BaseModel):
    """A named alternative explanation for the same observations.

    Owned by its parent card; never stored separately.
    """

    id: str
    name: str
    description: str
    likelihood: float = Field(..., description="0.0 (impossible) to 1.0 (certain)")
    domain: str
    addressed: bool = False
    addressed_how: Optional[str] = None
    addressed_at: Optional[UtcDatetime] = None

    model_config = {"frozen": True}


class HypothesisCard(BaseModel):
    """One version of a hypothesis and its discriminative structure.

    Range and length rules are NOT enforced by the model itself; they are
    reported by ``validate_hypothesis_card`` and enforced by the factories.
    """

    id: str = Field(..., description="HC-{sessionId}-{seq:3}-v{version}")
    version: int = 1
    statement: str
    mechanism: str
    domain: list[str] = Field(default_factory=list)

    # Discriminative structure
    predictions_if_true: list[str]
    predictions_if_false: list[str] = Field(default_factory=list)
    impossible_if_true: list[str]

    # Identified weaknesses
    confounds: list[IdentifiedConfound] = Field(default_factory=list)
    assumptions: list[str] = Field(default_factory=list)

    confidence: float = Field(default=50.0, description="0-100")
    parent_version: Optional[str] = None
    evolution_reason: Optional[str] = None

    created_at: UtcDatetime = Field(default_factory=utc_now)
    updated_at: UtcDatetime = Field(default_factory=utc_now)
    created_by: Optional[str] = None
    session_id: Optional[str] = None
    tags: Optional[list[str]] = None
    notes: Optional[str] = None

    model_config = {"frozen": True}


# ── Validation ───────────────────────────────────────────────────────────────

def _length_errors(field: str, label: str, value: str, lo: int, hi: int) -> list[ValidationIssue]:
    if is_blank(value):
        return [ValidationIssue(field=field, message=f"{label} is required", code="MISSING_REQUIRED")]
    if len(value) < lo:
        return [ValidationIssue(
            field=field,
            message=f"{label} must be at least {lo} characters (got {len(value)})",
            code="TOO_SHORT",
        )]
    if len(value) > hi:
        return [ValidationIssue(
            field=field,
            message=f"{label} must be at most {hi} characters (got {len(value)})",
            code="TOO_LONG",
        )]
    return []


def _confound_errors(confound: IdentifiedConfound, prefix: str, code: str) -> list[ValidationIssue]:
    errors: list[ValidationIssue] = []
    for name in ("id", "name", "description", "domain"):
        if is_blank(getattr(confound, name)):
            errors.append(ValidationIssue(
                field=f"{prefix}{name}",
                message=f"Confound {name} is required",
                code=code,
            ))
    if not 0.0 <= confound.likelihood <= 1.0:
        errors.append(ValidationIssue(
            field=f"{prefix}likelihood",
            message=f"Confound likelihood must be between 0 and 1 (got {confound.likelihood})",
            code=code if code == "CONFOUND_INVALID" else "INVALID_RANGE",
        ))
    return errors


def validate_confound(confound: IdentifiedConfound | dict[str, Any]) -> ValidationResult:
    parsed, errors = parse_record(IdentifiedConfound, confound)
    if parsed is not None:
        errors = _confound_errors(parsed, "", "MISSING_REQUIRED")
    return ValidationResult.from_issues(errors, [])


def validate_hypothesis_card(card: HypothesisCard | dict[str, Any]) -> ValidationResult:
    """Validate a card (or raw dict) for completeness and correctness.

    Never raises.  Errors block acceptance; warnings are quality nudges.
    """
    parsed, errors = parse_record(HypothesisCard, card)
    if parsed is None:
        return ValidationResult.from_issues(errors, [])

    warnings: list[ValidationIssue] = []

    errors.extend(_length_errors("statement", "Statement", parsed.statement, STATEMENT_MIN, STATEMENT_MAX))
    errors.extend(_length_errors("mechanism", "Mechanism", parsed.mechanism, MECHANISM_MIN, MECHANISM_MAX))

    if not parsed.predictions_if_true:
        errors.append(ValidationIssue(
            field="predictions_if_true",
            message="At least one prediction if true is required",
            code="EMPTY_ARRAY",
        ))
    if not parsed.impossible_if_true:
        errors.append(ValidationIssue(
            field="impossible_if_true",
            message=(
                "At least one falsification condition is required. If you can't specify "
                "what would prove you wrong, your hypothesis isn't testable yet."
            ),
            code="EMPTY_ARRAY",
        ))
    if not parsed.predictions_if_false:
        warnings.append(ValidationIssue(
            field="predictions_if_false",
            message="Consider adding predictions for when the hypothesis is wrong",
            code="NO_PREDICTIONS_IF_FALSE",
        ))

    if not 0.0 <= parsed.confidence <= 100.0:
        errors.append(ValidationIssue(
            field="confidence",
            message=f"Confidence must be between 0 and 100 (got {parsed.confidence})",
            code="INVALID_RANGE",
        ))
    if parsed.version < 1:
        errors.append(ValidationIssue(
            field="version",
            message="Version must be a positive integer",
            code="INVALID_RANGE",
        ))

    if parsed.confounds:
        for i, confound in enumerate(parsed.confounds):
            errors.extend(_confound_errors(confound, f"confounds[{i}].", "CONFOUND_INVALID"))
    else:
        warnings.append(ValidationIssue(
            field="confounds",
            message="Consider identifying potential confounding variables",
            code="LOW_CONFOUND_COUNT",
        ))

    if not parsed.domain:
        warnings.append(ValidationIssue(
            field="domain",
            message="Consider specifying which domains this hypothesis touches",
            code="NO_DOMAIN",
        ))
    if not parsed.assumptions:
        warnings.append(ValidationIssue(
            field="assumptions",
            message="Consider listing the assumptions this hypothesis depends on",
            code="NO_ASSUMPTIONS",
        ))
    if parsed.mechanism and any(p.search(parsed.mechanism) for p in GENERIC_MECHANISM_PATTERNS):
        warnings.append(ValidationIssue(
            field="mechanism",
            message="Mechanism appears generic. Consider specifying the causal pathway in more detail.",
            code="GENERIC_MECHANISM",
        ))

    return ValidationResult.from_issues(errors, warnings)


def is_hypothesis_card(obj: Any) -> bool:
    """True if *obj* parses as a card with in-range confidence and version."""
    parsed, _ = parse_record(HypothesisCard, obj)
    if parsed is None:
        return False
    return 0.0 <= parsed.confidence <= 100.0 and parsed.version >= 1


def is_identified_confound(obj: Any) -> bool:
    parsed, _ = parse_record(IdentifiedConfound, obj)
    return parsed is not None and 0.0 <= parsed.likelihood <= 1.0


# ── Factories ────────────────────────────────────────────────────────────────

def generate_hypothesis_card_id(session_id: str, sequence: int, version: int = 1) -> str:
    """Return ``HC-{sessionId}-{seq:3}-v{version}``."""
    if isinstance(version, bool) or not isinstance(version, int) or version < 1:
        raise ValueError(f"Invalid version: must be a positive integer (got {version!r})")
    return f"{session_scoped_id('HC', session_id, sequence)}-v{version}"


def generate_confound_id(hypothesis_id: str, sequence: int) -> str:
    validate_sequence(sequence)
    return f"{hypothesis_id}-CF{sequence:02d}"


def create_hypothesis_card(
    *,
    id: str,
    statement: str,
    mechanism: str,
    predictions_if_true: list[str],
    impossible_if_true: list[str],
    domain: Optional[list[str]] = None,
    predictions_if_false: Optional[list[str]] = None,
    confounds: Optional[list[IdentifiedConfound | dict[str, Any]]] = None,
    assumptions: Optional[list[str]] = None,
    confidence: Optional[float] = None,
    parent_version: Optional[str] = None,
    evolution_reason: Optional[str] = None,
    created_by: Optional[str] = None,
    session_id: Optional[str] = None,
    tags: Optional[list[str]] = None,
    notes: Optional[str] = None,
) -> HypothesisCard:
    """Create a version-1 card with defaults, validating it first.

    Raises:
        InvalidRecordError: If validation reports any error.
    """
    now = utc_now()
    raw = {
        "id": id,
        "version": 1,
        "statement": statement,
        "mechanism": mechanism,
        "domain": domain or [],
        "predictions_if_true": predictions_if_true,
        "predictions_if_false": predictions_if_false or [],
        "impossible_if_true": impossible_if_true,
        "confounds": confounds or [],
        "assumptions": assumptions or [],
        "confidence": settings.default_confidence if confidence is None else confidence,
        "parent_version": parent_version,
        "evolution_reason": evolution_reason,
        "created_at": now,
        "updated_at": now,
        "created_by": created_by,
        "session_id": session_id,
        "tags": tags,
        "notes": notes,
    }
    raise_for_errors("HypothesisCard", validate_hypothesis_card(raw))
    return HypothesisCard.model_validate(raw)


def parse_hypothesis_id(hypothesis_id: str) -> tuple[str, int]:
    """Split ``HC-…-NNN-vK`` into its base (``HC-…-NNN``) and version ``K``."""
    match = HYPOTHESIS_ID_PATTERN.match(hypothesis_id)
    if not match:
        raise ValueError(f"Invalid hypothesis ID format: {hypothesis_id}")
    return match.group(1), int(match.group(2))


def evolve_hypothesis_card(
    current: HypothesisCard,
    changes: dict[str, Any],
    reason: str,
    created_by: Optional[str] = None,
) -> HypothesisCard:
    """Create the next version of *current* with *changes* applied.

    The new id is derived from the parsed base of the current id, so the
    session and sequence parts are preserved exactly.

    Raises:
        ValueError: If the id is malformed or *changes* touch protected fields.
        InvalidRecordError: If the evolved card fails validation.
    """
    protected = PROTECTED_EVOLUTION_FIELDS.intersection(changes)
    if protected:
        raise ValueError(f"Cannot change protected fields on evolution: {sorted(protected)}")

    base_id, _ = parse_hypothesis_id(current.id)
    new_version = current.version + 1
    now = utc_now()

    raw = current.model_dump()
    raw.update(changes)
    raw.update(
        id=f"{base_id}-v{new_version}",
        version=new_version,
        parent_version=current.id,
        evolution_reason=reason,
        created_at=now,
        updated_at=now,
        created_by=created_by if created_by is not None else current.created_by,
    )
    raise_for_errors("evolved HypothesisCard", validate_hypothesis_card(raw))
    return HypothesisCard.model_validate(raw)


# ── Quality heuristics ───────────────────────────────────────────────────────

def calculate_falsifiability_score(card: HypothesisCard) -> int:
    """0-100 score for how well-defined the falsification conditions are.

    Used for UI nudges only, never for gating.
    """
    conditions = card.impossible_if_true
    if not conditions:
        return 0

    score = 20
    score += min(len(conditions) * 10, 30)

    avg_length = sum(len(c) for c in conditions) / len(conditions)
    if avg_length > 50:
        score += 20
    elif avg_length > 25:
        score += 10

    if card.predictions_if_false:
        score += 20

    # High confidence resting on a single kill condition is overconfident
    if card.confidence > 80 and len(conditions) < 2:
        score -= 10

    return max(0, min(100, score))


def calculate_specificity_score(card: HypothesisCard) -> int:
    """0-100 score for how precise the card's predictions and mechanism are."""
    score = 0

    if card.predictions_if_true:
        score += 20
        score += min(len(card.predictions_if_true) * 5, 20)

    if len(card.mechanism) > 100:
        score += 20
    elif len(card.mechanism) > 50:
        score += 10

    if card.domain:
        score += 10
    if len(card.domain) > 1:
        score += 10

    if card.confounds:
        score += 10
        score += min(len(card.confounds) * 5, 10)

    return max(0, min(100, score))


def interpret_confidence(confidence: float) -> str:
    if confidence < 20:
        return "Very speculative"
    if confidence < 40:
        return "Interesting but untested"
    if confidence < 60:
        return "Reasonable, some support"
    if confidence < 80:
        return "Strong support"
    return "Near-certain"


def card_age(card: HypothesisCard, now: Optional[datetime] = None) -> float:
    """Seconds since *card* was created."""
    return ((now or utc_now()) - card.created_at).total_seconds()
