"""EvidenceEntry — one recorded test outcome against a hypothesis version.

Each entry captures the test that was run, the predictions registered
before running it, the observation, and the confidence before and after.
Entries are immutable after creation and are referenced (never owned) by
graveyard entries as the killing blow.

Evidence without pre-registered predictions is much weaker than evidence
that confirms or refutes one, so both predictions are required.
"""

from __future__ import annotations

import math
from typing import Any, Optional

from pydantic import BaseModel, Field

from brenner_loop.domain.enums import EvidenceResult, TestType
from brenner_loop.foundation.clock import UtcDatetime, utc_now
from brenner_loop.foundation.identifiers import session_scoped_id
from brenner_loop.foundation.validation import (
    ValidationIssue,
    ValidationResult,
    is_blank,
    parse_record,
    raise_for_errors,
)

MIN_DISCRIMINATIVE_POWER, MAX_DISCRIMINATIVE_POWER = 1, 5

# Below this the test is flagged as weakly discriminating.
LOW_POWER_THRESHOLD = 3

# Absolute confidence change (percentage points) under which evidence is flagged.
SMALL_CHANGE_THRESHOLD = 1.0

TEST_TYPE_LABELS: dict[TestType, str] = {
    TestType.NATURAL_EXPERIMENT: "Natural Experiment",
    TestType.CONTROLLED_STUDY: "Controlled Study",
    TestType.CROSS_CONTEXT: "Cross-Context Test",
    TestType.MECHANISM_BLOCK: "Mechanism Block",
    TestType.DOSE_RESPONSE: "Dose-Response",
    TestType.LITERATURE: "Literature Evidence",
    TestType.OBSERVATION: "Direct Observation",
    TestType.TEMPORAL_ANALYSIS: "Temporal Analysis",
}

DISCRIMINATIVE_POWER_LABELS: dict[int, str] = {
    1: "Low",
    2: "Moderate-Low",
    3: "Moderate",
    4: "High",
    5: "Decisive",
}


# ── Models ───────────────────────────────────────────────────────────────────

class TestInput(BaseModel):
    """The minimum the confidence engine needs to know about a test."""

    __test__ = False  # not a pytest class

    discriminative_power: int = Field(..., description="1 (low) to 5 (decisive)")

    model_config = {"frozen": True}


class TestDescription(TestInput):
    """A test embedded in an evidence entry."""

    id: str
    description: str
    type: TestType


class EvidenceEntry(BaseModel):
    id: str = Field(..., description="EV-{sessionId}-{seq:3}")
    session_id: str
    hypothesis_version: str = Field(..., description="HypothesisCard id under test")

    test: TestDescription

    # Pre-registered predictions
    prediction_if_true: str
    prediction_if_false: str

    result: EvidenceResult
    observation: str
    source: Optional[str] = None

    confidence_before: float
    confidence_after: float
    interpretation: str

    recorded_at: UtcDatetime = Field(default_factory=utc_now)
    recorded_by: Optional[str] = None
    notes: Optional[str] = None
    tags: Optional[list[str]] = None

    model_config = {"frozen": True}


# ── Validation ───────────────────────────────────────────────────────────────

def is_valid_discriminative_power(value: Any) -> bool:
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and MIN_DISCRIMINATIVE_POWER <= value <= MAX_DISCRIMINATIVE_POWER
    )


def _test_errors(test: TestDescription) -> list[ValidationIssue]:
    errors: list[ValidationIssue] = []
    if is_blank(test.id):
        errors.append(ValidationIssue(field="test.id", message="Test ID is required", code="TEST_INVALID"))
    if is_blank(test.description):
        errors.append(ValidationIssue(
            field="test.description", message="Test description is required", code="TEST_INVALID",
        ))
    if not is_valid_discriminative_power(test.discriminative_power):
        errors.append(ValidationIssue(
            field="test.discriminative_power",
            message="Discriminative power must be an integer from 1-5",
            code="TEST_INVALID",
        ))
    return errors


def _confidence_errors(field: str, label: str, value: float) -> list[ValidationIssue]:
    if not math.isfinite(value):
        return [ValidationIssue(field=field, message=f"{label} must be a finite number", code="INVALID_TYPE")]
    if not 0.0 <= value <= 100.0:
        return [ValidationIssue(
            field=field,
            message=f"{label} must be between 0 and 100 (got {value})",
            code="INVALID_RANGE",
        )]
    return []


_REQUIRED_TEXT = (
    ("id", "ID is required"),
    ("session_id", "Session ID is required"),
    ("hypothesis_version", "Hypothesis version is required"),
    ("prediction_if_true", "Prediction if true is required for discriminative testing"),
    ("prediction_if_false", "Prediction if false is required for discriminative testing"),
    ("observation", "Observation is required when recording evidence"),
    ("interpretation", "Interpretation is required to explain confidence change"),
)


def validate_evidence_entry(entry: EvidenceEntry | dict[str, Any]) -> ValidationResult:
    """Validate an entry (or raw dict).  Never raises.

    Warnings flag weak evidence hygiene: low discriminative power, no
    source reference, and a confidence change too small to matter.
    """
    parsed, errors = parse_record(EvidenceEntry, entry)
    if parsed is None:
        return ValidationResult.from_issues(errors, [])

    warnings: list[ValidationIssue] = []

    for field, message in _REQUIRED_TEXT:
        if is_blank(getattr(parsed, field)):
            errors.append(ValidationIssue(field=field, message=message, code="MISSING_REQUIRED"))

    errors.extend(_test_errors(parsed.test))
    errors.extend(_confidence_errors("confidence_before", "Confidence before", parsed.confidence_before))
    errors.extend(_confidence_errors("confidence_after", "Confidence after", parsed.confidence_after))

    if (
        is_valid_discriminative_power(parsed.test.discriminative_power)
        and parsed.test.discriminative_power < LOW_POWER_THRESHOLD
    ):
        warnings.append(ValidationIssue(
            field="test.discriminative_power",
            message="Low discriminative power - consider designing more decisive tests",
            code="LOW_DISCRIMINATIVE_POWER",
        ))
    if is_blank(parsed.source):
        warnings.append(ValidationIssue(
            field="source",
            message="Consider providing a source reference for this evidence",
            code="NO_SOURCE",
        ))
    if abs(parsed.confidence_after - parsed.confidence_before) < SMALL_CHANGE_THRESHOLD:
        warnings.append(ValidationIssue(
            field="confidence_after",
            message="Very small confidence change - verify this evidence is being weighted appropriately",
            code="SMALL_CONFIDENCE_CHANGE",
        ))

    return ValidationResult.from_issues(errors, warnings)


def is_test_description(obj: Any) -> bool:
    parsed, _ = parse_record(TestDescription, obj)
    return parsed is not None and is_valid_discriminative_power(parsed.discriminative_power)


def is_evidence_entry(obj: Any) -> bool:
    """True if *obj* parses as an entry with in-range, finite confidences.

    Accepts both fresh models and deserialized dicts with ISO date strings.
    """
    parsed, _ = parse_record(EvidenceEntry, obj)
    if parsed is None or not is_valid_discriminative_power(parsed.test.discriminative_power):
        return False
    return not (
        _confidence_errors("confidence_before", "", parsed.confidence_before)
        or _confidence_errors("confidence_after", "", parsed.confidence_after)
    )


# ── Factories ────────────────────────────────────────────────────────────────

def generate_evidence_id(session_id: str, sequence: int) -> str:
    """Return ``EV-{sessionId}-{seq:3}``.

    Raises:
        ValueError: ``Invalid sessionId`` / ``Invalid sequence``.
    """
    return session_scoped_id("EV", session_id, sequence)


def create_evidence_entry(
    *,
    id: str,
    session_id: str,
    hypothesis_version: str,
    test: TestDescription | dict[str, Any],
    prediction_if_true: str,
    prediction_if_false: str,
    result: EvidenceResult | str,
    observation: str,
    confidence_before: float,
    confidence_after: float,
    interpretation: str,
    source: Optional[str] = None,
    recorded_by: Optional[str] = None,
    notes: Optional[str] = None,
    tags: Optional[list[str]] = None,
) -> EvidenceEntry:
    """Create an entry stamped with the current time.

    Raises:
        InvalidRecordError: If validation reports any error.
    """
    raw = {
        "id": id,
        "session_id": session_id,
        "hypothesis_version": hypothesis_version,
        "test": test,
        "prediction_if_true": prediction_if_true,
        "prediction_if_false": prediction_if_false,
        "result": result,
        "observation": observation,
        "source": source,
        "confidence_before": confidence_before,
        "confidence_after": confidence_after,
        "interpretation": interpretation,
        "recorded_at": utc_now(),
        "recorded_by": recorded_by,
        "notes": notes,
        "tags": tags,
    }
    raise_for_errors("EvidenceEntry", validate_evidence_entry(raw))
    return EvidenceEntry.model_validate(raw)


# ── Utilities ────────────────────────────────────────────────────────────────

def calculate_confidence_delta(entry: EvidenceEntry) -> float:
    return entry.confidence_after - entry.confidence_before


def summarize_evidence_result(entry: EvidenceEntry) -> str:
    delta = calculate_confidence_delta(entry)
    delta_str = f"+{delta:g}" if delta >= 0 else f"{delta:g}"
    label = {
        EvidenceResult.SUPPORTS: "Supports hypothesis",
        EvidenceResult.CHALLENGES: "Challenges hypothesis",
        EvidenceResult.ELIMINATES: "Eliminates hypothesis",
        EvidenceResult.INCONCLUSIVE: "Inconclusive",
    }[entry.result]
    return f"{label} ({delta_str}% confidence)"
