"""Graveyard domain — archival records for falsified hypotheses.

A FalsifiedHypothesis is created once, at falsification time.  Its death
certificate (hypothesis, killing blow, death type, summary, date) is fixed;
afterwards only the link lists, the epitaph and the learning may change.

Validation rules:
    errors   - missing id / session_id / death_summary, invalid death_type,
               invalid falsified_at, missing hypothesis / killing_blow /
               learning objects
    warnings - death summary under 20 chars, no epitaph, no lessons, no
               successors (not expected of unmeasurable hypotheses)
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from brenner_loop.domain.enums import DeathType
from brenner_loop.domain.evidence import EvidenceEntry
from brenner_loop.domain.hypothesis import HypothesisCard
from brenner_loop.foundation.clock import UtcDatetime, utc_now
from brenner_loop.foundation.identifiers import session_scoped_id
from brenner_loop.foundation.validation import (
    ValidationIssue,
    ValidationResult,
    is_blank,
    parse_record,
    raise_for_errors,
)

SHORT_SUMMARY_LENGTH = 20

DEATH_TYPE_LABELS: dict[DeathType, str] = {
    DeathType.DIRECT_FALSIFICATION: "Direct Falsification",
    DeathType.MECHANISM_FAILURE: "Mechanism Failure",
    DeathType.EFFECT_SIZE_COLLAPSE: "Effect Size Collapse",
    DeathType.SUPERSEDED: "Superseded",
    DeathType.UNMEASURABLE: "Unmeasurable",
    DeathType.SCOPE_REDUCTION: "Scope Reduction",
}

DEATH_TYPE_DESCRIPTIONS: dict[DeathType, str] = {
    DeathType.DIRECT_FALSIFICATION: (
        "An observation occurred that the hypothesis said was impossible. "
        "This is the cleanest form of falsification."
    ),
    DeathType.MECHANISM_FAILURE: (
        "The proposed causal mechanism was tested and found to not work. "
        "The effect might exist but not for the hypothesized reason."
    ),
    DeathType.EFFECT_SIZE_COLLAPSE: (
        "The effect is too small to be practically meaningful. "
        "The hypothesis may be technically true but doesn't matter."
    ),
    DeathType.SUPERSEDED: (
        "A better hypothesis emerged that explains more with fewer assumptions. "
        "The old hypothesis isn't falsified, just outcompeted."
    ),
    DeathType.UNMEASURABLE: (
        "Cannot be tested with current methods or technology. "
        "The hypothesis is suspended, not dead."
    ),
    DeathType.SCOPE_REDUCTION: (
        "The hypothesis is valid only under narrow conditions. "
        "It's been reduced from a general claim to a specific case."
    ),
}

DEATH_TYPE_ICONS: dict[DeathType, str] = {
    DeathType.DIRECT_FALSIFICATION: "💀",
    DeathType.MECHANISM_FAILURE: "⚙️",
    DeathType.EFFECT_SIZE_COLLAPSE: "📉",
    DeathType.SUPERSEDED: "👑",
    DeathType.UNMEASURABLE: "❓",
    DeathType.SCOPE_REDUCTION: "🔬",
}

BRENNER_FALSIFICATION_QUOTES: dict[DeathType, tuple[str, ...]] = {
    DeathType.DIRECT_FALSIFICATION: (
        "This is not a failure. This is progress. You now know something you didn't before.",
        "The hypothesis was proven wrong - that's the best possible outcome. "
        "Ambiguity is the enemy, not falsification.",
        "A decisively killed hypothesis is worth more than ten weakly supported ones.",
    ),
    DeathType.MECHANISM_FAILURE: (
        "The effect might be real, but not for the reasons you thought. That's valuable knowledge.",
        "Understanding why something doesn't work teaches you how the world actually works.",
        "Wrong mechanisms are stepping stones to right ones.",
    ),
    DeathType.EFFECT_SIZE_COLLAPSE: (
        "A tiny effect is often worse than no effect - it means the hypothesis wasn't even worth testing.",
        "Effect sizes matter more than statistical significance. "
        "You've learned what matters and what doesn't.",
        "Small effects suggest you're looking at the wrong level of explanation.",
    ),
    DeathType.SUPERSEDED: (
        "Being replaced by a better idea is the natural lifecycle of hypotheses.",
        "Science progresses when good ideas are replaced by better ones.",
        "The purpose of a hypothesis is to be superseded by a better one.",
    ),
    DeathType.UNMEASURABLE: (
        "An unmeasurable hypothesis isn't useless - it just needs better tools.",
        "Sometimes the limitation is in our instruments, not our ideas.",
        "Document what would need to exist to test this. Future you will thank you.",
    ),
    DeathType.SCOPE_REDUCTION: (
        "A narrow truth is still a truth. Most grand theories become specialized tools.",
        "Understanding the boundaries of an idea is as valuable as the idea itself.",
        "General claims that become specific findings are how knowledge accumulates.",
    ),
}


class FalsificationLearning(BaseModel):
    lessons_learned: list[str] = Field(default_factory=list)
    what_we_now_know: list[str] = Field(default_factory=list)
    what_remains_open: list[str] = Field(default_factory=list)
    suggested_next_steps: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}


class FalsifiedHypothesis(BaseModel):
    id: str = Field(..., description="GY-{sessionId}-{seq:3}")
    hypothesis: HypothesisCard
    session_id: str

    # Death certificate
    falsified_at: UtcDatetime = Field(default_factory=utc_now)
    killing_blow: EvidenceEntry
    death_type: DeathType
    death_summary: str

    learning: FalsificationLearning

    # Legacy
    successor_hypothesis_ids: list[str] = Field(default_factory=list)
    contributed_to_ids: list[str] = Field(default_factory=list)

    epitaph: str = ""
    brenner_quote: str = ""

    archived_by: Optional[str] = None
    notes: Optional[str] = None
    tags: Optional[list[str]] = None

    model_config = {"frozen": True}


# ── Validation ───────────────────────────────────────────────────────────────

# Structural failures in these nested objects get a more specific code.
# A nested object that is absent altogether stays MISSING_REQUIRED.
_NESTED_CODES = {
    "hypothesis": "HYPOTHESIS_INVALID",
    "killing_blow": "EVIDENCE_INVALID",
}


def _recode(issue: ValidationIssue) -> ValidationIssue:
    root = issue.field.split(".")[0]
    if root not in _NESTED_CODES:
        return issue
    if issue.field == root and issue.code == "MISSING_REQUIRED":
        return issue
    return issue.model_copy(update={"code": _NESTED_CODES[root]})


def _lessons(learning: Any) -> list[str]:
    if isinstance(learning, FalsificationLearning):
        return learning.lessons_learned
    if isinstance(learning, dict):
        return learning.get("lessons_learned") or []
    return []


def validate_falsified_hypothesis(entry: FalsifiedHypothesis | dict[str, Any]) -> ValidationResult:
    """Validate a graveyard entry (or raw dict).  Never raises.

    Field checks still run on a raw dict that fails parsing, skipping the
    fields pydantic already reported.
    """
    parsed, issues = parse_record(FalsifiedHypothesis, entry)
    errors = [_recode(issue) for issue in issues]
    warnings: list[ValidationIssue] = []

    if parsed is not None:
        data = parsed.model_dump()
    elif isinstance(entry, dict):
        data = entry
    else:
        return ValidationResult.from_issues(errors, warnings)
    reported = {issue.field.split(".")[0] for issue in errors}

    def checked(field: str) -> bool:
        return field not in reported

    if checked("id") and is_blank(data.get("id")):
        errors.append(ValidationIssue(field="id", message="ID is required", code="MISSING_REQUIRED"))
    if checked("session_id") and is_blank(data.get("session_id")):
        errors.append(ValidationIssue(field="session_id", message="Session ID is required", code="MISSING_REQUIRED"))

    summary = data.get("death_summary")
    if checked("death_summary"):
        if is_blank(summary):
            errors.append(ValidationIssue(
                field="death_summary", message="Death summary is required", code="MISSING_REQUIRED",
            ))
        elif len(summary.strip()) < SHORT_SUMMARY_LENGTH:
            warnings.append(ValidationIssue(
                field="death_summary",
                message="Consider providing a more detailed death summary",
                code="SHORT_DEATH_SUMMARY",
            ))

    if checked("learning") and not _lessons(data.get("learning")):
        warnings.append(ValidationIssue(
            field="learning.lessons_learned",
            message="Consider documenting what you learned from this falsification",
            code="NO_LESSONS",
        ))
    if checked("epitaph") and is_blank(data.get("epitaph")):
        warnings.append(ValidationIssue(
            field="epitaph",
            message="Consider writing an epitaph summarizing what was learned",
            code="NO_EPITAPH",
        ))
    if not data.get("successor_hypothesis_ids") and data.get("death_type") != DeathType.UNMEASURABLE:
        warnings.append(ValidationIssue(
            field="successor_hypothesis_ids",
            message="Consider identifying what hypotheses should be explored next",
            code="NO_SUCCESSORS",
        ))

    return ValidationResult.from_issues(errors, warnings)


def is_falsified_hypothesis(obj: Any) -> bool:
    parsed, _ = parse_record(FalsifiedHypothesis, obj)
    return parsed is not None


# ── Factories ────────────────────────────────────────────────────────────────

def generate_graveyard_id(session_id: str, sequence: int) -> str:
    """Return ``GY-{sessionId}-{seq:3}``.

    Raises:
        ValueError: ``Invalid sessionId`` / ``Invalid sequence``.
    """
    return session_scoped_id("GY", session_id, sequence)


def create_falsified_hypothesis(
    *,
    id: str,
    hypothesis: HypothesisCard,
    session_id: str,
    killing_blow: EvidenceEntry,
    death_type: DeathType | str,
    death_summary: str,
    brenner_quote: str,
    learning: Optional[FalsificationLearning | dict[str, Any]] = None,
    successor_hypothesis_ids: Optional[list[str]] = None,
    contributed_to_ids: Optional[list[str]] = None,
    epitaph: str = "",
    archived_by: Optional[str] = None,
    notes: Optional[str] = None,
    tags: Optional[list[str]] = None,
) -> FalsifiedHypothesis:
    """Create a graveyard entry stamped with the current time.

    Quote selection is the caller's concern (see ``core.graveyard``).

    Raises:
        InvalidRecordError: If validation reports any error.
    """
    raw = {
        "id": id,
        "hypothesis": hypothesis,
        "session_id": session_id,
        "falsified_at": utc_now(),
        "killing_blow": killing_blow,
        "death_type": death_type,
        "death_summary": death_summary,
        "learning": learning if learning is not None else FalsificationLearning(),
        "successor_hypothesis_ids": successor_hypothesis_ids or [],
        "contributed_to_ids": contributed_to_ids or [],
        "epitaph": epitaph,
        "brenner_quote": brenner_quote,
        "archived_by": archived_by,
        "notes": notes,
        "tags": tags,
    }
    raise_for_errors("FalsifiedHypothesis", validate_falsified_hypothesis(raw))
    return FalsifiedHypothesis.model_validate(raw)
