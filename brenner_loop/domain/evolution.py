"""Evolution graph domain — versions, the history store and graph views.

The store is an append-only DAG keyed by hypothesis-card id.  Parent and
children links are kept bidirectionally consistent; the model validator
re-checks the invariants on every construction so a store parsed from
storage (or built by a buggy caller) cannot carry dangling links.

Invariants:
    - every non-root ``parent_id`` exists in ``versions``
    - a parent's ``children`` lists exactly the ids whose parent it is
    - roots have no parent
    - every id in roots / current / abandoned exists in ``versions``
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from brenner_loop.domain.enums import EvolutionStatus, EvolutionTrigger
from brenner_loop.domain.hypothesis import HypothesisCard
from brenner_loop.foundation.clock import UtcDatetime, utc_now

EVOLUTION_TRIGGER_LABELS: dict[EvolutionTrigger, str] = {
    EvolutionTrigger.MANUAL: "Manual edit",
    EvolutionTrigger.LEVEL_SPLIT: "Level Split operator (Σ)",
    EvolutionTrigger.EXCLUSION_TEST: "Exclusion Test operator (⊘)",
    EvolutionTrigger.OBJECT_TRANSPOSE: "Object Transpose operator (⟳)",
    EvolutionTrigger.SCALE_CHECK: "Scale Check operator (⊙)",
    EvolutionTrigger.EVIDENCE: "Evidence update",
    EvolutionTrigger.AGENT_FEEDBACK: "Agent feedback",
}


class HypothesisVersion(BaseModel):
    """One node of the evolution graph; ``id`` equals ``hypothesis.id``."""

    id: str
    hypothesis: HypothesisCard
    parent_id: Optional[str] = None
    children: list[str] = Field(default_factory=list)

    trigger: EvolutionTrigger = EvolutionTrigger.MANUAL
    message: str
    timestamp: UtcDatetime = Field(default_factory=utc_now)
    created_by: Optional[str] = None
    related_entity_id: Optional[str] = None

    model_config = {"frozen": True}


def find_store_violations(
    versions: dict[str, HypothesisVersion],
    roots: list[str],
    current: list[str],
    abandoned: list[str],
) -> list[str]:
    """List every invariant violation in the given store contents."""
    problems: list[str] = []

    expected_children: dict[str, list[str]] = {vid: [] for vid in versions}
    for vid, version in versions.items():
        if version.id != vid:
            problems.append(f"Version key {vid} does not match its id {version.id}")
        if version.parent_id is None:
            continue
        if version.parent_id not in versions:
            problems.append(f"Parent {version.parent_id} of {vid} not found")
        else:
            expected_children[version.parent_id].append(vid)

    for vid, version in versions.items():
        if sorted(version.children) != sorted(expected_children[vid]):
            problems.append(
                f"Children of {vid} are {version.children}, expected {expected_children[vid]}"
            )

    for label, ids in (("roots", roots), ("current", current), ("abandoned", abandoned)):
        for vid in ids:
            if vid not in versions:
                problems.append(f"{label} references unknown version {vid}")
    for vid in roots:
        if vid in versions and versions[vid].parent_id is not None:
            problems.append(f"Root {vid} has a parent")

    return problems


class HypothesisHistoryStore(BaseModel):
    versions: dict[str, HypothesisVersion] = Field(default_factory=dict)
    roots: list[str] = Field(default_factory=list)
    current: list[str] = Field(default_factory=list)
    abandoned: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_links(self) -> HypothesisHistoryStore:
        problems = find_store_violations(self.versions, self.roots, self.current, self.abandoned)
        if problems:
            raise ValueError("Inconsistent history store: " + "; ".join(problems))
        return self


# ── Diff ─────────────────────────────────────────────────────────────────────

class HypothesisChange(BaseModel):
    field: str
    change_type: str = Field(..., description="added | removed | modified")
    old_value: object = None
    new_value: object = None

    model_config = {"frozen": True}


class DiffSummary(BaseModel):
    fields_changed: int
    predictions_added: int
    predictions_removed: int
    confounds_added: int
    confounds_removed: int
    confidence_delta: float

    model_config = {"frozen": True}


class HypothesisDiff(BaseModel):
    from_id: str
    to_id: str
    distance: int = Field(..., description="Version-number gap; 0 when comparing a card with itself")
    changes: list[HypothesisChange]
    summary: DiffSummary

    model_config = {"frozen": True}


# ── Graph views ──────────────────────────────────────────────────────────────

class EvolutionGraphNode(BaseModel):
    id: str
    label: str
    confidence: float
    status: EvolutionStatus
    children: list[str]
    parent_id: Optional[str] = None
    trigger: EvolutionTrigger
    timestamp: datetime
    version: int

    model_config = {"frozen": True}


class EvolutionGraphEdge(BaseModel):
    source: str
    target: str
    trigger: EvolutionTrigger
    label: Optional[str] = None

    model_config = {"frozen": True}


class EvolutionGraph(BaseModel):
    nodes: list[EvolutionGraphNode]
    edges: list[EvolutionGraphEdge]
    roots: list[str]
    current: list[str]

    model_config = {"frozen": True}


class EvolutionStats(BaseModel):
    total_versions: int
    root_count: int
    current_count: int
    abandoned_count: int
    max_depth: int
    avg_branching_factor: float
    trigger_counts: dict[str, int]

    model_config = {"frozen": True}
