"""Evolution graph operations over HypothesisHistoryStore.

Every mutation returns a NEW store (and the affected version); the input
store is never modified.  Stores are rebuilt through the model constructor
so the link invariants are re-validated on each mutation.

Queries are pure:
    get_ancestors        parent to root, excluding self
    get_descendants      breadth-first, excluding self
    find_common_ancestor nearest shared id (a node counts as its own
                         ancestor here, so the result is symmetric)
    is_ancestor          strict: never true for x, x
"""

from __future__ import annotations

import logging
from collections import Counter, deque
from datetime import datetime
from typing import Any, Optional

from brenner_loop.config import settings
from brenner_loop.domain.enums import EvolutionStatus, EvolutionTrigger
from brenner_loop.domain.evolution import (
    DiffSummary,
    EvolutionGraph,
    EvolutionGraphEdge,
    EvolutionGraphNode,
    EvolutionStats,
    HypothesisChange,
    HypothesisDiff,
    HypothesisHistoryStore,
    HypothesisVersion,
    find_store_violations,
)
from brenner_loop.domain.hypothesis import HypothesisCard, IdentifiedConfound, evolve_hypothesis_card
from brenner_loop.foundation.clock import to_utc, utc_now

logger = logging.getLogger(__name__)

EDGE_LABEL_LENGTH = 30


# ── Store construction ───────────────────────────────────────────────────────

def create_history_store() -> HypothesisHistoryStore:
    return HypothesisHistoryStore()


def get_version(store: HypothesisHistoryStore, version_id: str) -> HypothesisVersion:
    """Return the version or raise ``ValueError`` when it is absent."""
    try:
        return store.versions[version_id]
    except KeyError:
        raise ValueError(f"Hypothesis version not found: {version_id}") from None


def _ensure_new(store: HypothesisHistoryStore, version_id: str) -> None:
    if version_id in store.versions:
        raise ValueError(f"Hypothesis version already exists: {version_id}")


def add_root_hypothesis(
    store: HypothesisHistoryStore,
    hypothesis: HypothesisCard,
    message: str,
    created_by: Optional[str] = None,
) -> tuple[HypothesisVersion, HypothesisHistoryStore]:
    """Insert a parentless version; it becomes both a root and current."""
    _ensure_new(store, hypothesis.id)
    version = HypothesisVersion(
        id=hypothesis.id,
        hypothesis=hypothesis,
        trigger=EvolutionTrigger.MANUAL,
        message=message,
        timestamp=utc_now(),
        created_by=created_by,
    )
    new_store = HypothesisHistoryStore(
        versions={**store.versions, version.id: version},
        roots=[*store.roots, version.id],
        current=[*store.current, version.id],
        abandoned=list(store.abandoned),
    )
    logger.debug("Added root version %s", version.id)
    return version, new_store


def attach_version(
    store: HypothesisHistoryStore,
    parent_id: str,
    hypothesis: HypothesisCard,
    trigger: EvolutionTrigger | str,
    message: str,
    created_by: Optional[str] = None,
    related_entity_id: Optional[str] = None,
) -> tuple[HypothesisVersion, HypothesisHistoryStore]:
    """Link an already-built card as a new child of *parent_id*.

    This is the single place that writes parent/children links.  The child
    replaces its parent in ``current``.

    Raises:
        ValueError: Unknown parent, or a version with the card's id exists.
    """
    parent = get_version(store, parent_id)
    _ensure_new(store, hypothesis.id)

    version = HypothesisVersion(
        id=hypothesis.id,
        hypothesis=hypothesis,
        parent_id=parent_id,
        trigger=EvolutionTrigger(trigger),
        message=message,
        timestamp=utc_now(),
        created_by=created_by,
        related_entity_id=related_entity_id,
    )
    updated_parent = parent.model_copy(update={"children": [*parent.children, version.id]})
    new_store = HypothesisHistoryStore(
        versions={**store.versions, parent_id: updated_parent, version.id: version},
        roots=list(store.roots),
        current=[vid for vid in store.current if vid != parent_id] + [version.id],
        abandoned=list(store.abandoned),
    )
    logger.debug("Evolved %s -> %s (%s)", parent_id, version.id, version.trigger.value)
    return version, new_store


def evolve_hypothesis(
    store: HypothesisHistoryStore,
    parent_id: str,
    changes: dict[str, Any],
    trigger: EvolutionTrigger | str,
    message: str,
    created_by: Optional[str] = None,
    related_entity_id: Optional[str] = None,
) -> tuple[HypothesisVersion, HypothesisHistoryStore]:
    """Evolve the card at *parent_id* and record the new version.

    The new card id is derived from the parent's id, so evolving the same
    parent twice collides; branch with ``attach_version`` instead.

    Raises:
        ValueError: ``Hypothesis version not found: <id>`` for an unknown
            parent, a collision, or an invalid evolved card.
    """
    parent = get_version(store, parent_id)
    evolved = evolve_hypothesis_card(parent.hypothesis, changes, message, created_by)
    return attach_version(store, parent_id, evolved, trigger, message, created_by, related_entity_id)


def abandon_hypothesis(store: HypothesisHistoryStore, version_id: str) -> HypothesisHistoryStore:
    """Move *version_id* from ``current`` to ``abandoned``."""
    get_version(store, version_id)
    abandoned = list(store.abandoned)
    if version_id not in abandoned:
        abandoned.append(version_id)
    logger.debug("Abandoned version %s", version_id)
    return HypothesisHistoryStore(
        versions=dict(store.versions),
        roots=list(store.roots),
        current=[vid for vid in store.current if vid != version_id],
        abandoned=abandoned,
    )


# ── Navigation ───────────────────────────────────────────────────────────────

def get_ancestors(store: HypothesisHistoryStore, version_id: str) -> list[HypothesisVersion]:
    """Ancestors from immediate parent to root.  Empty for unknown ids."""
    ancestors: list[HypothesisVersion] = []
    start = store.versions.get(version_id)
    parent_id = start.parent_id if start else None
    while parent_id is not None and parent_id in store.versions:
        version = store.versions[parent_id]
        ancestors.append(version)
        parent_id = version.parent_id
    return ancestors


def get_descendants(store: HypothesisHistoryStore, version_id: str) -> list[HypothesisVersion]:
    """All descendants in breadth-first order.  Empty for unknown ids."""
    descendants: list[HypothesisVersion] = []
    start = store.versions.get(version_id)
    queue = deque(start.children if start else [])
    while queue:
        version = store.versions.get(queue.popleft())
        if version is not None:
            descendants.append(version)
            queue.extend(version.children)
    return descendants


def get_root(store: HypothesisHistoryStore, version_id: str) -> Optional[HypothesisVersion]:
    ancestors = get_ancestors(store, version_id)
    if ancestors:
        return ancestors[-1]
    return store.versions.get(version_id)


def get_leaves(store: HypothesisHistoryStore, version_id: Optional[str] = None) -> list[HypothesisVersion]:
    """Childless versions reachable from *version_id* (or from every root)."""
    leaves: list[HypothesisVersion] = []
    stack = list(reversed([version_id] if version_id is not None else store.roots))
    while stack:
        version = store.versions.get(stack.pop())
        if version is None:
            continue
        if version.children:
            stack.extend(reversed(version.children))
        else:
            leaves.append(version)
    return leaves


def find_common_ancestor(store: HypothesisHistoryStore, first_id: str, second_id: str) -> Optional[str]:
    """Nearest id on both lineages (each lineage includes its own id)."""
    if first_id not in store.versions or second_id not in store.versions:
        return None
    lineage = {first_id, *(v.id for v in get_ancestors(store, first_id))}
    for candidate in [second_id, *(v.id for v in get_ancestors(store, second_id))]:
        if candidate in lineage:
            return candidate
    return None


def is_ancestor(store: HypothesisHistoryStore, ancestor_id: str, version_id: str) -> bool:
    return any(v.id == ancestor_id for v in get_ancestors(store, version_id))


# ── Diff ─────────────────────────────────────────────────────────────────────

_SCALAR_FIELDS = ("statement", "mechanism", "confidence", "notes")
_LIST_FIELDS = (
    "domain",
    "predictions_if_true",
    "predictions_if_false",
    "impossible_if_true",
    "assumptions",
    "tags",
)
_PREDICTION_FIELDS = frozenset({"predictions_if_true", "predictions_if_false"})
_CONFOUND_FIELDS = ("name", "description", "likelihood", "domain", "addressed")


def _confound_changed(old: IdentifiedConfound, new: IdentifiedConfound) -> bool:
    return any(getattr(old, f) != getattr(new, f) for f in _CONFOUND_FIELDS)


def diff_hypotheses(older: HypothesisCard, newer: HypothesisCard) -> HypothesisDiff:
    """Field-by-field changes from *older* to *newer*."""
    changes: list[HypothesisChange] = []

    for field in _SCALAR_FIELDS:
        old_val, new_val = getattr(older, field), getattr(newer, field)
        if old_val != new_val:
            change_type = "added" if old_val is None else "removed" if new_val is None else "modified"
            changes.append(HypothesisChange(
                field=field, change_type=change_type, old_value=old_val, new_value=new_val,
            ))

    predictions_added = predictions_removed = 0
    for field in _LIST_FIELDS:
        old_items = getattr(older, field) or []
        new_items = getattr(newer, field) or []
        added = [item for item in new_items if item not in old_items]
        removed = [item for item in old_items if item not in new_items]
        if field in _PREDICTION_FIELDS:
            predictions_added += len(added)
            predictions_removed += len(removed)
        if added:
            changes.append(HypothesisChange(field=field, change_type="added", new_value=added))
        if removed:
            changes.append(HypothesisChange(field=field, change_type="removed", old_value=removed))

    old_confounds = {c.id: c for c in older.confounds}
    new_confounds = {c.id: c for c in newer.confounds}
    confounds_added = [c for cid, c in new_confounds.items() if cid not in old_confounds]
    confounds_removed = [c for cid, c in old_confounds.items() if cid not in new_confounds]
    if confounds_added:
        changes.append(HypothesisChange(field="confounds", change_type="added", new_value=confounds_added))
    if confounds_removed:
        changes.append(HypothesisChange(field="confounds", change_type="removed", old_value=confounds_removed))
    for cid, new_conf in new_confounds.items():
        old_conf = old_confounds.get(cid)
        if old_conf is not None and _confound_changed(old_conf, new_conf):
            changes.append(HypothesisChange(
                field=f"confounds[{cid}]", change_type="modified", old_value=old_conf, new_value=new_conf,
            ))

    return HypothesisDiff(
        from_id=older.id,
        to_id=newer.id,
        distance=0 if older.id == newer.id else abs(newer.version - older.version),
        changes=changes,
        summary=DiffSummary(
            fields_changed=len(changes),
            predictions_added=predictions_added,
            predictions_removed=predictions_removed,
            confounds_added=len(confounds_added),
            confounds_removed=len(confounds_removed),
            confidence_delta=newer.confidence - older.confidence,
        ),
    )


# ── Graph views ──────────────────────────────────────────────────────────────

def _truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max(max_length - 3, 0)] + "..."


def generate_evolution_graph(
    store: HypothesisHistoryStore,
    max_label_length: Optional[int] = None,
) -> EvolutionGraph:
    """Nodes and edges over the whole store, for visualisation."""
    max_label_length = max_label_length or settings.evolution_label_length
    current, abandoned = set(store.current), set(store.abandoned)
    nodes: list[EvolutionGraphNode] = []
    edges: list[EvolutionGraphEdge] = []

    for vid, version in store.versions.items():
        if vid in current:
            status = EvolutionStatus.CURRENT
        elif vid in abandoned:
            status = EvolutionStatus.ABANDONED
        else:
            status = EvolutionStatus.ANCESTOR

        nodes.append(EvolutionGraphNode(
            id=vid,
            label=_truncate(version.hypothesis.statement, max_label_length),
            confidence=version.hypothesis.confidence,
            status=status,
            children=list(version.children),
            parent_id=version.parent_id,
            trigger=version.trigger,
            timestamp=version.timestamp,
            version=version.hypothesis.version,
        ))
        for child_id in version.children:
            child = store.versions[child_id]
            edges.append(EvolutionGraphEdge(
                source=vid,
                target=child_id,
                trigger=child.trigger,
                label=child.message[:EDGE_LABEL_LENGTH],
            ))

    return EvolutionGraph(nodes=nodes, edges=edges, roots=list(store.roots), current=list(store.current))


def generate_lineage_graph(
    store: HypothesisHistoryStore,
    version_id: str,
    include_descendants: bool = True,
) -> EvolutionGraph:
    """Subgraph of *version_id*, its ancestors and optionally its descendants."""
    relevant = {version_id, *(v.id for v in get_ancestors(store, version_id))}
    if include_descendants:
        relevant.update(v.id for v in get_descendants(store, version_id))

    full = generate_evolution_graph(store)
    return EvolutionGraph(
        nodes=[n for n in full.nodes if n.id in relevant],
        edges=[e for e in full.edges if e.source in relevant and e.target in relevant],
        roots=[vid for vid in full.roots if vid in relevant],
        current=[vid for vid in full.current if vid in relevant],
    )


# ── Statistics & search ──────────────────────────────────────────────────────

def get_evolution_stats(store: HypothesisHistoryStore) -> EvolutionStats:
    trigger_counts = {t.value: 0 for t in EvolutionTrigger}
    trigger_counts.update(Counter(v.trigger.value for v in store.versions.values()))

    parents = [v for v in store.versions.values() if v.children]
    total_children = sum(len(v.children) for v in parents)
    max_depth = max((len(get_ancestors(store, vid)) for vid in store.versions), default=0)

    return EvolutionStats(
        total_versions=len(store.versions),
        root_count=len(store.roots),
        current_count=len(store.current),
        abandoned_count=len(store.abandoned),
        max_depth=max_depth,
        avg_branching_factor=total_children / len(parents) if parents else 0.0,
        trigger_counts=trigger_counts,
    )


def find_by_trigger(store: HypothesisHistoryStore, trigger: EvolutionTrigger | str) -> list[HypothesisVersion]:
    trigger = EvolutionTrigger(trigger)
    return [v for v in store.versions.values() if v.trigger == trigger]


def find_by_time_range(
    store: HypothesisHistoryStore,
    start: datetime | str,
    end: datetime | str,
) -> list[HypothesisVersion]:
    """Versions whose timestamp lies in [start, end], inclusive."""
    lo, hi = to_utc(start), to_utc(end)
    return [v for v in store.versions.values() if lo <= v.timestamp <= hi]


def check_consistency(store: HypothesisHistoryStore | dict[str, Any]) -> list[str]:
    """Invariant violations in *store*; empty when consistent.

    Accepts raw (e.g. deserialized) store data, which the model itself
    would refuse to build, so the problems can be reported instead.
    """
    if isinstance(store, HypothesisHistoryStore):
        return find_store_violations(store.versions, store.roots, store.current, store.abandoned)
    versions = {
        vid: HypothesisVersion.model_validate(raw)
        for vid, raw in (store.get("versions") or {}).items()
    }
    return find_store_violations(
        versions,
        list(store.get("roots") or []),
        list(store.get("current") or []),
        list(store.get("abandoned") or []),
    )
