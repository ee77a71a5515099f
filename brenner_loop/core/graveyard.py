"""Graveyard operations — burial, amendments and failure-pattern analysis.

Amendments return new entries.  ``add_successor`` and ``add_contributed_to``
return the very same object when the id is already present.
"""

from __future__ import annotations

import logging
import random
from collections import Counter
from typing import Any, Optional

from pydantic import BaseModel

from brenner_loop.domain.enums import DeathType, HypothesisState
from brenner_loop.domain.evidence import EvidenceEntry
from brenner_loop.domain.graveyard import (
    BRENNER_FALSIFICATION_QUOTES,
    DEATH_TYPE_ICONS,
    DEATH_TYPE_LABELS,
    FalsificationLearning,
    FalsifiedHypothesis,
    create_falsified_hypothesis,
    generate_graveyard_id,
)
from brenner_loop.domain.hypothesis import HypothesisCard
from brenner_loop.domain.lifecycle import HypothesisWithLifecycle
from brenner_loop.foundation.validation import is_blank
from brenner_loop.store.quotes import QuoteSearcher

logger = logging.getLogger(__name__)

TOP_DOMAIN_COUNT = 5
DOMINANT_DEATH_TYPE_PERCENT = 30.0
UNPROCESSED_FRACTION = 0.5


class DomainCount(BaseModel):
    domain: str
    count: int

    model_config = {"frozen": True}


class GraveyardStats(BaseModel):
    total_falsified: int
    by_death_type: dict[str, int]
    avg_lessons_per_falsification: float
    with_successors: int
    with_epitaphs: int
    top_domains: list[DomainCount]

    model_config = {"frozen": True}


class FailurePattern(BaseModel):
    name: str
    frequency: float
    description: str
    matching_entry_ids: list[str]

    model_config = {"frozen": True}


# ── Quotes ───────────────────────────────────────────────────────────────────

def select_brenner_quote(
    death_type: DeathType | str,
    searcher: Optional[QuoteSearcher] = None,
    text: str = "",
) -> str:
    """Pick a quote for a burial.

    With a *searcher* and non-empty *text*, the best corpus match wins;
    otherwise a random quote for the death type is used.
    """
    if searcher is not None and text.strip():
        matches = searcher.search(text, limit=1)
        if matches:
            return matches[0].quote
    return random.choice(BRENNER_FALSIFICATION_QUOTES[DeathType(death_type)])


# ── Burial ───────────────────────────────────────────────────────────────────

def bury_hypothesis(
    hypothesis: HypothesisWithLifecycle,
    killing_blow: EvidenceEntry,
    sequence: int,
    death_type: DeathType | str,
    death_summary: str,
    learning: Optional[FalsificationLearning | dict[str, Any]] = None,
    epitaph: str = "",
    archived_by: Optional[str] = None,
    searcher: Optional[QuoteSearcher] = None,
) -> FalsifiedHypothesis:
    """Convert a falsified lifecycle hypothesis into a graveyard entry.

    Raises:
        ValueError: If the hypothesis is not in the falsified state or has
            no session id.
        InvalidRecordError: If the resulting entry fails validation.
    """
    if hypothesis.state != HypothesisState.FALSIFIED:
        raise ValueError(
            f"Only falsified hypotheses can be buried ({hypothesis.id} is '{hypothesis.state.value}')"
        )
    session_id = hypothesis.session_id or killing_blow.session_id
    if is_blank(session_id):
        raise ValueError(f"Hypothesis {hypothesis.id} has no session id")

    # The graveyard embeds the plain card, not its lifecycle state.
    card = HypothesisCard.model_validate(hypothesis.model_dump(include=set(HypothesisCard.model_fields)))
    entry = create_falsified_hypothesis(
        id=generate_graveyard_id(session_id, sequence),
        hypothesis=card,
        session_id=session_id,
        killing_blow=killing_blow,
        death_type=death_type,
        death_summary=death_summary,
        brenner_quote=select_brenner_quote(death_type, searcher, death_summary),
        learning=learning,
        epitaph=epitaph,
        archived_by=archived_by,
        notes=hypothesis.falsification_reason,
    )
    logger.info("Buried %s as %s (%s)", hypothesis.id, entry.id, entry.death_type.value)
    return entry


# ── Amendments ───────────────────────────────────────────────────────────────

def add_successor(entry: FalsifiedHypothesis, successor_id: str) -> FalsifiedHypothesis:
    if successor_id in entry.successor_hypothesis_ids:
        return entry
    return entry.model_copy(update={"successor_hypothesis_ids": [*entry.successor_hypothesis_ids, successor_id]})


def add_contributed_to(entry: FalsifiedHypothesis, hypothesis_id: str) -> FalsifiedHypothesis:
    if hypothesis_id in entry.contributed_to_ids:
        return entry
    return entry.model_copy(update={"contributed_to_ids": [*entry.contributed_to_ids, hypothesis_id]})


def update_epitaph(entry: FalsifiedHypothesis, epitaph: str) -> FalsifiedHypothesis:
    return entry.model_copy(update={"epitaph": epitaph})


def update_learning(entry: FalsifiedHypothesis, **changes: list[str]) -> FalsifiedHypothesis:
    """Replace the given learning lists; omitted lists are kept."""
    unknown = set(changes) - set(FalsificationLearning.model_fields)
    if unknown:
        raise ValueError(f"Unknown learning fields: {sorted(unknown)}")
    learning = entry.learning.model_copy(update={k: list(v) for k, v in changes.items()})
    return entry.model_copy(update={"learning": learning})


# ── Statistics & patterns ────────────────────────────────────────────────────

def calculate_graveyard_stats(entries: list[FalsifiedHypothesis]) -> GraveyardStats:
    by_death_type = {d.value: 0 for d in DeathType}
    domains: Counter[str] = Counter()
    lessons = with_successors = with_epitaphs = 0

    for entry in entries:
        by_death_type[entry.death_type.value] += 1
        lessons += len(entry.learning.lessons_learned)
        if entry.successor_hypothesis_ids:
            with_successors += 1
        if not is_blank(entry.epitaph):
            with_epitaphs += 1
        domains.update(entry.hypothesis.domain)

    return GraveyardStats(
        total_falsified=len(entries),
        by_death_type=by_death_type,
        avg_lessons_per_falsification=lessons / len(entries) if entries else 0.0,
        with_successors=with_successors,
        with_epitaphs=with_epitaphs,
        top_domains=[DomainCount(domain=d, count=c) for d, c in domains.most_common(TOP_DOMAIN_COUNT)],
    )


def analyze_failure_patterns(entries: list[FalsifiedHypothesis]) -> list[FailurePattern]:
    """Named patterns over a collection of graveyard entries."""
    if not entries:
        return []
    total = len(entries)
    patterns: list[FailurePattern] = []

    ids_by_type: dict[DeathType, list[str]] = {d: [] for d in DeathType}
    for entry in entries:
        ids_by_type[entry.death_type].append(entry.id)
    # max() keeps the first of equal counts, i.e. enum order
    top_type = max(ids_by_type, key=lambda d: len(ids_by_type[d]))
    top_ids = ids_by_type[top_type]
    frequency = 100.0 * len(top_ids) / total
    if frequency >= DOMINANT_DEATH_TYPE_PERCENT:
        label = DEATH_TYPE_LABELS[top_type]
        patterns.append(FailurePattern(
            name=f"Frequent {label}",
            frequency=frequency,
            description=(
                f"{frequency:.0f}% of hypotheses fail due to {label.lower()}. Consider addressing "
                "this pattern earlier in the hypothesis development process."
            ),
            matching_entry_ids=top_ids,
        ))

    productive = [e.id for e in entries if e.successor_hypothesis_ids]
    if productive:
        rate = 100.0 * len(productive) / total
        patterns.append(FailurePattern(
            name="Productive Failures",
            frequency=rate,
            description=(
                f"{rate:.0f}% of falsified hypotheses led to new hypotheses. "
                "This is a healthy sign of learning from failure."
            ),
            matching_entry_ids=productive,
        ))

    unprocessed = [e.id for e in entries if is_blank(e.epitaph)]
    if len(unprocessed) > total * UNPROCESSED_FRACTION:
        rate = 100.0 * len(unprocessed) / total
        patterns.append(FailurePattern(
            name="Unprocessed Failures",
            frequency=rate,
            description=(
                f"{rate:.0f}% of falsifications lack epitaphs. "
                "Consider spending more time documenting lessons learned."
            ),
            matching_entry_ids=unprocessed,
        ))

    return patterns


def summarize_falsification(entry: FalsifiedHypothesis) -> str:
    """One-line summary, e.g. ``💀 Direct Falsification on Jan 05, 2026: ...``."""
    icon = DEATH_TYPE_ICONS[entry.death_type]
    label = DEATH_TYPE_LABELS[entry.death_type]
    date = entry.falsified_at.strftime("%b %d, %Y")
    return f"{icon} {label} on {date}: {entry.death_summary}"
