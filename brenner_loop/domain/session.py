"""ResearchSession — the unit of persistence.

One session bundles everything a researcher builds in one line of inquiry:
lifecycle hypotheses, their version history, the evidence ledger, the
graveyard and any arenas.  Storage collaborators save and load whole
sessions; the core never persists anything piecemeal.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from brenner_loop.domain.arena import HypothesisArena
from brenner_loop.domain.evidence import EvidenceEntry
from brenner_loop.domain.evolution import HypothesisHistoryStore
from brenner_loop.domain.graveyard import FalsifiedHypothesis
from brenner_loop.domain.lifecycle import HypothesisWithLifecycle
from brenner_loop.foundation.clock import UtcDatetime, utc_now
from brenner_loop.foundation.identifiers import validate_session_id


class ResearchSession(BaseModel):
    id: str
    created_at: UtcDatetime = Field(default_factory=utc_now)
    updated_at: UtcDatetime = Field(default_factory=utc_now)

    hypotheses: dict[str, HypothesisWithLifecycle] = Field(default_factory=dict)
    history: HypothesisHistoryStore = Field(default_factory=HypothesisHistoryStore)
    evidence_ledger: list[EvidenceEntry] = Field(default_factory=list)
    graveyard: list[FalsifiedHypothesis] = Field(default_factory=list)
    arenas: list[HypothesisArena] = Field(default_factory=list)

    model_config = {"frozen": True}


def create_session(session_id: str) -> ResearchSession:
    """Start an empty session.  Raises ``ValueError`` for a malformed id."""
    validate_session_id(session_id)
    now = utc_now()
    return ResearchSession(id=session_id, created_at=now, updated_at=now)


def touch(session: ResearchSession, **updates: object) -> ResearchSession:
    """Return *session* with *updates* applied and ``updated_at`` bumped."""
    return session.model_copy(update={**updates, "updated_at": utc_now()})
