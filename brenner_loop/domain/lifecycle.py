"""Lifecycle domain — states, events and transition results for hypotheses.

A hypothesis is not just "open" or "closed".  It moves from draft through
testing to a resolution:

    draft      Initial creation, freely editable, nothing locked
    active     At least one prediction locked
    testing    Evidence collection in progress
    supported  Evidence consistent with the hypothesis so far
    falsified  Refuted by discriminative evidence (terminal)
    superseded Replaced by a better formulation (terminal)
    dormant    Parked; no recent activity

Events are a tagged union on ``type``.  Transitions themselves live in
``brenner_loop.core.lifecycle_machine``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from brenner_loop.config import settings
from brenner_loop.domain.enums import HypothesisState, LifecycleEventType, SideEffectType
from brenner_loop.domain.hypothesis import HypothesisCard
from brenner_loop.foundation.clock import UtcDatetime, utc_now
from brenner_loop.foundation.validation import parse_record

TERMINAL_STATES = frozenset({HypothesisState.FALSIFIED, HypothesisState.SUPERSEDED})


class HypothesisWithLifecycle(HypothesisCard):
    """A HypothesisCard with lifecycle tracking.

    Mutated only through FSM transitions, each returning a new object.
    ``locked_predictions`` holds indices into
    ``predictions_if_true + predictions_if_false``, stored as strings.
    """

    state: HypothesisState = HypothesisState.DRAFT
    state_entered_at: UtcDatetime = Field(default_factory=utc_now)
    locked_predictions: list[str] = Field(default_factory=list)
    successor_id: Optional[str] = None
    falsification_reason: Optional[str] = None
    falsification_learning: Optional[str] = None
    last_activity_at: UtcDatetime = Field(default_factory=utc_now)
    dormancy_threshold_days: int = Field(default_factory=lambda: settings.dormancy_threshold_days)

    @property
    def all_predictions(self) -> list[str]:
        return [*self.predictions_if_true, *self.predictions_if_false]


# ── Events ───────────────────────────────────────────────────────────────────

class LockPrediction(BaseModel):
    type: Literal["LOCK_PREDICTION"] = "LOCK_PREDICTION"
    prediction_index: int

    model_config = {"frozen": True}


class StartTesting(BaseModel):
    type: Literal["START_TESTING"] = "START_TESTING"

    model_config = {"frozen": True}


class RecordSupport(BaseModel):
    type: Literal["RECORD_SUPPORT"] = "RECORD_SUPPORT"
    confidence: Optional[float] = None

    model_config = {"frozen": True}


class RecordFalsification(BaseModel):
    type: Literal["RECORD_FALSIFICATION"] = "RECORD_FALSIFICATION"
    reason: str

    model_config = {"frozen": True}


class CreateSuccessor(BaseModel):
    type: Literal["CREATE_SUCCESSOR"] = "CREATE_SUCCESSOR"
    successor_id: str

    model_config = {"frozen": True}


class Pause(BaseModel):
    type: Literal["PAUSE"] = "PAUSE"

    model_config = {"frozen": True}


class Resume(BaseModel):
    type: Literal["RESUME"] = "RESUME"

    model_config = {"frozen": True}


class Reactivate(BaseModel):
    type: Literal["REACTIVATE"] = "REACTIVATE"

    model_config = {"frozen": True}


class Abandon(BaseModel):
    type: Literal["ABANDON"] = "ABANDON"
    reason: str = ""

    model_config = {"frozen": True}


LifecycleEvent = Annotated[
    Union[
        LockPrediction,
        StartTesting,
        RecordSupport,
        RecordFalsification,
        CreateSuccessor,
        Pause,
        Resume,
        Reactivate,
        Abandon,
    ],
    Field(discriminator="type"),
]

lifecycle_event_adapter: TypeAdapter[Any] = TypeAdapter(LifecycleEvent)

LIFECYCLE_EVENT_MODELS: tuple[type[BaseModel], ...] = (
    LockPrediction,
    StartTesting,
    RecordSupport,
    RecordFalsification,
    CreateSuccessor,
    Pause,
    Resume,
    Reactivate,
    Abandon,
)


# ── Results ──────────────────────────────────────────────────────────────────

class LifecycleSideEffect(BaseModel):
    """Work the caller should perform after a successful transition."""

    type: SideEffectType
    payload: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}


class LifecycleTransitionResult(BaseModel):
    success: bool
    new_state: HypothesisState
    hypothesis: HypothesisWithLifecycle
    error: Optional[str] = None
    side_effects: list[LifecycleSideEffect] = Field(default_factory=list)

    model_config = {"frozen": True}


class LifecycleStats(BaseModel):
    total_hypotheses: int
    by_state: dict[str, int]
    avg_days_in_draft: float
    avg_days_to_resolution: float
    falsification_rate: float
    supersession_rate: float

    model_config = {"frozen": True}


# ── State configuration ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class StateConfig:
    label: str
    description: str
    editable: bool
    deletable: bool
    transitions: tuple[LifecycleEventType, ...]


HYPOTHESIS_STATE_CONFIG: dict[HypothesisState, StateConfig] = {
    HypothesisState.DRAFT: StateConfig(
        label="Draft",
        description="Initial creation, freely editable",
        editable=True,
        deletable=True,
        transitions=(LifecycleEventType.LOCK_PREDICTION, LifecycleEventType.ABANDON),
    ),
    HypothesisState.ACTIVE: StateConfig(
        label="Active",
        description="Actively working, predictions locked",
        editable=False,
        deletable=False,
        transitions=(
            LifecycleEventType.LOCK_PREDICTION,
            LifecycleEventType.START_TESTING,
            LifecycleEventType.CREATE_SUCCESSOR,
            LifecycleEventType.PAUSE,
        ),
    ),
    HypothesisState.TESTING: StateConfig(
        label="Testing",
        description="Evidence collection in progress",
        editable=False,
        deletable=False,
        transitions=(
            LifecycleEventType.RECORD_SUPPORT,
            LifecycleEventType.RECORD_FALSIFICATION,
            LifecycleEventType.CREATE_SUCCESSOR,
            LifecycleEventType.PAUSE,
        ),
    ),
    HypothesisState.SUPPORTED: StateConfig(
        label="Supported",
        description="Evidence consistent, passed tests",
        editable=False,
        deletable=False,
        transitions=(
            LifecycleEventType.START_TESTING,
            LifecycleEventType.CREATE_SUCCESSOR,
            LifecycleEventType.PAUSE,
        ),
    ),
    HypothesisState.FALSIFIED: StateConfig(
        label="Falsified",
        description="Definitively refuted by evidence",
        editable=False,
        deletable=False,
        transitions=(),
    ),
    HypothesisState.SUPERSEDED: StateConfig(
        label="Superseded",
        description="Replaced by refined formulation",
        editable=False,
        deletable=False,
        transitions=(),
    ),
    HypothesisState.DORMANT: StateConfig(
        label="Dormant",
        description="Paused, no recent activity",
        editable=False,
        deletable=True,
        transitions=(
            LifecycleEventType.RESUME,
            LifecycleEventType.REACTIVATE,
            LifecycleEventType.ABANDON,
        ),
    ),
}


def get_state_label(state: HypothesisState | str) -> str:
    return HYPOTHESIS_STATE_CONFIG[HypothesisState(state)].label


def get_state_description(state: HypothesisState | str) -> str:
    return HYPOTHESIS_STATE_CONFIG[HypothesisState(state)].description


def is_state_editable(state: HypothesisState | str) -> bool:
    return HYPOTHESIS_STATE_CONFIG[HypothesisState(state)].editable


def is_state_deletable(state: HypothesisState | str) -> bool:
    return HYPOTHESIS_STATE_CONFIG[HypothesisState(state)].deletable


def is_hypothesis_state(value: Any) -> bool:
    return isinstance(value, str) and value in {s.value for s in HypothesisState}


def is_hypothesis_with_lifecycle(obj: Any) -> bool:
    """True for models and deserialized dicts (ISO date strings included)."""
    parsed, _ = parse_record(HypothesisWithLifecycle, obj)
    return parsed is not None
