"""Lifecycle state machine — guarded transitions over HypothesisWithLifecycle.

Rules:
    1. ``transition_hypothesis`` never raises for a rejected transition; it
       returns ``success=False`` with the unchanged hypothesis and an error.
    2. A successful transition returns a new object; the input is untouched.
    3. Every successful transition stamps state_entered_at, last_activity_at
       and updated_at with the same "now".
    4. falsified and superseded are terminal: no outbound transitions.

Side effects are declared, not executed:
    - entering falsified   -> archive {hypothesisId, reason: "falsified"}
    - entering superseded  -> create_successor_link {fromId, toId}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional, Union, cast

from pydantic import BaseModel, ValidationError

from brenner_loop.domain.enums import HypothesisState, LifecycleEventType, SideEffectType
from brenner_loop.domain.hypothesis import HypothesisCard
from brenner_loop.domain.lifecycle import (
    HYPOTHESIS_STATE_CONFIG,
    LIFECYCLE_EVENT_MODELS,
    TERMINAL_STATES,
    Abandon,
    CreateSuccessor,
    HypothesisWithLifecycle,
    LifecycleSideEffect,
    LifecycleStats,
    LifecycleTransitionResult,
    LockPrediction,
    RecordFalsification,
    RecordSupport,
    lifecycle_event_adapter,
)
from brenner_loop.foundation.clock import to_utc, utc_now
from brenner_loop.foundation.validation import is_blank

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60

EventLike = Union[BaseModel, dict[str, Any]]

# A guard returns None when satisfied, otherwise the failure message.
Guard = Callable[[HypothesisWithLifecycle, BaseModel], Optional[str]]
Action = Callable[[HypothesisWithLifecycle, BaseModel, datetime], dict[str, Any]]


# ── Guards ───────────────────────────────────────────────────────────────────

def _prediction_lockable(h: HypothesisWithLifecycle, event: BaseModel) -> Optional[str]:
    predictions = h.all_predictions
    if not predictions:
        return "No predictions available to lock"
    if isinstance(event, LockPrediction):
        index = event.prediction_index
        if index < 0 or index >= len(predictions):
            return f"Invalid prediction index: {index}"
        if str(index) in h.locked_predictions:
            return "Prediction is already locked"
    return None


def _has_locked_predictions(h: HypothesisWithLifecycle, event: BaseModel) -> Optional[str]:
    if not h.locked_predictions:
        return "Must lock at least one prediction first; no predictions are locked"
    return None


def _has_falsification_conditions(h: HypothesisWithLifecycle, event: BaseModel) -> Optional[str]:
    if not h.impossible_if_true:
        return "Must have falsification conditions before testing"
    return None


def _has_required_fields(h: HypothesisWithLifecycle, event: BaseModel) -> Optional[str]:
    if isinstance(event, RecordFalsification) and is_blank(event.reason):
        return "Falsification requires a reason"
    if isinstance(event, CreateSuccessor) and is_blank(event.successor_id):
        return "Supersession requires successor ID"
    return None


def _confidence_in_range(h: HypothesisWithLifecycle, event: BaseModel) -> Optional[str]:
    if isinstance(event, RecordSupport) and event.confidence is not None:
        if not 0.0 <= event.confidence <= 100.0:
            return f"Confidence must be between 0 and 100 (got {event.confidence})"
    return None


# ── Actions ──────────────────────────────────────────────────────────────────

def _lock_prediction(h: HypothesisWithLifecycle, event: BaseModel, now: datetime) -> dict[str, Any]:
    index = cast(LockPrediction, event).prediction_index
    return {"locked_predictions": [*h.locked_predictions, str(index)]}


def _record_support(h: HypothesisWithLifecycle, event: BaseModel, now: datetime) -> dict[str, Any]:
    confidence = cast(RecordSupport, event).confidence
    return {} if confidence is None else {"confidence": confidence}


def _record_falsification(h: HypothesisWithLifecycle, event: BaseModel, now: datetime) -> dict[str, Any]:
    return {"falsification_reason": cast(RecordFalsification, event).reason, "confidence": 0.0}


def _create_successor(h: HypothesisWithLifecycle, event: BaseModel, now: datetime) -> dict[str, Any]:
    return {"successor_id": cast(CreateSuccessor, event).successor_id}


def _reactivate(h: HypothesisWithLifecycle, event: BaseModel, now: datetime) -> dict[str, Any]:
    return {
        "locked_predictions": [],
        "successor_id": None,
        "falsification_reason": None,
        "falsification_learning": None,
    }


def _abandon(h: HypothesisWithLifecycle, event: BaseModel, now: datetime) -> dict[str, Any]:
    return {
        "falsification_reason": cast(Abandon, event).reason or "Abandoned by user",
        "falsification_learning": "Hypothesis was abandoned before testing",
        "confidence": 0.0,
    }


def _no_changes(h: HypothesisWithLifecycle, event: BaseModel, now: datetime) -> dict[str, Any]:
    return {}


# ── Transition table ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TransitionDef:
    sources: frozenset[HypothesisState]
    target: HypothesisState
    guards: tuple[Guard, ...]
    action: Action


_S = HypothesisState

TRANSITIONS: dict[LifecycleEventType, TransitionDef] = {
    LifecycleEventType.LOCK_PREDICTION: TransitionDef(
        frozenset({_S.DRAFT, _S.ACTIVE}), _S.ACTIVE, (_prediction_lockable,), _lock_prediction,
    ),
    LifecycleEventType.START_TESTING: TransitionDef(
        frozenset({_S.ACTIVE, _S.SUPPORTED}), _S.TESTING,
        (_has_locked_predictions, _has_falsification_conditions), _no_changes,
    ),
    LifecycleEventType.RECORD_SUPPORT: TransitionDef(
        frozenset({_S.TESTING}), _S.SUPPORTED, (_confidence_in_range,), _record_support,
    ),
    LifecycleEventType.RECORD_FALSIFICATION: TransitionDef(
        frozenset({_S.TESTING}), _S.FALSIFIED, (_has_required_fields,), _record_falsification,
    ),
    LifecycleEventType.CREATE_SUCCESSOR: TransitionDef(
        frozenset({_S.ACTIVE, _S.TESTING, _S.SUPPORTED}), _S.SUPERSEDED,
        (_has_required_fields,), _create_successor,
    ),
    LifecycleEventType.PAUSE: TransitionDef(
        frozenset({_S.ACTIVE, _S.TESTING, _S.SUPPORTED}), _S.DORMANT, (), _no_changes,
    ),
    LifecycleEventType.RESUME: TransitionDef(
        frozenset({_S.DORMANT}), _S.ACTIVE, (), _no_changes,
    ),
    LifecycleEventType.REACTIVATE: TransitionDef(
        frozenset({_S.DORMANT}), _S.DRAFT, (), _reactivate,
    ),
    LifecycleEventType.ABANDON: TransitionDef(
        frozenset({_S.DRAFT, _S.DORMANT}), _S.FALSIFIED, (), _abandon,
    ),
}


def _lookup(event_type: Any) -> Optional[tuple[LifecycleEventType, TransitionDef]]:
    try:
        key = LifecycleEventType(event_type)
    except ValueError:
        return None
    return key, TRANSITIONS[key]


def _event_type(event: EventLike) -> Any:
    if isinstance(event, dict):
        return event.get("type")
    return getattr(event, "type", None)


def _parse_event(event: EventLike) -> BaseModel:
    """Validate *event* into its typed model.  Raises ValidationError.

    Other pydantic models are re-validated from their dumped fields.
    """
    if isinstance(event, LIFECYCLE_EVENT_MODELS):
        return event
    if isinstance(event, BaseModel):
        event = event.model_dump()
    return lifecycle_event_adapter.validate_python(event)


def _first_guard_failure(
    definition: TransitionDef,
    h: HypothesisWithLifecycle,
    event: BaseModel,
) -> Optional[str]:
    for guard in definition.guards:
        message = guard(h, event)
        if message is not None:
            return message
    return None


# ── Public API ───────────────────────────────────────────────────────────────

def _failure(h: HypothesisWithLifecycle, error: str) -> LifecycleTransitionResult:
    logger.warning("Rejected transition for %s: %s", h.id, error)
    return LifecycleTransitionResult(success=False, new_state=h.state, hypothesis=h, error=error)


def transition_hypothesis(
    hypothesis: HypothesisWithLifecycle,
    event: EventLike,
) -> LifecycleTransitionResult:
    """Attempt one transition.  Never raises for an invalid transition."""
    event_type = _event_type(event)
    found = _lookup(event_type)
    if found is None:
        return _failure(hypothesis, f"Unknown event type: {event_type}")
    key, definition = found

    try:
        parsed = _parse_event(event)
    except ValidationError as exc:
        detail = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'][1:]) or 'event'}: {err['msg']}" for err in exc.errors()
        )
        return _failure(hypothesis, f"Invalid {key.value} event: {detail}")

    if hypothesis.state not in definition.sources:
        error = f"Cannot {key.value} from state '{hypothesis.state.value}'"
        guard_error = _first_guard_failure(definition, hypothesis, parsed)
        if guard_error:
            error = f"{error}: {guard_error}"
        return _failure(hypothesis, error)

    guard_error = _first_guard_failure(definition, hypothesis, parsed)
    if guard_error:
        return _failure(hypothesis, guard_error)

    now = utc_now()
    updates = definition.action(hypothesis, parsed, now)
    updates.update(
        state=definition.target,
        state_entered_at=now,
        last_activity_at=now,
        updated_at=now,
    )
    updated = hypothesis.model_copy(update=updates)

    side_effects: list[LifecycleSideEffect] = []
    if definition.target == HypothesisState.FALSIFIED:
        side_effects.append(LifecycleSideEffect(
            type=SideEffectType.ARCHIVE,
            payload={"hypothesisId": hypothesis.id, "reason": "falsified"},
        ))
    if definition.target == HypothesisState.SUPERSEDED and updated.successor_id:
        side_effects.append(LifecycleSideEffect(
            type=SideEffectType.CREATE_SUCCESSOR_LINK,
            payload={"fromId": hypothesis.id, "toId": updated.successor_id},
        ))

    logger.debug(
        "Transition %s: %s --%s--> %s",
        hypothesis.id, hypothesis.state.value, key.value, definition.target.value,
    )
    return LifecycleTransitionResult(
        success=True,
        new_state=definition.target,
        hypothesis=updated,
        side_effects=side_effects,
    )


def get_available_transitions(hypothesis: HypothesisWithLifecycle) -> list[LifecycleEventType]:
    """Event types valid from the current state, ignoring event guards."""
    return list(HYPOTHESIS_STATE_CONFIG[hypothesis.state].transitions)


def can_transition(hypothesis: HypothesisWithLifecycle, event_type: LifecycleEventType | str) -> bool:
    found = _lookup(event_type)
    return found is not None and hypothesis.state in found[1].sources


def can_transition_with_event(hypothesis: HypothesisWithLifecycle, event: EventLike) -> bool:
    """Like ``can_transition`` but also runs the event's guards."""
    found = _lookup(_event_type(event))
    if found is None or hypothesis.state not in found[1].sources:
        return False
    try:
        parsed = _parse_event(event)
    except ValidationError:
        return False
    return _first_guard_failure(found[1], hypothesis, parsed) is None


def is_terminal_state(state: HypothesisState | str) -> bool:
    return HypothesisState(state) in TERMINAL_STATES


def is_resolvable(state: HypothesisState | str) -> bool:
    """Non-terminal and not parked in dormant."""
    state = HypothesisState(state)
    return not is_terminal_state(state) and state != HypothesisState.DORMANT


def _days_between(start: datetime | str, end: datetime | str) -> float:
    return (to_utc(end) - to_utc(start)).total_seconds() / SECONDS_PER_DAY


def should_be_dormant(
    hypothesis: HypothesisWithLifecycle | dict[str, Any],
    now: datetime | str | None = None,
) -> bool:
    """True iff the hypothesis is active and idle for at least its threshold."""
    h = HypothesisWithLifecycle.model_validate(hypothesis)
    if h.state != HypothesisState.ACTIVE:
        return False
    elapsed = _days_between(h.last_activity_at, now if now is not None else utc_now())
    return elapsed >= h.dormancy_threshold_days


# ── Factories ────────────────────────────────────────────────────────────────

def create_hypothesis_with_lifecycle(
    card: HypothesisCard,
    dormancy_threshold_days: Optional[int] = None,
) -> HypothesisWithLifecycle:
    """Wrap *card* in a fresh draft lifecycle."""
    now = utc_now()
    extra: dict[str, Any] = {"state_entered_at": now, "last_activity_at": now}
    if dormancy_threshold_days is not None:
        extra["dormancy_threshold_days"] = dormancy_threshold_days
    return HypothesisWithLifecycle.model_validate({**card.model_dump(), **extra})


def upgrade_to_lifecycle(
    card: HypothesisCard | dict[str, Any],
    state: HypothesisState | str = HypothesisState.DRAFT,
) -> HypothesisWithLifecycle:
    """Attach lifecycle tracking to an existing (possibly deserialized) card.

    Last activity is taken from the card's ``updated_at``.
    """
    card = HypothesisCard.model_validate(card)
    return HypothesisWithLifecycle.model_validate({
        **card.model_dump(),
        "state": HypothesisState(state),
        "state_entered_at": utc_now(),
        "locked_predictions": [],
        "last_activity_at": card.updated_at,
    })


# ── Statistics ───────────────────────────────────────────────────────────────

def calculate_lifecycle_stats(hypotheses: list[HypothesisWithLifecycle]) -> LifecycleStats:
    """Aggregate counts and timings over a collection of hypotheses.

    Without a per-transition history, "days in draft" is measured as
    creation to current-state entry, which is exact only for hypotheses
    that left draft directly into their current state.
    """
    by_state = {s.value: 0 for s in HypothesisState}
    draft_days: list[float] = []
    resolution_days: list[float] = []
    falsified = superseded = 0

    for h in hypotheses:
        by_state[h.state.value] += 1
        days = _days_between(h.created_at, h.state_entered_at)
        if h.state != HypothesisState.DRAFT and days >= 0:
            draft_days.append(days)
        if is_terminal_state(h.state):
            if days >= 0:
                resolution_days.append(days)
            if h.state == HypothesisState.FALSIFIED:
                falsified += 1
            else:
                superseded += 1

    total = len(hypotheses)
    return LifecycleStats(
        total_hypotheses=total,
        by_state=by_state,
        avg_days_in_draft=sum(draft_days) / len(draft_days) if draft_days else 0.0,
        avg_days_to_resolution=sum(resolution_days) / len(resolution_days) if resolution_days else 0.0,
        falsification_rate=falsified / total if total else 0.0,
        supersession_rate=superseded / total if total else 0.0,
    )
