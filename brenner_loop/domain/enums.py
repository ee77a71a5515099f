"""Controlled enumerations for the brenner-loop domain.

Every categorical field in the domain MUST reference an enum defined here.
Values are the exact serialized spellings used by stored sessions, so
renaming a value is a storage-format change.
"""

from __future__ import annotations

from enum import Enum


class TestType(str, Enum):
    """Kinds of test that can generate evidence."""

    __test__ = False  # not a pytest class

    NATURAL_EXPERIMENT = "natural_experiment"
    CONTROLLED_STUDY = "controlled_study"
    CROSS_CONTEXT = "cross_context"
    MECHANISM_BLOCK = "mechanism_block"
    DOSE_RESPONSE = "dose_response"
    LITERATURE = "literature"
    OBSERVATION = "observation"
    TEMPORAL_ANALYSIS = "temporal_analysis"


class EvidenceResult(str, Enum):
    """Outcome of a recorded test against one hypothesis version."""

    SUPPORTS = "supports"
    CHALLENGES = "challenges"
    ELIMINATES = "eliminates"
    INCONCLUSIVE = "inconclusive"


class ArenaResult(str, Enum):
    """Outcome of a shared arena test for one competitor."""

    SUPPORTS = "supports"
    CHALLENGES = "challenges"
    ELIMINATES = "eliminates"
    NEUTRAL = "neutral"


class PredictionBoldness(str, Enum):
    """How much a prediction sticks its neck out."""

    VAGUE = "vague"
    SPECIFIC = "specific"
    PRECISE = "precise"
    SURPRISING = "surprising"


class HypothesisState(str, Enum):
    """Lifecycle states of a hypothesis.

    falsified and superseded are terminal.
    """

    DRAFT = "draft"
    ACTIVE = "active"
    TESTING = "testing"
    SUPPORTED = "supported"
    FALSIFIED = "falsified"
    SUPERSEDED = "superseded"
    DORMANT = "dormant"


class LifecycleEventType(str, Enum):
    LOCK_PREDICTION = "LOCK_PREDICTION"
    START_TESTING = "START_TESTING"
    RECORD_SUPPORT = "RECORD_SUPPORT"
    RECORD_FALSIFICATION = "RECORD_FALSIFICATION"
    CREATE_SUCCESSOR = "CREATE_SUCCESSOR"
    PAUSE = "PAUSE"
    RESUME = "RESUME"
    REACTIVATE = "REACTIVATE"
    ABANDON = "ABANDON"


class SideEffectType(str, Enum):
    """Work the caller should perform after a successful transition."""

    NOTIFY = "notify"
    ARCHIVE = "archive"
    CREATE_SUCCESSOR_LINK = "create_successor_link"
    LOG = "log"


class EvolutionTrigger(str, Enum):
    """What caused a hypothesis to evolve into a new version."""

    MANUAL = "manual"
    LEVEL_SPLIT = "level_split"
    EXCLUSION_TEST = "exclusion_test"
    OBJECT_TRANSPOSE = "object_transpose"
    SCALE_CHECK = "scale_check"
    EVIDENCE = "evidence"
    AGENT_FEEDBACK = "agent_feedback"


class EvolutionStatus(str, Enum):
    """Position of a version in the evolution graph."""

    CURRENT = "current"
    ANCESTOR = "ancestor"
    ABANDONED = "abandoned"


class CompetitorSource(str, Enum):
    """How a hypothesis entered an arena."""

    ORIGINAL = "original"
    USER_ADDED = "user_added"
    AGENT_SUGGESTED = "agent_suggested"
    LEVEL_SPLIT = "level_split"
    EXCLUSION_TEST = "exclusion_test"
    OBJECT_TRANSPOSE = "object_transpose"
    SCALE_CHECK = "scale_check"


class ArenaStatus(str, Enum):
    OPEN = "open"
    RESOLVED = "resolved"


class DeathType(str, Enum):
    """How a hypothesis met its end."""

    DIRECT_FALSIFICATION = "direct_falsification"
    MECHANISM_FAILURE = "mechanism_failure"
    EFFECT_SIZE_COLLAPSE = "effect_size_collapse"
    SUPERSEDED = "superseded"
    UNMEASURABLE = "unmeasurable"
    SCOPE_REDUCTION = "scope_reduction"
