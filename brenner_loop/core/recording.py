"""Recording a test outcome: confidence engine + evidence ledger in one step.

The caller supplies the hypothesis under test and what was observed; this
module computes ``confidence_after`` with the confidence engine and builds
the immutable ``EvidenceEntry``.  It never touches lifecycle state; feeding
the result back into the FSM (RECORD_SUPPORT / RECORD_FALSIFICATION) is the
caller's decision.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Union

from brenner_loop.core.confidence import ConfidenceConfig, ConfidenceUpdate, compute_confidence_update
from brenner_loop.domain.enums import EvidenceResult, PredictionBoldness
from brenner_loop.domain.evidence import (
    EvidenceEntry,
    TestDescription,
    create_evidence_entry,
    generate_evidence_id,
)
from brenner_loop.domain.hypothesis import HypothesisCard

logger = logging.getLogger(__name__)


def record_test_outcome(
    hypothesis: HypothesisCard,
    *,
    session_id: str,
    sequence: int,
    test: Union[TestDescription, dict[str, Any]],
    result: Union[EvidenceResult, str],
    prediction_if_true: str,
    prediction_if_false: str,
    observation: str,
    interpretation: Optional[str] = None,
    boldness: Union[PredictionBoldness, str] = PredictionBoldness.SPECIFIC,
    source: Optional[str] = None,
    recorded_by: Optional[str] = None,
    notes: Optional[str] = None,
    tags: Optional[list[str]] = None,
    config: Optional[ConfidenceConfig] = None,
) -> tuple[EvidenceEntry, ConfidenceUpdate]:
    """Score one outcome against *hypothesis* and build its evidence entry.

    ``interpretation`` defaults to the engine's explanation of the update.

    Raises:
        ValueError: Invalid session id, sequence or confidence inputs.
        InvalidRecordError: If the resulting entry fails validation.
    """
    test = TestDescription.model_validate(test)
    result = EvidenceResult(result)
    update = compute_confidence_update(hypothesis.confidence, test, result, boldness, config)

    entry = create_evidence_entry(
        id=generate_evidence_id(session_id, sequence),
        session_id=session_id,
        hypothesis_version=hypothesis.id,
        test=test,
        prediction_if_true=prediction_if_true,
        prediction_if_false=prediction_if_false,
        result=result,
        observation=observation,
        confidence_before=hypothesis.confidence,
        confidence_after=update.new_confidence,
        interpretation=interpretation or update.explanation,
        source=source,
        recorded_by=recorded_by,
        notes=notes,
        tags=tags,
    )
    logger.debug(
        "Recorded %s against %s: %.1f -> %.1f",
        result.value, hypothesis.id, entry.confidence_before, entry.confidence_after,
    )
    return entry, update
