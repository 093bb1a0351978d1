"""
Settlement coordinator.

Turns a fresh evaluation into a submission status and decides which side
effects are newly due. Side effects are gated on the status read before
this run, so re-evaluating an approved submission that still passes pays
nothing twice, and an approved submission that now fails is demoted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from .config import SettlementConfig, get_settlement_config
from .pipeline.base import SettlementPipeline, SettlementResult, Stage
from .pipeline.context import SettlementContext
from .types import AIEvaluation, Gig, Submission, SubmissionStatus

logger = logging.getLogger(__name__)

FAILURE_SOURCE_STATUSES = (SubmissionStatus.SUBMITTED, SubmissionStatus.APPROVED)


@dataclass(frozen=True)
class Transition:
    previous_status: SubmissionStatus
    new_status: SubmissionStatus
    is_new_approval: bool
    is_new_failure: bool


def decide_transition(previous_status: SubmissionStatus, evaluation: AIEvaluation) -> Transition:
    """Pure status decision for one evaluation run."""
    previous_status = SubmissionStatus(previous_status)
    passed = evaluation.compliance.passed
    return Transition(
        previous_status=previous_status,
        new_status=SubmissionStatus.APPROVED if passed else SubmissionStatus.REJECTED,
        is_new_approval=passed and previous_status != SubmissionStatus.APPROVED,
        is_new_failure=not passed and previous_status in FAILURE_SOURCE_STATUSES,
    )


class SettlementCoordinator:
    """
    Persists an evaluation and runs its side effects.

    Usage:
        coordinator = SettlementCoordinator()
        result = coordinator.settle(submission, gig, evaluation)
    """

    def __init__(
        self,
        store: Any = None,
        stages: Optional[List[Stage]] = None,
        config: Optional[SettlementConfig] = None,
    ):
        self.config = config or get_settlement_config()
        if stages is None:
            from .pipeline.stages import build_default_stages

            stages = build_default_stages(store, self.config)
        self.pipeline = SettlementPipeline(stages, self.config)

    def settle(self, submission: Submission, gig: Gig, evaluation: AIEvaluation) -> SettlementResult:
        """
        Raises:
            SettlementConflictError: If another run changed the status first
            StoreError: If the status/evaluation write failed
        """
        transition = decide_transition(submission.status, evaluation)
        logger.info(
            "[%s] Transition %s -> %s (new_approval=%s new_failure=%s creator=%s)",
            submission.id, transition.previous_status.value, transition.new_status.value,
            transition.is_new_approval, transition.is_new_failure, submission.creator_id,
        )
        if not submission.creator_id and (transition.is_new_approval or transition.is_new_failure):
            logger.warning("[%s] Submission has no creator; skipping side effects", submission.id)

        ctx = SettlementContext(
            submission=submission,
            gig=gig,
            evaluation=evaluation,
            previous_status=transition.previous_status,
            new_status=transition.new_status,
            is_new_approval=transition.is_new_approval,
            is_new_failure=transition.is_new_failure,
        )
        return self.pipeline.run(ctx)


__all__ = ["SettlementCoordinator", "Transition", "decide_transition"]
