"""
Settlement context shared by pipeline stages.

The SettlementContext carries one evaluation run's inputs and the transition
decision through every stage. Each stage reads what it needs and records
its outcome, so the data flow stays explicit and testable.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..types import AIEvaluation, Gig, Submission, SubmissionStatus


@dataclass
class SettlementContext:
    """
    Shared state passed through settlement stages.

    Attributes:
        submission: Submission as read at the start of the run
        gig: Gig the submission belongs to
        evaluation: Freshly computed evaluation
        previous_status: Status observed before this run wrote anything
        new_status: Status this run writes
        is_new_approval: Passed now and was not approved before
        is_new_failure: Failed now and was submitted/approved before

        persisted: Set by PersistEvaluationStage once the write committed
        payment: Payment record returned by the payment collaborator
        errors: Stage name -> error message for failed stages
        applied_effects: Side effects already applied, so a retried stage
            does not repeat them
    """

    submission: Submission
    gig: Gig
    evaluation: AIEvaluation
    previous_status: SubmissionStatus
    new_status: SubmissionStatus
    is_new_approval: bool
    is_new_failure: bool

    persisted: bool = False
    payment: Optional[Dict[str, Any]] = None
    errors: Dict[str, str] = field(default_factory=dict)
    applied_effects: List[str] = field(default_factory=list)
    start_time: float = field(default_factory=time.time)

    completed_stages: List[str] = field(default_factory=list)
    skipped_stages: List[str] = field(default_factory=list)
    failed_stages: List[str] = field(default_factory=list)

    @property
    def submission_id(self) -> str:
        return self.submission.id

    @property
    def creator_id(self) -> Optional[str]:
        return self.submission.creator_id

    @property
    def quality_score(self) -> int:
        quality = self.evaluation.quality
        return quality.score if quality else 0

    def record_error(self, stage_name: str, error: BaseException) -> None:
        self.errors[stage_name] = str(error)[:500]

    def mark_stage_complete(self, stage_name: str) -> None:
        """Mark a stage as completed."""
        if stage_name not in self.completed_stages:
            self.completed_stages.append(stage_name)

    def mark_stage_skipped(self, stage_name: str) -> None:
        """Mark a stage as skipped."""
        if stage_name not in self.skipped_stages:
            self.skipped_stages.append(stage_name)

    def mark_stage_failed(self, stage_name: str) -> None:
        """Mark a stage as failed."""
        if stage_name not in self.failed_stages:
            self.failed_stages.append(stage_name)

    def elapsed_time(self) -> float:
        return time.time() - self.start_time
