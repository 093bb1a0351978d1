"""
Base classes for the settlement pipeline.

Provides the Stage base class and the SettlementPipeline runner. The first
stage (persistence) is mandatory; side-effect stages are optional, so a
failure in one is recorded on the context and the remaining stages still run.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import sentry_sdk

from ..config import SettlementConfig, get_settlement_config
from .context import SettlementContext
from .errors import EvaluationError, StageError, TransientError, looks_transient

logger = logging.getLogger("ugc_eval.pipeline")


@dataclass
class SettlementResult:
    """
    Outcome of settling one evaluation.

    Attributes:
        submission_id: Submission that was settled
        previous_status: Status read before the run
        new_status: Status written by the run
        is_new_approval: Approval side effects were due
        is_new_failure: Failure side effects were due
        completed_stages: Stages that ran successfully
        skipped_stages: Stages that had nothing to do
        failed_stages: Optional stages that failed (absorbed)
        errors: Stage name -> error message
        elapsed_time: Seconds spent settling
    """
    submission_id: str
    previous_status: str
    new_status: str
    is_new_approval: bool
    is_new_failure: bool
    completed_stages: List[str] = field(default_factory=list)
    skipped_stages: List[str] = field(default_factory=list)
    failed_stages: List[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)
    elapsed_time: float = 0.0

    @classmethod
    def from_context(cls, ctx: SettlementContext) -> "SettlementResult":
        return cls(
            submission_id=ctx.submission_id,
            previous_status=ctx.previous_status.value,
            new_status=ctx.new_status.value,
            is_new_approval=ctx.is_new_approval,
            is_new_failure=ctx.is_new_failure,
            completed_stages=list(ctx.completed_stages),
            skipped_stages=list(ctx.skipped_stages),
            failed_stages=list(ctx.failed_stages),
            errors=dict(ctx.errors),
            elapsed_time=ctx.elapsed_time(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "previousStatus": self.previous_status,
            "newStatus": self.new_status,
            "isNewApproval": self.is_new_approval,
            "isNewFailure": self.is_new_failure,
            "completedStages": self.completed_stages,
            "skippedStages": self.skipped_stages,
            "failedStages": self.failed_stages,
            "errors": self.errors,
        }


class Stage(ABC):
    """
    Base class for settlement stages.

    Subclasses must implement:
    - name: Unique identifier for the stage
    - should_run(): Determine if stage should execute
    - execute(): Perform stage logic

    Optionally override:
    - on_error(): Handle stage-specific errors
    """

    name: str = "BaseStage"
    optional: bool = True

    @abstractmethod
    def should_run(self, ctx: SettlementContext) -> bool:
        """Return True if this stage has work to do for the context."""

    @abstractmethod
    def execute(self, ctx: SettlementContext) -> SettlementContext:
        """
        Execute the stage logic.

        Raises:
            StageError: If stage execution fails
        """

    def on_error(self, ctx: SettlementContext, error: BaseException) -> None:
        """Record the failure on the context and report it."""
        ctx.record_error(self.name, error)
        sentry_sdk.capture_exception(error)

    def wrap_error(self, error: Exception, action: str) -> StageError:
        """Classify a collaborator failure as transient (retried) or not."""
        message = f"{action} failed: {error}"
        if looks_transient(error):
            return TransientError(message, self.name, cause=error)
        return StageError(message, self.name, cause=error)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, optional={self.optional})"


class SettlementPipeline:
    """
    Runs settlement stages in order against one SettlementContext.

    Features:
    - Retry with backoff for TransientError
    - Optional stages fail in isolation
    - Mandatory stage failures propagate to the caller

    Usage:
        pipeline = SettlementPipeline(stages=[PersistEvaluationStage(store), ...])
        result = pipeline.run(ctx)
    """

    def __init__(self, stages: List[Stage], config: Optional[SettlementConfig] = None):
        self.stages = stages
        self.config = config or get_settlement_config()

        names = [s.name for s in stages]
        if len(names) != len(set(names)):
            raise ValueError("Stage names must be unique")

    def run(self, ctx: SettlementContext) -> SettlementResult:
        """Run all stages; returns the result or raises on a mandatory stage failure."""
        for stage in self.stages:
            ctx = self._run_stage(stage, ctx)

        result = SettlementResult.from_context(ctx)
        if result.failed_stages:
            logger.warning(
                "[%s] Settled %s -> %s with failed side effects: %s",
                ctx.submission_id, result.previous_status, result.new_status,
                ", ".join(result.failed_stages),
            )
        else:
            logger.info(
                "[%s] Settled %s -> %s in %.2fs - stages=%d",
                ctx.submission_id, result.previous_status, result.new_status,
                result.elapsed_time, len(result.completed_stages),
            )
        return result

    def _run_stage(self, stage: Stage, ctx: SettlementContext) -> SettlementContext:
        if not stage.should_run(ctx):
            ctx.mark_stage_skipped(stage.name)
            logger.debug("[%s] Skipping stage: %s", ctx.submission_id, stage.name)
            return ctx

        last_error: Optional[BaseException] = None

        for attempt in range(self.config.max_retries + 1):
            try:
                logger.debug("[%s] Running stage: %s", ctx.submission_id, stage.name)
                ctx = stage.execute(ctx)
                ctx.mark_stage_complete(stage.name)
                return ctx

            except TransientError as e:
                last_error = e
                if attempt < self.config.max_retries:
                    wait_time = self.config.retry_delay * (2 ** attempt)
                    logger.warning(
                        "[%s] %s failed (attempt %d/%d): %s. Retrying in %.1fs...",
                        ctx.submission_id, stage.name, attempt + 1,
                        self.config.max_retries + 1, str(e)[:100], wait_time,
                    )
                    time.sleep(wait_time)

            except Exception as e:
                return self._fail(stage, ctx, e)

        return self._fail(stage, ctx, last_error)  # type: ignore[arg-type]

    def _fail(self, stage: Stage, ctx: SettlementContext, error: BaseException) -> SettlementContext:
        stage.on_error(ctx, error)
        ctx.mark_stage_failed(stage.name)

        if stage.optional:
            logger.warning(
                "[%s] Optional stage %s failed: %s",
                ctx.submission_id, stage.name, str(error)[:200],
            )
            return ctx

        logger.error("[%s] Stage %s failed: %s", ctx.submission_id, stage.name, error)
        # Store/conflict errors keep their identity so callers can map them.
        if isinstance(error, StageError) and isinstance(error.cause, EvaluationError):
            raise error.cause
        if isinstance(error, EvaluationError):
            raise error
        raise StageError(str(error), stage.name, cause=error)  # type: ignore[arg-type]
