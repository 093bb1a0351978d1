"""
Stage 1: Persist Evaluation

Writes the new status and replaces the stored aiEvaluation wholesale. The
write is conditional on the status read at the start of the run, so a
concurrent run that settled the submission first wins and this one stops
before any side effect.
"""

from __future__ import annotations

import logging
from typing import Any

from ... import supabase_store
from ..base import Stage
from ..context import SettlementContext
from ..errors import SettlementConflictError, StoreError, TransientError, looks_transient

logger = logging.getLogger("ugc_eval.pipeline.persist")


class PersistEvaluationStage(Stage):
    """
    Stage 1: Persist status + evaluation (mandatory).

    Responsibilities:
    - Write status, ai_evaluation and updated_at in one conditional update
    - Set ctx.persisted

    Raises:
        SettlementConflictError: If the status changed since it was read
        StoreError: If the store write fails
    """

    name = "PersistEvaluationStage"
    optional = False

    def __init__(self, store: Any = None):
        self.store = store or supabase_store

    def should_run(self, ctx: SettlementContext) -> bool:
        return not ctx.persisted

    def execute(self, ctx: SettlementContext) -> SettlementContext:
        fields = {
            "status": ctx.new_status.value,
            "ai_evaluation": ctx.evaluation.to_record(),
        }
        logger.debug(
            "[%s] Writing status %s -> %s",
            ctx.submission_id, ctx.previous_status.value, ctx.new_status.value,
        )
        try:
            written = self.store.update_submission_if_status(
                ctx.submission_id, ctx.previous_status.value, fields
            )
        except StoreError as e:
            if e.recoverable or looks_transient(e):
                raise TransientError(f"Persist failed: {e}", self.name, cause=e) from e
            raise

        if not written:
            raise SettlementConflictError(ctx.submission_id, ctx.previous_status.value)

        ctx.persisted = True
        logger.info(
            "[%s] Persisted evaluation: status=%s quality=%d",
            ctx.submission_id, ctx.new_status.value, ctx.quality_score,
        )
        return ctx
