"""
Stage 4: Payment

Pays the creator for a newly approved submission.
"""

from __future__ import annotations

import logging
from typing import Optional

from ...payments import PaymentProcessor
from ..base import Stage
from ..context import SettlementContext
from ..errors import StageError

logger = logging.getLogger("ugc_eval.pipeline.payment")


class PaymentStage(Stage):
    """
    Stage 4: Settle the payout (optional).

    Failures are never retried here: a transfer that failed part way leaves
    a `failed` payment row for an operator to reconcile.
    """

    name = "PaymentStage"
    optional = True

    def __init__(self, processor: Optional[PaymentProcessor] = None):
        self.processor = processor or PaymentProcessor()

    def should_run(self, ctx: SettlementContext) -> bool:
        return ctx.persisted and bool(ctx.creator_id) and ctx.is_new_approval

    def execute(self, ctx: SettlementContext) -> SettlementContext:
        logger.debug(
            "[%s] Processing payment: gig=%s creator=%s brand=%s",
            ctx.submission_id, ctx.gig.id, ctx.creator_id, ctx.gig.brand_id,
        )
        try:
            ctx.payment = self.processor.process_payment(
                ctx.submission_id,
                ctx.gig.id,
                ctx.creator_id,
                ctx.gig.brand_id,
                ctx.gig,
                ctx.submission,
            )
        except Exception as e:
            raise StageError(f"Payment failed: {e}", self.name, cause=e) from e
        return ctx
