"""
Stage 3: Reputation

New approvals earn the completion reward plus a quality bonus at or above
the configured threshold; new failures cost the fixed penalty.
"""

from __future__ import annotations

import logging
from typing import Optional

from ...config import get_settlement_config
from ...reputation import ReputationLedger
from ..base import Stage
from ..context import SettlementContext

logger = logging.getLogger("ugc_eval.pipeline.reputation")

COMPLETION = "rep_completion"
QUALITY_BONUS = "rep_quality_bonus"
FAILURE = "rep_failure"


class ReputationStage(Stage):
    """
    Stage 3: Adjust creator reputation (optional).

    Each delta is recorded in ctx.applied_effects once written, so a retry
    after a transient failure never applies the same delta twice.
    """

    name = "ReputationStage"
    optional = True

    def __init__(self, ledger: Optional[ReputationLedger] = None, bonus_threshold: Optional[int] = None):
        self.ledger = ledger or ReputationLedger()
        self.bonus_threshold = (
            bonus_threshold if bonus_threshold is not None
            else get_settlement_config().quality_bonus_threshold
        )

    def should_run(self, ctx: SettlementContext) -> bool:
        return (
            ctx.persisted
            and bool(ctx.creator_id)
            and (ctx.is_new_approval or ctx.is_new_failure)
        )

    def execute(self, ctx: SettlementContext) -> SettlementContext:
        creator_id = ctx.creator_id
        try:
            if ctx.is_new_approval:
                self._apply(ctx, COMPLETION, lambda: self.ledger.award_completion(creator_id))
                score = ctx.quality_score
                if score >= self.bonus_threshold:
                    logger.debug("[%s] Awarding quality bonus (score: %d)", ctx.submission_id, score)
                    self._apply(
                        ctx, QUALITY_BONUS,
                        lambda: self.ledger.award_quality_bonus(creator_id, score),
                    )
            else:
                self._apply(ctx, FAILURE, lambda: self.ledger.deduct_failure(creator_id))
        except Exception as e:
            raise self.wrap_error(e, "Reputation update") from e
        return ctx

    @staticmethod
    def _apply(ctx: SettlementContext, effect: str, action) -> None:
        if effect in ctx.applied_effects:
            return
        action()
        ctx.applied_effects.append(effect)
