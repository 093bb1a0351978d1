"""
Stage 2: Creator Notification

Tells the creator their submission was approved, or that it needs changes.
"""

from __future__ import annotations

import logging
from typing import Optional

from ...notifications import (
    APPROVED_TITLE,
    FAILED_TITLE,
    SUBMISSION_APPROVED,
    SUBMISSION_FAILED,
    NotificationSink,
    approval_message,
    failure_message,
)
from ..base import Stage
from ..context import SettlementContext

logger = logging.getLogger("ugc_eval.pipeline.notification")


class NotificationStage(Stage):
    """
    Stage 2: Notify the creator of a new approval or failure (optional).
    """

    name = "NotificationStage"
    optional = True

    def __init__(self, sink: Optional[NotificationSink] = None):
        self.sink = sink or NotificationSink()

    def should_run(self, ctx: SettlementContext) -> bool:
        return (
            ctx.persisted
            and bool(ctx.creator_id)
            and (ctx.is_new_approval or ctx.is_new_failure)
        )

    def execute(self, ctx: SettlementContext) -> SettlementContext:
        job_title = ctx.gig.title
        if ctx.is_new_approval:
            kind, title = SUBMISSION_APPROVED, APPROVED_TITLE
            message = approval_message(job_title, ctx.quality_score)
        else:
            kind, title = SUBMISSION_FAILED, FAILED_TITLE
            message = failure_message(job_title, ctx.evaluation.compliance.issues)

        try:
            self.sink.notify(
                ctx.creator_id,
                kind,
                title,
                message,
                {"submission_id": ctx.submission_id, "gig_id": ctx.gig.id},
            )
        except Exception as e:
            raise self.wrap_error(e, "Notification") from e

        logger.debug("[%s] %s notification sent", ctx.submission_id, kind)
        return ctx
