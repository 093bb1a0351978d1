"""
Notification sink for evaluation outcomes.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Sequence

from . import supabase_store

logger = logging.getLogger(__name__)

SUBMISSION_APPROVED = "submission_approved"
SUBMISSION_FAILED = "submission_failed"

APPROVED_TITLE = "Submission Approved! 🎉"
FAILED_TITLE = "Submission Needs Changes ⚠️"
DEFAULT_JOB_TITLE = "Your submission"
MAX_LISTED_ISSUES = 2


def approval_message(job_title: Optional[str], quality_score: int) -> str:
    return (
        f'Your submission for "{job_title or DEFAULT_JOB_TITLE}" has been approved by AI evaluation. '
        f"Quality score: {quality_score}/100"
    )


def failure_message(job_title: Optional[str], issues: Sequence[str]) -> str:
    """Failure text listing at most the first two compliance issues."""
    issues_text = ""
    if issues:
        issues_text = " Issues: " + ", ".join(issues[:MAX_LISTED_ISSUES])
        if len(issues) > MAX_LISTED_ISSUES:
            issues_text += "..."
    return f'Your submission for "{job_title or DEFAULT_JOB_TITLE}" did not pass AI evaluation.{issues_text}'


class NotificationSink:
    """Writes in-app notifications to the store."""

    def __init__(self, store: Any = None):
        self.store = store or supabase_store

    def notify(
        self,
        user_id: str,
        type: str,
        title: str,
        message: str,
        context: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """Create a notification for user_id and return its id."""
        if not user_id:
            raise ValueError("Notification requires a user id")
        context = dict(context or {})
        row = {
            "user_id": user_id,
            "type": type,
            "title": title,
            "message": message,
            "submission_id": context.pop("submission_id", None),
            "gig_id": context.pop("gig_id", None),
            "data": context,
        }
        notification_id = self.store.insert_notification(row)
        logger.info("Notification %s (%s) created for %s", notification_id, type, user_id)
        return notification_id


__all__ = [
    "APPROVED_TITLE",
    "FAILED_TITLE",
    "NotificationSink",
    "SUBMISSION_APPROVED",
    "SUBMISSION_FAILED",
    "approval_message",
    "failure_message",
]
