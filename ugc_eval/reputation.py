"""
Creator reputation ledger.

Reputation is a non-negative integer on the creator row. Rewards and
penalties are fixed deltas; a completed gig may additionally earn a bonus
tiered by the AI quality score.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from . import supabase_store

logger = logging.getLogger(__name__)

REP_REWARDS = {
    "GIG_COMPLETED": 50,
    "AI_SCORE_90_PLUS": 30,
    "AI_SCORE_80_89": 20,
    "AI_SCORE_70_79": 10,
    "SUBMISSION_FAILED": -20,
}


def quality_bonus(score: int) -> int:
    """Bonus for an AI quality score; 0 below 70."""
    if score >= 90:
        return REP_REWARDS["AI_SCORE_90_PLUS"]
    if score >= 80:
        return REP_REWARDS["AI_SCORE_80_89"]
    if score >= 70:
        return REP_REWARDS["AI_SCORE_70_79"]
    return 0


class ReputationLedger:
    """Applies reputation deltas to creators through the store."""

    def __init__(self, store: Any = None):
        self.store = store or supabase_store

    def award(self, creator_id: str, amount: int, reason: str) -> Optional[int]:
        """
        Add amount (may be negative) to the creator's rep, never below 0.

        Returns the new rep, or None when the creator does not exist.
        """
        creator = self.store.get_creator(creator_id)
        if not creator:
            logger.error("Creator not found: %s", creator_id)
            return None

        current = int(creator.get("rep") or 0)
        new_rep = max(0, current + amount)
        self.store.update_creator_rep(creator_id, new_rep)
        logger.info(
            "Rep updated for %s: %d -> %d (%+d) - %s",
            creator_id, current, new_rep, amount, reason,
        )
        return new_rep

    def award_completion(self, creator_id: str) -> Optional[int]:
        return self.award(creator_id, REP_REWARDS["GIG_COMPLETED"], "Gig completed")

    def award_quality_bonus(self, creator_id: str, score: int) -> Optional[int]:
        bonus = quality_bonus(score)
        if bonus <= 0:
            logger.debug("No quality bonus for %s (score %d)", creator_id, score)
            return None
        return self.award(creator_id, bonus, f"AI score {score}")

    def deduct_failure(self, creator_id: str) -> Optional[int]:
        return self.award(creator_id, REP_REWARDS["SUBMISSION_FAILED"], "Submission failed")


__all__ = ["REP_REWARDS", "ReputationLedger", "quality_bonus"]
