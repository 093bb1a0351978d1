"""
Payment settlement for newly approved submissions.

Payouts go through the internal balance ledger: the brand is debited the
gross amount, the creator is credited the net and the platform fee goes to
the platform bank account.
A submission that already has an active payment is never paid twice.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping, Optional

from . import supabase_store
from .config import SettlementConfig, get_settlement_config
from .pipeline.errors import InsufficientBalanceError, PaymentError
from .types import Gig, Submission

logger = logging.getLogger(__name__)

FOLLOWER_PLATFORMS = ("tiktok", "instagram", "youtube", "linkedin")
BALANCE_TRANSFERRED = "balance_transferred"
PAYMENT_FAILED = "failed"
# Balance account that collects platform fees.
PLATFORM_BANK_ID = "BANK"


@dataclass(frozen=True)
class PaymentBreakdown:
    base_payout: float
    platform_fee: float
    reimbursement_amount: float
    bonus_amount: float
    creator_net: float

    @property
    def brand_total(self) -> float:
        return self.base_payout + self.reimbursement_amount + self.bonus_amount


def total_following(following_count: Optional[Mapping[str, Any]]) -> int:
    following_count = following_count or {}
    total = 0
    for platform in FOLLOWER_PLATFORMS:
        try:
            total += int(following_count.get(platform) or 0)
        except (TypeError, ValueError):
            continue
    return total


def dynamic_payout(gig: Gig, followers: int) -> float:
    """Payout of the first follower range (ascending by min) containing followers."""
    for rng in sorted(gig.follower_ranges, key=lambda r: r.min or 0):
        if followers >= (rng.min or 0) and (rng.max is None or followers <= rng.max):
            return rng.payout
    return 0.0


def reimbursement(gig: Gig, submission: Submission) -> float:
    purchase = submission.product_purchase or {}
    try:
        requested = float(purchase.get("amount") or 0)
    except (TypeError, ValueError):
        requested = 0.0
    cap = gig.reimbursement_cap or 0.0
    if requested > 0 and cap > 0:
        return min(requested, cap)
    return 0.0


class PaymentProcessor:
    """
    Computes and records the payout for an approved submission.

    Usage:
        processor = PaymentProcessor()
        payment = processor.process_payment(sub.id, gig.id, sub.creator_id, gig.brand_id, gig, sub)
    """

    def __init__(self, store: Any = None, config: Optional[SettlementConfig] = None):
        self.store = store or supabase_store
        self.config = config or get_settlement_config()

    def compute(self, gig: Gig, submission: Submission, creator_id: str) -> PaymentBreakdown:
        base = gig.base_payout or 0.0
        if gig.payout_type == "dynamic" and gig.follower_ranges:
            creator = self.store.get_creator(creator_id)
            if creator:
                base = dynamic_payout(gig, total_following(creator.get("following_count")))

        fee = base * (self.config.platform_fee_percentage / 100)
        refund = reimbursement(gig, submission)
        bonus = 0.0
        return PaymentBreakdown(
            base_payout=round(base, 2),
            platform_fee=round(fee, 2),
            reimbursement_amount=round(refund, 2),
            bonus_amount=bonus,
            creator_net=round(base - fee + refund + bonus, 2),
        )

    def process_payment(
        self,
        submission_id: str,
        gig_id: str,
        creator_id: str,
        brand_id: Optional[str],
        gig: Gig,
        submission: Submission,
    ) -> Optional[Dict[str, Any]]:
        """
        Pay the creator for an approved submission.

        The brand is charged creator_net + platform_fee. Funds move first and
        the payment row is written afterwards; a failed transfer leaves a
        `failed` row (not active, so a later run may pay again).

        Returns the payment row (existing or new), or None when nothing is owed.

        Raises:
            InsufficientBalanceError: Brand cannot cover the payout
            PaymentError: A balance adjustment failed
        """
        existing = self.store.find_active_payment(submission_id)
        if existing:
            logger.info("[%s] Payment already exists (%s), skipping", submission_id, existing.get("status"))
            return existing

        breakdown = self.compute(gig, submission, creator_id)
        logger.info(
            "[%s] Payment calculation: base=%.2f fee=%.2f (%.1f%%) reimbursement=%.2f net=%.2f brand_total=%.2f",
            submission_id, breakdown.base_payout, breakdown.platform_fee,
            self.config.platform_fee_percentage, breakdown.reimbursement_amount,
            breakdown.creator_net, breakdown.brand_total,
        )

        if breakdown.creator_net <= 0:
            logger.warning("[%s] Creator net amount is %.2f, skipping payment", submission_id, breakdown.creator_net)
            return None
        if not brand_id:
            raise ValueError(f"Gig {gig_id} has no brand to charge")

        row = {
            "submission_id": submission_id,
            "gig_id": gig_id,
            "brand_id": brand_id,
            "creator_id": creator_id,
            **asdict(breakdown),
        }
        try:
            self._transfer(brand_id, creator_id, breakdown)
        except Exception as e:
            logger.error("[%s] Balance transfer failed: %s", submission_id, e)
            self._record_failure(submission_id, row, e)
            if isinstance(e, PaymentError):
                raise
            raise PaymentError(f"Balance payment processing failed: {e}", cause=e) from e

        payment = self.store.insert_payment(dict(row, status=BALANCE_TRANSFERRED))
        logger.info("[%s] Paid %.2f to %s from %s", submission_id, breakdown.creator_net, creator_id, brand_id)
        return payment

    def _transfer(self, brand_id: str, creator_id: str, breakdown: PaymentBreakdown) -> None:
        required = round(breakdown.creator_net + breakdown.platform_fee, 2)
        balance = self.store.get_balance(brand_id)
        if balance < required:
            raise InsufficientBalanceError(brand_id, balance, required)

        self.store.adjust_balance(brand_id, -breakdown.creator_net)
        self.store.adjust_balance(creator_id, breakdown.creator_net)
        if breakdown.platform_fee > 0:
            self.store.adjust_balance(brand_id, -breakdown.platform_fee)
            self.store.adjust_balance(PLATFORM_BANK_ID, breakdown.platform_fee)

    def _record_failure(self, submission_id: str, row: Dict[str, Any], error: Exception) -> None:
        try:
            self.store.insert_payment(dict(row, status=PAYMENT_FAILED, error=str(error)[:500]))
        except Exception as record_error:
            logger.error("[%s] Could not record failed payment: %s", submission_id, record_error)


__all__ = [
    "PLATFORM_BANK_ID",
    "PaymentBreakdown",
    "PaymentProcessor",
    "dynamic_payout",
    "reimbursement",
    "total_following",
]
