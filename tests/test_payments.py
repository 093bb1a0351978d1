"""
Tests for payout computation and recording.
"""

import pytest

from ugc_eval.payments import (
    PLATFORM_BANK_ID,
    PaymentProcessor,
    dynamic_payout,
    reimbursement,
    total_following,
)
from ugc_eval.pipeline.errors import InsufficientBalanceError, PaymentError
from ugc_eval.types import FollowerRange, Gig, Submission, SubmissionStatus


def _submission(**overrides):
    values = dict(id="sub-1", gig_id="gig-1", creator_id="creator-1", status=SubmissionStatus.APPROVED)
    values.update(overrides)
    return Submission(**values)


def _gig(**overrides):
    values = dict(id="gig-1", base_payout=100.0, brand_id="brand-1")
    values.update(overrides)
    return Gig(**values)


def _pay(processor, gig, submission, brand_id="brand-1"):
    return processor.process_payment(submission.id, gig.id, submission.creator_id, brand_id, gig, submission)


class TestHelpers:
    def test_total_following_ignores_junk(self):
        assert total_following({"tiktok": 1000, "instagram": "250", "youtube": "n/a", "x": 99}) == 1250
        assert total_following(None) == 0

    def test_dynamic_payout_picks_matching_range(self):
        gig = _gig(
            payout_type="dynamic",
            follower_ranges=[
                FollowerRange(min=10000, max=None, payout=300.0),
                FollowerRange(min=0, max=999, payout=50.0),
                FollowerRange(min=1000, max=9999, payout=120.0),
            ],
        )
        assert dynamic_payout(gig, 500) == 50.0
        assert dynamic_payout(gig, 2000) == 120.0
        assert dynamic_payout(gig, 250000) == 300.0

    def test_reimbursement_is_capped(self):
        gig = _gig(reimbursement_cap=30.0)
        assert reimbursement(gig, _submission(product_purchase={"amount": 45})) == 30.0
        assert reimbursement(gig, _submission(product_purchase={"amount": 12.5})) == 12.5
        assert reimbursement(_gig(), _submission(product_purchase={"amount": 12.5})) == 0.0


class TestPaymentProcessor:
    def test_fixed_payout_with_fee_and_reimbursement(self, store, settlement_config):
        processor = PaymentProcessor(store, settlement_config)
        gig = _gig(reimbursement_cap=20.0)

        payment = _pay(processor, gig, _submission(product_purchase={"amount": 25}))

        assert payment["status"] == "balance_transferred"
        assert payment["platform_fee"] == 15.0
        assert payment["reimbursement_amount"] == 20.0
        assert payment["creator_net"] == 105.0
        assert store.balances == {"brand-1": 380.0, "creator-1": 105.0, PLATFORM_BANK_ID: 15.0}

    def test_funds_move_before_payment_is_recorded(self, store, settlement_config):
        _pay(PaymentProcessor(store, settlement_config), _gig(), _submission())

        names = [c[0] for c in store.calls]
        assert names.index("get_balance") < names.index("adjust_balance")
        last_adjust = len(names) - 1 - names[::-1].index("adjust_balance")
        assert last_adjust < names.index("insert_payment")

    def test_dynamic_payout_uses_creator_following(self, store, settlement_config):
        processor = PaymentProcessor(store, settlement_config)
        gig = _gig(
            payout_type="dynamic",
            follower_ranges=[
                FollowerRange(min=0, max=999, payout=40.0),
                FollowerRange(min=1000, max=None, payout=200.0),
            ],
        )

        payment = _pay(processor, gig, _submission())

        # creator-1 has 2000 followers
        assert payment["base_payout"] == 200.0
        assert payment["creator_net"] == 170.0

    def test_existing_active_payment_is_returned(self, store, settlement_config):
        processor = PaymentProcessor(store, settlement_config)
        first = _pay(processor, _gig(), _submission())

        second = _pay(processor, _gig(), _submission())

        assert second["id"] == first["id"]
        assert len(store.payments) == 1
        assert store.balances["creator-1"] == 85.0

    def test_nothing_owed_records_nothing(self, store, settlement_config):
        processor = PaymentProcessor(store, settlement_config)

        assert _pay(processor, _gig(base_payout=0), _submission()) is None
        assert store.payments == []

    def test_missing_brand_raises(self, store, settlement_config):
        processor = PaymentProcessor(store, settlement_config)

        with pytest.raises(ValueError, match="no brand"):
            _pay(processor, _gig(brand_id=None), _submission(), brand_id=None)
        assert store.balances == {"brand-1": 500.0}


# ---------------------------------------------------------------------------
# Transfer failures
# ---------------------------------------------------------------------------

class TestPaymentFailures:
    def test_insufficient_brand_balance(self, store, settlement_config):
        store.balances["brand-1"] = 60.0

        with pytest.raises(InsufficientBalanceError) as exc_info:
            _pay(PaymentProcessor(store, settlement_config), _gig(), _submission())

        assert exc_info.value.required == 100.0
        assert store.balances == {"brand-1": 60.0}
        assert [p["status"] for p in store.payments] == ["failed"]

    def test_failed_transfer_is_not_recorded_as_transferred(self, store, settlement_config):
        store.failures["adjust_balance"] = RuntimeError("rpc increment_balance failed")

        with pytest.raises(PaymentError, match="rpc increment_balance failed"):
            _pay(PaymentProcessor(store, settlement_config), _gig(), _submission())

        assert [p["status"] for p in store.payments] == ["failed"]
        assert "increment_balance" in store.payments[0]["error"]
        assert store.find_active_payment("sub-1") is None

    def test_payment_can_be_retried_after_failure(self, store, settlement_config):
        processor = PaymentProcessor(store, settlement_config)
        store.failures["adjust_balance"] = RuntimeError("connection reset")
        with pytest.raises(PaymentError):
            _pay(processor, _gig(), _submission())

        del store.failures["adjust_balance"]
        payment = _pay(processor, _gig(), _submission())

        assert payment["status"] == "balance_transferred"
        assert store.balances["creator-1"] == 85.0
