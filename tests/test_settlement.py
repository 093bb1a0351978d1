"""
Tests for the settlement coordinator and its transition rules.
"""

import pytest

from ugc_eval.pipeline.errors import SettlementConflictError, StoreError
from ugc_eval.pipeline.stages import build_default_stages
from ugc_eval.response_parser import parse_json_response
from ugc_eval.settlement import SettlementCoordinator, decide_transition
from ugc_eval.types import Gig, Submission, SubmissionStatus


@pytest.fixture
def passing(passing_output):
    return parse_json_response(passing_output)


@pytest.fixture
def failing(failing_output):
    return parse_json_response(failing_output)


def _coordinator(store, settlement_config):
    return SettlementCoordinator(
        store,
        stages=build_default_stages(store, settlement_config),
        config=settlement_config,
    )


def _load(store, submission_id="sub-1"):
    submission = Submission.from_record(store.get_submission(submission_id))
    gig = Gig.from_record(store.get_gig(submission.gig_id))
    return submission, gig


def _set_status(store, status, submission_id="sub-1"):
    store.submissions[submission_id]["status"] = status


# ---------------------------------------------------------------------------
# decide_transition
# ---------------------------------------------------------------------------

class TestDecideTransition:
    @pytest.mark.parametrize(
        "previous, expected_new, new_approval",
        [
            (SubmissionStatus.SUBMITTED, SubmissionStatus.APPROVED, True),
            (SubmissionStatus.NEEDS_CHANGES, SubmissionStatus.APPROVED, True),
            (SubmissionStatus.APPROVED, SubmissionStatus.APPROVED, False),
        ],
    )
    def test_passing(self, passing, previous, expected_new, new_approval):
        transition = decide_transition(previous, passing)
        assert transition.new_status == expected_new
        assert transition.is_new_approval is new_approval
        assert transition.is_new_failure is False

    @pytest.mark.parametrize(
        "previous, new_failure",
        [
            (SubmissionStatus.SUBMITTED, True),
            (SubmissionStatus.APPROVED, True),
            (SubmissionStatus.NEEDS_CHANGES, False),
            (SubmissionStatus.REJECTED, False),
        ],
    )
    def test_failing(self, failing, previous, new_failure):
        transition = decide_transition(previous, failing)
        assert transition.new_status == SubmissionStatus.REJECTED
        assert transition.is_new_approval is False
        assert transition.is_new_failure is new_failure

    def test_accepts_plain_status_string(self, passing):
        assert decide_transition("submitted", passing).is_new_approval is True


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------

class TestSettlementScenarios:
    def test_submitted_and_passing_is_approved_and_paid_once(self, store, settlement_config, passing):
        submission, gig = _load(store)
        result = _coordinator(store, settlement_config).settle(submission, gig, passing)

        row = store.submissions["sub-1"]
        assert row["status"] == "approved"
        assert row["ai_evaluation"] == passing.to_record()
        assert result.is_new_approval is True
        assert result.failed_stages == []

        assert len(store.payments) == 1
        # 100 base: 85 to the creator, 15 fee to the platform
        assert store.balances == {"brand-1": 400.0, "creator-1": 85.0, "BANK": 15.0}
        assert store.payments[0]["status"] == "balance_transferred"
        # 50 completion + 20 bonus for an 85 score
        assert store.creators["creator-1"]["rep"] == 170
        assert [n["type"] for n in store.notifications] == ["submission_approved"]
        assert "Quality score: 85/100" in store.notifications[0]["message"]

    def test_reevaluating_approved_submission_that_still_passes_is_a_noop(
        self, store, settlement_config, passing
    ):
        coordinator = _coordinator(store, settlement_config)
        submission, gig = _load(store)
        coordinator.settle(submission, gig, passing)

        submission, gig = _load(store)
        result = coordinator.settle(submission, gig, passing)

        assert result.previous_status == "approved"
        assert result.is_new_approval is False
        assert result.completed_stages == ["PersistEvaluationStage"]
        assert len(store.payments) == 1
        assert store.creators["creator-1"]["rep"] == 170
        assert len(store.notifications) == 1

    def test_approved_submission_that_now_fails_is_demoted(self, store, settlement_config, passing, failing):
        coordinator = _coordinator(store, settlement_config)
        submission, gig = _load(store)
        coordinator.settle(submission, gig, passing)

        submission, gig = _load(store)
        result = coordinator.settle(submission, gig, failing)

        assert store.submissions["sub-1"]["status"] == "rejected"
        assert result.is_new_failure is True
        assert store.creators["creator-1"]["rep"] == 150
        assert [n["type"] for n in store.notifications] == ["submission_approved", "submission_failed"]
        # no claw-back of the earlier payment
        assert len(store.payments) == 1
        assert store.balances["creator-1"] == 85.0

    def test_rejected_submission_that_still_fails_has_no_side_effects(self, store, settlement_config, failing):
        _set_status(store, "rejected")
        submission, gig = _load(store)

        result = _coordinator(store, settlement_config).settle(submission, gig, failing)

        assert result.new_status == "rejected"
        assert result.is_new_failure is False
        assert store.notifications == []
        assert store.creators["creator-1"]["rep"] == 100
        assert store.submissions["sub-1"]["ai_evaluation"]["compliancePassed"] is False

    def test_needs_changes_and_failing_is_rejected_silently(self, store, settlement_config, failing):
        _set_status(store, "needs_changes")
        submission, gig = _load(store)

        result = _coordinator(store, settlement_config).settle(submission, gig, failing)

        assert result.new_status == "rejected"
        assert result.is_new_failure is False
        assert store.notifications == []

    def test_missing_creator_skips_all_side_effects(self, store, settlement_config, passing):
        store.submissions["sub-1"]["creator_id"] = None
        submission, gig = _load(store)

        result = _coordinator(store, settlement_config).settle(submission, gig, passing)

        assert store.submissions["sub-1"]["status"] == "approved"
        assert set(result.skipped_stages) == {"NotificationStage", "ReputationStage", "PaymentStage"}
        assert store.payments == []


# ---------------------------------------------------------------------------
# Failure isolation / concurrency
# ---------------------------------------------------------------------------

class TestSettlementFailures:
    def test_side_effect_failure_does_not_stop_siblings(self, store, settlement_config, passing):
        store.failures["insert_notification"] = RuntimeError("notifications table missing")
        submission, gig = _load(store)

        result = _coordinator(store, settlement_config).settle(submission, gig, passing)

        assert result.failed_stages == ["NotificationStage"]
        assert "NotificationStage" in result.errors
        assert result.completed_stages == ["PersistEvaluationStage", "ReputationStage", "PaymentStage"]
        assert len(store.payments) == 1

    def test_lost_race_raises_conflict_before_side_effects(self, store, settlement_config, passing):
        submission, gig = _load(store)
        # Another run approved it after we read it.
        _set_status(store, "approved")

        with pytest.raises(SettlementConflictError):
            _coordinator(store, settlement_config).settle(submission, gig, passing)

        assert store.payments == []
        assert store.notifications == []

    def test_store_failure_on_persist_propagates(self, store, settlement_config, passing):
        store.failures["update_submission_if_status"] = StoreError("JWT expired", code="store_unauthenticated")
        submission, gig = _load(store)

        with pytest.raises(StoreError):
            _coordinator(store, settlement_config).settle(submission, gig, passing)

        assert store.submissions["sub-1"]["status"] == "submitted"
        assert store.payments == []
