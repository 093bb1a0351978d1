"""
Tests for the settlement pipeline runner.
"""

from unittest.mock import patch

import pytest

from ugc_eval.config import SettlementConfig
from ugc_eval.pipeline import SettlementContext, SettlementPipeline, Stage
from ugc_eval.pipeline.errors import StageError, StoreError, TransientError
from ugc_eval.pipeline.stages import ReputationStage
from ugc_eval.reputation import ReputationLedger
from ugc_eval.types import (
    AIEvaluation,
    ComplianceCheck,
    Gig,
    QualityScore,
    Submission,
    SubmissionStatus,
)


def _ctx(**overrides):
    values = dict(
        submission=Submission(id="sub-1", gig_id="gig-1", creator_id="creator-1", status=SubmissionStatus.SUBMITTED),
        gig=Gig(id="gig-1", title="Glow"),
        evaluation=AIEvaluation(compliance=ComplianceCheck(passed=True), quality=QualityScore(score=92)),
        previous_status=SubmissionStatus.SUBMITTED,
        new_status=SubmissionStatus.APPROVED,
        is_new_approval=True,
        is_new_failure=False,
        persisted=True,
    )
    values.update(overrides)
    return SettlementContext(**values)


def _config(max_retries=0):
    return SettlementConfig(
        platform_fee_percentage=15.0,
        max_retries=max_retries,
        retry_delay=0.0,
        quality_bonus_threshold=70,
    )


class RecordingStage(Stage):
    def __init__(self, name, optional=True, errors=None, run=True):
        self.name = name
        self.optional = optional
        self.errors = list(errors or [])
        self.run = run
        self.calls = 0

    def should_run(self, ctx):
        return self.run

    def execute(self, ctx):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return ctx


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------

class TestSettlementPipeline:
    def test_stage_names_must_be_unique(self):
        with pytest.raises(ValueError, match="unique"):
            SettlementPipeline([RecordingStage("a"), RecordingStage("a")], _config())

    def test_skipped_and_completed_stages_are_recorded(self):
        stages = [RecordingStage("a"), RecordingStage("b", run=False)]
        result = SettlementPipeline(stages, _config()).run(_ctx())

        assert result.completed_stages == ["a"]
        assert result.skipped_stages == ["b"]
        assert result.to_dict()["newStatus"] == "approved"

    def test_transient_errors_are_retried(self):
        flaky = RecordingStage("flaky", errors=[TransientError("timeout", "flaky")])
        with patch("ugc_eval.pipeline.base.time.sleep") as sleep:
            result = SettlementPipeline([flaky], _config(max_retries=2)).run(_ctx())

        assert flaky.calls == 2
        assert result.completed_stages == ["flaky"]
        sleep.assert_called_once()

    def test_optional_failure_is_absorbed(self):
        failing = RecordingStage("side", errors=[RuntimeError("boom")])
        after = RecordingStage("after")
        result = SettlementPipeline([failing, after], _config()).run(_ctx())

        assert result.failed_stages == ["side"]
        assert result.errors == {"side": "boom"}
        assert result.completed_stages == ["after"]

    def test_mandatory_failure_wraps_unknown_errors(self):
        stage = RecordingStage("persist", optional=False, errors=[RuntimeError("disk on fire")])
        with pytest.raises(StageError) as exc_info:
            SettlementPipeline([stage, RecordingStage("after")], _config()).run(_ctx())
        assert exc_info.value.stage_name == "persist"

    def test_mandatory_failure_reraises_cause_after_retries(self):
        cause = StoreError("connection reset", recoverable=True)
        stage = RecordingStage(
            "persist",
            optional=False,
            errors=[TransientError("retry", "persist", cause=cause)] * 2,
        )
        with patch("ugc_eval.pipeline.base.time.sleep"):
            with pytest.raises(StoreError) as exc_info:
                SettlementPipeline([stage], _config(max_retries=1)).run(_ctx())
        assert exc_info.value is cause


# ---------------------------------------------------------------------------
# Reputation stage retries
# ---------------------------------------------------------------------------

class TestReputationStage:
    def test_retry_does_not_repeat_applied_rewards(self, store):
        ledger = ReputationLedger(store)
        original_bonus = ledger.award_quality_bonus
        attempts = {"count": 0}

        def flaky_bonus(creator_id, score):
            attempts["count"] += 1
            if attempts["count"] == 1:
                raise ConnectionError("connection reset by peer")
            return original_bonus(creator_id, score)

        ledger.award_quality_bonus = flaky_bonus
        stage = ReputationStage(ledger, bonus_threshold=70)

        with patch("ugc_eval.pipeline.base.time.sleep"):
            result = SettlementPipeline([stage], _config(max_retries=1)).run(_ctx())

        assert result.completed_stages == ["ReputationStage"]
        # 100 + 50 completion (once) + 30 bonus for 92
        assert store.creators["creator-1"]["rep"] == 180

    def test_failure_deducts_penalty(self, store):
        ctx = _ctx(
            evaluation=AIEvaluation(compliance=ComplianceCheck(passed=False, issues=("Off topic",))),
            new_status=SubmissionStatus.REJECTED,
            is_new_approval=False,
            is_new_failure=True,
        )
        SettlementPipeline([ReputationStage(ReputationLedger(store), bonus_threshold=70)], _config()).run(ctx)

        assert store.creators["creator-1"]["rep"] == 80

    def test_bonus_skipped_below_threshold(self, store):
        ctx = _ctx(evaluation=AIEvaluation(compliance=ComplianceCheck(passed=True), quality=QualityScore(score=65)))
        SettlementPipeline([ReputationStage(ReputationLedger(store), bonus_threshold=70)], _config()).run(ctx)

        assert store.creators["creator-1"]["rep"] == 150
