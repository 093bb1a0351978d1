from unittest.mock import Mock

import pytest

from ugc_eval import reevaluate
from ugc_eval.locks import KeyedLock
from ugc_eval.pipeline.errors import StoreError
from ugc_eval.service import EvaluationService
from ugc_eval.settlement import SettlementCoordinator


@pytest.fixture
def service(store, settlement_config, passing_output):
    return EvaluationService(
        store,
        invoke=Mock(return_value=passing_output),
        coordinator=SettlementCoordinator(store, config=settlement_config),
        locks=KeyedLock(),
    )


@pytest.mark.parametrize(
    "argv",
    [
        [],
        ["--submission-id", "sub-1"],
        ["--submission-id", "sub-1", "--gig-id", "gig-1", "--status", "approved"],
        ["--status", "approved", "--limit", "0"],
        ["--status", "bogus"],
    ],
)
def test_invalid_arguments_exit(argv):
    with pytest.raises(SystemExit):
        reevaluate._parse_args(argv)


def test_single_submission(service, store, capsys):
    assert reevaluate.main(["--submission-id", "sub-1", "--gig-id", "gig-1"], service=service) == 0

    out = capsys.readouterr().out
    assert "sub-1: submitted -> approved" in out
    assert store.submissions["sub-1"]["status"] == "approved"


def test_status_audit_reports_errors(service, store, capsys):
    store.submissions["sub-2"] = {"id": "sub-2", "gig_id": "gig-1", "creator_id": "creator-1", "status": "approved", "files": {}}
    store.submissions["sub-1"]["status"] = "approved"

    assert reevaluate.main(["--status", "approved"], service=service) == 1

    out = capsys.readouterr().out
    assert "sub-1: approved -> approved" in out
    assert "sub-2: ERROR 400 no_video" in out


def test_listing_failure_returns_one(service, store):
    store.failures["list_submissions_by_status"] = StoreError("connection refused")

    assert reevaluate.main(["--status", "submitted"], service=service) == 1


def test_nothing_to_do(service):
    assert reevaluate.main(["--status", "needs_changes"], service=service) == 0
