import copy
import itertools

import pytest

from ugc_eval import config
from ugc_eval.config import SettlementConfig
from ugc_eval.supabase_store import ACTIVE_PAYMENT_STATUSES


def _reset_config_caches():
    config.get_model_config.cache_clear()
    config.get_db_config.cache_clear()
    config.get_settlement_config.cache_clear()
    config.get_app_config.cache_clear()


@pytest.fixture(autouse=True)
def _test_env(monkeypatch):
    """Credentials every getter needs, and fresh config caches per test."""
    monkeypatch.setenv("REPLICATE_API_TOKEN", "r8_test")
    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_KEY", "service-key")
    for name in (
        "VIDEO_MODEL",
        "REPLICATE_API_BASE",
        "PLATFORM_FEE_PERCENTAGE",
        "platform_fee_percentage",
        "SETTLEMENT_MAX_RETRIES",
        "SETTLEMENT_RETRY_DELAY",
        "QUALITY_BONUS_THRESHOLD",
        "SENTRY_DSN",
        "CORS_ORIGINS",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    _reset_config_caches()
    yield
    _reset_config_caches()


class FakeStore:
    """
    In-memory stand-in for the supabase_store module.

    Set `failures[name] = exc` to make a method raise.
    """

    def __init__(self):
        self.submissions = {}
        self.gigs = {}
        self.creators = {}
        self.notifications = []
        self.payments = []
        self.balances = {}
        self.failures = {}
        self.calls = []
        self._ids = itertools.count(1)

    def _record(self, name, *args):
        self.calls.append((name,) + args)
        exc = self.failures.get(name)
        if exc is not None:
            raise exc

    # submissions / gigs
    def get_submission(self, submission_id):
        self._record("get_submission", submission_id)
        row = self.submissions.get(submission_id)
        return copy.deepcopy(row) if row else None

    def get_gig(self, gig_id):
        self._record("get_gig", gig_id)
        row = self.gigs.get(gig_id)
        return copy.deepcopy(row) if row else None

    def update_submission_if_status(self, submission_id, expected_status, fields):
        self._record("update_submission_if_status", submission_id, expected_status)
        row = self.submissions.get(submission_id)
        if not row or row.get("status") != expected_status:
            return False
        row.update(copy.deepcopy(dict(fields)))
        row["updated_at"] = "2026-01-01T00:00:00+00:00"
        return True

    def list_submissions_by_status(self, status, limit=100):
        self._record("list_submissions_by_status", status, limit)
        rows = [r for r in self.submissions.values() if r.get("status") == status]
        return [{"id": r["id"], "gig_id": r.get("gig_id"), "status": r["status"]} for r in rows[:limit]]

    # notifications
    def insert_notification(self, row):
        self._record("insert_notification", row)
        notification = dict(row, id=f"n{next(self._ids)}")
        self.notifications.append(notification)
        return notification["id"]

    # creators
    def get_creator(self, creator_id):
        self._record("get_creator", creator_id)
        row = self.creators.get(creator_id)
        return copy.deepcopy(row) if row else None

    def update_creator_rep(self, creator_id, rep):
        self._record("update_creator_rep", creator_id, rep)
        self.creators[creator_id]["rep"] = rep

    # payments
    def find_active_payment(self, submission_id):
        self._record("find_active_payment", submission_id)
        for payment in self.payments:
            if payment["submission_id"] == submission_id and payment["status"] in ACTIVE_PAYMENT_STATUSES:
                return payment
        return None

    def insert_payment(self, row):
        self._record("insert_payment", row)
        payment = dict(row, id=f"p{next(self._ids)}")
        self.payments.append(payment)
        return payment

    def get_balance(self, user_id):
        self._record("get_balance", user_id)
        return self.balances.get(user_id, 0.0)

    def adjust_balance(self, user_id, amount):
        self._record("adjust_balance", user_id, amount)
        self.balances[user_id] = round(self.balances.get(user_id, 0.0) + amount, 2)


@pytest.fixture
def store():
    fake = FakeStore()
    fake.gigs["gig-1"] = {
        "id": "gig-1",
        "title": "Summer Glow Serum",
        "description": "Skincare",
        "product_description": "Vitamin C face serum",
        "base_payout": 100,
        "payout_type": "fixed",
        "brand_id": "brand-1",
        "ai_compliance_required": True,
        "product_in_video_required": True,
        "brief": {"talkingPoints": ["Brightens skin"], "do": ["Show the bottle"]},
    }
    fake.submissions["sub-1"] = {
        "id": "sub-1",
        "gig_id": "gig-1",
        "creator_id": "creator-1",
        "status": "submitted",
        "files": {"videos": ["https://cdn.example.com/sub-1.mp4"], "photos": [], "raw": []},
    }
    fake.creators["creator-1"] = {
        "id": "creator-1",
        "rep": 100,
        "following_count": {"tiktok": 1500, "instagram": 500},
    }
    fake.balances["brand-1"] = 500.0
    return fake


@pytest.fixture
def settlement_config():
    return SettlementConfig(
        platform_fee_percentage=15.0,
        max_retries=0,
        retry_delay=0.0,
        quality_bonus_threshold=70,
    )


PASSING_OUTPUT = """Here is my evaluation:
{
  "compliance": true,
  "quality": 85,
  "breakdown": {"hook": 17, "lighting": 16, "productClarity": 18, "authenticity": 17, "editing": 17},
  "improvementTips": ["Open with the product in frame", "Add captions for sound-off viewers"]
}"""

FAILING_OUTPUT = """{
  "compliance": false,
  "quality": 40,
  "breakdown": {"hook": 8, "lighting": 8, "productClarity": 6, "authenticity": 9, "editing": 9},
  "improvementTips": ["Show the product clearly on screen"]
}"""


@pytest.fixture
def passing_output():
    return PASSING_OUTPUT


@pytest.fixture
def failing_output():
    return FAILING_OUTPUT
