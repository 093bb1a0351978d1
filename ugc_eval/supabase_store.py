"""
Document-store helpers using the Supabase Python client.

Every read/write this core performs against the marketplace database goes
through this module, so the rest of the codebase never builds queries itself.
Client failures are re-raised as StoreError with a descriptive code.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, List, Mapping, Optional

from supabase import Client, create_client

from .config import get_db_config
from .pipeline.errors import StoreError

logger = logging.getLogger(__name__)

SUBMISSIONS_TABLE = "submissions"
GIGS_TABLE = "gigs"
CREATORS_TABLE = "creators"
NOTIFICATIONS_TABLE = "notifications"
PAYMENTS_TABLE = "payments"
BALANCES_TABLE = "balances"

ACTIVE_PAYMENT_STATUSES = ("pending", "captured", "transferred", "balance_transferred")


@lru_cache(maxsize=1)
def _get_client() -> Client:
    """Lazily construct a Supabase client from DBConfig."""
    cfg = get_db_config()
    return create_client(cfg.supabase_url, cfg.service_key)


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _classify(exc: Exception) -> str:
    text = str(exc).lower()
    if "unauthenticated" in text or "jwt" in text or "401" in text:
        return "store_unauthenticated"
    if "permission" in text or "403" in text:
        return "store_permission_denied"
    return "store_error"


def _execute(query: Any, action: str) -> List[Dict[str, Any]]:
    """Run a built query, returning its rows or raising StoreError."""
    try:
        resp = query.execute()
    except StoreError:
        raise
    except Exception as exc:
        logger.error("Store %s failed: %s", action, str(exc)[:200])
        raise StoreError(f"Store {action} failed: {exc}", code=_classify(exc), cause=exc) from exc
    return list(getattr(resp, "data", None) or [])


# ---------------------------------------------------------------------------
# Submissions / gigs
# ---------------------------------------------------------------------------

def get_submission(submission_id: str) -> Optional[Dict[str, Any]]:
    """Fetch a submission row, or None when it does not exist."""
    client = _get_client()
    rows = _execute(
        client.table(SUBMISSIONS_TABLE).select("*").eq("id", submission_id).limit(1),
        "submission read",
    )
    return rows[0] if rows else None


def get_gig(gig_id: str) -> Optional[Dict[str, Any]]:
    """Fetch a gig row, or None when it does not exist."""
    client = _get_client()
    rows = _execute(
        client.table(GIGS_TABLE).select("*").eq("id", gig_id).limit(1),
        "gig read",
    )
    return rows[0] if rows else None


def update_submission_if_status(
    submission_id: str,
    expected_status: str,
    fields: Mapping[str, Any],
) -> bool:
    """
    Conditionally update a submission.

    The row is only written while its status still equals expected_status.
    Returns False when no row matched, i.e. another run changed it first.
    """
    payload = dict(fields)
    payload["updated_at"] = _utcnow_iso()
    client = _get_client()
    rows = _execute(
        client.table(SUBMISSIONS_TABLE)
        .update(payload)
        .eq("id", submission_id)
        .eq("status", expected_status),
        "submission update",
    )
    if not rows:
        logger.warning(
            "[%s] Conditional update matched no row (expected status=%s)",
            submission_id, expected_status,
        )
        return False
    return True


def list_submissions_by_status(status: str, limit: int = 100) -> List[Dict[str, Any]]:
    """Most recently updated submissions with the given status."""
    if limit <= 0:
        raise ValueError("limit must be positive.")
    client = _get_client()
    return _execute(
        client.table(SUBMISSIONS_TABLE)
        .select("id, gig_id, status")
        .eq("status", status)
        .order("updated_at", desc=True)
        .limit(limit),
        "submission listing",
    )


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

def insert_notification(row: Mapping[str, Any]) -> str:
    """Insert a notifications row and return its id."""
    payload = dict(row)
    payload.setdefault("read", False)
    payload.setdefault("created_at", _utcnow_iso())
    client = _get_client()
    rows = _execute(client.table(NOTIFICATIONS_TABLE).insert(payload), "notification insert")
    if not rows:
        raise StoreError("Notification insert returned no row")
    return str(rows[0]["id"])


# ---------------------------------------------------------------------------
# Creators / reputation
# ---------------------------------------------------------------------------

def get_creator(creator_id: str) -> Optional[Dict[str, Any]]:
    client = _get_client()
    rows = _execute(
        client.table(CREATORS_TABLE).select("id, rep, following_count").eq("id", creator_id).limit(1),
        "creator read",
    )
    return rows[0] if rows else None


def update_creator_rep(creator_id: str, rep: int) -> None:
    client = _get_client()
    _execute(
        client.table(CREATORS_TABLE).update({"rep": int(rep)}).eq("id", creator_id),
        "creator rep update",
    )


# ---------------------------------------------------------------------------
# Payments / balances
# ---------------------------------------------------------------------------

def find_active_payment(submission_id: str) -> Optional[Dict[str, Any]]:
    """Existing payment for a submission in any non-terminal-failure state."""
    client = _get_client()
    rows = _execute(
        client.table(PAYMENTS_TABLE)
        .select("*")
        .eq("submission_id", submission_id)
        .in_("status", list(ACTIVE_PAYMENT_STATUSES))
        .limit(1),
        "payment lookup",
    )
    return rows[0] if rows else None


def insert_payment(row: Mapping[str, Any]) -> Dict[str, Any]:
    payload = dict(row)
    payload.setdefault("created_at", _utcnow_iso())
    client = _get_client()
    rows = _execute(client.table(PAYMENTS_TABLE).insert(payload), "payment insert")
    if not rows:
        raise StoreError("Payment insert returned no row")
    return rows[0]


def get_balance(user_id: str) -> float:
    """Current balance for a user, 0 when no balance row exists."""
    client = _get_client()
    rows = _execute(
        client.table(BALANCES_TABLE).select("amount").eq("user_id", user_id).limit(1),
        "balance read",
    )
    if not rows:
        return 0.0
    return float(rows[0].get("amount") or 0)


def adjust_balance(user_id: str, amount: float) -> None:
    """Atomically add amount (may be negative) to a user's balance."""
    client = _get_client()
    _execute(
        client.rpc("increment_balance", {"p_user_id": user_id, "p_amount": round(float(amount), 2)}),
        "balance adjustment",
    )


__all__ = [
    "ACTIVE_PAYMENT_STATUSES",
    "get_submission",
    "get_gig",
    "update_submission_if_status",
    "list_submissions_by_status",
    "insert_notification",
    "get_creator",
    "update_creator_rep",
    "find_active_payment",
    "insert_payment",
    "get_balance",
    "adjust_balance",
]
