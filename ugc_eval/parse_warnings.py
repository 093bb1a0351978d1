"""
Parse warnings for evaluation responses.

The model output is semi-structured, so recovering an evaluation often takes
a repair step or a default. Each step records a stable warning code that
travels with the evaluation and is logged with its metadata.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger("ugc_eval.parse_warnings")


class WarningCode:
    """Standardized warning codes for response recovery."""

    # JSON/Parse issues
    JSON_PARSE_FALLBACK = "JSON_PARSE_FALLBACK"
    NATURAL_LANGUAGE_FALLBACK = "NATURAL_LANGUAGE_FALLBACK"

    # Score issues
    SCORE_CLAMPED = "SCORE_CLAMPED"
    SCORE_DEFAULTED = "SCORE_DEFAULTED"

    # Tip issues
    TIPS_DEFAULTED = "TIPS_DEFAULTED"


def create_warning(
    code: str,
    message: str,
    meta: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Create a standardized warning entry.

    Returns:
        Warning dict: {code, message, meta, ts}
    """
    return {
        "code": code,
        "message": message,
        "meta": meta or {},
        "ts": datetime.now(timezone.utc).isoformat(),
    }


def add_warning(
    warnings: List[Dict[str, Any]],
    code: str,
    message: str,
    meta: Optional[Dict[str, Any]] = None,
    log_level: str = "warning",
) -> Dict[str, Any]:
    """Append a warning to the list and log it."""
    warning = create_warning(code, message, meta)
    warnings.append(warning)

    log_fn = getattr(logger, log_level, logger.warning)
    log_fn("Parse warning [%s]: %s | meta=%s", code, message, meta or {})
    return warning


def warning_codes(warnings: List[Dict[str, Any]]) -> tuple:
    """Distinct codes in first-seen order, for attaching to an AIEvaluation."""
    seen: List[str] = []
    for w in warnings:
        code = w.get("code")
        if code and code not in seen:
            seen.append(code)
    return tuple(seen)


__all__ = ["WarningCode", "create_warning", "add_warning", "warning_codes"]
