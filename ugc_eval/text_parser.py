"""
Natural-language fallback parser.

Used only when the model answered in prose and no JSON-like object could be
found. Compliance, score and tips are inferred heuristically from the text.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from .parse_warnings import WarningCode, add_warning, warning_codes
from .types import (
    AIEvaluation,
    ComplianceCheck,
    ComplianceChecks,
    Gig,
    QualityBreakdown,
    QualityScore,
)

logger = logging.getLogger(__name__)

DEFAULT_SCORE = 50
MAX_TIPS = 3
TIP_MIN_LENGTH = 20
TIP_MAX_LENGTH = 200

AFFIRMATIVE_TOPIC = ("yes", "is about", "related to")
AFFIRMATIVE_VISIBILITY = ("yes", "showcase", "visible", "clearly", "can see")
NEGATIONS_TOPIC = ("not about",)
NEGATIONS_VISIBILITY = ("cannot see", "not visible", "not clear")
IMPROVEMENT_WORDS = ("improve", "better", "could", "should", "suggest")

ISSUE_OFF_TOPIC = "Video does not appear to be about the product"
ISSUE_NOT_VISIBLE = "Product is not clearly visible or showcased"

_BARE_NO_RE = re.compile(r"\bno\b")
_SCORE_PATTERNS = (
    re.compile(r"rate[^\d]*(\d{1,3})", re.IGNORECASE),
    re.compile(r"score[^\d]*(\d{1,3})", re.IGNORECASE),
    re.compile(r"(?:^|\s)(\d{1,3})(?:\s|$)"),
)
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]\s+")


def _contains_any(text: str, phrases) -> bool:
    return any(p in text for p in phrases)


def _product_name(gig: Optional[Gig]) -> str:
    if gig is None:
        return "product"
    return (gig.title or gig.description or "product").lower()


def extract_score(text: str) -> Optional[int]:
    """
    First 1-100 value from the rate/score/standalone patterns, then the last
    non-empty line. None when nothing in range was found.
    """
    for pattern in _SCORE_PATTERNS:
        match = pattern.search(text)
        if match:
            value = int(match.group(1))
            if 1 <= value <= 100:
                return value

    lines = [line for line in text.splitlines() if line.strip()]
    if lines:
        match = re.search(r"(\d{1,3})", lines[-1])
        if match:
            value = int(match.group(1))
            if 1 <= value <= 100:
                return value
    return None


def extract_tips(text: str) -> List[str]:
    """Sentences of reasonable length that suggest an improvement."""
    tips: List[str] = []
    for sentence in _SENTENCE_SPLIT_RE.split(text):
        candidate = sentence.strip()
        lowered = candidate.lower()
        if (
            TIP_MIN_LENGTH <= len(candidate) <= TIP_MAX_LENGTH
            and _contains_any(lowered, IMPROVEMENT_WORDS)
        ):
            tips.append(candidate)
    return tips[:MAX_TIPS]


def tiered_tips(score: int) -> List[str]:
    if score < 50:
        return [
            "Consider improving product visibility and clarity",
            "Add more engaging content to capture attention",
        ]
    if score < 75:
        return ["Good overall quality, minor improvements could enhance effectiveness"]
    return ["Excellent commercial quality, well done!"]


def parse_natural_language_response(output_text: str, gig: Optional[Gig] = None) -> AIEvaluation:
    """Best-effort AIEvaluation from a prose answer."""
    warnings: List[Dict[str, Any]] = []
    add_warning(
        warnings,
        WarningCode.NATURAL_LANGUAGE_FALLBACK,
        "No JSON object in model output, inferring evaluation from prose",
        {"length": len(output_text or "")},
    )

    text = output_text or ""
    lowered = text.lower()
    negated = bool(_BARE_NO_RE.search(lowered))

    is_about_product = (
        not negated
        and not _contains_any(lowered, NEGATIONS_TOPIC)
        and (_contains_any(lowered, AFFIRMATIVE_TOPIC) or _product_name(gig) in lowered)
    )
    showcases_product = (
        not negated
        and not _contains_any(lowered, NEGATIONS_VISIBILITY)
        and _contains_any(lowered, AFFIRMATIVE_VISIBILITY)
    )
    passed = is_about_product and showcases_product

    issues: List[str] = []
    if not is_about_product:
        issues.append(ISSUE_OFF_TOPIC)
    if not showcases_product:
        issues.append(ISSUE_NOT_VISIBLE)

    score = extract_score(text)
    if score is None:
        add_warning(
            warnings,
            WarningCode.SCORE_DEFAULTED,
            f"No quality score found in prose, defaulted to {DEFAULT_SCORE}",
            {"default_value": DEFAULT_SCORE},
        )
        score = DEFAULT_SCORE

    tips = extract_tips(text) or tiered_tips(score)
    fifth = round(score * 0.2)

    # Quality is attached regardless of compliance so the score stays on record.
    quality = QualityScore(
        score=score,
        breakdown=QualityBreakdown(
            hook=fifth,
            lighting=fifth,
            product_clarity=fifth if showcases_product else round(score * 0.1),
            authenticity=fifth,
            editing=fifth,
        ),
        improvement_tips=tuple(tips),
    )

    evaluation = AIEvaluation(
        compliance=ComplianceCheck(
            passed=passed,
            issues=tuple(issues),
            checks=ComplianceChecks(
                product_visible=showcases_product,
                required_mentions=is_about_product,
                duration_correct=True,
                audio_clear="audio unclear" not in lowered and "inaudible" not in lowered,
                no_prohibited_content="inappropriate" not in lowered and "prohibited" not in lowered,
            ),
        ),
        quality=quality,
        source="text",
        warnings=warning_codes(warnings),
    )
    logger.debug(
        "Parsed prose response: compliance=%s quality=%d tips=%d",
        passed, score, len(tips),
    )
    return evaluation


__all__ = [
    "DEFAULT_SCORE",
    "extract_score",
    "extract_tips",
    "tiered_tips",
    "parse_natural_language_response",
]
