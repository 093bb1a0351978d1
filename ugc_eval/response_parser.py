"""
Structured response parser.

Recovers an AIEvaluation from the model's raw text when it contains a
brace-delimited object. The object is cleaned and strictly parsed; when that
fails the individual fields are pulled out with regexes instead. Quality is
attached to every evaluation, including failed compliance, so the score is on
record for later audits.
"""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .parse_warnings import WarningCode, add_warning, warning_codes
from .pipeline.errors import ParseError
from .types import (
    SCORE_MAX,
    SUB_SCORE_MAX,
    AIEvaluation,
    ComplianceCheck,
    ComplianceChecks,
    QualityBreakdown,
    QualityScore,
)

logger = logging.getLogger(__name__)

COMPLIANCE_FAILED_ISSUE = "Video does not meet compliance requirements"
DEFAULT_TIP = "No specific improvement tips provided"
MIN_TIP_LENGTH = 4

# Breakdown keys accepted from the model, canonical name first.
BREAKDOWN_ALIASES: Dict[str, Tuple[str, ...]] = {
    "hook": ("hook",),
    "lighting": ("lighting", "visual"),
    "product_clarity": ("productClarity",),
    "authenticity": ("authenticity",),
    "editing": ("editing", "effectiveness"),
}

_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_PLACEHOLDER_TIP_RE = re.compile(r"^tip\s*\d+$", re.IGNORECASE)
_TIPS_CLEAN_RE = re.compile(r'"improvementTips"\s*:\s*\[([^\]]+)\]', re.IGNORECASE)
_TIPS_RAW_RE = re.compile(r'"improvementTips"\s*:\s*\[([\s\S]*?)\]', re.IGNORECASE)
_QUOTED_RE = re.compile(r'"((?:[^"\\]|\\.)*)"')
_QUOTED_MULTILINE_RE = re.compile(r'"([^"]*)"')


def extract_json_object(text: str) -> str:
    """First '{' through last '}' of the text; raises ParseError when absent."""
    match = _OBJECT_RE.search(text or "")
    if not match:
        raise ParseError("No JSON object found in model response")
    return match.group(0)


def clean_json(json_str: str) -> str:
    """
    Normalise whitespace around JSON punctuation.

    Control characters are removed and line breaks/tabs become spaces so
    strings split across lines still parse; spacing next to braces, brackets,
    colons and commas is collapsed.
    """
    cleaned = _CONTROL_CHARS_RE.sub("", json_str)
    cleaned = re.sub(r"[\r\n\t]", " ", cleaned)
    cleaned = re.sub(r"\s*\{\s*", "{", cleaned)
    cleaned = re.sub(r"\s*\}\s*", "}", cleaned)
    cleaned = re.sub(r"\s*\[\s*", "[", cleaned)
    cleaned = re.sub(r"\s*\]\s*", "]", cleaned)
    cleaned = re.sub(r"\s*:\s*", ":", cleaned)
    cleaned = re.sub(r"\s*,\s*", ",", cleaned)
    cleaned = re.sub(r"\s{2,}", " ", cleaned)
    return cleaned.strip()


def _to_number(value: Any) -> Optional[float]:
    """Numeric value truncated toward zero; infinities are kept so they clamp."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if math.isnan(number):
        return None
    return int(number) if math.isfinite(number) else number


def extract_values(json_str: str) -> Dict[str, Any]:
    """Regex field extraction used when strict parsing fails."""

    def _int_field(key: str) -> Optional[int]:
        match = re.search(rf'"{key}"\s*:\s*(-?\d+)', json_str, re.IGNORECASE)
        return int(match.group(1)) if match else None

    compliance = re.search(r'"compliance"\s*:\s*(true|false)', json_str, re.IGNORECASE)
    breakdown: Dict[str, Any] = {}
    for aliases in BREAKDOWN_ALIASES.values():
        for alias in aliases:
            value = _int_field(alias)
            if value is not None:
                breakdown[alias] = value

    return {
        "compliance": bool(compliance) and compliance.group(1).lower() == "true",
        "quality": _int_field("quality"),
        "breakdown": breakdown,
    }


def _clean_tip(tip: str) -> str:
    tip = tip.replace('\\"', '"').replace("\\\\", "\\")
    tip = _CONTROL_CHARS_RE.sub("", tip)
    tip = re.sub(r"[\r\n\t]", " ", tip)
    return re.sub(r"\s+", " ", tip).strip()


def is_usable_tip(tip: Any) -> bool:
    """Reject empty, too-short and placeholder ("tip 1") tips."""
    if not isinstance(tip, str):
        return False
    stripped = tip.strip()
    return len(stripped) >= MIN_TIP_LENGTH and not _PLACEHOLDER_TIP_RE.match(stripped)


def filter_tips(tips: Any) -> List[str]:
    if not isinstance(tips, list):
        return []
    return [t.strip() for t in tips if is_usable_tip(t)]


def extract_tips(cleaned: str, original: str) -> List[str]:
    """
    Pull improvementTips out of the text without a full JSON parse.

    Tries the cleaned JSON first, then the original text where a tip may
    span several lines.
    """
    match = _TIPS_CLEAN_RE.search(cleaned)
    if match:
        tips = filter_tips([_clean_tip(t) for t in _QUOTED_RE.findall(match.group(1))])
        if tips:
            return tips

    match = _TIPS_RAW_RE.search(original or "")
    if match:
        return filter_tips([_clean_tip(t) for t in _QUOTED_MULTILINE_RE.findall(match.group(1))])
    return []


def _clamped(
    value: Any,
    high: int,
    field: str,
    warnings: List[Dict[str, Any]],
) -> int:
    number = _to_number(value)
    if number is None:
        return 0
    clamped = int(max(0, min(high, number)))
    if clamped != number:
        add_warning(
            warnings,
            WarningCode.SCORE_CLAMPED,
            f"{field} clamped from {number} to {clamped}",
            {"field": field, "original": number, "clamped": clamped},
        )
    return clamped


def _breakdown_value(breakdown: Mapping[str, Any], aliases: Tuple[str, ...]) -> Any:
    for alias in aliases:
        value = breakdown.get(alias)
        if value is not None:
            return value
    return 0


def build_evaluation(
    parsed: Mapping[str, Any],
    tips: List[str],
    warnings: List[Dict[str, Any]],
    source: str,
) -> AIEvaluation:
    """Assemble the final AIEvaluation from recovered fields."""
    passed = parsed.get("compliance") is True
    compliance = ComplianceCheck(
        passed=passed,
        issues=() if passed else (COMPLIANCE_FAILED_ISSUE,),
        checks=ComplianceChecks(
            product_visible=passed,
            required_mentions=passed,
            duration_correct=True,
            audio_clear=True,
            no_prohibited_content=passed,
        ),
    )

    raw_breakdown = parsed.get("breakdown")
    if not isinstance(raw_breakdown, Mapping):
        raw_breakdown = {}
    sub_scores = {
        name: _clamped(_breakdown_value(raw_breakdown, aliases), SUB_SCORE_MAX, f"breakdown.{name}", warnings)
        for name, aliases in BREAKDOWN_ALIASES.items()
    }

    if not tips:
        add_warning(
            warnings,
            WarningCode.TIPS_DEFAULTED,
            "No usable improvement tips recovered",
            log_level="info",
        )
        tips = [DEFAULT_TIP]

    quality = QualityScore(
        score=_clamped(parsed.get("quality"), SCORE_MAX, "quality", warnings),
        breakdown=QualityBreakdown(**sub_scores),
        improvement_tips=tuple(tips),
    )
    return AIEvaluation(
        compliance=compliance,
        quality=quality,
        source=source,
        warnings=warning_codes(warnings),
    )


def parse_json_response(output_text: str) -> AIEvaluation:
    """
    Parse the model output into an AIEvaluation.

    Raises:
        ParseError: If no brace-delimited object exists in the text
    """
    warnings: List[Dict[str, Any]] = []
    json_str = extract_json_object(output_text)
    cleaned = clean_json(json_str)

    source = "json"
    try:
        parsed = json.loads(cleaned)
        if not isinstance(parsed, dict):
            raise ValueError(f"expected an object, got {type(parsed).__name__}")
    except ValueError as exc:
        add_warning(
            warnings,
            WarningCode.JSON_PARSE_FALLBACK,
            "Strict JSON parse failed, extracting fields with regexes",
            {"error": str(exc)[:200], "length": len(cleaned)},
        )
        parsed = extract_values(cleaned)
        source = "regex"

    tips = filter_tips(parsed.get("improvementTips"))
    if not tips:
        tips = extract_tips(cleaned, output_text)

    evaluation = build_evaluation(parsed, tips, warnings, source)
    logger.debug(
        "Parsed %s response: compliance=%s quality=%s tips=%d",
        source, evaluation.compliance.passed,
        evaluation.quality.score if evaluation.quality else None,
        len(evaluation.quality.improvement_tips) if evaluation.quality else 0,
    )
    return evaluation


__all__ = [
    "COMPLIANCE_FAILED_ISSUE",
    "DEFAULT_TIP",
    "clean_json",
    "extract_json_object",
    "extract_tips",
    "extract_values",
    "filter_tips",
    "is_usable_tip",
    "build_evaluation",
    "parse_json_response",
]
