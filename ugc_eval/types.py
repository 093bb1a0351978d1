"""
Type definitions for the submission evaluation pipeline.

Evaluation values (ComplianceCheck, QualityScore, AIEvaluation) are frozen
dataclasses: each run builds a new instance and nothing mutates one in place.
Gig and Submission are read from the document store and carried as plain
dataclasses; the persisted evaluation shape is a TypedDict.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, TypedDict

SCORE_MIN = 0
SCORE_MAX = 100
SUB_SCORE_MAX = 20

BREAKDOWN_FIELDS = ("hook", "lighting", "productClarity", "authenticity", "editing")


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Evaluation values
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ComplianceChecks:
    """Per-requirement compliance flags."""
    product_visible: bool = False
    required_mentions: bool = False
    duration_correct: bool = True
    audio_clear: bool = True
    no_prohibited_content: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {
            "productVisible": self.product_visible,
            "requiredMentions": self.required_mentions,
            "durationCorrect": self.duration_correct,
            "audioClear": self.audio_clear,
            "noProhibitedContent": self.no_prohibited_content,
        }


@dataclass(frozen=True)
class ComplianceCheck:
    """Binary compliance judgment plus the issues that explain a failure."""
    passed: bool
    issues: Tuple[str, ...] = ()
    checks: ComplianceChecks = field(default_factory=ComplianceChecks)

    def __post_init__(self) -> None:
        if self.passed and self.issues:
            raise ValueError("A passing compliance check cannot carry issues")
        if not self.passed and not self.issues:
            raise ValueError("A failing compliance check must carry at least one issue")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "issues": list(self.issues),
            "checks": self.checks.to_dict(),
        }


@dataclass(frozen=True)
class QualityBreakdown:
    """Five 0-20 sub-scores; values are clamped on construction."""
    hook: int = 0
    lighting: int = 0
    product_clarity: int = 0
    authenticity: int = 0
    editing: int = 0

    def __post_init__(self) -> None:
        for name in ("hook", "lighting", "product_clarity", "authenticity", "editing"):
            object.__setattr__(self, name, clamp(int(getattr(self, name)), 0, SUB_SCORE_MAX))

    def to_dict(self) -> Dict[str, int]:
        return {
            "hook": self.hook,
            "lighting": self.lighting,
            "productClarity": self.product_clarity,
            "authenticity": self.authenticity,
            "editing": self.editing,
        }


@dataclass(frozen=True)
class QualityScore:
    """0-100 commercial effectiveness score with its breakdown and tips."""
    score: int
    breakdown: QualityBreakdown = field(default_factory=QualityBreakdown)
    improvement_tips: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "score", clamp(int(self.score), SCORE_MIN, SCORE_MAX))
        object.__setattr__(
            self,
            "improvement_tips",
            tuple(t for t in self.improvement_tips if t and t.strip()),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "breakdown": self.breakdown.to_dict(),
            "improvementTips": list(self.improvement_tips),
        }


@dataclass(frozen=True)
class AIEvaluation:
    """
    Outcome of one evaluation run.

    Attributes:
        compliance: Compliance judgment
        quality: Quality score (attached for every evaluation for audit purposes)
        timestamp: When the evaluation was produced
        source: Which parser produced it ("json", "regex" or "text")
        warnings: Warning codes raised while recovering the result
    """
    compliance: ComplianceCheck
    quality: Optional[QualityScore] = None
    timestamp: datetime = field(default_factory=_utcnow)
    source: str = "json"
    warnings: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        """API representation."""
        return {
            "compliance": self.compliance.to_dict(),
            "quality": self.quality.to_dict() if self.quality else None,
            "timestamp": self.timestamp.isoformat(),
            "source": self.source,
            "warnings": list(self.warnings),
        }

    def to_record(self) -> "AIEvaluationRecord":
        """Shape persisted onto the submission (replaced wholesale each run)."""
        quality = self.quality
        return {
            "compliancePassed": self.compliance.passed,
            "complianceIssues": list(self.compliance.issues),
            "qualityScore": quality.score if quality else 0,
            "qualityBreakdown": (quality.breakdown if quality else QualityBreakdown()).to_dict(),
            "improvementTips": list(quality.improvement_tips) if quality else [],
        }


class QualityBreakdownRecord(TypedDict):
    hook: int
    lighting: int
    productClarity: int
    authenticity: int
    editing: int


class AIEvaluationRecord(TypedDict):
    """Persisted aiEvaluation field on a submission row."""
    compliancePassed: bool
    complianceIssues: List[str]
    qualityScore: int
    qualityBreakdown: QualityBreakdownRecord
    improvementTips: List[str]


# ---------------------------------------------------------------------------
# Marketplace records consumed by the core
# ---------------------------------------------------------------------------

class SubmissionStatus(str, Enum):
    """Submission state machine states."""
    SUBMITTED = "submitted"
    NEEDS_CHANGES = "needs_changes"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass
class GigBrief:
    hooks: List[str] = field(default_factory=list)
    talking_points: List[str] = field(default_factory=list)
    angles: List[str] = field(default_factory=list)
    do: List[str] = field(default_factory=list)
    dont: List[str] = field(default_factory=list)

    @classmethod
    def from_record(cls, data: Optional[Mapping[str, Any]]) -> "GigBrief":
        data = data or {}
        return cls(
            hooks=list(data.get("hooks") or []),
            talking_points=list(data.get("talkingPoints") or data.get("talking_points") or []),
            angles=list(data.get("angles") or []),
            do=list(data.get("do") or []),
            dont=list(data.get("dont") or []),
        )


@dataclass
class FollowerRange:
    min: int = 0
    max: Optional[int] = None
    payout: float = 0.0


@dataclass
class Gig:
    """Campaign a submission was made for (read-only here)."""
    id: str
    title: Optional[str] = None
    description: Optional[str] = None
    product_description: Optional[str] = None
    primary_thing: Optional[str] = None
    brief: GigBrief = field(default_factory=GigBrief)
    deliverables_notes: Optional[str] = None
    product_in_video_required: bool = False
    ai_compliance_required: bool = False
    base_payout: float = 0.0
    payout_type: str = "fixed"
    follower_ranges: List[FollowerRange] = field(default_factory=list)
    reimbursement_cap: float = 0.0
    brand_id: Optional[str] = None

    @classmethod
    def from_record(cls, row: Mapping[str, Any]) -> "Gig":
        deliverables = row.get("deliverables") or {}
        return cls(
            id=str(row["id"]),
            title=row.get("title"),
            description=row.get("description"),
            product_description=row.get("product_description"),
            primary_thing=row.get("primary_thing"),
            brief=GigBrief.from_record(row.get("brief")),
            deliverables_notes=deliverables.get("notes") if isinstance(deliverables, Mapping) else None,
            product_in_video_required=bool(row.get("product_in_video_required")),
            ai_compliance_required=bool(row.get("ai_compliance_required")),
            base_payout=_to_float(row.get("base_payout")),
            payout_type=row.get("payout_type") or "fixed",
            follower_ranges=[
                FollowerRange(
                    min=int(r.get("min") or 0),
                    max=int(r["max"]) if r.get("max") is not None else None,
                    payout=_to_float(r.get("payout")),
                )
                for r in (row.get("follower_ranges") or [])
                if isinstance(r, Mapping)
            ],
            reimbursement_cap=_to_float(row.get("reimbursement_cap")),
            brand_id=row.get("brand_id"),
        )


@dataclass
class SubmissionFiles:
    videos: List[str] = field(default_factory=list)
    photos: List[str] = field(default_factory=list)
    raw: List[str] = field(default_factory=list)


@dataclass
class Submission:
    """A creator's deliverable for a gig, as stored."""
    id: str
    gig_id: str
    creator_id: Optional[str]
    status: SubmissionStatus
    files: SubmissionFiles = field(default_factory=SubmissionFiles)
    ai_evaluation: Optional[Dict[str, Any]] = None
    change_requests_count: int = 0
    product_purchase: Optional[Dict[str, Any]] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_record(cls, row: Mapping[str, Any]) -> "Submission":
        files = row.get("files") or {}
        return cls(
            id=str(row["id"]),
            gig_id=str(row.get("gig_id") or ""),
            creator_id=row.get("creator_id"),
            status=SubmissionStatus(row.get("status") or SubmissionStatus.SUBMITTED.value),
            files=SubmissionFiles(
                videos=[v for v in (files.get("videos") or []) if isinstance(v, str)],
                photos=[p for p in (files.get("photos") or []) if isinstance(p, str)],
                raw=[r for r in (files.get("raw") or []) if isinstance(r, str)],
            ),
            ai_evaluation=row.get("ai_evaluation"),
            change_requests_count=int(row.get("change_requests_count") or 0),
            product_purchase=row.get("product_purchase"),
            updated_at=row.get("updated_at"),
        )


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


__all__ = [
    "BREAKDOWN_FIELDS",
    "SCORE_MIN",
    "SCORE_MAX",
    "SUB_SCORE_MAX",
    "clamp",
    "ComplianceChecks",
    "ComplianceCheck",
    "QualityBreakdown",
    "QualityScore",
    "AIEvaluation",
    "AIEvaluationRecord",
    "QualityBreakdownRecord",
    "SubmissionStatus",
    "GigBrief",
    "FollowerRange",
    "Gig",
    "SubmissionFiles",
    "Submission",
]
