"""
Evaluation and settlement exceptions.

Provides a clear hierarchy for different error types:
- EvaluationError: Base exception for everything this package raises
- InputError: Bad request data, rejected before the model is called
- UpstreamError: Model service or data store failed
- ParseError: No JSON-like object in the model output (absorbed by the orchestrator)
- StageError / TransientError: Settlement stage failures inside the pipeline runner
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class EvaluationError(Exception):
    """Base exception for all evaluation/settlement errors."""

    default_code = "evaluation_failed"

    def __init__(self, message: str, code: Optional[str] = None):
        self.code = code or self.default_code
        super().__init__(message)


# ---------------------------------------------------------------------------
# Input errors
# ---------------------------------------------------------------------------

class InputError(EvaluationError):
    """Request cannot be evaluated as given."""

    default_code = "invalid_input"


class MissingIdentifierError(InputError):
    """submissionId or gigId missing."""

    default_code = "missing_identifier"


class RecordNotFoundError(InputError):
    """Submission or gig does not exist."""

    default_code = "not_found"

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind.capitalize()} not found: {record_id}")


class NoVideoFoundError(InputError):
    """Submission has no uploaded video file to evaluate."""

    default_code = "no_video"

    def __init__(self, submission_id: str, debug: Optional[Dict[str, Any]] = None):
        self.submission_id = submission_id
        self.debug = debug or {}
        super().__init__(f"No video files found in submission {submission_id}")


class InvalidVideoUrlError(InputError):
    """Video reference is not an HTTP(S) URL."""

    default_code = "invalid_video_url"

    def __init__(self, url: Any):
        self.url = url
        super().__init__(f"Invalid video URL: {url!r}")


# ---------------------------------------------------------------------------
# Upstream errors
# ---------------------------------------------------------------------------

class UpstreamError(EvaluationError):
    """A collaborator the core depends on failed."""

    default_code = "upstream_error"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = False,
    ):
        self.cause = cause
        self.recoverable = recoverable
        super().__init__(message, code)


class ModelServiceError(UpstreamError):
    """
    Video model call failed.

    recoverable=True means re-invoking the whole pipeline later may succeed
    (rate limit, timeout, parameter shapes exhausted).
    """

    default_code = "model_service_error"


class StoreError(UpstreamError):
    """Document store read/write failed."""

    default_code = "store_error"


class SettlementConflictError(UpstreamError):
    """Submission status changed between read and conditional write."""

    default_code = "settlement_conflict"

    def __init__(self, submission_id: str, expected_status: str):
        self.submission_id = submission_id
        self.expected_status = expected_status
        super().__init__(
            f"Submission {submission_id} is no longer '{expected_status}'; "
            "another evaluation settled it first"
        )


class PaymentError(UpstreamError):
    """Balance transfer for an approved submission did not complete."""

    default_code = "payment_failed"


class InsufficientBalanceError(PaymentError):
    """Brand balance does not cover the payout plus the platform fee."""

    default_code = "insufficient_balance"

    def __init__(self, brand_id: str, balance: float, required: float):
        self.brand_id = brand_id
        self.balance = balance
        self.required = required
        super().__init__(
            f"Insufficient brand balance. Current: ${balance:.2f}, Required: ${required:.2f}"
        )


# ---------------------------------------------------------------------------
# Parse degradation
# ---------------------------------------------------------------------------

class ParseError(EvaluationError):
    """No brace-delimited object found in the model output."""

    default_code = "parse_failed"


# ---------------------------------------------------------------------------
# Settlement stage errors
# ---------------------------------------------------------------------------

class StageError(EvaluationError):
    """Error during settlement stage execution."""

    def __init__(
        self,
        message: str,
        stage_name: str,
        cause: Optional[Exception] = None,
        recoverable: bool = False,
    ):
        self.stage_name = stage_name
        self.cause = cause
        self.recoverable = recoverable
        super().__init__(message, code="stage_failed")


class TransientError(StageError):
    """
    Temporary error that may succeed on retry.

    Examples:
    - Network timeout
    - Rate limit on the store
    """

    def __init__(
        self,
        message: str,
        stage_name: str,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message, stage_name, cause, recoverable=True)


TRANSIENT_INDICATORS = (
    "timeout", "timed out", "rate limit", "429", "503", "502", "504",
    "connection", "temporarily", "overloaded",
)


def looks_transient(error: BaseException) -> bool:
    """Heuristic used by stages to classify unknown collaborator errors."""
    text = str(error).lower()
    return any(ind in text for ind in TRANSIENT_INDICATORS)
