"""
Inbound trigger: evaluate one submission and settle the result.

`evaluate_submission` is the single entry point shared by the HTTP API and
the operator CLI. Input problems are rejected before the model is called,
and nothing is written unless an evaluation was produced. Errors are mapped
to an `{error, message, code}` payload by `error_response`.
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import sentry_sdk

from . import supabase_store
from .evaluation import ModelInvoker, evaluate
from .locks import SUBMISSION_LOCKS, KeyedLock
from .pipeline.errors import (
    EvaluationError,
    InputError,
    InvalidVideoUrlError,
    MissingIdentifierError,
    ModelServiceError,
    NoVideoFoundError,
    RecordNotFoundError,
    SettlementConflictError,
    StoreError,
)
from .settlement import SettlementCoordinator
from .types import Gig, Submission

logger = logging.getLogger(__name__)

VIDEO_EXTENSION_RE = re.compile(r"\.(mp4|mov|avi|webm|mkv)$", re.IGNORECASE)


def select_video_files(submission: Submission) -> List[str]:
    """Uploaded videos, else raw files with a video extension."""
    if submission.files.videos:
        return list(submission.files.videos)
    return [url for url in submission.files.raw if url and VIDEO_EXTENSION_RE.search(url)]


def validate_video_url(url: Any) -> str:
    if not isinstance(url, str):
        raise InvalidVideoUrlError(url)
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidVideoUrlError(url)
    return url


class EvaluationService:
    """
    Reads a submission and its gig, evaluates the video, settles the result.

    Runs for the same submission id are serialised in-process; runs in other
    processes are caught by the conditional status write.
    """

    def __init__(
        self,
        store: Any = None,
        invoke: Optional[ModelInvoker] = None,
        coordinator: Optional[SettlementCoordinator] = None,
        locks: KeyedLock = SUBMISSION_LOCKS,
    ):
        self.store = store or supabase_store
        self.invoke = invoke
        self._coordinator = coordinator
        self.locks = locks

    @property
    def coordinator(self) -> SettlementCoordinator:
        if self._coordinator is None:
            self._coordinator = SettlementCoordinator(self.store)
        return self._coordinator

    def load(self, submission_id: str, gig_id: str) -> Tuple[Submission, Gig]:
        row = self.store.get_submission(submission_id)
        if not row:
            raise RecordNotFoundError("submission", submission_id)
        gig_row = self.store.get_gig(gig_id)
        if not gig_row:
            raise RecordNotFoundError("gig", gig_id)

        submission = Submission.from_record(row)
        if submission.gig_id and submission.gig_id != gig_id:
            logger.warning(
                "[%s] Submission belongs to gig %s, evaluating against %s",
                submission_id, submission.gig_id, gig_id,
            )
        return submission, Gig.from_record(gig_row)

    def evaluate_submission(self, submission_id: Optional[str], gig_id: Optional[str]) -> Dict[str, Any]:
        """
        Evaluate and settle one submission.

        Returns:
            {success, evaluation, autoApproved, settlement}

        Raises:
            InputError: Missing ids, unknown records or no usable video
            UpstreamError: Model or store failure, or a lost settlement race
        """
        if not submission_id or not gig_id:
            raise MissingIdentifierError("Missing submissionId or gigId")

        with self.locks.hold(submission_id):
            submission, gig = self.load(submission_id, gig_id)

            videos = select_video_files(submission)
            if not videos:
                raise NoVideoFoundError(
                    submission_id,
                    debug={
                        "videosCount": len(submission.files.videos),
                        "rawCount": len(submission.files.raw),
                        "photosCount": len(submission.files.photos),
                    },
                )
            video_url = validate_video_url(videos[0])
            logger.info(
                "[%s] Evaluating %s (previous status=%s, ai_compliance_required=%s)",
                submission_id, video_url, submission.status.value, gig.ai_compliance_required,
            )

            evaluation = evaluate(video_url, gig, invoke=self.invoke)
            settlement = self.coordinator.settle(submission, gig, evaluation)

        return {
            "success": True,
            "evaluation": evaluation.to_dict(),
            "autoApproved": evaluation.compliance.passed,
            "settlement": settlement.to_dict(),
        }


def error_response(exc: BaseException) -> Tuple[int, Dict[str, Any]]:
    """Map an exception to (HTTP status, {error, message, code})."""
    code = getattr(exc, "code", None)

    if isinstance(exc, RecordNotFoundError):
        return 404, {"error": "Submission or gig not found", "message": str(exc), "code": code}
    if isinstance(exc, NoVideoFoundError):
        return 400, {
            "error": "No video files found in submission",
            "message": "Please upload video files. Content links are not supported for AI evaluation.",
            "code": code,
            "debug": exc.debug,
        }
    if isinstance(exc, InvalidVideoUrlError):
        return 400, {
            "error": "Invalid video URL",
            "message": "The video URL is not valid or accessible.",
            "code": code,
        }
    if isinstance(exc, InputError):
        return 400, {"error": str(exc), "message": str(exc), "code": code}
    if isinstance(exc, SettlementConflictError):
        return 409, {"error": "Evaluation conflict", "message": str(exc), "code": code}
    if isinstance(exc, ModelServiceError):
        return 502, {"error": "Model service failed", "message": str(exc), "code": code}
    if isinstance(exc, StoreError):
        if code == "store_unauthenticated":
            error = "Data store authentication failed"
            message = "Check SUPABASE_URL and SUPABASE_SERVICE_KEY."
        elif code == "store_permission_denied":
            error = "Permission denied"
            message = "The service key does not have access to this data."
        else:
            error, message = "Evaluation failed", str(exc)
        return 500, {"error": error, "message": message, "code": code}
    return 500, {"error": "Evaluation failed", "message": str(exc), "code": code}


@lru_cache(maxsize=1)
def get_service() -> EvaluationService:
    return EvaluationService()


def evaluate_submission(submission_id: Optional[str], gig_id: Optional[str]) -> Dict[str, Any]:
    """Module-level convenience wrapper around the shared service."""
    return get_service().evaluate_submission(submission_id, gig_id)


def handle_evaluate_request(
    submission_id: Optional[str],
    gig_id: Optional[str],
    service: Optional[EvaluationService] = None,
) -> Tuple[int, Dict[str, Any]]:
    """Run an evaluation and return (HTTP status, response body)."""
    service = service or get_service()
    try:
        return 200, service.evaluate_submission(submission_id, gig_id)
    except InputError as exc:
        logger.warning("[%s] Rejected evaluation request: %s", submission_id, exc)
        return error_response(exc)
    except EvaluationError as exc:
        logger.error("[%s] Evaluation failed (%s): %s", submission_id, exc.code, exc)
        sentry_sdk.capture_exception(exc)
        return error_response(exc)
    except Exception as exc:
        logger.exception("[%s] Unexpected evaluation error", submission_id)
        sentry_sdk.capture_exception(exc)
        return error_response(exc)


__all__ = [
    "EvaluationService",
    "error_response",
    "evaluate_submission",
    "get_service",
    "handle_evaluate_request",
    "select_video_files",
    "validate_video_url",
]
