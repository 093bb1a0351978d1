"""
CLI to re-run AI evaluation for existing submissions (operator audits).

Usage:
    python -m ugc_eval.reevaluate --submission-id=abc --gig-id=xyz
    python -m ugc_eval.reevaluate --status=approved --limit=20

Each submission goes through the same path as the HTTP trigger, so a
re-audit that now fails demotes an approved submission, while one that
still passes pays nothing twice.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional, Sequence

from . import __version__
from .pipeline.errors import EvaluationError
from .monitoring import configure_logging, init_error_tracking
from .service import EvaluationService, handle_evaluate_request
from .types import SubmissionStatus

logger = logging.getLogger("ugc_eval.reevaluate")


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Re-run AI evaluation and settlement for submissions."
    )
    parser.add_argument("--submission-id", help="Single submission to re-evaluate.")
    parser.add_argument("--gig-id", help="Gig of the single submission.")
    parser.add_argument(
        "--status",
        choices=[s.value for s in SubmissionStatus],
        help="Re-evaluate submissions currently in this status.",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Max submissions to re-evaluate with --status (default: 20).",
    )
    args = parser.parse_args(argv)

    single = bool(args.submission_id or args.gig_id)
    if single and not (args.submission_id and args.gig_id):
        parser.error("--submission-id and --gig-id must be given together")
    if single == bool(args.status):
        parser.error("give either --submission-id/--gig-id or --status")
    if args.limit <= 0:
        parser.error("--limit must be positive")
    return args


def _targets(args: argparse.Namespace, store) -> List[tuple]:
    if args.submission_id:
        return [(args.submission_id, args.gig_id)]
    rows = store.list_submissions_by_status(args.status, limit=args.limit)
    return [(str(r["id"]), str(r.get("gig_id") or "")) for r in rows]


def _summary(submission_id: str, status_code: int, body: dict) -> str:
    if status_code != 200:
        return f"{submission_id}: ERROR {status_code} {body.get('code')} - {body.get('message')}"
    evaluation = body.get("evaluation") or {}
    quality = evaluation.get("quality") or {}
    settlement = body.get("settlement") or {}
    failed = settlement.get("failedStages") or []
    line = (
        f"{submission_id}: {settlement.get('previousStatus')} -> {settlement.get('newStatus')} "
        f"(quality={quality.get('score')}, source={evaluation.get('source')})"
    )
    if failed:
        line += f" failed side effects: {', '.join(failed)}"
    return line


def main(argv: Optional[Sequence[str]] = None, service: Optional[EvaluationService] = None) -> int:
    args = _parse_args(argv)
    configure_logging()
    init_error_tracking(release=f"ugc-eval-cli@{__version__}")

    service = service or EvaluationService()
    try:
        targets = _targets(args, service.store)
    except EvaluationError as exc:
        logger.error("Could not list submissions: %s", exc)
        return 1
    if not targets:
        logger.info("No submissions to re-evaluate.")
        return 0

    logger.info("Re-evaluating %d submission(s)", len(targets))
    errors = 0
    for submission_id, gig_id in targets:
        status_code, body = handle_evaluate_request(submission_id, gig_id, service=service)
        if status_code != 200:
            errors += 1
        print(_summary(submission_id, status_code, body))

    logger.info("Done: %d ok, %d failed", len(targets) - errors, errors)
    return 1 if errors else 0


if __name__ == "__main__":
    sys.exit(main())
