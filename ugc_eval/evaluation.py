"""
Evaluation orchestrator.

Builds the prompt, invokes the video model once, and parses the answer.
A structured-parse failure falls back to the prose parser over the same
text; the model is never re-invoked because of a parse failure.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .model_client import evaluate_video
from .pipeline.errors import ParseError
from .prompts import build_evaluation_prompt
from .response_parser import parse_json_response
from .text_parser import parse_natural_language_response
from .types import AIEvaluation, Gig

logger = logging.getLogger(__name__)

ModelInvoker = Callable[[str, str], str]


def parse_model_output(output_text: str, gig: Optional[Gig] = None) -> AIEvaluation:
    """Structured parse with prose fallback."""
    try:
        return parse_json_response(output_text)
    except ParseError as exc:
        logger.warning("Structured parse failed (%s); using prose fallback", exc)
        return parse_natural_language_response(output_text, gig)


def evaluate(video_url: str, gig: Gig, invoke: Optional[ModelInvoker] = None) -> AIEvaluation:
    """
    Evaluate one video against a gig.

    Args:
        video_url: Durable HTTP(S) URL of the uploaded video
        gig: Campaign the video was made for
        invoke: Model call (video_url, prompt) -> text; defaults to the
            shared Replicate client

    Raises:
        ModelServiceError: If the model could not be called
    """
    invoke = invoke or evaluate_video
    prompt = build_evaluation_prompt(gig)
    logger.debug("[gig %s] Evaluating %s (prompt %d chars)", gig.id, video_url, len(prompt))

    output_text = invoke(video_url, prompt)
    logger.debug("[gig %s] Model output: %s", gig.id, (output_text or "")[:500])

    evaluation = parse_model_output(output_text, gig)
    logger.info(
        "[gig %s] Evaluation: compliance=%s quality=%s source=%s warnings=%s",
        gig.id,
        evaluation.compliance.passed,
        evaluation.quality.score if evaluation.quality else None,
        evaluation.source,
        ",".join(evaluation.warnings) or "-",
    )
    return evaluation


__all__ = ["ModelInvoker", "evaluate", "parse_model_output"]
