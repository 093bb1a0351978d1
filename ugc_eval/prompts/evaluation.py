"""
Submission evaluation prompt.

Turns gig metadata into the instruction sent alongside the video. The model is
asked for one fixed-shape JSON object; the parsers in `response_parser` and
`text_parser` cope with whatever actually comes back.
"""

from __future__ import annotations

from typing import List

from ..types import Gig

EVALUATOR_SYSTEM_PROMPT = (
    "You are an AI video evaluator for a UGC (User Generated Content) platform. "
    "Your role is to analyze video submissions created by creators for brand "
    "advertising campaigns. You evaluate videos based on product visibility, "
    "commercial quality, visual appeal, and effectiveness as advertisements. "
    "Provide objective, detailed assessments in JSON format."
)

EVALUATION_OUTPUT_SCHEMA = """{
  "compliance": true or false (is the video about the product and does it showcase it clearly?),
  "quality": 0-100 (overall commercial effectiveness rating),
  "breakdown": {
    "hook": 0-20 (how engaging is the opening?),
    "lighting": 0-20 (lighting, framing, composition quality),
    "productClarity": 0-20 (how well is the product showcased?),
    "authenticity": 0-20 (natural delivery, genuine reactions),
    "editing": 0-20 (pacing, cuts and overall effectiveness as an advertisement)
  },
  "improvementTips": ["specific actionable tip", "another helpful suggestion"]
}"""

EVALUATION_USER_TEMPLATE = """You are evaluating a video advertisement with the following details:

{product_info}
{requirements}
Analyze the video and determine if it showcases the product described above. Provide your evaluation in JSON format:

{schema}

IMPORTANT: Provide your actual evaluation scores based on what you see in the video. Do NOT use placeholder values. Each score should reflect the actual quality of the video content you observe."""


def _product_line(gig: Gig) -> str:
    return gig.product_description or gig.title or gig.description or "the product"


def build_product_info(gig: Gig) -> str:
    """Product / campaign / category lines, without repeating the product line."""
    product = _product_line(gig)
    lines = [f"Product: {product}"]

    campaign = gig.title or gig.description
    if gig.product_description and campaign and campaign != product:
        lines.append(f"Gig: {campaign}")

    category = gig.description or gig.primary_thing or ""
    if category and category != product and category != campaign:
        lines.append(f"Category: {category}")

    return "\n".join(lines)


def build_requirements_prompt(gig: Gig) -> str:
    """Brief/requirements block, one line per populated field."""
    parts: List[str] = []

    if gig.title:
        parts.append(f"Gig Title: {gig.title}")
    if gig.description:
        parts.append(f"Description: {gig.description}")
    if gig.product_in_video_required:
        parts.append("Product MUST be visible in the video (this is required)")

    brief = gig.brief
    if brief.talking_points:
        parts.append(f"Key Talking Points: {', '.join(brief.talking_points)}")
    if brief.hooks:
        parts.append(f"Suggested Hooks: {', '.join(brief.hooks)}")
    if brief.angles:
        parts.append(f"Story Angles: {', '.join(brief.angles)}")
    if brief.do:
        parts.append(f"Do's: {', '.join(brief.do)}")
    if brief.dont:
        parts.append(f"Don'ts: {', '.join(brief.dont)}")

    if gig.deliverables_notes:
        parts.append(f"Additional Notes: {gig.deliverables_notes}")

    return "\n".join(parts)


def build_evaluation_prompt(gig: Gig) -> str:
    """Build the instruction sent with the video for a single gig."""
    requirements = ""
    if gig.ai_compliance_required:
        block = build_requirements_prompt(gig)
        if block:
            requirements = f"\nCampaign requirements:\n{block}\n"

    return EVALUATION_USER_TEMPLATE.format(
        product_info=build_product_info(gig),
        requirements=requirements,
        schema=EVALUATION_OUTPUT_SCHEMA,
    )
