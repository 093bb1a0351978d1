"""
Prompt templates for the submission evaluation pipeline.
"""

from .evaluation import (
    EVALUATOR_SYSTEM_PROMPT,
    build_evaluation_prompt,
    build_requirements_prompt,
)

__all__ = ["EVALUATOR_SYSTEM_PROMPT", "build_evaluation_prompt", "build_requirements_prompt"]
