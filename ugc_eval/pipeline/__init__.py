"""
Settlement pipeline.

Provides a stage-based runner for the side effects of an evaluation:
persisting the result first, then notification, reputation and payment.
Each stage is independently testable.
"""

from .base import SettlementPipeline, SettlementResult, Stage
from .context import SettlementContext
from .errors import (
    EvaluationError,
    InputError,
    ModelServiceError,
    ParseError,
    SettlementConflictError,
    StageError,
    StoreError,
    TransientError,
    UpstreamError,
)

__all__ = [
    # Core classes
    "Stage",
    "SettlementPipeline",
    "SettlementResult",
    "SettlementContext",
    # Exceptions
    "EvaluationError",
    "InputError",
    "UpstreamError",
    "ModelServiceError",
    "StoreError",
    "SettlementConflictError",
    "ParseError",
    "StageError",
    "TransientError",
]
