"""
Settlement stages.

Stages run in order against the shared SettlementContext. Persistence is
mandatory and runs first; the side-effect stages only run once it committed.
"""

from typing import Any, List, Optional

from ...config import SettlementConfig, get_settlement_config
from ...notifications import NotificationSink
from ...payments import PaymentProcessor
from ...reputation import ReputationLedger
from ..base import Stage
from .notification import NotificationStage
from .payment import PaymentStage
from .persist import PersistEvaluationStage
from .reputation import ReputationStage

__all__ = [
    "PersistEvaluationStage",
    "NotificationStage",
    "ReputationStage",
    "PaymentStage",
    "build_default_stages",
]


def build_default_stages(store: Any = None, config: Optional[SettlementConfig] = None) -> List[Stage]:
    """Default stage order, all backed by the same store."""
    config = config or get_settlement_config()
    return [
        PersistEvaluationStage(store),
        NotificationStage(NotificationSink(store)),
        ReputationStage(ReputationLedger(store), bonus_threshold=config.quality_bonus_threshold),
        PaymentStage(PaymentProcessor(store, config)),
    ]
