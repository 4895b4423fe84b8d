"""Phase transition engine and inference strategies."""

from devflow.transitions.engine import (
    FIRST_CALL_REASON,
    ReviewState,
    TransitionEngine,
    TransitionResult,
)
from devflow.transitions.strategy import (
    KeywordTransitionStrategy,
    StayStrategy,
    TransitionSignals,
    TransitionStrategy,
    create_strategy,
)

__all__ = [
    "FIRST_CALL_REASON",
    "KeywordTransitionStrategy",
    "ReviewState",
    "StayStrategy",
    "TransitionEngine",
    "TransitionResult",
    "TransitionSignals",
    "TransitionStrategy",
    "create_strategy",
]
