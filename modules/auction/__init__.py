from .context import build_evaluation_context
from .errors import ConfigurationError, MalformedContextError
from .pricing import auction_progress, current_price, reconcile_price, time_until_price
from .rewards import calculate_accrual, project_profit
from .state import (
    AuctionEvent,
    DecayPhaseEntered,
    DecayPhaseExited,
    RewardRateChanged,
    SessionState,
    SettlementDeduplicator,
    SettlementObserved,
    SnapshotRefreshed,
    StateStore,
    realtime_auction,
    reduce_state,
)
from .types import (
    NO_DECISION,
    AuctionParameters,
    AuctionState,
    CallerIdentity,
    Decision,
    EvaluationContext,
    ProfitMetrics,
    RewardAccrual,
    RuleConfig,
    RuleThoughts,
    RuleTrace,
)

__all__ = [
    "AuctionEvent",
    "AuctionParameters",
    "AuctionState",
    "CallerIdentity",
    "ConfigurationError",
    "DecayPhaseEntered",
    "DecayPhaseExited",
    "Decision",
    "EvaluationContext",
    "MalformedContextError",
    "NO_DECISION",
    "ProfitMetrics",
    "RewardAccrual",
    "RewardRateChanged",
    "RuleConfig",
    "RuleThoughts",
    "RuleTrace",
    "SessionState",
    "SettlementDeduplicator",
    "SettlementObserved",
    "SnapshotRefreshed",
    "StateStore",
    "auction_progress",
    "build_evaluation_context",
    "calculate_accrual",
    "current_price",
    "project_profit",
    "realtime_auction",
    "reconcile_price",
    "reduce_state",
    "time_until_price",
]
