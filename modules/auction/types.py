from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from typing import Any, Mapping

MAX_SAFE_JSON_INT = 2**53 - 1


def json_safe(value: Any) -> Any:
    if isinstance(value, bool) or value is None or isinstance(value, str):
        return value
    if isinstance(value, int):
        return str(value) if abs(value) > MAX_SAFE_JSON_INT else value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, Mapping):
        return {str(key): json_safe(child) for key, child in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [json_safe(item) for item in value]
    return str(value)


@dataclass(slots=True, frozen=True)
class AuctionParameters:
    start_price: int
    floor_price: int
    duration_seconds: int
    started_at: float

    def to_dict(self) -> dict[str, Any]:
        return json_safe(asdict(self))


@dataclass(slots=True, frozen=True)
class AuctionState:
    current_price: int
    leader: str
    leader_amount: int
    leader_since: float
    is_decay_phase: bool
    safety_multiplier: float
    last_settled_price: int | None = None
    round_index: int | None = None
    decay_started_at: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return json_safe(asdict(self))


@dataclass(slots=True, frozen=True)
class RewardAccrual:
    rate_per_second: int
    total_accrued: int
    elapsed_seconds: int


@dataclass(slots=True, frozen=True)
class ProfitMetrics:
    return_pct: float
    profit_pct: float
    net_profit: int
    break_even_seconds: float
    checkpoints: Mapping[float, float]

    def time_to(self, percentage: float) -> float | None:
        return self.checkpoints.get(float(percentage))

    def to_dict(self) -> dict[str, Any]:
        return {
            "return_pct": self.return_pct,
            "profit_pct": self.profit_pct,
            "net_profit": json_safe(self.net_profit),
            "break_even_seconds": json_safe(self.break_even_seconds),
            "checkpoints": {f"{key:g}": json_safe(value) for key, value in self.checkpoints.items()},
        }


@dataclass(slots=True, frozen=True)
class RuleConfig:
    others_profit_threshold: float
    self_profit_threshold: float
    blacklist_profit_threshold: float
    snipe_buffer_seconds: float
    max_safety_multiplier: float
    max_commit_amount: int
    own_wallets: frozenset[str] = frozenset()
    blacklisted: frozenset[str] = frozenset()

    def is_own(self, address: str) -> bool:
        return address.lower() in self.own_wallets

    def is_blacklisted(self, address: str) -> bool:
        return address.lower() in self.blacklisted

    def to_dict(self) -> dict[str, Any]:
        payload = json_safe(asdict(self))
        payload["own_wallets"] = sorted(self.own_wallets)
        payload["blacklisted"] = sorted(self.blacklisted)
        return payload


@dataclass(slots=True, frozen=True)
class CallerIdentity:
    address: str
    is_leader: bool


@dataclass(slots=True, frozen=True)
class EvaluationContext:
    auction: AuctionState
    accrual: RewardAccrual
    profit: ProfitMetrics
    caller: CallerIdentity
    config: RuleConfig
    evaluated_at: float
    last_settled_price: int | None = None


@dataclass(slots=True, frozen=True)
class Decision:
    act: bool
    reason: str
    priority: int
    rule_name: str = ""
    urgency: float | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_blocking(self) -> bool:
        return not self.act

    def to_dict(self) -> dict[str, Any]:
        return {
            "act": self.act,
            "reason": self.reason,
            "priority": self.priority,
            "rule_name": self.rule_name,
            "urgency": self.urgency,
            "metadata": json_safe(dict(self.metadata)),
        }


NO_DECISION = Decision(act=False, reason="no rule triggered", priority=0)


@dataclass(slots=True, frozen=True)
class RuleThoughts:
    current_value: str
    target_value: str
    progress: float
    reasoning: tuple[str, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_value": self.current_value,
            "target_value": self.target_value,
            "progress": self.progress,
            "reasoning": list(self.reasoning),
            "metadata": json_safe(dict(self.metadata)),
        }


@dataclass(slots=True, frozen=True)
class RuleTrace:
    rule_name: str
    decision: Decision | None
    thoughts: RuleThoughts

    @property
    def triggered(self) -> bool:
        return self.decision is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_name": self.rule_name,
            "triggered": self.triggered,
            "decision": self.decision.to_dict() if self.decision else None,
            "thoughts": self.thoughts.to_dict(),
        }
