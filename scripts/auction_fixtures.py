from __future__ import annotations

import os
from dataclasses import replace
from typing import Any
from unittest.mock import patch

from modules.auction.types import (
    AuctionState,
    CallerIdentity,
    EvaluationContext,
    ProfitMetrics,
    RewardAccrual,
    RuleConfig,
)
from modules.auction.validation import build_rule_config
from modules.bot_runtime.settings import AppSettings

ETHER = 10**18
LEADER = "0x" + "a" * 40
CALLER = "0x" + "b" * 40
BLACKLISTED = "0x" + "c" * 40


def make_rule_config(**overrides: Any) -> RuleConfig:
    values: dict[str, Any] = {
        "others_profit_threshold": 2.0,
        "self_profit_threshold": 5.0,
        "blacklist_profit_threshold": 0.0,
        "snipe_buffer_seconds": 3.0,
        "max_safety_multiplier": 1.4,
        "max_commit_amount": 20 * ETHER,
        "own_wallets": (CALLER,),
        "blacklisted": (BLACKLISTED,),
    }
    values.update(overrides)
    return build_rule_config(**values)


def make_auction(**overrides: Any) -> AuctionState:
    values: dict[str, Any] = {
        "current_price": 10_000,
        "leader": LEADER,
        "leader_amount": 10_000,
        "leader_since": 0.0,
        "is_decay_phase": True,
        "safety_multiplier": 1.0,
        "last_settled_price": None,
        "round_index": 1,
        "decay_started_at": 0.0,
    }
    values.update(overrides)
    return AuctionState(**values)


def make_context(
    *,
    auction: AuctionState | None = None,
    config: RuleConfig | None = None,
    accrued: int = 0,
    rate: int = 0,
    profit_pct: float = -50.0,
    checkpoints: dict[float, float] | None = None,
    caller: str = CALLER,
    evaluated_at: float = 100.0,
    last_settled_price: int | None = None,
) -> EvaluationContext:
    auction = auction or make_auction()
    config = config or make_rule_config()
    if checkpoints is None:
        checkpoints = {
            float(config.others_profit_threshold): 1000.0,
            float(config.self_profit_threshold): 1000.0,
            float(config.blacklist_profit_threshold): 1000.0,
            2.0: 1000.0,
        }
    if last_settled_price is not None:
        auction = replace(auction, last_settled_price=last_settled_price)
    return EvaluationContext(
        auction=auction,
        accrual=RewardAccrual(rate_per_second=rate, total_accrued=accrued, elapsed_seconds=0),
        profit=ProfitMetrics(
            return_pct=100 + profit_pct,
            profit_pct=profit_pct,
            net_profit=accrued - auction.current_price,
            break_even_seconds=float("inf"),
            checkpoints={float(key): float(value) for key, value in checkpoints.items()},
        ),
        caller=CallerIdentity(address=caller, is_leader=auction.leader.lower() == caller.lower()),
        config=config,
        evaluated_at=evaluated_at,
        last_settled_price=auction.last_settled_price,
    )


def make_settings(**overrides: Any) -> AppSettings:
    with patch.dict(os.environ, {}, clear=True):
        settings = AppSettings.from_env()
    return replace(settings, **overrides)
