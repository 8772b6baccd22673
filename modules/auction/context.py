from __future__ import annotations

from dataclasses import replace
from typing import Iterable

from .rewards import DEFAULT_EXPECTED_DECAY_SECONDS, DEFAULT_PROFIT_CHECKPOINTS, calculate_accrual, project_profit
from .state import SessionState, realtime_auction
from .types import CallerIdentity, EvaluationContext, RuleConfig
from .units import ZERO_ADDRESS
from .validation import normalize_address, validate_evaluation_context


def threshold_checkpoints(config: RuleConfig) -> tuple[float, ...]:
    return (
        float(config.others_profit_threshold),
        float(config.self_profit_threshold),
        float(config.blacklist_profit_threshold),
    )


def build_evaluation_context(
    *,
    state: SessionState,
    config: RuleConfig,
    caller_address: str,
    now: float,
    expected_decay_duration: int = DEFAULT_EXPECTED_DECAY_SECONDS,
    checkpoints: Iterable[float] = DEFAULT_PROFIT_CHECKPOINTS,
) -> EvaluationContext | None:
    """Derive the per-tick context; returns None until an auction has been observed.

    Raises ``MalformedContextError`` when the derived context fails validation.
    """
    auction = realtime_auction(state, now)
    if auction is None:
        return None

    if not auction.leader:
        auction = replace(auction, leader=ZERO_ADDRESS)
    caller = normalize_address(caller_address)
    leader = normalize_address(auction.leader)

    accrual = calculate_accrual(
        state.reward_rate_per_second,
        auction.leader_since,
        now,
        expected_decay_duration,
    )
    price_paid = auction.leader_amount or auction.current_price
    profit = project_profit(
        price_paid,
        accrual,
        (*checkpoints, *threshold_checkpoints(config)),
        expected_decay_duration,
    )

    context = EvaluationContext(
        auction=auction,
        accrual=accrual,
        profit=profit,
        caller=CallerIdentity(address=caller, is_leader=leader == caller),
        config=config,
        evaluated_at=now,
        last_settled_price=auction.last_settled_price,
    )
    return validate_evaluation_context(context)
