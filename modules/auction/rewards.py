from __future__ import annotations

import math
from decimal import Decimal
from typing import Iterable

from .errors import MalformedContextError
from .types import ProfitMetrics, RewardAccrual
from .units import div_trunc

DEFAULT_EXPECTED_DECAY_SECONDS = 60
DEFAULT_PROFIT_CHECKPOINTS: tuple[float, ...] = (0.0, 10.0, 20.0, 40.0, 60.0)


def calculate_accrual(
    rate_per_second: int,
    leader_since: float,
    now: float,
    expected_decay_duration: int = DEFAULT_EXPECTED_DECAY_SECONDS,
) -> RewardAccrual:
    """Reward credited to the current leader.

    The leader is assumed to keep accruing through the anticipated decay window,
    so elapsed lead time is counted once more, capped at the window length.
    """
    if rate_per_second < 0:
        raise MalformedContextError(f"Accrual rate must be non-negative, got {rate_per_second}")

    elapsed = math.floor(now - leader_since)
    if elapsed < 0:
        raise MalformedContextError(
            f"Lead start {leader_since} is later than evaluation time {now}"
        )

    window = min(elapsed, max(0, expected_decay_duration))
    return RewardAccrual(
        rate_per_second=rate_per_second,
        total_accrued=rate_per_second * (elapsed + window),
        elapsed_seconds=elapsed,
    )


def _scaled_percentage(amount: int, price: int) -> float:
    return div_trunc(amount * 10000, price) / 100


def checkpoint_basis_points(percentage: float) -> int:
    return math.floor((Decimal(100) + Decimal(str(percentage))) * 100)


def required_accrual(price_paid: int, percentage: float) -> int:
    return price_paid * checkpoint_basis_points(percentage) // 10000


def time_to_checkpoint(
    price_paid: int,
    rate_per_second: int,
    percentage: float,
    expected_decay_duration: int = DEFAULT_EXPECTED_DECAY_SECONDS,
) -> float:
    """Lead time at which accrual reaches ``percentage`` profit over ``price_paid``.

    The decay window term mirrors the one added in ``calculate_accrual``.
    """
    if rate_per_second <= 0:
        return math.inf
    if price_paid <= 0:
        return 0.0
    required = required_accrual(price_paid, percentage)
    return float(max(0, required // rate_per_second - expected_decay_duration))


def project_profit(
    price_paid: int,
    accrual: RewardAccrual,
    checkpoints: Iterable[float] = DEFAULT_PROFIT_CHECKPOINTS,
    expected_decay_duration: int = DEFAULT_EXPECTED_DECAY_SECONDS,
) -> ProfitMetrics:
    if price_paid < 0:
        raise MalformedContextError(f"Price paid must be non-negative, got {price_paid}")

    total = accrual.total_accrued
    rate = accrual.rate_per_second
    net_profit = total - price_paid

    if price_paid == 0:
        return_pct = 0.0
        profit_pct = 0.0
        break_even = 0.0
    else:
        return_pct = _scaled_percentage(total, price_paid)
        profit_pct = _scaled_percentage(net_profit, price_paid)
        break_even = math.inf if rate == 0 else float(price_paid // rate)

    projected = {
        float(percentage): time_to_checkpoint(price_paid, rate, percentage, expected_decay_duration)
        for percentage in sorted({float(item) for item in checkpoints})
    }
    return ProfitMetrics(
        return_pct=return_pct,
        profit_pct=profit_pct,
        net_profit=net_profit,
        break_even_seconds=break_even,
        checkpoints=projected,
    )
