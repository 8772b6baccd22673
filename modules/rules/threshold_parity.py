from __future__ import annotations

from modules.auction.errors import ConfigurationError
from modules.auction.rewards import required_accrual
from modules.auction.types import EvaluationContext, RuleTrace
from modules.auction.units import format_amount

from .base import RULE_PRIORITIES, URGENCY_AGGRESSIVE, BaseRule, format_pct, format_seconds


class ThresholdParityRule(BaseRule):
    """Commit once the leader's accrued reward covers the current price plus a buffer."""

    name = "threshold_parity"
    priority = RULE_PRIORITIES["threshold_parity"]

    def __init__(self, profit_buffer_pct: float | None) -> None:
        if profit_buffer_pct is None:
            raise ConfigurationError("threshold_parity rule requires profit_buffer_pct")
        self.profit_buffer_pct = max(0.0, min(100.0, float(profit_buffer_pct)))

    def evaluate(self, context: EvaluationContext) -> RuleTrace:
        price = context.auction.current_price
        accrued = context.accrual.total_accrued
        required = required_accrual(price, self.profit_buffer_pct)
        ratio = accrued / required if required > 0 else None
        metadata = {
            "accrued": accrued,
            "current_price": price,
            "required": required,
            "profit_buffer_pct": self.profit_buffer_pct,
            "ratio": ratio,
        }

        if accrued >= required:
            decision = self._act(
                f"Accrued reward {format_amount(accrued)} >= current price {format_amount(price)} "
                f"(buffer {format_pct(self.profit_buffer_pct)})",
                urgency=URGENCY_AGGRESSIVE,
                **metadata,
            )
            return self._trace(
                decision,
                current=format_amount(accrued),
                target=format_amount(required),
                progress=100.0,
                reasoning="Accrued reward covers the price",
                **metadata,
            )

        rate = context.accrual.rate_per_second
        seconds_to_target = (required - accrued) / rate if rate > 0 else float("inf")
        return self._trace(
            None,
            current=format_amount(accrued),
            target=format_amount(required),
            progress=accrued / required * 100,
            reasoning=(
                f"Accrued reward is {ratio:.2%} of the required amount",
                f"Target in {format_seconds(seconds_to_target)} at the current rate",
            ),
            **metadata,
        )
