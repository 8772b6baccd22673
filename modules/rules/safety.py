from __future__ import annotations

from modules.auction.types import EvaluationContext, RuleTrace
from modules.auction.units import format_amount

from .base import RULE_PRIORITIES, BaseRule

PRICE_WARNING_RATIO = 0.8
MULTIPLIER_WARNING_MARGIN = 0.2


class SafetyRule(BaseRule):
    """Blocking rule: vetoes every commit when price or safety multiplier is out of bounds."""

    name = "safety"
    priority = RULE_PRIORITIES["safety"]

    def evaluate(self, context: EvaluationContext) -> RuleTrace:
        price = context.auction.current_price
        max_amount = context.config.max_commit_amount
        multiplier = context.auction.safety_multiplier
        ceiling = context.config.max_safety_multiplier
        metadata = {
            "current_price": price,
            "max_commit_amount": max_amount,
            "safety_multiplier": multiplier,
            "max_safety_multiplier": ceiling,
        }

        if price > max_amount:
            decision = self._block(
                f"Price {format_amount(price)} exceeds maximum commit amount {format_amount(max_amount)}",
                **metadata,
            )
            return self._trace(
                decision,
                current=format_amount(price),
                target=f"<= {format_amount(max_amount)}",
                progress=0.0,
                reasoning="Price above configured maximum",
                **metadata,
            )

        if multiplier > ceiling:
            decision = self._block(
                f"Safety threshold exceeded: safety multiplier {multiplier:g} > {ceiling:g}",
                **metadata,
            )
            return self._trace(
                decision,
                current=f"{multiplier:g}x",
                target=f"<= {ceiling:g}x",
                progress=0.0,
                reasoning="Safety multiplier above ceiling",
                **metadata,
            )

        reasoning = []
        if max_amount > 0 and price > max_amount * PRICE_WARNING_RATIO:
            reasoning.append(f"Price is above {PRICE_WARNING_RATIO:.0%} of the maximum commit amount")
        if ceiling - multiplier <= MULTIPLIER_WARNING_MARGIN:
            reasoning.append(f"Safety multiplier within {MULTIPLIER_WARNING_MARGIN:g} of the ceiling")
        if not reasoning:
            reasoning.append("All safety checks passed")

        return self._trace(
            None,
            current=f"{multiplier:g}x",
            target=f"<= {ceiling:g}x",
            progress=100.0,
            reasoning=reasoning,
            **metadata,
        )
