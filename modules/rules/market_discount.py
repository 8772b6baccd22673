from __future__ import annotations

from modules.auction.errors import ConfigurationError
from modules.auction.types import EvaluationContext, RuleTrace
from modules.auction.units import format_amount

from .base import RULE_PRIORITIES, URGENCY_ELEVATED, BaseRule, format_pct


class MarketDiscountRule(BaseRule):
    """Commit when the decaying price falls a configured discount below the last settlement."""

    name = "market_discount"
    priority = RULE_PRIORITIES["market_discount"]

    def __init__(self, discount_pct: float | None) -> None:
        if discount_pct is None:
            raise ConfigurationError("market_discount rule requires discount_pct")
        self.discount_pct = max(0.0, min(100.0, float(discount_pct)))

    def target_price(self, last_settled_price: int) -> int:
        basis_points = round((100 - self.discount_pct) * 100)
        return last_settled_price * basis_points // 10000

    def evaluate(self, context: EvaluationContext) -> RuleTrace:
        last_price = context.last_settled_price
        price = context.auction.current_price

        if not last_price:
            return self._trace(
                None,
                current=format_amount(price),
                target="unknown",
                progress=0.0,
                reasoning="No settled price to compare against",
            )

        target = self.target_price(last_price)
        discount = (last_price - price) * 100 / last_price
        metadata = {
            "current_price": price,
            "last_settled_price": last_price,
            "target_price": target,
            "discount_pct": round(discount, 4),
            "required_discount_pct": self.discount_pct,
        }

        if price <= target:
            decision = self._act(
                f"Price {format_amount(price)} is {format_pct(discount)} below last settlement "
                f"{format_amount(last_price)}",
                urgency=URGENCY_ELEVATED,
                **metadata,
            )
            return self._trace(
                decision,
                current=format_amount(price),
                target=format_amount(target),
                progress=100.0,
                reasoning="Discount threshold reached",
                **metadata,
            )

        progress = discount / self.discount_pct * 100 if self.discount_pct > 0 else 0.0
        return self._trace(
            None,
            current=format_amount(price),
            target=format_amount(target),
            progress=progress,
            reasoning=f"Discount {format_pct(discount)} of {format_pct(self.discount_pct)} required",
            **metadata,
        )
