from __future__ import annotations

from typing import Iterable

from modules.auction.errors import ConfigurationError

from .base import Rule
from .blacklist import BlacklistRule
from .leader import SelfProtectionRule, StandardSnipeRule
from .market_discount import MarketDiscountRule
from .safety import SafetyRule
from .threshold_parity import ThresholdParityRule
from .timing import PredictiveTimingRule, TimeDecayUrgencyRule

CORE_RULES = ("threshold_parity", "blacklist", "safety", "self_protection", "standard_snipe")
OPTIONAL_RULES = ("market_discount", "time_decay", "predictive_timing")


def build_default_rules(
    *,
    profit_buffer_pct: float | None,
    market_discount_pct: float | None,
    optional_rules: Iterable[str] = OPTIONAL_RULES,
) -> list[Rule]:
    enabled = {name.strip().lower() for name in optional_rules if name.strip()}
    unknown = enabled - set(OPTIONAL_RULES)
    if unknown:
        raise ConfigurationError(f"Unknown optional rules: {', '.join(sorted(unknown))}")

    rules: list[Rule] = [
        ThresholdParityRule(profit_buffer_pct),
        BlacklistRule(),
        SafetyRule(),
        SelfProtectionRule(),
        StandardSnipeRule(),
    ]
    if "market_discount" in enabled:
        rules.append(MarketDiscountRule(market_discount_pct))
    if "time_decay" in enabled:
        rules.append(TimeDecayUrgencyRule())
    if "predictive_timing" in enabled:
        rules.append(PredictiveTimingRule())
    return rules
