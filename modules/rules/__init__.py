from .base import FORCE_COMMIT_PRIORITY, RULE_PRIORITIES, BaseRule, Rule
from .blacklist import BlacklistRule
from .leader import SelfProtectionRule, StandardSnipeRule
from .market_discount import MarketDiscountRule
from .registry import CORE_RULES, OPTIONAL_RULES, build_default_rules
from .safety import SafetyRule
from .threshold_parity import ThresholdParityRule
from .timing import PredictiveTimingRule, TimeDecayUrgencyRule

__all__ = [
    "BaseRule",
    "BlacklistRule",
    "CORE_RULES",
    "FORCE_COMMIT_PRIORITY",
    "MarketDiscountRule",
    "OPTIONAL_RULES",
    "PredictiveTimingRule",
    "RULE_PRIORITIES",
    "Rule",
    "SafetyRule",
    "SelfProtectionRule",
    "StandardSnipeRule",
    "ThresholdParityRule",
    "TimeDecayUrgencyRule",
    "build_default_rules",
]
