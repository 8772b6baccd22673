from __future__ import annotations

from modules.auction.types import EvaluationContext, RuleConfig, RuleTrace
from modules.auction.units import ZERO_ADDRESS

from .base import (
    RULE_PRIORITIES,
    URGENCY_AGGRESSIVE,
    URGENCY_PRIORITY,
    ProfitThresholdRule,
)


class SelfProtectionRule(ProfitThresholdRule):
    """Re-commit when one of our own wallets leads and the self threshold is reached."""

    name = "self_protection"
    priority = RULE_PRIORITIES["self_protection"]
    urgency = URGENCY_PRIORITY

    def threshold(self, config: RuleConfig) -> float:
        return config.self_profit_threshold

    def evaluate(self, context: EvaluationContext) -> RuleTrace:
        leader = context.auction.leader
        if not (context.caller.is_leader or context.config.is_own(leader)):
            return self._trace(
                None,
                current="other leader",
                target="own wallet leading",
                progress=0.0,
                reasoning="Leader is not one of our wallets",
                leader=leader,
            )
        return self._evaluate_threshold(context, label="Self protection")


class StandardSnipeRule(ProfitThresholdRule):
    """Displace a competing leader once the others threshold is reached."""

    name = "standard_snipe"
    priority = RULE_PRIORITIES["standard_snipe"]
    urgency = URGENCY_AGGRESSIVE

    def threshold(self, config: RuleConfig) -> float:
        return config.others_profit_threshold

    def evaluate(self, context: EvaluationContext) -> RuleTrace:
        leader = context.auction.leader
        config = context.config

        if leader.lower() == ZERO_ADDRESS:
            return self._trace(
                None,
                current="-100.00%",
                target="leader present",
                progress=0.0,
                reasoning="No current leader",
                leader=leader,
            )
        if context.caller.is_leader or config.is_own(leader):
            return self._trace(
                None,
                current="own leader",
                target="other leader",
                progress=0.0,
                reasoning="Own wallet leads; handled by self protection",
                leader=leader,
            )
        if config.is_blacklisted(leader):
            return self._trace(
                None,
                current="blacklisted leader",
                target="other leader",
                progress=0.0,
                reasoning="Blacklisted leader; handled by blacklist rule",
                leader=leader,
            )
        return self._evaluate_threshold(context, label="Standard snipe")
