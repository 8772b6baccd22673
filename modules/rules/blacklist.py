from __future__ import annotations

from modules.auction.types import EvaluationContext, RuleConfig, RuleTrace

from .base import RULE_PRIORITIES, URGENCY_AGGRESSIVE, BaseRule, format_pct, profit_progress


class BlacklistRule(BaseRule):
    name = "blacklist"
    priority = RULE_PRIORITIES["blacklist"]

    def required_checkpoints(self, config: RuleConfig) -> tuple[float, ...]:
        return (float(config.blacklist_profit_threshold),)

    def evaluate(self, context: EvaluationContext) -> RuleTrace:
        leader = context.auction.leader
        threshold = context.config.blacklist_profit_threshold
        profit_pct = context.profit.profit_pct

        if not context.config.is_blacklisted(leader):
            return self._trace(
                None,
                current="not blacklisted",
                target="blacklisted leader",
                progress=0.0,
                reasoning="Leader is not on the blacklist",
                leader=leader,
            )

        metadata = {"leader": leader, "profit_pct": profit_pct, "threshold_pct": threshold}
        if profit_pct >= threshold:
            decision = self._act(
                f"Blacklisted leader {leader}: profit {format_pct(profit_pct)} >= {format_pct(threshold)}",
                urgency=URGENCY_AGGRESSIVE,
                **metadata,
            )
            return self._trace(
                decision,
                current=format_pct(profit_pct),
                target=format_pct(threshold),
                progress=100.0,
                reasoning="Displacing blacklisted leader",
                **metadata,
            )

        return self._trace(
            None,
            current=format_pct(profit_pct),
            target=format_pct(threshold),
            progress=profit_progress(profit_pct, threshold),
            reasoning=f"Blacklisted leader, waiting for {format_pct(threshold - profit_pct)} more profit",
            **metadata,
        )
