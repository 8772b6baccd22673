from __future__ import annotations

import math
from typing import Any, Protocol

from modules.auction.types import Decision, EvaluationContext, RuleConfig, RuleThoughts, RuleTrace

RULE_PRIORITIES: dict[str, int] = {
    "threshold_parity": 100,
    "blacklist": 90,
    "safety": 80,
    "self_protection": 70,
    "standard_snipe": 60,
    "market_discount": 50,
    "time_decay": 40,
    "predictive_timing": 30,
}

FORCE_COMMIT_PRIORITY = 999

URGENCY_STANDARD = 1.0
URGENCY_PRIORITY = 1.2
URGENCY_ELEVATED = 1.3
URGENCY_AGGRESSIVE = 1.5
URGENCY_MAXIMUM = 2.0


class Rule(Protocol):
    name: str
    priority: int

    def evaluate(self, context: EvaluationContext) -> RuleTrace:
        ...

    def required_checkpoints(self, config: RuleConfig) -> tuple[float, ...]:
        ...


def clamp_progress(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return round(max(0.0, min(100.0, value)), 2)


def format_pct(value: float) -> str:
    return f"{value:.2f}%"


def format_seconds(value: float | None) -> str:
    if value is None:
        return "unknown"
    if math.isinf(value):
        return "unreachable"
    return f"{value:.0f}s"


def profit_progress(profit_pct: float, threshold: float) -> float:
    """Progress toward ``threshold`` measured on the 100 + pct scale."""
    denominator = 100 + threshold
    if denominator <= 0:
        return 100.0
    return (100 + profit_pct) / denominator * 100


class BaseRule:
    name = ""
    priority = 0

    def evaluate(self, context: EvaluationContext) -> RuleTrace:
        raise NotImplementedError

    def required_checkpoints(self, config: RuleConfig) -> tuple[float, ...]:
        return ()

    def _act(self, reason: str, *, urgency: float, **metadata: Any) -> Decision:
        return Decision(
            act=True,
            reason=reason,
            priority=self.priority,
            rule_name=self.name,
            urgency=urgency,
            metadata=metadata,
        )

    def _block(self, reason: str, **metadata: Any) -> Decision:
        return Decision(
            act=False,
            reason=reason,
            priority=self.priority,
            rule_name=self.name,
            metadata=metadata,
        )

    def _trace(
        self,
        decision: Decision | None,
        *,
        current: str,
        target: str,
        progress: float,
        reasoning: tuple[str, ...] | list[str] | str = (),
        **metadata: Any,
    ) -> RuleTrace:
        if isinstance(reasoning, str):
            reasoning = (reasoning,)
        return RuleTrace(
            rule_name=self.name,
            decision=decision,
            thoughts=RuleThoughts(
                current_value=current,
                target_value=target,
                progress=clamp_progress(progress),
                reasoning=tuple(reasoning),
                metadata=metadata,
            ),
        )


class ProfitThresholdRule(BaseRule):
    """Shared threshold check with anticipatory firing.

    Acts when profit already meets the threshold, or when the projected time to
    the threshold checkpoint is below the configured snipe buffer.
    """

    urgency = URGENCY_STANDARD

    def threshold(self, config: RuleConfig) -> float:
        raise NotImplementedError

    def required_checkpoints(self, config: RuleConfig) -> tuple[float, ...]:
        return (float(self.threshold(config)),)

    def _evaluate_threshold(self, context: EvaluationContext, *, label: str) -> RuleTrace:
        config = context.config
        threshold = self.threshold(config)
        profit_pct = context.profit.profit_pct
        time_to_threshold = context.profit.time_to(threshold)
        buffer = config.snipe_buffer_seconds

        met = profit_pct >= threshold
        anticipatory = (
            not met
            and time_to_threshold is not None
            and time_to_threshold < buffer
        )
        progress = 100.0 if met or anticipatory else profit_progress(profit_pct, threshold)
        metadata = {
            "profit_pct": profit_pct,
            "threshold_pct": threshold,
            "time_to_threshold": time_to_threshold,
            "snipe_buffer_seconds": buffer,
            "anticipatory": anticipatory,
        }

        if met:
            decision = self._act(
                f"{label}: profit {format_pct(profit_pct)} >= threshold {format_pct(threshold)}",
                urgency=self.urgency,
                **metadata,
            )
            reasoning = f"Threshold reached with {format_pct(profit_pct - threshold)} to spare"
        elif anticipatory:
            decision = self._act(
                f"{label}: threshold {format_pct(threshold)} projected in "
                f"{format_seconds(time_to_threshold)} (< {buffer:g}s buffer)",
                urgency=self.urgency,
                **metadata,
            )
            reasoning = "Acting ahead of the projected threshold crossing"
        else:
            decision = None
            reasoning = (
                f"Need {format_pct(threshold - profit_pct)} more; "
                f"threshold in {format_seconds(time_to_threshold)}"
            )

        return self._trace(
            decision,
            current=format_pct(profit_pct),
            target=format_pct(threshold),
            progress=progress,
            reasoning=reasoning,
            **metadata,
        )
