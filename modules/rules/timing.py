from __future__ import annotations

import math

from modules.auction.types import EvaluationContext, RuleConfig, RuleTrace

from .base import (
    RULE_PRIORITIES,
    URGENCY_AGGRESSIVE,
    URGENCY_ELEVATED,
    URGENCY_MAXIMUM,
    URGENCY_PRIORITY,
    URGENCY_STANDARD,
    BaseRule,
    format_pct,
    format_seconds,
)

STALL_SECONDS = 30.0


class TimeDecayUrgencyRule(BaseRule):
    """Lowers the profit bar as the decay phase ages.

    The early phase never acts; the mid phase acts at ``mid_phase_threshold``;
    the late phase acts at ``late_phase_threshold`` with growing urgency.
    """

    name = "time_decay"
    priority = RULE_PRIORITIES["time_decay"]

    def __init__(
        self,
        *,
        expected_duration_seconds: float = 30.0,
        early_phase_seconds: float = 10.0,
        mid_phase_seconds: float = 20.0,
        late_phase_threshold: float = -20.0,
        mid_phase_threshold: float = 0.0,
    ) -> None:
        self.expected_duration_seconds = expected_duration_seconds
        self.early_phase_seconds = early_phase_seconds
        self.mid_phase_seconds = mid_phase_seconds
        self.late_phase_threshold = late_phase_threshold
        self.mid_phase_threshold = mid_phase_threshold

    def evaluate(self, context: EvaluationContext) -> RuleTrace:
        auction = context.auction
        if not auction.is_decay_phase or auction.decay_started_at is None:
            return self._trace(
                None,
                current="not in decay phase",
                target="decay phase",
                progress=0.0,
                reasoning="Waiting for the decay phase to begin",
                is_decay_phase=auction.is_decay_phase,
            )

        age = max(0, math.floor(context.evaluated_at - auction.decay_started_at))
        profit_pct = context.profit.profit_pct
        progress = age / self.expected_duration_seconds * 100 if self.expected_duration_seconds > 0 else 100.0

        if age < self.early_phase_seconds:
            return self._trace(
                None,
                current=f"{age}s (early)",
                target=f"{self.early_phase_seconds:g}s",
                progress=progress,
                reasoning=f"Early phase, {self.early_phase_seconds - age:g}s to mid phase",
                phase="early",
                age_seconds=age,
            )

        if age < self.mid_phase_seconds:
            phase = "mid"
            threshold = self.mid_phase_threshold
            urgency = URGENCY_STANDARD
        else:
            phase = "late"
            threshold = self.late_phase_threshold
            urgency = min(URGENCY_MAXIMUM, URGENCY_AGGRESSIVE + (age - self.mid_phase_seconds) / 10)

        metadata = {
            "phase": phase,
            "age_seconds": age,
            "threshold_pct": threshold,
            "profit_pct": profit_pct,
        }
        if profit_pct >= threshold:
            decision = self._act(
                f"Decay {phase} phase ({age}s): profit {format_pct(profit_pct)} meets {format_pct(threshold)}",
                urgency=urgency,
                **metadata,
            )
            return self._trace(
                decision,
                current=f"{age}s ({phase})",
                target=f">= {format_pct(threshold)}",
                progress=100.0,
                reasoning=f"{phase.capitalize()} phase urgency",
                **metadata,
            )

        return self._trace(
            None,
            current=f"{age}s ({phase})",
            target=f">= {format_pct(threshold)}",
            progress=progress,
            reasoning=f"{phase.capitalize()} phase, profit {format_pct(profit_pct)} below {format_pct(threshold)}",
            **metadata,
        )


class PredictiveTimingRule(BaseRule):
    """Acts near the projected arrival of a target profit, or when growth stalls."""

    name = "predictive_timing"
    priority = RULE_PRIORITIES["predictive_timing"]

    def __init__(
        self,
        *,
        target_profit_pct: float = 2.0,
        opportunity_window_seconds: float = 5.0,
        min_acceptable_profit_pct: float = -10.0,
        risk_multiplier: float = 0.8,
    ) -> None:
        self.target_profit_pct = target_profit_pct
        self.opportunity_window_seconds = opportunity_window_seconds
        self.min_acceptable_profit_pct = min_acceptable_profit_pct
        self.risk_multiplier = risk_multiplier

    def required_checkpoints(self, config: RuleConfig) -> tuple[float, ...]:
        return (float(self.target_profit_pct),)

    def timing_score(self, profit_pct: float, time_to_target: float | None) -> float:
        score = 0.0
        window = self.opportunity_window_seconds
        if time_to_target is not None and 0 < time_to_target < math.inf:
            if time_to_target <= window:
                score = 100 - (time_to_target / window * 20 if window > 0 else 0)
            else:
                score = max(0.0, 80 - (time_to_target - window) * 2)
        if profit_pct > 0 and self.target_profit_pct > 0:
            score += profit_pct / self.target_profit_pct * 20
        return min(100.0, score)

    def evaluate(self, context: EvaluationContext) -> RuleTrace:
        profit = context.profit
        profit_pct = profit.profit_pct

        if profit_pct < self.min_acceptable_profit_pct:
            return self._trace(
                None,
                current=format_pct(profit_pct),
                target=f">= {format_pct(self.min_acceptable_profit_pct)}",
                progress=0.0,
                reasoning="Profit too low for predictive timing",
                profit_pct=profit_pct,
            )

        time_to_target = profit.time_to(self.target_profit_pct)
        if (time_to_target is None or math.isinf(time_to_target)) and profit_pct > 0:
            time_to_next = profit.time_to(math.ceil(profit_pct) + 1)
            if time_to_next is None or time_to_next > STALL_SECONDS:
                metadata = {"profit_pct": profit_pct, "growth_stalled": True, "time_to_next_pct": time_to_next}
                decision = self._act(
                    f"Profit growth stalling at {format_pct(profit_pct)}",
                    urgency=URGENCY_PRIORITY,
                    **metadata,
                )
                return self._trace(
                    decision,
                    current=format_pct(profit_pct),
                    target="growth stalling",
                    progress=100.0,
                    reasoning="Profit growth has plateaued",
                    **metadata,
                )

        risk_adjusted = self.target_profit_pct * self.risk_multiplier
        within_window = time_to_target is not None and time_to_target <= self.opportunity_window_seconds
        score = self.timing_score(profit_pct, time_to_target)
        metadata = {
            "profit_pct": profit_pct,
            "target_profit_pct": self.target_profit_pct,
            "risk_adjusted_target_pct": risk_adjusted,
            "time_to_target": time_to_target,
            "timing_score": round(score, 2),
            "within_window": within_window,
        }

        if (within_window and profit_pct > 0) or profit_pct >= risk_adjusted:
            decision = self._act(
                f"Optimal timing: profit {format_pct(profit_pct)}, "
                f"{format_seconds(time_to_target)} to {format_pct(self.target_profit_pct)}",
                urgency=URGENCY_ELEVATED if within_window else 1.1,
                **metadata,
            )
            reasoning = (
                f"Within the {self.opportunity_window_seconds:g}s opportunity window"
                if within_window
                else f"Risk-adjusted target {format_pct(risk_adjusted)} reached"
            )
            return self._trace(
                decision,
                current=format_pct(profit_pct),
                target=format_pct(self.target_profit_pct),
                progress=100.0,
                reasoning=reasoning,
                **metadata,
            )

        return self._trace(
            None,
            current=f"score {score:.0f}/100",
            target=f"window {self.opportunity_window_seconds:g}s",
            progress=score,
            reasoning=f"Waiting for better timing ({format_seconds(time_to_target)} to target)",
            **metadata,
        )
