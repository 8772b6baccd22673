from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from modules.auction.errors import ConfigurationError
from modules.auction.types import NO_DECISION, Decision, EvaluationContext, RuleConfig, RuleTrace
from modules.common import log_event
from modules.rules import Rule


@dataclass(slots=True, frozen=True)
class ArbitrationResult:
    decision: Decision
    traces: tuple[RuleTrace, ...]
    evaluated_at: float

    @property
    def triggered(self) -> tuple[RuleTrace, ...]:
        return tuple(trace for trace in self.traces if trace.triggered)

    def to_dict(self) -> dict[str, Any]:
        return {
            "decision": self.decision.to_dict(),
            "evaluated_at": self.evaluated_at,
            "rules": [trace.to_dict() for trace in self.traces],
        }


def select_decision(decisions: Iterable[Decision]) -> Decision:
    """Pick the winning decision from those produced in registration order.

    Any blocking decision beats every acting one. Within a group the highest
    priority wins and ties go to the earliest registered rule.
    """
    candidates = list(decisions)
    if not candidates:
        return NO_DECISION

    blockers = [decision for decision in candidates if not decision.act]
    pool = blockers or candidates
    return max(pool, key=lambda decision: decision.priority)


class DecisionArbitrator:
    def __init__(self, rules: Iterable[Rule] = (), *, logger: logging.Logger | None = None) -> None:
        self._logger = logger
        self._rules: dict[str, Rule] = {}
        self._last_evaluation: ArbitrationResult | None = None
        for rule in rules:
            self.add_rule(rule)

    @property
    def rules(self) -> tuple[Rule, ...]:
        return tuple(self._rules.values())

    @property
    def rule_names(self) -> tuple[str, ...]:
        return tuple(self._rules)

    @property
    def last_evaluation(self) -> ArbitrationResult | None:
        return self._last_evaluation

    def add_rule(self, rule: Rule) -> None:
        for name, existing in self._rules.items():
            if name != rule.name and existing.priority == rule.priority:
                raise ConfigurationError(
                    f"Rule {rule.name} reuses priority {rule.priority} already held by {name}"
                )
        self._rules[rule.name] = rule
        if self._logger is not None:
            log_event(
                self._logger,
                level="debug",
                event="rule_registered",
                message="Rule registered",
                rule=rule.name,
                priority=rule.priority,
            )

    def remove_rule(self, name: str) -> bool:
        return self._rules.pop(name, None) is not None

    def required_checkpoints(self, config: RuleConfig) -> tuple[float, ...]:
        points: set[float] = set()
        for rule in self._rules.values():
            points.update(float(point) for point in rule.required_checkpoints(config))
        return tuple(sorted(points))

    def evaluate_with_trace(self, context: EvaluationContext) -> ArbitrationResult:
        traces = tuple(rule.evaluate(context) for rule in self._rules.values())
        decision = select_decision(trace.decision for trace in traces if trace.decision is not None)
        result = ArbitrationResult(decision=decision, traces=traces, evaluated_at=context.evaluated_at)
        self._last_evaluation = result
        return result

    def evaluate(self, context: EvaluationContext) -> Decision:
        return self.evaluate_with_trace(context).decision
