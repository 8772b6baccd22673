from __future__ import annotations

import unittest

from auction_fixtures import make_auction, make_context, make_rule_config
from modules.auction.errors import ConfigurationError
from modules.auction.types import NO_DECISION, Decision, EvaluationContext, RuleConfig, RuleTrace
from modules.rules import BaseRule, SafetyRule, ThresholdParityRule, build_default_rules
from modules.trading import DecisionArbitrator, select_decision


class StubRule(BaseRule):
    def __init__(self, name: str, priority: int, *, act: bool | None, checkpoints: tuple[float, ...] = ()) -> None:
        self.name = name
        self.priority = priority
        self._act_flag = act
        self._checkpoints = checkpoints

    def required_checkpoints(self, config: RuleConfig) -> tuple[float, ...]:
        return self._checkpoints

    def evaluate(self, context: EvaluationContext) -> RuleTrace:
        if self._act_flag is None:
            decision = None
        elif self._act_flag:
            decision = self._act(f"{self.name} acts", urgency=1.0)
        else:
            decision = self._block(f"{self.name} blocks")
        return self._trace(decision, current="-", target="-", progress=50.0)


class SelectDecisionTests(unittest.TestCase):
    def test_empty_input_yields_no_decision(self) -> None:
        self.assertEqual(select_decision([]), NO_DECISION)

    def test_ties_go_to_first_registered(self) -> None:
        first = Decision(act=True, reason="first", priority=10, rule_name="a")
        second = Decision(act=True, reason="second", priority=10, rule_name="b")
        self.assertIs(select_decision([first, second]), first)

    def test_blocker_beats_any_actor(self) -> None:
        actor = Decision(act=True, reason="go", priority=100)
        blocker = Decision(act=False, reason="stop", priority=1)
        self.assertIs(select_decision([actor, blocker]), blocker)


class DecisionArbitratorTests(unittest.TestCase):
    def test_safety_block_overrides_threshold_parity(self) -> None:
        arbitrator = DecisionArbitrator([ThresholdParityRule(0), SafetyRule()])
        context = make_context(
            auction=make_auction(current_price=10_000, safety_multiplier=1.5),
            accrued=15_000,
        )
        decision = arbitrator.evaluate(context)

        self.assertFalse(decision.act)
        self.assertEqual(decision.rule_name, "safety")
        self.assertIn("1.5 > 1.4", decision.reason)

    def test_highest_priority_actor_wins(self) -> None:
        arbitrator = DecisionArbitrator(
            [
                StubRule("low", 10, act=True),
                StubRule("high", 30, act=True),
                StubRule("idle", 50, act=None),
            ]
        )
        decision = arbitrator.evaluate(make_context())
        self.assertTrue(decision.act)
        self.assertEqual(decision.rule_name, "high")

    def test_highest_priority_blocker_wins_among_blockers(self) -> None:
        arbitrator = DecisionArbitrator(
            [
                StubRule("veto_low", 5, act=False),
                StubRule("actor", 90, act=True),
                StubRule("veto_high", 20, act=False),
            ]
        )
        self.assertEqual(arbitrator.evaluate(make_context()).rule_name, "veto_high")

    def test_default_rules_stay_quiet_without_opportunity(self) -> None:
        arbitrator = DecisionArbitrator(build_default_rules(profit_buffer_pct=0, market_discount_pct=5))
        context = make_context(
            auction=make_auction(is_decay_phase=False, decay_started_at=None),
            accrued=100,
            profit_pct=-50.0,
        )
        result = arbitrator.evaluate_with_trace(context)

        self.assertEqual(result.decision, NO_DECISION)
        self.assertEqual(result.triggered, ())
        self.assertEqual(len(result.traces), len(arbitrator.rules))

    def test_default_rules_evaluate_in_mid_decay_phase(self) -> None:
        arbitrator = DecisionArbitrator(build_default_rules(profit_buffer_pct=0, market_discount_pct=5))
        context = make_context(
            auction=make_auction(decay_started_at=1_000.0),
            evaluated_at=1_015.0,
            profit_pct=0.0,
        )
        result = arbitrator.evaluate_with_trace(context)

        self.assertIn("time_decay", [trace.rule_name for trace in result.triggered])
        self.assertEqual(len(result.traces), len(arbitrator.rules))

    def test_last_evaluation_records_every_rule(self) -> None:
        arbitrator = DecisionArbitrator([StubRule("a", 1, act=None), StubRule("b", 2, act=True)])
        self.assertIsNone(arbitrator.last_evaluation)

        arbitrator.evaluate(make_context(evaluated_at=123.0))
        evaluation = arbitrator.last_evaluation

        self.assertEqual([trace.rule_name for trace in evaluation.traces], ["a", "b"])
        self.assertEqual([trace.rule_name for trace in evaluation.triggered], ["b"])
        self.assertEqual(evaluation.evaluated_at, 123.0)
        payload = evaluation.to_dict()
        self.assertEqual(payload["decision"]["rule_name"], "b")
        self.assertEqual(len(payload["rules"]), 2)

    def test_duplicate_priority_is_rejected(self) -> None:
        arbitrator = DecisionArbitrator([StubRule("a", 10, act=None)])
        with self.assertRaises(ConfigurationError):
            arbitrator.add_rule(StubRule("b", 10, act=None))

    def test_same_name_replaces_rule_in_place(self) -> None:
        arbitrator = DecisionArbitrator([StubRule("a", 10, act=None), StubRule("b", 20, act=None)])
        arbitrator.add_rule(StubRule("a", 15, act=True))

        self.assertEqual(arbitrator.rule_names, ("a", "b"))
        self.assertEqual(arbitrator.evaluate(make_context()).priority, 15)

    def test_remove_rule(self) -> None:
        arbitrator = DecisionArbitrator([StubRule("a", 10, act=True)])
        self.assertTrue(arbitrator.remove_rule("a"))
        self.assertFalse(arbitrator.remove_rule("a"))
        self.assertEqual(arbitrator.evaluate(make_context()), NO_DECISION)

    def test_required_checkpoints_are_merged(self) -> None:
        arbitrator = DecisionArbitrator(
            [StubRule("a", 1, act=None, checkpoints=(5.0, 2.0)), StubRule("b", 2, act=None, checkpoints=(2,))]
        )
        self.assertEqual(arbitrator.required_checkpoints(make_rule_config()), (2.0, 5.0))


if __name__ == "__main__":
    unittest.main()
