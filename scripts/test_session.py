from __future__ import annotations

import logging
import unittest
from unittest.mock import AsyncMock

from auction_fixtures import CALLER, ETHER, LEADER, make_rule_config, make_settings
from modules.auction import SettlementObserved, SnapshotRefreshed
from modules.bot_runtime import BotSession
from modules.rules import build_default_rules
from modules.trading import CommitRequest, DecisionArbitrator, ExecutionResult
from modules.trading.types import (
    STATUS_DRY_RUN,
    STATUS_FAILED,
    STATUS_SKIPPED_CIRCUIT_OPEN,
    STATUS_SKIPPED_COOLDOWN,
    STATUS_SKIPPED_LOW_BALANCE,
    STATUS_SKIPPED_PHASE_CLOSED,
    STATUS_SKIPPED_PRICE_LIMIT,
)

NOW = 1_000_000.0


def _snapshot(**overrides: object) -> SnapshotRefreshed:
    values: dict[str, object] = {
        "observed_at": NOW,
        "current_price": 10 * ETHER + ETHER // 2,
        "start_price": 20 * ETHER,
        "floor_price": ETHER,
        "duration_seconds": 60,
        "decay_elapsed_seconds": 30.0,
        "in_cooldown": False,
        "cooldown_remaining_seconds": 0.0,
        "leader": LEADER,
        "leader_amount": 10 * ETHER,
        "leader_since": NOW - 100,
        "reward_rate_per_second": 7 * 10**16,
        "safety_multiplier": 1.0,
    }
    values.update(overrides)
    return SnapshotRefreshed(**values)  # type: ignore[arg-type]


async def _dry_run_execute(*, request: CommitRequest, amount: int) -> ExecutionResult:
    return ExecutionResult(status=STATUS_DRY_RUN, token=request.token, amount=amount)


class BotSessionTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.logger = logging.getLogger("test.session")
        self.now = NOW
        self.executor = AsyncMock()
        self.executor.get_balance.return_value = 100 * ETHER
        self.executor.execute.side_effect = _dry_run_execute
        self.storage = AsyncMock()
        self.session = self._make_session()

    async def asyncTearDown(self) -> None:
        await self.session.serializer.close(drain=False)

    def _make_session(self, **settings_overrides: object) -> BotSession:
        settings = make_settings(**settings_overrides)
        return BotSession(
            logger=self.logger,
            settings=settings,
            rule_config=make_rule_config(),
            arbitrator=DecisionArbitrator(build_default_rules(profit_buffer_pct=0, market_discount_pct=5)),
            executor=self.executor,
            caller_address=CALLER,
            storage=self.storage,
            clock=lambda: self.now,
        )

    async def test_tick_commits_during_decay(self) -> None:
        self.assertEqual(self.session.apply_events([_snapshot()], now=NOW), 1)

        ticket = await self.session.tick(NOW)
        result = await ticket.wait()

        self.assertEqual(result.status, STATUS_DRY_RUN)
        self.executor.execute.assert_awaited_once()
        self.assertEqual(self.executor.execute.await_args.kwargs["amount"], 10 * ETHER + ETHER // 2)
        self.assertEqual(self.session.last_evaluation.decision.rule_name, "threshold_parity")
        self.assertEqual(self.session.stats.successful, 1)
        self.storage.publish_trace.assert_awaited_once()
        self.assertIn("rules", self.storage.publish_trace.await_args.args[0])

    async def test_tick_without_auction_does_nothing(self) -> None:
        self.assertIsNone(await self.session.tick(NOW))
        self.assertIsNone(self.session.last_evaluation)

    async def test_safety_block_prevents_submission(self) -> None:
        self.session.apply_events([_snapshot(safety_multiplier=1.5)], now=NOW)

        self.assertIsNone(await self.session.tick(NOW))
        self.assertEqual(self.session.last_evaluation.decision.rule_name, "safety")
        self.executor.execute.assert_not_awaited()

    async def test_decision_outside_decay_is_not_submitted(self) -> None:
        self.session.apply_events(
            [_snapshot(in_cooldown=True, cooldown_remaining_seconds=100.0, current_price=20 * ETHER)],
            now=NOW,
        )

        self.assertIsNone(await self.session.tick(NOW))
        self.assertTrue(self.session.last_evaluation.decision.act)
        self.assertEqual(self.session.serializer.latest_token, 0)

    async def test_pause_and_resume(self) -> None:
        self.session.apply_events([_snapshot()], now=NOW)
        self.session.pause()
        self.assertTrue(self.session.paused)
        self.assertIsNone(await self.session.tick(NOW))

        self.session.resume()
        ticket = await self.session.tick(NOW)
        self.assertEqual((await ticket.wait()).status, STATUS_DRY_RUN)

    async def test_low_balance_is_reported(self) -> None:
        self.executor.get_balance.return_value = ETHER
        self.session.apply_events([_snapshot()], now=NOW)

        result = await (await self.session.tick(NOW)).wait()

        self.assertEqual(result.status, STATUS_SKIPPED_LOW_BALANCE)
        self.executor.execute.assert_not_awaited()
        self.assertEqual(self.session.stats.failed, 1)

    async def test_commit_cooldown_and_force_commit(self) -> None:
        self.session.apply_events([_snapshot()], now=NOW)
        first = await (await self.session.tick(NOW)).wait()

        self.now = NOW + 1
        second = await (await self.session.tick(self.now)).wait()

        self.now = NOW + 2
        forced_ticket = self.session.force_commit(self.now, reason="operator")
        forced = await forced_ticket.wait()

        self.assertEqual(first.status, STATUS_DRY_RUN)
        self.assertEqual(second.status, STATUS_SKIPPED_COOLDOWN)
        self.assertEqual(forced.status, STATUS_DRY_RUN)
        self.assertTrue(forced_ticket.request.forced)
        self.assertEqual(forced_ticket.request.decision.priority, 999)
        self.assertEqual(self.session.stats.skipped, 1)

    async def test_force_commit_refused_outside_decay_phase(self) -> None:
        self.session.apply_events(
            [_snapshot(in_cooldown=True, cooldown_remaining_seconds=300.0, current_price=20 * ETHER)],
            now=NOW,
        )

        with self.assertRaises(RuntimeError):
            self.session.force_commit(NOW)

        self.assertEqual(self.session.serializer.latest_token, 0)
        self.executor.execute.assert_not_awaited()

    async def test_force_commit_refused_without_auction_state(self) -> None:
        with self.assertRaises(RuntimeError):
            self.session.force_commit(NOW)

    async def test_phase_closing_before_execution_skips_commit(self) -> None:
        self.session.apply_events([_snapshot()], now=NOW)
        ticket = await self.session.tick(NOW)
        self.session.apply_events(
            [
                SettlementObserved(
                    tx_hash="0x" + "2" * 64,
                    log_index=0,
                    committer=LEADER,
                    amount=10 * ETHER,
                    settled_at=NOW,
                    cooldown_seconds=3_600.0,
                )
            ],
            now=NOW,
        )

        self.assertEqual((await ticket.wait()).status, STATUS_SKIPPED_PHASE_CLOSED)
        self.executor.execute.assert_not_awaited()

    async def test_price_limit_is_rechecked_at_execution(self) -> None:
        self.session.apply_events([_snapshot()], now=NOW)
        ticket = await self.session.tick(NOW)
        self.session.update_rule_config(make_rule_config(max_commit_amount=ETHER))

        self.assertEqual((await ticket.wait()).status, STATUS_SKIPPED_PRICE_LIMIT)
        self.assertEqual(self.session.rule_config.max_commit_amount, ETHER)

    async def test_circuit_breaker_opens_after_repeated_failures(self) -> None:
        await self.session.serializer.close(drain=False)
        self.session = self._make_session(max_consecutive_execution_errors=2, commit_cooldown_seconds=0.0)
        self.executor.execute.side_effect = RuntimeError("node rejected")
        self.session.apply_events([_snapshot()], now=NOW)

        statuses = []
        for offset in range(3):
            self.now = NOW + offset
            statuses.append((await (await self.session.tick(self.now)).wait()).status)

        self.assertEqual(statuses, [STATUS_FAILED, STATUS_FAILED, STATUS_SKIPPED_CIRCUIT_OPEN])
        self.assertEqual(self.executor.execute.await_count, 2)

    async def test_malformed_context_skips_tick(self) -> None:
        self.session.apply_events([_snapshot(leader_since=NOW + 500)], now=NOW)

        with self.assertLogs(self.logger, level="WARNING") as captured:
            self.assertIsNone(await self.session.tick(NOW))
        self.assertEqual(captured.records[0].event, "context_invalid")

    async def test_wallet_balance_check(self) -> None:
        self.assertEqual(await self.session.check_wallet_balance(), 100 * ETHER)
        self.executor.get_balance.return_value = ETHER // 2
        with self.assertRaises(RuntimeError):
            await self.session.check_wallet_balance()

    async def test_publish_stats(self) -> None:
        await self.session.publish_stats(NOW + 10)
        payload = self.storage.record_stats.await_args.args[0]
        self.assertEqual(payload["total_attempts"], 0)


if __name__ == "__main__":
    unittest.main()
