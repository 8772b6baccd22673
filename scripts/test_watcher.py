from __future__ import annotations

import logging
import unittest
from typing import Any
from unittest.mock import AsyncMock

from auction_fixtures import CALLER, ETHER, LEADER
from modules.auction import SettlementObserved, SnapshotRefreshed
from modules.trading import SnapshotFormatError, SnapshotWatcher, parse_snapshot


def _make_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "current_price": str(15 * ETHER),
        "start_price": hex(20 * ETHER),
        "floor_price": 10 * ETHER,
        "duration_seconds": 60,
        "decay_elapsed_seconds": 30,
        "in_cooldown": False,
        "cooldown_remaining_seconds": 0,
        "cooldown_duration_seconds": 3600,
        "leader": {"address": LEADER, "amount": str(10 * ETHER), "since": 1_699_999_000},
        "round": 12,
        "last_settled_price": str(10 * ETHER),
        "reward_per_round": str(36 * ETHER),
        "safety_multiplier_bps": 12_500,
        "settlements": [
            {"tx_hash": "0xbb", "log_index": 1, "committer": CALLER, "amount": "5", "timestamp": 20, "round": 11},
            {"tx_hash": "0xaa", "log_index": 4, "committer": LEADER, "amount": "3", "timestamp": 10, "round": 10},
        ],
    }
    payload.update(overrides)
    return payload


class ParseSnapshotTests(unittest.TestCase):
    def test_parses_settlements_then_snapshot(self) -> None:
        events = parse_snapshot(_make_payload(), now=1_700_000_000.0)

        self.assertEqual(len(events), 3)
        self.assertIsInstance(events[0], SettlementObserved)
        self.assertEqual(events[0].event_id, "0xaa-4")
        self.assertEqual(events[0].cooldown_seconds, 3600.0)
        self.assertEqual(events[1].event_id, "0xbb-1")

        snapshot = events[-1]
        self.assertIsInstance(snapshot, SnapshotRefreshed)
        self.assertEqual(snapshot.observed_at, 1_700_000_000.0)
        self.assertEqual(snapshot.current_price, 15 * ETHER)
        self.assertEqual(snapshot.start_price, 20 * ETHER)
        self.assertEqual(snapshot.floor_price, 10 * ETHER)
        self.assertEqual(snapshot.leader, LEADER)
        self.assertEqual(snapshot.leader_since, 1_699_999_000.0)
        self.assertEqual(snapshot.reward_rate_per_second, ETHER // 100)
        self.assertEqual(snapshot.safety_multiplier, 1.25)
        self.assertEqual(snapshot.last_settled_price, 10 * ETHER)
        self.assertEqual(snapshot.round_index, 12)

    def test_explicit_rate_wins_over_round_reward(self) -> None:
        events = parse_snapshot(_make_payload(reward_rate_per_second="0x10"), now=1.0)
        self.assertEqual(events[-1].reward_rate_per_second, 16)

    def test_defaults_for_optional_fields(self) -> None:
        payload = _make_payload(settlements=None, leader=None, last_settled_price=None, reward_per_round=None)
        del payload["safety_multiplier_bps"]
        snapshot = parse_snapshot(payload, now=50.0)[-1]

        self.assertEqual(snapshot.leader, "0x" + "0" * 40)
        self.assertEqual(snapshot.leader_amount, 0)
        self.assertEqual(snapshot.leader_since, 50.0)
        self.assertEqual(snapshot.reward_rate_per_second, 0)
        self.assertEqual(snapshot.safety_multiplier, 1.4)
        self.assertIsNone(snapshot.last_settled_price)

    def test_rejects_malformed_payloads(self) -> None:
        for payload in (
            [],
            _make_payload(current_price=None),
            _make_payload(start_price="-5"),
            _make_payload(floor_price="twelve"),
            _make_payload(duration_seconds="soon"),
            _make_payload(settlements=[{"amount": "1"}]),
            _make_payload(settlements="0xaa"),
        ):
            with self.assertRaises(SnapshotFormatError):
                parse_snapshot(payload, now=1.0)


class SnapshotWatcherTests(unittest.IsolatedAsyncioTestCase):
    async def test_fetch_events_parses_payload(self) -> None:
        watcher = SnapshotWatcher(logger=logging.getLogger("test.watcher"), snapshot_url="https://example.invalid/state")
        watcher._fetch_payload = AsyncMock(return_value=_make_payload())  # type: ignore[method-assign]

        events = await watcher.fetch_events(now=10.0)

        self.assertEqual(len(events), 3)
        watcher._fetch_payload.assert_awaited_once()

    async def test_connect_requires_url(self) -> None:
        watcher = SnapshotWatcher(logger=logging.getLogger("test.watcher"), snapshot_url="")
        with self.assertRaises(ValueError):
            await watcher.connect()


if __name__ == "__main__":
    unittest.main()
