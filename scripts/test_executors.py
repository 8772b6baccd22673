from __future__ import annotations

import logging
import unittest
from typing import Any
from unittest.mock import AsyncMock

from auction_fixtures import CALLER, ETHER
from modules.auction.types import Decision
from modules.trading import CommitRequest, DryRunCommitExecutor, RpcCommitExecutor
from modules.trading.types import STATUS_CONFIRMED, STATUS_DRY_RUN, STATUS_FAILED, STATUS_REVERTED

CONTRACT = "0x" + "d" * 40


def _request(token: int = 7) -> CommitRequest:
    decision = Decision(act=True, reason="test", priority=60, rule_name="standard_snipe", urgency=1.5)
    return CommitRequest(token=token, decision=decision, requested_at=1.0)


class FakeRpc:
    """Scripted JSON-RPC responses keyed by method name."""

    def __init__(self, responses: dict[str, list[Any]]) -> None:
        self.responses = responses
        self.calls: list[tuple[str, list[Any] | None]] = []

    async def __call__(self, method: str, params: list[Any] | None = None) -> Any:
        self.calls.append((method, params))
        queue = self.responses[method]
        return queue.pop(0) if len(queue) > 1 else queue[0]


class DryRunCommitExecutorTests(unittest.IsolatedAsyncioTestCase):
    async def test_reports_dry_run(self) -> None:
        executor = DryRunCommitExecutor(logger=logging.getLogger("test.executor"), balance=3 * ETHER)
        await executor.connect()

        self.assertEqual(await executor.get_balance(), 3 * ETHER)
        result = await executor.execute(request=_request(), amount=ETHER)

        self.assertEqual(result.status, STATUS_DRY_RUN)
        self.assertEqual(result.token, 7)
        self.assertEqual(result.amount, ETHER)
        self.assertTrue(result.succeeded)


class RpcCommitExecutorTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.executor = RpcCommitExecutor(
            logger=logging.getLogger("test.executor"),
            rpc_url="https://rpc.example.invalid",
            sender=CALLER,
            contract_address=CONTRACT,
            calldata="0x1234",
            gas_limit=250_000,
            confirm_timeout_seconds=0.0,
            confirm_poll_interval_seconds=0.0,
        )

    def _install(self, responses: dict[str, list[Any]]) -> FakeRpc:
        fake = FakeRpc(responses)
        self.executor._rpc_call = fake  # type: ignore[method-assign]
        return fake

    async def test_get_balance_decodes_hex(self) -> None:
        fake = self._install({"eth_getBalance": ["0xde0b6b3a7640000"]})

        self.assertEqual(await self.executor.get_balance(), ETHER)
        self.assertEqual(fake.calls, [("eth_getBalance", [CALLER, "latest"])])

    async def test_confirmed_commit(self) -> None:
        fake = self._install(
            {
                "eth_sendTransaction": ["0xabc"],
                "eth_getTransactionReceipt": [{"status": "0x1", "blockNumber": "0x10"}],
            }
        )

        result = await self.executor.execute(request=_request(), amount=ETHER)

        self.assertEqual(result.status, STATUS_CONFIRMED)
        self.assertEqual(result.tx_hash, "0xabc")
        self.assertEqual(result.metadata["block_number"], 16)
        transaction = fake.calls[0][1][0]
        self.assertEqual(transaction["from"], CALLER)
        self.assertEqual(transaction["to"], CONTRACT)
        self.assertEqual(transaction["value"], hex(ETHER))
        self.assertEqual(transaction["data"], "0x1234")
        self.assertEqual(transaction["gas"], hex(250_000))

    async def test_reverted_commit(self) -> None:
        self._install(
            {
                "eth_sendTransaction": ["0xabc"],
                "eth_getTransactionReceipt": [{"status": "0x0", "blockNumber": "0x10"}],
            }
        )
        result = await self.executor.execute(request=_request(), amount=ETHER)
        self.assertEqual(result.status, STATUS_REVERTED)
        self.assertFalse(result.succeeded)

    async def test_missing_receipt_is_failure(self) -> None:
        self._install({"eth_sendTransaction": ["0xabc"], "eth_getTransactionReceipt": [None]})
        result = await self.executor.execute(request=_request(), amount=ETHER)
        self.assertEqual(result.status, STATUS_FAILED)
        self.assertEqual(result.tx_hash, "0xabc")

    async def test_receipt_polling_waits_for_inclusion(self) -> None:
        self.executor._confirm_timeout_seconds = 5.0
        fake = self._install(
            {
                "eth_sendTransaction": ["0xabc"],
                "eth_getTransactionReceipt": [None, None, {"status": "0x1"}],
            }
        )
        result = await self.executor.execute(request=_request(), amount=ETHER)

        self.assertEqual(result.status, STATUS_CONFIRMED)
        self.assertEqual([method for method, _ in fake.calls].count("eth_getTransactionReceipt"), 3)

    async def test_bad_send_response_raises(self) -> None:
        self._install({"eth_sendTransaction": [None]})
        with self.assertRaises(RuntimeError):
            await self.executor.execute(request=_request(), amount=ETHER)

    async def test_connect_validates_configuration(self) -> None:
        executor = RpcCommitExecutor(
            logger=logging.getLogger("test.executor"),
            rpc_url="https://rpc.example.invalid",
            sender="0x1",
            contract_address=CONTRACT,
        )
        with self.assertRaises(ValueError):
            await executor.connect()

    async def test_healthcheck_queries_block_number(self) -> None:
        self.executor._rpc_call = AsyncMock(return_value="0x1")  # type: ignore[method-assign]
        await self.executor.healthcheck()
        self.executor._rpc_call.assert_awaited_once_with("eth_blockNumber")


if __name__ == "__main__":
    unittest.main()
