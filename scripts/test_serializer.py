from __future__ import annotations

import asyncio
import logging
import unittest

from modules.auction.types import Decision
from modules.trading import CommitRequest, ExecutionResult, ExecutionSerializer
from modules.trading.types import STATUS_DRY_RUN, STATUS_FAILED, STATUS_SUPERSEDED


def _decision(name: str = "standard_snipe") -> Decision:
    return Decision(act=True, reason="test", priority=60, rule_name=name, urgency=1.5)


class RecordingHandler:
    """Handler that can be held open to simulate a slow commit."""

    def __init__(self) -> None:
        self.tokens: list[int] = []
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.release.set()
        self.active = 0
        self.max_active = 0

    async def __call__(self, request: CommitRequest) -> ExecutionResult:
        self.tokens.append(request.token)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.started.set()
        try:
            await self.release.wait()
        finally:
            self.active -= 1
        return ExecutionResult(status=STATUS_DRY_RUN, token=request.token, amount=100)


class ExecutionSerializerTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.logger = logging.getLogger("test.serializer")
        self.handler = RecordingHandler()
        self.serializer = ExecutionSerializer(logger=self.logger, handler=self.handler, max_pending=8)

    async def asyncTearDown(self) -> None:
        self.handler.release.set()
        await self.serializer.close(drain=False)

    async def test_single_request_runs_handler(self) -> None:
        ticket = self.serializer.submit(_decision(), requested_at=1.0)
        result = await ticket.wait()

        self.assertEqual(result.status, STATUS_DRY_RUN)
        self.assertEqual(result.token, 1)
        self.assertEqual(self.handler.tokens, [1])
        self.assertEqual(self.serializer.stats.successful, 1)
        self.assertEqual(self.serializer.stats.total_spent, 100)

    async def test_newer_request_supersedes_queued_ones(self) -> None:
        self.handler.release.clear()
        first = self.serializer.submit(_decision(), requested_at=1.0)
        await self.handler.started.wait()

        second = self.serializer.submit(_decision(), requested_at=2.0)
        third = self.serializer.submit(_decision("threshold_parity"), requested_at=3.0)
        self.assertEqual(self.serializer.in_flight.token, 1)
        self.assertEqual(self.serializer.pending, 2)

        with self.assertLogs(self.logger, level="INFO") as captured:
            self.handler.release.set()
            results = await asyncio.gather(first.wait(), second.wait(), third.wait())

        self.assertEqual([result.status for result in results], [STATUS_DRY_RUN, STATUS_SUPERSEDED, STATUS_DRY_RUN])
        self.assertEqual(self.handler.tokens, [1, 3])
        self.assertEqual(self.handler.max_active, 1)
        self.assertIn("commit_superseded", [record.event for record in captured.records])
        self.assertEqual(self.serializer.stats.superseded, 1)
        self.assertEqual(self.serializer.latest_token, 3)

    async def test_full_queue_drops_oldest_pending(self) -> None:
        handler = RecordingHandler()
        handler.release.clear()
        serializer = ExecutionSerializer(logger=self.logger, handler=handler, max_pending=1)
        try:
            first = serializer.submit(_decision(), requested_at=1.0)
            await handler.started.wait()
            second = serializer.submit(_decision(), requested_at=2.0)
            third = serializer.submit(_decision(), requested_at=3.0)

            self.assertTrue(second.future.done())
            self.assertEqual((await second.wait()).status, STATUS_SUPERSEDED)
            self.assertEqual(serializer.pending, 1)

            handler.release.set()
            self.assertEqual((await first.wait()).status, STATUS_DRY_RUN)
            self.assertEqual((await third.wait()).status, STATUS_DRY_RUN)
            self.assertEqual(handler.tokens, [1, 3])
        finally:
            handler.release.set()
            await serializer.close()

    async def test_handler_error_becomes_failed_result(self) -> None:
        async def failing(request: CommitRequest) -> ExecutionResult:
            raise RuntimeError("node unavailable")

        serializer = ExecutionSerializer(logger=self.logger, handler=failing)
        try:
            result = await serializer.submit(_decision(), requested_at=1.0).wait()
            self.assertEqual(result.status, STATUS_FAILED)
            self.assertIn("node unavailable", result.reason)
            self.assertEqual(serializer.stats.failed, 1)
            self.assertEqual(serializer.stats.consecutive_failures, 1)
            self.assertFalse(serializer.busy)
        finally:
            await serializer.close()

    async def test_close_drains_outstanding_work(self) -> None:
        ticket = self.serializer.submit(_decision(), requested_at=1.0)
        await self.serializer.close(drain=True)

        self.assertTrue(ticket.future.done())
        self.assertEqual(ticket.future.result().status, STATUS_DRY_RUN)

    async def test_close_without_drain_supersedes_pending(self) -> None:
        self.handler.release.clear()
        first = self.serializer.submit(_decision(), requested_at=1.0)
        await self.handler.started.wait()
        second = self.serializer.submit(_decision(), requested_at=2.0)

        await self.serializer.close(drain=False)

        self.assertTrue(first.future.cancelled())
        self.assertEqual((await second.wait()).status, STATUS_SUPERSEDED)


if __name__ == "__main__":
    unittest.main()
