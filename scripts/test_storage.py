from __future__ import annotations

import json
import logging
import os
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from modules.storage import NullStorage, StorageGateway, StorageSettings


def _settings(**env: str) -> StorageSettings:
    with patch.dict(os.environ, env, clear=True):
        return StorageSettings.from_env()


class StorageSettingsTests(unittest.TestCase):
    def test_keys_default_to_bot_prefix(self) -> None:
        settings = _settings(BOT_ID="alpha:one", BOT_RUN_ID="run-1")

        self.assertFalse(settings.enabled)
        self.assertEqual(settings.bot_id, "alpha-one")
        self.assertEqual(settings.config_key, "bots:alpha-one:config")
        self.assertEqual(settings.trace_channel, "bots:alpha-one:trace")
        self.assertEqual(settings.events_max_length, 500)
        self.assertEqual(settings.trace_ttl_seconds, 300)

    def test_enabled_with_redis_url(self) -> None:
        self.assertTrue(_settings(REDIS_URL="redis://localhost:6379/0").enabled)


class StorageGatewayTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.settings = _settings(REDIS_URL="redis://localhost:6379/0", BOT_ID="alpha", BOT_RUN_ID="run-1")
        self.gateway = StorageGateway(self.settings, logging.getLogger("test.storage"))
        self.pipeline = MagicMock()
        self.pipeline.execute = AsyncMock(return_value=[])
        self.client = MagicMock()
        self.client.pipeline.return_value = self.pipeline
        self.client.hgetall = AsyncMock(return_value={"others_profit_threshold": "3"})
        self.client.hset = AsyncMock()
        self.gateway._redis = self.client

    async def test_reads_rule_overrides(self) -> None:
        self.assertEqual(await self.gateway.get_rule_overrides(), {"others_profit_threshold": "3"})
        self.client.hgetall.assert_awaited_once_with("bots:alpha:config")

    async def test_publish_trace_sets_and_publishes(self) -> None:
        await self.gateway.publish_trace({"decision": {"act": True}})

        key, body = self.pipeline.set.call_args.args
        self.assertEqual(key, "bots:alpha:trace:latest")
        self.assertEqual(self.pipeline.set.call_args.kwargs["ex"], 300)
        self.assertEqual(json.loads(body)["decision"], {"act": True})
        self.pipeline.publish.assert_called_once_with("bots:alpha:trace", body)
        self.pipeline.execute.assert_awaited_once()

    async def test_record_stats_flattens_values(self) -> None:
        await self.gateway.record_stats({"successful": 2, "last_status": None, "active": True})

        mapping = self.client.hset.await_args.kwargs["mapping"]
        self.assertEqual(mapping["successful"], "2")
        self.assertEqual(mapping["last_status"], "")
        self.assertEqual(mapping["active"], "1")
        self.assertEqual(mapping["run_id"], "run-1")

    async def test_publish_event_is_capped(self) -> None:
        await self.gateway.publish_event(level="INFO", event="bot_started", message="started")

        self.pipeline.lpush.assert_called_once()
        self.pipeline.ltrim.assert_called_once_with("bots:alpha:events", 0, 499)

    async def test_requires_connection(self) -> None:
        self.gateway._redis = None
        with self.assertRaises(RuntimeError):
            await self.gateway.get_rule_overrides()


class NullStorageTests(unittest.IsolatedAsyncioTestCase):
    async def test_every_call_is_a_no_op(self) -> None:
        storage = NullStorage()
        await storage.connect()
        self.assertEqual(await storage.get_rule_overrides(), {})
        await storage.publish_trace({"decision": {}})
        await storage.record_stats({})
        await storage.publish_event(level="INFO", event="x", message="y")
        self.assertEqual(storage.run_id, "")


if __name__ == "__main__":
    unittest.main()
