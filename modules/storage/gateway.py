from __future__ import annotations

import logging
from typing import Any

from redis import asyncio as redis
from redis.asyncio.client import Redis

from modules.common import log_event

from .helpers import now_iso, serialize_for_redis, to_json
from .settings import StorageSettings


class StorageGateway:
    """Redis side channel for rule overrides, decision traces, stats and events."""

    def __init__(self, settings: StorageSettings, logger: logging.Logger) -> None:
        self.settings = settings
        self._logger = logger
        self._redis: Redis | None = None

    @property
    def bot_id(self) -> str:
        return self.settings.bot_id

    @property
    def run_id(self) -> str:
        return self.settings.bot_run_id

    async def connect(self) -> None:
        if self._redis is None:
            self._redis = redis.from_url(self.settings.redis_url, decode_responses=True)
        await self._redis.ping()
        log_event(
            self._logger,
            level="info",
            event="redis_connected",
            message="Connected to Redis",
            redis_url=self.settings.redis_url,
        )

    async def healthcheck(self) -> None:
        redis_client = self._require_redis()
        await redis_client.ping()

    async def close(self) -> None:
        if self._redis is not None:
            close = getattr(self._redis, "aclose", None)
            if close:
                await close()
            else:
                await self._redis.close()
            self._redis = None

    def _require_redis(self) -> Redis:
        if self._redis is None:
            raise RuntimeError("Redis client is not initialized.")
        return self._redis

    async def get_rule_overrides(self) -> dict[str, str]:
        redis_client = self._require_redis()
        return await redis_client.hgetall(self.settings.config_key)

    async def publish_trace(self, payload: dict[str, Any]) -> None:
        redis_client = self._require_redis()
        body = to_json({"bot_id": self.bot_id, "run_id": self.run_id, "published_at": now_iso(), **payload})
        pipeline = redis_client.pipeline(transaction=False)
        if self.settings.trace_ttl_seconds > 0:
            pipeline.set(self.settings.trace_key, body, ex=self.settings.trace_ttl_seconds)
        else:
            pipeline.set(self.settings.trace_key, body)
        pipeline.publish(self.settings.trace_channel, body)
        await pipeline.execute()

    async def record_stats(self, stats: dict[str, Any]) -> None:
        redis_client = self._require_redis()
        mapping = {str(key): serialize_for_redis(value) for key, value in stats.items()}
        mapping["updated_at"] = now_iso()
        mapping["run_id"] = self.run_id
        await redis_client.hset(self.settings.stats_key, mapping=mapping)

    async def publish_event(
        self,
        *,
        level: str,
        event: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        redis_client = self._require_redis()
        body = to_json(
            {
                "level": level,
                "event": event,
                "message": message,
                "details": details or {},
                "run_id": self.run_id,
                "created_at": now_iso(),
            }
        )
        pipeline = redis_client.pipeline(transaction=True)
        pipeline.lpush(self.settings.events_key, body)
        pipeline.ltrim(self.settings.events_key, 0, self.settings.events_max_length - 1)
        await pipeline.execute()


class NullStorage:
    """Stand-in used when REDIS_URL is unset; every write is dropped."""

    def __init__(self, settings: StorageSettings | None = None) -> None:
        self.settings = settings

    @property
    def run_id(self) -> str:
        return self.settings.bot_run_id if self.settings else ""

    async def connect(self) -> None:
        return None

    async def healthcheck(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def get_rule_overrides(self) -> dict[str, str]:
        return {}

    async def publish_trace(self, payload: dict[str, Any]) -> None:
        return None

    async def record_stats(self, stats: dict[str, Any]) -> None:
        return None

    async def publish_event(
        self,
        *,
        level: str,
        event: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        return None
