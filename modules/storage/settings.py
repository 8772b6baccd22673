from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


def to_int(value: Any, default: int) -> int:
    try:
        if value is None or value == "":
            return default
        return int(float(str(value).strip()))
    except (TypeError, ValueError):
        return default


def _sanitize_bot_id(value: str, default: str) -> str:
    normalized = (value.strip() or default).replace("/", "-").replace(":", "-")
    return normalized or default


@dataclass(slots=True)
class StorageSettings:
    redis_url: str
    bot_id: str
    bot_run_id: str
    config_key: str
    trace_key: str
    trace_channel: str
    stats_key: str
    events_key: str
    events_max_length: int
    trace_ttl_seconds: int

    @property
    def enabled(self) -> bool:
        return bool(self.redis_url)

    @classmethod
    def from_env(cls) -> "StorageSettings":
        bot_id = _sanitize_bot_id(os.getenv("BOT_ID", "auction-bot"), "auction-bot")
        prefix = f"bots:{bot_id}"
        return cls(
            redis_url=os.getenv("REDIS_URL", "").strip(),
            bot_id=bot_id,
            bot_run_id=os.getenv("BOT_RUN_ID")
            or datetime.now(timezone.utc).strftime("run-%Y%m%dT%H%M%SZ"),
            config_key=os.getenv("REDIS_CONFIG_KEY", f"{prefix}:config"),
            trace_key=os.getenv("REDIS_TRACE_KEY", f"{prefix}:trace:latest"),
            trace_channel=os.getenv("REDIS_TRACE_CHANNEL", f"{prefix}:trace"),
            stats_key=os.getenv("REDIS_STATS_KEY", f"{prefix}:stats"),
            events_key=os.getenv("REDIS_EVENTS_KEY", f"{prefix}:events"),
            events_max_length=max(1, to_int(os.getenv("REDIS_EVENTS_MAX_LENGTH"), 500)),
            trace_ttl_seconds=max(0, to_int(os.getenv("REDIS_TRACE_TTL_SECONDS"), 300)),
        )
