from __future__ import annotations

import logging
from typing import Any

import aiohttp

from modules.auction.state import AuctionEvent, SettlementObserved, SnapshotRefreshed
from modules.auction.units import ZERO_ADDRESS
from modules.common import log_event

DEFAULT_SAFETY_MULTIPLIER_BPS = 14_000


class SnapshotFormatError(RuntimeError):
    pass


class SnapshotRateLimitError(RuntimeError):
    def __init__(self, message: str, *, retry_after_seconds: float | None = None) -> None:
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


def _parse_retry_after_seconds(raw: str | None) -> float | None:
    if raw is None:
        return None
    try:
        value = float(raw.strip())
    except (TypeError, ValueError):
        return None
    return value if value >= 0 else None


def _to_amount(value: Any, *, field: str) -> int:
    if isinstance(value, bool):
        raise SnapshotFormatError(f"Invalid {field}: {value!r}")
    if isinstance(value, int):
        amount = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            amount = int(text, 16) if text.lower().startswith("0x") else int(text)
        except ValueError as error:
            raise SnapshotFormatError(f"Invalid {field}: {value!r}") from error
    else:
        raise SnapshotFormatError(f"Missing or invalid {field}: {value!r}")
    if amount < 0:
        raise SnapshotFormatError(f"Negative {field}: {value!r}")
    return amount


def _to_seconds(value: Any, *, field: str, default: float | None = None) -> float:
    if value is None and default is not None:
        return default
    if isinstance(value, bool):
        raise SnapshotFormatError(f"Invalid {field}: {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as error:
        raise SnapshotFormatError(f"Missing or invalid {field}: {value!r}") from error


def _optional_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _reward_rate(payload: dict[str, Any], cooldown_duration: float) -> int:
    if payload.get("reward_rate_per_second") is not None:
        return _to_amount(payload["reward_rate_per_second"], field="reward_rate_per_second")
    if payload.get("reward_per_round") is not None and cooldown_duration > 0:
        reward = _to_amount(payload["reward_per_round"], field="reward_per_round")
        return reward // int(cooldown_duration)
    return 0


def parse_snapshot(payload: Any, *, now: float) -> list[AuctionEvent]:
    """Translate a snapshot document into auction events.

    Expected shape::

        {
          "current_price": "...", "start_price": "...", "floor_price": "...",
          "duration_seconds": 60, "decay_elapsed_seconds": 12,
          "in_cooldown": false, "cooldown_remaining_seconds": 0,
          "cooldown_duration_seconds": 3600,
          "leader": {"address": "0x...", "amount": "...", "since": 1700000000},
          "round": 12, "last_settled_price": "...",
          "reward_rate_per_second": "..." | "reward_per_round": "...",
          "safety_multiplier_bps": 14000,
          "settlements": [{"tx_hash": "0x...", "log_index": 3, "committer": "0x...",
                           "amount": "...", "timestamp": 1700000000, "round": 12}]
        }

    Amounts are base-unit integers or decimal/hex strings. Settlements come
    first, oldest first, followed by the authoritative snapshot.
    """
    if not isinstance(payload, dict):
        raise SnapshotFormatError(f"Snapshot payload must be an object, got {type(payload).__name__}")

    cooldown_duration = _to_seconds(
        payload.get("cooldown_duration_seconds"),
        field="cooldown_duration_seconds",
        default=0.0,
    )

    events: list[AuctionEvent] = []
    settlements = payload.get("settlements") or []
    if not isinstance(settlements, list):
        raise SnapshotFormatError("settlements must be a list")
    parsed_settlements = []
    for item in settlements:
        if not isinstance(item, dict):
            raise SnapshotFormatError(f"Invalid settlement entry: {item!r}")
        tx_hash = item.get("tx_hash")
        if not isinstance(tx_hash, str) or not tx_hash:
            raise SnapshotFormatError(f"Settlement is missing tx_hash: {item!r}")
        parsed_settlements.append(
            SettlementObserved(
                tx_hash=tx_hash,
                log_index=_optional_int(item.get("log_index")) or 0,
                committer=str(item.get("committer") or ZERO_ADDRESS),
                amount=_to_amount(item.get("amount"), field="settlement.amount"),
                settled_at=_to_seconds(item.get("timestamp"), field="settlement.timestamp"),
                cooldown_seconds=_to_seconds(
                    item.get("cooldown_seconds"),
                    field="settlement.cooldown_seconds",
                    default=cooldown_duration,
                ),
                round_index=_optional_int(item.get("round")),
            )
        )
    events.extend(sorted(parsed_settlements, key=lambda event: (event.settled_at, event.log_index)))

    leader = payload.get("leader") or {}
    if not isinstance(leader, dict):
        raise SnapshotFormatError("leader must be an object")

    last_settled_raw = payload.get("last_settled_price")
    safety_bps = _to_seconds(
        payload.get("safety_multiplier_bps"),
        field="safety_multiplier_bps",
        default=float(DEFAULT_SAFETY_MULTIPLIER_BPS),
    )
    events.append(
        SnapshotRefreshed(
            observed_at=now,
            current_price=_to_amount(payload.get("current_price"), field="current_price"),
            start_price=_to_amount(payload.get("start_price"), field="start_price"),
            floor_price=_to_amount(payload.get("floor_price"), field="floor_price"),
            duration_seconds=int(_to_seconds(payload.get("duration_seconds"), field="duration_seconds")),
            decay_elapsed_seconds=_to_seconds(
                payload.get("decay_elapsed_seconds"),
                field="decay_elapsed_seconds",
                default=0.0,
            ),
            in_cooldown=bool(payload.get("in_cooldown", False)),
            cooldown_remaining_seconds=_to_seconds(
                payload.get("cooldown_remaining_seconds"),
                field="cooldown_remaining_seconds",
                default=0.0,
            ),
            leader=str(leader.get("address") or ZERO_ADDRESS),
            leader_amount=_to_amount(leader.get("amount", 0), field="leader.amount"),
            leader_since=_to_seconds(leader.get("since"), field="leader.since", default=now),
            reward_rate_per_second=_reward_rate(payload, cooldown_duration),
            safety_multiplier=safety_bps / 10_000,
            last_settled_price=(
                _to_amount(last_settled_raw, field="last_settled_price")
                if last_settled_raw not in (None, "")
                else None
            ),
            round_index=_optional_int(payload.get("round")),
        )
    )
    return events


class SnapshotWatcher:
    """Polls a JSON snapshot endpoint describing the auction contract state."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        snapshot_url: str,
        timeout_seconds: float = 5.0,
    ) -> None:
        self._logger = logger
        self._snapshot_url = snapshot_url
        self._timeout_seconds = timeout_seconds
        self._session: aiohttp.ClientSession | None = None

    async def connect(self) -> None:
        if not self._snapshot_url:
            raise ValueError("AUCTION_SNAPSHOT_URL is required.")
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self._timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def healthcheck(self) -> None:
        await self._fetch_payload()

    async def _fetch_payload(self) -> Any:
        if self._session is None:
            await self.connect()
        if self._session is None:
            raise RuntimeError("Snapshot HTTP session is not initialized.")

        async with self._session.get(self._snapshot_url) as response:
            if response.status == 429:
                retry_after = _parse_retry_after_seconds(response.headers.get("Retry-After"))
                raise SnapshotRateLimitError(
                    "Snapshot endpoint rate-limited",
                    retry_after_seconds=retry_after,
                )
            if response.status >= 400:
                body = await response.text()
                raise RuntimeError(f"Snapshot request failed: status={response.status} body={body[:240]}")
            return await response.json(content_type=None)

    async def fetch_events(self, *, now: float) -> list[AuctionEvent]:
        payload = await self._fetch_payload()
        events = parse_snapshot(payload, now=now)
        log_event(
            self._logger,
            level="debug",
            event="snapshot_fetched",
            message="Auction snapshot fetched",
            events=len(events),
        )
        return events
