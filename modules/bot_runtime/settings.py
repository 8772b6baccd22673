from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

from modules.auction.config import to_float
from modules.auction.errors import ConfigurationError
from modules.auction.rewards import DEFAULT_PROFIT_CHECKPOINTS
from modules.auction.units import parse_amount
from modules.rules import OPTIONAL_RULES


def to_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def to_int(value: Any, default: int) -> int:
    try:
        if value is None or str(value).strip() == "":
            return default
        return int(float(str(value).strip()))
    except (TypeError, ValueError, OverflowError):
        return default


def to_csv_tuple(value: str | None, default: tuple[str, ...]) -> tuple[str, ...]:
    if value is None:
        return default
    return tuple(item.strip() for item in value.split(",") if item.strip())


def to_checkpoints(value: str | None) -> tuple[float, ...]:
    if value is None or not value.strip():
        return DEFAULT_PROFIT_CHECKPOINTS
    try:
        return tuple(sorted({float(item) for item in to_csv_tuple(value, ())}))
    except ValueError as error:
        raise ConfigurationError(f"PROFIT_CHECKPOINTS must be a comma-separated list of numbers: {value!r}") from error


def to_amount(name: str, value: str | None, default: str) -> int:
    raw = (value or "").strip() or default
    try:
        return max(0, parse_amount(raw))
    except ValueError as error:
        raise ConfigurationError(f"{name} is not a valid amount: {raw!r}") from error


def to_optional_float(value: str | None) -> float | None:
    if value is None or not value.strip():
        return None
    try:
        return float(value.strip())
    except ValueError as error:
        raise ConfigurationError(f"Invalid number: {value!r}") from error


@dataclass(slots=True)
class AppSettings:
    tick_interval_seconds: float
    error_backoff_seconds: float
    snapshot_url: str
    snapshot_refresh_interval_seconds: float
    snapshot_timeout_seconds: float
    rpc_url: str
    wallet_address: str
    commit_contract_address: str
    commit_calldata: str
    commit_gas_limit: int
    dry_run: bool
    dry_run_balance: int
    min_wallet_balance: int
    price_tolerance_pct: float
    expected_decay_duration_seconds: int
    profit_checkpoints: tuple[float, ...]
    threshold_parity_buffer_pct: float | None
    market_discount_pct: float | None
    optional_rules: tuple[str, ...]
    settlement_retention_seconds: float
    serializer_max_pending: int
    confirm_timeout_seconds: float
    confirm_poll_interval_seconds: float
    commit_cooldown_seconds: float
    max_consecutive_execution_errors: int
    execution_circuit_breaker_seconds: float
    status_log_interval_seconds: float
    trace_publish_interval_seconds: float

    @classmethod
    def from_env(cls) -> "AppSettings":
        return cls(
            tick_interval_seconds=max(0.05, to_float(os.getenv("TICK_INTERVAL_SECONDS"), 1.0)),
            error_backoff_seconds=max(0.2, to_float(os.getenv("ERROR_BACKOFF_SECONDS"), 2.0)),
            snapshot_url=os.getenv("AUCTION_SNAPSHOT_URL", "").strip(),
            snapshot_refresh_interval_seconds=max(
                0.25,
                to_float(os.getenv("SNAPSHOT_REFRESH_INTERVAL_SECONDS"), 5.0),
            ),
            snapshot_timeout_seconds=max(0.5, to_float(os.getenv("SNAPSHOT_TIMEOUT_SECONDS"), 5.0)),
            rpc_url=os.getenv("RPC_URL", "").strip(),
            wallet_address=os.getenv("WALLET_ADDRESS", "").strip(),
            commit_contract_address=os.getenv("COMMIT_CONTRACT_ADDRESS", "").strip(),
            commit_calldata=os.getenv("COMMIT_CALLDATA", "0x").strip() or "0x",
            commit_gas_limit=max(21_000, to_int(os.getenv("COMMIT_GAS_LIMIT"), 300_000)),
            dry_run=to_bool(os.getenv("DRY_RUN"), True),
            dry_run_balance=to_amount("DRY_RUN_BALANCE", os.getenv("DRY_RUN_BALANCE"), "1000"),
            min_wallet_balance=to_amount("MIN_WALLET_BALANCE", os.getenv("MIN_WALLET_BALANCE"), "1"),
            price_tolerance_pct=max(0.0, to_float(os.getenv("PRICE_TOLERANCE_PCT"), 1.0)),
            expected_decay_duration_seconds=max(
                0,
                to_int(os.getenv("EXPECTED_DECAY_DURATION_SECONDS"), 60),
            ),
            profit_checkpoints=to_checkpoints(os.getenv("PROFIT_CHECKPOINTS")),
            threshold_parity_buffer_pct=to_optional_float(os.getenv("THRESHOLD_PARITY_BUFFER_PCT", "0")),
            market_discount_pct=to_optional_float(os.getenv("MARKET_DISCOUNT_PCT", "5")),
            optional_rules=to_csv_tuple(os.getenv("OPTIONAL_RULES"), OPTIONAL_RULES),
            settlement_retention_seconds=max(
                60.0,
                to_float(os.getenv("SETTLEMENT_RETENTION_SECONDS"), 6 * 60 * 60),
            ),
            serializer_max_pending=max(1, to_int(os.getenv("SERIALIZER_MAX_PENDING"), 8)),
            confirm_timeout_seconds=max(5.0, to_float(os.getenv("CONFIRM_TIMEOUT_SECONDS"), 45.0)),
            confirm_poll_interval_seconds=max(
                0.25,
                to_float(os.getenv("CONFIRM_POLL_INTERVAL_SECONDS"), 1.0),
            ),
            commit_cooldown_seconds=max(0.0, to_float(os.getenv("COMMIT_COOLDOWN_SECONDS"), 5.0)),
            max_consecutive_execution_errors=max(
                1,
                to_int(os.getenv("MAX_CONSECUTIVE_EXECUTION_ERRORS"), 5),
            ),
            execution_circuit_breaker_seconds=max(
                1.0,
                to_float(os.getenv("EXECUTION_CIRCUIT_BREAKER_SECONDS"), 60.0),
            ),
            status_log_interval_seconds=max(1.0, to_float(os.getenv("STATUS_LOG_INTERVAL_SECONDS"), 10.0)),
            trace_publish_interval_seconds=max(
                0.0,
                to_float(os.getenv("TRACE_PUBLISH_INTERVAL_SECONDS"), 1.0),
            ),
        )
