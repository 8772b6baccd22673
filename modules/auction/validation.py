from __future__ import annotations

import math
import re
from typing import Any, Iterable

from .errors import ConfigurationError, MalformedContextError
from .types import EvaluationContext, RuleConfig

ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


def is_valid_address(value: Any) -> bool:
    return isinstance(value, str) and ADDRESS_RE.match(value) is not None


def normalize_address(value: Any) -> str:
    if not is_valid_address(value):
        raise MalformedContextError(f"Invalid address: {value!r}")
    return value.lower()


def parse_address_list(raw: str | Iterable[str] | None) -> tuple[str, ...]:
    if raw is None:
        return ()
    items = raw.split(",") if isinstance(raw, str) else list(raw)
    return tuple(item.strip() for item in items if item and item.strip())


def _require_non_negative(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedContextError(f"{name} must be an integer amount, got {value!r}")
    if value < 0:
        raise MalformedContextError(f"{name} must be non-negative, got {value}")


def _require_finite(name: str, value: Any) -> None:
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        raise MalformedContextError(f"{name} must be a finite number, got {value!r}")


def _require_not_nan(name: str, value: Any) -> None:
    if not isinstance(value, (int, float)) or math.isnan(value):
        raise MalformedContextError(f"{name} must be a number, got {value!r}")


def validate_evaluation_context(context: EvaluationContext) -> EvaluationContext:
    auction = context.auction
    normalize_address(auction.leader)
    normalize_address(context.caller.address)

    _require_non_negative("current_price", auction.current_price)
    _require_non_negative("leader_amount", auction.leader_amount)
    _require_finite("leader_since", auction.leader_since)
    _require_finite("safety_multiplier", auction.safety_multiplier)
    if context.last_settled_price is not None:
        _require_non_negative("last_settled_price", context.last_settled_price)

    _require_non_negative("rate_per_second", context.accrual.rate_per_second)
    _require_non_negative("total_accrued", context.accrual.total_accrued)
    _require_non_negative("elapsed_seconds", context.accrual.elapsed_seconds)

    profit = context.profit
    _require_finite("return_pct", profit.return_pct)
    _require_finite("profit_pct", profit.profit_pct)
    # Unbounded projections are legitimate and carried as +inf.
    _require_not_nan("break_even_seconds", profit.break_even_seconds)
    for percentage, seconds in profit.checkpoints.items():
        _require_finite("checkpoint", percentage)
        _require_not_nan(f"checkpoint[{percentage:g}]", seconds)
        if seconds < 0:
            raise MalformedContextError(f"checkpoint[{percentage:g}] must be non-negative, got {seconds}")

    _require_finite("evaluated_at", context.evaluated_at)
    validate_rule_config(context.config)
    return context


def validate_rule_config(config: RuleConfig) -> RuleConfig:
    for name in (
        "others_profit_threshold",
        "self_profit_threshold",
        "blacklist_profit_threshold",
        "snipe_buffer_seconds",
        "max_safety_multiplier",
    ):
        value = getattr(config, name)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise ConfigurationError(f"{name} must be a finite number, got {value!r}")
    if config.snipe_buffer_seconds < 0:
        raise ConfigurationError("snipe_buffer_seconds must be non-negative")
    if isinstance(config.max_commit_amount, bool) or not isinstance(config.max_commit_amount, int):
        raise ConfigurationError(f"max_commit_amount must be an integer amount, got {config.max_commit_amount!r}")
    if config.max_commit_amount < 0:
        raise ConfigurationError("max_commit_amount must be non-negative")
    for address in (*config.own_wallets, *config.blacklisted):
        if not is_valid_address(address) or address != address.lower():
            raise ConfigurationError(f"Configured address is not normalized: {address!r}")
    return config


def build_rule_config(
    *,
    others_profit_threshold: float,
    self_profit_threshold: float,
    blacklist_profit_threshold: float,
    snipe_buffer_seconds: float,
    max_safety_multiplier: float,
    max_commit_amount: int,
    own_wallets: Iterable[str] = (),
    blacklisted: Iterable[str] = (),
) -> RuleConfig:
    def normalize_set(label: str, addresses: Iterable[str]) -> frozenset[str]:
        normalized: set[str] = set()
        for address in addresses:
            if not is_valid_address(address):
                raise ConfigurationError(f"Invalid {label} address: {address!r}")
            normalized.add(address.lower())
        return frozenset(normalized)

    return validate_rule_config(
        RuleConfig(
            others_profit_threshold=others_profit_threshold,
            self_profit_threshold=self_profit_threshold,
            blacklist_profit_threshold=blacklist_profit_threshold,
            snipe_buffer_seconds=snipe_buffer_seconds,
            max_safety_multiplier=max_safety_multiplier,
            max_commit_amount=max_commit_amount,
            own_wallets=normalize_set("own wallet", own_wallets),
            blacklisted=normalize_set("blacklisted", blacklisted),
        )
    )
