from __future__ import annotations

import math
import os
from typing import Any, Mapping

from .errors import ConfigurationError
from .types import RuleConfig
from .units import parse_amount
from .validation import build_rule_config, parse_address_list


def to_float(value: Any, default: float) -> float:
    try:
        if value is None or str(value).strip() == "":
            return default
        parsed = float(str(value).strip())
    except (TypeError, ValueError):
        return default
    return parsed if math.isfinite(parsed) else default


def _amount_or_error(name: str, raw: str) -> int:
    try:
        amount = parse_amount(raw)
    except ValueError as error:
        raise ConfigurationError(f"{name} is not a valid amount: {raw!r}") from error
    if amount < 0:
        raise ConfigurationError(f"{name} must be non-negative: {raw!r}")
    return amount


def rule_config_from_env(*, extra_own_wallets: tuple[str, ...] = ()) -> RuleConfig:
    raw_max_amount = os.getenv("MAX_COMMIT_AMOUNT", "").strip()
    if not raw_max_amount:
        raise ConfigurationError("MAX_COMMIT_AMOUNT is required (ether units, e.g. '20').")

    return build_rule_config(
        others_profit_threshold=to_float(os.getenv("OTHERS_PROFIT_THRESHOLD"), 2.0),
        self_profit_threshold=to_float(os.getenv("SELF_PROFIT_THRESHOLD"), 5.0),
        blacklist_profit_threshold=to_float(os.getenv("BLACKLIST_PROFIT_THRESHOLD"), 0.0),
        snipe_buffer_seconds=max(0.0, to_float(os.getenv("SNIPE_BUFFER_SECONDS"), 3.0)),
        max_safety_multiplier=to_float(os.getenv("MAX_SAFETY_MULTIPLIER"), 1.4),
        max_commit_amount=_amount_or_error("MAX_COMMIT_AMOUNT", raw_max_amount),
        own_wallets=(*parse_address_list(os.getenv("OWN_WALLETS")), *extra_own_wallets),
        blacklisted=parse_address_list(os.getenv("BLACKLISTED_ADDRESSES")),
    )


def rule_config_from_redis(redis_config: Mapping[str, str], defaults: RuleConfig) -> RuleConfig:
    """Overlay a Redis hash of overrides onto ``defaults``.

    Address sets are replaced as a whole when present; own wallets configured at
    startup are always kept.
    """
    raw_max_amount = redis_config.get("max_commit_amount")
    max_commit_amount = defaults.max_commit_amount
    if raw_max_amount not in (None, ""):
        max_commit_amount = _amount_or_error("max_commit_amount", raw_max_amount)

    blacklisted: tuple[str, ...] = tuple(defaults.blacklisted)
    if "blacklisted_addresses" in redis_config:
        blacklisted = parse_address_list(redis_config.get("blacklisted_addresses"))

    own_wallets = (*defaults.own_wallets, *parse_address_list(redis_config.get("own_wallets")))

    return build_rule_config(
        others_profit_threshold=to_float(
            redis_config.get("others_profit_threshold"),
            defaults.others_profit_threshold,
        ),
        self_profit_threshold=to_float(
            redis_config.get("self_profit_threshold"),
            defaults.self_profit_threshold,
        ),
        blacklist_profit_threshold=to_float(
            redis_config.get("blacklist_profit_threshold"),
            defaults.blacklist_profit_threshold,
        ),
        snipe_buffer_seconds=max(
            0.0,
            to_float(redis_config.get("snipe_buffer_seconds"), defaults.snipe_buffer_seconds),
        ),
        max_safety_multiplier=to_float(
            redis_config.get("max_safety_multiplier"),
            defaults.max_safety_multiplier,
        ),
        max_commit_amount=max_commit_amount,
        own_wallets=own_wallets,
        blacklisted=blacklisted,
    )
