from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from typing import Any

from modules.common import log_event

from .types import AuctionParameters, json_safe
from .units import format_amount


@dataclass(slots=True, frozen=True)
class PriceCheck:
    calculated: int
    authoritative: int
    difference: int
    difference_pct: float
    tolerance_pct: float

    @property
    def within_tolerance(self) -> bool:
        return self.difference_pct <= self.tolerance_pct

    def to_dict(self) -> dict[str, Any]:
        payload = json_safe(asdict(self))
        payload["within_tolerance"] = self.within_tolerance
        return payload


def elapsed_whole_seconds(params: AuctionParameters, now: float) -> int:
    return math.floor(now - params.started_at)


def current_price(params: AuctionParameters, now: float) -> int:
    """Linear decay from start to floor, evaluated on whole elapsed seconds."""
    start = params.start_price
    floor = params.floor_price
    elapsed = elapsed_whole_seconds(params, now)

    if elapsed <= 0:
        return start
    if params.duration_seconds <= 0 or elapsed >= params.duration_seconds:
        return floor

    price = start - ((start - floor) * elapsed) // params.duration_seconds
    return max(floor, min(start, price))


def time_until_price(params: AuctionParameters, target: int, now: float) -> float:
    """Seconds from ``now`` until the price first drops to ``target`` or below."""
    start = params.start_price
    floor = params.floor_price

    if target >= start:
        return 0.0

    decay_ends_at = params.started_at + max(0, params.duration_seconds)
    if target <= floor or start <= floor or params.duration_seconds <= 0:
        return max(0.0, decay_ends_at - now)

    # Smallest whole second s with start - (range * s) // duration <= target.
    price_range = start - floor
    needed = -(-((start - target) * params.duration_seconds) // price_range)
    return max(0.0, params.started_at + needed - now)


def auction_progress(params: AuctionParameters, now: float) -> float:
    if params.duration_seconds <= 0:
        return 100.0
    elapsed = now - params.started_at
    return max(0.0, min(100.0, elapsed / params.duration_seconds * 100))


def reconcile_price(
    calculated: int,
    authoritative: int,
    *,
    tolerance_pct: float = 1.0,
    logger: logging.Logger | None = None,
) -> PriceCheck:
    difference = abs(calculated - authoritative)
    if authoritative > 0:
        difference_pct = difference * 100 / authoritative
    else:
        difference_pct = 0.0 if difference == 0 else 100.0

    check = PriceCheck(
        calculated=calculated,
        authoritative=authoritative,
        difference=difference,
        difference_pct=round(difference_pct, 6),
        tolerance_pct=tolerance_pct,
    )
    if logger is not None and not check.within_tolerance:
        log_event(
            logger,
            level="warning",
            event="price_reconciliation_mismatch",
            message="Reconstructed price diverges from authoritative price",
            calculated=format_amount(calculated),
            authoritative=format_amount(authoritative),
            difference_pct=check.difference_pct,
            tolerance_pct=tolerance_pct,
        )
    return check
