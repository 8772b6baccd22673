from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Union

from modules.common import log_event

from .pricing import current_price, reconcile_price
from .types import AuctionParameters, AuctionState
from .units import ZERO_ADDRESS, format_amount

DEFAULT_SETTLEMENT_RETENTION_SECONDS = 6 * 60 * 60
DEFAULT_DEDUP_CLEANUP_INTERVAL_SECONDS = 60.0


@dataclass(slots=True, frozen=True)
class SnapshotRefreshed:
    """Authoritative auction reading from the chain-state provider."""

    observed_at: float
    current_price: int
    start_price: int
    floor_price: int
    duration_seconds: int
    decay_elapsed_seconds: float
    in_cooldown: bool
    cooldown_remaining_seconds: float
    leader: str
    leader_amount: int
    leader_since: float
    reward_rate_per_second: int
    safety_multiplier: float
    last_settled_price: int | None = None
    round_index: int | None = None


@dataclass(slots=True, frozen=True)
class DecayPhaseEntered:
    params: AuctionParameters


@dataclass(slots=True, frozen=True)
class DecayPhaseExited:
    exited_at: float


@dataclass(slots=True, frozen=True)
class SettlementObserved:
    tx_hash: str
    log_index: int
    committer: str
    amount: int
    settled_at: float
    cooldown_seconds: float
    round_index: int | None = None

    @property
    def event_id(self) -> str:
        return f"{self.tx_hash}-{self.log_index}"


@dataclass(slots=True, frozen=True)
class RewardRateChanged:
    rate_per_second: int


AuctionEvent = Union[
    SnapshotRefreshed,
    DecayPhaseEntered,
    DecayPhaseExited,
    SettlementObserved,
    RewardRateChanged,
]


@dataclass(slots=True, frozen=True)
class SessionState:
    auction: AuctionState | None = None
    params: AuctionParameters | None = None
    reward_rate_per_second: int = 0
    cooldown_ends_at: float | None = None
    refreshed_at: float | None = None

    def in_cooldown(self, now: float) -> bool:
        return self.cooldown_ends_at is not None and now < self.cooldown_ends_at

    @property
    def is_decay_phase(self) -> bool:
        return self.auction is not None and self.auction.is_decay_phase


def _reduce_snapshot(state: SessionState, event: SnapshotRefreshed) -> SessionState:
    in_decay = (not event.in_cooldown) and event.current_price < event.start_price
    decay_started_at = event.observed_at - max(0.0, event.decay_elapsed_seconds)
    params = AuctionParameters(
        start_price=event.start_price,
        floor_price=event.floor_price,
        duration_seconds=event.duration_seconds,
        started_at=decay_started_at,
    )
    auction = AuctionState(
        current_price=event.current_price,
        leader=event.leader or ZERO_ADDRESS,
        leader_amount=event.leader_amount,
        leader_since=event.leader_since,
        is_decay_phase=in_decay,
        safety_multiplier=event.safety_multiplier,
        last_settled_price=event.last_settled_price,
        round_index=event.round_index,
        decay_started_at=decay_started_at if in_decay else None,
    )
    cooldown_ends_at = None
    if event.in_cooldown:
        cooldown_ends_at = event.observed_at + max(0.0, event.cooldown_remaining_seconds)
    return replace(
        state,
        auction=auction,
        params=params,
        reward_rate_per_second=event.reward_rate_per_second,
        cooldown_ends_at=cooldown_ends_at,
        refreshed_at=event.observed_at,
    )


def _reduce_settlement(state: SessionState, event: SettlementObserved) -> SessionState:
    previous = state.auction
    auction = AuctionState(
        current_price=previous.current_price if previous else event.amount,
        leader=event.committer,
        leader_amount=event.amount,
        leader_since=event.settled_at,
        is_decay_phase=False,
        safety_multiplier=previous.safety_multiplier if previous else 1.0,
        last_settled_price=event.amount,
        round_index=event.round_index if event.round_index is not None else (
            previous.round_index if previous else None
        ),
        decay_started_at=None,
    )
    return replace(
        state,
        auction=auction,
        cooldown_ends_at=event.settled_at + max(0.0, event.cooldown_seconds),
    )


def reduce_state(state: SessionState, event: AuctionEvent) -> SessionState:
    """Return the state that results from applying ``event``; never mutates."""
    if isinstance(event, SnapshotRefreshed):
        return _reduce_snapshot(state, event)
    if isinstance(event, SettlementObserved):
        return _reduce_settlement(state, event)
    if isinstance(event, RewardRateChanged):
        return replace(state, reward_rate_per_second=max(0, event.rate_per_second))
    if isinstance(event, DecayPhaseEntered):
        auction = state.auction
        if auction is None:
            return replace(state, params=event.params, cooldown_ends_at=None)
        return replace(
            state,
            params=event.params,
            cooldown_ends_at=None,
            auction=replace(
                auction,
                is_decay_phase=True,
                decay_started_at=event.params.started_at,
                current_price=event.params.start_price,
            ),
        )
    if isinstance(event, DecayPhaseExited):
        if state.auction is None:
            return state
        return replace(
            state,
            auction=replace(state.auction, is_decay_phase=False, decay_started_at=None),
        )
    raise TypeError(f"Unsupported auction event: {type(event).__name__}")


def realtime_auction(state: SessionState, now: float) -> AuctionState | None:
    """Auction state with the price reconstructed for ``now`` during decay."""
    auction = state.auction
    if auction is None or not auction.is_decay_phase or state.params is None:
        return auction
    return replace(auction, current_price=current_price(state.params, now))


class SettlementDeduplicator:
    def __init__(
        self,
        *,
        retention_seconds: float = DEFAULT_SETTLEMENT_RETENTION_SECONDS,
        cleanup_interval_seconds: float = DEFAULT_DEDUP_CLEANUP_INTERVAL_SECONDS,
    ) -> None:
        self._retention_seconds = retention_seconds
        self._cleanup_interval_seconds = cleanup_interval_seconds
        self._seen: dict[str, float] = {}
        self._last_cleanup_at = 0.0

    def __len__(self) -> int:
        return len(self._seen)

    def mark(self, event_id: str, now: float) -> bool:
        """Record ``event_id``; return False when it was already seen."""
        self._maybe_cleanup(now)
        if event_id in self._seen:
            return False
        self._seen[event_id] = now
        return True

    def _maybe_cleanup(self, now: float) -> None:
        if now - self._last_cleanup_at < self._cleanup_interval_seconds:
            return
        self._last_cleanup_at = now
        cutoff = now - self._retention_seconds
        expired = [event_id for event_id, seen_at in self._seen.items() if seen_at < cutoff]
        for event_id in expired:
            del self._seen[event_id]


class StateStore:
    """Owns the current ``SessionState`` and applies events to it."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        deduplicator: SettlementDeduplicator | None = None,
        price_tolerance_pct: float = 1.0,
        initial: SessionState | None = None,
    ) -> None:
        self._logger = logger
        self._deduplicator = deduplicator or SettlementDeduplicator()
        self._price_tolerance_pct = price_tolerance_pct
        self._state = initial or SessionState()

    @property
    def state(self) -> SessionState:
        return self._state

    def apply(self, event: AuctionEvent, *, now: float) -> bool:
        if isinstance(event, SettlementObserved):
            if not self._deduplicator.mark(event.event_id, now):
                log_event(
                    self._logger,
                    level="debug",
                    event="settlement_duplicate_skipped",
                    message="Duplicate settlement event ignored",
                    event_id=event.event_id,
                )
                return False

        previous = self._state
        if isinstance(event, SnapshotRefreshed) and previous.is_decay_phase and previous.params is not None:
            reconcile_price(
                current_price(previous.params, event.observed_at),
                event.current_price,
                tolerance_pct=self._price_tolerance_pct,
                logger=self._logger,
            )

        self._state = reduce_state(previous, event)
        self._log_transition(previous, self._state, event)
        return True

    def _log_transition(self, previous: SessionState, current: SessionState, event: AuctionEvent) -> None:
        if isinstance(event, SettlementObserved) and current.auction is not None:
            log_event(
                self._logger,
                level="info",
                event="settlement_observed",
                message="Auction settled; new leader holds the reward",
                leader=current.auction.leader,
                amount=format_amount(event.amount),
                round_index=current.auction.round_index,
                tx_hash=event.tx_hash,
            )
            return

        if previous.is_decay_phase == current.is_decay_phase:
            return
        log_event(
            self._logger,
            level="info",
            event="decay_phase_entered" if current.is_decay_phase else "decay_phase_exited",
            message="Auction decay phase started" if current.is_decay_phase else "Auction decay phase ended",
            round_index=current.auction.round_index if current.auction else None,
        )
