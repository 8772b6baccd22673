from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

from modules.auction.state import AuctionEvent
from modules.auction.types import Decision, json_safe

STATUS_CONFIRMED = "confirmed"
STATUS_REVERTED = "reverted"
STATUS_DRY_RUN = "dry_run"
STATUS_FAILED = "failed"
STATUS_SUPERSEDED = "superseded"
STATUS_SKIPPED_LOW_BALANCE = "skipped_low_balance"
STATUS_SKIPPED_PHASE_CLOSED = "skipped_phase_closed"
STATUS_SKIPPED_COOLDOWN = "skipped_cooldown"
STATUS_SKIPPED_CIRCUIT_OPEN = "skipped_circuit_open"
STATUS_SKIPPED_PRICE_LIMIT = "skipped_price_limit"

SUCCESS_STATUSES = frozenset({STATUS_CONFIRMED, STATUS_DRY_RUN})
ATTEMPT_STATUSES = frozenset(
    {STATUS_CONFIRMED, STATUS_DRY_RUN, STATUS_REVERTED, STATUS_FAILED, STATUS_SKIPPED_LOW_BALANCE}
)


@dataclass(slots=True, frozen=True)
class CommitRequest:
    token: int
    decision: Decision
    requested_at: float
    forced: bool = False


@dataclass(slots=True, frozen=True)
class ExecutionResult:
    status: str
    token: int
    amount: int = 0
    tx_hash: str | None = None
    reason: str = ""
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status in SUCCESS_STATUSES

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "token": self.token,
            "amount": json_safe(self.amount),
            "tx_hash": self.tx_hash,
            "reason": self.reason,
            "metadata": json_safe(dict(self.metadata)),
        }


@dataclass(slots=True)
class CommitTicket:
    request: CommitRequest
    future: asyncio.Future[ExecutionResult]

    async def wait(self) -> ExecutionResult:
        return await asyncio.shield(self.future)


class CommitExecutor(Protocol):
    async def connect(self) -> None:
        ...

    async def close(self) -> None:
        ...

    async def healthcheck(self) -> None:
        ...

    async def get_balance(self) -> int:
        ...

    async def execute(self, *, request: CommitRequest, amount: int) -> ExecutionResult:
        ...


class AuctionStateProvider(Protocol):
    async def connect(self) -> None:
        ...

    async def close(self) -> None:
        ...

    async def healthcheck(self) -> None:
        ...

    async def fetch_events(self, *, now: float) -> list[AuctionEvent]:
        ...


class TraceSink(Protocol):
    async def publish_trace(self, payload: dict[str, Any]) -> None:
        ...
