from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from modules.auction.types import json_safe
from modules.auction.units import format_amount

from .types import ATTEMPT_STATUSES, STATUS_SUPERSEDED, ExecutionResult


@dataclass(slots=True)
class SessionStats:
    started_at: float = field(default_factory=time.time)
    total_attempts: int = 0
    successful: int = 0
    failed: int = 0
    superseded: int = 0
    skipped: int = 0
    total_spent: int = 0
    consecutive_failures: int = 0
    last_status: str | None = None

    @property
    def success_rate(self) -> float:
        if self.total_attempts == 0:
            return 0.0
        return round(self.successful / self.total_attempts * 100, 2)

    @property
    def average_spent(self) -> int:
        if self.successful == 0:
            return 0
        return self.total_spent // self.successful

    def record(self, result: ExecutionResult) -> None:
        self.last_status = result.status
        if result.status == STATUS_SUPERSEDED:
            self.superseded += 1
            return
        if result.status not in ATTEMPT_STATUSES:
            self.skipped += 1
            return

        self.total_attempts += 1
        if result.succeeded:
            self.successful += 1
            self.total_spent += result.amount
            self.consecutive_failures = 0
        else:
            self.failed += 1
            self.consecutive_failures += 1

    def duration_seconds(self, now: float | None = None) -> float:
        return max(0.0, (now if now is not None else time.time()) - self.started_at)

    def to_dict(self, now: float | None = None) -> dict[str, Any]:
        return {
            "started_at": self.started_at,
            "duration_seconds": round(self.duration_seconds(now), 3),
            "total_attempts": self.total_attempts,
            "successful": self.successful,
            "failed": self.failed,
            "superseded": self.superseded,
            "skipped": self.skipped,
            "success_rate": self.success_rate,
            "total_spent": json_safe(self.total_spent),
            "total_spent_display": format_amount(self.total_spent),
            "average_spent_display": format_amount(self.average_spent),
            "last_status": self.last_status,
        }
