from __future__ import annotations

import logging
import time
from typing import Callable, Iterable

from modules.auction import (
    AuctionEvent,
    Decision,
    MalformedContextError,
    RuleConfig,
    StateStore,
    build_evaluation_context,
    realtime_auction,
)
from modules.auction.units import format_amount
from modules.common import guarded_call, log_event
from modules.rules import FORCE_COMMIT_PRIORITY
from modules.storage import NullStorage, StorageGateway
from modules.trading import (
    ArbitrationResult,
    CommitExecutor,
    CommitRequest,
    CommitTicket,
    DecisionArbitrator,
    ExecutionResult,
    ExecutionSerializer,
    SessionStats,
)
from modules.trading.types import (
    ATTEMPT_STATUSES,
    STATUS_FAILED,
    STATUS_SKIPPED_CIRCUIT_OPEN,
    STATUS_SKIPPED_COOLDOWN,
    STATUS_SKIPPED_LOW_BALANCE,
    STATUS_SKIPPED_PHASE_CLOSED,
    STATUS_SKIPPED_PRICE_LIMIT,
)

from .settings import AppSettings


class BotSession:
    """Everything one running bot needs, wired together explicitly.

    Holds the rule configuration, the auction state store, the arbitrator, the
    execution serializer and the collaborator handles. ``tick`` runs one
    evaluation; ``execute_commit`` is the serializer's handler.
    """

    def __init__(
        self,
        *,
        logger: logging.Logger,
        settings: AppSettings,
        rule_config: RuleConfig,
        arbitrator: DecisionArbitrator,
        executor: CommitExecutor,
        caller_address: str,
        storage: StorageGateway | NullStorage | None = None,
        store: StateStore | None = None,
        stats: SessionStats | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._logger = logger
        self._settings = settings
        self._arbitrator = arbitrator
        self._executor = executor
        self._caller_address = caller_address
        self._storage = storage if storage is not None else NullStorage()
        self._store = store or StateStore(logger=logger, price_tolerance_pct=settings.price_tolerance_pct)
        self._clock = clock
        self._stats = stats if stats is not None else SessionStats(started_at=clock())
        self.serializer = ExecutionSerializer(
            logger=logger,
            handler=self.execute_commit,
            stats=self._stats,
            max_pending=settings.serializer_max_pending,
        )

        self._rule_config = rule_config
        self._checkpoints = self._collect_checkpoints(rule_config)
        self._paused = False
        self._last_commit_at = 0.0
        self._consecutive_errors = 0
        self._circuit_open_until = 0.0
        self._last_status_log_at = 0.0
        self._last_trace_published_at = 0.0

    @property
    def rule_config(self) -> RuleConfig:
        return self._rule_config

    @property
    def store(self) -> StateStore:
        return self._store

    @property
    def stats(self) -> SessionStats:
        return self._stats

    @property
    def arbitrator(self) -> DecisionArbitrator:
        return self._arbitrator

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def last_evaluation(self) -> ArbitrationResult | None:
        return self._arbitrator.last_evaluation

    def _collect_checkpoints(self, config: RuleConfig) -> tuple[float, ...]:
        points = set(self._settings.profit_checkpoints)
        points.update(self._arbitrator.required_checkpoints(config))
        return tuple(sorted(points))

    def update_rule_config(self, config: RuleConfig) -> None:
        if config == self._rule_config:
            return
        self._rule_config = config
        self._checkpoints = self._collect_checkpoints(config)
        log_event(
            self._logger,
            level="info",
            event="rule_config_updated",
            message="Rule configuration updated",
            config=config.to_dict(),
        )

    def pause(self) -> None:
        if not self._paused:
            self._paused = True
            log_event(self._logger, level="info", event="monitoring_paused", message="Monitoring paused")

    def resume(self) -> None:
        if self._paused:
            self._paused = False
            log_event(self._logger, level="info", event="monitoring_resumed", message="Monitoring resumed")

    def apply_events(self, events: Iterable[AuctionEvent], *, now: float) -> int:
        return sum(1 for event in events if self._store.apply(event, now=now))

    def evaluate(self, now: float) -> ArbitrationResult | None:
        try:
            context = build_evaluation_context(
                state=self._store.state,
                config=self._rule_config,
                caller_address=self._caller_address,
                now=now,
                expected_decay_duration=self._settings.expected_decay_duration_seconds,
                checkpoints=self._checkpoints,
            )
        except MalformedContextError as error:
            log_event(
                self._logger,
                level="warning",
                event="context_invalid",
                message="Skipping tick: evaluation context failed validation",
                error=str(error),
            )
            return None

        if context is None:
            return None
        return self._arbitrator.evaluate_with_trace(context)

    async def tick(self, now: float) -> CommitTicket | None:
        if self._paused:
            return None

        result = self.evaluate(now)
        if result is None:
            return None

        await self._publish_trace(result, now)
        self._maybe_log_status(result, now)

        decision = result.decision
        if not decision.act:
            if decision.priority > 0:
                log_event(
                    self._logger,
                    level="debug",
                    event="decision_blocked",
                    message="Commit blocked by rule",
                    rule=decision.rule_name,
                    reason=decision.reason,
                )
            return None

        state = self._store.state
        if not state.is_decay_phase or state.in_cooldown(now):
            log_event(
                self._logger,
                level="debug",
                event="decision_display_only",
                message="Rule triggered outside the decay phase; not submitting",
                rule=decision.rule_name,
                reason=decision.reason,
            )
            return None

        ticket = self.serializer.submit(decision, requested_at=now)
        log_event(
            self._logger,
            level="info",
            event="commit_requested",
            message="Decision to commit",
            token=ticket.request.token,
            rule=decision.rule_name,
            priority=decision.priority,
            reason=decision.reason,
            urgency=decision.urgency,
        )
        return ticket

    def force_commit(self, now: float, *, reason: str = "Manual force commit") -> CommitTicket:
        """Submit a commit that bypasses the cooldown and circuit breaker.

        Raises ``RuntimeError`` when the auction is not in its decay phase.
        """
        state = self._store.state
        if not state.is_decay_phase or state.in_cooldown(now):
            log_event(
                self._logger,
                level="warning",
                event="force_commit_rejected",
                message="Manual commit refused outside the decay phase",
                reason=reason,
            )
            raise RuntimeError("Not in auction decay phase; cannot force commit")

        decision = Decision(
            act=True,
            reason=reason,
            priority=FORCE_COMMIT_PRIORITY,
            rule_name="force_commit",
            urgency=2.0,
            metadata={"manual": True},
        )
        log_event(
            self._logger,
            level="warning",
            event="force_commit_requested",
            message="Manual commit requested",
            reason=reason,
        )
        return self.serializer.submit(decision, requested_at=now, forced=True)

    def _skip(self, request: CommitRequest, status: str, reason: str, **fields: object) -> ExecutionResult:
        log_event(
            self._logger,
            level="warning",
            event=status,
            message="Commit skipped",
            token=request.token,
            reason=reason,
            **fields,
        )
        return ExecutionResult(status=status, token=request.token, reason=reason)

    async def execute_commit(self, request: CommitRequest) -> ExecutionResult:
        now = self._clock()

        if not request.forced and self._circuit_open_until > now:
            return self._skip(
                request,
                STATUS_SKIPPED_CIRCUIT_OPEN,
                "execution circuit breaker is open",
                remaining_seconds=round(self._circuit_open_until - now, 3),
            )

        cooldown = self._settings.commit_cooldown_seconds
        if not request.forced and cooldown > 0 and (now - self._last_commit_at) < cooldown:
            return self._skip(
                request,
                STATUS_SKIPPED_COOLDOWN,
                "commit cooldown active",
                remaining_seconds=round(cooldown - (now - self._last_commit_at), 3),
            )

        state = self._store.state
        auction = realtime_auction(state, now)
        if auction is None:
            return self._skip(request, STATUS_SKIPPED_PHASE_CLOSED, "auction state unknown")
        if not state.is_decay_phase or state.in_cooldown(now):
            return self._skip(request, STATUS_SKIPPED_PHASE_CLOSED, "decay phase closed before execution")

        amount = auction.current_price
        if amount > self._rule_config.max_commit_amount:
            return self._skip(
                request,
                STATUS_SKIPPED_PRICE_LIMIT,
                f"price {format_amount(amount)} exceeds maximum commit amount",
            )

        try:
            balance = await self._executor.get_balance()
            if balance < amount:
                result = ExecutionResult(
                    status=STATUS_SKIPPED_LOW_BALANCE,
                    token=request.token,
                    amount=amount,
                    reason=f"insufficient balance: have {format_amount(balance)}, need {format_amount(amount)}",
                )
            else:
                self._last_commit_at = now
                result = await self._executor.execute(request=request, amount=amount)
        except Exception as error:
            log_event(
                self._logger,
                level="exception",
                event="commit_execution_error",
                message="Commit execution failed",
                token=request.token,
                error=str(error),
            )
            result = ExecutionResult(status=STATUS_FAILED, token=request.token, amount=amount, reason=str(error))

        self._note_result(result, now)
        await guarded_call(
            lambda: self._storage.publish_event(
                level="INFO" if result.succeeded else "WARNING",
                event="commit_execution",
                message="Commit execution attempted",
                details={"decision": request.decision.to_dict(), "execution": result.to_dict()},
            ),
            logger=self._logger,
            event="commit_event_publish_failed",
            message="Failed to publish commit execution event",
        )
        return result

    def _note_result(self, result: ExecutionResult, now: float) -> None:
        log_event(
            self._logger,
            level="info" if result.succeeded else "warning",
            event="commit_result",
            message="Commit attempt finished",
            token=result.token,
            status=result.status,
            tx_hash=result.tx_hash,
            amount=format_amount(result.amount),
            reason=result.reason,
        )
        if result.succeeded:
            self._consecutive_errors = 0
            return
        if result.status not in ATTEMPT_STATUSES:
            return

        self._consecutive_errors += 1
        threshold = self._settings.max_consecutive_execution_errors
        if self._consecutive_errors >= threshold:
            cooldown_seconds = self._settings.execution_circuit_breaker_seconds
            self._circuit_open_until = now + cooldown_seconds
            self._consecutive_errors = 0
            log_event(
                self._logger,
                level="warning",
                event="execution_circuit_breaker_opened",
                message="Execution circuit breaker opened after repeated execution errors",
                threshold=threshold,
                cooldown_seconds=cooldown_seconds,
            )

    async def check_wallet_balance(self) -> int:
        balance = await self._executor.get_balance()
        minimum = self._settings.min_wallet_balance
        log_event(
            self._logger,
            level="info",
            event="wallet_balance",
            message="Wallet balance checked",
            balance=format_amount(balance),
            minimum=format_amount(minimum),
        )
        if balance < minimum:
            raise RuntimeError(
                f"Wallet balance {format_amount(balance)} is below the minimum {format_amount(minimum)}"
            )
        return balance

    async def publish_stats(self, now: float) -> None:
        await guarded_call(
            lambda: self._storage.record_stats(self._stats.to_dict(now)),
            logger=self._logger,
            event="stats_publish_failed",
            message="Failed to publish session stats",
        )

    async def _publish_trace(self, result: ArbitrationResult, now: float) -> None:
        interval = self._settings.trace_publish_interval_seconds
        if interval > 0 and (now - self._last_trace_published_at) < interval:
            return
        self._last_trace_published_at = now
        await guarded_call(
            lambda: self._storage.publish_trace(result.to_dict()),
            logger=self._logger,
            event="trace_publish_failed",
            message="Failed to publish decision trace",
        )

    def _maybe_log_status(self, result: ArbitrationResult, now: float) -> None:
        state = self._store.state
        if not state.is_decay_phase:
            return
        if (now - self._last_status_log_at) < self._settings.status_log_interval_seconds:
            return
        self._last_status_log_at = now

        auction = realtime_auction(state, now)
        log_event(
            self._logger,
            level="info",
            event="monitoring_status",
            message="Monitoring auction",
            price=format_amount(auction.current_price) if auction else None,
            leader=auction.leader if auction else None,
            triggered=[trace.rule_name for trace in result.triggered],
            decision=result.decision.reason,
            act=result.decision.act,
        )
