from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Awaitable, Callable

from modules.auction.types import Decision
from modules.common import log_event

from .stats import SessionStats
from .types import STATUS_FAILED, STATUS_SUPERSEDED, CommitRequest, CommitTicket, ExecutionResult

CommitHandler = Callable[[CommitRequest], Awaitable[ExecutionResult]]


class ExecutionSerializer:
    """Runs commit requests one at a time, newest token wins.

    Every ``submit`` issues a fresh token. The single worker re-checks the token
    when it dequeues a request; anything older than the latest issued token is
    resolved as superseded without touching the handler.
    """

    def __init__(
        self,
        *,
        logger: logging.Logger,
        handler: CommitHandler,
        stats: SessionStats | None = None,
        max_pending: int = 8,
    ) -> None:
        self._logger = logger
        self._handler = handler
        self._stats = stats if stats is not None else SessionStats()
        self._queue: asyncio.Queue[CommitTicket] = asyncio.Queue(maxsize=max(1, max_pending))
        self._latest_token = 0
        self._in_flight: CommitRequest | None = None
        self._worker: asyncio.Task[None] | None = None

    @property
    def stats(self) -> SessionStats:
        return self._stats

    @property
    def latest_token(self) -> int:
        return self._latest_token

    @property
    def in_flight(self) -> CommitRequest | None:
        return self._in_flight

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def busy(self) -> bool:
        return self._in_flight is not None or not self._queue.empty()

    def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._run(), name="commit-serializer")

    def submit(self, decision: Decision, *, requested_at: float, forced: bool = False) -> CommitTicket:
        self._latest_token += 1
        request = CommitRequest(
            token=self._latest_token,
            decision=decision,
            requested_at=requested_at,
            forced=forced,
        )
        ticket = CommitTicket(request=request, future=asyncio.get_running_loop().create_future())

        if self._queue.full():
            oldest = self._queue.get_nowait()
            self._queue.task_done()
            self._resolve_superseded(oldest)

        self._queue.put_nowait(ticket)
        log_event(
            self._logger,
            level="debug",
            event="commit_enqueued",
            message="Commit request queued",
            token=request.token,
            rule=decision.rule_name,
            forced=forced,
            pending=self._queue.qsize(),
        )
        self.start()
        return ticket

    async def join(self) -> None:
        await self._queue.join()

    async def close(self, *, drain: bool = True) -> None:
        if drain and self._worker is not None and not self._worker.done():
            await self._queue.join()

        if self._worker is not None:
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
            self._worker = None

        while not self._queue.empty():
            ticket = self._queue.get_nowait()
            self._queue.task_done()
            self._resolve_superseded(ticket)

    def _resolve_superseded(self, ticket: CommitTicket) -> None:
        result = ExecutionResult(
            status=STATUS_SUPERSEDED,
            token=ticket.request.token,
            reason=f"superseded by token {self._latest_token}",
        )
        log_event(
            self._logger,
            level="info",
            event="commit_superseded",
            message="Commit request superseded by a newer request",
            token=ticket.request.token,
            latest_token=self._latest_token,
            rule=ticket.request.decision.rule_name,
        )
        self._stats.record(result)
        if not ticket.future.done():
            ticket.future.set_result(result)

    async def _run(self) -> None:
        while True:
            ticket = await self._queue.get()
            try:
                request = ticket.request
                if request.token != self._latest_token:
                    self._resolve_superseded(ticket)
                    continue

                self._in_flight = request
                try:
                    result = await self._handler(request)
                except asyncio.CancelledError:
                    if not ticket.future.done():
                        ticket.future.cancel()
                    raise
                except Exception as error:
                    log_event(
                        self._logger,
                        level="exception",
                        event="commit_handler_failed",
                        message="Commit execution raised",
                        token=request.token,
                        error=str(error),
                    )
                    result = ExecutionResult(status=STATUS_FAILED, token=request.token, reason=str(error))
                finally:
                    self._in_flight = None

                if request.token != self._latest_token:
                    log_event(
                        self._logger,
                        level="info",
                        event="commit_completed_after_supersession",
                        message="Commit finished after a newer request was issued",
                        token=request.token,
                        latest_token=self._latest_token,
                        status=result.status,
                    )

                self._stats.record(result)
                if not ticket.future.done():
                    ticket.future.set_result(result)
            finally:
                self._queue.task_done()
