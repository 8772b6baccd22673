from __future__ import annotations

import asyncio
import logging
import time

from modules.auction import AuctionEvent, ConfigurationError, RuleConfig
from modules.auction.config import rule_config_from_redis
from modules.common import guarded_call, log_event, wait_with_stop
from modules.storage import NullStorage, StorageGateway
from modules.trading import AuctionStateProvider, CommitExecutor, SnapshotRateLimitError

from .session import BotSession
from .settings import AppSettings


async def bootstrap_dependencies(
    *,
    logger: logging.Logger,
    stop_event: asyncio.Event,
    app_settings: AppSettings,
    storage: StorageGateway | NullStorage,
    watcher: AuctionStateProvider,
    executor: CommitExecutor,
) -> None:
    while not stop_event.is_set():
        try:
            await storage.connect()
            await watcher.connect()
            await executor.connect()
            return
        except Exception as error:
            log_event(
                logger,
                level="exception",
                event="bootstrap_error",
                message="Dependency bootstrap failed",
                error=str(error),
            )
            await guarded_call(
                watcher.close,
                logger=logger,
                event="bootstrap_watcher_close_failed",
                message="Failed to close watcher during bootstrap retry",
            )
            await guarded_call(
                executor.close,
                logger=logger,
                event="bootstrap_executor_close_failed",
                message="Failed to close executor during bootstrap retry",
            )
            await guarded_call(
                storage.close,
                logger=logger,
                event="bootstrap_storage_close_failed",
                message="Failed to close storage during bootstrap retry",
            )

            await wait_with_stop(stop_event, app_settings.error_backoff_seconds)

    raise RuntimeError("Shutdown requested before dependencies were initialized.")


async def run_event_pump(
    *,
    logger: logging.Logger,
    stop_event: asyncio.Event,
    app_settings: AppSettings,
    watcher: AuctionStateProvider,
    events: asyncio.Queue[AuctionEvent],
) -> None:
    """Poll the chain-state provider and hand events to the decision loop."""
    consecutive_failures = 0

    while not stop_event.is_set():
        delay_seconds = app_settings.snapshot_refresh_interval_seconds
        try:
            for event in await watcher.fetch_events(now=time.time()):
                events.put_nowait(event)
            if consecutive_failures:
                log_event(
                    logger,
                    level="info",
                    event="snapshot_recovered",
                    message="Snapshot polling recovered",
                    failures=consecutive_failures,
                )
            consecutive_failures = 0
        except asyncio.CancelledError:
            raise
        except SnapshotRateLimitError as error:
            delay_seconds = max(app_settings.error_backoff_seconds, error.retry_after_seconds or 0.0)
            log_event(
                logger,
                level="warning",
                event="snapshot_rate_limited",
                message="Snapshot endpoint rate-limited; backing off",
                backoff_seconds=delay_seconds,
            )
        except Exception as error:
            consecutive_failures += 1
            delay_seconds = max(delay_seconds, app_settings.error_backoff_seconds)
            log_event(
                logger,
                level="warning",
                event="snapshot_fetch_failed",
                message="Failed to refresh auction snapshot",
                error=str(error),
                failures=consecutive_failures,
            )

        await wait_with_stop(stop_event, delay_seconds)


def drain_events(events: asyncio.Queue[AuctionEvent]) -> list[AuctionEvent]:
    drained: list[AuctionEvent] = []
    while True:
        try:
            drained.append(events.get_nowait())
        except asyncio.QueueEmpty:
            return drained


async def refresh_rule_config(
    *,
    logger: logging.Logger,
    storage: StorageGateway | NullStorage,
    session: BotSession,
    defaults: RuleConfig,
) -> None:
    overrides = await guarded_call(
        storage.get_rule_overrides,
        logger=logger,
        event="rule_overrides_fetch_failed",
        message="Failed to read rule overrides",
        default={},
    )
    try:
        session.update_rule_config(rule_config_from_redis(overrides or {}, defaults))
    except ConfigurationError as error:
        log_event(
            logger,
            level="warning",
            event="rule_overrides_invalid",
            message="Ignoring invalid rule overrides",
            error=str(error),
        )


async def run_decision_loop(
    *,
    logger: logging.Logger,
    stop_event: asyncio.Event,
    app_settings: AppSettings,
    session: BotSession,
    events: asyncio.Queue[AuctionEvent],
    storage: StorageGateway | NullStorage,
    rule_defaults: RuleConfig,
) -> None:
    loop = asyncio.get_running_loop()
    next_tick = loop.time()
    next_config_refresh = next_tick
    interval = app_settings.tick_interval_seconds

    while not stop_event.is_set():
        backoff_seconds = 0.0
        try:
            if loop.time() >= next_config_refresh:
                next_config_refresh = loop.time() + app_settings.snapshot_refresh_interval_seconds
                await refresh_rule_config(
                    logger=logger,
                    storage=storage,
                    session=session,
                    defaults=rule_defaults,
                )

            now = time.time()
            session.apply_events(drain_events(events), now=now)
            await session.tick(now)
        except Exception as error:
            backoff_seconds = app_settings.error_backoff_seconds
            log_event(
                logger,
                level="exception",
                event="main_loop_error",
                message="Decision tick failed",
                error=str(error),
            )
        finally:
            next_tick += interval
            current = loop.time()
            if next_tick <= current:
                missed_cycles = int((current - next_tick) / interval) + 1
                next_tick += missed_cycles * interval

            delay_seconds = max(backoff_seconds, next_tick - current, 0.0)
            await wait_with_stop(stop_event, delay_seconds)
