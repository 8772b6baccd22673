from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import time

from dotenv import load_dotenv

from modules.auction import AuctionEvent, SettlementDeduplicator, StateStore
from modules.auction.config import rule_config_from_env
from modules.auction.validation import is_valid_address
from modules.bot_runtime import (
    AppSettings,
    BotSession,
    bootstrap_dependencies,
    run_decision_loop,
    run_event_pump,
    setup_logger,
)
from modules.common import guarded_call, log_event
from modules.rules import build_default_rules
from modules.storage import NullStorage, StorageGateway, StorageSettings
from modules.trading import (
    CommitExecutor,
    DecisionArbitrator,
    DryRunCommitExecutor,
    RpcCommitExecutor,
    SnapshotWatcher,
)

DRY_RUN_CALLER = "0x000000000000000000000000000000000000dead"


def build_executor(app_settings: AppSettings, logger: logging.Logger) -> CommitExecutor:
    if app_settings.dry_run:
        return DryRunCommitExecutor(logger=logger, balance=app_settings.dry_run_balance)
    return RpcCommitExecutor(
        logger=logger,
        rpc_url=app_settings.rpc_url,
        sender=app_settings.wallet_address,
        contract_address=app_settings.commit_contract_address,
        calldata=app_settings.commit_calldata,
        gas_limit=app_settings.commit_gas_limit,
        confirm_timeout_seconds=app_settings.confirm_timeout_seconds,
        confirm_poll_interval_seconds=app_settings.confirm_poll_interval_seconds,
    )


async def main() -> None:
    load_dotenv()
    logger = setup_logger()

    app_settings = AppSettings.from_env()
    storage_settings = StorageSettings.from_env()

    caller_address = app_settings.wallet_address
    if not is_valid_address(caller_address):
        if not app_settings.dry_run:
            raise ValueError("WALLET_ADDRESS must be a valid address when DRY_RUN is false.")
        caller_address = DRY_RUN_CALLER

    rule_defaults = rule_config_from_env(extra_own_wallets=(caller_address,))
    arbitrator = DecisionArbitrator(
        build_default_rules(
            profit_buffer_pct=app_settings.threshold_parity_buffer_pct,
            market_discount_pct=app_settings.market_discount_pct,
            optional_rules=app_settings.optional_rules,
        ),
        logger=logger,
    )

    storage: StorageGateway | NullStorage
    if storage_settings.enabled:
        storage = StorageGateway(storage_settings, logger)
    else:
        storage = NullStorage(storage_settings)
    watcher = SnapshotWatcher(
        logger=logger,
        snapshot_url=app_settings.snapshot_url,
        timeout_seconds=app_settings.snapshot_timeout_seconds,
    )
    executor = build_executor(app_settings, logger)

    session = BotSession(
        logger=logger,
        settings=app_settings,
        rule_config=rule_defaults,
        arbitrator=arbitrator,
        executor=executor,
        caller_address=caller_address,
        storage=storage,
        store=StateStore(
            logger=logger,
            deduplicator=SettlementDeduplicator(
                retention_seconds=app_settings.settlement_retention_seconds,
            ),
            price_tolerance_pct=app_settings.price_tolerance_pct,
        ),
    )

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def request_shutdown(sig: signal.Signals) -> None:
        log_event(
            logger,
            level="info",
            event="shutdown_signal_received",
            message="Shutdown signal received",
            signal=sig.name,
        )
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, request_shutdown, sig)

    await bootstrap_dependencies(
        logger=logger,
        stop_event=stop_event,
        app_settings=app_settings,
        storage=storage,
        watcher=watcher,
        executor=executor,
    )

    if not app_settings.dry_run:
        await session.check_wallet_balance()

    log_event(
        logger,
        level="info",
        event="bot_started",
        message="Auction bot started",
        dry_run=app_settings.dry_run,
        caller=caller_address,
        rules=list(arbitrator.rule_names),
        tick_interval_seconds=app_settings.tick_interval_seconds,
    )
    await guarded_call(
        lambda: storage.publish_event(
            level="INFO",
            event="bot_started",
            message="Bot process started",
            details={"dry_run": app_settings.dry_run, "rules": list(arbitrator.rule_names)},
        ),
        logger=logger,
        event="bot_started_publish_failed",
        message="Failed to publish bot_started event",
    )

    events: asyncio.Queue[AuctionEvent] = asyncio.Queue()
    pump = asyncio.create_task(
        run_event_pump(
            logger=logger,
            stop_event=stop_event,
            app_settings=app_settings,
            watcher=watcher,
            events=events,
        ),
        name="event-pump",
    )

    try:
        await run_decision_loop(
            logger=logger,
            stop_event=stop_event,
            app_settings=app_settings,
            session=session,
            events=events,
            storage=storage,
            rule_defaults=rule_defaults,
        )
    finally:
        stop_event.set()
        pump.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await pump

        await guarded_call(
            lambda: session.serializer.close(drain=True),
            logger=logger,
            event="serializer_close_failed",
            message="Failed to drain commit serializer",
        )
        await session.publish_stats(time.time())
        log_event(
            logger,
            level="info",
            event="session_stats",
            message="Session statistics",
            **session.stats.to_dict(),
        )
        await guarded_call(
            lambda: storage.publish_event(
                level="INFO",
                event="bot_stopped",
                message="Bot process stopped gracefully",
            ),
            logger=logger,
            event="bot_stopped_publish_failed",
            message="Failed to publish bot_stopped event",
        )

        await guarded_call(
            watcher.close,
            logger=logger,
            event="watcher_close_failed",
            message="Failed to close watcher",
        )
        await guarded_call(
            executor.close,
            logger=logger,
            event="executor_close_failed",
            message="Failed to close executor",
        )
        await guarded_call(
            storage.close,
            logger=logger,
            event="storage_close_failed",
            message="Failed to close storage",
        )

        log_event(logger, level="info", event="shutdown_completed", message="Shutdown completed")


if __name__ == "__main__":
    asyncio.run(main())
