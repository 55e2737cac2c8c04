"""Sniper runner: event channels, per-token workflows and the CLI."""

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from ..alerts.telegram import NoopAlertSink, TelegramAlertSink
from ..cache.lists import AddressListCache
from ..cache.pools import MarketCache, PoolCache
from ..cache.positions import PositionCache
from ..config.settings import WSOL_MINT, AppSettings, load_settings
from ..core.errors import StartupValidationError
from ..core.interfaces import AlertSink, Clock, PriceSource
from ..core.timing import SystemClock
from ..core.types import MarketRecord, PoolRecord, PriceSample, TokenAccountUpdate
from ..data.chain import PoolReservePriceSource, RpcTokenDataSource, RpcWallet
from ..data.dexscreener import DexScreenerLookup
from ..engine.engine import TradingEngine
from ..exec.builders import CommandTransactionBuilder
from ..exec.executors import create_executor
from ..exec.paper import PaperExecutor, PaperTransactionBuilder, PaperWallet
from ..exec.senders import RpcSender
from ..filters.pipeline import FilterPipeline
from ..persist.storage import SQLiteStorage

logger = structlog.get_logger(__name__)


def configure_logging(level: str = "INFO") -> None:
    """Console logging with ISO timestamps, filtered at ``level``."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        cache_logger_on_first_use=False,
    )


def log_banner(settings: AppSettings) -> None:
    """Log the effective configuration, grouped by concern."""
    logger.info(
        "Bot",
        env=settings.env,
        dry_run=settings.dry_run,
        executor=settings.transaction_executor,
        fee=(
            settings.custom_fee
            if settings.transaction_executor != "default"
            else f"{settings.compute_unit_limit}cu @ {settings.compute_unit_price}"
        ),
        max_tokens_at_the_time=settings.max_tokens_at_the_time,
        max_lag=settings.max_lag,
        snipe_list=settings.use_snipe_list,
    )
    logger.info(
        "Buy",
        quote_mint=settings.quote_mint,
        quote_amount=settings.quote_amount,
        auto_buy_delay=settings.auto_buy_delay,
        max_buy_retries=settings.max_buy_retries,
        buy_slippage=settings.buy_slippage,
    )
    logger.info(
        "Sell",
        auto_sell=settings.auto_sell,
        auto_sell_delay=settings.auto_sell_delay,
        max_sell_retries=settings.max_sell_retries,
        sell_slippage=settings.sell_slippage,
        take_profit=settings.take_profit,
        stop_loss=settings.stop_loss,
        trailing_stop_loss=settings.trailing_stop_loss,
        skip_selling_if_lost_more_than=settings.skip_selling_if_lost_more_than,
        price_check_interval=settings.price_check_interval,
        price_check_duration=settings.price_check_duration,
        force_sell_on_timeout=settings.force_sell_on_timeout,
    )
    if settings.use_snipe_list:
        logger.info(
            "Snipe list",
            path=settings.snipe_list_path,
            refresh_interval=settings.snipe_list_refresh_interval,
        )
    else:
        logger.info(
            "Filters",
            interval=settings.filter_check_interval,
            duration=settings.filter_check_duration,
            consecutive=settings.consecutive_filter_matches,
            renounced=settings.check_if_mint_is_renounced,
            freezable=settings.check_if_freezable,
            burned=settings.check_if_burned,
            mutable=settings.check_if_mutable,
            socials=settings.check_if_socials,
            min_pool_size=settings.min_pool_size,
            max_pool_size=settings.max_pool_size,
            holders=settings.check_holders,
            distribution=settings.check_token_distribution,
            abnormal_distribution=settings.check_abnormal_distribution,
            blacklist=settings.blacklist_path,
        )
    logger.info(
        "Technical analysis",
        use_ta=settings.use_ta,
        macd=f"{settings.macd_short_period}/{settings.macd_long_period}/{settings.macd_signal_period}",
        rsi_period=settings.rsi_period,
        auto_sell_without_sell_signal=settings.auto_sell_without_sell_signal,
        buy_signal_time_to_wait=settings.buy_signal_time_to_wait,
    )


class PriceBook:
    """Latest price per pool pushed by the event feed, else a live source."""

    def __init__(self, clock: Clock, fallback: PriceSource | None = None) -> None:
        self.clock = clock
        self.fallback = fallback
        self._prices: dict[str, PriceSample] = {}

    def push(self, pool_id: str, price: float, quote_reserve: float | None = None) -> None:
        self._prices[pool_id] = PriceSample(
            price=price, ts=self.clock.now(), quote_reserve=quote_reserve
        )

    async def get_price(self, pool: PoolRecord) -> PriceSample | None:
        sample = self._prices.get(pool.pool_id)
        if sample is not None:
            return sample
        if self.fallback is not None:
            return await self.fallback.get_price(pool)
        return None


class SniperRunner:
    """Owns the event channels and fans events out into per-token workflows.

    Pool, market and wallet events each have one consumer. Pool and wallet
    events start a task per token; tasks for the same token run one at a
    time under a per-token lock, and their exceptions never escape the task.
    """

    def __init__(
        self,
        settings: AppSettings,
        clock: Clock | None = None,
        start_ts: float | None = None,
        engine: TradingEngine | None = None,
        price_book: PriceBook | None = None,
    ) -> None:
        """Initialize the runner and assemble its components.

        Args:
            settings: Application settings
            clock: Time source
            start_ts: Pools opened at or before this time are ignored
                (defaults to now)
            engine: Prebuilt engine; assembled from settings when omitted
            price_book: Price book the event feed writes into
        """
        self.settings = settings
        self.clock = clock or SystemClock()
        self.start_ts = self.clock.now() if start_ts is None else start_ts

        self.pools: asyncio.Queue[tuple[str, PoolRecord]] = asyncio.Queue()
        self.markets: asyncio.Queue[tuple[str, MarketRecord]] = asyncio.Queue()
        self.wallet: asyncio.Queue[TokenAccountUpdate] = asyncio.Queue()

        self.pool_cache = PoolCache()
        self.market_cache = MarketCache()
        self.sender: RpcSender | None = None
        self.alerts: AlertSink = NoopAlertSink()
        self.journal: SQLiteStorage | None = None
        self.lists: list[AddressListCache] = []
        self.closeables: list[Any] = []
        self.price_book = price_book or PriceBook(self.clock)

        self.engine = engine or self._assemble(settings)

        self._locks: dict[str, asyncio.Lock] = {}
        self._tasks: set[asyncio.Task] = set()
        self._background: list[asyncio.Task] = []
        self._stopped = asyncio.Event()

    def _assemble(self, settings: AppSettings) -> TradingEngine:
        """Build every collaborator from settings."""
        self.sender = RpcSender(settings.rpc_url, commitment=settings.commitment)
        self.closeables.append(self.sender)

        dexscreener = None
        if settings.check_if_socials:
            dexscreener = DexScreenerLookup(settings.dexscreener_base)
            self.closeables.append(dexscreener)

        data_source = RpcTokenDataSource(
            self.sender,
            dexscreener=dexscreener,
            top_holders_count=settings.top_holders_count,
            fetch_holders=(
                settings.check_holders
                or settings.check_token_distribution
                or settings.check_abnormal_distribution
            ),
        )

        blacklist = None
        if settings.blacklist_path:
            blacklist = AddressListCache(
                settings.blacklist_path, settings.blacklist_refresh_interval, name="blacklist"
            )
            self.lists.append(blacklist)

        snipe_list = None
        if settings.use_snipe_list:
            snipe_list = AddressListCache(
                settings.snipe_list_path, settings.snipe_list_refresh_interval, name="snipe_list"
            )
            self.lists.append(snipe_list)

        pipeline = FilterPipeline.from_settings(settings, data_source, blacklist)
        self.price_book.fallback = PoolReservePriceSource(self.sender, self.clock)

        if settings.dry_run:
            builder = PaperTransactionBuilder()
            wallet = PaperWallet(settings.paper_quote_balance)
            executor = PaperExecutor(
                builder,
                wallet,
                self.clock,
                latency=settings.paper_latency,
                failure_rate=settings.paper_failure_rate,
            )
            logger.info("Using paper executor (dry run mode)")
        else:
            if not settings.builder_command or not settings.wallet_public_key:
                raise StartupValidationError(
                    "Live trading needs builder_command and wallet_public_key"
                )
            builder = CommandTransactionBuilder(
                settings.builder_command, settings.builder_timeout
            )
            wallet = RpcWallet(
                self.sender,
                settings.wallet_public_key,
                settings.quote_mint,
                native_quote=settings.quote_mint == WSOL_MINT,
            )
            executor = create_executor(
                settings.transaction_executor,
                self.sender,
                compute_unit_limit=settings.compute_unit_limit,
                compute_unit_price=settings.compute_unit_price,
                fee=settings.custom_fee,
                warp_url=settings.warp_url,
                jito_url=settings.jito_url,
            )
            logger.critical(
                "🚨 LIVE TRADING MODE ENABLED 🚨",
                rpc_url=settings.rpc_url,
                wallet=settings.wallet_public_key,
                executor=settings.transaction_executor,
            )

        if settings.use_telegram and settings.telegram_bot_token and settings.telegram_chat_id:
            self.alerts = TelegramAlertSink(
                settings.telegram_bot_token,
                settings.telegram_chat_id,
                thread_id=settings.telegram_thread_id,
            )
            logger.info("Using Telegram alert sink")
        else:
            logger.info("Using noop alert sink (no Telegram config)")
        self.closeables.append(self.alerts)

        if settings.journal_path:
            self.journal = SQLiteStorage(settings.journal_path)
            self.closeables.append(self.journal)

        return TradingEngine(
            settings,
            PositionCache(
                series_length=max(
                    settings.macd_long_period, settings.rsi_period
                )
                + settings.macd_signal_period
                + 1
            ),
            self.market_cache,
            pipeline,
            builder,
            executor,
            self.price_book,
            wallet,
            clock=self.clock,
            snipe_list=snipe_list,
            alerts=self.alerts,
            journal=self.journal,
        )

    # Ingestion

    def handle_pool(self, account_id: str, pool: PoolRecord) -> bool:
        """Run-start gate, pool dedup, then hand off to the engine.

        The pool is cached before the engine's lag check, so a pool rejected
        for lag is still remembered.

        Returns:
            True if an admission workflow was started
        """
        if pool.open_timestamp <= self.start_ts:
            logger.debug("Pool opened before start, ignoring", pool_id=account_id)
            return False
        if not self.pool_cache.save(account_id, pool):
            return False

        lag = self.clock.now() - pool.open_timestamp
        self._spawn(pool.base_mint, self.engine.on_pool_observed(pool, lag))
        return True

    def handle_market(self, account_id: str, market: MarketRecord) -> None:
        self.market_cache.save(account_id, market)

    def handle_wallet(self, update: TokenAccountUpdate) -> bool:
        if update.mint == self.settings.quote_mint:
            return False
        self._spawn(update.mint, self.engine.on_wallet_update(update))
        return True

    def _lock_for(self, token: str) -> asyncio.Lock:
        lock = self._locks.get(token)
        if lock is None:
            lock = self._locks[token] = asyncio.Lock()
        return lock

    def _spawn(self, token: str, coro) -> asyncio.Task:
        task = asyncio.create_task(self._run_token(token, coro))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_token(self, token: str, coro) -> None:
        async with self._lock_for(token):
            try:
                await coro
            except Exception as e:
                logger.error(
                    "Token workflow failed", token_mint=token, error=str(e), exc_info=True
                )

    async def _consume_pools(self) -> None:
        while True:
            account_id, pool = await self.pools.get()
            try:
                self.handle_pool(account_id, pool)
            finally:
                self.pools.task_done()

    async def _consume_markets(self) -> None:
        while True:
            account_id, market = await self.markets.get()
            try:
                self.handle_market(account_id, market)
            finally:
                self.markets.task_done()

    async def _consume_wallet(self) -> None:
        while True:
            update = await self.wallet.get()
            try:
                self.handle_wallet(update)
            finally:
                self.wallet.task_done()

    # Lifecycle

    async def start(self) -> None:
        """Validate, then start consumers and list refreshers.

        Raises:
            StartupValidationError: If pre-flight validation fails
        """
        log_banner(self.settings)

        if not await self.engine.validate():
            raise StartupValidationError("Startup validation failed")

        if self.journal is not None:
            await self.journal.initialize()

        for address_list in self.lists:
            address_list.load()
            self._background.append(asyncio.create_task(address_list.run()))

        self._background.extend(
            [
                asyncio.create_task(self._consume_pools()),
                asyncio.create_task(self._consume_markets()),
                asyncio.create_task(self._consume_wallet()),
            ]
        )
        await self.alerts.push(
            f"🤖 Sniper started in {'paper' if self.settings.dry_run else 'live'} mode"
        )
        logger.info("Sniper started", start_ts=self.start_ts)

    async def drain(self) -> None:
        """Wait until every queued event and token workflow has finished."""
        await self.pools.join()
        await self.markets.join()
        await self.wallet.join()
        while self._tasks or self.engine.monitors:
            await asyncio.gather(
                *list(self._tasks), *list(self.engine.monitors.values()), return_exceptions=True
            )

    async def wait_stopped(self) -> None:
        await self._stopped.wait()

    def request_stop(self) -> None:
        logger.info("Received shutdown signal")
        self._stopped.set()

    async def stop(self) -> None:
        """Cancel background work, then release resources."""
        logger.info("Stopping sniper")
        self._stopped.set()

        tasks = self._background + list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._background.clear()

        await self.engine.close()
        await self.alerts.push("🛑 Sniper stopped")
        for closeable in self.closeables:
            await closeable.close()


class FileEventFeed:
    """Replays JSON-lines events into the runner's channels.

    Each line is an object with a ``type`` of ``pool``, ``market``,
    ``wallet``, ``price`` or ``sleep``.
    """

    def __init__(self, path: str, runner: SniperRunner) -> None:
        self.path = Path(path)
        self.runner = runner

    async def run(self) -> int:
        """Feed every event; returns the number of events delivered."""
        delivered = 0
        with open(self.path, encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                try:
                    await self._deliver(json.loads(line))
                    delivered += 1
                except (ValueError, KeyError, ValidationError) as e:
                    logger.warning("Skipping bad event", line=line_no, error=str(e))

        logger.info("Event replay finished", events=delivered, path=str(self.path))
        return delivered

    async def _deliver(self, event: dict[str, Any]) -> None:
        kind = event["type"]
        if kind == "pool":
            pool = PoolRecord(**event["pool"])
            await self.runner.pools.put((event.get("account_id", pool.pool_id), pool))
        elif kind == "market":
            market = MarketRecord(**event["market"])
            await self.runner.markets.put((event.get("account_id", market.market_id), market))
        elif kind == "wallet":
            await self.runner.wallet.put(TokenAccountUpdate(**event["update"]))
        elif kind == "price":
            self.runner.price_book.push(
                event["pool_id"], float(event["price"]), event.get("quote_reserve")
            )
        elif kind == "sleep":
            await self.runner.clock.sleep(float(event["seconds"]))
        else:
            raise ValueError(f"Unknown event type: {kind}")


async def main() -> None:
    """Main entry point for the sniper."""
    parser = argparse.ArgumentParser(description="AMM new-pool sniper")
    parser.add_argument(
        "--config", default="configs/paper.yaml", help="Configuration file path"
    )
    parser.add_argument(
        "--profile",
        default="paper",
        choices=["dev", "paper", "prod"],
        help="Configuration profile",
    )
    parser.add_argument(
        "--events", default=None, help="JSON-lines file of events to replay"
    )
    args = parser.parse_args()

    try:
        settings = load_settings(args.profile, args.config)
    except (FileNotFoundError, ValueError, ValidationError) as e:
        logger.error("Failed to load configuration", error=str(e))
        sys.exit(1)

    configure_logging(settings.log_level)

    # Replayed pools are historical, so the run-start gate is disabled.
    runner = SniperRunner(settings, start_ts=0 if args.events else None)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, runner.request_stop)

    try:
        await runner.start()
    except StartupValidationError as e:
        logger.critical("Fatal error", error=str(e))
        await runner.stop()
        sys.exit(1)

    try:
        if args.events:
            await FileEventFeed(args.events, runner).run()
            drained = asyncio.create_task(runner.drain())
            stopped = asyncio.create_task(runner.wait_stopped())
            await asyncio.wait({drained, stopped}, return_when=asyncio.FIRST_COMPLETED)
            drained.cancel()
            stopped.cancel()
        else:
            await runner.wait_stopped()
    finally:
        await runner.stop()


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
