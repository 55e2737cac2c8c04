"""Trading engine: admission, buy, monitor and sell workflows per token."""

import asyncio

import structlog

from ..cache.lists import AddressListCache
from ..cache.pools import MarketCache
from ..cache.positions import PositionCache
from ..config.settings import AppSettings
from ..core.errors import InvalidTransition
from ..core.interfaces import (
    AlertSink,
    Clock,
    Persistence,
    PriceSource,
    TransactionBuilder,
    TransactionExecutor,
    WalletProbe,
)
from ..core.timing import SystemClock, interval_ticks
from ..core.types import (
    ExecutionBudget,
    ExecutionResult,
    PoolRecord,
    Position,
    PositionState,
    Side,
    TokenAccountUpdate,
    TradeOrder,
)
from ..filters.pipeline import FilterPipeline
from ..risk.exit_policy import ExitPolicy
from ..signals.buy_signal import BuySignalGate
from ..signals.engine import SignalEngine

logger = structlog.get_logger(__name__)


def _short(mint: str) -> str:
    return f"{mint[:8]}..." if len(mint) > 12 else mint


class TradingEngine:
    """Per-token lifecycle orchestration.

    Positions move NONE -> ENTERING -> OPEN -> EXITING -> CLOSED, or to
    FAILED from any non-terminal state. Terminal positions are removed from
    the cache immediately, which frees their slot under
    ``max_tokens_at_the_time``. Each OPEN position owns one monitor task that
    is cancelled as soon as the position leaves OPEN.
    """

    def __init__(
        self,
        settings: AppSettings,
        positions: PositionCache,
        markets: MarketCache,
        pipeline: FilterPipeline,
        builder: TransactionBuilder,
        executor: TransactionExecutor,
        price_source: PriceSource,
        wallet: WalletProbe,
        clock: Clock | None = None,
        snipe_list: AddressListCache | None = None,
        alerts: AlertSink | None = None,
        journal: Persistence | None = None,
        signals: SignalEngine | None = None,
        exit_policy: ExitPolicy | None = None,
        buy_signal: BuySignalGate | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            settings: Application settings (all behavioural knobs)
            positions: Position cache shared with nothing else
            markets: Market records used to assemble swaps
            pipeline: Admission filter pipeline
            builder: Signs swap transactions
            executor: Lands signed transactions
            price_source: Pool price reads for entry, monitoring and exits
            wallet: Balance and health reads
            clock: Time source (system clock by default)
            snipe_list: Allow-list consulted when ``use_snipe_list`` is on
            alerts: Operator notifications
            journal: Trade journal
            signals: Technical signal engine; built from settings when ``use_ta``
            exit_policy: Sell decision policy; built from settings by default
            buy_signal: Pre-buy confirmation; built from settings when enabled
        """
        self.settings = settings
        self.positions = positions
        self.markets = markets
        self.pipeline = pipeline
        self.builder = builder
        self.executor = executor
        self.price_source = price_source
        self.wallet = wallet
        self.clock = clock or SystemClock()
        self.snipe_list = snipe_list
        self.alerts = alerts
        self.journal = journal

        if signals is None and settings.use_ta:
            signals = SignalEngine(
                settings.macd_short_period,
                settings.macd_long_period,
                settings.macd_signal_period,
                settings.rsi_period,
            )
        self.signals = signals

        self.exit_policy = exit_policy or ExitPolicy(
            take_profit=settings.take_profit,
            stop_loss=settings.stop_loss,
            trailing_stop_loss=settings.trailing_stop_loss,
            skip_selling_if_lost_more_than=settings.skip_selling_if_lost_more_than,
            auto_sell_without_sell_signal=settings.auto_sell_without_sell_signal,
            use_ta=settings.use_ta,
        )

        if buy_signal is None and settings.buy_signal_time_to_wait > 0:
            buy_signal = BuySignalGate(
                price_source,
                self.clock,
                time_to_wait=settings.buy_signal_time_to_wait,
                price_interval=settings.buy_signal_price_interval,
                min_rise_fraction=settings.buy_signal_min_rise_fraction,
                low_volume_threshold=settings.buy_signal_low_volume_threshold,
            )
        self.buy_signal = buy_signal

        self.budget = ExecutionBudget(
            timeout=settings.confirmation_timeout,
            poll_interval=settings.confirmation_poll_interval,
        )
        self.monitors: dict[str, asyncio.Task] = {}
        self._selling: set[str] = set()

    # Admission

    async def on_pool_observed(self, pool: PoolRecord, lag: float) -> bool:
        """Admission entry point for a newly observed pool.

        Returns:
            True if the pool was admitted and a buy workflow ran
        """
        token = pool.base_mint

        if await self.positions.get(token) is not None:
            logger.debug("Position already tracked, skipping", token_mint=token)
            return False

        active = self.positions.count_active()
        if active >= self.settings.max_tokens_at_the_time:
            logger.debug(
                "Position cap reached, skipping",
                token_mint=token,
                active=active,
                cap=self.settings.max_tokens_at_the_time,
            )
            return False

        if self.settings.max_lag and lag > self.settings.max_lag:
            logger.info(
                "Lag too high, skipping", token_mint=token, lag=lag, max_lag=self.settings.max_lag
            )
            return False

        if not await self.positions.save(token, pool):
            logger.debug("Lost admission race", token_mint=token)
            return False

        logger.info("Pool admitted", token_mint=token, pool_id=pool.pool_id, lag=lag)
        await self._buy_reserved(token, pool)
        return True

    # Buy

    async def buy(self, token: str, pool: PoolRecord) -> bool:
        """Reserve a slot for the token, then gate, enter and open a position.

        Returns:
            True if the position reached OPEN; False when the token is
            already tracked by another workflow
        """
        if not await self.positions.save(token, pool):
            logger.debug("Buy skipped, position already tracked", token_mint=token)
            return False
        return await self._buy_reserved(token, pool)

    async def _buy_reserved(self, token: str, pool: PoolRecord) -> bool:
        # The caller owns the NONE reservation for this token.
        try:
            if not await self._admit(token, pool):
                await self._release(token)
                return False

            if self.settings.auto_buy_delay > 0:
                logger.debug(
                    "Waiting before buy", token_mint=token, delay=self.settings.auto_buy_delay
                )
                await self.clock.sleep(self.settings.auto_buy_delay)

            result, entry_price = await self._enter(token, pool)
        except Exception as e:
            await self._abort(token, "buy", e)
            return False
        if result is None:
            return False

        logger.info(
            "Position opened",
            token_mint=token,
            entry_price=entry_price,
            signature=result.signature,
        )
        await self._notify(
            f"🟢 <b>Bought</b>\n\n"
            f"Token: <code>{_short(token)}</code>\n"
            f"Spent: {self.settings.quote_amount:g}\n"
            f"Entry price: {entry_price if entry_price is not None else 'unknown'}\n"
            f"Signature: <code>{result.signature}</code>"
        )

        if self.settings.auto_sell:
            self.monitors[token] = asyncio.create_task(self.monitor(token))
        return True

    async def _enter(
        self, token: str, pool: PoolRecord
    ) -> tuple[ExecutionResult | None, float | None]:
        await self._transition(token, PositionState.ENTERING, "buy submitted")
        await self._notify(f"🟡 <b>Buying</b>\n\nToken: <code>{_short(token)}</code>")

        amount_in = self.settings.quote_amount
        quote_price = await self._quote_price(pool)
        min_amount_out = 0.0
        if quote_price:
            min_amount_out = amount_in / quote_price * (1 - self.settings.buy_slippage / 100)
        else:
            logger.warning("No price for slippage bound, accepting any output", token_mint=token)

        result = await self._execute(
            token,
            pool,
            Side.BUY,
            amount_in,
            min_amount_out,
            self.settings.buy_slippage,
            self.settings.max_buy_retries,
            stop_on_rejected=True,
        )

        if not result.confirmed:
            reason = result.error or "buy not confirmed"
            position = await self._transition(
                token, PositionState.FAILED, "buy failed", failure_reason=reason
            )
            logger.error("Buy failed", token_mint=token, error=reason)
            await self._release(token, position)
            await self._notify(
                f"❌ <b>Buy failed</b>\n\nToken: <code>{_short(token)}</code>\nReason: {reason}"
            )
            return None, None

        # An unknown entry price is taken from the first monitor sample.
        entry_price = await self._quote_price(pool)
        await self._transition(
            token,
            PositionState.OPEN,
            "buy confirmed",
            entry_price=entry_price or quote_price,
            entry_timestamp=self.clock.now(),
            quote_amount_spent=amount_in,
        )
        return result, entry_price or quote_price

    async def _admit(self, token: str, pool: PoolRecord) -> bool:
        if self.settings.use_snipe_list:
            if self.snipe_list is None or not self.snipe_list.contains(token):
                logger.debug("Token not in snipe list", token_mint=token)
                return False
            logger.info("Snipe list hit, filters bypassed", token_mint=token)
        else:
            matched = await self.pipeline.wait_for_match(
                token,
                pool,
                self.clock,
                interval=self.settings.filter_check_interval,
                duration=self.settings.filter_check_duration,
                consecutive=self.settings.consecutive_filter_matches,
            )
            if not matched:
                return False

        if self.buy_signal is not None and not await self.buy_signal.confirm(pool):
            return False
        return True

    # Monitor

    async def monitor(self, token: str) -> None:
        """Poll the price of an OPEN position until a sell fires or it leaves OPEN."""
        interval = self.settings.price_check_interval
        duration = self.settings.price_check_duration

        while True:
            async for _tick in interval_ticks(self.clock, interval, duration):
                position = await self.positions.get(token)
                if position is None or position.state is not PositionState.OPEN:
                    return

                sample = await self.price_source.get_price(position.pool)
                if sample is None:
                    logger.debug("No price sample", token_mint=token)
                    continue

                series = await self.positions.append_price(token, sample)
                position = await self.positions.get(token)
                if position is None or position.state is not PositionState.OPEN:
                    return
                if position.entry_price is None:
                    if sample.price <= 0:
                        continue
                    position = await self.positions.update(token, entry_price=sample.price)

                report = self.signals.evaluate(series) if self.signals else None
                decision = self.exit_policy.decide(
                    sample.price,
                    position.entry_price,
                    position.highest_price,
                    report,
                    position.selling_suppressed,
                )
                logger.debug(
                    "Price checked",
                    token_mint=token,
                    price=sample.price,
                    entry_price=position.entry_price,
                    stop=self.exit_policy.stop_price(position.entry_price, position.highest_price),
                    take_profit=self.exit_policy.take_profit_price(position.entry_price),
                )

                if decision.suppress:
                    if not position.selling_suppressed:
                        await self.positions.update(token, selling_suppressed=True)
                        await self._notify(
                            f"⏸ <b>Selling suppressed</b>\n\n"
                            f"Token: <code>{_short(token)}</code>\n{decision.detail}"
                        )
                    self.monitors.pop(token, None)
                    return

                if decision.sell:
                    logger.info(
                        "Sell triggered",
                        token_mint=token,
                        reason=decision.reason.value,
                        detail=decision.detail,
                    )
                    await self.sell(token, reason=decision.reason.value)
                    return

            if self.settings.force_sell_on_timeout:
                logger.info("Monitor budget exhausted, selling", token_mint=token)
                await self.sell(token, reason="timeout")
                return

            logger.debug("Monitor budget exhausted, restarting", token_mint=token)
            await self.clock.sleep(interval)

    def _stop_monitor(self, token: str) -> None:
        task = self.monitors.pop(token, None)
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    # Sell

    async def sell(
        self,
        token: str,
        account: TokenAccountUpdate | None = None,
        reason: str = "manual",
    ) -> bool:
        """Exit a position for its full tracked balance.

        Returns:
            True if the position reached CLOSED
        """
        if account is not None and account.mint == self.settings.quote_mint:
            return False
        if token in self._selling:
            logger.debug("Sell already in progress", token_mint=token)
            return False

        position = await self.positions.get(token)
        if position is None or position.state not in (PositionState.OPEN, PositionState.EXITING):
            logger.debug("No open position to sell", token_mint=token)
            return False

        self._selling.add(token)
        try:
            return await self._exit(token, position, account, reason)
        except Exception as e:
            await self._abort(token, "sell", e)
            return False
        finally:
            self._selling.discard(token)

    async def _exit(
        self,
        token: str,
        position: Position,
        account: TokenAccountUpdate | None,
        reason: str,
    ) -> bool:
        self._stop_monitor(token)
        if position.state is PositionState.OPEN:
            position = await self._transition(
                token, PositionState.EXITING, reason, exit_reason=reason
            )
            await self._notify(
                f"🟠 <b>Selling</b>\n\nToken: <code>{_short(token)}</code>\nReason: {reason}"
            )

        amount = await self._sell_amount(position, account)
        if amount <= 0:
            position = await self._transition(
                token, PositionState.CLOSED, "nothing to sell", exit_reason="empty balance"
            )
            await self._release(token, position)
            return True

        if self.settings.auto_sell_delay > 0:
            await self.clock.sleep(self.settings.auto_sell_delay)

        sample = await self.price_source.get_price(position.pool)
        exit_price = sample.price if sample else None
        min_amount_out = 0.0
        if exit_price:
            min_amount_out = amount * exit_price * (1 - self.settings.sell_slippage / 100)

        result = await self._execute(
            token,
            position.pool,
            Side.SELL,
            amount,
            min_amount_out,
            self.settings.sell_slippage,
            self.settings.max_sell_retries,
            stop_on_rejected=False,
        )

        if not result.confirmed:
            error = result.error or "sell not confirmed"
            position = await self._transition(
                token,
                PositionState.FAILED,
                "sell retries exhausted",
                failure_reason=error,
            )
            logger.error(
                "Sell failed, position abandoned",
                token_mint=token,
                attempts=self.settings.max_sell_retries,
                error=error,
            )
            await self._release(token, position)
            await self._notify(
                f"🚨 <b>Sell failed</b>\n\n"
                f"Token: <code>{_short(token)}</code>\n"
                f"Attempts: {self.settings.max_sell_retries}\n"
                f"Reason: {error}"
            )
            return False

        position = await self._transition(
            token, PositionState.CLOSED, "sell confirmed", exit_price=exit_price
        )
        delta = _pct_change(position.entry_price, exit_price)
        logger.info(
            "Position closed",
            token_mint=token,
            reason=reason,
            entry_price=position.entry_price,
            exit_price=exit_price,
            delta_pct=delta,
            signature=result.signature,
        )
        await self._release(token, position)
        delta_text = f"{delta:+.2f}%" if delta is not None else "unknown"
        await self._notify(
            f"🔴 <b>Sold</b>\n\n"
            f"Token: <code>{_short(token)}</code>\n"
            f"Reason: {reason}\n"
            f"Price delta: {delta_text}\n"
            f"Signature: <code>{result.signature}</code>"
        )
        return True

    async def _sell_amount(
        self, position: Position, account: TokenAccountUpdate | None
    ) -> float:
        if account is not None:
            return account.amount
        if position.token_balance is not None:
            return position.token_balance
        return await self.wallet.get_token_balance(position.token)

    # Wallet feed

    async def on_wallet_update(self, update: TokenAccountUpdate) -> None:
        """Track the balance of a held token.

        An OPEN position whose balance drops to zero outside of an engine
        sell is closed as emptied externally.
        """
        if update.mint == self.settings.quote_mint:
            return

        position = await self.positions.update(update.mint, token_balance=update.amount)
        if position is None:
            return
        logger.debug("Token balance updated", token_mint=update.mint, amount=update.amount)

        if (
            update.amount <= 0
            and position.state is PositionState.OPEN
            and update.mint not in self._selling
        ):
            self._stop_monitor(update.mint)
            try:
                position = await self._transition(
                    update.mint,
                    PositionState.CLOSED,
                    "balance emptied externally",
                    exit_reason="emptied externally",
                )
            except InvalidTransition:
                return
            await self._notify(
                f"⚪ <b>Position closed externally</b>\n\nToken: <code>{_short(update.mint)}</code>"
            )
            await self._release(update.mint, position)

    # Startup

    async def validate(self) -> bool:
        """Pre-flight: network reachable and enough quote balance for one buy."""
        try:
            if not await self.wallet.is_healthy():
                logger.critical("RPC endpoint is not healthy")
                return False
            balance = await self.wallet.get_quote_balance()
        except Exception as e:
            logger.critical("Startup validation failed", error=str(e))
            return False

        if balance < self.settings.quote_amount:
            logger.critical(
                "Insufficient quote balance",
                balance=balance,
                required=self.settings.quote_amount,
            )
            return False

        logger.info("Startup validation passed", quote_balance=balance)
        return True

    async def close(self) -> None:
        """Cancel every running monitor."""
        tasks = list(self.monitors.values())
        self.monitors.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # Helpers

    async def _execute(
        self,
        token: str,
        pool: PoolRecord,
        side: Side,
        amount_in: float,
        min_amount_out: float,
        slippage_pct: float,
        max_attempts: int,
        stop_on_rejected: bool,
    ) -> ExecutionResult:
        """Build and land a swap, retrying failed attempts immediately."""
        market = await self.markets.get(pool.market_id) if pool.market_id else None
        result = ExecutionResult.failed("no attempts made", retryable=False)

        for attempt in range(1, max(1, max_attempts) + 1):
            order = TradeOrder(
                token=token,
                pool=pool,
                market=market,
                side=side,
                amount_in=amount_in,
                min_amount_out=min_amount_out,
                slippage_pct=slippage_pct,
                **self.executor.order_fees(),
            )
            try:
                payload = await self.builder.build(order)
            except Exception as e:
                logger.warning(
                    "Transaction build failed", token_mint=token, side=side.value, error=str(e)
                )
                result = ExecutionResult.failed(f"build failed: {e}", retryable=True)
            else:
                result = await self.executor.execute(payload, self.budget)

            if self.journal is not None:
                await self.journal.record_execution(token, side, attempt, result)

            if result.confirmed:
                logger.info(
                    "Transaction confirmed",
                    token_mint=token,
                    side=side.value,
                    attempt=attempt,
                    signature=result.signature,
                )
                return result

            logger.warning(
                "Transaction attempt failed",
                token_mint=token,
                side=side.value,
                attempt=attempt,
                max_attempts=max_attempts,
                error=result.error,
                retryable=result.retryable,
            )
            if stop_on_rejected and not result.retryable:
                break

        return result

    async def _quote_price(self, pool: PoolRecord) -> float | None:
        sample = await self.price_source.get_price(pool)
        if sample is not None and sample.price > 0:
            return sample.price
        if pool.base_reserve and pool.quote_reserve:
            return pool.quote_reserve / pool.base_reserve
        return None

    async def _transition(
        self, token: str, state: PositionState, reason: str, **fields
    ) -> Position:
        position = await self.positions.update_state(token, state, **fields)
        if self.journal is not None:
            await self.journal.record_transition(position, reason)
        return position

    async def _release(self, token: str, position: Position | None = None) -> None:
        self._stop_monitor(token)
        removed = await self.positions.remove(token)
        final = position or removed
        logger.debug(
            "Position slot released",
            token_mint=token,
            state=final.state.value if final else None,
            active=self.positions.count_active(),
        )

    async def _abort(self, token: str, stage: str, error: Exception) -> None:
        """Fail and release a position whose workflow raised unexpectedly."""
        reason = f"{stage} error: {error}"
        logger.error(
            "Workflow raised, failing position",
            token_mint=token,
            stage=stage,
            error=str(error),
            exc_info=error,
        )
        position = await self.positions.get(token)
        if position is not None and not position.state.terminal:
            try:
                position = await self._transition(
                    token, PositionState.FAILED, f"{stage} aborted", failure_reason=reason
                )
            except Exception as e:
                logger.error("Could not record failure", token_mint=token, error=str(e))
        await self._release(token, position)
        await self._notify(
            f"❌ <b>{stage.capitalize()} aborted</b>\n\n"
            f"Token: <code>{_short(token)}</code>\nReason: {reason}"
        )

    async def _notify(self, message: str) -> None:
        if self.alerts is not None:
            await self.alerts.push(message)


def _pct_change(entry: float | None, exit_: float | None) -> float | None:
    if not entry or exit_ is None:
        return None
    return (exit_ - entry) / entry * 100
