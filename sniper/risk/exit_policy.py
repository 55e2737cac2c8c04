"""Sell decision policy for open positions."""

from enum import Enum

import structlog
from pydantic import BaseModel

from ..signals.engine import Recommendation, SignalReport

logger = structlog.get_logger(__name__)


class ExitReason(str, Enum):
    STOP_LOSS = "stop_loss"
    TRAILING_STOP = "trailing_stop"
    TAKE_PROFIT = "take_profit"
    SIGNAL = "signal"
    TIMEOUT = "timeout"
    SUPPRESSED = "suppressed"


class ExitDecision(BaseModel):
    sell: bool
    reason: ExitReason | None = None
    detail: str = ""
    suppress: bool = False

    @classmethod
    def hold(cls) -> "ExitDecision":
        return cls(sell=False)


class ExitPolicy:
    """Deterministic sell decision from the entry, running high and signals.

    Percentages are in percent units. The skip-selling threshold is checked
    first and is sticky: once a loss beyond it is seen, every other trigger is
    suppressed for the position's lifetime. After that the order is
    stop-loss, trailing stop, take-profit, then the technical sell signal.
    """

    def __init__(
        self,
        take_profit: float,
        stop_loss: float,
        trailing_stop_loss: bool = False,
        skip_selling_if_lost_more_than: float = 0.0,
        auto_sell_without_sell_signal: bool = True,
        use_ta: bool = False,
    ) -> None:
        self.take_profit = take_profit
        self.stop_loss = stop_loss
        self.trailing_stop_loss = trailing_stop_loss
        self.skip_selling_if_lost_more_than = skip_selling_if_lost_more_than
        self.auto_sell_without_sell_signal = auto_sell_without_sell_signal
        self.use_ta = use_ta

    def stop_price(self, entry_price: float, highest_price: float | None) -> float:
        """Price at or below which the stop fires."""
        reference = entry_price
        if self.trailing_stop_loss and highest_price is not None:
            reference = max(entry_price, highest_price)
        return reference * (1 - self.stop_loss / 100)

    def take_profit_price(self, entry_price: float) -> float:
        return entry_price * (1 + self.take_profit / 100)

    def decide(
        self,
        price: float,
        entry_price: float,
        highest_price: float | None = None,
        signal: SignalReport | None = None,
        suppressed: bool = False,
    ) -> ExitDecision:
        if suppressed:
            return ExitDecision(sell=False, reason=ExitReason.SUPPRESSED, suppress=True)

        loss_pct = (entry_price - price) / entry_price * 100 if entry_price > 0 else 0.0

        if (
            self.skip_selling_if_lost_more_than
            and loss_pct > self.skip_selling_if_lost_more_than
        ):
            logger.warning(
                "Loss beyond skip threshold, automated selling suppressed",
                loss_pct=round(loss_pct, 2),
                threshold=self.skip_selling_if_lost_more_than,
            )
            return ExitDecision(
                sell=False,
                reason=ExitReason.SUPPRESSED,
                detail=f"lost {loss_pct:.2f}%",
                suppress=True,
            )

        if self.stop_loss:
            # Below the entry stop both rules agree; report the plain stop.
            plain_stop = entry_price * (1 - self.stop_loss / 100)
            if price <= plain_stop:
                return ExitDecision(
                    sell=True,
                    reason=ExitReason.STOP_LOSS,
                    detail=f"price {price:g} <= stop {plain_stop:g}",
                )
            trailing_stop = self.stop_price(entry_price, highest_price)
            if self.trailing_stop_loss and price <= trailing_stop:
                return ExitDecision(
                    sell=True,
                    reason=ExitReason.TRAILING_STOP,
                    detail=f"price {price:g} <= trailing stop {trailing_stop:g}",
                )

        signal_sell = (
            self.use_ta
            and signal is not None
            and signal.recommendation is Recommendation.SELL
        )

        target = self.take_profit_price(entry_price)
        if self.take_profit and price >= target:
            if self.auto_sell_without_sell_signal or not self.use_ta or signal_sell:
                return ExitDecision(
                    sell=True,
                    reason=ExitReason.TAKE_PROFIT,
                    detail=f"price {price:g} >= target {target:g}",
                )

        if signal_sell:
            return ExitDecision(
                sell=True,
                reason=ExitReason.SIGNAL,
                detail=", ".join(signal.sell_votes),
            )

        return ExitDecision.hold()
