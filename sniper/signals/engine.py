"""Technical-analysis signal engine."""

from enum import Enum

import structlog
from pydantic import BaseModel, Field

from ..core.types import PriceSample
from .indicators import crossed_above, crossed_below, macd_series, rsi_series

logger = structlog.get_logger(__name__)

RSI_OVERSOLD = 30.0


class Recommendation(str, Enum):
    HOLD = "hold"
    SELL = "sell"


class SignalReport(BaseModel):
    """Result of one evaluation over a price series."""

    ready: bool = Field(description="Whether enough history existed to vote")
    recommendation: Recommendation = Recommendation.HOLD
    sell_votes: list[str] = Field(default_factory=list)
    buy_votes: list[str] = Field(default_factory=list)
    macd: float | None = None
    macd_signal: float | None = None
    rsi: float | None = None


class SignalEngine:
    """Turns a price series into a hold/sell recommendation.

    MACD bearish crossovers and RSI dropping through 30 each cast a sell
    vote. Bullish MACD crossovers are reported as buy votes but never change
    the recommendation. Nothing is emitted until the series holds
    ``max(long, rsi) + signal`` samples.
    """

    def __init__(
        self,
        macd_short_period: int = 12,
        macd_long_period: int = 26,
        macd_signal_period: int = 9,
        rsi_period: int = 14,
    ) -> None:
        self.macd_short_period = macd_short_period
        self.macd_long_period = macd_long_period
        self.macd_signal_period = macd_signal_period
        self.rsi_period = rsi_period

    @property
    def min_samples(self) -> int:
        return max(self.macd_long_period, self.rsi_period) + self.macd_signal_period

    def evaluate(self, series: list[PriceSample] | list[float]) -> SignalReport:
        prices = [s.price if isinstance(s, PriceSample) else float(s) for s in series]
        if len(prices) < self.min_samples:
            return SignalReport(ready=False)

        report = SignalReport(ready=True)

        macd, signal = macd_series(
            prices,
            self.macd_short_period,
            self.macd_long_period,
            self.macd_signal_period,
        )
        if len(macd) >= 2:
            report.macd, report.macd_signal = macd[-1], signal[-1]
            if crossed_below(macd[-2], signal[-2], macd[-1], signal[-1]):
                report.sell_votes.append("macd_bearish_crossover")
            elif crossed_above(macd[-2], signal[-2], macd[-1], signal[-1]):
                report.buy_votes.append("macd_bullish_crossover")

        rsi = rsi_series(prices, self.rsi_period)
        if rsi:
            report.rsi = rsi[-1]
        if len(rsi) >= 2 and crossed_below(rsi[-2], RSI_OVERSOLD, rsi[-1], RSI_OVERSOLD):
            report.sell_votes.append("rsi_below_30")

        if report.sell_votes:
            report.recommendation = Recommendation.SELL

        logger.debug(
            "Signals evaluated",
            samples=len(prices),
            recommendation=report.recommendation.value,
            sell_votes=report.sell_votes,
            buy_votes=report.buy_votes,
            macd=report.macd,
            rsi=report.rsi,
        )
        return report
