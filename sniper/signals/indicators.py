"""Pure indicator math over price lists."""


def ema_series(prices: list[float], period: int) -> list[float]:
    """Exponential moving average, seeded with the SMA of the first period.

    Returns one value per price from index ``period - 1`` onwards, so the
    result is aligned with the tail of ``prices``.
    """
    if period <= 0 or len(prices) < period:
        return []

    multiplier = 2 / (period + 1)
    ema = sum(prices[:period]) / period
    values = [ema]
    for price in prices[period:]:
        ema = (price - ema) * multiplier + ema
        values.append(ema)
    return values


def macd_series(
    prices: list[float], short_period: int, long_period: int, signal_period: int
) -> tuple[list[float], list[float]]:
    """MACD line and its signal line, both aligned with the tail of ``prices``.

    The returned lists have equal length (the signal line's length); they are
    empty until there are ``long_period + signal_period - 1`` prices.
    """
    short = ema_series(prices, short_period)
    long = ema_series(prices, long_period)
    if not long:
        return [], []

    offset = len(short) - len(long)
    macd = [s - l for s, l in zip(short[offset:], long)]
    signal = ema_series(macd, signal_period)
    if not signal:
        return [], []
    return macd[-len(signal):], signal


def rsi_series(prices: list[float], period: int) -> list[float]:
    """Wilder RSI, one value per price from index ``period`` onwards."""
    if period <= 0 or len(prices) < period + 1:
        return []

    changes = [prices[i] - prices[i - 1] for i in range(1, len(prices))]
    gains = [c if c > 0 else 0.0 for c in changes]
    losses = [-c if c < 0 else 0.0 for c in changes]

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period

    values = [_rsi(avg_gain, avg_loss)]
    for i in range(period, len(changes)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        values.append(_rsi(avg_gain, avg_loss))
    return values


def _rsi(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0 if avg_gain > 0 else 50.0
    rs = avg_gain / avg_loss
    return 100 - (100 / (1 + rs))


def crossed_below(prev_a: float, prev_b: float, a: float, b: float) -> bool:
    """True when series a moves from at/above b to strictly below it."""
    return prev_a >= prev_b and a < b


def crossed_above(prev_a: float, prev_b: float, a: float, b: float) -> bool:
    return prev_a <= prev_b and a > b
