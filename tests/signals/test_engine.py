"""Tests for the technical signal engine."""

from sniper.core.types import PriceSample
from sniper.signals.engine import Recommendation, SignalEngine

RISE = 20
FALL = 15


def reversing_series() -> list[float]:
    """Geometric rise followed by a geometric fall of known values."""
    rise = [1.1**i for i in range(RISE)]
    fall = [rise[-1] / 1.1 ** (i + 1) for i in range(FALL)]
    return rise + fall


class TestSignalEngine:
    def test_min_samples(self):
        assert SignalEngine(12, 26, 9, 14).min_samples == 35
        assert SignalEngine(3, 6, 3, 10).min_samples == 13

    def test_no_signal_for_short_series(self):
        engine = SignalEngine(3, 6, 3, 4)
        report = engine.evaluate([1.0] * (engine.min_samples - 1))

        assert not report.ready
        assert report.recommendation is Recommendation.HOLD
        assert report.sell_votes == []

    def test_macd_bearish_crossover_only_after_reversal(self):
        engine = SignalEngine(3, 6, 3, 4)
        prices = reversing_series()

        crossover_at = [
            n
            for n in range(engine.min_samples, len(prices) + 1)
            if "macd_bearish_crossover" in engine.evaluate(prices[:n]).sell_votes
        ]

        assert crossover_at, "expected a bearish MACD crossover in the falling phase"
        assert all(n > RISE for n in crossover_at)

    def test_sell_recommendation_on_vote(self):
        engine = SignalEngine(3, 6, 3, 4)
        prices = reversing_series()
        reports = [engine.evaluate(prices[:n]) for n in range(engine.min_samples, len(prices) + 1)]

        for report in reports:
            expected = Recommendation.SELL if report.sell_votes else Recommendation.HOLD
            assert report.recommendation is expected
        assert any(r.recommendation is Recommendation.SELL for r in reports)

    def test_rising_series_holds(self):
        engine = SignalEngine(3, 6, 3, 4)
        prices = [1.1**i for i in range(RISE)]

        report = engine.evaluate(prices)

        assert report.ready
        assert report.recommendation is Recommendation.HOLD
        assert report.rsi == 100.0

    def test_accepts_price_samples(self):
        engine = SignalEngine(3, 6, 3, 4)
        samples = [PriceSample(price=p, ts=i) for i, p in enumerate(reversing_series())]

        assert engine.evaluate(samples) == engine.evaluate([s.price for s in samples])
