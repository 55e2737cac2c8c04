"""Pre-buy confirmation: wait for a price rise with enough volume."""

import structlog

from ..core.interfaces import Clock, PriceSource
from ..core.timing import interval_ticks
from ..core.types import PoolRecord, PriceSample

logger = structlog.get_logger(__name__)


class BuySignalGate:
    """Confirms an entry once price rises fast enough.

    Samples the pool price every ``price_interval`` seconds for at most
    ``time_to_wait`` seconds. Confirms when one interval shows a rise of at
    least ``min_rise_fraction``. Volume is approximated from quote-reserve
    movement; if a ``low_volume_threshold`` is set and the observed volume is
    below it at confirmation time, the entry is rejected.
    """

    def __init__(
        self,
        price_source: PriceSource,
        clock: Clock,
        time_to_wait: float,
        price_interval: float,
        min_rise_fraction: float,
        low_volume_threshold: float = 0.0,
    ) -> None:
        self.price_source = price_source
        self.clock = clock
        self.time_to_wait = time_to_wait
        self.price_interval = price_interval
        self.min_rise_fraction = min_rise_fraction
        self.low_volume_threshold = low_volume_threshold

    async def confirm(self, pool: PoolRecord) -> bool:
        previous: PriceSample | None = None
        volume = 0.0

        async for _tick in interval_ticks(self.clock, self.price_interval, self.time_to_wait):
            sample = await self.price_source.get_price(pool)
            if sample is None:
                continue

            if (
                previous is not None
                and previous.quote_reserve is not None
                and sample.quote_reserve is not None
            ):
                volume += abs(sample.quote_reserve - previous.quote_reserve)

            if previous is not None and previous.price > 0:
                rise = (sample.price - previous.price) / previous.price
                if rise >= self.min_rise_fraction:
                    if self.low_volume_threshold and volume < self.low_volume_threshold:
                        logger.info(
                            "Buy signal rejected: low volume",
                            mint=pool.base_mint,
                            volume=volume,
                            threshold=self.low_volume_threshold,
                        )
                        return False
                    logger.info(
                        "Buy signal confirmed", mint=pool.base_mint, rise=rise, volume=volume
                    )
                    return True

            previous = sample

        logger.info("No buy signal in time", mint=pool.base_mint, waited=self.time_to_wait)
        return False
