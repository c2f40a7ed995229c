from __future__ import annotations

import logging
import math
import random
import time
from collections.abc import Callable
from decimal import Decimal

from rewardbot.adapters.venue import TradingVenueAdapter
from rewardbot.domain.models import OrderIntent, OrderResult

logger = logging.getLogger(__name__)

_SEED_PRICE = 60_000.0
_PRICE_FLOOR = 1_000.0
_WAVE_AMPLITUDE = 40.0
_NOISE_AMPLITUDE = 35.0
_SECONDS_PER_BUCKET = 3_600


class SimulationVenue(TradingVenueAdapter):
    """Paper venue: synthetic hourly closes and instant fills, no network.

    The series depends only on the hour bucket of ``now_fn()`` and the
    requested length, so repeated calls within the same hour agree.
    """

    name = "paper"

    def __init__(self, now_fn: Callable[[], float] = time.time) -> None:
        self._now_fn = now_fn
        self._fills = 0

    def synthesize_closes(self, limit: int) -> list[Decimal]:
        if limit <= 0:
            return []
        bucket = int(self._now_fn() // _SECONDS_PER_BUCKET)
        rng = random.Random(bucket)
        price = _SEED_PRICE
        closes: list[Decimal] = []
        for offset in range(limit, 0, -1):
            price += math.sin((bucket + offset) * 0.7) * _WAVE_AMPLITUDE
            price += (rng.random() - 0.5) * _NOISE_AMPLITUDE
            price = max(_PRICE_FLOOR, price)
            closes.append(Decimal(str(round(price, 2))))
        return closes

    async def fetch_recent_closes(self, symbol: str, limit: int) -> list[Decimal]:
        del symbol
        return self.synthesize_closes(limit)

    async def place_order(self, intent: OrderIntent) -> OrderResult:
        closes = self.synthesize_closes(1)
        fill_price = closes[-1] if closes else Decimal(str(_SEED_PRICE))
        self._fills += 1
        bucket = int(self._now_fn() // _SECONDS_PER_BUCKET)
        result = OrderResult(
            status="ok",
            order_id=f"sim-{bucket}-{self._fills}",
            symbol=intent.symbol,
            side=intent.side,
            notional=intent.notional_settlement_amount,
            leverage=intent.leverage_multiplier,
            fill_price=fill_price,
            simulated=True,
        )
        logger.info(
            "simulated_order_filled",
            extra={
                "extra": {
                    "symbol": intent.symbol,
                    "side": intent.side.value,
                    "notional": str(intent.notional_settlement_amount),
                    "leverage": str(intent.leverage_multiplier),
                    "fill_price": str(fill_price),
                    "subaccount": intent.subaccount,
                }
            },
        )
        return result
