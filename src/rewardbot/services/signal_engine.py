from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from rewardbot.domain.indicators import ema, rsi
from rewardbot.domain.models import Signal

MIN_HISTORY = 100
RSI_PERIOD = 14
EMA_FAST_PERIOD = 21
EMA_SLOW_PERIOD = 55
LONG_RSI_FLOOR = 52.0
SHORT_RSI_CEILING = 48.0


@dataclass(frozen=True)
class IndicatorReading:
    ema_fast: float
    ema_slow: float
    rsi: float


def clean_closes(closes: Iterable[Decimal | float | int]) -> list[float]:
    cleaned: list[float] = []
    for raw in closes:
        try:
            value = float(raw)
        except (TypeError, ValueError):
            continue
        if math.isfinite(value):
            cleaned.append(value)
    return cleaned


def classify(reading: IndicatorReading) -> Signal:
    if reading.ema_fast > reading.ema_slow and reading.rsi >= LONG_RSI_FLOOR:
        return Signal.LONG
    if reading.ema_fast < reading.ema_slow and reading.rsi <= SHORT_RSI_CEILING:
        return Signal.SHORT
    return Signal.FLAT


class PriceSignalEngine:
    """Stateless trend classifier over closing prices ordered oldest to newest."""

    def read_indicators(self, closes: Iterable[Decimal | float | int]) -> IndicatorReading | None:
        series = clean_closes(closes)
        if len(series) < MIN_HISTORY:
            return None
        return IndicatorReading(
            ema_fast=ema(series, EMA_FAST_PERIOD)[-1],
            ema_slow=ema(series, EMA_SLOW_PERIOD)[-1],
            rsi=rsi(series, RSI_PERIOD)[-1],
        )

    def evaluate(self, closes: Iterable[Decimal | float | int]) -> Signal:
        reading = self.read_indicators(closes)
        if reading is None:
            return Signal.FLAT
        return classify(reading)
