from __future__ import annotations

from collections.abc import Sequence


def ema(values: Sequence[float], period: int) -> list[float]:
    """Exponential moving average seeded with the simple average of the first window.

    Returns one value per input from index ``period - 1`` onwards, so the result
    is empty when fewer than ``period`` values are supplied.
    """
    if period < 1:
        raise ValueError("period must be >= 1")
    if len(values) < period:
        return []

    k = 2.0 / (period + 1)
    current = sum(values[:period]) / period
    out = [current]
    for price in values[period:]:
        current = (price - current) * k + current
        out.append(current)
    return out


def rsi(values: Sequence[float], period: int = 14) -> list[float]:
    """Wilder relative-strength index.

    The first average gain/loss is the plain mean over ``period`` changes;
    later averages use Wilder smoothing. A window without losses yields 100.
    """
    if period < 1:
        raise ValueError("period must be >= 1")
    if len(values) <= period:
        return []

    gains: list[float] = []
    losses: list[float] = []
    for previous, current in zip(values, values[1:]):
        change = current - previous
        gains.append(change if change > 0 else 0.0)
        losses.append(-change if change < 0 else 0.0)

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period
    out = [_rsi_value(avg_gain, avg_loss)]
    for gain, loss in zip(gains[period:], losses[period:]):
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period
        out.append(_rsi_value(avg_gain, avg_loss))
    return out


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)
