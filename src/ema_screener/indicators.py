from __future__ import annotations

from collections.abc import Sequence

from ema_screener.exceptions import InsufficientHistory

EMA_PERIOD = 50


def compute_ema(prices: Sequence[float], period: int = EMA_PERIOD) -> list[float | None]:
  """Computes the exponential moving average of *prices*.

  The series is seeded with the simple average of the first *period* prices,
  placed at index ``period - 1``; every later value follows
  ``ema[i] = (price[i] - ema[i-1]) * k + ema[i-1]`` with ``k = 2 / (period + 1)``.

  Args:
    prices: Closing prices, oldest first.
    period: Number of periods to smooth over.

  Returns:
    A list the same length as *prices*. The first ``period - 1`` entries are
    None since the average is undefined there.

  Raises:
    ValueError: if *period* is lower than 1.
    InsufficientHistory: if fewer than *period* prices are given.
  """
  if period < 1:
    raise ValueError(f"EMA period must be a positive integer, got {period}")
  if len(prices) < period:
    raise InsufficientHistory(None, len(prices), period)

  multiplier = 2 / (period + 1)
  ema: list[float | None] = [None] * (period - 1)
  ema.append(sum(prices[:period]) / period)

  for price in prices[period:]:
    previous = ema[-1]
    ema.append((price - previous) * multiplier + previous)

  return ema


def latest_ema(prices: Sequence[float], period: int = EMA_PERIOD) -> float:
  """Returns the most recent EMA value of *prices*."""
  return compute_ema(prices, period)[-1]
