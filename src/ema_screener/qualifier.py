from __future__ import annotations

import math

from ema_screener.models import PriceBar, QualificationRecord


def is_qualifying(low: float, close: float, ema50: float) -> bool:
  """A bar qualifies when it traded below the EMA but closed above it."""
  return low < ema50 and close > ema50


def qualify(bar: PriceBar, ema50: float) -> QualificationRecord:
  """Evaluates *bar* against the current 50-period EMA."""
  if ema50 is None or not math.isfinite(ema50):
    raise ValueError(f"Cannot qualify {bar.symbol}: EMA is undefined ({ema50!r})")

  return QualificationRecord(
    bar=bar,
    ema50=ema50,
    qualifies=is_qualifying(bar.low, bar.close, ema50),
  )
