from __future__ import annotations

import math
from datetime import date as Date
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator, model_validator


class PriceBar(BaseModel):
  """One trading day's OHLCV record for a symbol."""

  model_config = ConfigDict(frozen=True, from_attributes=True)

  symbol: str
  name: str
  exchange: str
  date: Date
  open: float
  high: float
  low: float
  close: float
  volume: int = 0

  @field_validator("volume", mode="before")
  @classmethod
  def clean_volume(cls, v: Any) -> int:  # noqa: N805
    """Missing volumes (None or NaN from pandas) are reported as zero."""
    if v is None:
      return 0
    if isinstance(v, float):
      if math.isnan(v):
        return 0
      return int(v)
    return v


class PriceHistory(BaseModel):
  """Daily bars for one symbol, strictly ascending by date."""

  model_config = ConfigDict(frozen=True)

  symbol: str
  bars: tuple[PriceBar, ...] = ()

  @model_validator(mode="after")
  def check_ordering(self) -> PriceHistory:
    for previous, current in zip(self.bars, self.bars[1:]):
      if current.date <= previous.date:
        raise ValueError(
          f"History for {self.symbol} is not strictly ascending: "
          f"{current.date} follows {previous.date}"
        )
    return self

  def __len__(self) -> int:
    return len(self.bars)

  @property
  def closes(self) -> list[float]:
    return [bar.close for bar in self.bars]

  @property
  def latest(self) -> PriceBar | None:
    return self.bars[-1] if self.bars else None

  def gaps(self, max_gap_days: int) -> list[tuple[Date, Date]]:
    """Returns consecutive date pairs more than *max_gap_days* calendar days apart."""
    return [
      (previous.date, current.date)
      for previous, current in zip(self.bars, self.bars[1:])
      if (current.date - previous.date).days > max_gap_days
    ]


class QualificationRecord(BaseModel):
  """The latest bar of a symbol evaluated against its 50-period EMA."""

  model_config = ConfigDict(frozen=True)

  bar: PriceBar
  ema50: float
  qualifies: bool

  @property
  def symbol(self) -> str:
    return self.bar.symbol

  @property
  def low_vs_ema(self) -> str:
    return "Below" if self.bar.low < self.ema50 else "Above"

  @property
  def close_vs_ema(self) -> str:
    return "Above" if self.bar.close > self.ema50 else "Below"


class SkipReason(str, Enum):
  DATA_UNAVAILABLE = "data_unavailable"
  INSUFFICIENT_HISTORY = "insufficient_history"
  HISTORY_GAP = "history_gap"


class SkippedSymbol(BaseModel):
  model_config = ConfigDict(frozen=True)

  symbol: str
  reason: SkipReason
  detail: str = ""


class AnalysisReport(BaseModel):
  """Result of one batch run.

  ``records`` only holds qualifying symbols, in the order the symbols were
  requested. ``total_stocks`` counts every symbol that was analyzed, qualifying
  or not; skipped symbols are listed separately and are not counted.
  """

  model_config = ConfigDict(frozen=True)

  total_stocks: int = 0
  records: tuple[QualificationRecord, ...] = ()
  skipped: tuple[SkippedSymbol, ...] = ()

  @model_validator(mode="after")
  def check_counts(self) -> AnalysisReport:
    if any(not record.qualifies for record in self.records):
      raise ValueError("AnalysisReport.records may only contain qualifying records")
    if self.total_stocks < len(self.records):
      raise ValueError(
        f"total_stocks ({self.total_stocks}) is lower than the number of "
        f"qualifying records ({len(self.records)})"
      )
    return self

  @property
  def qualifying_stocks(self) -> int:
    return len(self.records)
