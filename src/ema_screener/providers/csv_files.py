from __future__ import annotations

import functools
import logging
from datetime import timedelta
from pathlib import Path

import pandas as pd
from pydantic import ValidationError

from ema_screener.exceptions import DataUnavailable
from ema_screener.interfaces import HistoryFetcher, LatestBarFetcher
from ema_screener.models import PriceBar, PriceHistory
from ema_screener.utils.parsers import lowercase_columns, read_csv_with_conventions

_REQUIRED_COLUMNS = ("date", "open", "high", "low", "close")
_PRICE_COLUMNS = ("open", "high", "low", "close", "volume")


def _resolve_path(data_dir: Path, symbol: str) -> Path:
  for candidate in (symbol, symbol.upper(), symbol.lower()):
    path = data_dir / f"{candidate}.csv"
    if path.is_file():
      return path
  raise DataUnavailable(symbol, f"no CSV file for symbol in {data_dir}")


def _text(row: dict, key: str, default: str) -> str:
  value = row.get(key)
  if value is None or pd.isna(value) or not str(value).strip():
    return default
  return str(value)


def _load_bars(data_dir: Path, symbol: str) -> list[PriceBar]:
  """Reads every usable bar for *symbol*, oldest first."""
  path = _resolve_path(data_dir, symbol)
  try:
    df = lowercase_columns(read_csv_with_conventions(path))
  except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
    raise DataUnavailable(symbol, f"could not read {path}: {e}") from e

  missing = [col for col in _REQUIRED_COLUMNS if col not in df.columns]
  if missing:
    raise DataUnavailable(symbol, f"{path.name} is missing columns: {', '.join(missing)}")

  for col in _PRICE_COLUMNS:
    if col in df.columns:
      df[col] = pd.to_numeric(df[col], errors="coerce")
  df["date"] = pd.to_datetime(df["date"], errors="coerce")
  df = df.dropna(subset=["date", "close"]).sort_values("date")
  df = df.drop_duplicates(subset="date", keep="last")

  bars = []
  for row in df.to_dict(orient="records"):
    try:
      bars.append(
        PriceBar(
          symbol=symbol,
          name=_text(row, "name", symbol),
          exchange=_text(row, "exchange", ""),
          date=row["date"].date(),
          open=row["open"],
          high=row["high"],
          low=row["low"],
          close=row["close"],
          volume=row.get("volume"),
        )
      )
    except ValidationError as e:
      logging.warning(f"Skipping CSV bar for {symbol} in {path.name}: {e}")

  if not bars:
    raise DataUnavailable(symbol, f"{path.name} has no usable rows")
  return bars


def _get_latest_bar_impl(symbol: str, data_dir: Path) -> PriceBar:
  return _load_bars(data_dir, symbol)[-1]


def _get_history_impl(symbol: str, lookback_days: int, data_dir: Path) -> PriceHistory:
  bars = _load_bars(data_dir, symbol)
  # The window is anchored on the file's last bar so offline runs are reproducible.
  cutoff = bars[-1].date - timedelta(days=lookback_days)
  return PriceHistory(symbol=symbol, bars=tuple(bar for bar in bars if bar.date >= cutoff))


class CsvFileProvider:
  """Reads daily bars from ``<data_dir>/<SYMBOL>.csv`` files."""

  default_delay = 0.0

  def __init__(self, data_dir: str | Path):
    if not data_dir:
      raise ValueError("CSV provider requires a data directory.")
    data_dir = Path(data_dir)
    if not data_dir.is_dir():
      raise ValueError(f"CSV data directory '{data_dir}' does not exist.")

    self._capabilities = {
      LatestBarFetcher: functools.partial(_get_latest_bar_impl, data_dir=data_dir),
      HistoryFetcher: functools.partial(_get_history_impl, data_dir=data_dir),
    }

  def supports(self, interface_class: type) -> bool:
    return interface_class in self._capabilities

  def get_fetcher(self, interface_class: type):
    if not self.supports(interface_class):
      raise TypeError(f"This provider does not support {interface_class.__name__}")
    return self._capabilities[interface_class]
