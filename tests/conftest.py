"""
Shared fixtures: bar/history factories and an in-memory provider with no delay.
"""

from datetime import date, timedelta

import pytest

from ema_screener.exceptions import DataUnavailable
from ema_screener.interfaces import HistoryFetcher, LatestBarFetcher
from ema_screener.models import PriceBar, PriceHistory

START_DATE = date(2024, 1, 1)


def _bar(symbol="TEST", day=START_DATE, low=9.5, close=10.0, **overrides):
  values = {
    "symbol": symbol,
    "name": f"{symbol} Ltd",
    "exchange": "NSE",
    "date": day,
    "open": close,
    "high": max(close, low) + 0.5,
    "low": low,
    "close": close,
    "volume": 1000,
  }
  values.update(overrides)
  return PriceBar(**values)


def _history(symbol="TEST", closes=(), start=START_DATE, step_days=1):
  bars = tuple(
    _bar(symbol, start + timedelta(days=i * step_days), low=c - 0.5, close=c)
    for i, c in enumerate(closes)
  )
  return PriceHistory(symbol=symbol, bars=bars)


class FakeProvider:
  """Serves canned bars; values that are exceptions are raised instead."""

  default_delay = 0.0

  def __init__(self, latest=None, histories=None):
    self.latest = dict(latest or {})
    self.histories = dict(histories or {})
    self.calls = []
    self._capabilities = {
      LatestBarFetcher: self._get_latest_bar,
      HistoryFetcher: self._get_history,
    }

  def _serve(self, table, symbol):
    value = table.get(symbol)
    if isinstance(value, list):
      value = value.pop(0) if len(value) > 1 else value[0]
    if isinstance(value, Exception):
      raise value
    if value is None:
      raise DataUnavailable(symbol)
    return value

  def _get_latest_bar(self, symbol):
    self.calls.append(("latest", symbol))
    return self._serve(self.latest, symbol)

  def _get_history(self, symbol, lookback_days):
    self.calls.append(("history", symbol, lookback_days))
    return self._serve(self.histories, symbol)

  def supports(self, interface_class):
    return interface_class in self._capabilities

  def get_fetcher(self, interface_class):
    return self._capabilities[interface_class]


@pytest.fixture
def make_bar():
  return _bar


@pytest.fixture
def make_history():
  return _history


@pytest.fixture
def fake_provider():
  return FakeProvider


@pytest.fixture
def flat_history():
  """Sixty bars closing at 10.0, which puts the 50 EMA at exactly 10.0."""

  def build(symbol, n=60):
    return _history(symbol, [10.0] * n)

  return build


@pytest.fixture
def write_price_csv(tmp_path):
  """Writes <SYMBOL>.csv files in the layout the csv provider reads."""

  def write(symbol, rows, header="Date,Open,High,Low,Close,Volume"):
    path = tmp_path / f"{symbol}.csv"
    lines = [header] + [",".join(str(v) for v in row) for row in rows]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path

  return write
