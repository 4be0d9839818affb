from __future__ import annotations

import functools
import logging
from datetime import date, timedelta
from typing import Any

import pandas as pd
import yfinance as yf
from curl_cffi import requests as curl_requests
from pydantic import ValidationError

from ema_screener.exceptions import DataUnavailable
from ema_screener.interfaces import HistoryFetcher, LatestBarFetcher
from ema_screener.models import PriceBar, PriceHistory

# --- Module-level Constants ---
_YFINANCE_DEFAULT_DELAY = 0.2
_LATEST_BAR_PERIOD = "5d"
_DEFAULT_SUFFIX = ".NS"

_EXCHANGE_BY_SUFFIX = {
  ".NS": "NSE",
  ".BO": "BSE",
}

_YFINANCE_HEADERS = {
  "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/134.0.6998.166 Safari/537.36",
}

_SESSION: curl_requests.Session | None = None


def _get_session() -> curl_requests.Session:
  global _SESSION
  if _SESSION is None:
    _SESSION = curl_requests.Session(impersonate="chrome")
    _SESSION.headers.update(_YFINANCE_HEADERS)
  return _SESSION


# --- Symbol Helpers ---


def to_yahoo_symbol(symbol: str, default_suffix: str = _DEFAULT_SUFFIX) -> str:
  """Bare symbols are treated as NSE listings; suffixed ones are used as-is."""
  return symbol if "." in symbol else f"{symbol}{default_suffix}"


def exchange_for(symbol: str, default_suffix: str = _DEFAULT_SUFFIX) -> str:
  yahoo_symbol = to_yahoo_symbol(symbol, default_suffix)
  for suffix, exchange in _EXCHANGE_BY_SUFFIX.items():
    if yahoo_symbol.upper().endswith(suffix):
      return exchange
  return yahoo_symbol.rsplit(".", 1)[-1].upper()


def _display_name(stock: yf.Ticker, symbol: str) -> str:
  try:
    metadata = stock.history_metadata or {}
  except Exception as e:
    logging.debug(f"No yfinance history metadata for {symbol}: {e}")
    metadata = {}
  return metadata.get("longName") or metadata.get("shortName") or symbol


def _frame_to_bars(
  df: pd.DataFrame, symbol: str, name: str, exchange: str
) -> list[PriceBar]:
  df = df.dropna(subset=["Close"])
  bars = []
  for row in df.itertuples():
    try:
      bars.append(
        PriceBar(
          symbol=symbol,
          name=name,
          exchange=exchange,
          date=row.Index.date(),
          open=row.Open,
          high=row.High,
          low=row.Low,
          close=row.Close,
          volume=row.Volume,
        )
      )
    except (ValidationError, AttributeError) as e:
      logging.warning(f"Skipping yfinance bar for {symbol} due to validation error: {e}")
  return bars


def _download(symbol: str, default_suffix: str, **history_kwargs: Any) -> list[PriceBar]:
  yahoo_symbol = to_yahoo_symbol(symbol, default_suffix)
  try:
    stock = yf.Ticker(yahoo_symbol, session=_get_session())
    df = stock.history(interval="1d", auto_adjust=False, **history_kwargs)
  except Exception as e:
    raise DataUnavailable(symbol, f"yfinance request for {yahoo_symbol} failed: {e}") from e

  if df is None or df.empty:
    raise DataUnavailable(symbol, f"yfinance returned no rows for {yahoo_symbol}")

  logging.debug(f"yfinance returned {len(df)} rows for {yahoo_symbol}")
  return _frame_to_bars(
    df,
    symbol=symbol,
    name=_display_name(stock, symbol),
    exchange=exchange_for(symbol, default_suffix),
  )


# --- Fetcher Implementations ---


def _get_latest_bar_impl(symbol: str, default_suffix: str = _DEFAULT_SUFFIX) -> PriceBar:
  bars = _download(symbol, default_suffix, period=_LATEST_BAR_PERIOD)
  if not bars:
    raise DataUnavailable(symbol, "no complete bar in the latest yfinance window")
  return bars[-1]


def _get_history_impl(
  symbol: str, lookback_days: int, default_suffix: str = _DEFAULT_SUFFIX
) -> PriceHistory:
  start = date.today() - timedelta(days=lookback_days)
  bars = _download(symbol, default_suffix, start=start.isoformat())
  # Yahoo occasionally repeats the current session's row; keep the last one.
  unique = {bar.date: bar for bar in bars}
  return PriceHistory(symbol=symbol, bars=tuple(unique[d] for d in sorted(unique)))


# --- Public Provider Class ---


class YFinanceProvider:
  default_delay = _YFINANCE_DEFAULT_DELAY

  def __init__(self, default_suffix: str = _DEFAULT_SUFFIX):
    self._capabilities = {
      LatestBarFetcher: functools.partial(
        _get_latest_bar_impl, default_suffix=default_suffix
      ),
      HistoryFetcher: functools.partial(_get_history_impl, default_suffix=default_suffix),
    }

  def supports(self, interface_class: type) -> bool:
    return interface_class in self._capabilities

  def get_fetcher(self, interface_class: type):
    if not self.supports(interface_class):
      raise TypeError(f"This provider does not support {interface_class.__name__}")
    return self._capabilities[interface_class]
