from __future__ import annotations

import functools
import logging
from datetime import date, datetime, timedelta, timezone

from polygon import RESTClient
from pydantic import ValidationError
from requests.exceptions import HTTPError

from ema_screener.exceptions import DataUnavailable
from ema_screener.interfaces import HistoryFetcher, LatestBarFetcher
from ema_screener.models import PriceBar, PriceHistory

# --- Module-level Constants ---
_MAX_CANDLE_LIMIT = 50000
_RATE_LIMIT_PAUSE_SECONDS = 12
_MAX_RETRIES = 5  # Max retry attempts for rate limited requests
_LATEST_BAR_LOOKBACK_DAYS = 7
_INDIAN_SUFFIXES = (".NS", ".BO")
US_ONLY_HINT = "Polygon.io daily aggregates cover US listings only; use the yfinance provider for NSE/BSE symbols"

# --- Private Fetcher Implementations ---


def _describe(client: RESTClient, symbol: str) -> tuple[str, str]:
  """Returns (name, exchange) for a symbol, falling back to the symbol itself."""
  try:
    details = client.get_ticker_details(symbol)
    return details.name or symbol, details.primary_exchange or ""
  except HTTPError as e:
    if e.response is not None and e.response.status_code == 404:
      logging.warning(f"Ticker {symbol} not found on Polygon.io.")
    else:
      logging.error(f"HTTP error fetching details for {symbol} from Polygon: {e}")
  except Exception as e:
    logging.debug(f"Could not fetch Polygon details for {symbol}: {e}")
  return symbol, ""


def _get_bars(client: RESTClient, symbol: str, lookback_days: int) -> list[PriceBar]:
  if symbol.upper().endswith(_INDIAN_SUFFIXES):
    raise DataUnavailable(symbol, US_ONLY_HINT)

  to_date = date.today()
  from_date = to_date - timedelta(days=lookback_days)
  try:
    resp = client.get_aggs(
      ticker=symbol,
      multiplier=1,
      timespan="day",
      from_=from_date.isoformat(),
      to=to_date.isoformat(),
      limit=_MAX_CANDLE_LIMIT,
    )
  except Exception as e:
    raise DataUnavailable(symbol, f"Polygon.io get_aggs failed: {e}") from e

  if not resp:
    raise DataUnavailable(symbol, "Polygon.io returned no aggregates")

  name, exchange = _describe(client, symbol)
  bars = []
  for agg in resp:
    if agg.close is None:
      continue
    try:
      bars.append(
        PriceBar(
          symbol=symbol,
          name=name,
          exchange=exchange,
          date=datetime.fromtimestamp(agg.timestamp / 1000, tz=timezone.utc).date(),
          open=agg.open,
          high=agg.high,
          low=agg.low,
          close=agg.close,
          volume=agg.volume,
        )
      )
    except ValidationError as e:
      logging.warning(f"Skipping polygon bar for {symbol} due to validation error: {e}")
  return bars


def _get_latest_bar_impl(symbol: str, client: RESTClient) -> PriceBar:
  bars = _get_bars(client, symbol, _LATEST_BAR_LOOKBACK_DAYS)
  if not bars:
    raise DataUnavailable(symbol, "no complete bar in the latest Polygon.io window")
  return bars[-1]


def _get_history_impl(symbol: str, lookback_days: int, client: RESTClient) -> PriceHistory:
  return PriceHistory(symbol=symbol, bars=tuple(_get_bars(client, symbol, lookback_days)))


# --- Public Provider Class ---


class PolygonProvider:
  """Daily bars for US tickers. NSE and BSE listings are not covered."""

  default_delay = float(_RATE_LIMIT_PAUSE_SECONDS)

  def __init__(self, api_key: str):
    if not api_key:
      raise ValueError("Polygon provider requires an API key.")

    client = RESTClient(api_key, retries=_MAX_RETRIES)

    self._capabilities = {
      LatestBarFetcher: functools.partial(_get_latest_bar_impl, client=client),
      HistoryFetcher: functools.partial(_get_history_impl, client=client),
    }

  def supports(self, interface_class: type) -> bool:
    return interface_class in self._capabilities

  def get_fetcher(self, interface_class: type):
    if not self.supports(interface_class):
      raise TypeError(f"This provider does not support {interface_class.__name__}")
    return self._capabilities[interface_class]
