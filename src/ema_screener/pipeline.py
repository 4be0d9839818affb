from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum

from ema_screener.exceptions import DataUnavailable, HistoryGapError, InsufficientHistory
from ema_screener.indicators import EMA_PERIOD, latest_ema
from ema_screener.interfaces import HistoryFetcher, LatestBarFetcher
from ema_screener.models import (
  AnalysisReport,
  PriceBar,
  PriceHistory,
  QualificationRecord,
  SkippedSymbol,
  SkipReason,
)
from ema_screener.providers.interface import DataProvider
from ema_screener.qualifier import qualify

# --- Module-level Constants ---
DEFAULT_LOOKBACK_DAYS = 100
DEFAULT_MAX_GAP_DAYS = 5


class GapPolicy(str, Enum):
  """What to do with histories that skip trading days.

  TOLERATE computes the EMA positionally over whatever bars were returned.
  REJECT skips the symbol when two consecutive bars are further apart than
  ``max_gap_days`` calendar days.
  """

  TOLERATE = "tolerate"
  REJECT = "reject"


@dataclass(frozen=True)
class AnalysisConfig:
  ema_period: int = EMA_PERIOD
  min_history_length: int = EMA_PERIOD
  lookback_days: int = DEFAULT_LOOKBACK_DAYS
  delay: float = 0.0
  max_workers: int = 1
  retries: int = 0
  gap_policy: GapPolicy = GapPolicy.TOLERATE
  max_gap_days: int = DEFAULT_MAX_GAP_DAYS

  def __post_init__(self) -> None:
    if self.ema_period < 1:
      raise ValueError(f"ema_period must be at least 1, got {self.ema_period}")
    if self.min_history_length < 0:
      raise ValueError("min_history_length cannot be negative")
    if self.lookback_days < 1:
      raise ValueError("lookback_days must be at least 1")
    if self.delay < 0:
      raise ValueError("delay cannot be negative")
    if self.max_workers < 1:
      raise ValueError("max_workers must be at least 1")
    if self.retries < 0:
      raise ValueError("retries cannot be negative")


class Pacer:
  """Enforces a minimum interval between successive provider calls.

  Shared by every worker of a batch so the provider sees the same spacing
  whether symbols run sequentially or on a pool.
  """

  def __init__(
    self,
    delay: float,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
  ) -> None:
    self._delay = delay
    self._sleep = sleep
    self._clock = clock
    self._lock = threading.Lock()
    self._last_call: float | None = None

  def wait(self) -> None:
    if self._delay <= 0:
      return
    with self._lock:
      now = self._clock()
      if self._last_call is not None:
        remaining = self._delay - (now - self._last_call)
        if remaining > 0:
          self._sleep(remaining)
          now = self._clock()
      self._last_call = now


@dataclass(frozen=True)
class _Outcome:
  symbol: str
  record: QualificationRecord | None = None
  skipped: SkippedSymbol | None = None


def normalize_symbols(symbols: Iterable[str]) -> list[str]:
  """Splits comma lists, strips, upper-cases and de-duplicates preserving order."""
  normalized = []
  for value in symbols:
    normalized.extend(
      segment.strip().upper() for segment in str(value).split(",") if segment.strip()
    )
  return list(dict.fromkeys(normalized))


def get_fetchers(provider: DataProvider) -> tuple[Callable, Callable]:
  for interface_class in (LatestBarFetcher, HistoryFetcher):
    if not provider.supports(interface_class):
      capability_name = interface_class.__name__.replace("Fetcher", "")
      raise TypeError(
        f"Provider '{type(provider).__name__}' does not support fetching {capability_name}s."
      )
  return provider.get_fetcher(LatestBarFetcher), provider.get_fetcher(HistoryFetcher)


def _fetch(symbol: str, fetcher: Callable, pacer: Pacer, *args) -> object:
  pacer.wait()
  try:
    result = fetcher(symbol, *args)
  except DataUnavailable:
    raise
  except Exception as e:
    logging.error(f"Unexpected provider error for {symbol}: {e}", exc_info=True)
    raise DataUnavailable(symbol, f"provider error: {e}") from e
  if result is None:
    raise DataUnavailable(symbol)
  return result


def analyze_symbol(
  symbol: str,
  fetch_latest_bar: Callable[[str], PriceBar],
  fetch_history: Callable[[str, int], PriceHistory],
  config: AnalysisConfig,
  pacer: Pacer | None = None,
) -> QualificationRecord:
  """Runs fetch, EMA and qualification for one symbol.

  Raises:
    DataUnavailable: if the provider fails or returns nothing usable.
    InsufficientHistory: if fewer bars than required are available.
    HistoryGapError: if the gap policy rejects the history.
  """
  pacer = pacer or Pacer(0)
  latest_bar = _fetch(symbol, fetch_latest_bar, pacer)
  history = _fetch(symbol, fetch_history, pacer, config.lookback_days)

  if not len(history):
    raise DataUnavailable(symbol, "provider returned an empty history")

  closes = [close for close in history.closes if math.isfinite(close)]
  required = max(config.min_history_length, config.ema_period)
  if len(closes) < required:
    raise InsufficientHistory(symbol, len(closes), required)

  gaps = history.gaps(config.max_gap_days)
  if gaps:
    if config.gap_policy is GapPolicy.REJECT:
      raise HistoryGapError(symbol, gaps)
    logging.debug(f"{symbol}: tolerating {len(gaps)} gap(s) wider than {config.max_gap_days} days")

  ema50 = latest_ema(closes, config.ema_period)
  record = qualify(latest_bar, ema50)
  logging.debug(
    f"{symbol}: low={latest_bar.low:.2f} close={latest_bar.close:.2f} "
    f"ema{config.ema_period}={ema50:.2f} qualifies={record.qualifies}"
  )
  return record


def _run_symbol(
  index: int,
  total: int,
  symbol: str,
  fetchers: tuple[Callable, Callable],
  config: AnalysisConfig,
  pacer: Pacer,
) -> _Outcome:
  logging.info(f"Processing {symbol} ({index}/{total})")
  attempt = 0
  while True:
    attempt += 1
    try:
      record = analyze_symbol(symbol, *fetchers, config=config, pacer=pacer)
      return _Outcome(symbol=symbol, record=record)
    except InsufficientHistory as e:
      logging.warning(f"Insufficient historical data for {symbol}: {e}")
      return _Outcome(
        symbol=symbol,
        skipped=SkippedSymbol(
          symbol=symbol, reason=SkipReason.INSUFFICIENT_HISTORY, detail=str(e)
        ),
      )
    except HistoryGapError as e:
      logging.warning(f"Rejected history for {symbol}: {e}")
      return _Outcome(
        symbol=symbol,
        skipped=SkippedSymbol(symbol=symbol, reason=SkipReason.HISTORY_GAP, detail=str(e)),
      )
    except DataUnavailable as e:
      if attempt <= config.retries:
        logging.info(f"Retrying {symbol} after failed fetch ({attempt}/{config.retries}): {e}")
        continue
      logging.warning(f"Failed to fetch data for {symbol}: {e}")
      return _Outcome(
        symbol=symbol,
        skipped=SkippedSymbol(
          symbol=symbol, reason=SkipReason.DATA_UNAVAILABLE, detail=e.detail
        ),
      )


def build_report(outcomes: Iterable[_Outcome]) -> AnalysisReport:
  """Aggregates finalized per-symbol outcomes into a report."""
  outcomes = list(outcomes)
  analyzed = [o.record for o in outcomes if o.record is not None]
  return AnalysisReport(
    total_stocks=len(analyzed),
    records=tuple(record for record in analyzed if record.qualifies),
    skipped=tuple(o.skipped for o in outcomes if o.skipped is not None),
  )


def analyze(
  symbols: Iterable[str],
  provider: DataProvider,
  min_history_length: int | None = None,
  ema_period: int | None = None,
  *,
  config: AnalysisConfig | None = None,
  sleep: Callable[[float], None] = time.sleep,
) -> AnalysisReport:
  """Screens *symbols* and returns the qualifying subset.

  A symbol whose data cannot be fetched, or whose history is too short, is
  recorded as skipped; it never aborts the batch and is not counted in
  ``total_stocks``. Qualifying records keep the order of *symbols*.

  Args:
    symbols: Ticker symbols; comma lists are accepted and duplicates dropped.
    provider: A provider supporting LatestBarFetcher and HistoryFetcher.
    min_history_length: Minimum number of daily bars required (default 50).
    ema_period: EMA period (default 50).
    config: Full run configuration (pacing, workers, retries, gap policy).
      Carries its own period and minimum length, so it cannot be combined
      with *min_history_length* or *ema_period*.
    sleep: Used for pacing; injectable so tests do not wait.
  """
  if config is None:
    config = AnalysisConfig(
      ema_period=EMA_PERIOD if ema_period is None else ema_period,
      min_history_length=EMA_PERIOD if min_history_length is None else min_history_length,
    )
  elif min_history_length is not None or ema_period is not None:
    raise ValueError(
      "Pass min_history_length and ema_period through config, not alongside it"
    )

  symbol_list = normalize_symbols(symbols)
  fetchers = get_fetchers(provider)
  pacer = Pacer(config.delay, sleep=sleep)
  total = len(symbol_list)

  logging.info(
    f"Starting analysis of {total} symbols (EMA {config.ema_period}, "
    f"min history {config.min_history_length}, delay {config.delay:.2f}s, "
    f"workers {config.max_workers})"
  )

  jobs = [
    (index, total, symbol, fetchers, config, pacer)
    for index, symbol in enumerate(symbol_list, start=1)
  ]
  if config.max_workers > 1 and total > 1:
    with ThreadPoolExecutor(max_workers=config.max_workers) as executor:
      # map() yields in submission order, which restores input order.
      outcomes = list(executor.map(lambda job: _run_symbol(*job), jobs))
  else:
    outcomes = [_run_symbol(*job) for job in jobs]

  report = build_report(outcomes)
  logging.info(
    f"Analysis complete: {report.total_stocks} analyzed, "
    f"{report.qualifying_stocks} qualifying, {len(report.skipped)} skipped"
  )
  return report
