from __future__ import annotations

import io
import logging
import math
from datetime import date
from typing import Any

import pandas as pd

from ema_screener.exceptions import SerializationError
from ema_screener.models import AnalysisReport, QualificationRecord
from ema_screener.qualifier import is_qualifying
from ema_screener.utils.parsers import read_csv_with_conventions

DEFAULT_BASE_NAME = "indian_stocks_50ema_analysis"

COLUMNS = [
  "Symbol",
  "Name",
  "Exchange",
  "Date",
  "Open",
  "High",
  "Low",
  "Close",
  "Volume",
  "50_EMA",
  "Low_vs_EMA",
  "Close_vs_EMA",
  "Qualifies",
]

_PRICE_COLUMNS = ["Open", "High", "Low", "Close", "50_EMA"]


def _check_record(record: QualificationRecord) -> None:
  bar = record.bar
  numbers = {
    "open": bar.open,
    "high": bar.high,
    "low": bar.low,
    "close": bar.close,
    "ema50": record.ema50,
  }
  bad = [name for name, value in numbers.items() if not math.isfinite(value)]
  if bad:
    raise SerializationError(f"{bar.symbol}: non-finite value(s) for {', '.join(bad)}")
  if bar.volume < 0:
    raise SerializationError(f"{bar.symbol}: negative volume {bar.volume}")
  if not record.qualifies or not is_qualifying(bar.low, bar.close, record.ema50):
    raise SerializationError(
      f"{bar.symbol}: record does not satisfy low < EMA < close "
      f"(low={bar.low}, close={bar.close}, ema50={record.ema50})"
    )


def _to_row(record: QualificationRecord) -> dict[str, str]:
  bar = record.bar
  return {
    "Symbol": bar.symbol,
    "Name": bar.name,
    "Exchange": bar.exchange,
    "Date": bar.date.isoformat(),
    "Open": f"{bar.open:.2f}",
    "High": f"{bar.high:.2f}",
    "Low": f"{bar.low:.2f}",
    "Close": f"{bar.close:.2f}",
    "Volume": str(int(bar.volume)),
    "50_EMA": f"{record.ema50:.2f}",
    "Low_vs_EMA": record.low_vs_ema,
    "Close_vs_EMA": record.close_vs_ema,
    "Qualifies": "YES" if record.qualifies else "NO",
  }


def to_table(report: AnalysisReport) -> str:
  """Serializes the qualifying records of *report* as CSV text.

  The header row is always written, so a run with no qualifying stocks still
  produces a valid (empty) table. Fields containing commas, quotes or line
  breaks are quoted.

  Raises:
    SerializationError: if a record cannot be represented faithfully.
  """
  rows = []
  for record in report.records:
    _check_record(record)
    rows.append(_to_row(record))

  df = pd.DataFrame(rows, columns=COLUMNS)
  try:
    return df.to_csv(index=False, lineterminator="\n")
  except (ValueError, TypeError) as e:
    raise SerializationError(f"Could not build report table: {e}") from e


def parse_table(text: str) -> list[dict[str, Any]]:
  """Parses a table produced by to_table back into typed values.

  Text cells come back exactly as written: empty strings, NA-like names and
  surrounding whitespace are preserved.
  """
  df = read_csv_with_conventions(
    io.StringIO(text), strip_whitespace=False, dtype=str, na_values=[]
  )
  missing = [col for col in COLUMNS if col not in df.columns]
  if missing:
    raise ValueError(f"Report table is missing columns: {', '.join(missing)}")

  rows = []
  for raw in df.to_dict(orient="records"):
    row: dict[str, Any] = {col: raw[col] for col in COLUMNS}
    row["Date"] = date.fromisoformat(raw["Date"])
    for col in _PRICE_COLUMNS:
      row[col] = float(raw[col])
    row["Volume"] = int(raw["Volume"])
    rows.append(row)
  return rows


def report_filename(base_name: str, run_date: date) -> str:
  """Builds the artifact name ``<base_name>_<YYYY-MM-DD>.csv``."""
  base_name = (base_name or "").strip()
  if not base_name:
    raise ValueError("Report base name must be a non-empty string")
  if "/" in base_name or "\\" in base_name:
    raise ValueError(f"Report base name '{base_name}' must not contain path separators")
  return f"{base_name}_{run_date.isoformat()}.csv"


def summarize(report: AnalysisReport) -> dict[str, int]:
  summary = {
    "total_stocks": report.total_stocks,
    "qualifying_stocks": report.qualifying_stocks,
    "skipped": len(report.skipped),
  }
  logging.debug(f"Report summary: {summary}")
  return summary
