from __future__ import annotations

import pandas as pd

_SAFE_NA_VALUES = [
  "",  # Empty string
  "#N/A",  # Excel N/A
  "N/A",  # Standard N/A (but not "NA" - that's a ticker symbol!)
  "NULL",  # Database NULL
  "null",  # Yahoo chart exports
]


def read_csv_with_conventions(
  filepath_or_buffer, strip_whitespace: bool = True, **kwargs
) -> pd.DataFrame:
  """A project-specific wrapper for pd.read_csv that applies market data conventions.

  This function handles common issues when parsing price and report CSVs:
  - Disables default "NA" string interpretation to correctly handle ticker symbols like "NA"
  - Strips whitespace from column names and cell values by default
  - Uses a conservative set of NA values to avoid false positives

  Args:
    filepath_or_buffer: File path, URL, or buffer object to read
    strip_whitespace: If True, strips leading/trailing whitespace from column names and string values
    **kwargs: Additional arguments passed to pd.read_csv

  Returns:
    pd.DataFrame: Parsed DataFrame with applied conventions

  Example:
    >>> df = read_csv_with_conventions('RELIANCE.csv')
    >>> # Ticker symbol 'NA' will be preserved, not treated as NaN
  """
  df = pd.read_csv(
    filepath_or_buffer,
    keep_default_na=False,
    na_values=kwargs.pop("na_values", _SAFE_NA_VALUES),
    **kwargs,
  )

  if strip_whitespace:
    df.columns = df.columns.str.strip()

    text_columns = [col for col in df.columns if pd.api.types.is_string_dtype(df[col].dtype)]
    for col in text_columns:
      df[col] = df[col].where(df[col].isna(), df[col].astype(str).str.strip())

  return df


def lowercase_columns(df: pd.DataFrame) -> pd.DataFrame:
  """Maps headers such as 'Close' or 'ADJ CLOSE' to 'close' / 'adj_close'."""
  return df.rename(columns=lambda c: str(c).strip().lower().replace(" ", "_"))
