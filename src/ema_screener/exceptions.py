from __future__ import annotations


class ScreenerError(Exception):
  """Base class for errors raised by the screening pipeline."""

  pass


class DataUnavailable(ScreenerError):
  """The provider failed or returned no usable bar/history for a symbol."""

  def __init__(self, symbol: str, detail: str = "no data returned") -> None:
    super().__init__(f"{symbol}: {detail}")
    self.symbol = symbol
    self.detail = detail


class InsufficientHistory(ScreenerError):
  """The price history is shorter than the EMA period requires."""

  def __init__(self, symbol: str | None, length: int, required: int) -> None:
    label = symbol or "<series>"
    super().__init__(f"{label}: {length} bars available, {required} required")
    self.symbol = symbol
    self.length = length
    self.required = required


class HistoryGapError(ScreenerError):
  """The price history has calendar gaps wider than the configured tolerance."""

  def __init__(self, symbol: str, gaps: list[tuple]) -> None:
    first_start, first_end = gaps[0]
    super().__init__(
      f"{symbol}: {len(gaps)} gap(s) in history, first between {first_start} and {first_end}"
    )
    self.symbol = symbol
    self.gaps = gaps


class SerializationError(ScreenerError):
  """A record could not be written to the report table."""

  pass


class DeliveryError(ScreenerError):
  """The report email could not be sent."""

  pass
