from abc import ABC, abstractmethod

from ema_screener.models import PriceBar, PriceHistory


class LatestBarFetcher(ABC):
  """Abstract base class for fetching the most recent daily bar of a symbol."""

  @abstractmethod
  def get_latest_bar(self, symbol: str) -> PriceBar:
    """Fetches the latest complete trading day for a symbol.

    Args:
      symbol: The ticker symbol as configured in the universe (e.g., RELIANCE)

    Returns:
      The latest PriceBar

    Raises:
      DataUnavailable: if the provider has no usable bar for the symbol
    """
    pass


class HistoryFetcher(ABC):
  """Abstract base class for fetching daily price history."""

  @abstractmethod
  def get_history(self, symbol: str, lookback_days: int) -> PriceHistory:
    """Fetches daily bars covering the last *lookback_days* calendar days.

    Args:
      symbol: The ticker symbol
      lookback_days: Number of calendar days to look back from today

    Returns:
      PriceHistory sorted by date, bars without a close filtered out

    Raises:
      DataUnavailable: if the provider has no usable history for the symbol
    """
    pass
