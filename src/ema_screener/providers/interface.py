from typing import Any, Protocol


class DataProvider(Protocol):
  """
  A protocol defining the interface for all history providers.

  Providers advertise which fetcher capabilities they implement
  (see ema_screener.interfaces) and hand out a callable for each one.
  """

  default_delay: float

  def supports(self, interface_class: type) -> bool: ...

  def get_fetcher(self, interface_class: type) -> Any: ...
