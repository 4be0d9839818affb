from __future__ import annotations

import importlib
import os
from dataclasses import dataclass
from enum import Enum, auto


class Tier(Enum):
  FREE = auto()
  PREMIUM = auto()
  OFFLINE = auto()


@dataclass
class ProviderMetadata:
  class_path: str
  tier: Tier
  api_key_env_var: str | None = None
  data_dir_env_var: str | None = None


_PROVIDERS = {
  "yfinance": ProviderMetadata(
    class_path="ema_screener.providers.yfinance.YFinanceProvider", tier=Tier.FREE
  ),
  "polygon": ProviderMetadata(
    class_path="ema_screener.providers.polygon.PolygonProvider",
    tier=Tier.PREMIUM,
    api_key_env_var="POLYGON_API_KEY",
  ),
  "csv": ProviderMetadata(
    class_path="ema_screener.providers.csv_files.CsvFileProvider",
    tier=Tier.OFFLINE,
    data_dir_env_var="EMA_SCREENER_CSV_DIR",
  ),
}


def available_providers() -> list[str]:
  return sorted(_PROVIDERS)


def describe_providers() -> dict[str, str]:
  """Maps each provider name to its tier (FREE, PREMIUM or OFFLINE)."""
  return {name: _PROVIDERS[name].tier.name for name in available_providers()}


class ProviderFactory:
  @staticmethod
  def _import_from_string(path: str) -> type:
    """Helper to dynamically import a class from a string path."""
    module_name, class_name = path.rsplit(".", 1)
    module = importlib.import_module(module_name)
    return getattr(module, class_name)

  def create(self, provider_name: str, **overrides):
    """Creates a provider instance based on its registered name.

    Keyword overrides (e.g. ``data_dir`` for the csv provider) take precedence
    over the matching environment variables.
    """
    metadata = _PROVIDERS.get(provider_name)
    if not metadata:
      raise ValueError(
        f"Provider '{provider_name}' not found. Choose one of: {', '.join(available_providers())}"
      )

    provider_class = self._import_from_string(metadata.class_path)

    constructor_kwargs = {}
    if metadata.api_key_env_var:
      api_key = overrides.pop("api_key", None) or os.getenv(metadata.api_key_env_var)
      if not api_key:
        raise ValueError(f"Missing required env var '{metadata.api_key_env_var}'")
      constructor_kwargs["api_key"] = api_key
    if metadata.data_dir_env_var:
      data_dir = overrides.pop("data_dir", None) or os.getenv(metadata.data_dir_env_var)
      if not data_dir:
        raise ValueError(f"Missing required env var '{metadata.data_dir_env_var}'")
      constructor_kwargs["data_dir"] = data_dir
    constructor_kwargs.update(overrides)

    return provider_class(**constructor_kwargs)
