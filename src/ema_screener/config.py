from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

# Popular NSE large caps, plus a handful of BSE listings (".BO" suffix).
DEFAULT_SYMBOLS = (
  "RELIANCE", "TCS", "HDFCBANK", "INFY", "HINDUNILVR", "ICICIBANK", "KOTAKBANK", "LT", "SBIN", "BHARTIARTL",
  "ASIANPAINT", "ITC", "AXISBANK", "MARUTI", "SUNPHARMA", "TITAN", "ULTRACEMCO", "WIPRO", "NESTLEIND", "POWERGRID",
  "NTPC", "JSWSTEEL", "M&M", "TECHM", "HCLTECH", "TATAMOTORS", "INDUSINDBK", "GRASIM", "ADANIENT", "COALINDIA",
  "RELIANCE.BO", "TCS.BO", "HDFCBANK.BO", "INFY.BO", "HINDUNILVR.BO",
)  # fmt: skip

_SMTP_SECURITY_MODES = {"starttls", "ssl", "none"}


def _env(key: str, default: str = "") -> str:
  return str(os.getenv(key, default) or "").strip()


def _env_int(key: str, default: int, minimum: int | None = None) -> int:
  raw = _env(key, str(default))
  try:
    value = int(raw)
  except ValueError:
    logging.warning(f"Ignoring invalid integer for {key}: {raw!r}")
    value = default
  if minimum is not None:
    value = max(minimum, value)
  return value


def symbols_from_env() -> list[str]:
  """Returns the universe from EMA_SCREENER_SYMBOLS, or the default universe."""
  raw = _env("EMA_SCREENER_SYMBOLS")
  if not raw:
    return list(DEFAULT_SYMBOLS)
  return [segment.strip() for segment in raw.split(",") if segment.strip()]


def output_dir_from_env() -> str:
  return _env("EMA_SCREENER_OUTPUT_DIR", "csv") or "csv"


@dataclass
class SmtpConfig:
  host: str = ""
  port: int = 587
  user: str = ""
  password: str = field(default="", repr=False)
  from_email: str = ""
  to_email: str = ""
  timeout_sec: int = 30
  security: str = "starttls"

  def missing(self) -> list[str]:
    """Names the environment variables that still need to be set."""
    required = {
      "EMA_SCREENER_SMTP_HOST": self.host,
      "EMA_SCREENER_SMTP_FROM": self.from_email,
      "EMA_SCREENER_REPORT_EMAIL_TO": self.to_email,
    }
    if self.user:
      required["EMA_SCREENER_SMTP_PASS"] = self.password
    return [key for key, value in required.items() if not value]


def smtp_config() -> SmtpConfig:
  security = _env("EMA_SCREENER_SMTP_SECURITY", "starttls").lower()
  if security not in _SMTP_SECURITY_MODES:
    security = "starttls"
  return SmtpConfig(
    host=_env("EMA_SCREENER_SMTP_HOST"),
    port=_env_int("EMA_SCREENER_SMTP_PORT", 587),
    user=_env("EMA_SCREENER_SMTP_USER"),
    password=os.getenv("EMA_SCREENER_SMTP_PASS", ""),
    from_email=_env("EMA_SCREENER_SMTP_FROM"),
    to_email=_env("EMA_SCREENER_REPORT_EMAIL_TO"),
    timeout_sec=_env_int("EMA_SCREENER_SMTP_TIMEOUT_SEC", 30, minimum=5),
    security=security,
  )
