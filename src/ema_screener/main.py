from __future__ import annotations

import functools
import logging
import sys
from datetime import date

import click
from dotenv import load_dotenv

from ema_screener.config import DEFAULT_SYMBOLS, output_dir_from_env, smtp_config, symbols_from_env
from ema_screener.delivery import build_report_email, send_report_email
from ema_screener.exceptions import DeliveryError, ScreenerError
from ema_screener.factory import ProviderFactory, describe_providers
from ema_screener.indicators import EMA_PERIOD
from ema_screener.pipeline import (
  DEFAULT_LOOKBACK_DAYS,
  DEFAULT_MAX_GAP_DAYS,
  AnalysisConfig,
  GapPolicy,
  analyze,
  analyze_symbol,
  get_fetchers,
)
from ema_screener.providers.polygon import US_ONLY_HINT
from ema_screener.report import DEFAULT_BASE_NAME, report_filename, summarize, to_table
from ema_screener.utils.savers import save_report

# --- Setup ---
logging.basicConfig(
  level=logging.INFO,
  format="%(asctime)s - %(levelname)s - %(message)s",
  stream=sys.stdout,
)

# --- Error Handling Decorator ---


def cli_error_handler(func):
  """Decorator to handle common CLI errors, log them, and exit."""

  @functools.wraps(func)
  def wrapper(*args, **kwargs):
    try:
      return func(*args, **kwargs)
    except (ValueError, TypeError, ScreenerError) as e:
      logging.error(f"Error: {e}")
      sys.exit(1)
    except Exception as e:
      logging.error(f"An unexpected error occurred: {e}", exc_info=True)
      sys.exit(1)

  return wrapper


# --- Private Helpers ---


def _create_provider(provider_name: str, data_dir: str | None):
  overrides = {"data_dir": data_dir} if data_dir else {}
  return ProviderFactory().create(provider_name, **overrides)


def _parse_run_date(value: str | None) -> date:
  if not value:
    return date.today()
  try:
    return date.fromisoformat(value)
  except ValueError as e:
    raise ValueError(f"Invalid --run-date '{value}', expected YYYY-MM-DD") from e


# --- CLI Commands ---


@click.group()
@click.option("--verbose", is_flag=True, help="Enable debug logging.")
def cli(verbose):
  """Screens stocks whose latest bar dipped below and closed above the 50 EMA."""
  load_dotenv()
  if verbose:
    logging.getLogger().setLevel(logging.DEBUG)


@cli.command()
def providers():
  """List the available history providers."""
  for name, tier in describe_providers().items():
    click.echo(f"{name}\t{tier.lower()}")


@cli.command()
@click.option(
  "--provider", default="yfinance", show_default=True, help="The history provider to use."
)
@click.option(
  "--symbol",
  "symbols",
  multiple=True,
  help="Symbol(s) to screen. Defaults to EMA_SCREENER_SYMBOLS or the built-in universe.",
)
@click.option("--data-dir", default=None, help="Directory of <SYMBOL>.csv files (csv provider).")
@click.option("--ema-period", type=int, default=EMA_PERIOD, show_default=True)
@click.option(
  "--min-history",
  type=int,
  default=EMA_PERIOD,
  show_default=True,
  help="Minimum number of daily bars required to analyze a symbol.",
)
@click.option("--lookback-days", type=int, default=DEFAULT_LOOKBACK_DAYS, show_default=True)
@click.option(
  "--delay",
  type=float,
  default=None,
  help="Delay in seconds between provider requests. Defaults to provider-specific value.",
)
@click.option("--workers", type=int, default=1, show_default=True, help="Parallel symbol workers.")
@click.option("--retries", type=int, default=0, show_default=True, help="Retries per symbol.")
@click.option(
  "--gap-policy",
  type=click.Choice([p.value for p in GapPolicy]),
  default=GapPolicy.TOLERATE.value,
  show_default=True,
  help="How to treat histories with missing trading days.",
)
@click.option("--max-gap-days", type=int, default=DEFAULT_MAX_GAP_DAYS, show_default=True)
@click.option("--base-name", default=DEFAULT_BASE_NAME, show_default=True)
@click.option("--output-dir", default=None, help="Where to write the CSV (default: EMA_SCREENER_OUTPUT_DIR or ./csv).")
@click.option("--run-date", default=None, help="Date used in the report filename (YYYY-MM-DD).")
@click.option("--email/--no-email", default=False, show_default=True, help="Mail the report.")
@click.option("--recipient", default=None, help="Overrides EMA_SCREENER_REPORT_EMAIL_TO.")
@cli_error_handler
def run(
  provider,
  symbols,
  data_dir,
  ema_period,
  min_history,
  lookback_days,
  delay,
  workers,
  retries,
  gap_policy,
  max_gap_days,
  base_name,
  output_dir,
  run_date,
  email,
  recipient,
):
  """Run the daily 50 EMA screen and write the CSV report."""
  logging.info(f"Executing 'run' for provider: {provider}")

  day = _parse_run_date(run_date)
  filename = report_filename(base_name, day)
  data_provider = _create_provider(provider, data_dir)
  config = AnalysisConfig(
    ema_period=ema_period,
    min_history_length=min_history,
    lookback_days=lookback_days,
    delay=data_provider.default_delay if delay is None else delay,
    max_workers=workers,
    retries=retries,
    gap_policy=GapPolicy(gap_policy),
    max_gap_days=max_gap_days,
  )

  universe = list(symbols) if symbols else symbols_from_env()
  if provider == "polygon" and universe == list(DEFAULT_SYMBOLS):
    logging.warning(f"Screening the default NSE/BSE universe with polygon: {US_ONLY_HINT}")
  report = analyze(universe, data_provider, config=config)
  csv_text = to_table(report)
  path = save_report(csv_text, filename, output_dir or output_dir_from_env())

  summary = summarize(report)
  logging.info(
    f"{summary['qualifying_stocks']} of {summary['total_stocks']} stocks qualify "
    f"({summary['skipped']} skipped); report saved to {path}"
  )
  click.echo(str(path))

  if not email:
    return

  smtp = smtp_config()
  if recipient:
    smtp.to_email = recipient
  message = build_report_email(report, csv_text, filename, day, smtp.from_email, smtp.to_email)
  try:
    send_report_email(message, smtp)
  except DeliveryError as e:
    # The report itself is valid and already on disk.
    logging.error(f"Report saved to {path} but could not be delivered: {e}")
    sys.exit(2)


@cli.command()
@click.option(
  "--provider", default="yfinance", show_default=True, help="The history provider to use."
)
@click.option("--ticker", required=True, help="The stock ticker symbol (e.g., RELIANCE).")
@click.option("--data-dir", default=None, help="Directory of <SYMBOL>.csv files (csv provider).")
@click.option("--ema-period", type=int, default=EMA_PERIOD, show_default=True)
@click.option("--lookback-days", type=int, default=DEFAULT_LOOKBACK_DAYS, show_default=True)
@cli_error_handler
def ema(provider, ticker, data_dir, ema_period, lookback_days):
  """Show the latest bar, current EMA and qualification for one ticker."""
  logging.info(f"Executing 'ema' for {ticker} on provider: {provider}")

  data_provider = _create_provider(provider, data_dir)
  config = AnalysisConfig(
    ema_period=ema_period, min_history_length=ema_period, lookback_days=lookback_days
  )
  record = analyze_symbol(ticker.strip().upper(), *get_fetchers(data_provider), config=config)
  bar = record.bar
  click.echo(
    f"{bar.symbol} ({bar.exchange}) {bar.date.isoformat()} "
    f"O={bar.open:.2f} H={bar.high:.2f} L={bar.low:.2f} C={bar.close:.2f} V={bar.volume} "
    f"EMA{ema_period}={record.ema50:.2f} low {record.low_vs_ema.lower()}, "
    f"close {record.close_vs_ema.lower()} -> {'QUALIFIES' if record.qualifies else 'does not qualify'}"
  )


if __name__ == "__main__":
  cli()
