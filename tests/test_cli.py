from datetime import date, timedelta
from unittest import mock

import pytest
from click.testing import CliRunner

from ema_screener.exceptions import DeliveryError
from ema_screener.main import cli
from ema_screener.report import parse_table


@pytest.fixture
def price_dir(tmp_path, write_price_csv):
  start = date(2024, 1, 1)

  def rows(last_low, last_close):
    out = [((start + timedelta(days=i)).isoformat(), 10, 10.5, 9.5, 10, 500) for i in range(59)]
    out.append(((start + timedelta(days=59)).isoformat(), 10, 11.5, last_low, last_close, 900))
    return out

  write_price_csv("A", rows(9.0, 11.0))
  write_price_csv("B", rows(10.5, 11.0))
  return tmp_path


@pytest.fixture
def runner(monkeypatch):
  for key in ("EMA_SCREENER_SYMBOLS", "EMA_SCREENER_OUTPUT_DIR", "EMA_SCREENER_CSV_DIR"):
    monkeypatch.delenv(key, raising=False)
  return CliRunner()


def _run_args(price_dir, out_dir, *extra):
  return [
    "run",
    "--provider", "csv",
    "--data-dir", str(price_dir),
    "--symbol", "A,B",
    "--output-dir", str(out_dir),
    "--run-date", "2024-02-29",
    "--base-name", "screen",
    *extra,
  ]  # fmt: skip


def test_run_writes_dated_report(runner, price_dir, tmp_path):
  out_dir = tmp_path / "out"
  result = runner.invoke(cli, _run_args(price_dir, out_dir))

  assert result.exit_code == 0, result.output
  report_path = out_dir / "screen_2024-02-29.csv"
  assert report_path.is_file()
  rows = parse_table(report_path.read_text(encoding="utf-8"))
  assert [row["Symbol"] for row in rows] == ["A"]
  assert rows[0]["Qualifies"] == "YES"


def test_run_with_symbols_from_env(runner, price_dir, tmp_path, monkeypatch):
  monkeypatch.setenv("EMA_SCREENER_SYMBOLS", "B")
  out_dir = tmp_path / "out"
  result = runner.invoke(
    cli,
    ["run", "--provider", "csv", "--data-dir", str(price_dir), "--output-dir", str(out_dir), "--run-date", "2024-02-29"],
  )

  assert result.exit_code == 0, result.output
  text = (out_dir / "indian_stocks_50ema_analysis_2024-02-29.csv").read_text(encoding="utf-8")
  assert parse_table(text) == []


def test_run_sends_email_when_requested(runner, price_dir, tmp_path):
  with mock.patch("ema_screener.main.send_report_email") as send:
    result = runner.invoke(cli, _run_args(price_dir, tmp_path / "out", "--email", "--recipient", "me@example.com"))

  assert result.exit_code == 0, result.output
  message, smtp = send.call_args.args
  assert message["To"] == "me@example.com"
  assert "1 of 2 qualifying" in message["Subject"]


def test_delivery_failure_keeps_report(runner, price_dir, tmp_path):
  out_dir = tmp_path / "out"
  with mock.patch("ema_screener.main.send_report_email", side_effect=DeliveryError("refused")):
    result = runner.invoke(cli, _run_args(price_dir, out_dir, "--email"))

  assert result.exit_code == 2
  assert (out_dir / "screen_2024-02-29.csv").is_file()


def test_unknown_provider_exits_with_error(runner, tmp_path):
  result = runner.invoke(cli, ["run", "--provider", "bloomberg", "--output-dir", str(tmp_path)])
  assert result.exit_code == 1


def test_bad_run_date(runner, price_dir, tmp_path):
  result = runner.invoke(
    cli,
    ["run", "--provider", "csv", "--data-dir", str(price_dir), "--run-date", "29/02/2024"],
  )
  assert result.exit_code == 1


def test_ema_command(runner, price_dir):
  result = runner.invoke(cli, ["ema", "--provider", "csv", "--data-dir", str(price_dir), "--ticker", "a"])

  assert result.exit_code == 0, result.output
  assert "EMA50=10.04" in result.output
  assert "QUALIFIES" in result.output


def test_providers_command(runner):
  result = runner.invoke(cli, ["providers"])
  assert result.exit_code == 0
  assert "yfinance\tfree" in result.output
