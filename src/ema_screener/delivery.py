from __future__ import annotations

import html
import logging
import smtplib
import ssl
from datetime import date
from email.message import EmailMessage

from ema_screener.config import SmtpConfig
from ema_screener.exceptions import DeliveryError
from ema_screener.models import AnalysisReport
from ema_screener.report import COLUMNS


def build_report_subject(report: AnalysisReport, run_date: date) -> str:
  return (
    f"[ema-screener] 50 EMA report | {run_date.isoformat()} | "
    f"{report.qualifying_stocks} of {report.total_stocks} qualifying"
  )


def build_report_bodies(report: AnalysisReport, filename: str, run_date: date) -> tuple[str, str]:
  """Returns the (plain text, html) bodies summarizing a run."""
  day = run_date.isoformat()
  text_lines = [
    f"Stock Analysis Report - {day}",
    "",
    "Your daily stock analysis based on the 50 EMA criteria has been completed.",
    "",
    "ANALYSIS SUMMARY:",
    f"- Total Stocks Analyzed: {report.total_stocks}",
    f"- Qualifying Stocks: {report.qualifying_stocks}",
    f"- Skipped Symbols: {len(report.skipped)}",
    f"- Analysis Date: {day}",
    "",
    "SELECTION CRITERIA:",
    "- Low price is below the 50-day Exponential Moving Average (EMA)",
    "- Close price is above the 50-day Exponential Moving Average (EMA)",
    "",
    f"The detailed analysis is attached as {filename}.",
    f"Columns: {', '.join(COLUMNS)}",
    "",
    "Please do your own research before making investment decisions.",
  ]
  if report.qualifying_stocks:
    text_lines.insert(
      7, "- Qualifying Symbols: " + ", ".join(record.symbol for record in report.records)
    )

  esc = html.escape
  symbols_item = (
    f"<li><strong>Qualifying Symbols:</strong> {esc(', '.join(r.symbol for r in report.records))}</li>"
    if report.qualifying_stocks
    else ""
  )
  html_body = f"""
<h2>Stock Analysis Report - {esc(day)}</h2>
<p>Your daily stock analysis based on the 50 EMA criteria has been completed.</p>
<h3>Analysis Summary</h3>
<ul>
  <li><strong>Total Stocks Analyzed:</strong> {report.total_stocks}</li>
  <li><strong>Qualifying Stocks:</strong> {report.qualifying_stocks}</li>
  {symbols_item}
  <li><strong>Skipped Symbols:</strong> {len(report.skipped)}</li>
  <li><strong>Analysis Date:</strong> {esc(day)}</li>
</ul>
<h3>Selection Criteria</h3>
<ul>
  <li><strong>Low price</strong> is below the 50-day Exponential Moving Average (EMA)</li>
  <li><strong>Close price</strong> is above the 50-day Exponential Moving Average (EMA)</li>
</ul>
<p>The detailed analysis is attached as <strong>{esc(filename)}</strong>.</p>
<hr>
<p style="font-size: 12px; color: #666;"><em>Please do your own research before making investment decisions.</em></p>
"""
  return "\n".join(text_lines), html_body


def build_report_email(
  report: AnalysisReport,
  csv_text: str,
  filename: str,
  run_date: date,
  sender: str,
  recipient: str,
) -> EmailMessage:
  text_body, html_body = build_report_bodies(report, filename, run_date)

  message = EmailMessage()
  message["Subject"] = build_report_subject(report, run_date)
  message["From"] = sender
  message["To"] = recipient
  message.set_content(text_body)
  message.add_alternative(html_body, subtype="html")
  message.add_attachment(
    csv_text.encode("utf-8"), maintype="text", subtype="csv", filename=filename
  )
  return message


def send_report_email(message: EmailMessage, smtp: SmtpConfig) -> None:
  """Sends *message* over SMTP; any transport failure raises DeliveryError."""
  missing = smtp.missing()
  if missing:
    raise DeliveryError(f"SMTP is not configured, missing: {', '.join(missing)}")

  try:
    if smtp.security == "ssl":
      with smtplib.SMTP_SSL(
        smtp.host, smtp.port, timeout=smtp.timeout_sec, context=ssl.create_default_context()
      ) as server:
        if smtp.user:
          server.login(smtp.user, smtp.password)
        server.send_message(message)
    else:
      with smtplib.SMTP(smtp.host, smtp.port, timeout=smtp.timeout_sec) as server:
        server.ehlo()
        if smtp.security == "starttls":
          server.starttls(context=ssl.create_default_context())
          server.ehlo()
        if smtp.user:
          server.login(smtp.user, smtp.password)
        server.send_message(message)
  except (smtplib.SMTPException, OSError) as e:
    raise DeliveryError(f"Email send failed: {e}") from e

  logging.info(f"Report email sent to {message['To']}")
