import smtplib
from datetime import date
from unittest import mock

import pytest

from ema_screener.config import SmtpConfig, smtp_config
from ema_screener.delivery import build_report_email, build_report_subject, send_report_email
from ema_screener.exceptions import DeliveryError
from ema_screener.models import AnalysisReport, QualificationRecord
from ema_screener.report import to_table

RUN_DATE = date(2024, 3, 1)


@pytest.fixture
def report(make_bar):
  record = QualificationRecord(bar=make_bar("TCS", low=9.0, close=11.0), ema50=10.0, qualifies=True)
  return AnalysisReport(total_stocks=2, records=(record,))


@pytest.fixture
def smtp():
  return SmtpConfig(
    host="smtp.example.com",
    port=587,
    user="bot",
    password="secret",
    from_email="bot@example.com",
    to_email="desk@example.com",
  )


def test_subject_states_counts(report):
  assert build_report_subject(report, RUN_DATE) == (
    "[ema-screener] 50 EMA report | 2024-03-01 | 1 of 2 qualifying"
  )


def test_email_has_bodies_and_csv_attachment(report):
  csv_text = to_table(report)
  message = build_report_email(
    report, csv_text, "report_2024-03-01.csv", RUN_DATE, "bot@example.com", "desk@example.com"
  )

  assert message["To"] == "desk@example.com"
  text_part = message.get_body(preferencelist=("plain",))
  html_part = message.get_body(preferencelist=("html",))
  assert "Total Stocks Analyzed: 2" in text_part.get_content()
  assert "Qualifying Symbols: TCS" in text_part.get_content()
  assert "<strong>Qualifying Stocks:</strong> 1" in html_part.get_content()

  attachments = list(message.iter_attachments())
  assert len(attachments) == 1
  assert attachments[0].get_filename() == "report_2024-03-01.csv"
  assert attachments[0].get_content_type() == "text/csv"


def test_zero_qualifying_report_is_still_deliverable():
  empty = AnalysisReport(total_stocks=3)
  message = build_report_email(
    empty, to_table(empty), "r.csv", RUN_DATE, "bot@example.com", "desk@example.com"
  )
  assert "0 of 3 qualifying" in message["Subject"]
  assert "Qualifying Stocks: 0" in message.get_body(preferencelist=("plain",)).get_content()


def test_send_uses_starttls_and_login(report, smtp):
  message = build_report_email(report, to_table(report), "r.csv", RUN_DATE, smtp.from_email, smtp.to_email)
  with mock.patch("ema_screener.delivery.smtplib.SMTP") as smtp_cls:
    server = smtp_cls.return_value.__enter__.return_value
    send_report_email(message, smtp)

  smtp_cls.assert_called_once_with("smtp.example.com", 587, timeout=30)
  server.starttls.assert_called_once()
  server.login.assert_called_once_with("bot", "secret")
  server.send_message.assert_called_once_with(message)


def test_send_failure_raises_delivery_error(report, smtp):
  message = build_report_email(report, to_table(report), "r.csv", RUN_DATE, smtp.from_email, smtp.to_email)
  with mock.patch("ema_screener.delivery.smtplib.SMTP") as smtp_cls:
    smtp_cls.return_value.__enter__.return_value.send_message.side_effect = (
      smtplib.SMTPRecipientsRefused({})
    )
    with pytest.raises(DeliveryError):
      send_report_email(message, smtp)


def test_unconfigured_smtp_is_rejected(report):
  message = build_report_email(report, to_table(report), "r.csv", RUN_DATE, "", "")
  with pytest.raises(DeliveryError, match="EMA_SCREENER_SMTP_HOST"):
    send_report_email(message, SmtpConfig())


def test_smtp_config_from_env(monkeypatch):
  monkeypatch.setenv("EMA_SCREENER_SMTP_HOST", " mail.example.com ")
  monkeypatch.setenv("EMA_SCREENER_SMTP_PORT", "not-a-port")
  monkeypatch.setenv("EMA_SCREENER_SMTP_SECURITY", "SSL")
  monkeypatch.setenv("EMA_SCREENER_SMTP_TIMEOUT_SEC", "1")

  cfg = smtp_config()

  assert cfg.host == "mail.example.com"
  assert cfg.port == 587
  assert cfg.security == "ssl"
  assert cfg.timeout_sec == 5
