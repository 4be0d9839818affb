from datetime import date

import pytest
from pydantic import ValidationError

from ema_screener.models import AnalysisReport, PriceHistory, QualificationRecord


def test_history_must_be_strictly_ascending(make_bar):
  bars = (make_bar(day=date(2024, 1, 2)), make_bar(day=date(2024, 1, 1)))
  with pytest.raises(ValidationError):
    PriceHistory(symbol="TEST", bars=bars)


def test_history_rejects_duplicate_dates(make_bar):
  bars = (make_bar(day=date(2024, 1, 2)), make_bar(day=date(2024, 1, 2)))
  with pytest.raises(ValidationError):
    PriceHistory(symbol="TEST", bars=bars)


def test_history_accessors(make_history):
  history = make_history(closes=[1.0, 2.0, 3.0])
  assert len(history) == 3
  assert history.closes == [1.0, 2.0, 3.0]
  assert history.latest.close == 3.0
  assert PriceHistory(symbol="EMPTY").latest is None


def test_history_gaps(make_history):
  history = make_history(closes=[1.0, 2.0, 3.0], step_days=7)
  assert history.gaps(5) == [
    (date(2024, 1, 1), date(2024, 1, 8)),
    (date(2024, 1, 8), date(2024, 1, 15)),
  ]
  assert history.gaps(7) == []


@pytest.mark.parametrize("raw, expected", [(None, 0), (float("nan"), 0), (1234.0, 1234)])
def test_missing_volume_is_zero(make_bar, raw, expected):
  assert make_bar(volume=raw).volume == expected


def test_bars_are_immutable(make_bar):
  bar = make_bar()
  with pytest.raises(ValidationError):
    bar.close = 12.0


def test_report_counts(make_bar):
  record = QualificationRecord(bar=make_bar(low=9.0, close=11.0), ema50=10.0, qualifies=True)
  report = AnalysisReport(total_stocks=3, records=(record,))
  assert report.qualifying_stocks == 1
  assert report.total_stocks >= report.qualifying_stocks


def test_report_rejects_non_qualifying_records(make_bar):
  record = QualificationRecord(bar=make_bar(low=10.0, close=11.0), ema50=10.0, qualifies=False)
  with pytest.raises(ValidationError):
    AnalysisReport(total_stocks=1, records=(record,))


def test_report_rejects_inconsistent_totals(make_bar):
  record = QualificationRecord(bar=make_bar(low=9.0, close=11.0), ema50=10.0, qualifies=True)
  with pytest.raises(ValidationError):
    AnalysisReport(total_stocks=0, records=(record,))
