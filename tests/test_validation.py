import pytest

from marketlens.errors import ValidationError
from marketlens.models.job import JobStatus, Period
from marketlens.services.orchestrator import stage_for, validate_request


@pytest.mark.parametrize("symbol,range_,expected", [
    ("AAPL", "1Y", ("AAPL", "1Y")),
    ("  msft ", "3m", ("MSFT", "3M")),
    ("brk.b", "5Y", ("BRK.B", "5Y")),
    ("RDS-A", "1M", ("RDS-A", "1M")),
])
def test_validate_request_normalizes(symbol, range_, expected):
    assert validate_request(symbol, range_) == expected


@pytest.mark.parametrize("symbol", ["", "   ", None, "TOOLONGSYMB", "1ABC", "AA PL", "AAPL$"])
def test_validate_request_rejects_symbol(symbol):
    with pytest.raises(ValidationError) as exc:
        validate_request(symbol, "1Y")
    assert [d["field"] for d in exc.value.details] == ["symbol"]


@pytest.mark.parametrize("range_", ["2Y", "", None, "1D"])
def test_validate_request_rejects_range(range_):
    with pytest.raises(ValidationError) as exc:
        validate_request("AAPL", range_)
    assert [d["field"] for d in exc.value.details] == ["range"]
    assert "1M, 3M, 6M, 1Y, 5Y" in exc.value.details[0]["issue"]


def test_validate_request_reports_every_field():
    with pytest.raises(ValidationError) as exc:
        validate_request("", "10Y")
    assert {d["field"] for d in exc.value.details} == {"symbol", "range"}


def test_period_parse():
    assert Period.parse(" 6m ") is Period.SIX_MONTHS
    with pytest.raises(ValueError):
        Period.parse("7M")


def test_terminal_statuses():
    assert not JobStatus.RUNNING.is_terminal
    assert JobStatus.COMPLETED.is_terminal
    assert JobStatus.FAILED.is_terminal


@pytest.mark.parametrize("progress,stage", [
    (0, "Queued"),
    (20, "Fetching market data"),
    (60, "Calculating analytics"),
    (90, "Saving results"),
    (100, "Done"),
])
def test_stage_for(progress, stage):
    assert stage_for(progress) == stage
