from datetime import datetime, timezone

import pytest
import requests

from marketlens.errors import DataUnavailableError
from marketlens.services.market_data import YahooFinanceFetcher


def _ts(day):
    return int(datetime.fromisoformat(day).replace(hour=14, tzinfo=timezone.utc).timestamp())


def _chart(days, closes):
    return {
        "chart": {
            "result": [{
                "timestamp": [_ts(d) for d in days],
                "indicators": {"quote": [{"close": closes}]},
            }],
            "error": None,
        }
    }


class FakeResponse:
    def __init__(self, status_code=200, payload=None, invalid_json=False):
        self.status_code = status_code
        self._payload = payload
        self._invalid_json = invalid_json

    def json(self):
        if self._invalid_json:
            raise ValueError("not json")
        return self._payload


class FakeSession:
    def __init__(self, response=None, exc=None):
        self.headers = {}
        self.response = response
        self.exc = exc
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params, timeout))
        if self.exc is not None:
            raise self.exc
        return self.response


def _fetcher(session):
    return YahooFinanceFetcher("https://example.test/", timeout=3, session=session)


def test_fetch_parses_daily_closes():
    session = FakeSession(FakeResponse(payload=_chart(
        ["2025-03-03", "2025-03-04", "2025-03-05"], [101.5, None, 103.25]
    )))

    prices = _fetcher(session).fetch("AAPL", "1Y")

    assert [(p.date, p.close) for p in prices] == [("2025-03-03", 101.5), ("2025-03-05", 103.25)]
    url, params, timeout = session.calls[0]
    assert url == "https://example.test/v8/finance/chart/AAPL"
    assert params == {"interval": "1d", "range": "1y"}
    assert timeout == 3


@pytest.mark.parametrize("range_,expected", [("1M", "1mo"), ("6M", "6mo"), ("5Y", "5y")])
def test_fetch_maps_range(range_, expected):
    session = FakeSession(FakeResponse(payload=_chart(["2025-03-03"], [10.0])))
    _fetcher(session).fetch("MSFT", range_)
    assert session.calls[0][1]["range"] == expected


def test_http_error_is_data_unavailable():
    session = FakeSession(FakeResponse(status_code=404, payload={}))
    with pytest.raises(DataUnavailableError, match="HTTP 404"):
        _fetcher(session).fetch("NOPE", "1Y")


def test_transport_error_is_data_unavailable():
    session = FakeSession(exc=requests.ConnectionError("connection refused"))
    with pytest.raises(DataUnavailableError, match="connection refused"):
        _fetcher(session).fetch("AAPL", "1Y")


def test_chart_error_is_data_unavailable():
    payload = {"chart": {"result": None, "error": {"code": "Not Found", "description": "No data found"}}}
    with pytest.raises(DataUnavailableError, match="No data found"):
        _fetcher(FakeSession(FakeResponse(payload=payload))).fetch("ZZZZ", "1Y")


def test_empty_series_is_data_unavailable():
    payload = _chart(["2025-03-03", "2025-03-04"], [None, None])
    with pytest.raises(DataUnavailableError):
        _fetcher(FakeSession(FakeResponse(payload=payload))).fetch("AAPL", "1M")


def test_malformed_payload_is_data_unavailable():
    payload = {"chart": {"result": [{"timestamp": [1], "indicators": {}}], "error": None}}
    with pytest.raises(DataUnavailableError):
        _fetcher(FakeSession(FakeResponse(payload=payload))).fetch("AAPL", "1M")


def test_invalid_json_is_data_unavailable():
    session = FakeSession(FakeResponse(invalid_json=True))
    with pytest.raises(DataUnavailableError):
        _fetcher(session).fetch("AAPL", "1M")


def test_each_thread_gets_its_own_session():
    import threading

    fetcher = YahooFinanceFetcher("https://example.test")
    sessions = []
    t = threading.Thread(target=lambda: sessions.append(fetcher.session))
    t.start()
    t.join(timeout=5)

    assert fetcher.session is fetcher.session
    assert isinstance(sessions[0], requests.Session)
    assert sessions[0] is not fetcher.session


def test_injected_session_is_shared():
    session = FakeSession()
    assert _fetcher(session).session is session
