import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

import requests

from marketlens.errors import DataUnavailableError
from marketlens.models.job import Period

logger = logging.getLogger(__name__)

# Yahoo chart API range parameter per accepted lookback
YAHOO_RANGES = {
    Period.ONE_MONTH: "1mo",
    Period.THREE_MONTHS: "3mo",
    Period.SIX_MONTHS: "6mo",
    Period.ONE_YEAR: "1y",
    Period.FIVE_YEARS: "5y",
}


@dataclass(frozen=True)
class PricePoint:
    date: str       # YYYY-MM-DD
    close: float


# ---------------------------
# Yahoo v8 chart parsing
# ---------------------------

def _parse_chart(symbol: str, data: dict) -> List[PricePoint]:
    """
    Parse a Yahoo v8 chart payload into chronological daily closes.

    Shape: {"chart": {"result": [{"timestamp": [...],
            "indicators": {"quote": [{"close": [...]}]}}], "error": null}}
    Points with a null close (halts, partial sessions) are skipped.
    """
    chart = data.get("chart") or {}
    error = chart.get("error")
    if error:
        description = error.get("description") if isinstance(error, dict) else error
        raise DataUnavailableError(f"Yahoo Finance error for {symbol}: {description}")

    results = chart.get("result") or []
    if not results:
        raise DataUnavailableError(f"No market data returned for {symbol}")

    result = results[0]
    timestamps = result.get("timestamp") or []
    try:
        closes = result["indicators"]["quote"][0].get("close") or []
    except (KeyError, IndexError, TypeError) as e:
        raise DataUnavailableError(f"Malformed market data for {symbol}") from e

    prices = []
    for ts, close in zip(timestamps, closes):
        if close is None:
            continue
        day = datetime.fromtimestamp(int(ts), tz=timezone.utc).date().isoformat()
        prices.append(PricePoint(date=day, close=float(close)))

    prices.sort(key=lambda p: p.date)
    return prices


class YahooFinanceFetcher:
    """Fetches daily close prices from the Yahoo Finance chart API."""

    def __init__(self, base_url: str, timeout: float = 10, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        # an injected session is used as-is; otherwise each worker thread gets its own
        self._shared_session = session
        self._local = threading.local()

    @property
    def session(self) -> requests.Session:
        if self._shared_session is not None:
            return self._shared_session
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            session.headers["User-Agent"] = "Mozilla/5.0"
            self._local.session = session
        return session

    @classmethod
    def from_config(cls, config) -> "YahooFinanceFetcher":
        return cls(
            base_url=config["YAHOO_FINANCE_BASE_URL"],
            timeout=config.get("MARKET_DATA_TIMEOUT", 10),
        )

    def fetch(self, symbol: str, range_: str) -> List[PricePoint]:
        """
        Return the ordered (date, close) series for symbol over range_.
        Raises DataUnavailableError on any transport, HTTP or payload problem,
        including an empty series.
        """
        period = Period.parse(range_)
        url = f"{self.base_url}/v8/finance/chart/{symbol}"
        params = {"interval": "1d", "range": YAHOO_RANGES[period]}

        logger.info("Fetching market data: %s range=%s", url, params["range"])
        try:
            resp = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise DataUnavailableError(f"Failed to fetch market data for {symbol}: {e}") from e

        if resp.status_code != 200:
            logger.error("Yahoo Finance returned status %s for %s", resp.status_code, symbol)
            raise DataUnavailableError(
                f"Failed to fetch market data for {symbol}: HTTP {resp.status_code}"
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise DataUnavailableError(f"Invalid market data response for {symbol}") from e

        prices = _parse_chart(symbol, data)
        if not prices:
            raise DataUnavailableError(f"No price data available for {symbol}")

        logger.info("Parsed %d price points for %s", len(prices), symbol)
        return prices
