"""
Analytics over an ordered daily close-price series.

Pure functions, no I/O. Too-short inputs give empty series (or neutral
scalars), never an exception.
"""
import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Sequence

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from marketlens.services.market_data import PricePoint

logger = logging.getLogger(__name__)

TRADING_DAYS = 252
VOLATILITY_WINDOW = 30
RSI_PERIOD = 14
NEUTRAL_RSI = 50.0


@dataclass(frozen=True)
class SeriesPoint:
    date: str
    value: float


@dataclass(frozen=True)
class Summary:
    cumulative_return: float
    max_drawdown: float
    latest_volatility: float
    latest_rsi: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "cumulativeReturn": self.cumulative_return,
            "maxDrawdown": self.max_drawdown,
            "latestVolatility": self.latest_volatility,
            "latestRSI": self.latest_rsi,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Summary":
        return cls(
            cumulative_return=data["cumulativeReturn"],
            max_drawdown=data["maxDrawdown"],
            latest_volatility=data["latestVolatility"],
            latest_rsi=data["latestRSI"],
        )


@dataclass(frozen=True)
class ChartSeries:
    prices: List[SeriesPoint] = field(default_factory=list)
    returns: List[SeriesPoint] = field(default_factory=list)
    volatility: List[SeriesPoint] = field(default_factory=list)
    rsi: List[SeriesPoint] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[dict]]:
        return {
            "prices": [asdict(p) for p in self.prices],
            "returns": [asdict(p) for p in self.returns],
            "volatility": [asdict(p) for p in self.volatility],
            "rsi": [asdict(p) for p in self.rsi],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ChartSeries":
        def points(key):
            return [SeriesPoint(date=p["date"], value=p["value"]) for p in data.get(key) or []]

        return cls(
            prices=points("prices"),
            returns=points("returns"),
            volatility=points("volatility"),
            rsi=points("rsi"),
        )


# ---------------------------
# Formulas
# ---------------------------

def daily_returns(prices: Sequence[float]) -> List[float]:
    arr = np.asarray(prices, dtype=float)
    if arr.size < 2:
        return []
    return (arr[1:] / arr[:-1] - 1).tolist()


def cumulative_return(prices: Sequence[float]) -> float:
    if len(prices) < 2:
        return 0.0
    return float(prices[-1] / prices[0] - 1)


def max_drawdown(prices: Sequence[float]) -> float:
    """Most negative decline from the running peak; 0.0 for a non-decreasing series."""
    arr = np.asarray(prices, dtype=float)
    if arr.size == 0:
        return 0.0
    peaks = np.maximum.accumulate(arr)
    return float(min(0.0, (arr / peaks - 1).min()))


def rolling_volatility(returns: Sequence[float], window: int = VOLATILITY_WINDOW) -> List[float]:
    """
    Annualized sample standard deviation of returns[i-window:i] for every i in
    [window, len(returns)). Length is len(returns) - window, or empty.
    """
    arr = np.asarray(returns, dtype=float)
    if arr.size <= window:
        return []
    windows = sliding_window_view(arr[:-1], window)
    return (windows.std(axis=1, ddof=1) * math.sqrt(TRADING_DAYS)).tolist()


def rsi(prices: Sequence[float], period: int = RSI_PERIOD) -> List[float]:
    """
    Relative Strength Index over changes[i-period:i] for every i in
    [period, len(changes)). RSI is 100 when the window has no losses.
    """
    arr = np.asarray(prices, dtype=float)
    changes = np.diff(arr)
    if changes.size <= period:
        return []

    gains = np.where(changes > 0, changes, 0.0)
    losses = np.where(changes < 0, -changes, 0.0)
    avg_gain = sliding_window_view(gains[:-1], period).mean(axis=1)
    avg_loss = sliding_window_view(losses[:-1], period).mean(axis=1)

    values = np.full(avg_gain.shape, 100.0)
    has_loss = avg_loss > 0
    rs = avg_gain[has_loss] / avg_loss[has_loss]
    values[has_loss] = 100.0 - 100.0 / (1.0 + rs)
    return values.tolist()


# ---------------------------
# Report builders
# ---------------------------

def _closes(prices: Sequence[PricePoint]) -> List[float]:
    return [p.close for p in prices]


def summarize(prices: Sequence[PricePoint]) -> Summary:
    closes = _closes(prices)
    vol = rolling_volatility(daily_returns(closes))
    rsi_values = rsi(closes)

    summary = Summary(
        cumulative_return=cumulative_return(closes),
        max_drawdown=max_drawdown(closes),
        latest_volatility=vol[-1] if vol else 0.0,
        latest_rsi=rsi_values[-1] if rsi_values else NEUTRAL_RSI,
    )
    logger.info(
        "Analytics calculated - return=%.4f drawdown=%.4f volatility=%.4f rsi=%.2f",
        summary.cumulative_return, summary.max_drawdown,
        summary.latest_volatility, summary.latest_rsi,
    )
    return summary


def build_series(prices: Sequence[PricePoint]) -> ChartSeries:
    """
    Chart series aligned on price dates. Each derived point carries the date of
    the price that closes its window; returns and volatility are in percent.
    """
    closes = _closes(prices)
    returns = daily_returns(closes)
    vol = rolling_volatility(returns)
    rsi_values = rsi(closes)

    return ChartSeries(
        prices=[SeriesPoint(p.date, p.close) for p in prices],
        returns=[SeriesPoint(prices[i + 1].date, r * 100) for i, r in enumerate(returns)],
        volatility=[
            SeriesPoint(prices[i + VOLATILITY_WINDOW].date, v * 100) for i, v in enumerate(vol)
        ],
        rsi=[SeriesPoint(prices[i + RSI_PERIOD].date, v) for i, v in enumerate(rsi_values)],
    )
