"""
Technical indicators for FinBot.

Every function here is pure: it takes a chronological list of closing prices
(oldest first) and returns a number or a label. Nothing is cached and nothing
is mutated, so a fresh TechnicalIndicators record is built for each quote
snapshot.

Insufficient data is never an error. Each indicator has its own sentinel:
- SMA: None (callers must not read it as zero)
- RSI: the neutral constant (50 by default)
- Momentum / volatility: 0
- Trend strength: 'insufficient_data'

Example usage:
    closes = [100, 102, 101, 105, 108]
    calculate_sma(closes, 3)      # 104.67
    calculate_rsi(closes)         # 50 (not enough data for 14 periods)
"""

import logging
import math
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from ..models.market import TechnicalIndicators

logger = logging.getLogger(__name__)

RSI_PERIOD = 14
RSI_NEUTRAL = 50.0
MOMENTUM_PERIOD = 10
VOLATILITY_PERIOD = 20
TRADING_DAYS_PER_YEAR = 252
SMA_SHORT_WINDOW = 20
SMA_LONG_WINDOW = 50

INSUFFICIENT_DATA = 'insufficient_data'
TREND_LABELS = ('strong_downtrend', 'downtrend', 'neutral', 'uptrend', 'strong_uptrend')


def _series(closes: Sequence[float]) -> pd.Series:
    return pd.Series(list(closes), dtype=float)


def calculate_sma(closes: Sequence[float], window: int) -> Optional[float]:
    """Arithmetic mean of the last `window` closes, or None when there are fewer."""
    if window <= 0 or len(closes) < window:
        return None
    return float(_series(closes).iloc[-window:].mean())


def calculate_rsi(closes: Sequence[float], period: int = RSI_PERIOD, neutral: float = RSI_NEUTRAL) -> float:
    """
    Relative Strength Index over the trailing `period` day-over-day changes.

    Uses plain averages of gains and losses (not Wilder smoothing). A window
    with no losses at all is pinned to 100; a series that is too short gets the
    neutral placeholder instead of a computed value.
    """
    if len(closes) < period + 1:
        return neutral

    delta = _series(closes).diff().iloc[-period:]
    gains = delta.where(delta > 0, 0.0).sum()
    losses = -delta.where(delta < 0, 0.0).sum()

    if losses == 0:
        return 100.0

    rs = (gains / period) / (losses / period)
    return float(100 - (100 / (1 + rs)))


def calculate_momentum(closes: Sequence[float], period: int = MOMENTUM_PERIOD) -> float:
    """Percent change from the close `period` bars back (inclusive) to the latest close."""
    if len(closes) < period:
        return 0.0
    current = closes[-1]
    past = closes[-period]
    if past == 0:
        return 0.0
    return float((current - past) / past * 100)


def calculate_volatility(closes: Sequence[float], period: int = VOLATILITY_PERIOD) -> float:
    """Annualized volatility (%) of the simple daily returns in the trailing window."""
    if len(closes) < period:
        return 0.0

    window = np.asarray(closes[-period:], dtype=float)
    if np.any(window[:-1] == 0):
        return 0.0
    returns = np.diff(window) / window[:-1]

    # Population standard deviation, same as dividing the squared deviations by n
    return float(np.std(returns) * math.sqrt(TRADING_DAYS_PER_YEAR) * 100)


def trend_score(price: float, sma20: float, sma50: float, rsi: float) -> int:
    """Signed point score built from independent comparisons."""
    score = 0
    if price > sma20:
        score += 1
    if price > sma50:
        score += 1
    if sma20 > sma50:
        score += 1
    if 50 <= rsi < 70:
        score += 1
    if rsi >= 70:
        score -= 1  # Overbought
    if rsi <= 30:
        score -= 1  # Oversold
    return score


def classify_trend(score: int) -> str:
    if score >= 3:
        return 'strong_uptrend'
    if score >= 1:
        return 'uptrend'
    if score >= -1:
        return 'neutral'
    if score >= -3:
        return 'downtrend'
    return 'strong_downtrend'


def calculate_trend_strength(
    closes: Sequence[float],
    short_window: int = SMA_SHORT_WINDOW,
    long_window: int = SMA_LONG_WINDOW,
    rsi_neutral: float = RSI_NEUTRAL,
) -> str:
    if len(closes) < short_window:
        return INSUFFICIENT_DATA

    current = closes[-1]
    sma20 = calculate_sma(closes, short_window)
    sma50 = calculate_sma(closes, long_window)
    if sma50 is None:
        sma50 = sma20
    rsi = calculate_rsi(closes, RSI_PERIOD, neutral=rsi_neutral)

    return classify_trend(trend_score(current, sma20, sma50, rsi))


def calculate_technicals(
    closes: Sequence[float],
    short_window: int = SMA_SHORT_WINDOW,
    long_window: int = SMA_LONG_WINDOW,
    rsi_neutral: float = RSI_NEUTRAL,
) -> Optional[TechnicalIndicators]:
    """
    Compute the full indicator set for one price series.

    Returns None for an empty series so consumers see "no indicators" rather
    than a record full of zeros.

    Args:
        closes: Chronological closing prices, oldest first
        short_window: Short SMA window (default 20)
        long_window: Long SMA window (default 50)
        rsi_neutral: Placeholder RSI for short series

    Returns:
        TechnicalIndicators or None
    """
    prices: List[float] = [float(c) for c in closes if c is not None]
    if not prices:
        return None

    return TechnicalIndicators(
        sma20=calculate_sma(prices, short_window),
        sma50=calculate_sma(prices, long_window),
        rsi14=calculate_rsi(prices, RSI_PERIOD, neutral=rsi_neutral),
        momentum10=calculate_momentum(prices, MOMENTUM_PERIOD),
        volatility=calculate_volatility(prices, VOLATILITY_PERIOD),
        trend_strength=calculate_trend_strength(prices, short_window, long_window, rsi_neutral),
    )
