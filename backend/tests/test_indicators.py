"""
Unit tests for the technical indicator functions.
"""
import itertools

import pytest

from finbot.services.indicators import (
    INSUFFICIENT_DATA,
    calculate_momentum,
    calculate_rsi,
    calculate_sma,
    calculate_technicals,
    calculate_trend_strength,
    calculate_volatility,
    classify_trend,
    trend_score,
)


@pytest.mark.parametrize("length", range(0, 15))
def test_rsi_is_neutral_for_short_series(length):
    closes = [100 + (i % 3) for i in range(length)]
    assert calculate_rsi(closes) == 50


def test_rsi_neutral_value_is_configurable():
    assert calculate_rsi([1, 2, 3], neutral=42.0) == 42.0


def test_rsi_is_100_without_losses():
    closes = [100 + i for i in range(30)]
    assert calculate_rsi(closes) == 100


def test_rsi_ignores_losses_outside_trailing_window():
    # Big drop early on, then 14 straight gains
    closes = [200, 100] + [100 + i for i in range(1, 15)]
    assert calculate_rsi(closes) == 100


def test_rsi_uses_average_gain_over_average_loss():
    # 7 gains of +2 and 7 losses of -1 -> RS = 2 -> RSI = 66.67
    closes = [100]
    for _ in range(7):
        closes.append(closes[-1] + 2)
        closes.append(closes[-1] - 1)
    assert len(closes) == 15
    assert calculate_rsi(closes) == pytest.approx(100 - 100 / 3)


def test_rsi_stays_in_bounds():
    closes = [100 - i * 1.5 for i in range(40)]
    rsi = calculate_rsi(closes)
    assert 0 <= rsi <= 100


def test_sma_undefined_when_series_too_short():
    assert calculate_sma([1, 2, 3], 5) is None


def test_sma_is_mean_of_last_window():
    assert calculate_sma([1, 2, 3, 4, 5], 3) == pytest.approx(4.0)


def test_momentum():
    closes = list(range(1, 11))
    assert calculate_momentum(closes) == pytest.approx(900.0)
    assert calculate_momentum(closes[:9]) == 0


def test_volatility_zero_for_short_or_flat_series():
    assert calculate_volatility([100] * 19) == 0
    assert calculate_volatility([100] * 30) == 0


def test_volatility_positive_for_noisy_series():
    closes = [100 + (3 if i % 2 else -3) for i in range(25)]
    assert calculate_volatility(closes) > 0


@pytest.mark.parametrize("score,label", [
    (4, 'strong_uptrend'),
    (3, 'strong_uptrend'),
    (2, 'uptrend'),
    (1, 'uptrend'),
    (0, 'neutral'),
    (-1, 'neutral'),
    (-2, 'downtrend'),
    (-3, 'downtrend'),
    (-4, 'strong_downtrend'),
])
def test_classify_trend_thresholds(score, label):
    assert classify_trend(score) == label


def test_trend_score_rsi_bands():
    # price == sma20 == sma50 so only the RSI term counts
    assert trend_score(100, 100, 100, 50) == 1
    assert trend_score(100, 100, 100, 69.9) == 1
    assert trend_score(100, 100, 100, 70) == -1
    assert trend_score(100, 100, 100, 45) == 0
    assert trend_score(100, 100, 100, 30) == -1


def test_trend_score_is_order_independent():
    # Every combination of the boolean comparisons gives the same score
    # however the terms are summed.
    for price, sma20, sma50, rsi in itertools.product([90, 110], [95, 105], [95, 105], [25, 40, 60, 75]):
        terms = [
            1 if price > sma20 else 0,
            1 if price > sma50 else 0,
            1 if sma20 > sma50 else 0,
            1 if 50 <= rsi < 70 else 0,
            -1 if rsi >= 70 else 0,
            -1 if rsi <= 30 else 0,
        ]
        for order in itertools.permutations(terms):
            assert classify_trend(sum(order)) == classify_trend(trend_score(price, sma20, sma50, rsi))


def test_trend_strength_insufficient_data():
    assert calculate_trend_strength([100 + i for i in range(19)]) == INSUFFICIENT_DATA


def test_trend_strength_uptrend(uptrend_closes):
    assert calculate_trend_strength(uptrend_closes) in {'uptrend', 'strong_uptrend'}


def test_trend_strength_falling_series():
    closes = [200 - i for i in range(60)]
    # No price comparison scores, RSI pinned at 0 (oversold) subtracts one
    assert calculate_rsi(closes) == 0
    assert calculate_trend_strength(closes) == 'neutral'


def test_technicals_absent_for_empty_series():
    assert calculate_technicals([]) is None


def test_technicals_for_single_close():
    technicals = calculate_technicals([100])
    assert technicals.sma20 is None
    assert technicals.sma50 is None
    assert technicals.rsi14 == 50
    assert technicals.momentum10 == 0
    assert technicals.volatility == 0
    assert technicals.trend_strength == INSUFFICIENT_DATA


def test_technicals_full_series(uptrend_closes):
    technicals = calculate_technicals(uptrend_closes)
    assert technicals.sma20 == pytest.approx(sum(uptrend_closes[-20:]) / 20)
    assert technicals.sma50 is None
    assert technicals.rsi14 == 100
    assert technicals.momentum10 > 0
