"""
Tests for the qualitative market summary labels.
"""
import pytest

from conftest import make_quote
from finbot.services.market_summary import (
    dollar_strength,
    equity_trend,
    generate_summary,
    risk_appetite,
    volatility_level,
    yield_environment,
)


@pytest.mark.parametrize("price,label", [(30, 'high'), (25.01, 'high'), (25, 'moderate'), (18.5, 'moderate'),
                                         (18, 'low'), (12, 'low')])
def test_volatility_level(price, label):
    assert volatility_level(make_quote('VIX', price)) == label


def test_missing_vix_gives_low_volatility():
    assert volatility_level(None) == 'low'


@pytest.mark.parametrize("change,label", [(0.6, 'strengthening'), (0.5, 'stable'), (-0.5, 'stable'),
                                          (-0.7, 'weakening')])
def test_dollar_strength(change, label):
    assert dollar_strength(make_quote('DXY', 104.0, change)) == label


@pytest.mark.parametrize("price,label", [(4.8, 'high_yields'), (4.5, 'normal'), (3.6, 'normal'),
                                         (3.5, 'low_yields')])
def test_yield_environment(price, label):
    assert yield_environment(make_quote('TNX', price)) == label


def test_equity_trend_unknown_without_spy():
    assert equity_trend(None) == 'unknown'


def test_risk_on():
    spy = make_quote('SPY', 500, 1.0)
    vix = make_quote('VIX', 14)
    btc = make_quote('BTC', 97000, 3.0)
    gold = make_quote('GOLD', 2000, -1.5)
    assert risk_appetite(spy, vix, btc, gold) == 'risk_on'


def test_risk_off_gold_rally_counts_against():
    spy = make_quote('SPY', 500, -1.0)
    gold = make_quote('GOLD', 2000, 1.5)
    assert risk_appetite(spy, None, None, gold) == 'risk_off'


def test_missing_members_are_no_signal():
    assert risk_appetite(None, None, None, None) == 'neutral'
    summary = generate_summary({})
    assert summary.equity_trend == 'unknown'
    assert summary.volatility_level == 'low'
    assert summary.dollar_strength == 'stable'
    assert summary.yield_environment == 'low_yields'
    assert summary.risk_appetite == 'neutral'


def test_upward_low_volatility_basket(basket_snapshot):
    """Upward, low-vol SPY with VIX at 14 reads as a calm uptrend."""
    summary = basket_snapshot.summary
    assert summary.volatility_level == 'low'
    assert summary.equity_trend in {'uptrend', 'strong_uptrend'}
    assert summary.risk_appetite == 'risk_on'
    assert summary.to_dict()['volatilityLevel'] == 'low'
