"""
Market Summary Scorer for FinBot.

Turns the current snapshot's reference basket into a handful of qualitative
labels. Only the quotes in front of it are used; there is no memory of past
snapshots. A basket member that failed to load simply gives no signal.

Reference basket:
- SPY: equity index (trend, risk appetite)
- VIX: volatility index (volatility level, risk appetite)
- DXY: dollar index (dollar strength)
- BTC: crypto (risk appetite)
- GOLD: precious metal (risk appetite, inverted)
- TNX: 10-year yield (yield environment)
"""

from typing import Mapping, Optional

from ..models.market import MarketSummary, Quote

EQUITY_SYMBOL = 'SPY'
VOLATILITY_SYMBOL = 'VIX'
DOLLAR_SYMBOL = 'DXY'
CRYPTO_SYMBOL = 'BTC'
METAL_SYMBOL = 'GOLD'
RATE_SYMBOL = 'TNX'

VIX_HIGH = 25.0
VIX_MODERATE = 18.0
DOLLAR_MOVE = 0.5
YIELD_HIGH = 4.5
YIELD_NORMAL = 3.5
EQUITY_MOVE = 0.5
CRYPTO_MOVE = 2.0
METAL_MOVE = 1.0
RISK_THRESHOLD = 2


def _price(quote: Optional[Quote]) -> Optional[float]:
    return quote.price if quote is not None else None


def _change(quote: Optional[Quote]) -> Optional[float]:
    return quote.change_percent if quote is not None else None


def volatility_level(vix: Optional[Quote]) -> str:
    price = _price(vix)
    if price is not None and price > VIX_HIGH:
        return 'high'
    if price is not None and price > VIX_MODERATE:
        return 'moderate'
    return 'low'


def dollar_strength(dxy: Optional[Quote]) -> str:
    change = _change(dxy)
    if change is not None and change > DOLLAR_MOVE:
        return 'strengthening'
    if change is not None and change < -DOLLAR_MOVE:
        return 'weakening'
    return 'stable'


def yield_environment(tnx: Optional[Quote]) -> str:
    price = _price(tnx)
    if price is not None and price > YIELD_HIGH:
        return 'high_yields'
    if price is not None and price > YIELD_NORMAL:
        return 'normal'
    return 'low_yields'


def equity_trend(spy: Optional[Quote]) -> str:
    if spy is None or spy.technicals is None:
        return 'unknown'
    return spy.technicals.trend_strength


def risk_score(
    spy: Optional[Quote],
    vix: Optional[Quote],
    btc: Optional[Quote],
    gold: Optional[Quote],
) -> int:
    score = 0

    spy_change = _change(spy)
    if spy_change is not None:
        if spy_change > EQUITY_MOVE:
            score += 1
        if spy_change < -EQUITY_MOVE:
            score -= 1

    vix_price = _price(vix)
    if vix_price is not None:
        if vix_price < VIX_MODERATE:
            score += 1
        if vix_price > VIX_HIGH:
            score -= 1

    btc_change = _change(btc)
    if btc_change is not None:
        if btc_change > CRYPTO_MOVE:
            score += 1
        if btc_change < -CRYPTO_MOVE:
            score -= 1

    # A gold rally reads as risk-off
    gold_change = _change(gold)
    if gold_change is not None:
        if gold_change > METAL_MOVE:
            score -= 1
        if gold_change < -METAL_MOVE:
            score += 1

    return score


def risk_appetite(
    spy: Optional[Quote],
    vix: Optional[Quote],
    btc: Optional[Quote],
    gold: Optional[Quote],
) -> str:
    score = risk_score(spy, vix, btc, gold)
    if score >= RISK_THRESHOLD:
        return 'risk_on'
    if score <= -RISK_THRESHOLD:
        return 'risk_off'
    return 'neutral'


def generate_summary(markets: Mapping[str, Quote]) -> MarketSummary:
    """Score the reference basket of one snapshot into a MarketSummary."""
    spy = markets.get(EQUITY_SYMBOL)
    vix = markets.get(VOLATILITY_SYMBOL)
    dxy = markets.get(DOLLAR_SYMBOL)
    btc = markets.get(CRYPTO_SYMBOL)
    gold = markets.get(METAL_SYMBOL)
    tnx = markets.get(RATE_SYMBOL)

    return MarketSummary(
        equity_trend=equity_trend(spy),
        volatility_level=volatility_level(vix),
        dollar_strength=dollar_strength(dxy),
        risk_appetite=risk_appetite(spy, vix, btc, gold),
        yield_environment=yield_environment(tnx),
    )
