"""
Tests for quote normalization, batching and substitute fallback.
"""
import asyncio
from datetime import datetime, timezone

import pytest

from conftest import FakeProvider, FakeSession, make_quote
from finbot.models.market import SymbolInfo
from finbot.services.quote_service import (
    ALL_SYMBOLS,
    STATIC_MARKETS,
    QuoteService,
    StaticQuoteProvider,
    YahooChartProvider,
    normalize_chart_payload,
)

SPY_INFO = SymbolInfo(symbol='SPY', name='S&P 500 ETF', provider_symbol='SPY', asset_class='indices')


def chart_payload(closes, timestamps, **meta):
    return {
        'chart': {
            'result': [{
                'meta': meta,
                'timestamp': timestamps,
                'indicators': {'quote': [{'close': closes}]},
            }],
        },
    }


def test_symbol_universe_has_substitute_for_every_symbol():
    assert len(ALL_SYMBOLS) == 16
    assert {info.symbol for info in ALL_SYMBOLS} == set(STATIC_MARKETS)


def test_normalize_drops_null_candles_together_with_timestamps():
    payload = chart_payload([100.0, None, 102.0, 104.0], [1, 2, 3, 4], regularMarketPrice=105.0,
                            previousClose=104.0, marketState='REGULAR')
    quote = normalize_chart_payload(SPY_INFO, payload, fetched_at=datetime(2025, 1, 6, tzinfo=timezone.utc))

    assert quote.historical_closes == [100.0, 102.0, 104.0]
    assert quote.historical_timestamps == [1, 3, 4]
    assert quote.price == 105.0
    assert quote.change == pytest.approx(1.0)
    assert quote.change_percent == pytest.approx(1 / 104 * 100)
    assert quote.market_state == 'REGULAR'


def test_normalize_falls_back_to_series_for_price_and_previous_close():
    quote = normalize_chart_payload(SPY_INFO, chart_payload([100.0, 110.0], [1, 2]))
    assert quote.price == 110.0
    assert quote.previous_close == 100.0
    assert quote.change_percent == pytest.approx(10.0)


def test_normalize_returns_none_without_price():
    assert normalize_chart_payload(SPY_INFO, {'chart': {'result': []}}) is None
    assert normalize_chart_payload(SPY_INFO, chart_payload([], [])) is None


@pytest.mark.asyncio
async def test_static_provider_quotes_have_live_shape():
    provider = StaticQuoteProvider()
    quote = await provider.fetch_quote(SPY_INFO)

    assert provider.is_substitute
    assert quote.price == pytest.approx(502.34)
    assert quote.change_percent == pytest.approx(0.45, abs=1e-3)
    assert len(quote.historical_closes) == len(quote.historical_timestamps) == 60
    assert quote.historical_timestamps == sorted(quote.historical_timestamps)


@pytest.mark.asyncio
async def test_failed_symbols_are_omitted():
    quotes = {info.symbol: make_quote(info.symbol, 100.0, 0.5) for info in ALL_SYMBOLS}
    provider = FakeProvider(quotes, failing={'VIX', 'BTC'})
    service = QuoteService(provider=provider, batch_pause=0)

    snapshot = await service.fetch_all_markets()

    assert not snapshot.is_mock_data
    assert set(snapshot.markets) == set(quotes) - {'VIX', 'BTC'}
    assert all(quote.technicals is not None for quote in snapshot.markets.values())


@pytest.mark.asyncio
async def test_fetches_run_in_bounded_batches():
    provider = FakeProvider({info.symbol: make_quote(info.symbol, 10.0) for info in ALL_SYMBOLS})
    service = QuoteService(provider=provider, batch_size=5, batch_pause=0)

    await service.collect_quotes(provider)

    assert sorted(provider.calls) == sorted(info.symbol for info in ALL_SYMBOLS)
    assert provider.max_active <= 5


@pytest.mark.asyncio
async def test_substitute_used_when_live_provider_returns_nothing():
    service = QuoteService(provider=FakeProvider(failing={info.symbol for info in ALL_SYMBOLS}), batch_pause=0)

    snapshot = await service.fetch_all_markets()

    assert snapshot.is_mock_data
    assert set(snapshot.markets) == set(STATIC_MARKETS)
    assert snapshot.markets['SPY'].technicals.trend_strength != 'insufficient_data'
    assert snapshot.summary.volatility_level == 'low'


@pytest.mark.asyncio
async def test_snapshot_is_cached_until_forced():
    provider = FakeProvider({'SPY': make_quote('SPY', 500.0)})
    service = QuoteService(provider=provider, symbols=[SPY_INFO], batch_pause=0)

    first = await service.get_snapshot()
    second = await service.get_snapshot()
    forced = await service.get_snapshot(force_refresh=True)

    assert first.cached is False and first.cache_age is None
    assert second.cached is True and second.cache_age == 0
    assert forced.cached is False
    assert provider.calls == ['SPY', 'SPY']
    assert second.to_dict()['data']['markets']['SPY']['price'] == 500.0


@pytest.mark.asyncio
async def test_symbol_and_history_lookup():
    provider = FakeProvider({'SPY': make_quote('SPY', 110.0, closes=[100.0, 105.0, 110.0])})
    service = QuoteService(provider=provider, symbols=[SPY_INFO], batch_pause=0)

    assert (await service.get_symbol('spy')).price == 110.0
    history = await service.get_history('SPY')
    assert history['prices'] == [100.0, 105.0, 110.0]
    assert len(history['timestamps']) == 3
    assert await service.get_history('QQQ') is None


@pytest.mark.asyncio
async def test_live_provider_timeout_drops_symbol():
    provider = YahooChartProvider()
    provider.session = FakeSession(asyncio.TimeoutError())
    service = QuoteService(provider=provider, symbols=[SPY_INFO], batch_pause=0)

    assert await provider.fetch_quote(SPY_INFO) is None
    assert await service.collect_quotes(provider) == {}
    assert len(provider.session.requests) == 2
