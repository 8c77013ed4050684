"""
Shared fixtures and fakes for FinBot tests.

Nothing here touches the network: quote providers, feed downloads and the
generative backend are all replaced by in-process fakes.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from finbot.models.market import MarketSnapshot, Quote, SymbolInfo
from finbot.models.news import NewsItem
from finbot.services.indicators import calculate_technicals
from finbot.services.llm_backend import BackendError, BackendResult, GenerativeBackend
from finbot.services.market_summary import generate_summary
from finbot.services.news_service import generate_fingerprint
from finbot.services.quote_service import QuoteProvider

NOW = datetime(2025, 1, 6, 15, 0, tzinfo=timezone.utc)


def make_quote(symbol: str, price: float, change_percent: float = 0.0, closes: Optional[List[float]] = None,
               fetched_at: datetime = NOW) -> Quote:
    previous_close = price / (1 + change_percent / 100)
    closes = list(closes) if closes is not None else [previous_close, price]
    timestamps = [1_700_000_000 + 86_400 * i for i in range(len(closes))]
    return Quote(
        symbol=symbol,
        name=symbol,
        price=price,
        previous_close=previous_close,
        change=price - previous_close,
        change_percent=change_percent,
        historical_closes=closes,
        historical_timestamps=timestamps,
        fetched_at=fetched_at,
        technicals=calculate_technicals(closes),
    )


def make_snapshot(markets: Dict[str, Quote], is_mock_data: bool = False) -> MarketSnapshot:
    return MarketSnapshot(
        timestamp=NOW,
        markets=markets,
        summary=generate_summary(markets),
        is_mock_data=is_mock_data,
    )


def make_news_item(title: str = 'Fed Holds Rates Steady', url: str = 'https://example.com/fed',
                   category: str = 'rates', credibility: int = 100, source_name: str = 'Federal Reserve',
                   published_at: datetime = None, fetched_at: datetime = None, raw_text: str = '') -> NewsItem:
    return NewsItem(
        title=title,
        url=url,
        published_at=published_at or NOW - timedelta(hours=1),
        raw_text=raw_text,
        source_name=source_name,
        source_url='https://example.com/feed.xml',
        category=category,
        credibility=credibility,
        content_hash=generate_fingerprint(title, url),
        fetched_at=fetched_at or NOW,
    )


class FakeProvider(QuoteProvider):
    """Serves fixed quotes; symbols listed in `failing` raise, unknown symbols return None."""

    name = 'fake'

    def __init__(self, quotes: Dict[str, Quote] = None, failing=(), is_substitute: bool = False):
        self.quotes = quotes or {}
        self.failing = set(failing)
        self.is_substitute = is_substitute
        self.calls: List[str] = []
        self.active = 0
        self.max_active = 0

    async def fetch_quote(self, info: SymbolInfo) -> Optional[Quote]:
        self.calls.append(info.symbol)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0)
            if info.symbol in self.failing:
                raise ConnectionError(f"{info.symbol} unavailable")
            return self.quotes.get(info.symbol)
        finally:
            self.active -= 1


class FakeResponse:
    def __init__(self, error: Exception):
        self.error = error

    async def __aenter__(self):
        raise self.error

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Stands in for aiohttp.ClientSession; every request raises `error` on entry."""

    def __init__(self, error: Exception):
        self.error = error
        self.closed = False
        self.requests: List[str] = []

    def get(self, url, **kwargs):
        self.requests.append(url)
        return FakeResponse(self.error)

    async def close(self):
        self.closed = True


class FakeBackend(GenerativeBackend):
    """Returns queued responses in order; an exception in the queue is raised instead."""

    name = 'fake'
    model = 'fake-model'

    def __init__(self, *responses):
        self.responses = list(responses)
        self.prompts: List[str] = []

    async def complete(self, system_prompt: str, user_prompt: str, max_tokens: int) -> BackendResult:
        self.prompts.append(user_prompt)
        if not self.responses:
            raise BackendError('no response queued')
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return BackendResult(content=response, raw=str(response), model=self.model, finish_reason='stop')


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def fixed_clock():
    return lambda: NOW


@pytest.fixture
def uptrend_closes():
    # Net upward, low realized volatility
    return [100, 102, 101, 105, 108] + [108 + i for i in range(1, 26)]


@pytest.fixture
def basket_snapshot(uptrend_closes):
    markets = {
        'SPY': make_quote('SPY', float(uptrend_closes[-1]), 0.75, uptrend_closes),
        'VIX': make_quote('VIX', 14.0, -2.0),
        'DXY': make_quote('DXY', 104.0, 0.1),
        'BTC': make_quote('BTC', 97500.0, 2.5),
        'GOLD': make_quote('GOLD', 2045.0, 0.2),
        'TNX': make_quote('TNX', 4.25, 0.02),
    }
    return make_snapshot(markets)
