"""
This is the Quote Service for FinBot. It pulls daily price history for a fixed
basket of indices, currencies, crypto, commodities and rates, attaches
technical indicators to every quote, and scores the basket into a market
summary.

What this service does:
- Fetches quotes in small concurrent batches with a short pause in between
- Normalizes the provider's chart payload into a common Quote record
- Drops any symbol that fails or times out (a partial snapshot is still valid)
- Falls back to a static substitute dataset when the live provider is down
- Keeps the latest snapshot in a short-TTL read-through cache

Providers:
- YahooChartProvider: live daily candles from the Yahoo Finance chart API
- StaticQuoteProvider: deterministic substitute with the exact same shape

Example usage:
    quote_service = QuoteService()
    snapshot = await quote_service.fetch_all_markets()
    cached = await quote_service.get_snapshot()
"""

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import aiohttp

from ..config import config
from ..models.market import CachedSnapshot, MarketSnapshot, Quote, SymbolInfo
from ..utils.smart_cache import SnapshotCache
from .indicators import calculate_technicals
from .market_summary import generate_summary

logger = logging.getLogger(__name__)


def _symbol(symbol: str, name: str, provider_symbol: str, asset_class: str) -> SymbolInfo:
    return SymbolInfo(symbol=symbol, name=name, provider_symbol=provider_symbol, asset_class=asset_class)


# Market symbols to track
MARKET_SYMBOLS: Dict[str, List[SymbolInfo]] = {
    'indices': [
        _symbol('SPY', 'S&P 500 ETF', 'SPY', 'indices'),
        _symbol('QQQ', 'NASDAQ 100 ETF', 'QQQ', 'indices'),
        _symbol('DIA', 'Dow Jones ETF', 'DIA', 'indices'),
        _symbol('IWM', 'Russell 2000 ETF', 'IWM', 'indices'),
        _symbol('VIX', 'Volatility Index', '^VIX', 'indices'),
    ],
    'forex': [
        _symbol('DXY', 'US Dollar Index', 'DX-Y.NYB', 'forex'),
        _symbol('EURUSD', 'EUR/USD', 'EURUSD=X', 'forex'),
        _symbol('GBPUSD', 'GBP/USD', 'GBPUSD=X', 'forex'),
        _symbol('USDJPY', 'USD/JPY', 'USDJPY=X', 'forex'),
    ],
    'crypto': [
        _symbol('BTC', 'Bitcoin', 'BTC-USD', 'crypto'),
        _symbol('ETH', 'Ethereum', 'ETH-USD', 'crypto'),
    ],
    'commodities': [
        _symbol('GOLD', 'Gold', 'GC=F', 'commodities'),
        _symbol('SILVER', 'Silver', 'SI=F', 'commodities'),
        _symbol('OIL', 'Crude Oil WTI', 'CL=F', 'commodities'),
    ],
    'rates': [
        _symbol('TNX', '10-Year Treasury', '^TNX', 'rates'),
        _symbol('TYX', '30-Year Treasury', '^TYX', 'rates'),
    ],
}

ALL_SYMBOLS: List[SymbolInfo] = [info for group in MARKET_SYMBOLS.values() for info in group]


def _last(values: List[Optional[float]]) -> Optional[float]:
    for value in reversed(values or []):
        if value is not None:
            return value
    return None


def normalize_chart_payload(info: SymbolInfo, payload: dict, fetched_at: Optional[datetime] = None) -> Optional[Quote]:
    """
    Turn a Yahoo chart API response into a Quote.

    Null candles are dropped together with their timestamps so the two series
    stay aligned. Returns None when the payload carries no usable price.
    """
    results = (payload or {}).get('chart', {}).get('result') or []
    if not results:
        return None

    result = results[0]
    meta = result.get('meta') or {}
    candles = ((result.get('indicators') or {}).get('quote') or [{}])[0] or {}
    raw_timestamps = result.get('timestamp') or []
    raw_closes = candles.get('close') or []

    closes: List[float] = []
    timestamps: List[int] = []
    for ts, close in zip(raw_timestamps, raw_closes):
        if close is None or ts is None:
            continue
        closes.append(float(close))
        timestamps.append(int(ts))

    price = meta.get('regularMarketPrice')
    if price is None:
        price = closes[-1] if closes else None
    if price is None:
        return None
    price = float(price)

    previous_close = meta.get('previousClose')
    if previous_close is None and len(closes) >= 2:
        previous_close = closes[-2]
    if previous_close is None:
        previous_close = price
    previous_close = float(previous_close)

    change = price - previous_close
    change_percent = (change / previous_close) * 100 if previous_close else 0.0

    return Quote(
        symbol=info.symbol,
        name=info.name,
        price=price,
        previous_close=previous_close,
        change=change,
        change_percent=change_percent,
        high=meta.get('regularMarketDayHigh') or _last(candles.get('high')),
        low=meta.get('regularMarketDayLow') or _last(candles.get('low')),
        volume=meta.get('regularMarketVolume') or _last(candles.get('volume')),
        high_52w=meta.get('fiftyTwoWeekHigh'),
        low_52w=meta.get('fiftyTwoWeekLow'),
        historical_closes=closes,
        historical_timestamps=timestamps,
        market_state=meta.get('marketState'),
        fetched_at=fetched_at or datetime.now(timezone.utc),
    )


class QuoteProvider(ABC):
    """A source of quotes. Returns None for a symbol it cannot serve."""

    name = 'provider'
    is_substitute = False

    @abstractmethod
    async def fetch_quote(self, info: SymbolInfo) -> Optional[Quote]:
        ...

    async def close(self) -> None:
        pass


class YahooChartProvider(QuoteProvider):
    """
    Live daily candles from the Yahoo Finance chart endpoint
    """

    name = 'yahoo'
    BASE_URL = 'https://query1.finance.yahoo.com/v8/finance/chart/{symbol}'

    def __init__(self, timeout: float = None, user_agent: str = None, chart_range: str = '3mo'):
        self.timeout = aiohttp.ClientTimeout(total=timeout or config.REQUEST_TIMEOUT_SECONDS)
        self.headers = {'User-Agent': user_agent or config.USER_AGENT}
        self.chart_range = chart_range
        self.session: Optional[aiohttp.ClientSession] = None

    async def _create_session(self):
        """Create the aiohttp session on first use"""
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(headers=self.headers, timeout=self.timeout)
            logger.debug("Created new aiohttp session for quote provider")

    async def fetch_quote(self, info: SymbolInfo) -> Optional[Quote]:
        await self._create_session()
        url = self.BASE_URL.format(symbol=info.provider_symbol)
        params = {'interval': '1d', 'range': self.chart_range}

        try:
            async with self.session.get(url, params=params) as response:
                if response.status != 200:
                    logger.warning(f"Quote provider returned status {response.status} for {info.symbol}")
                    return None
                payload = await response.json(content_type=None)
        except asyncio.TimeoutError:
            logger.warning(f"Quote fetch timed out for {info.symbol}")
            return None
        except (aiohttp.ClientError, ValueError) as e:
            logger.warning(f"Error fetching {info.symbol}: {str(e)}")
            return None

        try:
            return normalize_chart_payload(info, payload)
        except (TypeError, ValueError, KeyError) as e:
            logger.warning(f"Malformed chart payload for {info.symbol}: {str(e)}")
            return None

    async def close(self) -> None:
        if self.session is not None and not self.session.closed:
            await self.session.close()


# symbol -> (price, change percent, average daily drift percent)
STATIC_MARKETS = {
    'SPY': (502.34, 0.45, 0.12),
    'QQQ': (438.21, 0.62, 0.15),
    'DIA': (389.50, 0.21, 0.08),
    'IWM': (201.80, -0.15, 0.03),
    'VIX': (14.50, -3.20, -0.30),
    'DXY': (103.90, 0.10, 0.01),
    'EURUSD': (1.085, -0.08, -0.01),
    'GBPUSD': (1.270, 0.05, 0.01),
    'USDJPY': (149.80, 0.12, 0.02),
    'BTC': (97500.0, 2.10, 0.35),
    'ETH': (3400.0, 1.60, 0.25),
    'GOLD': (2045.30, 0.15, 0.05),
    'SILVER': (23.10, 0.30, 0.04),
    'OIL': (76.40, -0.60, -0.05),
    'TNX': (4.25, 0.02, 0.01),
    'TYX': (4.45, 0.01, 0.01),
}


def synthetic_series(price: float, change_percent: float, drift_percent: float, points: int = 60) -> List[float]:
    """Deterministic chronological closes ending at `price`, with a small wobble around a drift."""
    previous_close = price / (1 + change_percent / 100)
    closes = [price, previous_close]
    while len(closes) < points:
        step = len(closes)
        wobble = 0.004 * math.sin(step * 1.7)
        closes.append(closes[-1] / (1 + drift_percent / 100 + wobble))
    closes.reverse()
    return [round(c, 6) for c in closes]


class StaticQuoteProvider(QuoteProvider):
    """
    Substitute dataset for when the live provider is unreachable. Quotes carry
    a full synthetic history, so indicators and the summary are computed the
    same way as for live data.
    """

    name = 'static'
    is_substitute = True

    def __init__(self, markets: Dict[str, tuple] = None, points: int = 60, now: datetime = None):
        self.markets = markets if markets is not None else STATIC_MARKETS
        self.points = points
        self.now = now

    async def fetch_quote(self, info: SymbolInfo) -> Optional[Quote]:
        if info.symbol not in self.markets:
            return None

        price, change_percent, drift = self.markets[info.symbol]
        closes = synthetic_series(price, change_percent, drift, self.points)
        fetched_at = self.now or datetime.now(timezone.utc)
        last_day = fetched_at.replace(hour=0, minute=0, second=0, microsecond=0)
        timestamps = [int((last_day - timedelta(days=self.points - 1 - i)).timestamp()) for i in range(len(closes))]
        previous_close = closes[-2]

        return Quote(
            symbol=info.symbol,
            name=info.name,
            price=closes[-1],
            previous_close=previous_close,
            change=closes[-1] - previous_close,
            change_percent=(closes[-1] - previous_close) / previous_close * 100,
            high=max(closes[-1], previous_close),
            low=min(closes[-1], previous_close),
            volume=0,
            high_52w=max(closes),
            low_52w=min(closes),
            historical_closes=closes,
            historical_timestamps=timestamps,
            market_state='CLOSED',
            fetched_at=fetched_at,
        )


class QuoteService:
    """
    Fetches the whole symbol universe and turns it into a MarketSnapshot.
    """

    def __init__(
        self,
        provider: QuoteProvider = None,
        substitute: QuoteProvider = None,
        symbols: List[SymbolInfo] = None,
        batch_size: int = None,
        batch_pause: float = None,
        cache_ttl: float = None,
    ):
        self.provider = provider or YahooChartProvider()
        self.substitute = substitute or StaticQuoteProvider()
        self.symbols = symbols or ALL_SYMBOLS
        self.batch_size = batch_size or config.QUOTE_BATCH_SIZE
        self.batch_pause = config.BATCH_PAUSE_SECONDS if batch_pause is None else batch_pause
        self.cache: SnapshotCache[MarketSnapshot] = SnapshotCache(
            config.MARKET_CACHE_TTL_SECONDS if cache_ttl is None else cache_ttl
        )

    async def _safe_fetch(self, provider: QuoteProvider, info: SymbolInfo) -> Optional[Quote]:
        try:
            quote = await provider.fetch_quote(info)
        except Exception as e:
            logger.warning(f"Provider {provider.name} failed for {info.symbol}: {str(e)}")
            return None
        if quote is None:
            return None

        technicals = calculate_technicals(
            quote.historical_closes,
            short_window=config.SMA_SHORT_WINDOW,
            long_window=config.SMA_LONG_WINDOW,
            rsi_neutral=config.RSI_NEUTRAL,
        )
        return quote.model_copy(update={'technicals': technicals})

    async def collect_quotes(self, provider: QuoteProvider) -> Dict[str, Quote]:
        """Fetch every symbol from one provider in batches. Failed symbols are omitted."""
        results: Dict[str, Quote] = {}

        for start in range(0, len(self.symbols), self.batch_size):
            batch = self.symbols[start:start + self.batch_size]
            quotes = await asyncio.gather(*(self._safe_fetch(provider, info) for info in batch))

            for info, quote in zip(batch, quotes):
                if quote is not None:
                    results[info.symbol] = quote

            # Small delay between batches
            if start + self.batch_size < len(self.symbols) and self.batch_pause > 0:
                await asyncio.sleep(self.batch_pause)

        return results

    def build_snapshot(self, markets: Dict[str, Quote], is_mock_data: bool = False) -> MarketSnapshot:
        return MarketSnapshot(
            timestamp=datetime.now(timezone.utc),
            markets=markets,
            summary=generate_summary(markets),
            is_mock_data=is_mock_data,
        )

    async def fetch_all_markets(self) -> MarketSnapshot:
        """
        Fetch all market data, falling back to the substitute dataset when the
        live provider produces nothing at all.
        """
        markets = await self.collect_quotes(self.provider)
        if markets:
            logger.info(f"Fetched {len(markets)}/{len(self.symbols)} market symbols from {self.provider.name}")
            return self.build_snapshot(markets, is_mock_data=self.provider.is_substitute)

        logger.warning(f"No quotes from {self.provider.name}, using {self.substitute.name} substitute data")
        return await self.get_mock_data()

    async def get_mock_data(self) -> MarketSnapshot:
        markets = await self.collect_quotes(self.substitute)
        return self.build_snapshot(markets, is_mock_data=True)

    async def get_snapshot(self, force_refresh: bool = False) -> CachedSnapshot:
        """Latest snapshot through the TTL cache"""
        snapshot, cached = await self.cache.get_or_fetch(self.fetch_all_markets, force_refresh=force_refresh)
        age = self.cache.age() if cached else None
        return CachedSnapshot(data=snapshot, cached=cached, cache_age=round(age) if age is not None else None)

    async def get_symbol(self, symbol: str) -> Optional[Quote]:
        snapshot = (await self.get_snapshot()).data
        return snapshot.markets.get(symbol.upper())

    async def get_history(self, symbol: str) -> Optional[dict]:
        """Chart-ready price history for one symbol from the cached snapshot"""
        quote = await self.get_symbol(symbol)
        if quote is None:
            return None
        return {
            'symbol': quote.symbol,
            'prices': list(quote.historical_closes),
            'timestamps': list(quote.historical_timestamps),
        }

    async def close(self) -> None:
        await self.provider.close()
        await self.substitute.close()
