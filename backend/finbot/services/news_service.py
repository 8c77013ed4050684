"""
This is the News Service for FinBot. It reads a curated list of RSS/Atom feeds
and turns every entry into a clean, fingerprinted NewsItem.

Key Features:
1. Feed Aggregation: Collects headlines from central banks, wires, and
   financial, crypto and commodity outlets
2. Sanitization: Strips markup and filters prompt-injection phrases before any
   text can reach a generative model
3. Fingerprinting: Hashes title + URL into a short dedup key
4. Credibility: Every source carries a fixed 0-100 credibility score

Technical Details:
- Feeds are fetched concurrently in small batches (aiohttp), with a brief
  pause between batches
- Parsing is done with feedparser, markup removal with BeautifulSoup
- A failing feed is logged and contributes nothing; the fetch carries on
- The merged result is sorted newest-published-first

Example Usage:
    news_service = NewsService()
    items = await news_service.fetch_all_feeds()
"""

import asyncio
import calendar
import hashlib
import logging
import re
from datetime import datetime, timezone
from typing import List, Optional

import aiohttp
import feedparser
from bs4 import BeautifulSoup

from ..config import config
from ..models.news import FeedSource, NewsItem

logger = logging.getLogger(__name__)

FILTERED_MARKER = '[FILTERED]'

# Instruction delimiters and role-override phrases seen in prompt-injection attempts
INJECTION_PATTERNS = [
    re.compile(r'\[INST\]|\[/INST\]|<\|im_start\|>|<\|im_end\|>', re.IGNORECASE),
    re.compile(r'ignore previous instructions', re.IGNORECASE),
    re.compile(r'you are now', re.IGNORECASE),
]

# Curated feeds with credibility scores
DEFAULT_FEEDS = [
    # Major News (High Credibility)
    FeedSource(url='https://feeds.bbci.co.uk/news/business/rss.xml', name='BBC Business', category='macro', credibility=85),
    FeedSource(url='https://rss.nytimes.com/services/xml/rss/nyt/Business.xml', name='NYT Business', category='macro', credibility=85),
    FeedSource(url='https://feeds.reuters.com/reuters/businessNews', name='Reuters Business', category='macro', credibility=90),

    # Financial News
    FeedSource(url='https://www.ft.com/rss/home', name='Financial Times', category='macro', credibility=90),
    FeedSource(url='https://feeds.marketwatch.com/marketwatch/topstories/', name='MarketWatch', category='markets', credibility=75),

    # Geopolitics
    FeedSource(url='https://rss.nytimes.com/services/xml/rss/nyt/World.xml', name='NYT World', category='geopolitics', credibility=85),
    FeedSource(url='https://feeds.bbci.co.uk/news/world/rss.xml', name='BBC World', category='geopolitics', credibility=85),

    # Central Banks & Economics
    FeedSource(url='https://www.federalreserve.gov/feeds/press_all.xml', name='Federal Reserve', category='rates', credibility=100),
    FeedSource(url='https://www.ecb.europa.eu/rss/press.html', name='ECB', category='rates', credibility=100),

    # Crypto (lower credibility, more volatile info)
    FeedSource(url='https://cointelegraph.com/rss', name='CoinTelegraph', category='crypto', credibility=60),
    FeedSource(url='https://www.coindesk.com/arc/outboundfeeds/rss/', name='CoinDesk', category='crypto', credibility=65),

    # Commodities
    FeedSource(url='https://oilprice.com/rss/main', name='OilPrice', category='commodities', credibility=70),
]


def strip_markup(text: str) -> str:
    """Remove every tag and collapse whitespace."""
    if not text:
        return ''
    soup = BeautifulSoup(text, 'html.parser')
    return re.sub(r'\s+', ' ', soup.get_text(separator=' ')).strip()


def sanitize_text(text: Optional[str], max_length: int = None) -> str:
    """
    Make feed text safe to embed in a prompt: strip markup, replace
    injection phrases with a neutral marker, then cap the length.
    """
    if not text:
        return ''
    max_length = max_length or config.MAX_TEXT_LENGTH

    clean = strip_markup(text)
    for pattern in INJECTION_PATTERNS:
        clean = pattern.sub(FILTERED_MARKER, clean)

    return clean[:max_length].strip()


def generate_fingerprint(title: str, url: str, length: int = None) -> str:
    """Short SHA-256 fingerprint of title + URL, used as the dedup key."""
    length = length or config.FINGERPRINT_LENGTH
    content = f"{title or ''}{url or ''}"
    return hashlib.sha256(content.encode('utf-8')).hexdigest()[:length]


def _entry_published_at(entry, default: datetime) -> datetime:
    parsed = entry.get('published_parsed') or entry.get('updated_parsed')
    if parsed:
        try:
            return datetime.fromtimestamp(calendar.timegm(parsed), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError):
            pass
    return default


def _entry_text(entry) -> str:
    if entry.get('summary'):
        return entry.get('summary')
    content = entry.get('content') or []
    if content:
        return content[0].get('value', '')
    return ''


def parse_feed(content: str, source: FeedSource, fetched_at: Optional[datetime] = None) -> List[NewsItem]:
    """Parse raw feed XML into NewsItems for one source."""
    fetched_at = fetched_at or datetime.now(timezone.utc)
    parsed = feedparser.parse(content)
    items = []

    for entry in parsed.entries:
        raw_title = entry.get('title') or ''
        link = (entry.get('link') or '').strip()
        title = sanitize_text(raw_title)
        if not title:
            continue

        items.append(NewsItem(
            title=title,
            url=link,
            published_at=_entry_published_at(entry, fetched_at),
            raw_text=sanitize_text(_entry_text(entry)),
            source_name=source.name,
            source_url=source.url,
            category=source.category,
            credibility=source.credibility,
            # Hash the raw title so encoding cleanup never splits one story into two keys
            content_hash=generate_fingerprint(raw_title, link),
            fetched_at=fetched_at,
        ))

    return items


class NewsService:
    """
    Fetches and parses the configured feeds.
    """

    def __init__(self, feeds: List[FeedSource] = None, batch_size: int = None, timeout: float = None,
                 user_agent: str = None, batch_pause: float = None):
        self.feeds = list(feeds) if feeds is not None else list(DEFAULT_FEEDS)
        self.batch_size = batch_size or config.FEED_BATCH_SIZE
        self.batch_pause = config.BATCH_PAUSE_SECONDS if batch_pause is None else batch_pause
        self.timeout = aiohttp.ClientTimeout(total=timeout or config.REQUEST_TIMEOUT_SECONDS)
        self.headers = {'User-Agent': user_agent or config.USER_AGENT}
        self.session: Optional[aiohttp.ClientSession] = None
        logger.info(f"Initializing NewsService with {len(self.feeds)} feeds")

    async def _create_session(self):
        """Create a new aiohttp session with proper configuration"""
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(headers=self.headers, timeout=self.timeout)
            logger.debug("Created new aiohttp session for feeds")

    async def _download(self, url: str) -> Optional[str]:
        await self._create_session()
        async with self.session.get(url, allow_redirects=True) as response:
            if response.status != 200:
                logger.warning(f"Feed {url} returned status {response.status}")
                return None
            return await response.text()

    async def fetch_feed(self, source: FeedSource) -> List[NewsItem]:
        """Fetch and parse a single feed. Any failure yields an empty list."""
        try:
            content = await self._download(source.url)
            if content is None:
                return []
            items = parse_feed(content, source)
            logger.info(f"Fetched {len(items)} items from {source.name}")
            return items
        except asyncio.TimeoutError:
            logger.error(f"Error fetching {source.name}: timed out")
            return []
        except Exception as e:
            logger.error(f"Error fetching {source.name}: {str(e)}")
            return []

    async def fetch_all_feeds(self) -> List[NewsItem]:
        """Fetch every configured feed in bounded batches, newest first."""
        all_items: List[NewsItem] = []

        for start in range(0, len(self.feeds), self.batch_size):
            batch = self.feeds[start:start + self.batch_size]
            results = await asyncio.gather(*(self.fetch_feed(feed) for feed in batch))
            for items in results:
                all_items.extend(items)

            # Small delay between batches
            if start + self.batch_size < len(self.feeds) and self.batch_pause > 0:
                await asyncio.sleep(self.batch_pause)

        # Sort by publish date, newest first
        all_items.sort(key=lambda item: item.published_at, reverse=True)
        return all_items

    def add_feed(self, url: str, name: str, category: str = None, credibility: int = None) -> FeedSource:
        """Add a custom feed"""
        if not url or not name:
            raise ValueError('Feed must have url and name')

        source = FeedSource(
            url=url,
            name=name,
            category=category or 'general',
            credibility=credibility if credibility is not None else 50,
        )
        self.feeds.append(source)
        return source

    async def close(self):
        if self.session is not None and not self.session.closed:
            await self.session.close()
