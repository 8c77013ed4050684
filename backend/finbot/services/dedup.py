"""
Deduplication & freshness for FinBot news.

A NewsItem's identity is its fingerprint (content_hash), never its URL, so
two fetches of the same story only ever keep one copy. Held items live in a
bounded repository; once full, the oldest are evicted.

Freshness is a blend of two linear decays:
- 70% weight on time since publish, reaching 0 after 24 hours
- 30% weight on time since fetch, reaching 0 after 6 hours

A story published 24 hours ago or more scores 0 no matter how recently it
was fetched.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

from ..config import config
from ..models.news import NewsItem, ScoredNewsItem
from .repository import InMemoryRepository

logger = logging.getLogger(__name__)

PUBLISH_WEIGHT = 0.7
FETCH_WEIGHT = 0.3


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _age_hours(then: datetime, now: datetime) -> float:
    return max(0.0, (now - _as_utc(then)).total_seconds() / 3600)


def _linear_decay(age_hours: float, window_hours: float) -> float:
    return min(1.0, max(0.0, 1 - age_hours / window_hours))


def calculate_freshness_score(
    published_at: datetime,
    fetched_at: datetime,
    now: Optional[datetime] = None,
    publish_decay_hours: float = None,
    fetch_decay_hours: float = None,
) -> float:
    """
    Score how fresh a story is, from 1.0 (just published, just fetched) down
    to 0.0.
    """
    now = _as_utc(now or datetime.now(timezone.utc))
    publish_window = publish_decay_hours or config.PUBLISH_DECAY_HOURS
    fetch_window = fetch_decay_hours or config.FETCH_DECAY_HOURS

    publish_age = _age_hours(published_at, now)
    if publish_age >= publish_window:
        return 0.0

    score = (
        PUBLISH_WEIGHT * _linear_decay(publish_age, publish_window)
        + FETCH_WEIGHT * _linear_decay(_age_hours(fetched_at, now), fetch_window)
    )
    return round(min(1.0, max(0.0, score)), 6)


def _fingerprint(item: NewsItem) -> str:
    return item.content_hash


class NewsStore:
    """
    Holds every news item seen so far (up to the retention count) and
    filters incoming batches down to the unseen ones.
    """

    def __init__(self, repository: InMemoryRepository[NewsItem] = None, retention: int = None):
        self.repository = repository or InMemoryRepository(
            retention or config.NEWS_RETENTION, key=_fingerprint, name='news'
        )

    def is_known(self, content_hash: str) -> bool:
        return self.repository.contains(content_hash)

    def ingest(self, items: Iterable[NewsItem]) -> List[NewsItem]:
        """
        Keep only items whose fingerprint has not been seen before (including
        repeats inside this batch), store them newest first, and return them.
        """
        known = set(self.repository.keys())
        new_items: List[NewsItem] = []

        for item in items:
            if item.content_hash in known:
                continue
            known.add(item.content_hash)
            new_items.append(item)

        new_items.sort(key=lambda item: _as_utc(item.published_at), reverse=True)
        self.repository.extend(new_items)

        logger.info(f"Ingested {len(new_items)} new news items ({len(self.repository)} held)")
        return new_items

    def items(self, limit: Optional[int] = None) -> List[NewsItem]:
        return self.repository.list(limit=limit)

    def ranked(self, category: str = None, limit: int = 50, now: datetime = None) -> List[ScoredNewsItem]:
        """Held items with their freshness score, freshest first"""
        now = now or datetime.now(timezone.utc)
        predicate = (lambda item: item.category == category) if category else None

        scored = [
            ScoredNewsItem(item=item, freshness_score=calculate_freshness_score(item.published_at, item.fetched_at, now))
            for item in self.repository.list(predicate=predicate)
        ]
        scored.sort(key=lambda entry: entry.freshness_score, reverse=True)
        return scored[:limit]

    def recent(self, max_age_hours: float = 24, limit: int = 10, now: datetime = None) -> List[NewsItem]:
        """Items published within the last `max_age_hours`, newest first"""
        cutoff = _as_utc(now or datetime.now(timezone.utc)) - timedelta(hours=max_age_hours)
        return self.repository.list(predicate=lambda item: _as_utc(item.published_at) > cutoff, limit=limit)

    def categories(self) -> List[str]:
        return sorted({item.category for item in self.repository})

    def __len__(self) -> int:
        return len(self.repository)
