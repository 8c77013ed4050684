from pydantic import Field
from typing import Optional
from datetime import datetime

from .market import FrozenCamelModel


class FeedSource(FrozenCamelModel):
    url: str
    name: str
    category: str = "general"
    credibility: int = Field(default=50, ge=0, le=100)


class NewsItem(FrozenCamelModel):
    title: str
    url: str
    published_at: datetime
    raw_text: str = ""
    source_name: str
    source_url: str
    category: str = "general"
    credibility: int = Field(default=50, ge=0, le=100)
    content_hash: str
    fetched_at: datetime


class ScoredNewsItem(FrozenCamelModel):
    item: NewsItem
    freshness_score: float = Field(ge=0.0, le=1.0)

    def to_dict(self) -> dict:
        data = self.item.to_dict()
        data["freshnessScore"] = self.freshness_score
        return data


class SourceRef(FrozenCamelModel):
    name: str
    url: Optional[str] = None
    credibility: Optional[int] = None
