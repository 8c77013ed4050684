"""
Background ingestion worker for FinBot.

Every cycle this worker:
1. Fetches news from the RSS feeds and drops items it has already seen
2. Fetches market data (refreshing the snapshot cache)
3. Generates event cards for the new items, one per category
4. Generates a market insight from the most recent event cards
5. Checks the new items for high-impact alerts

Only one cycle runs at a time. Starting a cycle while another is still in
progress is a logged no-op. Anything unexpected inside a cycle is caught at
the cycle boundary and logged; the next scheduled cycle starts clean.

Example usage:
    worker = IngestionWorker(NewsService(), QuoteService(), InsightEngine.from_config())
    await worker.run_cycle()
    state = worker.get_state()
"""

import asyncio
import logging
import time
from typing import List, Optional

from pydantic import Field

from ..config import config
from ..models.insight import Alert, EventCard, Insight, MarketBrief
from ..models.market import CamelModel, MarketSnapshot
from ..models.news import NewsItem
from ..services.dedup import NewsStore
from ..services.insight_engine import InsightEngine
from ..services.news_service import NewsService
from ..services.quote_service import QuoteService
from ..services.repository import InMemoryRepository

logger = logging.getLogger(__name__)


class CycleReport(CamelModel):
    fetched_items: int = 0
    new_items: int = 0
    market_symbols: int = 0
    event_cards: int = 0
    insight_id: Optional[str] = None
    alerts: int = 0
    duration_seconds: float = 0.0
    error: Optional[str] = None


class WorkerState(CamelModel):
    market_data: Optional[MarketSnapshot] = None
    news_items: List[NewsItem] = Field(default_factory=list)
    event_cards: List[EventCard] = Field(default_factory=list)
    insights: List[Insight] = Field(default_factory=list)
    alerts: List[Alert] = Field(default_factory=list)
    is_running: bool = False


class IngestionWorker:
    """
    Runs the ingestion cycle and holds its results in bounded repositories
    """

    def __init__(
        self,
        news_service: NewsService,
        quote_service: QuoteService,
        insight_engine: InsightEngine,
        news_store: NewsStore = None,
        event_repository: InMemoryRepository[EventCard] = None,
        insight_repository: InMemoryRepository[Insight] = None,
        alert_repository: InMemoryRepository[Alert] = None,
        interval_minutes: float = None,
    ):
        self.news_service = news_service
        self.quote_service = quote_service
        self.insight_engine = insight_engine
        self.news_store = news_store or NewsStore()
        self.events = event_repository or InMemoryRepository(config.EVENT_RETENTION, name='events')
        self.insights = insight_repository or InMemoryRepository(config.INSIGHT_RETENTION, name='insights')
        self.alerts = alert_repository or InMemoryRepository(config.ALERT_RETENTION, name='alerts')
        self.interval_seconds = (interval_minutes or config.REFRESH_INTERVAL_MINUTES) * 60

        self.market_data: Optional[MarketSnapshot] = None
        self._running = False
        self._stopped = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._running

    async def run_cycle(self) -> Optional[CycleReport]:
        """
        Run one ingestion cycle. Returns None when a cycle is already in
        progress, otherwise a report of what was produced.
        """
        if self._running:
            logger.warning("Ingestion cycle already running, skipping")
            return None

        self._running = True
        start_time = time.monotonic()
        report = CycleReport()
        logger.info("Starting ingestion cycle")

        try:
            # 1. News
            logger.info("Fetching RSS feeds...")
            fresh_news = await self.news_service.fetch_all_feeds()
            report.fetched_items = len(fresh_news)
            logger.info(f"Fetched {len(fresh_news)} news items")

            new_items = self.news_store.ingest(fresh_news)
            report.new_items = len(new_items)
            logger.info(f"{len(new_items)} new items after deduplication")

            # 2. Markets
            logger.info("Fetching market data...")
            self.market_data = (await self.quote_service.get_snapshot(force_refresh=True)).data
            report.market_symbols = len(self.market_data.markets)
            logger.info(f"Fetched {report.market_symbols} market symbols")

            # 3. Event cards
            if new_items:
                report.event_cards = await self._generate_event_cards(new_items)

            # 4. Insight
            if self.market_data is not None and len(self.events) > 0:
                report.insight_id = await self._generate_insight()

            # 5. Alerts
            if new_items:
                report.alerts = await self._detect_alerts(new_items)

            report.duration_seconds = round(time.monotonic() - start_time, 1)
            logger.info(f"Ingestion cycle completed in {report.duration_seconds:.1f}s")

        except Exception as e:
            report.error = str(e)
            report.duration_seconds = round(time.monotonic() - start_time, 1)
            logger.error(f"Ingestion cycle error: {str(e)}", exc_info=True)
        finally:
            self._running = False

        return report

    async def _generate_event_cards(self, new_items: List[NewsItem]) -> int:
        logger.info("Generating event cards...")
        cards = await self.insight_engine.generate_event_cards(new_items, config.EVENT_CLUSTER_WINDOW)
        for card in cards:
            self.events.append(card)
            logger.info(f"Generated event card for {card.category}")
        return len(cards)

    async def _generate_insight(self) -> Optional[str]:
        logger.info("Generating market insight...")
        try:
            insight = await self.insight_engine.generate_insight(
                self.market_data,
                self.events.list(limit=config.INSIGHT_EVENT_WINDOW),
            )
        except Exception as e:
            logger.error(f"Failed to generate insight: {str(e)}")
            return None

        self.insights.append(insight)
        logger.info("Generated market insight")
        return insight.id

    async def _detect_alerts(self, new_items: List[NewsItem]) -> int:
        logger.info("Checking for alert conditions...")
        try:
            alerts = await self.insight_engine.detect_alerts(new_items[:config.ALERT_SCAN_WINDOW])
        except Exception as e:
            logger.error(f"Alert detection failed: {str(e)}")
            return 0

        for alert in alerts:
            self.alerts.append(alert)
            logger.info(f"ALERT: {alert.title} ({alert.severity})")
        return len(alerts)

    async def start(self, run_immediately: bool = True) -> None:
        """Run cycles on the refresh interval until stop() is called."""
        logger.info(f"Starting ingestion worker (interval: {self.interval_seconds / 60:g} minutes)")
        logger.info(f"OpenAI API: {'Enabled' if self.insight_engine.is_enabled() else 'Disabled'}")

        self._stopped.clear()
        if not run_immediately:
            if await self._wait_interval():
                return

        while not self._stopped.is_set():
            await self.run_cycle()
            if await self._wait_interval():
                break

        logger.info("Ingestion worker stopped")

    async def _wait_interval(self) -> bool:
        """Sleep for one interval. Returns True if stop() was called meanwhile."""
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=self.interval_seconds)
            return True
        except asyncio.TimeoutError:
            return False

    def stop(self) -> None:
        self._stopped.set()

    # ==================== READ SIDE ====================

    def get_state(self) -> WorkerState:
        return WorkerState(
            market_data=self.market_data,
            news_items=self.news_store.items(),
            event_cards=self.events.list(),
            insights=self.insights.list(),
            alerts=self.alerts.list(),
            is_running=self._running,
        )

    async def recent_event_cards(self, max_age_hours: float = 24, limit: int = 10) -> List[EventCard]:
        """Event cards built on demand from news published in the last `max_age_hours`."""
        recent = self.news_store.recent(max_age_hours=max_age_hours, limit=limit)
        if not recent:
            return []
        return await self.insight_engine.generate_event_cards(recent, window=limit)

    async def market_brief(self) -> MarketBrief:
        snapshot = (await self.quote_service.get_snapshot()).data
        return await self.insight_engine.generate_market_brief(snapshot)

    def list_alerts(self, unread_only: bool = False, severity: str = None, limit: int = 50) -> List[Alert]:
        def matches(alert: Alert) -> bool:
            if unread_only and alert.is_read:
                return False
            if severity and alert.severity != severity:
                return False
            return True

        return self.alerts.list(predicate=matches, limit=limit)

    def unread_alert_count(self) -> int:
        return len(self.alerts.list(predicate=lambda alert: not alert.is_read))

    def mark_alert_read(self, alert_id: str) -> Optional[Alert]:
        alert = self.alerts.find(alert_id)
        if alert is None:
            return None
        alert.is_read = True
        return alert

    async def close(self) -> None:
        await self.news_service.close()
        await self.quote_service.close()
        await self.insight_engine.close()
