"""
This is the Insight Engine for FinBot. It turns market snapshots and news
into structured analysis: event cards, insights, market briefs and alerts.

How each request flows:
1. Build a prompt from the input data (see prompts.py)
2. Call the generative backend, if one is configured
3. On success, validate the JSON against the artifact model and tag it
   with provenance
4. On any failure (no backend, transport error, timeout, bad JSON, schema
   mismatch), log it and build a fallback artifact from the same inputs

Fallback artifacts use the exact same models as generative ones, carry
`_meta.model == "mock"` and `_meta.isFallback == true`, and start from a low
fixed confidence. Callers always get a valid artifact back, never an
exception from the backend.

Confidence adjustment is applied once per artifact, on both paths, to the
pre-adjustment value, which is kept in `_meta.baseConfidence`.

Example usage:
    engine = InsightEngine.from_config()
    cards = await engine.generate_event_cards(news_items)
    insight = await engine.generate_insight(snapshot, cards)
"""

import logging
import math
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import ValidationError

from ..config import config
from ..models.insight import (
    Alert,
    AlertDetection,
    ConfidenceFactors,
    EventCard,
    ImpactedAssets,
    Implication,
    Implications,
    Insight,
    MarketBrief,
    Provenance,
    Scenarios,
)
from ..models.market import MarketSnapshot
from ..models.news import NewsItem, SourceRef
from . import prompts
from .dedup import calculate_freshness_score
from .llm_backend import BackendError, BackendResult, GenerativeBackend, OpenAIBackend

logger = logging.getLogger(__name__)

EVENT_CARD_MAX_TOKENS = 1500
INSIGHT_MAX_TOKENS = 2500
MARKET_BRIEF_MAX_TOKENS = 1000
ALERT_MAX_TOKENS = 1000

MIN_CONFIDENCE = 10
MAX_CONFIDENCE = 90
DEFAULT_CREDIBILITY = 50
DEFAULT_CATEGORY = 'general'

FALLBACK_BACKEND = 'fallback'
FALLBACK_MODEL = 'mock'
DISCLAIMER = 'This is a market summary for informational purposes only, not investment advice.'
NO_SCENARIO = 'Unable to generate scenario analysis without AI'


def adjust_confidence(base_confidence: float, sources: Sequence[Any]) -> float:
    """
    Nudge a base confidence by how many sources back it and how credible
    they are, then clamp into [10, 90].

    +10 for three or more sources, -15 for exactly one. +10 when mean
    credibility is 80 or more, -20 when it is below 50. A source without a
    credibility counts as 50. No sources means no credibility adjustment.
    """
    adjustment = 0

    if len(sources) >= 3:
        adjustment += 10
    elif len(sources) == 1:
        adjustment -= 15

    if sources:
        credibilities = []
        for source in sources:
            credibility = getattr(source, 'credibility', None)
            credibilities.append(DEFAULT_CREDIBILITY if credibility is None else credibility)
        avg_credibility = sum(credibilities) / len(credibilities)

        if avg_credibility >= 80:
            adjustment += 10
        elif avg_credibility < 50:
            adjustment -= 20

    return float(max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, base_confidence + adjustment)))


def cluster_by_category(items: Sequence[NewsItem], window: int = None) -> Dict[str, List[NewsItem]]:
    """Group the first `window` items by category, keeping first-seen order."""
    window = window or config.EVENT_CLUSTER_WINDOW
    clusters: Dict[str, List[NewsItem]] = OrderedDict()
    for item in list(items)[:window]:
        clusters.setdefault(item.category or DEFAULT_CATEGORY, []).append(item)
    return clusters


def _base_confidence(value: Any) -> float:
    if value is None or isinstance(value, bool):
        raise ValueError(f"Invalid confidence value: {value!r}")
    confidence = float(value)
    if not math.isfinite(confidence):
        raise ValueError(f"Invalid confidence value: {value!r}")
    return confidence


def _sources_from_items(items: Sequence[NewsItem]) -> List[SourceRef]:
    return [SourceRef(name=item.source_name, url=item.url, credibility=item.credibility) for item in items]


def _sources_from_cards(cards: Sequence[EventCard]) -> List[SourceRef]:
    seen = set()
    sources = []
    for card in cards:
        for source in card.sources:
            key = (source.name, source.url)
            if key in seen:
                continue
            seen.add(key)
            sources.append(source)
    return sources


class InsightEngine:
    """
    Builds analysis artifacts with an optional generative backend
    """

    def __init__(self, backend: Optional[GenerativeBackend] = None, clock: Callable[[], datetime] = None):
        self.backend = backend
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_config(cls) -> 'InsightEngine':
        """Engine with the OpenAI backend when an API key is configured, fallback-only otherwise."""
        if not config.llm_enabled:
            logger.warning("OPENAI_API_KEY not set, insights will use basic fallback analysis")
            return cls()
        try:
            return cls(backend=OpenAIBackend())
        except BackendError as e:
            logger.error(f"Could not initialize generative backend: {str(e)}")
            return cls()

    def is_enabled(self) -> bool:
        return self.backend is not None

    def _now(self) -> datetime:
        return self._clock()

    def _millis(self) -> int:
        return int(self._now().timestamp() * 1000)

    def _provenance(self, result: Optional[BackendResult], base_confidence: Optional[float] = None,
                    include_raw: bool = False) -> Provenance:
        if result is None:
            return Provenance(
                backend=FALLBACK_BACKEND,
                model=FALLBACK_MODEL,
                prompt_version=prompts.PROMPT_VERSION,
                generated_at=self._now(),
                is_fallback=True,
                base_confidence=base_confidence,
            )
        return Provenance(
            backend=self.backend.name,
            model=result.model,
            prompt_version=prompts.PROMPT_VERSION,
            generated_at=self._now(),
            is_fallback=False,
            base_confidence=base_confidence,
            raw_response=result.raw if include_raw else None,
        )

    async def _call_backend(self, build_prompt: Callable[[], str], max_tokens: int) -> Optional[BackendResult]:
        """Returns None whenever the fallback path should be taken."""
        if self.backend is None:
            logger.warning("Generative backend not configured, returning fallback response")
            return None

        try:
            prompt = build_prompt()
        except Exception as e:
            logger.error(f"Could not build prompt: {str(e)}", exc_info=True)
            return None

        try:
            return await self.backend.complete(prompts.SYSTEM_PROMPT, prompt, max_tokens)
        except BackendError as e:
            logger.error(f"LLM Error: {str(e)}")
            return None
        except Exception as e:
            logger.error(f"Unexpected LLM error: {str(e)}", exc_info=True)
            return None

    # ==================== EVENT CARDS ====================

    async def generate_event_card(self, news_items: Sequence[NewsItem], category: str = None) -> EventCard:
        """Build one event card from a cluster of news items."""
        if not news_items:
            raise ValueError('Cannot build an event card from an empty cluster')

        category = category or news_items[0].category or DEFAULT_CATEGORY
        card_id = f"event_{self._millis()}_{category}"
        sources = _sources_from_items(news_items)

        result = await self._call_backend(lambda: prompts.build_event_card_prompt(news_items), EVENT_CARD_MAX_TOKENS)
        if result is not None:
            try:
                base = _base_confidence(result.content.get('confidence'))
                return EventCard.model_validate({
                    **result.content,
                    'id': card_id,
                    'category': category,
                    'confidence': adjust_confidence(base, sources),
                    'sources': sources,
                    '_meta': self._provenance(result, base),
                })
            except (ValidationError, ValueError, TypeError) as e:
                logger.error(f"Event card response failed validation, using fallback: {str(e)}")

        return self.generate_fallback_event_card(news_items, card_id, category)

    async def generate_event_cards(self, news_items: Sequence[NewsItem], window: int = None) -> List[EventCard]:
        """One event card per non-empty category cluster of the newest items."""
        cards = []
        for category, items in cluster_by_category(news_items, window).items():
            cards.append(await self.generate_event_card(items, category))
        logger.info(f"Generated {len(cards)} event cards")
        return cards

    def generate_fallback_event_card(self, news_items: Sequence[NewsItem], card_id: str = None,
                                     category: str = None) -> EventCard:
        main_item = news_items[0]
        category = category or main_item.category or DEFAULT_CATEGORY
        count = len(news_items)
        base = float(config.FALLBACK_EVENT_CONFIDENCE)
        sources = _sources_from_items(news_items)

        return EventCard(
            id=card_id or f"event_{self._millis()}_{category}",
            category=category,
            title=main_item.title,
            summary=f"{main_item.title}. This event was reported by {count} source(s).",
            why_it_matters='Unable to generate AI analysis. Please configure OpenAI API key for full functionality.',
            impacted_regions=['Global'],
            impacted_sectors=[main_item.category or 'General'],
            impacted_assets=ImpactedAssets(equities=['Broad market']),
            confidence=adjust_confidence(base, sources),
            confidence_rationale='Low confidence due to lack of AI analysis',
            source_agreement=f"Based on {count} source(s)",
            caveats=['AI analysis unavailable - this is a basic summary only'],
            sources=sources,
            meta=self._provenance(None, base),
        )

    # ==================== INSIGHTS ====================

    async def generate_insight(self, snapshot: Optional[MarketSnapshot], event_cards: Sequence[EventCard]) -> Insight:
        """Analytical insight from a market snapshot plus recent event cards."""
        insight_id = f"insight_{self._millis()}"
        sources = _sources_from_cards(event_cards)

        if snapshot is None:
            logger.warning("No market snapshot available, returning fallback insight")
            return self.generate_fallback_insight(None, event_cards, insight_id)

        result = await self._call_backend(
            lambda: prompts.build_insight_prompt(snapshot, event_cards), INSIGHT_MAX_TOKENS
        )
        if result is not None:
            try:
                base = _base_confidence(result.content.get('confidence'))
                return Insight.model_validate({
                    **result.content,
                    'id': insight_id,
                    'confidence': adjust_confidence(base, sources),
                    'sources': sources,
                    '_meta': self._provenance(result, base, include_raw=True),
                })
            except (ValidationError, ValueError, TypeError) as e:
                logger.error(f"Insight response failed validation, using fallback: {str(e)}")

        return self.generate_fallback_insight(snapshot, event_cards, insight_id)

    def generate_fallback_insight(self, snapshot: Optional[MarketSnapshot], event_cards: Sequence[EventCard],
                                  insight_id: str = None) -> Insight:
        markets = snapshot.markets if snapshot is not None else {}
        spy = markets.get('SPY')
        vix = markets.get('VIX')

        spy_change = spy.change_percent if spy is not None else 0.0
        direction = 'up' if spy_change > 0 else 'down'
        vix_text = f"{vix.price:.2f}" if vix is not None else 'N/A'
        vix_state = 'elevated' if vix is not None and vix.price > 25 else 'normal'

        base = float(config.FALLBACK_INSIGHT_CONFIDENCE)
        sources = _sources_from_cards(event_cards)
        unknown = Implication(direction='uncertain', rationale='AI analysis required', caveats='Basic data only')

        return Insight(
            id=insight_id or f"insight_{self._millis()}",
            title='Market Overview (Basic Analysis)',
            theme='general',
            thesis=[
                f"S&P 500 is {direction} {abs(spy_change):.2f}% today",
                f"VIX at {vix_text} indicates {vix_state} volatility",
                f"{len(event_cards)} recent events being tracked",
            ],
            evidence=[],
            counter_arguments=[
                'This is a basic technical summary only',
                'Full AI analysis requires OpenAI API configuration',
            ],
            what_would_change_my_mind='Enable OpenAI API for comprehensive analysis',
            scenarios=Scenarios(base=NO_SCENARIO, bull=NO_SCENARIO, bear=NO_SCENARIO),
            confidence=adjust_confidence(base, sources),
            confidence_factors=ConfidenceFactors(
                increases=['Configure OpenAI API for full analysis'],
                decreases=['Currently using basic technical indicators only'],
            ),
            risk_level='unknown',
            horizon='short',
            potential_implications=Implications(
                equities=unknown, crypto=unknown, forex=unknown, commodities=unknown, rates=unknown
            ),
            data_quality_note='AI analysis unavailable - showing basic technical data only',
            sources=sources,
            meta=self._provenance(None, base),
        )

    # ==================== MARKET BRIEF ====================

    async def generate_market_brief(self, snapshot: Optional[MarketSnapshot]) -> MarketBrief:
        """Narrative summary of current market conditions."""
        if snapshot is None:
            logger.warning("No market snapshot available, returning fallback market brief")
            return self.generate_fallback_market_brief(None)

        result = await self._call_backend(
            lambda: prompts.build_market_summary_prompt(snapshot), MARKET_BRIEF_MAX_TOKENS
        )
        if result is not None:
            try:
                content = dict(result.content)
                content.setdefault('disclaimer', DISCLAIMER)
                return MarketBrief.model_validate({**content, '_meta': self._provenance(result)})
            except (ValidationError, ValueError, TypeError) as e:
                logger.error(f"Market summary response failed validation, using fallback: {str(e)}")

        return self.generate_fallback_market_brief(snapshot)

    def generate_fallback_market_brief(self, snapshot: Optional[MarketSnapshot]) -> MarketBrief:
        summary = snapshot.summary if snapshot is not None else None
        equity_trend = summary.equity_trend if summary else 'unknown'
        volatility = summary.volatility_level if summary else 'unknown'
        risk_appetite = summary.risk_appetite if summary else None

        return MarketBrief(
            overall_sentiment=risk_appetite or 'uncertain',
            sentiment_rationale='Based on technical indicators only. Configure OpenAI for full analysis.',
            key_observations=[
                f"Equity trend: {equity_trend}",
                f"Volatility: {volatility}",
                f"Risk appetite: {risk_appetite or 'unknown'}",
            ],
            watch_items=[
                'Configure OpenAI API for detailed analysis',
                'Check back for updated market data',
            ],
            data_freshness='Real-time market data, basic analysis only',
            disclaimer=DISCLAIMER,
            meta=self._provenance(None),
        )

    # ==================== ALERTS ====================

    async def detect_alerts(self, news_items: Sequence[NewsItem]) -> List[Alert]:
        """
        Ask the backend which items are high-impact. Returns only the
        candidates flagged for alerting, and nothing on the fallback path.
        """
        if not news_items:
            return []

        result = await self._call_backend(lambda: prompts.build_alert_prompt(news_items), ALERT_MAX_TOKENS)
        if result is None:
            return []

        try:
            detection = AlertDetection.model_validate(result.content)
        except ValidationError as e:
            logger.error(f"Alert detection response failed validation: {str(e)}")
            return []

        created_at = self._now()
        stamp = self._millis()
        alerts = [
            Alert(
                id=f"alert_{stamp}_{i}",
                type=candidate.type,
                title=candidate.title,
                message=candidate.message,
                severity=candidate.severity,
                source_urls=list(candidate.sources),
                confidence=candidate.confidence,
                created_at=created_at,
            )
            for i, candidate in enumerate(detection.alerts)
            if candidate.should_alert
        ]

        if not alerts and detection.no_alert_reason:
            logger.debug(f"No alerts raised: {detection.no_alert_reason}")
        return alerts

    # ==================== SCORING ====================

    def adjust_confidence(self, base_confidence: float, sources: Sequence[Any]) -> float:
        return adjust_confidence(base_confidence, sources)

    def calculate_freshness_score(self, published_at: datetime, fetched_at: datetime,
                                  now: datetime = None) -> float:
        return calculate_freshness_score(published_at, fetched_at, now or self._now())

    async def close(self) -> None:
        if self.backend is not None:
            await self.backend.close()
