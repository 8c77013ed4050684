"""
Prompt templates for FinBot's generative analysis.

These prompts are written so the model:
1. Never gives financial advice
2. Always states uncertainty and counter-arguments
3. Cites sources for claims about news or events
4. Analyzes rather than recommends

PROMPT_VERSION is stamped into every artifact's provenance block. Bump it
whenever a template changes.
"""

import json
from typing import Any, Dict, List, Sequence

from ..models.insight import EventCard
from ..models.market import MarketSnapshot
from ..models.news import NewsItem

PROMPT_VERSION = '1.0.0'

INSIGHT_THEMES = [
    {'id': 'rate_policy', 'name': 'Interest Rate Policy', 'description': 'Central bank decisions and monetary policy'},
    {'id': 'inflation', 'name': 'Inflation', 'description': 'Price pressures and CPI trends'},
    {'id': 'geopolitics', 'name': 'Geopolitics', 'description': 'International relations and conflicts'},
    {'id': 'earnings', 'name': 'Corporate Earnings', 'description': 'Company results and guidance'},
    {'id': 'energy', 'name': 'Energy Markets', 'description': 'Oil, gas, and energy transition'},
    {'id': 'supply_chain', 'name': 'Supply Chain', 'description': 'Logistics and shipping disruptions'},
    {'id': 'tech', 'name': 'Technology', 'description': 'Tech sector developments'},
    {'id': 'crypto_regulation', 'name': 'Crypto Regulation', 'description': 'Digital asset policy and regulation'},
    {'id': 'china', 'name': 'China', 'description': 'Chinese economy and policy'},
    {'id': 'emerging_markets', 'name': 'Emerging Markets', 'description': 'EM economies and currencies'},
    {'id': 'recession_risk', 'name': 'Recession Risk', 'description': 'Economic slowdown indicators'},
    {'id': 'liquidity', 'name': 'Market Liquidity', 'description': 'Market functioning and stress'},
]

SYSTEM_PROMPT = """You are a senior financial analyst assistant. Your role is to analyze market data, news, and geopolitical events to help users understand market dynamics.

CRITICAL RULES:
1. NEVER provide investment advice, buy/sell recommendations, or personalized financial guidance
2. ALWAYS express uncertainty - use phrases like "may indicate", "could suggest", "historically has been associated with"
3. ALWAYS provide counter-arguments and what would invalidate the analysis
4. ALWAYS cite sources with URLs when making claims about news or events
5. Focus on ANALYSIS and EDUCATION, not predictions
6. If data is stale (>24h old), explicitly note reduced confidence
7. Acknowledge limitations of the analysis

OUTPUT FORMAT: Always respond with valid JSON matching the specified schema.

DISCLAIMER: Your analysis is for informational purposes only and should not be construed as financial advice. Users should consult qualified financial advisors before making investment decisions."""

EVENT_CARD_PROMPT = """Analyze the following news items and create an Event Card summarizing the key event.

NEWS ITEMS:
<<NEWS_ITEMS>>

Create a JSON response with this exact structure:
{
  "title": "Concise event title (max 100 chars)",
  "summary": "2-3 sentence summary of the event",
  "whyItMatters": "Why this event is significant for markets (2-3 sentences)",
  "impactedRegions": ["list of regions affected"],
  "impactedSectors": ["list of sectors affected"],
  "impactedAssets": {
    "equities": ["potentially affected equity sectors/indices"],
    "crypto": ["potentially affected if relevant"],
    "forex": ["potentially affected currency pairs"],
    "commodities": ["potentially affected commodities"],
    "rates": ["bond/rate implications if any"]
  },
  "confidence": 0-100,
  "confidenceRationale": "Why this confidence level",
  "sourceAgreement": "Do sources agree or conflict? Explain",
  "caveats": ["List any important caveats or uncertainties"]
}

Remember: Focus on what happened, not what to do about it."""

INSIGHT_PROMPT = """Based on the following market data and recent events, generate an analytical insight.

MARKET SNAPSHOT:
<<MARKET_DATA>>

RECENT EVENT CARDS:
<<EVENT_CARDS>>

Generate a JSON response with this exact structure:
{
  "title": "Insight title (max 80 chars)",
  "theme": "one of: <<THEMES>>",
  "thesis": [
    "First key observation (with evidence)",
    "Second key observation (with evidence)",
    "Third key observation if applicable"
  ],
  "evidence": [
    {
      "claim": "Specific factual claim",
      "source": "Source name",
      "sourceUrl": "URL",
      "timestamp": "When published",
      "freshnessNote": "How fresh is this data"
    }
  ],
  "counterArguments": [
    "First counter-argument that could invalidate this thesis",
    "Second counter-argument"
  ],
  "whatWouldChangeMyMind": "Specific conditions that would invalidate this analysis",
  "scenarios": {
    "base": "Most likely scenario based on current information",
    "bull": "Optimistic scenario and what would need to happen",
    "bear": "Pessimistic scenario and what would need to happen"
  },
  "confidence": 0-100,
  "confidenceFactors": {
    "increases": ["Factor that would increase confidence"],
    "decreases": ["Factor that would decrease confidence"]
  },
  "riskLevel": "low/medium/high",
  "horizon": "short (1w)/medium (1m)/long (3m+)",
  "potentialImplications": {
    "equities": {
      "direction": "potentially_positive/potentially_negative/neutral/uncertain",
      "rationale": "Why this direction (NOT a recommendation)",
      "caveats": "What could be wrong"
    },
    "crypto": { "direction": "...", "rationale": "...", "caveats": "..." },
    "forex": { "direction": "...", "rationale": "...", "caveats": "..." },
    "commodities": { "direction": "...", "rationale": "...", "caveats": "..." },
    "rates": { "direction": "...", "rationale": "...", "caveats": "..." }
  },
  "dataQualityNote": "Note any data gaps or staleness issues"
}

IMPORTANT: This is ANALYSIS, not ADVICE. Always express uncertainty appropriately."""

MARKET_SUMMARY_PROMPT = """Summarize the current market conditions based on the following data.

MARKET DATA:
<<MARKET_DATA>>

Generate a JSON response:
{
  "overallSentiment": "risk_on/risk_off/mixed/uncertain",
  "sentimentRationale": "Brief explanation with data points",
  "keyObservations": [
    "First notable observation",
    "Second notable observation",
    "Third notable observation"
  ],
  "watchItems": [
    "First thing to watch for changes",
    "Second thing to watch"
  ],
  "dataFreshness": "Assessment of data quality and recency",
  "disclaimer": "This is a market summary for informational purposes only, not investment advice."
}"""

ALERT_DETECTION_PROMPT = """Analyze these items for high-impact events that warrant an alert.

ITEMS:
<<ITEMS>>

High-impact criteria:
- Central bank policy changes (rate decisions, QE changes)
- Major geopolitical events (conflicts, sanctions, elections)
- Significant economic data surprises (CPI, jobs, GDP)
- Major corporate events (defaults, large M&A, fraud)
- Natural disasters affecting supply chains
- Regulatory changes affecting major markets

Generate a JSON response:
{
  "alerts": [
    {
      "shouldAlert": true/false,
      "type": "high_impact/volatility/source_disagreement",
      "severity": "info/warning/critical",
      "title": "Alert title",
      "message": "What happened and why it matters",
      "sources": ["source URLs"],
      "confidence": 0-100
    }
  ],
  "noAlertReason": "If no alerts, explain why items don't meet threshold"
}"""

CONTENT_EXCERPT_LENGTH = 500


def market_context(snapshot: MarketSnapshot) -> Dict[str, Any]:
    """
    Compact view of a snapshot for prompting: latest levels and indicators per
    symbol plus the summary labels. Price history is left out.
    """
    markets = {}
    for symbol, quote in snapshot.markets.items():
        entry = {
            'name': quote.name,
            'price': quote.price,
            'changePercent': round(quote.change_percent, 2),
        }
        if quote.technicals is not None:
            entry['technicals'] = quote.technicals.to_dict()
        markets[symbol] = entry

    return {
        'timestamp': snapshot.timestamp.isoformat(),
        'isMockData': snapshot.is_mock_data,
        'summary': snapshot.summary.to_dict(),
        'markets': markets,
    }


def build_event_card_prompt(news_items: Sequence[NewsItem]) -> str:
    blocks = []
    for i, item in enumerate(news_items, start=1):
        content = item.raw_text[:CONTENT_EXCERPT_LENGTH] if item.raw_text else 'N/A'
        blocks.append(
            f"[Item {i}]\n"
            f"Title: {item.title}\n"
            f"Source: {item.source_name} (Credibility: {item.credibility}/100)\n"
            f"Published: {item.published_at.isoformat()}\n"
            f"URL: {item.url}\n"
            f"Content: {content}\n"
        )
    return EVENT_CARD_PROMPT.replace('<<NEWS_ITEMS>>', '\n---\n'.join(blocks))


def build_insight_prompt(snapshot: MarketSnapshot, event_cards: Sequence[EventCard]) -> str:
    market_text = json.dumps(market_context(snapshot), indent=2)
    events_text = '\n'.join(
        f"- {card.title}\n"
        f"  Summary: {card.summary}\n"
        f"  Why it matters: {card.why_it_matters}\n"
        f"  Confidence: {card.confidence:g}%"
        for card in event_cards
    ) or 'No recent events.'
    themes = ', '.join(theme['id'] for theme in INSIGHT_THEMES)

    return (
        INSIGHT_PROMPT
        .replace('<<MARKET_DATA>>', market_text)
        .replace('<<EVENT_CARDS>>', events_text)
        .replace('<<THEMES>>', themes)
    )


def build_market_summary_prompt(snapshot: MarketSnapshot) -> str:
    return MARKET_SUMMARY_PROMPT.replace('<<MARKET_DATA>>', json.dumps(market_context(snapshot), indent=2))


def build_alert_prompt(items: Sequence[NewsItem]) -> str:
    lines: List[str] = [
        f"- {item.title} ({item.source_name}, {item.published_at.isoformat()})"
        for item in items
    ]
    return ALERT_DETECTION_PROMPT.replace('<<ITEMS>>', '\n'.join(lines))
