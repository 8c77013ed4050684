from pydantic import Field
from typing import List, Literal, Optional
from datetime import datetime

from .market import CamelModel, FrozenCamelModel
from .news import SourceRef


class Provenance(FrozenCamelModel):
    backend: str
    model: str
    prompt_version: str
    generated_at: datetime
    is_fallback: bool = False
    base_confidence: Optional[float] = None
    raw_response: Optional[str] = None


class ImpactedAssets(FrozenCamelModel):
    equities: List[str] = Field(default_factory=list)
    crypto: List[str] = Field(default_factory=list)
    forex: List[str] = Field(default_factory=list)
    commodities: List[str] = Field(default_factory=list)
    rates: List[str] = Field(default_factory=list)


class EventCard(FrozenCamelModel):
    id: str
    category: str
    title: str
    summary: str
    why_it_matters: str
    impacted_regions: List[str] = Field(default_factory=list)
    impacted_sectors: List[str] = Field(default_factory=list)
    impacted_assets: ImpactedAssets = Field(default_factory=ImpactedAssets)
    confidence: float = Field(ge=0, le=100)
    confidence_rationale: str
    source_agreement: str = ""
    caveats: List[str] = Field(default_factory=list)
    sources: List[SourceRef] = Field(default_factory=list)
    meta: Provenance = Field(alias="_meta")


class Evidence(FrozenCamelModel):
    claim: str
    source: str
    source_url: Optional[str] = None
    timestamp: Optional[str] = None
    freshness_note: Optional[str] = None


class Scenarios(FrozenCamelModel):
    base: str
    bull: str
    bear: str


class ConfidenceFactors(FrozenCamelModel):
    increases: List[str] = Field(default_factory=list)
    decreases: List[str] = Field(default_factory=list)


class Implication(FrozenCamelModel):
    direction: str
    rationale: str
    caveats: str = ""


class Implications(FrozenCamelModel):
    equities: Implication
    crypto: Implication
    forex: Implication
    commodities: Implication
    rates: Implication


class Insight(FrozenCamelModel):
    id: str
    title: str
    theme: str
    thesis: List[str]
    evidence: List[Evidence] = Field(default_factory=list)
    counter_arguments: List[str]
    what_would_change_my_mind: str
    scenarios: Scenarios
    confidence: float = Field(ge=0, le=100)
    confidence_factors: ConfidenceFactors = Field(default_factory=ConfidenceFactors)
    risk_level: str
    horizon: str
    potential_implications: Implications
    data_quality_note: str = ""
    sources: List[SourceRef] = Field(default_factory=list)
    meta: Provenance = Field(alias="_meta")


class MarketBrief(FrozenCamelModel):
    overall_sentiment: str
    sentiment_rationale: str
    key_observations: List[str]
    watch_items: List[str] = Field(default_factory=list)
    data_freshness: str = ""
    disclaimer: str
    meta: Provenance = Field(alias="_meta")


class AlertCandidate(FrozenCamelModel):
    should_alert: bool = False
    type: str = "high_impact"
    severity: Literal["info", "warning", "critical"] = "info"
    title: str
    message: str
    sources: List[str] = Field(default_factory=list)
    confidence: Optional[float] = Field(default=None, ge=0, le=100)


class AlertDetection(FrozenCamelModel):
    alerts: List[AlertCandidate] = Field(default_factory=list)
    no_alert_reason: Optional[str] = None


class Alert(CamelModel):
    id: str
    type: str = "manual"
    title: str
    message: str
    severity: Literal["info", "warning", "critical"] = "info"
    source_urls: List[str] = Field(default_factory=list)
    confidence: Optional[float] = None
    is_read: bool = False
    created_at: datetime
