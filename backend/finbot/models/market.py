from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from typing import Dict, List, Optional
from datetime import datetime


class CamelModel(BaseModel):
    """Base for every outward record: camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class FrozenCamelModel(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class SymbolInfo(FrozenCamelModel):
    symbol: str
    name: str
    provider_symbol: str
    asset_class: str


class TechnicalIndicators(FrozenCamelModel):
    sma20: Optional[float] = None
    sma50: Optional[float] = None
    rsi14: float
    momentum10: float
    volatility: float
    trend_strength: str


class Quote(FrozenCamelModel):
    symbol: str
    name: str
    price: float
    previous_close: float
    change: float
    change_percent: float
    high: Optional[float] = None
    low: Optional[float] = None
    volume: Optional[float] = None
    high_52w: Optional[float] = Field(default=None, alias="high52w")
    low_52w: Optional[float] = Field(default=None, alias="low52w")
    historical_closes: List[float] = Field(default_factory=list)
    historical_timestamps: List[int] = Field(default_factory=list)
    market_state: Optional[str] = None
    fetched_at: datetime
    technicals: Optional[TechnicalIndicators] = None

    @model_validator(mode="after")
    def _check_series(self):
        if len(self.historical_closes) != len(self.historical_timestamps):
            raise ValueError("historical closes and timestamps must have equal length")
        if abs(self.change - (self.price - self.previous_close)) > 1e-6:
            raise ValueError("change must equal price - previous_close")
        return self


class MarketSummary(FrozenCamelModel):
    equity_trend: str
    volatility_level: str
    dollar_strength: str
    risk_appetite: str
    yield_environment: str


class MarketSnapshot(FrozenCamelModel):
    timestamp: datetime
    markets: Dict[str, Quote]
    summary: MarketSummary
    is_mock_data: bool = False


class CachedSnapshot(CamelModel):
    data: MarketSnapshot
    cached: bool
    cache_age: Optional[int] = None
