"""Market models — one immutable observation per decision cycle."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class Trend(str, Enum):
    UPTREND = "uptrend"
    DOWNTREND = "downtrend"


class PricePoint(BaseModel):
    """One period of recent price history."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    price: float
    volume: float = 0.0


class MarketSnapshot(BaseModel):
    """Market conditions at a point in time.

    Indicators (RSI, MACD bias, volatility) are opaque inputs produced by
    the market-data collaborator; nothing here computes them.
    """

    model_config = ConfigDict(frozen=True)

    symbol: str
    current_price: float
    volatility: float = Field(ge=0.0)
    trend: Trend
    rsi: float
    display: str = ""
    contract_type: str = "MATCH"
    macd: Literal["bullish", "bearish"] | None = None
    history: tuple[PricePoint, ...] = ()
    observed_at: datetime = Field(default_factory=datetime.now)

    @property
    def label(self) -> str:
        return self.display or self.symbol
