"""Trading models — settings, accounts, trades and the running ledger.

Used by the decision engine (Governor → RiskSizer → Lifecycle → Ledger).
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from signal_trader.models.signal import Direction


class TradingSettings(BaseModel):
    """Caller-held configuration. Read-only to the engine."""

    model_config = ConfigDict(frozen=True)

    max_stake: float = Field(default=50.0, ge=1.0)  # never below the sizer floor
    confidence_threshold: int = Field(default=80, ge=0, le=100)
    max_consecutive_losses: int = Field(default=3, ge=1)
    trade_duration_minutes: int = Field(default=1, ge=1)
    risk_limit: float = Field(default=0.02, ge=0.0, le=1.0)  # advisory only
    trading_interval_seconds: float = Field(default=5.0, gt=0)
    settlement_poll_seconds: float = Field(default=1.0, gt=0)

    @property
    def trade_duration_seconds(self) -> float:
        return self.trade_duration_minutes * 60.0


class Account(BaseModel):
    """A brokerage account as listed by the broker."""

    id: str
    name: str
    type: Literal["demo", "real"] = "demo"
    currency: str = "USD"
    balance: float = 0.0


class TradeStatus(str, Enum):
    PENDING = "pending"
    WON = "won"
    LOST = "lost"

    @property
    def is_terminal(self) -> bool:
        return self is not TradeStatus.PENDING


class Trade(BaseModel):
    """A single contract from submission to settlement.

    ``stake`` is fixed at creation. ``status``/``pnl``/``settled_at``
    change exactly once, when the trade settles.
    """

    id: str
    symbol: str
    direction: Direction
    stake: float = Field(gt=0)
    confidence: int = Field(ge=0, le=100)
    created_at: datetime = Field(default_factory=datetime.now)
    status: TradeStatus = TradeStatus.PENDING
    pnl: float | None = None
    contract_id: str | None = None
    contract_type: str = "MATCH"
    entry_price: float | None = None
    settle_at: float = 0.0  # engine-clock fire time
    settled_at: datetime | None = None
    payout: float | None = None  # broker-reported, informational


class Stats(BaseModel):
    """Cumulative win/loss ledger. Owned by the StatsLedger."""

    total_trades: int = 0
    wins: int = 0
    losses: int = 0
    win_rate: float = 0.0
    total_pnl: float = 0.0
    balance: float = 0.0


class Decision(BaseModel):
    """Governor verdict for one cycle."""

    model_config = ConfigDict(frozen=True)

    approved: bool
    reason: str


class ContractReceipt(BaseModel):
    """Broker acknowledgement of a submitted contract."""

    contract_id: str
    symbol: str
    direction: Direction
    stake: float
    duration_seconds: float
    submitted_at: datetime = Field(default_factory=datetime.now)


class SettlementEvent(BaseModel):
    """Terminal outcome reported for one contract."""

    outcome: Literal["won", "lost"]
    payout: float | None = None


class EngineState(BaseModel):
    """Read-only view of engine state taken at one instant."""

    stats: Stats
    consecutive_losses: int
    pending_trades: int


class TickResult(BaseModel):
    """What one Decision Loop tick did."""

    status: Literal[
        "no_account",
        "market_data_error",
        "rejected",
        "broker_error",
        "traded",
    ]
    detail: str = ""
    symbol: str | None = None
    confidence: int | None = None
    signal_source: Literal["parsed", "fallback"] | None = None
    stake: float | None = None
    trade_id: str | None = None
