"""Market feed — the market-data collaborator for the decision loop.

``SyntheticMarketFeed`` produces paper snapshots for MATCH contracts:
price around 1.0800, volatility 0.3–0.8, RSI 30–70, trend read off the
RSI and a 20-period history.  Indicators are generated, not computed.
A seed makes the stream reproducible.
"""

from __future__ import annotations

import random
from datetime import datetime, timedelta
from typing import Protocol

from signal_trader.config import settings
from signal_trader.models.market import MarketSnapshot, PricePoint, Trend
from signal_trader.utils.logger import logger


class MarketDataProvider(Protocol):
    async def snapshot(self) -> MarketSnapshot: ...


def _display_name(symbol: str) -> str:
    """MATCH_EURUSD → 'EURUSD Match'."""
    if symbol.startswith("MATCH_"):
        return f"{symbol.removeprefix('MATCH_')} Match"
    return symbol


class SyntheticMarketFeed:
    """Paper market: one independent snapshot per call."""

    BASE_PRICE = 1.0800
    HISTORY_PERIODS = 20
    PERIOD_MINUTES = 5

    def __init__(
        self,
        symbols: list[str] | None = None,
        *,
        seed: int | None = None,
    ) -> None:
        self.symbols = symbols or list(settings.MARKET_SYMBOLS)
        if not self.symbols:
            raise ValueError("SyntheticMarketFeed needs at least one symbol")
        self._rng = random.Random(seed)

    async def snapshot(self) -> MarketSnapshot:
        rng = self._rng
        symbol = rng.choice(self.symbols)
        current_price = self.BASE_PRICE + (rng.random() - 0.5) * 0.02
        volatility = 0.3 + rng.random() * 0.5
        rsi = 30 + rng.random() * 40
        macd = "bullish" if rng.random() > 0.5 else "bearish"
        trend = Trend.UPTREND if rsi > 50 else Trend.DOWNTREND

        now = datetime.now()
        history = tuple(
            PricePoint(
                timestamp=now - timedelta(
                    minutes=(self.HISTORY_PERIODS - i) * self.PERIOD_MINUTES,
                ),
                price=self.BASE_PRICE + (rng.random() - 0.5) * 0.03,
                volume=rng.random() * 1_000_000,
            )
            for i in range(self.HISTORY_PERIODS)
        )

        snap = MarketSnapshot(
            symbol=symbol,
            display=_display_name(symbol),
            contract_type="MATCH",
            current_price=current_price,
            volatility=volatility,
            trend=trend,
            rsi=rsi,
            macd=macd,
            history=history,
            observed_at=now,
        )
        logger.info("[MarketFeed] %s @ $%.4f", snap.symbol, snap.current_price)
        return snap
