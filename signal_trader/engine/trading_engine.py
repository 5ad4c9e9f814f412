"""Trading Engine — explicit owner of all decision state.

Holds the stats ledger, the loss streak and the trade collection behind
query/command methods.  Presentation and persistence layers subscribe to
change notifications instead of reaching into the state.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any, Literal

from signal_trader.engine.ledger import StatsLedger
from signal_trader.engine.lifecycle import TradeLifecycleManager
from signal_trader.models.signal import Direction
from signal_trader.models.trading import EngineState, Stats, Trade
from signal_trader.utils.logger import logger

Listener = Callable[[str, dict[str, Any]], None]


class TradingEngine:
    """Query/command facade over the lifecycle manager and ledger."""

    def __init__(
        self,
        *,
        balance: float = 0.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.clock = clock
        self._listeners: list[Listener] = []
        self.lifecycle = TradeLifecycleManager(
            StatsLedger(balance), clock=clock, on_event=self._notify,
        )

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, event: str, payload: dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, payload)
            except Exception:
                # A broken subscriber must not undo a settlement
                logger.exception("[Engine] Listener failed on %s", event)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def snapshot(self) -> EngineState:
        stats, streak, pending = self.lifecycle.read_state()
        return EngineState(
            stats=stats, consecutive_losses=streak, pending_trades=pending,
        )

    @property
    def stats(self) -> Stats:
        return self.lifecycle.ledger.snapshot()

    @property
    def consecutive_losses(self) -> int:
        return self.lifecycle.consecutive_losses

    def trades(self, limit: int | None = None) -> list[Trade]:
        trades = self.lifecycle.trades()
        return trades[:limit] if limit is not None else trades

    def pending_trades(self) -> list[Trade]:
        return self.lifecycle.pending()

    def get_trade(self, trade_id: str) -> Trade | None:
        return self.lifecycle.get(trade_id)

    def has_pending(self) -> bool:
        return self.snapshot().pending_trades > 0

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def reset_balance(self, balance: float) -> Stats:
        stats = self.lifecycle.reset_balance(balance)
        logger.info("[Engine] Balance reset to %.2f", balance)
        self._notify("balance_reset", {"stats": stats})
        return stats

    def open_trade(
        self,
        *,
        symbol: str,
        direction: Direction,
        stake: float,
        confidence: int,
        duration_seconds: float,
        contract_id: str | None = None,
        contract_type: str = "MATCH",
        entry_price: float | None = None,
    ) -> Trade:
        return self.lifecycle.create(
            symbol=symbol,
            direction=direction,
            stake=stake,
            confidence=confidence,
            duration_seconds=duration_seconds,
            contract_id=contract_id,
            contract_type=contract_type,
            entry_price=entry_price,
        )

    def settle(
        self,
        trade_id: str,
        outcome: Literal["won", "lost"],
        payout: float | None = None,
    ) -> Trade | None:
        return self.lifecycle.settle(trade_id, outcome, payout)

    def due_trades(self, now: float | None = None) -> list[Trade]:
        return self.lifecycle.due(now)

    def retry_later(self, trade_id: str, delay: float) -> bool:
        """Schedule another settlement attempt *delay* seconds from now."""
        return self.lifecycle.requeue(trade_id, self.clock() + delay)
