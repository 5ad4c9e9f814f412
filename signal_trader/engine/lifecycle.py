"""Trade Lifecycle Manager — pending → won | lost, exactly once.

Owns the trade collection, the consecutive-loss counter and the stats
ledger.  A settlement updates all three as one unit under a lock, so
nothing ever sees a trade marked won while the ledger still lacks it.
The lock is uncontended on the asyncio loop; it only matters when a
settlement arrives from a worker thread.
"""

from __future__ import annotations

import itertools
import threading
from collections.abc import Callable
from datetime import datetime
from typing import Any, Literal

from signal_trader.engine.ledger import StatsLedger
from signal_trader.engine.settlement_queue import SettlementQueue
from signal_trader.models.signal import Direction
from signal_trader.models.trading import Stats, Trade, TradeStatus
from signal_trader.utils.logger import logger

EventSink = Callable[[str, dict[str, Any]], None]


class TradeLifecycleManager:
    """Creates trades, schedules their settlement and settles them once."""

    def __init__(
        self,
        ledger: StatsLedger | None = None,
        *,
        clock: Callable[[], float],
        on_event: EventSink | None = None,
    ) -> None:
        self.ledger = ledger or StatsLedger()
        self.queue = SettlementQueue()
        self._clock = clock
        self._on_event = on_event
        self._trades: dict[str, Trade] = {}
        self._consecutive_losses = 0
        self._ids = itertools.count(1)
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def consecutive_losses(self) -> int:
        return self._consecutive_losses

    def get(self, trade_id: str) -> Trade | None:
        trade = self._trades.get(trade_id)
        return trade.model_copy() if trade else None

    def trades(self) -> list[Trade]:
        """All trades, newest first."""
        with self._lock:
            return [t.model_copy() for t in reversed(self._trades.values())]

    def pending(self) -> list[Trade]:
        with self._lock:
            return [
                t.model_copy()
                for t in self._trades.values()
                if t.status is TradeStatus.PENDING
            ]

    def read_state(self) -> tuple[Stats, int, int]:
        """Stats, loss streak and pending count from one consistent instant."""
        with self._lock:
            return (
                self.ledger.snapshot(),
                self._consecutive_losses,
                sum(
                    1 for t in self._trades.values()
                    if t.status is TradeStatus.PENDING
                ),
            )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create(
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
        """Record a new pending trade and schedule its settlement."""
        now = self._clock()
        with self._lock:
            trade_id = f"TRADE-{int(now * 1000):013d}-{next(self._ids):06d}"
            trade = Trade(
                id=trade_id,
                symbol=symbol,
                direction=direction,
                stake=max(round(stake, 2), 0.01),
                confidence=confidence,
                contract_id=contract_id,
                contract_type=contract_type,
                entry_price=entry_price,
                settle_at=now + duration_seconds,
            )
            self._trades[trade_id] = trade
            self.queue.push(trade_id, trade.settle_at)

        logger.info(
            "[Lifecycle] OPEN %s %s %s stake=%.2f conf=%d%% settles in %.0fs",
            trade_id, symbol, direction.value, trade.stake, confidence,
            duration_seconds,
        )
        self._emit("trade_opened", {"trade": trade.model_copy()})
        return trade.model_copy()

    def due(self, now: float | None = None) -> list[Trade]:
        """Pop trades whose contract duration has elapsed, in fire order."""
        now = self._clock() if now is None else now
        with self._lock:
            ids = self.queue.pop_due(now)
            return [self._trades[i].model_copy() for i in ids if i in self._trades]

    def requeue(self, trade_id: str, fire_at: float) -> bool:
        """Re-arm the completion of a trade that is still pending."""
        with self._lock:
            trade = self._trades.get(trade_id)
            if trade is None or trade.status.is_terminal or trade_id in self.queue:
                return False
            self.queue.push(trade_id, fire_at)
            return True

    def settle(
        self,
        trade_id: str,
        outcome: Literal["won", "lost"],
        payout: float | None = None,
    ) -> Trade | None:
        """Move a pending trade to its terminal state.

        Returns the settled trade, or None when the id is unknown or the
        trade is already terminal.  Neither case touches the ledger.
        """
        with self._lock:
            trade = self._trades.get(trade_id)
            if trade is None:
                self._anomaly(trade_id, outcome, "unknown trade id")
                return None
            if trade.status.is_terminal:
                self._anomaly(
                    trade_id, outcome, f"already settled as {trade.status.value}",
                )
                return None

            won = outcome == "won"
            pnl = trade.stake if won else -trade.stake

            trade.status = TradeStatus.WON if won else TradeStatus.LOST
            trade.pnl = pnl
            trade.payout = payout
            trade.settled_at = datetime.now()
            self._consecutive_losses = 0 if won else self._consecutive_losses + 1
            stats = self.ledger.apply(won, pnl)
            self.queue.discard(trade_id)
            settled = trade.model_copy()
            streak = self._consecutive_losses

        logger.info(
            "[Lifecycle] %s %s pnl=%+.2f | W:%d L:%d WR:%.1f%% P&L:%+.2f "
            "balance=%.2f streak=%d",
            "WON " if won else "LOST", trade_id, pnl, stats.wins, stats.losses,
            stats.win_rate * 100, stats.total_pnl, stats.balance, streak,
        )
        self._emit(
            "trade_settled",
            {"trade": settled, "stats": stats, "consecutive_losses": streak},
        )
        return settled

    def reset_balance(self, balance: float) -> Stats:
        with self._lock:
            return self.ledger.reset_balance(balance)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _anomaly(self, trade_id: str, outcome: str, why: str) -> None:
        logger.warning(
            "[Lifecycle] Settlement anomaly for %s (%s): %s — ignored",
            trade_id, outcome, why,
        )
        self._emit(
            "settlement_anomaly",
            {"trade_id": trade_id, "outcome": outcome, "reason": why},
        )

    def _emit(self, event: str, payload: dict[str, Any]) -> None:
        if self._on_event is not None:
            self._on_event(event, payload)
