"""Trade Journal — persistent trade history fed by engine notifications.

The engine's in-memory collection is authoritative; the journal keeps a
copy in DuckDB so history survives restarts and can be queried.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from signal_trader.database import get_db
from signal_trader.models.trading import Trade
from signal_trader.services.event_logger import log_event
from signal_trader.utils.logger import logger


class TradeJournal:
    """Engine listener that upserts every opened/settled trade."""

    def __init__(self, account_id: Callable[[], str | None] = lambda: None) -> None:
        self._account_id = account_id

    def __call__(self, event: str, payload: dict[str, Any]) -> None:
        if event == "trade_opened":
            trade: Trade = payload["trade"]
            self.record(trade)
            log_event(
                "trading", "trade_opened",
                f"{trade.symbol} {trade.direction.value} stake ${trade.stake:.2f} "
                f"(conf {trade.confidence}%)",
                symbol=trade.symbol,
                metadata={"trade_id": trade.id, "contract_id": trade.contract_id},
            )
        elif event == "trade_settled":
            trade = payload["trade"]
            self.record(trade)
            stats = payload["stats"]
            log_event(
                "settlement", "trade_settled",
                f"{trade.id} {trade.status.value.upper()} {trade.pnl:+.2f} — "
                f"balance ${stats.balance:.2f}",
                symbol=trade.symbol,
                metadata={
                    "trade_id": trade.id,
                    "pnl": trade.pnl,
                    "win_rate": stats.win_rate,
                    "consecutive_losses": payload["consecutive_losses"],
                },
                status="success" if trade.pnl and trade.pnl > 0 else "warning",
            )
        elif event == "settlement_anomaly":
            log_event(
                "settlement", "settlement_anomaly",
                f"Ignored settlement for {payload['trade_id']}: {payload['reason']}",
                metadata=payload,
                status="warning",
            )

    def record(self, trade: Trade) -> None:
        try:
            get_db().execute(
                """
                INSERT OR REPLACE INTO trades
                    (id, account_id, symbol, contract_type, contract_id,
                     direction, stake, confidence, entry_price, status,
                     pnl, payout, created_at, settled_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    trade.id,
                    self._account_id(),
                    trade.symbol,
                    trade.contract_type,
                    trade.contract_id,
                    trade.direction.value,
                    trade.stake,
                    trade.confidence,
                    trade.entry_price,
                    trade.status.value,
                    trade.pnl,
                    trade.payout,
                    trade.created_at,
                    trade.settled_at,
                ],
            )
        except Exception as exc:
            logger.warning("[TradeJournal] Failed to persist %s: %s", trade.id, exc)

    @staticmethod
    def recent(limit: int = 50, account_id: str | None = None) -> list[dict]:
        """Return persisted trades, newest first."""
        params: list = []
        where = ""
        if account_id:
            where = " WHERE account_id = ?"
            params.append(account_id)
        params.append(limit)

        db = get_db()
        rows = db.execute(
            f"SELECT * FROM trades{where} ORDER BY created_at DESC, id DESC LIMIT ?",
            params,
        ).fetchall()
        cols = [desc[0] for desc in db.description]
        return [dict(zip(cols, row)) for row in rows]
