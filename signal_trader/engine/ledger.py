"""Stats Ledger — single owner of the cumulative counters."""

from __future__ import annotations

from signal_trader.models.trading import Stats


class StatsLedger:
    """Running totals. Written only by the lifecycle manager on settlement."""

    def __init__(self, balance: float = 0.0) -> None:
        self._stats = Stats(balance=balance)

    def snapshot(self) -> Stats:
        """Return a detached copy; callers never see later mutations."""
        return self._stats.model_copy()

    def apply(self, won: bool, pnl: float) -> Stats:
        """Fold one settlement into the totals and return the new snapshot.

        The replacement Stats is built in full before it is swapped in,
        so no reader can observe wins updated without the balance.
        """
        s = self._stats
        wins = s.wins + (1 if won else 0)
        losses = s.losses + (0 if won else 1)
        total = wins + losses
        self._stats = Stats(
            total_trades=total,
            wins=wins,
            losses=losses,
            win_rate=wins / total if total > 0 else 0.0,
            total_pnl=s.total_pnl + pnl,
            balance=s.balance + pnl,
        )
        return self.snapshot()

    def reset_balance(self, balance: float) -> Stats:
        """Seed the balance from a newly selected account."""
        self._stats = self._stats.model_copy(update={"balance": balance})
        return self.snapshot()
