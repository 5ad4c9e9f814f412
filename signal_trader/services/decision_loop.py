"""Decision Loop — one tick of the trading bot.

Chains:  Account check → Market snapshot → Signal → Governor → Stake → Trade

Every tick is independent and never raises: collaborator failures end
the tick with a logged ``TickResult`` so the scheduler keeps running.
State (stats, loss streak) is read once at the top of the tick; trades
settling while the tick awaits the analyzer do not leak into its sizing.
"""

from __future__ import annotations

from collections.abc import Callable

from signal_trader.agents.signal_agent import SignalAgent
from signal_trader.config import settings as app_settings
from signal_trader.engine.governor import TradingGovernor
from signal_trader.engine.risk_sizer import size_stake
from signal_trader.engine.trading_engine import TradingEngine
from signal_trader.models.trading import TickResult, Trade, TradingSettings
from signal_trader.services.account_session import AccountSession
from signal_trader.services.event_logger import log_event
from signal_trader.services.market_feed import MarketDataProvider
from signal_trader.services.paper_broker import BrokerError, PaperBroker
from signal_trader.utils.logger import logger


class DecisionLoop:
    """Run the per-tick pipeline and drain due settlements."""

    def __init__(
        self,
        *,
        engine: TradingEngine,
        session: AccountSession,
        feed: MarketDataProvider,
        broker: PaperBroker,
        analyzer: SignalAgent | None = None,
        governor: TradingGovernor | None = None,
        trading_settings: Callable[[], TradingSettings] | None = None,
    ) -> None:
        self.engine = engine
        self.session = session
        self.feed = feed
        self.broker = broker
        self.analyzer = analyzer or SignalAgent()
        self.governor = governor or TradingGovernor()
        self._settings = trading_settings or app_settings.get_trading_settings
        self.last_result: TickResult | None = None
        self.ticks = 0

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    async def run_tick(self) -> TickResult:
        self.ticks += 1
        result = await self._tick()
        self.last_result = result
        return result

    async def _tick(self) -> TickResult:
        settings = self._settings()

        # ── Step 1: account prerequisite ──────────────────────────
        account = self.session.current()
        if account is None:
            logger.warning("[DecisionLoop] ❌ No account selected — tick skipped")
            log_event(
                "system", "tick_skipped", "Please select an account first",
                status="error",
            )
            return TickResult(status="no_account", detail="No account selected")

        state = self.engine.snapshot()

        # ── Step 2: market snapshot ───────────────────────────────
        try:
            snapshot = await self.feed.snapshot()
        except Exception as exc:
            logger.warning("[DecisionLoop] Market data unavailable: %s", exc)
            log_event(
                "system", "market_data_error", f"Market data unavailable: {exc}",
                status="error",
            )
            return TickResult(status="market_data_error", detail=str(exc))

        # ── Step 3: signal (never raises) ─────────────────────────
        outcome = await self.analyzer.evaluate(snapshot, settings)
        signal = outcome.signal
        if outcome.kind == "fallback":
            log_event(
                "analysis", "signal_fallback",
                f"Fallback signal ({outcome.reason}): {signal.confidence}% "
                f"{signal.direction.value}",
                symbol=snapshot.symbol,
                metadata={"live_call": outcome.live_call},
                status="warning",
            )
        else:
            log_event(
                "analysis", "signal_parsed",
                f"{signal.confidence}% {signal.direction.value} "
                f"risk {signal.risk_level.value}: {signal.summary()}",
                symbol=snapshot.symbol,
            )

        # ── Step 4: governance ────────────────────────────────────
        decision = self.governor.approve(signal, state.consecutive_losses, settings)
        if not decision.approved:
            logger.info("[DecisionLoop] ⏭️  Skipping %s — %s", snapshot.symbol, decision.reason)
            log_event(
                "governance", "trade_rejected", decision.reason,
                symbol=snapshot.symbol, status="skipped",
            )
            return TickResult(
                status="rejected",
                detail=decision.reason,
                symbol=snapshot.symbol,
                confidence=signal.confidence,
                signal_source=outcome.kind,
            )

        # ── Step 5: stake from tick-start stats ───────────────────
        stake = size_stake(
            signal.confidence,
            state.stats.win_rate,
            state.stats.balance,
            settings,
        )

        # ── Step 6: submit + record ───────────────────────────────
        try:
            receipt = await self.broker.submit_contract(
                symbol=snapshot.symbol,
                contract_type=snapshot.contract_type,
                direction=signal.direction,
                stake=stake,
                duration_seconds=settings.trade_duration_seconds,
            )
        except BrokerError as exc:
            logger.error("[DecisionLoop] Broker rejected %s: %s", snapshot.symbol, exc)
            log_event(
                "trading", "broker_error", str(exc),
                symbol=snapshot.symbol, status="error",
            )
            return TickResult(
                status="broker_error",
                detail=str(exc),
                symbol=snapshot.symbol,
                confidence=signal.confidence,
                signal_source=outcome.kind,
                stake=stake,
            )

        trade = self.engine.open_trade(
            symbol=snapshot.symbol,
            direction=signal.direction,
            stake=stake,
            confidence=signal.confidence,
            duration_seconds=settings.trade_duration_seconds,
            contract_id=receipt.contract_id,
            contract_type=snapshot.contract_type,
            entry_price=snapshot.current_price,
        )
        logger.info(
            "[DecisionLoop] 🤖 %s Trade: %s | Stake: $%.2f | Direction: %s",
            snapshot.contract_type, snapshot.label, trade.stake,
            trade.direction.value,
        )
        return TickResult(
            status="traded",
            detail=decision.reason,
            symbol=snapshot.symbol,
            confidence=signal.confidence,
            signal_source=outcome.kind,
            stake=trade.stake,
            trade_id=trade.id,
        )

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def win_probability(self) -> float:
        """Paper outcome bias: configured, else recent win rate + 5%."""
        if app_settings.PAPER_WIN_PROBABILITY is not None:
            return app_settings.PAPER_WIN_PROBABILITY
        stats = self.engine.stats
        if stats.total_trades == 0:
            return 0.5
        return min(1.0, stats.win_rate + 0.05)

    async def settle_due(self, now: float | None = None) -> list[Trade]:
        """Settle every trade whose contract duration has elapsed.

        Trades settle in fire-time order, which can differ from the order
        they were opened in.  A trade whose outcome cannot be fetched is
        re-armed for the next poll instead of being dropped.
        """
        retry_in = self._settings().settlement_poll_seconds
        settled: list[Trade] = []
        for trade in self.engine.due_trades(now):
            if trade.contract_id is None:
                logger.warning(
                    "[DecisionLoop] %s has no contract reference — "
                    "waiting for a manual settlement", trade.id,
                )
                continue
            try:
                event = await self.broker.resolve(
                    trade.contract_id, self.win_probability(),
                )
            except Exception as exc:
                logger.error(
                    "[DecisionLoop] Could not resolve %s (%s): %s — retrying in %.1fs",
                    trade.id, trade.contract_id, exc, retry_in,
                )
                log_event(
                    "settlement", "resolve_failed", str(exc),
                    symbol=trade.symbol, metadata={"trade_id": trade.id},
                    status="error",
                )
                self.engine.retry_later(trade.id, retry_in)
                continue
            result = self.engine.settle(trade.id, event.outcome, event.payout)
            if result is not None:
                settled.append(result)
        return settled
