"""Trading Governor — the only component allowed to approve a trade.

Checks, in priority order:
  • Circuit breaker: consecutive losses at or above the configured limit
  • Confidence gate: signal below the configured threshold

The governor reads the loss counter but never changes it; only a
winning settlement closes the breaker again.
"""

from __future__ import annotations

from signal_trader.models.signal import Signal
from signal_trader.models.trading import Decision, TradingSettings
from signal_trader.utils.logger import logger


class TradingGovernor:
    """Go / no-go for a single decision cycle."""

    def approve(
        self,
        signal: Signal,
        consecutive_losses: int,
        settings: TradingSettings,
    ) -> Decision:
        # ── Guard: circuit breaker (takes priority over everything) ──
        if consecutive_losses >= settings.max_consecutive_losses:
            reason = (
                f"Circuit breaker: {consecutive_losses} consecutive losses "
                f"(limit {settings.max_consecutive_losses})"
            )
            logger.info("[Governor] REJECT — %s", reason)
            return Decision(approved=False, reason=reason)

        # ── Guard: confidence gate ──────────────────────────────────
        # should_trade was computed by the analyzer; re-check against the
        # settings actually in force for this cycle.
        if (
            not signal.should_trade
            or signal.confidence < settings.confidence_threshold
        ):
            reason = (
                f"Confidence {signal.confidence}% < "
                f"{settings.confidence_threshold}%"
            )
            logger.info("[Governor] REJECT — %s", reason)
            return Decision(approved=False, reason=reason)

        reason = (
            f"Confidence {signal.confidence}% ≥ {settings.confidence_threshold}%, "
            f"{consecutive_losses}/{settings.max_consecutive_losses} losses in a row"
        )
        logger.info("[Governor] APPROVE — %s", reason)
        return Decision(approved=True, reason=reason)
