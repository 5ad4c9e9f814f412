"""Risk Sizer — converts confidence and track record into a bounded stake.

Capped fractional Kelly at even money (payout ratio b = 1):

    kelly = (b*p - q) / b        clamped to [KELLY_FLOOR, KELLY_CAP]
    stake = balance * kelly * (confidence / 100) * CONFIDENCE_CEILING

then capped at ``max_stake`` and floored at ``MIN_STAKE``.  With no
usable history (win rate missing, 0 or 1) a flat quarter of
``max_stake`` is used instead.

Pure functions only: same inputs, same float out.
"""

from __future__ import annotations

from signal_trader.models.trading import TradingSettings

PAYOUT_RATIO = 1.0
KELLY_FLOOR = 0.01
KELLY_CAP = 0.25
CONFIDENCE_CEILING = 0.8
DEGENERATE_STAKE_FRACTION = 0.25
MIN_STAKE = 1.0


def is_degenerate(win_rate: float | None) -> bool:
    """No history and a perfect history are both untrustworthy."""
    return win_rate is None or win_rate <= 0 or win_rate >= 1


def kelly_fraction(win_rate: float) -> float:
    """Clamped Kelly fraction for a win probability strictly inside (0, 1)."""
    p = win_rate
    q = 1 - p
    b = PAYOUT_RATIO
    kelly = (b * p - q) / b
    return max(KELLY_FLOOR, min(kelly, KELLY_CAP))


def confidence_factor(confidence: float) -> float:
    return (confidence / 100) * CONFIDENCE_CEILING


def size_stake(
    confidence: float,
    win_rate: float | None,
    balance: float,
    settings: TradingSettings,
) -> float:
    """Return the stake for one trade.

    Args:
        confidence: Signal confidence, 0–100.
        win_rate: Historical win rate as of the start of the cycle.
        balance: Account balance as of the start of the cycle.
        settings: Active trading settings (only ``max_stake`` is read).
    """
    if is_degenerate(win_rate):
        return min(settings.max_stake * DEGENERATE_STAKE_FRACTION, settings.max_stake)

    kelly = kelly_fraction(win_rate)  # type: ignore[arg-type]
    stake = balance * kelly * confidence_factor(confidence)
    stake = min(stake, settings.max_stake)
    return max(MIN_STAKE, stake)
