"""Tests for the capped fractional Kelly stake sizer."""

from __future__ import annotations

import pytest

from signal_trader.engine.risk_sizer import (
    KELLY_CAP,
    KELLY_FLOOR,
    MIN_STAKE,
    confidence_factor,
    is_degenerate,
    kelly_fraction,
    size_stake,
)
from signal_trader.models.trading import TradingSettings


class TestKellyFraction:

    def test_edge_at_55_percent(self) -> None:
        assert kelly_fraction(0.55) == pytest.approx(0.10)

    def test_capped_at_quarter(self) -> None:
        assert kelly_fraction(0.99) == KELLY_CAP

    def test_negative_edge_floored(self) -> None:
        assert kelly_fraction(0.30) == KELLY_FLOOR

    def test_coin_flip_floored(self) -> None:
        assert kelly_fraction(0.5) == KELLY_FLOOR

    @pytest.mark.parametrize("win_rate", [None, 0.0, -0.1, 1.0, 1.5])
    def test_degenerate_history(self, win_rate) -> None:
        assert is_degenerate(win_rate)

    @pytest.mark.parametrize("win_rate", [0.01, 0.5, 0.99])
    def test_usable_history(self, win_rate) -> None:
        assert not is_degenerate(win_rate)

    def test_confidence_factor_tops_out_at_80_percent(self) -> None:
        assert confidence_factor(100) == pytest.approx(0.8)
        assert confidence_factor(0) == 0.0


class TestSizeStake:

    def test_capped_at_max_stake(self) -> None:
        """1000 * 0.10 * 0.72 = 72 → capped at 50."""
        cfg = TradingSettings(max_stake=50)
        assert size_stake(90, 0.55, 1000, cfg) == 50

    def test_uncapped_value(self) -> None:
        cfg = TradingSettings(max_stake=500)
        assert size_stake(90, 0.55, 1000, cfg) == pytest.approx(72.0)

    def test_floor_of_one_unit(self) -> None:
        """10 * 0.10 * 0.40 = 0.4 → floored at 1."""
        cfg = TradingSettings(max_stake=50)
        assert size_stake(50, 0.55, 10, cfg) == MIN_STAKE

    def test_zero_balance_still_floored(self) -> None:
        cfg = TradingSettings(max_stake=50)
        assert size_stake(90, 0.6, 0, cfg) == MIN_STAKE

    @pytest.mark.parametrize("win_rate", [None, 0.0, 1.0])
    def test_degenerate_uses_quarter_of_max(self, win_rate) -> None:
        cfg = TradingSettings(max_stake=50)
        assert size_stake(90, win_rate, 1000, cfg) == 12.5

    def test_degenerate_ignores_balance_and_confidence(self) -> None:
        cfg = TradingSettings(max_stake=20)
        assert size_stake(0, None, 0, cfg) == size_stake(100, None, 1e9, cfg) == 5.0

    def test_degenerate_small_max_stake_not_floored(self) -> None:
        cfg = TradingSettings(max_stake=2)
        assert size_stake(90, None, 1000, cfg) == 0.5

    @pytest.mark.parametrize("confidence", [0, 25, 50, 80, 100])
    @pytest.mark.parametrize("win_rate", [0.05, 0.45, 0.55, 0.75, 0.95])
    @pytest.mark.parametrize("balance", [0, 50, 1000, 1_000_000])
    def test_bounds(self, confidence, win_rate, balance) -> None:
        cfg = TradingSettings(max_stake=50)
        stake = size_stake(confidence, win_rate, balance, cfg)
        assert MIN_STAKE <= stake <= cfg.max_stake

    def test_pure(self) -> None:
        cfg = TradingSettings()
        assert size_stake(85, 0.6, 777, cfg) == size_stake(85, 0.6, 777, cfg)

    @pytest.mark.parametrize("confidence", [0, 50, 100])
    def test_smallest_max_stake_still_bounds_floor(self, confidence) -> None:
        cfg = TradingSettings(max_stake=1)
        assert size_stake(confidence, 0.55, 10, cfg) <= cfg.max_stake
