"""Tests for the signal agent — reply parsing, coercion and fallback."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from signal_trader.agents.signal_agent import (
    DEGRADED_REASON,
    UNREACHABLE_REASON,
    SignalAgent,
    fallback_confidence,
    risk_for_confidence,
    suggested_stake,
)
from signal_trader.models.market import MarketSnapshot, Trend
from signal_trader.models.signal import Direction, RiskLevel, SignalPayload
from signal_trader.models.trading import TradingSettings


def _agent(reply=None, error: Exception | None = None) -> SignalAgent:
    llm = MagicMock()
    if error is not None:
        llm.chat = AsyncMock(side_effect=error)
    else:
        llm.chat = AsyncMock(return_value=reply)
    return SignalAgent(llm=llm)


# ──────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────

class TestHelpers:

    @pytest.mark.parametrize(
        ("confidence", "level"),
        [(90, RiskLevel.LOW), (76, RiskLevel.LOW), (75, RiskLevel.MEDIUM),
         (61, RiskLevel.MEDIUM), (60, RiskLevel.HIGH), (10, RiskLevel.HIGH)],
    )
    def test_risk_for_confidence(self, confidence, level) -> None:
        assert risk_for_confidence(confidence) is level

    def test_fallback_confidence_range(self, snapshot) -> None:
        for rsi in (0, 30, 49.5, 50, 64, 70, 100):
            conf = fallback_confidence(snapshot.model_copy(update={"rsi": rsi}))
            assert 25 <= conf <= 50

    def test_fallback_confidence_deterministic(self, snapshot) -> None:
        assert fallback_confidence(snapshot) == fallback_confidence(snapshot) == 32

    def test_suggested_stake_half_units(self) -> None:
        cfg = TradingSettings(max_stake=50)
        assert suggested_stake(92, 0.5, cfg) == 23.0
        assert suggested_stake(85, 1.0, cfg) == 42.5

    def test_suggested_stake_capped(self) -> None:
        cfg = TradingSettings(max_stake=10)
        assert suggested_stake(100, 1.0, cfg) == 10

    def test_format_context(self, snapshot) -> None:
        text = SignalAgent.format_context(snapshot)
        assert "EURUSD Match" in text
        assert "RSI (Relative Strength Index): 64" in text
        assert "MACD Signal: bullish" in text
        assert "Trend: uptrend" in text
        assert "MATCH contract" in text


# ──────────────────────────────────────────────────────────────
# Parsing
# ──────────────────────────────────────────────────────────────

class TestParseReply:

    def test_plain_json(self) -> None:
        payload = SignalAgent.parse_reply('{"signal": "BUY", "confidence": 85}')
        assert payload.signal == "BUY"
        assert payload.confidence == 85

    def test_fenced_json_with_prose(self) -> None:
        raw = 'Sure!\n```json\n{"signal": "SELL", "riskLevel": "medium"}\n```\nGood luck'
        payload = SignalAgent.parse_reply(raw)
        assert payload.signal == "SELL"
        assert payload.risk_level is RiskLevel.MEDIUM

    @pytest.mark.parametrize("raw", [None, "", "   ", "no json here", "[1, 2]", "{broken"])
    def test_unusable(self, raw) -> None:
        assert SignalAgent.parse_reply(raw) is None

    def test_bad_values_become_none(self) -> None:
        payload = SignalPayload.model_validate({
            "signal": "HOLD", "confidence": "very", "riskLevel": "EXTREME",
            "positionSize": None, "reasoning": "  ",
        })
        assert payload.signal is None
        assert payload.confidence is None
        assert payload.risk_level is None
        assert payload.position_size is None
        assert payload.reasoning is None

    @pytest.mark.parametrize(
        "raw",
        ["{}", '{"foo": 1}', '{"signal": "HOLD", "confidence": "very"}'],
    )
    def test_object_without_signal_fields(self, raw) -> None:
        assert SignalAgent.parse_reply(raw) is None


# ──────────────────────────────────────────────────────────────
# Evaluate
# ──────────────────────────────────────────────────────────────

class TestEvaluate:

    @pytest.mark.asyncio()
    async def test_parsed_signal(self, snapshot, trading_settings) -> None:
        reply = json.dumps({
            "signal": "SELL", "confidence": "92%", "riskLevel": "low",
            "reasoning": "Bearish divergence", "positionSize": 0.5,
        })
        outcome = await _agent(reply).evaluate(snapshot, trading_settings)
        assert outcome.kind == "parsed"
        sig = outcome.signal
        assert sig.direction is Direction.LOWER
        assert sig.confidence == 92
        assert sig.risk_level is RiskLevel.LOW
        assert sig.reasoning == "Bearish divergence"
        assert sig.should_trade
        assert sig.suggested_stake == 23.0

    @pytest.mark.asyncio()
    async def test_confidence_clamped(self, snapshot, trading_settings) -> None:
        high = await _agent('{"signal": "BUY", "confidence": 150}').analyze(
            snapshot, trading_settings,
        )
        low = await _agent('{"signal": "BUY", "confidence": -5}').analyze(
            snapshot, trading_settings,
        )
        assert high.confidence == 100
        assert low.confidence == 0
        assert not low.should_trade

    @pytest.mark.asyncio()
    async def test_invalid_enums_replaced(self, snapshot, trading_settings) -> None:
        reply = '{"signal": "HOLD", "confidence": 70, "riskLevel": "EXTREME"}'
        outcome = await _agent(reply).evaluate(snapshot, trading_settings)
        assert outcome.kind == "parsed"
        assert outcome.signal.direction is Direction.HIGHER  # uptrend
        assert outcome.signal.risk_level is RiskLevel.MEDIUM
        assert outcome.signal.reasoning == reply

    @pytest.mark.asyncio()
    async def test_missing_confidence_uses_snapshot(
        self, snapshot, trading_settings,
    ) -> None:
        sig = await _agent('{"signal": "BUY"}').analyze(snapshot, trading_settings)
        assert sig.confidence == fallback_confidence(snapshot)
        assert not sig.should_trade

    @pytest.mark.asyncio()
    async def test_garbage_reply_is_degraded(self, snapshot, trading_settings) -> None:
        outcome = await _agent("I think it goes up").evaluate(snapshot, trading_settings)
        assert outcome.kind == "fallback"
        assert outcome.live_call is True
        assert outcome.reason == DEGRADED_REASON
        assert outcome.signal.confidence <= 50
        assert not outcome.signal.should_trade

    @pytest.mark.asyncio()
    async def test_empty_object_is_degraded(self, snapshot, trading_settings) -> None:
        outcome = await _agent('{"foo": 1}').evaluate(snapshot, trading_settings)
        assert outcome.kind == "fallback"
        assert outcome.live_call is True
        assert outcome.reason == DEGRADED_REASON

    @pytest.mark.asyncio()
    async def test_unreachable_service(self, snapshot, trading_settings) -> None:
        agent = _agent(error=httpx.ConnectError("connection refused"))
        outcome = await agent.evaluate(snapshot, trading_settings)
        assert outcome.kind == "fallback"
        assert outcome.live_call is False
        assert outcome.reason == UNREACHABLE_REASON
        sig = outcome.signal
        assert sig.direction is Direction.HIGHER
        assert sig.risk_level is RiskLevel.HIGH
        assert sig.reasoning.startswith("Fallback analysis:")
        assert "RSI: 64" in sig.reasoning

    @pytest.mark.asyncio()
    async def test_fallback_downtrend_goes_lower(self, trading_settings) -> None:
        snap = MarketSnapshot(
            symbol="MATCH_GBPUSD", current_price=1.27, volatility=0.5,
            trend=Trend.DOWNTREND, rsi=35.0,
        )
        sig = await _agent(error=RuntimeError("boom")).analyze(snap, trading_settings)
        assert sig.direction is Direction.LOWER

    @pytest.mark.asyncio()
    async def test_fallback_never_clears_default_threshold(self, trading_settings) -> None:
        for rsi in (0.0, 100.0):
            snap = MarketSnapshot(
                symbol="X", current_price=1.0, volatility=0.1,
                trend=Trend.UPTREND, rsi=rsi,
            )
            sig = await _agent("").analyze(snap, trading_settings)
            assert not sig.should_trade

    @pytest.mark.asyncio()
    async def test_prompt_receives_contract_and_duration(
        self, snapshot, trading_settings,
    ) -> None:
        agent = _agent('{"signal": "BUY", "confidence": 90}')
        await agent.analyze(snapshot, trading_settings)
        kwargs = agent.llm.chat.await_args.kwargs
        assert "{contract_type}" not in kwargs["system"]
        assert "{duration_minutes}" not in kwargs["system"]
        assert kwargs["response_format"] == "json"
        assert "EURUSD Match" in kwargs["user"]
        agent.llm.chat.assert_awaited_once()
