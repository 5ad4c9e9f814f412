"""Signal agent — turns a market snapshot into a normalized Signal.

Lifecycle:
    1. Load system prompt from .md file
    2. Describe the snapshot as the user message
    3. One LLM call (no retry — the next cycle is the retry)
    4. Extract the first JSON object from the reply and coerce it
    5. On any failure, derive a conservative signal from the snapshot

``evaluate()`` returns a tagged ``ParsedSignal | FallbackSignal`` and
never raises; ``analyze()`` unwraps it to the bare ``Signal``.
"""

from __future__ import annotations

import json
import math

from pydantic import ValidationError

from signal_trader.config import settings as app_settings
from signal_trader.models.market import MarketSnapshot, Trend
from signal_trader.models.signal import (
    Direction,
    FallbackSignal,
    ParsedSignal,
    RiskLevel,
    Signal,
    SignalOutcome,
    SignalPayload,
)
from signal_trader.models.trading import TradingSettings
from signal_trader.services.llm_service import LLMService
from signal_trader.utils.logger import logger

# Fallback confidence lives in the bottom half of 0–100 so a degraded
# cycle can never clear a sane threshold.
FALLBACK_BASE_CONFIDENCE = 25
FALLBACK_MAX_CONFIDENCE = 50

UNREACHABLE_REASON = "inference service unreachable"
DEGRADED_REASON = "inference reply had no usable signal object"


def _js_round(x: float) -> int:
    """Half-up rounding (``round()`` is half-to-even)."""
    return int(math.floor(x + 0.5))


def risk_for_confidence(confidence: float) -> RiskLevel:
    """Higher confidence → lower stated risk."""
    if confidence > 75:
        return RiskLevel.LOW
    if confidence > 60:
        return RiskLevel.MEDIUM
    return RiskLevel.HIGH


def direction_for_trend(trend: Trend) -> Direction:
    return Direction.HIGHER if trend is Trend.UPTREND else Direction.LOWER


def fallback_confidence(snapshot: MarketSnapshot) -> int:
    """Deterministic 25–50 score: further from RSI 50 reads as a clearer trend."""
    distance = abs(snapshot.rsi - 50) / 2
    return int(min(FALLBACK_MAX_CONFIDENCE, FALLBACK_BASE_CONFIDENCE + _js_round(distance)))


def suggested_stake(
    confidence: float, position_size: float, settings: TradingSettings,
) -> float:
    """Pre-sizing hint, rounded to half units and capped at max_stake."""
    raw = (confidence / 100) * settings.max_stake * position_size
    return min(settings.max_stake, _js_round(raw * 2) / 2)


class SignalAgent:
    """Signal Analyzer backed by an inference collaborator."""

    prompt_file: str = "signal_analysis.md"

    def __init__(
        self,
        llm: LLMService | None = None,
        prompt_file: str | None = None,
    ) -> None:
        self.llm = llm or LLMService()
        self.prompt_path = app_settings.PROMPTS_DIR / (prompt_file or self.prompt_file)
        self._system_prompt: str | None = None

    @property
    def system_prompt(self) -> str:
        """Lazy-load the system prompt from disk."""
        if self._system_prompt is None:
            if not self.prompt_path.exists():
                raise FileNotFoundError(f"Prompt file not found: {self.prompt_path}")
            self._system_prompt = self.prompt_path.read_text(encoding="utf-8")
        return self._system_prompt

    def _build_system_prompt(
        self, snapshot: MarketSnapshot, settings: TradingSettings,
    ) -> str:
        prompt = self.system_prompt
        prompt = prompt.replace("{contract_type}", snapshot.contract_type)
        prompt = prompt.replace(
            "{duration_minutes}", str(settings.trade_duration_minutes),
        )
        return prompt

    @staticmethod
    def format_context(snapshot: MarketSnapshot) -> str:
        """Describe the snapshot for the user message."""
        lines = [
            f"Market Symbol: {snapshot.label}",
            f"Current Price: ${snapshot.current_price:.4f}",
            f"Volatility: {snapshot.volatility:.2f}",
            f"RSI (Relative Strength Index): {_js_round(snapshot.rsi)}",
        ]
        if snapshot.macd:
            lines.append(f"MACD Signal: {snapshot.macd}")
        lines.append(f"Trend: {snapshot.trend.value}")

        if snapshot.history:
            lines.append("")
            lines.append(f"Historical Data (last {len(snapshot.history)} periods):")
            lines.extend(
                f"Period {i}: ${p.price:.4f}" for i, p in enumerate(snapshot.history)
            )

        lines += [
            "",
            "Please analyze this market data and provide:",
            "1. A trading signal (BUY for uptrend, SELL for downtrend)",
            "2. Confidence level (0-100%)",
            "3. Risk assessment (LOW/MEDIUM/HIGH)",
            "4. Key reasoning for your signal",
            "5. Suggested position size (as a fraction of the maximum stake)",
            "",
            f"Focus on {snapshot.contract_type} contract trading. Respond in JSON format.",
        ]
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Main analysis flow
    # ------------------------------------------------------------------

    async def analyze(
        self, snapshot: MarketSnapshot, settings: TradingSettings,
    ) -> Signal:
        """Return the cycle's Signal. Never raises."""
        return (await self.evaluate(snapshot, settings)).signal

    async def evaluate(
        self, snapshot: MarketSnapshot, settings: TradingSettings,
    ) -> SignalOutcome:
        """Run one analysis and report whether the live reply was used."""
        logger.info("[SignalAgent] Analyzing %s …", snapshot.label)
        try:
            system = self._build_system_prompt(snapshot, settings)
            raw = await self.llm.chat(
                system=system,
                user=self.format_context(snapshot),
                response_format="json",
            )
        except Exception as exc:
            # Transport errors, non-2xx replies, missing prompt file …
            logger.warning(
                "[SignalAgent] Inference unreachable for %s (%s: %s) — "
                "using fallback signal",
                snapshot.label, type(exc).__name__, exc,
            )
            return self._fallback(
                snapshot, settings, UNREACHABLE_REASON, live_call=False,
            )

        try:
            payload = self.parse_reply(raw)
        except Exception as exc:
            logger.warning(
                "[SignalAgent] Unexpected parse error for %s: %s",
                snapshot.label, exc,
            )
            payload = None

        if payload is None:
            logger.warning(
                "[SignalAgent] Inference degraded for %s — reply had no usable "
                "JSON object (%d chars): %r",
                snapshot.label, len(raw or ""), (raw or "")[:200],
            )
            return self._fallback(
                snapshot, settings, DEGRADED_REASON, live_call=True,
            )

        signal = self._from_payload(payload, raw, snapshot, settings)
        self._log_signal(signal, "live")
        return ParsedSignal(signal=signal)

    # ------------------------------------------------------------------
    # Parsing helpers
    # ------------------------------------------------------------------

    @staticmethod
    def parse_reply(raw: str | None) -> SignalPayload | None:
        """Locate and coerce the first JSON object in *raw*; None if absent."""
        if not raw or not raw.strip():
            return None
        cleaned = LLMService.clean_json_response(raw)
        if not cleaned.startswith("{"):
            return None
        try:
            data = json.loads(cleaned)
        except (json.JSONDecodeError, TypeError):
            return None
        if not isinstance(data, dict):
            return None
        try:
            payload = SignalPayload.model_validate(data)
        except ValidationError:
            return None
        # An object with none of the expected keys carries no signal
        if all(v is None for v in payload.model_dump().values()):
            return None
        return payload

    def _from_payload(
        self,
        payload: SignalPayload,
        raw: str,
        snapshot: MarketSnapshot,
        settings: TradingSettings,
    ) -> Signal:
        if payload.signal is None:
            direction = direction_for_trend(snapshot.trend)
        else:
            direction = Direction.HIGHER if payload.signal == "BUY" else Direction.LOWER

        if payload.confidence is None:
            confidence = fallback_confidence(snapshot)
        else:
            confidence = _js_round(max(0.0, min(100.0, payload.confidence)))

        position_size = 1.0
        if payload.position_size is not None:
            position_size = max(0.0, min(1.0, payload.position_size))

        return Signal(
            confidence=confidence,
            direction=direction,
            risk_level=payload.risk_level or risk_for_confidence(confidence),
            reasoning=payload.reasoning or raw.strip(),
            should_trade=confidence >= settings.confidence_threshold,
            suggested_stake=suggested_stake(confidence, position_size, settings),
        )

    def _fallback(
        self,
        snapshot: MarketSnapshot,
        settings: TradingSettings,
        reason: str,
        *,
        live_call: bool,
    ) -> FallbackSignal:
        confidence = fallback_confidence(snapshot)
        signal = Signal(
            confidence=confidence,
            direction=direction_for_trend(snapshot.trend),
            risk_level=risk_for_confidence(confidence),
            reasoning=(
                f"Fallback analysis: {reason}. "
                f"Market trend: {snapshot.trend.value}. RSI: {_js_round(snapshot.rsi)}"
            ),
            should_trade=confidence >= settings.confidence_threshold,
            suggested_stake=suggested_stake(confidence, 1.0, settings),
        )
        self._log_signal(signal, "fallback")
        return FallbackSignal(signal=signal, reason=reason, live_call=live_call)

    @staticmethod
    def _log_signal(signal: Signal, source: str) -> None:
        logger.info("[SignalAgent] (%s) %s", source, signal.summary())
        logger.info(
            "[SignalAgent] Confidence: %d%% | Risk: %s | Direction: %s | trade=%s",
            signal.confidence, signal.risk_level.value, signal.direction.value,
            signal.should_trade,
        )
