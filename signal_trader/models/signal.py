"""Signal models — the analysis step's output and the raw inference reply.

``SignalPayload`` is deliberately lenient: inference services return
nulls, percentages as strings and invented enum values.  Anything that
cannot be coerced becomes ``None`` so the analyzer can substitute a
snapshot-derived default instead of propagating it verbatim.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class Direction(str, Enum):
    HIGHER = "HIGHER"
    LOWER = "LOWER"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class Signal(BaseModel):
    """Directional call for one cycle. Never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    confidence: int = Field(ge=0, le=100)
    direction: Direction
    risk_level: RiskLevel
    reasoning: str = ""
    should_trade: bool = False
    suggested_stake: float = Field(default=0.0, ge=0.0)

    def summary(self, width: int = 100) -> str:
        """Reasoning trimmed for a single log line."""
        text = " ".join(self.reasoning.split())
        if len(text) <= width:
            return text
        return text[:width] + "..."


def _to_float(v: object) -> float | None:
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, str):
        v = v.strip().rstrip("%").strip()
        if not v:
            return None
    try:
        out = float(v)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    if math.isnan(out) or math.isinf(out):
        return None
    return out


class SignalPayload(BaseModel):
    """The structured object embedded in an inference reply."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    signal: Literal["BUY", "SELL"] | None = None
    confidence: float | None = None
    risk_level: RiskLevel | None = Field(
        default=None, validation_alias=AliasChoices("riskLevel", "risk_level"),
    )
    reasoning: str | None = None
    position_size: float | None = Field(
        default=None,
        validation_alias=AliasChoices("positionSize", "position_size"),
    )

    @field_validator("signal", mode="before")
    @classmethod
    def _normalize_signal(cls, v: object) -> str | None:
        """Unknown directions are dropped, never passed through."""
        if not isinstance(v, str):
            return None
        v = v.strip().upper()
        return v if v in ("BUY", "SELL") else None

    @field_validator("risk_level", mode="before")
    @classmethod
    def _normalize_risk(cls, v: object) -> str | None:
        if not isinstance(v, str):
            return None
        v = v.strip().upper()
        return v if v in RiskLevel.__members__ else None

    @field_validator("confidence", "position_size", mode="before")
    @classmethod
    def _coerce_number(cls, v: object) -> float | None:
        """LLMs sometimes return null, "85%" or prose for numbers."""
        return _to_float(v)

    @field_validator("reasoning", mode="before")
    @classmethod
    def _coerce_text(cls, v: object) -> str | None:
        if v is None:
            return None
        text = str(v).strip()
        return text or None


class ParsedSignal(BaseModel):
    """A signal built from a well-formed inference reply."""

    kind: Literal["parsed"] = "parsed"
    signal: Signal


class FallbackSignal(BaseModel):
    """A snapshot-derived signal used when the live reply was unusable.

    ``live_call`` separates a degraded service (it answered, but with
    nothing usable) from an unreachable one.
    """

    kind: Literal["fallback"] = "fallback"
    signal: Signal
    reason: str
    live_call: bool = False


SignalOutcome = ParsedSignal | FallbackSignal
