"""Application configuration — environment variables and defaults.

All inference provider URLs live HERE. Change them once, affects everything.
Persistent trading settings are stored in user_config/trading_settings.json.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

from signal_trader.models.trading import TradingSettings


def _optional_float(raw: str | None) -> float | None:
    if raw is None or raw.strip() == "":
        return None
    return float(raw)


class Settings:
    """Central configuration pulled from environment with safe defaults."""

    # Paths
    BASE_DIR: Path = Path(__file__).resolve().parent.parent
    DATA_DIR: Path = Path(os.getenv("SIGNAL_TRADER_DATA_DIR", str(BASE_DIR / "data")))
    LOGS_DIR: Path = BASE_DIR / "logs"
    PROMPTS_DIR: Path = Path(__file__).resolve().parent / "prompts"
    USER_CONFIG_DIR: Path = Path(__file__).resolve().parent / "user_config"

    # Database
    DB_PATH: Path = DATA_DIR / "signal_trader.duckdb"

    # ── Inference provider URLs ────────────────────────────────────
    OLLAMA_URL: str = os.getenv("OLLAMA_URL", "http://localhost:11434")
    LMSTUDIO_URL: str = os.getenv("LMSTUDIO_URL", "http://localhost:1234")
    OPENAI_URL: str = os.getenv("OPENAI_URL", "https://api.openai.com")
    GEMINI_URL: str = os.getenv(
        "GEMINI_URL", "https://generativelanguage.googleapis.com"
    )

    # Which provider to use: "ollama" | "lmstudio" | "openai" | "gemini"
    LLM_PROVIDER: str = os.getenv("LLM_PROVIDER", "ollama")

    LLM_MODEL: str = os.getenv("LLM_MODEL", "gemma3:27b")
    LLM_CONTEXT_SIZE: int = int(os.getenv("LLM_CONTEXT_SIZE", "8192"))
    LLM_TEMPERATURE: float = float(os.getenv("LLM_TEMPERATURE", "0.3"))
    LLM_TIMEOUT_SECONDS: float = float(os.getenv("LLM_TIMEOUT_SECONDS", "30"))

    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")

    @property
    def LLM_BASE_URL(self) -> str:
        """Computed: returns the active provider URL based on LLM_PROVIDER."""
        if self.LLM_PROVIDER == "lmstudio":
            return self.LMSTUDIO_URL.rstrip("/")
        if self.LLM_PROVIDER == "openai":
            return self.OPENAI_URL.rstrip("/")
        if self.LLM_PROVIDER == "gemini":
            return self.GEMINI_URL.rstrip("/")
        return self.OLLAMA_URL.rstrip("/")

    # Server
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))

    # ── Trading guard rails ────────────────────────────────────────
    # The settings form never lets the threshold drop below this.
    CONFIDENCE_FLOOR: int = int(os.getenv("CONFIDENCE_FLOOR", "80"))

    # Paper market / broker
    MARKET_SYMBOLS: list[str] = [
        s.strip()
        for s in os.getenv(
            "MARKET_SYMBOLS", "MATCH_EURUSD,MATCH_GBPUSD,MATCH_USDJPY"
        ).split(",")
        if s.strip()
    ]
    PAPER_WIN_PROBABILITY: float | None = _optional_float(
        os.getenv("PAPER_WIN_PROBABILITY")
    )
    RANDOM_SEED: int | None = (
        int(os.environ["RANDOM_SEED"]) if os.getenv("RANDOM_SEED") else None
    )

    TRADING_SETTINGS_PATH: Path = USER_CONFIG_DIR / "trading_settings.json"

    def __init__(self) -> None:
        """Ensure runtime directories exist and load persisted trading settings."""
        self.DATA_DIR.mkdir(parents=True, exist_ok=True)
        self.LOGS_DIR.mkdir(parents=True, exist_ok=True)
        self.trading = TradingSettings()
        self.load_trading_settings()

    # ── Persistent trading settings ───────────────────────────────

    def load_trading_settings(self) -> TradingSettings:
        """Load trading settings from disk, overriding the built-in defaults."""
        if not self.TRADING_SETTINGS_PATH.exists():
            return self.trading
        try:
            data = json.loads(self.TRADING_SETTINGS_PATH.read_text(encoding="utf-8"))
            self.trading = TradingSettings.model_validate(self._apply_floor(data))
        except (OSError, ValueError, TypeError) as exc:
            # Corrupted file — fall back to defaults
            logging.getLogger("signal_trader").warning(
                "Ignoring unreadable %s: %s", self.TRADING_SETTINGS_PATH, exc,
            )
            self.trading = TradingSettings()
        return self.trading

    def _apply_floor(self, data: dict[str, Any]) -> dict[str, Any]:
        """Clamp a user-supplied threshold up to CONFIDENCE_FLOOR."""
        if "confidence_threshold" in data and data["confidence_threshold"] is not None:
            data = {
                **data,
                "confidence_threshold": max(
                    self.CONFIDENCE_FLOOR, int(data["confidence_threshold"])
                ),
            }
        return data

    def update_trading_settings(self, data: dict[str, Any]) -> TradingSettings:
        """Validate, persist and hot-patch new trading settings.

        Partial updates are merged over the current values. Raises
        ``pydantic.ValidationError`` when the merged result is invalid;
        nothing is written in that case.
        """
        merged = {**self.trading.model_dump(), **self._apply_floor(data)}
        updated = TradingSettings.model_validate(merged)

        self.TRADING_SETTINGS_PATH.parent.mkdir(parents=True, exist_ok=True)
        self.TRADING_SETTINGS_PATH.write_text(
            updated.model_dump_json(indent=4) + "\n", encoding="utf-8"
        )
        self.trading = updated
        return updated

    def get_trading_settings(self) -> TradingSettings:
        """Return the active trading settings (read-only to the engine)."""
        return self.trading

    def get_llm_config(self) -> dict[str, Any]:
        """Return the current inference configuration as a dict."""
        return {
            "provider": self.LLM_PROVIDER,
            "base_url": self.LLM_BASE_URL,
            "model": self.LLM_MODEL,
            "context_size": self.LLM_CONTEXT_SIZE,
            "temperature": self.LLM_TEMPERATURE,
            "timeout_seconds": self.LLM_TIMEOUT_SECONDS,
        }


settings = Settings()
