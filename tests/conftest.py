from datetime import datetime

import pytest

from signal_trader.config import settings
from signal_trader.database import close_db
from signal_trader.models.market import MarketSnapshot, Trend
from signal_trader.models.signal import Direction, RiskLevel, Signal
from signal_trader.models.trading import TradingSettings


@pytest.fixture(autouse=True, scope="session")
def use_test_db(tmp_path_factory):
    # Route all database and settings writes in tests to a temporary dir
    # so a running bot's DuckDB file and settings are never touched
    temp_dir = tmp_path_factory.mktemp("test_db")
    settings.DB_PATH = temp_dir / "test_signal_trader.duckdb"
    settings.TRADING_SETTINGS_PATH = temp_dir / "trading_settings.json"
    close_db()

    yield

    close_db()


@pytest.fixture(autouse=True)
def default_trading_settings():
    """Every test starts from the built-in trading settings."""
    settings.trading = TradingSettings()
    yield
    settings.trading = TradingSettings()


@pytest.fixture()
def trading_settings() -> TradingSettings:
    return TradingSettings()


@pytest.fixture()
def snapshot() -> MarketSnapshot:
    return MarketSnapshot(
        symbol="MATCH_EURUSD",
        display="EURUSD Match",
        current_price=1.0812,
        volatility=0.42,
        trend=Trend.UPTREND,
        rsi=64.0,
        macd="bullish",
        observed_at=datetime(2024, 1, 2, 9, 30),
    )


def make_signal(
    confidence: int = 90,
    direction: Direction = Direction.HIGHER,
    *,
    should_trade: bool | None = None,
    threshold: int = 80,
) -> Signal:
    return Signal(
        confidence=confidence,
        direction=direction,
        risk_level=RiskLevel.LOW if confidence > 75 else RiskLevel.HIGH,
        reasoning="test signal",
        should_trade=confidence >= threshold if should_trade is None else should_trade,
        suggested_stake=0.0,
    )
