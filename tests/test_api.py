"""Tests for the FastAPI control surface."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from conftest import make_signal
from fastapi.testclient import TestClient

from signal_trader import main
from signal_trader.models.signal import Direction, ParsedSignal


@pytest.fixture()
def client():
    """TestClient with APScheduler patched out (no loop outlives a request)."""
    scheduler = MagicMock()
    scheduler.get_jobs.return_value = []
    scheduler.get_job.return_value = None
    main.session.clear()
    with patch(
        "signal_trader.services.scheduler.AsyncIOScheduler",
        MagicMock(return_value=scheduler),
    ):
        yield TestClient(main.app)
    main.scheduler._scheduler = None


def _open_trade():
    return main.engine.open_trade(
        symbol="MATCH_EURUSD", direction=Direction.HIGHER, stake=5,
        confidence=90, duration_seconds=60,
    )


class TestAccounts:

    def test_list_accounts(self, client) -> None:
        data = client.get("/api/accounts").json()
        assert {a["id"] for a in data["accounts"]} >= {"VRTC1234", "VRTC9012"}
        assert data["selected"] is None

    def test_select_account(self, client) -> None:
        resp = client.post("/api/accounts/VRTC5678/select")
        assert resp.status_code == 200
        assert resp.json()["stats"]["balance"] == 3000.0
        assert client.get("/api/accounts").json()["selected"] == "VRTC5678"

    def test_select_unknown_account(self, client) -> None:
        assert client.post("/api/accounts/NOPE/select").status_code == 404


class TestBotControl:

    def test_start_without_account(self, client) -> None:
        resp = client.post("/api/bot/start")
        assert resp.status_code == 400

    def test_pause_when_idle(self, client) -> None:
        assert client.post("/api/bot/pause").json()["status"] == "not_running"

    def test_tick_without_account(self, client) -> None:
        assert client.post("/api/bot/tick").json()["status"] == "no_account"

    def test_tick_trades(self, client, monkeypatch) -> None:
        analyzer = MagicMock()
        analyzer.evaluate = AsyncMock(return_value=ParsedSignal(signal=make_signal(95)))
        monkeypatch.setattr(main.decision_loop, "analyzer", analyzer)
        client.post("/api/accounts/VRTC9012/select")

        body = client.post("/api/bot/tick").json()
        assert body["status"] == "traded"
        trades = client.get("/api/trades").json()["trades"]
        assert trades[0]["id"] == body["trade_id"]
        assert trades[0]["status"] == "pending"

    def test_status(self, client) -> None:
        data = client.get("/api/bot/status").json()
        assert data["is_running"] is False
        assert "stats" in data

    def test_logout(self, client) -> None:
        client.post("/api/accounts/VRTC1234/select")
        data = client.post("/api/bot/logout").json()
        assert data["status"] == "logged_out"
        assert client.get("/api/bot/status").json()["account"] is None
        # Selecting again reopens the broker session
        assert client.post("/api/accounts/VRTC1234/select").status_code == 200


class TestTrades:

    def test_manual_settle(self, client) -> None:
        trade = _open_trade()
        resp = client.post(f"/api/trades/{trade.id}/settle", json={"outcome": "won"})
        assert resp.status_code == 200
        assert resp.json()["trade"]["status"] == "won"

        again = client.post(f"/api/trades/{trade.id}/settle", json={"outcome": "lost"})
        assert again.status_code == 409

    def test_settle_unknown(self, client) -> None:
        resp = client.post("/api/trades/TRADE-missing/settle", json={"outcome": "won"})
        assert resp.status_code == 404

    def test_settle_bad_outcome(self, client) -> None:
        trade = _open_trade()
        resp = client.post(f"/api/trades/{trade.id}/settle", json={"outcome": "draw"})
        assert resp.status_code == 422

    def test_stats(self, client) -> None:
        data = client.get("/api/stats").json()
        assert set(data) == {"stats", "consecutive_losses", "pending_trades"}

    def test_history(self, client) -> None:
        trade = _open_trade()
        rows = client.get("/api/trades/history", params={"limit": 500}).json()["trades"]
        assert trade.id in {r["id"] for r in rows}


class TestSettingsApi:

    def test_get_settings(self, client) -> None:
        data = client.get("/api/settings").json()
        assert data["trading"]["confidence_threshold"] == 80
        assert data["confidence_floor"] == 80

    def test_threshold_floor(self, client) -> None:
        resp = client.put("/api/settings", json={"confidence_threshold": 10})
        assert resp.status_code == 200
        assert resp.json()["trading"]["confidence_threshold"] == 80

    def test_invalid_settings(self, client) -> None:
        resp = client.put("/api/settings", json={"max_stake": -5})
        assert resp.status_code == 422

    def test_max_stake_below_minimum_stake(self, client) -> None:
        resp = client.put("/api/settings", json={"max_stake": 0.5})
        assert resp.status_code == 422
        assert client.get("/api/settings").json()["trading"]["max_stake"] == 50


class TestHealthAndEvents:

    def test_health(self, client, monkeypatch) -> None:
        monkeypatch.setattr(
            main.LLMService, "health_check",
            AsyncMock(return_value={"status": "error", "error": "offline"}),
        )
        data = client.get("/api/health").json()
        assert data["api"] == "ok"
        assert data["llm"]["status"] == "error"

    def test_events(self, client) -> None:
        client.post("/api/accounts/VRTC1234/select")
        events = client.get("/api/events", params={"phase": "session"}).json()["events"]
        assert any(e["event_type"] == "account_selected" for e in events)
