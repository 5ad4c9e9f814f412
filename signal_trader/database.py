"""DuckDB session management and table initialization."""

from __future__ import annotations

import duckdb

from signal_trader.config import settings
from signal_trader.utils.logger import logger

_connection: duckdb.DuckDBPyConnection | None = None


def get_db() -> duckdb.DuckDBPyConnection:
    """Return the singleton DuckDB connection, creating tables on first call."""
    global _connection  # noqa: PLW0603
    if _connection is None:
        db_path = str(settings.DB_PATH)
        logger.info("Opening DuckDB at %s", db_path)
        _connection = duckdb.connect(db_path)
        _init_tables(_connection)
    return _connection


def close_db() -> None:
    """Close the singleton connection (tests and shutdown)."""
    global _connection  # noqa: PLW0603
    if _connection is not None:
        _connection.close()
        _connection = None


def _init_tables(conn: duckdb.DuckDBPyConnection) -> None:
    """Create tables if they don't exist."""
    conn.execute("""
        CREATE TABLE IF NOT EXISTS trades (
            id             VARCHAR PRIMARY KEY,
            account_id     VARCHAR,
            symbol         VARCHAR NOT NULL,
            contract_type  VARCHAR,
            contract_id    VARCHAR,
            direction      VARCHAR NOT NULL,
            stake          DOUBLE NOT NULL,
            confidence     INTEGER,
            entry_price    DOUBLE,
            status         VARCHAR NOT NULL,
            pnl            DOUBLE,
            payout         DOUBLE,
            created_at     TIMESTAMP,
            settled_at     TIMESTAMP
        );
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS bot_events (
            id          VARCHAR PRIMARY KEY,
            timestamp   TIMESTAMP NOT NULL,
            phase       VARCHAR NOT NULL,
            event_type  VARCHAR NOT NULL,
            symbol      VARCHAR,
            detail      VARCHAR,
            metadata    VARCHAR,
            session_id  VARCHAR,
            status      VARCHAR DEFAULT 'success'
        );
    """)
