"""Bot Event Logger — persistent audit trail for all bot activity.

Provides a single `log_event()` function that any component can call
to record what happened.  Events are stored in the `bot_events` DuckDB
table and served via ``GET /api/events``.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime

from signal_trader.database import get_db
from signal_trader.utils.logger import logger

# Module-level session_id so every event between start and logout is
# grouped together.  Set by `start_session()`.
_current_session_id: str | None = None


def start_session() -> str:
    """Generate a new session_id and return it."""
    global _current_session_id  # noqa: PLW0603
    _current_session_id = uuid.uuid4().hex[:8]
    logger.info("[EventLogger] Session started: %s", _current_session_id)
    return _current_session_id


def end_session() -> None:
    """Clear the current session_id."""
    global _current_session_id  # noqa: PLW0603
    _current_session_id = None


def get_session_id() -> str | None:
    return _current_session_id


def log_event(
    phase: str,
    event_type: str,
    detail: str,
    *,
    symbol: str | None = None,
    metadata: dict | None = None,
    status: str = "success",
) -> None:
    """Write one event row to bot_events.

    Parameters
    ----------
    phase : str
        ``session``, ``analysis``, ``governance``, ``trading``,
        ``settlement`` or ``system``.
    event_type : str
        Short event name, e.g. ``signal_fallback``, ``trade_opened``.
    detail : str
        Human-readable summary shown in the activity log.
    symbol : str | None
        Market symbol (``None`` for session-level events).
    metadata : dict | None
        Arbitrary JSON blob with specifics.
    status : str
        ``success`` | ``error`` | ``warning`` | ``skipped``.
    """
    try:
        db = get_db()
        db.execute(
            """
            INSERT INTO bot_events
                (id, timestamp, phase, event_type, symbol,
                 detail, metadata, session_id, status)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                uuid.uuid4().hex,
                datetime.now(),
                phase,
                event_type,
                symbol,
                detail,
                json.dumps(metadata or {}, default=str),
                _current_session_id,
                status,
            ],
        )
    except Exception as exc:
        # Never let logging failures break the trading loop
        logger.warning("[EventLogger] Failed to log event: %s", exc)


def recent_events(
    limit: int = 200,
    phase: str | None = None,
    session_id: str | None = None,
) -> list[dict]:
    """Read back events, newest first."""
    conditions: list[str] = []
    params: list = []
    if phase:
        conditions.append("phase = ?")
        params.append(phase)
    if session_id:
        conditions.append("session_id = ?")
        params.append(session_id)

    where = f" WHERE {' AND '.join(conditions)}" if conditions else ""
    params.append(limit)

    rows = get_db().execute(
        f"""
        SELECT id, timestamp, phase, event_type, symbol,
               detail, metadata, session_id, status
        FROM bot_events
        {where}
        ORDER BY timestamp DESC
        LIMIT ?
        """,
        params,
    ).fetchall()

    return [
        {
            "id": r[0],
            "timestamp": str(r[1]) if r[1] else None,
            "phase": r[2],
            "event_type": r[3],
            "symbol": r[4],
            "detail": r[5],
            "metadata": json.loads(r[6]) if r[6] else {},
            "session_id": r[7],
            "status": r[8],
        }
        for r in rows
    ]
