"""Settlement Queue — pending completions ordered by fire time.

A min-heap keyed by ``(fire_at, sequence)``.  The sequence number keeps
ordering stable for trades due at the same instant, so draining the
queue is deterministic and needs no wall-clock sleeps in tests.
"""

from __future__ import annotations

import heapq
import itertools


class SettlementQueue:
    """One-shot deferred settlements, drained in fire-time order."""

    def __init__(self) -> None:
        self._heap: list[tuple[float, int, str]] = []
        self._seq = itertools.count()
        self._removed: set[str] = set()

    def __len__(self) -> int:
        return len(self._heap) - len(self._removed)

    def __contains__(self, trade_id: object) -> bool:
        return trade_id not in self._removed and any(
            entry[2] == trade_id for entry in self._heap
        )

    def push(self, trade_id: str, fire_at: float) -> None:
        heapq.heappush(self._heap, (fire_at, next(self._seq), trade_id))

    def discard(self, trade_id: str) -> None:
        """Drop a scheduled completion (lazy — skipped when popped)."""
        if any(entry[2] == trade_id for entry in self._heap):
            self._removed.add(trade_id)

    def next_fire_time(self) -> float | None:
        self._drop_removed_head()
        return self._heap[0][0] if self._heap else None

    def pop_due(self, now: float) -> list[str]:
        """Remove and return every trade id whose fire time is ≤ *now*."""
        due: list[str] = []
        while self._heap and self._heap[0][0] <= now:
            _, _, trade_id = heapq.heappop(self._heap)
            if trade_id in self._removed:
                self._removed.discard(trade_id)
                continue
            due.append(trade_id)
        return due

    def _drop_removed_head(self) -> None:
        while self._heap and self._heap[0][2] in self._removed:
            _, _, trade_id = heapq.heappop(self._heap)
            self._removed.discard(trade_id)
