"""Paper Broker — simulated brokerage for MATCH contracts.

Lists accounts, accepts contract submissions and reports each contract's
outcome exactly once.  Nothing leaves the process; outcomes are drawn
from a seeded RNG so a session can be replayed.
"""

from __future__ import annotations

import random
import uuid
from datetime import datetime

from signal_trader.models.signal import Direction
from signal_trader.models.trading import Account, ContractReceipt, SettlementEvent
from signal_trader.utils.logger import logger

DEFAULT_ACCOUNTS = (
    Account(id="VRTC1234", name="USD Account", type="real", currency="USD", balance=5000.0),
    Account(id="VRTC5678", name="EUR Account", type="real", currency="EUR", balance=3000.0),
    Account(id="VRTC9012", name="Demo Account", type="demo", currency="USD", balance=10000.0),
)


class BrokerError(RuntimeError):
    """The broker refused or could not process a request."""


class PaperBroker:
    """Simulated contract execution — submissions are recorded, never real."""

    def __init__(
        self,
        accounts: tuple[Account, ...] | list[Account] = DEFAULT_ACCOUNTS,
        *,
        seed: int | None = None,
    ) -> None:
        self._accounts = {a.id: a.model_copy() for a in accounts}
        self._rng = random.Random(seed)
        self._open: dict[str, ContractReceipt] = {}
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def list_accounts(self) -> list[Account]:
        self._ensure_open()
        return [a.model_copy() for a in self._accounts.values()]

    async def get_account(self, account_id: str) -> Account:
        self._ensure_open()
        account = self._accounts.get(account_id)
        if account is None:
            raise KeyError(account_id)
        return account.model_copy()

    # ------------------------------------------------------------------
    # Contracts
    # ------------------------------------------------------------------

    async def submit_contract(
        self,
        *,
        symbol: str,
        contract_type: str,
        direction: Direction,
        stake: float,
        duration_seconds: float,
    ) -> ContractReceipt:
        """Accept a contract and return its reference."""
        self._ensure_open()
        if stake <= 0:
            raise BrokerError(f"Invalid stake {stake:.2f}")
        if duration_seconds <= 0:
            raise BrokerError(f"Invalid duration {duration_seconds}s")

        receipt = ContractReceipt(
            contract_id=f"{contract_type}-{uuid.uuid4().hex[:12]}",
            symbol=symbol,
            direction=direction,
            stake=round(stake, 2),
            duration_seconds=duration_seconds,
            submitted_at=datetime.now(),
        )
        self._open[receipt.contract_id] = receipt
        logger.info(
            "[PaperBroker] %s %s %s stake=$%.2f for %.0fs → %s",
            contract_type, symbol, direction.value, receipt.stake,
            duration_seconds, receipt.contract_id,
        )
        return receipt

    async def resolve(
        self, contract_id: str, win_probability: float = 0.5,
    ) -> SettlementEvent:
        """Report the terminal outcome for *contract_id* (once).

        Resolution still works after ``close()`` so contracts opened before
        a logout can finish.
        """
        receipt = self._open.pop(contract_id, None)
        if receipt is None:
            raise BrokerError(f"Unknown or already settled contract {contract_id}")

        p = max(0.0, min(1.0, win_probability))
        won = self._rng.random() < p
        payout = round(receipt.stake * 2, 2) if won else 0.0
        logger.info(
            "[PaperBroker] %s settled %s (p=%.2f, payout=$%.2f)",
            contract_id, "WON" if won else "LOST", p, payout,
        )
        return SettlementEvent(outcome="won" if won else "lost", payout=payout)

    def open_contracts(self) -> int:
        return len(self._open)

    async def close(self) -> None:
        """End the session. Open contracts can still be resolved."""
        if not self._closed:
            self._closed = True
            logger.info(
                "[PaperBroker] Session closed (%d contracts still open)",
                len(self._open),
            )

    async def reopen(self) -> None:
        self._closed = False

    def _ensure_open(self) -> None:
        if self._closed:
            raise BrokerError("Broker session is closed")
