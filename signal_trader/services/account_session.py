"""Account Session — the ``CurrentAccount`` capability.

Login and identity live outside the bot.  Once a session exists, this
object remembers which brokerage account is active and seeds the
ledger balance from it.
"""

from __future__ import annotations

from signal_trader.engine.trading_engine import TradingEngine
from signal_trader.models.trading import Account
from signal_trader.services.event_logger import log_event
from signal_trader.services.paper_broker import PaperBroker
from signal_trader.utils.logger import logger


class AccountSession:
    """Tracks the selected account for one brokerage session."""

    def __init__(self, broker: PaperBroker, engine: TradingEngine) -> None:
        self._broker = broker
        self._engine = engine
        self._current: Account | None = None

    def current(self) -> Account | None:
        return self._current

    @property
    def account_id(self) -> str | None:
        return self._current.id if self._current else None

    async def list_accounts(self) -> list[Account]:
        return await self._broker.list_accounts()

    async def select(self, account_id: str) -> Account:
        """Activate *account_id* and reset the ledger balance to its balance.

        Raises ``KeyError`` for an id the broker does not list.
        """
        if self._broker.is_closed:
            await self._broker.reopen()
        account = await self._broker.get_account(account_id)
        self._current = account
        self._engine.reset_balance(account.balance)
        logger.info(
            "[Session] Selected account: %s (%s) - Balance: %.2f %s",
            account.name, account.id, account.balance, account.currency,
        )
        log_event(
            "session", "account_selected",
            f"Selected {account.name} ({account.type}) — "
            f"balance {account.balance:.2f} {account.currency}",
            metadata=account.model_dump(),
        )
        return account

    def clear(self) -> None:
        if self._current is not None:
            logger.info("[Session] Account %s deselected", self._current.id)
        self._current = None
