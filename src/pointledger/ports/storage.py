# pointledger/ports/storage.py
from __future__ import annotations

from typing import Protocol
from ..domain.models import BalanceRecord, TransferEvent
from ..domain.value_types import Address, EventId


class BalanceLedger(Protocol):
    """Port for the durable (account, contract) -> balance store."""

    async def apply_transfer(
        self,
        transfer: TransferEvent,
        contract: Address,
        *,
        event_id: EventId | None = None,
    ) -> bool:
        """Atomically debit the sender (clamped at zero) and credit the recipient.

        Returns False when `event_id` was already applied for `contract`.
        """

    async def balances_for(self, account: Address) -> list[BalanceRecord]:
        """Return every balance record held by `account`."""

    async def get_balance(self, account: Address, contract: Address) -> int:
        """Return the balance for one key, 0 when absent."""


class CursorStore(Protocol):
    """Port for persisting each watched contract's next unscanned block."""

    async def load_cursor(self, contract: Address) -> int | None:
        """Return the stored cursor, or None if the contract was never scanned."""

    async def save_cursor(self, contract: Address, cursor: int) -> None:
        """Persist `cursor`; a lower value than the stored one is ignored."""
