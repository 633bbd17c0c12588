from __future__ import annotations


class PointLedgerError(Exception):
    """Base class for every error raised by pointledger."""


class ConfigError(PointLedgerError):
    """Static configuration (settings, pool table) is missing or malformed."""


class ChainConnectionError(PointLedgerError):
    """The RPC endpoint could not be reached within the connect retry budget."""


class TransientRPCError(PointLedgerError):
    """A single RPC round-trip failed; callers own the retry policy."""


class DecodeError(PointLedgerError):
    """A log claimed to be a Transfer but its payload is malformed."""


class StorageError(PointLedgerError):
    """A ledger read or transaction failed."""


class AccountNotFound(PointLedgerError):
    """The ledger holds no balance record for the requested account."""

    def __init__(self, account: str) -> None:
        super().__init__(f"no balances recorded for {account}")
        self.account = account
