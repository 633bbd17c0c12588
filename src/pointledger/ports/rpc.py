# pointledger/ports/rpc.py
from __future__ import annotations

from typing import Protocol
from ..domain.models import LogRecord
from ..domain.value_types import Address


class ChainClient(Protocol):
    """Port defining the contract for an EVM JSON-RPC client.

    Implementations perform exactly one round-trip per call and raise
    TransientRPCError on failure; retry policy belongs to the caller.
    """

    async def latest_height(self) -> int:
        """Return the latest block number as an integer."""

    async def filter_logs(self, address: Address, from_block: int, to_block: int) -> list[LogRecord]:
        """Return every log emitted by `address` in [from_block, to_block] inclusive."""

    async def reconnect(self) -> None:
        """Drop the current connection and dial the same endpoint again."""

    async def aclose(self) -> None:
        """Release the underlying connection."""
