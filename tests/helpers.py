"""Shared test helpers: addresses, Transfer log factory and a fake chain client."""

from __future__ import annotations

from pointledger.domain.decoding import TRANSFER_T0
from pointledger.domain.errors import TransientRPCError
from pointledger.domain.models import LogRecord
from pointledger.domain.value_types import Address, Topic

TOKEN_A = Address("0x35d8949372d46b7a3d5a56006ae77b215fc69bc0")
TOKEN_B = Address("0x" + "b0" * 20)
ALICE = Address("0x" + "aa" * 20)
BOB = Address("0x" + "bb" * 20)
CAROL = Address("0x" + "cc" * 20)


def address_topic(addr: str) -> Topic:
    return Topic("0x" + "00" * 12 + addr[2:].lower())


def make_transfer_log(
    sender: str,
    recipient: str,
    value: int,
    *,
    block: int = 1,
    log_index: int = 0,
    contract: Address = TOKEN_A,
) -> LogRecord:
    return LogRecord(
        address=contract,
        topics=(TRANSFER_T0, address_topic(sender), address_topic(recipient)),
        data=value.to_bytes(32, "big"),
        block_number=block,
        tx_hash="0x" + f"{block:064x}",
        log_index=log_index,
    )


class FakeChainClient:
    """In-memory chain: a settable height plus a list of logs to serve."""

    def __init__(self, height: int = 0) -> None:
        self.height = height
        self.logs: list[LogRecord] = []
        self.height_failures = 0
        self.log_failures = 0
        self.fetches: list[tuple[int, int]] = []
        self.reconnects = 0
        self.closed = False

    async def latest_height(self) -> int:
        if self.height_failures:
            self.height_failures -= 1
            raise TransientRPCError("eth_blockNumber failed: node unreachable")
        return self.height

    async def filter_logs(self, address: Address, from_block: int, to_block: int) -> list[LogRecord]:
        if self.log_failures:
            self.log_failures -= 1
            raise TransientRPCError("eth_getLogs failed: response too large")
        self.fetches.append((from_block, to_block))
        return [
            log for log in self.logs
            if log.address == address and from_block <= log.block_number <= to_block
        ]

    async def reconnect(self) -> None:
        self.reconnects += 1

    async def aclose(self) -> None:
        self.closed = True

