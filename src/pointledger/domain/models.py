from __future__ import annotations
from dataclasses import dataclass, field
from .value_types import Address, EventId, Health, Topic

@dataclass(slots=True, frozen=True)
class BlockRange:
    start: int
    end: int
    def span(self) -> int: return self.end - self.start + 1

@dataclass(slots=True)
class WatchedContract:
    name: str
    address: Address
    cursor: int                         # next unscanned block

@dataclass(slots=True, frozen=True)
class LogRecord:
    address: Address
    topics: tuple[Topic, ...]
    data: bytes
    block_number: int
    tx_hash: str = ""
    log_index: int = 0

    @property
    def event_id(self) -> EventId:
        return EventId(f"{self.block_number}:{self.log_index}")

@dataclass(slots=True, frozen=True)
class TransferEvent:
    sender: Address
    recipient: Address
    value: int

@dataclass(slots=True, frozen=True)
class BalanceRecord:
    account: Address
    contract: Address
    balance: int

@dataclass(slots=True, frozen=True)
class PoolInfo:
    address: Address
    name: str
    points_multiplier: int

@dataclass(slots=True)
class ScanStats:
    contract: str
    cursor: int
    health: Health = "healthy"
    consecutive_failures: int = 0
    ranges_fetched: int = 0
    logs_seen: int = 0
    transfers_applied: int = 0
    duplicates_skipped: int = 0
    logs_failed: int = 0
    last_error: str | None = field(default=None)
