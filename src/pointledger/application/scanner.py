from __future__ import annotations

import asyncio
from typing import Sequence

from loguru import logger

from ..domain.decoding import decode_transfer
from ..domain.errors import ChainConnectionError, DecodeError, StorageError, TransientRPCError
from ..domain.models import BlockRange, LogRecord, ScanStats, WatchedContract
from ..ports.rpc import ChainClient
from ..ports.storage import BalanceLedger, CursorStore
from .planning import ScanPolicy, next_range


class RangeScanner:
    """
    Drives one watched contract's cursor through the chain.

    Each loop iteration polls the node height, fetches at most one chunk of
    logs starting at the cursor, folds every Transfer into the ledger and
    moves the cursor past the chunk. RPC failures never move the cursor.
    The stop event is checked once per iteration and ends any sleep early;
    an in-flight RPC call is not interrupted.
    """

    def __init__(
        self,
        contract: WatchedContract,
        client: ChainClient,
        ledger: BalanceLedger,
        *,
        cursors: CursorStore | None = None,
        policy: ScanPolicy | None = None,
        stop: asyncio.Event | None = None,
    ) -> None:
        self.contract = contract
        self.client = client
        self.ledger = ledger
        self.cursors = cursors
        self.policy = policy or ScanPolicy()
        self.stop = stop or asyncio.Event()
        self.stats = ScanStats(contract=contract.name, cursor=contract.cursor)
        self.log = logger.bind(contract=contract.name)

    @property
    def cursor(self) -> int:
        return self.contract.cursor

    # ------------------------------------------------------------ lifecycle

    async def run(self) -> ScanStats:
        self.log.info(f"Scanning {self.contract.name} ({self.contract.address}) from block {self.cursor}")
        while not self.stop.is_set():
            await self.step()
        self.stats.health = "stopped"
        self.log.info(f"Scanner for {self.contract.name} stopped at block {self.cursor}")
        return self.stats

    async def step(self) -> bool:
        """One poll/fetch/process/advance pass. Returns True when the cursor moved."""
        try:
            latest = await self.client.latest_height()
        except TransientRPCError as e:
            await self._on_rpc_failure("latest height", e)
            return False
        self._on_rpc_success()

        rng = next_range(self.cursor, latest, self.policy.chunk_size)
        if rng is None:
            await self._sleep(self.policy.poll_interval_s)
            return False

        logs = await self._fetch(rng)
        if logs is None:
            return False
        await self.process_logs(logs)
        await self._advance(rng.end + 1)
        return True

    async def scan_range(self, rng: BlockRange) -> int:
        """Fetch and apply a fixed range without touching the cursor; retries until done or stopped."""
        while not self.stop.is_set():
            logs = await self._fetch(rng)
            if logs is None:
                continue
            await self.process_logs(logs)
            return len(logs)
        return 0

    # ----------------------------------------------------------- processing

    async def process_logs(self, logs: Sequence[LogRecord]) -> int:
        """Apply every Transfer in `logs` in order; a bad log is logged and skipped."""
        applied = 0
        for log in logs:
            self.stats.logs_seen += 1
            try:
                transfer = decode_transfer(log)
            except DecodeError as e:
                self.stats.logs_failed += 1
                self.log.warning(f"Skipping undecodable log {log.event_id} tx={log.tx_hash}: {e}")
                continue
            if transfer is None:
                continue

            try:
                fresh = await self.ledger.apply_transfer(transfer, self.contract.address, event_id=log.event_id)
            except StorageError as e:
                self.stats.logs_failed += 1
                self.log.error(f"Failed to apply transfer {log.event_id} tx={log.tx_hash}: {e}")
                continue

            if not fresh:
                self.stats.duplicates_skipped += 1
                continue
            applied += 1
            self.stats.transfers_applied += 1
            self.log.info(
                f"Transfer event detected contract={self.contract.name} from={transfer.sender} "
                f"to={transfer.recipient} value={transfer.value}"
            )
        return applied

    # -------------------------------------------------------------- helpers

    async def _fetch(self, rng: BlockRange) -> list[LogRecord] | None:
        try:
            logs = await self.client.filter_logs(self.contract.address, rng.start, rng.end)
        except TransientRPCError as e:
            await self._on_rpc_failure(f"logs {rng.start}-{rng.end}", e)
            return None
        self._on_rpc_success()
        self.stats.ranges_fetched += 1
        self.log.debug(f"Fetched {len(logs)} logs in [{rng.start}, {rng.end}]")
        return logs

    async def _advance(self, new_cursor: int) -> None:
        if new_cursor <= self.contract.cursor:
            return
        self.contract.cursor = new_cursor
        self.stats.cursor = new_cursor
        if self.cursors is None:
            return
        try:
            await self.cursors.save_cursor(self.contract.address, new_cursor)
        except StorageError as e:
            self.log.error(f"Failed to persist cursor {new_cursor}: {e}")

    def _on_rpc_success(self) -> None:
        if self.stats.health == "degraded":
            self.log.info(f"RPC recovered after {self.stats.consecutive_failures} failures")
        self.stats.consecutive_failures = 0
        self.stats.health = "healthy"
        self.stats.last_error = None

    async def _on_rpc_failure(self, what: str, err: Exception) -> None:
        self.stats.consecutive_failures += 1
        n = self.stats.consecutive_failures
        self.stats.last_error = str(err)
        delay = self.policy.backoff(n)
        self.log.error(f"Error getting {what} (attempt {n}, retry in {delay:.0f}s): {err}")

        threshold = self.policy.breaker_threshold
        if threshold > 0 and n >= threshold and n % threshold == 0:
            if self.stats.health != "degraded":
                self.stats.health = "degraded"
                self.log.error(f"Circuit open for {self.contract.name}: {n} consecutive RPC failures")
            try:
                await self.client.reconnect()
            except ChainConnectionError as e:
                self.log.warning(f"Reconnect failed: {e}")
        await self._sleep(delay)

    async def _sleep(self, seconds: float) -> None:
        if seconds <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self.stop.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
