from __future__ import annotations

import asyncio
from dataclasses import asdict
from typing import Any, Mapping

from loguru import logger

from ..domain.models import ScanStats, WatchedContract
from ..domain.value_types import Address
from ..ports.rpc import ChainClient
from ..ports.storage import BalanceLedger, CursorStore
from .planning import ScanPolicy, plan_chunks
from .scanner import RangeScanner


async def resolve_contracts(
    contracts: Mapping[str, Address],
    start_block: int,
    cursors: CursorStore | None,
) -> list[WatchedContract]:
    """One WatchedContract per configured entry, resuming past any persisted cursor."""
    out: list[WatchedContract] = []
    for name, address in contracts.items():
        cursor = start_block
        if cursors is not None:
            stored = await cursors.load_cursor(address)
            if stored is not None and stored > cursor:
                logger.info(f"Resuming {name} at persisted block {stored}")
                cursor = stored
        out.append(WatchedContract(name=name, address=address, cursor=cursor))
    return out


class ScannerFleet:
    """One RangeScanner task per watched contract, sharing a stop event."""

    def __init__(
        self,
        contracts: list[WatchedContract],
        client: ChainClient,
        ledger: BalanceLedger,
        *,
        cursors: CursorStore | None = None,
        policy: ScanPolicy | None = None,
        stop: asyncio.Event | None = None,
    ) -> None:
        self.stop = stop or asyncio.Event()
        self.scanners = [
            RangeScanner(c, client, ledger, cursors=cursors, policy=policy, stop=self.stop)
            for c in contracts
        ]

    async def run(self) -> list[ScanStats]:
        tasks = [asyncio.create_task(s.run(), name=f"scan-{s.contract.name}") for s in self.scanners]
        return list(await asyncio.gather(*tasks))

    def health(self) -> dict[str, Any]:
        scanners = {s.contract.name: asdict(s.stats) for s in self.scanners}
        healthy = all(s.stats.health != "degraded" for s in self.scanners)
        return {"status": "healthy" if healthy else "degraded", "scanners": scanners}


async def backfill(
    contract: WatchedContract,
    client: ChainClient,
    ledger: BalanceLedger,
    *,
    start_block: int,
    end_block: int,
    policy: ScanPolicy | None = None,
    stop: asyncio.Event | None = None,
) -> ScanStats:
    """Replay a fixed block range into the ledger; already-applied transfers are skipped."""
    if start_block > end_block:
        raise ValueError(f"start_block ({start_block}) must be <= end_block ({end_block})")
    scanner = RangeScanner(contract, client, ledger, policy=policy, stop=stop)
    for rng in plan_chunks(start_block, end_block, scanner.policy.chunk_size):
        if scanner.stop.is_set():
            break
        n = await scanner.scan_range(rng)
        logger.info(f"Backfilled {contract.name} [{rng.start}, {rng.end}]: {n} logs")
    return scanner.stats
