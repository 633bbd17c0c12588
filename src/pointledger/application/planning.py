from __future__ import annotations
from dataclasses import dataclass
from ..domain.models import BlockRange

CHUNK_SIZE = 10_000

def next_range(cursor: int, latest: int, chunk_size: int = CHUNK_SIZE) -> BlockRange | None:
    """Inclusive range to fetch next, or None while the node has not moved past the cursor."""
    if latest <= cursor:
        return None
    return BlockRange(start=cursor, end=min(cursor + chunk_size, latest))

def plan_chunks(start_block: int, end_block: int, chunk_size: int = CHUNK_SIZE) -> list[BlockRange]:
    out: list[BlockRange] = []
    b = start_block
    while b <= end_block:
        r = BlockRange(b, min(end_block, b + chunk_size))
        out.append(r)
        b = r.end + 1
    return out


@dataclass(slots=True, frozen=True)
class ScanPolicy:
    chunk_size: int = CHUNK_SIZE
    poll_interval_s: float = 13.0
    retry_delay_s: float = 10.0
    max_retry_delay_s: float = 300.0
    breaker_threshold: int = 5

    def backoff(self, failures: int) -> float:
        """Delay before retry number `failures` (1-based): doubling, capped."""
        if failures <= 0:
            return 0.0
        return min(self.max_retry_delay_s, self.retry_delay_s * (2 ** min(failures - 1, 16)))
