from __future__ import annotations
from typing import Iterable, Mapping
from ..domain.errors import AccountNotFound
from ..domain.models import BalanceRecord, PoolInfo
from ..domain.value_types import Address
from ..ports.storage import BalanceLedger


def sum_points(records: Iterable[BalanceRecord], pools: Mapping[Address, PoolInfo], user_multiplier: int) -> int:
    """sum(balance * pool multiplier) over pooled contracts, times the user multiplier."""
    total = 0
    for rec in records:
        pool = pools.get(Address(rec.contract.lower()))
        if pool is None:
            continue
        total += rec.balance * pool.points_multiplier
    return total * user_multiplier


class PointsCalculator:
    def __init__(self, ledger: BalanceLedger, pools: Mapping[Address, PoolInfo]) -> None:
        self.ledger = ledger
        self.pools = pools

    async def compute_points(self, account: str, user_multiplier: int) -> int:
        records = await self.ledger.balances_for(Address(account.lower()))
        if not records:
            raise AccountNotFound(account)
        return sum_points(records, self.pools, user_multiplier)
