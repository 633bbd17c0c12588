from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, AsyncIterator

from loguru import logger
from sqlalchemy import event, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from ..domain.errors import StorageError
from ..domain.models import BalanceRecord, TransferEvent
from ..domain.value_types import Address, EventId
from ..ports.storage import BalanceLedger, CursorStore
from .ledger_tables import AppliedEvent, Base, ScanCursor, UserBalance

Key = tuple[str, str]  # (account, contract)


def _use_immediate_transactions(engine: AsyncEngine) -> None:
    # pysqlite/aiosqlite defer BEGIN until the first write; a read-then-write
    # transaction must hold the write lock from the start or two writers can
    # both read the same balance.
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, _record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class KeyLocks:
    """asyncio locks by key; an entry lives only while someone holds or awaits it."""

    def __init__(self) -> None:
        self._locks: dict[Key, asyncio.Lock] = {}
        self._users: dict[Key, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: Key) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key], self._locks[key]


class SqlAlchemyLedger(BalanceLedger, CursorStore):
    """
    Balance ledger on an async SQLAlchemy engine (SQLite or PostgreSQL).

    Each transfer is one transaction. Writers to the same (account, contract)
    key are serialized in-process by per-key locks, taken in sorted order, and
    across processes by the database transaction itself.
    """

    def __init__(self, database_url: str, *, echo: bool = False) -> None:
        self.engine = create_async_engine(database_url, echo=echo)
        self.dialect = self.engine.dialect.name
        if self.dialect == "sqlite":
            _use_immediate_transactions(self.engine)
        self._sessions = async_sessionmaker(bind=self.engine, class_=AsyncSession, expire_on_commit=False)
        self._locks = KeyLocks()

    async def init_schema(self) -> None:
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise StorageError(f"failed to create ledger schema: {e}") from e

    async def aclose(self) -> None:
        await self.engine.dispose()

    # ---------------------------------------------------------------- helpers

    def _insert(self, table: Any) -> Any:
        if self.dialect == "postgresql":
            return postgresql.insert(table)
        return sqlite.insert(table)

    async def _read_balance(self, session: AsyncSession, account: str, contract: str) -> int:
        raw = await session.scalar(
            select(UserBalance.balance).where(
                UserBalance.user_addr == account,
                UserBalance.contract_addr == contract,
            )
        )
        if not raw:
            return 0
        try:
            return int(raw)
        except ValueError as e:
            raise StorageError(f"invalid balance string {raw!r} for {account}/{contract}") from e

    async def _upsert_balance(self, session: AsyncSession, account: str, contract: str, balance: int) -> None:
        stmt = self._insert(UserBalance.__table__).values(
            user_addr=account, contract_addr=contract, balance=str(balance),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_addr", "contract_addr"],
            set_={"balance": str(balance)},
        )
        await session.execute(stmt)

    # ------------------------------------------------------------- public API

    async def apply_transfer(
        self,
        transfer: TransferEvent,
        contract: Address,
        *,
        event_id: EventId | None = None,
    ) -> bool:
        if transfer.value < 0:
            raise ValueError("transfer value must be non-negative")
        contract_k = contract.lower()
        sender, recipient = transfer.sender.lower(), transfer.recipient.lower()
        keys = sorted({(sender, contract_k), (recipient, contract_k)})

        async with AsyncExitStack() as stack:
            for key in keys:
                await stack.enter_async_context(self._locks.hold(key))
            try:
                async with self._sessions() as session, session.begin():
                    if event_id is not None:
                        seen = await session.get(AppliedEvent, (contract_k, str(event_id)))
                        if seen is not None:
                            logger.debug(f"Transfer {event_id} on {contract_k} already applied, skipping")
                            return False
                        session.add(AppliedEvent(contract_addr=contract_k, event_id=str(event_id)))

                    current = await self._read_balance(session, sender, contract_k)
                    # Clamp: a sender never goes negative.
                    await self._upsert_balance(session, sender, contract_k, max(0, current - transfer.value))

                    current = await self._read_balance(session, recipient, contract_k)
                    await self._upsert_balance(session, recipient, contract_k, current + transfer.value)
            except SQLAlchemyError as e:
                raise StorageError(f"transfer on {contract_k} failed: {e}") from e
        return True

    async def get_balance(self, account: Address, contract: Address) -> int:
        try:
            async with self._sessions() as session:
                return await self._read_balance(session, account.lower(), contract.lower())
        except SQLAlchemyError as e:
            raise StorageError(f"balance read failed: {e}") from e

    async def balances_for(self, account: Address) -> list[BalanceRecord]:
        try:
            async with self._sessions() as session:
                rows = (await session.execute(
                    select(UserBalance.contract_addr, UserBalance.balance)
                    .where(UserBalance.user_addr == account.lower())
                    .order_by(UserBalance.contract_addr)
                )).all()
        except SQLAlchemyError as e:
            raise StorageError(f"balance read failed: {e}") from e
        out: list[BalanceRecord] = []
        for contract_addr, raw in rows:
            try:
                balance = int(raw)
            except ValueError as e:
                raise StorageError(f"invalid balance string {raw!r} for {account}/{contract_addr}") from e
            out.append(BalanceRecord(Address(account.lower()), Address(contract_addr), balance))
        return out

    async def load_cursor(self, contract: Address) -> int | None:
        try:
            async with self._sessions() as session:
                row = await session.get(ScanCursor, contract.lower())
                return None if row is None else int(row.next_block)
        except SQLAlchemyError as e:
            raise StorageError(f"cursor read failed: {e}") from e

    async def save_cursor(self, contract: Address, cursor: int) -> None:
        try:
            async with self._sessions() as session, session.begin():
                row = await session.get(ScanCursor, contract.lower())
                if row is None:
                    session.add(ScanCursor(contract_addr=contract.lower(), next_block=cursor))
                elif cursor > row.next_block:
                    row.next_block = cursor
        except SQLAlchemyError as e:
            raise StorageError(f"cursor write failed: {e}") from e
