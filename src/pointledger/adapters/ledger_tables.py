"""
Ledger tables.

`user_balances` holds one row per
(user_addr, contract_addr) with the balance as a decimal string, so values
never overflow a database integer type.
"""

from __future__ import annotations

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class UserBalance(Base):
    __tablename__ = "user_balances"

    user_addr: Mapped[str] = mapped_column(String(42), primary_key=True)
    contract_addr: Mapped[str] = mapped_column(String(42), primary_key=True, index=True)
    balance: Mapped[str] = mapped_column(String(80), nullable=False, default="0")


class ScanCursor(Base):
    """Next unscanned block per watched contract, so a restart resumes."""

    __tablename__ = "scan_cursors"

    contract_addr: Mapped[str] = mapped_column(String(42), primary_key=True)
    next_block: Mapped[int] = mapped_column(BigInteger, nullable=False)


class AppliedEvent(Base):
    """Idempotency keys of transfers already folded into `user_balances`."""

    __tablename__ = "applied_events"

    contract_addr: Mapped[str] = mapped_column(String(42), primary_key=True)
    event_id: Mapped[str] = mapped_column(String(64), primary_key=True)
