"""Pytest configuration and shared fixtures for all tests."""

from __future__ import annotations

import pytest
import pytest_asyncio

from pointledger.adapters.ledger_sqlalchemy import SqlAlchemyLedger
from pointledger.application.planning import ScanPolicy

from helpers import FakeChainClient


@pytest.fixture
def chain() -> FakeChainClient:
    return FakeChainClient()


@pytest.fixture
def fast_policy() -> ScanPolicy:
    """Scan policy without real sleeps."""
    return ScanPolicy(
        chunk_size=10_000,
        poll_interval_s=0,
        retry_delay_s=0,
        max_retry_delay_s=0,
        breaker_threshold=3,
    )


@pytest_asyncio.fixture
async def ledger(tmp_path):
    led = SqlAlchemyLedger(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    await led.init_schema()
    yield led
    await led.aclose()
