"""
Pytest fixtures for Kirana Copilot tests.

Every test gets its own SQLite file with two stores, so tenant isolation can
be checked against a real second tenant.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from kirana.db import connect, init_db
from kirana.store import StoreRepository
from kirana.tenants import ensure_store
from kirana.tools import StoreTools

IST = timezone(timedelta(hours=5, minutes=30))


class FakeClock:
    """Deterministic clock; each reading moves one second forward."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + timedelta(seconds=1)
        return current

    def set(self, when: datetime) -> None:
        self.now = when


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "kirana.db"
    conn = connect(path)
    try:
        init_db(conn)
    finally:
        conn.close()
    return path


@pytest.fixture
def clock():
    # 11:30 IST on 2026-10-18
    return FakeClock(datetime(2026, 10, 18, 6, 0, tzinfo=timezone.utc))


@pytest.fixture
def repo(db_path, clock):
    return StoreRepository(db_path, store_tz=IST, clock=clock)


@pytest.fixture
def store_a(db_path):
    """Store A (first tenant)."""
    return ensure_store("tg:1001", "Sharma Kirana", db_path=db_path)


@pytest.fixture
def store_b(db_path):
    """Store B (second tenant)."""
    return ensure_store("tg:2002", "Gupta General Store", db_path=db_path)


@pytest.fixture
def tools_a(repo, store_a):
    return StoreTools(store_a, repo)


@pytest.fixture
def tools_b(repo, store_b):
    return StoreTools(store_b, repo)


@pytest.fixture
def stock_item(repo):
    """Create an item and bring it to `stock` through a STOCK_IN."""

    def _make(store_id, name, stock, min_stock=5, aliases=(), unit="pcs"):
        item = repo.add_item(store_id, name, unit=unit, min_stock=min_stock, aliases=list(aliases))
        if stock:
            repo.add_stock(store_id, name, stock, item_id=item.id, cost_per_unit=Decimal("10"))
        return repo.get_item(store_id, item.id)

    return _make


@pytest.fixture
def maggi(stock_item, store_a):
    """Maggi in Store A: stock 24, min 5."""
    return stock_item(store_a, "Maggi", 24, min_stock=5, aliases=["Maagi", "noodles"])
