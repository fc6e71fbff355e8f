"""Concurrent merges must not lose updates or duplicate rows."""

import asyncio
from datetime import date

import pytest

from conftest import fetch_all
from pagestats.core.scope import GLOBAL, Tenant
from pagestats.models.stats import LanguageStats, VisitorStats
from pagestats.services.store import StatsStore

DAY = date(2024, 1, 1)
WORKERS = 12
ROUNDS = 5


@pytest.mark.asyncio
async def test_concurrent_merges_same_key(store: StatsStore):
    """Test many standalone merges of one key race without losing a count."""

    async def worker(n: int) -> None:
        for _ in range(ROUNDS):
            # Alternate casing so folding is exercised under contention too
            path = "/Race" if n % 2 else "/race"
            await store.save_visitor_stats(GLOBAL, DAY, path, 1, platform_desktop=1)

    await asyncio.gather(*(worker(n) for n in range(WORKERS)))

    rows = await fetch_all(VisitorStats)
    assert len(rows) == 1
    assert rows[0].visitors == WORKERS * ROUNDS
    assert rows[0].platform_desktop == WORKERS * ROUNDS


@pytest.mark.asyncio
async def test_concurrent_merges_different_keys(store: StatsStore):
    """Test merges on distinct keys stay independent under concurrency."""

    async def worker(tenant_id: int) -> None:
        for _ in range(ROUNDS):
            await store.save_language_stats(Tenant(tenant_id), DAY, "/", "en", 2)

    await asyncio.gather(*(worker(t) for t in range(WORKERS)))

    rows = await fetch_all(LanguageStats)
    assert len(rows) == WORKERS
    assert {r.visitors for r in rows} == {2 * ROUNDS}
