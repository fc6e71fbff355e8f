from datetime import date, datetime, timedelta, timezone

import pytest

from conftest import TestingSessionLocal, fetch_all, make_hit
from pagestats.core.exceptions import EmptyBatchError, StoreError
from pagestats.core.scope import GLOBAL, Tenant
from pagestats.models.hit import Hit
from pagestats.schemas.hit import HitIn
from pagestats.services.store import StatsStore

DAY = date(2024, 1, 1)


def at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_save_hits_batch(store: StatsStore):
    """Test a batch is written with every field intact."""
    hits = [
        make_hit(fingerprint="fp-1", path="/", time=at(DAY, 9)),
        make_hit(
            tenant_id=7,
            fingerprint="fp-2",
            path="/Pricing",
            url="https://example.com/Pricing",
            language="de",
            ref=None,
            os="Android",
            os_version="14",
            browser="Firefox",
            browser_version="121.0",
            desktop=False,
            mobile=True,
            time=at(DAY, 10),
        ),
    ]

    assert await store.save_hits(hits) == 2

    rows = await fetch_all(Hit)
    assert len(rows) == 2
    assert rows[1].tenant_id == 7
    assert rows[1].path == "/Pricing"
    assert rows[1].language == "de"
    assert rows[1].ref is None
    assert rows[1].os == "Android"
    assert rows[1].browser_version == "121.0"
    assert rows[1].mobile is True
    assert rows[1].desktop is False
    assert rows[0].tenant_id is None


@pytest.mark.asyncio
async def test_save_hits_empty_batch_rejected(store: StatsStore):
    """Test an empty batch is refused before touching the database."""
    with pytest.raises(EmptyBatchError):
        await store.save_hits([])
    assert await store.count_hits(GLOBAL) == 0


@pytest.mark.asyncio
async def test_save_hits_is_all_or_nothing(store: StatsStore):
    """Test one row the database rejects aborts the whole batch."""
    valid = [make_hit(fingerprint=f"fp-{i}") for i in range(4)]
    # Skips validation, so the NULL path reaches the database
    broken = HitIn.model_construct(**{**make_hit().model_dump(), "path": None})

    with pytest.raises(StoreError):
        await store.save_hits([*valid[:2], broken, *valid[2:]])

    assert await store.count_hits(GLOBAL) == 0


@pytest.mark.asyncio
async def test_save_hits_joins_caller_transaction(store: StatsStore):
    """Test a caller-supplied session is used and not committed."""
    async with TestingSessionLocal() as session:
        await store.save_hits([make_hit()], session=session)
        await session.rollback()

    assert await store.count_hits(GLOBAL) == 0

    async with TestingSessionLocal() as session:
        await store.save_hits([make_hit(), make_hit()], session=session)
        await session.commit()

    assert await store.count_hits(GLOBAL) == 2


@pytest.mark.asyncio
async def test_delete_hits_by_day_is_scoped(store: StatsStore):
    """Test the purge only removes the tenant's hits of that day."""
    next_day = DAY + timedelta(days=1)
    await store.save_hits(
        [
            make_hit(tenant_id=1, time=at(DAY, 0)),
            make_hit(tenant_id=1, time=at(DAY, 23, 59)),
            make_hit(tenant_id=1, time=at(next_day, 0)),
            make_hit(tenant_id=2, time=at(DAY, 12)),
            make_hit(tenant_id=None, time=at(DAY, 12)),
        ]
    )

    deleted = await store.delete_hits_by_day(Tenant(1), DAY)

    assert deleted == 2
    remaining = await fetch_all(Hit)
    assert sorted((h.tenant_id or 0, h.time.day) for h in remaining) == [(0, 1), (1, 2), (2, 1)]


@pytest.mark.asyncio
async def test_delete_hits_by_day_global(store: StatsStore):
    """Test the global scope purges every tenant's hits of that day."""
    await store.save_hits(
        [
            make_hit(tenant_id=1, time=at(DAY, 8)),
            make_hit(tenant_id=2, time=at(DAY, 9)),
            make_hit(tenant_id=None, time=at(DAY, 10)),
            make_hit(tenant_id=1, time=at(DAY + timedelta(days=1), 8)),
        ]
    )

    assert await store.delete_hits_by_day(GLOBAL, DAY) == 3
    assert await store.count_hits(GLOBAL) == 1


@pytest.mark.asyncio
async def test_days_excludes_today(store: StatsStore):
    """Test days are distinct, ascending, and skip the running day."""
    today = datetime.now(timezone.utc).date()
    await store.save_hits(
        [
            make_hit(time=at(DAY + timedelta(days=2), 5)),
            make_hit(time=at(DAY, 5)),
            make_hit(time=at(DAY, 18)),
            make_hit(tenant_id=3, time=at(DAY + timedelta(days=1), 5)),
            make_hit(time=datetime.now(timezone.utc)),
            make_hit(time=at(today, 0)),
        ]
    )

    assert await store.days(GLOBAL) == [DAY, DAY + timedelta(days=1), DAY + timedelta(days=2)]
    assert await store.days(Tenant(3)) == [DAY + timedelta(days=1)]
    assert await store.days(Tenant(4)) == []


@pytest.mark.asyncio
async def test_paths(store: StatsStore):
    """Test paths of one day come back distinct and scoped."""
    await store.save_hits(
        [
            make_hit(tenant_id=1, path="/", time=at(DAY, 1)),
            make_hit(tenant_id=1, path="/", time=at(DAY, 2)),
            make_hit(tenant_id=1, path="/About", time=at(DAY, 3)),
            make_hit(tenant_id=2, path="/pricing", time=at(DAY, 3)),
            make_hit(tenant_id=1, path="/blog", time=at(DAY + timedelta(days=1), 3)),
        ]
    )

    assert await store.paths(Tenant(1), DAY) == {"/", "/About"}
    assert await store.paths(GLOBAL, DAY) == {"/", "/About", "/pricing"}
    assert await store.paths(Tenant(0), DAY) == set()


@pytest.mark.asyncio
async def test_hit_times_are_bucketed_in_utc(store: StatsStore):
    """Test offset and naive times land on their UTC day."""
    plus_two = timezone(timedelta(hours=2))
    await store.save_hits(
        [
            # 01:30 at +02:00 is still the previous day in UTC
            make_hit(fingerprint="a", time=datetime(2024, 1, 2, 1, 30, tzinfo=plus_two)),
            make_hit(fingerprint="b", time=datetime(2024, 1, 2, 1, 30)),
        ]
    )

    assert await store.days(GLOBAL) == [DAY, DAY + timedelta(days=1)]
    assert make_hit(time=datetime(2024, 1, 2, 1, 30)).time.tzinfo == timezone.utc
