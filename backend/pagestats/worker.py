"""Background worker: folds completed days of raw hits into the aggregate tables.

Run as a separate process:
    python -m pagestats.worker

Each day is rolled up in a single transaction: distinct visitors are counted
per dimension, merged into the six stats tables, and the day's raw hits are
purged in the same transaction, so a crash never counts a day twice.
"""

import asyncio
import logging
import signal
from datetime import date

from sqlalchemy import and_, case, distinct, extract, func, not_, select
from sqlalchemy.ext.asyncio import AsyncSession

from pagestats.core.config import settings, setup_logging
from pagestats.core.scope import GLOBAL, TenantScope, row_scope, scope_clause
from pagestats.db.session import create_engine_from_settings, create_session_factory
from pagestats.models.hit import Hit
from pagestats.services.hit_service import day_window, utc_time
from pagestats.services.store import StatsStore

logger = logging.getLogger(__name__)

_shutdown = asyncio.Event()


def _handle_signal(*_):
    logger.info("Shutdown signal received")
    _shutdown.set()


def _visitors(condition=None):
    if condition is None:
        return func.count(distinct(Hit.fingerprint))
    return func.count(distinct(case((condition, Hit.fingerprint))))


async def _grouped(session: AsyncSession, scope: TenantScope, day: date, *columns, counters=()):
    """Distinct visitors of ``day`` per (tenant, path, *columns)."""
    start, end = day_window(day)
    stmt = (
        select(Hit.tenant_id, Hit.path, *columns, _visitors().label("visitors"), *counters)
        .where(
            scope_clause(scope, Hit.tenant_id),
            Hit.time >= start,
            Hit.time < end,
        )
        .group_by(Hit.tenant_id, Hit.path, *columns)
    )
    result = await session.execute(stmt)
    return result.all()


async def rollup_day(store: StatsStore, scope: TenantScope, day: date) -> int:
    """Roll up one day of hits within scope and purge them. Returns the number of merges.

    Each group is merged with the scope of its own tenant, and tenant-less
    hits only ever land in rows without a tenant. The purge shares the
    transaction, so a day is either counted and gone or untouched.
    """
    merges = 0

    async with store.transaction() as session:
        if session.get_bind().dialect.name == "sqlite":
            hour_expr = func.strftime("%H", Hit.time)
        else:
            hour_expr = extract("hour", utc_time(session))

        platforms = (
            _visitors(and_(Hit.desktop, not_(Hit.mobile))).label("desktop"),
            _visitors(and_(Hit.mobile, not_(Hit.desktop))).label("mobile"),
            _visitors(and_(not_(Hit.desktop), not_(Hit.mobile))).label("unknown"),
        )
        for row in await _grouped(session, scope, day, counters=platforms):
            await store.save_visitor_stats(
                row_scope(row.tenant_id),
                day,
                row.path,
                visitors=row.visitors,
                platform_desktop=row.desktop,
                platform_mobile=row.mobile,
                platform_unknown=row.unknown,
                session=session,
            )
            merges += 1

        for row in await _grouped(session, scope, day, hour_expr.label("hour")):
            await store.save_visitor_time_stats(
                row_scope(row.tenant_id), day, row.path, int(row.hour), row.visitors, session=session
            )
            merges += 1

        for row in await _grouped(session, scope, day, Hit.language):
            await store.save_language_stats(
                row_scope(row.tenant_id), day, row.path, row.language, row.visitors, session=session
            )
            merges += 1

        for row in await _grouped(session, scope, day, Hit.ref):
            await store.save_referrer_stats(
                row_scope(row.tenant_id), day, row.path, row.ref, row.visitors, session=session
            )
            merges += 1

        for row in await _grouped(session, scope, day, Hit.os, Hit.os_version):
            await store.save_os_stats(
                row_scope(row.tenant_id),
                day,
                row.path,
                row.os,
                row.os_version,
                row.visitors,
                session=session,
            )
            merges += 1

        for row in await _grouped(session, scope, day, Hit.browser, Hit.browser_version):
            await store.save_browser_stats(
                row_scope(row.tenant_id),
                day,
                row.path,
                row.browser,
                row.browser_version,
                row.visitors,
                session=session,
            )
            merges += 1

        await store.delete_hits_by_day(scope, day, session=session)

    logger.info("Rolled up %s (%s): %d merges", day, scope, merges)
    return merges


async def rollup_pending_days(store: StatsStore, scope: TenantScope = GLOBAL) -> int:
    """Roll up every completed day that still has raw hits."""
    total = 0
    for day in await store.days(scope):
        total += await rollup_day(store, scope, day)
    return total


async def run_worker() -> None:
    """Main worker loop."""
    setup_logging()
    logger.info("Starting rollup worker")

    engine = create_engine_from_settings(settings)
    store = StatsStore(create_session_factory(engine), settings)

    while not _shutdown.is_set():
        try:
            merges = await rollup_pending_days(store)
            if merges:
                logger.info("Rollup pass finished: %d merges", merges)
        except Exception:
            logger.exception("Rollup pass failed")

        try:
            await asyncio.wait_for(_shutdown.wait(), timeout=settings.ROLLUP_INTERVAL_SECONDS)
        except asyncio.TimeoutError:
            pass

    await engine.dispose()
    logger.info("Worker shut down cleanly")


if __name__ == "__main__":
    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _handle_signal)
    asyncio.run(run_worker())
