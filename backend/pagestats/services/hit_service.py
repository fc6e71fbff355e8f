from collections.abc import Sequence
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import ColumnElement, delete, distinct, func, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pagestats.core.exceptions import EmptyBatchError, StoreError
from pagestats.core.scope import TenantScope, scope_clause
from pagestats.models.hit import Hit
from pagestats.schemas.hit import HitIn
from pagestats.services.base import BaseStore


def day_window(day: date) -> tuple[datetime, datetime]:
    """Return ``[day 00:00, day+1 00:00)`` in UTC."""
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def utc_time(session: AsyncSession) -> ColumnElement[datetime]:
    """``Hit.time`` as UTC wall-clock time on the session's dialect."""
    if session.get_bind().dialect.name == "postgresql":
        return func.timezone("UTC", Hit.time)
    # SQLite keeps the UTC wall clock as written
    return Hit.time


class HitService(BaseStore):
    """Raw hit writes, retention purge and the distinct listings."""

    async def save_hits(self, hits: Sequence[HitIn], session: AsyncSession | None = None) -> int:
        """Append a batch of hits with a single multi-row INSERT.

        Rows are passed to the database as they are. If the database rejects
        any of them the whole batch is rolled back and nothing is written.
        """
        if not hits:
            raise EmptyBatchError("save_hits requires at least one hit")

        stmt = insert(Hit.__table__).values([hit.to_row() for hit in hits])
        async with self.transaction(session) as tx:
            try:
                await tx.execute(stmt)
            except SQLAlchemyError as exc:
                raise StoreError(f"error saving {len(hits)} hits") from exc

        self.logger.info("Saved %d hits", len(hits))
        return len(hits)

    async def delete_hits_by_day(
        self, scope: TenantScope, day: date, session: AsyncSession | None = None
    ) -> int:
        """Delete every hit of ``day`` within scope. Returns the rows deleted.

        Irreversible: the caller has to make sure the day was rolled up.
        """
        start, end = day_window(day)
        stmt = (
            delete(Hit)
            .where(scope_clause(scope, Hit.tenant_id), Hit.time >= start, Hit.time < end)
            .execution_options(synchronize_session=False)
        )
        async with self.transaction(session) as tx:
            try:
                result = await tx.execute(stmt)
            except SQLAlchemyError as exc:
                raise StoreError(f"error deleting hits for {day}") from exc

        self.logger.info("Deleted %d hits for %s (%s)", result.rowcount, day, scope)
        return result.rowcount

    async def days(self, scope: TenantScope) -> list[date]:
        """Distinct days with hits, oldest first, excluding today (UTC)."""
        today_start, _ = day_window(datetime.now(timezone.utc).date())
        async with self.session_factory() as session:
            day_expr = func.date(utc_time(session))
            stmt = (
                select(day_expr)
                .distinct()
                .where(scope_clause(scope, Hit.tenant_id), Hit.time < today_start)
                .order_by(day_expr)
            )
            try:
                values = (await session.execute(stmt)).scalars().all()
            except SQLAlchemyError as exc:
                raise StoreError("error listing days") from exc

        # SQLite hands back ISO strings, Postgres real dates
        return [date.fromisoformat(v) if isinstance(v, str) else v for v in values]

    async def paths(self, scope: TenantScope, day: date) -> set[str]:
        """Distinct paths seen on ``day``."""
        start, end = day_window(day)
        stmt = select(distinct(Hit.path)).where(
            scope_clause(scope, Hit.tenant_id), Hit.time >= start, Hit.time < end
        )
        async with self.session_factory() as session:
            try:
                return set((await session.execute(stmt)).scalars().all())
            except SQLAlchemyError as exc:
                raise StoreError(f"error listing paths for {day}") from exc

    async def count_hits(self, scope: TenantScope) -> int:
        async with self.session_factory() as session:
            try:
                result = await session.execute(
                    select(func.count()).select_from(Hit).where(scope_clause(scope, Hit.tenant_id))
                )
                return result.scalar_one()
            except SQLAlchemyError as exc:
                raise StoreError("error counting hits") from exc
