import logging
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pagestats.core.config import Settings
from pagestats.core.scope import TenantScope
from pagestats.services import merge
from pagestats.services.hit_service import HitService
from pagestats.services.merge import AggregateMergeStore, Dimension


class StatsStore(HitService):
    """Hit store plus one merge store per aggregate table.

    This is the surface rollup and ingestion callers use: ``save_hits``,
    ``delete_hits_by_day``, ``days``, ``paths`` and the six ``save_*_stats``
    merges. Every mutator takes an optional ``session`` to join.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: Settings | None = None,
        log: logging.Logger | None = None,
    ):
        super().__init__(session_factory, config, log)
        self.merges: dict[str, AggregateMergeStore] = {
            dimension.name: self._merge_store(dimension) for dimension in merge.DIMENSIONS
        }

    def _merge_store(self, dimension: Dimension) -> AggregateMergeStore:
        return AggregateMergeStore(dimension, self.session_factory, self.settings, self.logger)

    async def save_visitor_stats(
        self,
        scope: TenantScope,
        day: date,
        path: str,
        visitors: int,
        platform_desktop: int = 0,
        platform_mobile: int = 0,
        platform_unknown: int = 0,
        session: AsyncSession | None = None,
    ) -> None:
        await self.merges[merge.VISITOR.name].merge(
            scope,
            day,
            path,
            delta={
                "visitors": visitors,
                "platform_desktop": platform_desktop,
                "platform_mobile": platform_mobile,
                "platform_unknown": platform_unknown,
            },
            session=session,
        )

    async def save_visitor_time_stats(
        self,
        scope: TenantScope,
        day: date,
        path: str,
        hour: int,
        visitors: int,
        session: AsyncSession | None = None,
    ) -> None:
        await self.merges[merge.VISITOR_TIME.name].merge(
            scope, day, path, {"hour": hour}, {"visitors": visitors}, session=session
        )

    async def save_language_stats(
        self,
        scope: TenantScope,
        day: date,
        path: str,
        language: str | None,
        visitors: int,
        session: AsyncSession | None = None,
    ) -> None:
        await self.merges[merge.LANGUAGE.name].merge(
            scope, day, path, {"language": language}, {"visitors": visitors}, session=session
        )

    async def save_referrer_stats(
        self,
        scope: TenantScope,
        day: date,
        path: str,
        referrer: str | None,
        visitors: int,
        session: AsyncSession | None = None,
    ) -> None:
        await self.merges[merge.REFERRER.name].merge(
            scope, day, path, {"referrer": referrer}, {"visitors": visitors}, session=session
        )

    async def save_os_stats(
        self,
        scope: TenantScope,
        day: date,
        path: str,
        os: str | None,
        os_version: str | None,
        visitors: int,
        session: AsyncSession | None = None,
    ) -> None:
        await self.merges[merge.OS.name].merge(
            scope,
            day,
            path,
            {"os": os, "os_version": os_version},
            {"visitors": visitors},
            session=session,
        )

    async def save_browser_stats(
        self,
        scope: TenantScope,
        day: date,
        path: str,
        browser: str | None,
        browser_version: str | None,
        visitors: int,
        session: AsyncSession | None = None,
    ) -> None:
        await self.merges[merge.BROWSER.name].merge(
            scope,
            day,
            path,
            {"browser": browser, "browser_version": browser_version},
            {"visitors": visitors},
            session=session,
        )
