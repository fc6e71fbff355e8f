import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pagestats.core.config import Settings, settings
from pagestats.core.exceptions import StoreError


class BaseStore:
    """Base store owning the transaction boundary for every mutator.

    Mutators accept an optional ``session``. Without one, :meth:`transaction`
    opens a session, begins, and commits when the block exits (rolling back
    if it raises). With one, the work joins the caller's transaction and the
    caller owns commit and rollback.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: Settings | None = None,
        log: logging.Logger | None = None,
    ):
        self.session_factory = session_factory
        self.settings = config or settings
        self.logger = log or logging.getLogger(type(self).__module__)

    @asynccontextmanager
    async def transaction(self, session: AsyncSession | None = None) -> AsyncIterator[AsyncSession]:
        if session is not None:
            yield session
            return

        session = self.session_factory()
        try:
            await session.begin()
            try:
                yield session
            except BaseException:
                await self.rollback(session)
                raise
            await self.commit(session)
        finally:
            await self._close(session)

    async def commit(self, session: AsyncSession) -> None:
        """Commit, raising :class:`StoreError` if the database refuses."""
        try:
            await session.commit()
        except SQLAlchemyError as exc:
            self.logger.warning("error committing transaction: %s", exc)
            await self.rollback(session)
            raise StoreError("error committing transaction") from exc

    async def rollback(self, session: AsyncSession) -> None:
        """Best-effort rollback; failures are logged and swallowed."""
        try:
            await session.rollback()
        except SQLAlchemyError as exc:
            self.logger.warning("error rolling back transaction: %s", exc)

    async def _close(self, session: AsyncSession) -> None:
        try:
            await session.close()
        except SQLAlchemyError as exc:
            self.logger.warning("error closing session: %s", exc)
