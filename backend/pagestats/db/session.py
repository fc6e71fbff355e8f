from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from pagestats.core.config import Settings, settings


def install_sqlite_locking(engine: AsyncEngine) -> None:
    """Make every SQLite transaction start with ``BEGIN IMMEDIATE``.

    The write lock is taken before a merge reads its row, so two merges can
    never interleave between the read and the write. The driver's own
    implicit BEGIN is turned off so ours is the only one emitted.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):  # noqa: ARG001
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine_from_settings(config: Settings | None = None) -> AsyncEngine:
    config = config or settings
    if config.DATABASE_URL.startswith("sqlite"):
        engine = create_async_engine(config.DATABASE_URL, echo=config.DEBUG)
        if config.MERGE_LOCKING:
            install_sqlite_locking(engine)
        return engine

    return create_async_engine(
        config.DATABASE_URL,
        echo=config.DEBUG,
        pool_size=config.DB_POOL_SIZE,
        max_overflow=config.DB_MAX_OVERFLOW,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
