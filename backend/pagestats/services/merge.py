"""Find-then-increment-or-insert merges into the daily aggregate tables.

One algorithm serves all six tables; a :class:`Dimension` describes which
columns form the key of a table and which columns are counters. Path and the
text keys are matched case-insensitively, everything else by exact value.

Two merges of the same key must not interleave between the lookup and the
write. On Postgres the merge takes a transaction-scoped advisory lock on a
hash of the key before looking it up, which also covers the case where no
row exists yet, and locks the row it finds with ``FOR UPDATE``. On SQLite the
engine starts every transaction with ``BEGIN IMMEDIATE`` (see
:func:`pagestats.db.session.install_sqlite_locking`). With ``MERGE_LOCKING``
off, concurrent merges of one key can lose an update.
"""

import asyncio
import hashlib
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from typing import Any

from sqlalchemy import ColumnElement, Select, func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pagestats.core.config import Settings
from pagestats.core.exceptions import StoreError, StoreTimeoutError
from pagestats.core.scope import NoTenant, Tenant, TenantScope, scope_clause
from pagestats.models.stats import (
    BrowserStats,
    LanguageStats,
    OSStats,
    ReferrerStats,
    StatsMixin,
    VisitorStats,
    VisitorTimeStats,
)
from pagestats.services.base import BaseStore


def _scope_marker(scope: TenantScope) -> str:
    if isinstance(scope, Tenant):
        return str(scope.tenant_id)
    if isinstance(scope, NoTenant):
        return "null"
    return "*"


@dataclass(frozen=True)
class Dimension:
    """Key and counter columns of one aggregate table."""

    name: str
    model: type[StatsMixin]
    text_keys: tuple[str, ...] = ()
    exact_keys: tuple[str, ...] = ()
    counters: tuple[str, ...] = ("visitors",)
    # (key, low, high) inclusive bounds of integer keys
    bounds: tuple[tuple[str, int, int], ...] = ()

    @property
    def keys(self) -> tuple[str, ...]:
        return self.text_keys + self.exact_keys

    def check(
        self, keys: Mapping[str, Any], delta: Mapping[str, int]
    ) -> tuple[dict[str, Any], dict[str, int]]:
        """Validate a merge request; missing counters default to zero."""
        if set(keys) != set(self.keys):
            raise ValueError(
                f"{self.name} merge needs keys {sorted(self.keys)}, got {sorted(keys)}"
            )
        for name, low, high in self.bounds:
            value = keys[name]
            if value is None or not low <= value <= high:
                raise ValueError(f"{self.name}.{name} must be within {low}-{high}, got {value}")
        unknown = set(delta) - set(self.counters)
        if unknown:
            raise ValueError(f"{self.name} has no counters {sorted(unknown)}")

        counters = {name: delta.get(name, 0) for name in self.counters}
        for name, value in counters.items():
            if value < 0:
                raise ValueError(f"{self.name}.{name} delta must not be negative, got {value}")
        return dict(keys), counters

    def match(
        self, scope: TenantScope, day: date, path: str, keys: Mapping[str, Any]
    ) -> list[ColumnElement[bool]]:
        model = self.model
        clauses = [
            scope_clause(scope, model.tenant_id),
            model.day == day,
            func.lower(model.path) == func.lower(path),
        ]
        for name in self.keys:
            column = getattr(model, name)
            value = keys[name]
            if value is None:
                clauses.append(column.is_(None))
            elif name in self.text_keys:
                clauses.append(func.lower(column) == func.lower(value))
            else:
                clauses.append(column == value)
        return clauses

    def lookup(
        self, scope: TenantScope, day: date, path: str, keys: Mapping[str, Any]
    ) -> Select:
        columns = [self.model.id] + [getattr(self.model, name) for name in self.counters]
        return select(*columns).where(*self.match(scope, day, path, keys)).limit(1)

    def lock_key(self, scope: TenantScope, day: date, path: str, keys: Mapping[str, Any]) -> int:
        """Stable signed 64-bit id of a key tuple, for ``pg_advisory_xact_lock``."""
        parts = [
            self.name,
            _scope_marker(scope),
            day.isoformat(),
            path.lower(),
        ]
        for name in self.keys:
            value = keys[name]
            if value is not None and name in self.text_keys:
                value = value.lower()
            parts.append(repr(value))
        digest = hashlib.blake2b("\x1f".join(parts).encode(), digest_size=8).digest()
        return int.from_bytes(digest, "big", signed=True)


VISITOR = Dimension(
    "visitor_stats",
    VisitorStats,
    counters=("visitors", "platform_desktop", "platform_mobile", "platform_unknown"),
)
VISITOR_TIME = Dimension(
    "visitor_time_stats", VisitorTimeStats, exact_keys=("hour",), bounds=(("hour", 0, 23),)
)
LANGUAGE = Dimension("language_stats", LanguageStats, text_keys=("language",))
REFERRER = Dimension("referrer_stats", ReferrerStats, text_keys=("referrer",))
OS = Dimension("os_stats", OSStats, exact_keys=("os", "os_version"))
BROWSER = Dimension("browser_stats", BrowserStats, exact_keys=("browser", "browser_version"))

DIMENSIONS = (VISITOR, VISITOR_TIME, LANGUAGE, REFERRER, OS, BROWSER)


class AggregateMergeStore(BaseStore):
    """Merges counter deltas into the table of a single dimension."""

    def __init__(
        self,
        dimension: Dimension,
        session_factory: async_sessionmaker[AsyncSession],
        config: Settings | None = None,
        log: logging.Logger | None = None,
    ):
        super().__init__(session_factory, config, log)
        self.dimension = dimension

    async def merge(
        self,
        scope: TenantScope,
        day: date,
        path: str,
        keys: Mapping[str, Any] | None = None,
        delta: Mapping[str, int] | None = None,
        session: AsyncSession | None = None,
        timeout: float | None = None,
    ) -> None:
        """Add ``delta`` to the row of ``(scope, day, path, keys)``, creating it if needed.

        Either the insert or the update happens, never both and never a part
        of one. ``timeout`` (default ``MERGE_TIMEOUT_SECONDS``) bounds the
        whole merge; when it expires an own transaction is rolled back, and a
        joined one is left for the caller to roll back.
        """
        keys, counters = self.dimension.check(keys or {}, delta or {})
        if timeout is None:
            timeout = self.settings.MERGE_TIMEOUT_SECONDS

        try:
            async with self.transaction(session) as tx:
                work = self._merge(tx, scope, day, path, keys, counters)
                if timeout is None:
                    await work
                else:
                    await asyncio.wait_for(work, timeout)
        except asyncio.TimeoutError as exc:
            raise StoreTimeoutError(
                f"{self.dimension.name} merge for {day} {path!r} timed out after {timeout}s"
            ) from exc

    async def _merge(
        self,
        tx: AsyncSession,
        scope: TenantScope,
        day: date,
        path: str,
        keys: dict[str, Any],
        counters: dict[str, int],
    ) -> None:
        dimension = self.dimension
        model = dimension.model
        locking = self.settings.MERGE_LOCKING
        try:
            stmt = dimension.lookup(scope, day, path, keys)
            if locking and tx.get_bind().dialect.name == "postgresql":
                lock_id = dimension.lock_key(scope, day, path, keys)
                await tx.execute(select(func.pg_advisory_xact_lock(lock_id)))
                stmt = stmt.with_for_update()

            existing = (await tx.execute(stmt)).first()
            if existing is not None:
                values = {name: getattr(existing, name) + counters[name] for name in counters}
                await tx.execute(
                    update(model)
                    .where(model.id == existing.id)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
            else:
                await tx.execute(
                    insert(model).values(
                        tenant_id=scope.tenant_id, day=day, path=path, **keys, **counters
                    )
                )
        except SQLAlchemyError as exc:
            raise StoreError(f"error merging {dimension.name} for {day} {path!r}") from exc
