"""Pre-aggregated daily counters, one table per dimension, written by merges."""

from datetime import date

from sqlalchemy import BigInteger, Date, Index, Integer, SmallInteger, String
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from pagestats.db.base import Base


class StatsMixin:
    """Columns shared by every aggregate table."""

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    day: Mapped[date] = mapped_column(Date, nullable=False)
    path: Mapped[str] = mapped_column(String(2000), nullable=False)
    visitors: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    @declared_attr.directive
    def __table_args__(cls) -> tuple:
        return (Index(f"ix_{cls.__tablename__}_tenant_id_day", "tenant_id", "day"),)


class VisitorStats(StatsMixin, Base):
    __tablename__ = "visitor_stats"

    platform_desktop: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    platform_mobile: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    platform_unknown: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class VisitorTimeStats(StatsMixin, Base):
    __tablename__ = "visitor_time_stats"

    hour: Mapped[int] = mapped_column(SmallInteger, nullable=False)


class LanguageStats(StatsMixin, Base):
    __tablename__ = "language_stats"

    language: Mapped[str | None] = mapped_column(String(10), nullable=True)


class ReferrerStats(StatsMixin, Base):
    __tablename__ = "referrer_stats"

    referrer: Mapped[str | None] = mapped_column(String(2000), nullable=True)


class OSStats(StatsMixin, Base):
    __tablename__ = "os_stats"

    os: Mapped[str | None] = mapped_column(String(20), nullable=True)
    os_version: Mapped[str | None] = mapped_column(String(20), nullable=True)


class BrowserStats(StatsMixin, Base):
    __tablename__ = "browser_stats"

    browser: Mapped[str | None] = mapped_column(String(20), nullable=True)
    browser_version: Mapped[str | None] = mapped_column(String(20), nullable=True)
