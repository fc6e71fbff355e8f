from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from pagestats.db.base import Base


class Hit(Base):
    """Raw page visit. Append-only and purged once its day is rolled up."""

    __tablename__ = "hit"

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    fingerprint: Mapped[str] = mapped_column(String(2000), nullable=False)
    path: Mapped[str] = mapped_column(String(2000), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    language: Mapped[str | None] = mapped_column(String(10), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    ref: Mapped[str | None] = mapped_column(Text, nullable=True)
    os: Mapped[str | None] = mapped_column(String(20), nullable=True)
    os_version: Mapped[str | None] = mapped_column(String(20), nullable=True)
    browser: Mapped[str | None] = mapped_column(String(20), nullable=True)
    browser_version: Mapped[str | None] = mapped_column(String(20), nullable=True)
    desktop: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    mobile: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("ix_hit_tenant_id_time", "tenant_id", "time"),)


# Column order of the multi-row insert
HIT_FIELDS = (
    "tenant_id",
    "fingerprint",
    "path",
    "url",
    "language",
    "user_agent",
    "ref",
    "os",
    "os_version",
    "browser",
    "browser_version",
    "desktop",
    "mobile",
    "time",
)
