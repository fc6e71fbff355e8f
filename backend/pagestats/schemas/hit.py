from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, field_validator

from pagestats.models.hit import HIT_FIELDS


class HitIn(BaseModel):
    """A single raw hit as handed over by the ingestion layer.

    The fingerprint is computed upstream; nothing here checks for bots or
    duplicate visitors.
    """

    model_config = ConfigDict(frozen=True)

    tenant_id: int | None = None
    fingerprint: str
    path: str
    url: str
    language: str | None = None
    user_agent: str | None = None
    ref: str | None = None
    os: str | None = None
    os_version: str | None = None
    browser: str | None = None
    browser_version: str | None = None
    desktop: bool = False
    mobile: bool = False
    time: datetime

    @field_validator("time")
    @classmethod
    def normalize_time(cls, v: datetime) -> datetime:
        # Naive times are taken as UTC; days are cut at UTC midnight
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    def to_row(self) -> dict:
        """Values in insert column order."""
        return {field: getattr(self, field) for field in HIT_FIELDS}
