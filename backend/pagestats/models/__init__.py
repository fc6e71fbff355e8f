from pagestats.models.hit import Hit
from pagestats.models.stats import (
    BrowserStats,
    LanguageStats,
    OSStats,
    ReferrerStats,
    VisitorStats,
    VisitorTimeStats,
)

__all__ = [
    "BrowserStats",
    "Hit",
    "LanguageStats",
    "OSStats",
    "ReferrerStats",
    "VisitorStats",
    "VisitorTimeStats",
]
