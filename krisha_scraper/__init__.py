"""Concurrent scraper for krisha.kz search results."""

from .config import ScraperConfig, clamp_page_budget
from .errors import (
    ExtractionError,
    FetchError,
    InvalidFilterError,
    ScrapeCancelled,
    ScraperError,
    TransportError,
)
from .models import (
    ListingFilter,
    ListingRecord,
    PropertyCategory,
    RunStatus,
    ScrapeRun,
    SellerType,
    Source,
    Termination,
)
from .scheduler import PageScheduler, scrape
from .webhook import WebhookNotifier

__version__ = "0.3.0"

__all__ = [
    "ExtractionError",
    "FetchError",
    "InvalidFilterError",
    "ListingFilter",
    "ListingRecord",
    "PageScheduler",
    "PropertyCategory",
    "RunStatus",
    "ScrapeCancelled",
    "ScrapeRun",
    "ScraperConfig",
    "ScraperError",
    "SellerType",
    "Source",
    "Termination",
    "TransportError",
    "WebhookNotifier",
    "clamp_page_budget",
    "scrape",
]
