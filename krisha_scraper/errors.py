"""Exceptions raised by the scraping pipeline."""

from __future__ import annotations

from typing import Optional


class ScraperError(Exception):
    """Base class for everything the scraper raises on purpose."""


class InvalidFilterError(ScraperError, ValueError):
    """The caller handed us a filter we cannot build a search from."""


class TransportError(ScraperError):
    """A single fetch attempt failed (network error, bad status, empty body)."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class FetchError(ScraperError):
    """A page could not be fetched after all retries."""

    def __init__(self, page: int, cause: BaseException) -> None:
        super().__init__(f"page {page}: {cause}")
        self.page = page
        self.cause = cause


class ExtractionError(ScraperError):
    """The document has no listing container at all (page-fatal)."""


class ScrapeCancelled(ScraperError):
    """Raised inside workers once the run has been told to stop."""
