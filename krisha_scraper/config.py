"""Run tunables.

Every knob can be overridden from the environment, e.g.::

  KRISHA_WORKERS=6          # pool size
  KRISHA_MAX_PAGES=50       # hard page ceiling in collect-all mode
  KRISHA_DEADLINE=300       # seconds per run
  KRISHA_RETRIES=2          # extra attempts per page
  KRISHA_WEBHOOK_URL=...    # unset disables the webhook
  KRISHA_OLX_BASE_URL=...   # olx.kz mirror for source=olx
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from typing import Optional

from .utils import as_bool, as_float, as_int

DEFAULT_BASE_URL = "https://krisha.kz"
DEFAULT_OLX_BASE_URL = "https://www.olx.kz"
DEFAULT_WORKERS = 12
DEFAULT_MAX_PAGES = 50
DEFAULT_DEADLINE = 300.0
DEFAULT_GENTLE_DEADLINE = 180.0
DEFAULT_TIMEOUT = 30
DEFAULT_ELEMENT_WAIT = 2
DEFAULT_RETRIES = 2
DEFAULT_BACKOFF = 1.0
DEFAULT_MAX_CARDS = 20
DEFAULT_MAX_IMAGES = 10
DEFAULT_PAGE_SIZE = 20
DEFAULT_MAX_ERRORS = 3
DEFAULT_MAX_RESULTS = 200

MIN_PAGE_BUDGET = 1
MAX_PAGE_BUDGET = 10


@dataclass
class ScraperConfig:
    base_url: str = DEFAULT_BASE_URL
    olx_base_url: str = DEFAULT_OLX_BASE_URL
    workers: int = DEFAULT_WORKERS
    max_pages: int = DEFAULT_MAX_PAGES
    deadline: float = DEFAULT_DEADLINE
    timeout: int = DEFAULT_TIMEOUT
    element_wait: int = DEFAULT_ELEMENT_WAIT
    retries: int = DEFAULT_RETRIES
    backoff: float = DEFAULT_BACKOFF
    max_cards: int = DEFAULT_MAX_CARDS
    max_images: int = DEFAULT_MAX_IMAGES
    page_size: int = DEFAULT_PAGE_SIZE
    max_consecutive_errors: int = DEFAULT_MAX_ERRORS
    report_partial: bool = False
    webhook_url: Optional[str] = None
    webhook_timeout: int = DEFAULT_TIMEOUT

    @classmethod
    def from_env(cls) -> "ScraperConfig":
        return cls(
            base_url=os.getenv("KRISHA_BASE_URL", DEFAULT_BASE_URL).rstrip("/"),
            olx_base_url=os.getenv("KRISHA_OLX_BASE_URL", DEFAULT_OLX_BASE_URL).rstrip("/"),
            workers=max(1, as_int(os.getenv("KRISHA_WORKERS"), DEFAULT_WORKERS)),
            max_pages=max(1, as_int(os.getenv("KRISHA_MAX_PAGES"), DEFAULT_MAX_PAGES)),
            deadline=as_float(os.getenv("KRISHA_DEADLINE"), DEFAULT_DEADLINE),
            timeout=as_int(os.getenv("KRISHA_TIMEOUT"), DEFAULT_TIMEOUT),
            element_wait=as_int(os.getenv("KRISHA_ELEMENT_WAIT"), DEFAULT_ELEMENT_WAIT),
            retries=max(0, as_int(os.getenv("KRISHA_RETRIES"), DEFAULT_RETRIES)),
            backoff=as_float(os.getenv("KRISHA_BACKOFF"), DEFAULT_BACKOFF),
            max_cards=as_int(os.getenv("KRISHA_MAX_CARDS"), DEFAULT_MAX_CARDS),
            max_images=as_int(os.getenv("KRISHA_MAX_IMAGES"), DEFAULT_MAX_IMAGES),
            page_size=max(1, as_int(os.getenv("KRISHA_PAGE_SIZE"), DEFAULT_PAGE_SIZE)),
            max_consecutive_errors=max(1, as_int(os.getenv("KRISHA_MAX_ERRORS"), DEFAULT_MAX_ERRORS)),
            report_partial=as_bool(os.getenv("KRISHA_REPORT_PARTIAL")),
            webhook_url=os.getenv("KRISHA_WEBHOOK_URL") or None,
            webhook_timeout=as_int(os.getenv("KRISHA_WEBHOOK_TIMEOUT"), DEFAULT_TIMEOUT),
        )

    def gentle(self) -> "ScraperConfig":
        """Reduced-concurrency profile for sites that throttle aggressively."""
        return dataclasses.replace(
            self,
            workers=max(1, self.workers // 3),
            deadline=min(self.deadline, DEFAULT_GENTLE_DEADLINE),
        )


def clamp_page_budget(pages: Optional[int]) -> int:
    if pages is None:
        return MIN_PAGE_BUDGET
    return max(MIN_PAGE_BUDGET, min(MAX_PAGE_BUDGET, pages))
