from __future__ import annotations

import re
from typing import List, Optional

from bs4 import BeautifulSoup

from .models import PaginationInfo
from .utils import clean_text

PAGINATOR_SELECTORS = ".paginator, .pagination, nav.paginator"
PAGE_BUTTON_SELECTORS = ".paginator__btn, .pagination__btn, .page-btn, a[data-page]"
NEXT_SELECTORS = ".paginator__btn--next, .pagination__btn--next, .next, .page-next"

COUNT_SELECTORS = [
    "[data-testid='total-count']",
    ".search-results-header",
    ".results-count",
    ".found-count",
    ".search-results__count",
    ".listing-header",
    "h1",
    ".search-summary",
    ".page-title",
]

_PAGE_PARAM_RE = re.compile(r"page=(\d+)")
_FOUND_RE = re.compile(r"(?:Найдено|Мы нашли)\s+(\d+(?:\s+\d+)*)\s+объявлени")
_COUNT_RE = re.compile(r"(\d+(?:\s+\d+)*)\s*(?:объявлени|результат|найден)")


def _positive(raw: Optional[str]) -> Optional[int]:
    raw = clean_text(raw)
    if raw.isdigit() and int(raw) > 0:
        return int(raw)
    return None


class PaginationAnalyzer:
    """Reads the paginator of a search page.

    Only page 1 is trustworthy here; later pages may render a truncated
    paginator, so the scheduler keeps the page-1 answer for the whole run.
    """

    paginator_selectors = PAGINATOR_SELECTORS
    page_button_selectors = PAGE_BUTTON_SELECTORS
    next_selectors = NEXT_SELECTORS

    def analyze(self, soup: BeautifulSoup) -> PaginationInfo:
        paginators = soup.select(self.paginator_selectors)
        if not paginators:
            return PaginationInfo(total_pages=1, has_next=False)

        numbers: List[int] = []
        has_next = False
        for paginator in paginators:
            for btn in paginator.select(self.page_button_selectors):
                for val in (_positive(btn.get("data-page")), _positive(btn.get_text())):
                    if val:
                        numbers.append(val)
            for link in paginator.select('a[href*="page="]'):
                m = _PAGE_PARAM_RE.search(link.get("href", ""))
                if m and int(m.group(1)) > 0:
                    numbers.append(int(m.group(1)))
            if paginator.select_one(self.next_selectors) is not None:
                has_next = True

        return PaginationInfo(total_pages=max(numbers + [1]), has_next=has_next)


def parse_total_count(soup: BeautifulSoup) -> Optional[int]:
    """The site's own "Найдено N объявлений" counter, if the page shows one."""
    subtitle = " ".join(el.get_text(" ") for el in soup.select(".a-search-subtitle, .search-results-nb, [data-testid='total-count']"))
    m = _FOUND_RE.search(clean_text(subtitle))
    if m:
        return int(re.sub(r"\s+", "", m.group(1)))

    for sel in COUNT_SELECTORS:
        for el in soup.select(sel):
            m = _COUNT_RE.search(clean_text(el.get_text(" ")))
            if m:
                total = int(re.sub(r"\s+", "", m.group(1)))
                if total > 0:
                    return total
    return None


class OlxPaginationAnalyzer(PaginationAnalyzer):
    paginator_selectors = "[data-testid='pagination-wrapper'], [data-testid='pagination-list'], [data-cy='pagination']"
    page_button_selectors = "[data-testid='pagination-link'], [data-testid^='pagination-link-'], li[data-testid='pagination-list-item'] a"
    next_selectors = "[data-testid='pagination-forward'], [data-cy='pagination-forward']"
