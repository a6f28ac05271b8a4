from __future__ import annotations

import logging
from typing import Dict, List, Optional, Set

from .config import DEFAULT_PAGE_SIZE
from .models import (
    ListingFilter,
    ListingRecord,
    PageResult,
    PaginationInfo,
    RunStatus,
    ScrapeRun,
    Termination,
    utcnow_iso,
)


class ResultAggregator:
    """Single owner of a run's state.

    Only the scheduler thread calls into this class, so there is no locking.
    Batches are merged in the order they arrive, not in page order.
    """

    def __init__(
        self,
        filter: ListingFilter,
        page_budget: int,
        cap: Optional[int] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        report_partial: bool = False,
        search_url: str = "",
        caller_id: Optional[str] = None,
    ) -> None:
        self.filter = filter
        self.page_budget = page_budget
        self.cap = cap
        self.page_size = page_size
        self.report_partial = report_partial
        self.search_url = search_url
        self.caller_id = caller_id
        self.started_at = utcnow_iso()

        self.records: List[ListingRecord] = []
        self.seen: Set[str] = set()
        self.errors: Dict[int, str] = {}
        self.succeeded: List[int] = []
        self.pagination: Optional[PaginationInfo] = None
        self.total_count: Optional[int] = None
        self.duplicates = 0
        self.discarded = 0

    @property
    def full(self) -> bool:
        return self.cap is not None and len(self.records) >= self.cap

    def add(self, result: PageResult) -> int:
        """Merge one page. Returns how many records were actually kept."""
        if not result.ok:
            self.errors[result.page] = result.error or "unknown error"
            return 0

        self.succeeded.append(result.page)
        if result.page == 1:
            if result.pagination is not None:
                self.pagination = result.pagination
            if result.total_count:
                self.total_count = result.total_count

        kept = 0
        for rec in result.records:
            if rec.id in self.seen:
                self.duplicates += 1
                continue
            if self.full:
                # keep draining, never block the worker that produced this
                self.discarded += 1
                continue
            self.seen.add(rec.id)
            self.records.append(rec)
            kept += 1
        return kept

    def total_found(self) -> int:
        if self.total_count:
            return self.total_count
        if self.pagination is not None and self.pagination.total_pages > 1:
            return self.pagination.total_pages * self.page_size
        return len(self.records)

    def status(self, termination: Termination) -> RunStatus:
        if not self.succeeded:
            return RunStatus.FAILED
        if self.errors and self.report_partial:
            return RunStatus.PARTIAL
        return RunStatus.COMPLETED

    def failure_cause(self, termination: Termination) -> str:
        if self.errors:
            first = min(self.errors)
            return self.errors[first]
        return f"no page succeeded ({termination.value})"

    def finalize(self, termination: Termination) -> ScrapeRun:
        status = self.status(termination)
        error = self.failure_cause(termination) if status == RunStatus.FAILED else None
        pagination = self.pagination or PaginationInfo()

        with_images = sum(1 for r in self.records if r.images)
        logging.info(
            f"Run {status.value} ({termination.value}): {len(self.records)} records, "
            f"{with_images} with images, {len(self.records) - with_images} without, "
            f"{self.duplicates} duplicates, {self.discarded} over cap"
        )
        if self.errors:
            logging.info(f"Failed pages: {sorted(self.errors)}")

        return ScrapeRun(
            filter=self.filter,
            page_budget=self.page_budget,
            collect_all_pages=self.filter.collect_all_pages,
            records=tuple(self.records),
            total_found=self.total_found(),
            status=status,
            termination=termination,
            total_pages=pagination.total_pages,
            has_next_page=pagination.has_next,
            error=error,
            pages_succeeded=tuple(sorted(self.succeeded)),
            pages_failed=tuple(sorted(self.errors)),
            search_url=self.search_url,
            caller_id=self.caller_id,
            started_at=self.started_at,
            finished_at=utcnow_iso(),
        )
