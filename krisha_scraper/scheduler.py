"""Worker pool and page scheduling for one scrape run.

The calling thread is the scheduler: it feeds page numbers into a bounded job
queue, reads per-page results from a result queue and is the only thread that
touches the ResultAggregator. Workers are plain threads, each owning one
transport (HTTP session or browser) for its whole life.

Flow for a run::

  run() -> jobs.put(page) -> worker: fetch -> extract -> results.put(PageResult)
        <- results.get()  -> aggregator.add() -> dispatch more / stop
"""

from __future__ import annotations

import concurrent.futures as cf
import logging
import math
import queue
import threading
import time
from dataclasses import dataclass
from typing import Optional, Set

from .aggregator import ResultAggregator
from .config import ScraperConfig
from .errors import ExtractionError, FetchError, ScrapeCancelled
from .extractor import CardExtractor, OlxCardExtractor
from .fetcher import PageFetcher
from .models import ListingFilter, PageJob, PageResult, ScrapeRun, RunStatus, Source, Termination
from .pagination import OlxPaginationAnalyzer, PaginationAnalyzer, parse_total_count
from .transport import Transport, TransportFactory, http_transport_factory
from .urls import build_search_url
from .webhook import WebhookNotifier

JOB_POLL_INTERVAL = 0.2

# olx.kz blocks aggressive clients; it runs on a third of the pool
OLX_WORKER_DIVISOR = 3

_PARSERS = {
    Source.KRISHA: (CardExtractor, PaginationAnalyzer),
    Source.OLX: (OlxCardExtractor, OlxPaginationAnalyzer),
}


@dataclass
class _WorkerExit:
    worker: int
    started: bool


class PageScheduler:
    def __init__(
        self,
        config: Optional[ScraperConfig] = None,
        transport_factory: Optional[TransportFactory] = None,
        notifier: Optional[WebhookNotifier] = None,
    ) -> None:
        self.config = config or ScraperConfig.from_env()
        self.transport_factory = transport_factory or http_transport_factory
        self.notifier = notifier
        self._live_lock = threading.Lock()

    def _base_url(self, source: Source) -> str:
        return self.config.olx_base_url if source == Source.OLX else self.config.base_url

    def _pool_size(self, source: Source) -> int:
        if source == Source.OLX:
            return max(1, self.config.workers // OLX_WORKER_DIVISOR)
        return self.config.workers

    # =========================
    # Worker side
    # =========================

    def _process(
        self,
        job: PageJob,
        fetcher: PageFetcher,
        extractor: CardExtractor,
        analyzer: PaginationAnalyzer,
        cancel: threading.Event,
    ) -> Optional[PageResult]:
        url = build_search_url(job.filter, job.page, self._base_url(job.filter.source))
        logging.info(f"📄 Page {job.page}: {url}")
        try:
            soup = fetcher.fetch(url, job.page)
            records = extractor.extract(soup, cancel)
            result = PageResult(page=job.page, records=records)
            if job.page == 1:
                result.pagination = analyzer.analyze(soup)
                result.total_count = parse_total_count(soup)
            logging.info(f"✅ Page {job.page}: {len(records)} listings")
            return result
        except ScrapeCancelled:
            logging.debug(f"Page {job.page} abandoned")
            return None
        except (FetchError, ExtractionError) as e:
            if cancel.is_set():
                return None
            logging.error(f"❌ Page {job.page}: {e}")
            return PageResult(page=job.page, error=str(e))
        except Exception as e:
            if cancel.is_set():
                return None
            logging.exception(f"❌ Page {job.page}: unexpected error")
            return PageResult(page=job.page, error=f"unexpected error: {e}")

    def _worker(
        self,
        n: int,
        jobs: queue.Queue,
        results: queue.Queue,
        cancel: threading.Event,
        live: Set[Transport],
        source: Source = Source.KRISHA,
    ) -> None:
        transport: Optional[Transport] = None
        try:
            try:
                transport = self.transport_factory(self.config)
            except Exception as e:
                logging.error(f"Worker {n}: transport failed to start: {e}")
                return
            with self._live_lock:
                live.add(transport)

            fetcher = PageFetcher(transport, self.config.retries, self.config.backoff, cancel)
            extractor_cls, analyzer_cls = _PARSERS[source]
            extractor = extractor_cls(self._base_url(source), self.config.max_cards, self.config.max_images)
            analyzer = analyzer_cls()

            while not cancel.is_set():
                try:
                    job = jobs.get(timeout=JOB_POLL_INTERVAL)
                except queue.Empty:
                    continue
                if job is None:
                    break
                result = self._process(job, fetcher, extractor, analyzer, cancel)
                if result is not None:
                    results.put(result)
        finally:
            if transport is not None:
                with self._live_lock:
                    live.discard(transport)
                transport.close()
            results.put(_WorkerExit(worker=n, started=transport is not None))

    def _abort_all(self, live: Set[Transport]) -> None:
        with self._live_lock:
            transports = list(live)
        for transport in transports:
            try:
                transport.abort()
            except Exception as e:
                logging.warning(f"Transport abort failed: {e}")

    # =========================
    # Scheduler side
    # =========================

    def _page_limit(self, agg: ResultAggregator) -> int:
        """Last page worth scheduling in collect-all mode, known once page 1 is in."""
        ceiling = self.config.max_pages
        info = agg.pagination
        if info is None:
            return 1
        if info.total_pages > 1:
            return min(info.total_pages, ceiling)
        if info.has_next:
            return ceiling
        return 1

    def _allowance(self, agg: ResultAggregator, workers: int) -> int:
        """How many pages may be in flight so the cap is not overshot by whole pages."""
        if agg.cap is None:
            return workers
        remaining = agg.cap - len(agg.records)
        if remaining <= 0:
            return 0
        if agg.succeeded:
            per_page = max(1.0, len(agg.records) / len(agg.succeeded))
        else:
            per_page = float(self.config.page_size)
        return max(1, min(workers, math.ceil(remaining / per_page)))

    def run(
        self,
        f: ListingFilter,
        page_budget: int = 1,
        deadline: Optional[float] = None,
        caller_id: Optional[str] = None,
    ) -> ScrapeRun:
        f.validate()
        page_budget = max(1, page_budget)
        collect_all = f.collect_all_pages
        deadline = self.config.deadline if deadline is None else deadline

        agg = ResultAggregator(
            f,
            page_budget,
            cap=f.max_results,
            page_size=self.config.page_size,
            report_partial=self.config.report_partial,
            search_url=build_search_url(f, 1, self._base_url(f.source)),
            caller_id=caller_id,
        )

        page_cap = self.config.max_pages if collect_all else page_budget
        workers = max(1, min(self._pool_size(f.source), page_cap))
        jobs: queue.Queue = queue.Queue(maxsize=workers)
        results: queue.Queue = queue.Queue()
        cancel = threading.Event()
        live: Set[Transport] = set()

        mode = f"collect all, cap {f.max_results}" if collect_all else f"{page_budget} pages"
        logging.info(f"🚀 Scraping {agg.search_url} with {workers} workers ({mode})")

        executor = cf.ThreadPoolExecutor(max_workers=workers, thread_name_prefix="krisha-worker")
        for n in range(workers):
            executor.submit(self._worker, n, jobs, results, cancel, live, f.source)

        deadline_at = time.monotonic() + deadline
        next_page = 1
        page_limit = 1 if collect_all else page_budget
        in_flight = 0
        live_workers = workers
        consecutive_errors = 0
        stop_scheduling = False
        ended = False
        termination: Optional[Termination] = None

        while termination is None:
            if not stop_scheduling:
                allowance = self._allowance(agg, live_workers)
                while next_page <= page_limit and in_flight < allowance:
                    jobs.put(PageJob(f, next_page))
                    in_flight += 1
                    next_page += 1

            if in_flight == 0:
                if agg.full:
                    termination = Termination.CAP_REACHED
                elif ended:
                    termination = Termination.END_OF_RESULTS
                else:
                    termination = Termination.EXHAUSTED
                break

            remaining = deadline_at - time.monotonic()
            if remaining <= 0:
                termination = Termination.DEADLINE
                break
            try:
                msg = results.get(timeout=remaining)
            except queue.Empty:
                termination = Termination.DEADLINE
                break

            if isinstance(msg, _WorkerExit):
                live_workers -= 1
                if live_workers == 0:
                    logging.error("No workers left to process queued pages")
                    termination = Termination.WORKERS_UNAVAILABLE
                continue

            in_flight -= 1
            agg.add(msg)

            if msg.ok:
                consecutive_errors = 0
                if msg.page == 1 and collect_all:
                    page_limit = self._page_limit(agg)
                    logging.info(f"📊 Page 1 reports {agg.pagination.total_pages if agg.pagination else 1} pages, scheduling up to {page_limit}")
                if not msg.records and (msg.page == 1 or 1 in agg.succeeded):
                    logging.info(f"🏁 Page {msg.page} is empty, no more pages will be scheduled")
                    stop_scheduling = True
                    ended = True
            else:
                consecutive_errors += 1
                if consecutive_errors >= self.config.max_consecutive_errors and not agg.records:
                    logging.warning(f"🛑 {consecutive_errors} pages failed in a row, no more pages will be scheduled")
                    stop_scheduling = True

            if agg.full:
                termination = Termination.CAP_REACHED

        cancel.set()
        if in_flight > 0:
            logging.info(f"Abandoning {in_flight} in-flight pages ({termination.value})")
            self._abort_all(live)
            executor.shutdown(wait=False, cancel_futures=True)
        else:
            executor.shutdown(wait=True)

        run = agg.finalize(termination)
        if self.notifier is not None and run.status == RunStatus.COMPLETED and run.records:
            self.notifier.notify_async(f, run.records)
        return run


def scrape(
    f: ListingFilter,
    page_budget: int = 1,
    caller_id: Optional[str] = None,
    *,
    config: Optional[ScraperConfig] = None,
    notifier: Optional[WebhookNotifier] = None,
    transport_factory: Optional[TransportFactory] = None,
    deadline: Optional[float] = None,
) -> ScrapeRun:
    """Run one scrape for ``f``.

    Raises InvalidFilterError before any worker starts when the filter is
    unusable; every other problem is reported through the returned run.
    """
    config = config or ScraperConfig.from_env()
    if notifier is None and config.webhook_url:
        notifier = WebhookNotifier(config.webhook_url, timeout=config.webhook_timeout)
    scheduler = PageScheduler(config, transport_factory=transport_factory, notifier=notifier)
    return scheduler.run(f, page_budget, deadline=deadline, caller_id=caller_id)
