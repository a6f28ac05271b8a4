from __future__ import annotations

import logging
import threading
from typing import Optional

from bs4 import BeautifulSoup

from .config import DEFAULT_BACKOFF, DEFAULT_RETRIES
from .errors import FetchError, ScrapeCancelled, TransportError
from .transport import Transport


class PageFetcher:
    """Loads one search page through a transport, retrying transient failures.

    ``retries`` extra attempts are made after the first one, waiting
    ``backoff * attempt`` seconds in between (1s, 2s with the defaults).
    The wait is done on the run's cancel event so a stopped run does not sit
    out its backoff.
    """

    def __init__(
        self,
        transport: Transport,
        retries: int = DEFAULT_RETRIES,
        backoff: float = DEFAULT_BACKOFF,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        self.transport = transport
        self.retries = retries
        self.backoff = backoff
        self.cancel = cancel or threading.Event()

    def fetch(self, url: str, page: int = 1) -> BeautifulSoup:
        last_exc: Optional[BaseException] = None
        attempts = self.retries + 1

        for attempt in range(attempts):
            if self.cancel.is_set():
                raise ScrapeCancelled(f"page {page} cancelled")
            try:
                html = self.transport.get(url)
                return BeautifulSoup(html, "html.parser")
            except TransportError as e:
                last_exc = e
                if self.cancel.is_set():
                    raise ScrapeCancelled(f"page {page} cancelled") from e
                if attempt == attempts - 1:
                    break
                delay = self.backoff * (attempt + 1)
                logging.warning(f"Page {page}: {e} - retry {attempt + 1}/{self.retries} in {delay:.1f}s")
                if self.cancel.wait(delay):
                    raise ScrapeCancelled(f"page {page} cancelled") from e

        logging.error(f"Page {page}: giving up after {attempts} attempts")
        raise FetchError(page, last_exc)
