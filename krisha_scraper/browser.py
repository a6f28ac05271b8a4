"""Renderer-backed transport (headless Chrome via selenium).

Used for search pages whose cards are filled in by JavaScript. The driver is
started once per worker and quit when the worker exits.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from selenium import webdriver
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.common.by import By
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait

from .config import ScraperConfig
from .errors import TransportError
from .transport import USER_AGENT, Transport

CARD_SELECTOR = ".a-card, .ddl_product, [data-cy='l-card']"


def chrome_options() -> Options:
    opts = Options()
    for arg in (
        "--headless=new",
        "--disable-gpu",
        "--window-size=1920,1080",
        "--disable-extensions",
        "--no-sandbox",
        "--disable-dev-shm-usage",
        "--lang=ru-RU",
    ):
        opts.add_argument(arg)
    opts.add_argument(f"user-agent={USER_AGENT}")
    return opts


def default_driver_factory():
    return webdriver.Chrome(options=chrome_options())


class BrowserTransport(Transport):
    def __init__(
        self,
        page_load_timeout: int = 30,
        element_wait: int = 2,
        driver_factory: Optional[Callable[[], object]] = None,
    ) -> None:
        self.element_wait = element_wait
        self._lock = threading.Lock()
        try:
            self.driver = (driver_factory or default_driver_factory)()
        except WebDriverException as e:
            raise TransportError(f"could not start browser: {e}") from e
        self.driver.set_page_load_timeout(page_load_timeout)
        self.driver.implicitly_wait(element_wait)

    def get(self, url: str) -> str:
        driver = self.driver
        if driver is None:
            raise TransportError(f"browser closed before GET {url}")
        try:
            driver.get(url)
            try:
                WebDriverWait(driver, self.element_wait).until(
                    EC.presence_of_element_located((By.CSS_SELECTOR, CARD_SELECTOR))
                )
            except TimeoutException:
                # empty result pages have no cards; let the extractor decide
                logging.debug(f"No cards rendered within {self.element_wait}s on {url}")
            html = driver.page_source
        except WebDriverException as e:
            raise TransportError(f"browser error on {url}: {e}") from e
        if not html:
            raise TransportError(f"empty page source for {url}")
        return html

    def close(self) -> None:
        with self._lock:
            driver, self.driver = self.driver, None
        if driver is None:
            return
        try:
            driver.quit()
        except WebDriverException as e:
            logging.warning(f"Browser quit failed: {e}")


def browser_transport_factory(config: ScraperConfig) -> Transport:
    return BrowserTransport(page_load_timeout=config.timeout, element_wait=config.element_wait)
