"""Shared fixtures: in-memory krisha.kz pages and a fake transport serving them."""

import re
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Dict, Iterable, List, Optional

import pytest
from bs4 import BeautifulSoup

from krisha_scraper.config import ScraperConfig
from krisha_scraper.errors import TransportError
from krisha_scraper.transport import Transport

_PAGE_RE = re.compile(r"[?&]page=(\d+)")


def card_html(
    listing_id,
    title: str = "2-комнатная квартира · 54 м² · 5/9 этаж",
    price: str = "25 000 000 ₸",
    address: str = "Алматы, Бостандыкский р-н, Розыбакиева 247",
    description: str = "монолитный дом, 2015 г.п., кухня 12 м², ЖК «Дарын»",
    uuid: Optional[str] = "ab12cd34-0000-1111-2222-333344445555",
    photo_id: str = "2",
    css: str = "a-card a-storage-live",
    inner: str = "",
) -> str:
    uuid_attr = f' data-uuid="{uuid}"' if uuid else ""
    return f"""
    <div class="{css}" data-id="{listing_id}"{uuid_attr}>
      <div class="a-card__inc">
        <a class="a-card__image" href="/a/show/{listing_id}"><picture data-photo-id="{photo_id}"></picture></a>
        <div class="a-card__header-left"><a class="a-card__title" href="/a/show/{listing_id}">{title}</a></div>
        <div class="a-card__price">{price}</div>
        <div class="a-card__subtitle">{address}</div>
        <div class="a-card__text-preview">{description}</div>
        {inner}
      </div>
    </div>
    """


def paginator_html(total_pages: int, next_button: bool = True) -> str:
    links = "".join(
        f'<a class="paginator__btn" data-page="{i}" href="/prodazha/kvartiry/almaty/?page={i}">{i}</a>'
        for i in range(1, total_pages + 1)
    )
    nxt = '<a class="paginator__btn paginator__btn--next" href="?page=2">Дальше</a>' if next_button else ""
    return f'<nav class="paginator">{links}{nxt}</nav>'


def page_html(cards: Iterable[str] = (), total_pages: int = 0, found: Optional[int] = None) -> str:
    subtitle = f'<div class="a-search-subtitle">Найдено {found} объявлений</div>' if found else ""
    pager = paginator_html(total_pages) if total_pages > 1 else ""
    return f"""
    <html><body>
      {subtitle}
      <section class="a-list a-search-list">{''.join(cards)}</section>
      {pager}
    </body></html>
    """


def make_site_pages(counts: List[int], first_id: int = 1000, total_pages: Optional[int] = None) -> Dict[int, str]:
    """Pages 1..N with counts[i] well-formed cards each, globally unique ids."""
    pages = {}
    next_id = first_id
    total = total_pages if total_pages is not None else len(counts)
    for n, count in enumerate(counts, start=1):
        cards = []
        for _ in range(count):
            cards.append(card_html(next_id))
            next_id += 1
        pages[n] = page_html(cards, total_pages=total if n == 1 else 0)
    return pages


def olx_card_html(
    listing_id,
    title: str = "Продам 2-комнатную квартиру, 54 м², 5/9 этаж",
    price: str = "25 000 000 тг.",
    location: str = "Алматы, Бостандыкский район - Сегодня в 12:30",
    href: Optional[str] = None,
) -> str:
    href = href if href is not None else f"/d/obyavlenie/prodam-2-komn-kvartiru-ID{listing_id}.html"
    link = f'<a href="{href}"><h6>{title}</h6></a>' if href else f"<h6>{title}</h6>"
    return f"""
    <div data-cy="l-card" data-testid="l-card" id="{listing_id}">
      <div data-cy="ad-card-title">{link}</div>
      <img src="https://frankfurt.apollo.olxcdn.com/v1/files/{listing_id}/image;s=216x152">
      <p data-testid="ad-price">{price}</p>
      <p data-testid="location-date">{location}</p>
    </div>
    """


def olx_page_html(cards: Iterable[str] = (), total_pages: int = 0, found: Optional[int] = None) -> str:
    counter = f'<span data-testid="total-count">Мы нашли {found} объявлений</span>' if found else ""
    pager = ""
    if total_pages > 1:
        links = "".join(
            f'<li data-testid="pagination-list-item"><a data-testid="pagination-link-{i}" href="/nedvizhimost/prodazha-kvartiry/alma-ata/?page={i}">{i}</a></li>'
            for i in range(1, total_pages + 1)
        )
        pager = f'<div data-testid="pagination-wrapper"><ul data-testid="pagination-list">{links}</ul><a data-testid="pagination-forward" href="?page=2">next</a></div>'
    return f"""
    <html><body>
      {counter}
      <div data-testid="listing-grid">{''.join(cards)}</div>
      {pager}
    </body></html>
    """


def soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


class FakeSite:
    """Serves canned pages keyed by the page number in the URL."""

    def __init__(self, pages: Dict[int, str], failing: Iterable[int] = (), delay: float = 0.0):
        self.pages = pages
        self.failing = set(failing)
        self.delay = delay
        self.requested: List[int] = []
        self.transports: List["FakeTransport"] = []
        self.lock = threading.Lock()

    def factory(self, config: ScraperConfig) -> "FakeTransport":
        t = FakeTransport(self)
        with self.lock:
            self.transports.append(t)
        return t

    def requested_pages(self) -> set:
        with self.lock:
            return set(self.requested)

    def count(self, page: int) -> int:
        with self.lock:
            return self.requested.count(page)


class FakeTransport(Transport):
    def __init__(self, site: FakeSite):
        self.site = site
        self.closed = False
        self.aborted = threading.Event()

    def get(self, url: str) -> str:
        m = _PAGE_RE.search(url)
        page = int(m.group(1)) if m else 1
        with self.site.lock:
            self.site.requested.append(page)
        if self.site.delay and self.aborted.wait(self.site.delay):
            raise TransportError(f"aborted while loading {url}")
        if page in self.site.failing:
            raise TransportError(f"HTTP 503 for {url}", status=503)
        return self.site.pages.get(page, page_html())

    def abort(self) -> None:
        self.aborted.set()
        self.close()

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def config():
    return ScraperConfig(workers=4, retries=2, backoff=0.0, deadline=10.0)


class _SlowHandler(BaseHTTPRequestHandler):
    def do_GET(self):
        self.server.hits.append(self.path)
        self.server.release.wait(self.server.delay)
        body = page_html([card_html(1)]).encode("utf-8")
        try:
            self.send_response(200)
            self.send_header("Content-Type", "text/html; charset=utf-8")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)
        except OSError:
            pass

    def log_message(self, format, *args):
        pass


@pytest.fixture
def slow_server(monkeypatch):
    """Local HTTP server that holds every response for 6 seconds."""
    for var in ("HTTP_PROXY", "http_proxy", "HTTPS_PROXY", "https_proxy", "ALL_PROXY", "all_proxy"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("NO_PROXY", "127.0.0.1,localhost")
    server = ThreadingHTTPServer(("127.0.0.1", 0), _SlowHandler)
    server.daemon_threads = True
    server.delay = 6.0
    server.hits = []
    server.release = threading.Event()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.release.set()
    server.shutdown()
    server.server_close()


def server_url(server) -> str:
    host, port = server.server_address[:2]
    return f"http://{host}:{port}"
