"""Page transports.

A transport does exactly one attempt at loading a URL and hands back HTML text.
Retries, backoff and parsing live in PageFetcher so every transport gets them
for free. Each worker owns one transport for its whole lifetime.
"""

from __future__ import annotations

import logging
import socket
import threading
from typing import Any, Callable, List, Optional, Set

import requests
from requests.adapters import HTTPAdapter
from urllib3.connectionpool import HTTPConnectionPool, HTTPSConnectionPool

from .config import DEFAULT_TIMEOUT, ScraperConfig
from .errors import TransportError

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

DEFAULT_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "ru-RU,ru;q=0.9,kk;q=0.8,en;q=0.7",
    "Accept-Encoding": "gzip, deflate",
    "Upgrade-Insecure-Requests": "1",
    "Cache-Control": "max-age=0",
    "Connection": "keep-alive",
}


class Transport:
    """Interface shared by the HTTP and browser transports."""

    def get(self, url: str) -> str:
        raise NotImplementedError

    def abort(self) -> None:
        """Tear down from another thread so an in-flight get() returns early."""
        self.close()

    def close(self) -> None:
        pass

    def __enter__(self) -> "Transport":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


TransportFactory = Callable[[ScraperConfig], Transport]


# =========================
# HTTP
# =========================

class _TrackingPoolMixin:
    """Reports every connection a request is sent on to the owning adapter."""

    tracker: "AbortableAdapter"

    def _make_request(self, conn, *args, **kwargs):
        self.tracker.track(conn)
        return super()._make_request(conn, *args, **kwargs)


class AbortableAdapter(HTTPAdapter):
    """HTTPAdapter that can shut down the sockets of requests still in flight.

    Closing a Session only drops idle pooled connections; a thread blocked
    reading a response keeps waiting until the server answers or the timeout
    fires. drop_connections() shuts the socket down under it instead, so the
    blocked read fails at once.
    """

    def __init__(self, *args, **kwargs) -> None:
        self._active: Set[Any] = set()
        self._active_lock = threading.Lock()
        self._pool_classes = {
            "http": type("TrackedHTTPConnectionPool", (_TrackingPoolMixin, HTTPConnectionPool), {"tracker": self}),
            "https": type("TrackedHTTPSConnectionPool", (_TrackingPoolMixin, HTTPSConnectionPool), {"tracker": self}),
        }
        super().__init__(*args, **kwargs)

    def init_poolmanager(self, *args, **kwargs) -> None:
        super().init_poolmanager(*args, **kwargs)
        self.poolmanager.pool_classes_by_scheme = self._pool_classes

    def proxy_manager_for(self, proxy, **proxy_kwargs):
        manager = super().proxy_manager_for(proxy, **proxy_kwargs)
        # SOCKS managers bring their own pool classes
        if not proxy.lower().startswith("socks"):
            manager.pool_classes_by_scheme = self._pool_classes
        return manager

    def track(self, conn) -> None:
        with self._active_lock:
            self._active.add(conn)

    def release(self) -> None:
        with self._active_lock:
            self._active.clear()

    def drop_connections(self) -> int:
        with self._active_lock:
            conns = list(self._active)
        dropped = 0
        for conn in conns:
            sock = getattr(conn, "sock", None)
            if sock is None:
                continue
            try:
                sock.shutdown(socket.SHUT_RDWR)
                dropped += 1
            except OSError as e:
                logging.debug(f"Socket already closed: {e}")
        return dropped


def setup_session() -> requests.Session:
    s = requests.Session()
    s.headers.update(DEFAULT_HEADERS)
    adapter = AbortableAdapter(pool_connections=4, pool_maxsize=4)
    s.mount("https://", adapter)
    s.mount("http://", adapter)
    return s


class HttpTransport(Transport):
    """Plain requests-based fetch for server-rendered search pages."""

    def __init__(self, timeout: int = DEFAULT_TIMEOUT, session: Optional[requests.Session] = None) -> None:
        self.timeout = timeout
        self.session = session or setup_session()
        self._adapters: List[AbortableAdapter] = []
        for adapter in getattr(self.session, "adapters", {}).values():
            if isinstance(adapter, AbortableAdapter) and adapter not in self._adapters:
                self._adapters.append(adapter)
        self._closed = threading.Event()
        self._lock = threading.Lock()
        self._released = False

    def get(self, url: str) -> str:
        if self._closed.is_set():
            raise TransportError(f"transport closed before GET {url}")
        try:
            r = self.session.get(url, timeout=self.timeout, allow_redirects=True)
        except requests.RequestException as e:
            if self._closed.is_set():
                raise TransportError(f"aborted while loading {url}") from e
            raise TransportError(f"network error on {url}: {e}") from e
        finally:
            for adapter in self._adapters:
                adapter.release()
        # a body cut short by abort() can still look complete
        if self._closed.is_set():
            raise TransportError(f"aborted while loading {url}")
        if r.status_code != 200:
            raise TransportError(f"HTTP {r.status_code} for {url}", status=r.status_code)
        if not r.content:
            raise TransportError(f"empty body for {url}", status=r.status_code)
        return r.text

    def abort(self) -> None:
        self._closed.set()
        dropped = sum(adapter.drop_connections() for adapter in self._adapters)
        if dropped:
            logging.debug(f"Dropped {dropped} in-flight HTTP connections")
        self.close()

    def close(self) -> None:
        self._closed.set()
        with self._lock:
            if self._released:
                return
            self._released = True
        self.session.close()
        logging.debug("HTTP session closed")


def http_transport_factory(config: ScraperConfig) -> Transport:
    return HttpTransport(timeout=config.timeout)
