import threading
import time
from unittest import mock

import pytest
import requests
from selenium.common.exceptions import WebDriverException

from krisha_scraper.browser import BrowserTransport
from krisha_scraper.errors import TransportError
from conftest import server_url
from krisha_scraper.transport import AbortableAdapter, HttpTransport, setup_session


def _session(status=200, content=b"<html></html>", exc=None):
    session = mock.Mock(spec=requests.Session)
    if exc is not None:
        session.get.side_effect = exc
    else:
        session.get.return_value = mock.Mock(status_code=status, content=content, text=content.decode())
    return session


def test_http_returns_text():
    t = HttpTransport(timeout=5, session=_session())
    assert t.get("https://krisha.kz/") == "<html></html>"
    _, kwargs = t.session.get.call_args
    assert kwargs["timeout"] == 5


@pytest.mark.parametrize("session", [
    _session(status=503),
    _session(content=b""),
    _session(exc=requests.ConnectionError("reset")),
])
def test_http_failures_raise_transport_error(session):
    with pytest.raises(TransportError):
        HttpTransport(session=session).get("https://krisha.kz/")


def test_http_close_is_final():
    session = _session()
    t = HttpTransport(session=session)
    t.abort()
    t.close()
    session.close.assert_called_once()
    with pytest.raises(TransportError):
        t.get("https://krisha.kz/")


def test_session_uses_abortable_adapter():
    session = setup_session()
    assert isinstance(session.get_adapter("https://krisha.kz/"), AbortableAdapter)
    assert HttpTransport(session=session)._adapters == [session.get_adapter("https://krisha.kz/")]


def test_http_abort_interrupts_blocked_get(slow_server):
    """abort() from another thread ends a GET that is still waiting on the server."""
    t = HttpTransport(timeout=30)
    errors = []

    def fetch():
        try:
            t.get(server_url(slow_server) + "/prodazha/kvartiry/almaty/")
        except TransportError as e:
            errors.append(e)

    worker = threading.Thread(target=fetch)
    worker.start()
    deadline = time.monotonic() + 5
    while not slow_server.hits and time.monotonic() < deadline:
        time.sleep(0.05)
    assert slow_server.hits

    started = time.monotonic()
    t.abort()
    worker.join(timeout=5)
    assert not worker.is_alive()
    assert time.monotonic() - started < 2.0
    assert len(errors) == 1
    assert "aborted" in str(errors[0])


class FakeDriver:
    def __init__(self, fail=False):
        self.fail = fail
        self.page_source = '<div class="a-card"></div>'
        self.visited = []
        self.quit_calls = 0

    def set_page_load_timeout(self, seconds):
        self.page_load_timeout = seconds

    def implicitly_wait(self, seconds):
        self.implicit_wait = seconds

    def get(self, url):
        if self.fail:
            raise WebDriverException("net::ERR_CONNECTION_RESET")
        self.visited.append(url)

    def find_element(self, by, value):
        return object()

    def quit(self):
        self.quit_calls += 1


def test_browser_timeouts_and_page_source():
    driver = FakeDriver()
    t = BrowserTransport(page_load_timeout=30, element_wait=2, driver_factory=lambda: driver)
    assert driver.page_load_timeout == 30
    assert driver.implicit_wait == 2
    assert t.get("https://krisha.kz/prodazha/kvartiry/almaty/") == driver.page_source
    assert driver.visited == ["https://krisha.kz/prodazha/kvartiry/almaty/"]


def test_browser_errors_become_transport_errors():
    t = BrowserTransport(driver_factory=lambda: FakeDriver(fail=True))
    with pytest.raises(TransportError):
        t.get("https://krisha.kz/")


def test_browser_quits_once():
    driver = FakeDriver()
    with BrowserTransport(driver_factory=lambda: driver) as t:
        t.abort()
    assert driver.quit_calls == 1
    with pytest.raises(TransportError):
        t.get("https://krisha.kz/")


def test_browser_start_failure():
    def broken():
        raise WebDriverException("chromedriver not found")

    with pytest.raises(TransportError):
        BrowserTransport(driver_factory=broken)
