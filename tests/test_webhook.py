import json
from unittest import mock

import requests

from krisha_scraper.models import ListingFilter, ListingRecord
from krisha_scraper.webhook import WebhookNotifier, build_payload

FILTER = ListingFilter(city="almaty", rooms=2, price_max=40000000)
RECORDS = [ListingRecord(id="1", title="2-комн", price=25000000)]


def _session(status=200, text="ok"):
    session = mock.Mock(spec=requests.Session)
    session.post.return_value = mock.Mock(status_code=status, text=text)
    return session


def test_payload_shape():
    payload = build_payload(FILTER, RECORDS)
    assert set(payload) == {"filters_used", "properties", "total_found"}
    assert payload["filters_used"]["price_max"] == 40000000
    assert payload["properties"][0]["title"] == "2-комн"
    assert payload["total_found"] == 1


def test_single_json_post():
    session = _session()
    assert WebhookNotifier("https://hooks.example/krisha", session=session).notify(FILTER, RECORDS)
    assert session.post.call_count == 1
    args, kwargs = session.post.call_args
    assert args[0] == "https://hooks.example/krisha"
    assert kwargs["headers"] == {"Content-Type": "application/json"}
    body = json.loads(kwargs["data"].decode("utf-8"))
    assert body["properties"][0]["id"] == "1"


def test_network_error_is_swallowed():
    session = _session()
    session.post.side_effect = requests.ConnectionError("refused")
    assert WebhookNotifier("https://hooks.example/krisha", session=session).notify(FILTER, RECORDS) is False
    assert session.post.call_count == 1


def test_non_2xx_is_not_retried():
    session = _session(status=500, text="internal error")
    assert WebhookNotifier("https://hooks.example/krisha", session=session).notify(FILTER, RECORDS) is False
    assert session.post.call_count == 1


def test_disabled_or_empty_does_nothing():
    session = _session()
    assert WebhookNotifier(None, session=session).notify(FILTER, RECORDS) is False
    assert WebhookNotifier("https://hooks.example/krisha", session=session).notify(FILTER, []) is False
    session.post.assert_not_called()


def test_notify_async_runs_in_background():
    session = _session()
    t = WebhookNotifier("https://hooks.example/krisha", session=session).notify_async(FILTER, RECORDS)
    t.join(timeout=5)
    assert not t.is_alive()
    assert session.post.call_count == 1


def test_unexpected_error_is_swallowed(caplog):
    session = _session()
    session.post.side_effect = RuntimeError("connection pool is closed")
    with caplog.at_level("ERROR"):
        assert WebhookNotifier("https://hooks.example/krisha", session=session).notify(FILTER, RECORDS) is False
    assert "Webhook delivery failed" in caplog.text
