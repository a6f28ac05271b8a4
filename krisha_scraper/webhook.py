from __future__ import annotations

import json
import logging
import threading
from typing import Any, Dict, Optional, Sequence

import requests

from .config import DEFAULT_TIMEOUT
from .models import ListingFilter, ListingRecord
from .urls import filters_used


def build_payload(f: ListingFilter, records: Sequence[ListingRecord]) -> Dict[str, Any]:
    return {
        "filters_used": filters_used(f),
        "properties": [r.to_dict() for r in records],
        "total_found": len(records),
    }


class WebhookNotifier:
    """At-most-once POST of a finished result set. Never raises."""

    def __init__(
        self,
        url: Optional[str],
        session: Optional[requests.Session] = None,
        timeout: int = DEFAULT_TIMEOUT,
    ) -> None:
        self.url = url
        self.session = session or requests.Session()
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    def notify(self, f: ListingFilter, records: Sequence[ListingRecord]) -> bool:
        if not self.enabled or not records:
            return False

        logging.info(f"📡 Sending {len(records)} listings to webhook")
        try:
            body = json.dumps(build_payload(f, records), ensure_ascii=False).encode("utf-8")
            r = self.session.post(
                self.url,
                data=body,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except Exception as e:
            logging.error(f"❌ Webhook delivery failed: {e}")
            return False

        if 200 <= r.status_code < 300:
            logging.info(f"✅ Webhook accepted ({r.status_code})")
            logging.info(f"📄 Webhook response: {r.text}")
            return True
        logging.error(f"❌ Webhook returned {r.status_code}: {r.text}")
        return False

    def notify_async(self, f: ListingFilter, records: Sequence[ListingRecord]) -> Optional[threading.Thread]:
        if not self.enabled or not records:
            return None
        t = threading.Thread(target=self.notify, args=(f, list(records)), name="webhook", daemon=True)
        t.start()
        return t
