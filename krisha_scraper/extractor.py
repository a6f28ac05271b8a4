from __future__ import annotations

import hashlib
import logging
import re
import threading
from typing import List, Optional, Tuple

from bs4 import BeautifulSoup, Tag

from .config import DEFAULT_BASE_URL, DEFAULT_MAX_CARDS, DEFAULT_MAX_IMAGES, DEFAULT_OLX_BASE_URL
from .errors import ExtractionError, ScrapeCancelled
from .models import ListingRecord
from .utils import choose, clean_text, ensure_absolute, extract_float, extract_int

INT64_MAX = 2 ** 63 - 1

PHOTO_HOST = "https://krisha-photos.kcdn.online"

# ---------- selector priority lists ----------

CARD_SELECTORS = [".a-card", ".ddl_product"]

CONTAINER_SELECTORS = [
    ".a-search-list",
    ".a-list",
    "section.a-list",
    "[data-name='search-list']",
    ".a-search-empty",
]

TITLE_SELECTORS = [
    ".a-card__title a",
    ".a-card__title",
    "[data-name='title'] a",
    "[data-name='title']",
    ".title a",
    ".title",
    "h3 a",
    "h3",
    "a[href*='/show/']",
]

PRICE_SELECTORS = [
    ".a-card__price",
    "[data-name='price']",
    ".price",
    ".cost",
    "span[class*='price']",
    "div[class*='price']",
    ".ddl_price",
]

ADDRESS_SELECTORS = [".a-card__subtitle", ".a-card__address", "[data-name='address']", ".address"]

DESCRIPTION_SELECTORS = [".a-card__text-preview", ".a-card__description", ".description"]

DETAIL_SELECTORS = [".a-card__text", ".a-card__params", ".a-card__text-preview"]

PHONE_SELECTORS = [".seller-phone", "a[href^='tel:']"]

LINK_SELECTORS = ["a.a-card__title", ".a-card__title a", "a[href*='/show/']", "a.a-card__image"]

AD_MARKERS = ["ddl_campaign"]
AD_CONTAINERS = ".adfox, [id^='adfox']"

# ---------- field regexes ----------

_AREA_FLOOR_RE = re.compile(r"(\d+(?:[.,]\d+)?)\s*м².*?(\d+)\s*/\s*(\d+)\s*этаж")
_ROOMS_RE = re.compile(r"(\d+)[\-\s]*комн")
_AREA_RE = re.compile(r"(\d+(?:[.,]\d+)?)\s*м²")
_FLOOR_RE = re.compile(r"(\d+)\s*/\s*(\d+)\s*эт")
_KITCHEN_RE = re.compile(r"кухня\s*[-:—]?\s*(\d+(?:[.,]\d+)?)", re.IGNORECASE)
_BUILD_YEAR_RE = re.compile(r"((?:19|20)\d{2})\s*г\.?\s*п\.?")
_COMPLEX_RE = re.compile(r"ЖК\s+[«\"]?([^»\",·|]+)[»\"]?")
_BUILDING_TYPE_RE = re.compile(
    r"\b(монолитный|кирпичный|панельный|каркасно-камышитовый|блочный|иное)\b", re.IGNORECASE
)
_SHOW_ID_RE = re.compile(r"/show/(\d+)")

_CURRENCIES = [
    ("$", "USD"),
    ("usd", "USD"),
    ("€", "EUR"),
    ("eur", "EUR"),
    ("₽", "RUB"),
    ("руб", "RUB"),
]


def parse_price(text: str) -> Tuple[int, str]:
    """'25 000 000 ₸' -> (25000000, 'KZT'). Unparseable or absurd values give 0."""
    currency = "KZT"
    if not text:
        return 0, currency
    low = text.lower()
    for marker, code in _CURRENCIES:
        if marker in low:
            currency = code
            break
    digits = re.sub(r"[^\d]", "", text)
    if not digits:
        return 0, currency
    value = int(digits)
    if value > INT64_MAX:
        return 0, currency
    return value, currency


def photo_url(uuid: str, photo_id: str = "1") -> str:
    return f"{PHOTO_HOST}/webp/{uuid[:2]}/{uuid}/{photo_id}-400x300.webp"


def _first_text(block: Tag, selectors: List[str]) -> str:
    for sel in selectors:
        el = block.select_one(sel)
        if el is None:
            continue
        tx = clean_text(el.get_text(" ", strip=True))
        if tx:
            return tx
    return ""


class CardExtractor:
    """Turns a search-results document into ListingRecords, in document order.

    Pure function of the document: calling extract() twice on the same soup
    gives the same records, ids included.
    """

    card_selectors = CARD_SELECTORS
    container_selectors = CONTAINER_SELECTORS
    title_selectors = TITLE_SELECTORS
    price_selectors = PRICE_SELECTORS
    address_selectors = ADDRESS_SELECTORS
    description_selectors = DESCRIPTION_SELECTORS
    detail_selectors = DETAIL_SELECTORS
    phone_selectors = PHONE_SELECTORS
    link_selectors = LINK_SELECTORS

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        max_cards: int = DEFAULT_MAX_CARDS,
        max_images: int = DEFAULT_MAX_IMAGES,
    ) -> None:
        self.base_url = base_url
        self.max_cards = max_cards
        self.max_images = max_images

    def find_cards(self, soup: BeautifulSoup) -> List[Tag]:
        for sel in self.card_selectors:
            found = soup.select(sel)
            if found:
                logging.debug(f"Found {len(found)} cards with '{sel}'")
                return found
        return []

    def has_container(self, soup: BeautifulSoup) -> bool:
        return any(soup.select_one(sel) is not None for sel in self.container_selectors)

    @staticmethod
    def is_ad(block: Tag) -> bool:
        classes = block.get("class") or []
        if any(marker in classes for marker in AD_MARKERS):
            return True
        return block.select_one(AD_CONTAINERS) is not None

    def extract(self, soup: BeautifulSoup, cancel: Optional[threading.Event] = None) -> List[ListingRecord]:
        blocks = self.find_cards(soup)
        if not blocks and not self.has_container(soup):
            raise ExtractionError("no listing container on page")

        blocks = [b for b in blocks if not self.is_ad(b)]
        records: List[ListingRecord] = []
        for index, block in enumerate(blocks):
            if cancel is not None and cancel.is_set():
                raise ScrapeCancelled("extraction cancelled")
            try:
                item = self._parse_card(block, index)
            except Exception as e:
                logging.debug(f"Card skipped: {e}")
                continue
            if item is None:
                continue
            records.append(item)
            if len(records) >= self.max_cards:
                break
        return records

    def _parse_card(self, block: Tag, index: int = 0) -> Optional[ListingRecord]:
        title = _first_text(block, self.title_selectors)
        if not title:
            return None

        price, currency = parse_price(_first_text(block, self.price_selectors))
        if price <= 0:
            return None

        url = ""
        for sel in self.link_selectors:
            link = block.select_one(sel)
            if link is not None and link.get("href"):
                url = ensure_absolute(self.base_url, link["href"])
                break

        details = _first_text(block, self.detail_selectors)
        text = clean_text(block.get_text(" ", strip=True))

        address = self._clean_address(_first_text(block, self.address_selectors))
        item = ListingRecord(
            id=self._listing_id(block, url, f"{title}|{price}|{address}|{index}"),
            title=title,
            price=price,
            currency=currency,
            address=address,
            description=_first_text(block, self.description_selectors),
            url=url,
            phone=_first_text(block, self.phone_selectors),
            images=self._images(block),
        )
        self._parse_title(title, item)
        self._parse_details(details, item)
        self._parse_extras(text, block, item)
        return item

    @staticmethod
    def _clean_address(address: str) -> str:
        return address

    # ---------- ids ----------

    def _listing_id(self, block: Tag, url: str, fingerprint: str) -> str:
        """Site id when the card carries one, else a hash of its content and position.

        The position keeps look-alike cards on one page apart while re-extracting
        the same document still gives the same ids.
        """
        if url:
            m = _SHOW_ID_RE.search(url)
            if m:
                return m.group(1)
        data_id = clean_text(block.get("data-id"))
        if data_id:
            return data_id
        if url:
            tail = url.split("?", 1)[0].rstrip("/").rsplit("/", 1)[-1]
            if tail:
                return tail
        digest = hashlib.sha1(fingerprint.encode("utf-8")).hexdigest()
        return f"h{digest[:12]}"

    # ---------- images ----------

    def _images(self, block: Tag) -> List[str]:
        images: List[str] = []
        for img in block.select("img"):
            src = choose(img.get("src"), img.get("data-src"))
            if not src and img.get("srcset"):
                src = img["srcset"].split(",")[0].strip().split(" ")[0]
            if not src or src.startswith("data:") or "placeholder" in src.lower():
                continue
            src = ensure_absolute(self.base_url, src)
            if src not in images:
                images.append(src)
            if len(images) >= self.max_images:
                return images
        if images:
            return images

        uuid = clean_text(block.get("data-uuid"))
        if len(uuid) < 2:
            return []
        photo_id = "1"
        picture = block.select_one("picture")
        if picture is not None and picture.get("data-photo-id"):
            photo_id = clean_text(picture["data-photo-id"])
        return [photo_url(uuid, photo_id)]

    # ---------- numeric fields ----------

    @staticmethod
    def _parse_title(title: str, item: ListingRecord) -> None:
        m = _AREA_FLOOR_RE.search(title)
        if m:
            item.area = extract_float(m.group(1))
            item.floor = int(m.group(2))
            item.total_floors = int(m.group(3))
        else:
            m = _AREA_RE.search(title)
            if m:
                item.area = extract_float(m.group(1))
        m = _ROOMS_RE.search(title)
        if m:
            item.rooms = int(m.group(1))

    @staticmethod
    def _parse_details(details: str, item: ListingRecord) -> None:
        if not details:
            return
        if item.rooms is None:
            m = _ROOMS_RE.search(details)
            if m:
                item.rooms = int(m.group(1))
        if item.area is None:
            m = _AREA_RE.search(details)
            if m:
                item.area = extract_float(m.group(1))
        if item.floor is None:
            m = _FLOOR_RE.search(details)
            if m:
                item.floor = int(m.group(1))
                item.total_floors = int(m.group(2))

    @staticmethod
    def _parse_extras(text: str, block: Tag, item: ListingRecord) -> None:
        m = _KITCHEN_RE.search(text)
        if m:
            item.kitchen_area = extract_float(m.group(1))

        m = _BUILD_YEAR_RE.search(text)
        if m:
            item.build_year = extract_int(m.group(1))

        m = _BUILDING_TYPE_RE.search(text)
        if m:
            item.building_type = m.group(1).lower()

        complex_el = block.select_one(".a-card__complex, [data-name='complex']")
        if complex_el is not None:
            item.residential_complex = clean_text(complex_el.get_text(" ", strip=True))
        else:
            m = _COMPLEX_RE.search(text)
            if m:
                item.residential_complex = clean_text(m.group(1))

        low = text.lower()
        if "новостро" in low or "от застройщика" in low:
            item.is_new_building = True

        if "застройщик" in low:
            item.seller_type = "developer"
        elif "хозяин" in low or "собственник" in low:
            item.seller_type = "owner"
        elif "агент" in low or "риелтор" in low or "риэлтор" in low:
            item.seller_type = "agent"


# =========================
# OLX
# =========================

OLX_CARD_SELECTORS = ["[data-cy='l-card']", "[data-testid='l-card']", ".offer-wrapper"]

OLX_CONTAINER_SELECTORS = [
    "[data-testid='listing-grid']",
    ".listing-grid-container",
    "[data-testid='total-count']",
    "[data-cy='ad-list-empty']",
]

OLX_TITLE_SELECTORS = ["[data-cy='ad-card-title'] h4", "[data-cy='ad-card-title'] h6", "h6", "h4", "h3", ".title"]

OLX_PRICE_SELECTORS = ["p[data-testid='ad-price']", "[data-testid='ad-price']", ".price"]

OLX_ADDRESS_SELECTORS = ["p[data-testid='location-date']", "[data-testid='location-date']", ".location"]

OLX_LINK_SELECTORS = ["[data-cy='ad-card-title'] a[href]", "a[href*='/d/']", "a[href]"]

_OLX_ID_RE = re.compile(r"-ID(\w+)\.html")


class OlxCardExtractor(CardExtractor):
    """Same pipeline over olx.kz result cards ([data-cy='l-card'])."""

    card_selectors = OLX_CARD_SELECTORS
    container_selectors = OLX_CONTAINER_SELECTORS
    title_selectors = OLX_TITLE_SELECTORS
    price_selectors = OLX_PRICE_SELECTORS
    address_selectors = OLX_ADDRESS_SELECTORS
    description_selectors: List[str] = []
    detail_selectors: List[str] = []
    phone_selectors: List[str] = []
    link_selectors = OLX_LINK_SELECTORS

    def __init__(
        self,
        base_url: str = DEFAULT_OLX_BASE_URL,
        max_cards: int = DEFAULT_MAX_CARDS,
        max_images: int = DEFAULT_MAX_IMAGES,
    ) -> None:
        super().__init__(base_url, max_cards, max_images)

    @staticmethod
    def _clean_address(address: str) -> str:
        # "Алматы, Бостандыкский район - Сегодня в 12:30"
        return address.split(" - ", 1)[0].strip()

    def _listing_id(self, block: Tag, url: str, fingerprint: str) -> str:
        if url:
            m = _OLX_ID_RE.search(url)
            if m:
                return f"olx_{m.group(1)}"
        card_id = clean_text(block.get("id"))
        if card_id:
            return f"olx_{card_id}"
        return super()._listing_id(block, url, fingerprint)
