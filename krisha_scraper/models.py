from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .config import DEFAULT_MAX_RESULTS
from .errors import InvalidFilterError
from .utils import as_bool

# =========================
# Enums
# =========================

class PropertyCategory(str, Enum):
    APARTMENT = "apartment"
    HOUSE = "house"
    COMMERCIAL = "commercial"

    @property
    def path(self) -> str:
        return {
            PropertyCategory.APARTMENT: "kvartiry",
            PropertyCategory.HOUSE: "doma-dachi",
            PropertyCategory.COMMERCIAL: "kommercheskaya-nedvizhimost",
        }[self]


class Source(str, Enum):
    KRISHA = "krisha"
    OLX = "olx"


class SellerType(str, Enum):
    ANY = "any"
    OWNER = "owner"
    AGENT = "agent"
    DEVELOPER = "developer"


class RunStatus(str, Enum):
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class Termination(str, Enum):
    CAP_REACHED = "cap_reached"
    DEADLINE = "deadline"
    EXHAUSTED = "exhausted"
    END_OF_RESULTS = "end_of_results"
    WORKERS_UNAVAILABLE = "workers_unavailable"

# =========================
# Filter
# =========================

# camelCase names used by the HTTP API -> field names
_FILTER_ALIASES = {
    "propertyType": "category",
    "priceFrom": "price_min",
    "priceTo": "price_max",
    "price_from": "price_min",
    "price_to": "price_max",
    "totalAreaFrom": "area_min",
    "totalAreaTo": "area_max",
    "areaFrom": "area_min",
    "areaTo": "area_max",
    "total_area_from": "area_min",
    "total_area_to": "area_max",
    "kitchenAreaFrom": "kitchen_area_min",
    "kitchenAreaTo": "kitchen_area_max",
    "kitchen_area_from": "kitchen_area_min",
    "kitchen_area_to": "kitchen_area_max",
    "floorFrom": "floor_min",
    "floorTo": "floor_max",
    "floor_from": "floor_min",
    "floor_to": "floor_max",
    "totalFloorsFrom": "total_floors_min",
    "totalFloorsTo": "total_floors_max",
    "total_floors_from": "total_floors_min",
    "total_floors_to": "total_floors_max",
    "buildYearFrom": "build_year_min",
    "buildYearTo": "build_year_max",
    "build_year_from": "build_year_min",
    "build_year_to": "build_year_max",
    "houseType": "house_type",
    "hasPhoto": "has_photo",
    "isNewBuilding": "new_building",
    "newBuilding": "new_building",
    "notFirstFloor": "not_first_floor",
    "notLastFloor": "not_last_floor",
    "sellerType": "seller_type",
    "residentialComplex": "residential_complex",
    "collectAllPages": "collect_all_pages",
    "maxResults": "max_results",
}

_INT_FIELDS = (
    "rooms",
    "price_min",
    "price_max",
    "area_min",
    "area_max",
    "kitchen_area_min",
    "kitchen_area_max",
    "floor_min",
    "floor_max",
    "total_floors_min",
    "total_floors_max",
    "build_year_min",
    "build_year_max",
    "max_results",
)

_BOOL_FIELDS = ("has_photo", "new_building", "not_first_floor", "not_last_floor", "collect_all_pages")


def _to_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise InvalidFilterError(f"{name} must be a number, got {value!r}")
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        raise InvalidFilterError(f"{name} must be a number, got {value!r}")


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return as_bool(value)
    return bool(value)


@dataclass(frozen=True)
class ListingFilter:
    """Immutable search specification for one run.

    Ranges are passed through as given; min <= max is the caller's job.
    """
    city: str
    source: Source = Source.KRISHA
    category: PropertyCategory = PropertyCategory.APARTMENT
    district: Optional[str] = None
    rooms: Optional[int] = None
    price_min: Optional[int] = None
    price_max: Optional[int] = None
    area_min: Optional[int] = None
    area_max: Optional[int] = None
    kitchen_area_min: Optional[int] = None
    kitchen_area_max: Optional[int] = None
    floor_min: Optional[int] = None
    floor_max: Optional[int] = None
    total_floors_min: Optional[int] = None
    total_floors_max: Optional[int] = None
    build_year_min: Optional[int] = None
    build_year_max: Optional[int] = None
    house_type: Optional[str] = None
    has_photo: bool = False
    new_building: bool = False
    not_first_floor: bool = False
    not_last_floor: bool = False
    seller_type: SellerType = SellerType.ANY
    residential_complex: Optional[str] = None
    collect_all_pages: bool = False
    max_results: int = DEFAULT_MAX_RESULTS

    def validate(self) -> "ListingFilter":
        if not (self.city or "").strip():
            raise InvalidFilterError("city is required")
        if isinstance(self.max_results, bool) or not isinstance(self.max_results, int):
            raise InvalidFilterError(f"max_results must be an integer, got {self.max_results!r}")
        if self.max_results < 1:
            raise InvalidFilterError(f"max_results must be positive, got {self.max_results}")
        return self

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ListingFilter":
        known = set(cls.__dataclass_fields__)
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            name = _FILTER_ALIASES.get(key, key)
            if name not in known or value is None or value == "":
                continue
            kwargs[name] = value
        for name in _INT_FIELDS:
            if name in kwargs:
                kwargs[name] = _to_int(name, kwargs[name])
        for name in _BOOL_FIELDS:
            if name in kwargs:
                kwargs[name] = _to_bool(kwargs[name])
        if "source" in kwargs:
            source = kwargs["source"]
            try:
                kwargs["source"] = source if isinstance(source, Source) else Source(str(source).lower())
            except ValueError:
                raise InvalidFilterError(f"unknown source: {source!r}")
        if "category" in kwargs:
            try:
                kwargs["category"] = PropertyCategory(kwargs["category"])
            except ValueError:
                raise InvalidFilterError(f"unknown property category: {kwargs['category']!r}")
        if "seller_type" in kwargs:
            try:
                kwargs["seller_type"] = SellerType(kwargs["seller_type"])
            except ValueError:
                raise InvalidFilterError(f"unknown seller type: {kwargs['seller_type']!r}")
        try:
            return cls(**kwargs)
        except TypeError as e:
            # city missing entirely
            raise InvalidFilterError(str(e))

# =========================
# Records
# =========================

@dataclass
class ListingRecord:
    id: str
    title: str
    price: int = 0
    currency: str = "KZT"
    address: str = ""
    rooms: Optional[int] = None
    area: Optional[float] = None
    floor: Optional[int] = None
    total_floors: Optional[int] = None
    build_year: Optional[int] = None
    images: List[str] = field(default_factory=list)
    description: str = ""
    url: str = ""
    phone: str = ""
    is_new_building: bool = False
    building_type: str = ""
    seller_type: str = ""
    kitchen_area: Optional[float] = None
    residential_complex: str = ""

    def is_valid(self) -> bool:
        return bool(self.title) and self.price > 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

# =========================
# Pipeline messages
# =========================

@dataclass(frozen=True)
class PageJob:
    filter: ListingFilter
    page: int


@dataclass
class PaginationInfo:
    total_pages: int = 1
    has_next: bool = False


@dataclass
class PageResult:
    page: int
    records: List[ListingRecord] = field(default_factory=list)
    error: Optional[str] = None
    pagination: Optional[PaginationInfo] = None
    total_count: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.error is None

# =========================
# Run result
# =========================

def utcnow_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


@dataclass(frozen=True)
class ScrapeRun:
    filter: ListingFilter
    page_budget: int
    collect_all_pages: bool
    records: Tuple[ListingRecord, ...]
    total_found: int
    status: RunStatus
    termination: Termination
    total_pages: int = 1
    has_next_page: bool = False
    error: Optional[str] = None
    pages_succeeded: Tuple[int, ...] = ()
    pages_failed: Tuple[int, ...] = ()
    search_url: str = ""
    caller_id: Optional[str] = None
    started_at: str = ""
    finished_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "termination": self.termination.value,
            "error": self.error,
            "search_url": self.search_url,
            "caller_id": self.caller_id,
            "page_budget": self.page_budget,
            "collect_all_pages": self.collect_all_pages,
            "total_found": self.total_found,
            "total_pages": self.total_pages,
            "has_next_page": self.has_next_page,
            "pages_succeeded": list(self.pages_succeeded),
            "pages_failed": list(self.pages_failed),
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "properties": [r.to_dict() for r in self.records],
        }
