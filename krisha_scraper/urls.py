from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote, urlencode

from .config import DEFAULT_BASE_URL, DEFAULT_OLX_BASE_URL
from .models import ListingFilter, PropertyCategory, SellerType, Source

# =========================
# URL Builders
# =========================

def _slug(value: str) -> str:
    return quote(value.strip().lower().replace(" ", "-"))


def _search_params(f: ListingFilter) -> List[Tuple[str, Any]]:
    params: List[Tuple[str, Any]] = []

    def add(key: str, value: Optional[Any]) -> None:
        if value is None or value == "":
            return
        params.append((key, value))

    add("das[live.rooms]", f.rooms)
    add("das[price][from]", f.price_min)
    add("das[price][to]", f.price_max)
    add("das[live.square][from]", f.area_min)
    add("das[live.square][to]", f.area_max)
    add("das[kitchen.square][from]", f.kitchen_area_min)
    add("das[kitchen.square][to]", f.kitchen_area_max)
    add("das[flat.floor][from]", f.floor_min)
    add("das[flat.floor][to]", f.floor_max)
    add("das[house.floor_num][from]", f.total_floors_min)
    add("das[house.floor_num][to]", f.total_floors_max)
    add("das[house.year][from]", f.build_year_min)
    add("das[house.year][to]", f.build_year_max)
    add("das[house.type]", f.house_type)

    if f.seller_type == SellerType.OWNER:
        add("das[who]", 1)
    elif f.seller_type != SellerType.ANY:
        # the site only exposes an owner switch
        logging.debug(f"seller_type={f.seller_type.value} has no search parameter, ignoring")

    if f.has_photo:
        add("das[_sys.hasphoto]", 1)
    if f.new_building:
        add("das[novostroiki]", 1)
    if f.not_first_floor:
        add("das[floor_not_first]", 1)
    if f.not_last_floor:
        add("das[floor_not_last]", 1)
    add("das[map.complex]", f.residential_complex)
    return params


def build_search_url(f: ListingFilter, page: int = 1, base_url: Optional[str] = None) -> str:
    """https://krisha.kz/prodazha/kvartiry/almaty[-district]/?das[...]=...&page=N"""
    if f.source == Source.OLX:
        return build_olx_url(f, page, base_url or DEFAULT_OLX_BASE_URL)
    base_url = base_url or DEFAULT_BASE_URL
    location = _slug(f.city)
    if f.district:
        location = f"{location}-{_slug(f.district)}"
    url = f"{base_url.rstrip('/')}/prodazha/{f.category.path}/{location}/"

    params = _search_params(f)
    if page > 1:
        params.append(("page", page))
    if params:
        url = f"{url}?{urlencode(params)}"
    return url


# olx.kz uses its own slugs for some cities
_OLX_CITIES = {
    "almaty": "alma-ata",
    "astana": "astana",
    "nur-sultan": "astana",
    "shymkent": "shymkent",
}

_OLX_CATEGORIES = {
    PropertyCategory.APARTMENT: "prodazha-kvartiry",
    PropertyCategory.HOUSE: "prodazha-domov",
    PropertyCategory.COMMERCIAL: "prodazha-kommercheskoy-nedvizhimosti",
}


def build_olx_url(f: ListingFilter, page: int = 1, base_url: str = DEFAULT_OLX_BASE_URL) -> str:
    """https://www.olx.kz/nedvizhimost/prodazha-kvartiry/alma-ata/?search[...]=...&page=N

    olx.kz only filters on price, rooms and total area; the rest of the
    filter is dropped from the query.
    """
    city = _slug(f.city)
    city = _OLX_CITIES.get(city, city)
    url = f"{base_url.rstrip('/')}/nedvizhimost/{_OLX_CATEGORIES[f.category]}/{city}/"

    params: List[Tuple[str, Any]] = []
    for key, value in (
        ("search[filter_float_price:from]", f.price_min),
        ("search[filter_float_price:to]", f.price_max),
        ("search[filter_enum_kolichestvokomnat][0]", f.rooms),
        ("search[filter_float_total_area:from]", f.area_min),
        ("search[filter_float_total_area:to]", f.area_max),
    ):
        if value is not None:
            params.append((key, value))
    if f.district:
        logging.debug(f"olx.kz has no district path, ignoring district={f.district}")
    if page > 1:
        params.append(("page", page))
    if params:
        url = f"{url}?{urlencode(params)}"
    return url


def filters_used(f: ListingFilter) -> Dict[str, Any]:
    """Snake-case map of the filter fields that were actually applied."""
    used: Dict[str, Any] = {
        "source": f.source.value if f.source != Source.KRISHA else None,
        "city": f.city,
        "district": f.district,
        "property_type": f.category.value,
        "rooms": f.rooms,
        "price_min": f.price_min,
        "price_max": f.price_max,
        "total_area_from": f.area_min,
        "total_area_to": f.area_max,
        "kitchen_area_from": f.kitchen_area_min,
        "kitchen_area_to": f.kitchen_area_max,
        "floor_from": f.floor_min,
        "floor_to": f.floor_max,
        "total_floors_from": f.total_floors_min,
        "total_floors_to": f.total_floors_max,
        "build_year_from": f.build_year_min,
        "build_year_to": f.build_year_max,
        "house_type": f.house_type,
        "has_photo": f.has_photo,
        "is_new_building": f.new_building,
        "not_first_floor": f.not_first_floor,
        "not_last_floor": f.not_last_floor,
        "seller_type": f.seller_type.value if f.seller_type != SellerType.ANY else None,
        "residential_complex": f.residential_complex,
        "collect_all_pages": f.collect_all_pages,
        "max_results": f.max_results if f.collect_all_pages else None,
    }
    return {k: v for k, v in used.items() if v not in (None, "", False)}
