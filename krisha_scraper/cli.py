from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from typing import List, Optional

from .browser import browser_transport_factory
from .config import ScraperConfig, clamp_page_budget
from .errors import InvalidFilterError
from .models import ListingFilter, PropertyCategory, RunStatus, ScrapeRun, SellerType, Source
from .scheduler import scrape
from .utils import setup_logging
from .webhook import WebhookNotifier

# =========================
# Output helpers
# =========================

def to_json(run: ScrapeRun) -> str:
    return json.dumps(run.to_dict(), ensure_ascii=False, indent=2)

def to_ndjson(run: ScrapeRun) -> str:
    return "\n".join(json.dumps(r.to_dict(), ensure_ascii=False) for r in run.records)

# =========================
# CLI
# =========================

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Scrape krisha.kz or olx.kz search results into JSON.")
    p.add_argument("city", help="City slug, e.g. 'almaty' or 'astana'")
    p.add_argument("--source", choices=[s.value for s in Source], default=Source.KRISHA.value, help="Listing site (default krisha)")
    p.add_argument("--district", help="District slug appended to the city, e.g. 'bostandykskij'")
    p.add_argument("--category", choices=[c.value for c in PropertyCategory], default=PropertyCategory.APARTMENT.value)
    p.add_argument("--rooms", type=int)
    p.add_argument("--price-from", type=int, dest="price_min")
    p.add_argument("--price-to", type=int, dest="price_max")
    p.add_argument("--area-from", type=int, dest="area_min")
    p.add_argument("--area-to", type=int, dest="area_max")
    p.add_argument("--kitchen-from", type=int, dest="kitchen_area_min")
    p.add_argument("--kitchen-to", type=int, dest="kitchen_area_max")
    p.add_argument("--floor-from", type=int, dest="floor_min")
    p.add_argument("--floor-to", type=int, dest="floor_max")
    p.add_argument("--total-floors-from", type=int, dest="total_floors_min")
    p.add_argument("--total-floors-to", type=int, dest="total_floors_max")
    p.add_argument("--year-from", type=int, dest="build_year_min")
    p.add_argument("--year-to", type=int, dest="build_year_max")
    p.add_argument("--house-type", help="Site code for the building material")
    p.add_argument("--not-first-floor", action="store_true")
    p.add_argument("--not-last-floor", action="store_true")
    p.add_argument("--has-photo", action="store_true")
    p.add_argument("--new-building", action="store_true")
    p.add_argument("--seller", choices=[s.value for s in SellerType], default=SellerType.ANY.value)
    p.add_argument("--complex", dest="residential_complex", help="Residential complex (ЖК) id")
    p.add_argument("--pages", type=int, default=1, help="Page budget, clamped to 1-10 (default 1)")
    p.add_argument("--collect-all", action="store_true", help="Walk every result page up to --max-results")
    p.add_argument("--max-results", type=int, default=200, help="Cap on returned listings (default 200)")
    p.add_argument("--browser", action="store_true", help="Fetch pages with headless Chrome instead of plain HTTP")
    p.add_argument("--gentle", action="store_true", help="Use a third of the workers and a shorter deadline")
    p.add_argument("--webhook-url", help="POST the result set here when the run completes")
    p.add_argument("--verbosity", "-v", action="count", default=0, help="-v for INFO, -vv for DEBUG")
    p.add_argument("--format", choices=["json", "ndjson"], default="json", help="Output format (default json)")
    return p.parse_args(argv)

def build_filter(args: argparse.Namespace) -> ListingFilter:
    return ListingFilter(
        city=args.city,
        source=Source(args.source),
        category=PropertyCategory(args.category),
        district=args.district,
        rooms=args.rooms,
        price_min=args.price_min,
        price_max=args.price_max,
        area_min=args.area_min,
        area_max=args.area_max,
        kitchen_area_min=args.kitchen_area_min,
        kitchen_area_max=args.kitchen_area_max,
        floor_min=args.floor_min,
        floor_max=args.floor_max,
        total_floors_min=args.total_floors_min,
        total_floors_max=args.total_floors_max,
        build_year_min=args.build_year_min,
        build_year_max=args.build_year_max,
        house_type=args.house_type,
        has_photo=args.has_photo,
        new_building=args.new_building,
        not_first_floor=args.not_first_floor,
        not_last_floor=args.not_last_floor,
        seller_type=SellerType(args.seller),
        residential_complex=args.residential_complex,
        collect_all_pages=args.collect_all,
        max_results=args.max_results,
    )

def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(args.verbosity or 0)

    config = ScraperConfig.from_env()
    if args.gentle:
        config = config.gentle()
    if args.webhook_url:
        config.webhook_url = args.webhook_url

    notifier = None
    if config.webhook_url:
        notifier = WebhookNotifier(config.webhook_url, timeout=config.webhook_timeout)

    try:
        run = scrape(
            build_filter(args),
            clamp_page_budget(args.pages),
            # delivery happens below, once the output is written
            config=dataclasses.replace(config, webhook_url=None),
            transport_factory=browser_transport_factory if args.browser else None,
        )
    except InvalidFilterError as e:
        logging.error(f"Invalid filter: {e}")
        return 2

    output = to_json(run) if args.format == "json" else to_ndjson(run)
    sys.stdout.write(output + ("\n" if not output.endswith("\n") else ""))

    # the process exits right after, so deliver in the foreground
    if notifier is not None and run.status == RunStatus.COMPLETED:
        notifier.notify(run.filter, run.records)

    if run.status == RunStatus.FAILED:
        logging.error(f"Scrape failed: {run.error}")
        return 1
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
