from __future__ import annotations

import logging
import re
from typing import Optional
from urllib.parse import urljoin

# =========================
# Logging
# =========================

def setup_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(message)s",
        datefmt="%H:%M:%S",
    )

# =========================
# Parsing helpers
# =========================

def as_int(val, default: int) -> int:
    try:
        return int(val)
    except (TypeError, ValueError):
        return default

def as_float(val, default: float) -> float:
    try:
        return float(val)
    except (TypeError, ValueError):
        return default

def as_bool(val, default: bool = False) -> bool:
    if val is None:
        return default
    return str(val).strip().lower() in ("1", "true", "yes", "on")

def clean_text(s: Optional[str]) -> str:
    if not s:
        return ""
    return re.sub(r"\s+", " ", s.replace("\xa0", " ")).strip()

def extract_int(text: str) -> Optional[int]:
    if not text:
        return None
    m = re.search(r"(\d+)", text)
    return int(m.group(1)) if m else None

def extract_float(text: str) -> Optional[float]:
    """First decimal number in text; accepts both '45.5' and '45,5'."""
    if not text:
        return None
    m = re.search(r"(\d+(?:[.,]\d+)?)", text)
    if not m:
        return None
    return float(m.group(1).replace(",", "."))

def ensure_absolute(base: str, href: str) -> str:
    if href.startswith(("http://", "https://")):
        return href
    if href.startswith("//"):
        return "https:" + href
    return urljoin(base, href)

def choose(*vals):
    for v in vals:
        if v:
            return v
    return None
