"""Known-vendor matching that tolerates common OCR misreads."""

from __future__ import annotations

import re
from dataclasses import dataclass
from difflib import SequenceMatcher
from typing import Dict, Optional, Sequence, Tuple

VENDOR_ALIASES: Dict[str, Tuple[str, ...]] = {
    "Home Depot": (
        "HOME DEPOT",
        "HOMEDEPOT",
        "THE HOME DEPOT",
        "OME DEPOT",
        "HOME DEPO",
        "HOME DEP0T",
        "HOM DEPOT",
        "HONE DEPOT",
        "H0ME DEPOT",
    ),
    "Lowes": ("LOWES", "LOWE'S", "LOWE S", "L0WES"),
    "Walmart": ("WALMART", "WAL-MART", "WAL MART", "WALM4RT"),
    "Target": ("TARGET", "TARG3T"),
    "Costco": ("COSTCO", "COSTCO WHOLESALE", "C0STCO"),
    "CVS": ("CVS PHARMACY", "CVS"),
    "Walgreens": ("WALGREENS", "WALGREEN"),
}

VENDOR_SLOGANS: Dict[str, Tuple[str, ...]] = {
    "Home Depot": ("How doers get more done", "More saving. More doing"),
    "Walmart": ("Save money. Live better", "Always Low Prices", "Everyday Low Prices"),
    "Target": ("Expect More. Pay Less",),
}

FUZZY_THRESHOLD = 0.8
HEADER_LINES = 5

_ADDRESS_RE = re.compile(
    r"\d+\s+\w+\s+(st|ave|blvd|rd|street|avenue|boulevard|road)\b.*$", re.IGNORECASE
)
_PHONE_RE = re.compile(r"\(?\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{4}|\d{10,}")


@dataclass(frozen=True)
class VendorMatch:
    """Canonical vendor name plus how sure the match is."""

    name: str
    certainty: float
    method: str
    line_index: int = 0


def normalize_vendor_text(text: str) -> str:
    upper = text.upper()
    upper = re.sub(r"[^\w\s'-]", " ", upper)
    return re.sub(r"\s+", " ", upper).strip()


def similarity(a: str, b: str) -> float:
    """Ratio in [0, 1] between two normalized strings."""

    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    return SequenceMatcher(None, a, b).ratio()


def clean_merchant_name(text: str) -> str:
    """Drop phone numbers and street addresses from a header line."""

    cleaned = _PHONE_RE.sub("", text.splitlines()[0] if text else "")
    cleaned = _ADDRESS_RE.sub("", cleaned)
    return re.sub(r"\s+", " ", cleaned).strip(" -,.")


def _contains_alias(line: str, alias: str) -> bool:
    return re.search(rf"(?<![A-Z0-9]){re.escape(alias)}(?![A-Z0-9])", line) is not None


def match_known_vendor(lines: Sequence[str], *, header_lines: int = HEADER_LINES) -> Optional[VendorMatch]:
    """
    Look for a known vendor in the receipt header.

    Order: exact alias in one of the first lines, alias spanning two
    adjacent lines, slogan anywhere in the text, then fuzzy alias match
    per header line.
    """

    normalized = [normalize_vendor_text(line) for line in lines]
    header = normalized[:header_lines]

    for idx, line in enumerate(header):
        for vendor, aliases in VENDOR_ALIASES.items():
            if any(_contains_alias(line, alias) for alias in aliases):
                return VendorMatch(vendor, 0.95, "alias", idx)

    for idx in range(len(header) - 1):
        joined = f"{header[idx]} {header[idx + 1]}"
        for vendor, aliases in VENDOR_ALIASES.items():
            if any(_contains_alias(joined, alias) for alias in aliases):
                return VendorMatch(vendor, 0.9, "alias", idx)

    full_text = " ".join(normalized)
    for vendor, slogans in VENDOR_SLOGANS.items():
        for slogan in slogans:
            if normalize_vendor_text(slogan) in full_text:
                return VendorMatch(vendor, 0.85, "slogan", 0)

    best: Optional[VendorMatch] = None
    for idx, line in enumerate(header):
        for vendor, aliases in VENDOR_ALIASES.items():
            for alias in aliases:
                ratio = similarity(line, alias)
                if ratio >= FUZZY_THRESHOLD and (best is None or ratio * 0.9 > best.certainty):
                    best = VendorMatch(vendor, round(ratio * 0.9, 4), "fuzzy", idx)
    return best


def is_vendor_like(line: str) -> bool:
    """True for header lines that could plausibly be a business name."""

    stripped = line.strip()
    if len(stripped) < 2:
        return False
    if re.fullmatch(r"[\d$.,\s:#-]+", stripped):
        return False
    if re.search(r"\d{1,2}[/-]\d{1,2}", stripped):
        return False
    return any(ch.isalpha() for ch in stripped)
