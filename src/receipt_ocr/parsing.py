"""Text-level parsers for money amounts, receipt dates and item lines."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, List, Optional

AMOUNT_RE = re.compile(r"\$?\s?(\d{1,3}(?:,\d{3})+|\d+)\.(\d{2})(?![\d%])")

# Letters OCR commonly returns in place of digits, fixed only inside numeric runs.
_DIGIT_LOOKALIKES = str.maketrans({"O": "0", "o": "0", "l": "1", "I": "1", "|": "1"})
_NUMERIC_RUN_RE = re.compile(r"(?<![A-Za-z])[\dOolI|][\dOolI|,.]*(?![A-Za-z])")

# Digits a scanner tends to confuse with each other.
_DIGIT_CONFUSIONS = {
    "0": "86",
    "1": "7",
    "2": "7",
    "3": "85",
    "4": "91",
    "5": "683",
    "6": "805",
    "7": "12",
    "8": "063",
    "9": "48",
}

_MONTHS = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}
_MONTH_NAMES = (
    r"(January|February|March|April|May|June|July|August|September|October|November|December"
    r"|Jan|Feb|Mar|Apr|Jun|Jul|Aug|Sept|Sep|Oct|Nov|Dec)\.?"
)

# (pattern, field order) where order names the groups as y/m/d/M (month name).
_DATE_PATTERNS = (
    (re.compile(r"\b(\d{4})-(\d{1,2})-(\d{1,2})\b"), "ymd"),
    (re.compile(r"\b(\d{4})/(\d{1,2})/(\d{1,2})\b"), "ymd"),
    (re.compile(r"\b(\d{1,2})/(\d{1,2})/(\d{2,4})\b"), "mdy"),
    (re.compile(r"\b(\d{1,2})-(\d{1,2})-(\d{2,4})\b"), "mdy"),
    (re.compile(rf"\b{_MONTH_NAMES}\s+(\d{{1,2}}),?\s+(\d{{4}})\b", re.IGNORECASE), "Mdy"),
    (re.compile(rf"\b(\d{{1,2}})\s+{_MONTH_NAMES}\s+(\d{{4}})\b", re.IGNORECASE), "dMy"),
    (re.compile(r"\b(20\d{2})(\d{2})(\d{2})\b"), "ymd"),
)


@dataclass(frozen=True)
class DateMatch:
    """A calendar date found in free text."""

    value: date
    original: str
    position: int

    @property
    def iso(self) -> str:
        return self.value.isoformat()


@dataclass
class ItemPrices:
    quantity: Optional[int] = None
    unit_price: Optional[float] = None
    total_price: Optional[float] = None


def normalize_ocr_digits(text: str) -> str:
    """
    Replace letter look-alikes (O, l, I, |) with digits inside numeric runs.

    A run is only touched when it already holds a real digit and is not glued
    to a word, so `$l2.5O` becomes `$12.50` while `TOTAL` and `2OZ` stay as
    they are. The output has the same length as the input.
    """

    def fix(match: re.Match) -> str:
        run = match.group(0)
        if not any(ch.isdigit() for ch in run):
            return run
        return run.translate(_DIGIT_LOOKALIKES)

    return _NUMERIC_RUN_RE.sub(fix, text)


def parse_amount_text(text: str) -> Optional[float]:
    """First money amount (two decimals) in `text`, or None."""

    match = AMOUNT_RE.search(normalize_ocr_digits(text))
    if not match:
        return None
    return float(f"{match.group(1).replace(',', '')}.{match.group(2)}")


def find_amounts(text: str) -> List[float]:
    return [
        float(f"{m.group(1).replace(',', '')}.{m.group(2)}")
        for m in AMOUNT_RE.finditer(normalize_ocr_digits(text))
    ]


def ocr_digit_variants(amount: float) -> List[float]:
    """Amounts that differ from `amount` by one commonly confused dollar digit."""

    dollars, cents = f"{amount:.2f}".split(".")
    variants: List[float] = []
    for idx, digit in enumerate(dollars):
        for alt in _DIGIT_CONFUSIONS.get(digit, ""):
            value = float(f"{dollars[:idx]}{alt}{dollars[idx + 1:]}.{cents}")
            if value > 0 and value not in variants:
                variants.append(value)
    return variants


def expand_two_digit_year(year: int) -> int:
    """00-30 map to 20xx, 31-99 to 19xx."""

    if year >= 100:
        return year
    return 2000 + year if year <= 30 else 1900 + year


def _build_date(order: str, groups: tuple) -> Optional[date]:
    parts = dict(zip(order, groups))
    try:
        if "M" in parts:
            month = _MONTHS[parts["M"].lower()[:3]]
        else:
            month = int(parts["m"])
        year = expand_two_digit_year(int(parts["y"]))
        day = int(parts["d"])
        if not 1900 <= year <= 2100:
            return None
        return date(year, month, day)
    except (KeyError, ValueError):
        return None


def find_dates(text: str) -> List[DateMatch]:
    """All distinct dates in `text`, in order of appearance (US month-first)."""

    normalized = normalize_ocr_digits(text)
    found: List[DateMatch] = []
    seen_spans: list[tuple[int, int]] = []
    for pattern, order in _DATE_PATTERNS:
        for match in pattern.finditer(normalized):
            span = match.span()
            if any(s <= span[0] < e or s < span[1] <= e for s, e in seen_spans):
                continue
            value = _build_date(order, match.groups())
            if value is None:
                continue
            seen_spans.append(span)
            found.append(DateMatch(value=value, original=text[span[0] : span[1]], position=span[0]))
    found.sort(key=lambda m: m.position)
    unique: List[DateMatch] = []
    for item in found:
        if all(item.value != other.value for other in unique):
            unique.append(item)
    return unique


def is_plausible_receipt_date(value: date, *, today: date | None = None) -> bool:
    """A receipt date may be at most one day ahead of `today` (time zones)."""

    return value <= (today or date.today()) + timedelta(days=1)


def pick_receipt_date(matches: Iterable[DateMatch], *, today: date | None = None) -> Optional[DateMatch]:
    """
    First date in `matches` that is not more than a day in the future.

    Falls back to the first date overall when every match is in the future.
    """

    items = list(matches)
    if not items:
        return None
    for item in items:
        if is_plausible_receipt_date(item.value, today=today):
            return item
    return items[0]


# Lines that are totals, payment info or receipt chrome rather than purchased items.
SKIP_LINE_PATTERNS = (
    re.compile(
        r"^(sub\s*total|total|tax|discount|change|cash|credit|debit|visa|mastercard|amex|discover)",
        re.IGNORECASE,
    ),
    re.compile(r"^(thank\s+you|have\s+a\s+great|receipt|store|cashier|date|time)", re.IGNORECASE),
    re.compile(r"^[-=*\s]{3,}$"),
    re.compile(r"^\d+\s*$"),
    re.compile(r"^[A-Za-z]\s*$"),
    re.compile(r"^\d{1,4}[/-]\d{1,4}[/-]\d{2,4}"),
    re.compile(r"^(balance|amount\s+due|payment|grand\s+total|charge)", re.IGNORECASE),
)

_QTY_RE = re.compile(r"(?:\bqty\s*:?|\bx)\s*(\d+)\b", re.IGNORECASE)
_AT_RE = re.compile(r"\b(\d+)\s*@\s*\$?(\d+(?:\.\d{2})?)")


def is_skip_line(text: str) -> bool:
    stripped = text.strip()
    return len(stripped) < 3 or any(p.search(stripped) for p in SKIP_LINE_PATTERNS)


def extract_prices(text: str) -> ItemPrices:
    """Quantity, unit price and line total from one item line."""

    text = normalize_ocr_digits(text)
    prices = ItemPrices()
    amounts = [a for a in find_amounts(text) if 0 < a < 999_999]
    qty = _QTY_RE.search(text)
    if qty:
        prices.quantity = int(qty.group(1))

    at = _AT_RE.search(text)
    if at:
        prices.quantity = int(at.group(1))
        prices.unit_price = float(at.group(2))
        prices.total_price = round(prices.quantity * prices.unit_price, 2)
        if amounts and abs(amounts[-1] - prices.total_price) > 0.01 and amounts[-1] != prices.unit_price:
            prices.total_price = amounts[-1]
    elif len(amounts) >= 2:
        prices.total_price = amounts[-1]
        prices.unit_price = amounts[-2]
        if prices.quantity and abs(prices.quantity * prices.unit_price - prices.total_price) > 0.01:
            prices.unit_price = None
    elif amounts:
        prices.total_price = amounts[0]
    return prices


def clean_description(text: str) -> str:
    cleaned = _AT_RE.sub(" ", normalize_ocr_digits(text))
    cleaned = AMOUNT_RE.sub(" ", cleaned)
    cleaned = re.sub(r"(?:\bqty\s*:?|\bx)\s*\d+\b", " ", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"^\d+\s*[-.]?\s+", "", cleaned.strip())
    cleaned = re.sub(r"[^\w\s\-./&%#]+", " ", cleaned)
    cleaned = re.sub(r"^\W+|\W+$", "", cleaned)
    return re.sub(r"\s+", " ", cleaned).strip()


def line_item_certainty(description: str, prices: ItemPrices) -> float:
    """Rule certainty for one parsed item: base 0.5 plus evidence bonuses, capped at 0.95."""

    certainty = 0.5
    if len(description) >= 3:
        certainty += 0.2
        if len(description) >= 10:
            certainty += 0.1
        if description[:1].isalpha():
            certainty += 0.1
    if prices.total_price:
        certainty += 0.2
    if prices.quantity:
        certainty += 0.1
    if prices.unit_price and prices.quantity and prices.total_price:
        if abs(prices.quantity * prices.unit_price - prices.total_price) <= 0.01:
            certainty += 0.15
    return min(certainty, 0.95)
