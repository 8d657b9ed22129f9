"""
Rule-based field extraction over positioned OCR tokens.

Tokens are grouped into visual lines, then each field is located by
position and pattern:

- vendor: known alias/slogan in the header, else the largest text in the
  top fifth of the receipt;
- subtotal/tax/total: amounts on the same line as (or just below) their
  label, each amount token serving at most one label;
- date: date patterns near DATE/ISSUED/PURCHASE, skipping dates next to
  RETURN/EXPIRE/VALID;
- line items: priced lines between the header and the first totals label.

Every field carries the OCR confidence of its evidence and a separate rule
certainty; `receipt_ocr.confidence` combines the two.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

from receipt_ocr.confidence import score
from receipt_ocr.contracts import (
    BoundingBox,
    ExtractedFields,
    FieldCandidate,
    LineItem,
    RecognitionResult,
    Token,
)
from receipt_ocr.parsing import (
    DateMatch,
    clean_description,
    extract_prices,
    find_dates,
    is_plausible_receipt_date,
    is_skip_line,
    line_item_certainty,
    parse_amount_text,
    pick_receipt_date,
)
from receipt_ocr.vendors import clean_merchant_name, is_vendor_like, match_known_vendor

logger = logging.getLogger(__name__)

LINE_TOLERANCE = 10.0
SAME_LINE_TOLERANCE = 20.0
BELOW_MAX_DISTANCE = 150.0
DISTANCE_SCALE = 300.0
BELOW_PENALTY = 0.8
CERTAINTY_BOOST = 1.2
MAX_CERTAINTY = 0.95
HEADER_FRACTION = 0.2
ITEM_SECTION_END = 0.8
AMBIGUITY_RATIO = 0.8
AMBIGUITY_PENALTY = 0.75
TEXT_ONLY_FACTOR = 0.8
TEXT_ONLY_CONFIDENCE = 0.75
DATE_KEYWORD_DISTANCE = 150.0
DATE_EXCLUDE_DISTANCE = 100.0

# Pseudo geometry for recognitions that carry text but no boxes.
_PSEUDO_LINE_PITCH = 30.0
_PSEUDO_LINE_HEIGHT = 20.0
_PSEUDO_CHAR_WIDTH = 10.0

# (field, pattern, priority); checked in order, first match labels the line.
AMOUNT_LABELS: Tuple[Tuple[str, re.Pattern, float], ...] = (
    ("subtotal", re.compile(r"\bSUB\s*-?\s*TOTAL\b"), 1.0),
    ("tax", re.compile(r"\b(?:SALES\s+)?TAX\b|\b(?:HST|GST|VAT)\b"), 1.0),
    ("total", re.compile(r"\bGRAND\s+TOTAL\b"), 1.0),
    ("total", re.compile(r"\bTOTAL\b(?!\s+(?:SAVINGS|SAVED|ITEMS|DISCOUNT|QTY))"), 1.0),
    ("total", re.compile(r"\b(?:AMOUNT|BALANCE)\s+DUE\b"), 0.9),
    ("total", re.compile(r"\bCHARGE\b"), 0.7),
)
DATE_KEYWORDS = ("DATE", "ISSUED", "PURCHASE")
DATE_EXCLUDE_KEYWORDS = ("RETURN", "EXPIRE", "VALID")


@dataclass
class TextLine:
    """Tokens sharing one visual baseline, ordered left to right."""

    tokens: List[Token] = field(default_factory=list)

    @property
    def text(self) -> str:
        return " ".join(t.text for t in self.tokens)

    @property
    def bbox(self) -> BoundingBox:
        return BoundingBox.enclosing([t.bbox for t in self.tokens])

    @property
    def center_y(self) -> float:
        return sum(t.bbox.center_y for t in self.tokens) / len(self.tokens)

    @property
    def height(self) -> float:
        """Median token height, a proxy for font size."""

        heights = sorted(t.bbox.height for t in self.tokens)
        return heights[len(heights) // 2]

    @property
    def confidence(self) -> float:
        return sum(t.confidence for t in self.tokens) / len(self.tokens)


@dataclass(frozen=True)
class _AmountCandidate:
    field: str
    token_index: int
    amount: float
    ocr_confidence: float
    proximity: float
    priority: float
    bbox: BoundingBox

    @property
    def combined(self) -> float:
        return self.ocr_confidence * self.proximity * self.priority

    @property
    def certainty(self) -> float:
        return min(self.proximity * self.priority * CERTAINTY_BOOST, MAX_CERTAINTY)


def line_tolerance(page_width: Optional[float], page_height: Optional[float]) -> float:
    """Grouping tolerance grows with page size, within 8..20 px."""

    if not page_width or not page_height:
        return LINE_TOLERANCE
    return max(8.0, min(20.0, (page_width + page_height) / 2 / 100))


def group_tokens_into_lines(tokens: Sequence[Token], tolerance: float = LINE_TOLERANCE) -> List[TextLine]:
    """Cluster tokens by vertical centre; lines come back top to bottom."""

    lines: List[TextLine] = []
    for token in sorted(tokens, key=lambda t: (t.page_no, t.bbox.center_y, t.bbox.x)):
        for line in reversed(lines):
            if line.tokens[0].page_no != token.page_no:
                continue
            if abs(line.center_y - token.bbox.center_y) <= tolerance:
                line.tokens.append(token)
                break
        else:
            lines.append(TextLine(tokens=[token]))
    for line in lines:
        line.tokens.sort(key=lambda t: t.bbox.x)
    return lines


def pseudo_tokens_from_text(text: str, confidence: float = TEXT_ONLY_CONFIDENCE) -> List[Token]:
    """Give plain text a synthetic grid layout so positional rules still apply."""

    tokens: List[Token] = []
    row = 0
    for raw_line in text.splitlines():
        if not raw_line.strip():
            continue
        for match in re.finditer(r"\S+", raw_line):
            tokens.append(
                Token(
                    text=match.group(0),
                    confidence=confidence,
                    bbox=BoundingBox(
                        x=match.start() * _PSEUDO_CHAR_WIDTH,
                        y=row * _PSEUDO_LINE_PITCH,
                        width=len(match.group(0)) * _PSEUDO_CHAR_WIDTH,
                        height=_PSEUDO_LINE_HEIGHT,
                    ),
                )
            )
        row += 1
    return tokens


def _label_for(text: str) -> Optional[Tuple[str, float]]:
    upper = text.upper()
    for name, pattern, priority in AMOUNT_LABELS:
        if pattern.search(upper):
            return name, priority
    return None


def _money(value: float) -> str:
    return f"{value:.2f}"


class SpatialExtractor:
    """Extract receipt fields from one recognition result."""

    def __init__(self, min_token_confidence: float = 0.5, max_line_items: int = 50) -> None:
        self.min_token_confidence = min_token_confidence
        self.max_line_items = max_line_items

    def extract(self, recognition: RecognitionResult, *, today: date | None = None) -> ExtractedFields:
        spatial = recognition.has_spatial_data
        if spatial:
            tokens = [t for t in recognition.tokens if t.confidence >= self.min_token_confidence]
            tolerance = line_tolerance(recognition.page_width, recognition.page_height)
        else:
            base = recognition.confidence if recognition.confidence is not None else TEXT_ONLY_CONFIDENCE
            tokens = pseudo_tokens_from_text(recognition.text, base)
            tolerance = LINE_TOLERANCE

        meta = {
            "engine": recognition.engine or "unknown",
            "token_count": str(len(recognition.tokens)),
            "tokens_used": str(len(tokens)),
        }
        if not tokens:
            logger.info("No usable tokens in recognition result")
            return ExtractedFields(raw_text=recognition.text, spatial=spatial, meta=meta)

        lines = group_tokens_into_lines(tokens, tolerance)
        meta["line_count"] = str(len(lines))
        amounts = self._extract_amounts(tokens, lines)
        vendor, vendor_line = self._extract_vendor(lines)
        extracted_date = self._extract_date(lines, today=today)
        first_label_line = next(
            (idx for idx, line in enumerate(lines) if _label_for(line.text)), None
        )
        items = self._extract_line_items(lines, vendor_line, first_label_line)

        fields = ExtractedFields(
            vendor=vendor,
            date=extracted_date,
            subtotal=amounts["subtotal"],
            tax=amounts["tax"],
            total=amounts["total"],
            line_items=items,
            line_items_confidence=(
                sum(i.confidence for i in items) / len(items) if items else 0.0
            ),
            raw_text=recognition.text or "\n".join(line.text for line in lines),
            spatial=spatial,
            meta=meta,
        )
        if not spatial:
            fields = self._degrade_text_only(fields)
        logger.debug(
            "Extracted vendor=%r date=%r total=%r items=%d",
            fields.vendor.value,
            fields.date.value,
            fields.total.value,
            len(fields.line_items),
        )
        return fields

    def _extract_vendor(self, lines: List[TextLine]) -> Tuple[FieldCandidate, Optional[int]]:
        known = match_known_vendor([line.text for line in lines])
        if known is not None:
            line = lines[known.line_index]
            return (
                FieldCandidate(
                    name="vendor",
                    value=known.name,
                    ocr_confidence=line.confidence,
                    certainty=known.certainty,
                    method=f"vendor_{known.method}",
                    raw=line.text,
                    bbox=line.bbox,
                ),
                known.line_index,
            )

        top = lines[0].bbox.y
        bottom = max(line.bbox.bottom for line in lines)
        cutoff = top + (bottom - top) * HEADER_FRACTION
        header = [
            (idx, line)
            for idx, line in enumerate(lines)
            if (line.center_y <= cutoff or idx == 0) and is_vendor_like(line.text)
        ]
        if header:
            best_idx, best = header[0]
            for idx, line in header[1:]:
                if line.height > best.height:
                    best_idx, best = idx, line
            name = clean_merchant_name(best.text)
            rivals = [
                line
                for idx, line in header
                if idx != best_idx and line.height >= best.height * 0.9
            ]
            certainty = 0.65 if rivals else 0.8
            if name:
                return (
                    FieldCandidate(
                        name="vendor",
                        value=name,
                        ocr_confidence=best.confidence,
                        certainty=certainty,
                        method="largest_header_text",
                        raw=best.text,
                        bbox=best.bbox,
                        candidates=[clean_merchant_name(r.text) for r in rivals][:3],
                    ),
                    best_idx,
                )

        for idx, line in enumerate(lines[:5]):
            if is_vendor_like(line.text):
                name = clean_merchant_name(line.text)
                if name:
                    return (
                        FieldCandidate(
                            name="vendor",
                            value=name,
                            ocr_confidence=line.confidence,
                            certainty=0.6,
                            method="first_text_line",
                            raw=line.text,
                            bbox=line.bbox,
                        ),
                        idx,
                    )
        return FieldCandidate(name="vendor", method="not_found"), None

    def _extract_amounts(self, tokens: List[Token], lines: List[TextLine]) -> Dict[str, FieldCandidate]:
        amount_tokens: Dict[int, float] = {}
        for idx, token in enumerate(tokens):
            value = parse_amount_text(token.text)
            if value is not None:
                amount_tokens[idx] = value

        labels: List[Tuple[str, float, BoundingBox]] = []
        for line in lines:
            label_tokens = [t for t in line.tokens if parse_amount_text(t.text) is None]
            if not label_tokens:
                continue
            found = _label_for(" ".join(t.text for t in label_tokens))
            if found:
                labels.append((found[0], found[1], BoundingBox.enclosing([t.bbox for t in label_tokens])))

        candidates: List[_AmountCandidate] = []
        for name, priority, label_box in labels:
            for idx, value in amount_tokens.items():
                box = tokens[idx].bbox
                dy = abs(box.center_y - label_box.center_y)
                if dy <= SAME_LINE_TOLERANCE and box.right > label_box.right:
                    proximity = 1.0 - dy / (2 * SAME_LINE_TOLERANCE)
                elif box.y > label_box.bottom:
                    distance = label_box.distance_to(box)
                    if distance >= BELOW_MAX_DISTANCE:
                        continue
                    proximity = max(0.0, 1.0 - distance / DISTANCE_SCALE) * BELOW_PENALTY
                else:
                    continue
                candidates.append(
                    _AmountCandidate(
                        field=name,
                        token_index=idx,
                        amount=value,
                        ocr_confidence=tokens[idx].confidence,
                        proximity=proximity,
                        priority=priority,
                        bbox=box,
                    )
                )

        # Greedy: strongest pairing first; one amount per field, one field per token.
        candidates.sort(key=lambda c: c.combined, reverse=True)
        chosen: Dict[str, _AmountCandidate] = {}
        used_tokens: set[int] = set()
        for cand in candidates:
            if cand.field in chosen or cand.token_index in used_tokens:
                continue
            chosen[cand.field] = cand
            used_tokens.add(cand.token_index)

        result: Dict[str, FieldCandidate] = {}
        for name in ("subtotal", "tax", "total"):
            best = chosen.get(name)
            if best is None:
                result[name] = FieldCandidate(name=name, method="not_found")
                continue
            rivals: List[str] = []
            ambiguous = False
            for cand in candidates:
                if cand.field != name or cand.token_index in used_tokens or math.isclose(cand.amount, best.amount):
                    continue
                text = _money(cand.amount)
                if text not in rivals:
                    rivals.append(text)
                if cand.combined >= best.combined * AMBIGUITY_RATIO:
                    ambiguous = True
            certainty = best.certainty * (AMBIGUITY_PENALTY if ambiguous else 1.0)
            result[name] = FieldCandidate(
                name=name,
                value=_money(best.amount),
                ocr_confidence=best.ocr_confidence,
                certainty=certainty,
                method="label_proximity",
                raw=tokens[best.token_index].text,
                bbox=best.bbox,
                candidates=rivals[:3],
            )

        subtotal, tax, total = result["subtotal"], result["tax"], result["total"]
        if not total.found and subtotal.found and tax.found:
            computed = round(float(subtotal.value) + float(tax.value), 2)
            result["total"] = FieldCandidate(
                name="total",
                value=_money(computed),
                ocr_confidence=min(subtotal.ocr_confidence, tax.ocr_confidence),
                certainty=0.6,
                method="subtotal_plus_tax",
            )
        elif not total.found:
            free = [(idx, v) for idx, v in amount_tokens.items() if idx not in used_tokens]
            if free:
                idx, value = max(free, key=lambda item: (item[1], tokens[item[0]].confidence))
                result["total"] = FieldCandidate(
                    name="total",
                    value=_money(value),
                    ocr_confidence=tokens[idx].confidence,
                    certainty=0.5,
                    method="largest_amount",
                    raw=tokens[idx].text,
                    bbox=tokens[idx].bbox,
                )
        elif subtotal.found and tax.found:
            if abs(float(subtotal.value) + float(tax.value) - float(total.value)) <= 0.02:
                for name in ("subtotal", "tax", "total"):
                    cand = result[name]
                    result[name] = cand.model_copy(
                        update={"certainty": min(cand.certainty + 0.1, MAX_CERTAINTY)}
                    )
        return result

    def _extract_date(self, lines: List[TextLine], *, today: date | None = None) -> FieldCandidate:
        ref = today or date.today()
        keyword_found: List[Tuple[DateMatch, TextLine, float]] = []
        other_found: List[Tuple[DateMatch, TextLine, float]] = []
        for idx, line in enumerate(lines):
            matches = find_dates(line.text)
            if not matches:
                continue
            upper = line.text.upper()
            neighbours = [
                other
                for other in lines[max(0, idx - 2) : idx]
                if not find_dates(other.text)
            ]
            if any(k in upper for k in DATE_EXCLUDE_KEYWORDS) or any(
                any(k in other.text.upper() for k in DATE_EXCLUDE_KEYWORDS)
                and other.bbox.distance_to(line.bbox) < DATE_EXCLUDE_DISTANCE
                for other in neighbours
            ):
                continue
            near_keyword = any(k in upper for k in DATE_KEYWORDS) or any(
                any(k in other.text.upper() for k in DATE_KEYWORDS)
                and other.bbox.distance_to(line.bbox) <= DATE_KEYWORD_DISTANCE
                for other in neighbours
            )
            bucket, certainty = (keyword_found, 0.9) if near_keyword else (other_found, 0.7)
            for match in matches:
                bucket.append((match, line, certainty))

        ordered = keyword_found + other_found
        if not ordered:
            return FieldCandidate(name="date", method="not_found")
        picked = pick_receipt_date([item[0] for item in ordered], today=ref)
        chosen = next(item for item in ordered if item[0] is picked)
        match, line, certainty = chosen
        if not is_plausible_receipt_date(match.value, today=ref):
            certainty *= 0.5
        return FieldCandidate(
            name="date",
            value=match.iso,
            ocr_confidence=line.confidence,
            certainty=certainty,
            method="date_keyword" if chosen in keyword_found else "date_pattern",
            raw=match.original,
            bbox=line.bbox,
            candidates=[item[0].iso for item in ordered if item[0].iso != match.iso][:3],
        )

    def _extract_line_items(
        self,
        lines: List[TextLine],
        vendor_line: Optional[int],
        first_label_line: Optional[int],
    ) -> List[LineItem]:
        start = vendor_line + 1 if vendor_line is not None else 0
        end = first_label_line if first_label_line is not None else math.ceil(len(lines) * ITEM_SECTION_END)
        items: List[LineItem] = []
        for line in lines[start:end]:
            text = line.text
            if is_skip_line(text):
                continue
            prices = extract_prices(text)
            if not prices.total_price:
                continue
            description = clean_description(text) or f"Item ${prices.total_price:.2f}"
            certainty = line_item_certainty(description, prices)
            item = LineItem(
                description=description,
                quantity=prices.quantity,
                unit_price=prices.unit_price,
                total_price=prices.total_price,
                confidence=score(line.confidence, certainty),
                bbox=line.bbox,
            )
            if any(_is_duplicate(existing, item) for existing in items):
                continue
            items.append(item)
            if len(items) >= self.max_line_items:
                break
        return items

    def _degrade_text_only(self, fields: ExtractedFields) -> ExtractedFields:
        updates = {
            cand.name: cand.model_copy(update={"certainty": cand.certainty * TEXT_ONLY_FACTOR})
            for cand in fields.scalar_fields()
            if cand.found
        }
        items = [
            item.model_copy(update={"confidence": item.confidence * TEXT_ONLY_FACTOR})
            for item in fields.line_items
        ]
        updates["line_items"] = items
        updates["line_items_confidence"] = fields.line_items_confidence * TEXT_ONLY_FACTOR
        return fields.model_copy(update=updates)


def _is_duplicate(existing: LineItem, item: LineItem) -> bool:
    if existing.description.lower() == item.description.lower():
        return True
    return (
        abs(existing.total_price - item.total_price) < 0.01
        and existing.description[:10] == item.description[:10]
    )
