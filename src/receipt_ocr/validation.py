"""
Progressive field validation for reviewed receipt values.

Validators guide rather than block: every call returns a `ValidationResult`
and never raises. Low OCR confidence only ever produces a warning; `error`
is reserved for missing, malformed or out-of-range values.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, timedelta
from typing import Any

from receipt_ocr.contracts import ExtractedFields
from receipt_ocr.models.enums import FieldType, ValidationSeverity
from receipt_ocr.models.pipeline import ConsistencyIssue, ConsistencyReport
from receipt_ocr.models.validation import ValidationResult
from receipt_ocr.parsing import ocr_digit_variants

COMMON_VENDORS = (
    "Home Depot",
    "Lowes",
    "Menards",
    "Harbor Freight",
    "Grainger",
    "Ferguson",
    "Shell",
    "BP",
    "Speedway",
    "Circle K",
    "McDonald's",
    "Subway",
    "Jimmy Johns",
    "Walmart",
    "Target",
    "Amazon",
    "Office Depot",
    "Staples",
    "Best Buy",
    "Costco",
    "Sam's Club",
)

FORMAT_EXAMPLES: dict[FieldType, tuple[str, ...]] = {
    FieldType.VENDOR: ("Home Depot", "McDonald's", "ABC Company Inc."),
    FieldType.AMOUNT: ("$12.50", "$1,234.56", "$0.99"),
    FieldType.DATE: ("2024-01-15", "01/15/2024", "Today", "Yesterday"),
    FieldType.DESCRIPTION: ("Office supplies", "Fuel for company vehicle", "Building materials"),
}

LOW_CONFIDENCE_HINT = "OCR confidence is low for this field"
HIGHLIGHT_THRESHOLD = 0.7
MAX_SUGGESTIONS = 5

_UNUSUAL_VENDOR_CHARS = re.compile(r"[<>{}\[\]\\|`~]")
_NUMBER_PREFIX = re.compile(r"^\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")
_SENSITIVE_PATTERNS = (
    re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),
    re.compile(r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b"),
    re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
)
_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%m-%d-%Y",
    "%m/%d/%y",
    "%m-%d-%y",
    "%b %d, %Y",
    "%b %d %Y",
    "%B %d, %Y",
    "%B %d %Y",
    "%d %b %Y",
    "%d %B %Y",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
)


def _result(
    is_valid: bool,
    severity: ValidationSeverity,
    message: str,
    *,
    suggestion: str | None = None,
    format_example: str | None = None,
) -> ValidationResult:
    return ValidationResult(
        is_valid=is_valid,
        severity=severity,
        message=message,
        suggestion=suggestion,
        format_example=format_example,
    )


def parse_amount(value: Any) -> float:
    """
    Read a money value the lenient way a form field would.

    `$` and `,` are stripped, then the longest leading number is used
    ("12.50 USD" -> 12.5). Anything without a leading number is NaN.
    """

    if isinstance(value, bool):
        return math.nan
    if isinstance(value, (int, float)):
        return float(value)
    if value is None:
        return math.nan
    text = str(value).replace("$", "").replace(",", "")
    match = _NUMBER_PREFIX.match(text)
    if not match:
        return math.nan
    return float(match.group(0))


def parse_date_value(value: str, *, today: date | None = None) -> date | None:
    """Parse a user or OCR supplied date; supports the relative words Today/Yesterday."""

    text = value.strip()
    if not text:
        return None
    ref = today or date.today()
    lowered = text.lower()
    if lowered == "today":
        return ref
    if lowered == "yesterday":
        return ref - timedelta(days=1)
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def validate_vendor(value: Any, confidence: float | None = None) -> ValidationResult:
    trimmed = "" if value is None else str(value).strip()
    if not trimmed:
        return _result(
            False, ValidationSeverity.ERROR, "Vendor name is required", format_example="Home Depot"
        )
    if len(trimmed) < 2:
        return _result(
            False,
            ValidationSeverity.ERROR,
            "Vendor name too short",
            suggestion="Enter the full business name",
            format_example="Home Depot",
        )
    if _UNUSUAL_VENDOR_CHARS.search(trimmed):
        return _result(
            True,
            ValidationSeverity.WARNING,
            "Vendor name contains unusual characters",
            suggestion="Remove special characters from business name",
        )
    if len(trimmed) > 100:
        return _result(
            True,
            ValidationSeverity.WARNING,
            "Vendor name is very long",
            suggestion="Consider shortening to main business name",
        )
    if confidence is not None and confidence < 0.5:
        return _result(
            True,
            ValidationSeverity.WARNING,
            "Please verify vendor name is correct",
            suggestion=LOW_CONFIDENCE_HINT,
        )
    return _result(
        True, ValidationSeverity.INFO, "Vendor name looks good", format_example="Home Depot"
    )


def validate_amount(value: Any, confidence: float | None = None) -> ValidationResult:
    amount = parse_amount(value)
    if math.isnan(amount) or amount == 0:
        return _result(
            False, ValidationSeverity.ERROR, "Amount is required", format_example="$12.50"
        )
    if amount < 0:
        return _result(
            False, ValidationSeverity.ERROR, "Amount cannot be negative", format_example="$12.50"
        )
    if amount < 0.01:
        return _result(
            False,
            ValidationSeverity.ERROR,
            "Amount must be at least $0.01",
            format_example="$0.50",
        )
    if amount > 50000:
        return _result(
            True,
            ValidationSeverity.WARNING,
            "This is a large amount - please verify",
            suggestion="Double-check the receipt total",
        )
    if amount > 1000 and amount.is_integer():
        return _result(
            True,
            ValidationSeverity.WARNING,
            "Large round number - verify decimal placement",
            suggestion=f"${amount / 100:.2f}",
        )
    if confidence is not None and confidence < 0.6:
        return _result(
            True,
            ValidationSeverity.WARNING,
            "Please verify amount is correct",
            suggestion=LOW_CONFIDENCE_HINT,
        )
    return _result(True, ValidationSeverity.INFO, "Amount looks good", format_example="$12.50")


def validate_date(
    value: Any,
    confidence: float | None = None,
    *,
    today: date | None = None,
) -> ValidationResult:
    """Validate a receipt date; `today` pins the reference day for callers and tests."""

    text = "" if value is None else str(value)
    if not text.strip():
        return _result(False, ValidationSeverity.ERROR, "Date is required", format_example="2024-01-15")

    ref = today or date.today()
    parsed = parse_date_value(text, today=ref)
    if parsed is None:
        return _result(
            False,
            ValidationSeverity.ERROR,
            "Invalid date format",
            suggestion="Use format: YYYY-MM-DD or MM/DD/YYYY",
            format_example="2024-01-15",
        )
    if (parsed - ref).days > 1:
        return _result(
            True,
            ValidationSeverity.WARNING,
            "Date is in the future",
            suggestion="Verify this is the correct receipt date",
        )
    try:
        one_year_ago = ref.replace(year=ref.year - 1)
    except ValueError:
        # Feb 29 has no counterpart in the previous year.
        one_year_ago = ref.replace(year=ref.year - 1, day=28)
    if parsed < one_year_ago:
        return _result(
            True,
            ValidationSeverity.WARNING,
            "Date is over a year old",
            suggestion="Verify this is the correct receipt date",
        )
    if parsed.weekday() >= 5:
        return _result(
            True,
            ValidationSeverity.INFO,
            "Weekend date - verify if needed",
            format_example="2024-01-15",
        )
    if confidence is not None and confidence < 0.5:
        return _result(
            True,
            ValidationSeverity.WARNING,
            "Please verify date is correct",
            suggestion=LOW_CONFIDENCE_HINT,
        )
    return _result(True, ValidationSeverity.INFO, "Date looks good", format_example="2024-01-15")


def validate_description(value: Any) -> ValidationResult:
    trimmed = "" if value is None else str(value).strip()
    if not trimmed:
        return _result(
            True, ValidationSeverity.INFO, "Description is optional", format_example="Office supplies"
        )
    if len(trimmed) > 500:
        return _result(
            True,
            ValidationSeverity.WARNING,
            "Description is very long",
            suggestion="Consider shortening to key details",
        )
    if any(pattern.search(trimmed) for pattern in _SENSITIVE_PATTERNS):
        return _result(
            True,
            ValidationSeverity.WARNING,
            "Description may contain sensitive information",
            suggestion="Remove personal or financial details",
        )
    return _result(
        True, ValidationSeverity.INFO, "Description looks good", format_example="Office supplies"
    )


def validate_field(
    field_type: FieldType | str,
    value: Any,
    confidence: float | None = None,
) -> ValidationResult:
    """
    Dispatch to the validator for `field_type`.

    Unknown field types get an informational "not configured" result
    instead of an exception.
    """

    try:
        kind = FieldType(field_type)
    except ValueError:
        return _result(True, ValidationSeverity.INFO, "Field validation not configured")
    if kind is FieldType.VENDOR:
        return validate_vendor(value, confidence)
    if kind is FieldType.AMOUNT:
        return validate_amount(value, confidence)
    if kind is FieldType.DATE:
        return validate_date(value, confidence)
    return validate_description(value)


def get_format_examples(field_type: FieldType | str) -> list[str]:
    try:
        return list(FORMAT_EXAMPLES[FieldType(field_type)])
    except ValueError:
        return []


def get_field_suggestions(field_type: FieldType | str, value: str | None = None) -> list[str]:
    """Autocomplete suggestions; only vendors have a suggestion list."""

    try:
        kind = FieldType(field_type)
    except ValueError:
        return []
    if kind is not FieldType.VENDOR:
        return []
    if not value:
        return list(COMMON_VENDORS[:MAX_SUGGESTIONS])
    needle = value.lower()
    return [name for name in COMMON_VENDORS if needle in name.lower()][:MAX_SUGGESTIONS]


def should_highlight_field(confidence: float | None) -> bool:
    """True when a reviewer should look at this field before approving."""

    return confidence is not None and confidence < HIGHLIGHT_THRESHOLD


def validate_extracted_fields(
    fields: ExtractedFields,
    *,
    today: date | None = None,
) -> tuple[dict[str, ValidationResult], list[ValidationResult]]:
    """
    Validate every extracted field with its own confidence.

    Returns per-field results (vendor, date and total always; subtotal and
    tax only when they were found) plus one description result per line item.
    """

    results: dict[str, ValidationResult] = {
        "vendor": validate_vendor(fields.vendor.value, fields.vendor.confidence),
        "date": validate_date(fields.date.value, fields.date.confidence, today=today),
        "total": validate_amount(fields.total.value, fields.total.confidence),
    }
    for candidate in (fields.subtotal, fields.tax):
        if candidate.found:
            results[candidate.name] = validate_amount(candidate.value, candidate.confidence)
    line_results = [validate_description(item.description) for item in fields.line_items]
    return results, line_results


def _line_item_tolerance(reference: float) -> float:
    return max(reference * 0.15, 3.0)


def _misread_variant(amount: float, target: float, tolerance: float) -> float | None:
    """The one-digit OCR variant of `amount` closest to `target`, if within `tolerance`."""

    close = [v for v in ocr_digit_variants(amount) if abs(v - target) <= tolerance]
    return min(close, key=lambda v: abs(v - target)) if close else None


def check_consistency(fields: ExtractedFields) -> ConsistencyReport:
    """
    Cross-check the extracted amounts against each other.

    - subtotal + tax must match total within two cents;
    - a tax rate above 15% is flagged;
    - line items should sum to the subtotal (or total) within 15% or $3.

    When a total looks like a one-digit misread (for example 7 read as 1)
    the corrected amount is offered as the suggested value.
    """

    issues: list[ConsistencyIssue] = []
    confidence = 1.0
    subtotal = fields.subtotal.amount
    tax = fields.tax.amount
    total = fields.total.amount

    if total is not None and total <= 0:
        issues.append(
            ConsistencyIssue(
                check="amount",
                field="total",
                severity=ValidationSeverity.ERROR,
                message="Total amount must be a positive number",
                current_value=total,
            )
        )
        confidence *= 0.3

    if subtotal and tax and total:
        calculated = round(subtotal + tax, 2)
        if abs(calculated - total) > 0.02:
            message = f"Total ({total:.2f}) doesn't match subtotal + tax ({calculated:.2f})"
            if _misread_variant(total, calculated, 0.02) is not None:
                message += "; a digit was likely misread"
            issues.append(
                ConsistencyIssue(
                    check="arithmetic",
                    field="total",
                    severity=ValidationSeverity.ERROR,
                    message=message,
                    current_value=total,
                    suggested_value=calculated,
                )
            )
            confidence *= 0.5

    if subtotal and tax:
        rate = tax / subtotal
        if rate > 0.15:
            issues.append(
                ConsistencyIssue(
                    check="tax_rate",
                    field="tax",
                    severity=ValidationSeverity.WARNING,
                    message=f"Tax rate ({rate * 100:.1f}%) seems unusually high",
                    current_value=tax,
                )
            )
            confidence *= 0.9

    if fields.line_items:
        item_sum = round(sum(item.total_price for item in fields.line_items), 2)
        reference_name, reference = ("subtotal", subtotal) if subtotal else ("total", total)
        if reference and abs(item_sum - reference) > _line_item_tolerance(reference):
            message = f"Line items sum ({item_sum:.2f}) differs from {reference_name} ({reference:.2f})"
            suggested = item_sum
            variant = _misread_variant(reference, item_sum, 0.5)
            if variant is not None:
                message += f"; {variant:.2f} if a digit was misread"
                suggested = variant
            issues.append(
                ConsistencyIssue(
                    check="line_items",
                    field=reference_name,
                    severity=ValidationSeverity.WARNING,
                    message=message,
                    current_value=reference,
                    suggested_value=suggested,
                )
            )
            confidence *= 0.8

    return ConsistencyReport(
        valid=not any(i.severity == ValidationSeverity.ERROR for i in issues),
        confidence=confidence,
        issues=tuple(issues),
    )
