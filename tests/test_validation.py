from __future__ import annotations

import math
from datetime import date

from receipt_ocr.contracts import ExtractedFields, FieldCandidate, LineItem
from receipt_ocr.models.enums import FieldType, ValidationSeverity
from receipt_ocr.validation import (
    check_consistency,
    get_field_suggestions,
    get_format_examples,
    parse_amount,
    parse_date_value,
    should_highlight_field,
    validate_amount,
    validate_date,
    validate_description,
    validate_extracted_fields,
    validate_field,
    validate_vendor,
)

TODAY = date(2024, 1, 17)


def _make_fields(
    subtotal: str | None = None,
    tax: str | None = None,
    total: str | None = None,
    items: list[float] | None = None,
) -> ExtractedFields:
    return ExtractedFields(
        vendor=FieldCandidate(name="vendor", value="Home Depot", confidence=0.9),
        date=FieldCandidate(name="date", value="2024-01-15", confidence=0.8),
        subtotal=FieldCandidate(name="subtotal", value=subtotal, confidence=0.9),
        tax=FieldCandidate(name="tax", value=tax, confidence=0.9),
        total=FieldCandidate(name="total", value=total, confidence=0.9),
        line_items=[
            LineItem(description=f"Item {idx}", total_price=price, confidence=0.8)
            for idx, price in enumerate(items or [])
        ],
    )


def test_round_large_amount_suggests_decimal_shift() -> None:
    result = validate_amount("1500", 0.9)

    assert result.is_valid
    assert result.severity == ValidationSeverity.WARNING
    assert "decimal" in result.message
    assert result.suggestion == "$15.00"


def test_negative_amount_is_invalid() -> None:
    result = validate_amount(-5)

    assert not result.is_valid
    assert result.severity == ValidationSeverity.ERROR
    assert result.message == "Amount cannot be negative"


def test_amount_edge_cases() -> None:
    assert validate_amount("abc").message == "Amount is required"
    assert validate_amount(None).message == "Amount is required"
    assert validate_amount(0).message == "Amount is required"
    assert validate_amount(0.005).message == "Amount must be at least $0.01"
    assert validate_amount(60000).message == "This is a large amount - please verify"
    assert validate_amount("$1,234.56").severity == ValidationSeverity.INFO
    low = validate_amount("12.50", 0.3)
    assert low.is_valid
    assert low.severity == ValidationSeverity.WARNING


def test_parse_amount_reads_numeric_prefix() -> None:
    assert parse_amount("$1,234.56") == 1234.56
    assert parse_amount("12.50 USD") == 12.5
    assert parse_amount(7) == 7.0
    assert math.isnan(parse_amount("abc"))
    assert math.isnan(parse_amount(None))


def test_future_date_warns() -> None:
    result = validate_date("2099-01-01", today=TODAY)

    assert result.is_valid
    assert result.severity == ValidationSeverity.WARNING
    assert result.message == "Date is in the future"


def test_date_rules() -> None:
    assert validate_date("", today=TODAY).message == "Date is required"
    assert validate_date("not a date", today=TODAY).message == "Invalid date format"
    assert validate_date("2022-06-01", today=TODAY).message == "Date is over a year old"
    assert validate_date("2024-01-13", today=TODAY).message == "Weekend date - verify if needed"
    assert validate_date("01/15/2024", today=TODAY).message == "Date looks good"
    assert validate_date("2024-01-18", today=TODAY).severity == ValidationSeverity.INFO
    assert validate_date("Today", today=TODAY).is_valid
    low = validate_date("2024-01-15", 0.2, today=TODAY)
    assert low.severity == ValidationSeverity.WARNING
    assert low.message == "Please verify date is correct"


def test_parse_date_value_relative_words() -> None:
    assert parse_date_value("Yesterday", today=TODAY) == date(2024, 1, 16)
    assert parse_date_value("Jan 15, 2024", today=TODAY) == date(2024, 1, 15)
    assert parse_date_value("15/45/2024", today=TODAY) is None


def test_vendor_rules() -> None:
    assert validate_vendor("").message == "Vendor name is required"
    assert not validate_vendor("A").is_valid
    unusual = validate_vendor("Foo<Bar>")
    assert unusual.is_valid
    assert unusual.severity == ValidationSeverity.WARNING
    assert validate_vendor("x" * 101).message == "Vendor name is very long"
    assert validate_vendor("Home Depot", 0.2).message == "Please verify vendor name is correct"
    assert validate_vendor("Home Depot", 0.9).severity == ValidationSeverity.INFO


def test_description_flags_sensitive_data() -> None:
    assert validate_description("").message == "Description is optional"
    for text in ("SSN 123-45-6789", "card 4111 1111 1111 1111", "mail me at a.b@example.com"):
        result = validate_description(text)
        assert result.is_valid
        assert result.message == "Description may contain sensitive information"
    assert validate_description("y" * 501).message == "Description is very long"
    assert validate_description("Office supplies").severity == ValidationSeverity.INFO


def test_low_confidence_never_invalidates() -> None:
    """Confidence can downgrade severity to a warning but never flip validity."""

    samples = {
        FieldType.VENDOR: ["", "A", "Home Depot", "Foo|Bar"],
        FieldType.AMOUNT: ["", "-3", "12.50", "1500", "99999"],
        FieldType.DATE: ["", "bogus", "2020-01-01", "2099-01-01", "01/15/2024"],
        FieldType.DESCRIPTION: ["", "Nails"],
    }
    for field_type, values in samples.items():
        for value in values:
            baseline = validate_field(field_type, value).is_valid
            for confidence in (0.0, 0.1, 0.45, 0.59, 0.99, 1.0):
                assert validate_field(field_type, value, confidence).is_valid == baseline


def test_unknown_field_type_is_not_configured() -> None:
    result = validate_field("mileage", "12")

    assert result.is_valid
    assert result.severity == ValidationSeverity.INFO
    assert result.message == "Field validation not configured"


def test_helpers() -> None:
    assert get_format_examples("amount") == ["$12.50", "$1,234.56", "$0.99"]
    assert get_format_examples("mileage") == []
    assert get_field_suggestions("vendor", "de") == ["Home Depot", "Office Depot"]
    assert len(get_field_suggestions("vendor")) == 5
    assert get_field_suggestions("amount", "1") == []
    assert should_highlight_field(0.69)
    assert not should_highlight_field(0.7)
    assert not should_highlight_field(None)


def test_validate_extracted_fields_covers_found_fields() -> None:
    fields = _make_fields(subtotal="19.99", total="21.59", items=[12.99, 7.0])
    results, line_results = validate_extracted_fields(fields, today=TODAY)

    assert set(results) == {"vendor", "date", "total", "subtotal"}
    assert all(r.is_valid for r in results.values())
    assert len(line_results) == 2


def test_consistency_passes_for_matching_totals() -> None:
    report = check_consistency(_make_fields("19.99", "1.60", "21.59", [12.99, 7.0]))

    assert report.valid
    assert report.confidence == 1.0
    assert report.issues == ()


def test_consistency_flags_arithmetic_mismatch() -> None:
    report = check_consistency(_make_fields("20.00", "1.65", "25.00"))

    assert not report.valid
    issue = report.issues[0]
    assert issue.check == "arithmetic"
    assert issue.severity == ValidationSeverity.ERROR
    assert issue.suggested_value == 21.65
    assert report.confidence == 0.5


def test_consistency_warns_on_high_tax_and_item_drift() -> None:
    report = check_consistency(_make_fields("10.00", "2.00", "12.00", [30.0]))

    checks = [issue.check for issue in report.issues]
    assert checks == ["tax_rate", "line_items"]
    assert report.issues[1].suggested_value == 30.0
    assert report.valid
    assert math.isclose(report.confidence, 0.9 * 0.8)


def test_consistency_notes_a_misread_total_digit() -> None:
    report = check_consistency(_make_fields("16.50", "1.49", "11.99"))

    issue = report.issues[0]
    assert issue.check == "arithmetic"
    assert issue.suggested_value == 17.99
    assert "misread" in issue.message


def test_consistency_suggests_ocr_variant_of_total() -> None:
    report = check_consistency(_make_fields(total="11.99", items=[10.00, 7.95]))

    assert [issue.check for issue in report.issues] == ["line_items"]
    issue = report.issues[0]
    assert issue.current_value == 11.99
    assert issue.suggested_value == 17.99
    assert "17.99 if a digit was misread" in issue.message
    assert report.valid
