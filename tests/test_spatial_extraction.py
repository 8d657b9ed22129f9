from __future__ import annotations

from datetime import date

from receipt_ocr.contracts import ExtractedFields, RecognitionResult
from receipt_ocr.integrations.in_memory import recognition_from_lines
from receipt_ocr.spatial import (
    MAX_CERTAINTY,
    SpatialExtractor,
    group_tokens_into_lines,
    line_tolerance,
)

TODAY = date(2024, 1, 20)


def _make_receipt_lines() -> list[str]:
    return [
        "HOME DEPOT",
        "123 Main St Springfield",
        "DATE 01/15/2024",
        "HAMMER 12.99",
        "NAILS BOX 2 @ 3.50 7.00",
        "SUBTOTAL 19.99",
        "TAX 1.60",
        "TOTAL 21.59",
        "RETURN BY 02/14/2024",
    ]


def _extract(lines: list, **kwargs) -> ExtractedFields:
    return SpatialExtractor(**kwargs).extract(recognition_from_lines(lines), today=TODAY)


def test_full_receipt_fields() -> None:
    fields = _extract(_make_receipt_lines())

    assert fields.vendor.value == "Home Depot"
    assert fields.vendor.method == "vendor_alias"
    assert fields.vendor.certainty == 0.95
    assert fields.subtotal.value == "19.99"
    assert fields.tax.value == "1.60"
    assert fields.total.value == "21.59"
    assert fields.total.method == "label_proximity"
    assert fields.total.certainty == MAX_CERTAINTY
    assert fields.date.value == "2024-01-15"
    assert fields.date.method == "date_keyword"
    assert fields.date.certainty == 0.9
    assert fields.spatial
    assert fields.meta["line_count"] == "9"


def test_line_items_stop_at_totals() -> None:
    fields = _extract(_make_receipt_lines())

    items = fields.line_items
    assert [item.description for item in items] == ["HAMMER", "NAILS BOX"]
    assert items[0].total_price == 12.99
    assert items[1].quantity == 2
    assert items[1].unit_price == 3.5
    assert items[1].total_price == 7.0
    assert 0 < fields.line_items_confidence <= 1


def test_amount_below_label() -> None:
    fields = _extract(["ACME STORE", "TOTAL", "42.00"])

    assert fields.total.value == "42.00"
    assert fields.total.certainty < MAX_CERTAINTY
    assert fields.vendor.value == "ACME STORE"
    assert fields.vendor.method == "largest_header_text"


def test_each_amount_serves_one_label() -> None:
    fields = _extract(["ACME", "SUBTOTAL 10.00", "TAX 0.80", "TOTAL 10.80"])

    values = {fields.subtotal.value, fields.tax.value, fields.total.value}
    assert values == {"10.00", "0.80", "10.80"}


def test_competing_totals_lower_certainty() -> None:
    fields = _extract(["ACME", "TOTAL 10.00", "TOTAL 12.00"])

    assert fields.total.value == "10.00"
    assert fields.total.candidates == ["12.00"]
    assert fields.total.certainty < MAX_CERTAINTY


def test_total_from_subtotal_plus_tax() -> None:
    fields = _extract(["ACME", "SUBTOTAL 10.00", "TAX 0.80"])

    assert fields.total.value == "10.80"
    assert fields.total.method == "subtotal_plus_tax"
    assert fields.total.certainty == 0.6


def test_total_falls_back_to_largest_amount() -> None:
    fields = _extract(["ACME", "MILK 3.49", "BREAD 2.50"])

    assert fields.total.value == "3.49"
    assert fields.total.method == "largest_amount"
    assert fields.total.certainty == 0.5


def test_future_dates_are_avoided() -> None:
    fields = _extract(["ACME", "DATE 01/15/2099", "01/10/2024", "TOTAL 5.00"])

    assert fields.date.value == "2024-01-10"
    assert fields.date.method == "date_pattern"
    assert "2099-01-15" in fields.date.candidates


def test_only_future_date_is_kept_with_lower_certainty() -> None:
    fields = _extract(["ACME", "DATE 01/15/2099", "TOTAL 5.00"])

    assert fields.date.value == "2099-01-15"
    assert fields.date.method == "date_keyword"
    assert fields.date.certainty == 0.45


def test_low_confidence_tokens_are_ignored() -> None:
    lines = [
        "ACME",
        [("TOTAL", 0.95), ("99.99", 0.2)],
        [("TOTAL", 0.95), ("15.00", 0.95)],
    ]
    fields = _extract(lines)

    assert fields.total.value == "15.00"
    assert fields.meta["tokens_used"] == str(int(fields.meta["token_count"]) - 1)


def test_text_only_recognition_is_degraded() -> None:
    recognition = RecognitionResult(text="ACME MARKET\nTOTAL 15.00", confidence=0.9)
    fields = SpatialExtractor().extract(recognition, today=TODAY)

    assert not fields.spatial
    assert fields.total.value == "15.00"
    assert fields.total.certainty <= MAX_CERTAINTY * 0.8
    assert fields.vendor.value == "ACME MARKET"


def test_empty_recognition() -> None:
    fields = SpatialExtractor().extract(RecognitionResult(), today=TODAY)

    assert not fields.vendor.found
    assert not fields.total.found
    assert fields.line_items == []


def test_line_items_are_capped() -> None:
    lines = ["ACME"] + [f"ITEM NUMBER {i} {i}.99" for i in range(1, 8)]
    fields = _extract(lines, max_line_items=3)

    assert len(fields.line_items) == 3


def test_line_grouping() -> None:
    recognition = recognition_from_lines(["A B C", "D E"])
    lines = group_tokens_into_lines(recognition.tokens)

    assert [line.text for line in lines] == ["A B C", "D E"]
    assert line_tolerance(None, None) == 10.0
    assert line_tolerance(400, 400) == 8.0
    assert line_tolerance(3000, 3000) == 20.0
