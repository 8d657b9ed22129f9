from __future__ import annotations

from datetime import date

from receipt_ocr.parsing import (
    clean_description,
    expand_two_digit_year,
    extract_prices,
    find_amounts,
    find_dates,
    is_skip_line,
    line_item_certainty,
    normalize_ocr_digits,
    ocr_digit_variants,
    parse_amount_text,
    pick_receipt_date,
)
from receipt_ocr.vendors import clean_merchant_name, match_known_vendor


def test_amounts_require_two_decimals() -> None:
    assert parse_amount_text("TOTAL $1,234.56") == 1234.56
    assert parse_amount_text("qty 3") is None
    assert parse_amount_text("8.25%") is None
    assert find_amounts("2 @ 3.50 7.00") == [3.5, 7.0]


def test_letter_lookalikes_inside_numbers_become_digits() -> None:
    assert normalize_ocr_digits("$l2.5O") == "$12.50"
    assert normalize_ocr_digits("TOTAL 2OZ lO") == "TOTAL 2OZ lO"
    assert parse_amount_text("TOTAL $l2.5O") == 12.5
    assert parse_amount_text("TOTAL") is None
    assert find_amounts("SOAP 3.5O TAX O.28") == [3.5, 0.28]

    prices = extract_prices("HAMMER l2.99")
    assert prices.total_price == 12.99
    assert clean_description("HAMMER l2.99") == "HAMMER"

    (match,) = find_dates("DATE 0l/l5/2024")
    assert match.value == date(2024, 1, 15)
    assert match.original == "0l/l5/2024"


def test_digit_confusion_variants() -> None:
    variants = ocr_digit_variants(11.99)

    assert 17.99 in variants
    assert 71.99 in variants
    assert 11.99 not in variants
    assert ocr_digit_variants(0.5) == [8.5, 6.5]


def test_two_digit_years() -> None:
    assert expand_two_digit_year(24) == 2024
    assert expand_two_digit_year(30) == 2030
    assert expand_two_digit_year(31) == 1931
    assert expand_two_digit_year(2024) == 2024


def test_find_dates_supports_common_layouts() -> None:
    samples = {
        "2024-01-15": date(2024, 1, 15),
        "01/15/2024": date(2024, 1, 15),
        "1-15-24": date(2024, 1, 15),
        "Jan 15, 2024": date(2024, 1, 15),
        "15 January 2024": date(2024, 1, 15),
        "20240115": date(2024, 1, 15),
    }
    for text, expected in samples.items():
        matches = find_dates(f"DATE {text} 10:42")
        assert [m.value for m in matches] == [expected], text


def test_find_dates_dedupes_and_orders() -> None:
    matches = find_dates("02/01/2024 then 01/15/2024 and again 2024-02-01")

    assert [m.iso for m in matches] == ["2024-02-01", "2024-01-15"]
    assert find_dates("13/45/2024") == []


def test_pick_receipt_date_skips_future() -> None:
    matches = find_dates("VALID THRU 12/31/2099 PURCHASED 01/10/2024")

    assert pick_receipt_date(matches, today=date(2024, 1, 20)).iso == "2024-01-10"
    assert pick_receipt_date(find_dates("12/31/2099"), today=date(2024, 1, 20)).iso == "2099-12-31"
    assert pick_receipt_date([]) is None


def test_item_line_prices_and_description() -> None:
    prices = extract_prices("NAILS BOX 2 @ 3.50 7.00")

    assert prices.quantity == 2
    assert prices.unit_price == 3.5
    assert prices.total_price == 7.0
    assert clean_description("NAILS BOX 2 @ 3.50 7.00") == "NAILS BOX"
    assert line_item_certainty("NAILS BOX", prices) == 0.95

    single = extract_prices("HAMMER 12.99")
    assert single.total_price == 12.99
    assert single.quantity is None
    assert clean_description("HAMMER 12.99") == "HAMMER"


def test_skip_lines() -> None:
    for text in ("SUBTOTAL 19.99", "Thank you for shopping", "-----", "VISA 1234", "12"):
        assert is_skip_line(text), text
    assert not is_skip_line("HAMMER 12.99")


def test_known_vendor_matching() -> None:
    alias = match_known_vendor(["THE HOME DEPOT #4521", "123 MAIN ST"])
    assert alias.name == "Home Depot"
    assert alias.method == "alias"
    assert alias.certainty == 0.95

    split = match_known_vendor(["HOME", "DEPOT", "123 MAIN ST"])
    assert split.name == "Home Depot"
    assert split.certainty == 0.9

    slogan = match_known_vendor(["STORE 12", "Save money. Live better."])
    assert slogan.name == "Walmart"
    assert slogan.method == "slogan"

    fuzzy = match_known_vendor(["HOME DEPQT"])
    assert fuzzy.name == "Home Depot"
    assert fuzzy.method == "fuzzy"
    assert 0.72 <= fuzzy.certainty < 0.9

    assert match_known_vendor(["ACME HARDWARE"]) is None


def test_clean_merchant_name_drops_phone_and_address() -> None:
    assert clean_merchant_name("ACME HARDWARE (555) 123-4567") == "ACME HARDWARE"
    assert clean_merchant_name("JOE'S DINER 12 Main St Springfield") == "JOE'S DINER"
