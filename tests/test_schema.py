import unicodedata

import pandas as pd
import pytest

from sales_dashboard.loaders.schema import SchemaError, pick_value, validate_csv_rows
from sales_dashboard.loaders.utils import (
    normalise_file_name,
    normalise_header,
    parse_date,
    parse_number,
)


# ---------------------------------------------------------------------------
# Normalisation helpers
# ---------------------------------------------------------------------------

def test_normalise_header_ignores_spacing_and_punctuation():
    assert normalise_header("사업자 등록번호") == normalise_header("사업자등록번호")
    assert normalise_header("Order_No") == "orderno"
    assert normalise_header('"카테고리(중분류)"') == "카테고리중분류"
    assert normalise_header(chr(0xFEFF) + "수주번호") == "수주번호"


def test_normalise_file_name_handles_decomposed_hangul():
    decomposed = unicodedata.normalize("NFD", "고객 마스터_데이터.csv")
    assert normalise_file_name(decomposed) == "고객마스터데이터.csv"


@pytest.mark.parametrize("value, expected", [
    ("1,234,000", 1234000.0),
    (" 500 ", 500.0),
    ("-3.5", -3.5),
    ("", 0.0),
    (None, 0.0),
    ("n/a", 0.0),
    ("inf", 0.0),
    (float("nan"), 0.0),
])
def test_parse_number(value, expected):
    assert parse_number(value) == expected


def test_parse_date_reads_dotted_dates():
    assert parse_date("2024.03.15") == pd.Timestamp("2024-03-15")
    assert parse_date("2024.03.15.") == pd.Timestamp("2024-03-15")
    assert parse_date("2024-03-15") == pd.Timestamp("2024-03-15")


@pytest.mark.parametrize("value", ["", None, "not a date"])
def test_parse_date_unparseable_is_none(value):
    assert parse_date(value) is None


# ---------------------------------------------------------------------------
# validate_csv_rows
# ---------------------------------------------------------------------------

def test_rows_with_canonical_headers_pass_unchanged():
    rows = [{"수주번호": "SO1", "사업자 등록번호": "111", "실적대리점": "DM", "수주금액": "100"}]
    assert validate_csv_rows(rows, "orders") == rows


def test_alias_headers_are_accepted():
    rows = [{"주문번호": "SO1", "사업자번호": "111", "대리점명": "DM", "order_amount": "100"}]
    assert validate_csv_rows(rows, "orders") == rows


def test_none_values_become_empty_strings():
    rows = [{"사업자 등록번호": "111", "회사명": None}]
    assert validate_csv_rows(rows, "customers") == [{"사업자 등록번호": "111", "회사명": ""}]


def test_shifted_header_is_recovered():
    rows = [
        {"매출 보고서": "수주번호", "col_2": "사업자 등록번호", "col_3": "실적대리점", "col_4": "수주금액"},
        {"매출 보고서": "SO1", "col_2": "111", "col_3": "DM대구칠성", "col_4": "1,000"},
        {"매출 보고서": "SO2", "col_2": "222", "col_3": "DM대구칠성", "col_4": "2,000"},
    ]

    validated = validate_csv_rows(rows, "orders")

    assert validated == [
        {"수주번호": "SO1", "사업자 등록번호": "111", "실적대리점": "DM대구칠성", "수주금액": "1,000"},
        {"수주번호": "SO2", "사업자 등록번호": "222", "실적대리점": "DM대구칠성", "수주금액": "2,000"},
    ]


def test_shifted_header_names_blank_cells_by_position():
    rows = [
        {"title": "수주번호", "x": ""},
        {"title": "SO1", "x": "memo"},
    ]
    assert validate_csv_rows(rows, "products") == [{"수주번호": "SO1", "col_2": "memo"}]


def test_missing_columns_error_lists_detected_headers():
    rows = [{"name": "x", "amount": "1"}, {"name": "y", "amount": "2"}]

    with pytest.raises(SchemaError) as excinfo:
        validate_csv_rows(rows, "customers")

    message = str(excinfo.value)
    assert "사업자 등록번호" in message
    assert "detected headers: name, amount" in message


def test_shifted_header_needs_half_of_required_columns():
    rows = [
        {"a": "수주번호", "b": "foo", "c": "bar"},
        {"a": "SO1", "b": "1", "c": "2"},
    ]
    with pytest.raises(SchemaError, match="missing required columns"):
        validate_csv_rows(rows, "orders")


def test_non_string_values_are_rejected():
    with pytest.raises(SchemaError, match="products CSV could not be parsed"):
        validate_csv_rows([{"수주번호": 1}], "products")


def test_non_list_input_is_rejected():
    with pytest.raises(SchemaError):
        validate_csv_rows("수주번호\nSO1", "products")


def test_unknown_source_type():
    with pytest.raises(ValueError, match="Unknown source type"):
        validate_csv_rows([], "invoices")


# ---------------------------------------------------------------------------
# pick_value
# ---------------------------------------------------------------------------

def test_pick_value_matches_normalised_keys():
    assert pick_value({"Order_No ": "A1"}, ["order_no"]) == "A1"


def test_pick_value_skips_empty_candidates():
    row = {"수주번호": "", "주문번호": "B2"}
    assert pick_value(row, ["수주번호", "주문번호"]) == "B2"


def test_pick_value_missing_is_empty_string():
    assert pick_value({"a": "1"}, ["b"]) == ""
