import codecs
import logging

import pytest

from sales_dashboard.loaders import csv_decoder
from sales_dashboard.loaders.csv_decoder import (
    CsvDecodeError,
    ParseCandidate,
    decode_csv_bytes,
    load_csv,
    normalise_text,
    parse_with_header,
    parse_with_matrix,
    rows_quality_score,
    text_quality_score,
    unique_headers,
)

REPLACEMENT = chr(0xFFFD)


# ---------------------------------------------------------------------------
# Scoring and helpers
# ---------------------------------------------------------------------------

def test_text_quality_score_counts_readable_characters():
    assert text_quality_score("ab 12") == 5
    assert text_quality_score("매출") == 2


def test_text_quality_score_penalises_replacement_and_control():
    assert text_quality_score("a" + REPLACEMENT) == 1 - 12
    assert text_quality_score("a" + chr(1)) == 1 - 12
    # Tab and newline are whitespace, not control noise
    assert text_quality_score("a\tb\n") == 4


def test_text_quality_score_empty():
    assert text_quality_score("") == -1000


def test_unique_headers_suffixes_repeats():
    assert unique_headers(["a", "a", "b"]) == ["a", "a_2", "b"]
    assert unique_headers(["a", "a", "a"]) == ["a", "a_2", "a_3"]


def test_unique_headers_names_blanks_by_position():
    assert unique_headers(["", "x", "  "]) == ["col_1", "x", "col_3"]


def test_unique_headers_avoids_existing_suffixed_name():
    assert unique_headers(["a", "a_2", "a"]) == ["a", "a_2", "a_3"]


def test_normalise_text_strips_bom_sep_line_and_carriage_returns():
    text = chr(0xFEFF) + "sep=;\r\na;b\r\n1;2\r"
    assert normalise_text(text) == "a;b\n1;2\n"


# ---------------------------------------------------------------------------
# Strategy scores and candidate ordering
# ---------------------------------------------------------------------------

def test_ragged_rows_cost_header_score_one_point_each():
    text = "a,b,c\n1,2\n4,5,6,7\n"

    header = parse_with_header(text, ",")
    matrix = parse_with_matrix(text, ",")

    # 2 rows, 3 fields, 2 field-count mismatches
    assert header.score - rows_quality_score(header.rows) == 2 * 10 + 3 * 3 - 2
    # Matrix mode ignores mismatches
    assert matrix.score - rows_quality_score(matrix.rows) == 2 * 8 + 3 * 3
    assert header.rows == matrix.rows


def test_malformed_quote_costs_two_points_per_strategy():
    text = 'a,b\n"x"y,1\n2,3\n'

    header = parse_with_header(text, ",")
    matrix = parse_with_matrix(text, ",")

    assert header.rows[0] == {"a": "xy", "b": "1"}
    assert header.score - rows_quality_score(header.rows) == 2 * 10 + 2 * 3 - 2
    assert matrix.score - rows_quality_score(matrix.rows) == 2 * 8 + 2 * 3 - 2


def test_failed_delimiter_sniff_falls_back_to_comma_with_penalty(monkeypatch):
    monkeypatch.setattr(csv_decoder, "sniff_delimiter", lambda text, delimiters: None)
    text = "a,b\n1,2\n3,4\n"

    auto = parse_with_header(text, None)
    forced = parse_with_header(text, ",")

    assert auto.delimiter == ","
    assert auto.rows == forced.rows
    assert auto.score == forced.score - 2


def test_sort_key_breaks_ties_by_strategy_then_encoding_then_sequence():
    def candidate(strategy, rank, sequence, score=50):
        return ParseCandidate(
            rows=[], score=score, strategy=strategy, delimiter=",",
            encoding_rank=rank, sequence=sequence,
        )

    matrix_first = candidate("matrix", 0, 0)
    header_late_encoding = candidate("header", 2, 1)
    header_later = candidate("header", 1, 3)
    header_earlier = candidate("header", 1, 2)
    matrix_better = candidate("matrix", 4, 9, score=51)

    ordered = sorted(
        [matrix_first, header_late_encoding, header_later, header_earlier],
        key=ParseCandidate.sort_key,
    )

    assert ordered == [header_earlier, header_later, header_late_encoding, matrix_first]
    assert min(ordered + [matrix_better], key=ParseCandidate.sort_key) is matrix_better


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def test_clean_utf8_comma_csv():
    rows = decode_csv_bytes(b"name,amount,region\nA,1,Seoul\nB,2,Busan\n")
    assert rows == [
        {"name": "A", "amount": "1", "region": "Seoul"},
        {"name": "B", "amount": "2", "region": "Busan"},
    ]


def test_cp949_korean_csv():
    buffer = "이름,금액,지역\n홍길동,1000,서울\n김철수,2000,부산\n".encode("cp949")
    rows = decode_csv_bytes(buffer)
    assert rows[0] == {"이름": "홍길동", "금액": "1000", "지역": "서울"}
    assert len(rows) == 2


def test_utf16le_tab_export_with_bom():
    text = "이름\t금액\n홍길동\t1000\n김철수\t2000\n"
    buffer = codecs.BOM_UTF16_LE + text.encode("utf-16-le")
    rows = decode_csv_bytes(buffer)
    assert rows == [
        {"이름": "홍길동", "금액": "1000"},
        {"이름": "김철수", "금액": "2000"},
    ]


def test_utf8_bom_is_not_part_of_first_header():
    rows = decode_csv_bytes(codecs.BOM_UTF8 + b"a,b\n1,2\n")
    assert list(rows[0]) == ["a", "b"]


def test_excel_sep_directive_is_honoured():
    rows = decode_csv_bytes(b"sep=;\na;b\n1;2\n")
    assert rows == [{"a": "1", "b": "2"}]


def test_pipe_delimiter():
    rows = decode_csv_bytes(b"a|b|c\n1|2|3\n")
    assert rows == [{"a": "1", "b": "2", "c": "3"}]


def test_quoted_field_keeps_embedded_delimiter():
    rows = decode_csv_bytes(b'name,memo\nA,"x, y"\n')
    assert rows == [{"name": "A", "memo": "x, y"}]


def test_title_lines_above_header_are_skipped():
    buffer = "Sales report\nGenerated 2024\nname,amount\nA,1\nB,2\n".encode("utf-8")
    rows = decode_csv_bytes(buffer)
    assert rows == [{"name": "A", "amount": "1"}, {"name": "B", "amount": "2"}]


def test_duplicate_headers_below_title_are_made_unique():
    rows = decode_csv_bytes(b"Report\nname,name,amount\nA,B,1\n")
    assert rows == [{"name": "A", "name_2": "B", "amount": "1"}]


def test_duplicate_headers_on_first_line_keep_every_column():
    lines = ["a,a,b"] + [f"x{i},y{i},z{i}" for i in range(30)]
    rows = decode_csv_bytes("\n".join(lines).encode("utf-8"))

    assert len(rows) == 30
    assert list(rows[0]) == ["a", "a_2", "b"]
    assert rows[0] == {"a": "x0", "a_2": "y0", "b": "z0"}
    assert rows[-1] == {"a": "x29", "a_2": "y29", "b": "z29"}


def test_blank_header_cell_is_named_by_position():
    header = parse_with_header("a,,b\n1,2,3\n", ",")

    assert header.rows == [{"a": "1", "col_2": "2", "b": "3"}]
    assert "" not in header.rows[0]


def test_ragged_rows_are_padded_and_truncated():
    rows = decode_csv_bytes(b"a,b,c\n1,2\n4,5,6,7\n")
    assert rows == [
        {"a": "1", "b": "2", "c": ""},
        {"a": "4", "b": "5", "c": "6"},
    ]


def test_blank_rows_are_dropped():
    rows = decode_csv_bytes(b"a,b\n1,2\n,\n   \n3,4\n")
    assert rows == [{"a": "1", "b": "2"}, {"a": "3", "b": "4"}]


def test_values_are_trimmed():
    rows = decode_csv_bytes(b" a , b \n 1 , 2 \n")
    assert rows == [{"a": "1", "b": "2"}]


def test_decoding_is_deterministic():
    buffer = "수주번호\t금액\nSO1\t1,000\nSO2\t2,000\n".encode("cp949")
    assert decode_csv_bytes(buffer) == decode_csv_bytes(buffer)


def test_zip_magic_is_rejected_as_spreadsheet():
    with pytest.raises(CsvDecodeError, match="XLSX"):
        decode_csv_bytes(b"PK\x03\x04" + b"\x00" * 64)


@pytest.mark.parametrize("buffer", [b"", b"   \n  \n", b"name\nA\nB\n"])
def test_unusable_input_raises(buffer):
    with pytest.raises(CsvDecodeError, match="could not recognise"):
        decode_csv_bytes(buffer)


def test_error_message_names_tried_candidates():
    with pytest.raises(CsvDecodeError) as excinfo:
        decode_csv_bytes(b"a,b\n1,2\n", encodings=["utf-16-le"], delimiters=[",", "\t"])
    assert "utf-16-le" in str(excinfo.value)
    assert "\\t" in str(excinfo.value)


def test_decode_error_is_a_value_error():
    assert issubclass(CsvDecodeError, ValueError)


def test_matrix_strategy_can_be_disabled():
    buffer = b"Sales report\nname,amount\nA,1\n"
    assert decode_csv_bytes(buffer) == [{"name": "A", "amount": "1"}]
    with pytest.raises(CsvDecodeError):
        decode_csv_bytes(buffer, include_matrix=False)


def test_non_exhaustive_stops_at_first_productive_encoding(caplog):
    caplog.set_level(logging.DEBUG, logger="sales_dashboard.loaders.csv_decoder")

    rows = decode_csv_bytes(b"a,b\n1,2\n", encodings=["utf-8", "utf-16-le"], exhaustive=False)

    assert rows == [{"a": "1", "b": "2"}]
    tried = [r.getMessage() for r in caplog.records if "produced" in r.getMessage()]
    assert len(tried) == 1
    assert "utf-8" in tried[0]


def test_exhaustive_tries_every_encoding(caplog):
    caplog.set_level(logging.DEBUG, logger="sales_dashboard.loaders.csv_decoder")

    decode_csv_bytes(b"a,b\n1,2\n", encodings=["utf-8", "utf-16-le"])

    tried = [r.getMessage() for r in caplog.records if "produced" in r.getMessage()]
    assert any("utf-16-le" in message for message in tried)


def test_non_exhaustive_skips_encodings_without_candidates():
    rows = decode_csv_bytes(b"a,b\n1,2\n", encodings=["utf-16-le", "utf-8"], exhaustive=False)
    assert rows == [{"a": "1", "b": "2"}]


# ---------------------------------------------------------------------------
# File loading
# ---------------------------------------------------------------------------

def test_load_csv_returns_string_frame(tmp_path):
    path = tmp_path / "orders.csv"
    path.write_bytes("수주번호,수주금액\nSO1,\"1,000\"\nSO2,500\n".encode("cp949"))

    df = load_csv(path)

    assert list(df.columns) == ["수주번호", "수주금액"]
    assert df["수주금액"].tolist() == ["1,000", "500"]


def test_load_csv_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_csv(tmp_path / "missing.csv")
