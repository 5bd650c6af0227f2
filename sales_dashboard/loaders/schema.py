"""
Schema validation for decoded CSV rows.

Each source type (orders, customers, products) has required columns; a
column is present if any of its aliases matches a row key after
normalise_header(). Exports that carry an extra title row above the real
header are recovered by promoting the first data row to header.
"""

import logging
from collections.abc import Mapping
from typing import Any

from ..config import COLUMN_ALIASES, HEADER_SAMPLE_ROWS, REQUIRED_COLUMNS
from .utils import normalise_header

logger = logging.getLogger(__name__)

Row = dict[str, str]


class SchemaError(ValueError):
    """Raised when decoded rows lack the columns a source type requires."""


def _aliases(source: str, column: str) -> list[str]:
    return COLUMN_ALIASES[source].get(column, [column])


def has_any_alias(headers: set[str], aliases: list[str]) -> bool:
    """True if any alias, normalised, is among the normalised headers."""
    return any(normalise_header(alias) in headers for alias in aliases)


def collect_headers(rows: list[Row]) -> tuple[list[str], set[str]]:
    """Return (raw keys in first-seen order, normalised keys) of the leading rows."""
    raw: list[str] = []
    normalised: set[str] = set()

    for row in rows[:HEADER_SAMPLE_ROWS]:
        for key in row:
            if key not in raw:
                raw.append(key)
            normalised.add(normalise_header(key))

    return raw, normalised


def find_missing_columns(normalised_headers: set[str], source: str) -> list[str]:
    """Required columns of `source` with no alias among the headers."""
    return [
        required
        for required in REQUIRED_COLUMNS[source]
        if not has_any_alias(normalised_headers, _aliases(source, required))
    ]


def try_shifted_header(rows: list[Row], source: str) -> list[Row] | None:
    """Retry validation with the first row's values as the header.

    The first row is accepted as header only if it already carries at least
    half of the required columns, and the rebuilt rows must then pass
    validation in full. Returns the rebuilt rows or None.
    """
    if len(rows) < 2:
        return None

    first_row = rows[0]
    keys = list(first_row.keys())
    header_values = [(first_row[key] or "").strip() for key in keys]

    candidate_headers = {normalise_header(value) for value in header_values}
    candidate_headers.discard("")
    missing = find_missing_columns(candidate_headers, source)
    if len(missing) > len(REQUIRED_COLUMNS[source]) // 2:
        return None

    shifted_rows = []
    for row in rows[1:]:
        rebuilt = {}
        for index, key in enumerate(keys):
            shifted_header = header_values[index] or f"col_{index + 1}"
            rebuilt[shifted_header] = (row.get(key) or "").strip()
        shifted_rows.append(rebuilt)

    _, normalised = collect_headers(shifted_rows)
    if find_missing_columns(normalised, source):
        return None

    logger.info("Recovered %s header from the first data row", source)
    return shifted_rows


def validate_csv_rows(rows: Any, source: str) -> list[Row]:
    """Confirm that decoded rows carry every required column for `source`.

    Parameters
    ----------
    rows : Output of decode_csv_bytes().
    source : "orders", "customers" or "products".

    Returns
    -------
    The rows unchanged, or rebuilt under a shifted header.

    Raises
    ------
    SchemaError
        If rows are not mappings of strings, or a required column is missing.
    """
    if source not in REQUIRED_COLUMNS:
        raise ValueError(f"Unknown source type: {source}")

    if not isinstance(rows, list) or not all(isinstance(row, Mapping) for row in rows):
        raise SchemaError(f"{source} CSV could not be parsed.")
    for row in rows:
        for value in row.values():
            if value is not None and not isinstance(value, str):
                raise SchemaError(f"{source} CSV could not be parsed.")

    original_rows = [{str(k): v or "" for k, v in row.items()} for row in rows]
    raw_headers, normalised = collect_headers(original_rows)
    missing = find_missing_columns(normalised, source)
    if not missing:
        return original_rows

    shifted_rows = try_shifted_header(original_rows, source)
    if shifted_rows is not None:
        return shifted_rows

    detected = ", ".join(raw_headers[:20]) or "(none)"
    raise SchemaError(
        f"{source} CSV is missing required columns: {', '.join(missing)} | "
        f"detected headers: {detected}"
    )


def pick_value(row: Mapping[str, Any], candidates: list[str]) -> str:
    """Return the first non-empty value stored under any candidate header."""
    by_key: dict[str, str] = {}
    for key, value in row.items():
        by_key[normalise_header(key)] = str(value or "").strip()

    for candidate in candidates:
        value = by_key.get(normalise_header(candidate))
        if value:
            return value
    return ""
